"""API clients for external services."""

from .drive_client import (
    DriveAccessDeniedError,
    DriveClient,
    DriveConfigError,
    DriveError,
    DriveUploadError,
    download_url,
    preview_url,
)

__all__ = [
    "DriveAccessDeniedError",
    "DriveClient",
    "DriveConfigError",
    "DriveError",
    "DriveUploadError",
    "download_url",
    "preview_url",
]
