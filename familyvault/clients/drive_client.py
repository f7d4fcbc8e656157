"""
Google Drive Upload Client

Uploads media into a shared Drive folder and builds the URLs the gallery
uses to show and download it. The Drive file id becomes the catalog entry
id, so an entry only exists once its upload has succeeded.
"""

import base64
import json
import logging
from typing import Optional

import requests

from ..config.settings import DriveSettings

logger = logging.getLogger(__name__)


class DriveError(Exception):
    """Base exception for Drive errors."""
    pass


class DriveConfigError(DriveError):
    """Error when folder id or API key is missing."""
    pass


class DriveAccessDeniedError(DriveError):
    """Error when Drive rejects the credentials (401/403)."""
    pass


class DriveUploadError(DriveError):
    """Error when an upload fails for any other reason."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


MULTIPART_BOUNDARY = "-------314159265358979323846"

ACCESS_DENIED_MESSAGE = (
    "Access Denied: Google Drive API keys can usually only read public data. "
    "For uploads, make sure the key has the right permissions or the folder is "
    "shared as 'Anyone with the link can edit'."
)


def preview_url(file_id: str) -> str:
    """Thumbnail URL for a Drive file (works for publicly shared files)."""
    if not file_id:
        return ""
    return f"https://drive.google.com/thumbnail?id={file_id}&sz=w1000"


def download_url(file_id: str) -> str:
    """Direct download URL for a Drive file."""
    if not file_id:
        return ""
    return f"https://drive.google.com/uc?export=download&id={file_id}"


class DriveClient:
    """
    Client for Drive v3 multipart uploads.
    """

    def __init__(
        self,
        api_key: Optional[str],
        folder_id: Optional[str],
        settings: Optional[DriveSettings] = None,
        session: Optional[requests.Session] = None,
    ):
        """
        Initialize Drive client.

        Raises:
            DriveConfigError: If folder id or API key is missing.
        """
        if not folder_id or not api_key:
            raise DriveConfigError(
                "Google Drive configuration missing (Folder ID or API Key). "
                "Check the storage settings."
            )
        self.api_key = api_key
        self.folder_id = folder_id
        self.settings = settings or DriveSettings()
        self.session = session or requests.Session()

    def _multipart_body(self, file_name: str, data: bytes, mime_type: str) -> str:
        metadata = {
            "name": file_name,
            "parents": [self.folder_id],
            "mimeType": mime_type,
        }
        delimiter = f"\r\n--{MULTIPART_BOUNDARY}\r\n"
        close_delimiter = f"\r\n--{MULTIPART_BOUNDARY}--"
        return (
            delimiter
            + "Content-Type: application/json; charset=UTF-8\r\n\r\n"
            + json.dumps(metadata)
            + delimiter
            + f"Content-Type: {mime_type}\r\n"
            + "Content-Transfer-Encoding: base64\r\n\r\n"
            + base64.b64encode(data).decode("ascii")
            + close_delimiter
        )

    def upload(self, file_name: str, data: bytes, mime_type: str) -> str:
        """
        Upload a file into the configured folder.

        Returns:
            Drive file id

        Raises:
            DriveAccessDeniedError: On 401/403.
            DriveUploadError: On any other failure.
        """
        body = self._multipart_body(file_name, data, mime_type)
        logger.info(f"[Drive] Uploading {file_name} ({len(data)} bytes, {mime_type})")

        try:
            response = self.session.post(
                self.settings.upload_url,
                params={"uploadType": "multipart", "key": self.api_key},
                headers={"Content-Type": f"multipart/related; boundary={MULTIPART_BOUNDARY}"},
                data=body.encode("utf-8"),
                timeout=self.settings.timeout,
            )
        except requests.exceptions.RequestException as e:
            raise DriveUploadError(f"Upload failed: {e}") from e

        if not response.ok:
            try:
                error = response.json()
            except ValueError:
                error = {"error": {"message": "Unknown error"}}
            logger.error(f"[Drive] API error ({response.status_code}): {error}")

            if response.status_code in (401, 403):
                raise DriveAccessDeniedError(ACCESS_DENIED_MESSAGE)
            message = (error.get("error") or {}).get("message") if isinstance(error, dict) else None
            raise DriveUploadError(
                message or f"Upload failed ({response.status_code})",
                status_code=response.status_code,
            )

        file_id = response.json().get("id")
        if not file_id:
            raise DriveUploadError("Upload response did not include a file id")
        return file_id
