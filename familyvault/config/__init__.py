"""Configuration module for FamilyVault."""

from .settings import (
    get_settings,
    reset_settings,
    CaptionSettings,
    DriveSettings,
    RemoteSettings,
    VaultSettings,
)

__all__ = [
    "get_settings",
    "reset_settings",
    "CaptionSettings",
    "DriveSettings",
    "RemoteSettings",
    "VaultSettings",
]
