"""
FamilyVault Configuration Module

Process-level settings: where the local store lives, logging verbosity,
captioning credentials and remote table names. Values come from the
environment so a deployment can be reconfigured without touching the
installation's own configuration slot.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() not in ("0", "false", "no", "off", "")


@dataclass
class RemoteSettings:
    """Remote catalog (PostgREST) settings."""
    users_table: str = field(
        default_factory=lambda: os.environ.get("FAMILYVAULT_USERS_TABLE", "users")
    )
    media_table: str = field(
        default_factory=lambda: os.environ.get("FAMILYVAULT_MEDIA_TABLE", "media_items")
    )
    rest_path: str = "/rest/v1"
    timeout: Optional[float] = None  # remote calls are not time-limited by default


@dataclass
class CaptionSettings:
    """AI captioning settings."""
    enabled: bool = field(default_factory=lambda: _env_flag("FAMILYVAULT_CAPTIONS", True))
    api_key: Optional[str] = field(
        default_factory=lambda: os.environ.get("GEMINI_API_KEY") or os.environ.get("API_KEY")
    )
    model: str = field(
        default_factory=lambda: os.environ.get("FAMILYVAULT_CAPTION_MODEL", "gemini-3-flash-preview")
    )
    base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    timeout: int = 60


@dataclass
class DriveSettings:
    """Blob upload settings."""
    upload_url: str = "https://www.googleapis.com/upload/drive/v3/files"
    timeout: int = 300


@dataclass
class VaultSettings:
    """Main FamilyVault settings container."""
    root: Path = field(
        default_factory=lambda: Path(
            os.environ.get("FAMILYVAULT_ROOT", Path.home() / ".familyvault")
        ).expanduser()
    )
    log_level: str = field(
        default_factory=lambda: os.environ.get("FAMILYVAULT_LOG_LEVEL", "INFO").upper()
    )
    remote: RemoteSettings = field(default_factory=RemoteSettings)
    caption: CaptionSettings = field(default_factory=CaptionSettings)
    drive: DriveSettings = field(default_factory=DriveSettings)


# Global settings instance
_settings: Optional[VaultSettings] = None


def get_settings() -> VaultSettings:
    """Get or create the global settings instance."""
    global _settings
    if _settings is None:
        _settings = VaultSettings()
    return _settings


def reset_settings() -> None:
    """Reset global settings (useful for testing)."""
    global _settings
    _settings = None
