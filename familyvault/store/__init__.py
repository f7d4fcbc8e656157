"""
FamilyVault Store - Main Entry Point

This module provides the main Vault facade over the local store, the
reconciliation engine and the session/upload services.

Usage:
    from familyvault.store import Vault

    vault = Vault()
    await vault.open()

    # Pick a profile
    vault.login("root-admin-raju", "1122")

    # Share a photo
    entry = await vault.upload("beach.jpg")

    # Flush pending remote writes before exiting
    await vault.close()
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from ..config.settings import VaultSettings, get_settings
from .engine import (
    LOCAL_ACTIVE_LABEL,
    MISSING_TABLES_WARNING,
    REMOTE_ACTIVE_LABEL,
    EngineState,
    PendingWrite,
    ReconciliationEngine,
    RemoteFactory,
    Resolution,
    WriteOutcome,
    WriteStatus,
)
from .layout import (
    InvalidPinError,
    LocalStore,
    ProfileNotFoundError,
    Slot,
    StoreError,
    StoreLockError,
    UploadConfigError,
)
from .models import (
    ROOT_ADMIN_ID,
    BackendMode,
    DatabaseConfig,
    MediaEntry,
    MediaKind,
    Profile,
    Role,
    StorageConfig,
    VaultConfig,
    default_roster,
    new_profile,
)
from .remote import (
    Collection,
    ListErrorKind,
    ListResult,
    RemoteCatalogClient,
    RemoteWriteError,
    provisioning_sql,
)
from .session_service import SessionService
from .upload_service import DriveClientFactory, UploadService


__all__ = [
    # Main facade
    "Vault",

    # Layout
    "LocalStore",
    "Slot",

    # Engine
    "ReconciliationEngine",
    "EngineState",
    "Resolution",
    "PendingWrite",
    "WriteOutcome",
    "WriteStatus",
    "MISSING_TABLES_WARNING",
    "REMOTE_ACTIVE_LABEL",
    "LOCAL_ACTIVE_LABEL",

    # Remote
    "RemoteCatalogClient",
    "Collection",
    "ListResult",
    "ListErrorKind",
    "provisioning_sql",

    # Services
    "SessionService",
    "UploadService",

    # Models
    "Profile",
    "MediaEntry",
    "MediaKind",
    "Role",
    "BackendMode",
    "VaultConfig",
    "StorageConfig",
    "DatabaseConfig",
    "ROOT_ADMIN_ID",
    "default_roster",
    "new_profile",

    # Errors
    "StoreError",
    "StoreLockError",
    "ProfileNotFoundError",
    "InvalidPinError",
    "UploadConfigError",
    "RemoteWriteError",
]


class Vault:
    """
    Main facade for FamilyVault.

    Provides high-level operations for profiles, media and configuration.
    """

    def __init__(
        self,
        root: Optional[Path] = None,
        settings: Optional[VaultSettings] = None,
        remote_factory: Optional[RemoteFactory] = None,
        drive_client_factory: Optional[DriveClientFactory] = None,
        caption_service: Optional[Any] = None,
    ):
        """
        Initialize the vault.

        Args:
            root: Root directory for the local store. Defaults to
                  FAMILYVAULT_ROOT env var or ~/.familyvault
            settings: Process settings (defaults to global settings)
            remote_factory: Optional remote handle factory (tests inject fakes)
            drive_client_factory: Optional blob client factory
            caption_service: Optional CaptionService instance
        """
        self.settings = settings or get_settings()
        self.local_store = LocalStore(root if root is not None else self.settings.root)
        self.engine = ReconciliationEngine(
            self.local_store,
            settings=self.settings,
            remote_factory=remote_factory,
        )
        self.session = SessionService(self.local_store, self.engine)
        self.upload_service = UploadService(
            self.engine,
            drive_client_factory=drive_client_factory,
            caption_service=caption_service,
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(self) -> Resolution:
        """Load configuration, resolve the backend and restore the session."""
        self.engine.load_configuration()
        resolution = await self.engine.resolve()
        self.session.restore()
        return resolution

    async def close(self) -> List[WriteOutcome]:
        """Wait for pending writes and release remote handles."""
        outcomes = await self.engine.drain()
        await self.engine.aclose()
        return outcomes

    # =========================================================================
    # Config
    # =========================================================================

    def get_config(self) -> VaultConfig:
        """Get installation configuration."""
        return self.engine.config

    async def save_config(self, config: VaultConfig) -> Resolution:
        """
        Save installation configuration.

        Switching backends re-resolves; the restored session is re-checked
        against the new roster.
        """
        resolution = await self.engine.apply_configuration(config)
        self.session.restore()
        return resolution

    # =========================================================================
    # Session
    # =========================================================================

    @property
    def current_profile(self) -> Optional[Profile]:
        return self.session.current

    def login(self, profile_id: str, pin: str) -> Profile:
        """Select a profile after checking its PIN."""
        return self.session.login(profile_id, pin)

    def logout(self) -> None:
        """Clear the selected profile."""
        self.session.logout()

    # =========================================================================
    # Profile Operations
    # =========================================================================

    def list_profiles(self) -> List[Profile]:
        """List all profiles."""
        return self.engine.roster

    def get_profile(self, profile_id: str) -> Profile:
        """
        Get a profile by id.

        Raises:
            ProfileNotFoundError: If the id is not in the roster.
        """
        profile = self.engine.get_profile(profile_id)
        if profile is None:
            raise ProfileNotFoundError(f"Profile not found: {profile_id}")
        return profile

    def save_profile(self, profile: Profile) -> PendingWrite:
        """Add or update a profile and refresh the session if it is the active one."""
        pending = self.engine.upsert_profile(profile)
        saved = self.engine.get_profile(profile.id)
        if saved is not None:
            self.session.refresh(saved)
        return pending

    def delete_profile(self, profile_id: str) -> PendingWrite:
        """Delete a profile (the root administrator is kept)."""
        pending = self.engine.remove_profile(profile_id)
        current = self.session.current
        if current is not None and current.id == profile_id and self.engine.get_profile(profile_id) is None:
            self.session.logout()
        return pending

    # =========================================================================
    # Media Operations
    # =========================================================================

    def list_media(self, owner_id: Optional[str] = None) -> List[MediaEntry]:
        """List catalog entries, newest first, optionally for one owner."""
        if owner_id is not None:
            return self.engine.media_for_owner(owner_id)
        return self.engine.catalog

    async def upload(
        self,
        path: Union[str, Path],
        mime_type: Optional[str] = None,
        owner: Optional[Profile] = None,
    ) -> MediaEntry:
        """
        Upload a file as the given (or currently selected) profile.

        Raises:
            ProfileNotFoundError: If nobody is logged in and no owner is given.
        """
        owner = owner or self.session.current
        if owner is None:
            raise ProfileNotFoundError("No profile selected; log in first")
        return await self.upload_service.upload(path, owner, mime_type=mime_type)

    async def upload_avatar(self, path: Union[str, Path]) -> str:
        """Upload an avatar image and return its preview URL."""
        return await self.upload_service.upload_avatar(path)

    def delete_media(self, entry_id: str) -> PendingWrite:
        """Remove an entry from the catalog."""
        return self.engine.remove_media_entry(entry_id)

    # =========================================================================
    # Status
    # =========================================================================

    def status(self) -> Dict[str, Any]:
        """Summary of the active backend and loaded state."""
        resolution = self.engine.resolution
        current = self.session.current
        return {
            "brand": self.engine.config.brand_name,
            "state": self.engine.state.value,
            "mode": self.engine.mode_label,
            "backend": self.engine.config.database.provider.value,
            "generation": self.engine.generation,
            "warning": resolution.warning if resolution else None,
            "diagnostic": resolution.diagnostic if resolution else None,
            "profiles": len(self.engine.roster),
            "media": len(self.engine.catalog),
            "storage_configured": self.engine.config.storage.is_configured,
            "current_profile": current.id if current else None,
        }
