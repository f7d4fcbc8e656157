"""
FamilyVault Store - Data Models

Pydantic v2 models for the roster, the media catalog and the installation
configuration. Field aliases are the wire names: local JSON slots and remote
rows share the same shape, so a record written by one backend can be read
back by the other.

Slots / tables:
- roster   (users)       -> List[Profile]
- catalog  (media_items) -> List[MediaEntry], newest first
- config                 -> VaultConfig
"""

from __future__ import annotations

import re
import uuid
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationInfo, field_validator


# =============================================================================
# Constants
# =============================================================================

ROOT_ADMIN_ID = "root-admin-raju"

DEFAULT_BRAND_NAME = "FamilyVault"
DEFAULT_PROFILE_COLOR = "bg-slate-500"
AVATAR_URL_TEMPLATE = "https://api.dicebear.com/7.x/avataaars/svg?seed={seed}"

_PIN_RE = re.compile(r"^[0-9]{4}$")


# =============================================================================
# Enums
# =============================================================================

class Role(str, Enum):
    """Profile roles."""
    ADMIN = "admin"
    STANDARD = "user"


class MediaKind(str, Enum):
    """Kinds of media a catalog entry can point to."""
    IMAGE = "image"
    VIDEO = "video"


class BackendMode(str, Enum):
    """Where roster and catalog are persisted."""
    LOCAL = "local"
    REMOTE = "supabase"


# =============================================================================
# Validators
# =============================================================================

def validate_pin(pin: str) -> str:
    """Validate a profile PIN (exactly four digits)."""
    if not isinstance(pin, str) or not _PIN_RE.match(pin):
        raise ValueError("PIN must be exactly 4 digits")
    return pin


def validate_record_id(value: str) -> str:
    """Validate a record id is usable as a key."""
    if not value or not value.strip():
        raise ValueError("Id cannot be empty")
    return value


# =============================================================================
# Roster Models
# =============================================================================

class Profile(BaseModel):
    """
    A single member of the roster.

    Stored rows are accepted as they are: nullable columns fall back to
    their defaults and the PIN format is only enforced when a profile is
    built through new_profile().
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str
    display_name: str = Field(alias="name")
    avatar: str = ""
    color: str = DEFAULT_PROFILE_COLOR
    role: Role = Role.STANDARD
    pin: str

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return validate_record_id(v)

    @field_validator("avatar", "color", "role", mode="before")
    @classmethod
    def null_to_default(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None:
            return cls.model_fields[info.field_name].default
        return v

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_root_admin(self) -> bool:
        return self.id == ROOT_ADMIN_ID

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the wire shape."""
        return self.model_dump(by_alias=True, mode="json")


def default_avatar(seed: str) -> str:
    """Generated avatar URL for a display name."""
    return AVATAR_URL_TEMPLATE.format(seed=seed)


def default_roster() -> List[Profile]:
    """Built-in roster: exactly the root administrator."""
    return [
        Profile(
            id=ROOT_ADMIN_ID,
            display_name="Raju",
            avatar=default_avatar("Raju"),
            color="bg-blue-600",
            role=Role.ADMIN,
            pin="1122",
        )
    ]


def new_profile(
    display_name: str,
    pin: str,
    avatar: Optional[str] = None,
    profile_id: Optional[str] = None,
) -> Profile:
    """
    Build a profile the way the admin form submits one.

    A new profile gets a fresh id; editing keeps the given id. Only the root
    administrator is ever created with the admin role.
    """
    if not display_name or not display_name.strip():
        raise ValueError("Name cannot be empty")
    profile_id = profile_id or str(uuid.uuid4())
    return Profile(
        id=profile_id,
        display_name=display_name,
        pin=validate_pin(pin),
        role=Role.ADMIN if profile_id == ROOT_ADMIN_ID else Role.STANDARD,
        avatar=avatar or default_avatar(display_name),
        color=DEFAULT_PROFILE_COLOR,
    )


# =============================================================================
# Catalog Models
# =============================================================================

class MediaEntry(BaseModel):
    """
    A photo or video in the shared catalog.

    `id` is the blob store's identifier for the uploaded file, so an entry
    only exists once its upload has completed. `owner_name` is a snapshot
    taken at upload time and is not updated when the profile is renamed.
    """
    model_config = ConfigDict(populate_by_name=True)

    id: str
    url: str
    kind: MediaKind = Field(alias="type")
    file_name: str = Field(alias="fileName")
    owner_id: str = Field(alias="userId")
    owner_name: str = Field(alias="userName")
    timestamp: int
    size: int = 0
    ai_description: Optional[str] = Field(default=None, alias="aiDescription")
    tags: Optional[List[str]] = None

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        return validate_record_id(v)

    @property
    def caption(self) -> str:
        """Caption shown in the gallery."""
        return self.ai_description or self.file_name

    @property
    def is_video(self) -> bool:
        return self.kind == MediaKind.VIDEO

    def to_record(self) -> Dict[str, Any]:
        """Serialize to the wire shape."""
        return self.model_dump(by_alias=True, mode="json")


# =============================================================================
# Configuration Models
# =============================================================================

class StorageConfig(BaseModel):
    """Blob store settings (where uploaded files go)."""
    model_config = ConfigDict(populate_by_name=True)

    provider: str = "google"
    email: Optional[str] = ""
    api_key: Optional[str] = Field(default="", alias="apiKey")
    folder_id: Optional[str] = Field(default="", alias="folderId")

    @property
    def is_configured(self) -> bool:
        return bool(self.folder_id) and bool(self.api_key)


class DatabaseConfig(BaseModel):
    """Catalog backend settings (where roster and catalog live)."""
    model_config = ConfigDict(populate_by_name=True)

    provider: BackendMode = BackendMode.LOCAL
    supabase_url: Optional[str] = Field(default="", alias="supabaseUrl")
    supabase_anon_key: Optional[str] = Field(default="", alias="supabaseAnonKey")

    @property
    def is_remote(self) -> bool:
        return self.provider == BackendMode.REMOTE


class VaultConfig(BaseModel):
    """Installation configuration (one per installation)."""
    model_config = ConfigDict(populate_by_name=True)

    brand_name: str = Field(default=DEFAULT_BRAND_NAME, alias="brandName")
    storage: StorageConfig = Field(default_factory=StorageConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    is_active: bool = Field(default=True, alias="isActive")

    @classmethod
    def create_default(cls) -> "VaultConfig":
        """Configuration used on first run."""
        return cls()

    def to_record(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


# =============================================================================
# Collection (de)serialization
# =============================================================================

RosterAdapter = TypeAdapter(List[Profile])
CatalogAdapter = TypeAdapter(List[MediaEntry])


def dump_roster(roster: List[Profile]) -> bytes:
    """Serialize a roster for the local store."""
    return RosterAdapter.dump_json(roster, by_alias=True)


def load_roster(data: bytes) -> List[Profile]:
    """Parse a serialized roster. Raises pydantic.ValidationError on bad input."""
    return RosterAdapter.validate_json(data)


def dump_catalog(catalog: List[MediaEntry]) -> bytes:
    """Serialize a catalog for the local store."""
    return CatalogAdapter.dump_json(catalog, by_alias=True)


def load_catalog(data: bytes) -> List[MediaEntry]:
    """Parse a serialized catalog. Raises pydantic.ValidationError on bad input."""
    return CatalogAdapter.validate_json(data)
