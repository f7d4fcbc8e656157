"""
Tests for FamilyVault data models.

Tests wire aliases, validation and built-in defaults.
"""

import pytest
from pydantic import ValidationError

from familyvault.store.models import (
    ROOT_ADMIN_ID,
    BackendMode,
    MediaEntry,
    MediaKind,
    Profile,
    Role,
    StorageConfig,
    VaultConfig,
    default_roster,
    dump_catalog,
    dump_roster,
    load_catalog,
    load_roster,
    new_profile,
    validate_pin,
)
from tests.helpers.fixtures import build_media, build_profile


class TestProfile:
    """Tests for Profile model."""

    def test_wire_names(self):
        """Profiles serialize with the wire name for display_name."""
        record = build_profile().to_record()
        assert record["name"] == "Anna"
        assert "display_name" not in record
        assert record["role"] == "user"

    def test_accepts_wire_and_python_names(self):
        """Both field names and aliases are accepted on input."""
        a = Profile.model_validate({"id": "x", "name": "X", "pin": "1234"})
        b = Profile(id="x", display_name="X", pin="1234")
        assert a == b

    @pytest.mark.parametrize("pin", ["123", "12345", "abcd", "12 4", ""])
    def test_invalid_pin_rejected_by_form(self, pin):
        """Profiles built through the admin form need a four-digit PIN."""
        with pytest.raises(ValueError):
            new_profile("X", pin)

    def test_stored_pin_kept_as_is(self):
        """Rows read back from a backend keep whatever PIN they hold."""
        profile = Profile.model_validate({"id": "ben", "name": "Ben", "pin": "12345"})
        assert profile.pin == "12345"

    def test_null_columns_use_defaults(self):
        """NULL avatar, color and role columns fall back to the defaults."""
        profile = Profile.model_validate({
            "id": "anna", "name": "Anna", "avatar": None, "color": None, "role": None, "pin": "1234",
        })
        assert profile.avatar == ""
        assert profile.color == "bg-slate-500"
        assert profile.role == Role.STANDARD

    def test_missing_pin_rejected(self):
        with pytest.raises(ValidationError):
            Profile.model_validate({"id": "x", "name": "X"})

    def test_validate_pin(self):
        """validate_pin returns a valid PIN unchanged."""
        assert validate_pin("0007") == "0007"
        with pytest.raises(ValueError):
            validate_pin("7")

    def test_empty_id_rejected(self):
        """Profiles need a usable id."""
        with pytest.raises(ValidationError):
            Profile(id="  ", display_name="X", pin="1234")

    def test_admin_flags(self):
        """is_admin follows role, is_root_admin follows id."""
        root = default_roster()[0]
        assert root.is_admin and root.is_root_admin
        anna = build_profile()
        assert not anna.is_admin and not anna.is_root_admin


class TestDefaults:
    """Tests for built-in roster and configuration."""

    def test_default_roster(self):
        """Default roster is exactly the root administrator."""
        roster = default_roster()
        assert len(roster) == 1
        root = roster[0]
        assert root.id == ROOT_ADMIN_ID == "root-admin-raju"
        assert root.display_name == "Raju"
        assert root.role == Role.ADMIN
        assert root.pin == "1122"
        assert root.color == "bg-blue-600"
        assert root.avatar == "https://api.dicebear.com/7.x/avataaars/svg?seed=Raju"

    def test_default_roster_is_fresh(self):
        """Each call returns independent objects."""
        assert default_roster()[0] is not default_roster()[0]

    def test_default_config(self):
        """Default configuration is local mode with no credentials."""
        config = VaultConfig.create_default()
        assert config.brand_name == "FamilyVault"
        assert config.database.provider == BackendMode.LOCAL
        assert not config.database.is_remote
        assert not config.storage.is_configured
        assert config.is_active is True

    def test_config_wire_names(self):
        """Configuration serializes with camelCase wire names."""
        record = VaultConfig.create_default().to_record()
        assert record["brandName"] == "FamilyVault"
        assert record["database"]["provider"] == "local"
        assert "supabaseUrl" in record["database"]
        assert "folderId" in record["storage"]
        assert record["isActive"] is True

    def test_storage_configured(self):
        """Storage needs both folder id and api key."""
        assert not StorageConfig(folder_id="f").is_configured
        assert not StorageConfig(api_key="k").is_configured
        assert StorageConfig(folder_id="f", api_key="k").is_configured


class TestNewProfile:
    """Tests for the admin-form profile builder."""

    def test_fresh_id_and_defaults(self):
        """New profiles get a UUID, the standard role and a generated avatar."""
        profile = new_profile("Maya", "2468")
        assert len(profile.id) == 36
        assert profile.role == Role.STANDARD
        assert profile.avatar.endswith("seed=Maya")
        assert profile.color == "bg-slate-500"

    def test_keeps_given_id(self):
        """Editing keeps the existing id and avatar."""
        profile = new_profile("Maya", "2468", avatar="https://x/a.png", profile_id="user-maya")
        assert profile.id == "user-maya"
        assert profile.avatar == "https://x/a.png"

    def test_root_id_is_admin(self):
        """Only the root id is built with the admin role."""
        assert new_profile("Raju", "1122", profile_id=ROOT_ADMIN_ID).role == Role.ADMIN

    def test_empty_name_rejected(self):
        """A blank name is refused."""
        with pytest.raises(ValueError):
            new_profile("   ", "1234")


class TestMediaEntry:
    """Tests for MediaEntry model."""

    def test_wire_names(self):
        """Catalog entries use the camelCase wire names."""
        record = build_media().to_record()
        assert record["type"] == "image"
        assert record["fileName"] == "beach.jpg"
        assert record["userId"] == "user-anna"
        assert record["userName"] == "Anna"
        assert record["aiDescription"] == "Kids playing on the beach"

    def test_caption_falls_back_to_file_name(self):
        """Without a description the caption is the file name."""
        entry = build_media().model_copy(update={"ai_description": None})
        assert entry.caption == "beach.jpg"
        entry = build_media().model_copy(update={"ai_description": ""})
        assert entry.caption == "beach.jpg"

    def test_optional_fields(self):
        """Rows without description, tags or size still parse."""
        entry = MediaEntry.model_validate({
            "id": "f1",
            "url": "f1",
            "type": "video",
            "fileName": "clip.mp4",
            "userId": "u",
            "userName": "U",
            "timestamp": 1,
        })
        assert entry.kind == MediaKind.VIDEO
        assert entry.is_video
        assert entry.tags is None
        assert entry.size == 0


class TestCollections:
    """Tests for roster/catalog serialization."""

    def test_roster_round_trip(self):
        """A dumped roster loads back equal."""
        roster = default_roster() + [build_profile()]
        assert load_roster(dump_roster(roster)) == roster

    def test_catalog_round_trip_preserves_order(self):
        """A dumped catalog keeps its order."""
        catalog = [build_media("b", timestamp=2), build_media("a", timestamp=1)]
        assert [e.id for e in load_catalog(dump_catalog(catalog))] == ["b", "a"]

    def test_dump_uses_wire_names(self):
        """Local slots hold the same shape as remote rows."""
        assert b'"fileName"' in dump_catalog([build_media()])
        assert b'"name"' in dump_roster([build_profile()])

    @pytest.mark.parametrize("data", [b"not json", b"{}", b'[{"id": "x"}]'])
    def test_bad_input_raises(self, data):
        """Unparseable collections raise ValidationError."""
        with pytest.raises(ValidationError):
            load_roster(data)
        with pytest.raises(ValidationError):
            load_catalog(data)
