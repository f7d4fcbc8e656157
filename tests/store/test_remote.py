"""
Tests for RemoteCatalogClient.

Uses httpx.MockTransport with an in-memory PostgREST emulation.
"""

import asyncio

import httpx
import pytest

from familyvault.config.settings import RemoteSettings, VaultSettings
from familyvault.store.models import BackendMode, DatabaseConfig
from familyvault.store.remote import (
    Collection,
    ListErrorKind,
    RemoteCatalogClient,
    RemoteWriteError,
    is_missing_collection_error,
    is_valid_endpoint,
    provisioning_sql,
)
from tests.helpers.fixtures import REMOTE_KEY, REMOTE_URL, FakePostgrest, build_media, build_profile


def make_client(server: FakePostgrest, settings: RemoteSettings = None) -> RemoteCatalogClient:
    return RemoteCatalogClient(
        REMOTE_URL,
        REMOTE_KEY,
        settings=settings or RemoteSettings(users_table="users", media_table="media_items"),
        transport=server.transport(),
    )


def run(coro):
    return asyncio.run(coro)


class TestEndpointValidation:
    """Tests for endpoint/key checks."""

    @pytest.mark.parametrize("url", [
        "https://abc.supabase.co",
        "http://localhost:54321",
    ])
    def test_valid(self, url):
        assert is_valid_endpoint(url)

    @pytest.mark.parametrize("url", ["", "   ", None, "abc.supabase.co", "ftp://host", "https://"])
    def test_invalid(self, url):
        assert not is_valid_endpoint(url)

    def test_constructor_rejects_bad_url(self):
        """Direct construction with an unusable URL raises ValueError."""
        with pytest.raises(ValueError):
            RemoteCatalogClient("not a url", REMOTE_KEY)

    def test_constructor_rejects_empty_key(self):
        with pytest.raises(ValueError):
            RemoteCatalogClient(REMOTE_URL, "")


class TestFromConfig:
    """Tests for building a client from installation settings."""

    def test_local_mode_returns_none(self):
        """Local mode never builds a remote handle."""
        assert RemoteCatalogClient.from_config(DatabaseConfig()) is None

    @pytest.mark.parametrize("url,key", [
        ("", REMOTE_KEY),
        ("garbage", REMOTE_KEY),
        (REMOTE_URL, ""),
        (REMOTE_URL, None),
    ])
    def test_incomplete_settings_return_none(self, url, key):
        """Incomplete remote settings mean remote unavailable, not an error."""
        database = DatabaseConfig(provider=BackendMode.REMOTE, supabase_url=url, supabase_anon_key=key)
        assert RemoteCatalogClient.from_config(database, settings=VaultSettings()) is None

    def test_valid_settings_build_client(self):
        """Valid settings build a client using configured table names."""
        database = DatabaseConfig(
            provider=BackendMode.REMOTE,
            supabase_url=REMOTE_URL,
            supabase_anon_key=REMOTE_KEY,
        )
        settings = VaultSettings()
        settings.remote.users_table = "family_users"
        client = RemoteCatalogClient.from_config(
            database, settings=settings, transport=FakePostgrest().transport()
        )
        assert client is not None
        assert client.table_name(Collection.ROSTER) == "family_users"
        run(client.aclose())


class TestMissingCollectionClassifier:
    """Tests for is_missing_collection_error."""

    @pytest.mark.parametrize("payload", [
        {"code": "PGRST205", "message": "x"},
        {"code": "PGRST116", "message": "x"},
        {"code": "42P01", "message": "x"},
        {"message": "Could not find the table 'public.users' in the schema cache"},
        {"message": 'relation "users" does not exist'},
    ])
    def test_missing(self, payload):
        assert is_missing_collection_error(payload)

    @pytest.mark.parametrize("payload", [
        {"code": "42501", "message": "permission denied for table users"},
        {"message": "JWT expired"},
        {"code": "42703", "message": "column users.pin does not exist"},
        {"code": "22023", "message": 'role "webuser" does not exist'},
        {"code": "42883", "message": "function public.touch(text) does not exist"},
        {"code": "PGRST204", "message": "Could not find the 'pin' column of 'users' in the schema cache"},
        None,
        "text",
    ])
    def test_not_missing(self, payload):
        """Other "does not exist" errors stay recoverable."""
        assert not is_missing_collection_error(payload)


class TestList:
    """Tests for listing collections."""

    def test_list_roster(self):
        """Rows come back as dicts with wire names."""
        server = FakePostgrest({"users": [build_profile().to_record()], "media_items": []})
        client = make_client(server)

        result = run(client.list(Collection.ROSTER))

        assert result.ok
        assert result.items[0]["name"] == "Anna"
        request = server.requests[0]
        assert request.url.path == "/rest/v1/users"
        assert request.headers["apikey"] == REMOTE_KEY
        assert request.headers["authorization"] == f"Bearer {REMOTE_KEY}"

    def test_list_catalog_newest_first(self):
        """Catalog listing asks the server for timestamp order."""
        rows = [build_media("old", timestamp=1).to_record(), build_media("new", timestamp=2).to_record()]
        server = FakePostgrest({"users": [], "media_items": rows})
        client = make_client(server)

        result = run(client.list(Collection.CATALOG))

        assert [r["id"] for r in result.items] == ["new", "old"]
        assert server.requests[0].url.params["order"] == "timestamp.desc"

    def test_missing_table(self):
        """An unknown table is classified as a missing collection."""
        client = make_client(FakePostgrest({}))
        result = run(client.list(Collection.ROSTER))
        assert result.missing_collection
        assert "schema cache" in result.message

    def test_server_error_is_recoverable(self):
        """Other backend errors are recoverable."""
        server = FakePostgrest({"users": []})
        server.fail_status = 500
        result = run(make_client(server).list(Collection.ROSTER))
        assert result.error == ListErrorKind.RECOVERABLE

    def test_network_error_is_recoverable(self):
        """Transport failures never raise."""

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = RemoteCatalogClient(REMOTE_URL, REMOTE_KEY, transport=httpx.MockTransport(handler))
        result = run(client.list(Collection.ROSTER))
        assert result.error == ListErrorKind.RECOVERABLE
        assert "connection refused" in result.message

    def test_unexpected_payload_is_recoverable(self):
        """A non-list body is reported, not raised."""
        client = RemoteCatalogClient(
            REMOTE_URL,
            REMOTE_KEY,
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"rows": []})),
        )
        result = run(client.list(Collection.ROSTER))
        assert result.error == ListErrorKind.RECOVERABLE


class TestWrites:
    """Tests for upsert and delete."""

    def test_upsert_merges_duplicates(self):
        """Upsert posts the record with merge-duplicates preference."""
        server = FakePostgrest({"users": []})
        client = make_client(server)

        run(client.upsert(Collection.ROSTER, build_profile().to_record()))

        assert "user-anna" in server.tables["users"]
        request = server.requests[0]
        assert request.method == "POST"
        assert "resolution=merge-duplicates" in request.headers["prefer"]

    def test_upsert_failure_raises(self):
        """Upsert failures raise RemoteWriteError with code and status."""
        server = FakePostgrest({})
        with pytest.raises(RemoteWriteError) as exc_info:
            run(make_client(server).upsert(Collection.CATALOG, build_media().to_record()))
        assert exc_info.value.code == "PGRST205"
        assert exc_info.value.status_code == 404

    def test_delete_by_id(self):
        """Delete filters by id equality."""
        server = FakePostgrest({"media_items": [build_media("f1").to_record(), build_media("f2").to_record()]})
        client = make_client(server)

        assert run(client.delete(Collection.CATALOG, "f1")) is True

        assert list(server.tables["media_items"]) == ["f2"]
        assert server.requests[0].url.params["id"] == "eq.f1"

    def test_delete_failure_returns_false(self):
        """Delete failures are reported as False, never raised."""
        server = FakePostgrest({"media_items": []})
        server.fail_status = 500
        assert run(make_client(server).delete(Collection.CATALOG, "f1")) is False


class TestProvisioningSql:
    """Tests for the provisioning script."""

    def test_creates_both_tables(self):
        sql = provisioning_sql()
        assert "CREATE TABLE users" in sql
        assert "CREATE TABLE media_items" in sql
        assert '"fileName" TEXT' in sql
        assert "tags TEXT[]" in sql

    def test_uses_configured_names(self):
        sql = provisioning_sql(RemoteSettings(users_table="fam_users", media_table="fam_media"))
        assert "CREATE TABLE fam_users" in sql
        assert "CREATE TABLE fam_media" in sql
