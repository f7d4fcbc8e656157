"""
Test fixtures and helpers for FamilyVault tests.

Provides:
- Deterministic test data builders (profiles, media entries, configs)
- FakeRemote: in-memory stand-in for the remote catalog client
- FakePostgrest: httpx.MockTransport handler emulating PostgREST tables
- VaultContext: isolated local store root for a test
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Set

import httpx

from familyvault.config.settings import VaultSettings, reset_settings
from familyvault.store.models import (
    BackendMode,
    DatabaseConfig,
    MediaEntry,
    MediaKind,
    Profile,
    Role,
    VaultConfig,
)
from familyvault.store.remote import (
    Collection,
    ListErrorKind,
    ListResult,
    RemoteWriteError,
)


REMOTE_URL = "https://family.supabase.co"
REMOTE_KEY = "anon-test-key"


# =============================================================================
# Builders
# =============================================================================

def build_profile(
    profile_id: str = "user-anna",
    name: str = "Anna",
    pin: str = "4321",
    role: Role = Role.STANDARD,
) -> Profile:
    """Build a test profile."""
    return Profile(
        id=profile_id,
        display_name=name,
        avatar=f"https://example.com/{profile_id}.png",
        color="bg-slate-500",
        role=role,
        pin=pin,
    )


def build_media(
    entry_id: str = "drive-file-1",
    owner: Optional[Profile] = None,
    timestamp: int = 1_700_000_000_000,
    kind: MediaKind = MediaKind.IMAGE,
    file_name: str = "beach.jpg",
) -> MediaEntry:
    """Build a test catalog entry."""
    owner = owner or build_profile()
    return MediaEntry(
        id=entry_id,
        url=entry_id,
        kind=kind,
        file_name=file_name,
        owner_id=owner.id,
        owner_name=owner.display_name,
        timestamp=timestamp,
        size=1024,
        ai_description="Kids playing on the beach",
        tags=["Beach", "Family", "Summer"],
    )


def remote_config(url: str = REMOTE_URL, key: str = REMOTE_KEY) -> VaultConfig:
    """Configuration selecting the remote backend."""
    return VaultConfig(
        database=DatabaseConfig(
            provider=BackendMode.REMOTE,
            supabase_url=url,
            supabase_anon_key=key,
        )
    )


def local_config() -> VaultConfig:
    """Configuration selecting the local backend."""
    return VaultConfig.create_default()


# =============================================================================
# Fake remote handle
# =============================================================================

class FakeRemote:
    """
    In-memory remote catalog with the same async surface as
    RemoteCatalogClient.

    Failure knobs:
        missing:        collections that report MISSING_COLLECTION
        list_failures:  collections whose list returns RECOVERABLE
        fail_writes:    upserts raise RemoteWriteError, deletes return False
        gate:           when set, writes wait on this event before applying
    """

    def __init__(
        self,
        roster: Optional[List[Profile]] = None,
        catalog: Optional[List[MediaEntry]] = None,
    ):
        self.rows: Dict[Collection, List[Dict[str, Any]]] = {
            Collection.ROSTER: [p.to_record() for p in roster or []],
            Collection.CATALOG: [e.to_record() for e in catalog or []],
        }
        self.missing: Set[Collection] = set()
        self.list_failures: Dict[Collection, str] = {}
        self.fail_writes = False
        self.gate: Optional[asyncio.Event] = None
        self.calls: List[tuple] = []
        self.closed = False

    def ids(self, collection: Collection) -> List[str]:
        return [row["id"] for row in self.rows[collection]]

    async def list(self, collection: Collection) -> ListResult:
        self.calls.append(("list", collection))
        if collection in self.missing:
            return ListResult(
                error=ListErrorKind.MISSING_COLLECTION,
                message=f"Could not find the table 'public.{collection.value}' in the schema cache",
            )
        if collection in self.list_failures:
            return ListResult(error=ListErrorKind.RECOVERABLE, message=self.list_failures[collection])
        rows = [dict(r) for r in self.rows[collection]]
        if collection == Collection.CATALOG:
            rows.sort(key=lambda r: r.get("timestamp", 0), reverse=True)
        return ListResult(items=rows)

    async def upsert(self, collection: Collection, record: Dict[str, Any]) -> None:
        self.calls.append(("upsert", collection, record["id"]))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_writes:
            raise RemoteWriteError("permission denied for table", code="42501", status_code=403)
        rows = [r for r in self.rows[collection] if r["id"] != record["id"]]
        rows.append(dict(record))
        self.rows[collection] = rows

    async def delete(self, collection: Collection, record_id: str) -> bool:
        self.calls.append(("delete", collection, record_id))
        if self.gate is not None:
            await self.gate.wait()
        if self.fail_writes:
            return False
        self.rows[collection] = [r for r in self.rows[collection] if r["id"] != record_id]
        return True

    async def aclose(self) -> None:
        self.closed = True

    def writes(self) -> List[tuple]:
        return [c for c in self.calls if c[0] in ("upsert", "delete")]


class RemoteFactory:
    """Remote factory that hands out a prepared FakeRemote and records configs."""

    def __init__(self, remote: Optional[FakeRemote] = None):
        self.remote = remote
        self.configs: List[DatabaseConfig] = []

    def __call__(self, database: DatabaseConfig) -> Optional[FakeRemote]:
        self.configs.append(database)
        if not database.is_remote:
            return None
        return self.remote


# =============================================================================
# PostgREST emulation over httpx.MockTransport
# =============================================================================

class FakePostgrest:
    """
    Minimal PostgREST emulation for RemoteCatalogClient tests.

    Tables are dicts keyed by id. Unknown tables answer like PostgREST does
    for a table that was never created.
    """

    def __init__(self, tables: Optional[Dict[str, List[Dict[str, Any]]]] = None):
        self.tables: Dict[str, Dict[str, Dict[str, Any]]] = {
            name: {row["id"]: row for row in rows}
            for name, rows in (tables or {}).items()
        }
        self.requests: List[httpx.Request] = []
        self.fail_status: Optional[int] = None

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if self.fail_status is not None:
            return httpx.Response(self.fail_status, json={"message": "Internal server error"})

        prefix = "/rest/v1/"
        path = request.url.path
        if not path.startswith(prefix):
            return httpx.Response(404, json={"message": "Not found"})
        table = path[len(prefix):]

        if table not in self.tables:
            return httpx.Response(
                404,
                json={
                    "code": "PGRST205",
                    "message": f"Could not find the table 'public.{table}' in the schema cache",
                },
            )

        rows = self.tables[table]
        if request.method == "GET":
            result = list(rows.values())
            if request.url.params.get("order") == "timestamp.desc":
                result.sort(key=lambda r: r.get("timestamp", 0), reverse=True)
            return httpx.Response(200, json=result)

        if request.method == "POST":
            record = json.loads(request.content)
            rows[record["id"]] = record
            return httpx.Response(201)

        if request.method == "DELETE":
            for value in request.url.params.get_list("id"):
                if value.startswith("eq."):
                    rows.pop(value[3:], None)
            return httpx.Response(204)

        return httpx.Response(405, json={"message": "Method not allowed"})


# =============================================================================
# Isolated store root
# =============================================================================

class VaultContext:
    """
    Context manager for an isolated FamilyVault root.

    Usage:
        with VaultContext() as ctx:
            vault = Vault(ctx.root, settings=ctx.settings)
    """

    def __init__(self):
        self.tmpdir: Optional[tempfile.TemporaryDirectory] = None
        self.root: Optional[Path] = None
        self.settings: Optional[VaultSettings] = None
        self._previous_root: Optional[str] = None

    def __enter__(self) -> "VaultContext":
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)

        self._previous_root = os.environ.get("FAMILYVAULT_ROOT")
        os.environ["FAMILYVAULT_ROOT"] = str(self.root)
        reset_settings()
        self.settings = VaultSettings(root=self.root)
        self.settings.caption.enabled = False
        self.settings.caption.api_key = None
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._previous_root is None:
            os.environ.pop("FAMILYVAULT_ROOT", None)
        else:
            os.environ["FAMILYVAULT_ROOT"] = self._previous_root
        reset_settings()

        if self.tmpdir:
            self.tmpdir.cleanup()
        return False
