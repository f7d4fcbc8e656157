"""
FamilyVault Store - Remote Catalog Client

Thin async client for the structured-data backend (Supabase / PostgREST).
Exposes list/upsert/delete over the two collections the vault uses:

- roster   -> users table
- catalog  -> media_items table (listed newest first)

Reads never raise; they return a ListResult that distinguishes a missing
table (the backend was never provisioned) from any other failure. Upserts
raise RemoteWriteError so callers decide how best-effort they want to be.
Deletes only log.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx

from ..config.settings import RemoteSettings, VaultSettings, get_settings
from .models import DatabaseConfig

logger = logging.getLogger(__name__)


# PostgREST / Postgres codes seen when a table does not exist
MISSING_COLLECTION_CODES = {"PGRST205", "PGRST116", "42P01"}
MISSING_COLLECTION_PATTERNS = (
    re.compile(r"could not find the table \S+ in the schema cache"),
    re.compile(r"relation \S+ does not exist"),
)


class Collection(str, Enum):
    """Logical collections stored remotely."""
    ROSTER = "roster"
    CATALOG = "catalog"


class ListErrorKind(str, Enum):
    """Failure classes for a list call."""
    RECOVERABLE = "recoverable"
    MISSING_COLLECTION = "missing_collection"


class RemoteWriteError(Exception):
    """Error when a remote upsert fails."""

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.code = code
        self.status_code = status_code


@dataclass
class ListResult:
    """Result of listing a remote collection."""

    items: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[ListErrorKind] = None
    message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def missing_collection(self) -> bool:
        return self.error == ListErrorKind.MISSING_COLLECTION


def is_valid_endpoint(url: Optional[str]) -> bool:
    """Check the endpoint is an absolute http(s) URL with a host."""
    if not url or not url.strip():
        return False
    parsed = urlparse(url.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def is_missing_collection_error(payload: Any) -> bool:
    """
    Classify a backend error payload as "table does not exist".

    PostgREST reports an unknown table as a schema-cache miss (PGRST205,
    older releases PGRST116) and Postgres itself as 42P01. Other "does not
    exist" errors, such as a missing column or role, are not matched.
    """
    if not isinstance(payload, dict):
        return False
    code = str(payload.get("code") or "")
    if code in MISSING_COLLECTION_CODES:
        return True
    message = str(payload.get("message") or "").lower()
    return any(pattern.search(message) for pattern in MISSING_COLLECTION_PATTERNS)


def _error_payload(response: httpx.Response) -> Dict[str, Any]:
    try:
        payload = response.json()
    except ValueError:
        return {"message": response.text or f"HTTP {response.status_code}"}
    if isinstance(payload, dict):
        return payload
    return {"message": str(payload)}


class RemoteCatalogClient:
    """
    Async PostgREST client for the roster and catalog tables.

    One instance is one connection handle; the engine creates a new handle
    on every resolution and closes retired ones.
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        settings: Optional[RemoteSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize remote catalog client.

        Args:
            url: Project URL, e.g. https://xyz.supabase.co
            anon_key: Public (anon) API key
            settings: Table names and timeouts
            transport: Optional httpx transport (tests use httpx.MockTransport)

        Raises:
            ValueError: If the URL or key is unusable.
        """
        if not is_valid_endpoint(url):
            raise ValueError(f"Invalid remote endpoint: {url!r}")
        if not anon_key:
            raise ValueError("Remote API key is empty")

        self.settings = settings or RemoteSettings()
        self.url = url.strip().rstrip("/")
        self._tables = {
            Collection.ROSTER: self.settings.users_table,
            Collection.CATALOG: self.settings.media_table,
        }
        self._client = httpx.AsyncClient(
            base_url=f"{self.url}{self.settings.rest_path}",
            headers={
                "apikey": anon_key,
                "Authorization": f"Bearer {anon_key}",
                "Content-Type": "application/json",
            },
            timeout=self.settings.timeout,
            transport=transport,
        )

    @classmethod
    def from_config(
        cls,
        database: DatabaseConfig,
        settings: Optional[VaultSettings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> Optional["RemoteCatalogClient"]:
        """
        Build a client from the installation's database settings.

        Returns None when remote mode is not selected or the settings are
        unusable; that is "remote unavailable", never an error.
        """
        if not database.is_remote:
            return None
        if not is_valid_endpoint(database.supabase_url) or not database.supabase_anon_key:
            logger.info("[RemoteCatalog] Remote mode selected but endpoint/key incomplete")
            return None
        settings = settings or get_settings()
        try:
            return cls(
                database.supabase_url,
                database.supabase_anon_key,
                settings=settings.remote,
                transport=transport,
            )
        except Exception as e:
            logger.error(f"[RemoteCatalog] Initialization error: {e}")
            return None

    def table_name(self, collection: Collection) -> str:
        """Table backing a logical collection."""
        return self._tables[Collection(collection)]

    # =========================================================================
    # Operations
    # =========================================================================

    async def list(self, collection: Collection) -> ListResult:
        """List every record in a collection."""
        collection = Collection(collection)
        params = {"select": "*"}
        if collection == Collection.CATALOG:
            params["order"] = "timestamp.desc"

        try:
            response = await self._client.get(f"/{self.table_name(collection)}", params=params)
        except httpx.HTTPError as e:
            logger.error(f"[RemoteCatalog] Error fetching {collection.value}: {e}")
            return ListResult(error=ListErrorKind.RECOVERABLE, message=str(e))

        if response.is_error:
            payload = _error_payload(response)
            message = payload.get("message") or f"HTTP {response.status_code}"
            logger.error(f"[RemoteCatalog] Error fetching {collection.value}: {message}")
            kind = (
                ListErrorKind.MISSING_COLLECTION
                if is_missing_collection_error(payload)
                else ListErrorKind.RECOVERABLE
            )
            return ListResult(error=kind, message=message)

        try:
            rows = response.json()
        except ValueError as e:
            return ListResult(error=ListErrorKind.RECOVERABLE, message=f"Invalid JSON: {e}")
        if not isinstance(rows, list):
            return ListResult(error=ListErrorKind.RECOVERABLE, message="Unexpected payload shape")

        return ListResult(items=[r for r in rows if isinstance(r, dict)])

    async def upsert(self, collection: Collection, record: Dict[str, Any]) -> None:
        """
        Insert or replace a record by id.

        Raises:
            RemoteWriteError: On any transport or backend failure.
        """
        collection = Collection(collection)
        try:
            response = await self._client.post(
                f"/{self.table_name(collection)}",
                json=record,
                headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
            )
        except httpx.HTTPError as e:
            raise RemoteWriteError(f"Error saving {collection.value}: {e}") from e

        if response.is_error:
            payload = _error_payload(response)
            message = payload.get("message") or f"HTTP {response.status_code}"
            logger.error(f"[RemoteCatalog] Error saving {collection.value}: {message}")
            raise RemoteWriteError(
                message,
                code=payload.get("code"),
                status_code=response.status_code,
            )

    async def delete(self, collection: Collection, record_id: str) -> bool:
        """Delete a record by id. Failures are logged, never raised."""
        collection = Collection(collection)
        try:
            response = await self._client.delete(
                f"/{self.table_name(collection)}",
                params={"id": f"eq.{record_id}"},
            )
        except httpx.HTTPError as e:
            logger.error(f"[RemoteCatalog] Error deleting {collection.value} {record_id}: {e}")
            return False

        if response.is_error:
            message = _error_payload(response).get("message")
            logger.error(f"[RemoteCatalog] Error deleting {collection.value} {record_id}: {message}")
            return False
        return True

    async def aclose(self) -> None:
        """Release the HTTP connection pool."""
        await self._client.aclose()


def provisioning_sql(settings: Optional[RemoteSettings] = None) -> str:
    """SQL that creates both remote tables."""
    settings = settings or RemoteSettings()
    return f"""CREATE TABLE {settings.users_table} (
  id TEXT PRIMARY KEY,
  name TEXT,
  avatar TEXT,
  color TEXT,
  role TEXT,
  pin TEXT
);

CREATE TABLE {settings.media_table} (
  id TEXT PRIMARY KEY,
  url TEXT,
  type TEXT,
  "fileName" TEXT,
  "userId" TEXT,
  "userName" TEXT,
  timestamp BIGINT,
  size BIGINT,
  "aiDescription" TEXT,
  tags TEXT[]
);"""
