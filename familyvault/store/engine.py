"""
FamilyVault Store - Reconciliation Engine

Owns the in-memory roster, catalog and configuration, decides which backend
is active, and routes every mutation to it.

States:
    uninitialized -> resolving -> remote_active | local_active
    any resolved state -> resolving (on reconfiguration)

Resolution (startup and every configuration change):
1. Build a remote handle if the configuration selects remote mode and the
   endpoint/key are usable. Anything else means "remote unavailable".
2. With a handle, list roster and catalog concurrently.
   - roster table missing -> warning, drop the handle, go local
   - roster rows present  -> adopt verbatim
   - roster empty         -> adopt the default roster, seed it remotely
   - catalog rows         -> adopt; a failed catalog read leaves it empty
   Remote mode never writes the local store.
3. Without a handle, load roster and catalog from the local store, seeding
   defaults when absent and degrading to defaults when unparseable.
4. Nothing escapes: unexpected failures become a one-line diagnostic and the
   engine finishes in local mode.

Mutations apply to memory first and never roll back. In local mode the whole
collection is rewritten to the local store before the call returns; in
remote mode the write runs as a background task and its outcome is exposed
through the returned PendingWrite.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Generator, List, Optional, Set

from pydantic import ValidationError

from ..config.settings import VaultSettings, get_settings
from .layout import LocalStore, Slot
from .models import (
    ROOT_ADMIN_ID,
    MediaEntry,
    Profile,
    Role,
    VaultConfig,
    default_roster,
    dump_catalog,
    dump_roster,
    load_catalog,
    load_roster,
)
from .remote import Collection, RemoteCatalogClient, RemoteWriteError

logger = logging.getLogger(__name__)


MISSING_TABLES_WARNING = "Supabase Tables Missing! Falling back to Local Storage."
REMOTE_ACTIVE_LABEL = "Cloud Database Active"
LOCAL_ACTIVE_LABEL = "Local Storage Only"


class EngineState(str, Enum):
    """Backend state of the engine."""
    UNINITIALIZED = "uninitialized"
    RESOLVING = "resolving"
    REMOTE_ACTIVE = "remote_active"
    LOCAL_ACTIVE = "local_active"


class WriteStatus(str, Enum):
    """How a mutation's persistence ended."""
    WRITTEN = "written"
    DEGRADED = "degraded"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class WriteOutcome:
    """Persistence outcome of one mutation."""

    status: WriteStatus
    backend: Optional[str] = None  # "local", "remote" or None when nothing was attempted
    reason: Optional[str] = None
    generation: int = 0

    @property
    def ok(self) -> bool:
        return self.status == WriteStatus.WRITTEN

    @classmethod
    def written(cls, backend: str, generation: int) -> "WriteOutcome":
        return cls(WriteStatus.WRITTEN, backend=backend, generation=generation)

    @classmethod
    def degraded(cls, backend: str, reason: str, generation: int) -> "WriteOutcome":
        return cls(WriteStatus.DEGRADED, backend=backend, reason=reason, generation=generation)

    @classmethod
    def skipped(cls, reason: str, generation: int) -> "WriteOutcome":
        return cls(WriteStatus.SKIPPED, reason=reason, generation=generation)


class PendingWrite:
    """
    Handle for a mutation's persistence.

    Local writes are complete on creation; remote writes wrap the task that
    performs them. Await the handle to get the WriteOutcome.
    """

    def __init__(
        self,
        outcome: Optional[WriteOutcome] = None,
        task: Optional["asyncio.Task[WriteOutcome]"] = None,
    ):
        self._outcome = outcome
        self._task = task

    def done(self) -> bool:
        if self._task is not None:
            return self._task.done()
        return True

    def result(self) -> WriteOutcome:
        """Outcome of a finished write. Raises if still in flight."""
        if self._task is not None:
            return self._task.result()
        return self._outcome

    def __await__(self) -> Generator[Any, None, WriteOutcome]:
        if self._task is not None:
            return self._task.__await__()
        return self._completed().__await__()

    async def _completed(self) -> WriteOutcome:
        return self._outcome


@dataclass
class Resolution:
    """Result of resolving the active backend."""

    state: EngineState
    generation: int
    remote: Optional[Any] = None  # the remote handle in use, None in local mode
    warning: Optional[str] = None
    diagnostic: Optional[str] = None
    seeded: bool = False

    @property
    def is_remote(self) -> bool:
        return self.state == EngineState.REMOTE_ACTIVE


RemoteFactory = Callable[[Any], Optional[Any]]


class ReconciliationEngine:
    """
    Single owner of roster, catalog and configuration state.

    All mutations go through this class; exactly one instance exists per
    running client.
    """

    def __init__(
        self,
        local_store: LocalStore,
        settings: Optional[VaultSettings] = None,
        remote_factory: Optional[RemoteFactory] = None,
    ):
        """
        Initialize engine.

        Args:
            local_store: Local store adapter
            settings: Process settings (defaults to global settings)
            remote_factory: Builds a remote handle from DatabaseConfig, or
                returns None when remote is unavailable
        """
        self.local_store = local_store
        self.settings = settings or get_settings()
        self._remote_factory = remote_factory or self._default_remote_factory

        self._roster: List[Profile] = []
        self._catalog: List[MediaEntry] = []
        self._config: VaultConfig = VaultConfig.create_default()

        self._state = EngineState.UNINITIALIZED
        self._generation = 0
        self._resolution: Optional[Resolution] = None
        # in-flight remote write -> handle it was issued against
        self._inflight: Dict[asyncio.Task, Any] = {}
        self._closing: Set[asyncio.Task] = set()

    def _default_remote_factory(self, database) -> Optional[RemoteCatalogClient]:
        return RemoteCatalogClient.from_config(database, settings=self.settings)

    # =========================================================================
    # State access
    # =========================================================================

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def resolution(self) -> Optional[Resolution]:
        return self._resolution

    @property
    def roster(self) -> List[Profile]:
        return list(self._roster)

    @property
    def catalog(self) -> List[MediaEntry]:
        return list(self._catalog)

    @property
    def config(self) -> VaultConfig:
        return self._config

    @property
    def remote(self) -> Optional[Any]:
        """Remote handle of the current resolution (None in local mode)."""
        if self._resolution is None:
            return None
        return self._resolution.remote

    @property
    def warning(self) -> Optional[str]:
        if self._resolution is None:
            return None
        return self._resolution.warning

    @property
    def mode_label(self) -> str:
        """Banner text for the current backend."""
        if self._resolution is not None:
            if self._resolution.warning:
                return self._resolution.warning
            if self._resolution.diagnostic:
                return self._resolution.diagnostic
        if self._state == EngineState.REMOTE_ACTIVE:
            return REMOTE_ACTIVE_LABEL
        return LOCAL_ACTIVE_LABEL

    def get_profile(self, profile_id: str) -> Optional[Profile]:
        for profile in self._roster:
            if profile.id == profile_id:
                return profile
        return None

    def get_media_entry(self, entry_id: str) -> Optional[MediaEntry]:
        for entry in self._catalog:
            if entry.id == entry_id:
                return entry
        return None

    def media_for_owner(self, owner_id: str) -> List[MediaEntry]:
        return [e for e in self._catalog if e.owner_id == owner_id]

    # =========================================================================
    # Configuration
    # =========================================================================

    def load_configuration(self) -> VaultConfig:
        """
        Load the installation configuration from the local store.

        A missing slot is seeded with defaults; an unparseable one degrades
        to defaults in memory.
        """
        data = self.local_store.get(Slot.CONFIG)
        if data is None:
            config = VaultConfig.create_default()
            self._persist_config(config)
        else:
            try:
                config = VaultConfig.model_validate_json(data)
            except ValidationError as e:
                logger.warning(f"[Engine] Stored configuration unreadable, using defaults: {e}")
                config = VaultConfig.create_default()
        self._config = config
        return config

    def _persist_config(self, config: VaultConfig) -> bool:
        try:
            self.local_store.write_json(Slot.CONFIG, config.to_record())
            return True
        except Exception as e:
            logger.warning(f"[Engine] Could not save configuration: {e}")
            return False

    async def apply_configuration(self, config: VaultConfig) -> Resolution:
        """Persist a new configuration, then re-run resolution against it."""
        self._config = config
        self._persist_config(config)
        return await self.resolve(config)

    # =========================================================================
    # Resolution
    # =========================================================================

    async def resolve(self, config: Optional[VaultConfig] = None) -> Resolution:
        """
        Decide the active backend and load roster and catalog from it.

        Never raises. See module docstring for the protocol.
        """
        if config is not None:
            self._config = config
        config = self._config

        self._generation += 1
        generation = self._generation
        self._state = EngineState.RESOLVING
        previous = self.remote

        try:
            resolution = await self._resolve(config, generation)
        except Exception as e:
            logger.exception("[Engine] Resolution failed, falling back to local storage")
            diagnostic = f"Could not load data ({type(e).__name__}: {e}). Using local storage."
            diagnostic = " ".join(diagnostic.split())
            seeded = False
            try:
                seeded = self._load_local()
            except Exception as local_error:
                logger.error(f"[Engine] Local fallback failed: {local_error}")
                self._roster = default_roster()
                self._catalog = []
            resolution = Resolution(
                state=EngineState.LOCAL_ACTIVE,
                generation=generation,
                diagnostic=diagnostic,
                seeded=seeded,
            )

        self._resolution = resolution
        self._state = resolution.state
        if previous is not None and previous is not resolution.remote:
            self._retire_remote(previous)
        logger.info(
            f"[Engine] Resolved generation {generation}: {resolution.state.value} "
            f"({len(self._roster)} profiles, {len(self._catalog)} media items)"
        )
        return resolution

    async def _resolve(self, config: VaultConfig, generation: int) -> Resolution:
        remote = self._connect(config)

        if remote is None:
            seeded = self._load_local()
            return Resolution(EngineState.LOCAL_ACTIVE, generation, seeded=seeded)

        try:
            roster_result, catalog_result = await asyncio.gather(
                remote.list(Collection.ROSTER),
                remote.list(Collection.CATALOG),
            )
        except BaseException:
            await self._close_quietly(remote)
            raise

        if roster_result.missing_collection:
            logger.warning(f"[Engine] Remote tables missing: {roster_result.message}")
            await self._close_quietly(remote)
            seeded = self._load_local()
            return Resolution(
                EngineState.LOCAL_ACTIVE,
                generation,
                warning=MISSING_TABLES_WARNING,
                seeded=seeded,
            )

        seeded = False
        roster = self._parse_rows(roster_result.items, Profile) if roster_result.ok else []
        if roster:
            self._roster = roster
        else:
            self._roster = default_roster()
            # Seed only a table that holds no rows at all.
            if roster_result.ok and not roster_result.items:
                seeded = await self._seed_remote(remote, self._roster)
            elif roster_result.ok:
                logger.warning(
                    f"[Engine] None of the {len(roster_result.items)} remote roster rows are usable; "
                    "using default roster for this session"
                )
            else:
                logger.warning(
                    f"[Engine] Could not read remote roster ({roster_result.message}); "
                    "using default roster for this session"
                )

        if catalog_result.ok:
            self._catalog = self._parse_rows(catalog_result.items, MediaEntry)
        else:
            logger.warning(f"[Engine] Could not read remote catalog: {catalog_result.message}")
            self._catalog = []

        return Resolution(EngineState.REMOTE_ACTIVE, generation, remote=remote, seeded=seeded)

    def _connect(self, config: VaultConfig) -> Optional[Any]:
        if not config.database.is_remote:
            return None
        try:
            return self._remote_factory(config.database)
        except Exception as e:
            logger.error(f"[Engine] Remote initialization error: {e}")
            return None

    async def _seed_remote(self, remote: Any, roster: List[Profile]) -> bool:
        """Best-effort upload of the default roster, one profile at a time."""
        try:
            for profile in roster:
                await remote.upsert(Collection.ROSTER, profile.to_record())
        except Exception as e:
            logger.warning(f"[Engine] Could not sync initial users to remote: {e}")
            return False
        return True

    def _load_local(self) -> bool:
        """
        Load roster and catalog from the local store.

        Returns True if defaults had to be written back.
        """
        seeded = False

        roster_bytes = self.local_store.get(Slot.ROSTER)
        roster: List[Profile] = []
        unreadable = False
        if roster_bytes is not None:
            try:
                roster = load_roster(roster_bytes)
            except ValidationError as e:
                logger.warning(f"[Engine] Stored roster unreadable, using defaults: {e}")
                unreadable = True
        if not roster:
            roster = default_roster()
            # Unreadable bytes stay on disk until the next roster mutation.
            if not unreadable:
                self.local_store.set(Slot.ROSTER, dump_roster(roster))
                seeded = True

        catalog_bytes = self.local_store.get(Slot.CATALOG)
        catalog: List[MediaEntry] = []
        if catalog_bytes is None:
            self.local_store.set(Slot.CATALOG, dump_catalog(catalog))
            seeded = True
        else:
            try:
                catalog = load_catalog(catalog_bytes)
            except ValidationError as e:
                logger.warning(f"[Engine] Stored catalog unreadable, starting empty: {e}")
                catalog = []

        self._roster = roster
        self._catalog = catalog
        return seeded

    @staticmethod
    def _parse_rows(rows: List[Dict[str, Any]], model) -> list:
        parsed = []
        for row in rows:
            try:
                parsed.append(model.model_validate(row))
            except ValidationError as e:
                logger.warning(f"[Engine] Skipping malformed remote {model.__name__} row: {e}")
        return parsed

    def _retire_remote(self, remote: Any) -> None:
        """Close a replaced handle once the writes issued against it have finished."""
        pending = [task for task, handle in self._inflight.items() if handle is remote]
        closer = asyncio.get_running_loop().create_task(self._close_when_drained(remote, pending))
        self._closing.add(closer)
        closer.add_done_callback(self._closing.discard)

    async def _close_when_drained(self, remote: Any, pending: List[asyncio.Task]) -> None:
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.debug(f"[Engine] Closing retired remote handle ({len(pending)} writes drained)")
        await self._close_quietly(remote)

    async def _close_quietly(self, remote: Any) -> None:
        close = getattr(remote, "aclose", None)
        if close is None:
            return
        try:
            await close()
        except Exception as e:
            logger.debug(f"[Engine] Error closing remote handle: {e}")

    # =========================================================================
    # Mutations
    # =========================================================================

    def upsert_profile(self, profile: Profile) -> PendingWrite:
        """
        Add a profile, or replace the one with the same id in place.

        The root administrator always keeps the admin role.
        """
        if profile.id == ROOT_ADMIN_ID and profile.role != Role.ADMIN:
            profile = profile.model_copy(update={"role": Role.ADMIN})

        for index, existing in enumerate(self._roster):
            if existing.id == profile.id:
                self._roster[index] = profile
                break
        else:
            self._roster.append(profile)

        return self._route(
            Slot.ROSTER,
            lambda remote: remote.upsert(Collection.ROSTER, profile.to_record()),
            f"save profile {profile.id}",
        )

    def remove_profile(self, profile_id: str) -> PendingWrite:
        """Remove a profile. The root administrator cannot be removed."""
        if profile_id == ROOT_ADMIN_ID:
            logger.info("[Engine] Refusing to remove root administrator")
            return PendingWrite(
                WriteOutcome.skipped("root administrator cannot be removed", self._generation)
            )

        self._roster = [p for p in self._roster if p.id != profile_id]
        return self._route(
            Slot.ROSTER,
            lambda remote: self._checked_delete(remote, Collection.ROSTER, profile_id),
            f"delete profile {profile_id}",
        )

    def append_media_entry(self, entry: MediaEntry) -> PendingWrite:
        """Put an entry at the front of the catalog (newest first)."""
        self._catalog = [entry] + [e for e in self._catalog if e.id != entry.id]
        return self._route(
            Slot.CATALOG,
            lambda remote: remote.upsert(Collection.CATALOG, entry.to_record()),
            f"save media {entry.id}",
        )

    def remove_media_entry(self, entry_id: str) -> PendingWrite:
        """Remove an entry from the catalog."""
        self._catalog = [e for e in self._catalog if e.id != entry_id]
        return self._route(
            Slot.CATALOG,
            lambda remote: self._checked_delete(remote, Collection.CATALOG, entry_id),
            f"delete media {entry_id}",
        )

    @staticmethod
    async def _checked_delete(remote: Any, collection: Collection, record_id: str) -> None:
        if not await remote.delete(collection, record_id):
            raise RemoteWriteError(f"delete of {collection.value} {record_id} was not confirmed")

    def _route(self, slot: Slot, remote_call, description: str) -> PendingWrite:
        generation = self._generation

        if self._state == EngineState.REMOTE_ACTIVE and self.remote is not None and not self.warning:
            task = asyncio.get_running_loop().create_task(
                self._remote_write(self.remote, remote_call, description, generation)
            )
            self._inflight[task] = self.remote
            task.add_done_callback(lambda done: self._inflight.pop(done, None))
            return PendingWrite(task=task)

        if self._state == EngineState.LOCAL_ACTIVE:
            return PendingWrite(self._persist_local(slot, generation))

        return PendingWrite(WriteOutcome.skipped(f"engine is {self._state.value}", generation))

    async def _remote_write(self, remote: Any, remote_call, description: str, generation: int) -> WriteOutcome:
        if generation != self._generation:
            logger.info(f"[Engine] Dropping stale write ({description}): superseded by reconfiguration")
            return WriteOutcome.skipped("superseded by reconfiguration", generation)
        try:
            await remote_call(remote)
        except Exception as e:
            logger.warning(f"[Engine] Remote write failed ({description}): {e}")
            return WriteOutcome.degraded("remote", str(e), generation)
        return WriteOutcome.written("remote", generation)

    def _persist_local(self, slot: Slot, generation: int) -> WriteOutcome:
        """Rewrite the whole collection to its local slot."""
        try:
            if slot == Slot.ROSTER:
                self.local_store.set(Slot.ROSTER, dump_roster(self._roster))
            else:
                self.local_store.set(Slot.CATALOG, dump_catalog(self._catalog))
        except Exception as e:
            logger.warning(f"[Engine] Local write failed ({slot.value}): {e}")
            return WriteOutcome.degraded("local", str(e), generation)
        return WriteOutcome.written("local", generation)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def drain(self) -> List[WriteOutcome]:
        """Wait for every in-flight remote write."""
        outcomes: List[WriteOutcome] = []
        while self._inflight:
            pending = list(self._inflight)
            outcomes.extend(await asyncio.gather(*pending))
            for task in pending:
                self._inflight.pop(task, None)
        return outcomes

    async def aclose(self) -> None:
        """Drain pending writes and close every remote handle."""
        await self.drain()
        if self._closing:
            await asyncio.gather(*list(self._closing))
        if self.remote is not None:
            await self._close_quietly(self.remote)
