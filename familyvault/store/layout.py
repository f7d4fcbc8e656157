"""
FamilyVault Store - Local Store

Device-local key/value persistence. Each slot is one file under the store
root:

- catalog.json   media catalog (newest first)
- roster.json    profiles
- config.json    installation configuration
- session.json   snapshot of the currently selected profile

Slots hold raw bytes; parsing is left to the caller so a corrupt slot can
degrade to defaults instead of failing the whole load.
"""

from __future__ import annotations

import json
import os
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any, Generator, Optional

import filelock


class StoreError(Exception):
    """Base exception for store errors."""
    pass


class StoreLockError(StoreError):
    """Error when store lock cannot be acquired."""
    pass


class ProfileNotFoundError(StoreError):
    """Error when a profile id is not in the roster."""
    pass


class InvalidPinError(StoreError):
    """Error when a PIN does not match the profile."""
    pass


class UploadConfigError(StoreError):
    """Error when the blob store is not configured for uploads."""
    pass


class Slot(str, Enum):
    """Fixed local store keys."""
    CATALOG = "catalog"
    ROSTER = "roster"
    CONFIG = "config"
    SESSION = "session"


class LocalStore:
    """
    Slot-based local persistence.

    Writes are atomic (temp file + rename) and serialized with a file lock,
    so a failed or concurrent write never leaves a slot half-written.
    """

    LOCK_TIMEOUT = 30.0  # seconds

    def __init__(self, root: Optional[Path] = None):
        """
        Initialize local store.

        Args:
            root: Root directory for the store. Defaults to FAMILYVAULT_ROOT
                  env var or ~/.familyvault
        """
        if root is None:
            root = Path(os.environ.get("FAMILYVAULT_ROOT", Path.home() / ".familyvault"))

        self.root = Path(root).expanduser().resolve()

    # =========================================================================
    # Paths
    # =========================================================================

    @property
    def lock_file_path(self) -> Path:
        """Path to store lock file."""
        return self.root / ".familyvault.lock"

    def slot_path(self, slot: Slot) -> Path:
        """Get the file backing a slot."""
        return self.root / f"{Slot(slot).value}.json"

    # =========================================================================
    # Locking
    # =========================================================================

    @contextmanager
    def lock(self, timeout: Optional[float] = None) -> Generator[None, None, None]:
        """
        Acquire exclusive lock on the store.

        Raises:
            StoreLockError: If lock cannot be acquired.
        """
        if timeout is None:
            timeout = self.LOCK_TIMEOUT

        self.root.mkdir(parents=True, exist_ok=True)

        lock = filelock.FileLock(self.lock_file_path)
        try:
            lock.acquire(timeout=timeout)
            yield
        except filelock.Timeout:
            raise StoreLockError(
                f"Could not acquire store lock within {timeout}s. "
                "Another FamilyVault process may be writing."
            )
        finally:
            lock.release()

    # =========================================================================
    # Slot I/O
    # =========================================================================

    def exists(self, slot: Slot) -> bool:
        """Check whether a slot has been written."""
        return self.slot_path(slot).exists()

    def get(self, slot: Slot) -> Optional[bytes]:
        """Read a slot. Returns None when the slot was never written."""
        path = self.slot_path(slot)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def set(self, slot: Slot, data: bytes) -> None:
        """
        Write a slot atomically.

        Uses write-to-temp-then-rename so the previous contents survive a
        failed write.
        """
        path = self.slot_path(slot)
        with self.lock():
            tmp_path = path.with_suffix(".tmp")
            try:
                with open(tmp_path, "wb") as f:
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
                tmp_path.replace(path)
            finally:
                if tmp_path.exists():
                    tmp_path.unlink()

    def remove(self, slot: Slot) -> bool:
        """Delete a slot. Returns True if something was removed."""
        path = self.slot_path(slot)
        with self.lock():
            if path.exists():
                path.unlink()
                return True
        return False

    # =========================================================================
    # JSON helpers
    # =========================================================================

    def write_json(self, slot: Slot, data: Any) -> None:
        """Write a JSON value with canonical formatting."""
        text = json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False) + "\n"
        self.set(slot, text.encode("utf-8"))

    def read_json(self, slot: Slot) -> Optional[Any]:
        """Read a JSON value. Returns None for a missing slot."""
        data = self.get(slot)
        if data is None:
            return None
        return json.loads(data.decode("utf-8"))
