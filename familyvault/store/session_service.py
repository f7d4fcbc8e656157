"""
FamilyVault Store - Session Service

Tracks which profile is active on this device. The selection is a local
concern only: it is persisted in the session slot and never synced.
"""

from __future__ import annotations

import logging
from typing import Optional

from pydantic import ValidationError

from .engine import ReconciliationEngine
from .layout import InvalidPinError, LocalStore, ProfileNotFoundError, Slot
from .models import Profile

logger = logging.getLogger(__name__)


class SessionService:
    """
    Service for profile selection (login/logout).
    """

    def __init__(self, local_store: LocalStore, engine: ReconciliationEngine):
        """
        Initialize session service.

        Args:
            local_store: Local store holding the session slot
            engine: Engine owning the roster
        """
        self.local_store = local_store
        self.engine = engine
        self._current: Optional[Profile] = None

    @property
    def current(self) -> Optional[Profile]:
        return self._current

    @property
    def is_admin(self) -> bool:
        return self._current is not None and self._current.is_admin

    def login(self, profile_id: str, pin: str) -> Profile:
        """Select a profile after checking its PIN."""
        profile = self.authenticate(profile_id, pin)
        self._select(profile)
        return profile

    def authenticate(self, profile_id: str, pin: str) -> Profile:
        """
        Check a PIN without changing the selection.

        Raises:
            ProfileNotFoundError: If the id is not in the roster.
            InvalidPinError: If the PIN does not match.
        """
        profile = self.engine.get_profile(profile_id)
        if profile is None:
            raise ProfileNotFoundError(f"Profile not found: {profile_id}")
        if pin != profile.pin:
            logger.info(f"[Session] Wrong PIN for profile {profile_id}")
            raise InvalidPinError("Wrong PIN")
        return profile

    def restore(self) -> Optional[Profile]:
        """
        Restore the selection saved on this device.

        Returns the roster's current version of the saved profile so edits
        made since the last session are picked up.
        """
        data = self.local_store.get(Slot.SESSION)
        if data is None:
            self._current = None
            return None

        try:
            snapshot = Profile.model_validate_json(data)
        except ValidationError as e:
            logger.warning(f"[Session] Saved session unreadable, clearing: {e}")
            self.logout()
            return None

        profile = self.engine.get_profile(snapshot.id)
        if profile is None:
            logger.info(f"[Session] Saved profile {snapshot.id} no longer exists, clearing")
            self.logout()
            return None

        if profile != snapshot:
            self._select(profile)
        else:
            self._current = profile
        return profile

    def refresh(self, profile: Profile) -> None:
        """Replace the active snapshot if the edited profile is the active one."""
        if self._current is not None and self._current.id == profile.id:
            self._select(profile)

    def logout(self) -> None:
        """Clear the selection."""
        self._current = None
        self.local_store.remove(Slot.SESSION)

    def _select(self, profile: Profile) -> None:
        self._current = profile
        self.local_store.write_json(Slot.SESSION, profile.to_record())
