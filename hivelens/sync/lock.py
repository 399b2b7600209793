"""
Sync lock registry.

Only one sync may run against the image store at a time. The registry keeps
the state of the running sync so that a second caller can be told who
started it, when, for which dates and when it should finish.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional, Union


logger = logging.getLogger("sync")


@dataclass(frozen=True)
class SyncLockState:
    """Who holds the sync lock and for what."""

    initiator: str
    started_at: datetime
    start_date: Union[date, datetime]
    end_date: Union[date, datetime]
    estimated_minutes: int

    @property
    def estimated_completion(self) -> datetime:
        return self.started_at + timedelta(minutes=self.estimated_minutes)


class SyncLockRegistry:
    """
    Holds at most one SyncLockState.

    acquire() is an atomic test-and-set, release() is idempotent. Reads take
    the same mutex so they never observe a half-written state.
    """

    def __init__(self):
        self._mutex = threading.Lock()
        self._state: Optional[SyncLockState] = None

    def try_describe_conflict(self) -> Optional[SyncLockState]:
        """Return the running sync's state, or None if no sync is running."""
        with self._mutex:
            return self._state

    def acquire(self, state: SyncLockState) -> Optional[SyncLockState]:
        """
        Take the lock for a new sync.

        Returns:
            None if the lock was acquired, otherwise the state of the sync
            already holding it (the registry is left unchanged)
        """
        with self._mutex:
            if self._state is not None:
                return self._state
            self._state = state
        logger.info(
            f"Sync lock acquired by {state.initiator} for "
            f"{state.start_date} - {state.end_date}"
        )
        return None

    def release(self) -> None:
        with self._mutex:
            state, self._state = self._state, None
        if state is not None:
            logger.info(f"Sync lock released by {state.initiator}")

    @property
    def is_active(self) -> bool:
        with self._mutex:
            return self._state is not None


_default_registry: Optional[SyncLockRegistry] = None
_default_registry_mutex = threading.Lock()


def get_default_registry() -> SyncLockRegistry:
    """Get or create the process-wide registry."""
    global _default_registry
    with _default_registry_mutex:
        if _default_registry is None:
            _default_registry = SyncLockRegistry()
        return _default_registry
