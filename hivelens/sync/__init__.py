"""
Sync package: one date-range pass from HiveSQL into the image store.

Usage:
    # CLI interface
    python -m hivelens.sync sync --start 2024-05-01 --end 2024-05-03
    python -m hivelens.sync dates

    # Programmatic interface
    from hivelens.sync import SyncOrchestrator, get_default_registry
    orchestrator = SyncOrchestrator(source, store, validator, get_default_registry())
    result = orchestrator.run_sync(start, end, confirmed=True, initiator="alice")
"""

from .lock import SyncLockRegistry, SyncLockState, get_default_registry
from .orchestrator import SyncOrchestrator, estimate_sync_duration
from .results import (
    ConfirmationRequired,
    QuotaExceeded,
    SyncCounters,
    SyncError,
    SyncInProgress,
    SyncResult,
    SyncSuccess,
)

__all__ = [
    "SyncLockRegistry",
    "SyncLockState",
    "get_default_registry",
    "SyncOrchestrator",
    "estimate_sync_duration",
    "ConfirmationRequired",
    "QuotaExceeded",
    "SyncCounters",
    "SyncError",
    "SyncInProgress",
    "SyncResult",
    "SyncSuccess",
]
