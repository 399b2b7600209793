"""
Results returned by SyncOrchestrator.run_sync.

Every outcome, including the ones that do no work, comes back as one of the
dataclasses below. Callers branch on type (or on the status tag) instead of
catching exceptions.
"""

from dataclasses import dataclass, field, asdict
from datetime import date, datetime
from typing import Optional, Union

from hivelens.ingestion.records import CandidateImageRecord
from .lock import SyncLockState


def _isoformat(value: Union[date, datetime, None]) -> Optional[str]:
    return value.isoformat() if value is not None else None


@dataclass
class SyncCounters:
    """Running totals of a sync."""

    new_images_added: int = 0
    existing_images_skipped: int = 0
    invalid_or_inaccessible_images_skipped: int = 0
    persistence_errors: int = 0
    posts_fetched: int = 0
    posts_with_images: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class SyncSuccess:
    counters: SyncCounters
    sample_images: list[CandidateImageRecord]
    message: str
    database_size_bytes: Optional[int]

    status = "success"

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            **self.counters.to_dict(),
            "sample_images": [image.to_dict() for image in self.sample_images],
            "message": self.message,
            "database_size_bytes": self.database_size_bytes,
        }


@dataclass
class ConfirmationRequired:
    estimated_days: int
    minutes_per_day: int
    total_estimated_time_minutes: int
    message: str

    status = "confirmation_required"

    def to_dict(self) -> dict:
        return {"status": self.status, **asdict(self)}


@dataclass
class QuotaExceeded:
    current_size_bytes: int
    max_size_bytes: int
    message: str

    status = "quota_exceeded"

    def to_dict(self) -> dict:
        return {"status": self.status, **asdict(self)}


@dataclass
class SyncInProgress:
    initiator: str
    started_at: datetime
    start_date: Union[date, datetime]
    end_date: Union[date, datetime]
    estimated_completion: datetime
    message: str

    status = "sync_in_progress"

    @classmethod
    def from_state(cls, state: SyncLockState) -> "SyncInProgress":
        return cls(
            initiator=state.initiator,
            started_at=state.started_at,
            start_date=state.start_date,
            end_date=state.end_date,
            estimated_completion=state.estimated_completion,
            message=(
                f"A sync started by {state.initiator} at "
                f"{state.started_at:%Y-%m-%d %H:%M} is already running "
                f"({_isoformat(state.start_date)} to {_isoformat(state.end_date)}). "
                f"Estimated completion: {state.estimated_completion:%Y-%m-%d %H:%M}."
            ),
        )

    def to_dict(self) -> dict:
        return {
            "status": self.status,
            "initiator": self.initiator,
            "started_at": _isoformat(self.started_at),
            "start_date": _isoformat(self.start_date),
            "end_date": _isoformat(self.end_date),
            "estimated_completion": _isoformat(self.estimated_completion),
            "message": self.message,
        }


@dataclass
class SyncError:
    message: str
    counters: SyncCounters = field(default_factory=SyncCounters)

    status = "error"

    def to_dict(self) -> dict:
        return {"status": self.status, "message": self.message, **self.counters.to_dict()}


SyncResult = Union[
    SyncSuccess, ConfirmationRequired, QuotaExceeded, SyncInProgress, SyncError
]
