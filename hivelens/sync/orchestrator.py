"""
Sync orchestrator: HiveSQL posts → validated image records → image store.

run_sync walks a fixed sequence of checks before doing any work:

    quota check → confirmation check → lock check → run → finalize

Each early exit returns its own result type. Once the lock is taken the run
always ends by releasing it, whatever happens in between.
"""

import math
from datetime import date, datetime, timezone
from typing import Optional, Protocol, Sequence, Union

from sqlalchemy.exc import SQLAlchemyError

from hivelens.config import SyncConfig
from hivelens.ingestion.metadata import extract_metadata
from hivelens.ingestion.records import CandidateImageRecord
from hivelens.ingestion.validator import UrlValidator
from hivelens.logger import setup_logging, log_function
from hivelens.source.models import RawPost
from .lock import SyncLockRegistry, SyncLockState
from .results import (
    ConfirmationRequired,
    QuotaExceeded,
    SyncCounters,
    SyncError,
    SyncInProgress,
    SyncResult,
    SyncSuccess,
)


logger = setup_logging(logger_name="sync", log_file="sync.log")

DateLike = Union[date, datetime]

DEFAULT_INITIATOR = "anonymous"
SECONDS_PER_DAY = 24 * 60 * 60


class PostSource(Protocol):
    def fetch_posts(self, start_date: DateLike, end_date: DateLike) -> list[RawPost]: ...


class RecordStore(Protocol):
    def insert_batch(self, records: Sequence[CandidateImageRecord]) -> int: ...

    def current_size_bytes(self) -> Optional[int]: ...


class PersistenceAbortedError(RuntimeError):
    """Raised when too many consecutive batches fail to persist."""


def _as_utc(value: DateLike) -> datetime:
    """Dates mean midnight UTC; naive datetimes are taken as UTC."""
    if not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def estimate_sync_duration(
    start_date: DateLike, end_date: DateLike, minutes_per_day: int
) -> tuple[int, int]:
    """
    Estimate how long a sync over a date range takes.

    Partial days round up and the range counts as at least one day.

    Returns:
        Tuple of (estimated days, total estimated minutes)
    """
    span = _as_utc(end_date) - _as_utc(start_date)
    days = max(1, math.ceil(span.total_seconds() / SECONDS_PER_DAY))
    return days, days * minutes_per_day


def _format_size(size_bytes: int) -> str:
    return f"{size_bytes / (1024 * 1024):.2f} MB"


class SyncOrchestrator:
    """
    Runs sync passes against one image store.

    All collaborators are injected; the lock registry in particular should be
    shared by every orchestrator that writes to the same store.
    """

    def __init__(
        self,
        source: PostSource,
        store: RecordStore,
        validator: UrlValidator,
        lock_registry: SyncLockRegistry,
        config: Optional[SyncConfig] = None,
    ):
        self.source = source
        self.store = store
        self.validator = validator
        self.lock_registry = lock_registry
        self.config = config or SyncConfig()

    @log_function(logger_name="sync", log_args=True)
    def run_sync(
        self,
        start_date: DateLike,
        end_date: DateLike,
        confirmed: bool = False,
        initiator: Optional[str] = None,
    ) -> SyncResult:
        """
        Sync images from posts created in [start_date, end_date).

        Args:
            start_date: First day (or instant) of the window
            end_date: End of the window, exclusive
            confirmed: Whether the caller accepted the time estimate
            initiator: Free-text label of who started the sync

        Returns:
            One of SyncSuccess, ConfirmationRequired, QuotaExceeded,
            SyncInProgress or SyncError. Never raises.
        """
        if _as_utc(end_date) < _as_utc(start_date):
            return SyncError(
                message=f"End date {end_date} is before start date {start_date}."
            )

        try:
            current_size = self.store.current_size_bytes()
        except Exception as e:
            logger.error(f"Could not read store size: {e}", exc_info=True)
            return SyncError(message=f"Could not read store size: {e}")

        if current_size is not None and current_size > self.config.max_store_size_bytes:
            logger.warning(
                f"Store size {current_size} exceeds quota {self.config.max_store_size_bytes}"
            )
            return QuotaExceeded(
                current_size_bytes=current_size,
                max_size_bytes=self.config.max_store_size_bytes,
                message=(
                    f"The image database has reached its size limit "
                    f"({_format_size(current_size)} of "
                    f"{_format_size(self.config.max_store_size_bytes)}). "
                    "No new sync can be started."
                ),
            )

        estimated_days, total_minutes = estimate_sync_duration(
            start_date, end_date, self.config.minutes_per_day
        )
        if not confirmed:
            return ConfirmationRequired(
                estimated_days=estimated_days,
                minutes_per_day=self.config.minutes_per_day,
                total_estimated_time_minutes=total_minutes,
                message=(
                    f"Syncing {estimated_days} day(s) takes about {total_minutes} minutes "
                    f"({self.config.minutes_per_day} minutes per day). Do you want to continue?"
                ),
            )

        state = SyncLockState(
            initiator=initiator or DEFAULT_INITIATOR,
            started_at=datetime.now(timezone.utc),
            start_date=start_date,
            end_date=end_date,
            estimated_minutes=total_minutes,
        )
        holder = self.lock_registry.acquire(state)
        if holder is not None:
            logger.info(
                f"Sync requested by {state.initiator} refused: "
                f"{holder.initiator} has been syncing since {holder.started_at}"
            )
            return SyncInProgress.from_state(holder)

        counters = SyncCounters()
        try:
            return self._run(start_date, end_date, counters)
        except Exception as e:
            logger.error(
                f"Sync {start_date} - {end_date} failed: {type(e).__name__}: {e}. "
                f"Partial counters: {counters.to_dict()}",
                exc_info=True,
            )
            return SyncError(message=f"Sync failed: {e}", counters=counters)
        finally:
            self.lock_registry.release()

    def _run(
        self, start_date: DateLike, end_date: DateLike, counters: SyncCounters
    ) -> SyncSuccess:
        logger.info(f"=== SYNC STARTED: {start_date} - {end_date} ===")

        posts = self.source.fetch_posts(start_date, end_date)
        counters.posts_fetched = len(posts)

        batch: list[CandidateImageRecord] = []
        sample: list[CandidateImageRecord] = []
        consecutive_failures = 0

        def flush() -> None:
            nonlocal consecutive_failures
            written = self._flush(batch, counters, sample)
            batch.clear()
            if written:
                consecutive_failures = 0
                return
            consecutive_failures += 1
            if consecutive_failures >= self.config.max_consecutive_batch_failures:
                raise PersistenceAbortedError(
                    f"{consecutive_failures} consecutive batches failed to persist"
                )

        try:
            for post in posts:
                try:
                    records = self._process_post(post, counters)
                except Exception:
                    logger.error(f"Error while processing post {post.key}")
                    raise

                for record in records:
                    batch.append(record)
                    if len(batch) >= self.config.batch_size:
                        flush()
        except Exception:
            # Keep what was already validated before giving up
            if batch:
                self._flush_pending(batch, counters, sample)
            raise

        if batch:
            flush()

        message = (
            f"Sync completed. {counters.new_images_added} new images added, "
            f"{counters.existing_images_skipped} duplicates skipped, "
            f"{counters.invalid_or_inaccessible_images_skipped} invalid/unreachable URLs skipped."
        )
        if counters.persistence_errors:
            message += f" {counters.persistence_errors} images could not be saved."

        logger.info(f"=== SYNC COMPLETED: {counters.to_dict()} ===")
        return SyncSuccess(
            counters=counters,
            sample_images=sample,
            message=message,
            database_size_bytes=self.store.current_size_bytes(),
        )

    def _process_post(
        self, post: RawPost, counters: SyncCounters
    ) -> list[CandidateImageRecord]:
        """Extract and validate one post's images."""
        metadata = extract_metadata(post.json_metadata)
        if not metadata.urls:
            return []

        counters.posts_with_images += 1
        live, dead = self.validator.check_many(sorted(metadata.urls))
        counters.invalid_or_inaccessible_images_skipped += len(dead)

        records = []
        for url in live:
            try:
                records.append(CandidateImageRecord.from_post(post, url, metadata.tags))
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Skipping {url} from post {post.key}: {e}")
                counters.invalid_or_inaccessible_images_skipped += 1
        return records

    def _flush_pending(
        self,
        batch: list[CandidateImageRecord],
        counters: SyncCounters,
        sample: list[CandidateImageRecord],
    ) -> None:
        """Best-effort flush of the partial batch of an aborted run."""
        logger.info(f"Saving {len(batch)} validated images before aborting")
        try:
            self._flush(batch, counters, sample)
        except Exception as e:
            logger.error(f"Could not save pending batch of {len(batch)} images: {e}")
            counters.persistence_errors += len(batch)
        batch.clear()

    def _flush(
        self,
        batch: list[CandidateImageRecord],
        counters: SyncCounters,
        sample: list[CandidateImageRecord],
    ) -> bool:
        """
        Persist one batch and fold its outcome into the counters.

        Returns:
            True if the batch was written, False if it was lost
        """
        try:
            added = self.store.insert_batch(list(batch))
        except SQLAlchemyError as e:
            logger.error(f"Failed to persist batch of {len(batch)} images: {e}")
            counters.persistence_errors += len(batch)
            return False

        counters.new_images_added += added
        counters.existing_images_skipped += len(batch) - added

        room = self.config.sample_size - len(sample)
        if room > 0:
            sample.extend(batch[:room])
        return True
