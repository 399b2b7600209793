"""
Tests for SyncOrchestrator.run_sync.

The content source and store are in-memory fakes; the URL validator is a
real UrlValidator whose probe is replaced, so no network is used.
"""

import json
from datetime import date, datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from hivelens.config import GIB, SyncConfig
from hivelens.ingestion.validator import UrlValidator
from hivelens.sync import (
    ConfirmationRequired,
    QuotaExceeded,
    SyncError,
    SyncInProgress,
    SyncLockRegistry,
    SyncLockState,
    SyncOrchestrator,
    SyncSuccess,
    estimate_sync_duration,
)

from conftest import make_post


START = date(2024, 5, 1)
END = date(2024, 5, 4)


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeSource:
    def __init__(self, posts=None, error=None):
        self.posts = posts or []
        self.error = error
        self.calls = []

    def fetch_posts(self, start_date, end_date):
        self.calls.append((start_date, end_date))
        if self.error is not None:
            raise self.error
        return list(self.posts)


class FakeStore:
    def __init__(self, size_bytes=1024, fail_batches=()):
        self.size_bytes = size_bytes
        self.fail_batches = set(fail_batches)
        self.batches = []
        self.urls = set()

    def current_size_bytes(self):
        return self.size_bytes

    def insert_batch(self, records):
        self.batches.append([record.image_url for record in records])
        if len(self.batches) in self.fail_batches:
            raise OperationalError("INSERT", {}, Exception("disk I/O error"))
        new = {record.image_url for record in records} - self.urls
        self.urls |= new
        return len(new)


def _validator(live_urls):
    validator = UrlValidator(max_workers=4)
    validator.is_reachable = lambda url: url in live_urls
    return validator


def _metadata(*urls, tags=("nature",)):
    return json.dumps({"image": list(urls), "tags": list(tags)})


@pytest.fixture
def registry():
    return SyncLockRegistry()


def _orchestrator(source, store, registry, live_urls=(), **config):
    return SyncOrchestrator(
        source=source,
        store=store,
        validator=_validator(set(live_urls)),
        lock_registry=registry,
        config=SyncConfig(**config),
    )


# ---------------------------------------------------------------------------
# Estimation
# ---------------------------------------------------------------------------

def test_estimate_three_days():
    assert estimate_sync_duration(date(2024, 5, 1), date(2024, 5, 4), 32) == (3, 96)


def test_estimate_same_day_counts_as_one_day():
    assert estimate_sync_duration(date(2024, 5, 1), date(2024, 5, 1), 32) == (1, 32)


def test_estimate_rounds_partial_days_up():
    start = datetime(2024, 5, 1, 0, 0)
    end = datetime(2024, 5, 2, 12, 0)

    assert estimate_sync_duration(start, end, 40) == (2, 80)


# ---------------------------------------------------------------------------
# Preconditions
# ---------------------------------------------------------------------------

def test_quota_exceeded_does_no_work(registry):
    source = FakeSource(posts=[make_post(json_metadata=_metadata("https://a.example/1.png"))])
    store = FakeStore(size_bytes=5 * GIB)
    orchestrator = _orchestrator(source, store, registry)

    result = orchestrator.run_sync(START, END, confirmed=True)

    assert isinstance(result, QuotaExceeded)
    assert result.current_size_bytes == 5 * GIB
    assert result.max_size_bytes == 4 * GIB
    assert source.calls == []
    assert store.batches == []
    assert registry.is_active is False


def test_quota_exactly_at_limit_is_allowed(registry):
    store = FakeStore(size_bytes=4 * GIB)
    orchestrator = _orchestrator(FakeSource(), store, registry)

    assert isinstance(orchestrator.run_sync(START, END, confirmed=True), SyncSuccess)


def test_missing_store_file_skips_quota(registry):
    orchestrator = _orchestrator(FakeSource(), FakeStore(size_bytes=None), registry)

    assert isinstance(orchestrator.run_sync(START, END, confirmed=True), SyncSuccess)


def test_unconfirmed_sync_returns_estimate_without_side_effects(registry):
    source = FakeSource()
    orchestrator = _orchestrator(source, FakeStore(), registry, minutes_per_day=32)

    result = orchestrator.run_sync(START, END)

    assert isinstance(result, ConfirmationRequired)
    assert result.estimated_days == 3
    assert result.minutes_per_day == 32
    assert result.total_estimated_time_minutes == 96
    assert "96 minutes" in result.message
    assert source.calls == []
    assert registry.is_active is False


def test_confirmation_check_is_repeatable(registry):
    orchestrator = _orchestrator(FakeSource(), FakeStore(), registry)

    first = orchestrator.run_sync(START, START)
    second = orchestrator.run_sync(START, START)

    assert first == second
    assert first.estimated_days == 1


def test_sync_in_progress_reports_holder_and_touches_nothing(registry):
    holder = SyncLockState(
        initiator="bob",
        started_at=datetime(2024, 5, 10, 9, 0),
        start_date=date(2024, 4, 1),
        end_date=date(2024, 4, 3),
        estimated_minutes=64,
    )
    registry.acquire(holder)
    source = FakeSource()
    store = FakeStore()
    orchestrator = _orchestrator(source, store, registry)

    result = orchestrator.run_sync(START, END, confirmed=True, initiator="alice")

    assert isinstance(result, SyncInProgress)
    assert result.initiator == "bob"
    assert result.start_date == date(2024, 4, 1)
    assert result.end_date == date(2024, 4, 3)
    assert result.estimated_completion == datetime(2024, 5, 10, 10, 4)
    assert result.to_dict()["status"] == "sync_in_progress"
    assert source.calls == []
    assert store.batches == []
    # The other sync still owns the lock
    assert registry.try_describe_conflict() == holder


def test_end_before_start_is_an_error(registry):
    source = FakeSource()
    orchestrator = _orchestrator(source, FakeStore(), registry)

    result = orchestrator.run_sync(END, START, confirmed=True)

    assert isinstance(result, SyncError)
    assert source.calls == []


# ---------------------------------------------------------------------------
# Running
# ---------------------------------------------------------------------------

def test_end_to_end_counts(registry):
    good_1 = "https://images.hive.blog/1.jpg"
    good_2 = "https://images.hive.blog/2.jpg"
    broken = "https://dead.example/3.jpg"
    posts = [
        make_post(permlink="with-images", json_metadata=_metadata(good_1, good_2, broken)),
        make_post(permlink="garbage", json_metadata="{not json"),
    ]
    store = FakeStore()
    orchestrator = _orchestrator(FakeSource(posts), store, registry, live_urls={good_1, good_2})

    result = orchestrator.run_sync(START, END, confirmed=True, initiator="alice")

    assert isinstance(result, SyncSuccess)
    counters = result.counters
    assert counters.new_images_added == 2
    assert counters.invalid_or_inaccessible_images_skipped == 1
    assert counters.existing_images_skipped == 0
    assert counters.persistence_errors == 0
    assert counters.posts_fetched == 2
    assert counters.posts_with_images == 1
    assert store.urls == {good_1, good_2}
    assert {image.image_url for image in result.sample_images} == {good_1, good_2}
    assert result.database_size_bytes == 1024
    assert registry.is_active is False


def test_records_inherit_post_fields(registry):
    url = "https://images.hive.blog/1.jpg"
    post = make_post(
        author="carol",
        permlink="trip",
        title="",
        json_metadata=_metadata(url, tags=("travel", "Travel")),
    )
    orchestrator = _orchestrator(FakeSource([post]), FakeStore(), registry, live_urls={url})

    result = orchestrator.run_sync(START, END, confirmed=True)

    record = result.sample_images[0]
    assert record.author == "carol"
    assert record.post_url == "https://hive.blog/@carol/trip"
    assert record.title == "Image from carol"
    assert json.loads(record.tags) == ["Travel", "travel"]


def test_duplicates_from_previous_runs_are_skipped(registry):
    url = "https://images.hive.blog/1.jpg"
    store = FakeStore()
    store.urls.add(url)
    posts = [make_post(json_metadata=_metadata(url))]
    orchestrator = _orchestrator(FakeSource(posts), store, registry, live_urls={url})

    result = orchestrator.run_sync(START, END, confirmed=True)

    assert result.counters.new_images_added == 0
    assert result.counters.existing_images_skipped == 1


def test_batches_flush_at_threshold_and_at_end(registry):
    urls = [f"https://images.hive.blog/{i}.jpg" for i in range(5)]
    posts = [
        make_post(permlink=f"post-{i}", json_metadata=_metadata(url))
        for i, url in enumerate(urls)
    ]
    store = FakeStore()
    orchestrator = _orchestrator(
        FakeSource(posts), store, registry, live_urls=set(urls), batch_size=2
    )

    result = orchestrator.run_sync(START, END, confirmed=True)

    assert [len(batch) for batch in store.batches] == [2, 2, 1]
    # Batches follow post order
    assert [url for batch in store.batches for url in batch] == urls
    assert result.counters.new_images_added == 5


def test_sample_is_bounded(registry):
    urls = [f"https://images.hive.blog/{i}.jpg" for i in range(10)]
    posts = [make_post(json_metadata=_metadata(*urls))]
    orchestrator = _orchestrator(
        FakeSource(posts), FakeStore(), registry, live_urls=set(urls), sample_size=3
    )

    result = orchestrator.run_sync(START, END, confirmed=True)

    assert len(result.sample_images) == 3
    assert result.counters.new_images_added == 10


def test_failed_batch_is_counted_and_run_continues(registry):
    urls = [f"https://images.hive.blog/{i}.jpg" for i in range(5)]
    posts = [make_post(permlink=f"p{i}", json_metadata=_metadata(u)) for i, u in enumerate(urls)]
    store = FakeStore(fail_batches={1})
    orchestrator = _orchestrator(
        FakeSource(posts), store, registry, live_urls=set(urls), batch_size=2
    )

    result = orchestrator.run_sync(START, END, confirmed=True)

    assert isinstance(result, SyncSuccess)
    assert result.counters.persistence_errors == 2
    assert result.counters.new_images_added == 3
    assert "2 images could not be saved" in result.message
    assert len(store.batches) == 3


def test_pervasive_persistence_failure_aborts(registry):
    urls = [f"https://images.hive.blog/{i}.jpg" for i in range(8)]
    posts = [make_post(permlink=f"p{i}", json_metadata=_metadata(u)) for i, u in enumerate(urls)]
    store = FakeStore(fail_batches={1, 2, 3, 4})
    orchestrator = _orchestrator(
        FakeSource(posts),
        store,
        registry,
        live_urls=set(urls),
        batch_size=2,
        max_consecutive_batch_failures=3,
    )

    result = orchestrator.run_sync(START, END, confirmed=True)

    assert isinstance(result, SyncError)
    assert result.counters.persistence_errors == 6
    assert len(store.batches) == 3
    assert registry.is_active is False


# ---------------------------------------------------------------------------
# Failure containment
# ---------------------------------------------------------------------------

def test_fetch_failure_releases_lock(registry):
    source = FakeSource(error=RuntimeError("HiveSQL unreachable"))
    orchestrator = _orchestrator(source, FakeStore(), registry)

    result = orchestrator.run_sync(START, END, confirmed=True)

    assert isinstance(result, SyncError)
    assert "HiveSQL unreachable" in result.message
    assert registry.try_describe_conflict() is None


def test_unexpected_error_saves_pending_batch(registry):
    posts = [
        make_post(permlink="ok", json_metadata=_metadata("https://images.hive.blog/1.jpg")),
        make_post(permlink="boom", json_metadata=_metadata("https://x.example/y.png")),
    ]
    store = FakeStore()
    orchestrator = _orchestrator(FakeSource(posts), store, registry)

    def exploding_check_many(urls):
        if "https://x.example/y.png" in urls:
            raise RuntimeError("validator crashed")
        return list(urls), []

    orchestrator.validator.check_many = exploding_check_many

    result = orchestrator.run_sync(START, END, confirmed=True)

    assert isinstance(result, SyncError)
    assert result.counters.posts_fetched == 2
    assert result.counters.posts_with_images == 2
    assert result.counters.new_images_added == 1
    assert store.batches == [["https://images.hive.blog/1.jpg"]]
    assert registry.is_active is False


def test_pending_batch_that_cannot_be_saved_is_counted(registry):
    posts = [
        make_post(permlink="ok", json_metadata=_metadata("https://images.hive.blog/1.jpg")),
        make_post(permlink="boom", json_metadata=_metadata("https://x.example/y.png")),
    ]
    store = FakeStore(fail_batches={1})
    orchestrator = _orchestrator(FakeSource(posts), store, registry)

    def exploding_check_many(urls):
        if "https://x.example/y.png" in urls:
            raise RuntimeError("validator crashed")
        return list(urls), []

    orchestrator.validator.check_many = exploding_check_many

    result = orchestrator.run_sync(START, END, confirmed=True)

    assert isinstance(result, SyncError)
    assert result.counters.persistence_errors == 1
    assert result.counters.new_images_added == 0


def test_post_with_bad_timestamp_does_not_stop_the_run(registry):
    good = "https://images.hive.blog/1.jpg"
    bad = "https://images.hive.blog/2.jpg"
    posts = [
        make_post(permlink="ok", json_metadata=_metadata(good)),
        make_post(permlink="broken", json_metadata=_metadata(bad), timestamp=None),
    ]
    store = FakeStore()
    orchestrator = _orchestrator(FakeSource(posts), store, registry, live_urls={good, bad})

    result = orchestrator.run_sync(START, END, confirmed=True)

    assert isinstance(result, SyncSuccess)
    assert result.counters.new_images_added == 1
    assert result.counters.invalid_or_inaccessible_images_skipped == 1
    assert store.urls == {good}


def test_mixed_date_and_aware_datetime_bounds(registry):
    source = FakeSource()
    orchestrator = _orchestrator(source, FakeStore(), registry)

    result = orchestrator.run_sync(
        date(2024, 5, 1), datetime(2024, 5, 2, tzinfo=timezone.utc), confirmed=True
    )

    assert isinstance(result, SyncSuccess)
    assert len(source.calls) == 1


def test_mixed_naive_and_aware_bounds_are_compared_in_utc(registry):
    plus_two = timezone(timedelta(hours=2))
    orchestrator = _orchestrator(FakeSource(), FakeStore(), registry)

    # 2024-05-01 01:00+02:00 is 2024-04-30 23:00 UTC, before the naive start
    result = orchestrator.run_sync(
        datetime(2024, 5, 1, 0, 0), datetime(2024, 5, 1, 1, 0, tzinfo=plus_two), confirmed=True
    )

    assert isinstance(result, SyncError)
    assert estimate_sync_duration(
        date(2024, 5, 1), datetime(2024, 5, 3, 2, 0, tzinfo=plus_two), 32
    ) == (2, 64)


def test_lock_start_time_is_utc(registry):
    seen = []

    class RecordingSource(FakeSource):
        def fetch_posts(self, start_date, end_date):
            seen.append(registry.try_describe_conflict())
            return []

    orchestrator = _orchestrator(RecordingSource(), FakeStore(), registry)

    orchestrator.run_sync(START, END, confirmed=True, initiator="alice")

    assert seen[0].initiator == "alice"
    assert seen[0].started_at.tzinfo == timezone.utc


def test_store_size_failure_is_an_error(registry):
    store = FakeStore()

    def broken_size():
        raise OSError("permission denied")

    store.current_size_bytes = broken_size
    orchestrator = _orchestrator(FakeSource(), store, registry)

    result = orchestrator.run_sync(START, END, confirmed=True)

    assert isinstance(result, SyncError)
    assert registry.is_active is False


def test_lock_is_free_for_the_next_run(registry):
    orchestrator = _orchestrator(FakeSource(), FakeStore(), registry)

    first = orchestrator.run_sync(START, END, confirmed=True, initiator="alice")
    second = orchestrator.run_sync(START, END, confirmed=True, initiator="bob")

    assert isinstance(first, SyncSuccess)
    assert isinstance(second, SyncSuccess)


# ---------------------------------------------------------------------------
# Against a real SQLite store
# ---------------------------------------------------------------------------

def test_rerun_against_sqlite_store_is_idempotent(store, registry):
    urls = [f"https://images.hive.blog/{i}.jpg" for i in range(3)]
    posts = [make_post(json_metadata=_metadata(*urls))]
    orchestrator = _orchestrator(
        FakeSource(posts), store, registry, live_urls=set(urls), batch_size=2
    )

    first = orchestrator.run_sync(START, END, confirmed=True)
    second = orchestrator.run_sync(START, END, confirmed=True)

    assert first.counters.new_images_added == 3
    assert second.counters.new_images_added == 0
    assert second.counters.existing_images_skipped == 3
    assert store.count_images() == 3
    assert second.to_dict()["status"] == "success"
