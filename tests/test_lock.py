"""Tests for SyncLockRegistry: test-and-set, idempotent release and conflict details."""

import threading
from datetime import date, datetime

from hivelens.sync.lock import SyncLockRegistry, SyncLockState, get_default_registry


def _state(initiator: str = "alice") -> SyncLockState:
    return SyncLockState(
        initiator=initiator,
        started_at=datetime(2024, 5, 10, 9, 0),
        start_date=date(2024, 5, 1),
        end_date=date(2024, 5, 4),
        estimated_minutes=96,
    )


def test_new_registry_is_empty():
    registry = SyncLockRegistry()

    assert registry.try_describe_conflict() is None
    assert registry.is_active is False


def test_acquire_then_describe():
    registry = SyncLockRegistry()
    state = _state()

    assert registry.acquire(state) is None
    assert registry.is_active is True
    assert registry.try_describe_conflict() == state


def test_second_acquire_returns_holder_and_keeps_it():
    registry = SyncLockRegistry()
    first = _state("alice")
    registry.acquire(first)

    holder = registry.acquire(_state("bob"))

    assert holder == first
    assert registry.try_describe_conflict().initiator == "alice"


def test_release_is_idempotent():
    registry = SyncLockRegistry()
    registry.acquire(_state())

    registry.release()
    registry.release()

    assert registry.try_describe_conflict() is None
    assert registry.acquire(_state("bob")) is None


def test_estimated_completion():
    assert _state().estimated_completion == datetime(2024, 5, 10, 10, 36)


def test_only_one_thread_wins_the_lock():
    registry = SyncLockRegistry()
    start = threading.Barrier(8)
    winners = []

    def contender(name: str):
        start.wait()
        if registry.acquire(_state(name)) is None:
            winners.append(name)

    threads = [threading.Thread(target=contender, args=(f"user{i}",)) for i in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(winners) == 1
    assert registry.try_describe_conflict().initiator == winners[0]


def test_independent_registries_do_not_interfere():
    first, second = SyncLockRegistry(), SyncLockRegistry()
    first.acquire(_state())

    assert second.try_describe_conflict() is None


def test_default_registry_is_shared():
    assert get_default_registry() is get_default_registry()
