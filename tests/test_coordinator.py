import threading
import time

import pytest

from conftest import make_item
from inventory.coordinator import SyncCoordinator, SyncState
from inventory.errors import ConcurrentRunRejected, SourceUnavailable, SyncTimeout


class StaticSource:
    name = "static"

    def __init__(self, items=None, error=None):
        self.items = list(items or [])
        self.error = error
        self.calls = 0

    def fetch_all(self, deadline=None):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.items)


class BlockingSource(StaticSource):
    def __init__(self, items=None):
        super().__init__(items)
        self.entered = threading.Event()
        self.release = threading.Event()

    def fetch_all(self, deadline=None):
        self.entered.set()
        self.release.wait(5)
        return super().fetch_all(deadline)


class SlowSource(StaticSource):
    def fetch_all(self, deadline=None):
        time.sleep(0.05)
        return super().fetch_all(deadline)


def test_full_run_creates_updates_and_deletes(store):
    store.upsert(make_item("A", 499))
    store.upsert(make_item("C", 100))
    source = StaticSource([make_item("A", 500), make_item("B", 300)])
    alerts = []
    coordinator = SyncCoordinator(source, store, alert=lambda r, e: alerts.append((r, e)))

    result = coordinator.run(trigger="manual")

    assert (result.created, result.updated, result.deleted, result.failed) == (1, 1, 1, 0)
    assert result.source == "static"
    assert result.trigger == "manual"
    assert {p.external_id for p in store.read_all()} == {"A", "B"}
    assert coordinator.state == SyncState.IDLE
    assert coordinator.last_outcome == SyncState.COMPLETED
    assert store.get_last_sync().synced_at == result.synced_at
    assert alerts == [(result, None)]


def test_empty_fetch_never_empties_the_store(store):
    for i in range(5):
        store.upsert(make_item(str(i)))
    coordinator = SyncCoordinator(StaticSource([]), store)

    result = coordinator.run()

    assert result.empty_fetch_suspected
    assert result.deleted == 0
    assert len(store.read_all()) == 5
    assert store.get_last_sync() is None


def test_second_overlapping_run_is_rejected(store):
    source = BlockingSource([make_item("A")])
    coordinator = SyncCoordinator(source, store)
    outcome = {}

    def first():
        outcome["result"] = coordinator.run(trigger="manual")

    worker = threading.Thread(target=first)
    worker.start()
    assert source.entered.wait(5)
    assert coordinator.state == SyncState.RUNNING

    with pytest.raises(ConcurrentRunRejected):
        coordinator.run(trigger="manual")
    assert coordinator.run_if_due(0) is None

    source.release.set()
    worker.join(5)
    assert outcome["result"].created == 1
    assert source.calls == 1
    assert coordinator.state == SyncState.IDLE


def test_lock_is_released_after_fatal_error(store):
    store.upsert(make_item("A"))
    source = StaticSource(error=SourceUnavailable("square: connection refused"))
    coordinator = SyncCoordinator(source, store)

    with pytest.raises(SourceUnavailable):
        coordinator.run()

    assert coordinator.state == SyncState.IDLE
    assert coordinator.last_outcome == SyncState.FAILED
    assert isinstance(coordinator.last_error, SourceUnavailable)
    assert len(store.read_all()) == 1

    source.error = None
    source.items = [make_item("A")]
    assert coordinator.run().unchanged == 1


def test_timeout_releases_lock(store):
    coordinator = SyncCoordinator(SlowSource([make_item("A")]), store)

    with pytest.raises(SyncTimeout):
        coordinator.run(timeout=0.01)

    assert coordinator.state == SyncState.IDLE
    assert store.read_all() == []


def test_synced_at_is_monotonic(store):
    coordinator = SyncCoordinator(StaticSource([make_item("A")]), store)
    first = coordinator.run()
    second = coordinator.run()
    assert second.synced_at > first.synced_at


def test_run_if_due_skips_fresh_sync(store):
    source = StaticSource([make_item("A")])
    coordinator = SyncCoordinator(source, store)

    assert coordinator.run_if_due(30) is not None
    assert coordinator.run_if_due(30) is None
    assert source.calls == 1


def test_alert_failure_does_not_change_outcome(store):
    def broken_alert(result, error):
        raise RuntimeError("smtp down")

    coordinator = SyncCoordinator(StaticSource([make_item("A")]), store, alert=broken_alert)
    assert coordinator.run().created == 1
