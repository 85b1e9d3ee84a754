# inventory/coordinator.py
import datetime
import enum
import threading
import time
from typing import Callable, Optional

import pytz

from .deadline import Deadline
from .errors import ConcurrentRunRejected, SyncError, SyncTimeout
from .logger import get_logger
from .models import SyncResult
from .reconcile import describe_changes, plan_sync
from .storage import ProductStore, now_utc_iso
from .writer import PersistenceWriter

logger = get_logger(__name__)

AlertHook = Callable[[Optional[SyncResult], Optional[BaseException]], None]


class SyncState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class SyncCoordinator:
    """
    Single entry point for every sync trigger (manual, scheduled,
    opportunistic). At most one run is active per coordinator; overlapping
    requests are rejected with ConcurrentRunRejected.
    """

    def __init__(
        self,
        source,
        store: ProductStore,
        write_concurrency: int = 8,
        alert: Optional[AlertHook] = None,
    ):
        self.source = source
        self.store = store
        self.writer = PersistenceWriter(store, max_workers=write_concurrency)
        self.alert = alert

        self._lock = threading.Lock()
        self._state = SyncState.IDLE
        self.last_outcome: Optional[SyncState] = None
        self.last_result: Optional[SyncResult] = None
        self.last_error: Optional[SyncError] = None

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == SyncState.RUNNING

    def _next_synced_at(self) -> str:
        now = now_utc_iso()
        previous = self.last_result.synced_at if self.last_result else ""
        if previous and now <= previous:
            # Clock stepped backwards; keep synced_at monotonic
            prev_dt = datetime.datetime.fromisoformat(previous)
            now = (prev_dt + datetime.timedelta(microseconds=1)).isoformat()
        return now

    def run(self, trigger: str = "manual", timeout: Optional[float] = None) -> SyncResult:
        if not self._lock.acquire(blocking=False):
            logger.warning("Rejected %s sync request: a run is already active.", trigger)
            raise ConcurrentRunRejected()

        outcome = SyncState.FAILED
        result: Optional[SyncResult] = None
        error: Optional[BaseException] = None
        try:
            self._state = SyncState.RUNNING
            logger.info("Starting %s catalog sync from %s.", trigger, self.source.name)
            result = self._run_pipeline(trigger, Deadline(timeout))
            outcome = SyncState.COMPLETED
            self.last_result = result
            self.last_error = None
            return result
        except SyncError as e:
            error = e
            self.last_error = e
            logger.error("%s catalog sync failed (%s): %s", trigger.capitalize(), e.kind, e)
            raise
        except Exception as e:
            error = e
            logger.exception("Unexpected error during %s catalog sync: %s", trigger, e)
            raise
        finally:
            self.last_outcome = outcome
            self._state = SyncState.IDLE
            self._lock.release()
            self._notify(result, error)

    def _run_pipeline(self, trigger: str, deadline: Deadline) -> SyncResult:
        started = time.monotonic()

        items = self.source.fetch_all(deadline=deadline)
        deadline.check("fetch")

        self.store.ping()
        persisted = self.store.read_all()
        plan = plan_sync(items, persisted)
        for line in describe_changes(plan):
            logger.debug("Update %s", line)

        try:
            result = self.writer.apply(plan, deadline=deadline)
        except SyncTimeout as e:
            if e.partial_result is not None:
                e.partial_result.source = self.source.name
                e.partial_result.trigger = trigger
            raise

        result.source = self.source.name
        result.trigger = trigger
        result.empty_fetch_suspected = plan.empty_fetch_suspected
        result.duration_seconds = time.monotonic() - started
        result.synced_at = self._next_synced_at()

        if plan.empty_fetch_suspected:
            logger.warning("Sync completed without changes: empty fetch suspected.")
        else:
            self.store.save_last_sync(result)

        logger.info(
            "Catalog sync (%s) finished in %.1fs: %d created, %d updated, "
            "%d deleted, %d unchanged, %d failed.",
            trigger, result.duration_seconds, result.created, result.updated,
            result.deleted, result.unchanged, result.failed,
        )
        return result

    def _notify(self, result: Optional[SyncResult], error: Optional[BaseException]) -> None:
        if self.alert is None:
            return
        try:
            self.alert(result, error)
        except Exception as e:
            logger.exception("Sync alert hook failed: %s", e)

    def last_successful_sync(self) -> Optional[SyncResult]:
        if self.last_result and not self.last_result.empty_fetch_suspected:
            return self.last_result
        return self.store.get_last_sync()

    def is_due(self, min_interval_minutes: int) -> bool:
        last = self.last_successful_sync()
        if not last or not last.synced_at:
            return True
        age = datetime.datetime.now(tz=pytz.UTC) - datetime.datetime.fromisoformat(last.synced_at)
        return age >= datetime.timedelta(minutes=min_interval_minutes)

    def run_if_due(self, min_interval_minutes: int, trigger: str = "opportunistic") -> Optional[SyncResult]:
        """
        Best-effort run for callers that should never wait on or fail because
        of the sync: skipped when a run is active or the last successful sync
        is younger than ``min_interval_minutes``.
        """
        if self.is_running:
            logger.debug("Skipping %s sync: a run is already active.", trigger)
            return None
        if not self.is_due(min_interval_minutes):
            logger.debug("Skipping %s sync: last sync is fresher than %d minutes.", trigger, min_interval_minutes)
            return None

        try:
            return self.run(trigger=trigger)
        except ConcurrentRunRejected:
            return None
