# inventory/writer.py
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, List, Optional, Tuple

from .deadline import Deadline
from .errors import ITEM_WRITE_FAILED, SyncTimeout
from .logger import get_logger
from .models import ItemFailure, ReconciliationPlan, SyncResult
from .storage import ProductStore, now_utc_iso

logger = get_logger(__name__)

DEFAULT_MAX_WORKERS = 8

# (operation, external_id, callable performing the write)
Operation = Tuple[str, str, Callable[[], None]]


class PersistenceWriter:
    """
    Applies a ReconciliationPlan to the product store with a bounded pool of
    worker threads. A failing item is recorded and never stops its siblings.
    """

    def __init__(self, store: ProductStore, max_workers: int = DEFAULT_MAX_WORKERS):
        self.store = store
        self.max_workers = max(1, int(max_workers))

    def _operations(self, plan: ReconciliationPlan) -> List[Operation]:
        ops: List[Operation] = []
        for item in plan.to_create:
            ops.append(("create", item.external_id, lambda it=item: self.store.upsert(it)))
        for upd in plan.to_update:
            ops.append(("update", upd.item.external_id, lambda it=upd.item: self.store.upsert(it)))
        for product in plan.to_delete:
            eid = product.external_id
            ops.append(("delete", eid, lambda e=eid: self.store.delete(e)))
        return ops

    @staticmethod
    def _run_one(op: Operation, deadline: Deadline) -> None:
        if deadline.expired():
            raise SyncTimeout("Sync deadline exceeded before write")
        _, _, write = op
        write()

    def apply(self, plan: ReconciliationPlan, deadline: Optional[Deadline] = None) -> SyncResult:
        if not isinstance(plan, ReconciliationPlan):
            raise TypeError(f"Expected a ReconciliationPlan, got {type(plan).__name__}")

        deadline = deadline or Deadline()
        started = time.monotonic()
        result = SyncResult(unchanged=plan.unchanged, empty_fetch_suspected=plan.empty_fetch_suspected)

        ops = self._operations(plan)
        if not ops:
            result.duration_seconds = time.monotonic() - started
            result.synced_at = now_utc_iso()
            return result

        # Fails fast with StoreUnavailable before any item is attempted
        self.store.ping()

        timed_out = False
        with ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="sync-writer") as pool:
            futures = {pool.submit(self._run_one, op, deadline): op for op in ops}
            done, not_done = wait(futures, timeout=deadline.remaining())
            if not_done:
                timed_out = True
                for fut in not_done:
                    fut.cancel()
                # Writes already in progress are allowed to finish
                more_done, _ = wait([f for f in not_done if not f.cancelled()])
                done |= more_done

        for fut in done:
            operation, eid, _ = futures[fut]
            exc = fut.exception()
            if exc is None:
                if operation == "create":
                    result.created += 1
                elif operation == "update":
                    result.updated += 1
                else:
                    result.deleted += 1
                continue
            if isinstance(exc, SyncTimeout):
                timed_out = True
                continue
            logger.error("Failed to %s product %s: %s", operation, eid, exc)
            result.failures.append(
                ItemFailure(
                    external_id=eid,
                    operation=operation,
                    kind=ITEM_WRITE_FAILED,
                    reason=f"{type(exc).__name__}: {exc}",
                )
            )

        result.failures.sort(key=lambda f: f.external_id)
        result.failed = len(result.failures)
        result.duration_seconds = time.monotonic() - started
        result.synced_at = now_utc_iso()

        if timed_out:
            raise SyncTimeout(
                f"Write phase exceeded the sync deadline after "
                f"{result.created + result.updated + result.deleted} of {len(ops)} writes",
                partial_result=result,
            )

        logger.info(
            "Applied plan: %d created, %d updated, %d deleted, %d failed.",
            result.created, result.updated, result.deleted, result.failed,
        )
        return result
