import os
import random
import time

from inventory.alerts import notify_sync_outcome
from inventory.config import Settings
from inventory.coordinator import SyncCoordinator
from inventory.errors import SyncError
from inventory.logger import get_logger
from inventory.storage import ProductStore
from sources import build_source

logger = get_logger(__name__)

MODE = os.getenv("MODE", "daemon").lower()  # "once", "daemon" or "serve"


def jitter_sleep_minutes(minutes: int) -> None:
    base = max(1, minutes)
    jitter = random.uniform(-0.1 * base, 0.1 * base)
    total = base + jitter
    logger.info("Sleeping %.1f minutes before next sync.", total)
    time.sleep(total * 60)


def build_coordinator(settings: Settings) -> SyncCoordinator:
    store = ProductStore(settings.db_path)
    store.ensure_db()
    source = build_source(settings)
    logger.info(
        "Catalog source: %s; store: %s; write concurrency: %d",
        source.name, settings.db_path, settings.write_concurrency,
    )
    return SyncCoordinator(
        source,
        store,
        write_concurrency=settings.write_concurrency,
        alert=notify_sync_outcome,
    )


def run_once(settings: Settings) -> int:
    coordinator = build_coordinator(settings)
    try:
        coordinator.run(trigger="scheduled", timeout=settings.sync_timeout_seconds or None)
    except SyncError as e:
        logger.error("Scheduled sync failed (%s): %s", e.kind, e)
        return 1
    return 0


def run_daemon(settings: Settings) -> None:
    logger.info("Starting sync daemon; sync every %d minutes.", settings.poll_minutes)
    coordinator = build_coordinator(settings)

    while True:
        try:
            coordinator.run(trigger="scheduled", timeout=settings.sync_timeout_seconds or None)
        except SyncError as e:
            # Retrying is left to the next cycle
            logger.error("Scheduled sync failed (%s): %s", e.kind, e)
        except Exception as e:
            logger.exception("Unhandled error in sync daemon loop: %s", e)

        jitter_sleep_minutes(settings.poll_minutes)


def run_server(settings: Settings) -> None:
    from triggers import create_app

    app = create_app(build_coordinator(settings), settings)
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8080"))
    logger.info("Serving sync triggers on %s:%d", host, port)
    # One coordinator per process: run a single process with threads
    app.run(host=host, port=port, threaded=True)


if __name__ == "__main__":
    cfg = Settings.from_env()
    try:
        if MODE == "once":
            raise SystemExit(run_once(cfg))
        elif MODE == "serve":
            run_server(cfg)
        else:
            run_daemon(cfg)
    except Exception as e:
        logger.exception("Fatal sync service error: %s", e)
        raise SystemExit(2)
