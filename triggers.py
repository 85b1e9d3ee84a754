# triggers.py
"""
HTTP trigger endpoints for the catalog sync.

  /api/sync-products   manual trigger, shared API key (?key=, X-API-Key, JSON apiKey)
  /api/cron/sync       scheduled trigger, Authorization: Bearer <CRON_SECRET>
  /api/sync/auto       opportunistic trigger from the storefront, runs in the background
  /api/sync/status     current state and last result, shared API key
"""
import hmac
import threading
from typing import Any, Dict, Optional, Tuple

from flask import Flask, jsonify, request

from inventory.coordinator import SyncCoordinator
from inventory.config import Settings
from inventory.errors import ConcurrentRunRejected, SyncError, Unauthorized
from inventory.logger import get_logger
from inventory.storage import now_utc_iso

logger = get_logger(__name__)


def _secret_matches(provided: Optional[str], expected: str) -> bool:
    if not expected or not provided:
        return False
    return hmac.compare_digest(provided.encode(), expected.encode())


def _request_timeout(default: float) -> Optional[float]:
    raw = request.args.get("timeout")
    if raw is None:
        return default or None
    try:
        value = float(raw)
    except ValueError:
        return default or None
    return value if value > 0 else None


def _body(success: bool, status: int, **fields: Any) -> Tuple[Any, int]:
    payload: Dict[str, Any] = {"success": success, "timestamp": now_utc_iso()}
    payload.update({k: v for k, v in fields.items() if v is not None})
    return jsonify(payload), status


def _error_response(e: SyncError) -> Tuple[Any, int]:
    if isinstance(e, Unauthorized):
        return _body(False, 401, error=str(e), errorKind=e.kind)
    if isinstance(e, ConcurrentRunRejected):
        return _body(False, 409, error=str(e), errorKind=e.kind)
    partial = getattr(e, "partial_result", None)
    return _body(
        False,
        500,
        error=str(e),
        errorKind=e.kind,
        result=partial.to_dict() if partial else None,
    )


def create_app(coordinator: SyncCoordinator, settings: Settings) -> Flask:
    app = Flask(__name__)

    def require_api_key() -> None:
        provided = request.args.get("key") or request.headers.get("X-API-Key")
        if not provided and request.is_json:
            provided = (request.get_json(silent=True) or {}).get("apiKey")
        if not _secret_matches(provided, settings.sync_api_key):
            logger.warning("Rejected sync request from %s: invalid API key.", request.remote_addr)
            raise Unauthorized("Unauthorized: Invalid API key")

    def require_cron_secret() -> None:
        header = request.headers.get("Authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not _secret_matches(token.strip(), settings.cron_secret):
            logger.warning("Rejected cron sync request from %s.", request.remote_addr)
            raise Unauthorized("Unauthorized")

    def run_sync(trigger: str):
        timeout = _request_timeout(settings.sync_timeout_seconds)
        result = coordinator.run(trigger=trigger, timeout=timeout)
        if result.empty_fetch_suspected:
            message = "Catalog source returned no items; deletions skipped"
        else:
            message = (
                f"Synced {result.created + result.updated} products "
                f"({result.created} new), deleted {result.deleted}, {result.failed} failed"
            )
        return _body(True, 200, message=message, result=result.to_dict())

    @app.errorhandler(SyncError)
    def handle_sync_error(e: SyncError):
        return _error_response(e)

    @app.errorhandler(500)
    def handle_internal_error(e):
        original = getattr(e, "original_exception", None) or e
        return _body(False, 500, error=str(original), errorKind=type(original).__name__)

    @app.route("/api/sync-products", methods=["GET", "POST"])
    def manual_sync():
        require_api_key()
        return run_sync("manual")

    @app.route("/api/cron/sync", methods=["GET", "POST"])
    def cron_sync():
        require_cron_secret()
        return run_sync("scheduled")

    @app.route("/api/sync/auto", methods=["POST"])
    def opportunistic_sync():
        if coordinator.is_running:
            return _body(True, 200, message="Sync already running")

        def _background():
            try:
                coordinator.run_if_due(settings.auto_sync_minutes)
            except SyncError as e:
                logger.warning("Opportunistic sync failed (%s): %s", e.kind, e)
            except Exception as e:
                logger.exception("Opportunistic sync crashed: %s", e)

        if not coordinator.is_due(settings.auto_sync_minutes):
            return _body(True, 200, message="Sync not due")

        threading.Thread(target=_background, name="sync-opportunistic", daemon=True).start()
        return _body(True, 202, message="Sync started")

    @app.route("/api/sync/status", methods=["GET"])
    def sync_status():
        require_api_key()
        last = coordinator.last_successful_sync()
        return _body(
            True,
            200,
            state=coordinator.state.value,
            source=settings.source_name,
            lastOutcome=coordinator.last_outcome.value if coordinator.last_outcome else None,
            lastError=str(coordinator.last_error) if coordinator.last_error else None,
            result=last.to_dict() if last else None,
        )

    return app
