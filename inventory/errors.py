# inventory/errors.py
"""
Error kinds raised or recorded by the sync engine.

Every raised error carries a ``kind`` string that the trigger endpoints put in
their JSON response. Fatal kinds abort a run before any write; per-item kinds
are recorded in the SyncResult instead of being raised.
"""

EMPTY_FETCH_SUSPECTED = "EmptyFetchSuspected"
ITEM_WRITE_FAILED = "ItemWriteFailed"


class SyncError(Exception):
    kind = "SyncError"


class SourceUnavailable(SyncError):
    """The external catalog could not be reached."""

    kind = "SourceUnavailable"


class AuthError(SourceUnavailable):
    """The external catalog rejected our credentials."""

    kind = "AuthError"


class MalformedResponse(SyncError):
    """The external catalog answered with something we cannot read."""

    kind = "MalformedResponse"

    def __init__(self, message: str, sample: str = ""):
        super().__init__(message)
        self.sample = sample[:500] if sample else ""


class StoreUnavailable(SyncError):
    kind = "StoreUnavailable"


class ConcurrentRunRejected(SyncError):
    kind = "ConcurrentRunRejected"

    def __init__(self, message: str = "A catalog sync is already running"):
        super().__init__(message)


class Unauthorized(SyncError):
    kind = "Unauthorized"


class SyncTimeout(SyncError):
    kind = "Timeout"

    def __init__(self, message: str, partial_result=None):
        super().__init__(message)
        self.partial_result = partial_result
