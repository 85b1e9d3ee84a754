# inventory/deadline.py
import time

from .errors import SyncTimeout


class Deadline:
    """
    Wall-clock budget for one sync run, measured on the monotonic clock.
    A Deadline built with ``seconds=None`` (or <= 0) never expires.
    """

    def __init__(self, seconds: float | None = None):
        self.seconds = seconds if seconds and seconds > 0 else None
        self._expires_at = (
            time.monotonic() + self.seconds if self.seconds is not None else None
        )

    def remaining(self) -> float | None:
        if self._expires_at is None:
            return None
        return max(0.0, self._expires_at - time.monotonic())

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0

    def check(self, phase: str) -> None:
        if self.expired():
            raise SyncTimeout(f"Sync deadline of {self.seconds:.0f}s exceeded during {phase}")

    def timeout(self, default: float) -> float:
        """Per-call timeout: the smaller of ``default`` and the time left."""
        remaining = self.remaining()
        if remaining is None:
            return default
        if remaining <= 0:
            raise SyncTimeout(f"Sync deadline of {self.seconds:.0f}s exceeded")
        return min(default, remaining)
