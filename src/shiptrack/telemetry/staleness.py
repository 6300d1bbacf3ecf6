"""Track when the last valid report arrived."""

from __future__ import annotations


class StalenessMonitor:
    """Holds the monotonic time of the last accepted report, or nothing.

    Times are plain seconds from the caller's clock (normally
    :func:`time.monotonic`); the monitor never reads a clock itself.
    """

    def __init__(self) -> None:
        self._last_mark: float | None = None

    @property
    def last_mark(self) -> float | None:
        return self._last_mark

    def mark_fresh(self, now: float) -> None:
        self._last_mark = now

    def age(self, now: float) -> float | None:
        """Seconds since the last mark, or ``None`` if never marked."""
        if self._last_mark is None:
            return None
        return now - self._last_mark

    def is_stale(self, now: float, window: float) -> bool:
        """``True`` if never marked or the last mark is older than *window*."""
        age = self.age(now)
        return age is None or age > window

    def reset(self) -> None:
        self._last_mark = None
