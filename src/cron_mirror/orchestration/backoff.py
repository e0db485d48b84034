"""Exponential backoff state for a periodic loop."""

from __future__ import annotations

import threading


class Backoff:
    """Delay that multiplies on failure up to a ceiling and resets on success.

    Example:
        >>> b = Backoff(base=60, factor=2, ceiling=600)
        >>> b.failure(), b.failure(), b.failure(), b.failure(), b.failure()
        (120, 240, 480, 600, 600)
        >>> b.success()
        60
    """

    def __init__(self, base: float = 60.0, factor: float = 2.0, ceiling: float = 600.0) -> None:
        if base <= 0:
            raise ValueError("base must be positive")
        if factor < 1:
            raise ValueError("factor must be >= 1")
        self.base = base
        self.factor = factor
        self.ceiling = max(ceiling, base)
        self._current = base
        self._failures = 0
        self._lock = threading.Lock()

    @property
    def current(self) -> float:
        """Delay before the next attempt."""
        return self._current

    @property
    def failures(self) -> int:
        """Consecutive failures since the last success."""
        return self._failures

    def failure(self) -> float:
        with self._lock:
            self._failures += 1
            self._current = min(self.ceiling, self._current * self.factor)
            return self._current

    def success(self) -> float:
        with self._lock:
            self._failures = 0
            self._current = self.base
            return self._current
