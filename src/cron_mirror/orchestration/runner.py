"""Thread-based runner that drives one loop on a timer.

┌──────────────────────────────────────────────────────────────────┐
│  LoopRunner                                                       │
│                                                                   │
│   start()                                                         │
│      └─► daemon thread:                                           │
│            while not stop_event.wait(interval):                   │
│                run_once()                                         │
│                                                                   │
│   run_once()                                                      │
│      ├─ in-flight lock busy?  ─► skipped (single-flight)          │
│      ├─ loop.run_once() ok    ─► backoff.success()                │
│      └─ loop.run_once() raise ─► log, backoff.failure()           │
│                                                                   │
│   stop()  ─► stop_event.set(); join(timeout)                      │
└──────────────────────────────────────────────────────────────────┘

``interval`` is re-read before every wait, so a runner with a ``Backoff``
stretches its delay after failures and snaps back after a success.
Exceptions never leave ``run_once``; one loop failing cannot stop another.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol

from cron_mirror.observability.logging import get_logger
from cron_mirror.observability.metrics import loop_failures_counter
from cron_mirror.orchestration.backoff import Backoff
from cron_mirror.time import format_iso, utc_now

logger = get_logger(__name__)


class Loop(Protocol):
    """Anything with a name and a single-cycle ``run_once``."""

    name: str

    def run_once(self) -> Any: ...


@dataclass
class LoopStats:
    """Counters for one runner."""

    runs: int = 0
    successes: int = 0
    failures: int = 0
    skipped: int = 0
    last_started_at: datetime | None = None
    last_success_at: datetime | None = None
    last_error: str | None = None


class LoopRunner:
    """Runs ``loop.run_once()`` every ``interval`` seconds in a daemon thread."""

    def __init__(
        self,
        loop: Loop,
        interval: float,
        *,
        backoff: Backoff | None = None,
    ) -> None:
        self.loop = loop
        self.name = loop.name
        self._interval = interval
        self.backoff = backoff
        self.stats = LoopStats()
        self._inflight = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def interval(self) -> float:
        """Seconds until the next cycle."""
        if self.backoff is not None:
            return self.backoff.current
        return self._interval

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> Any:
        """Run one cycle now.

        Returns the loop's result, or None if the cycle failed or another
        cycle of this loop was already in flight.
        """
        if not self._inflight.acquire(blocking=False):
            self.stats.skipped += 1
            logger.warning("loop_cycle_skipped", loop=self.name, reason="in_flight")
            return None

        try:
            self.stats.runs += 1
            self.stats.last_started_at = utc_now()
            try:
                result = self.loop.run_once()
            except Exception as exc:
                self.stats.failures += 1
                self.stats.last_error = f"{type(exc).__name__}: {exc}"
                loop_failures_counter.labels(loop=self.name).inc()
                if self.backoff is not None:
                    self.backoff.failure()
                logger.exception(
                    "loop_cycle_failed",
                    loop=self.name,
                    error=str(exc),
                    next_interval=self.interval,
                )
                return None

            self.stats.successes += 1
            self.stats.last_success_at = utc_now()
            self.stats.last_error = None
            if self.backoff is not None and self.backoff.failures:
                self.backoff.success()
                logger.info("loop_recovered", loop=self.name, next_interval=self.interval)
            return result
        finally:
            self._inflight.release()

    def start(self) -> None:
        """Start the timer thread. The first cycle runs after one interval."""
        if self.is_running:
            logger.warning("loop_already_started", loop=self.name)
            return

        self._stop_event.clear()

        def _loop() -> None:
            logger.info("loop_started", loop=self.name, interval=self.interval)
            while not self._stop_event.wait(self.interval):
                self.run_once()
            logger.info("loop_stopped", loop=self.name)

        self._thread = threading.Thread(target=_loop, daemon=True, name=f"cron-mirror-{self.name}")
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the thread to stop and wait up to ``timeout`` for the current cycle."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                logger.warning("loop_stop_timeout", loop=self.name, timeout=timeout)
        self._thread = None

    def health(self) -> dict[str, Any]:
        return {
            "loop": self.name,
            "running": self.is_running,
            "interval_seconds": self.interval,
            "runs": self.stats.runs,
            "successes": self.stats.successes,
            "failures": self.stats.failures,
            "skipped": self.stats.skipped,
            "last_success_at": format_iso(self.stats.last_success_at),
            "last_error": self.stats.last_error,
        }
