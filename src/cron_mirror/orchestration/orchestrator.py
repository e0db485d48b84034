"""Wires the mirror, drain and watchdog loops onto their runners."""

from __future__ import annotations

from typing import Any

from cron_mirror.db.database import Database
from cron_mirror.executor.client import CronExecutor
from cron_mirror.loops.drain import DeleteRequestDrain, DrainLoop, PatchRequestDrain, RunRequestDrain
from cron_mirror.loops.mirror import MirrorLoop
from cron_mirror.loops.watchdog import Watchdog
from cron_mirror.observability.logging import get_logger
from cron_mirror.orchestration.backoff import Backoff
from cron_mirror.orchestration.runner import LoopRunner
from cron_mirror.settings import Settings
from cron_mirror.time import utc_now

logger = get_logger(__name__)


class Heartbeat:
    """Logs that the process is alive and how fresh the mirror is."""

    name = "heartbeat"

    def __init__(self, mirror: MirrorLoop) -> None:
        self.mirror = mirror

    def run_once(self) -> int | None:
        last = self.mirror.last_success_at
        age = round((utc_now() - last).total_seconds()) if last else None
        logger.info("alive", last_mirror_ok_seconds_ago=age)
        return age


class Orchestrator:
    """Owns one runner per loop.

    Only the mirror runner carries a ``Backoff``; drains, watchdog and
    heartbeat run on fixed intervals.
    """

    def __init__(self, settings: Settings, db: Database, executor: CronExecutor) -> None:
        self.settings = settings
        self.db = db
        self.executor = executor
        project_id = settings.project_id

        self.mirror = MirrorLoop(
            db,
            executor,
            project_id,
            instructions_max_chars=settings.instructions_max_chars,
        )
        self.drains: list[DrainLoop] = [
            RunRequestDrain(
                db,
                executor,
                project_id,
                timeout=settings.run_timeout_seconds,
                batch_size=settings.drain_batch_size,
                tail_chars=settings.output_tail_chars,
            ),
            DeleteRequestDrain(
                db,
                executor,
                project_id,
                timeout=settings.delete_timeout_seconds,
                batch_size=settings.drain_batch_size,
                tail_chars=settings.output_tail_chars,
            ),
            PatchRequestDrain(
                db,
                executor,
                project_id,
                timeout=settings.patch_timeout_seconds,
                batch_size=settings.drain_batch_size,
                tail_chars=settings.output_tail_chars,
            ),
        ]
        self.watchdog = Watchdog(
            db,
            project_id,
            max_age_seconds=settings.watchdog_max_age_seconds,
            batch_size=settings.watchdog_batch_size,
            executor_bin=settings.executor_bin,
            actor_agent_key=settings.actor_agent_key,
        )
        self.heartbeat = Heartbeat(self.mirror)

        self.mirror_backoff = Backoff(
            base=settings.mirror_interval_seconds,
            factor=2.0,
            ceiling=settings.mirror_backoff_max_seconds,
        )
        self.mirror_runner = LoopRunner(
            self.mirror, settings.mirror_interval_seconds, backoff=self.mirror_backoff
        )
        self.runners: list[LoopRunner] = [
            self.mirror_runner,
            *(LoopRunner(drain, settings.drain_interval_seconds) for drain in self.drains),
            LoopRunner(self.watchdog, settings.watchdog_interval_seconds),
            LoopRunner(self.heartbeat, settings.heartbeat_interval_seconds),
        ]

    def start(self) -> None:
        """Run one mirror cycle immediately, then start every timer."""
        logger.info(
            "service_starting",
            project_id=self.settings.project_id,
            executor_bin=self.executor.executor_bin,
            backend=self.db.backend,
        )
        initial = self.mirror_runner.run_once()
        if initial is not None:
            logger.info("initial_mirror", changed=initial.changed, count=initial.count)
        for runner in self.runners:
            runner.start()

    def stop(self, timeout: float = 5.0) -> None:
        """Stop every runner, waiting up to ``timeout`` for each in-flight cycle."""
        for runner in self.runners:
            runner.stop(timeout=timeout)
        logger.info("service_stopped")

    def health(self) -> dict[str, Any]:
        return {
            "project_id": self.settings.project_id,
            "loops": [runner.health() for runner in self.runners],
        }
