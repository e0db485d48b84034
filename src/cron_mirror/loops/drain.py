"""Drain loops: execute queued command requests against the executor.

Each loop owns one queue table. Per cycle it takes the oldest queued rows
(up to ``batch_size``) and handles them one at a time:

    claim (queued -> running, committed)
      -> executor command (hard timeout, no DB connection held)
      -> complete (running -> done | error, with result payload)

A request whose claim matches no row was taken or failed by someone else
and is skipped.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from typing import Any

from cron_mirror.db.database import Database
from cron_mirror.errors import ExecutorError
from cron_mirror.executor.client import CronExecutor
from cron_mirror.models import (
    CommandOutput,
    CommandRequest,
    DrainResult,
    RequestKind,
    RequestStatus,
)
from cron_mirror.observability.logging import get_logger
from cron_mirror.observability.metrics import requests_processed_counter
from cron_mirror.repositories.requests import RequestQueueRepository

logger = get_logger(__name__)

NOT_FOUND_RE = re.compile(r"not\s+found|no\s+such", re.IGNORECASE)


def tail(text: str, limit: int) -> str:
    """Last ``limit`` characters of ``text``."""
    if limit <= 0:
        return ""
    return text[-limit:]


class DrainLoop(ABC):
    """Base drain loop; subclasses set ``kind`` and implement :meth:`execute`."""

    kind: RequestKind

    def __init__(
        self,
        db: Database,
        executor: CronExecutor,
        project_id: str,
        *,
        timeout: float,
        batch_size: int = 5,
        tail_chars: int = 4000,
    ) -> None:
        self.db = db
        self.executor = executor
        self.project_id = project_id
        self.timeout = timeout
        self.batch_size = batch_size
        self.tail_chars = tail_chars

    @property
    def name(self) -> str:
        return f"drain-{self.kind.value}"

    def _repo(self, conn) -> RequestQueueRepository:
        return RequestQueueRepository(
            conn, self.db.dialect, project_id=self.project_id, kind=self.kind
        )

    @abstractmethod
    def execute(self, request: CommandRequest) -> CommandOutput:
        """Run the executor command for one claimed request."""

    def build_result(
        self, request: CommandRequest, output: CommandOutput
    ) -> tuple[RequestStatus, dict[str, Any]]:
        """Terminal status and result payload for one executor outcome."""
        payload: dict[str, Any] = {
            "jobId": request.job_id,
            "exitCode": output.exit_code,
            "durationMs": output.duration_ms,
            "stdoutTail": tail(output.stdout, self.tail_chars),
            "stderrTail": tail(output.stderr, self.tail_chars),
        }
        if output.timed_out:
            payload["timedOut"] = True
        status = RequestStatus.DONE if output.ok else RequestStatus.ERROR
        return status, payload

    def run_once(self) -> DrainResult:
        """Drain one batch. Store errors propagate; executor errors become results."""
        with self.db.connection() as conn:
            queued = self._repo(conn).list_queued(self.batch_size)

        result = DrainResult(kind=self.kind)
        for request in queued:
            self._process(request, result)

        if result.processed:
            logger.info(
                "drain_batch_processed",
                queue=self.kind.value,
                processed=result.processed,
                done=result.done,
                failed=result.failed,
                skipped=result.skipped,
            )
        return result

    def _process(self, request: CommandRequest, result: DrainResult) -> None:
        log = logger.bind(queue=self.kind.value, request_id=request.id, job_id=request.job_id)

        with self.db.connection() as conn:
            repo = self._repo(conn)
            claimed = repo.claim(request.id)
            repo.commit()
        if not claimed:
            log.info("request_claim_skipped")
            result.skipped += 1
            return

        result.processed += 1
        result.request_ids.append(request.id)
        log.info("request_claimed")

        try:
            output = self.execute(request)
        except ExecutorError as exc:
            log.error("request_executor_failed", error=str(exc))
            output = CommandOutput(exit_code=None, stdout="", stderr=str(exc), duration_ms=0)
        except Exception as exc:
            # the row is already running; it must still reach a terminal status
            log.exception("request_execute_crashed", error=str(exc))
            output = CommandOutput(
                exit_code=None,
                stdout="",
                stderr=f"{type(exc).__name__}: {exc}",
                duration_ms=0,
            )

        status, payload = self.build_result(request, output)

        with self.db.connection() as conn:
            repo = self._repo(conn)
            completed = repo.complete(request.id, status, payload)
            repo.commit()

        if not completed:
            log.warning("request_complete_skipped", status=status.value)
            return

        if status is RequestStatus.DONE:
            result.done += 1
        else:
            result.failed += 1
        requests_processed_counter.labels(kind=self.kind.value, status=status.value).inc()
        log.info(
            "request_completed",
            status=status.value,
            exit_code=output.exit_code,
            duration_ms=output.duration_ms,
            timed_out=output.timed_out,
        )


class RunRequestDrain(DrainLoop):
    """``cron run <jobId> --force`` for ``cron_run_requests``."""

    kind = RequestKind.RUN

    def execute(self, request: CommandRequest) -> CommandOutput:
        return self.executor.run_job(request.job_id, timeout=self.timeout)


class DeleteRequestDrain(DrainLoop):
    """``cron rm <jobId>`` for ``cron_delete_requests``.

    A job the executor reports as missing counts as removed.
    """

    kind = RequestKind.DELETE

    def execute(self, request: CommandRequest) -> CommandOutput:
        return self.executor.remove_job(request.job_id, timeout=self.timeout)

    def build_result(
        self, request: CommandRequest, output: CommandOutput
    ) -> tuple[RequestStatus, dict[str, Any]]:
        _, payload = super().build_result(request, output)
        # only trust the output of a command that actually ran to completion
        looks_missing = output.exit_code is not None and bool(
            NOT_FOUND_RE.search(payload["stderrTail"]) or NOT_FOUND_RE.search(payload["stdoutTail"])
        )
        removed = output.ok or looks_missing
        payload["removed"] = removed
        return (RequestStatus.DONE if removed else RequestStatus.ERROR), payload


class PatchRequestDrain(DrainLoop):
    """``cron edit <jobId> ...`` for ``cron_job_patch_requests``."""

    kind = RequestKind.PATCH

    def execute(self, request: CommandRequest) -> CommandOutput:
        return self.executor.edit_job(request.job_id, request.patch or {}, timeout=self.timeout)
