"""Stuck-request watchdog.

Requests that sit in ``queued`` longer than ``max_age_seconds`` were never
claimed by a drain loop. The watchdog fails them so the dashboard stops
showing them as pending, then records an audit activity. The audit write
is best-effort and never undoes the status change.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import timedelta

from cron_mirror.db.database import Database
from cron_mirror.models import CommandRequest, RequestKind
from cron_mirror.observability.logging import get_logger
from cron_mirror.observability.metrics import watchdog_failed_counter
from cron_mirror.repositories.activities import ActivityRepository
from cron_mirror.repositories.requests import RequestQueueRepository
from cron_mirror.time import format_iso, utc_now

logger = get_logger(__name__)


class Watchdog:
    """Force-fails abandoned queued requests across all command queues."""

    name = "watchdog"

    def __init__(
        self,
        db: Database,
        project_id: str,
        *,
        max_age_seconds: float = 120.0,
        batch_size: int = 25,
        executor_bin: str | None = None,
        actor_agent_key: str = "agent:cron-mirror",
        kinds: Sequence[RequestKind] = (RequestKind.DELETE, RequestKind.RUN, RequestKind.PATCH),
    ) -> None:
        self.db = db
        self.project_id = project_id
        self.max_age_seconds = max_age_seconds
        self.batch_size = batch_size
        self.executor_bin = executor_bin
        self.actor_agent_key = actor_agent_key
        self.kinds = tuple(kinds)

    def run_once(self) -> dict[RequestKind, int]:
        """Fail stale requests in every queue; returns counts per queue."""
        now = utc_now()
        cutoff = now - timedelta(seconds=self.max_age_seconds)
        counts = {kind: self._sweep(kind, cutoff) for kind in self.kinds}

        total = sum(counts.values())
        if total:
            logger.info(
                "watchdog_swept",
                failed=total,
                **{kind.value: n for kind, n in counts.items() if n},
            )
        return counts

    def _sweep(self, kind: RequestKind, cutoff) -> int:
        with self.db.connection() as conn:
            repo = RequestQueueRepository(conn, self.db.dialect, project_id=self.project_id, kind=kind)
            stale = repo.list_stale(cutoff, self.batch_size)

        failed = 0
        for request in stale:
            with self.db.connection() as conn:
                repo = RequestQueueRepository(
                    conn, self.db.dialect, project_id=self.project_id, kind=kind
                )
                changed = repo.force_error(request.id, self.diagnostic(request))
                repo.commit()
            if not changed:
                # claimed by a drain loop since the read
                continue

            failed += 1
            watchdog_failed_counter.labels(kind=kind.value).inc()
            logger.warning(
                "watchdog_request_failed",
                queue=kind.value,
                request_id=request.id,
                job_id=request.job_id,
            )
            self._audit(request)
        return failed

    def diagnostic(self, request: CommandRequest) -> dict:
        """Result payload written onto a force-failed request."""
        return {
            "ref": request.job_id,
            "error": (
                f"Request stuck in queued > {round(self.max_age_seconds)}s; "
                "marking as error so UI can recover."
            ),
            "requestedAt": format_iso(request.requested_at),
            "detectedAt": format_iso(utc_now()),
            "executorBin": self.executor_bin,
        }

    def _audit(self, request: CommandRequest) -> None:
        message = (
            f"Marked stuck {request.kind.table} request as error "
            f"(ref {request.job_id}, req {request.id})."
        )
        try:
            with self.db.connection() as conn:
                activities = ActivityRepository(conn, self.db.dialect, project_id=self.project_id)
                activities.record(
                    type="watchdog",
                    message=message,
                    actor_agent_key=self.actor_agent_key,
                )
                activities.commit()
        except Exception as exc:
            logger.warning("watchdog_audit_failed", request_id=request.id, error=str(exc))
