"""Mirror loop: copy the executor's job list into ``cron_mirror``.

One cycle:

1. ``cron list --all --json`` (bounded timeout). Any failure aborts the
   cycle before the store is touched.
2. Fingerprint the listing and compare with the sentinel row.
3. Unchanged: prune stale rows (read-only when nothing is stale) and stop.
4. Changed: upsert every job row, commit, then upsert the sentinel, commit.
   Rows land before the sentinel so a crash in between is retried by the
   next cycle.
5. Prune rows for jobs the executor no longer reports (best-effort).
"""

from __future__ import annotations

import re

from cron_mirror.db.database import Database
from cron_mirror.executor.client import CronExecutor
from cron_mirror.executor.schema import CronJob, CronSchedule, EverySchedule, OtherSchedule
from cron_mirror.fingerprint import fingerprint_jobs
from cron_mirror.models import DEFAULT_TARGET_AGENT_KEY, MirrorResult, MirrorRow
from cron_mirror.observability.logging import get_logger
from cron_mirror.observability.metrics import mirror_cycles_counter, mirrored_jobs_gauge
from cron_mirror.repositories.mirror import MirrorRepository
from cron_mirror.time import from_epoch_ms, utc_now

logger = get_logger(__name__)

AGENT_HEADER_RE = re.compile(r"@agent:([a-zA-Z0-9_:-]+)")


def derive_target_agent_key(job: CronJob, instructions: str | None) -> str:
    """Agent a job addresses: ``sessionTarget``, an ``@agent:`` header, or the default."""
    if job.session_target:
        return job.session_target
    if instructions:
        match = AGENT_HEADER_RE.search(instructions)
        if match:
            name = match.group(1).removeprefix("agent:")
            return f"agent:{name}"
    return DEFAULT_TARGET_AGENT_KEY


def schedule_columns(job: CronJob) -> tuple[str | None, str | None, str | None]:
    """Return ``(schedule_kind, schedule_expr, tz)`` for a job."""
    schedule = job.schedule
    if isinstance(schedule, CronSchedule):
        return "cron", schedule.expr or None, schedule.tz or None
    if isinstance(schedule, EverySchedule):
        return "every", str(schedule.every_ms), None
    if isinstance(schedule, OtherSchedule):
        return schedule.kind or None, None, None
    return None, None, None


def job_to_row(job: CronJob, project_id: str, instructions_max_chars: int = 2000) -> MirrorRow:
    """Map an executor job onto a mirror row."""
    schedule_kind, schedule_expr, tz = schedule_columns(job)
    instructions = job.instructions[:instructions_max_chars] if job.instructions else None
    state = job.state
    return MirrorRow(
        project_id=project_id,
        job_id=job.id,
        name=job.name or job.id,
        schedule_kind=schedule_kind,
        schedule_expr=schedule_expr,
        tz=tz,
        enabled=job.enabled,
        next_run_at=from_epoch_ms(state.next_run_at_ms),
        last_run_at=from_epoch_ms(state.last_run_at_ms),
        last_status=state.last_status or None,
        last_duration_ms=int(state.last_duration_ms) if state.last_duration_ms is not None else None,
        instructions=instructions,
        target_agent_key=derive_target_agent_key(job, instructions),
    )


class MirrorLoop:
    """Reconciles the mirror table with the executor."""

    name = "mirror"

    def __init__(
        self,
        db: Database,
        executor: CronExecutor,
        project_id: str,
        *,
        instructions_max_chars: int = 2000,
    ) -> None:
        self.db = db
        self.executor = executor
        self.project_id = project_id
        self.instructions_max_chars = instructions_max_chars
        self.last_success_at = None

    def _repo(self, conn) -> MirrorRepository:
        return MirrorRepository(conn, self.db.dialect, project_id=self.project_id)

    def run_once(self) -> MirrorResult:
        """Run one mirror cycle. Executor and store errors propagate."""
        try:
            result = self._cycle()
        except Exception:
            mirror_cycles_counter.labels(result="failed").inc()
            raise

        self.last_success_at = utc_now()
        mirror_cycles_counter.labels(result="changed" if result.changed else "unchanged").inc()
        mirrored_jobs_gauge.set(result.count)
        if result.changed:
            logger.info(
                "mirror_updated",
                project_id=self.project_id,
                count=result.count,
                fingerprint=result.fingerprint,
                pruned=result.pruned,
            )
        else:
            logger.debug("mirror_unchanged", project_id=self.project_id, count=result.count)
        return result

    def _cycle(self) -> MirrorResult:
        jobs = self.executor.list_jobs()
        fingerprint = fingerprint_jobs(jobs)
        job_ids = [job.id for job in jobs]

        with self.db.connection() as conn:
            previous = self._repo(conn).get_fingerprint()

        if previous == fingerprint:
            pruned = self._prune(job_ids)
            return MirrorResult(changed=False, count=len(jobs), fingerprint=fingerprint, pruned=pruned)

        rows = [job_to_row(job, self.project_id, self.instructions_max_chars) for job in jobs]
        with self.db.connection() as conn:
            repo = self._repo(conn)
            repo.upsert_rows(rows)
            repo.commit()
            repo.set_fingerprint(fingerprint)
            repo.commit()

        pruned = self._prune(job_ids)
        return MirrorResult(changed=True, count=len(jobs), fingerprint=fingerprint, pruned=pruned)

    def _prune(self, job_ids: list[str]) -> int:
        # Best-effort: a failed prune is retried on the next cycle.
        try:
            with self.db.connection() as conn:
                repo = self._repo(conn)
                pruned = repo.prune(job_ids)
                if pruned:
                    repo.commit()
        except Exception as exc:
            logger.warning("mirror_prune_failed", project_id=self.project_id, error=str(exc))
            return 0
        if pruned:
            logger.info("mirror_pruned", project_id=self.project_id, count=pruned)
        return pruned
