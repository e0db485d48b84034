"""Repository for the ``cron_mirror`` table and its fingerprint sentinel."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from cron_mirror.models import SENTINEL_JOB_ID, MirrorRow
from cron_mirror.repositories.base import BaseRepository
from cron_mirror.time import coerce_datetime, utc_now


class MirrorRepository(BaseRepository):
    """Read/write access to one project's slice of the mirror table."""

    table = "cron_mirror"
    KEY_COLUMNS = ["project_id", "job_id"]
    COLUMNS = [
        "project_id",
        "job_id",
        "name",
        "schedule_kind",
        "schedule_expr",
        "tz",
        "enabled",
        "next_run_at",
        "last_run_at",
        "last_status",
        "last_duration_ms",
        "instructions",
        "target_agent_key",
        "updated_at",
    ]

    # -- Sentinel ----------------------------------------------------------

    def get_fingerprint(self) -> str | None:
        """Fingerprint stored by the last successful changed cycle, if any."""
        row = self.query_one(
            f"SELECT schedule_expr FROM {self.table} {self.where(f'job_id = {self.ph()}')}",
            (self.project_id, SENTINEL_JOB_ID),
        )
        return row["schedule_expr"] if row else None

    def set_fingerprint(self, fingerprint: str) -> None:
        self.upsert_rows([MirrorRow.sentinel(self.project_id, fingerprint)])

    # -- Job rows ----------------------------------------------------------

    def upsert_rows(self, rows: Iterable[MirrorRow]) -> int:
        """Upsert rows keyed by ``(project_id, job_id)``; returns the row count."""
        now = self.dialect.timestamp(utc_now())
        params = [self._params(row, now) for row in rows]
        sql = self.dialect.upsert(self.table, self.COLUMNS, self.KEY_COLUMNS)
        return self.execute_many(sql, params)

    def list_job_ids(self) -> set[str]:
        """Job ids currently mirrored, sentinel excluded."""
        rows = self.query(
            f"SELECT job_id FROM {self.table} {self.where(f'job_id <> {self.ph()}')}",
            (self.project_id, SENTINEL_JOB_ID),
        )
        return {row["job_id"] for row in rows}

    def list_rows(self) -> list[MirrorRow]:
        """Mirrored job rows ordered by name, sentinel excluded."""
        rows = self.query(
            f"SELECT * FROM {self.table} {self.where(f'job_id <> {self.ph()}')} "
            f"ORDER BY name, job_id",
            (self.project_id, SENTINEL_JOB_ID),
        )
        return [self._to_model(row) for row in rows]

    def delete_jobs(self, job_ids: Iterable[str]) -> int:
        """Delete the given job rows. The sentinel is never deleted."""
        ids = [job_id for job_id in job_ids if job_id != SENTINEL_JOB_ID]
        if not ids:
            return 0
        cursor = self.execute(
            f"DELETE FROM {self.table} {self.where(f'job_id IN ({self.ph(len(ids))})')}",
            (self.project_id, *ids),
        )
        return cursor.rowcount

    def prune(self, keep_job_ids: Iterable[str]) -> int:
        """Delete rows for jobs the executor no longer reports.

        Reads first, so a mirror that is already consistent is not written to.
        """
        stale = self.list_job_ids() - set(keep_job_ids)
        if not stale:
            return 0
        return self.delete_jobs(sorted(stale))

    # -- Mapping -----------------------------------------------------------

    def _params(self, row: MirrorRow, now: Any) -> tuple:
        return (
            row.project_id,
            row.job_id,
            row.name,
            row.schedule_kind,
            row.schedule_expr,
            row.tz,
            row.enabled,
            self.dialect.timestamp(row.next_run_at),
            self.dialect.timestamp(row.last_run_at),
            row.last_status,
            row.last_duration_ms,
            row.instructions,
            row.target_agent_key,
            now,
        )

    @staticmethod
    def _to_model(row: dict[str, Any]) -> MirrorRow:
        return MirrorRow(
            project_id=row["project_id"],
            job_id=row["job_id"],
            name=row["name"],
            schedule_kind=row["schedule_kind"],
            schedule_expr=row["schedule_expr"],
            tz=row["tz"],
            enabled=bool(row["enabled"]),
            next_run_at=coerce_datetime(row["next_run_at"]),
            last_run_at=coerce_datetime(row["last_run_at"]),
            last_status=row["last_status"],
            last_duration_ms=row["last_duration_ms"],
            instructions=row["instructions"],
            target_agent_key=row["target_agent_key"],
        )
