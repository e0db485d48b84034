"""Repository for the command queues (run, delete, patch).

Every status change is a guarded single-row UPDATE whose WHERE clause names
the status the row must currently hold, so transitions only move forward::

    queued ──claim()──► running ──complete()──► done | error
       │
       └──force_error()──► error            (watchdog only)

A guarded update that matches no row returns ``False``; the caller treats
that as "someone else got there first" and moves on.
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime
from typing import Any

from cron_mirror.db.database import Connection
from cron_mirror.db.dialect import Dialect
from cron_mirror.errors import StoreError
from cron_mirror.models import CommandRequest, RequestKind, RequestStatus
from cron_mirror.repositories.base import BaseRepository
from cron_mirror.time import coerce_datetime, utc_now


def _decode_json(value: Any) -> Any:
    # jsonb comes back decoded from psycopg, as text from sqlite
    if isinstance(value, str):
        return json.loads(value)
    return value


class RequestQueueRepository(BaseRepository):
    """Queue operations for one request kind within one project."""

    def __init__(
        self,
        conn: Connection,
        dialect: Dialect,
        *,
        project_id: str,
        kind: RequestKind | str,
    ) -> None:
        super().__init__(conn, dialect, project_id=project_id)
        try:
            self.kind = RequestKind(kind)
        except ValueError:
            raise StoreError(f"Unknown request queue: {kind!r}", kind=kind) from None
        self.table = self.kind.table

    @property
    def _columns(self) -> str:
        columns = (
            "id, job_id, status, requested_at, requested_by, "
            "picked_up_at, completed_at, result"
        )
        if self.kind.has_payload:
            columns += ", patch_json"
        return columns

    # -- Submission --------------------------------------------------------

    def enqueue(
        self,
        job_id: str,
        *,
        requested_by: str | None = None,
        patch: dict[str, Any] | None = None,
        requested_at: datetime | None = None,
    ) -> str:
        """Insert a queued request and return its id."""
        request_id = str(uuid.uuid4())
        values: dict[str, Any] = {
            "id": request_id,
            "job_id": job_id,
            "status": RequestStatus.QUEUED.value,
            "requested_at": self.dialect.timestamp(requested_at or utc_now()),
            "requested_by": requested_by,
        }
        if self.kind.has_payload:
            values["patch_json"] = self.dialect.json(patch or {})
        elif patch:
            raise StoreError(f"{self.table} does not accept a patch payload", kind=self.kind.value)
        self.insert(values)
        return request_id

    # -- Reads -------------------------------------------------------------

    def get(self, request_id: str) -> CommandRequest | None:
        row = self.query_one(
            f"SELECT {self._columns} FROM {self.table} {self.where(f'id = {self.ph()}')}",
            (self.project_id, request_id),
        )
        return self._to_model(row) if row else None

    def list_queued(self, limit: int) -> list[CommandRequest]:
        """Oldest queued requests first."""
        rows = self.query(
            f"SELECT {self._columns} FROM {self.table} "
            f"{self.where(f'status = {self.ph()}')} "
            f"ORDER BY requested_at ASC, id ASC LIMIT {self.ph()}",
            (self.project_id, RequestStatus.QUEUED.value, limit),
        )
        return [self._to_model(row) for row in rows]

    def list_stale(self, cutoff: datetime, limit: int) -> list[CommandRequest]:
        """Queued requests submitted before ``cutoff``, oldest first."""
        rows = self.query(
            f"SELECT {self._columns} FROM {self.table} "
            f"{self.where(f'status = {self.ph()}', f'requested_at < {self.ph()}')} "
            f"ORDER BY requested_at ASC, id ASC LIMIT {self.ph()}",
            (
                self.project_id,
                RequestStatus.QUEUED.value,
                self.dialect.timestamp(cutoff),
                limit,
            ),
        )
        return [self._to_model(row) for row in rows]

    # -- Transitions -------------------------------------------------------

    def claim(self, request_id: str, now: datetime | None = None) -> bool:
        """queued -> running. Returns False if the row was not queued."""
        cursor = self.execute(
            f"UPDATE {self.table} SET status = {self.ph()}, picked_up_at = {self.ph()} "
            f"{self.where(f'id = {self.ph()}', f'status = {self.ph()}')}",
            (
                RequestStatus.RUNNING.value,
                self.dialect.timestamp(now or utc_now()),
                self.project_id,
                request_id,
                RequestStatus.QUEUED.value,
            ),
        )
        return cursor.rowcount == 1

    def complete(
        self,
        request_id: str,
        status: RequestStatus,
        result: dict[str, Any],
        now: datetime | None = None,
    ) -> bool:
        """running -> done | error, attaching the result payload."""
        if not status.is_terminal:
            raise StoreError(f"Not a terminal status: {status.value}", request_id=request_id)
        return self._finish(request_id, status, result, RequestStatus.RUNNING, now)

    def force_error(
        self, request_id: str, result: dict[str, Any], now: datetime | None = None
    ) -> bool:
        """queued -> error, for requests nobody claimed in time."""
        return self._finish(request_id, RequestStatus.ERROR, result, RequestStatus.QUEUED, now)

    def _finish(
        self,
        request_id: str,
        status: RequestStatus,
        result: dict[str, Any],
        expected: RequestStatus,
        now: datetime | None,
    ) -> bool:
        cursor = self.execute(
            f"UPDATE {self.table} SET status = {self.ph()}, result = {self.ph()}, "
            f"completed_at = {self.ph()} "
            f"{self.where(f'id = {self.ph()}', f'status = {self.ph()}')}",
            (
                status.value,
                self.dialect.json(result),
                self.dialect.timestamp(now or utc_now()),
                self.project_id,
                request_id,
                expected.value,
            ),
        )
        return cursor.rowcount == 1

    # -- Mapping -----------------------------------------------------------

    def _to_model(self, row: dict[str, Any]) -> CommandRequest:
        return CommandRequest(
            id=str(row["id"]),
            kind=self.kind,
            job_id=row["job_id"],
            status=RequestStatus(row["status"]),
            requested_at=coerce_datetime(row["requested_at"]),
            requested_by=row["requested_by"],
            picked_up_at=coerce_datetime(row["picked_up_at"]),
            completed_at=coerce_datetime(row["completed_at"]),
            patch=_decode_json(row.get("patch_json")) if self.kind.has_payload else None,
            result=_decode_json(row["result"]),
        )
