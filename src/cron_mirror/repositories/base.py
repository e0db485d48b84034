"""Project-scoped base repository.

Every table in the mirror store is partitioned by ``project_id``. A
repository is bound to one connection, one dialect and one project, and
builds its WHERE clauses through :meth:`BaseRepository.where` so no query
can leak across projects.

The caller owns the transaction: repositories execute statements but only
commit or roll back when asked.
"""

from __future__ import annotations

from contextlib import closing
from typing import Any

from cron_mirror.db.database import Connection
from cron_mirror.db.dialect import Dialect


class BaseRepository:
    table: str = ""

    def __init__(self, conn: Connection, dialect: Dialect, *, project_id: str) -> None:
        self.conn = conn
        self.dialect = dialect
        self.project_id = project_id

    def ph(self, count: int = 1) -> str:
        return self.dialect.placeholders(count)

    def where(self, *conditions: str) -> str:
        """``WHERE project_id = <ph> AND ...``.

        The project id is always the first parameter of the clause.
        """
        return "WHERE " + " AND ".join((f"project_id = {self.ph()}", *conditions))

    def execute(self, sql: str, params: tuple = ()) -> Any:
        return self.conn.execute(sql, params)

    def execute_many(self, sql: str, params: list[tuple]) -> int:
        """Run ``sql`` once per parameter tuple and return how many ran.

        psycopg connections have no ``executemany``, so this goes through a cursor.
        """
        if not params:
            return 0
        with closing(self.conn.cursor()) as cursor:
            cursor.executemany(sql, params)
        return len(params)

    def query(self, sql: str, params: tuple = ()) -> list[dict[str, Any]]:
        # sqlite3.Row and psycopg dict_row both convert with dict()
        return [dict(row) for row in self.conn.execute(sql, params).fetchall()]

    def query_one(self, sql: str, params: tuple = ()) -> dict[str, Any] | None:
        rows = self.query(sql, params)
        return rows[0] if rows else None

    def insert(self, values: dict[str, Any]) -> Any:
        """Insert one row into ``table`` for this project."""
        row = {"project_id": self.project_id, **values}
        columns = ", ".join(row)
        return self.execute(
            f"INSERT INTO {self.table} ({columns}) VALUES ({self.ph(len(row))})",
            tuple(row.values()),
        )

    def commit(self) -> None:
        self.conn.commit()

    def rollback(self) -> None:
        self.conn.rollback()
