"""SQL dialect abstraction for the mirror store.

Repositories build SQL through a ``Dialect`` so the same code runs against
the production PostgreSQL database and the SQLite database used for local
development and tests.

    ┌──────────────────┬───────────────┬──────────────────────────────┐
    │                  │ SQLite        │ PostgreSQL                   │
    ├──────────────────┼───────────────┼──────────────────────────────┤
    │ placeholder      │ ?             │ %s                           │
    │ timestamp param  │ ISO-8601 text │ aware datetime (timestamptz) │
    │ JSON param       │ json text     │ Jsonb adapter                │
    │ upsert           │ ON CONFLICT … DO UPDATE SET col = excluded.col │
    └──────────────────┴───────────────┴──────────────────────────────┘
"""

from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Protocol, runtime_checkable

from psycopg.types.json import Jsonb


@runtime_checkable
class Dialect(Protocol):
    """Contract for dialect-specific SQL fragments and parameter adaptation."""

    @property
    def name(self) -> str: ...

    def placeholders(self, count: int) -> str: ...

    def upsert(self, table: str, columns: list[str], key_columns: list[str]) -> str: ...

    def timestamp(self, value: datetime | None) -> Any: ...

    def json(self, value: Any) -> Any: ...


def _upsert(
    table: str, columns: list[str], key_columns: list[str], placeholders: str, excluded: str
) -> str:
    cols = ", ".join(columns)
    keys = ", ".join(key_columns)
    update_cols = [c for c in columns if c not in key_columns]
    updates = ", ".join(f"{c} = {excluded}.{c}" for c in update_cols)
    return (
        f"INSERT INTO {table} ({cols}) VALUES ({placeholders}) "
        f"ON CONFLICT ({keys}) DO UPDATE SET {updates}"
    )


class SQLiteDialect:
    """SQLite: ``?`` placeholders and ISO text timestamps."""

    @property
    def name(self) -> str:
        return "sqlite"

    def placeholders(self, count: int) -> str:
        return ", ".join("?" for _ in range(count))

    def upsert(self, table: str, columns: list[str], key_columns: list[str]) -> str:
        return _upsert(table, columns, key_columns, self.placeholders(len(columns)), "excluded")

    def timestamp(self, value: datetime | None) -> str | None:
        return value.isoformat() if value is not None else None

    def json(self, value: Any) -> str | None:
        return json.dumps(value) if value is not None else None


class PostgreSQLDialect:
    """PostgreSQL via psycopg: ``%s`` placeholders, native timestamptz and jsonb."""

    @property
    def name(self) -> str:
        return "postgresql"

    def placeholders(self, count: int) -> str:
        return ", ".join("%s" for _ in range(count))

    def upsert(self, table: str, columns: list[str], key_columns: list[str]) -> str:
        return _upsert(table, columns, key_columns, self.placeholders(len(columns)), "EXCLUDED")

    def timestamp(self, value: datetime | None) -> datetime | None:
        return value

    def json(self, value: Any) -> Jsonb | None:
        return Jsonb(value) if value is not None else None


def get_dialect(backend: str) -> Dialect:
    """Return the dialect for a backend name (``sqlite`` or ``postgresql``)."""
    if backend == "sqlite":
        return SQLiteDialect()
    if backend == "postgresql":
        return PostgreSQLDialect()
    raise ValueError(f"Unsupported database backend: {backend}")
