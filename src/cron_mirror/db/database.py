"""Database connection management for the mirror store.

``Database`` hides the difference between a psycopg connection pool
(PostgreSQL, production) and one shared sqlite3 connection (local
development and tests). Callers borrow a connection with
``Database.connection()`` and commit explicitly; an exception inside the
block rolls the transaction back.
"""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from cron_mirror.db.dialect import Dialect, get_dialect
from cron_mirror.errors import ConfigError, MissingConfigError
from cron_mirror.observability.logging import get_logger
from cron_mirror.settings import Settings

logger = get_logger(__name__)

SQLITE_PREFIX = "sqlite:///"
SCHEMA_DIR = Path(__file__).resolve().parent / "schema"


@runtime_checkable
class Connection(Protocol):
    """Minimal DB-API connection surface used by the repositories.

    Satisfied by ``sqlite3.Connection`` and ``psycopg.Connection``.
    """

    def execute(self, sql: str, params: Any = ...) -> Any: ...

    def cursor(self) -> Any: ...

    def commit(self) -> None: ...

    def rollback(self) -> None: ...


def _sqlite_path(url: str) -> str:
    path = url[len(SQLITE_PREFIX):]
    return path or ":memory:"


def split_sql(sql: str) -> list[str]:
    """Split a schema script into semicolon-terminated statements, dropping comments."""
    statements = []
    current: list[str] = []
    for line in sql.splitlines():
        stripped = line.strip()
        if stripped.startswith("--") or not stripped:
            continue
        current.append(line)
        if stripped.endswith(";"):
            statements.append("\n".join(current).strip())
            current = []
    if current:
        statements.append("\n".join(current).strip())
    return statements


class Database:
    """Connection source for one database URL."""

    def __init__(self, url: str, min_size: int = 1, max_size: int = 4) -> None:
        self.url = url
        self._lock = threading.Lock()
        self._pool: ConnectionPool | None = None
        self._sqlite: sqlite3.Connection | None = None

        if url.startswith(SQLITE_PREFIX):
            self.backend = "sqlite"
            self._sqlite = sqlite3.connect(_sqlite_path(url), check_same_thread=False)
            self._sqlite.row_factory = sqlite3.Row
        elif url.startswith(("postgresql://", "postgres://")):
            self.backend = "postgresql"
            self._pool = ConnectionPool(
                conninfo=url,
                min_size=min_size,
                max_size=max_size,
                kwargs={"row_factory": dict_row},
                open=True,
            )
        else:
            raise ConfigError(
                f"Unsupported database URL scheme: {url.split(':', 1)[0]}",
                setting="DATABASE_URL",
            )

        self.dialect: Dialect = get_dialect(self.backend)
        logger.debug("database_opened", backend=self.backend)

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        """Open the database configured in settings."""
        if not settings.database_url:
            raise MissingConfigError("DATABASE_URL", "postgresql://... or sqlite:///path")
        return cls(
            settings.database_url,
            min_size=settings.db_pool_min_size,
            max_size=settings.db_pool_max_size,
        )

    @contextmanager
    def connection(self) -> Iterator[Connection]:
        """Borrow a connection; roll back if the block raises."""
        if self._pool is not None:
            with self._pool.connection() as conn:
                yield conn
            return

        if self._sqlite is None:
            raise RuntimeError("database is closed")

        # sqlite3 connections are shared, so serialize access across loops.
        with self._lock:
            conn = self._sqlite
            try:
                yield conn
            except BaseException:
                conn.rollback()
                raise
            else:
                if conn.in_transaction:
                    conn.commit()

    def init_schema(self) -> None:
        """Create the mirror tables if they do not exist."""
        sql = (SCHEMA_DIR / f"{self.backend}.sql").read_text(encoding="utf-8")
        with self.connection() as conn:
            for statement in split_sql(sql):
                conn.execute(statement)
            conn.commit()
        logger.info("schema_initialized", backend=self.backend)

    def close(self) -> None:
        """Close the pool or the shared connection."""
        if self._pool is not None:
            self._pool.close()
            self._pool = None
        if self._sqlite is not None:
            self._sqlite.close()
            self._sqlite = None
        logger.debug("database_closed", backend=self.backend)
