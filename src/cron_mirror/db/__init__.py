"""Mirror store: connection management and SQL dialects."""

from cron_mirror.db.database import Connection, Database
from cron_mirror.db.dialect import Dialect, PostgreSQLDialect, SQLiteDialect, get_dialect

__all__ = [
    "Connection",
    "Database",
    "Dialect",
    "PostgreSQLDialect",
    "SQLiteDialect",
    "get_dialect",
]
