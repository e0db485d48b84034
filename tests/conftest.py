"""
Shared pytest fixtures for cron-mirror tests.

This module provides:
- An in-memory SQLite store created from the packaged schema
- A fake executor standing in for the CLI
- Settings isolated from the caller's environment
- Helpers to seed and read command queues

Usage:
    def test_something(db, fake_executor, queue):
        request_id = queue(RequestKind.RUN).enqueue("j1")
        ...
"""

import json
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from cron_mirror.db.database import Database
from cron_mirror.errors import ExecutorError
from cron_mirror.executor.client import build_edit_args
from cron_mirror.executor.schema import CronJob, parse_job_list
from cron_mirror.models import CommandOutput, RequestKind
from cron_mirror.repositories.requests import RequestQueueRepository
from cron_mirror.settings import Settings, reset_settings

PROJECT_ID = "front-office"

SETTINGS_ENV = (
    "DATABASE_URL",
    "CRON_MIRROR_DATABASE_URL",
    "CLAWDOS_PROJECT_ID",
    "CLAWDOX_PROJECT_ID",
    "CLAWDO_PROJECT_ID",
    "PROJECT_ID",
    "EXECUTOR_BIN",
    "CLAWDBOT_BIN",
    "OPENCLAW_BIN",
    "METRICS_PORT",
    "LOG_FORMAT",
    "LOG_LEVEL",
)


# =============================================================================
# Test Markers Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "unit: fast, in-process tests")
    config.addinivalue_line("markers", "integration: tests that spawn subprocesses")


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Auto-mark tests based on their module."""
    for item in items:
        name = Path(item.fspath).name
        if name in ("test_executor_client.py", "test_cli.py"):
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# =============================================================================
# Environment isolation
# =============================================================================


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Keep the caller's environment out of settings."""
    for var in SETTINGS_ENV:
        monkeypatch.delenv(var, raising=False)
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite:///:memory:",
        project_id=PROJECT_ID,
        executor_bin="/usr/local/bin/fake-executor",
    )


# =============================================================================
# Store
# =============================================================================


@pytest.fixture
def db() -> Iterator[Database]:
    """In-memory SQLite store with the full schema."""
    database = Database("sqlite:///:memory:")
    database.init_schema()
    yield database
    database.close()


def total_changes(db: Database) -> int:
    """Rows written on the shared SQLite connection so far."""
    with db.connection() as conn:
        return conn.total_changes


@pytest.fixture
def queue(db: Database):
    """Factory for a queue repository bound to a fresh connection.

    Writes through the returned repository are committed immediately.
    """

    class _CommittingQueue:
        def __init__(self, kind: RequestKind) -> None:
            self.kind = kind

        def _call(self, method: str, *args: Any, **kwargs: Any) -> Any:
            with db.connection() as conn:
                repo = RequestQueueRepository(conn, db.dialect, project_id=PROJECT_ID, kind=self.kind)
                value = getattr(repo, method)(*args, **kwargs)
                repo.commit()
                return value

        def __getattr__(self, method: str):
            return lambda *args, **kwargs: self._call(method, *args, **kwargs)

    return _CommittingQueue


# =============================================================================
# Executor
# =============================================================================


class FakeExecutor:
    """In-process stand-in for :class:`~cron_mirror.executor.client.CronExecutor`.

    ``jobs`` are raw dicts as the CLI would print them. ``outputs`` maps a job
    id to the ``CommandOutput`` (or exception) to return for it.
    """

    executor_bin = "/usr/local/bin/fake-executor"

    def __init__(self, jobs: list[dict[str, Any]] | None = None) -> None:
        self.jobs: list[dict[str, Any]] = jobs or []
        self.list_error: Exception | None = None
        self.outputs: dict[str, CommandOutput | Exception] = {}
        self.default_output = CommandOutput(exit_code=0, stdout="ok\n", stderr="", duration_ms=5)
        self.calls: list[tuple] = []

    def list_jobs(self) -> list[CronJob]:
        self.calls.append(("list",))
        if self.list_error is not None:
            raise self.list_error
        return parse_job_list(json.dumps({"jobs": self.jobs}))

    def run_job(self, job_id: str, timeout: float) -> CommandOutput:
        self.calls.append(("run", job_id, timeout))
        return self._output(job_id)

    def remove_job(self, job_id: str, timeout: float) -> CommandOutput:
        self.calls.append(("rm", job_id, timeout))
        return self._output(job_id)

    def edit_job(self, job_id: str, patch: dict[str, Any], timeout: float) -> CommandOutput:
        self.calls.append(("edit", build_edit_args(job_id, patch), timeout))
        return self._output(job_id)

    def _output(self, job_id: str) -> CommandOutput:
        output = self.outputs.get(job_id, self.default_output)
        if isinstance(output, ExecutorError):
            raise output
        return output


@pytest.fixture
def fake_executor() -> FakeExecutor:
    return FakeExecutor()


def make_job(job_id: str = "j1", **overrides: Any) -> dict[str, Any]:
    """A raw executor job dict."""
    job: dict[str, Any] = {
        "id": job_id,
        "name": f"job {job_id}",
        "enabled": True,
        "schedule": {"kind": "cron", "expr": "0 * * * *", "tz": "UTC"},
        "state": {"nextRunAtMs": 1_767_225_600_000, "lastStatus": "ok"},
    }
    job.update(overrides)
    return job
