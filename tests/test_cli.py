"""Tests for the cron-mirror CLI."""

import json
import logging
import stat

import pytest
import structlog
from typer.testing import CliRunner

from cron_mirror.cli import app
from cron_mirror.db.database import Database
from cron_mirror.models import RequestKind
from cron_mirror.repositories.requests import RequestQueueRepository
from cron_mirror.settings import reset_settings

runner = CliRunner()

LISTING = json.dumps(
    {"jobs": [{"id": "j1", "name": "Nightly", "enabled": True, "schedule": {"kind": "cron", "expr": "0 2 * * *"}}]}
)


@pytest.fixture(autouse=True)
def restore_logging():
    yield
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)
    structlog.reset_defaults()


@pytest.fixture
def db_url(tmp_path, monkeypatch):
    url = f"sqlite:///{tmp_path / 'mirror.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("CLAWDOS_PROJECT_ID", "front-office")
    return url


@pytest.fixture
def executor_bin(tmp_path, monkeypatch):
    script = tmp_path / "openclaw"
    script.write_text(
        "#!/bin/sh\n"
        'if [ "$1 $2" = "cron list" ]; then\n'
        f"  cat <<'JSON'\n{LISTING}\nJSON\n"
        "  exit 0\n"
        "fi\n"
        'echo "ok: $*"\n'
    )
    script.chmod(script.stat().st_mode | stat.S_IXUSR)
    monkeypatch.setenv("EXECUTOR_BIN", str(script))
    reset_settings()
    return str(script)


@pytest.fixture
def initialized(db_url):
    result = runner.invoke(app, ["db", "init"])
    assert result.exit_code == 0, result.output
    return db_url


class TestStartup:
    """Test fatal configuration handling."""

    def test_missing_database_url_exits_1(self):
        result = runner.invoke(app, ["mirror"])
        assert result.exit_code == 1
        assert "DATABASE_URL" in result.output

    def test_unsupported_database_url_exits_1(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "mysql://localhost/db")
        result = runner.invoke(app, ["watchdog"])
        assert result.exit_code == 1

    def test_run_without_database_url_exits_1(self):
        result = runner.invoke(app, ["run"])
        assert result.exit_code == 1


class TestCommands:
    """Test single-cycle operator commands."""

    def test_db_init(self, initialized):
        db = Database(initialized)
        with db.connection() as conn:
            count = conn.execute("SELECT COUNT(*) FROM cron_mirror").fetchone()[0]
        db.close()
        assert count == 0

    def test_mirror_twice(self, initialized, executor_bin):
        first = runner.invoke(app, ["mirror"])
        assert first.exit_code == 0, first.output
        assert "Mirror changed: 1 job(s)" in first.output

        second = runner.invoke(app, ["mirror"])
        assert second.exit_code == 0, second.output
        assert "Mirror unchanged: 1 job(s)" in second.output

    def test_mirror_executor_failure_exits_1(self, initialized, tmp_path, monkeypatch):
        monkeypatch.setenv("EXECUTOR_BIN", str(tmp_path / "missing"))
        reset_settings()
        result = runner.invoke(app, ["mirror"])
        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_enqueue_then_drain(self, initialized, executor_bin):
        queued = runner.invoke(app, ["enqueue", "run", "j1"])
        assert queued.exit_code == 0, queued.output
        assert "Queued run request" in queued.output

        drained = runner.invoke(app, ["drain", "run"])
        assert drained.exit_code == 0, drained.output
        assert "run: processed 1 (done 1, error 0, skipped 0)" in drained.output

        db = Database(initialized)
        with db.connection() as conn:
            repo = RequestQueueRepository(conn, db.dialect, project_id="front-office", kind=RequestKind.RUN)
            rows = repo.query("SELECT status, result FROM cron_run_requests")
        db.close()
        assert rows[0]["status"] == "done"
        assert json.loads(rows[0]["result"])["stdoutTail"].strip() == "ok: cron run j1 --force"

    def test_enqueue_rejects_unknown_kind(self, initialized):
        result = runner.invoke(app, ["enqueue", "provision", "j1"])
        assert result.exit_code != 0

    def test_watchdog(self, initialized):
        result = runner.invoke(app, ["watchdog"])
        assert result.exit_code == 0, result.output
        assert "cron_run_requests: failed 0" in result.output

    def test_consistency(self, initialized, executor_bin):
        before = runner.invoke(app, ["consistency"])
        assert before.exit_code == 1
        assert "Missing from mirror: j1" in before.output

        runner.invoke(app, ["mirror"])
        after = runner.invoke(app, ["consistency"])
        assert after.exit_code == 0, after.output
        assert "Consistent" in after.output
