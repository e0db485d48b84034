"""Cron mirror CLI."""

import signal
import threading
from enum import Enum

import typer

from cron_mirror.db.database import Database
from cron_mirror.errors import ConfigError, CronMirrorError
from cron_mirror.executor.client import CronExecutor
from cron_mirror.fingerprint import fingerprint_jobs
from cron_mirror.models import RequestKind
from cron_mirror.observability.logging import configure_logging, get_logger
from cron_mirror.observability.metrics import start_metrics_server
from cron_mirror.orchestration.orchestrator import Orchestrator
from cron_mirror.repositories.mirror import MirrorRepository
from cron_mirror.repositories.requests import RequestQueueRepository
from cron_mirror.settings import Settings, get_settings

logger = get_logger(__name__)

app = typer.Typer(
    name="cron-mirror",
    help="Mirror executor cron jobs into the dashboard database and drain its command queues",
    no_args_is_help=True,
)

db_app = typer.Typer(help="Database management commands")
app.add_typer(db_app, name="db")


class EnqueueKind(str, Enum):
    run = "run"
    delete = "delete"


def _bootstrap() -> tuple[Settings, Database]:
    settings = get_settings()
    configure_logging(settings)
    try:
        db = Database.from_settings(settings)
    except ConfigError as exc:
        logger.error("startup_failed", error=str(exc))
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)
    return settings, db


def _orchestrator(settings: Settings, db: Database) -> Orchestrator:
    return Orchestrator(settings, db, CronExecutor.from_settings(settings))


@app.command("run")
def run_service(
    init_schema: bool = typer.Option(False, "--init-schema", help="Create tables before starting"),
):
    """Run the service until SIGINT or SIGTERM."""
    settings, db = _bootstrap()
    if init_schema:
        db.init_schema()
    if start_metrics_server(settings.metrics_port):
        logger.info("metrics_server_started", port=settings.metrics_port)

    orchestrator = _orchestrator(settings, db)
    stop = threading.Event()

    def _request_stop(signum, frame):
        logger.info("shutdown_requested", signal=signal.Signals(signum).name)
        stop.set()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    orchestrator.start()
    try:
        while not stop.wait(1.0):
            pass
    finally:
        orchestrator.stop()
        db.close()


@app.command("mirror")
def mirror_once():
    """Run a single mirror cycle."""
    settings, db = _bootstrap()
    try:
        result = _orchestrator(settings, db).mirror.run_once()
    except CronMirrorError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)
    finally:
        db.close()

    state = "changed" if result.changed else "unchanged"
    typer.echo(f"Mirror {state}: {result.count} job(s), fingerprint {result.fingerprint}")
    if result.pruned:
        typer.echo(f"Pruned {result.pruned} stale row(s)")


@app.command("drain")
def drain_once(kind: RequestKind = typer.Argument(..., help="Queue to drain")):
    """Drain one batch from a command queue."""
    settings, db = _bootstrap()
    try:
        orchestrator = _orchestrator(settings, db)
        drain = next(d for d in orchestrator.drains if d.kind is kind)
        result = drain.run_once()
    finally:
        db.close()

    typer.echo(
        f"{kind.value}: processed {result.processed} "
        f"(done {result.done}, error {result.failed}, skipped {result.skipped})"
    )


@app.command("watchdog")
def watchdog_once():
    """Run a single stuck-request sweep."""
    settings, db = _bootstrap()
    try:
        counts = _orchestrator(settings, db).watchdog.run_once()
    finally:
        db.close()

    for kind, n in counts.items():
        typer.echo(f"{kind.table}: failed {n}")


@app.command("enqueue")
def enqueue(
    kind: EnqueueKind = typer.Argument(..., help="Request type"),
    job_id: str = typer.Argument(..., help="Executor job ID"),
    requested_by: str = typer.Option("cli", help="Recorded as requested_by"),
):
    """Queue a run or delete request."""
    settings, db = _bootstrap()
    try:
        with db.connection() as conn:
            repo = RequestQueueRepository(
                conn, db.dialect, project_id=settings.project_id, kind=kind.value
            )
            request_id = repo.enqueue(job_id, requested_by=requested_by)
            repo.commit()
    finally:
        db.close()

    typer.echo(f"Queued {kind.value} request {request_id} for job {job_id}")


@app.command("consistency")
def consistency():
    """Compare the executor's job list with the mirror table."""
    settings, db = _bootstrap()
    executor = CronExecutor.from_settings(settings)
    try:
        jobs = executor.list_jobs()
        with db.connection() as conn:
            repo = MirrorRepository(conn, db.dialect, project_id=settings.project_id)
            mirrored = repo.list_job_ids()
            stored = repo.get_fingerprint()
    except CronMirrorError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(1)
    finally:
        db.close()

    live = {job.id for job in jobs}
    current = fingerprint_jobs(jobs)
    typer.echo(f"Executor jobs: {len(live)}")
    typer.echo(f"Mirrored jobs: {len(mirrored)}")
    typer.echo(f"Fingerprint:   executor {current} / mirror {stored or '-'}")

    missing = sorted(live - mirrored)
    stale = sorted(mirrored - live)
    if missing:
        typer.echo(f"Missing from mirror: {', '.join(missing)}")
    if stale:
        typer.echo(f"Stale in mirror: {', '.join(stale)}")
    if missing or stale or current != stored:
        raise typer.Exit(1)
    typer.echo("Consistent")


@db_app.command("init")
def db_init():
    """Create the mirror and queue tables."""
    _, db = _bootstrap()
    try:
        db.init_schema()
    finally:
        db.close()
    typer.echo("Schema initialized")


if __name__ == "__main__":
    app()
