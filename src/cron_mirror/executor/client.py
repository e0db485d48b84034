"""Subprocess client for the executor CLI.

Every invocation is one-shot with a hard timeout. ``subprocess.run`` kills
the child when the timeout fires; partial output from a killed child is
discarded.
"""

from __future__ import annotations

import subprocess
import time
from typing import Any

from cron_mirror.errors import ExecutorError, ExecutorTimeoutError
from cron_mirror.executor.schema import CronJob, parse_job_list
from cron_mirror.models import CommandOutput
from cron_mirror.observability.logging import get_logger
from cron_mirror.observability.metrics import executor_duration_histogram
from cron_mirror.settings import Settings

logger = get_logger(__name__)


def build_edit_args(job_id: str, patch: Any) -> list[str]:
    """Translate a patch request payload into ``cron edit`` arguments.

    Recognised keys: ``name``, ``instructions``, ``scheduleExpr`` with
    ``scheduleKind`` (``every`` or ``cron``, default ``cron``) and ``enabled``.
    Unknown keys are ignored, and a payload that is not an object yields a
    bare ``cron edit <jobId>``.
    """
    args = ["cron", "edit", job_id]
    if not isinstance(patch, dict):
        patch = {}

    name = patch.get("name")
    if isinstance(name, str) and name.strip():
        args += ["--name", name.strip()]

    instructions = patch.get("instructions")
    if isinstance(instructions, str):
        args += ["--system-event", instructions]

    expr = patch.get("scheduleExpr")
    if isinstance(expr, str) and expr.strip():
        flag = "--every" if patch.get("scheduleKind") == "every" else "--cron"
        args += [flag, expr.strip()]

    enabled = patch.get("enabled")
    if enabled is True:
        args.append("--enable")
    elif enabled is False:
        args.append("--disable")

    return args


class CronExecutor:
    """Runs ``<executor_bin> <args...>`` and captures the outcome."""

    def __init__(self, executor_bin: str, list_timeout: float = 20.0) -> None:
        self.executor_bin = executor_bin
        self.list_timeout = list_timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "CronExecutor":
        return cls(settings.executor_bin, list_timeout=settings.list_timeout_seconds)

    def run(self, args: list[str], timeout: float) -> CommandOutput:
        """Run one command.

        A timeout is reported as ``CommandOutput(exit_code=None, timed_out=True)``
        rather than raised, so drain loops can record it as a result.

        Raises:
            ExecutorError: The executable could not be started.
        """
        cmd = [self.executor_bin, *args]
        command = args[1] if len(args) > 1 else (args[0] if args else "")
        logger.debug("executor_exec", cmd=" ".join(cmd), timeout=timeout)

        started = time.monotonic()
        try:
            completed = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout,
            )
        except subprocess.TimeoutExpired:
            duration_ms = int((time.monotonic() - started) * 1000)
            executor_duration_histogram.labels(command=command).observe(duration_ms / 1000)
            logger.warning("executor_timeout", cmd=" ".join(cmd), timeout=timeout)
            return CommandOutput(
                exit_code=None,
                stdout="",
                stderr=f"timed out after {timeout:g}s; process killed",
                duration_ms=duration_ms,
                timed_out=True,
            )
        except OSError as exc:
            raise ExecutorError(
                f"failed to start executor: {exc}",
                executor_bin=self.executor_bin,
                args=args,
            ) from exc

        duration_ms = int((time.monotonic() - started) * 1000)
        executor_duration_histogram.labels(command=command).observe(duration_ms / 1000)
        return CommandOutput(
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            duration_ms=duration_ms,
        )

    def list_jobs(self) -> list[CronJob]:
        """Run ``cron list --all --json`` and validate the result.

        Raises:
            ExecutorTimeoutError: The listing exceeded ``list_timeout``.
            ExecutorError: Spawn failure or non-zero exit.
            ExecutorOutputError: Output is not a valid job list.
        """
        args = ["cron", "list", "--all", "--json"]
        output = self.run(args, timeout=self.list_timeout)
        if output.timed_out:
            raise ExecutorTimeoutError(args, self.list_timeout)
        if output.exit_code != 0:
            raise ExecutorError(
                f"executor cron list failed (exit {output.exit_code}): "
                f"{(output.stderr or output.stdout).strip()[:500]}",
                exit_code=output.exit_code,
            )
        return parse_job_list(output.stdout)

    def run_job(self, job_id: str, timeout: float) -> CommandOutput:
        return self.run(["cron", "run", job_id, "--force"], timeout=timeout)

    def remove_job(self, job_id: str, timeout: float) -> CommandOutput:
        return self.run(["cron", "rm", job_id], timeout=timeout)

    def edit_job(self, job_id: str, patch: dict[str, Any], timeout: float) -> CommandOutput:
        return self.run(build_edit_args(job_id, patch), timeout=timeout)
