"""Exception hierarchy for the cron mirror service.

Every error raised on purpose by this package extends ``CronMirrorError`` so
loop runners and the CLI can tell service failures apart from driver or
programming errors.

Hierarchy::

    CronMirrorError
    ├── ConfigError
    │   └── MissingConfigError      fatal at startup (exit status 1)
    ├── ExecutorError               spawn failure / non-zero exit
    │   ├── ExecutorTimeoutError    child killed after its hard timeout
    │   └── ExecutorOutputError     malformed or schema-violating output
    └── StoreError                  store-layer invariant violation
"""

from __future__ import annotations

from typing import Any


class CronMirrorError(Exception):
    """Base exception for all cron mirror errors.

    Carries optional structured context that loggers can attach to events.
    """

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context: dict[str, Any] = context

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            **self.context,
        }


class ConfigError(CronMirrorError):
    """Invalid configuration."""


class MissingConfigError(ConfigError):
    """A required setting is absent."""

    def __init__(self, setting: str, hint: str | None = None) -> None:
        message = f"Missing required setting: {setting}"
        if hint:
            message = f"{message} ({hint})"
        super().__init__(message, setting=setting)
        self.setting = setting


class ExecutorError(CronMirrorError):
    """The executor CLI could not be invoked or reported failure."""


class ExecutorTimeoutError(ExecutorError):
    """The executor CLI exceeded its timeout and was killed."""

    def __init__(self, args: list[str], timeout_seconds: float) -> None:
        super().__init__(
            f"executor command timed out after {timeout_seconds:g}s: {' '.join(args)}",
            args=args,
            timeout_seconds=timeout_seconds,
        )
        self.timeout_seconds = timeout_seconds


class ExecutorOutputError(ExecutorError):
    """The executor CLI produced output that does not match the expected schema."""


class StoreError(CronMirrorError):
    """The mirror store was used in a way that breaks its invariants."""
