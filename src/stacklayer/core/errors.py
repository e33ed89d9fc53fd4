"""
Unified error handling for StackLayer.

This module provides the error taxonomy used by the orchestrator, the exit
codes the CLI maps them to, and the decorator that turns them into exit codes.

Exit Codes:
- 0: Success
- 1: Warning (deployment finished with failed or skipped units)
- 10: Configuration error
- 11: Provider error (external provisioning failure)
- 12: Validation / planning error
- 13: Unresolved cross-unit reference
- 127: Unknown/internal error
- 130: Cancelled
"""

from __future__ import annotations

import functools
import sys
import traceback
from enum import IntEnum
from typing import Any, Callable, Sequence, TypeVar

import structlog

logger = structlog.get_logger()


class ExitCode(IntEnum):
    """Standardized exit codes for CLI commands."""

    SUCCESS = 0
    WARNING = 1
    CONFIG_ERROR = 10
    PROVIDER_ERROR = 11
    VALIDATION_ERROR = 12
    REFERENCE_ERROR = 13
    UNKNOWN_ERROR = 127
    CANCELLED = 130


class StackLayerError(Exception):
    """Base exception for StackLayer errors with exit code support."""

    exit_code: ExitCode = ExitCode.UNKNOWN_ERROR
    show_traceback: bool = False

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigurationError(StackLayerError):
    """Raised for configuration-related errors."""

    exit_code = ExitCode.CONFIG_ERROR


class ValidationError(StackLayerError):
    """Raised for malformed declarations (bad ports, unknown references, ...)."""

    exit_code = ExitCode.VALIDATION_ERROR


class PlanningError(StackLayerError):
    """Raised when a deployment graph cannot be planned. Nothing has been applied."""

    exit_code = ExitCode.VALIDATION_ERROR


class DuplicateUnitError(PlanningError):
    """Two units share a name within one run."""

    def __init__(self, name: str):
        super().__init__(f"Unit '{name}' is declared more than once", {"unit": name})
        self.name = name


class LocalityMismatchError(PlanningError):
    """A resource intent is not valid within its unit's locality."""


class CyclicDependencyError(PlanningError):
    """The dependency edges contain a cycle."""

    def __init__(self, path: Sequence[str]):
        self.path = list(path)
        super().__init__(
            f"Cyclic dependency between units: {' -> '.join(self.path)}",
            {"path": self.path},
        )


class ProviderError(StackLayerError):
    """Raised when an external provider fails or is unreachable."""

    exit_code = ExitCode.PROVIDER_ERROR


class ProviderApplyError(ProviderError):
    """A single resource intent could not be applied. Fails its unit, never retried."""

    def __init__(
        self,
        message: str,
        *,
        unit: str | None = None,
        logical_id: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        merged = {"unit": unit, "logical_id": logical_id, **(details or {})}
        super().__init__(message, {k: v for k, v in merged.items() if v is not None})
        self.unit = unit
        self.logical_id = logical_id


class UnresolvedReferenceError(StackLayerError):
    """A consumer could not obtain a producer's exported attribute."""

    exit_code = ExitCode.REFERENCE_ERROR

    def __init__(self, message: str, *, ref: Any = None):
        super().__init__(message, {"ref": str(ref)} if ref is not None else None)
        self.ref = ref


class DeploymentCancelled(StackLayerError):
    """Raised inside a unit's pass once cancellation has been requested."""

    exit_code = ExitCode.CANCELLED


# Type variable for decorated functions
F = TypeVar("F", bound=Callable[..., int])


def main_with_error_handling(
    *,
    show_traceback: bool = False,
    log_errors: bool = True,
) -> Callable[[F], F]:
    """
    Decorator for CLI main functions that provides unified error handling.

    Catches exceptions and converts them to appropriate exit codes with
    consistent error reporting.

    Args:
        show_traceback: If True, show full traceback for unexpected errors
        log_errors: If True, log errors to structlog

    Exit codes:
        - StackLayerError subclasses: Uses the error's exit_code
        - KeyboardInterrupt: Returns 130 (standard for SIGINT)
        - Other exceptions: Returns 127 (unknown error)
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> int:
            try:
                return func(*args, **kwargs)
            except StackLayerError as e:
                if log_errors:
                    logger.error(
                        "command_error",
                        error_type=type(e).__name__,
                        message=e.message,
                        exit_code=int(e.exit_code),
                        **e.details,
                    )
                if e.show_traceback or show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return e.exit_code
            except KeyboardInterrupt:
                if log_errors:
                    logger.info("command_interrupted")
                return ExitCode.CANCELLED
            except Exception as e:
                if log_errors:
                    logger.error(
                        "unexpected_error",
                        error_type=type(e).__name__,
                        message=str(e),
                        exit_code=int(ExitCode.UNKNOWN_ERROR),
                    )
                if show_traceback:
                    traceback.print_exc(file=sys.stderr)
                return ExitCode.UNKNOWN_ERROR

        return wrapper  # type: ignore[return-value]

    return decorator


def format_error_message(error: StackLayerError) -> str:
    """Format an error message for display to users."""
    msg = error.message
    if error.details:
        detail_str = ", ".join(f"{k}={v}" for k, v in error.details.items())
        msg = f"{msg} ({detail_str})"
    return msg
