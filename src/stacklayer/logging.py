"""
Structured logging for deployments.

Events go to stderr so that ``--output json`` on stdout stays machine
readable. The orchestrator binds ``run_id`` with contextvars; per-unit
loggers carry the unit name, its locality and its wave.
"""

from __future__ import annotations

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from stacklayer.units.models import Unit


def _processors(json_output: bool) -> list[Any]:
    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer(sort_keys=True))
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))
    return processors


def configure_logging(level: int | str = logging.INFO, json_output: bool = True) -> None:
    """Route structlog through the standard library at ``level``."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    structlog.configure(
        processors=_processors(json_output),
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
    logging.basicConfig(level=level, format="%(message)s", stream=sys.stderr, force=True)


def bind_unit(unit: Unit, wave: int) -> Any:
    """Logger for one unit's deployment pass."""
    return structlog.get_logger("stacklayer.unit").bind(
        unit=unit.name,
        locality=str(unit.locality),
        wave=wave,
    )
