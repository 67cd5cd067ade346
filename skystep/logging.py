"""Logging configuration for skystep.

Diagnostics go through loguru. The library stays silent until the runner
process calls ``setup_logging``; step output never goes through here, it
goes to the live log stream.

Example:
    from skystep.logging import LogConfig, setup_logging, teardown_logging

    handlers = setup_logging(LogConfig(level="DEBUG", file="/var/log/skystep/runner.log"))
    ...
    teardown_logging(handlers)
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

from loguru import logger

logger.disable("skystep")

type LogLevel = Literal["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"]

# bound fields rendered after the call site, in this order
_CONTEXT_KEYS = ("component", "pool", "instance_id", "ip", "step", "key")

CONSOLE_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> <level>{level: <7}</level> "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan>"
    "<dim>{extra[_ctx]}</dim> "
    "<level>{message}</level>"
)

FILE_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} {level: <7} "
    "{name}:{function}:{line}{extra[_ctx]} {message}"
)


def _with_context(record: Any) -> None:
    extra = record["extra"]
    fields = " ".join(f"{k}={extra[k]}" for k in _CONTEXT_KEYS if extra.get(k))
    extra["_ctx"] = f" [{fields}]" if fields else ""


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Runner diagnostics settings, read from the ``[logging]`` table.

    Attributes:
        level: Minimum console level. The file always records DEBUG.
        file: Log file path; no file output when None.
        console: Log to stderr.
        rotation: When to rotate the file, e.g. "50 MB" or "1 day".
        retention: Rotated files to keep.
    """

    level: LogLevel = "INFO"
    file: str | None = None
    console: bool = True
    rotation: str = "50 MB"
    retention: int = 10


def setup_logging(config: LogConfig) -> list[int]:
    """Enable skystep diagnostics. Returns handler ids for ``teardown_logging``."""
    logger.enable("skystep")
    logger.configure(patcher=_with_context)

    sinks: list[int] = []
    if config.console:
        sinks.append(
            logger.add(
                sys.stderr,
                level=config.level,
                format=CONSOLE_FORMAT,
                colorize=True,
                filter="skystep",
            )
        )

    if config.file:
        Path(config.file).parent.mkdir(parents=True, exist_ok=True)
        sinks.append(
            logger.add(
                config.file,
                level="DEBUG",
                format=FILE_FORMAT,
                rotation=config.rotation,
                retention=config.retention,
                compression="zip",
                diagnose=False,  # locals may hold secrets
                enqueue=True,
                filter="skystep",
            )
        )
    return sinks


def teardown_logging(handler_ids: list[int]) -> None:
    for handler_id in handler_ids:
        logger.remove(handler_id)
    logger.disable("skystep")
