"""Logging for efsctl.

The package logs through loguru and stays silent until a caller opts in
with setup_logging(); the CLI does so for every command. Each module binds
a ``component`` so a line shows which provisioning step wrote it.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import Literal

from loguru import logger

logger.disable("efsctl")

type LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR"]

CONSOLE_FORMAT = "<level>{level: <7}</level> <cyan>{extra[component]}</cyan>: {message}"
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} {level: <7} {extra[component]}: {message}"


@dataclass(frozen=True, slots=True)
class LogConfig:
    """Logging configuration.

    Attributes:
        level: Minimum level written to stderr.
        file: Optional path receiving every record, DEBUG included.
    """

    level: LogLevel = "INFO"
    file: str | None = None


def setup_logging(config: LogConfig) -> list[int]:
    """Enable efsctl logging; returns handler ids for teardown_logging()."""
    logger.enable("efsctl")
    logger.configure(extra={"component": "efsctl"})

    handler_ids = [
        logger.add(sys.stderr, level=config.level, format=CONSOLE_FORMAT, filter="efsctl")
    ]
    if config.file:
        handler_ids.append(
            logger.add(
                config.file,
                level="DEBUG",
                format=FILE_FORMAT,
                filter="efsctl",
                diagnose=False,  # tracebacks may hold credentials
            )
        )
    return handler_ids


def teardown_logging(handler_ids: list[int]) -> None:
    for hid in handler_ids:
        logger.remove(hid)
    logger.disable("efsctl")
