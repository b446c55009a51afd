"""Loguru setup for the bot process."""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from loguru import logger


class _InterceptHandler(logging.Handler):
    """Route stdlib logging records (discord.py, httpx) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: str | int = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """Install the stderr sink (and optionally a rotating file sink)."""
    level = "DEBUG" if verbose else "INFO"
    logger.remove()
    logger.add(sys.stderr, level=level)
    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level=level,
            rotation="10 MB",
            retention=7,
            encoding="utf-8",
        )

    logging.basicConfig(handlers=[_InterceptHandler()], level=logging.INFO, force=True)
    # discord.py gateway chatter is only interesting when debugging.
    logging.getLogger("discord").setLevel(logging.DEBUG if verbose else logging.WARNING)
