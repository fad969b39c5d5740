"""
Logging setup and configuration utilities.

This module configures loguru for the whole process: a coloured console
sink, a rotating file sink, and a bridge that routes records emitted via
the standard ``logging`` module (asyncssh logs that way) into loguru.
"""

import logging
import sys
from pathlib import Path
from types import FrameType
from typing import Optional, Union

from loguru import logger

from ..config.models import LoggingConfig

LOG_FILE_NAME = "burrow.log"

# Loggers of third-party libraries that are noisy at INFO.
QUIET_LOGGERS = ("asyncssh", "asyncssh.sftp")


class InterceptHandler(logging.Handler):
    """Forward standard library log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: Union[str, int] = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk out of the logging module so loguru reports the real caller
        frame: Optional[FrameType] = logging.currentframe()
        depth = 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(config: LoggingConfig) -> None:
    """
    Setup application logging with the given configuration.

    Args:
        config: Logging configuration
    """
    # Remove default handler
    logger.remove()

    if config.console_enabled:
        logger.add(
            sys.stderr,
            format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
                   "<level>{level: <8}</level> | "
                   "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
                   "<level>{message}</level>",
            level=config.level,
            colorize=True,
            backtrace=True,
            diagnose=False
        )

    if config.file_enabled:
        log_dir = Path(config.log_directory)
        log_dir.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_dir / LOG_FILE_NAME,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
                   "{name}:{function}:{line} - {message}",
            level=config.level,
            rotation=config.max_file_size,
            retention=config.backup_count,
            compression="zip",
            enqueue=True,
            backtrace=True,
            diagnose=False
        )

    intercept_standard_logging(config.level)


def intercept_standard_logging(level: str) -> None:
    """Route the root standard library logger into loguru."""
    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO

    quiet_level = max(logging.WARNING, numeric)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
