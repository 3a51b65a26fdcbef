"""Centralized logging configuration using loguru."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

from loguru import logger

# Remove default handler
logger.remove()

# Add console handler with INFO level
logger.add(
    sys.stderr,
    level="INFO",
    format="<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
    colorize=True,
)

_file_sinks: list[int] = []


def setup_file_logging(logs_dir: Path = Path("logs"), level: str = "DEBUG") -> None:
    """Add rotating file sinks under logs_dir.

    Calling this again replaces the sinks added by the previous call.

    Args:
        logs_dir: Directory for log files
        level: Minimum level for the main log file
    """
    for sink_id in _file_sinks:
        logger.remove(sink_id)
    _file_sinks.clear()

    logs_dir.mkdir(parents=True, exist_ok=True)

    _file_sinks.append(
        logger.add(
            logs_dir / "recsync_{time}.log",
            rotation="50 MB",
            retention="10 days",
            level=level,
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}",
            enqueue=True,  # Thread-safe logging
        )
    )

    # Add error-specific log file
    _file_sinks.append(
        logger.add(
            logs_dir / "errors_{time}.log",
            rotation="10 MB",
            retention="30 days",
            level="ERROR",
            format="{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}",
            enqueue=True,
        )
    )


class InterceptHandler(logging.Handler):
    """Route standard library log records into loguru sinks."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Find the caller that issued the logging call
        frame, depth = logging.currentframe(), 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def intercept_standard_logging(level: int = logging.INFO) -> None:
    """Send records from logging.getLogger(...) loggers to loguru."""
    logging.basicConfig(handlers=[InterceptHandler()], level=level, force=True)


def get_logger(name: Optional[str] = None):
    """Get a logger instance with the given name.

    Args:
        name: Module name for the logger (usually __name__)

    Returns:
        Configured logger instance
    """
    if name:
        return logger.bind(name=name)
    return logger


# Export configured logger
__all__ = ["logger", "get_logger", "setup_file_logging", "intercept_standard_logging", "InterceptHandler"]
