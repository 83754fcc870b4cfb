"""
Loguru logging configuration.

Console output is colored text or serialized JSON depending on LOG_FORMAT.
Every record carries the request correlation ID.
"""

import sys
from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from core.correlation import get_correlation_id

if TYPE_CHECKING:
    from loguru import Record

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{extra[correlation_id]}</cyan> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
    "<level>{message}</level>"
)


def correlation_filter(record: "Record") -> bool:
    record["extra"]["correlation_id"] = get_correlation_id() or "-"
    return True


def configure_logging(
    log_format: str = "text",
    level: str = "INFO",
    log_dir: str | None = "logs",
) -> None:
    """
    Configure Loguru for the application.

    Args:
        log_format: "text" for colored console output, "json" for serialized records.
        level: Minimum level for every sink.
        log_dir: Directory for the rotating file sink, empty or None to disable it.
    """
    logger.remove()

    as_json = log_format == "json"
    logger.add(
        sys.stderr,
        format="{message}" if as_json else LOG_FORMAT,
        level=level,
        filter=correlation_filter,
        colorize=not as_json,
        serialize=as_json,
    )

    if not log_dir:
        return

    Path(log_dir).mkdir(parents=True, exist_ok=True)
    logger.add(
        str(Path(log_dir) / "auth_core.log"),
        format="{message}" if as_json else LOG_FORMAT,
        level=level,
        filter=correlation_filter,
        rotation="10 MB",
        retention="7 days",
        serialize=as_json,
    )
