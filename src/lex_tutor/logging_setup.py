"""Loguru sink configuration."""
import sys
from pathlib import Path

from loguru import logger


def configure_logging(level: str = "INFO", log_file: str | None = None) -> None:
    """Route warnings to the terminal and everything at ``level`` to a log file.

    The terminal belongs to the rich UI, so only problems are echoed there.
    """
    logger.remove()
    logger.add(
        sys.stderr,
        level="WARNING",
        format="<level>{level: <8}</level> | {message}",
    )
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        logger.add(
            log_file,
            level=level.upper(),
            rotation="1 MB",
            retention=3,
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function} - {message}",
        )
