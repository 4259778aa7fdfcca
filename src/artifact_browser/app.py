"""Logging setup for applications embedding ArtifactBrowser.

Call ``configure_logging`` once at start-up, before creating a BrowserSession.
"""
from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


def configure_logging(level: str = "INFO", log_file: str | Path | None = None) -> list[int]:
    """Replace loguru's default handler with the ArtifactBrowser sinks.

    Args:
        level: Minimum level shown on stderr
        log_file: Optional log file, rotated at 10 MB and kept for 7 days at DEBUG level

    Returns:
        Handler ids of the installed sinks
    """
    logger.remove()
    handler_ids = [logger.add(sys.stderr, format=LOG_FORMAT, level=level)]
    if log_file is not None:
        handler_ids.append(
            logger.add(
                str(log_file),
                rotation="10 MB",
                retention="7 days",
                level="DEBUG",
            )
        )
    logger.info(f"Logging configured (level={level}, file={log_file})")
    return handler_ids
