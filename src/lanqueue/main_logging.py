"""Logging configuration for lanqueue CLI."""
from __future__ import annotations

import logging
import logging.handlers

# Size of one log file before it is rotated.
LOG_FILE_MAX_BYTES: int = 1024 * 1024

# Rotated log files kept next to the active one.
LOG_FILE_BACKUPS: int = 5


def configure_logging(verbose: bool, log_file: str | None = None) -> None:
    """Configure logging level based on verbosity setting.

    Args:
        verbose: If True, set DEBUG level; otherwise WARNING level.
        log_file: Also write log records to this file, rotating it by size.

    Errors are always printed to stderr regardless of verbosity.
    """
    level = logging.DEBUG if verbose else logging.WARNING
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_file is not None:
        file_handler = logging.handlers.RotatingFileHandler(
            log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS
        )
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s")
        )
        handlers.append(file_handler)
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s",
        handlers=handlers,
    )
