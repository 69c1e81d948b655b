"""
Logging set-up for the ranking scripts.

Each script logs to LOG_DIR/YYYY-MM-DD/<script>.log (rotated by size) and
to stdout. Dated directories older than LOG_RETENTION_DAYS are removed
whenever logging is configured.
"""

from __future__ import annotations

import logging
import shutil
import sys
from datetime import date, datetime, timedelta
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

from config import settings

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_DIR_FORMAT = "%Y-%m-%d"


def _cleanup_old_log_dirs(log_root: Path, retention_days: int, today: Optional[date] = None) -> int:
    """
    Remove YYYY-MM-DD log directories older than the retention window.

    Returns:
        Number of directories removed
    """
    if retention_days <= 0:
        return 0

    cutoff = (today or date.today()) - timedelta(days=retention_days)
    removed = 0

    for child in log_root.iterdir():
        if not child.is_dir():
            continue
        try:
            dir_date = datetime.strptime(child.name, DATE_DIR_FORMAT).date()
        except ValueError:
            continue

        if dir_date < cutoff:
            shutil.rmtree(child, ignore_errors=True)
            removed += 1

    return removed


def _resolve_level(level_name: str) -> int:
    level = logging.getLevelName(level_name.upper())
    return level if isinstance(level, int) else logging.INFO


def _handler(handler: logging.Handler, level: int) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(DEFAULT_FORMAT))
    return handler


def setup_rotating_file_logger(
    run_date: str,
    log_filename: str,
    *,
    verbose: bool = False,
    log_level: Optional[int] = None,
    log_root: Optional[Path] = None,
    max_bytes: int = 20 * 1024 * 1024,  # 20 MB per file
    backup_count: int = 5,
    retention_days: int = settings.LOG_RETENTION_DAYS,
) -> str:
    """
    Configure root logging with a rotating file handler and retention cleanup.

    Args:
        run_date: Date string (YYYY-MM-DD) used for the log directory.
        log_filename: Name of the log file inside the date directory.
        verbose: If True, log at DEBUG.
        log_level: Level when verbose is False (defaults to LOG_LEVEL).
        log_root: Directory holding the dated folders (defaults to LOG_DIR).
        max_bytes: Maximum size per log file before rotating.
        backup_count: Number of rotated files to keep.
        retention_days: Remove dated directories older than this many days.

    Returns:
        Path to the active log file as string.
    """
    log_root = Path(log_root or settings.LOG_DIR)
    log_root.mkdir(parents=True, exist_ok=True)
    _cleanup_old_log_dirs(log_root, retention_days)

    log_dir = log_root / run_date
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / log_filename

    if verbose:
        level = logging.DEBUG
    elif log_level is not None:
        level = log_level
    else:
        level = _resolve_level(settings.LOG_LEVEL)

    # Reset existing handlers to avoid duplicates on reconfig
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)
    root_logger.addHandler(_handler(RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count), level))
    root_logger.addHandler(_handler(logging.StreamHandler(sys.stdout), level))

    return str(log_file)


def setup_script_logging(log_filename: str, verbose: bool = False) -> str:
    """Configure logging for a script run dated today."""
    log_file = setup_rotating_file_logger(
        datetime.now().strftime(DATE_DIR_FORMAT),
        log_filename,
        verbose=verbose,
    )
    logging.getLogger(__name__).debug(f"Logging to {log_file}")
    return log_file
