"""
Run configuration for the log shipping domain.

Validates application settings once, before any restore is attempted, and
resolves them into the immutable values a run works with.
"""

import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from re import Pattern
from typing import Optional

from loguru import logger

from app.utils.config import DEFAULT_LOG_BACKUP_PATTERN, Settings
from app.utils.helpers import normalise_path, parse_iso_timestamp, to_strptime_format
from domains.log_shipping.exceptions import ConfigurationError
from domains.log_shipping.models import OrderKeySource
from domains.log_shipping.timestamps import extract_order_key


@dataclass(frozen=True)
class RunConfig:
    """Validated settings for one invocation."""

    backup_dir: Path
    cutoff: datetime
    log_pattern: Pattern[str]
    log_date_format: str
    order_key_source: OrderKeySource = OrderKeySource.FROM_FILENAME
    full_backup_path: Optional[Path] = None
    do_full_restore: bool = False
    monitor_backup_dir: bool = False
    watch_poll_interval: float = 1.0
    watch_queue_size: int = 10000


def _compile(pattern: str, description: str) -> Pattern[str]:
    try:
        return re.compile(pattern)
    except re.error as e:
        raise ConfigurationError(f"Invalid {description} pattern '{pattern}': {e}") from e


def _check_date_pattern(pattern: str, description: str):
    try:
        to_strptime_format(pattern)
    except ValueError as e:
        raise ConfigurationError(f"Invalid {description} date pattern: {e}") from e


def resolve_cutoff(settings: Settings, full_backup_path: Optional[Path]) -> datetime:
    """
    Determine the 'later than' cutoff.

    An explicit ``later_than`` wins. Without one, the cutoff is the timestamp
    embedded in the full backup's file name.
    """
    later_than = settings.later_than.strip()

    if not later_than and full_backup_path is not None and settings.full_backup_date_pattern.strip():
        full_pattern = _compile(settings.full_backup_pattern, "full backup")
        _check_date_pattern(settings.full_backup_date_pattern, "full backup")
        cutoff = extract_order_key(
            full_pattern,
            settings.full_backup_date_pattern,
            1,
            full_backup_path,
        )
        if cutoff is None:
            raise ConfigurationError(
                f"Cannot derive 'Later Than' from full backup '{full_backup_path.name}' "
                f"using '{settings.full_backup_pattern}' and '{settings.full_backup_date_pattern}'"
            )
        logger.info(f"Using 'Later Than' {cutoff.isoformat()} from full backup '{full_backup_path.name}'")
        return cutoff

    if not later_than:
        raise ConfigurationError("'Later Than' is required when it cannot be taken from a full backup")

    try:
        return parse_iso_timestamp(later_than)
    except ValueError as e:
        raise ConfigurationError(f"Error parsing 'Later Than' time '{later_than}': {e}") from e


def build_run_config(settings: Settings) -> RunConfig:
    """
    Validate ``settings`` and resolve them into a ``RunConfig``.

    Raises:
        ConfigurationError: On any setting that makes the run impossible
    """
    backup_dir = settings.get_backup_dir()
    if backup_dir is None:
        raise ConfigurationError("Invalid blank/empty backup directory")
    if not backup_dir.exists():
        raise ConfigurationError(f"Invalid non-existent backup directory '{backup_dir}'")
    if not backup_dir.is_dir():
        raise ConfigurationError(f"Backup directory '{backup_dir}' is not a directory")

    full_backup_path = settings.get_full_backup_path()
    if full_backup_path is not None and not full_backup_path.is_file():
        raise ConfigurationError(f"Invalid full backup file '{full_backup_path}'")

    if settings.do_full_restore and full_backup_path is None:
        raise ConfigurationError("A full restore was requested but no full backup path is set")

    log_pattern_str = settings.log_backup_pattern
    if not log_pattern_str.strip():
        logger.warning(
            f"\"Log Backup Pattern\" cannot be empty. Defaulting to "
            f"{DEFAULT_LOG_BACKUP_PATTERN} regex in backup directory"
        )
        log_pattern_str = DEFAULT_LOG_BACKUP_PATTERN
    log_pattern = _compile(log_pattern_str, "log backup")

    order_key_source = (
        OrderKeySource.FROM_MODIFICATION_TIME
        if settings.use_log_file_last_mod
        else OrderKeySource.FROM_FILENAME
    )
    if order_key_source is OrderKeySource.FROM_FILENAME:
        if log_pattern.groups < 1:
            raise ConfigurationError(
                f"Log backup pattern '{log_pattern.pattern}' needs a capture group holding the date"
            )
        if not settings.log_backup_date_pattern.strip():
            raise ConfigurationError("Log backup date pattern is required unless ordering by modification time")
        _check_date_pattern(settings.log_backup_date_pattern, "log backup")

    if settings.sql_process_user.strip():
        logger.warning(
            f"sql_process_user '{settings.sql_process_user}' is ignored; "
            "grant SQL Server read access to the backup directory instead"
        )

    cutoff = resolve_cutoff(settings, full_backup_path)

    return RunConfig(
        backup_dir=normalise_path(backup_dir),
        cutoff=cutoff,
        log_pattern=log_pattern,
        log_date_format=settings.log_backup_date_pattern,
        order_key_source=order_key_source,
        full_backup_path=normalise_path(full_backup_path) if full_backup_path else None,
        do_full_restore=settings.do_full_restore,
        monitor_backup_dir=settings.monitor_backup_dir,
        watch_poll_interval=settings.watch_poll_interval,
        watch_queue_size=settings.watch_queue_size,
    )
