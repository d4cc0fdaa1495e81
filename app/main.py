"""
Log Shipper - Main Entry Point

Keeps a standby SQL Server database in sync with its primary:
- Optionally restores a full backup first
- Restores every pending transaction-log backup in order
- Optionally keeps watching the backup directory for new log backups
"""

import argparse
import signal
import sys
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from pathlib import Path
from typing import Optional

from loguru import logger

from app.utils.config import Settings, get_settings
from app.utils.mssql_client import MSSQLClient
from domains.log_shipping.exceptions import ConfigurationError
from domains.log_shipping.orchestrator import LogShipper
from domains.log_shipping.run_config import build_run_config


LOG_FORMAT = "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>"


def configure_logging(level: str = "INFO"):
    """Configure the loguru sink."""
    logger.remove()
    logger.add(sys.stdout, format=LOG_FORMAT, level=level.upper())


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI argument parser."""

    parser = argparse.ArgumentParser(
        prog="logshipper",
        description="Restore SQL Server transaction-log backups from a directory, in order.",
    )
    parser.add_argument(
        "--conf",
        type=Path,
        default=None,
        help="Configuration file (KEY=value lines, same names as the environment variables).",
    )
    parser.add_argument(
        "--laterthan",
        default=None,
        help="Only restore log backups later than this ISO-8601 instant.",
    )
    parser.add_argument(
        "--restore-full",
        action="store_true",
        help="Restore the full backup before continuing.",
    )
    parser.add_argument(
        "--use-lastmod",
        action="store_true",
        help="Sort/filter the log backups using their file-system 'last modified' date.",
    )
    parser.add_argument(
        "--monitor-backup-dir",
        action="store_true",
        help="Monitor the backup directory for new log backups, and apply them.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Override the configured log level (DEBUG, INFO, ...).",
    )
    return parser


def load_settings(args: argparse.Namespace) -> Settings:
    """Load settings from ``--conf`` and apply command-line overrides."""
    settings = get_settings(str(args.conf))

    overrides = {}
    if args.laterthan:
        overrides["later_than"] = args.laterthan
    if args.restore_full:
        overrides["do_full_restore"] = True
    if args.use_lastmod:
        overrides["use_log_file_last_mod"] = True
    if args.monitor_backup_dir:
        overrides["monitor_backup_dir"] = True
    if args.log_level:
        overrides["log_level"] = args.log_level

    return settings.model_copy(update=overrides) if overrides else settings


def run_in_worker(shipper: LogShipper, stop_event: threading.Event, poll: float = 1.0) -> int:
    """
    Run ``shipper`` on a dedicated worker thread and wait for its exit status.

    SIGINT/SIGTERM set ``stop_event``; the worker notices it at its next
    check and winds down.
    """

    def _signal_handler(signum, frame):  # noqa: D401
        logger.info(f"Received signal {signum}, shutting down.")
        stop_event.set()

    if threading.current_thread() is threading.main_thread():
        signal.signal(signal.SIGINT, _signal_handler)
        signal.signal(signal.SIGTERM, _signal_handler)

    with ThreadPoolExecutor(max_workers=1, thread_name_prefix="restoreThread") as executor:
        future = executor.submit(shipper.run)
        while True:
            try:
                return future.result(timeout=poll)
            except FutureTimeoutError:
                continue
            except Exception:
                logger.exception("Application 'main' thread execution error")
                return 1


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the CLI."""

    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(args.log_level or "INFO")

    if args.conf is None or not args.conf.is_file():
        logger.error(f"Missing or unreadable configuration file '{args.conf}'. Please specify --conf")
        parser.print_usage()
        return 1

    settings = load_settings(args)
    configure_logging(settings.log_level)

    try:
        config = build_run_config(settings)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    stop_event = threading.Event()
    shipper = LogShipper(
        config,
        MSSQLClient.from_settings(settings),
        stop_event=stop_event,
    )

    return run_in_worker(shipper, stop_event)


def cli():
    """Console script bridge."""
    sys.exit(main())


if __name__ == "__main__":  # pragma: no cover - CLI bridge
    cli()
