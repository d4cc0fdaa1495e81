"""
Apply orchestrator for the log shipping domain.

Restores an optional full backup, then drains every pending log backup in
the backup directory, then optionally keeps watching the directory and
restores new log backups as they arrive. Log backups are always restored
one at a time, oldest first, and never twice in the same run.
"""

import threading
from pathlib import Path
from typing import Callable, List, Optional

from loguru import logger

from domains.log_shipping.exceptions import (
    LiveRestoreError,
    RestoreConnectionError,
    RestoreError,
    SegmentSelectionError,
)
from domains.log_shipping.models import RunState, Segment, SegmentState
from domains.log_shipping.run_config import RunConfig
from domains.log_shipping.selector import select_segments
from domains.log_shipping.watchers.filesystem import DirectoryWatcher, EventKind, WatchOutcome


class LogShipper:
    """Runs seed restore, catch-up and live monitoring for one backup directory."""

    def __init__(
        self,
        config: RunConfig,
        restorer,
        stop_event: Optional[threading.Event] = None,
        watcher_factory: Callable[..., DirectoryWatcher] = DirectoryWatcher,
    ):
        """
        Initialize the log shipper.

        Args:
            config: Validated run configuration
            restorer: Client whose ``session()`` yields objects with
                ``restore_full(path)`` and ``restore_log(path)``
            stop_event: Set from another thread to cancel the run
            watcher_factory: Builds the directory watcher for live mode
        """
        self.config = config
        self.restorer = restorer
        self.stop_event = stop_event or threading.Event()
        self.watcher_factory = watcher_factory

        self.state = RunState(cutoff=config.cutoff)
        self.history: List[Segment] = []

    def stop(self):
        """Cancel the run from another thread."""
        self.stop_event.set()

    @property
    def interrupted(self) -> bool:
        return self.stop_event.is_set()

    def run(self) -> int:
        """
        Run every configured phase.

        Returns:
            Process exit status: 0 on success or interruption, 1 on failure
        """
        logger.info(
            f"Shipping log backups from '{self.config.backup_dir}' "
            f"later than {self.state.cutoff.isoformat()}"
        )

        if self.config.do_full_restore and not self.restore_full_backup():
            return 1

        try:
            applied = self.catch_up()
        except SegmentSelectionError as e:
            logger.error(f"Log backup file filter/sort failed: {e}")
            return 1
        except RestoreConnectionError as e:
            logger.error(f"Connection to SQL Server failed during catch-up: {e}")
            return 1

        if self.interrupted:
            logger.info(f"Interrupted during catch-up after restoring {applied} log backups")
            return 0

        logger.success(f"Catch-up complete: {applied} log backups restored")

        if not self.config.monitor_backup_dir:
            return 0

        return self.monitor()

    # Seed -----------------------------------------------------------------------

    def restore_full_backup(self) -> bool:
        """Restore the configured full backup. Returns False on failure."""
        backup_path = self.config.full_backup_path

        try:
            with self.restorer.session() as session:
                session.restore_full(backup_path)
        except RestoreError as e:
            logger.error(f"SQL exception restoring the full backup '{backup_path}': {e}")
            return False

        self.state.seed_restored = True
        logger.success(f"Full backup restored: {backup_path}")
        return True

    # Catch-up -------------------------------------------------------------------

    def select_pending(self) -> List[Segment]:
        """Log backups in the backup directory not yet attempted this run."""
        criteria = self.state.criteria(self.config.log_pattern, self.config.log_date_format)
        return select_segments(self.config.backup_dir, criteria, self.config.order_key_source)

    def catch_up(self) -> int:
        """
        Restore pending log backups until a pass finds none.

        Backups copied in while a pass is running are picked up by the
        next pass. A failed restore is logged and skipped.

        Returns:
            Number of log backups restored successfully
        """
        restored = 0

        while not self.interrupted:
            segments = self.select_pending()
            if not segments:
                logger.debug("No log backup files found this iteration.")
                break

            logger.debug("\n".join(f"file : '{segment.path}'" for segment in segments))

            with self.restorer.session() as session:
                for segment in segments:
                    if self.interrupted:
                        break

                    self.state.exclude(segment.path)
                    self.history.append(segment)

                    try:
                        session.restore_log(segment.path)
                    except RestoreError as e:
                        segment.state = SegmentState.SKIPPED
                        logger.error(f"SQL exception restoring the log backup '{segment.path}': {e}")
                        continue

                    segment.state = SegmentState.APPLIED
                    restored += 1

        return restored

    # Live monitoring ------------------------------------------------------------

    def monitor(self) -> int:
        """
        Watch the backup directory and restore new log backups as they appear.

        Returns:
            0 when interrupted, 1 on a failed restore or lost watch
        """
        watcher = self.watcher_factory(
            recursive=False,
            stop_event=self.stop_event,
            poll_interval=self.config.watch_poll_interval,
            max_queued_events=self.config.watch_queue_size,
        )

        try:
            watcher.register(self.config.backup_dir)
            watcher.start()
            logger.info(f"Monitoring '{self.config.backup_dir}' for new log backups")

            # Backups copied in after the last catch-up pass but before the
            # watch was armed produce no event. Anything later is queued.
            self.reconcile()

            outcome = watcher.run(self.handle_event, on_overflow=self.reconcile)

        except LiveRestoreError as e:
            # The exclusion set is not persisted, so there is no safe resume point
            logger.error(f"{e}. Stopping.")
            return 1
        except (OSError, SegmentSelectionError) as e:
            logger.error(f"Error watching backup directory...\n'{self.config.backup_dir}': {e}")
            return 1
        finally:
            watcher.close()

        if outcome is WatchOutcome.INTERRUPTED:
            logger.info(f"Interrupted watching backup directory...\n'{self.config.backup_dir}'")
            return 0

        logger.error(f"Backup directory '{self.config.backup_dir}' can no longer be watched")
        return 1

    def handle_event(self, kind: EventKind, path: Path):
        """Restore ``path`` if it is a newly created log backup."""
        if kind is not EventKind.CREATED:
            return

        if self.config.log_pattern.fullmatch(path.name) is None:
            logger.debug(f"Ignoring '{path.name}': not a log backup")
            return

        if self.state.is_excluded(path):
            logger.debug(f"Ignoring '{path.name}': already restored this run")
            return

        self._restore_live(path)

    def reconcile(self):
        """Restore anything the event stream missed, using a directory listing."""
        segments = self.select_pending()
        if segments:
            logger.info(f"Reconciling {len(segments)} log backups not seen as events")
        for segment in segments:
            self.history.append(segment)
            self._restore_live(segment.path, segment)

    def _restore_live(self, path: Path, segment: Optional[Segment] = None):
        self.state.exclude(path)

        try:
            with self.restorer.session() as session:
                session.restore_log(path)
        except RestoreError as e:
            if segment is not None:
                segment.state = SegmentState.SKIPPED
            raise LiveRestoreError(path, e) from e

        if segment is not None:
            segment.state = SegmentState.APPLIED
