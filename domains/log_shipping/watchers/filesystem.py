"""
File system watcher for the log shipping domain.

Turns watchdog notifications into an ordered stream of ``(kind, path)``
events handled on the caller's thread. Every directory gets its own
non-recursive watch, so the registration map always says exactly which
directories are covered. Recursive mode walks the tree up front and
registers directories created later as their creation events are handled.
"""

import os
import queue
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Set, Union

from loguru import logger
from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer
from watchdog.observers.api import ObservedWatch

from app.utils.helpers import normalise_path


class EventKind(str, Enum):
    CREATED = "created"
    DELETED = "deleted"
    MODIFIED = "modified"


class WatchOutcome(str, Enum):
    """How ``DirectoryWatcher.run`` ended."""

    INTERRUPTED = "interrupted"
    EXHAUSTED = "exhausted"


_EVENT_KINDS = {
    EVENT_TYPE_CREATED: EventKind.CREATED,
    EVENT_TYPE_DELETED: EventKind.DELETED,
    EVENT_TYPE_MODIFIED: EventKind.MODIFIED,
}

Dispatch = Callable[[EventKind, Path], None]


@dataclass(frozen=True)
class QueuedEvent:
    """An entry change inside one watched directory."""

    directory: Path
    kind: EventKind
    name: str


# Queue markers
_OVERFLOW = object()
_WAKE = object()


class DirectoryEventHandler(FileSystemEventHandler):
    """Forwards watchdog events for one directory into the watcher queue."""

    def __init__(self, watcher: "DirectoryWatcher", directory: Path):
        super().__init__()
        self.watcher = watcher
        self.directory = directory

    def on_any_event(self, event: FileSystemEvent):
        src = Path(os.fsdecode(event.src_path))

        if event.event_type == EVENT_TYPE_MOVED:
            dest_path = getattr(event, "dest_path", None)
            if src.parent == self.directory:
                self.watcher.enqueue(QueuedEvent(self.directory, EventKind.DELETED, src.name))
            if dest_path:
                dest = Path(os.fsdecode(dest_path))
                if dest.parent == self.directory:
                    self.watcher.enqueue(QueuedEvent(self.directory, EventKind.CREATED, dest.name))
            return

        kind = _EVENT_KINDS.get(event.event_type)
        if kind is None:
            return

        if src == self.directory:
            # The watched directory itself; only its removal matters
            if kind is EventKind.DELETED:
                self.watcher.invalidate(self.directory)
            return

        self.watcher.enqueue(QueuedEvent(self.directory, kind, src.name))


class DirectoryWatcher:
    """
    Watches directories and dispatches their events synchronously.

    Events are buffered in a bounded queue. When the queue is full, further
    events are dropped and the loop reports an overflow instead. The stream
    is best-effort and callers that need completeness must reconcile
    against a directory listing.
    """

    def __init__(
        self,
        recursive: bool = False,
        stop_event: Optional[threading.Event] = None,
        poll_interval: float = 1.0,
        max_queued_events: int = 10000,
        observer=None,
    ):
        """
        Initialize directory watcher.

        Args:
            recursive: Also watch subdirectories, including ones created later
            stop_event: Set to make ``run`` return ``WatchOutcome.INTERRUPTED``
            poll_interval: Seconds between checks of ``stop_event`` while idle
            max_queued_events: Queue bound before events count as overflow
            observer: watchdog observer to schedule watches on
        """
        self.recursive = recursive
        self.stop_event = stop_event or threading.Event()
        self.poll_interval = poll_interval
        self.observer = observer or Observer()

        self.registrations: Dict[ObservedWatch, Path] = {}

        self._events: "queue.Queue[object]" = queue.Queue(maxsize=max_queued_events)
        self._overflowed = threading.Event()
        self._invalid: Set[Path] = set()
        self._lock = threading.Lock()

    # Registration ---------------------------------------------------------------

    def register(self, directory: Union[str, Path]) -> ObservedWatch:
        """
        Watch ``directory`` for entries being created, deleted or modified.

        Registering a directory twice keeps a single watch.

        Returns:
            The watch handle
        """
        directory = normalise_path(Path(directory))

        for watch, existing in self.registrations.items():
            if existing == directory:
                logger.debug(f"update: {existing} -> {directory}")
                self.registrations[watch] = directory
                return watch

        handler = DirectoryEventHandler(self, directory)
        watch = self.observer.schedule(handler, str(directory), recursive=False)
        self.registrations[watch] = directory
        logger.debug(f"register: {directory}")
        return watch

    def register_recursive(self, root: Union[str, Path]):
        """Register ``root`` and every directory below it, parents first."""
        root = normalise_path(Path(root))
        logger.debug(f"Scanning '{root}'...")

        def _walk_error(error: OSError):
            logger.debug(f"Cannot scan '{error.filename}': {error}")

        for current, _dirs, _files in os.walk(root, onerror=_walk_error):
            self.register(current)

        logger.debug("Scanning is done.")

    def watched_directories(self) -> List[Path]:
        return list(self.registrations.values())

    # Called from watchdog threads ---------------------------------------------

    def enqueue(self, event: QueuedEvent):
        try:
            self._events.put_nowait(event)
        except queue.Full:
            self._overflowed.set()

    def invalidate(self, directory: Path):
        with self._lock:
            self._invalid.add(directory)

    # Event loop -----------------------------------------------------------------

    def stop(self):
        """Ask ``run`` to return as soon as possible."""
        self.stop_event.set()
        try:
            self._events.put_nowait(_WAKE)
        except queue.Full:
            pass

    def start(self):
        """
        Arm every registered watch.

        Events are queued from this point on, even before ``run`` is called.
        """
        if not self.observer.is_alive():
            self.observer.start()
            logger.debug("File system observer started")

    def run(self, dispatch: Dispatch, on_overflow: Optional[Callable[[], None]] = None) -> WatchOutcome:
        """
        Block on filesystem events and hand each one to ``dispatch``.

        ``dispatch`` is called on this thread, one event at a time, in the
        order the events were received. Exceptions it raises propagate and
        end the loop.

        Args:
            dispatch: Callable receiving ``(EventKind, Path)``
            on_overflow: Called when events were dropped because the queue was full

        Returns:
            ``INTERRUPTED`` when stopped, ``EXHAUSTED`` when no watch is left
        """
        if not self.registrations:
            logger.error("No directories are being watched.")
            return WatchOutcome.EXHAUSTED

        self.start()

        logger.debug("Starting event loop.")

        while True:
            if self.stop_event.is_set():
                return self._interrupted()

            for item in self._next_batch():
                if self.stop_event.is_set():
                    return self._interrupted()

                if item is _WAKE:
                    continue

                if item is _OVERFLOW:
                    logger.warning("File system event queue overflowed; events were dropped")
                    if on_overflow is not None:
                        on_overflow()
                    continue

                self._process(item, dispatch)

            if not self._rearm():
                logger.error("All directories are inaccessible.")
                return WatchOutcome.EXHAUSTED

    def close(self):
        """Stop watching."""
        if self.observer.is_alive():
            self.observer.stop()
            self.observer.join()
        logger.debug("File system observer stopped")

    def __enter__(self) -> "DirectoryWatcher":
        return self

    def __exit__(self, *exc_info):
        self.close()

    # Helper routines ------------------------------------------------------------

    def _process(self, item: QueuedEvent, dispatch: Dispatch):
        if item.directory not in self.registrations.values():
            # Late event from a watch that has since been dropped
            return

        path = item.directory / item.name
        dispatch(item.kind, path)

        if self.recursive and item.kind is EventKind.CREATED:
            try:
                if path.is_dir() and not path.is_symlink():
                    self.register_recursive(path)
            except OSError as e:
                logger.debug(f"Exception while registering '{path}': {e}")

    def _next_batch(self) -> List[object]:
        batch: List[object] = []
        try:
            batch.append(self._events.get(timeout=self.poll_interval))
        except queue.Empty:
            pass
        else:
            while True:
                try:
                    batch.append(self._events.get_nowait())
                except queue.Empty:
                    break

        if self._overflowed.is_set():
            self._overflowed.clear()
            batch.append(_OVERFLOW)

        return batch

    def _rearm(self) -> bool:
        """Drop registrations whose directory is gone. False when none remain."""
        with self._lock:
            invalid = set(self._invalid)
            self._invalid.clear()

        for watch, directory in list(self.registrations.items()):
            if directory in invalid or not directory.is_dir():
                logger.warning(f"Directory '{directory}' is no longer accessible; dropping its watch")
                del self.registrations[watch]
                try:
                    self.observer.unschedule(watch)
                except KeyError:
                    pass

        return bool(self.registrations)

    def _interrupted(self) -> WatchOutcome:
        discarded = 0
        while True:
            try:
                self._events.get_nowait()
            except queue.Empty:
                break
            discarded += 1
        self._overflowed.clear()

        logger.info(f"Interrupted watching {len(self.registrations)} directories ({discarded} pending events discarded)")
        return WatchOutcome.INTERRUPTED
