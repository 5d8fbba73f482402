"""Workspace file-change notifications.

Watches the workspaces directory recursively and sorts every changed
path into one of two kinds:

- capabilities_changed: ``{slug}/mcp.json`` or anything under ``skills/``
- files_changed: everything else (session working files etc.)

Each kind has its own debounce timer, so a burst of skill edits never
delays a files notification or vice versa. After stop() no notification
is delivered, pending timers included.
"""

import asyncio
import logging
import os
from enum import Enum
from pathlib import Path
from typing import AsyncIterator, Callable, Iterable, Optional, Protocol

from watchfiles import awatch

from .config import MCP_CONFIG_FILENAME, SKILLS_DIRNAME, get_debounce_seconds

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    CAPABILITIES = "capabilities_changed"
    FILES = "files_changed"


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Anything with asyncio's ``call_later`` shape (the event loop itself, or a test clock)."""

    def call_later(self, delay: float, callback: Callable[..., object], *args: object) -> TimerHandle: ...


# (watch_dir, stop_event) -> batches of paths relative to watch_dir
ChangeSource = Callable[[Path, asyncio.Event], AsyncIterator[Iterable[str]]]


def classify_change(path: str) -> ChangeKind:
    """Classify a path relative to the workspaces directory."""
    parts = [p for p in path.replace("\\", "/").split("/") if p]
    if not parts:
        return ChangeKind.FILES
    if parts[-1] == MCP_CONFIG_FILENAME or SKILLS_DIRNAME in parts[:-1]:
        return ChangeKind.CAPABILITIES
    return ChangeKind.FILES


async def watchfiles_source(watch_dir: Path, stop_event: asyncio.Event) -> AsyncIterator[list[str]]:
    """Recursive watch backed by watchfiles; debouncing is left to the notifier."""
    async for changes in awatch(watch_dir, recursive=True, stop_event=stop_event, debounce=50, step=50):
        yield [os.path.relpath(path, watch_dir) for _, path in changes]


class FileChangeNotifier:
    """Debounced, classified change notifications for one directory tree.

    Owned by the process that creates it; start()/stop() may be called
    any number of times in any order.
    """

    def __init__(
        self,
        watch_dir: Path,
        sink: Callable[[ChangeKind], None],
        *,
        debounce: Optional[float] = None,
        scheduler: Optional[Scheduler] = None,
        source: Optional[ChangeSource] = None,
        is_alive: Optional[Callable[[], bool]] = None,
    ):
        self.watch_dir = Path(watch_dir)
        self._sink = sink
        self._debounce = get_debounce_seconds() if debounce is None else debounce
        self._scheduler_override = scheduler
        self._scheduler: Optional[Scheduler] = None
        self._source = source or watchfiles_source
        self._is_alive = is_alive or (lambda: True)

        self._running = False
        self._generation = 0
        self._timers: dict[ChangeKind, TimerHandle] = {}
        self._task: Optional[asyncio.Task] = None
        self._stop_event: Optional[asyncio.Event] = None

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> bool:
        """Begin watching. Must be called from a running event loop.

        Returns False (and logs) when the directory does not exist.
        """
        if self._running:
            return True
        if not self.watch_dir.is_dir():
            logger.warning("Watch directory does not exist, skipping: %s", self.watch_dir)
            return False

        loop = asyncio.get_running_loop()
        self._scheduler = self._scheduler_override or loop
        self._generation += 1
        self._running = True
        self._stop_event = asyncio.Event()
        self._task = loop.create_task(self._run(self._stop_event))

        logger.info("Started watching %s", self.watch_dir)
        return True

    def stop(self) -> None:
        if not self._running:
            return
        self._halt()

        if self._stop_event is not None:
            self._stop_event.set()
        if self._task is not None:
            self._task.cancel()
            self._task = None

        logger.info("Stopped watching %s", self.watch_dir)

    async def _run(self, stop_event: asyncio.Event) -> None:
        try:
            async for paths in self._source(self.watch_dir, stop_event):
                if stop_event.is_set():
                    break
                for path in paths:
                    self.handle_change(path)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Watcher for %s failed: %s", self.watch_dir, e)

        if not stop_event.is_set():
            # Source ended by itself; a later start() opens a fresh one
            logger.warning("Watcher for %s ended, notifications stopped", self.watch_dir)
            self._halt()
            self._task = None

    def _halt(self) -> None:
        self._running = False
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()

    def handle_change(self, path: str) -> None:
        """Feed one raw changed path (relative to the watch dir)."""
        if not self._running or not path or not self._is_alive():
            return

        kind = classify_change(path)
        pending = self._timers.pop(kind, None)
        if pending is not None:
            pending.cancel()
        self._timers[kind] = self._scheduler.call_later(self._debounce, self._fire, kind, self._generation)

    def _fire(self, kind: ChangeKind, generation: int) -> None:
        if generation != self._generation or not self._running:
            return
        self._timers.pop(kind, None)
        if not self._is_alive():
            return
        try:
            self._sink(kind)
        except Exception as e:
            logger.error("Change sink failed for %s: %s", kind.value, e)


class Broadcaster:
    """Fans notifications out to subscriber queues (one per WebSocket)."""

    def __init__(self, maxsize: int = 100):
        self._maxsize = maxsize
        self._queues: set[asyncio.Queue] = set()
        self._closed = False

    def is_open(self) -> bool:
        return not self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._queues)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self._maxsize)
        self._queues.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._queues.discard(queue)

    def publish(self, kind: ChangeKind) -> None:
        if self._closed:
            return
        for queue in list(self._queues):
            try:
                queue.put_nowait(kind)
            except asyncio.QueueFull:
                logger.warning("Dropping %s for a slow subscriber", kind.value)

    def close(self) -> None:
        self._closed = True
        self._queues.clear()
