"""Watch mode: debounced rebuilds driven by filesystem events.

Two kinds of keys are watched:
- the shared overlay (every library and declaration file, one key for all):
  a change rebuilds every entry point
- each entry point file (one key per entry): a change rebuilds that entry

Debounce rules (cooldown = debounce_seconds):
- overlay change: accepted only if the cooldown has elapsed since the last
  full rebuild
- entry change: accepted only if the cooldown has elapsed since that entry's
  last rebuild AND since the last full rebuild

Timestamps are stamped when a trigger is accepted and refreshed when the
rebuild finishes, so a burst of events from one save produces one rebuild.

watchdog observers deliver events on their own threads. The ChangeRouter hands
each event to the owning key's asyncio.Queue with call_soon_threadsafe; all
WatchState mutation happens on the event loop, so no lock is needed.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_DELETED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

from . import output
from .clock import Clock, MonotonicClock
from .errors import RailbuildError
from .models import BuildReport, EntryResult
from .orchestrator import BuildOrchestrator
from .paths import normalize_key

logger = logging.getLogger(__name__)

OVERLAY_KEY = "<overlay>"

_REBUILD_EVENT_TYPES = frozenset({EVENT_TYPE_CREATED, EVENT_TYPE_DELETED, EVENT_TYPE_MODIFIED, EVENT_TYPE_MOVED})


class WatchKeyState(Enum):
    """Lifecycle of one watched key."""

    IDLE = "idle"
    PENDING_REBUILD = "pending_rebuild"


@dataclass
class WatchState:
    """Debounce bookkeeping for watch mode.

    Attributes:
        debounce_seconds: Cooldown applied to every key
        last_full: When the last full rebuild was triggered or finished
        last_by_key: When each entry was last rebuilt (triggered or finished)
        key_states: Current lifecycle state per key
    """

    debounce_seconds: float
    last_full: Optional[float] = None
    last_by_key: dict[str, float] = field(default_factory=dict)
    key_states: dict[str, WatchKeyState] = field(default_factory=dict)

    def full_cooldown_elapsed(self, now: float) -> bool:
        return self.last_full is None or now - self.last_full >= self.debounce_seconds

    def key_cooldown_elapsed(self, key: str, now: float) -> bool:
        last = self.last_by_key.get(key)
        return last is None or now - last >= self.debounce_seconds

    def state_of(self, key: str) -> WatchKeyState:
        return self.key_states.get(key, WatchKeyState.IDLE)


class WatchScheduler:
    """Decides when filesystem changes trigger rebuilds, and triggers them.

    Args:
        orchestrator: Orchestrator performing the rebuilds
        clock: Time source (default: MonotonicClock)
        debounce_seconds: Cooldown per key (default: from the orchestrator's config)
        on_report: Called with the BuildReport of each full rebuild
        on_result: Called with the EntryResult of each single-entry rebuild
        observer_factory: Creates the watchdog observer (replaceable in tests)
    """

    def __init__(
        self,
        orchestrator: BuildOrchestrator,
        clock: Optional[Clock] = None,
        debounce_seconds: Optional[float] = None,
        on_report: Callable[[BuildReport], None] = output.log_report,
        on_result: Callable[[EntryResult], None] = output.log_entry_result,
        observer_factory: Callable[[], Any] = Observer,
    ) -> None:
        if debounce_seconds is None:
            debounce_seconds = orchestrator.config.debounce_seconds
        self._orchestrator = orchestrator
        self._clock = clock or MonotonicClock()
        self._state = WatchState(debounce_seconds=debounce_seconds)
        self._on_report = on_report
        self._on_result = on_result
        self._observer_factory = observer_factory
        self._rebuilds: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> WatchState:
        return self._state

    @property
    def pending_rebuilds(self) -> set["asyncio.Task[None]"]:
        """Rebuild tasks that have not finished yet."""
        return set(self._rebuilds)

    def handle_overlay_change(self) -> Optional["asyncio.Task[None]"]:
        """React to a change in the shared overlay.

        Returns:
            The spawned full-rebuild task, or None if the change was debounced
        """
        now = self._clock.now()
        if not self._state.full_cooldown_elapsed(now):
            logger.debug("Overlay change ignored: full rebuild cooldown active")
            return None

        self._state.last_full = now
        self._state.key_states[OVERLAY_KEY] = WatchKeyState.PENDING_REBUILD
        output.log("Transpiling all ...")
        return self._spawn(self._rebuild_all())

    def handle_entry_change(self, entry: str) -> Optional["asyncio.Task[None]"]:
        """React to a change in one entry point.

        Returns:
            The spawned rebuild task, or None if the change was debounced
        """
        now = self._clock.now()
        if not self._state.full_cooldown_elapsed(now):
            logger.debug(f"Change to {entry} ignored: recent full rebuild")
            return None
        if not self._state.key_cooldown_elapsed(entry, now):
            logger.debug(f"Change to {entry} ignored: entry cooldown active")
            return None

        self._state.last_by_key[entry] = now
        self._state.key_states[entry] = WatchKeyState.PENDING_REBUILD
        output.log(f"Transpiling {entry} ...")
        return self._spawn(self._rebuild_one(entry))

    async def _rebuild_all(self) -> None:
        report: Optional[BuildReport] = None
        try:
            report = await self._orchestrator.build_all()
        except RailbuildError as e:
            output.log_error(str(e))
        finally:
            self._state.last_full = self._clock.now()
            self._state.key_states[OVERLAY_KEY] = WatchKeyState.IDLE
        if report is not None:
            self._on_report(report)

    async def _rebuild_one(self, entry: str) -> None:
        try:
            result = await self._orchestrator.build_one(entry)
        finally:
            self._state.last_by_key[entry] = self._clock.now()
            self._state.key_states[entry] = WatchKeyState.IDLE
        self._on_result(result)

    def _spawn(self, coro: Any) -> "asyncio.Task[None]":
        task = asyncio.ensure_future(coro)
        self._rebuilds.add(task)
        task.add_done_callback(self._rebuild_done)
        return task

    def _rebuild_done(self, task: "asyncio.Task[None]") -> None:
        self._rebuilds.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.debug("Rebuild task failed", exc_info=exc)
            output.log_error(f"Rebuild failed: {type(exc).__name__}: {exc}")

    async def watch(self) -> None:
        """Watch the overlay and every entry point until cancelled.

        Raises:
            BuildConfigError: If no entry point is selected
        """
        loop = asyncio.get_running_loop()
        assembler = self._orchestrator.assembler
        entries = self._orchestrator.entry_points()

        overlay_queue: asyncio.Queue[str] = asyncio.Queue()
        triggers: list[tuple[asyncio.Queue[str], Callable[[], Any]]] = [
            (overlay_queue, lambda: self.handle_overlay_change())
        ]
        routes: dict[str, asyncio.Queue[str]] = {}
        watched_files: list[Path] = []
        for _, path in assembler.glob_overlay_files():
            routes[_route_key(path)] = overlay_queue
            watched_files.append(path)
        for entry in entries:
            queue: asyncio.Queue[str] = asyncio.Queue()
            path = assembler.entry_file(entry)
            routes[_route_key(path)] = queue
            watched_files.append(path)
            triggers.append((queue, _bind(self.handle_entry_change, entry)))

        observer = self._observer_factory()
        handler = ChangeRouter(loop, routes)
        directories = sorted({path.resolve().parent for path in watched_files})
        for directory in directories:
            observer.schedule(handler, str(directory), recursive=False)
        observer.start()
        output.log(f"Watching {len(watched_files)} files in {len(directories)} directories")

        # One listener task per watched key
        listeners = [asyncio.ensure_future(self._listen(queue, trigger)) for queue, trigger in triggers]
        try:
            await asyncio.gather(*listeners)
        finally:
            for listener in listeners:
                listener.cancel()
            observer.stop()
            await asyncio.to_thread(observer.join)

    @staticmethod
    async def _listen(queue: "asyncio.Queue[str]", trigger: Callable[[], Any]) -> None:
        while True:
            event_type = await queue.get()
            logger.debug(f"Change event: {event_type}")
            trigger()


class ChangeRouter(FileSystemEventHandler):
    """watchdog handler forwarding file events to per-key asyncio queues.

    Runs on the observer thread; only touches the queues through the loop.

    Args:
        loop: Event loop owning the queues
        routes: normalize_key(absolute path) -> queue of the key watching it
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, routes: dict[str, "asyncio.Queue[str]"]) -> None:
        super().__init__()
        self._loop = loop
        self._routes = routes

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _REBUILD_EVENT_TYPES:
            return
        paths = [event.src_path, getattr(event, "dest_path", "")]
        for raw in paths:
            if not raw:
                continue
            queue = self._routes.get(_route_key(Path(os.fsdecode(raw))))
            if queue is not None:
                self._loop.call_soon_threadsafe(queue.put_nowait, event.event_type)


def _route_key(path: Path) -> str:
    return normalize_key(path.resolve())


def _bind(handler: Callable[[str], Any], entry: str) -> Callable[[], Any]:
    return lambda: handler(entry)
