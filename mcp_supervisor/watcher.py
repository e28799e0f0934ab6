"""
File change watcher driving re-aggregation.

A watchdog polling observer compares mtimes of the source directories every
``poll_interval`` seconds. Each change to a watched source file is handed to
the event loop and triggers one aggregation pass there. A separate
fixed-interval tick triggers a pass unconditionally, so a change missed by
mtime polling (coarse timestamp resolution) is still picked up.
"""

import asyncio
import inspect
import logging
import os
from pathlib import Path
from typing import Callable

from watchdog.events import FileSystemEventHandler
from watchdog.observers.polling import PollingObserver

logger = logging.getLogger(__name__)


class SourceFileHandler(FileSystemEventHandler):
    """Forwards events for watched files to the event loop.

    Runs on the observer thread; the only thing it does is queue the path
    on the loop.
    """

    def __init__(self, watcher: "ChangeWatcher", loop: asyncio.AbstractEventLoop):
        self.watcher = watcher
        self.loop = loop

    def _forward(self, src_path):
        path = os.path.abspath(os.fsdecode(src_path))
        if path not in self.watcher.watched:
            return
        try:
            self.loop.call_soon_threadsafe(self.watcher.changes.put_nowait, self.watcher.watched[path])
        except RuntimeError:
            # Loop already closed during shutdown.
            pass

    def on_created(self, event):
        if not event.is_directory:
            self._forward(event.src_path)

    def on_modified(self, event):
        if not event.is_directory:
            self._forward(event.src_path)

    def on_moved(self, event):
        if not event.is_directory:
            self._forward(event.dest_path)

    def on_deleted(self, event):
        if event.is_directory and os.path.abspath(os.fsdecode(event.src_path)) in self.watcher.directories:
            logger.warning(f"Watched directory disappeared: {os.fsdecode(event.src_path)}")


class ChangeWatcher:
    """Watches ``paths`` and calls ``on_change`` for each change and tick."""

    def __init__(
        self,
        paths: list[Path],
        on_change: Callable,
        poll_interval: float = 3.0,
        tick_interval: float = 60.0,
    ):
        self.paths = [Path(p) for p in paths]
        self.on_change = on_change
        self.poll_interval = poll_interval
        self.tick_interval = tick_interval
        self.watched = {os.path.abspath(p): p for p in self.paths}
        self.directories = {os.path.dirname(p) for p in self.watched}
        self.changes: asyncio.Queue = None
        self._observer = None
        self._tasks: list[asyncio.Task] = []

    @property
    def watching(self) -> bool:
        return self._observer is not None

    async def start(self):
        """Attach to every source directory and start the change and tick loops."""
        if self._observer is not None:
            return

        logger.info("Starting file watcher...")
        loop = asyncio.get_running_loop()
        self.changes = asyncio.Queue()
        handler = SourceFileHandler(self, loop)

        observer = PollingObserver(timeout=self.poll_interval)
        for directory in sorted(self.directories):
            if not os.path.isdir(directory):
                logger.warning(f"Not watching missing directory {directory}")
                continue
            observer.schedule(handler, directory, recursive=False)
        for path in self.paths:
            logger.info(f"Watching: {path.name}")
        observer.start()
        self._observer = observer

        self._tasks = [asyncio.create_task(self._change_loop())]
        if self.tick_interval:
            self._tasks.append(asyncio.create_task(self._tick_loop()))

    def unwatch_all(self):
        """Detach from every file. Safe to call more than once."""
        for task in self._tasks:
            task.cancel()
        self._tasks = []

        observer = self._observer
        self._observer = None
        if observer is not None:
            observer.unschedule_all()
            observer.stop()
        return observer

    async def stop(self):
        tasks = list(self._tasks)
        observer = self.unwatch_all()
        await asyncio.gather(*tasks, return_exceptions=True)
        if observer is not None:
            await asyncio.to_thread(observer.join)
        logger.info("File watcher stopped")

    async def _change_loop(self):
        while True:
            path = await self.changes.get()
            try:
                logger.info(f"File changed: {path.name}")
                await self._trigger()
            except Exception as e:
                logger.error(f"Error handling change of {path}: {e}")

    async def _tick_loop(self):
        while True:
            await asyncio.sleep(self.tick_interval)
            try:
                await self._trigger()
            except Exception as e:
                logger.error(f"Error in periodic aggregation tick: {e}")

    async def _trigger(self):
        try:
            result = self.on_change()
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Error during triggered aggregation: {e}")
