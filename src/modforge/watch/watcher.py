# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Filesystem watch loop feeding the invalidator."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from pathlib import Path

from watchfiles import Change, awatch

from modforge.compiler.errors import CompilerError
from modforge.compiler.resolver import SCRIPT_EXTENSIONS, STYLE_EXTENSIONS
from modforge.model.module import ChangeEvent
from modforge.watch.debounce import DEFAULT_DELAY, DebounceScheduler
from modforge.watch.invalidator import Invalidator

logger = logging.getLogger(__name__)

# ###############
# Public Interface
# ###############

MODULE_EXTENSIONS = SCRIPT_EXTENSIONS + STYLE_EXTENSIONS
DEFAULT_EXCLUDES = (".cache", "node_modules", ".git")

ChangeHook = Callable[[list[ChangeEvent]], Awaitable[None]]


class FileWatcher:
    """Watches a source tree and hands debounced changes to an invalidator.

    Notifications for one file are coalesced over the debounce delay. Changes
    are then applied one at a time, in arrival order. A compile failure is
    logged and the loop keeps going; saving the file again retries it.

    Args:
        src_dir: Source root to watch.
        invalidator: Receives each debounced change.
        extensions: File suffixes that are modules.
        exclude_dirs: Directory names never watched.
        delay: Debounce quiet period in seconds.
        on_change: Awaited with the events of each successfully applied change.
    """

    def __init__(
        self,
        src_dir: Path,
        invalidator: Invalidator,
        *,
        extensions: Iterable[str] = MODULE_EXTENSIONS,
        exclude_dirs: Iterable[str] = DEFAULT_EXCLUDES,
        delay: float = DEFAULT_DELAY,
        on_change: ChangeHook | None = None,
    ) -> None:
        self.src_dir = src_dir
        self.invalidator = invalidator
        self.extensions = tuple(ext.lower() for ext in extensions)
        self.exclude_dirs = frozenset(exclude_dirs)
        self.on_change = on_change
        self.scheduler = DebounceScheduler(delay)
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._queued: set[str] = set()

    def to_source_file(self, path: Path | str) -> str | None:
        """Map a filesystem path to a local module source path, or None if ignored."""
        try:
            rel = Path(path).resolve().relative_to(self.src_dir.resolve())
        except ValueError:
            return None
        parts = rel.parts
        if not parts or any(part in self.exclude_dirs for part in parts[:-1]):
            return None
        name = parts[-1].lower()
        if not name.endswith(self.extensions) or name.endswith(".d.ts"):
            return None
        return "./" + rel.as_posix()

    def notify(self, path: Path | str) -> None:
        """Record a filesystem notification for *path*."""
        source_file = self.to_source_file(path)
        if source_file is not None:
            self.scheduler.arm(source_file, lambda: self._enqueue(source_file))

    async def run(self, stop_event: asyncio.Event | None = None) -> None:
        """Watch until *stop_event* is set."""
        logger.info("Watching %s for changes", self.src_dir)
        consumer = asyncio.create_task(self.process_queue())
        try:
            async for changes in awatch(
                self.src_dir,
                watch_filter=self._accepts,
                debounce=50,
                stop_event=stop_event,
            ):
                for _, path in changes:
                    self.notify(path)
        finally:
            self.scheduler.cancel_all()
            consumer.cancel()
            await asyncio.gather(consumer, return_exceptions=True)

    async def process_queue(self) -> None:
        """Apply queued changes serially, forever."""
        while True:
            source_file = await self._queue.get()
            try:
                await self.apply(source_file)
            finally:
                self._queue.task_done()

    async def apply(self, source_file: str) -> list[ChangeEvent]:
        """Apply the current on-disk state of one module source file."""
        self._queued.discard(source_file)
        exists = (self.src_dir / source_file.removeprefix("./")).is_file()
        try:
            events = await self.invalidator.handle_change(source_file, exists=exists)
        except CompilerError as exc:
            logger.error("%s", exc)
            return []
        if events and self.on_change is not None:
            await self.on_change(events)
        return events

    # ################
    # Implementation
    # ################

    def _enqueue(self, source_file: str) -> None:
        if source_file not in self._queued:
            self._queued.add(source_file)
            self._queue.put_nowait(source_file)

    def _accepts(self, change: Change, path: str) -> bool:
        return self.to_source_file(path) is not None
