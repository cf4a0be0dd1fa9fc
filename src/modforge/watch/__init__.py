# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Change detection and cascading invalidation."""

from modforge.watch.debounce import DebounceScheduler
from modforge.watch.invalidator import Invalidator, Listener
from modforge.watch.watcher import FileWatcher

__all__ = [
    "DebounceScheduler",
    "FileWatcher",
    "Invalidator",
    "Listener",
]
