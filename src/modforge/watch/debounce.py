# Copyright 2026 modforge Contributors
# SPDX-License-Identifier: Apache-2.0

"""Per-key delayed task scheduler."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Hashable

# ###############
# Public Interface
# ###############

DEFAULT_DELAY = 0.15


class DebounceScheduler:
    """Runs a callback for a key once that key has been quiet for *delay* seconds.

    Re-arming a pending key resets its timer, so a burst of notifications for
    the same key fires once. Must be used from within a running event loop.

    Args:
        delay: Quiet period in seconds.
    """

    def __init__(self, delay: float = DEFAULT_DELAY) -> None:
        self.delay = delay
        self._handles: dict[Hashable, asyncio.TimerHandle] = {}

    def arm(self, key: Hashable, callback: Callable[[], None]) -> None:
        """Schedule *callback* for *key*, replacing any pending one."""
        self.cancel(key)
        loop = asyncio.get_running_loop()
        self._handles[key] = loop.call_later(self.delay, self._fire, key, callback)

    def cancel(self, key: Hashable) -> bool:
        """Drop the pending callback for *key*. Returns True if one was pending."""
        handle = self._handles.pop(key, None)
        if handle is None:
            return False
        handle.cancel()
        return True

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()

    def pending(self) -> list[Hashable]:
        return list(self._handles)

    def __len__(self) -> int:
        return len(self._handles)

    # ################
    # Implementation
    # ################

    def _fire(self, key: Hashable, callback: Callable[[], None]) -> None:
        self._handles.pop(key, None)
        callback()
