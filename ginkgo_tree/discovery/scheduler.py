"""Debounced, single-flight re-discovery.

File-change notifications arriving within ``debounce_seconds`` of each other
collapse into one discovery pass.  At most one pass runs at a time; a
notification that fires while a pass is running sets ``pending`` and exactly
one more pass runs as soon as the current one finishes.
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Awaitable, Callable

DEFAULT_DEBOUNCE_SECONDS = 0.5


class RediscoveryScheduler:
    """Single-flight task with a trailing-edge re-run flag."""

    def __init__(
        self,
        discover: Callable[[], Awaitable[object]],
        debounce_seconds: float = DEFAULT_DEBOUNCE_SECONDS,
    ) -> None:
        self._discover = discover
        self.debounce_seconds = debounce_seconds
        self.pending = False
        self.passes = 0
        self._timer: asyncio.TimerHandle | None = None
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def notify(self, path: str | None = None) -> None:
        """Record a change; restarts the debounce window.

        Must be called from within the running event loop.
        """
        loop = asyncio.get_running_loop()
        if self._timer is not None:
            self._timer.cancel()
        self._timer = loop.call_later(self.debounce_seconds, self.trigger)

    def trigger(self) -> None:
        """Start a pass now, or mark one pending if a pass is running."""
        self._timer = None
        if self.running:
            self.pending = True
            return
        self._task = asyncio.get_running_loop().create_task(self._run())

    async def _run(self) -> None:
        while True:
            self.pending = False
            try:
                await self._discover()
            except Exception as e:
                print(f"Rediscovery: discovery pass failed: {e}", file=sys.stderr)
            self.passes += 1
            if not self.pending:
                return

    async def wait_idle(self) -> None:
        """Wait until no debounce timer is armed and no pass is running."""
        while True:
            if self._timer is not None:
                await asyncio.sleep(self.debounce_seconds)
                continue
            if self.running:
                assert self._task is not None
                await asyncio.shield(self._task)
                continue
            return

    def cancel(self) -> None:
        """Disarm the timer and cancel a running pass."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self.pending = False
