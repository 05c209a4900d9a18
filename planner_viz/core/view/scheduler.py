from __future__ import annotations

import asyncio
from typing import Any, Callable, Optional, Protocol


class Scheduler(Protocol):
    def call_later(self, delay: float, fn: Callable[[], Any]) -> None: ...


class ManualScheduler:
    """Queue of delayed callbacks, run explicitly (tests, CLI)."""

    def __init__(self) -> None:
        self.now = 0.0
        self._seq = 0
        self._pending: list[tuple[float, int, Callable[[], Any]]] = []

    @property
    def pending(self) -> int:
        return len(self._pending)

    def call_later(self, delay: float, fn: Callable[[], Any]) -> None:
        self._seq += 1
        self._pending.append((self.now + max(0.0, delay), self._seq, fn))

    def advance(self, seconds: float) -> int:
        """Move the clock forward and run every callback now due, in due order."""
        self.now += seconds
        ran = 0
        while True:
            due = sorted(p for p in self._pending if p[0] <= self.now)
            if not due:
                return ran
            item = due[0]
            self._pending.remove(item)
            item[2]()
            ran += 1

    def run_pending(self) -> int:
        if not self._pending:
            return 0
        latest = max(p[0] for p in self._pending)
        return self.advance(max(0.0, latest - self.now))


class AsyncioScheduler:
    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, fn: Callable[[], Any]) -> None:
        loop = self._loop or asyncio.get_running_loop()
        loop.call_later(delay, fn)
