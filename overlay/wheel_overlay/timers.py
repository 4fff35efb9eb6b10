"""Cancelable timer primitives shared by the transport and the spin engine."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Protocol

logger = logging.getLogger(__name__)

Callback = Callable[[], None]


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    """Clock plus deferred callbacks; the event loop in production, a fake clock in tests."""

    def now(self) -> float: ...

    def call_later(self, delay: float, callback: Callback) -> TimerHandle: ...


class LoopScheduler:
    """Scheduler backed by the running asyncio loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None or self._loop.is_closed():
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self.loop.time()

    def call_later(self, delay: float, callback: Callback) -> asyncio.TimerHandle:
        return self.loop.call_later(max(0.0, delay), callback)


class TimerSlot:
    """Holds at most one pending timer; scheduling again cancels the previous one."""

    def __init__(self, scheduler: Scheduler, name: str) -> None:
        self._scheduler = scheduler
        self.name = name
        self._handle: Optional[TimerHandle] = None

    @property
    def pending(self) -> bool:
        return self._handle is not None

    def schedule(self, delay: float, callback: Callback) -> TimerHandle:
        self.cancel()

        def _fire() -> None:
            # Clear first so the callback may reschedule this slot.
            if self._handle is handle:
                self._handle = None
            callback()

        handle = self._scheduler.call_later(delay, _fire)
        self._handle = handle
        logger.debug("Timer %s scheduled in %.3fs", self.name, delay)
        return handle

    def cancel(self) -> bool:
        handle = self._handle
        self._handle = None
        if handle is None:
            return False
        handle.cancel()
        logger.debug("Timer %s cancelled", self.name)
        return True


__all__ = ["Callback", "LoopScheduler", "Scheduler", "TimerHandle", "TimerSlot"]
