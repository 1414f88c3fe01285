"""
Polling primitives — cancellable periodic tasks on the running event loop.

``PeriodicTask`` is the handle returned when a poll loop starts; calling
``stop()`` cancels it. ``ScopedPoller`` is the base for every poller in
the editor: it owns at most one ``PeriodicTask`` at a time, so restarting
it for a new scope always stops the previous loop first.

Both support ``async with`` so a scope that starts polling is guaranteed
to stop it on exit.
"""

from __future__ import annotations

import asyncio
from logging import getLogger
from typing import Awaitable, Callable, List, Optional

logger = getLogger(__name__)

TickCallback = Callable[[], Awaitable[None]]


class PeriodicTask:
    """Run ``callback`` every ``interval`` seconds until stopped.

    Ticks never overlap: the next sleep starts only after the previous
    callback has returned.
    """

    def __init__(
        self,
        callback: TickCallback,
        interval: float,
        name: str = "periodic",
        immediate: bool = True,
    ) -> None:
        self._callback = callback
        self._interval = interval
        self._name = name
        self._immediate = immediate
        self._task: Optional[asyncio.Task] = None

    @property
    def name(self) -> str:
        return self._name

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> "PeriodicTask":
        if self.running:
            return self
        self._task = asyncio.ensure_future(self._run())
        logger.debug(f"Periodic task started: {self._name} (every {self._interval}s)")
        return self

    def stop(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
            logger.debug(f"Periodic task stopped: {self._name}")

    async def wait_stopped(self) -> None:
        """Wait until the loop has fully unwound after ``stop()``."""
        task = self._task
        if task is None or task is asyncio.current_task():
            return
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _run(self) -> None:
        if not self._immediate:
            await asyncio.sleep(self._interval)
        while True:
            try:
                await self._callback()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Periodic task {self._name} tick raised: {e}")
            await asyncio.sleep(self._interval)

    async def __aenter__(self) -> "PeriodicTask":
        return self.start()

    async def __aexit__(self, *exc_info) -> None:
        self.stop()
        await self.wait_stopped()


def start_periodic(
    callback: TickCallback,
    interval: float,
    name: str = "periodic",
    immediate: bool = True,
) -> PeriodicTask:
    """Start a periodic task and return its handle."""
    return PeriodicTask(callback, interval, name=name, immediate=immediate).start()


class ScopedPoller:
    """Base for pollers that own a single periodic loop.

    Subclasses implement ``tick()``; it must replace the poller's data
    wholesale and swallow its own fetch failures.
    """

    name = "poller"

    def __init__(self, interval: float = 2.0) -> None:
        self.interval = interval
        self._handle: Optional[PeriodicTask] = None
        self._listeners: List[Callable[["ScopedPoller"], None]] = []

    @property
    def active(self) -> bool:
        return self._handle is not None and self._handle.running

    async def tick(self) -> None:
        raise NotImplementedError

    def _start_loop(self, scope: str = "") -> PeriodicTask:
        # Never let two loops for this poller coexist
        self.stop()
        label = f"{self.name}:{scope}" if scope else self.name
        self._handle = start_periodic(self.tick, self.interval, name=label)
        return self._handle

    def stop(self) -> None:
        if self._handle is not None:
            self._handle.stop()
            self._handle = None

    async def aclose(self) -> None:
        handle = self._handle
        self.stop()
        if handle is not None:
            await handle.wait_stopped()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # ── Subscription ──

    def subscribe(self, listener: Callable[["ScopedPoller"], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)
