"""Periodic tasks with non-overlapping ticks and cooperative stop."""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Callable, Iterable, Union

import structlog


logger = structlog.get_logger(__name__)

Interval = Union[float, Callable[[], float]]


class PeriodicTask:
    """Runs ``func`` every ``interval`` seconds on its own asyncio task.

    The interval is measured start to start. A tick that outlasts the interval
    delays the next one instead of overlapping it. ``interval`` may be a
    callable, read again before every wait, so a changed value applies from
    the next tick on.
    """

    def __init__(self, name: str, func: Callable[[], Awaitable[object]], interval: Interval) -> None:
        self.name = name
        self._func = func
        self._interval = interval
        self._stop = asyncio.Event()
        self._task: asyncio.Task[None] | None = None
        self.ticks = 0
        self.in_tick = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def current_interval(self) -> float:
        value = self._interval() if callable(self._interval) else self._interval
        return max(0.0, float(value))

    def start(self) -> None:
        if self._task is not None:
            raise RuntimeError(f"{self.name} already started")
        self._task = asyncio.create_task(self._run(), name=self.name)

    async def stop(self) -> None:
        """Ask the loop to exit and wait for it. An in-flight tick is allowed to finish."""
        self._stop.set()
        if self._task is None:
            return
        await asyncio.shield(self._task)

    async def _run(self) -> None:
        logger.debug("Periodic task started", task=self.name, interval_seconds=self.current_interval())
        started = time.monotonic()
        while not self._stop.is_set():
            elapsed = time.monotonic() - started
            sleep_for = max(0.0, self.current_interval() - elapsed)
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=sleep_for)
                break
            except asyncio.TimeoutError:
                pass

            started = time.monotonic()
            self.in_tick = True
            try:
                await self._func()
            except Exception:
                logger.exception("Periodic task tick failed", task=self.name)
            finally:
                self.in_tick = False
                self.ticks += 1
        logger.debug("Periodic task stopped", task=self.name, ticks=self.ticks)


async def stop_tasks(tasks: Iterable[PeriodicTask]) -> None:
    """Stop every task concurrently and return once all of them have exited."""
    await asyncio.gather(*(t.stop() for t in tasks))
