"""Lifecycle manager: owns the running task set and walks the agent state machine.

    UNINITIALIZED -> CONFIG_LOADING -> MONITORING -> (RESTARTING -> MONITORING)* -> STOPPED

Only this module writes the active refresh interval and the monitor task
handles. Reconciliation stops every monitor task of the old generation, waits
for all of them, and only then starts the new generation, so two generations
never tick side by side.
"""

from __future__ import annotations

import asyncio
import functools
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable

import structlog

from nemea_agent.drift import DriftDetector
from nemea_agent.errors import InvalidConfigError
from nemea_agent.failures import RetryingCaller
from nemea_agent.models import DEFAULT_REFRESH_INTERVAL_SECONDS, AgentConfig, MonitorDescriptor, MonitorResult
from nemea_agent.probes import run_probe
from nemea_agent.remote import NemeaApiClient
from nemea_agent.reporter import ResultReporter
from nemea_agent.scheduler import PeriodicTask, stop_tasks


logger = structlog.get_logger(__name__)

CONFIG_RETRY_INTERVAL_SECONDS = 60.0


class AgentState(str, Enum):
    UNINITIALIZED = "uninitialized"
    CONFIG_LOADING = "config_loading"
    MONITORING = "monitoring"
    RESTARTING = "restarting"
    STOPPED = "stopped"


class MonitorAgent:
    def __init__(
        self,
        client: NemeaApiClient,
        reporter: ResultReporter,
        *,
        retry: RetryingCaller | None = None,
        probe: Callable[[MonitorDescriptor], Awaitable[MonitorResult | None]] = run_probe,
        config_retry_interval_seconds: float = CONFIG_RETRY_INTERVAL_SECONDS,
    ) -> None:
        self._client = client
        self._reporter = reporter
        self._retry = retry or RetryingCaller()
        self._probe = probe
        self.config_retry_interval_seconds = config_retry_interval_seconds
        self.drift = DriftDetector(client, self._retry, self)

        self._state = AgentState.UNINITIALIZED
        self._refresh_interval: float | None = None
        self._monitors: tuple[MonitorDescriptor, ...] = ()
        self._monitor_tasks: tuple[PeriodicTask, ...] = ()
        self._housekeeping_tasks: tuple[PeriodicTask, ...] = ()
        self._lock = asyncio.Lock()
        self._stopping = False
        self._restarts: set[asyncio.Task[Any]] = set()

    @property
    def state(self) -> AgentState:
        return self._state

    @property
    def refresh_interval(self) -> float:
        if self._refresh_interval is None:
            return DEFAULT_REFRESH_INTERVAL_SECONDS
        return self._refresh_interval

    @property
    def monitors(self) -> tuple[MonitorDescriptor, ...]:
        return self._monitors

    @property
    def monitor_tasks(self) -> tuple[PeriodicTask, ...]:
        return self._monitor_tasks

    @property
    def housekeeping_tasks(self) -> tuple[PeriodicTask, ...]:
        return self._housekeeping_tasks

    async def run(self, shutdown_event: asyncio.Event) -> None:
        """Start, keep running until ``shutdown_event`` is set, then stop gracefully."""
        if await self.start(shutdown_event):
            await shutdown_event.wait()
        await self.stop()

    async def start(self, shutdown_event: asyncio.Event | None = None) -> bool:
        """Load config, then start the monitor and drift tasks.

        Returns False when shutdown was requested before monitoring began.
        """
        if self._state is not AgentState.UNINITIALIZED:
            raise RuntimeError(f"agent cannot start from state {self._state.value}")
        shutdown = shutdown_event or asyncio.Event()

        self._state = AgentState.CONFIG_LOADING
        logger.info("Nemea agent started")
        config = await self._load_config(shutdown)
        if config is None:
            return False

        if self._refresh_interval is None:
            self._refresh_interval = config.refresh_interval_seconds
            logger.info("Initial monitor refresh interval set", refresh_interval_seconds=self._refresh_interval)

        monitors = await self._retry.call("fetching monitors", self._client.fetch_monitors)
        if monitors is None:
            logger.warning("Starting with no monitors until the next monitor check succeeds")

        async with self._lock:
            if self._stopping:
                return False
            logger.info("Starting monitoring", monitors=len(monitors or ()))
            self._monitors = tuple(monitors or ())
            self._monitor_tasks = self._start_monitor_tasks(self._monitors)
            self._housekeeping_tasks = (
                PeriodicTask("drift:config", self.drift.check_config, lambda: self.refresh_interval),
                PeriodicTask("drift:monitors", self.drift.check_monitors, lambda: self.refresh_interval),
            )
            for task in self._housekeeping_tasks:
                task.start()
            self._state = AgentState.MONITORING
        return True

    async def _load_config(self, shutdown: asyncio.Event) -> AgentConfig | None:
        while not shutdown.is_set():
            config = await self._retry.call("fetching config", self._client.fetch_config)
            if config is not None:
                return config
            logger.warning("Config not loaded, trying again", retry_in_seconds=self.config_retry_interval_seconds)
            try:
                await asyncio.wait_for(shutdown.wait(), timeout=self.config_retry_interval_seconds)
            except asyncio.TimeoutError:
                pass
        return None

    def apply_refresh_interval(self, seconds: float) -> None:
        if seconds == self._refresh_interval:
            return
        self._refresh_interval = seconds
        logger.info("Monitor refresh interval updated", refresh_interval_seconds=seconds)

    async def reconcile(self, monitors: Iterable[MonitorDescriptor]) -> bool:
        """Replace every monitor task with one task per descriptor in ``monitors``."""
        new_monitors = tuple(monitors)
        async with self._lock:
            if self._stopping or self._state is not AgentState.MONITORING:
                logger.warning("Ignoring restart request", state=self._state.value)
                return False
            self._state = AgentState.RESTARTING
            logger.info("Restarting monitoring", stopping=len(self._monitor_tasks), starting=len(new_monitors))
            await stop_tasks(self._monitor_tasks)
            self._monitors = new_monitors
            self._monitor_tasks = self._start_monitor_tasks(new_monitors)
            self._state = AgentState.MONITORING
        return True

    async def restart(self) -> bool:
        """Explicit restart: re-fetch the monitor list and reconcile even if it did not change."""
        monitors = await self._retry.call("fetching monitors", self._client.fetch_monitors)
        if monitors is None:
            logger.error("Restart aborted, monitor list unavailable")
            return False
        return await self.reconcile(monitors)

    def request_restart(self) -> None:
        task = asyncio.create_task(self.restart())
        self._restarts.add(task)
        task.add_done_callback(self._restarts.discard)

    async def stop(self) -> None:
        if self._state is AgentState.STOPPED:
            return
        self._stopping = True
        logger.info("Stopping monitoring")
        if self._restarts:
            await asyncio.gather(*list(self._restarts), return_exceptions=True)
        # Drift ticks may be mid-reconcile and need the lock, so they go first.
        await stop_tasks(self._housekeeping_tasks)
        async with self._lock:
            await stop_tasks(self._monitor_tasks)
            self._monitor_tasks = ()
            self._housekeeping_tasks = ()
        await self._reporter.aclose()
        self._state = AgentState.STOPPED
        logger.info("Monitoring stopped")

    def _start_monitor_tasks(self, monitors: tuple[MonitorDescriptor, ...]) -> tuple[PeriodicTask, ...]:
        tasks = tuple(
            PeriodicTask(f"monitor:{m.id}", functools.partial(self._run_monitor, m), m.interval_seconds)
            for m in monitors
        )
        for task in tasks:
            task.start()
        return tasks

    async def _run_monitor(self, monitor: MonitorDescriptor) -> None:
        try:
            result = await self._probe(monitor)
        except InvalidConfigError as exc:
            logger.error("Invalid monitor configuration", monitor_id=monitor.id, error=str(exc))
            return
        if result is None:
            return
        await self._reporter.report(result)
