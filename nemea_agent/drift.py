from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from nemea_agent.failures import RetryingCaller
from nemea_agent.remote import NemeaApiClient

if TYPE_CHECKING:
    from nemea_agent.agent import MonitorAgent


logger = structlog.get_logger(__name__)


class DriftDetector:
    """Compares the remote source of truth with what the agent is running.

    It never mutates agent state itself: new values are handed to the agent,
    which owns the refresh interval and the monitor task set.
    """

    def __init__(self, client: NemeaApiClient, retry: RetryingCaller, agent: MonitorAgent) -> None:
        self._client = client
        self._retry = retry
        self._agent = agent

    async def check_config(self) -> bool:
        logger.debug("Checking for config changes")
        config = await self._retry.call("fetching config", self._client.fetch_config)
        if config is None:
            return False
        if config.refresh_interval_seconds == self._agent.refresh_interval:
            return False
        self._agent.apply_refresh_interval(config.refresh_interval_seconds)
        return True

    async def check_monitors(self) -> bool:
        logger.debug("Checking for new monitors")
        monitors = await self._retry.call("fetching monitors", self._client.fetch_monitors)
        if monitors is None:
            return False
        if monitors == self._agent.monitors:
            return False
        logger.info(
            "Monitors updated",
            previous=len(self._agent.monitors),
            current=len(monitors),
            monitor_ids=[m.id for m in monitors],
        )
        await self._agent.reconcile(monitors)
        return True
