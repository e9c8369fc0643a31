from __future__ import annotations

import dataclasses

import structlog

from nemea_agent.failures import RetryingCaller
from nemea_agent.geo import GeoLocator
from nemea_agent.models import MonitorResult
from nemea_agent.remote import NemeaApiClient


logger = structlog.get_logger(__name__)


class ResultReporter:
    def __init__(self, client: NemeaApiClient, geo: GeoLocator | None, retry: RetryingCaller) -> None:
        self._client = client
        self._geo = geo
        self._retry = retry

    async def enrich(self, result: MonitorResult) -> MonitorResult:
        if self._geo is None:
            return result
        location = await self._geo.get_location()
        if location is None:
            return result
        return dataclasses.replace(result, location=location)

    async def report(self, result: MonitorResult) -> bool:
        """Send one result. A transient failure is retried once in the background."""
        enriched = await self.enrich(result)
        payload = enriched.to_payload()
        logger.debug("Sending results to API", monitor_id=result.monitor_id)

        async def _send() -> None:
            await self._client.send_result(payload)
            logger.info(
                "Results sent successfully",
                monitor_id=enriched.monitor_id,
                monitor_type=enriched.monitor_type.value,
            )

        return await self._retry.call_detached("sending results", _send)

    async def aclose(self) -> None:
        if self._retry.pending:
            logger.info("Waiting for pending result retries", pending=self._retry.pending)
        await self._retry.drain()
