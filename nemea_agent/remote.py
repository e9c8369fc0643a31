from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
import structlog

from nemea_agent.errors import MalformedResponseError
from nemea_agent.models import AgentConfig, MonitorDescriptor, parse_monitor_list


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class ApiConfig:
    base_url: str
    api_key: str
    timeout_seconds: float = 15.0

    def url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path.lstrip('/')}"

    @property
    def headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}


def _json_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError as exc:
        raise MalformedResponseError(f"{resp.request.url.path} returned non-JSON body") from exc


class NemeaApiClient:
    """Config, monitor list and ingest endpoints of the Nemea API.

    Every method raises instead of logging: ``httpx.HTTPStatusError`` for an
    error status, another ``httpx.HTTPError`` when no response came back, and
    ``MalformedResponseError`` for a body of the wrong shape. Callers decide
    what a failure means (see ``nemea_agent.failures``).
    """

    def __init__(self, http_client: httpx.AsyncClient, cfg: ApiConfig) -> None:
        self._client = http_client
        self.cfg = cfg

    async def fetch_config(self) -> AgentConfig:
        logger.debug("Fetching config from API")
        resp = await self._client.get(
            self.cfg.url("/v1/nemea/config"),
            headers=self.cfg.headers,
            timeout=self.cfg.timeout_seconds,
        )
        resp.raise_for_status()
        config = AgentConfig.from_wire(_json_body(resp))
        logger.debug("Config fetched", refresh_interval_seconds=config.refresh_interval_seconds)
        return config

    async def fetch_monitors(self) -> tuple[MonitorDescriptor, ...]:
        logger.debug("Fetching monitors from API")
        resp = await self._client.get(
            self.cfg.url("/v1/nemea/monitors"),
            headers=self.cfg.headers,
            timeout=self.cfg.timeout_seconds,
        )
        resp.raise_for_status()
        monitors = parse_monitor_list(_json_body(resp))
        logger.debug("Monitors fetched", count=len(monitors))
        return monitors

    async def send_result(self, payload: dict[str, Any]) -> None:
        resp = await self._client.post(
            self.cfg.url("/v1/nemea/ingest"),
            headers=self.cfg.headers,
            json=payload,
            timeout=self.cfg.timeout_seconds,
        )
        resp.raise_for_status()
