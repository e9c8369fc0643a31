from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

import httpx
import structlog


logger = structlog.get_logger(__name__)

GEO_URL = "https://ipinfo.io/json"
CACHE_EXPIRATION_SECONDS = 60.0


@dataclass(frozen=True)
class GeoCacheEntry:
    payload: dict[str, Any]
    fetched_at: float


class GeoLocator:
    """Approximate network location of this agent, cached for a fixed window.

    The cache is a single slot that is only ever overwritten as a whole. Two
    ticks that find it stale at the same moment both fetch, and the one that
    finishes last wins.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token: str | None,
        *,
        url: str = GEO_URL,
        ttl_seconds: float = CACHE_EXPIRATION_SECONDS,
        timeout_seconds: float = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._client = http_client
        self._token = (token or "").strip() or None
        self.url = url
        self.ttl_seconds = ttl_seconds
        self.timeout_seconds = timeout_seconds
        self._clock = clock
        self._cache: GeoCacheEntry | None = None
        if self._token is None:
            logger.warning("Geolocation API key is not provided. Skipping geolocation.")

    @property
    def enabled(self) -> bool:
        return self._token is not None

    @property
    def cache(self) -> GeoCacheEntry | None:
        return self._cache

    async def get_location(self) -> dict[str, Any] | None:
        if self._token is None:
            return None

        entry = self._cache
        now = self._clock()
        if entry is not None and now - entry.fetched_at < self.ttl_seconds:
            logger.debug("Using cached geolocation data")
            return entry.payload

        logger.debug("Fetching geolocation data")
        try:
            resp = await self._client.get(self.url, params={"token": self._token}, timeout=self.timeout_seconds)
            resp.raise_for_status()
            payload = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            msg = f"{type(exc).__name__}: {exc}".replace(self._token, "<redacted>")
            logger.error("Failed to fetch geolocation data", error=msg)
            return None
        if not isinstance(payload, dict):
            logger.error("Failed to fetch geolocation data", error="response is not a JSON object")
            return None

        self._cache = GeoCacheEntry(payload=payload, fetched_at=now)
        return payload
