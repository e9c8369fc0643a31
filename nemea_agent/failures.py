"""Classification of remote-call failures and the single-retry policy.

Status codes map onto one of two outcomes:

* 500 and 502 are transient: warn, wait ``retry_delay_seconds`` and try the
  same call exactly once more. A failing retry is logged and dropped.
* Everything else (404, 403, other statuses, no response at all, a body of the
  wrong shape) is permanent for that call: log at error level, no retry. The
  next natural tick of whatever issued the call is the only "retry".
"""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, TypeVar

import httpx
import structlog

from nemea_agent.errors import MalformedResponseError


logger = structlog.get_logger(__name__)

RETRY_DELAY_SECONDS = 5.0
TRANSIENT_STATUS_CODES = frozenset({500, 502})

T = TypeVar("T")

RemoteFailure = (httpx.HTTPError, MalformedResponseError)


class FailureKind(str, Enum):
    TRANSIENT = "transient"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    UNHANDLED_HTTP = "unhandled_http"
    NETWORK = "network"
    MALFORMED = "malformed"

    @property
    def retryable(self) -> bool:
        return self is FailureKind.TRANSIENT


def classify_failure(exc: BaseException) -> FailureKind:
    if isinstance(exc, MalformedResponseError):
        return FailureKind.MALFORMED
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        if status in TRANSIENT_STATUS_CODES:
            return FailureKind.TRANSIENT
        if status == 404:
            return FailureKind.NOT_FOUND
        if status == 403:
            return FailureKind.FORBIDDEN
        return FailureKind.UNHANDLED_HTTP
    return FailureKind.NETWORK


def log_failure(action: str, exc: BaseException, *, retry_in_seconds: float | None = None) -> FailureKind:
    """Log ``exc`` the way its class demands and return the class.

    ``retry_in_seconds`` is only mentioned for transient failures, and only
    when the caller is actually going to retry.
    """
    kind = classify_failure(exc)
    if isinstance(exc, httpx.HTTPStatusError) and not kind.retryable:
        logger.error(
            f"Failed {action}",
            status_code=exc.response.status_code,
            reason=exc.response.reason_phrase,
        )

    if kind is FailureKind.TRANSIENT:
        if retry_in_seconds is None:
            logger.warning("Transient remote failure", action=action, status_code=exc.response.status_code)
        else:
            logger.warning(
                f"Received {exc.response.status_code}. Retrying in {retry_in_seconds:g} seconds...",
                action=action,
            )
    elif kind is FailureKind.NOT_FOUND:
        logger.error("Resource not found. Please check the URL.", action=action)
    elif kind is FailureKind.FORBIDDEN:
        logger.error("Access forbidden. Please check API key.", action=action)
    elif kind is FailureKind.UNHANDLED_HTTP:
        logger.error("Unhandled HTTP error occurred.", action=action)
    else:
        logger.error(f"Failed {action}", error=f"{type(exc).__name__}: {exc}")
    return kind


class RetryingCaller:
    """Runs remote calls under the one-retry-on-5xx policy."""

    def __init__(
        self,
        retry_delay_seconds: float = RETRY_DELAY_SECONDS,
        *,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.retry_delay_seconds = retry_delay_seconds
        self._sleep = sleep
        self._pending: set[asyncio.Task[Any]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def call(self, action: str, func: Callable[[], Awaitable[T]]) -> T | None:
        """Await ``func``; on a transient failure wait and retry once inline."""
        try:
            return await func()
        except RemoteFailure as exc:
            kind = log_failure(action, exc, retry_in_seconds=self.retry_delay_seconds)
            if not kind.retryable:
                return None
        return await self._retry(action, func)

    async def call_detached(self, action: str, func: Callable[[], Awaitable[Any]]) -> bool:
        """First attempt inline; a transient failure schedules the retry in the background.

        Returns True only when the inline attempt succeeded. The caller is never
        held up by the retry delay.
        """
        try:
            await func()
            return True
        except RemoteFailure as exc:
            kind = log_failure(action, exc, retry_in_seconds=self.retry_delay_seconds)
            if kind.retryable:
                task = asyncio.create_task(self._retry(action, func))
                self._pending.add(task)
                task.add_done_callback(self._pending.discard)
            return False

    async def drain(self) -> None:
        """Wait for every scheduled background retry to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def _retry(self, action: str, func: Callable[[], Awaitable[T]]) -> T | None:
        await self._sleep(self.retry_delay_seconds)
        logger.info("Retrying remote call", action=action)
        try:
            return await func()
        except RemoteFailure as exc:
            log_failure(action, exc)
            logger.error("Retry failed, giving up until next tick", action=action)
            return None
