from __future__ import annotations

import httpx
import pytest
from structlog.testing import capture_logs

from nemea_agent.errors import MalformedResponseError
from nemea_agent.failures import FailureKind, RetryingCaller, classify_failure, log_failure


def _status_error(status: int) -> httpx.HTTPStatusError:
    request = httpx.Request("GET", "https://api.example/v1/nemea/config")
    response = httpx.Response(status, request=request)
    return httpx.HTTPStatusError(f"HTTP {status}", request=request, response=response)


class _FakeSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class _Flaky:
    """Raises the queued errors in order, then returns ``value``."""

    def __init__(self, errors: list[Exception], value: object = "ok") -> None:
        self.errors = list(errors)
        self.value = value
        self.calls = 0

    async def __call__(self) -> object:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        return self.value


@pytest.mark.parametrize(
    ("exc", "kind"),
    [
        (_status_error(500), FailureKind.TRANSIENT),
        (_status_error(502), FailureKind.TRANSIENT),
        (_status_error(404), FailureKind.NOT_FOUND),
        (_status_error(403), FailureKind.FORBIDDEN),
        (_status_error(503), FailureKind.UNHANDLED_HTTP),
        (_status_error(401), FailureKind.UNHANDLED_HTTP),
        (httpx.ConnectError("connection refused"), FailureKind.NETWORK),
        (httpx.ReadTimeout("timed out"), FailureKind.NETWORK),
        (MalformedResponseError("bad body"), FailureKind.MALFORMED),
    ],
)
def test_classify_failure(exc: Exception, kind: FailureKind) -> None:
    assert classify_failure(exc) is kind
    assert kind.retryable is (kind is FailureKind.TRANSIENT)


def test_log_failure_levels() -> None:
    with capture_logs() as logs:
        log_failure("fetching config", _status_error(404))
        log_failure("fetching config", _status_error(403))
        log_failure("fetching config", _status_error(500), retry_in_seconds=5.0)
    events = [(e["log_level"], e["event"]) for e in logs]
    assert ("error", "Resource not found. Please check the URL.") in events
    assert ("error", "Access forbidden. Please check API key.") in events
    assert ("warning", "Received 500. Retrying in 5 seconds...") in events


@pytest.mark.parametrize("status", [500, 502])
def test_transient_failure_logs_only_warnings(status: int) -> None:
    with capture_logs() as logs:
        log_failure("sending results", _status_error(status), retry_in_seconds=5.0)
        log_failure("sending results", _status_error(status))
    assert [e["log_level"] for e in logs] == ["warning", "warning"]


@pytest.mark.asyncio
async def test_transient_failure_is_retried_exactly_once() -> None:
    sleep = _FakeSleep()
    caller = RetryingCaller(5.0, sleep=sleep)
    func = _Flaky([_status_error(500)], value="config")

    assert await caller.call("fetching config", func) == "config"
    assert func.calls == 2
    assert sleep.calls == [5.0]


@pytest.mark.asyncio
async def test_second_transient_failure_is_not_retried_again() -> None:
    sleep = _FakeSleep()
    caller = RetryingCaller(5.0, sleep=sleep)
    func = _Flaky([_status_error(500), _status_error(500), _status_error(500)])

    assert await caller.call("fetching config", func) is None
    assert func.calls == 2
    assert sleep.calls == [5.0]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "exc",
    [_status_error(404), _status_error(403), _status_error(418), httpx.ConnectError("down"), MalformedResponseError("x")],
)
async def test_permanent_failures_are_not_retried(exc: Exception) -> None:
    sleep = _FakeSleep()
    caller = RetryingCaller(5.0, sleep=sleep)
    func = _Flaky([exc])

    assert await caller.call("fetching monitors", func) is None
    assert func.calls == 1
    assert sleep.calls == []


@pytest.mark.asyncio
async def test_detached_retry_runs_in_background() -> None:
    sleep = _FakeSleep()
    caller = RetryingCaller(5.0, sleep=sleep)
    func = _Flaky([_status_error(502)])

    ok = await caller.call_detached("sending results", func)
    assert ok is False
    assert func.calls == 1
    assert caller.pending == 1

    await caller.drain()
    assert func.calls == 2
    assert caller.pending == 0
    assert sleep.calls == [5.0]


@pytest.mark.asyncio
async def test_detached_call_does_not_schedule_retry_for_permanent_failure() -> None:
    caller = RetryingCaller(5.0, sleep=_FakeSleep())
    func = _Flaky([_status_error(404)])

    assert await caller.call_detached("sending results", func) is False
    assert caller.pending == 0
    assert func.calls == 1
