"""Probe executors, dispatched on the monitor type."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

from nemea_agent.models import MonitorDescriptor, MonitorResult, MonitorType
from nemea_agent.probes.dns_probe import DEFAULT_TIMEOUT_SECONDS as DNS_TIMEOUT_SECONDS
from nemea_agent.probes.dns_probe import check_dns
from nemea_agent.probes.ping_probe import DEFAULT_TIMEOUT_SECONDS as PING_TIMEOUT_SECONDS
from nemea_agent.probes.ping_probe import check_ping


async def _run_dns(monitor: MonitorDescriptor, *, dns_timeout_seconds: float, **_: Any) -> dict[str, Any] | None:
    return await check_dns(
        record_type=monitor.record_type or "",
        domain=monitor.domain or "",
        server=monitor.server,
        timeout_seconds=dns_timeout_seconds,
    )


async def _run_ping(monitor: MonitorDescriptor, *, ping_timeout_seconds: float, **_: Any) -> dict[str, Any] | None:
    summary = await check_ping(monitor.host or "", timeout_seconds=ping_timeout_seconds)
    return summary.to_payload() if summary is not None else None


EXECUTORS: dict[MonitorType, Callable[..., Awaitable[dict[str, Any] | None]]] = {
    MonitorType.DNS: _run_dns,
    MonitorType.PING: _run_ping,
}


async def run_probe(
    monitor: MonitorDescriptor,
    *,
    dns_timeout_seconds: float = DNS_TIMEOUT_SECONDS,
    ping_timeout_seconds: float = PING_TIMEOUT_SECONDS,
) -> MonitorResult | None:
    """Run the executor for ``monitor.type``; None means there is nothing to report."""
    executor = EXECUTORS[monitor.type]
    payload = await executor(
        monitor,
        dns_timeout_seconds=dns_timeout_seconds,
        ping_timeout_seconds=ping_timeout_seconds,
    )
    if payload is None:
        return None
    return MonitorResult(monitor_id=monitor.id, monitor_type=monitor.type, result=payload)
