from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import structlog

from nemea_agent.errors import MalformedResponseError


logger = structlog.get_logger(__name__)

DEFAULT_MONITOR_INTERVAL_SECONDS = 60.0
DEFAULT_REFRESH_INTERVAL_SECONDS = 60.0


class MonitorType(str, Enum):
    DNS = "DNS"
    PING = "PING"


def _interval_ms_to_seconds(value: Any, *, default: float) -> float:
    # The remote API speaks milliseconds; 0, null and garbage all mean "use the default".
    if isinstance(value, bool):
        return default
    try:
        ms = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(ms) or ms <= 0:
        return default
    return ms / 1000.0


def _optional_str(value: Any) -> str | None:
    s = str(value or "").strip()
    return s or None


def _monitor_id(value: Any) -> str | int | None:
    # Ids go back to the ingest endpoint exactly as received.
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        return value if value.strip() else None
    return None


@dataclass(frozen=True)
class MonitorDescriptor:
    id: str | int
    type: MonitorType
    record_type: str | None = None
    domain: str | None = None
    server: str | None = None
    host: str | None = None
    interval_seconds: float = DEFAULT_MONITOR_INTERVAL_SECONDS

    @classmethod
    def from_wire(cls, data: dict[str, Any]) -> MonitorDescriptor:
        monitor_id = _monitor_id(data.get("id"))
        if monitor_id is None:
            raise ValueError("monitor has no id")
        raw_type = str(data.get("type") or "").strip().upper()
        try:
            monitor_type = MonitorType(raw_type)
        except ValueError:
            raise ValueError(f"unsupported monitor type {raw_type!r}") from None
        record_type = _optional_str(data.get("recordType"))
        return cls(
            id=monitor_id,
            type=monitor_type,
            record_type=record_type.upper() if record_type else None,
            domain=_optional_str(data.get("domain")),
            server=_optional_str(data.get("server")),
            host=_optional_str(data.get("host")),
            interval_seconds=_interval_ms_to_seconds(
                data.get("interval"), default=DEFAULT_MONITOR_INTERVAL_SECONDS
            ),
        )


def parse_monitor_list(data: Any) -> tuple[MonitorDescriptor, ...]:
    """Parse the body of ``GET /v1/nemea/monitors``.

    Entries that cannot be scheduled (no id, unknown type) are dropped with a
    warning instead of failing the whole list, so one bad monitor does not
    stop every other monitor from running.
    """
    if not isinstance(data, dict) or not isinstance(data.get("monitors"), list):
        raise MalformedResponseError("monitor response must be an object with a 'monitors' list")

    out: list[MonitorDescriptor] = []
    for idx, entry in enumerate(data["monitors"]):
        if not isinstance(entry, dict):
            logger.warning("Skipping monitor entry", index=idx, reason="not an object")
            continue
        try:
            out.append(MonitorDescriptor.from_wire(entry))
        except ValueError as exc:
            logger.warning("Skipping monitor entry", index=idx, reason=str(exc))
    return tuple(out)


@dataclass(frozen=True)
class AgentConfig:
    refresh_interval_seconds: float = DEFAULT_REFRESH_INTERVAL_SECONDS

    @classmethod
    def from_wire(cls, data: Any) -> AgentConfig:
        if not isinstance(data, dict):
            raise MalformedResponseError("config response must be an object")
        return cls(
            refresh_interval_seconds=_interval_ms_to_seconds(
                data.get("monitorRefreshInterval"), default=DEFAULT_REFRESH_INTERVAL_SECONDS
            )
        )


@dataclass(frozen=True)
class LatencySummary:
    min: float
    max: float
    avg: float
    packet_loss: float
    times: tuple[float, ...]

    def to_payload(self) -> dict[str, Any]:
        return {
            "min": self.min,
            "max": self.max,
            "avg": self.avg,
            "packetLoss": self.packet_loss,
            "times": list(self.times),
        }


@dataclass(frozen=True)
class MonitorResult:
    monitor_id: str | int
    monitor_type: MonitorType
    result: dict[str, Any] = field(default_factory=dict)
    location: dict[str, Any] | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "monitorId": self.monitor_id,
            "monitorType": self.monitor_type.value,
            "result": self.result,
        }
        if self.location is not None:
            payload["systemID"] = self.location
        return payload
