from __future__ import annotations

import asyncio
import re
import shutil
from dataclasses import dataclass
from typing import Awaitable, Callable

import structlog

from nemea_agent.errors import InvalidConfigError
from nemea_agent.models import LatencySummary


logger = structlog.get_logger(__name__)

PING_COUNT = 5
DEFAULT_TIMEOUT_SECONDS = 2.0

_TIME_RE = re.compile(r"time[=<]\s*([0-9]+(?:\.[0-9]+)?)\s*ms")


@dataclass(frozen=True)
class PingReply:
    alive: bool
    time_ms: float | None = None


def parse_ping_output(text: str) -> float | None:
    m = _TIME_RE.search(text or "")
    if not m:
        return None
    return float(m.group(1))


async def probe_once(host: str, *, timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS) -> PingReply:
    """Send a single ICMP echo using the system ``ping`` binary."""
    ping_bin = shutil.which("ping")
    if ping_bin is None:
        raise RuntimeError("ping binary not found on PATH")

    wait = str(max(1, int(round(timeout_seconds))))
    proc = await asyncio.create_subprocess_exec(
        ping_bin,
        "-n",
        "-c",
        "1",
        "-W",
        wait,
        host,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, _ = await proc.communicate()
    if proc.returncode != 0:
        return PingReply(alive=False)
    time_ms = parse_ping_output(stdout.decode("utf-8", errors="replace"))
    if time_ms is None:
        return PingReply(alive=False)
    return PingReply(alive=True, time_ms=time_ms)


def summarize_latency(times: list[float], *, attempts: int = PING_COUNT) -> LatencySummary | None:
    """Summarize one batch. Loss is measured against ``attempts``, not ``len(times)``."""
    if not times:
        return None
    return LatencySummary(
        min=min(times),
        max=max(times),
        avg=sum(times) / len(times),
        packet_loss=(attempts - len(times)) / attempts * 100,
        times=tuple(times),
    )


async def check_ping(
    host: str,
    *,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    probe: Callable[..., Awaitable[PingReply]] = probe_once,
    count: int = PING_COUNT,
) -> LatencySummary | None:
    if not host:
        raise InvalidConfigError("PING monitor has no host")
    if host.startswith("-"):
        raise InvalidConfigError(f"Invalid ping host {host!r}")

    logger.debug("Pinging host", host=host)
    times: list[float] = []
    for _ in range(count):
        try:
            reply = await probe(host, timeout_seconds=timeout_seconds)
        except Exception as exc:
            logger.error("Error pinging host", host=host, error=f"{type(exc).__name__}: {exc}")
            continue
        if reply.alive and reply.time_ms is not None:
            times.append(reply.time_ms)
            logger.debug("Ping response", host=host, time_ms=reply.time_ms)
        else:
            logger.warning("Host is not alive", host=host)

    summary = summarize_latency(times, attempts=count)
    if summary is None:
        logger.warning("No successful ping responses", host=host)
        return None
    logger.debug("Ping results summary", host=host, summary=summary.to_payload())
    return summary
