from __future__ import annotations

import asyncio
from typing import Any

import dns.resolver
import structlog

from nemea_agent.errors import InvalidConfigError


logger = structlog.get_logger(__name__)

SUPPORTED_RECORD_TYPES = ("A", "AAAA", "SOA", "CNAME")
DEFAULT_TIMEOUT_SECONDS = 5.0


def _name(value: Any) -> str:
    return str(value).rstrip(".")


def _normalize_answer(record_type: str, answer: Any) -> list[Any]:
    ttl = int(answer.rrset.ttl) if answer.rrset is not None else None
    out: list[Any] = []
    for rr in answer:
        if record_type in ("A", "AAAA"):
            out.append({"address": rr.address, "ttl": ttl})
        elif record_type == "CNAME":
            out.append(_name(rr.target))
        elif record_type == "SOA":
            out.append(
                {
                    "nsname": _name(rr.mname),
                    "hostmaster": _name(rr.rname),
                    "serial": int(rr.serial),
                    "refresh": int(rr.refresh),
                    "retry": int(rr.retry),
                    "expire": int(rr.expire),
                    "minttl": int(rr.minimum),
                }
            )
    return out


def _dns_query_sync(
    *,
    domain: str,
    record_type: str,
    server: str | None,
    timeout_seconds: float,
) -> list[Any]:
    # One resolver per lookup: a monitor's server never leaks into a concurrent lookup.
    r = dns.resolver.Resolver(configure=True)
    if server:
        r.nameservers = [server]
    r.timeout = max(0.5, float(timeout_seconds))
    r.lifetime = max(0.5, float(timeout_seconds))
    answer = r.resolve(domain, record_type)
    return _normalize_answer(record_type, answer)


async def check_dns(
    *,
    record_type: str,
    domain: str,
    server: str | None = None,
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
) -> dict[str, Any] | None:
    """Resolve one record type for ``domain``.

    Returns the normalized result, or None when the lookup failed. An
    unsupported record type is a configuration problem, not a lookup failure,
    and raises ``InvalidConfigError``.
    """
    rtype = str(record_type or "").strip().upper()
    if rtype not in SUPPORTED_RECORD_TYPES:
        raise InvalidConfigError(f"Unsupported record type {record_type!r}")
    if not domain:
        raise InvalidConfigError("DNS monitor has no domain")

    logger.debug("Monitoring DNS", record_type=rtype, domain=domain, server=server or "default")
    try:
        records = await asyncio.to_thread(
            _dns_query_sync,
            domain=domain,
            record_type=rtype,
            server=server,
            timeout_seconds=timeout_seconds,
        )
    except Exception as exc:
        logger.error("Error resolving DNS", domain=domain, record_type=rtype, error=f"{type(exc).__name__}: {exc}")
        return None

    result: dict[str, Any] = {
        "recordType": rtype,
        "domain": domain,
        "server": server or "default",
        "records": records,
    }
    if rtype == "SOA" and records:
        result["hostmaster"] = records[0]["hostmaster"]
        result["serial"] = records[0]["serial"]
    logger.debug("DNS monitoring result", result=result)
    return result
