from __future__ import annotations

import argparse
import asyncio
import functools
import os
import signal

import httpx
import structlog

from nemea_agent.agent import MonitorAgent
from nemea_agent.config import AgentSettings, load_settings
from nemea_agent.failures import RetryingCaller
from nemea_agent.geo import GeoLocator
from nemea_agent.logs import configure_logging
from nemea_agent.probes import run_probe
from nemea_agent.remote import ApiConfig, NemeaApiClient
from nemea_agent.reporter import ResultReporter


logger = structlog.get_logger("nemea_agent")


def build_agent(settings: AgentSettings, http_client: httpx.AsyncClient) -> MonitorAgent:
    client = NemeaApiClient(
        http_client,
        ApiConfig(
            base_url=settings.config_url,
            api_key=settings.api_key,
            timeout_seconds=settings.http_timeout_seconds,
        ),
    )
    geo = GeoLocator(
        http_client,
        settings.geo_api_key,
        url=settings.geo_url,
        ttl_seconds=settings.geo_cache_seconds,
    )
    reporter = ResultReporter(client, geo, RetryingCaller(settings.retry_delay_seconds))
    return MonitorAgent(
        client,
        reporter,
        retry=RetryingCaller(settings.retry_delay_seconds),
        probe=functools.partial(
            run_probe,
            dns_timeout_seconds=settings.dns_timeout_seconds,
            ping_timeout_seconds=settings.ping_timeout_seconds,
        ),
        config_retry_interval_seconds=settings.config_retry_interval_seconds,
    )


async def run_agent(settings: AgentSettings) -> int:
    shutdown_event = asyncio.Event()

    def handle_shutdown(sig: signal.Signals) -> None:
        logger.info(f"{sig.name} signal received: closing agent gracefully")
        shutdown_event.set()

    async with httpx.AsyncClient() as http_client:
        agent = build_agent(settings, http_client)

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, handle_shutdown, sig)
        if hasattr(signal, "SIGHUP"):
            loop.add_signal_handler(signal.SIGHUP, agent.request_restart)

        try:
            await agent.run(shutdown_event)
        finally:
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.remove_signal_handler(sig)
            if hasattr(signal, "SIGHUP"):
                loop.remove_signal_handler(signal.SIGHUP)
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Nemea monitoring agent")
    parser.add_argument(
        "--config",
        default=os.getenv("NEMEA_CONFIG"),
        help="Path to YAML settings (defaults to $NEMEA_CONFIG or config/agent.yaml)",
    )
    parser.add_argument("--log-level", default=None, help="Logging level (INFO, WARNING, ...)")
    args = parser.parse_args()

    settings = load_settings(args.config)
    if args.log_level:
        settings = settings.model_copy(update={"log_level": args.log_level})
    configure_logging(settings.log_level, fmt=settings.log_format, error_log_path=settings.error_log_path)

    try:
        settings.require_credentials()
    except RuntimeError as exc:
        logger.error("Cannot start agent", error=str(exc))
        return 2

    return asyncio.run(run_agent(settings))


if __name__ == "__main__":
    raise SystemExit(main())
