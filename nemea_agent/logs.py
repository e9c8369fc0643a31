from __future__ import annotations

import logging
import sys

import structlog


def configure_logging(level: str = "INFO", *, fmt: str = "json", error_log_path: str | None = None) -> None:
    """Route structlog through stdlib logging: everything to stdout, errors also to a file."""
    log_level = getattr(logging, str(level).upper(), logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if error_log_path:
        error_handler = logging.FileHandler(error_log_path, encoding="utf-8")
        error_handler.setLevel(logging.ERROR)
        handlers.append(error_handler)
    logging.basicConfig(level=log_level, format="%(message)s", handlers=handlers, force=True)

    # Bearer and geolocation tokens travel in request URLs/headers.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    renderer = structlog.dev.ConsoleRenderer() if fmt == "console" else structlog.processors.JSONRenderer()
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.processors.format_exc_info,
            renderer,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )
