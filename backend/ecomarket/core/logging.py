"""
structlog setup.

Events are snake_case names with keyword context (purchase_id=..., uid=...);
the request id bound by RequestIdMiddleware is merged into every line.
"""
import logging
import sys

import structlog

from ecomarket.core.config import Settings

# Library loggers that only matter when debugging SQL or HTTP traffic.
NOISY_LOGGERS = ("httpx", "httpcore", "openai", "aiosqlite", "asyncpg")


def setup_logging(settings: Settings) -> None:
    """Console output in debug mode, one JSON object per line otherwise."""
    log_level = logging.DEBUG if settings.api_debug else logging.INFO

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]
    if settings.api_debug:
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors += [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stdout),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=log_level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.api_debug else logging.WARNING
    )
