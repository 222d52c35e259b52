"""Structured logging and Sentry error reporting."""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, cast

import sentry_sdk
import structlog
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.httpx import HttpxIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

if TYPE_CHECKING:
    from sentry_sdk.types import Event

DEFAULT_TRACES_SAMPLE_RATE = 0.2
DEV_TRACES_SAMPLE_RATE = 1.0

SENSITIVE_HEADERS = ("authorization", "cookie", "stripe-signature", "x-api-key")
SENSITIVE_KEYS = ("password", "token", "secret", "api_key", "signature")
HEALTH_TRANSACTIONS = ("/health", "/readiness", "/liveness")


def configure_logging(
    service_name: str,
    log_level: int | str = logging.INFO,
    json_format: bool | None = None,
) -> structlog.stdlib.BoundLogger:
    """Configure structlog on top of stdlib logging.

    Call once at service startup, after ``init_sentry()``. When
    ``json_format`` is None the format follows ENVIRONMENT: console output in
    development, JSON everywhere else.
    """
    if json_format is None:
        json_format = os.environ.get("ENVIRONMENT", "development") != "development"

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)

    processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        add_sentry_breadcrumb,
    ]
    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    return cast("structlog.stdlib.BoundLogger", structlog.get_logger(service_name))


def add_sentry_breadcrumb(
    _logger: Any,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Mirror log events into Sentry breadcrumbs."""
    standard_keys = {"event", "level", "timestamp", "logger"}
    extra_data = {k: v for k, v in event_dict.items() if k not in standard_keys}
    sentry_sdk.add_breadcrumb(
        message=str(event_dict.get("event", "")),
        category="log",
        level=event_dict.get("level", method_name),
        data=extra_data or None,
    )
    return event_dict


@dataclass
class SentryConfig:
    """Configuration for Sentry SDK initialization."""

    service_name: str
    dsn: str | None = None
    environment: str | None = None
    release: str | None = None
    traces_sample_rate: float | None = None


def scrub_event(event: Event, _hint: dict[str, Any]) -> Event | None:
    """Remove credentials and webhook signatures before an event leaves the process."""
    request = event.get("request")
    if request is not None:
        headers = request.get("headers")
        if isinstance(headers, dict):
            for header in list(headers):
                if header.lower() in SENSITIVE_HEADERS:
                    headers[header] = "[Filtered]"

    extra = event.get("extra")
    if isinstance(extra, dict):
        for key in list(extra):
            if any(sensitive in key.lower() for sensitive in SENSITIVE_KEYS):
                extra[key] = "[Filtered]"
    return event


def drop_health_transactions(event: Event, _hint: dict[str, Any]) -> Event | None:
    if event.get("transaction", "") in HEALTH_TRANSACTIONS:
        return None
    return event


def init_sentry(config: SentryConfig) -> bool:
    """Initialize Sentry.

    Returns:
        True if Sentry was initialized, False if no DSN was provided
    """
    dsn = config.dsn or os.environ.get("SENTRY_DSN")
    if not dsn:
        return False

    environment = config.environment or os.environ.get("ENVIRONMENT", "development")
    traces_rate = config.traces_sample_rate
    if traces_rate is None:
        traces_rate = (
            DEFAULT_TRACES_SAMPLE_RATE if environment == "production" else DEV_TRACES_SAMPLE_RATE
        )

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        release=config.release,
        traces_sample_rate=traces_rate,
        send_default_pii=False,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
            HttpxIntegration(),
            RedisIntegration(),
            AsyncioIntegration(),
            LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
        ],
        before_send=scrub_event,
        before_send_transaction=drop_health_transactions,
    )
    sentry_sdk.set_tag("service", config.service_name)
    return True


def capture_exception(
    error: Exception,
    *,
    tags: dict[str, str] | None = None,
    extra: dict[str, Any] | None = None,
) -> str | None:
    """Capture an exception and send it to Sentry.

    Returns:
        The Sentry event ID, or None if not sent
    """
    with sentry_sdk.new_scope() as scope:
        for key, value in (tags or {}).items():
            scope.set_tag(key, value)
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)
        return sentry_sdk.capture_exception(error)
