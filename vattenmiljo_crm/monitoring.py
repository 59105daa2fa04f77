"""Sentry error reporting for the API.

Enabled only when `SENTRY_DSN` is set. The FastAPI and Starlette
integrations are picked up automatically by the SDK; events are scrubbed of
credentials before they leave the process.
"""

from __future__ import annotations

import logging
from typing import Any

import sentry_sdk
from sentry_sdk.integrations.logging import LoggingIntegration

from vattenmiljo_crm.config import Settings

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = (
    "password",
    "token",
    "idtoken",
    "secret",
    "authorization",
    "cookie",
    "api_key",
    "apikey",
)


def scrub_sensitive_data(data: Any) -> Any:
    """Replace values under credential-like keys with a marker."""
    if isinstance(data, dict):
        return {
            key: "[REDACTED]"
            if any(s in str(key).lower() for s in SENSITIVE_KEYS)
            else scrub_sensitive_data(value)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [scrub_sensitive_data(item) for item in data]
    return data


def _before_send(event: dict[str, Any], hint: dict[str, Any]) -> dict[str, Any] | None:
    return scrub_sensitive_data(event)


def init_sentry(settings: Settings) -> bool:
    """Initialize the Sentry SDK; return False when no DSN is configured."""
    if not settings.sentry_dsn:
        logger.info("Sentry not configured (set SENTRY_DSN to enable)")
        return False

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.sentry_environment,
        traces_sample_rate=0.1,
        send_default_pii=False,
        integrations=[LoggingIntegration(level=logging.INFO, event_level=logging.ERROR)],
        before_send=_before_send,
    )
    logger.info("Sentry initialized (env=%s)", settings.sentry_environment)
    return True
