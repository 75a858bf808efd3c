"""Sentry error tracking.

Initialization is a no-op without a DSN, and ``capture_error`` is a no-op
until Sentry has been initialized, so callers never need to check.
"""

import logging
from typing import Any, Dict, List, Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

logger = logging.getLogger(__name__)

_initialized = False


def init_sentry(settings: Any) -> bool:
    """Initialize the Sentry SDK with FastAPI/Starlette integrations.

    Args:
        settings: Object with ``sentry_dsn``, ``env`` and
            ``sentry_traces_sample_rate``

    Returns:
        True if Sentry was initialized, False if skipped (no DSN) or failed.
        Never raises.
    """
    global _initialized

    if not settings.sentry_dsn:
        logger.debug("Sentry initialization skipped (DSN not configured)")
        return False

    integrations: List[Any] = [
        LoggingIntegration(
            level=None,  # Don't capture breadcrumbs from logs
            event_level=None,  # Don't send log events
        ),
        FastApiIntegration(transaction_style="endpoint"),
        StarletteIntegration(transaction_style="endpoint"),
    ]

    try:
        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.env,
            traces_sample_rate=settings.sentry_traces_sample_rate,
            integrations=integrations,
            send_default_pii=False,
        )
    except Exception as e:
        logger.error(f"Failed to initialize Sentry: {e}", exc_info=True)
        return False

    _initialized = True
    logger.info(
        f"Sentry initialized for environment '{settings.env}' "
        f"with {settings.sentry_traces_sample_rate * 100:.0f}% trace sampling"
    )
    return True


def is_initialized() -> bool:
    return _initialized


def capture_error(
    exception: BaseException,
    context: Optional[Dict[str, Any]] = None,
    tags: Optional[Dict[str, str]] = None,
) -> Optional[str]:
    """Send an exception to Sentry.

    Args:
        exception: The exception to capture
        context: Extra data attached under "additional"
        tags: Tags for filtering in Sentry

    Returns:
        Event ID if captured, None if Sentry is not initialized
    """
    if not _initialized:
        return None

    with sentry_sdk.new_scope() as scope:
        if context:
            scope.set_context("additional", {k: str(v) for k, v in context.items()})
        for key, value in (tags or {}).items():
            scope.set_tag(key, value)
        return sentry_sdk.capture_exception(exception)
