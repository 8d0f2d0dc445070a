"""
Exception reporting backed by Sentry.

All helpers log the exception locally; when
``error_tracking_settings.enabled`` is on they also forward it to Sentry
with the given keyword arguments attached as extras. Sentry must be
initialised by the host (``sentry_sdk.init``); without it capture is a no-op.
"""

import logging
from typing import Any

import sentry_sdk

from .config_proxy import get_setting
from .logging_context import current_context
from .utils import coerce_bool

logger = logging.getLogger(__name__)


def _tracking_enabled() -> bool:
    return coerce_bool(get_setting("error_tracking_settings.enabled", True), True)


def _should_raise_for_dev() -> bool:
    return coerce_bool(get_setting("error_tracking_settings.raise_for_dev", False), False)


def _extra_payload(extra: dict[str, Any]) -> dict[str, Any]:
    payload = {key: value for key, value in extra.items() if value is not None}
    payload.update({f"context.{key}": value for key, value in current_context().items()})
    return payload


def log_exception(exception: BaseException, **extra: Any) -> None:
    """Write the exception to the application log only."""
    logger.error(
        "%s: %s",
        type(exception).__name__,
        exception,
        extra={"exception_class": type(exception).__name__, **_extra_payload(extra)},
    )


def track_exception(exception: BaseException, **extra: Any) -> None:
    """Log the exception and send it to Sentry."""
    log_exception(exception, **extra)
    if not _tracking_enabled():
        return

    with sentry_sdk.new_scope() as scope:
        for key, value in _extra_payload(extra).items():
            scope.set_extra(key, value)
        sentry_sdk.capture_exception(exception)


def track_and_raise_exception(exception: BaseException, **extra: Any) -> None:
    """Report the exception, then re-raise it to the caller."""
    track_exception(exception, **extra)
    raise exception


def track_and_raise_for_dev_exception(exception: BaseException, **extra: Any) -> None:
    """Report the exception; re-raise only when ``raise_for_dev`` is set."""
    track_exception(exception, **extra)
    if _should_raise_for_dev():
        raise exception
