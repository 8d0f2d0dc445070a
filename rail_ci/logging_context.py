"""
Application context attached to log records.

Workers and services wrap their work in :func:`with_context` so every log
line emitted underneath carries the project, user and correlation id it was
produced for. Install :class:`ContextFilter` on a handler to copy the values
onto records as ``meta_*`` attributes.
"""

import contextvars
import logging
import uuid
from contextlib import contextmanager
from typing import Any, Iterator, Optional

_CONTEXT: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "rail_ci_log_context", default={}
)


def current_context() -> dict[str, Any]:
    return dict(_CONTEXT.get())


def correlation_id() -> str:
    """Return the correlation id of the current context, creating one if needed."""
    context = _CONTEXT.get()
    value = context.get("correlation_id")
    if value:
        return value
    value = uuid.uuid4().hex
    _CONTEXT.set({**context, "correlation_id": value})
    return value


def _describe(project: Any = None, user: Any = None, **extra: Any) -> dict[str, Any]:
    meta: dict[str, Any] = {}
    if project is not None:
        meta["project"] = getattr(project, "full_path", str(project))
    if user is not None:
        meta["user"] = getattr(user, "username", str(user))
    for key, value in extra.items():
        if value is not None:
            meta[key] = value
    return meta


@contextmanager
def with_context(project: Any = None, user: Any = None, **extra: Any) -> Iterator[dict[str, Any]]:
    """Push project/user metadata for the duration of the block."""
    parent = _CONTEXT.get()
    merged = {**parent, **_describe(project=project, user=user, **extra)}
    merged.setdefault("correlation_id", parent.get("correlation_id") or uuid.uuid4().hex)
    token = _CONTEXT.set(merged)
    try:
        yield merged
    finally:
        _CONTEXT.reset(token)


class ContextFilter(logging.Filter):
    """Copy the active context onto every record as ``meta_<key>`` attributes."""

    def __init__(self, name: str = "", prefix: Optional[str] = "meta_"):
        super().__init__(name)
        self.prefix = prefix or ""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in _CONTEXT.get().items():
            setattr(record, f"{self.prefix}{key}", value)
        return True
