"""
Type coercion utilities for rail-ci.

Settings arrive from Django configuration and environment variables, so
every typed settings view goes through these helpers.
"""

from typing import Any


def coerce_int(value: Any, default: int = 0) -> int:
    """
    Coerce a value to an integer.

    Examples:
        >>> coerce_int("42")
        42
        >>> coerce_int("invalid", default=0)
        0
    """
    if value is None:
        return default
    try:
        return int(value)
    except (ValueError, TypeError):
        return default


def coerce_float(value: Any, default: float = 0.0) -> float:
    if value is None:
        return default
    try:
        return float(value)
    except (ValueError, TypeError):
        return default


def coerce_bool(value: Any, default: bool = False) -> bool:
    """
    Coerce a value to a boolean.

    Strings are truthy when they read ``true``, ``1``, ``yes`` or ``on``.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() in ("true", "1", "yes", "on")
    try:
        return bool(value)
    except (ValueError, TypeError):
        return default


def coerce_str(value: Any, default: str = "") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def coerce_list(value: Any) -> list[str]:
    """Coerce a scalar, iterable or comma separated string to a list of strings."""
    if value is None or value == "":
        return []
    if isinstance(value, str):
        items = value.split(",")
    elif isinstance(value, (list, tuple, set)):
        items = list(value)
    else:
        items = [value]
    normalized: list[str] = []
    for item in items:
        if item is None:
            continue
        text = str(item).strip()
        if text:
            normalized.append(text)
    return normalized
