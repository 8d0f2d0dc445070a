"""
Helpers shared by the configuration entries.
"""

import copy
import re
from typing import Any, Optional

_DURATION_PART = re.compile(
    r"(\d+)\s*(weeks?|w|days?|d|hours?|hrs?|h|minutes?|mins?|m|seconds?|secs?|s)\b",
    re.IGNORECASE,
)
_UNIT_SECONDS = {
    "w": 7 * 24 * 3600,
    "d": 24 * 3600,
    "h": 3600,
    "m": 60,
    "s": 1,
}


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``; nested dicts merge, everything else is replaced."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def parse_duration(value: Any) -> Optional[int]:
    """
    Parse a human duration (``"30 minutes"``, ``"1 day 2 hours"``, ``"90"``) into seconds.

    Returns ``None`` when the text is not a duration.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if not isinstance(value, str) or not value.strip():
        return None

    text = value.strip().lower()
    if text.isdigit():
        return int(text)

    total = 0
    consumed = 0
    for match in _DURATION_PART.finditer(text):
        amount, unit = match.groups()
        unit_key = "m" if unit.startswith("mi") or unit == "m" else unit[0]
        total += int(amount) * _UNIT_SECONDS[unit_key]
        consumed += len(match.group(0))

    leftover = _DURATION_PART.sub("", text).replace("and", "").replace(",", "").strip()
    if not consumed or leftover:
        return None
    return total


def string_or_nested_strings(value: Any, max_depth: int = 10, _depth: int = 0) -> bool:
    if isinstance(value, str):
        return True
    if _depth >= max_depth or not isinstance(value, list):
        return False
    return all(string_or_nested_strings(item, max_depth, _depth + 1) for item in value)


def flatten_strings(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    flattened: list[str] = []
    for item in value:
        flattened.extend(flatten_strings(item))
    return flattened
