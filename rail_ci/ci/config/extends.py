"""
Resolution of the ``extends:`` keyword.
"""

from typing import Any

from ...config_proxy import get_setting
from .errors import ExtendsError
from .utils import deep_merge


class ExtendsResolver:
    """
    Merge every job with the jobs or templates it extends.

    Bases are merged in the order listed, later ones winning; the job's own
    keys win over all of them. The ``extends`` key is removed from the result.
    """

    def __init__(self, config: dict[str, Any], max_nesting: int = None):
        self.config = config
        self.max_nesting = max_nesting or int(get_setting("pipeline_settings.max_extends_depth", 10))
        self._resolved: dict[str, dict[str, Any]] = {}
        # key -> length of its extends chain
        self._depth: dict[str, int] = {}

    def resolve(self) -> dict[str, Any]:
        result = dict(self.config)
        for key, value in self.config.items():
            if isinstance(value, dict) and "extends" in value:
                result[key] = self._resolve_entry(key, [])
        return result

    def _resolve_entry(self, key: str, stack: list[str]) -> dict[str, Any]:
        if key in self._resolved:
            if len(stack) + self._depth[key] > self.max_nesting:
                raise ExtendsError(f"{key}: nesting too deep in `extends`")
            return self._resolved[key]

        entry = self.config[key]
        if key in stack:
            raise ExtendsError(f"{key}: circular dependency detected in `extends`")
        if len(stack) >= self.max_nesting:
            raise ExtendsError(f"{key}: nesting too deep in `extends`")

        bases = entry.get("extends")
        if isinstance(bases, str):
            bases = [bases]
        if not isinstance(bases, list) or not all(isinstance(base, str) for base in bases):
            raise ExtendsError(f"{key}: invalid base hash in `extends`")

        merged: dict[str, Any] = {}
        depth = 1
        for base in bases:
            if base not in self.config:
                raise ExtendsError(f"{key}: unknown key in `extends` ({base})")
            if not isinstance(self.config[base], dict):
                raise ExtendsError(f"{key}: invalid base hash in `extends`")
            base_value = self.config[base]
            if "extends" in base_value:
                base_value = self._resolve_entry(base, stack + [key])
                depth = max(depth, self._depth[base] + 1)
            merged = deep_merge(merged, base_value)

        own = {name: value for name, value in entry.items() if name != "extends"}
        resolved = deep_merge(merged, own)
        self._resolved[key] = resolved
        self._depth[key] = depth
        return resolved
