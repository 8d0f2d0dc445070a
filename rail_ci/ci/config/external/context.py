"""
Shared state while expanding ``include:`` entries.

A root context is created per configuration document. Nested includes get a
mutated copy that shares the ``expandset`` (every location already
included) and the ``includes`` metadata list with their parent.
"""

import re
from typing import Any, Iterable, Optional

from ....config_proxy import get_setting

MASK_PREFIX = "[MASKED]"

_VARIABLE_PATTERN = re.compile(r"\$(?:\{([A-Za-z_][A-Za-z0-9_]*)\}|([A-Za-z_][A-Za-z0-9_]*))")


def _normalize_variables(variables: Optional[Iterable[Any]]) -> list[dict[str, Any]]:
    if not variables:
        return []
    if isinstance(variables, dict):
        return [{"key": str(key), "value": str(value)} for key, value in variables.items()]

    normalized = []
    for item in variables:
        if isinstance(item, dict):
            normalized.append(
                {
                    "key": str(item.get("key")),
                    "value": "" if item.get("value") is None else str(item.get("value")),
                    "masked": bool(item.get("masked", False)),
                }
            )
        else:
            normalized.append(
                {
                    "key": str(getattr(item, "key")),
                    "value": str(getattr(item, "value", "") or ""),
                    "masked": bool(getattr(item, "masked", False)),
                }
            )
    return normalized


class Context:
    def __init__(
        self,
        project=None,
        sha: Optional[str] = None,
        user=None,
        parent_pipeline=None,
        variables=None,
        expandset: Optional[set] = None,
        includes: Optional[list] = None,
        max_includes: Optional[int] = None,
    ):
        self.project = project
        self.sha = sha
        self.user = user
        self.parent_pipeline = parent_pipeline
        self.variables = _normalize_variables(variables)
        self.expandset = expandset if expandset is not None else set()
        self.includes = includes if includes is not None else []
        self.max_includes = (
            max_includes
            if max_includes is not None
            else int(get_setting("include_settings.max_includes", 100))
        )

    def mutate(self, **attrs) -> "Context":
        """Copy of this context for a nested include, sharing expansion state."""
        values = {
            "project": self.project,
            "sha": self.sha,
            "user": self.user,
            "parent_pipeline": self.parent_pipeline,
            "variables": self.variables,
        }
        values.update(attrs)
        return Context(
            expandset=self.expandset,
            includes=self.includes,
            max_includes=self.max_includes,
            **values,
        )

    @property
    def variables_hash(self) -> dict[str, str]:
        return {item["key"]: item["value"] for item in self.variables}

    def expand(self, value: Any) -> Any:
        """Expand ``$VAR`` and ``${VAR}`` references; unknown variables are left untouched."""
        if not isinstance(value, str) or "$" not in value:
            return value
        known = self.variables_hash

        def replace(match):
            name = match.group(1) or match.group(2)
            return known.get(name, match.group(0))

        return _VARIABLE_PATTERN.sub(replace, value)

    def mask_variables_from(self, text: Any) -> str:
        masked = str(text)
        for item in self.variables:
            value = item["value"]
            if item.get("masked") and value:
                masked = masked.replace(value, MASK_PREFIX + "x" * max(len(value) - len(MASK_PREFIX), 0))
        return masked
