"""
Turn the raw ``include:`` value into included file objects.
"""

import json
import logging
from typing import Any

from ..errors import (
    AmbiguousSpecificationError,
    DuplicateIncludesError,
    InvalidIncludeError,
    TooManyIncludesError,
)
from .file import Local, Project, Remote
from .file.remote import is_url

logger = logging.getLogger(__name__)

FILE_CLASSES = (Remote, Local, Project)


def _to_json(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"), default=str)


class Mapper:
    def __init__(self, values: dict[str, Any], context):
        self.locations = values.get("include")
        self.context = context

    def process(self) -> list:
        if not self.locations:
            return []

        locations = self._normalize(self.locations)
        locations = self._expand_project_files(locations)
        locations = [self._expand_variables(location) for location in locations]
        for location in locations:
            self._verify_duplicates(location)
        return [self._select_first_matching(location) for location in locations]

    def _normalize(self, raw: Any) -> list[dict[str, Any]]:
        items = raw if isinstance(raw, list) else [raw]
        normalized = []
        for item in items:
            if isinstance(item, str):
                key = "remote" if is_url(item) else "local"
                normalized.append({key: item})
            elif isinstance(item, dict):
                normalized.append(dict(item))
            else:
                raise InvalidIncludeError("Each include must be a hash or a string")
        return normalized

    def _expand_project_files(self, locations: list[dict[str, Any]]) -> list[dict[str, Any]]:
        expanded = []
        for location in locations:
            files = location.get("file")
            if location.get("project") and isinstance(files, list):
                expanded.extend({**location, "file": path} for path in files)
            else:
                expanded.append(location)
        return expanded

    def _expand_variables(self, location: dict[str, Any]) -> dict[str, Any]:
        return {key: self.context.expand(value) for key, value in location.items()}

    def _verify_duplicates(self, location: dict[str, Any]) -> None:
        if len(self.context.expandset) >= self.context.max_includes:
            raise TooManyIncludesError(
                f"Maximum of {self.context.max_includes} nested includes are allowed!"
            )

        key = _to_json(
            {
                **location,
                "context_project": getattr(self.context.project, "full_path", None),
                "context_sha": self.context.sha,
            }
        )
        if key in self.context.expandset:
            raise DuplicateIncludesError(
                f"Include `{self.context.mask_variables_from(_to_json(location))}` "
                "was already included!"
            )
        self.context.expandset.add(key)

    def _select_first_matching(self, location: dict[str, Any]):
        matching = [
            candidate
            for candidate in (klass(location, self.context) for klass in FILE_CLASSES)
            if candidate.matching()
        ]
        if len(matching) != 1:
            raise AmbiguousSpecificationError(
                f"Include `{self.context.mask_variables_from(_to_json(location))}` "
                "needs to match exactly one accessor!"
            )
        return matching[0]
