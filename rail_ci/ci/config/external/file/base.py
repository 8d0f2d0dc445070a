"""
Common behaviour of included files.

Subclasses set ``location`` and implement ``content`` plus the validation of
their own parameters; ``validate`` then checks the location, the content and
the YAML it holds, collecting messages in ``errors``.
"""

import json
import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from django.utils.functional import cached_property

from .....config_proxy import get_setting
from ...errors import ConfigFormatError
from ...loader import load_yaml

logger = logging.getLogger(__name__)

YAML_EXTENSIONS = (".yml", ".yaml")


class Base(ABC):
    type_name = "base"

    def __init__(self, params: dict[str, Any], context):
        self.params = params
        self.context = context
        self.errors: list[str] = []
        self._validated = False
        if not hasattr(self, "location"):
            self.location = None

    def matching(self) -> bool:
        return self.location is not None

    def is_valid(self) -> bool:
        self.validate()
        return not self.errors

    @property
    def error_message(self) -> Optional[str]:
        return self.errors[0] if self.errors else None

    @property
    def masked_location(self) -> str:
        return self.context.mask_variables_from(self.location)

    def has_invalid_extension(self) -> bool:
        extensions = get_setting("include_settings.allowed_extensions", YAML_EXTENSIONS) or YAML_EXTENSIONS
        return not isinstance(self.location, str) or not self.location.endswith(tuple(extensions))

    @property
    @abstractmethod
    def content(self) -> Optional[str]:
        """Raw text of the file, or ``None`` when it cannot be read."""

    def validate(self) -> None:
        if self._validated:
            return
        self._validated = True

        self.validate_location()
        if not self.errors:
            self.validate_content()
        if not self.errors:
            self.validate_hash()

    def validate_location(self) -> None:
        if not isinstance(self.location, str):
            self.errors.append(
                f"Included file `{self.context.mask_variables_from(json.dumps(self.location))}` "
                "needs to be a string"
            )
        elif self.has_invalid_extension():
            self.errors.append(
                f"Included file `{self.masked_location}` does not have YAML extension!"
            )

    def validate_content(self) -> None:
        if not self.content:
            self.errors.append(f"Included file `{self.masked_location}` is empty or does not exist!")

    def validate_hash(self) -> None:
        if self.content_hash is None:
            self.errors.append(
                f"Included file `{self.masked_location}` does not have valid YAML syntax!"
            )

    @cached_property
    def content_hash(self) -> Optional[dict[str, Any]]:
        try:
            data = load_yaml(self.content)
        except ConfigFormatError:
            return None
        return data if isinstance(data, dict) else None

    def expand_context_attrs(self) -> dict[str, Any]:
        return {}

    def to_hash(self) -> dict[str, Any]:
        """Content of the file with its own ``include:`` entries expanded."""
        from ..processor import Processor

        nested_context = self.context.mutate(**self.expand_context_attrs())
        return Processor(self.content_hash or {}, nested_context).perform()

    def metadata(self) -> dict[str, Any]:
        return {
            "type": self.type_name,
            "location": self.masked_location,
            "blob": None,
            "raw": None,
            "extra": {},
            "context_project": getattr(self.context.project, "full_path", None),
            "context_sha": self.context.sha,
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.masked_location}>"
