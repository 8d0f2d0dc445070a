"""
Expand ``include:`` entries of a configuration hash.
"""

import logging
from typing import Any

from ..errors import IncludeError
from ..utils import deep_merge
from .mapper import Mapper

logger = logging.getLogger(__name__)


class Processor:
    """
    Merge included files into a configuration hash.

    Included files are merged in order; the including document is merged
    last so its own keys win. Invalid files raise :class:`IncludeError`
    with the file's first error.
    """

    def __init__(self, values: dict[str, Any], context):
        self.values = values
        self.context = context
        self.external_files = Mapper(values, context).process()
        self.content = {key: value for key, value in values.items() if key != "include"}

    def perform(self) -> dict[str, Any]:
        if not self.external_files:
            return self.content

        self._validate_external_files()
        merged: dict[str, Any] = {}
        for external_file in self.external_files:
            self.context.includes.append(external_file.metadata())
            merged = deep_merge(merged, external_file.to_hash())
        return deep_merge(merged, self.content)

    def _validate_external_files(self) -> None:
        for external_file in self.external_files:
            if not external_file.is_valid():
                logger.debug("Invalid include %r: %s", external_file, external_file.error_message)
                raise IncludeError(external_file.error_message)
