"""
A CI configuration document: loaded, includes expanded, extends resolved.
"""

import logging
from typing import Any

from .entries import RootEntry
from .extends import ExtendsResolver
from .external import Context, Processor
from .loader import load_yaml_hash

logger = logging.getLogger(__name__)


class Config:
    """
    Build the effective configuration for ``content``.

    Raises :class:`~rail_ci.ci.config.errors.ConfigError` subclasses for
    problems that prevent expansion (syntax, includes, extends). Problems in
    the expanded document are collected on ``root.errors``.
    """

    def __init__(
        self,
        content: Any,
        project=None,
        sha=None,
        user=None,
        parent_pipeline=None,
        variables=None,
    ):
        self.context = Context(
            project=project,
            sha=sha,
            user=user,
            parent_pipeline=parent_pipeline,
            variables=variables,
        )
        raw = load_yaml_hash(content)
        expanded = Processor(raw, self.context).perform()
        self.config = ExtendsResolver(expanded).resolve()
        self.root = RootEntry(self.config).compose()

    def to_hash(self) -> dict[str, Any]:
        return self.config

    @property
    def valid(self) -> bool:
        return self.root.valid

    @property
    def errors(self) -> list[str]:
        return self.root.errors

    @property
    def warnings(self) -> list[str]:
        return self.root.warnings

    @property
    def metadata(self) -> dict[str, Any]:
        return {"includes": list(self.context.includes)}
