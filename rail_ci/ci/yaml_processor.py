"""
Entry point turning CI configuration text into stages and job attributes.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from .config import Config, ConfigError
from .config.loader import dump_yaml

logger = logging.getLogger(__name__)


@dataclass
class Result:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    stages: list[str] = field(default_factory=list)
    jobs: dict[str, dict[str, Any]] = field(default_factory=dict)
    variables: dict[str, str] = field(default_factory=dict)
    merged_yaml: Optional[str] = None
    includes: list[dict[str, Any]] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors

    def builds(self) -> list[dict[str, Any]]:
        return [self.jobs[name] for name in self.jobs]

    def stages_attributes(self) -> list[dict[str, Any]]:
        """Stages in order, each with the jobs assigned to it."""
        return [
            {
                "name": stage,
                "index": index,
                "builds": [job for job in self.jobs.values() if job["stage"] == stage],
            }
            for index, stage in enumerate(self.stages)
        ]


class YamlProcessor:
    def __init__(
        self,
        content: Any,
        project=None,
        sha: Optional[str] = None,
        user=None,
        parent_pipeline=None,
        variables=None,
    ):
        self.content = content
        self.opts = {
            "project": project,
            "sha": sha,
            "user": user,
            "parent_pipeline": parent_pipeline,
            "variables": variables,
        }

    def execute(self) -> Result:
        """
        Process the configuration.

        Configuration problems are reported on the result; any other
        exception propagates to the caller.
        """
        if not self.content:
            return Result(errors=["Please provide content of .gitlab-ci.yml"])

        try:
            config = Config(self.content, **self.opts)
        except ConfigError as exc:
            return Result(errors=[str(exc)])

        return Result(
            errors=list(config.errors),
            warnings=list(config.warnings),
            stages=list(config.root.stages),
            jobs=config.root.jobs if config.valid else {},
            variables=dict(config.root.variables),
            merged_yaml=dump_yaml(config.to_hash()),
            includes=config.metadata["includes"],
        )
