"""
CI configuration linting.

Static validation runs the YAML processor only. A dry run goes through the
whole creation chain with ``dry_run=True``, which stops before anything is
persisted, so ref-dependent rules (only/except, needs) are applied too.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

from .models import PipelineSource
from .services import CreatePipelineService
from .yaml_processor import YamlProcessor

logger = logging.getLogger(__name__)


def _job_entry(job: dict[str, Any]) -> dict[str, Any]:
    options = job.get("options", {})
    return {
        "name": job["name"],
        "stage": job["stage"],
        "before_script": options.get("before_script", []),
        "script": options.get("script", []),
        "after_script": options.get("after_script", []),
        "tag_list": job.get("tag_list", []),
        "environment": options.get("environment"),
        "when": job.get("when"),
        "allow_failure": job.get("allow_failure"),
        "only": job.get("only"),
        "except": job.get("except"),
        "needs": [need["name"] for need in job.get("needs", [])],
    }


class Lint:
    @dataclass
    class Result:
        merged_yaml: Optional[str] = None
        jobs: list[dict[str, Any]] = field(default_factory=list)
        errors: list[str] = field(default_factory=list)
        warnings: list[str] = field(default_factory=list)
        includes: list[dict[str, Any]] = field(default_factory=list)

        @property
        def valid(self) -> bool:
            return not self.errors

        @property
        def status(self) -> str:
            return "valid" if self.valid else "invalid"

    def __init__(self, project, current_user=None, sha: Optional[str] = None):
        self.project = project
        self.current_user = current_user
        self.sha = sha

    def validate(self, content: str, dry_run: bool = False, ref: Optional[str] = None) -> "Lint.Result":
        if dry_run:
            return self.simulate_pipeline_creation(content, ref)
        return self.static_validation(content)

    def _resolved_sha(self) -> Optional[str]:
        if not self.sha:
            return self.project.repository.root_ref_sha()
        commit = self.project.repository.commit(self.sha)
        return commit.sha if commit else self.sha

    def static_validation(self, content: str) -> "Lint.Result":
        result = YamlProcessor(
            content,
            project=self.project,
            sha=self._resolved_sha(),
            user=self.current_user,
        ).execute()

        return Lint.Result(
            merged_yaml=result.merged_yaml,
            jobs=[_job_entry(job) for job in result.builds()],
            errors=list(result.errors),
            warnings=list(result.warnings),
            includes=list(result.includes),
        )

    def simulate_pipeline_creation(self, content: str, ref: Optional[str] = None) -> "Lint.Result":
        service = CreatePipelineService(
            self.project,
            self.current_user,
            {"ref": ref or self.project.default_branch},
        )
        service.execute(PipelineSource.PUSH, dry_run=True, content=content)
        ctx = service.context
        yaml_result = ctx.yaml_result

        jobs = [_job_entry(job) for seed in ctx.stage_seeds for job in seed["builds"]]
        return Lint.Result(
            merged_yaml=yaml_result.merged_yaml if yaml_result else None,
            jobs=jobs,
            errors=list(ctx.errors),
            warnings=list(ctx.warnings),
            includes=list(yaml_result.includes) if yaml_result else [],
        )
