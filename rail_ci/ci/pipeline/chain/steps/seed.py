"""
Select the stages and jobs that apply to this pipeline.
"""

import logging
from typing import Any, Mapping, Optional

from ....config.expression import Expression, compile_pattern
from ....models import FailureReason, PipelineSource
from ..base import Step
from ..context import ChainContext

logger = logging.getLogger(__name__)

# keyword -> pipeline sources it stands for
SOURCE_KEYWORDS = {
    "pushes": (PipelineSource.PUSH,),
    "web": (PipelineSource.WEB,),
    "api": (PipelineSource.API,),
    "triggers": (PipelineSource.TRIGGER,),
    "schedules": (PipelineSource.SCHEDULE,),
    "pipelines": (PipelineSource.PIPELINE,),
    "parent_pipeline": (PipelineSource.PARENT_PIPELINE,),
    "external": (PipelineSource.EXTERNAL,),
    "chat": (PipelineSource.CHAT,),
    "merge_requests": (PipelineSource.MERGE_REQUEST_EVENT,),
}


def ref_matches(pattern: str, pipeline) -> bool:
    """Whether one ``only``/``except`` ref entry matches the pipeline."""
    if pattern == "branches":
        return not pipeline.tag
    if pattern == "tags":
        return bool(pipeline.tag)
    if pattern in SOURCE_KEYWORDS:
        return pipeline.source in SOURCE_KEYWORDS[pattern]

    if pattern.startswith("/"):
        regexp = compile_pattern(pattern)
        if regexp is not None:
            return bool(regexp.search(pipeline.ref or ""))
        logger.info("Invalid ref pattern %s", pattern)
    return pattern == pipeline.ref


def _policy_specs(policy: dict[str, Any], pipeline, variables: Mapping[str, Any]) -> list[bool]:
    """One result per condition (``refs``, ``variables``) present in the policy."""
    specs = []
    if "refs" in policy:
        specs.append(any(ref_matches(ref, pipeline) for ref in policy["refs"]))
    if "variables" in policy:
        specs.append(any(Expression(text).evaluate(variables) for text in policy["variables"]))
    return specs


def job_included(job: dict[str, Any], pipeline, variables: Optional[Mapping[str, Any]] = None) -> bool:
    """
    ``only`` needs every condition it lists to match; ``except`` excludes the job
    when any of its specs matches. Job variables are visible to expressions
    but pipeline variables take precedence.
    """
    if job.get("when") == "never":
        return False

    scope = {**job.get("variables", {}), **(variables or {})}

    only = job.get("only")
    if only is not None and not all(_policy_specs(only, pipeline, scope)):
        return False

    except_ = job.get("except")
    if except_ is not None and any(_policy_specs(except_, pipeline, scope)):
        return False
    return True


class SeedStep(Step):
    order = 70
    name = "seed"

    def execute(self, ctx: ChainContext) -> ChainContext:
        pipeline = ctx.pipeline
        variables = ctx.extra.get("expression_variables", {})
        seeds = []
        selected: dict[str, int] = {}

        for stage in ctx.yaml_result.stages_attributes():
            builds = [job for job in stage["builds"] if job_included(job, pipeline, variables)]
            if not builds:
                continue
            seeds.append({"name": stage["name"], "index": stage["index"], "builds": builds})
            selected.update({job["name"]: stage["index"] for job in builds})

        errors = self._needs_errors(seeds, selected)
        if errors:
            ctx.error("\n".join(errors), config_error=True, drop_reason=FailureReason.CONFIG_ERROR)
            return ctx

        ctx.stage_seeds = seeds
        return ctx

    def _needs_errors(self, seeds: list[dict[str, Any]], selected: dict[str, int]) -> list[str]:
        errors = []
        for stage in seeds:
            for job in stage["builds"]:
                for need in job.get("needs", []):
                    if need["optional"]:
                        continue
                    index = selected.get(need["name"])
                    if index is None or index > stage["index"]:
                        errors.append(
                            f"'{job['name']}' job needs '{need['name']}' job, "
                            f"but '{need['name']}' is not in any previous stage"
                        )
        return errors
