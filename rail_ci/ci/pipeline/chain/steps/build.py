"""
Initialize the pipeline from the command.
"""

from ....models import PipelineSource
from ..base import Step
from ..context import ChainContext


class BuildStep(Step):
    """
    Assign the pipeline's attributes and collect its variables.

    Request variables come first; schedule variables are appended and do
    not override keys already set by the request.
    """

    order = 10
    name = "build"

    def execute(self, ctx: ChainContext) -> ChainContext:
        command = ctx.command
        pipeline = ctx.pipeline

        pipeline.project = command.project
        pipeline.source = command.source or PipelineSource.UNKNOWN
        user = command.current_user
        pipeline.user = user if getattr(user, "is_authenticated", False) else None
        pipeline.ref = command.ref
        pipeline.before_sha = command.before_sha
        pipeline.tag = command.tag_exists
        pipeline.pipeline_schedule = command.schedule

        variables = []
        seen = set()
        for variable in command.variables_attributes or []:
            key = variable.get("key")
            if not key or key in seen:
                continue
            seen.add(key)
            variables.append(
                {
                    "key": key,
                    "value": "" if variable.get("value") is None else str(variable["value"]),
                    "variable_type": variable.get("variable_type", "env_var"),
                }
            )
        if command.schedule is not None:
            for variable in command.schedule.job_variables():
                if variable["key"] not in seen:
                    seen.add(variable["key"])
                    variables.append(variable)

        ctx.extra["variables"] = variables
        return ctx
