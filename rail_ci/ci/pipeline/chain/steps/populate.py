from ....models import FailureReason
from ..base import Step
from ..context import ChainContext


class PopulateStep(Step):
    """Allocate the iid, set protection, run the seeds block and require at least one job."""

    order = 80
    name = "populate"

    def execute(self, ctx: ChainContext) -> ChainContext:
        pipeline = ctx.pipeline
        pipeline.ensure_project_iid()
        pipeline.protected = ctx.command.protected_ref

        if ctx.command.seeds_block is not None:
            ctx.command.seeds_block(pipeline)

        if not ctx.stage_seeds:
            ctx.error(
                "No stages / jobs for this pipeline.",
                drop_reason=FailureReason.FILTERED_BY_RULES,
            )
        return ctx


class StopDryRunStep(Step):
    order = 85
    name = "stop_dry_run"

    def execute(self, ctx: ChainContext) -> ChainContext:
        if ctx.command.dry_run:
            ctx.halt()
        return ctx
