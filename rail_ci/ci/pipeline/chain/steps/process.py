"""
Post-creation steps: initial job statuses and metrics.
"""

import logging
from datetime import timedelta
from itertools import groupby

from django.utils import timezone

from ....config.utils import parse_duration
from ....models import JobWhen, PipelineStatus
from ..base import Step
from ..context import ChainContext

logger = logging.getLogger(__name__)

# job `when` -> status it takes once its stage is reached
_ENQUEUED_STATUS = {
    JobWhen.ON_SUCCESS: PipelineStatus.PENDING,
    JobWhen.ALWAYS: PipelineStatus.PENDING,
    JobWhen.MANUAL: PipelineStatus.MANUAL,
    JobWhen.DELAYED: PipelineStatus.SCHEDULED,
    JobWhen.ON_FAILURE: PipelineStatus.SKIPPED,
}


def composite_status(statuses: list[str]) -> str:
    if not statuses or all(status == PipelineStatus.SKIPPED for status in statuses):
        return PipelineStatus.SKIPPED
    for status in (
        PipelineStatus.RUNNING,
        PipelineStatus.PENDING,
        PipelineStatus.SCHEDULED,
        PipelineStatus.MANUAL,
    ):
        if status in statuses:
            return status
    return PipelineStatus.CREATED


class ProcessStep(Step):
    """
    Enqueue the first blocking stage.

    Stages are walked in order; each reached job gets the status matching its
    ``when``. Walking stops at the first stage with a job that blocks the
    next one (anything but skipped jobs and manual jobs allowed to fail).
    """

    order = 100
    name = "process"

    def execute(self, ctx: ChainContext) -> ChainContext:
        pipeline = ctx.pipeline
        now = timezone.now()
        builds = list(pipeline.builds.select_related("stage").order_by("stage_idx", "id"))

        for _, stage_builds in groupby(builds, key=lambda build: build.stage_idx):
            stage_builds = list(stage_builds)
            blocking = False
            for build in stage_builds:
                build.status = _ENQUEUED_STATUS.get(build.when, PipelineStatus.PENDING)
                if build.status == PipelineStatus.SCHEDULED:
                    delay = parse_duration(build.options.get("start_in")) or 0
                    build.scheduled_at = now + timedelta(seconds=delay)
                if not (
                    build.status == PipelineStatus.SKIPPED
                    or (build.status == PipelineStatus.MANUAL and build.allow_failure)
                ):
                    blocking = True
                build.save(update_fields=["status", "scheduled_at"])
            if blocking:
                break

        for stage in pipeline.stages.all():
            stage.status = composite_status([build.status for build in builds if build.stage_id == stage.id])
            stage.save(update_fields=["status"])

        pipeline.status = composite_status([build.status for build in builds])
        pipeline.save(update_fields=["status", "updated_at"])
        return ctx


class MetricsStep(Step):
    order = 110
    name = "metrics"

    def execute(self, ctx: ChainContext) -> ChainContext:
        pipeline = ctx.pipeline
        logger.info(
            "Pipeline created",
            extra={
                "pipeline_id": pipeline.pk,
                "pipeline_iid": pipeline.iid,
                "pipeline_source": pipeline.source,
                "pipeline_status": pipeline.status,
                "project_path": ctx.project.full_path,
                "jobs_count": sum(len(seed["builds"]) for seed in ctx.stage_seeds),
                "step_durations": dict(ctx.extra.get("step_durations", {})),
            },
        )
        return ctx
