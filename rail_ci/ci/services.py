"""
CI services: pipeline creation and schedule execution.
"""

import logging
from typing import Any, Callable, Optional

from ..logging_context import with_context
from ..services import ServiceResponse
from .models import Pipeline, PipelineSchedule
from .pipeline.chain import ChainContext, Command, SequenceBuilder

logger = logging.getLogger(__name__)


class CreatePipelineService:
    """
    Create a pipeline for ``params["ref"]`` by running the creation chain.

    ``params`` accepts ``ref``, ``checkout_sha``, ``after``, ``before`` and
    ``variables_attributes``. After ``execute`` the chain context stays on
    ``self.context`` so callers (lint dry runs) can read the stage seeds.
    """

    def __init__(self, project, current_user=None, params: Optional[dict[str, Any]] = None):
        self.project = project
        self.current_user = current_user
        self.params = dict(params or {})
        self.context: Optional[ChainContext] = None

    def execute(
        self,
        source: str,
        ignore_skip_ci: bool = False,
        save_on_errors: bool = True,
        schedule: Optional[PipelineSchedule] = None,
        content: Optional[str] = None,
        dry_run: bool = False,
        parent_pipeline: Optional[Pipeline] = None,
        bridge=None,
        seeds_block: Optional[Callable[[Pipeline], None]] = None,
    ) -> ServiceResponse:
        command = Command(
            source=source,
            project=self.project,
            current_user=self.current_user,
            origin_ref=self.params.get("ref"),
            checkout_sha=self.params.get("checkout_sha"),
            after_sha=self.params.get("after"),
            before_sha=self.params.get("before"),
            schedule=schedule,
            parent_pipeline=parent_pipeline,
            bridge=bridge,
            content=content,
            variables_attributes=list(self.params.get("variables_attributes") or []),
            ignore_skip_ci=ignore_skip_ci,
            save_incompleted=save_on_errors,
            dry_run=dry_run,
            seeds_block=seeds_block,
        )
        pipeline = Pipeline(project=self.project)

        with with_context(project=self.project, user=self.current_user, pipeline_source=source):
            self.context = SequenceBuilder().build().execute(
                ChainContext(pipeline=pipeline, command=command)
            )

        if self.context.errors:
            logger.info(
                "Pipeline creation failed for %s: %s",
                self.project.full_path,
                self.context.errors,
            )
            return ServiceResponse.error(
                message=", ".join(self.context.errors), payload=pipeline
            )
        return ServiceResponse.success(payload=pipeline)


class PipelineScheduleService:
    """Advance a schedule and enqueue the pipeline it is due to run."""

    def __init__(self, project, current_user=None):
        self.project = project
        self.current_user = current_user

    def execute(self, schedule: PipelineSchedule) -> ServiceResponse:
        from .workers import RunPipelineScheduleWorker

        # next_run_at must move before the pipeline is enqueued
        schedule.schedule_next_run()
        RunPipelineScheduleWorker.perform_async(schedule.id, schedule.owner_id)
        return ServiceResponse.success(payload=schedule)
