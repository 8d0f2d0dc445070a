"""
Persistence steps.
"""

import logging

from django.db import DatabaseError, transaction

from ....models import Build, PipelineVariable, SourcePipeline, Stage
from ..base import Step
from ..context import ChainContext

logger = logging.getLogger(__name__)


class CreateStep(Step):
    """
    Save the pipeline with its stages, jobs, variables and messages.

    Everything is written in one transaction; a database failure leaves
    nothing behind and is reported as a chain error.
    """

    order = 90
    name = "create"

    def execute(self, ctx: ChainContext) -> ChainContext:
        pipeline = ctx.pipeline
        try:
            with transaction.atomic():
                pipeline.save()
                self._create_variables(ctx)
                self._create_stages(ctx)
                self._link_parent(ctx)
                pipeline.save_messages()
        except DatabaseError as exc:
            logger.warning("Failed to persist pipeline for %s: %s", ctx.project.full_path, exc)
            pipeline.pk = None
            ctx.add_error(f"Failed to persist the pipeline: {exc}")
        return ctx

    def _create_variables(self, ctx: ChainContext) -> None:
        PipelineVariable.objects.bulk_create(
            [
                PipelineVariable(
                    pipeline=ctx.pipeline,
                    key=variable["key"],
                    value=variable["value"],
                    variable_type=variable.get("variable_type", "env_var"),
                )
                for variable in ctx.extra.get("variables", [])
            ]
        )

    def _create_stages(self, ctx: ChainContext) -> None:
        for seed in ctx.stage_seeds:
            stage = Stage.objects.create(
                pipeline=ctx.pipeline, name=seed["name"], position=seed["index"]
            )
            Build.objects.bulk_create(
                [
                    Build(
                        pipeline=ctx.pipeline,
                        stage=stage,
                        name=job["name"],
                        stage_idx=seed["index"],
                        when=job["when"],
                        allow_failure=job["allow_failure"],
                        options=job["options"],
                        yaml_variables=job["yaml_variables"],
                        needs=job["needs"],
                        tag_list=job["tag_list"],
                        scheduling_type=job["scheduling_type"],
                    )
                    for job in seed["builds"]
                ]
            )

    def _link_parent(self, ctx: ChainContext) -> None:
        parent = ctx.command.parent_pipeline
        if parent is None:
            return
        SourcePipeline.objects.create(
            pipeline=ctx.pipeline,
            source_pipeline=parent,
            source_project=parent.project,
            source_job=ctx.command.bridge,
        )


class CreateCrossDatabaseAssociationsStep(Step):
    """
    Extension point for records kept outside the CI tables.

    Does nothing and never halts; replace it through
    ``pipeline_settings.step_overrides``.
    """

    order = 95
    name = "create_cross_database_associations"

    def execute(self, ctx: ChainContext) -> ChainContext:
        return ctx
