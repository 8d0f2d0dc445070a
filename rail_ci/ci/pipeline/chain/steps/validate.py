"""
Validation steps: user abilities and repository state.
"""

import logging

from .....projects.abilities import Ability, can_update_branch
from .....projects.repository import InvalidRefError
from ..base import Step
from ..context import ChainContext

logger = logging.getLogger(__name__)


class ValidateAbilitiesStep(Step):
    """Check the project runs pipelines and the user may run one on the ref."""

    order = 20
    name = "validate_abilities"

    def execute(self, ctx: ChainContext) -> ChainContext:
        project = ctx.project
        user = ctx.current_user

        if not project.builds_enabled:
            ctx.error("Pipelines are disabled!")
            return ctx

        if not Ability.allowed(user, "create_pipeline", project):
            ctx.error("Insufficient permissions to create a new pipeline")
            return ctx

        if not self._allowed_to_write_ref(ctx):
            ctx.error(
                f"You do not have sufficient permission to run a pipeline on '{ctx.command.ref}'. "
                "Please select a different branch or contact your administrator for assistance."
            )
        return ctx

    def _allowed_to_write_ref(self, ctx: ChainContext) -> bool:
        # child pipelines inherit the parent's authorization
        if ctx.command.creates_child_pipeline:
            return True
        return can_update_branch(ctx.current_user, ctx.project, ctx.command.ref)


class ValidateRepositoryStep(Step):
    order = 30
    name = "validate_repository"

    def execute(self, ctx: ChainContext) -> ChainContext:
        command = ctx.command

        if not (command.branch_exists or command.tag_exists):
            ctx.error("Reference not found")
            return ctx

        try:
            commit = ctx.project.repository.commit(command.sha) if command.sha else None
        except InvalidRefError as exc:
            logger.info("Invalid sha for %s: %s", ctx.project.full_path, exc)
            commit = None
        if commit is None:
            ctx.error("Commit not found")
            return ctx

        if command.ambiguous_ref:
            ctx.error("Ref is ambiguous")
            return ctx

        ctx.pipeline.sha = commit.sha
        ctx.extra["commit"] = commit
        return ctx
