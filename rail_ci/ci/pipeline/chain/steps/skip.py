import logging
import re

from ..base import Step
from ..context import ChainContext

logger = logging.getLogger(__name__)

SKIP_PATTERN = re.compile(r"\[(ci[ _-]skip|skip[ _-]ci)\]", re.IGNORECASE)


class SkipStep(Step):
    """Stop on commits whose message asks CI to skip them."""

    order = 40
    name = "skip"

    def execute(self, ctx: ChainContext) -> ChainContext:
        if ctx.command.ignore_skip_ci or not self._commit_message_skips_ci(ctx):
            return ctx

        ctx.pipeline.skip(persist=ctx.persist_pipeline)
        logger.info("Skipped pipeline for %s at %s", ctx.project.full_path, ctx.pipeline.sha)
        ctx.halt()
        return ctx

    def _commit_message_skips_ci(self, ctx: ChainContext) -> bool:
        commit = ctx.extra.get("commit")
        message = getattr(commit, "message", "") or ""
        return bool(SKIP_PATTERN.search(message))
