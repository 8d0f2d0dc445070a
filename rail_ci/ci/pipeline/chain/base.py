"""
Base classes for the pipeline creation chain.

Provides the Step abstract base class and the Sequence that runs steps in
order until one of them halts the context.
"""

import logging
import time
from abc import ABC, abstractmethod
from typing import List

from .context import ChainContext

logger = logging.getLogger(__name__)


class Step(ABC):
    """
    Base class for chain steps.

    Attributes:
        order: Integer determining step execution order (lower = earlier)
        name: String identifier used in logs and step overrides

    Example:
        class AuditStep(Step):
            order = 95
            name = "audit"

            def execute(self, ctx: ChainContext) -> ChainContext:
                logger.info("created %s", ctx.pipeline.pk)
                return ctx
    """

    order: int = 100
    name: str = "base"

    @abstractmethod
    def execute(self, ctx: ChainContext) -> ChainContext:
        """
        Execute this step.

        Args:
            ctx: Current chain context

        Returns:
            The context, mutated; set ``should_abort`` to stop the chain
        """

    def should_run(self, ctx: ChainContext) -> bool:
        return not ctx.should_abort

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} order={self.order} name={self.name}>"


class Sequence:
    """
    Executes an ordered sequence of chain steps.

    Steps are sorted by their ``order``. Once a step halts the context the
    remaining steps are skipped unless they override ``should_run``.
    """

    def __init__(self, steps: List[Step]):
        self.steps = sorted(steps, key=lambda s: s.order)

    def execute(self, ctx: ChainContext) -> ChainContext:
        durations = ctx.extra.setdefault("step_durations", {})
        for step in self.steps:
            if not step.should_run(ctx):
                continue
            started = time.monotonic()
            ctx = step.execute(ctx)
            durations[step.name] = round(time.monotonic() - started, 6)
            if ctx.should_abort:
                logger.debug("Chain halted by %s: %s", step.name, ctx.errors)
        return ctx

    def get_step_names(self) -> List[str]:
        return [s.name for s in self.steps]

    def __repr__(self) -> str:
        return f"<Sequence steps={self.get_step_names()}>"
