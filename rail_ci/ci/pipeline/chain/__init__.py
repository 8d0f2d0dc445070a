"""
Pipeline creation chain.

``SequenceBuilder().build().execute(ChainContext(pipeline, command))`` runs
every step in order until one halts the context.
"""

from .base import Sequence, Step
from .builder import DEFAULT_STEPS, SequenceBuilder
from .command import Command
from .context import ChainContext

__all__ = ["Command", "ChainContext", "Step", "Sequence", "SequenceBuilder", "DEFAULT_STEPS"]
