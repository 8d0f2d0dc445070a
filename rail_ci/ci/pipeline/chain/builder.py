"""
SequenceBuilder - Builds the pipeline creation chain.

Steps can be added or skipped in code, and replaced or skipped through the
``pipeline_settings.step_overrides`` / ``pipeline_settings.skipped_steps``
settings, where overrides map a step name to a dotted class path.
"""

import logging
from typing import List, Optional, Type

from django.utils.module_loading import import_string

from ....config_proxy import get_setting
from .base import Sequence, Step
from .steps import (
    BuildStep,
    ConfigContentStep,
    ConfigProcessStep,
    CreateCrossDatabaseAssociationsStep,
    CreateStep,
    MetricsStep,
    PopulateStep,
    ProcessStep,
    SeedStep,
    SkipStep,
    StopDryRunStep,
    ValidateAbilitiesStep,
    ValidateRepositoryStep,
)

logger = logging.getLogger(__name__)

DEFAULT_STEPS: List[Type[Step]] = [
    BuildStep,
    ValidateAbilitiesStep,
    ValidateRepositoryStep,
    SkipStep,
    ConfigContentStep,
    ConfigProcessStep,
    SeedStep,
    PopulateStep,
    StopDryRunStep,
    CreateStep,
    CreateCrossDatabaseAssociationsStep,
    ProcessStep,
    MetricsStep,
]


class SequenceBuilder:
    """
    Example:
        sequence = SequenceBuilder().skip_step("metrics").add_step(AuditStep()).build()
        ctx = sequence.execute(ChainContext(pipeline=pipeline, command=command))
    """

    def __init__(self, step_classes: Optional[List[Type[Step]]] = None):
        self.step_classes = list(step_classes or DEFAULT_STEPS)
        self._custom_steps: List[Step] = []
        self._skip_steps: List[str] = list(get_setting("pipeline_settings.skipped_steps", []) or [])

    def add_step(self, step: Step) -> "SequenceBuilder":
        self._custom_steps.append(step)
        return self

    def skip_step(self, step_name: str) -> "SequenceBuilder":
        self._skip_steps.append(step_name)
        return self

    def _instantiate(self, step_class: Type[Step]) -> Step:
        overrides = get_setting("pipeline_settings.step_overrides", {}) or {}
        path = overrides.get(step_class.name)
        if path:
            logger.debug("Replacing step %s with %s", step_class.name, path)
            step_class = import_string(path)
        return step_class()

    def build(self) -> Sequence:
        steps = [self._instantiate(step_class) for step_class in self.step_classes]
        steps.extend(self._custom_steps)
        return Sequence([step for step in steps if step.name not in self._skip_steps])
