"""
ChainContext - Carries state through the pipeline creation chain.

The context is created by the service and handed to every step. Steps read
the command, mutate the in-progress pipeline and record errors; any error
halts the chain.
"""

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional

if TYPE_CHECKING:
    from ...models import Pipeline
    from ...yaml_processor import Result
    from .command import Command

logger = logging.getLogger(__name__)


@dataclass
class ChainContext:
    """
    Attributes:
        pipeline: The pipeline under construction (unsaved until the create step)
        command: The creation request
        errors: Error messages, in the order they were raised
        warnings: Non-fatal messages
        should_abort: Flag telling the sequence to stop
        config_content: CI configuration text chosen by the content step
        yaml_result: Output of the YAML processor
        stage_seeds: Stages and jobs selected for this pipeline
        extra: Storage for step-specific data
    """

    pipeline: "Pipeline"
    command: "Command"

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    should_abort: bool = False

    config_content: Optional[str] = None
    yaml_result: Optional["Result"] = None
    stage_seeds: list[dict[str, Any]] = field(default_factory=list)

    extra: dict[str, Any] = field(default_factory=dict)

    def add_error(self, message: str) -> None:
        """Record an error and halt the chain."""
        self.errors.append(message)
        self.should_abort = True

    def add_warning(self, message: str) -> None:
        """Record a warning on the context and the pipeline; does not halt."""
        self.warnings.append(message)
        self.pipeline.add_message(message, severity="warning")

    def halt(self) -> None:
        """Stop the chain without recording an error."""
        self.should_abort = True

    @property
    def persist_pipeline(self) -> bool:
        return bool(self.command.save_incompleted and not self.command.dry_run)

    def error(
        self,
        message: str,
        config_error: bool = False,
        drop_reason: Optional[str] = None,
    ) -> None:
        """
        Fail pipeline creation with ``message``.

        Config errors are stored on the pipeline's ``yaml_errors``. When a
        drop reason is given and incomplete pipelines are kept, the pipeline
        is persisted as failed so users can see why it did not run.
        """
        if config_error:
            self.pipeline.yaml_errors = message

        self.pipeline.add_message(message)
        if drop_reason and self.persist_pipeline:
            self.pipeline.drop(drop_reason)
            logger.info(
                "Dropped pipeline %s for %s: %s",
                self.pipeline.pk,
                getattr(self.command.project, "full_path", None),
                drop_reason,
            )
        self.add_error(message)

    @property
    def project(self):
        return self.command.project

    @property
    def current_user(self):
        return self.command.current_user
