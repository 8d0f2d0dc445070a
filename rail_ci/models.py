"""
Model registry for the ``rail_ci`` app.

Models live with their feature area; this module imports them so Django
discovers every one of them.
"""

from .ci.models import (  # noqa: F401
    Build,
    Pipeline,
    PipelineMessage,
    PipelineSchedule,
    PipelineScheduleVariable,
    PipelineVariable,
    SourcePipeline,
    Stage,
)
from .database.models import BackgroundMigrationJob, LooseForeignKeysDeletedRecord  # noqa: F401
from .projects.models import (  # noqa: F401
    Project,
    ProjectMember,
    RepositoryBlob,
    RepositoryCommit,
    RepositoryRef,
)
from .releases.models import Release  # noqa: F401
