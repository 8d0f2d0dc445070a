"""
CI models: pipelines, stages, jobs, schedules and their variables.
"""

import logging
import re
from datetime import timedelta
from typing import Optional

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Max
from django.utils import timezone

from ..projects.models import Project

logger = logging.getLogger(__name__)


class PipelineStatus(models.TextChoices):
    CREATED = "created", "Created"
    WAITING_FOR_RESOURCE = "waiting_for_resource", "Waiting for resource"
    PREPARING = "preparing", "Preparing"
    PENDING = "pending", "Pending"
    RUNNING = "running", "Running"
    SUCCESS = "success", "Success"
    FAILED = "failed", "Failed"
    CANCELED = "canceled", "Canceled"
    SKIPPED = "skipped", "Skipped"
    MANUAL = "manual", "Manual"
    SCHEDULED = "scheduled", "Scheduled"


ACTIVE_STATUSES = (
    PipelineStatus.WAITING_FOR_RESOURCE,
    PipelineStatus.PREPARING,
    PipelineStatus.PENDING,
    PipelineStatus.RUNNING,
)
CANCELABLE_STATUSES = ACTIVE_STATUSES + (
    PipelineStatus.CREATED,
    PipelineStatus.SCHEDULED,
)
COMPLETED_STATUSES = (
    PipelineStatus.SUCCESS,
    PipelineStatus.FAILED,
    PipelineStatus.CANCELED,
    PipelineStatus.SKIPPED,
)


class PipelineSource(models.TextChoices):
    UNKNOWN = "unknown", "Unknown"
    PUSH = "push", "Push"
    WEB = "web", "Web"
    TRIGGER = "trigger", "Trigger"
    SCHEDULE = "schedule", "Schedule"
    API = "api", "API"
    EXTERNAL = "external", "External"
    PIPELINE = "pipeline", "Multi-project pipeline"
    CHAT = "chat", "Chat"
    MERGE_REQUEST_EVENT = "merge_request_event", "Merge request event"
    PARENT_PIPELINE = "parent_pipeline", "Parent pipeline"


class FailureReason(models.TextChoices):
    UNKNOWN_FAILURE = "unknown_failure", "Unknown failure"
    CONFIG_ERROR = "config_error", "Configuration error"
    EXTERNAL_VALIDATION_FAILURE = "external_validation_failure", "External validation failure"
    ACTIVITY_LIMIT_EXCEEDED = "activity_limit_exceeded", "Activity limit exceeded"
    SIZE_LIMIT_EXCEEDED = "size_limit_exceeded", "Size limit exceeded"
    USER_BLOCKED = "user_blocked", "User blocked"
    FILTERED_BY_RULES = "filtered_by_rules", "Filtered by rules"


class ConfigSource(models.TextChoices):
    UNKNOWN_SOURCE = "unknown_source", "Unknown"
    REPOSITORY_SOURCE = "repository_source", "Repository"
    REMOTE_SOURCE = "remote_source", "Remote"
    EXTERNAL_PROJECT_SOURCE = "external_project_source", "External project"
    PARAMETER_SOURCE = "parameter_source", "Parameter"


class JobWhen(models.TextChoices):
    ON_SUCCESS = "on_success", "On success"
    ON_FAILURE = "on_failure", "On failure"
    ALWAYS = "always", "Always"
    MANUAL = "manual", "Manual"
    DELAYED = "delayed", "Delayed"
    NEVER = "never", "Never"


class Pipeline(models.Model):
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="pipelines")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="pipelines",
    )
    iid = models.PositiveIntegerField(null=True, blank=True)
    ref = models.CharField(max_length=255, null=True, blank=True)
    sha = models.CharField(max_length=64, null=True, blank=True)
    before_sha = models.CharField(max_length=64, null=True, blank=True)
    tag = models.BooleanField(default=False)
    source = models.CharField(
        max_length=32, choices=PipelineSource.choices, default=PipelineSource.UNKNOWN
    )
    status = models.CharField(
        max_length=32, choices=PipelineStatus.choices, default=PipelineStatus.CREATED
    )
    failure_reason = models.CharField(
        max_length=48, choices=FailureReason.choices, null=True, blank=True
    )
    config_source = models.CharField(
        max_length=32, choices=ConfigSource.choices, null=True, blank=True
    )
    yaml_errors = models.TextField(null=True, blank=True)
    protected = models.BooleanField(default=False)
    pipeline_schedule = models.ForeignKey(
        "PipelineSchedule",
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="pipelines",
    )
    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)
    started_at = models.DateTimeField(null=True, blank=True)
    finished_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        app_label = "rail_ci"
        ordering = ["-id"]
        unique_together = ("project", "iid")

    def __str__(self) -> str:
        return f"Pipeline #{self.pk or 'new'} ({self.ref}@{(self.sha or '')[:8]})"

    @property
    def active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def cancelable(self) -> bool:
        return self.status in CANCELABLE_STATUSES

    @property
    def retryable(self) -> bool:
        return self.status in (PipelineStatus.FAILED, PipelineStatus.CANCELED)

    @property
    def has_yaml_errors(self) -> bool:
        return bool(self.yaml_errors)

    @property
    def branch(self) -> bool:
        return not self.tag

    @property
    def duration(self) -> Optional[int]:
        if not self.started_at or not self.finished_at:
            return None
        return int((self.finished_at - self.started_at).total_seconds())

    @property
    def triggered_by_pipeline(self) -> Optional["Pipeline"]:
        link = SourcePipeline.objects.filter(pipeline_id=self.pk).select_related(
            "source_pipeline__project"
        ).first()
        return link.source_pipeline if link else None

    def triggered_pipelines(self):
        return Pipeline.objects.filter(source_pipeline__source_pipeline_id=self.pk).select_related(
            "project", "user"
        ).order_by("id")

    def manual_actions(self):
        return self.builds.filter(when=JobWhen.MANUAL, status=PipelineStatus.MANUAL).order_by(
            "stage_idx", "id"
        )

    def scheduled_actions(self):
        return self.builds.filter(
            when=JobWhen.DELAYED, status=PipelineStatus.SCHEDULED
        ).order_by("stage_idx", "id")

    def ordered_stages(self):
        return self.stages.order_by("position", "id")

    def is_latest(self) -> bool:
        """Whether no newer pipeline exists for the same project and ref."""
        if not self.pk:
            return False
        return not Pipeline.objects.filter(
            project_id=self.project_id, ref=self.ref, id__gt=self.pk
        ).exists()

    def ensure_project_iid(self) -> int:
        """Allocate the next per-project iid if one is not assigned yet."""
        if self.iid:
            return self.iid
        current = Pipeline.objects.filter(project_id=self.project_id).aggregate(
            value=Max("iid")
        )["value"]
        self.iid = (current or 0) + 1
        return self.iid

    def add_message(self, content: str, severity: str = "error") -> None:
        """Queue a message; messages are written when the pipeline is saved."""
        pending = self.__dict__.setdefault("_pending_messages", [])
        pending.append((severity, content))

    @property
    def pending_messages(self) -> list[tuple[str, str]]:
        return list(self.__dict__.get("_pending_messages", []))

    def error_messages(self) -> list[str]:
        if self.pk:
            stored = list(
                self.messages.filter(severity=MessageSeverity.ERROR).values_list(
                    "content", flat=True
                )
            )
            if stored:
                return stored
        return [content for severity, content in self.pending_messages if severity == "error"]

    def save_messages(self) -> None:
        pending = self.__dict__.pop("_pending_messages", [])
        if not pending or not self.pk:
            return
        PipelineMessage.objects.bulk_create(
            [
                PipelineMessage(pipeline=self, severity=severity, content=content)
                for severity, content in pending
            ]
        )

    def drop(self, reason: Optional[str] = None) -> None:
        """Mark the pipeline failed and persist it together with its messages."""
        now = timezone.now()
        self.status = PipelineStatus.FAILED
        self.failure_reason = reason or FailureReason.UNKNOWN_FAILURE
        self.finished_at = now
        self.ensure_project_iid()
        self.save()
        self.save_messages()

    def skip(self, persist: bool = True) -> None:
        self.status = PipelineStatus.SKIPPED
        self.finished_at = timezone.now()
        if persist:
            self.ensure_project_iid()
            self.save()
            self.save_messages()


class Stage(models.Model):
    pipeline = models.ForeignKey(Pipeline, on_delete=models.CASCADE, related_name="stages")
    name = models.CharField(max_length=255)
    position = models.PositiveIntegerField(default=0)
    status = models.CharField(
        max_length=32, choices=PipelineStatus.choices, default=PipelineStatus.CREATED
    )

    class Meta:
        app_label = "rail_ci"
        ordering = ["position", "id"]

    def __str__(self) -> str:
        return self.name


_GROUP_NAME_SUFFIX = re.compile(r"([\s:]+((\[.*\])|(\d+[\s:/\\]+\d+))){1,3}\s*\Z")


def job_group_name(name: str) -> str:
    """Strip parallel suffixes (``1/3``, ``1 3``, ``[matrix]``) from a job name."""
    return _GROUP_NAME_SUFFIX.sub("", str(name or "")).strip()


class Build(models.Model):
    pipeline = models.ForeignKey(Pipeline, on_delete=models.CASCADE, related_name="builds")
    stage = models.ForeignKey(Stage, on_delete=models.CASCADE, related_name="builds")
    name = models.CharField(max_length=255)
    stage_idx = models.PositiveIntegerField(default=0)
    status = models.CharField(
        max_length=32, choices=PipelineStatus.choices, default=PipelineStatus.CREATED
    )
    when = models.CharField(max_length=16, choices=JobWhen.choices, default=JobWhen.ON_SUCCESS)
    allow_failure = models.BooleanField(default=False)
    options = models.JSONField(default=dict, blank=True)
    yaml_variables = models.JSONField(default=list, blank=True)
    needs = models.JSONField(default=list, blank=True)
    tag_list = models.JSONField(default=list, blank=True)
    scheduling_type = models.CharField(max_length=8, default="stage")
    scheduled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        app_label = "rail_ci"
        ordering = ["stage_idx", "id"]

    def __str__(self) -> str:
        return self.name

    @property
    def project(self) -> Project:
        return self.pipeline.project

    @property
    def group_name(self) -> str:
        return job_group_name(self.name)

    @property
    def playable(self) -> bool:
        return self.status in (PipelineStatus.MANUAL, PipelineStatus.SCHEDULED)

    @property
    def scheduled(self) -> bool:
        return self.status == PipelineStatus.SCHEDULED


class VariableType(models.TextChoices):
    ENV_VAR = "env_var", "Variable"
    FILE = "file", "File"


class PipelineVariable(models.Model):
    pipeline = models.ForeignKey(Pipeline, on_delete=models.CASCADE, related_name="variables")
    key = models.CharField(max_length=255)
    value = models.TextField(blank=True, default="")
    variable_type = models.CharField(
        max_length=8, choices=VariableType.choices, default=VariableType.ENV_VAR
    )

    class Meta:
        app_label = "rail_ci"
        unique_together = ("pipeline", "key")

    def __str__(self) -> str:
        return self.key


class MessageSeverity(models.TextChoices):
    ERROR = "error", "Error"
    WARNING = "warning", "Warning"


class PipelineMessage(models.Model):
    pipeline = models.ForeignKey(Pipeline, on_delete=models.CASCADE, related_name="messages")
    severity = models.CharField(
        max_length=8, choices=MessageSeverity.choices, default=MessageSeverity.ERROR
    )
    content = models.TextField()

    class Meta:
        app_label = "rail_ci"
        ordering = ["id"]

    def __str__(self) -> str:
        return f"{self.severity}: {self.content[:60]}"


class SourcePipeline(models.Model):
    """Links a downstream pipeline to the pipeline (and job) that triggered it."""

    pipeline = models.OneToOneField(
        Pipeline, on_delete=models.CASCADE, related_name="source_pipeline"
    )
    source_pipeline = models.ForeignKey(
        Pipeline, on_delete=models.CASCADE, related_name="sourced_pipelines"
    )
    source_project = models.ForeignKey(
        Project, on_delete=models.CASCADE, related_name="sourced_pipelines"
    )
    source_job = models.ForeignKey(
        Build, on_delete=models.SET_NULL, null=True, blank=True, related_name="sourced_pipelines"
    )

    class Meta:
        app_label = "rail_ci"


class PipelineScheduleQuerySet(models.QuerySet):
    def active(self):
        return self.filter(active=True)

    def runnable_schedules(self, now=None):
        return self.active().filter(next_run_at__lt=now or timezone.now())

    def preloaded(self):
        return self.select_related("project", "owner").prefetch_related("variables")


class PipelineSchedule(models.Model):
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="pipeline_schedules")
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="owned_pipeline_schedules",
    )
    description = models.CharField(max_length=255)
    ref = models.CharField(max_length=255)
    cron = models.CharField(max_length=255)
    cron_timezone = models.CharField(max_length=64, default="UTC")
    active = models.BooleanField(default=True)
    next_run_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = PipelineScheduleQuerySet.as_manager()

    class Meta:
        app_label = "rail_ci"
        ordering = ["id"]

    def __str__(self) -> str:
        return f"{self.description} ({self.cron})"

    def clean(self):
        from .cron import CronParser

        errors = {}
        if not (self.description or "").strip():
            errors["description"] = "can't be blank"
        if not (self.ref or "").strip():
            errors["ref"] = "can't be blank"
        parser = CronParser(self.cron, self.cron_timezone)
        if not parser.cron_valid():
            errors["cron"] = " is invalid syntax"
        if not parser.cron_timezone_valid():
            errors["cron_timezone"] = " is invalid syntax"
        if errors:
            raise ValidationError(errors)

    def save(self, *args, **kwargs):
        if self.active and self.next_run_at is None:
            self.set_next_run_at()
        super().save(*args, **kwargs)

    @property
    def owned_by(self):
        return self.owner

    def set_next_run_at(self, now=None) -> None:
        """
        Compute the next run aligned to the schedule worker's own cron.

        The worker only wakes up on its cron, so a schedule is due at the
        first worker tick at or after its ideal next run.
        """
        from ..config_proxy import get_setting
        from .cron import CronParser

        now = now or timezone.now()
        ideal_next_run = CronParser(self.cron, self.cron_timezone).next_time_from(now)
        if ideal_next_run is None:
            self.next_run_at = None
            return

        worker_parser = CronParser(
            get_setting("schedule_settings.worker_cron", "3-59/10 * * * *"), "UTC"
        )
        self.next_run_at = worker_parser.next_time_from(ideal_next_run - timedelta(seconds=1))

    def schedule_next_run(self, now=None) -> None:
        self.set_next_run_at(now=now)
        self.save(update_fields=["next_run_at", "updated_at"])

    def job_variables(self) -> list[dict[str, str]]:
        return [
            {"key": variable.key, "value": variable.value, "variable_type": variable.variable_type}
            for variable in self.variables.all()
        ]


class PipelineScheduleVariable(models.Model):
    pipeline_schedule = models.ForeignKey(
        PipelineSchedule, on_delete=models.CASCADE, related_name="variables"
    )
    key = models.CharField(max_length=255)
    value = models.TextField(blank=True, default="")
    variable_type = models.CharField(
        max_length=8, choices=VariableType.choices, default=VariableType.ENV_VAR
    )

    class Meta:
        app_label = "rail_ci"
        unique_together = ("pipeline_schedule", "key")

    def __str__(self) -> str:
        return self.key
