import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models

import rail_ci.database.operations

STATUS_CHOICES = [
    ("created", "Created"),
    ("waiting_for_resource", "Waiting for resource"),
    ("preparing", "Preparing"),
    ("pending", "Pending"),
    ("running", "Running"),
    ("success", "Success"),
    ("failed", "Failed"),
    ("canceled", "Canceled"),
    ("skipped", "Skipped"),
    ("manual", "Manual"),
    ("scheduled", "Scheduled"),
]
VARIABLE_TYPE_CHOICES = [("env_var", "Variable"), ("file", "File")]


class Migration(migrations.Migration):
    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Project",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("full_path", models.CharField(max_length=255, unique=True)),
                (
                    "visibility",
                    models.CharField(
                        choices=[("private", "Private"), ("internal", "Internal"), ("public", "Public")],
                        default="private",
                        max_length=16,
                    ),
                ),
                ("builds_enabled", models.BooleanField(default=True)),
                ("default_branch", models.CharField(default="main", max_length=255)),
                ("ci_config_path", models.CharField(blank=True, default="", max_length=255)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "creator",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="created_projects",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"ordering": ["full_path"]},
        ),
        migrations.CreateModel(
            name="ProjectMember",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "access_level",
                    models.PositiveSmallIntegerField(
                        choices=[
                            (10, "Guest"),
                            (20, "Reporter"),
                            (30, "Developer"),
                            (40, "Maintainer"),
                            (50, "Owner"),
                        ],
                        default=10,
                    ),
                ),
                (
                    "project",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="members", to="rail_ci.project"
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="project_memberships",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"unique_together": {("project", "user")}},
        ),
        migrations.CreateModel(
            name="RepositoryCommit",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sha", models.CharField(max_length=64)),
                ("message", models.TextField(blank=True, default="")),
                ("author_name", models.CharField(blank=True, default="", max_length=255)),
                ("authored_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "project",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="commits", to="rail_ci.project"
                    ),
                ),
            ],
            options={"ordering": ["-authored_at", "-id"], "unique_together": {("project", "sha")}},
        ),
        migrations.CreateModel(
            name="RepositoryRef",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                (
                    "ref_type",
                    models.CharField(choices=[("branch", "Branch"), ("tag", "Tag")], default="branch", max_length=8),
                ),
                ("sha", models.CharField(max_length=64)),
                ("protected", models.BooleanField(default=False)),
                (
                    "project",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="refs", to="rail_ci.project"
                    ),
                ),
            ],
            options={"unique_together": {("project", "name", "ref_type")}},
        ),
        migrations.CreateModel(
            name="RepositoryBlob",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sha", models.CharField(max_length=64)),
                ("path", models.CharField(max_length=1024)),
                ("data", models.TextField(blank=True, default="")),
                (
                    "project",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="blobs", to="rail_ci.project"
                    ),
                ),
            ],
            options={"unique_together": {("project", "sha", "path")}},
        ),
        migrations.CreateModel(
            name="PipelineSchedule",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("description", models.CharField(max_length=255)),
                ("ref", models.CharField(max_length=255)),
                ("cron", models.CharField(max_length=255)),
                ("cron_timezone", models.CharField(default="UTC", max_length=64)),
                ("active", models.BooleanField(default=True)),
                ("next_run_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "owner",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="owned_pipeline_schedules",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "project",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="pipeline_schedules",
                        to="rail_ci.project",
                    ),
                ),
            ],
            options={"ordering": ["id"]},
        ),
        migrations.CreateModel(
            name="PipelineScheduleVariable",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("key", models.CharField(max_length=255)),
                ("value", models.TextField(blank=True, default="")),
                ("variable_type", models.CharField(choices=VARIABLE_TYPE_CHOICES, default="env_var", max_length=8)),
                (
                    "pipeline_schedule",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="variables",
                        to="rail_ci.pipelineschedule",
                    ),
                ),
            ],
            options={"unique_together": {("pipeline_schedule", "key")}},
        ),
        migrations.CreateModel(
            name="Pipeline",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("iid", models.PositiveIntegerField(blank=True, null=True)),
                ("ref", models.CharField(blank=True, max_length=255, null=True)),
                ("sha", models.CharField(blank=True, max_length=64, null=True)),
                ("before_sha", models.CharField(blank=True, max_length=64, null=True)),
                ("tag", models.BooleanField(default=False)),
                (
                    "source",
                    models.CharField(
                        choices=[
                            ("unknown", "Unknown"),
                            ("push", "Push"),
                            ("web", "Web"),
                            ("trigger", "Trigger"),
                            ("schedule", "Schedule"),
                            ("api", "API"),
                            ("external", "External"),
                            ("pipeline", "Multi-project pipeline"),
                            ("chat", "Chat"),
                            ("merge_request_event", "Merge request event"),
                            ("parent_pipeline", "Parent pipeline"),
                        ],
                        default="unknown",
                        max_length=32,
                    ),
                ),
                ("status", models.CharField(choices=STATUS_CHOICES, default="created", max_length=32)),
                (
                    "failure_reason",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("unknown_failure", "Unknown failure"),
                            ("config_error", "Configuration error"),
                            ("external_validation_failure", "External validation failure"),
                            ("activity_limit_exceeded", "Activity limit exceeded"),
                            ("size_limit_exceeded", "Size limit exceeded"),
                            ("user_blocked", "User blocked"),
                            ("filtered_by_rules", "Filtered by rules"),
                        ],
                        max_length=48,
                        null=True,
                    ),
                ),
                (
                    "config_source",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("unknown_source", "Unknown"),
                            ("repository_source", "Repository"),
                            ("remote_source", "Remote"),
                            ("external_project_source", "External project"),
                            ("parameter_source", "Parameter"),
                        ],
                        max_length=32,
                        null=True,
                    ),
                ),
                ("yaml_errors", models.TextField(blank=True, null=True)),
                ("protected", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("started_at", models.DateTimeField(blank=True, null=True)),
                ("finished_at", models.DateTimeField(blank=True, null=True)),
                (
                    "pipeline_schedule",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="pipelines",
                        to="rail_ci.pipelineschedule",
                    ),
                ),
                (
                    "project",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="pipelines", to="rail_ci.project"
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="pipelines",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={"ordering": ["-id"], "unique_together": {("project", "iid")}},
        ),
        migrations.CreateModel(
            name="Stage",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("position", models.PositiveIntegerField(default=0)),
                ("status", models.CharField(choices=STATUS_CHOICES, default="created", max_length=32)),
                (
                    "pipeline",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="stages", to="rail_ci.pipeline"
                    ),
                ),
            ],
            options={"ordering": ["position", "id"]},
        ),
        migrations.CreateModel(
            name="Build",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("stage_idx", models.PositiveIntegerField(default=0)),
                ("status", models.CharField(choices=STATUS_CHOICES, default="created", max_length=32)),
                (
                    "when",
                    models.CharField(
                        choices=[
                            ("on_success", "On success"),
                            ("on_failure", "On failure"),
                            ("always", "Always"),
                            ("manual", "Manual"),
                            ("delayed", "Delayed"),
                            ("never", "Never"),
                        ],
                        default="on_success",
                        max_length=16,
                    ),
                ),
                ("allow_failure", models.BooleanField(default=False)),
                ("options", models.JSONField(blank=True, default=dict)),
                ("yaml_variables", models.JSONField(blank=True, default=list)),
                ("needs", models.JSONField(blank=True, default=list)),
                ("tag_list", models.JSONField(blank=True, default=list)),
                ("scheduling_type", models.CharField(default="stage", max_length=8)),
                ("scheduled_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "pipeline",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="builds", to="rail_ci.pipeline"
                    ),
                ),
                (
                    "stage",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="builds", to="rail_ci.stage"
                    ),
                ),
            ],
            options={"ordering": ["stage_idx", "id"]},
        ),
        migrations.CreateModel(
            name="PipelineVariable",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("key", models.CharField(max_length=255)),
                ("value", models.TextField(blank=True, default="")),
                ("variable_type", models.CharField(choices=VARIABLE_TYPE_CHOICES, default="env_var", max_length=8)),
                (
                    "pipeline",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="variables", to="rail_ci.pipeline"
                    ),
                ),
            ],
            options={"unique_together": {("pipeline", "key")}},
        ),
        migrations.CreateModel(
            name="PipelineMessage",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "severity",
                    models.CharField(
                        choices=[("error", "Error"), ("warning", "Warning")], default="error", max_length=8
                    ),
                ),
                ("content", models.TextField()),
                (
                    "pipeline",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="messages", to="rail_ci.pipeline"
                    ),
                ),
            ],
            options={"ordering": ["id"]},
        ),
        migrations.CreateModel(
            name="SourcePipeline",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "pipeline",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="source_pipeline",
                        to="rail_ci.pipeline",
                    ),
                ),
                (
                    "source_job",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="sourced_pipelines",
                        to="rail_ci.build",
                    ),
                ),
                (
                    "source_pipeline",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="sourced_pipelines",
                        to="rail_ci.pipeline",
                    ),
                ),
                (
                    "source_project",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="sourced_pipelines",
                        to="rail_ci.project",
                    ),
                ),
            ],
        ),
        migrations.CreateModel(
            name="Release",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("tag", models.CharField(blank=True, max_length=255, null=True)),
                ("name", models.CharField(blank=True, default="", max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("sha", models.CharField(blank=True, max_length=64, null=True)),
                ("released_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "author",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="releases",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "project",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE, related_name="releases", to="rail_ci.project"
                    ),
                ),
            ],
            options={"unique_together": {("project", "tag")}},
        ),
        migrations.CreateModel(
            name="BackgroundMigrationJob",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("class_name", models.CharField(max_length=200)),
                ("arguments", models.JSONField(default=list)),
                (
                    "status",
                    models.PositiveSmallIntegerField(choices=[(0, "Pending"), (1, "Succeeded")], default=0),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "db_table": "background_migration_jobs",
                "ordering": ["id"],
                "indexes": [
                    models.Index(fields=["class_name", "status"], name="bg_migration_class_status_idx")
                ],
            },
        ),
        migrations.CreateModel(
            name="LooseForeignKeysDeletedRecord",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("fully_qualified_table_name", models.TextField()),
                ("primary_key_value", models.BigIntegerField()),
                ("status", models.PositiveSmallIntegerField(default=1)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={"db_table": "loose_foreign_keys_deleted_records", "ordering": ["id"]},
        ),
        rail_ci.database.operations.CreateLooseForeignKeysFunction(),
    ]
