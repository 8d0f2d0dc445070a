"""
Bookkeeping tables for background migrations and loose foreign keys.
"""

from typing import Any, Iterable

from django.db import models
from django.utils import timezone


class BackgroundMigrationJobStatus(models.IntegerChoices):
    PENDING = 0, "Pending"
    SUCCEEDED = 1, "Succeeded"


class BackgroundMigrationJobQuerySet(models.QuerySet):
    def pending(self):
        return self.filter(status=BackgroundMigrationJobStatus.PENDING)

    def for_migration_class(self, class_name: str):
        return self.filter(class_name=class_name)

    def for_migration_execution(self, class_name: str, arguments: Iterable[Any]):
        """Jobs tracked for one exact ``(class_name, arguments)`` invocation."""
        arguments = list(arguments)
        ids = [
            job.pk
            for job in self.for_migration_class(class_name).only("id", "arguments")
            if list(job.arguments or []) == arguments
        ]
        return self.filter(pk__in=ids)

    def for_partitioning_migration(self, class_name: str, table_name: str):
        """Jobs whose third argument (the source table) is ``table_name``."""
        ids = [
            job.pk
            for job in self.for_migration_class(class_name).only("id", "arguments")
            if len(job.arguments or []) > 2 and job.arguments[2] == table_name
        ]
        return self.filter(pk__in=ids)

    def mark_all_as_succeeded(self, class_name: str, arguments: Iterable[Any]) -> int:
        return (
            self.for_migration_execution(class_name, arguments)
            .pending()
            .update(status=BackgroundMigrationJobStatus.SUCCEEDED, updated_at=timezone.now())
        )


class BackgroundMigrationJob(models.Model):
    class_name = models.CharField(max_length=200)
    arguments = models.JSONField(default=list)
    status = models.PositiveSmallIntegerField(
        choices=BackgroundMigrationJobStatus.choices,
        default=BackgroundMigrationJobStatus.PENDING,
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = BackgroundMigrationJobQuerySet.as_manager()

    class Meta:
        app_label = "rail_ci"
        db_table = "background_migration_jobs"
        ordering = ["id"]
        indexes = [models.Index(fields=["class_name", "status"], name="bg_migration_class_status_idx")]

    def __str__(self) -> str:
        return f"{self.class_name}{self.arguments}"


class LooseForeignKeysDeletedRecord(models.Model):
    """Rows deleted from tracked tables, waiting for their dependents to be cleaned up."""

    fully_qualified_table_name = models.TextField()
    primary_key_value = models.BigIntegerField()
    status = models.PositiveSmallIntegerField(default=1)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        app_label = "rail_ci"
        db_table = "loose_foreign_keys_deleted_records"
        ordering = ["id"]
