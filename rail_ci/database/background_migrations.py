"""
Background migrations: data migrations split into id ranges and run by workers.

A migration class is looked up by name in
``background_migration_settings.migrations`` (or registered with
:func:`register_background_migration`) and must implement
``perform(*arguments)``. Scheduling is done from a Django migration::

    queue_background_migration_jobs_by_range_at_intervals(
        Namespace.objects.all(),
        "BackfillCiNamespaceMirrors",
        120,
        batch_size=10_000,
        track_jobs=True,
    )
"""

import logging
from datetime import timedelta
from typing import Any, Iterable, Iterator, Optional, Union

from django.db import models
from django.utils import timezone
from django.utils.module_loading import import_string

from ..config_proxy import get_setting
from ..utils import coerce_int
from ..workers import Worker
from .models import BackgroundMigrationJob

logger = logging.getLogger(__name__)

_registry: dict[str, Any] = {}


class BackgroundMigrationError(Exception):
    """Raised when a background migration can not be scheduled or resolved."""


def register_background_migration(name: Optional[str] = None):
    """Class decorator registering a migration class under ``name`` (default: class name)."""

    def decorator(cls):
        _registry[name or cls.__name__] = cls
        return cls

    return decorator


def resolve_migration_class(class_name: str):
    if class_name in _registry:
        return _registry[class_name]

    configured = get_setting("background_migration_settings.migrations", {}) or {}
    path = configured.get(class_name) if isinstance(configured, dict) else None
    if not path:
        raise BackgroundMigrationError(f"Unknown background migration: {class_name}")
    try:
        return import_string(path)
    except ImportError as exc:
        raise BackgroundMigrationError(
            f"Could not import background migration {class_name} from {path}: {exc}"
        ) from exc


def minimum_interval() -> int:
    return max(coerce_int(get_setting("background_migration_settings.minimum_interval_seconds", 120), 120), 0)


def default_batch_size() -> int:
    return max(coerce_int(get_setting("background_migration_settings.batch_size", 1000), 1000), 1)


def each_id_range(
    queryset: models.QuerySet, batch_size: int, column: str = "id"
) -> Iterator[tuple[int, int]]:
    """Yield ``(start, end)`` values of ``column`` covering ``queryset`` in ascending batches."""
    values = queryset.order_by(column).values_list(column, flat=True)
    last = None
    while True:
        batch = values if last is None else values.filter(**{f"{column}__gt": last})
        ids = list(batch[:batch_size])
        if not ids:
            return
        yield ids[0], ids[-1]
        last = ids[-1]


def _id_ranges(source, batch_size: int, column: str) -> Iterable[tuple[int, int]]:
    if isinstance(source, type) and issubclass(source, models.Model):
        source = source._default_manager.all()

    if isinstance(source, models.QuerySet):
        field_names = {field.attname for field in source.model._meta.concrete_fields}
        if column not in field_names:
            raise BackgroundMigrationError(
                f"{source.model.__name__} does not have an ID column of {column} to use for batch ranges"
            )
        field = source.model._meta.get_field(column)
        if not isinstance(field, (models.IntegerField, models.AutoField)):
            raise BackgroundMigrationError(f"{column} is not an integer column")
        return each_id_range(source, batch_size, column)

    return source


def track_in_database(class_name: str, arguments: list[Any]) -> BackgroundMigrationJob:
    return BackgroundMigrationJob.objects.create(class_name=class_name, arguments=list(arguments))


def migrate_in(delay_seconds: float, class_name: str, arguments: list[Any]) -> str:
    return BackgroundMigrationWorker.perform_in(delay_seconds, class_name, list(arguments))


def queue_background_migration_jobs_by_range_at_intervals(
    source: Union[type, models.QuerySet, Iterable[tuple[int, int]]],
    job_class_name: str,
    delay_interval: Union[int, float, timedelta],
    batch_size: Optional[int] = None,
    other_job_arguments: Iterable[Any] = (),
    initial_delay: Union[int, float, timedelta] = 0,
    track_jobs: bool = False,
    primary_column_name: str = "id",
) -> float:
    """
    Schedule one background job per batch of ids, spaced ``delay_interval`` apart.

    ``source`` is a model, a queryset or an iterable of precomputed
    ``(start_id, end_id)`` ranges. Each job receives
    ``[start_id, end_id, *other_job_arguments]``; with ``track_jobs`` a
    :class:`BackgroundMigrationJob` row is created for it.

    Returns the delay (in seconds) of the last scheduled job.
    """
    if isinstance(delay_interval, timedelta):
        delay_interval = delay_interval.total_seconds()
    if isinstance(initial_delay, timedelta):
        initial_delay = initial_delay.total_seconds()

    delay_interval = max(delay_interval, minimum_interval())
    batch_size = batch_size or default_batch_size()
    other_job_arguments = list(other_job_arguments)

    final_delay = 0
    batch_counter = 0
    for index, (start_id, end_id) in enumerate(
        _id_ranges(source, batch_size, primary_column_name), start=1
    ):
        final_delay = initial_delay + delay_interval * index
        arguments = [start_id, end_id] + other_job_arguments
        if track_jobs:
            track_in_database(job_class_name, arguments)
        migrate_in(final_delay, job_class_name, arguments)
        batch_counter += 1

    duration = initial_delay + delay_interval * batch_counter
    logger.info(
        "Scheduled %s %s jobs with a maximum of %s records per batch and an interval of %s seconds. "
        "The migration is expected to take at least %s seconds. "
        "Expect all jobs to have completed after %s.",
        batch_counter,
        job_class_name,
        batch_size,
        delay_interval,
        duration,
        timezone.now() + timedelta(seconds=duration),
    )
    return final_delay


class BackgroundMigrationWorker(Worker):
    """Run one batch of a background migration and mark its tracking rows as succeeded."""

    queue = "background_migration"
    feature_category = "database"
    data_consistency = "always"
    idempotent = True

    def perform(self, class_name: str, arguments: Optional[list[Any]] = None) -> Any:
        arguments = list(arguments or [])
        migration_class = resolve_migration_class(class_name)

        logger.info("Performing background migration %s %s", class_name, arguments)
        result = migration_class().perform(*arguments)

        updated = BackgroundMigrationJob.objects.mark_all_as_succeeded(class_name, arguments)
        if updated:
            logger.debug("Marked %s %s job(s) as succeeded", updated, class_name)
        return result


__all__ = [
    "BackgroundMigrationError",
    "BackgroundMigrationWorker",
    "each_id_range",
    "migrate_in",
    "queue_background_migration_jobs_by_range_at_intervals",
    "register_background_migration",
    "resolve_migration_class",
    "track_in_database",
]
