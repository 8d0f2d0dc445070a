"""
Default configuration for the rail-ci library.

Every setting the library consumes is declared here, grouped by feature
area. Hosts override any subset through the ``RAIL_CI`` Django setting; the
two are deep-merged with :func:`merge_settings`.
"""

from __future__ import annotations

from typing import Any

LIBRARY_VERSION = "0.1.0"
LIBRARY_NAME = "rail-ci"


# --------------------------------------------------------------------------- #
# Library-wide defaults (grouped by feature area)
# --------------------------------------------------------------------------- #
LIBRARY_DEFAULTS: dict[str, Any] = {
    "pipeline_settings": {
        "default_stages": ["build", "test", "deploy"],
        "ci_config_path": ".gitlab-ci.yml",
        "max_warnings": 25,
        "max_extends_depth": 10,
        "max_start_in_seconds": 7 * 24 * 3600,
        "step_overrides": {},
        "skipped_steps": [],
    },
    "include_settings": {
        "max_includes": 100,
        "allowed_extensions": [".yml", ".yaml"],
        "remote_timeout_seconds": 30,
    },
    "schedule_settings": {
        "worker_cron": "3-59/10 * * * *",
        "batch_size": 1000,
    },
    "worker_settings": {
        "backend": "thread",
        "max_workers": 4,
        "async_task_path": None,
    },
    "partitioning_settings": {
        "allowed_tables": ["audit_events", "web_hook_logs"],
        "dynamic_schema": "partitions_dynamic",
        "static_schema": "partitions_static",
        "batch_size": 50_000,
        "sub_batch_size": 2_500,
        "batch_interval_seconds": 120,
        "pause_seconds": 0.25,
        "lock_retries": 5,
        "lock_timeout_ms": 100,
    },
    "background_migration_settings": {
        "minimum_interval_seconds": 120,
        "batch_size": 1000,
        "migrations": {
            "BackfillPartitionedTable": "rail_ci.database.partitioning.backfill.BackfillPartitionedTable",
        },
    },
    "error_tracking_settings": {
        "enabled": True,
        "raise_for_dev": False,
    },
    "routing": {
        "external_url": "http://localhost",
    },
}


def get_default_settings() -> dict[str, Any]:
    """Return a shallow copy of the library defaults."""
    return LIBRARY_DEFAULTS.copy()


def merge_settings(*settings_dicts: dict[str, Any]) -> dict[str, Any]:
    """
    Merge multiple settings dictionaries with deep merging for nested dicts.
    Later dictionaries override earlier ones.
    """
    result: dict[str, Any] = {}
    for settings_dict in settings_dicts:
        for key, value in settings_dict.items():
            if (
                key in result
                and isinstance(result[key], dict)
                and isinstance(value, dict)
            ):
                result[key] = merge_settings(result[key], value)
            else:
                result[key] = value
    return result
