"""
Configuration for partitioning migrations.
"""

from dataclasses import dataclass

from ...config_proxy import get_setting
from ...utils import coerce_float, coerce_int, coerce_list, coerce_str


@dataclass(frozen=True)
class PartitioningSettings:
    allowed_tables: tuple[str, ...]
    dynamic_schema: str
    static_schema: str
    batch_size: int
    sub_batch_size: int
    batch_interval_seconds: int
    pause_seconds: float
    lock_retries: int
    lock_timeout_ms: int


def get_partitioning_settings() -> PartitioningSettings:
    return PartitioningSettings(
        allowed_tables=tuple(coerce_list(get_setting("partitioning_settings.allowed_tables", []))),
        dynamic_schema=coerce_str(
            get_setting("partitioning_settings.dynamic_schema", None), "partitions_dynamic"
        ),
        static_schema=coerce_str(
            get_setting("partitioning_settings.static_schema", None), "partitions_static"
        ),
        batch_size=max(coerce_int(get_setting("partitioning_settings.batch_size", 50_000), 50_000), 1),
        sub_batch_size=max(
            coerce_int(get_setting("partitioning_settings.sub_batch_size", 2_500), 2_500), 1
        ),
        batch_interval_seconds=max(
            coerce_int(get_setting("partitioning_settings.batch_interval_seconds", 120), 120), 0
        ),
        pause_seconds=max(coerce_float(get_setting("partitioning_settings.pause_seconds", 0.25), 0.25), 0),
        lock_retries=max(coerce_int(get_setting("partitioning_settings.lock_retries", 5), 5), 1),
        lock_timeout_ms=max(coerce_int(get_setting("partitioning_settings.lock_timeout_ms", 100), 100), 1),
    )
