"""
Configuration for background workers.
"""

from dataclasses import dataclass
from typing import Optional

from ..config_proxy import get_setting
from ..utils import coerce_int, coerce_str

BACKENDS = ("sync", "thread", "handler")


@dataclass(frozen=True)
class WorkerSettings:
    backend: str
    max_workers: int
    async_task_path: Optional[str]


def get_worker_settings() -> WorkerSettings:
    backend = coerce_str(get_setting("worker_settings.backend", "thread"), "thread").lower()
    if backend not in BACKENDS:
        backend = "thread"
    max_workers = max(coerce_int(get_setting("worker_settings.max_workers", 4), 4), 1)
    task_path = coerce_str(get_setting("worker_settings.async_task_path", None), "") or None

    return WorkerSettings(
        backend=backend,
        max_workers=max_workers,
        async_task_path=task_path,
    )
