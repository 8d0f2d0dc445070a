"""
Background worker base class and job dispatch.

``SomeWorker.perform_async(*args)`` builds a :class:`Job` and hands it to the
configured backend:

* ``sync`` runs it immediately in the calling thread (delays are ignored);
* ``thread`` runs it on a shared thread pool, delayed jobs via timers;
* ``handler`` passes it to the callable at ``worker_settings.async_task_path``
  (e.g. a Celery task that later calls :func:`run_job`).

Arguments must be JSON serializable so any backend can persist them.
"""

import json
import logging
import threading
import uuid
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from django.utils import timezone
from django.utils.module_loading import import_string

from ..error_tracking import track_exception
from ..logging_context import with_context
from .config import WorkerSettings, get_worker_settings

logger = logging.getLogger(__name__)

_EXECUTOR: Optional[ThreadPoolExecutor] = None
_EXECUTOR_LOCK = threading.Lock()

# set by rail_ci.workers.testing.fake()
_interceptors: list[Callable[["Job"], None]] = []


@dataclass
class Job:
    worker_class: str
    args: list[Any]
    jid: str = field(default_factory=lambda: uuid.uuid4().hex)
    delay_seconds: float = 0
    queue: str = "default"
    enqueued_at: Any = field(default_factory=timezone.now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "class": self.worker_class,
            "args": list(self.args),
            "jid": self.jid,
            "delay_seconds": self.delay_seconds,
            "queue": self.queue,
            "enqueued_at": self.enqueued_at.isoformat(),
        }


class Worker:
    """
    Base class for background workers.

    Subclasses implement ``perform``. The class attributes describe how the
    worker should be scheduled; backends may use them for routing.
    """

    queue: str = "default"
    feature_category: Optional[str] = None
    data_consistency: str = "always"
    worker_resource_boundary: str = "unknown"
    idempotent: bool = False

    def perform(self, *args: Any) -> Any:
        raise NotImplementedError

    @classmethod
    def class_path(cls) -> str:
        return f"{cls.__module__}.{cls.__qualname__}"

    @classmethod
    def perform_async(cls, *args: Any) -> str:
        return cls.perform_in(0, *args)

    @classmethod
    def perform_in(cls, delay_seconds: float, *args: Any) -> str:
        json.dumps(list(args))  # raises TypeError for arguments no backend can store
        job = Job(
            worker_class=cls.class_path(),
            args=list(args),
            delay_seconds=max(float(delay_seconds or 0), 0),
            queue=cls.queue,
        )
        enqueue(job)
        return job.jid


def run_job(job: Job) -> Any:
    """Execute a job in the current thread; exceptions are tracked and re-raised."""
    worker_class = import_string(job.worker_class)
    with with_context(worker=worker_class.__name__, jid=job.jid):
        logger.info("Running %s (%s)", worker_class.__name__, job.jid)
        try:
            return worker_class().perform(*job.args)
        except Exception as exc:
            track_exception(exc, worker=job.worker_class, jid=job.jid)
            raise


def enqueue(job: Job, settings: Optional[WorkerSettings] = None) -> None:
    if _interceptors:
        _interceptors[-1](job)
        return

    settings = settings or get_worker_settings()
    if settings.backend == "sync":
        run_job(job)
        return

    if settings.backend == "handler":
        handler = _resolve_async_handler(settings)
        if handler is not None:
            handler(job.to_dict())
            return
        logger.warning("Worker handler unavailable; falling back to thread backend")

    _submit_to_thread(job, settings)


def run_job_payload(payload: dict[str, Any]) -> Any:
    """Entry point for handler backends receiving :meth:`Job.to_dict` payloads."""
    return run_job(
        Job(
            worker_class=payload["class"],
            args=list(payload.get("args") or []),
            jid=payload.get("jid") or uuid.uuid4().hex,
            queue=payload.get("queue", "default"),
        )
    )


def _resolve_async_handler(settings: WorkerSettings):
    task_path = settings.async_task_path
    if not task_path:
        return None
    try:
        return import_string(task_path)
    except ImportError as exc:
        logger.warning("Failed to import worker handler '%s': %s", task_path, exc)
        return None


def _get_executor(settings: WorkerSettings) -> ThreadPoolExecutor:
    global _EXECUTOR
    if _EXECUTOR is not None:
        return _EXECUTOR
    with _EXECUTOR_LOCK:
        if _EXECUTOR is None:
            _EXECUTOR = ThreadPoolExecutor(
                max_workers=settings.max_workers, thread_name_prefix="rail-ci-worker"
            )
    return _EXECUTOR


def _run_in_thread(job: Job) -> None:
    try:
        run_job(job)
    except Exception:
        logger.exception("Job %s (%s) failed", job.worker_class, job.jid)


def _submit_to_thread(job: Job, settings: WorkerSettings) -> None:
    executor = _get_executor(settings)
    if job.delay_seconds <= 0:
        executor.submit(_run_in_thread, job)
        return

    timer = threading.Timer(job.delay_seconds, executor.submit, args=(_run_in_thread, job))
    timer.daemon = True
    timer.start()
