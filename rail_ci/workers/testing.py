"""
Test helpers for workers.

    with fake() as queue:
        PipelineScheduleWorker.perform_async()
    assert queue.jobs_for(PipelineScheduleWorker) == [[]]
    queue.drain()
"""

from contextlib import contextmanager
from typing import Any, Iterator

from . import base


class FakeQueue:
    def __init__(self):
        self.jobs: list[base.Job] = []

    def push(self, job: base.Job) -> None:
        self.jobs.append(job)

    def jobs_for(self, worker_class) -> list[list[Any]]:
        path = worker_class.class_path()
        return [job.args for job in self.jobs if job.worker_class == path]

    def clear(self) -> None:
        self.jobs.clear()

    def drain(self) -> None:
        """Run queued jobs (and the jobs they enqueue) until the queue is empty."""
        while self.jobs:
            base.run_job(self.jobs.pop(0))


@contextmanager
def fake() -> Iterator[FakeQueue]:
    queue = FakeQueue()
    base._interceptors.append(queue.push)
    try:
        yield queue
    finally:
        base._interceptors.remove(queue.push)
