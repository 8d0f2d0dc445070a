"""
Background workers.
"""

from .base import Job, Worker, enqueue, run_job, run_job_payload

__all__ = ["Job", "Worker", "enqueue", "run_job", "run_job_payload"]
