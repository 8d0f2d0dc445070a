"""
Workers running pipeline schedules.
"""

import logging

from django.contrib.auth import get_user_model

from ..config_proxy import get_setting
from ..error_tracking import track_and_raise_for_dev_exception
from ..logging_context import with_context
from ..utils import coerce_int
from ..workers import Worker
from .models import PipelineSchedule, PipelineSource
from .services import CreatePipelineService, PipelineScheduleService

logger = logging.getLogger(__name__)


class PipelineScheduleWorker(Worker):
    """Periodic sweep enqueueing every due schedule; run it on ``schedule_settings.worker_cron``."""

    queue = "cronjob"
    feature_category = "continuous_integration"
    data_consistency = "always"
    worker_resource_boundary = "cpu"
    idempotent = False

    def perform(self) -> int:
        batch_size = coerce_int(get_setting("schedule_settings.batch_size", 1000), 1000)
        schedules = PipelineSchedule.objects.runnable_schedules().preloaded().order_by("id")
        processed = 0

        last_id = 0
        while True:
            batch = list(schedules.filter(id__gt=last_id)[:batch_size])
            if not batch:
                break
            last_id = batch[-1].id

            for schedule in batch:
                if schedule.project is None:
                    continue
                with with_context(project=schedule.project, user=schedule.owner):
                    PipelineScheduleService(schedule.project, schedule.owner).execute(schedule)
                processed += 1

        logger.info("Enqueued %s pipeline schedules", processed)
        return processed


class RunPipelineScheduleWorker(Worker):
    queue = "pipeline_creation"
    feature_category = "continuous_integration"
    worker_resource_boundary = "cpu"

    def perform(self, schedule_id: int, user_id: int):
        schedule = PipelineSchedule.objects.select_related("project").filter(pk=schedule_id).first()
        user = get_user_model().objects.filter(pk=user_id).first() if user_id else None
        if schedule is None or user is None:
            return None

        with with_context(project=schedule.project, user=user):
            return self.run_pipeline_schedule(schedule, user)

    def run_pipeline_schedule(self, schedule: PipelineSchedule, user):
        try:
            response = CreatePipelineService(
                schedule.project, user, {"ref": schedule.ref}
            ).execute(
                PipelineSource.SCHEDULE,
                ignore_skip_ci=True,
                save_on_errors=False,
                schedule=schedule,
            )
        except Exception as exc:
            logger.error(
                "Failed to create a scheduled pipeline. schedule_id: %s message: %s",
                schedule.id,
                exc,
            )
            track_and_raise_for_dev_exception(
                exc, schedule_id=schedule.id, project_id=schedule.project_id
            )
            return None

        if response.is_error:
            logger.info(
                "Scheduled pipeline was not created. schedule_id: %s message: %s",
                schedule.id,
                response.message,
            )
        return response
