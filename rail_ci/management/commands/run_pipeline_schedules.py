"""
Management command running due pipeline schedules.

Hook it to the system scheduler on ``schedule_settings.worker_cron``.
"""

import logging

from django.core.management.base import BaseCommand

from rail_ci.ci.models import PipelineSchedule
from rail_ci.ci.workers import PipelineScheduleWorker

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Create pipelines for every active schedule whose next run is due."

    def add_arguments(self, parser):
        parser.add_argument(
            "--async",
            action="store_true",
            dest="run_async",
            help="Enqueue the sweep on the worker backend instead of running it inline",
        )
        parser.add_argument(
            "--list",
            action="store_true",
            dest="list_only",
            help="Only list the schedules that are due",
        )

    def handle(self, *args, **options):
        if options["list_only"]:
            due = PipelineSchedule.objects.runnable_schedules().preloaded().order_by("id")
            for schedule in due:
                self.stdout.write(
                    f"{schedule.id}\t{schedule.project.full_path}\t{schedule.ref}\t"
                    f"{schedule.next_run_at.isoformat()}"
                )
            self.stdout.write(self.style.SUCCESS(f"{due.count()} schedule(s) due"))
            return

        if options["run_async"]:
            jid = PipelineScheduleWorker.perform_async()
            self.stdout.write(self.style.SUCCESS(f"Enqueued schedule sweep {jid}"))
            return

        processed = PipelineScheduleWorker().perform()
        self.stdout.write(self.style.SUCCESS(f"Processed {processed} schedule(s)"))
