"""
Cron expression parsing for pipeline schedules.
"""

import logging
from datetime import datetime, timezone as dt_timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from croniter import CroniterBadCronError, CroniterBadDateError, croniter
from django.utils import timezone

logger = logging.getLogger(__name__)

VALID_SYNTAX_SAMPLE_TIME_ZONE = "UTC"


class CronParser:
    """
    Evaluate a five-field cron expression in a given time zone.

    Results are returned as aware datetimes in UTC.
    """

    def __init__(self, cron: Optional[str], cron_timezone: Optional[str] = "UTC"):
        self.cron = (cron or "").strip()
        self.cron_timezone = (cron_timezone or VALID_SYNTAX_SAMPLE_TIME_ZONE).strip()

    def _zone(self) -> Optional[ZoneInfo]:
        try:
            return ZoneInfo(self.cron_timezone)
        except (ZoneInfoNotFoundError, ValueError):
            return None

    def cron_valid(self) -> bool:
        if not self.cron or len(self.cron.split()) != 5:
            return False
        return croniter.is_valid(self.cron)

    def cron_timezone_valid(self) -> bool:
        return self._zone() is not None

    def next_time_from(self, time: datetime) -> Optional[datetime]:
        """First tick strictly after ``time``, or ``None`` for invalid input."""
        zone = self._zone()
        if zone is None or not self.cron_valid():
            return None

        if timezone.is_naive(time):
            time = timezone.make_aware(time, dt_timezone.utc)
        base = time.astimezone(zone)
        try:
            next_local = croniter(self.cron, base).get_next(datetime)
        except (CroniterBadCronError, CroniterBadDateError) as exc:
            logger.warning("Unable to evaluate cron %r: %s", self.cron, exc)
            return None
        return next_local.astimezone(dt_timezone.utc)
