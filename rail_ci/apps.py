"""
Django app configuration for rail-ci.
"""

import logging

from django.apps import AppConfig as BaseAppConfig

logger = logging.getLogger(__name__)


class AppConfig(BaseAppConfig):
    """Django app configuration for rail-ci."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "rail_ci"
    verbose_name = "Rail CI"
    label = "rail_ci"

    def ready(self):
        from .workers.config import get_worker_settings

        worker_settings = get_worker_settings()
        logger.info(
            "rail-ci ready (worker backend: %s, max workers: %s)",
            worker_settings.backend,
            worker_settings.max_workers,
        )
