from django.conf import settings
from django.db import models
from django.utils import timezone

from ..projects.models import Project

SORTABLE_ATTRIBUTES = ("released_at", "created_at")


class ReleaseQuerySet(models.QuerySet):
    def preloaded(self):
        return self.select_related("project", "author")

    def sort_by_attribute(self, order_by: str = "released_at", sort: str = "desc"):
        attribute = order_by if order_by in SORTABLE_ATTRIBUTES else "released_at"
        prefix = "" if str(sort).lower() == "asc" else "-"
        return self.order_by(f"{prefix}{attribute}", f"{prefix}id")


class Release(models.Model):
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="releases")
    tag = models.CharField(max_length=255, null=True, blank=True)
    name = models.CharField(max_length=255, blank=True, default="")
    description = models.TextField(blank=True, default="")
    sha = models.CharField(max_length=64, null=True, blank=True)
    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="releases",
    )
    released_at = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(default=timezone.now)

    objects = ReleaseQuerySet.as_manager()

    class Meta:
        app_label = "rail_ci"
        unique_together = ("project", "tag")

    def __str__(self) -> str:
        return self.name or self.tag or f"Release {self.pk}"

    @property
    def upcoming_release(self) -> bool:
        return self.released_at is not None and self.released_at > timezone.now()
