"""
Project, membership and repository models.

Repository content is stored relationally (commits, refs and blobs) so
pipelines can be created and configuration resolved without a git backend.
"""

from django.conf import settings
from django.db import models
from django.utils import timezone


class Visibility(models.TextChoices):
    PRIVATE = "private", "Private"
    INTERNAL = "internal", "Internal"
    PUBLIC = "public", "Public"


class AccessLevel(models.IntegerChoices):
    GUEST = 10, "Guest"
    REPORTER = 20, "Reporter"
    DEVELOPER = 30, "Developer"
    MAINTAINER = 40, "Maintainer"
    OWNER = 50, "Owner"


class Project(models.Model):
    name = models.CharField(max_length=255)
    full_path = models.CharField(max_length=255, unique=True)
    visibility = models.CharField(
        max_length=16, choices=Visibility.choices, default=Visibility.PRIVATE
    )
    builds_enabled = models.BooleanField(default=True)
    default_branch = models.CharField(max_length=255, default="main")
    ci_config_path = models.CharField(max_length=255, blank=True, default="")
    creator = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="created_projects",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        app_label = "rail_ci"
        ordering = ["full_path"]

    def __str__(self) -> str:
        return self.full_path

    @classmethod
    def find_by_full_path(cls, full_path):
        if not full_path:
            return None
        return cls.objects.filter(full_path__iexact=str(full_path).strip("/")).first()

    @property
    def repository(self):
        from .repository import Repository

        cached = getattr(self, "_repository", None)
        if cached is None:
            cached = Repository(self)
            self._repository = cached
        return cached

    def commit(self, ref=None):
        return self.repository.commit(ref)

    def max_member_access_for_user(self, user) -> int:
        if user is None or not getattr(user, "is_authenticated", False):
            return 0
        member = self.members.filter(user=user).first()
        return member.access_level if member else 0


class ProjectMember(models.Model):
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="members")
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, related_name="project_memberships"
    )
    access_level = models.PositiveSmallIntegerField(
        choices=AccessLevel.choices, default=AccessLevel.GUEST
    )

    class Meta:
        app_label = "rail_ci"
        unique_together = ("project", "user")

    def __str__(self) -> str:
        return f"{self.user} @ {self.project} ({self.get_access_level_display()})"


class RepositoryCommit(models.Model):
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="commits")
    sha = models.CharField(max_length=64)
    message = models.TextField(blank=True, default="")
    author_name = models.CharField(max_length=255, blank=True, default="")
    authored_at = models.DateTimeField(default=timezone.now)

    class Meta:
        app_label = "rail_ci"
        unique_together = ("project", "sha")
        ordering = ["-authored_at", "-id"]

    def __str__(self) -> str:
        return self.sha[:8]

    @property
    def short_id(self) -> str:
        return self.sha[:8]

    @property
    def title(self) -> str:
        return (self.message or "").splitlines()[0] if self.message else ""


class RefType(models.TextChoices):
    BRANCH = "branch", "Branch"
    TAG = "tag", "Tag"


class RepositoryRef(models.Model):
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="refs")
    name = models.CharField(max_length=255)
    ref_type = models.CharField(max_length=8, choices=RefType.choices, default=RefType.BRANCH)
    sha = models.CharField(max_length=64)
    protected = models.BooleanField(default=False)

    class Meta:
        app_label = "rail_ci"
        unique_together = ("project", "name", "ref_type")

    def __str__(self) -> str:
        return f"{self.ref_type}:{self.name}"


class RepositoryBlob(models.Model):
    project = models.ForeignKey(Project, on_delete=models.CASCADE, related_name="blobs")
    sha = models.CharField(max_length=64)
    path = models.CharField(max_length=1024)
    data = models.TextField(blank=True, default="")

    class Meta:
        app_label = "rail_ci"
        unique_together = ("project", "sha", "path")

    def __str__(self) -> str:
        return f"{self.sha[:8]}:{self.path}"
