"""
Release lookups scoped to what a user may read.
"""

import logging
from typing import Any, Optional

from django.utils.functional import cached_property

from ..projects.abilities import Ability
from ..projects.models import Project
from .models import Release

logger = logging.getLogger(__name__)


class ReleasesFinder:
    """
    Find the releases of a project.

    Params:
        tag: only the release for this tag
        order_by: ``released_at`` (default) or ``created_at``
        sort: ``desc`` (default) or ``asc``

    Releases without a tag are never returned. Users without
    ``read_release`` on the project get an empty queryset.
    """

    def __init__(self, parent: Any, current_user=None, params: Optional[dict[str, Any]] = None):
        self.parent = parent
        self.current_user = current_user
        self.params = dict(params or {})
        self.params["order_by"] = self.params.get("order_by") or "released_at"
        self.params["sort"] = self.params.get("sort") or "desc"

    def execute(self, preload: bool = True):
        if not self.projects:
            return Release.objects.none()

        releases = self._get_releases()
        releases = self._by_tag(releases)
        if preload:
            releases = releases.preloaded()
        return releases.sort_by_attribute(self.params["order_by"], self.params["sort"])

    @cached_property
    def projects(self) -> list[Project]:
        if isinstance(self.parent, Project) and self._authorized():
            return [self.parent]
        return []

    def _authorized(self) -> bool:
        return Ability.allowed(self.current_user, "read_release", self.parent)

    def _get_releases(self):
        return Release.objects.filter(project__in=self.projects).exclude(tag__isnull=True)

    def _by_tag(self, releases):
        tag = self.params.get("tag")
        if not tag:
            return releases
        return releases.filter(tag=tag)
