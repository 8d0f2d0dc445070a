"""
Project abilities.

``Ability.allowed(user, "download_code", project)`` is the single entry point
used by services, finders and resolvers. Each ability maps to the minimum
project access level it needs plus the visibility levels that grant it
without membership.
"""

import logging
from typing import Any, Optional

from .models import AccessLevel, Project, Visibility

logger = logging.getLogger(__name__)


class PermissionResult:
    """Outcome of a permission check."""

    def __init__(self, allowed: bool, reason: str = ""):
        self.allowed = allowed
        self.reason = reason

    def __bool__(self):
        return self.allowed

    def __repr__(self) -> str:
        return f"<PermissionResult allowed={self.allowed} reason={self.reason!r}>"


# ability -> (minimum member access level, visibilities readable without membership)
PROJECT_ABILITIES: dict[str, tuple[int, tuple[str, ...]]] = {
    "read_project": (AccessLevel.GUEST, (Visibility.PUBLIC, Visibility.INTERNAL)),
    "read_release": (AccessLevel.GUEST, (Visibility.PUBLIC, Visibility.INTERNAL)),
    "read_pipeline": (AccessLevel.REPORTER, (Visibility.PUBLIC, Visibility.INTERNAL)),
    "download_code": (AccessLevel.REPORTER, (Visibility.PUBLIC, Visibility.INTERNAL)),
    "create_pipeline": (AccessLevel.DEVELOPER, ()),
    "update_pipeline": (AccessLevel.DEVELOPER, ()),
    "play_job": (AccessLevel.DEVELOPER, ()),
    "push_code": (AccessLevel.DEVELOPER, ()),
    "admin_pipeline": (AccessLevel.MAINTAINER, ()),
}


def _is_authenticated(user: Any) -> bool:
    return bool(user is not None and getattr(user, "is_authenticated", False))


class ProjectPolicy:
    """Evaluate project abilities for a user."""

    def __init__(self, user: Any, project: Project):
        self.user = user
        self.project = project

    def check_permission(self, ability: str) -> PermissionResult:
        if ability not in PROJECT_ABILITIES:
            return PermissionResult(False, f"unknown ability {ability}")

        if not self.project.builds_enabled and ability in (
            "create_pipeline",
            "update_pipeline",
            "read_pipeline",
        ):
            return PermissionResult(False, "builds disabled")

        if _is_authenticated(self.user) and getattr(self.user, "is_superuser", False):
            return PermissionResult(True, "admin")

        min_access, open_visibilities = PROJECT_ABILITIES[ability]
        visibility = self.project.visibility

        if visibility == Visibility.PUBLIC and Visibility.PUBLIC in open_visibilities:
            return PermissionResult(True, "public project")
        if (
            visibility == Visibility.INTERNAL
            and Visibility.INTERNAL in open_visibilities
            and _is_authenticated(self.user)
        ):
            return PermissionResult(True, "internal project")

        access = self.project.max_member_access_for_user(self.user)
        if access >= min_access:
            return PermissionResult(True, "member")
        return PermissionResult(False, "insufficient access level")


class Ability:
    @staticmethod
    def allowed(user: Any, ability: str, subject: Optional[Any] = None) -> bool:
        if subject is None:
            return False
        if isinstance(subject, Project):
            return bool(ProjectPolicy(user, subject).check_permission(ability))
        project = getattr(subject, "project", None)
        if isinstance(project, Project):
            return bool(ProjectPolicy(user, project).check_permission(ability))
        logger.debug("No policy for %s", type(subject).__name__)
        return False


def can_update_branch(user: Any, project: Project, ref: Optional[str]) -> bool:
    """
    Whether ``user`` may run pipelines on ``ref``.

    Protected refs require maintainer access; other refs need ``push_code``.
    """
    if not Ability.allowed(user, "push_code", project):
        return False
    if _is_authenticated(user) and getattr(user, "is_superuser", False):
        return True
    from .repository import strip_ref_prefix

    name = strip_ref_prefix(ref)
    protected = project.refs.filter(name=name, protected=True).exists()
    if not protected:
        return True
    return project.max_member_access_for_user(user) >= AccessLevel.MAINTAINER
