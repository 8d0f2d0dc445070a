"""
GraphQL queries for CI configuration.
"""

import logging
from typing import Any, Optional

import graphene
from graphql import GraphQLError

from ...error_tracking import track_and_raise_exception
from ...projects.abilities import Ability
from ...projects.models import Project
from ...projects.repository import InvalidRefError
from ..lint import Lint
from ..models import job_group_name
from .types import CiConfigType

logger = logging.getLogger(__name__)

RESOURCE_NOT_AVAILABLE = (
    "The resource that you are attempting to access does not exist or you don't "
    "have permission to perform this action"
)


def current_user(info):
    return getattr(info.context, "user", None)


def authorized_find_project(info, project_path: str, ability: str) -> Project:
    project = Project.find_by_full_path(project_path)
    if project is None or not Ability.allowed(current_user(info), ability, project):
        raise GraphQLError(RESOURCE_NOT_AVAILABLE)
    return project


def _job_payload(job: dict[str, Any]) -> dict[str, Any]:
    return {
        "name": job["name"],
        "group_name": job_group_name(job["name"]),
        "stage": job["stage"],
        "script": job.get("script"),
        "before_script": job.get("before_script"),
        "after_script": job.get("after_script"),
        "when": job.get("when"),
        "allow_failure": job.get("allow_failure"),
        "tags": job.get("tag_list"),
        "environment": job.get("environment"),
        "needs": [{"name": name} for name in job.get("needs", [])],
        "only": job.get("only"),
        "except": job.get("except"),
    }


def make_stages(jobs: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Group lint jobs by stage, then by group name, keeping first-seen order."""
    stages: dict[str, list[dict[str, Any]]] = {}
    for job in jobs:
        stages.setdefault(job["stage"], []).append(_job_payload(job))

    result = []
    for stage_name, stage_jobs in stages.items():
        groups: dict[str, list[dict[str, Any]]] = {}
        for job in stage_jobs:
            groups.setdefault(job["group_name"], []).append(job)
        result.append(
            {
                "name": stage_name,
                "groups": [
                    {"name": group_name, "size": len(group_jobs), "jobs": group_jobs}
                    for group_name, group_jobs in groups.items()
                ],
            }
        )
    return result


class CiQuery(graphene.ObjectType):
    ci_config = graphene.Field(
        CiConfigType,
        project_path=graphene.ID(required=True),
        content=graphene.String(required=True),
        sha=graphene.String(required=False),
        dry_run=graphene.Boolean(required=False),
        description="Linted and processed contents of a CI config.",
    )

    @staticmethod
    def resolve_ci_config(
        root,
        info,
        project_path: str,
        content: str,
        sha: Optional[str] = None,
        dry_run: Optional[bool] = False,
    ):
        project = authorized_find_project(info, project_path, "create_pipeline")

        try:
            result = Lint(project=project, current_user=current_user(info), sha=sha).validate(
                content, dry_run=bool(dry_run)
            )
        except InvalidRefError as exc:
            track_and_raise_exception(exc, sha=sha)

        return {
            "status": result.status,
            "errors": result.errors,
            "warnings": result.warnings,
            "stages": make_stages(result.jobs),
            "includes": result.includes,
            "merged_yaml": result.merged_yaml,
        }
