"""
JSON representations of pipelines for the web frontend.

``PipelineEntity.represent(pipeline, request=request)`` returns plain dicts;
``request`` only needs a ``user`` attribute and decides which action paths
are exposed.
"""

from typing import Any, Iterable, Optional

from ..projects.abilities import Ability
from .models import Build, Pipeline


def _user(request: Any):
    return getattr(request, "user", None)


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


class Entity:
    def __init__(self, obj: Any, request: Any = None):
        self.obj = obj
        self.request = request

    def as_json(self) -> dict[str, Any]:
        raise NotImplementedError

    @classmethod
    def represent(cls, obj: Any, request: Any = None):
        if obj is None:
            return None
        if isinstance(obj, (list, tuple)) or hasattr(obj, "model"):
            return [cls(item, request).as_json() for item in obj]
        return cls(obj, request).as_json()


class UserEntity(Entity):
    def as_json(self) -> dict[str, Any]:
        user = self.obj
        return {
            "id": user.pk,
            "username": user.get_username(),
            "name": user.get_full_name() or user.get_username(),
        }


class ProjectEntity(Entity):
    def as_json(self) -> dict[str, Any]:
        project = self.obj
        return {
            "id": project.pk,
            "name": project.name,
            "full_path": f"/{project.full_path}",
            "full_name": project.full_path.replace("/", " / "),
        }


class StageEntity(Entity):
    def as_json(self) -> dict[str, Any]:
        stage = self.obj
        pipeline = stage.pipeline
        return {
            "name": stage.name,
            "title": f"{stage.name}: {stage.status}",
            "status": stage.status,
            "path": f"/{pipeline.project.full_path}/-/pipelines/{pipeline.pk}#{stage.name}",
        }


class CommitEntity(Entity):
    def __init__(self, obj: Any, request: Any = None, project=None):
        super().__init__(obj, request)
        self.project = project

    def as_json(self) -> dict[str, Any]:
        commit = self.obj
        return {
            "id": commit.sha,
            "short_id": commit.short_id,
            "title": commit.title,
            "message": commit.message,
            "author_name": commit.author_name,
            "authored_date": _iso(commit.authored_at),
            "commit_path": f"/{self.project.full_path}/-/commit/{commit.sha}",
        }


class BuildActionEntity(Entity):
    def as_json(self) -> dict[str, Any]:
        build: Build = self.obj
        project = build.pipeline.project
        data = {
            "id": build.pk,
            "name": build.name,
            "playable": build.playable,
            "scheduled": build.scheduled,
        }
        if Ability.allowed(_user(self.request), "play_job", project):
            data["path"] = f"/{project.full_path}/-/jobs/{build.pk}/play"
        if build.scheduled:
            data["scheduled_at"] = _iso(build.scheduled_at)
            data["unschedule_path"] = f"/{project.full_path}/-/jobs/{build.pk}/unschedule"
        return data


class PipelineEntity(Entity):
    def path(self) -> str:
        pipeline = self.obj
        return f"/{pipeline.project.full_path}/-/pipelines/{pipeline.pk}"

    def ref_json(self) -> dict[str, Any]:
        pipeline: Pipeline = self.obj
        kind = "tags" if pipeline.tag else "commits"
        return {
            "name": pipeline.ref,
            "path": f"/{pipeline.project.full_path}/-/{kind}/{pipeline.ref}" if pipeline.ref else None,
            "tag": pipeline.tag,
            "branch": pipeline.branch,
        }

    def flags_json(self) -> dict[str, Any]:
        pipeline: Pipeline = self.obj
        return {
            "stuck": False,
            "yaml_errors": pipeline.has_yaml_errors,
            "retryable": pipeline.retryable,
            "cancelable": pipeline.cancelable,
            "failure_reason": bool(pipeline.failure_reason),
        }

    def details_json(self) -> dict[str, Any]:
        pipeline: Pipeline = self.obj
        return {
            "status": pipeline.status,
            "stages": StageEntity.represent(list(pipeline.ordered_stages()), self.request),
            "duration": pipeline.duration,
            "finished_at": _iso(pipeline.finished_at),
        }

    def as_json(self) -> dict[str, Any]:
        pipeline: Pipeline = self.obj
        user = _user(self.request)
        project = pipeline.project

        data = {
            "id": pipeline.pk,
            "iid": pipeline.iid,
            "user": UserEntity.represent(pipeline.user, self.request),
            "active": pipeline.active,
            "source": pipeline.source,
            "created_at": _iso(pipeline.created_at),
            "updated_at": _iso(pipeline.updated_at),
            "path": self.path(),
            "flags": self.flags_json(),
            "details": self.details_json(),
            "ref": self.ref_json(),
            "commit": None,
        }

        commit = project.repository.commit(pipeline.sha) if pipeline.sha else None
        if commit is not None:
            data["commit"] = CommitEntity(commit, self.request, project=project).as_json()

        if pipeline.retryable and Ability.allowed(user, "update_pipeline", project):
            data["retry_path"] = f"{self.path()}/retry"
        if pipeline.cancelable and Ability.allowed(user, "update_pipeline", project):
            data["cancel_path"] = f"{self.path()}/cancel"
        if Ability.allowed(user, "admin_pipeline", project):
            data["delete_path"] = self.path()

        if pipeline.failure_reason:
            data["failure_reason"] = pipeline.get_failure_reason_display()
        if pipeline.has_yaml_errors:
            data["yaml_errors"] = pipeline.yaml_errors
        return data


class TriggeredPipelineEntity(Entity):
    """Compact pipeline for upstream/downstream links; only readable pipelines are detailed."""

    def as_json(self) -> dict[str, Any]:
        pipeline: Pipeline = self.obj
        project = pipeline.project
        data = {
            "id": pipeline.pk,
            "iid": pipeline.iid,
            "active": pipeline.active,
            "path": f"/{project.full_path}/-/pipelines/{pipeline.pk}",
            "project": ProjectEntity.represent(project, self.request),
        }
        if Ability.allowed(_user(self.request), "read_pipeline", project):
            data["user"] = UserEntity.represent(pipeline.user, self.request)
            data["source"] = pipeline.source
            data["details"] = {"status": pipeline.status}
            link = getattr(pipeline, "source_pipeline", None)
            if link is not None and link.source_job_id:
                data["source_job"] = {"name": link.source_job.name}
        return data


class PipelineDetailsEntity(PipelineEntity):
    def flags_json(self) -> dict[str, Any]:
        flags = super().flags_json()
        flags["latest"] = self.obj.is_latest()
        return flags

    def details_json(self) -> dict[str, Any]:
        details = super().details_json()
        details["manual_actions"] = BuildActionEntity.represent(
            list(self.obj.manual_actions()), self.request
        )
        details["scheduled_actions"] = BuildActionEntity.represent(
            list(self.obj.scheduled_actions()), self.request
        )
        return details

    def as_json(self) -> dict[str, Any]:
        data = super().as_json()
        pipeline: Pipeline = self.obj
        data["project"] = ProjectEntity.represent(pipeline.project, self.request)
        data["triggered_by"] = TriggeredPipelineEntity.represent(
            pipeline.triggered_by_pipeline, self.request
        )
        data["triggered"] = TriggeredPipelineEntity.represent(
            list(pipeline.triggered_pipelines()), self.request
        )
        return data


def represent_pipelines(pipelines: Iterable[Pipeline], request: Any = None) -> list[dict[str, Any]]:
    return PipelineEntity.represent(list(pipelines), request)


__all__ = [
    "PipelineEntity",
    "PipelineDetailsEntity",
    "BuildActionEntity",
    "TriggeredPipelineEntity",
    "ProjectEntity",
    "represent_pipelines",
]
