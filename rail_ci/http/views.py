"""
JSON endpoints for pipelines.
"""

import logging

from django.http import HttpRequest, JsonResponse
from django.views import View

from ..ci.models import Pipeline
from ..ci.serializers import PipelineDetailsEntity, represent_pipelines
from ..projects.abilities import Ability
from ..projects.models import Project

logger = logging.getLogger(__name__)

NOT_FOUND = {"error": "Not found", "code": "NOT_FOUND"}


def _readable_project(request: HttpRequest, project_path: str):
    project = Project.find_by_full_path(project_path)
    if project is None or not Ability.allowed(request.user, "read_pipeline", project):
        return None
    return project


class PipelineListView(View):
    """Latest pipelines of a project, optionally filtered by ``?ref=`` and ``?status=``."""

    page_size = 20

    def get(self, request: HttpRequest, project_path: str):
        project = _readable_project(request, project_path)
        if project is None:
            return JsonResponse(NOT_FOUND, status=404)

        pipelines = Pipeline.objects.filter(project=project).select_related("project", "user")
        if request.GET.get("ref"):
            pipelines = pipelines.filter(ref=request.GET["ref"])
        if request.GET.get("status"):
            pipelines = pipelines.filter(status=request.GET["status"])

        return JsonResponse(
            {"pipelines": represent_pipelines(pipelines.order_by("-id")[: self.page_size], request)}
        )


class PipelineDetailsView(View):
    def get(self, request: HttpRequest, project_path: str, pipeline_id: int):
        project = _readable_project(request, project_path)
        if project is None:
            return JsonResponse(NOT_FOUND, status=404)

        pipeline = (
            Pipeline.objects.select_related("project", "user")
            .filter(project=project, pk=pipeline_id)
            .first()
        )
        if pipeline is None:
            return JsonResponse(NOT_FOUND, status=404)
        return JsonResponse(PipelineDetailsEntity.represent(pipeline, request))
