"""
URL configuration for rail-ci.

- ``graphql/``: GraphQL endpoint (GraphiQL in DEBUG)
- ``<project path>/-/pipelines.json``: latest pipelines
- ``<project path>/-/pipelines/<id>.json``: pipeline details
"""

from django.conf import settings
from django.urls import path
from django.views.decorators.csrf import csrf_exempt
from graphene_django.views import GraphQLView

from .http.views import PipelineDetailsView, PipelineListView
from .schema import schema

urlpatterns = [
    path(
        "graphql/",
        csrf_exempt(GraphQLView.as_view(schema=schema, graphiql=settings.DEBUG)),
        name="graphql",
    ),
    path(
        "<path:project_path>/-/pipelines.json",
        PipelineListView.as_view(),
        name="pipelines",
    ),
    path(
        "<path:project_path>/-/pipelines/<int:pipeline_id>.json",
        PipelineDetailsView.as_view(),
        name="pipeline-details",
    ),
]
