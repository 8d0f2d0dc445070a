"""
GraphQL mutations for pipelines.
"""

import logging

import graphene

from ..models import PipelineSource
from ..services import CreatePipelineService
from .queries import authorized_find_project, current_user
from .types import PipelineType

logger = logging.getLogger(__name__)


class PipelineVariableInput(graphene.InputObjectType):
    key = graphene.String(required=True)
    value = graphene.String(required=True)
    variable_type = graphene.String(required=False)


class CreatePipeline(graphene.Mutation):
    """Create a pipeline for a ref, optionally with extra variables."""

    class Arguments:
        project_path = graphene.ID(required=True)
        ref = graphene.String(required=True)
        variables = graphene.List(PipelineVariableInput, required=False)

    pipeline = graphene.Field(PipelineType)
    errors = graphene.List(graphene.String)

    @staticmethod
    def mutate(root, info, project_path, ref, variables=None):
        project = authorized_find_project(info, project_path, "create_pipeline")
        params = {
            "ref": ref,
            "variables_attributes": [
                {
                    "key": variable.key,
                    "value": variable.value,
                    "variable_type": variable.variable_type or "env_var",
                }
                for variable in variables or []
            ],
        }
        response = CreatePipelineService(project, current_user(info), params).execute(
            PipelineSource.WEB
        )
        pipeline = response.payload if response.payload is not None and response.payload.pk else None
        return CreatePipeline(pipeline=pipeline, errors=response.errors)


class CiMutation(graphene.ObjectType):
    create_pipeline = CreatePipeline.Field()
