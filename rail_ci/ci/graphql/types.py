"""
GraphQL types for CI configuration and pipelines.
"""

import graphene
from graphene.types.generic import GenericScalar
from graphene_django import DjangoObjectType

from ..models import Build, Pipeline, Stage


class CiConfigNeedType(graphene.ObjectType):
    name = graphene.String()

    class Meta:
        name = "CiConfigNeed"


class CiConfigJobRestrictionType(graphene.ObjectType):
    refs = graphene.List(graphene.String)
    variables = graphene.List(graphene.String)

    class Meta:
        name = "CiConfigJobRestriction"


class CiConfigJobType(graphene.ObjectType):
    name = graphene.String()
    group_name = graphene.String()
    stage = graphene.String()
    script = graphene.List(graphene.String)
    before_script = graphene.List(graphene.String)
    after_script = graphene.List(graphene.String)
    when = graphene.String()
    allow_failure = graphene.Boolean()
    tags = graphene.List(graphene.String)
    environment = graphene.String()
    needs = graphene.List(CiConfigNeedType)
    only = graphene.Field(CiConfigJobRestrictionType)
    except_ = graphene.Field(CiConfigJobRestrictionType, name="except")

    class Meta:
        name = "CiConfigJob"

    @staticmethod
    def resolve_except_(root, info):
        return root.get("except")

    @staticmethod
    def resolve_environment(root, info):
        environment = root.get("environment")
        if isinstance(environment, dict):
            return environment.get("name")
        return environment


class CiConfigGroupType(graphene.ObjectType):
    name = graphene.String()
    size = graphene.Int()
    jobs = graphene.List(CiConfigJobType)

    class Meta:
        name = "CiConfigGroup"


class CiConfigStageType(graphene.ObjectType):
    name = graphene.String()
    groups = graphene.List(CiConfigGroupType)

    class Meta:
        name = "CiConfigStage"


class CiConfigIncludeType(graphene.ObjectType):
    type = graphene.String()
    location = graphene.String()
    blob = graphene.String()
    raw = graphene.String()
    extra = GenericScalar()
    context_project = graphene.String()
    context_sha = graphene.String()

    class Meta:
        name = "CiConfigInclude"


class CiConfigType(graphene.ObjectType):
    status = graphene.String()
    errors = graphene.List(graphene.String)
    warnings = graphene.List(graphene.String)
    merged_yaml = graphene.String()
    includes = graphene.List(CiConfigIncludeType)
    stages = graphene.List(CiConfigStageType)

    class Meta:
        name = "CiConfig"


class BuildType(DjangoObjectType):
    group_name = graphene.String()

    class Meta:
        model = Build
        fields = ("id", "name", "stage_idx", "status", "when", "allow_failure", "scheduled_at")
        convert_choices_to_enum = False


class StageType(DjangoObjectType):
    class Meta:
        model = Stage
        fields = ("id", "name", "position", "status")
        convert_choices_to_enum = False


class PipelineType(DjangoObjectType):
    stages = graphene.List(StageType)
    jobs = graphene.List(BuildType)
    errors = graphene.List(graphene.String)

    class Meta:
        model = Pipeline
        fields = (
            "id",
            "iid",
            "ref",
            "sha",
            "before_sha",
            "tag",
            "source",
            "status",
            "failure_reason",
            "yaml_errors",
            "protected",
            "created_at",
            "updated_at",
            "started_at",
            "finished_at",
        )
        convert_choices_to_enum = False

    @staticmethod
    def resolve_stages(root, info):
        return root.ordered_stages() if root.pk else []

    @staticmethod
    def resolve_jobs(root, info):
        return root.builds.order_by("stage_idx", "id") if root.pk else []

    @staticmethod
    def resolve_errors(root, info):
        return root.error_messages()
