"""
GraphQL query for project releases.
"""

from typing import Optional

import graphene
from graphene_django import DjangoObjectType

from ..ci.graphql.queries import authorized_find_project, current_user
from .finders import ReleasesFinder
from .models import Release


class ReleaseType(DjangoObjectType):
    upcoming_release = graphene.Boolean()
    author_username = graphene.String()

    class Meta:
        model = Release
        fields = ("id", "tag", "name", "description", "sha", "released_at", "created_at")

    @staticmethod
    def resolve_author_username(root, info):
        return root.author.get_username() if root.author_id else None


class ReleasesQuery(graphene.ObjectType):
    releases = graphene.List(
        ReleaseType,
        project_path=graphene.ID(required=True),
        tag=graphene.String(required=False),
        order_by=graphene.String(required=False, description="released_at or created_at"),
        sort=graphene.String(required=False, description="asc or desc"),
    )

    @staticmethod
    def resolve_releases(
        root,
        info,
        project_path: str,
        tag: Optional[str] = None,
        order_by: Optional[str] = None,
        sort: Optional[str] = None,
    ):
        project = authorized_find_project(info, project_path, "read_project")
        return ReleasesFinder(
            project,
            current_user(info),
            {"tag": tag, "order_by": order_by, "sort": sort},
        ).execute()
