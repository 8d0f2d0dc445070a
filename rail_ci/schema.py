"""
GraphQL schema exposing CI configuration, pipelines and releases.
"""

import graphene

from .ci.graphql import CiMutation, CiQuery
from .releases.graphql import ReleasesQuery


class Query(CiQuery, ReleasesQuery, graphene.ObjectType):
    pass


class Mutation(CiMutation, graphene.ObjectType):
    pass


schema = graphene.Schema(query=Query, mutation=Mutation)
