"""
GraphQL schema for the access-control admin API.
"""

import graphene

from .mutations import AccessMutation
from .queries import AccessQuery


class Query(AccessQuery, graphene.ObjectType):
    pass


class Mutation(AccessMutation, graphene.ObjectType):
    pass


schema = graphene.Schema(query=Query, mutation=Mutation)
