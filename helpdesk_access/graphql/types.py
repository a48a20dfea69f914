"""
GraphQL types for the access-control admin API.
"""

import graphene
from graphene_django import DjangoObjectType

from ..models import AccessPolicy, Department, Permission, Role, TicketStatus


class AccessPolicyType(DjangoObjectType):
    effect = graphene.String(required=True)
    subject_type = graphene.String(required=True)
    conditions = graphene.JSONString()

    class Meta:
        model = AccessPolicy
        fields = (
            "id",
            "name",
            "description",
            "effect",
            "subject_type",
            "subject_id",
            "resource",
            "action",
            "conditions",
            "is_active",
            "created_at",
            "updated_at",
        )


class TicketStatusType(DjangoObjectType):
    permitted_roles = graphene.List(graphene.NonNull(graphene.String), required=True)
    allowed_transition_ids = graphene.List(graphene.NonNull(graphene.ID), required=True)

    class Meta:
        model = TicketStatus
        fields = (
            "id",
            "name",
            "description",
            "color",
            "icon",
            "sort_order",
            "is_closed",
            "is_resolved",
            "allowed_transitions",
            "permitted_roles",
        )

    def resolve_permitted_roles(self, info):
        return list(self.permitted_roles or [])

    def resolve_allowed_transition_ids(self, info):
        return list(
            self.allowed_transitions.order_by("id").values_list("id", flat=True)
        )


class PermissionType(DjangoObjectType):
    class Meta:
        model = Permission
        fields = ("id", "key", "description", "created_at")


class RoleType(DjangoObjectType):
    permission_keys = graphene.List(graphene.NonNull(graphene.String), required=True)
    user_ids = graphene.List(graphene.NonNull(graphene.ID), required=True)

    class Meta:
        model = Role
        fields = ("id", "name", "description", "is_system", "created_at", "updated_at")

    def resolve_permission_keys(self, info):
        return sorted(
            self.role_permissions.values_list("permission__key", flat=True)
        )

    def resolve_user_ids(self, info):
        return list(
            self.user_roles.order_by("user_id").values_list("user_id", flat=True)
        )


class DepartmentType(DjangoObjectType):
    member_ids = graphene.List(graphene.NonNull(graphene.ID), required=True)

    class Meta:
        model = Department
        fields = ("id", "name", "description", "auto_assign_enabled", "max_tickets_per_agent")

    def resolve_member_ids(self, info):
        return list(
            self.memberships.order_by("user_id").values_list("user_id", flat=True)
        )


class AccessDecisionType(graphene.ObjectType):
    """Outcome of an access check. The matched policy is not exposed."""

    allowed = graphene.Boolean(required=True)
    resource = graphene.String(required=True)
    action = graphene.String(required=True)


__all__ = [
    "AccessDecisionType",
    "AccessPolicyType",
    "DepartmentType",
    "PermissionType",
    "RoleType",
    "TicketStatusType",
]
