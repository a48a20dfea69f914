"""
GraphQL queries for access policies, status transitions and RBAC records.
"""

import logging

import graphene
from graphql import GraphQLError

from ..config_proxy import get_setting
from ..exceptions import NotFoundError
from ..models import Department, Permission, Role
from ..security.engine import decision_engine
from ..security.policies import policy_store
from ..security.subjects import resolve_subject
from ..security.transitions import status_transition_gate
from .types import (
    AccessDecisionType,
    AccessPolicyType,
    DepartmentType,
    PermissionType,
    RoleType,
    TicketStatusType,
)

logger = logging.getLogger(__name__)


def get_authenticated_user(info):
    user = getattr(info.context, "user", None)
    if user is None or not user.is_authenticated:
        raise GraphQLError("Authentication required")
    return user


def require_admin_access(info, setting_key: str, default_resource: str, action: str):
    """Authorize an admin API call through the decision engine."""
    user = get_authenticated_user(info)
    resource = str(get_setting(setting_key, default_resource))
    if not decision_engine.is_allowed(user, resource, action):
        raise GraphQLError("Access denied")
    return user


def require_policy_access(info, action: str):
    return require_admin_access(info, "auth_settings.policy_resource", "policies", action)


def require_status_access(info, action: str):
    return require_admin_access(
        info, "auth_settings.status_resource", "ticket-status", action
    )


def require_role_access(info, action: str):
    return require_admin_access(info, "auth_settings.role_resource", "roles", action)


def require_permission_access(info, action: str):
    return require_admin_access(
        info, "auth_settings.permission_resource", "permissions", action
    )


def require_department_access(info, action: str):
    return require_admin_access(
        info, "auth_settings.department_resource", "departments", action
    )


class AccessQuery(graphene.ObjectType):
    access_policies = graphene.List(
        graphene.NonNull(AccessPolicyType),
        active_only=graphene.Boolean(default_value=False),
        required=True,
    )
    access_policy = graphene.Field(AccessPolicyType, id=graphene.ID(required=True))
    can_access = graphene.Field(
        AccessDecisionType,
        resource=graphene.String(required=True),
        action=graphene.String(required=True),
        attributes=graphene.JSONString(),
        required=True,
    )
    allowed_status_transitions = graphene.List(
        graphene.NonNull(TicketStatusType),
        status_id=graphene.ID(required=True),
        required=True,
    )
    roles = graphene.List(graphene.NonNull(RoleType), required=True)
    permissions = graphene.List(graphene.NonNull(PermissionType), required=True)
    departments = graphene.List(graphene.NonNull(DepartmentType), required=True)

    def resolve_access_policies(self, info, active_only=False):
        require_policy_access(info, "read")
        return policy_store.list_policies(active_only=active_only)

    def resolve_access_policy(self, info, id):
        require_policy_access(info, "read")
        try:
            return policy_store.get_policy(id)
        except NotFoundError:
            return None

    def resolve_can_access(self, info, resource, action, attributes=None):
        user = get_authenticated_user(info)
        allowed = decision_engine.is_allowed(user, resource, action, attributes)
        return AccessDecisionType(allowed=allowed, resource=resource, action=action)

    def resolve_allowed_status_transitions(self, info, status_id):
        user = get_authenticated_user(info)
        subject = resolve_subject(user)
        try:
            return status_transition_gate.allowed_targets(status_id, subject.role_names)
        except NotFoundError:
            raise GraphQLError("Status not found") from None

    def resolve_roles(self, info):
        require_role_access(info, "read")
        return Role.objects.order_by("name")

    def resolve_permissions(self, info):
        require_permission_access(info, "read")
        return Permission.objects.order_by("key")

    def resolve_departments(self, info):
        require_department_access(info, "read")
        return Department.objects.order_by("name")


__all__ = [
    "AccessQuery",
    "get_authenticated_user",
    "require_department_access",
    "require_permission_access",
    "require_policy_access",
    "require_role_access",
    "require_status_access",
]
