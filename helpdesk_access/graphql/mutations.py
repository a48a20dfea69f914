"""
GraphQL mutations for the access-control admin API (policies, statuses, roles,
permissions and memberships).

Mutations report failures through ``ok``/``errors`` instead of raising, and
are themselves authorized by the decision engine.
"""

import logging

import graphene
from django.core.exceptions import ValidationError
from graphql import GraphQLError

from ..exceptions import AccessControlError
from ..security import roles as roles_admin
from ..security.policies import policy_store
from ..security.transitions import status_transition_gate
from .queries import (
    require_department_access,
    require_permission_access,
    require_policy_access,
    require_role_access,
    require_status_access,
)
from .types import AccessPolicyType, PermissionType, RoleType, TicketStatusType

logger = logging.getLogger(__name__)


def _error_messages(exc: Exception) -> list[str]:
    if isinstance(exc, ValidationError):
        return [str(message) for message in exc.messages]
    if isinstance(exc, AccessControlError):
        return [exc.message]
    return [str(exc)]


def _denied(mutation_cls, exc: GraphQLError):
    return mutation_cls(ok=False, errors=[exc.message])


class UpsertAccessPolicyMutation(graphene.Mutation):
    """
    Create or replace the policy with the given name.

    Example:
        mutation {
            upsertAccessPolicy(
                name: "Agents can read tickets", effect: "ALLOW",
                subjectType: "ROLE", subjectId: "3",
                resource: "tickets", action: "read"
            ) { ok errors created policy { id } }
        }
    """

    class Arguments:
        name = graphene.String(required=True)
        description = graphene.String()
        effect = graphene.String(required=True)
        subject_type = graphene.String(required=True)
        subject_id = graphene.String()
        resource = graphene.String(required=True)
        action = graphene.String(required=True)
        conditions = graphene.JSONString()
        is_active = graphene.Boolean()

    ok = graphene.Boolean(required=True)
    errors = graphene.List(graphene.String, required=True)
    created = graphene.Boolean()
    policy = graphene.Field(AccessPolicyType)

    def mutate(self, info, name, **fields):
        try:
            require_policy_access(info, "write")
        except GraphQLError as exc:
            return _denied(UpsertAccessPolicyMutation, exc)
        try:
            policy, created = policy_store.upsert_policy(name, **fields)
        except (AccessControlError, ValidationError) as exc:
            return UpsertAccessPolicyMutation(ok=False, errors=_error_messages(exc))
        return UpsertAccessPolicyMutation(ok=True, errors=[], created=created, policy=policy)


class UpdateAccessPolicyMutation(graphene.Mutation):
    class Arguments:
        id = graphene.ID(required=True)
        name = graphene.String()
        description = graphene.String()
        effect = graphene.String()
        subject_type = graphene.String()
        subject_id = graphene.String()
        resource = graphene.String()
        action = graphene.String()
        conditions = graphene.JSONString()
        is_active = graphene.Boolean()

    ok = graphene.Boolean(required=True)
    errors = graphene.List(graphene.String, required=True)
    policy = graphene.Field(AccessPolicyType)

    def mutate(self, info, id, **changes):
        try:
            require_policy_access(info, "write")
        except GraphQLError as exc:
            return _denied(UpdateAccessPolicyMutation, exc)
        try:
            policy = policy_store.update_policy(id, **changes)
        except (AccessControlError, ValidationError) as exc:
            return UpdateAccessPolicyMutation(ok=False, errors=_error_messages(exc))
        return UpdateAccessPolicyMutation(ok=True, errors=[], policy=policy)


class DeleteAccessPolicyMutation(graphene.Mutation):
    class Arguments:
        id = graphene.ID(required=True)

    ok = graphene.Boolean(required=True)
    errors = graphene.List(graphene.String, required=True)

    def mutate(self, info, id):
        try:
            require_policy_access(info, "delete")
        except GraphQLError as exc:
            return _denied(DeleteAccessPolicyMutation, exc)
        try:
            policy_store.delete_policy(id)
        except AccessControlError as exc:
            return DeleteAccessPolicyMutation(ok=False, errors=_error_messages(exc))
        return DeleteAccessPolicyMutation(ok=True, errors=[])


class SetStatusTransitionsMutation(graphene.Mutation):
    """Replace a status' allowed targets (by id) and optionally its roles."""

    class Arguments:
        status_id = graphene.ID(required=True)
        target_ids = graphene.List(graphene.NonNull(graphene.ID), required=True)
        permitted_roles = graphene.List(graphene.NonNull(graphene.String))

    ok = graphene.Boolean(required=True)
    errors = graphene.List(graphene.String, required=True)
    status = graphene.Field(TicketStatusType)

    def mutate(self, info, status_id, target_ids, permitted_roles=None):
        try:
            require_status_access(info, "write")
        except GraphQLError as exc:
            return _denied(SetStatusTransitionsMutation, exc)
        try:
            status = status_transition_gate.set_transitions(status_id, target_ids)
            if permitted_roles is not None:
                status = status_transition_gate.set_permitted_roles(status, permitted_roles)
        except AccessControlError as exc:
            return SetStatusTransitionsMutation(ok=False, errors=_error_messages(exc))
        return SetStatusTransitionsMutation(ok=True, errors=[], status=status)


class CreateRoleMutation(graphene.Mutation):
    class Arguments:
        name = graphene.String(required=True)
        description = graphene.String()

    ok = graphene.Boolean(required=True)
    errors = graphene.List(graphene.String, required=True)
    role = graphene.Field(RoleType)

    def mutate(self, info, name, description=""):
        try:
            require_role_access(info, "write")
        except GraphQLError as exc:
            return _denied(CreateRoleMutation, exc)
        try:
            role = roles_admin.create_role(name, description or "")
        except (AccessControlError, ValueError) as exc:
            return CreateRoleMutation(ok=False, errors=_error_messages(exc))
        return CreateRoleMutation(ok=True, errors=[], role=role)


class UpdateRoleMutation(graphene.Mutation):
    """Rename a role or change its description. System roles keep their name."""

    class Arguments:
        id = graphene.ID(required=True)
        name = graphene.String(required=True)
        description = graphene.String()

    ok = graphene.Boolean(required=True)
    errors = graphene.List(graphene.String, required=True)
    role = graphene.Field(RoleType)

    def mutate(self, info, id, name, description=None):
        try:
            require_role_access(info, "write")
        except GraphQLError as exc:
            return _denied(UpdateRoleMutation, exc)
        try:
            role = roles_admin.rename_role(id, name, description=description)
        except (AccessControlError, ValueError) as exc:
            return UpdateRoleMutation(ok=False, errors=_error_messages(exc))
        return UpdateRoleMutation(ok=True, errors=[], role=role)


class DeleteRoleMutation(graphene.Mutation):
    class Arguments:
        id = graphene.ID(required=True)

    ok = graphene.Boolean(required=True)
    errors = graphene.List(graphene.String, required=True)

    def mutate(self, info, id):
        try:
            require_role_access(info, "delete")
        except GraphQLError as exc:
            return _denied(DeleteRoleMutation, exc)
        try:
            roles_admin.delete_role(id)
        except AccessControlError as exc:
            return DeleteRoleMutation(ok=False, errors=_error_messages(exc))
        return DeleteRoleMutation(ok=True, errors=[])


class UpsertPermissionMutation(graphene.Mutation):
    """Create the permission ``key`` or update its description."""

    class Arguments:
        key = graphene.String(required=True)
        description = graphene.String()

    ok = graphene.Boolean(required=True)
    errors = graphene.List(graphene.String, required=True)
    permission = graphene.Field(PermissionType)

    def mutate(self, info, key, description=""):
        try:
            require_permission_access(info, "write")
        except GraphQLError as exc:
            return _denied(UpsertPermissionMutation, exc)
        try:
            permission = roles_admin.ensure_permission(key, description or "")
        except AccessControlError as exc:
            return UpsertPermissionMutation(ok=False, errors=_error_messages(exc))
        return UpsertPermissionMutation(ok=True, errors=[], permission=permission)


class DeletePermissionMutation(graphene.Mutation):
    class Arguments:
        key = graphene.String(required=True)

    ok = graphene.Boolean(required=True)
    errors = graphene.List(graphene.String, required=True)

    def mutate(self, info, key):
        try:
            require_permission_access(info, "delete")
        except GraphQLError as exc:
            return _denied(DeletePermissionMutation, exc)
        try:
            roles_admin.delete_permission(key)
        except AccessControlError as exc:
            return DeletePermissionMutation(ok=False, errors=_error_messages(exc))
        return DeletePermissionMutation(ok=True, errors=[])


class SetRolePermissionMutation(graphene.Mutation):
    """Grant (``granted: true``) or revoke a permission key on a role."""

    class Arguments:
        role_id = graphene.ID(required=True)
        key = graphene.String(required=True)
        granted = graphene.Boolean(required=True)

    ok = graphene.Boolean(required=True)
    errors = graphene.List(graphene.String, required=True)
    changed = graphene.Boolean()
    role = graphene.Field(RoleType)

    def mutate(self, info, role_id, key, granted):
        try:
            require_role_access(info, "write")
        except GraphQLError as exc:
            return _denied(SetRolePermissionMutation, exc)
        try:
            if granted:
                changed = roles_admin.grant_permission(role_id, key)
            else:
                changed = roles_admin.revoke_permission(role_id, key)
            role = roles_admin.get_role(role_id)
        except AccessControlError as exc:
            return SetRolePermissionMutation(ok=False, errors=_error_messages(exc))
        return SetRolePermissionMutation(ok=True, errors=[], changed=changed, role=role)


class SetUserRoleMutation(graphene.Mutation):
    """Assign (``assigned: true``) or remove a role for a user."""

    class Arguments:
        user_id = graphene.ID(required=True)
        role_id = graphene.ID(required=True)
        assigned = graphene.Boolean(required=True)
        is_primary = graphene.Boolean(default_value=False)

    ok = graphene.Boolean(required=True)
    errors = graphene.List(graphene.String, required=True)
    changed = graphene.Boolean()

    def mutate(self, info, user_id, role_id, assigned, is_primary=False):
        try:
            require_role_access(info, "assign")
        except GraphQLError as exc:
            return _denied(SetUserRoleMutation, exc)
        try:
            if assigned:
                roles_admin.assign_role(user_id, role_id, is_primary=is_primary)
                changed = True
            else:
                changed = roles_admin.revoke_role(user_id, role_id)
        except AccessControlError as exc:
            return SetUserRoleMutation(ok=False, errors=_error_messages(exc))
        return SetUserRoleMutation(ok=True, errors=[], changed=changed)


class SetDepartmentMemberMutation(graphene.Mutation):
    """Add (``member: true``) or remove a user from a department."""

    class Arguments:
        user_id = graphene.ID(required=True)
        department_id = graphene.ID(required=True)
        member = graphene.Boolean(required=True)
        label = graphene.String()
        is_primary = graphene.Boolean(default_value=False)

    ok = graphene.Boolean(required=True)
    errors = graphene.List(graphene.String, required=True)
    changed = graphene.Boolean()

    def mutate(self, info, user_id, department_id, member, label=None, is_primary=False):
        try:
            require_department_access(info, "write")
        except GraphQLError as exc:
            return _denied(SetDepartmentMemberMutation, exc)
        try:
            if member:
                roles_admin.add_department_member(
                    user_id, department_id, label=label or "member", is_primary=is_primary
                )
                changed = True
            else:
                changed = roles_admin.remove_department_member(user_id, department_id)
        except AccessControlError as exc:
            return SetDepartmentMemberMutation(ok=False, errors=_error_messages(exc))
        return SetDepartmentMemberMutation(ok=True, errors=[], changed=changed)


class AccessMutation(graphene.ObjectType):
    upsert_access_policy = UpsertAccessPolicyMutation.Field()
    update_access_policy = UpdateAccessPolicyMutation.Field()
    delete_access_policy = DeleteAccessPolicyMutation.Field()
    set_status_transitions = SetStatusTransitionsMutation.Field()
    create_role = CreateRoleMutation.Field()
    update_role = UpdateRoleMutation.Field()
    delete_role = DeleteRoleMutation.Field()
    upsert_permission = UpsertPermissionMutation.Field()
    delete_permission = DeletePermissionMutation.Field()
    set_role_permission = SetRolePermissionMutation.Field()
    set_user_role = SetUserRoleMutation.Field()
    set_department_member = SetDepartmentMemberMutation.Field()


__all__ = [
    "AccessMutation",
    "CreateRoleMutation",
    "DeleteAccessPolicyMutation",
    "DeletePermissionMutation",
    "DeleteRoleMutation",
    "SetDepartmentMemberMutation",
    "SetRolePermissionMutation",
    "SetStatusTransitionsMutation",
    "SetUserRoleMutation",
    "UpdateAccessPolicyMutation",
    "UpdateRoleMutation",
    "UpsertAccessPolicyMutation",
    "UpsertPermissionMutation",
]
