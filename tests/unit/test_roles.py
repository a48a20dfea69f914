"""
Unit tests for role, permission and membership administration.
"""

import pytest

from helpdesk_access.exceptions import DuplicateNameError, NotFoundError, SystemRoleError
from helpdesk_access.models import Permission, Role, RolePermission, UserDepartment, UserRole
from helpdesk_access.security import roles as admin

pytestmark = [pytest.mark.unit, pytest.mark.django_db]


def test_create_rename_and_delete_custom_role():
    role = admin.create_role("Supervisor", "Shift supervisor")
    with pytest.raises(DuplicateNameError):
        admin.create_role("supervisor")

    renamed = admin.rename_role(role.pk, "Team Lead")
    assert renamed.name == "Team Lead"
    assert admin.get_role("team lead").pk == role.pk

    admin.delete_role("Team Lead")
    assert not Role.objects.filter(pk=role.pk).exists()
    with pytest.raises(NotFoundError):
        admin.get_role(role.pk)


def test_system_roles_are_protected(roles):
    with pytest.raises(SystemRoleError):
        admin.rename_role("agent", "helper")
    with pytest.raises(SystemRoleError):
        admin.delete_role(roles["admin"])
    # Description-only edits keep the name and are allowed.
    updated = admin.rename_role("agent", "agent", description="Front line")
    assert updated.description == "Front line"


def test_grant_and_revoke_are_idempotent(roles):
    assert admin.grant_permission("agent", "tickets:read") is True
    assert admin.grant_permission("agent", "tickets:read") is False
    assert RolePermission.objects.filter(role=roles["agent"]).count() == 1
    assert Permission.objects.filter(key="tickets:read").count() == 1

    assert admin.revoke_permission("agent", "tickets:read") is True
    assert admin.revoke_permission("agent", "tickets:read") is False


def test_ensure_permission_updates_description():
    admin.ensure_permission("reports:read")
    permission = admin.ensure_permission("reports:read", "Read reports")
    assert permission.description == "Read reports"


def test_role_membership(make_user, roles):
    user = make_user("member")
    admin.assign_role(user, "agent", is_primary=True)
    admin.assign_role(user.pk, roles["manager"])
    assert UserRole.objects.filter(user=user).count() == 2

    assert admin.revoke_role(user, "agent") is True
    assert admin.revoke_role(user, "agent") is False
    with pytest.raises(NotFoundError):
        admin.assign_role(999999, "agent")


def test_department_membership(make_user, departments):
    user = make_user("member")
    membership = admin.add_department_member(user, "IT Support", label="specialist")
    assert membership.label == "specialist"

    admin.add_department_member(user, departments["it"].pk, label="admin", is_primary=True)
    admin.add_department_member(user, departments["billing"], is_primary=True)
    memberships = {m.department.name: m for m in UserDepartment.objects.filter(user=user)}
    assert memberships["IT Support"].label == "admin"
    assert memberships["IT Support"].is_primary is False
    assert memberships["Billing"].is_primary is True

    assert admin.remove_department_member(user, "Billing") is True
    with pytest.raises(NotFoundError):
        admin.remove_department_member(user, "Nowhere")


def test_delete_permission_drops_grants(roles):
    admin.grant_permission("agent", "reports:read")
    admin.delete_permission("reports:read")
    assert not Permission.objects.filter(key="reports:read").exists()
    assert not RolePermission.objects.filter(role=roles["agent"]).exists()
    with pytest.raises(NotFoundError):
        admin.delete_permission("reports:read")
