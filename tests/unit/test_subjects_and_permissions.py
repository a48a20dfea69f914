"""
Unit tests for subject resolution and the permission index.
"""

import pytest

from helpdesk_access.exceptions import InvalidPermissionKeyError, NotFoundError
from helpdesk_access.models import Permission
from helpdesk_access.security.permissions import permission_index
from helpdesk_access.security.roles import (
    add_department_member,
    assign_role,
    grant_permission,
    revoke_permission,
)
from helpdesk_access.security.subjects import resolve_subject

pytestmark = [pytest.mark.unit, pytest.mark.django_db]


class TestResolveSubject:
    def test_unknown_user_raises(self):
        with pytest.raises(NotFoundError):
            resolve_subject(999999)

    def test_resolves_roles_and_departments(self, make_user, roles, departments):
        user = make_user("carol", email="carol@company.com")
        assign_role(user, roles["agent"], is_primary=True)
        assign_role(user, roles["manager"])
        add_department_member(user, departments["it"], label="specialist", is_primary=True)
        add_department_member(user, departments["billing"])

        subject = resolve_subject(user.pk)

        assert subject.id == user.pk
        assert subject.email == "carol@company.com"
        assert subject.role_ids == {roles["agent"].pk, roles["manager"].pk}
        assert subject.role_names == {"agent", "manager"}
        assert subject.primary_role.role_name == "agent"
        assert subject.department_ids == {departments["it"].pk, departments["billing"].pk}

        attrs = subject.as_attributes()
        assert attrs["id"] == user.pk
        assert sorted(attrs["roleNames"]) == ["agent", "manager"]
        labels = {d["departmentName"]: d["label"] for d in attrs["departments"]}
        assert labels == {"IT Support": "specialist", "Billing": "member"}

    def test_user_without_memberships(self, make_user):
        subject = resolve_subject(make_user("lonely"))
        assert subject.roles == ()
        assert subject.departments == ()
        assert subject.primary_role is None

    def test_primary_role_is_unique(self, make_user, roles):
        user = make_user("switcher")
        assign_role(user, roles["agent"], is_primary=True)
        assign_role(user, roles["manager"], is_primary=True)
        subject = resolve_subject(user)
        assert [r.role_name for r in subject.roles if r.is_primary] == ["manager"]


class TestPermissionIndex:
    def test_union_of_role_grants(self, roles):
        grant_permission(roles["agent"], "tickets:read")
        grant_permission(roles["manager"], "tickets:delete")

        both = [roles["agent"].pk, roles["manager"].pk]
        assert permission_index.has_permission(both, "tickets:read")
        assert permission_index.has_permission(both, "tickets:delete")
        assert not permission_index.has_permission([roles["agent"].pk], "tickets:delete")
        assert permission_index.permissions_for_roles([]) == frozenset()

    def test_no_implicit_grants(self, roles):
        grant_permission(roles["admin"], "tickets:read")
        assert not permission_index.has_permission([roles["admin"].pk], "tickets:write")

    def test_cache_invalidated_on_grant_and_revoke(self, roles):
        role_ids = [roles["agent"].pk]
        assert not permission_index.has_permission(role_ids, "reports:read")

        grant_permission(roles["agent"], "reports:read")
        assert permission_index.has_permission(role_ids, "reports:read")

        revoke_permission(roles["agent"], "reports:read")
        assert not permission_index.has_permission(role_ids, "reports:read")

    def test_works_without_cache(self, roles, settings):
        settings.HELPDESK_ACCESS = {"access_settings": {"enable_permission_cache": False}}
        grant_permission(roles["user"], "knowledge:read")
        assert permission_index.has_permission([roles["user"].pk], "knowledge:read")

    def test_roles_granting(self, roles):
        grant_permission(roles["agent"], "tickets:write")
        grant_permission(roles["user"], "tickets:write")
        assert permission_index.roles_granting("tickets:write") == sorted(
            [roles["agent"].pk, roles["user"].pk]
        )

    @pytest.mark.parametrize("key", ["tickets", ":read", "tickets:", "tickets read", ""])
    def test_invalid_keys_are_rejected(self, key):
        with pytest.raises(InvalidPermissionKeyError):
            Permission.objects.create(key=key)
        assert permission_index.has_permission([1], key) is False

    def test_malformed_keys_are_never_granted(self, roles):
        grant_permission(roles["agent"], "tickets:read")
        role_ids = [roles["agent"].pk]
        assert permission_index.has_permission(role_ids, "tickets:*") is False
        assert permission_index.has_any_permission(role_ids, ["tickets:*", "tickets:read"])
        assert not permission_index.has_any_permission(role_ids, ["tickets:*"])
