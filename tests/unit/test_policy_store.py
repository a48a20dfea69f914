"""
Unit tests for the access policy store.
"""

import pytest
from django.core.exceptions import ValidationError

from helpdesk_access.exceptions import (
    DuplicateNameError,
    MalformedConditionError,
    NotFoundError,
)
from helpdesk_access.models import AccessPolicy, PolicyEffect, SubjectType
from helpdesk_access.security.policies import policy_store
from helpdesk_access.security.subjects import resolve_subject

pytestmark = [pytest.mark.unit, pytest.mark.django_db]


def _role_policy(name, role, **extra):
    fields = {
        "subject_type": SubjectType.ROLE,
        "subject_id": role.pk,
        "resource": "tickets",
        "action": "read",
    }
    fields.update(extra)
    return policy_store.create_policy(name=name, **fields)


class TestWrites:
    def test_upsert_is_idempotent(self, roles):
        definition = {
            "effect": "ALLOW",
            "subject_type": "ROLE",
            "subject_id": roles["agent"].pk,
            "resource": "tickets",
            "action": "write",
            "conditions": {"equals": {"ticket.assignedTo": "user.id"}},
        }
        first, created = policy_store.upsert_policy("Agents write assigned", **definition)
        second, created_again = policy_store.upsert_policy("Agents write assigned", **definition)

        assert created is True
        assert created_again is False
        assert first.pk == second.pk
        assert AccessPolicy.objects.filter(name="Agents write assigned").count() == 1
        stored = AccessPolicy.objects.get(pk=first.pk)
        assert stored.subject_id == str(roles["agent"].pk)
        assert stored.conditions == definition["conditions"]

    def test_upsert_replaces_definition(self, roles):
        policy_store.upsert_policy(
            "Replace me", effect="ALLOW", subject_type="ROLE", subject_id=roles["agent"].pk,
            resource="tickets", action="read",
        )
        policy, _ = policy_store.upsert_policy(
            "Replace me", effect="deny", subject_type="USER", subject_id=None,
            resource="comments", action="*",
        )
        policy.refresh_from_db()
        assert policy.effect == PolicyEffect.DENY
        assert policy.subject_type == SubjectType.USER
        assert policy.subject_id is None
        assert policy.resource == "comments"

    def test_upsert_resets_omitted_fields(self, roles):
        policy_store.upsert_policy(
            "Deny billing", effect="DENY", description="keep out",
            subject_type="ROLE", subject_id=roles["agent"].pk,
            resource="tickets", action="read",
            conditions={"equals": {"ticket.billing": True}},
        )
        with pytest.raises(ValidationError):
            policy_store.upsert_policy(
                "Deny billing", subject_type="ROLE", resource="tickets", action="read",
            )

        policy, created = policy_store.upsert_policy(
            "Deny billing", effect="DENY", subject_type="ROLE",
            resource="tickets", action="read",
        )
        policy.refresh_from_db()
        assert created is False
        assert policy.effect == PolicyEffect.DENY
        assert policy.description == ""
        assert policy.subject_id is None
        assert policy.conditions is None
        assert policy.is_active is True

    def test_malformed_conditions_are_rejected(self, roles):
        with pytest.raises(MalformedConditionError):
            policy_store.upsert_policy(
                "Broken", effect="ALLOW", subject_type="ROLE", resource="tickets", action="read",
                conditions={"xor": []},
            )
        with pytest.raises(MalformedConditionError):
            AccessPolicy.objects.create(
                name="Broken direct", subject_type="ROLE", conditions="null"
            )
        assert not AccessPolicy.objects.filter(name__startswith="Broken").exists()

    def test_invalid_enums_are_rejected(self):
        with pytest.raises(ValidationError):
            policy_store.create_policy(
                name="Bad effect", effect="MAYBE", subject_type="ROLE",
                resource="tickets", action="read",
            )
        with pytest.raises(ValidationError):
            policy_store.create_policy(
                name="Bad subject", subject_type="GROUP", resource="tickets", action="read",
            )
        with pytest.raises(ValidationError):
            policy_store.create_policy(name="Unknown field", subject_type="ROLE",
                                       resource="tickets", action="read", priority=1)

    def test_duplicate_names(self, roles):
        _role_policy("Taken", roles["agent"])
        with pytest.raises(DuplicateNameError):
            _role_policy("Taken", roles["user"])
        other = _role_policy("Other", roles["user"])
        with pytest.raises(DuplicateNameError):
            policy_store.update_policy(other.pk, name="Taken")

    def test_update_set_active_and_delete(self, roles):
        policy = _role_policy("Lifecycle", roles["agent"])
        policy_store.update_policy(policy.pk, action="write", description="changed")
        policy.refresh_from_db()
        assert policy.action == "write"
        assert policy.description == "changed"

        policy_store.set_active(policy.pk, False)
        policy.refresh_from_db()
        assert policy.is_active is False

        policy_store.delete_policy(policy.pk)
        with pytest.raises(NotFoundError):
            policy_store.get_policy(policy.pk)
        with pytest.raises(NotFoundError):
            policy_store.delete_policy(policy.pk)


class TestSelection:
    def test_find_applicable(self, agent, roles, departments, make_user):
        expected = [
            _role_policy("Role exact", roles["agent"]),
            _role_policy("Any role", roles["agent"], subject_id=None),
            _role_policy("Resource wildcard", roles["agent"], resource="*", action="*"),
            policy_store.create_policy(
                name="Own user", subject_type="USER", subject_id=agent.pk,
                resource="tickets", action="*",
            ),
            policy_store.create_policy(
                name="Department", subject_type="DEPARTMENT",
                subject_id=departments["it"].pk, resource="tickets", action="read",
            ),
        ]
        other_user = make_user("someone")
        for name, extra in [
            ("Other role", {"subject_id": roles["manager"].pk}),
            ("Other action", {"action": "delete"}),
            ("Other resource", {"resource": "comments"}),
            ("Inactive", {"is_active": False}),
        ]:
            _role_policy(name, roles["agent"], **extra)
        policy_store.create_policy(
            name="Other user", subject_type="USER", subject_id=other_user.pk,
            resource="tickets", action="read",
        )
        policy_store.create_policy(
            name="Other department", subject_type="DEPARTMENT",
            subject_id=departments["billing"].pk, resource="tickets", action="read",
        )

        subject = resolve_subject(agent)
        found = policy_store.find_applicable(subject, "tickets", "read")

        assert [p.name for p in found] == [p.name for p in expected]
        assert [p.pk for p in found] == sorted(p.pk for p in found)
        for policy in AccessPolicy.objects.all():
            assert policy_store.policy_applies(policy, subject, "tickets", "read") == (
                policy in found
            )

    def test_null_subject_requires_membership(self, make_user, roles):
        lonely = resolve_subject(make_user("lonely"))
        _role_policy("Any role", roles["agent"], subject_id=None)
        policy_store.create_policy(
            name="Any department", subject_type="DEPARTMENT", resource="tickets", action="read",
        )
        assert policy_store.find_applicable(lonely, "tickets", "read") == []
