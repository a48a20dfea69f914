"""
Unit tests for the ticket status transition gate.
"""

import pytest

from helpdesk_access.exceptions import InvalidTransitionError, NotFoundError
from helpdesk_access.models import TicketStatus
from helpdesk_access.security.transitions import status_transition_gate as gate

pytestmark = [pytest.mark.unit, pytest.mark.django_db]


def _status(name):
    return TicketStatus.objects.get(name=name)


class TestReferenceWorkflow:
    def test_open_to_in_progress_for_agent(self, seeded):
        assert gate.can_transition(_status("Open"), _status("In Progress").pk, ["agent"])

    def test_closed_to_in_progress_is_rejected(self, seeded):
        closed = _status("Closed")
        in_progress = _status("In Progress")
        assert not gate.can_transition(closed, in_progress.pk, ["agent"])
        assert not gate.can_transition(closed, in_progress.pk, ["admin"])

    def test_closed_to_reopened_needs_admin_or_manager(self, seeded):
        closed = _status("Closed")
        reopened = _status("Reopened")
        assert gate.can_transition(closed, reopened.pk, ["Manager"])
        assert not gate.can_transition(closed, reopened.pk, ["agent", "user"])

    def test_no_role_overlap_is_rejected(self, seeded):
        assert not gate.can_transition(_status("Open"), _status("Pending").pk, ["user"])
        assert not gate.can_transition(_status("Open"), _status("Pending").pk, [])

    def test_no_status_transitions_to_itself(self, seeded):
        for status in TicketStatus.objects.all():
            assert not gate.can_transition(status, status.pk, ["admin"])

    def test_names_are_not_accepted_as_targets(self, seeded):
        assert not gate.can_transition(_status("Open"), "In Progress", ["agent"])

    def test_allowed_targets(self, seeded):
        targets = gate.allowed_targets(_status("Open").pk, ["agent"])
        assert [status.name for status in targets] == ["In Progress", "Pending", "Cancelled"]
        assert gate.allowed_targets(_status("Escalated"), ["agent"]) == []

    def test_can_user_transition_resolves_roles(self, seeded):
        john = seeded["users"]["john"]
        alice = seeded["users"]["alice"]
        open_status = _status("Open")
        in_progress = _status("In Progress")
        assert gate.can_user_transition(john, open_status, in_progress)
        assert not gate.can_user_transition(alice, open_status, in_progress)

    def test_unknown_current_status(self, db):
        with pytest.raises(NotFoundError):
            gate.can_transition(999, 1, ["admin"])


class TestWrites:
    @pytest.fixture
    def statuses(self, db):
        return {
            name: TicketStatus.objects.create(name=name, sort_order=index)
            for index, name in enumerate(["New", "Working", "Done"])
        }

    def test_set_transitions_by_id_and_instance(self, statuses):
        gate.set_transitions(statuses["New"], [statuses["Working"].pk, statuses["Done"]])
        targets = set(statuses["New"].allowed_transitions.values_list("name", flat=True))
        assert targets == {"Working", "Done"}

        gate.set_transitions(statuses["New"].pk, [str(statuses["Done"].pk)])
        targets = set(statuses["New"].allowed_transitions.values_list("name", flat=True))
        assert targets == {"Done"}

    @pytest.mark.parametrize("target", ["Working", None, 1.5, True])
    def test_non_ids_are_rejected(self, statuses, target):
        with pytest.raises(InvalidTransitionError):
            gate.set_transitions(statuses["New"], [target])

    def test_self_transition_is_rejected(self, statuses):
        with pytest.raises(InvalidTransitionError):
            gate.set_transitions(statuses["New"], [statuses["New"].pk])

    def test_unknown_target_id(self, statuses):
        with pytest.raises(NotFoundError):
            gate.set_transitions(statuses["New"], [statuses["Done"].pk + 100])
        assert statuses["New"].allowed_transitions.count() == 0

    def test_permitted_roles_are_normalized(self, statuses):
        status = gate.set_permitted_roles(statuses["Working"], ["Agent", " MANAGER ", "agent"])
        status.refresh_from_db()
        assert status.permitted_roles == ["agent", "manager"]
