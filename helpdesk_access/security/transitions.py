"""
Ticket status transition gate.

A transition ``current -> target`` is permitted when ``target`` is among the
current status' ``allowed_transitions`` and the subject holds one of the
current status' ``permitted_roles``. Transitions are always stored by status
id; names are only accepted by the bootstrap loader, which maps them to ids.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any, Union

from django.db import transaction

from ..exceptions import InvalidTransitionError, NotFoundError
from ..models import TicketStatus
from .subjects import resolve_subject

logger = logging.getLogger(__name__)


def _normalize_roles(roles: Iterable[Any]) -> set[str]:
    return {str(role).strip().lower() for role in roles or () if role}


def _status_id(value: Any) -> int:
    """Return the primary key of a status instance or an integer id."""
    if isinstance(value, TicketStatus):
        return value.pk
    if isinstance(value, bool):
        raise InvalidTransitionError(f"'{value}' is not a status id")
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    raise InvalidTransitionError(
        f"Transitions reference statuses by id, got {value!r}",
        details={"value": value},
    )


class StatusTransitionGate:
    """Role-gated ticket status workflow."""

    def get_status(self, status: Union[TicketStatus, int, str]) -> TicketStatus:
        if isinstance(status, TicketStatus):
            return status
        try:
            return TicketStatus.objects.get(pk=_status_id(status))
        except (TicketStatus.DoesNotExist, InvalidTransitionError):
            raise NotFoundError("TicketStatus", status) from None

    def _target_ids(self, status: TicketStatus) -> set[int]:
        return set(status.allowed_transitions.values_list("id", flat=True))

    def roles_permitted(self, status: TicketStatus, subject_roles: Iterable[Any]) -> bool:
        permitted = _normalize_roles(status.permitted_roles)
        return bool(permitted & _normalize_roles(subject_roles))

    def can_transition(
        self,
        current_status: Union[TicketStatus, int],
        target_status_id: Union[TicketStatus, int],
        subject_roles: Iterable[Any],
    ) -> bool:
        """
        Check whether a subject holding ``subject_roles`` may move a ticket
        from ``current_status`` to ``target_status_id``.

        Role names are compared case-insensitively.
        """
        current = self.get_status(current_status)
        try:
            target_id = _status_id(target_status_id)
        except InvalidTransitionError:
            return False
        if target_id not in self._target_ids(current):
            return False
        return self.roles_permitted(current, subject_roles)

    def allowed_targets(
        self, current_status: Union[TicketStatus, int], subject_roles: Iterable[Any]
    ) -> list[TicketStatus]:
        """Statuses a subject may select from ``current_status``."""
        current = self.get_status(current_status)
        if not self.roles_permitted(current, subject_roles):
            return []
        return list(current.allowed_transitions.order_by("sort_order", "name"))

    def can_user_transition(self, user: Any, current_status: Any, target_status: Any) -> bool:
        """Resolve the user's roles and check the transition."""
        subject = resolve_subject(user)
        return self.can_transition(current_status, target_status, subject.role_names)

    # --- Writes ---

    def set_transitions(
        self, status: Union[TicketStatus, int], targets: Iterable[Any]
    ) -> TicketStatus:
        """
        Replace the allowed transitions of ``status``.

        Raises:
            InvalidTransitionError: For names, non-ids or self transitions.
            NotFoundError: If a status does not exist.
        """
        current = self.get_status(status)
        target_ids = []
        for target in targets or ():
            target_id = _status_id(target)
            if target_id == current.pk:
                raise InvalidTransitionError(
                    f"Status '{current.name}' cannot transition to itself"
                )
            if target_id not in target_ids:
                target_ids.append(target_id)

        existing = set(TicketStatus.objects.filter(pk__in=target_ids).values_list("id", flat=True))
        missing = [target_id for target_id in target_ids if target_id not in existing]
        if missing:
            raise NotFoundError("TicketStatus", missing[0])

        with transaction.atomic():
            current.allowed_transitions.set(target_ids)
        logger.info(
            "Status '%s' transitions set to %s", current.name, sorted(target_ids)
        )
        return current

    def set_permitted_roles(
        self, status: Union[TicketStatus, int], roles: Iterable[Any]
    ) -> TicketStatus:
        current = self.get_status(status)
        current.permitted_roles = sorted(_normalize_roles(roles))
        current.save(update_fields=["permitted_roles"])
        return current


# Global singleton instance
status_transition_gate = StatusTransitionGate()

__all__ = ["StatusTransitionGate", "status_transition_gate"]
