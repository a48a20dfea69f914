"""
Identity & membership resolution.

Turns a user id into the ``SubjectContext`` consumed by the policy store
(to select subject-applicable policies) and by the condition evaluator (as the
``user.*`` namespace).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Optional, Union

from django.contrib.auth import get_user_model

from ..exceptions import NotFoundError
from ..models import UserDepartment, UserRole

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractUser

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoleMembership:
    role_id: int
    role_name: str
    is_primary: bool = False


@dataclass(frozen=True)
class DepartmentMembership:
    department_id: int
    department_name: str
    is_primary: bool = False
    label: str = "member"


@dataclass(frozen=True)
class SubjectContext:
    """Evaluation view of a user: identity, roles and department memberships."""

    id: int
    email: str = ""
    username: str = ""
    roles: tuple[RoleMembership, ...] = field(default_factory=tuple)
    departments: tuple[DepartmentMembership, ...] = field(default_factory=tuple)

    @property
    def role_ids(self) -> frozenset[int]:
        return frozenset(role.role_id for role in self.roles)

    @property
    def role_names(self) -> frozenset[str]:
        return frozenset(role.role_name.lower() for role in self.roles)

    @property
    def department_ids(self) -> frozenset[int]:
        return frozenset(dept.department_id for dept in self.departments)

    @property
    def primary_role(self) -> Optional[RoleMembership]:
        return next((role for role in self.roles if role.is_primary), None)

    def as_attributes(self) -> dict[str, Any]:
        """Build the ``user.*`` namespace for condition evaluation."""
        return {
            "id": self.id,
            "email": self.email,
            "username": self.username,
            "roles": [
                {"roleId": role.role_id, "roleName": role.role_name, "isPrimary": role.is_primary}
                for role in self.roles
            ],
            "roleNames": sorted(self.role_names),
            "departments": [
                {
                    "departmentId": dept.department_id,
                    "departmentName": dept.department_name,
                    "isPrimary": dept.is_primary,
                    "label": dept.label,
                }
                for dept in self.departments
            ],
        }


def coerce_user_id(user_or_id: Union["AbstractUser", int, str, None]) -> Any:
    """Accept a user instance or a raw primary key."""
    if user_or_id is None:
        return None
    return getattr(user_or_id, "pk", user_or_id)


def resolve_subject(user_or_id: Union["AbstractUser", int, str]) -> SubjectContext:
    """
    Resolve a user into its evaluation context.

    Args:
        user_or_id: User instance or primary key.

    Returns:
        The user's SubjectContext (read-only snapshot).

    Raises:
        NotFoundError: If the user does not exist.
    """
    user_id = coerce_user_id(user_or_id)
    user_model = get_user_model()
    if user_id is None:
        raise NotFoundError("User", user_id)
    try:
        user = user_model.objects.get(pk=user_id)
    except (user_model.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("User", user_id) from None

    roles = tuple(
        RoleMembership(role_id=role_id, role_name=role_name, is_primary=is_primary)
        for role_id, role_name, is_primary in UserRole.objects.filter(user_id=user.pk)
        .order_by("-is_primary", "role_id")
        .values_list("role_id", "role__name", "is_primary")
    )
    departments = tuple(
        DepartmentMembership(
            department_id=department_id,
            department_name=department_name,
            is_primary=is_primary,
            label=label,
        )
        for department_id, department_name, is_primary, label in UserDepartment.objects.filter(
            user_id=user.pk
        )
        .order_by("-is_primary", "department_id")
        .values_list("department_id", "department__name", "is_primary", "label")
    )

    logger.debug(
        "Resolved subject %s with %d roles and %d departments",
        user.pk,
        len(roles),
        len(departments),
    )
    username_field = getattr(user_model, "USERNAME_FIELD", "username")
    return SubjectContext(
        id=user.pk,
        email=getattr(user, "email", "") or "",
        username=str(getattr(user, username_field, "") or ""),
        roles=roles,
        departments=departments,
    )


__all__ = [
    "DepartmentMembership",
    "RoleMembership",
    "SubjectContext",
    "coerce_user_id",
    "resolve_subject",
]
