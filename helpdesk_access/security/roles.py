"""
Role, permission and membership administration.

These helpers own every write to the RBAC tables. Permission cache
invalidation happens through the model signals in ``security.signals``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Union

from django.contrib.auth import get_user_model
from django.db import IntegrityError, transaction

from ..exceptions import DuplicateNameError, NotFoundError, SystemRoleError
from ..models import (
    SYSTEM_ROLE_NAMES,
    Department,
    Permission,
    Role,
    RolePermission,
    UserDepartment,
    UserRole,
    validate_permission_key,
)
from .subjects import coerce_user_id

logger = logging.getLogger(__name__)

RoleRef = Union[Role, int, str]


def get_role(role: RoleRef) -> Role:
    """Look a role up by instance, id or (case-insensitive) name."""
    if isinstance(role, Role):
        return role
    try:
        if isinstance(role, int) or (isinstance(role, str) and role.isdigit()):
            return Role.objects.get(pk=int(role))
        return Role.objects.get(name__iexact=str(role).strip())
    except Role.DoesNotExist:
        raise NotFoundError("Role", role) from None


def get_department(department: Union[Department, int, str]) -> Department:
    if isinstance(department, Department):
        return department
    try:
        if isinstance(department, int) or (
            isinstance(department, str) and department.isdigit()
        ):
            return Department.objects.get(pk=int(department))
        return Department.objects.get(name__iexact=str(department).strip())
    except Department.DoesNotExist:
        raise NotFoundError("Department", department) from None


def _get_user(user: Any):
    user_model = get_user_model()
    if isinstance(user, user_model):
        return user
    user_id = coerce_user_id(user)
    try:
        return user_model.objects.get(pk=user_id)
    except (user_model.DoesNotExist, ValueError, TypeError):
        raise NotFoundError("User", user_id) from None


def _is_protected(role: Role) -> bool:
    return role.is_system or role.name.lower() in SYSTEM_ROLE_NAMES


# --- Roles ---


def create_role(name: str, description: str = "", *, is_system: bool = False) -> Role:
    name = (name or "").strip()
    if not name:
        raise ValueError("Role name cannot be blank")
    if Role.objects.filter(name__iexact=name).exists():
        raise DuplicateNameError("Role", name)
    try:
        with transaction.atomic():
            role = Role.objects.create(
                name=name, description=description, is_system=is_system
            )
    except IntegrityError:
        raise DuplicateNameError("Role", name) from None
    logger.info("Role '%s' created", role.name)
    return role


def rename_role(role: RoleRef, new_name: str, description: Optional[str] = None) -> Role:
    instance = get_role(role)
    new_name = (new_name or "").strip()
    if not new_name:
        raise ValueError("Role name cannot be blank")
    if new_name != instance.name and _is_protected(instance):
        raise SystemRoleError(f"System role '{instance.name}' cannot be renamed")
    if Role.objects.filter(name__iexact=new_name).exclude(pk=instance.pk).exists():
        raise DuplicateNameError("Role", new_name)
    instance.name = new_name
    if description is not None:
        instance.description = description
    instance.save()
    return instance


def delete_role(role: RoleRef) -> None:
    instance = get_role(role)
    if _is_protected(instance):
        raise SystemRoleError(f"System role '{instance.name}' cannot be deleted")
    name = instance.name
    instance.delete()
    logger.info("Role '%s' deleted", name)


# --- Permissions ---


def ensure_permission(key: str, description: str = "") -> Permission:
    """Return the permission for ``key``, creating it when missing."""
    key = validate_permission_key(key)
    permission, created = Permission.objects.get_or_create(
        key=key, defaults={"description": description}
    )
    if not created and description and permission.description != description:
        permission.description = description
        permission.save(update_fields=["description"])
    return permission


def delete_permission(key: str) -> None:
    """Delete the permission ``key`` together with every grant of it."""
    key = validate_permission_key(key)
    deleted, _ = Permission.objects.filter(key=key).delete()
    if not deleted:
        raise NotFoundError("Permission", key)
    logger.info("Permission '%s' deleted", key)


def grant_permission(role: RoleRef, key: str) -> bool:
    """Link ``key`` to ``role``. Returns True when a new grant was created."""
    instance = get_role(role)
    permission = ensure_permission(key)
    _, created = RolePermission.objects.get_or_create(role=instance, permission=permission)
    return created


def revoke_permission(role: RoleRef, key: str) -> bool:
    instance = get_role(role)
    deleted, _ = RolePermission.objects.filter(
        role=instance, permission__key=validate_permission_key(key)
    ).delete()
    return bool(deleted)


# --- Memberships ---


def assign_role(user: Any, role: RoleRef, *, is_primary: bool = False) -> UserRole:
    """
    Give ``role`` to ``user``. A primary assignment demotes the user's
    previous primary role, so at most one role is primary.
    """
    instance = get_role(role)
    user_obj = _get_user(user)
    with transaction.atomic():
        if is_primary:
            UserRole.objects.filter(user=user_obj, is_primary=True).exclude(
                role=instance
            ).update(is_primary=False)
        membership, _ = UserRole.objects.update_or_create(
            user=user_obj, role=instance, defaults={"is_primary": is_primary}
        )
    return membership


def revoke_role(user: Any, role: RoleRef) -> bool:
    instance = get_role(role)
    deleted, _ = UserRole.objects.filter(
        user_id=coerce_user_id(user), role=instance
    ).delete()
    return bool(deleted)


def add_department_member(
    user: Any,
    department: Union[Department, int, str],
    *,
    label: str = "member",
    is_primary: bool = False,
) -> UserDepartment:
    instance = get_department(department)
    user_obj = _get_user(user)
    with transaction.atomic():
        if is_primary:
            UserDepartment.objects.filter(user=user_obj, is_primary=True).exclude(
                department=instance
            ).update(is_primary=False)
        membership, _ = UserDepartment.objects.update_or_create(
            user=user_obj,
            department=instance,
            defaults={"label": label or "member", "is_primary": is_primary},
        )
    return membership


def remove_department_member(user: Any, department: Union[Department, int, str]) -> bool:
    instance = get_department(department)
    deleted, _ = UserDepartment.objects.filter(
        user_id=coerce_user_id(user), department=instance
    ).delete()
    return bool(deleted)


__all__ = [
    "add_department_member",
    "assign_role",
    "create_role",
    "delete_permission",
    "delete_role",
    "ensure_permission",
    "get_department",
    "get_role",
    "grant_permission",
    "remove_department_member",
    "rename_role",
    "revoke_permission",
    "revoke_role",
]
