"""
Persistent access-control data for the helpdesk.

Roles, permissions and their links form the coarse RBAC layer; access
policies carry the attribute-based conditions; ticket statuses carry the
transition allow-lists consulted by the status workflow.
"""

from __future__ import annotations

import re

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models

from .exceptions import InvalidPermissionKeyError

PERMISSION_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+:[A-Za-z0-9_.-]+$")
SYSTEM_ROLE_NAMES = ("admin", "manager", "agent", "user")
WILDCARD = "*"


def validate_permission_key(key: str) -> str:
    """Return ``key`` stripped, or raise when it is not ``<resource>:<action>``."""
    normalized = (key or "").strip()
    if not PERMISSION_KEY_PATTERN.match(normalized):
        raise InvalidPermissionKeyError(
            f"Permission key '{key}' must look like '<resource>:<action>'"
        )
    return normalized


def split_permission_key(key: str) -> tuple[str, str]:
    resource, action = validate_permission_key(key).split(":", 1)
    return resource, action


class Role(models.Model):
    """RBAC role. System roles are created at bootstrap and keep their name."""

    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    is_system = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        app_label = "helpdesk_access"
        ordering = ["name"]

    def __str__(self):
        return self.name


class Permission(models.Model):
    key = models.CharField(max_length=150, unique=True)
    description = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        app_label = "helpdesk_access"
        ordering = ["key"]

    def __str__(self):
        return self.key

    def save(self, *args, **kwargs):
        self.key = validate_permission_key(self.key)
        super().save(*args, **kwargs)


class RolePermission(models.Model):
    role = models.ForeignKey(
        Role, on_delete=models.CASCADE, related_name="role_permissions"
    )
    permission = models.ForeignKey(
        Permission, on_delete=models.CASCADE, related_name="role_permissions"
    )

    class Meta:
        app_label = "helpdesk_access"
        unique_together = [("role", "permission")]

    def __str__(self):
        return f"{self.role_id}:{self.permission_id}"


class UserRole(models.Model):
    """Role held by a user. ``is_primary`` is for display only."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="helpdesk_roles",
    )
    role = models.ForeignKey(Role, on_delete=models.CASCADE, related_name="user_roles")
    is_primary = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        app_label = "helpdesk_access"
        unique_together = [("user", "role")]
        ordering = ["-is_primary", "role__name"]

    def __str__(self):
        return f"{self.user_id} -> {self.role_id}"


class Department(models.Model):
    class AssignmentStrategy(models.TextChoices):
        ROUND_ROBIN = "round_robin", "Round robin"
        LOAD_BALANCED = "load_balanced", "Load balanced"
        SKILL_BASED = "skill_based", "Skill based"
        MANUAL = "manual", "Manual"

    name = models.CharField(max_length=150, unique=True)
    description = models.TextField(blank=True)
    manager = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="managed_helpdesk_departments",
    )
    auto_assign_enabled = models.BooleanField(default=False)
    assignment_strategy = models.CharField(
        max_length=32,
        choices=AssignmentStrategy.choices,
        default=AssignmentStrategy.ROUND_ROBIN,
    )
    max_tickets_per_agent = models.PositiveIntegerField(default=10)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        app_label = "helpdesk_access"
        ordering = ["name"]

    def __str__(self):
        return self.name


class UserDepartment(models.Model):
    """Department membership; ``label`` is free text, not an RBAC role."""

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="helpdesk_departments",
    )
    department = models.ForeignKey(
        Department, on_delete=models.CASCADE, related_name="memberships"
    )
    is_primary = models.BooleanField(default=False)
    label = models.CharField(max_length=50, default="member")
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        app_label = "helpdesk_access"
        unique_together = [("user", "department")]
        ordering = ["-is_primary", "department__name"]

    def __str__(self):
        return f"{self.user_id} in {self.department_id} ({self.label})"


class PolicyEffect(models.TextChoices):
    ALLOW = "ALLOW", "Allow"
    DENY = "DENY", "Deny"


class SubjectType(models.TextChoices):
    ROLE = "ROLE", "Role"
    USER = "USER", "User"
    DEPARTMENT = "DEPARTMENT", "Department"


class AccessPolicy(models.Model):
    """
    Attribute-based access policy.

    ``subject_id`` stores the referenced role/user/department primary key as
    text; NULL targets every subject of ``subject_type``. ``conditions`` is a
    JSON condition tree, NULL meaning unconditional.
    """

    name = models.CharField(max_length=200, unique=True)
    description = models.TextField(blank=True)
    effect = models.CharField(
        max_length=5, choices=PolicyEffect.choices, default=PolicyEffect.ALLOW
    )
    subject_type = models.CharField(max_length=10, choices=SubjectType.choices)
    subject_id = models.CharField(max_length=64, null=True, blank=True)
    resource = models.CharField(max_length=100, default=WILDCARD)
    action = models.CharField(max_length=100, default=WILDCARD)
    conditions = models.JSONField(null=True, blank=True)
    is_active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        app_label = "helpdesk_access"
        ordering = ["id"]
        indexes = [
            models.Index(
                fields=["resource", "action", "is_active"],
                name="helpdesk_policy_lookup_idx",
            ),
        ]

    def __str__(self):
        return f"{self.name} ({self.effect})"

    def save(self, *args, **kwargs):
        # Lazy import to avoid circular imports during app loading.
        from .security.conditions import parse_condition

        if self.effect not in PolicyEffect.values:
            raise ValidationError({"effect": f"Unknown policy effect '{self.effect}'"})
        if self.subject_type not in SubjectType.values:
            raise ValidationError(
                {"subject_type": f"Unknown subject type '{self.subject_type}'"}
            )
        if self.subject_id is not None:
            self.subject_id = str(self.subject_id)
        parse_condition(self.conditions)
        super().save(*args, **kwargs)


class TicketStatus(models.Model):
    """
    Workflow status. Transitions reference target statuses by id and
    ``permitted_roles`` lists the (lower-cased) role names that may move a
    ticket away from this status.
    """

    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    color = models.CharField(max_length=30, blank=True)
    icon = models.CharField(max_length=50, blank=True)
    sort_order = models.PositiveIntegerField(default=0)
    is_closed = models.BooleanField(default=False)
    is_resolved = models.BooleanField(default=False)
    allowed_transitions = models.ManyToManyField(
        "self", symmetrical=False, blank=True, related_name="reachable_from"
    )
    permitted_roles = models.JSONField(default=list, blank=True)

    class Meta:
        app_label = "helpdesk_access"
        ordering = ["sort_order", "name"]
        verbose_name_plural = "ticket statuses"

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        self.permitted_roles = sorted(
            {str(role).strip().lower() for role in (self.permitted_roles or []) if role}
        )
        super().save(*args, **kwargs)


__all__ = [
    "AccessPolicy",
    "Department",
    "Permission",
    "PolicyEffect",
    "Role",
    "RolePermission",
    "SubjectType",
    "SYSTEM_ROLE_NAMES",
    "TicketStatus",
    "UserDepartment",
    "UserRole",
    "WILDCARD",
    "split_permission_key",
    "validate_permission_key",
]
