"""
Declarative bootstrap manifest for roles, permissions, departments,
ticket statuses and access policies.

A manifest is a JSON document::

    {
      "permissions": ["tickets:read", {"key": "tickets:write", "description": "..."}],
      "roles": [{"name": "agent", "is_system": true, "permissions": ["tickets:read"]}],
      "departments": [{"name": "IT Support", "manager_email": "sarah@company.com"}],
      "statuses": [{"name": "Open", "transitions": ["In Progress"], "permitted_roles": ["agent"]}],
      "policies": [{"name": "...", "subject_type": "ROLE", "subject_ref": "agent",
                    "resource": "tickets", "action": "read", "condition": {...}}],
      "memberships": [{"email": "john@company.com", "roles": ["agent"],
                       "primary_role": "agent", "departments": [{"name": "IT Support"}]}]
    }

Policy subjects and status transitions are referenced by name in the
manifest and stored by id. Applying a manifest is idempotent.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Union

from django.contrib.auth import get_user_model
from django.db import transaction

from ..config_proxy import get_setting
from ..exceptions import InvalidPermissionKeyError, MalformedConditionError, ManifestError
from ..models import Department, Role, SubjectType, TicketStatus, validate_permission_key
from .conditions import condition_to_dict, parse_condition
from .policies import policy_store
from .roles import add_department_member, assign_role, ensure_permission, grant_permission
from .transitions import status_transition_gate

logger = logging.getLogger(__name__)

DEFAULT_MANIFEST_PATH = Path(__file__).resolve().parent.parent / "manifests" / "default.json"


@dataclass(frozen=True)
class PermissionSeed:
    key: str
    description: str = ""


@dataclass(frozen=True)
class RoleSeed:
    name: str
    description: str = ""
    is_system: bool = False
    permissions: tuple[str, ...] = ()


@dataclass(frozen=True)
class DepartmentSeed:
    name: str
    description: str = ""
    manager_email: Optional[str] = None
    auto_assign_enabled: bool = False
    assignment_strategy: str = Department.AssignmentStrategy.ROUND_ROBIN
    max_tickets_per_agent: int = 10


@dataclass(frozen=True)
class StatusSeed:
    name: str
    description: str = ""
    color: str = ""
    icon: str = ""
    sort_order: int = 0
    is_closed: bool = False
    is_resolved: bool = False
    transitions: tuple[Union[str, int], ...] = ()
    permitted_roles: tuple[str, ...] = ()


@dataclass(frozen=True)
class PolicySeed:
    name: str
    subject_type: str
    resource: str
    action: str
    subject_ref: Optional[str] = None
    effect: str = "ALLOW"
    description: str = ""
    condition: Optional[dict[str, Any]] = None
    is_active: bool = True


@dataclass(frozen=True)
class DepartmentMembershipSeed:
    name: str
    label: str = "member"
    is_primary: bool = False


@dataclass(frozen=True)
class MembershipSeed:
    email: str
    roles: tuple[str, ...] = ()
    primary_role: Optional[str] = None
    departments: tuple[DepartmentMembershipSeed, ...] = ()


@dataclass
class Manifest:
    permissions: list[PermissionSeed] = field(default_factory=list)
    roles: list[RoleSeed] = field(default_factory=list)
    departments: list[DepartmentSeed] = field(default_factory=list)
    statuses: list[StatusSeed] = field(default_factory=list)
    policies: list[PolicySeed] = field(default_factory=list)
    memberships: list[MembershipSeed] = field(default_factory=list)
    source: Optional[str] = None


@dataclass
class ManifestSummary:
    permissions: int = 0
    roles: int = 0
    departments: int = 0
    statuses: int = 0
    policies_created: int = 0
    policies_updated: int = 0
    memberships: int = 0
    skipped: list[str] = field(default_factory=list)
    dry_run: bool = False

    def as_dict(self) -> dict[str, Any]:
        return {
            "permissions": self.permissions,
            "roles": self.roles,
            "departments": self.departments,
            "statuses": self.statuses,
            "policies_created": self.policies_created,
            "policies_updated": self.policies_updated,
            "memberships": self.memberships,
            "skipped": list(self.skipped),
            "dry_run": self.dry_run,
        }


# --------------------------------------------------------------------------- #
# Parsing
# --------------------------------------------------------------------------- #


def _entries(payload: dict[str, Any], section: str) -> list[Any]:
    entries = payload.get(section, [])
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise ManifestError(f"Manifest section '{section}' must be a list")
    return entries


def _require_object(entry: Any, section: str) -> dict[str, Any]:
    if not isinstance(entry, dict):
        raise ManifestError(f"Entries of '{section}' must be objects, got {entry!r}")
    return entry


def _require_name(entry: dict[str, Any], section: str, key: str = "name") -> str:
    value = entry.get(key)
    if not value or not isinstance(value, str) or not value.strip():
        raise ManifestError(f"Entry in '{section}' is missing '{key}'")
    return value.strip()


def _coerce_list(value: Any) -> tuple:
    if value is None:
        return ()
    if isinstance(value, (list, tuple, set)):
        return tuple(item for item in value if item is not None)
    return (value,)


def _permission_key(value: Any, where: str) -> str:
    try:
        return validate_permission_key(str(value))
    except InvalidPermissionKeyError as exc:
        raise ManifestError(f"{where}: {exc}") from None


def _parse_permission(entry: Any) -> PermissionSeed:
    if isinstance(entry, str):
        key = _permission_key(entry, "permissions")
        return PermissionSeed(key=key, description=key.replace(":", " "))
    entry = _require_object(entry, "permissions")
    key = _permission_key(_require_name(entry, "permissions", "key"), "permissions")
    return PermissionSeed(key=key, description=str(entry.get("description") or key.replace(":", " ")))


def _parse_role(entry: Any) -> RoleSeed:
    entry = _require_object(entry, "roles")
    name = _require_name(entry, "roles")
    return RoleSeed(
        name=name,
        description=str(entry.get("description", "")),
        is_system=bool(entry.get("is_system", False)),
        permissions=tuple(
            _permission_key(key, f"role '{name}'") for key in _coerce_list(entry.get("permissions"))
        ),
    )


def _parse_department(entry: Any) -> DepartmentSeed:
    entry = _require_object(entry, "departments")
    strategy = entry.get("assignment_strategy") or Department.AssignmentStrategy.ROUND_ROBIN
    if strategy not in Department.AssignmentStrategy.values:
        raise ManifestError(f"Unknown assignment strategy '{strategy}'")
    try:
        max_tickets = int(entry.get("max_tickets_per_agent", 10))
    except (TypeError, ValueError):
        raise ManifestError("max_tickets_per_agent must be an integer") from None
    return DepartmentSeed(
        name=_require_name(entry, "departments"),
        description=str(entry.get("description", "")),
        manager_email=entry.get("manager_email") or None,
        auto_assign_enabled=bool(entry.get("auto_assign_enabled", False)),
        assignment_strategy=strategy,
        max_tickets_per_agent=max_tickets,
    )


def _parse_status(entry: Any) -> StatusSeed:
    entry = _require_object(entry, "statuses")
    name = _require_name(entry, "statuses")
    transitions = _coerce_list(entry.get("transitions"))
    for target in transitions:
        if isinstance(target, bool) or not isinstance(target, (str, int)):
            raise ManifestError(f"Status '{name}' has an invalid transition target {target!r}")
    try:
        sort_order = int(entry.get("sort_order", 0))
    except (TypeError, ValueError):
        raise ManifestError(f"Status '{name}' has a non-integer sort_order") from None
    return StatusSeed(
        name=name,
        description=str(entry.get("description", "")),
        color=str(entry.get("color", "")),
        icon=str(entry.get("icon", "")),
        sort_order=sort_order,
        is_closed=bool(entry.get("is_closed", False)),
        is_resolved=bool(entry.get("is_resolved", False)),
        transitions=transitions,
        permitted_roles=tuple(str(role).lower() for role in _coerce_list(entry.get("permitted_roles"))),
    )


def _parse_policy(entry: Any) -> PolicySeed:
    entry = _require_object(entry, "policies")
    name = _require_name(entry, "policies")
    subject_type = str(entry.get("subject_type") or "").upper()
    if subject_type not in SubjectType.values:
        raise ManifestError(f"Policy '{name}' has unknown subject_type '{subject_type}'")
    effect = str(entry.get("effect") or "ALLOW").upper()
    if effect not in ("ALLOW", "DENY"):
        raise ManifestError(f"Policy '{name}' has unknown effect '{effect}'")
    try:
        condition = condition_to_dict(parse_condition(entry.get("condition")))
    except MalformedConditionError as exc:
        raise ManifestError(f"Policy '{name}': {exc}") from None
    subject_ref = entry.get("subject_ref")
    return PolicySeed(
        name=name,
        subject_type=subject_type,
        subject_ref=str(subject_ref) if subject_ref not in (None, "") else None,
        resource=str(entry.get("resource") or "*"),
        action=str(entry.get("action") or "*"),
        effect=effect,
        description=str(entry.get("description", "")),
        condition=condition,
        is_active=bool(entry.get("is_active", True)),
    )


def _parse_membership(entry: Any) -> MembershipSeed:
    entry = _require_object(entry, "memberships")
    departments = []
    for dept in _coerce_list(entry.get("departments")):
        if isinstance(dept, str):
            departments.append(DepartmentMembershipSeed(name=dept))
            continue
        dept = _require_object(dept, "memberships.departments")
        departments.append(
            DepartmentMembershipSeed(
                name=_require_name(dept, "memberships.departments"),
                label=str(dept.get("label") or "member"),
                is_primary=bool(dept.get("is_primary", False)),
            )
        )
    return MembershipSeed(
        email=_require_name(entry, "memberships", "email"),
        roles=tuple(str(role) for role in _coerce_list(entry.get("roles"))),
        primary_role=entry.get("primary_role") or None,
        departments=tuple(departments),
    )


def parse_manifest(payload: Any, source: Optional[str] = None) -> Manifest:
    """
    Validate a decoded manifest document.

    Raises:
        ManifestError: If the document does not have the expected shape.
    """
    if not isinstance(payload, dict):
        raise ManifestError("Manifest must be a JSON object")
    manifest = Manifest(
        permissions=[_parse_permission(item) for item in _entries(payload, "permissions")],
        roles=[_parse_role(item) for item in _entries(payload, "roles")],
        departments=[_parse_department(item) for item in _entries(payload, "departments")],
        statuses=[_parse_status(item) for item in _entries(payload, "statuses")],
        policies=[_parse_policy(item) for item in _entries(payload, "policies")],
        memberships=[_parse_membership(item) for item in _entries(payload, "memberships")],
        source=source,
    )

    for status in manifest.statuses:
        if any(target == status.name for target in status.transitions):
            raise ManifestError(f"Status '{status.name}' cannot transition to itself")
    names = [policy.name for policy in manifest.policies]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        raise ManifestError(f"Duplicate policy names: {', '.join(duplicates)}")
    return manifest


def load_manifest(path: Optional[Union[str, Path]] = None) -> Manifest:
    """
    Read and parse a manifest file.

    Args:
        path: Manifest location. Defaults to
            ``bootstrap_settings.manifest_path`` and then the bundled manifest.
    """
    if path is None:
        path = get_setting("bootstrap_settings.manifest_path", None) or DEFAULT_MANIFEST_PATH
    manifest_path = Path(path)
    try:
        content = manifest_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ManifestError(f"Could not read manifest {manifest_path}: {exc}") from None
    try:
        payload = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ManifestError(f"Invalid JSON in manifest {manifest_path}: {exc}") from None
    return parse_manifest(payload, source=str(manifest_path))


# --------------------------------------------------------------------------- #
# Applying
# --------------------------------------------------------------------------- #


def _find_user(email: str):
    user_model = get_user_model()
    return user_model.objects.filter(email__iexact=email).first()


def _resolve_subject_id(seed: PolicySeed) -> tuple[bool, Optional[str]]:
    """Return ``(found, subject_id)`` for a policy seed's ``subject_ref``."""
    if seed.subject_ref is None:
        return True, None
    if seed.subject_type == SubjectType.ROLE:
        role = Role.objects.filter(name__iexact=seed.subject_ref).first()
        if role is None:
            raise ManifestError(f"Policy '{seed.name}' references unknown role '{seed.subject_ref}'")
        return True, str(role.pk)
    if seed.subject_type == SubjectType.DEPARTMENT:
        department = Department.objects.filter(name__iexact=seed.subject_ref).first()
        if department is None:
            raise ManifestError(
                f"Policy '{seed.name}' references unknown department '{seed.subject_ref}'"
            )
        return True, str(department.pk)
    user = _find_user(seed.subject_ref)
    if user is None:
        return False, None
    return True, str(user.pk)


def _resolve_transition_targets(seed: StatusSeed, by_name: dict[str, TicketStatus]) -> list[int]:
    target_ids = []
    for target in seed.transitions:
        if isinstance(target, int):
            target_ids.append(target)
            continue
        if target.strip().isdigit():
            target_ids.append(int(target.strip()))
            continue
        status = by_name.get(target.lower())
        if status is None:
            raise ManifestError(
                f"Status '{seed.name}' transitions to unknown status '{target}'"
            )
        target_ids.append(status.pk)
    return target_ids


def _upsert_named(model, name: str, defaults: dict[str, Any]):
    """Update the row whose name matches ``name`` case-insensitively, or create it."""
    instance = model.objects.filter(name__iexact=name).first()
    if instance is None:
        return model.objects.create(name=name, **defaults)
    for field_name, value in defaults.items():
        setattr(instance, field_name, value)
    instance.save()
    return instance


def _apply(manifest: Manifest, summary: ManifestSummary) -> None:
    for seed in manifest.permissions:
        ensure_permission(seed.key, seed.description)
        summary.permissions += 1

    for seed in manifest.roles:
        role = _upsert_named(
            Role, seed.name, {"description": seed.description, "is_system": seed.is_system}
        )
        for key in seed.permissions:
            grant_permission(role, key)
        summary.roles += 1

    for seed in manifest.departments:
        manager = _find_user(seed.manager_email) if seed.manager_email else None
        if seed.manager_email and manager is None:
            logger.warning(
                "Manager %s of department '%s' not found; skipping", seed.manager_email, seed.name
            )
            summary.skipped.append(f"department_manager:{seed.manager_email}")
        defaults = {
            "description": seed.description,
            "auto_assign_enabled": seed.auto_assign_enabled,
            "assignment_strategy": seed.assignment_strategy,
            "max_tickets_per_agent": seed.max_tickets_per_agent,
        }
        if manager is not None:
            defaults["manager"] = manager
        _upsert_named(Department, seed.name, defaults)
        summary.departments += 1

    by_name: dict[str, TicketStatus] = {}
    for seed in manifest.statuses:
        status, _ = TicketStatus.objects.update_or_create(
            name=seed.name,
            defaults={
                "description": seed.description,
                "color": seed.color,
                "icon": seed.icon,
                "sort_order": seed.sort_order,
                "is_closed": seed.is_closed,
                "is_resolved": seed.is_resolved,
                "permitted_roles": list(seed.permitted_roles),
            },
        )
        by_name[status.name.lower()] = status
        summary.statuses += 1
    for existing in TicketStatus.objects.exclude(name__in=[s.name for s in manifest.statuses]):
        by_name.setdefault(existing.name.lower(), existing)
    for seed in manifest.statuses:
        status = by_name[seed.name.lower()]
        status_transition_gate.set_transitions(status, _resolve_transition_targets(seed, by_name))

    for seed in manifest.policies:
        found, subject_id = _resolve_subject_id(seed)
        if not found:
            logger.warning(
                "Policy '%s' references unknown user '%s'; skipping", seed.name, seed.subject_ref
            )
            summary.skipped.append(f"policy:{seed.name}")
            continue
        _, created = policy_store.upsert_policy(
            seed.name,
            description=seed.description,
            effect=seed.effect,
            subject_type=seed.subject_type,
            subject_id=subject_id,
            resource=seed.resource,
            action=seed.action,
            conditions=seed.condition,
            is_active=seed.is_active,
        )
        if created:
            summary.policies_created += 1
        else:
            summary.policies_updated += 1

    for seed in manifest.memberships:
        user = _find_user(seed.email)
        if user is None:
            logger.warning("User %s not found; skipping memberships", seed.email)
            summary.skipped.append(f"user:{seed.email}")
            continue
        primary = (seed.primary_role or "").lower()
        for role_name in seed.roles:
            assign_role(user, role_name, is_primary=role_name.lower() == primary)
        for dept in seed.departments:
            add_department_member(user, dept.name, label=dept.label, is_primary=dept.is_primary)
        summary.memberships += 1


def apply_manifest(manifest: Manifest, *, dry_run: bool = False) -> ManifestSummary:
    """
    Apply ``manifest`` in a single transaction.

    With ``dry_run`` every change is rolled back; the summary still reports
    what would have been written.
    """
    summary = ManifestSummary(dry_run=dry_run)
    with transaction.atomic():
        _apply(manifest, summary)
        if dry_run:
            transaction.set_rollback(True)
    logger.info(
        "Manifest %s applied%s: %s",
        manifest.source or "<inline>",
        " (dry run)" if dry_run else "",
        summary.as_dict(),
    )
    return summary


__all__ = [
    "DEFAULT_MANIFEST_PATH",
    "DepartmentMembershipSeed",
    "DepartmentSeed",
    "Manifest",
    "ManifestSummary",
    "MembershipSeed",
    "PermissionSeed",
    "PolicySeed",
    "RoleSeed",
    "StatusSeed",
    "apply_manifest",
    "load_manifest",
    "parse_manifest",
]
