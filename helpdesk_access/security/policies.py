"""
Access policy store.

Policies bind an effect (ALLOW/DENY) to a subject selector (role, user or
department, optionally wildcarded), a resource, an action and an optional
condition tree. The store selects the policies applicable to a request and
owns every write, validating condition trees before anything is persisted.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Q, QuerySet

from ..exceptions import DuplicateNameError, NotFoundError
from ..models import WILDCARD, AccessPolicy, PolicyEffect, SubjectType
from .conditions import condition_to_dict, parse_condition
from .subjects import SubjectContext

logger = logging.getLogger(__name__)

POLICY_FIELDS = (
    "name",
    "description",
    "effect",
    "subject_type",
    "subject_id",
    "resource",
    "action",
    "conditions",
    "is_active",
)
REQUIRED_FIELDS = ("name", "subject_type", "resource", "action")
UPSERT_REQUIRED_FIELDS = ("effect", "subject_type", "resource", "action")
UPSERT_RESET_VALUES = {
    "description": "",
    "subject_id": None,
    "conditions": None,
    "is_active": True,
}


def _normalize_choice(value: Any, choices: Iterable[str], field_name: str) -> str:
    normalized = str(value or "").strip().upper()
    if normalized not in choices:
        raise ValidationError({field_name: f"'{value}' is not one of {sorted(choices)}"})
    return normalized


def _normalize_token(value: Any, field_name: str) -> str:
    normalized = str(value if value is not None else "").strip()
    if not normalized:
        raise ValidationError({field_name: "This field cannot be blank."})
    return normalized


def normalize_policy_fields(data: dict[str, Any]) -> dict[str, Any]:
    """
    Validate and canonicalize policy attributes before they are written.

    Raises:
        ValidationError: For unknown fields, blank names or bad enum values.
        MalformedConditionError: If ``conditions`` is not a valid tree.
    """
    unknown = set(data) - set(POLICY_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown policy field(s): {', '.join(sorted(unknown))}")

    normalized: dict[str, Any] = {}
    for key, value in data.items():
        if key == "name":
            normalized[key] = _normalize_token(value, "name")
        elif key == "description":
            normalized[key] = str(value or "")
        elif key == "effect":
            normalized[key] = _normalize_choice(value, PolicyEffect.values, "effect")
        elif key == "subject_type":
            normalized[key] = _normalize_choice(value, SubjectType.values, "subject_type")
        elif key == "subject_id":
            normalized[key] = None if value in (None, "") else str(value)
        elif key in ("resource", "action"):
            normalized[key] = _normalize_token(value, key)
        elif key == "conditions":
            normalized[key] = condition_to_dict(parse_condition(value))
        elif key == "is_active":
            normalized[key] = bool(value)
    return normalized


class PolicyStore:
    """ORM-backed policy collection."""

    # --- Selection ---

    def _subject_filter(self, subject: SubjectContext) -> Q:
        query = Q(subject_type=SubjectType.USER, subject_id=str(subject.id)) | Q(
            subject_type=SubjectType.USER, subject_id__isnull=True
        )
        if subject.role_ids:
            query |= Q(
                subject_type=SubjectType.ROLE,
                subject_id__in=[str(role_id) for role_id in subject.role_ids],
            ) | Q(subject_type=SubjectType.ROLE, subject_id__isnull=True)
        if subject.department_ids:
            query |= Q(
                subject_type=SubjectType.DEPARTMENT,
                subject_id__in=[str(dept_id) for dept_id in subject.department_ids],
            ) | Q(subject_type=SubjectType.DEPARTMENT, subject_id__isnull=True)
        return query

    def find_applicable(
        self, subject: SubjectContext, resource: str, action: str
    ) -> list[AccessPolicy]:
        """
        Return the active policies that apply to ``subject`` for
        ``resource``/``action``, ordered by id.
        """
        queryset = (
            AccessPolicy.objects.filter(
                is_active=True,
                resource__in={resource, WILDCARD},
                action__in={action, WILDCARD},
            )
            .filter(self._subject_filter(subject))
            .order_by("id")
        )
        return list(queryset)

    @staticmethod
    def policy_applies(
        policy: AccessPolicy, subject: SubjectContext, resource: str, action: str
    ) -> bool:
        """In-memory counterpart of ``find_applicable`` for a single policy."""
        if not policy.is_active:
            return False
        if policy.resource not in (resource, WILDCARD):
            return False
        if policy.action not in (action, WILDCARD):
            return False

        subject_id = policy.subject_id
        if policy.subject_type == SubjectType.USER:
            return subject_id is None or subject_id == str(subject.id)
        if policy.subject_type == SubjectType.ROLE:
            held = {str(role_id) for role_id in subject.role_ids}
            return bool(held) if subject_id is None else subject_id in held
        if policy.subject_type == SubjectType.DEPARTMENT:
            held = {str(dept_id) for dept_id in subject.department_ids}
            return bool(held) if subject_id is None else subject_id in held
        return False

    # --- Reads ---

    def list_policies(self, *, active_only: bool = False) -> QuerySet:
        queryset = AccessPolicy.objects.all().order_by("id")
        if active_only:
            queryset = queryset.filter(is_active=True)
        return queryset

    def get_policy(self, policy_id: Any) -> AccessPolicy:
        try:
            return AccessPolicy.objects.get(pk=policy_id)
        except (AccessPolicy.DoesNotExist, ValueError, TypeError):
            raise NotFoundError("AccessPolicy", policy_id) from None

    def get_policy_by_name(self, name: str) -> AccessPolicy:
        try:
            return AccessPolicy.objects.get(name=name)
        except AccessPolicy.DoesNotExist:
            raise NotFoundError("AccessPolicy", name) from None

    # --- Writes ---

    def create_policy(self, **fields: Any) -> AccessPolicy:
        """Create a policy; a name that is already taken is an error."""
        missing = [key for key in REQUIRED_FIELDS if fields.get(key) in (None, "")]
        if missing:
            raise ValidationError(f"{', '.join(missing)} are required")
        data = normalize_policy_fields(fields)
        data.setdefault("effect", PolicyEffect.ALLOW)
        data.setdefault("is_active", True)

        if AccessPolicy.objects.filter(name=data["name"]).exists():
            raise DuplicateNameError("AccessPolicy", data["name"])
        try:
            with transaction.atomic():
                policy = AccessPolicy.objects.create(**data)
        except IntegrityError:
            raise DuplicateNameError("AccessPolicy", data["name"]) from None
        logger.info("Access policy '%s' created (%s)", policy.name, policy.effect)
        return policy

    def upsert_policy(self, name: str, **fields: Any) -> tuple[AccessPolicy, bool]:
        """
        Create or replace the policy named ``name``.

        The definition replaces the stored row as a whole: omitted optional
        fields are reset (empty description, wildcard subject, no conditions,
        active) rather than kept. Applying the same definition twice leaves
        exactly one stored policy.

        Returns:
            Tuple of (policy, created).
        """
        data = normalize_policy_fields({"name": name, **fields})
        name = data.pop("name")
        missing = [key for key in UPSERT_REQUIRED_FIELDS if key not in data]
        if missing:
            raise ValidationError(f"{', '.join(missing)} are required")
        data = {**UPSERT_RESET_VALUES, **data}

        with transaction.atomic():
            policy, created = AccessPolicy.objects.update_or_create(
                name=name, defaults=data
            )
        logger.info(
            "Access policy '%s' %s", policy.name, "created" if created else "updated"
        )
        return policy, created

    def update_policy(self, policy_id: Any, **changes: Any) -> AccessPolicy:
        """Apply partial changes to an existing policy."""
        policy = self.get_policy(policy_id)
        data = normalize_policy_fields(changes)
        new_name = data.get("name")
        if new_name and new_name != policy.name:
            if AccessPolicy.objects.filter(name=new_name).exclude(pk=policy.pk).exists():
                raise DuplicateNameError("AccessPolicy", new_name)
        for key, value in data.items():
            setattr(policy, key, value)
        try:
            with transaction.atomic():
                policy.save()
        except IntegrityError:
            raise DuplicateNameError("AccessPolicy", policy.name) from None
        logger.info("Access policy '%s' updated", policy.name)
        return policy

    def set_active(self, policy_id: Any, is_active: bool) -> AccessPolicy:
        return self.update_policy(policy_id, is_active=is_active)

    def delete_policy(self, policy_id: Any) -> None:
        policy = self.get_policy(policy_id)
        name = policy.name
        policy.delete()
        logger.info("Access policy '%s' deleted", name)

    def parsed_conditions(self, policy: AccessPolicy):
        """Parse the stored conditions of ``policy``."""
        return parse_condition(policy.conditions, path=f"policy[{policy.name}]")


# Global singleton instance
policy_store = PolicyStore()

__all__ = [
    "POLICY_FIELDS",
    "PolicyStore",
    "normalize_policy_fields",
    "policy_store",
]
