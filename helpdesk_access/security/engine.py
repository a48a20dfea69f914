"""
Decision engine for access requests.

``authorize`` combines the subject resolver, the policy store and the
condition evaluator:

1. resolve the subject (unknown users raise ``NotFoundError``);
2. select the applicable policies;
3. evaluate each policy's condition against ``resource.*``/``user.*``;
4. any matching DENY wins (deny overrides allow);
5. otherwise any matching ALLOW grants access;
6. otherwise access is denied by default.

When several policies of the winning effect match, the lowest id is reported
so audit trails stay stable.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Optional, Union

from ..config_proxy import get_setting
from ..exceptions import MalformedConditionError
from ..models import AccessPolicy, PolicyEffect
from .conditions import EvaluationContext, evaluate
from .permissions import PermissionIndex, permission_index
from .policies import PolicyStore, policy_store
from .subjects import SubjectContext, resolve_subject

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractUser

logger = logging.getLogger(__name__)

REASON_POLICY_ALLOW = "policy_allow"
REASON_POLICY_DENY = "policy_deny"
REASON_NO_MATCH = "no_matching_policy"
REASON_MALFORMED = "malformed_condition"


def singular_namespace(name: str) -> str:
    """Singular form of a plural resource type (``policies`` -> ``policy``)."""
    if name.endswith("ies") and len(name) > 3:
        return name[:-3] + "y"
    if name.endswith(("sses", "xes", "ches", "shes")):
        return name[:-2]
    if name.endswith(("ss", "us", "is")) or not name.endswith("s"):
        return name
    return name[:-1]


@dataclass(frozen=True)
class Decision:
    """Outcome of an access request. ``matched_policy`` is for audit only."""

    allowed: bool
    matched_policy: Optional[AccessPolicy] = None
    reason: str = REASON_NO_MATCH

    def __bool__(self) -> bool:
        return self.allowed


@dataclass
class PolicyEvaluation:
    """Outcome of a single applicable policy during evaluation."""

    policy: AccessPolicy
    matched: bool
    error: Optional[str] = None


@dataclass
class DecisionExplanation:
    """Comprehensive explanation of an access decision."""

    decision: Decision
    subject: SubjectContext
    resource: str
    action: str
    evaluations: list[PolicyEvaluation] = field(default_factory=list)
    permission_keys: frozenset[str] = field(default_factory=frozenset)


class DecisionEngine:
    """Central access decision point."""

    def __init__(
        self,
        store: Optional[PolicyStore] = None,
        index: Optional[PermissionIndex] = None,
        resolver: Callable[[Any], SubjectContext] = resolve_subject,
    ) -> None:
        self.store = store or policy_store
        self.index = index or permission_index
        self.resolver = resolver

    # --- Context building ---

    def resource_alias(self, resource: str) -> Optional[str]:
        """Namespace bound to the resource attributes besides ``resource``."""
        aliases = get_setting("access_settings.resource_aliases", {}) or {}
        alias = aliases.get(resource)
        if alias:
            return alias
        if not resource or resource == "*":
            return None
        return singular_namespace(resource)

    def build_context(
        self, subject: SubjectContext, resource: str, resource_attrs: Any = None
    ) -> EvaluationContext:
        return EvaluationContext.build(
            resource_attrs=resource_attrs,
            user_attrs=subject.as_attributes(),
            resource_alias=self.resource_alias(resource),
            in_scalar_mode=str(get_setting("access_settings.in_scalar_mode", "coerce")),
        )

    # --- Evaluation ---

    def _evaluate(
        self,
        subject: SubjectContext,
        resource: str,
        action: str,
        resource_attrs: Any,
    ) -> tuple[Decision, list[PolicyEvaluation]]:
        policies = self.store.find_applicable(subject, resource, action)
        context = self.build_context(subject, resource, resource_attrs)

        evaluations: list[PolicyEvaluation] = []
        first_allow: Optional[AccessPolicy] = None
        first_deny: Optional[AccessPolicy] = None
        malformed: Optional[AccessPolicy] = None

        for policy in policies:
            try:
                condition = self.store.parsed_conditions(policy)
            except MalformedConditionError as exc:
                logger.error(
                    "Stored conditions of policy '%s' are malformed: %s", policy.name, exc
                )
                evaluations.append(PolicyEvaluation(policy, matched=False, error=str(exc)))
                if malformed is None:
                    malformed = policy
                continue

            matched = evaluate(condition, context)
            evaluations.append(PolicyEvaluation(policy, matched=matched))
            if not matched:
                continue
            if policy.effect == PolicyEffect.DENY:
                if first_deny is None:
                    first_deny = policy
            elif first_allow is None:
                first_allow = policy

        if malformed is not None:
            decision = Decision(False, malformed, REASON_MALFORMED)
        elif first_deny is not None:
            decision = Decision(False, first_deny, REASON_POLICY_DENY)
        elif first_allow is not None:
            decision = Decision(True, first_allow, REASON_POLICY_ALLOW)
        else:
            decision = Decision(False, None, REASON_NO_MATCH)
        return decision, evaluations

    def _audit(
        self, subject: SubjectContext, resource: str, action: str, decision: Decision
    ) -> None:
        log_all = bool(get_setting("access_settings.decision_log_all", False))
        log_denies = bool(get_setting("access_settings.decision_log_denies", True))
        if not (log_all or (log_denies and not decision.allowed)):
            return
        policy_name = decision.matched_policy.name if decision.matched_policy else None
        logger.info(
            "Access %s: user=%s resource=%s action=%s reason=%s policy=%s",
            "granted" if decision.allowed else "denied",
            subject.id,
            resource,
            action,
            decision.reason,
            policy_name,
        )

    # --- Public API ---

    def authorize_subject(
        self,
        subject: SubjectContext,
        resource: str,
        action: str,
        resource_attrs: Any = None,
    ) -> Decision:
        """Decide for an already-resolved subject."""
        decision, _ = self._evaluate(subject, resource, action, resource_attrs)
        self._audit(subject, resource, action, decision)
        return decision

    def authorize(
        self,
        user: Union["AbstractUser", int, str],
        resource: str,
        action: str,
        resource_attrs: Any = None,
    ) -> Decision:
        """
        Decide whether ``user`` may perform ``action`` on ``resource``.

        Args:
            user: User instance or primary key.
            resource: Resource type (e.g. ``tickets``).
            action: Action name (e.g. ``read``).
            resource_attrs: Attributes of the concrete resource instance.

        Returns:
            Decision with ``allowed`` and the policy responsible for it.

        Raises:
            NotFoundError: If the user does not exist.
        """
        subject = self.resolver(user)
        return self.authorize_subject(subject, resource, action, resource_attrs)

    def is_allowed(
        self,
        user: Union["AbstractUser", int, str],
        resource: str,
        action: str,
        resource_attrs: Any = None,
    ) -> bool:
        return self.authorize(user, resource, action, resource_attrs).allowed

    def explain(
        self,
        user: Union["AbstractUser", int, str],
        resource: str,
        action: str,
        resource_attrs: Any = None,
    ) -> DecisionExplanation:
        """Return the decision along with every evaluated policy."""
        subject = self.resolver(user)
        decision, evaluations = self._evaluate(subject, resource, action, resource_attrs)
        return DecisionExplanation(
            decision=decision,
            subject=subject,
            resource=resource,
            action=action,
            evaluations=evaluations,
            permission_keys=self.index.permissions_for_roles(subject.role_ids),
        )

    def has_permission(
        self, user: Union["AbstractUser", int, str], permission_key: str
    ) -> bool:
        """Coarse RBAC check through the permission index (advisory)."""
        subject = self.resolver(user)
        return self.index.has_permission(subject.role_ids, permission_key)


# Global singleton instance
decision_engine = DecisionEngine()

__all__ = [
    "Decision",
    "DecisionEngine",
    "DecisionExplanation",
    "PolicyEvaluation",
    "decision_engine",
    "singular_namespace",
]
