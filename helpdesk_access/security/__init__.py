"""
Access-control core for the helpdesk.

This module provides:
- Identity & membership resolution
- The role -> permission index (coarse RBAC gate)
- The access policy store
- The condition evaluator
- The decision engine (deny overrides allow, fail closed)
- The ticket status transition gate
"""

from .bootstrap import apply_manifest, load_manifest, parse_manifest
from .conditions import ABSENT, EvaluationContext, evaluate, parse_condition
from .decorators import require_access, require_permission, require_role
from .engine import Decision, DecisionEngine, DecisionExplanation, decision_engine
from .permissions import PermissionIndex, permission_index
from .policies import PolicyStore, policy_store
from .subjects import SubjectContext, resolve_subject
from .transitions import StatusTransitionGate, status_transition_gate

__all__ = [
    "ABSENT",
    "Decision",
    "DecisionEngine",
    "DecisionExplanation",
    "EvaluationContext",
    "PermissionIndex",
    "PolicyStore",
    "StatusTransitionGate",
    "SubjectContext",
    "apply_manifest",
    "decision_engine",
    "evaluate",
    "load_manifest",
    "parse_condition",
    "parse_manifest",
    "permission_index",
    "policy_store",
    "require_access",
    "require_permission",
    "require_role",
    "resolve_subject",
    "status_transition_gate",
]
