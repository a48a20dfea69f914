"""
Condition trees for attribute-based access policies.

Persisted conditions are JSON documents::

    {"equals": {"ticket.assignedTo": "user.id"}}
    {"in": {"ticket.assignedToDepartmentId": "user.departments.departmentId"}}
    {"and": [{...}, {...}]}
    {"or": [{...}, {...}]}
    {"not": {...}}

``parse_condition`` validates a document and turns it into a closed set of
node types (``Equals``, ``In``, ``And``, ``Or``, ``Not``); ``evaluate`` runs a
parsed tree against an ``EvaluationContext``. Parsing raises
``MalformedConditionError``; evaluation never raises.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Optional, Union

from ..exceptions import MalformedConditionError

logger = logging.getLogger(__name__)

SCALAR_TYPES = (str, int, float, bool, type(None))
COLLECTION_TYPES = (list, tuple, set, frozenset)


class _Absent:
    """Sentinel for an attribute path that does not resolve."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "<absent>"


ABSENT = _Absent()


@dataclass(frozen=True)
class Equals:
    path: str
    value: Any


@dataclass(frozen=True)
class In:
    path: str
    collection_path: str


@dataclass(frozen=True)
class And:
    children: tuple["Condition", ...] = ()


@dataclass(frozen=True)
class Or:
    children: tuple["Condition", ...] = ()


@dataclass(frozen=True)
class Not:
    child: "Condition"


Condition = Union[Equals, In, And, Or, Not]

COMBINATORS = ("equals", "in", "and", "or", "not")


# --------------------------------------------------------------------------- #
# Parsing / serialization
# --------------------------------------------------------------------------- #


def _validate_path(value: Any, where: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise MalformedConditionError("Attribute path must be a non-empty string", path=where)
    segments = value.split(".")
    if len(segments) < 2 or any(not segment for segment in segments):
        raise MalformedConditionError(
            f"Attribute path '{value}' must be dotted (namespace.attribute)", path=where
        )
    return value


def _single_pair(payload: Any, combinator: str, where: str) -> tuple[Any, Any]:
    if not isinstance(payload, Mapping):
        raise MalformedConditionError(f"'{combinator}' expects an object", path=where)
    if len(payload) != 1:
        raise MalformedConditionError(
            f"'{combinator}' expects exactly one key/value pair, got {len(payload)}",
            path=where,
        )
    return next(iter(payload.items()))


def parse_condition(raw: Any, *, path: str = "$") -> Optional[Condition]:
    """
    Validate a JSON condition document and build its node tree.

    Args:
        raw: Decoded JSON (``None`` means unconditional).
        path: Location used in error messages.

    Returns:
        The parsed condition, or ``None`` for an unconditional policy.

    Raises:
        MalformedConditionError: If the document does not follow the grammar.
    """
    if raw is None:
        return None
    if isinstance(raw, (Equals, In, And, Or, Not)):
        return raw
    if not isinstance(raw, Mapping):
        raise MalformedConditionError(
            f"Condition must be an object, got {type(raw).__name__}", path=path
        )
    if len(raw) != 1:
        raise MalformedConditionError(
            f"Condition must have exactly one combinator, got {sorted(raw)}", path=path
        )

    combinator, payload = next(iter(raw.items()))
    where = f"{path}.{combinator}"

    if combinator == "equals":
        left, right = _single_pair(payload, combinator, where)
        if not isinstance(right, SCALAR_TYPES):
            raise MalformedConditionError(
                "'equals' compares against a path or a scalar literal", path=where
            )
        return Equals(path=_validate_path(left, where), value=right)

    if combinator == "in":
        left, right = _single_pair(payload, combinator, where)
        return In(
            path=_validate_path(left, where),
            collection_path=_validate_path(right, where),
        )

    if combinator in ("and", "or"):
        if not isinstance(payload, list):
            raise MalformedConditionError(f"'{combinator}' expects a list", path=where)
        children = tuple(
            parse_condition(child, path=f"{where}[{index}]")
            for index, child in enumerate(payload)
        )
        if any(child is None for child in children):
            raise MalformedConditionError(
                f"'{combinator}' children cannot be null", path=where
            )
        return And(children) if combinator == "and" else Or(children)

    if combinator == "not":
        child = parse_condition(payload, path=where)
        if child is None:
            raise MalformedConditionError("'not' requires a condition", path=where)
        return Not(child)

    raise MalformedConditionError(f"Unsupported combinator '{combinator}'", path=path)


def condition_to_dict(condition: Optional[Condition]) -> Optional[dict[str, Any]]:
    """Serialize a parsed condition back to its JSON document."""
    if condition is None:
        return None
    if isinstance(condition, Equals):
        return {"equals": {condition.path: condition.value}}
    if isinstance(condition, In):
        return {"in": {condition.path: condition.collection_path}}
    if isinstance(condition, And):
        return {"and": [condition_to_dict(child) for child in condition.children]}
    if isinstance(condition, Or):
        return {"or": [condition_to_dict(child) for child in condition.children]}
    if isinstance(condition, Not):
        return {"not": condition_to_dict(condition.child)}
    raise MalformedConditionError(f"Unknown condition node {condition!r}")


# --------------------------------------------------------------------------- #
# Attribute resolution
# --------------------------------------------------------------------------- #


def _step(current: Any, segment: str) -> Any:
    if current is ABSENT or current is None:
        return ABSENT

    if isinstance(current, Mapping):
        return current[segment] if segment in current else ABSENT

    if isinstance(current, COLLECTION_TYPES):
        # Fan out over collections: always yields a (possibly empty) list.
        collected: list[Any] = []
        for item in current:
            value = _step(item, segment)
            if value is ABSENT:
                continue
            if isinstance(value, COLLECTION_TYPES):
                collected.extend(value)
            else:
                collected.append(value)
        return collected

    if segment.startswith("_") or isinstance(current, SCALAR_TYPES):
        return ABSENT
    try:
        value = getattr(current, segment, ABSENT)
    except Exception as exc:
        logger.debug("Attribute '%s' could not be read: %s", segment, exc)
        return ABSENT
    return ABSENT if callable(value) else value


def resolve_path(namespaces: Mapping[str, Any], path: str) -> Any:
    """Resolve ``path`` against the root namespaces, returning ``ABSENT`` on a miss."""
    if not isinstance(path, str) or not path:
        return ABSENT
    root, _, rest = path.partition(".")
    if root not in namespaces:
        return ABSENT
    current = namespaces[root]
    if not rest:
        return current
    for segment in rest.split("."):
        current = _step(current, segment)
        if current is ABSENT:
            return ABSENT
    return current


@dataclass
class EvaluationContext:
    """Root namespaces visible to conditions (``resource``, ``user``, aliases)."""

    namespaces: dict[str, Any] = field(default_factory=dict)
    in_scalar_mode: str = "coerce"

    @classmethod
    def build(
        cls,
        *,
        resource_attrs: Any = None,
        user_attrs: Optional[Mapping[str, Any]] = None,
        resource_alias: Optional[str] = None,
        in_scalar_mode: str = "coerce",
    ) -> "EvaluationContext":
        attrs = {} if resource_attrs is None else resource_attrs
        namespaces: dict[str, Any] = {"resource": attrs, "user": dict(user_attrs or {})}
        if resource_alias and resource_alias not in namespaces:
            namespaces[resource_alias] = attrs
        return cls(namespaces=namespaces, in_scalar_mode=in_scalar_mode)

    def resolve(self, path: str) -> Any:
        return resolve_path(self.namespaces, path)

    def is_path(self, value: Any) -> bool:
        """A string whose first dotted segment names a bound namespace."""
        if not isinstance(value, str) or "." not in value:
            return False
        return value.split(".", 1)[0] in self.namespaces


# --------------------------------------------------------------------------- #
# Evaluation
# --------------------------------------------------------------------------- #


def strict_equals(left: Any, right: Any) -> bool:
    """Type-sensitive equality; absent values and collections never match."""
    if left is ABSENT or right is ABSENT:
        return False
    if isinstance(left, COLLECTION_TYPES) or isinstance(right, COLLECTION_TYPES):
        return False
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return left == right
    if not (isinstance(left, type(right)) or isinstance(right, type(left))):
        return False
    return left == right


def _evaluate_in(condition: In, context: EvaluationContext) -> bool:
    value = context.resolve(condition.path)
    if value is ABSENT or isinstance(value, COLLECTION_TYPES):
        return False
    collection = context.resolve(condition.collection_path)
    if collection is ABSENT:
        return False
    if not isinstance(collection, COLLECTION_TYPES):
        if context.in_scalar_mode == "strict":
            return False
        collection = (collection,)
    return any(strict_equals(value, item) for item in collection)


def evaluate(condition: Optional[Condition], context: EvaluationContext) -> bool:
    """
    Evaluate a parsed condition.

    Raw JSON documents are accepted too and parsed first; a document that
    fails to parse evaluates to False.
    """
    if condition is None:
        return True
    if not isinstance(condition, (Equals, In, And, Or, Not)):
        try:
            condition = parse_condition(condition)
        except MalformedConditionError as exc:
            logger.error("Refusing to evaluate malformed condition: %s", exc)
            return False
        if condition is None:
            return True

    if isinstance(condition, Equals):
        left = context.resolve(condition.path)
        right = condition.value
        if context.is_path(right):
            right = context.resolve(right)
        return strict_equals(left, right)
    if isinstance(condition, In):
        return _evaluate_in(condition, context)
    if isinstance(condition, And):
        return all(evaluate(child, context) for child in condition.children)
    if isinstance(condition, Or):
        return any(evaluate(child, context) for child in condition.children)
    if isinstance(condition, Not):
        return not evaluate(condition.child, context)
    return False


__all__ = [
    "ABSENT",
    "And",
    "COMBINATORS",
    "Condition",
    "Equals",
    "EvaluationContext",
    "In",
    "Not",
    "Or",
    "condition_to_dict",
    "evaluate",
    "parse_condition",
    "resolve_path",
    "strict_equals",
]
