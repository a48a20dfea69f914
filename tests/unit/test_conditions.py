"""
Unit tests for condition parsing and evaluation.
"""

import pytest

from helpdesk_access.exceptions import MalformedConditionError
from helpdesk_access.security.conditions import (
    ABSENT,
    And,
    Equals,
    EvaluationContext,
    In,
    Not,
    Or,
    condition_to_dict,
    evaluate,
    parse_condition,
    resolve_path,
    strict_equals,
)

pytestmark = pytest.mark.unit


def _context(resource=None, user=None, alias="ticket", mode="coerce"):
    return EvaluationContext.build(
        resource_attrs=resource or {},
        user_attrs=user or {},
        resource_alias=alias,
        in_scalar_mode=mode,
    )


USER = {
    "id": 7,
    "roleNames": ["agent"],
    "departments": [
        {"departmentId": 3, "departmentName": "IT Support", "label": "member"},
        {"departmentId": 5, "departmentName": "Billing", "label": "admin"},
    ],
}


class TestParsing:
    def test_null_is_unconditional(self):
        assert parse_condition(None) is None
        assert evaluate(None, _context()) is True

    def test_parses_every_combinator(self):
        condition = parse_condition(
            {
                "and": [
                    {"equals": {"ticket.assignedTo": "user.id"}},
                    {"or": [{"in": {"ticket.dept": "user.departments.departmentId"}}]},
                    {"not": {"equals": {"ticket.isLocked": True}}},
                ]
            }
        )
        assert isinstance(condition, And)
        equals, any_of, negated = condition.children
        assert equals == Equals("ticket.assignedTo", "user.id")
        assert isinstance(any_of, Or)
        assert any_of.children == (In("ticket.dept", "user.departments.departmentId"),)
        assert negated == Not(Equals("ticket.isLocked", True))

    @pytest.mark.parametrize(
        "raw",
        [
            "null",
            [],
            {},
            {"xor": []},
            {"equals": {"a.b": 1}, "in": {"c.d": "e.f"}},
            {"equals": {"a.b": 1, "c.d": 2}},
            {"equals": {}},
            {"equals": {"nodots": 1}},
            {"equals": {"a..b": 1}},
            {"equals": {"a.b": [1, 2]}},
            {"in": {"a.b": 3}},
            {"and": {"equals": {"a.b": 1}}},
            {"and": [None]},
            {"not": None},
        ],
    )
    def test_rejects_malformed_documents(self, raw):
        with pytest.raises(MalformedConditionError):
            parse_condition(raw)

    def test_error_reports_location(self):
        with pytest.raises(MalformedConditionError) as exc_info:
            parse_condition({"and": [{"equals": {"a.b": 1}}, {"bogus": {}}]})
        assert exc_info.value.path == "$.and[1]"

    def test_serialization_preserves_document(self):
        raw = {
            "and": [
                {"equals": {"comment.isInternal": False}},
                {"equals": {"comment.ticket.submittedBy": "user.id"}},
            ]
        }
        assert condition_to_dict(parse_condition(raw)) == raw


class TestPathResolution:
    def test_missing_segments_are_absent(self):
        namespaces = {"user": USER}
        assert resolve_path(namespaces, "user.email") is ABSENT
        assert resolve_path(namespaces, "ticket.id") is ABSENT
        assert resolve_path(namespaces, "user.id.value") is ABSENT

    def test_collections_fan_out_into_lists(self):
        assert resolve_path({"user": USER}, "user.departments.departmentId") == [3, 5]

    def test_empty_collection_fans_out_to_empty_list(self):
        assert resolve_path({"user": {"departments": []}}, "user.departments.departmentId") == []

    def test_objects_are_read_through_attributes(self):
        class Ticket:
            assigned_to = 7

            def close(self):
                return None

        namespaces = {"ticket": Ticket()}
        assert resolve_path(namespaces, "ticket.assigned_to") == 7
        assert resolve_path(namespaces, "ticket.close") is ABSENT
        assert resolve_path(namespaces, "ticket.__class__") is ABSENT


class TestStrictEquality:
    @pytest.mark.parametrize(
        "left,right,expected",
        [
            (1, 1, True),
            (1, 1.0, True),
            ("1", 1, False),
            (True, 1, False),
            (True, "true", False),
            (False, 0, False),
            (True, True, True),
            (None, None, True),
            ([1], [1], False),
            (ABSENT, ABSENT, False),
        ],
    )
    def test_type_sensitive(self, left, right, expected):
        assert strict_equals(left, right) is expected


class TestEvaluation:
    def test_equals_against_path(self):
        condition = parse_condition({"equals": {"ticket.assignedTo": "user.id"}})
        assert evaluate(condition, _context({"assignedTo": 7}, USER)) is True
        assert evaluate(condition, _context({"assignedTo": 8}, USER)) is False
        assert evaluate(condition, _context({"assignedTo": "7"}, USER)) is False

    def test_equals_against_literal(self):
        condition = parse_condition({"equals": {"comment.isInternal": True}})
        context = EvaluationContext.build(
            resource_attrs={"isInternal": True}, resource_alias="comment"
        )
        assert evaluate(condition, context) is True
        context.namespaces["comment"] = {"isInternal": 1}
        assert evaluate(condition, context) is False

    def test_string_literal_that_is_not_a_path(self):
        condition = parse_condition({"equals": {"ticket.priority": "high.urgent"}})
        assert evaluate(condition, _context({"priority": "high.urgent"})) is True

    def test_resource_namespace_is_always_bound(self):
        condition = parse_condition({"equals": {"resource.ownerId": "user.id"}})
        assert evaluate(condition, _context({"ownerId": 7}, USER)) is True

    def test_absent_never_matches(self):
        condition = parse_condition({"equals": {"ticket.assignedTo": "user.missing"}})
        assert evaluate(condition, _context({}, USER)) is False

    def test_two_absent_paths_are_not_equal(self):
        condition = parse_condition({"equals": {"ticket.nothing": "user.nothing"}})
        assert evaluate(condition, _context({}, {})) is False

    def test_in_department_scope(self):
        condition = parse_condition(
            {"in": {"ticket.assignedToDepartmentId": "user.departments.departmentId"}}
        )
        assert evaluate(condition, _context({"assignedToDepartmentId": 5}, USER)) is True
        assert evaluate(condition, _context({"assignedToDepartmentId": 9}, USER)) is False
        assert evaluate(condition, _context({"assignedToDepartmentId": "5"}, USER)) is False
        assert evaluate(condition, _context({}, USER)) is False

    def test_in_with_empty_collection_is_false(self):
        condition = parse_condition(
            {"in": {"ticket.assignedToDepartmentId": "user.departments.departmentId"}}
        )
        context = _context({"assignedToDepartmentId": 5}, {"departments": []})
        assert evaluate(condition, context) is False

    def test_in_with_scalar_collection(self):
        condition = parse_condition({"in": {"ticket.ownerId": "user.id"}})
        assert evaluate(condition, _context({"ownerId": 7}, USER)) is True
        assert evaluate(condition, _context({"ownerId": 7}, USER, mode="strict")) is False

    def test_in_with_collection_on_the_left_is_false(self):
        condition = parse_condition({"in": {"ticket.tags": "user.roleNames"}})
        assert evaluate(condition, _context({"tags": ["agent"]}, USER)) is False

    def test_combinators(self):
        true = {"equals": {"user.id": 7}}
        false = {"equals": {"user.id": 8}}
        context = _context({}, USER)
        assert evaluate(parse_condition({"and": []}), context) is True
        assert evaluate(parse_condition({"or": []}), context) is False
        assert evaluate(parse_condition({"and": [true, false]}), context) is False
        assert evaluate(parse_condition({"or": [false, true]}), context) is True
        assert evaluate(parse_condition({"not": false}), context) is True

    def test_not_of_absent_is_true(self):
        condition = parse_condition({"not": {"equals": {"ticket.missing": 1}}})
        assert evaluate(condition, _context({}, USER)) is True

    def test_raw_documents_are_accepted(self):
        assert evaluate({"equals": {"user.id": 7}}, _context({}, USER)) is True

    def test_malformed_raw_document_evaluates_false(self):
        assert evaluate({"bogus": {}}, _context({}, USER)) is False
