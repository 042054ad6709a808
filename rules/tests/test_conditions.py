"""
Unit Tests for the Condition Primitive

Tests cover:
1. Operator semantics after trimming and case-folding
2. AND / OR grouping
3. Vacuous match of empty and absent groups
4. Fail-fast construction from payloads
"""

import pytest

from rules.conditions import (
    Condition,
    ConditionGroup,
    ConditionOperator,
    DefinitionError,
    GroupOp,
    group_matches,
    matches,
)

INPUTS = {"status": "  Pending Benefits ", "policy_id": "BCBS-99812", "group_id": ""}


class TestConditionOperators:
    """Tests for single field comparisons."""

    @pytest.mark.parametrize(
        "operator,value,expected",
        [
            (ConditionOperator.EQUALS, "pending benefits", True),
            (ConditionOperator.EQUALS, "Pending", False),
            (ConditionOperator.NOT_EQUALS, "Completed", True),
            (ConditionOperator.NOT_EQUALS, " PENDING BENEFITS", False),
            (ConditionOperator.STARTS_WITH, "pend", True),
            (ConditionOperator.STARTS_WITH, "benefits", False),
            (ConditionOperator.CONTAINS, "BENEFIT", True),
            (ConditionOperator.CONTAINS, "verified", False),
        ],
    )
    def test_value_operators_normalize_both_sides(self, operator, value, expected):
        """Test value operators trim and case-fold both sides."""
        assert matches(Condition("status", operator, value), INPUTS) is expected

    def test_is_filled_ignores_value(self):
        """Test IS_FILLED ignores the condition value."""
        assert matches(Condition("policy_id", ConditionOperator.IS_FILLED, "anything"), INPUTS)
        assert not matches(Condition("group_id", ConditionOperator.IS_FILLED), INPUTS)

    def test_is_empty_treats_whitespace_and_missing_as_empty(self):
        """Test IS_EMPTY matches whitespace and missing fields."""
        assert matches(Condition("group_id", ConditionOperator.IS_EMPTY), INPUTS)
        assert matches(Condition("clinic_flag", ConditionOperator.IS_EMPTY), INPUTS)
        assert matches(Condition("plan_type", ConditionOperator.IS_EMPTY), {"plan_type": "   "})

    def test_missing_field_reads_as_empty_string(self):
        """Test a missing field compares as an empty string."""
        assert matches(Condition("insurance_name", ConditionOperator.EQUALS, ""), INPUTS)
        assert not matches(Condition("insurance_name", ConditionOperator.EQUALS, "Aetna"), INPUTS)


class TestConditionGroups:
    """Tests for AND / OR groups."""

    def test_empty_and_absent_groups_match_everything(self):
        """Test empty and absent groups always match."""
        assert group_matches(None, INPUTS)
        assert group_matches(ConditionGroup(GroupOp.AND, []), INPUTS)
        assert group_matches(ConditionGroup(GroupOp.OR, []), {})

    def test_and_requires_every_item(self):
        """Test AND groups need every condition to match."""
        group = ConditionGroup(GroupOp.AND, [
            Condition("status", ConditionOperator.EQUALS, "Pending Benefits"),
            Condition("policy_id", ConditionOperator.STARTS_WITH, "AETNA"),
        ])
        assert not group.evaluate(INPUTS)

    def test_or_requires_any_item(self):
        """Test OR groups need any condition to match."""
        group = ConditionGroup(GroupOp.OR, [
            Condition("status", ConditionOperator.EQUALS, "Completed"),
            Condition("policy_id", ConditionOperator.STARTS_WITH, "bcbs-"),
        ])
        assert group.evaluate(INPUTS)


class TestConditionPayloads:
    """Tests for building conditions from exported payloads."""

    def test_group_from_dict(self):
        """Test building a group from its exported shape."""
        group = ConditionGroup.from_dict({
            "groupOp": "OR",
            "items": [{"field": "status", "operator": "IS_FILLED"}],
        })

        assert group.group_op == GroupOp.OR
        assert group.items[0].operator == ConditionOperator.IS_FILLED
        assert group.items[0].value is None

    def test_group_without_items_fails_fast(self):
        """Test a group without items is rejected."""
        with pytest.raises(DefinitionError):
            ConditionGroup.from_dict({"groupOp": "AND"})

    def test_unknown_operator_fails_fast(self):
        """Test an unknown operator is rejected."""
        with pytest.raises(DefinitionError):
            Condition.from_dict({"field": "status", "operator": "GREATER_THAN", "value": "1"})

    def test_condition_without_field_fails_fast(self):
        """Test a condition without a field is rejected."""
        with pytest.raises(DefinitionError):
            Condition.from_dict({"operator": "EQUALS", "value": "x"})
