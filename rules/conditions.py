from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional
from uuid import uuid4


class DefinitionError(ValueError):
    """Raised when a rule, condition or workflow payload is missing a required part."""


class ConditionOperator(str, Enum):
    EQUALS = "EQUALS"
    NOT_EQUALS = "NOT_EQUALS"
    STARTS_WITH = "STARTS_WITH"
    CONTAINS = "CONTAINS"
    IS_FILLED = "IS_FILLED"
    IS_EMPTY = "IS_EMPTY"


class GroupOp(str, Enum):
    AND = "AND"
    OR = "OR"


VALUELESS_OPERATORS = frozenset({ConditionOperator.IS_FILLED, ConditionOperator.IS_EMPTY})


def normalize(value: Any) -> str:
    """Trim and case-fold a value for comparison. None reads as an empty string."""
    if value is None:
        return ""
    return str(value).strip().lower()


@dataclass
class Condition:
    field: str
    operator: ConditionOperator
    value: Optional[str] = None
    id: str = field(default_factory=lambda: str(uuid4()))

    def evaluate(self, inputs: Mapping[str, Any]) -> bool:
        return matches(self, inputs)

    def to_dict(self) -> dict:
        data = {"id": self.id, "field": self.field, "operator": self.operator.value}
        if self.operator not in VALUELESS_OPERATORS or self.value is not None:
            data["value"] = self.value
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Condition":
        if not data.get("field"):
            raise DefinitionError("Condition requires a field")
        raw_op = data.get("operator", data.get("op"))
        try:
            operator = ConditionOperator(raw_op)
        except ValueError:
            raise DefinitionError(f"Unknown condition operator: {raw_op!r}") from None
        kwargs = {"field": data["field"], "operator": operator, "value": data.get("value")}
        if data.get("id"):
            kwargs["id"] = data["id"]
        return cls(**kwargs)


@dataclass
class ConditionGroup:
    group_op: GroupOp = GroupOp.AND
    items: list[Condition] = field(default_factory=list)
    id: str = field(default_factory=lambda: str(uuid4()))

    @property
    def is_empty(self) -> bool:
        return not self.items

    def evaluate(self, inputs: Mapping[str, Any]) -> bool:
        return group_matches(self, inputs)

    def to_dict(self) -> dict:
        return {"id": self.id, "groupOp": self.group_op.value, "items": [c.to_dict() for c in self.items]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConditionGroup":
        items = data.get("items")
        if not isinstance(items, list) or not all(isinstance(c, Mapping) for c in items):
            raise DefinitionError("ConditionGroup requires an 'items' list of conditions")
        raw_op = data.get("groupOp", GroupOp.AND.value)
        try:
            group_op = GroupOp(raw_op)
        except ValueError:
            raise DefinitionError(f"Unknown group operator: {raw_op!r}") from None
        kwargs = {"group_op": group_op, "items": [Condition.from_dict(c) for c in items]}
        if data.get("id"):
            kwargs["id"] = data["id"]
        return cls(**kwargs)


def matches(condition: Condition, inputs: Mapping[str, Any]) -> bool:
    field_value = normalize(inputs.get(condition.field))
    op = condition.operator
    if op == ConditionOperator.IS_FILLED: return len(field_value) > 0
    if op == ConditionOperator.IS_EMPTY: return len(field_value) == 0

    compare_value = normalize(condition.value)
    if op == ConditionOperator.EQUALS: return field_value == compare_value
    if op == ConditionOperator.NOT_EQUALS: return field_value != compare_value
    if op == ConditionOperator.STARTS_WITH: return field_value.startswith(compare_value)
    if op == ConditionOperator.CONTAINS: return compare_value in field_value
    return False


def group_matches(group: Optional[ConditionGroup], inputs: Mapping[str, Any]) -> bool:
    """An absent or empty group matches everything."""
    if group is None or not group.items:
        return True
    results = (matches(c, inputs) for c in group.items)
    return all(results) if group.group_op == GroupOp.AND else any(results)
