"""
Rules Package

Provides the condition primitive shared with workflows, the scoped rule
model, and precedence-based resolution of the single winning rule.
"""

from .conditions import (
    Condition,
    ConditionGroup,
    ConditionOperator,
    DefinitionError,
    GroupOp,
    group_matches,
    matches,
)
from .rule_engine import (
    InsuranceGroup,
    PolicyMatchType,
    Rule,
    RuleAction,
    RuleDecision,
    RuleScope,
    ScopeLevel,
    pick_winning_rule,
)
from .service import RuleService

__all__ = [
    "Condition",
    "ConditionGroup",
    "ConditionOperator",
    "DefinitionError",
    "GroupOp",
    "group_matches",
    "matches",
    "InsuranceGroup",
    "PolicyMatchType",
    "Rule",
    "RuleAction",
    "RuleDecision",
    "RuleScope",
    "ScopeLevel",
    "pick_winning_rule",
    "RuleService",
]
