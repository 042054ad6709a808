import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Mapping, Optional

from .conditions import DefinitionError, normalize


class PolicyMatchType(str, Enum):
    EQUALS = "EQUALS"
    STARTS_WITH = "STARTS_WITH"


class ScopeLevel(str, Enum):
    POLICY = "Policy"
    GROUP = "Group"
    CLINIC = "Clinic"
    NETWORK = "Network"
    PLAN = "Plan"
    INSURANCE_DEFAULT = "Insurance Default"


# Most specific first. Each optional scope field maps to its level and score.
PRECEDENCE = (
    ("policy_id", ScopeLevel.POLICY, 600),
    ("group_id", ScopeLevel.GROUP, 500),
    ("clinic_name", ScopeLevel.CLINIC, 400),
    ("network_status", ScopeLevel.NETWORK, 300),
    ("plan_type", ScopeLevel.PLAN, 200),
)
DEFAULT_SCORE = 100

NO_MATCH_REASON = "No matching enabled rule found."

_SCOPE_KEYS = {
    "insurance_name": "insuranceName",
    "plan_type": "planType",
    "network_status": "networkStatus",
    "clinic_name": "clinicName",
    "group_id": "groupId",
    "policy_id": "policyId",
}


def _blank_to_none(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


@dataclass
class RuleScope:
    insurance_name: str
    plan_type: Optional[str] = None
    network_status: Optional[str] = None
    clinic_name: Optional[str] = None
    group_id: Optional[str] = None
    policy_id: Optional[str] = None

    def __post_init__(self):
        self.insurance_name = _blank_to_none(self.insurance_name)
        if not self.insurance_name:
            raise DefinitionError("Rule scope requires insuranceName")
        for name, _, _ in PRECEDENCE:
            setattr(self, name, _blank_to_none(getattr(self, name)))

    def to_dict(self) -> dict:
        data = {"insuranceName": self.insurance_name}
        for attr, key in _SCOPE_KEYS.items():
            if attr != "insurance_name" and getattr(self, attr):
                data[key] = getattr(self, attr)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RuleScope":
        if not data.get("insuranceName"):
            raise DefinitionError("Rule scope requires insuranceName")
        return cls(**{attr: data.get(key) for attr, key in _SCOPE_KEYS.items()})


@dataclass
class RuleAction:
    status_to_set: str

    def __post_init__(self):
        self.status_to_set = (self.status_to_set or "").strip()
        if not self.status_to_set:
            raise DefinitionError("Rule action requires statusToSet")

    def to_dict(self) -> dict:
        return {"statusToSet": self.status_to_set}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "RuleAction":
        return cls(status_to_set=data.get("statusToSet", ""))


@dataclass
class InsuranceGroup:
    id: str
    name: str
    updated_at: datetime

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "updatedAt": self.updated_at.isoformat()}


@dataclass
class Rule:
    id: str
    rule_code: str
    insurance_group_id: str
    scope: RuleScope
    action: RuleAction
    created_at: datetime
    updated_at: datetime
    policy_match_type: PolicyMatchType = PolicyMatchType.EQUALS
    is_active: bool = True

    @property
    def scope_level(self) -> ScopeLevel:
        return scope_level(self)

    @property
    def precedence_score(self) -> int:
        return precedence_score(self)

    def to_dict(self) -> dict:
        return {
            "ruleCode": self.rule_code, "insuranceGroupId": self.insurance_group_id,
            "isActive": self.is_active, "scope": self.scope.to_dict(),
            "policyMatchType": self.policy_match_type.value, "action": self.action.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], *, id: str, created_at: datetime) -> "Rule":
        if "scope" not in data:
            raise DefinitionError("Rule requires a scope")
        if not data.get("ruleCode"):
            raise DefinitionError("Rule requires a ruleCode")
        try:
            match_type = PolicyMatchType(data.get("policyMatchType", PolicyMatchType.EQUALS.value))
        except ValueError:
            raise DefinitionError(f"Unknown policyMatchType: {data.get('policyMatchType')!r}") from None
        return cls(
            id=id, rule_code=data["ruleCode"], insurance_group_id=data.get("insuranceGroupId", ""),
            scope=RuleScope.from_dict(data["scope"]), action=RuleAction.from_dict(data.get("action", {})),
            created_at=created_at, updated_at=created_at,
            policy_match_type=match_type, is_active=data.get("isActive", True),
        )


@dataclass
class RuleDecision:
    winner: Optional[Rule]
    reason: str
    candidate_count: int = 0
    tied: list[Rule] = field(default_factory=list)

    @property
    def scope_level(self) -> Optional[ScopeLevel]:
        return self.winner.scope_level if self.winner else None

    @property
    def status_to_set(self) -> Optional[str]:
        return self.winner.action.status_to_set if self.winner else None

    @property
    def message(self) -> str:
        if self.winner is None:
            return self.reason
        return f'{self.reason} → Status set to "{self.winner.action.status_to_set}".'


def scope_level(rule: Rule) -> ScopeLevel:
    for name, level, _ in PRECEDENCE:
        if getattr(rule.scope, name):
            return level
    return ScopeLevel.INSURANCE_DEFAULT


def precedence_score(rule: Rule) -> int:
    for name, _, score in PRECEDENCE:
        if getattr(rule.scope, name):
            return score
    return DEFAULT_SCORE


def rule_matches(rule: Rule, inputs: Mapping[str, Any]) -> bool:
    """Every populated scope field must equal its input; policy id honours the match type."""
    scope = rule.scope
    if normalize(scope.insurance_name) != normalize(inputs.get("insurance_name")):
        return False
    for name in ("plan_type", "network_status", "clinic_name", "group_id"):
        expected = getattr(scope, name)
        if expected and normalize(expected) != normalize(inputs.get(name)):
            return False
    if scope.policy_id:
        rule_policy = normalize(scope.policy_id)
        input_policy = normalize(inputs.get("policy_id"))
        if rule.policy_match_type == PolicyMatchType.STARTS_WITH:
            return input_policy.startswith(rule_policy)
        return input_policy == rule_policy
    return True


def pick_winning_rule(rules: Iterable[Rule], inputs: Mapping[str, Any]) -> RuleDecision:
    candidates = [r for r in rules if r.is_active and rule_matches(r, inputs)]
    if not candidates:
        return RuleDecision(winner=None, reason=NO_MATCH_REASON)

    ranked = sorted(candidates, key=lambda r: (precedence_score(r), r.updated_at), reverse=True)
    winner = ranked[0]
    tied = [r for r in ranked[1:] if precedence_score(r) == precedence_score(winner)]
    reason = (
        f"Matched {len(candidates)} rule(s). Winner chosen by precedence "
        f"({scope_level(winner).value}) and latest update if tie."
    )
    return RuleDecision(winner=winner, reason=reason, candidate_count=len(candidates), tied=tied)


def format_rule_code(number: int, prefix: str = "RULE-", width: int = 6) -> str:
    return f"{prefix}{number:0{width}d}"


def parse_rule_code(code: str, prefix: str = "RULE-") -> Optional[int]:
    match = re.fullmatch(re.escape(prefix) + r"(\d+)", (code or "").strip())
    return int(match.group(1)) if match else None


def max_rule_number(codes: Iterable[str], prefix: str = "RULE-") -> int:
    numbers = [n for n in (parse_rule_code(c, prefix) for c in codes) if n is not None]
    return max(numbers, default=0)
