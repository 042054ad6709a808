from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .rule_engine import InsuranceGroup, PolicyMatchType, Rule, RuleDecision


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RuleInputs(CamelModel):
    clinic_name: str = ""
    insurance_name: str = ""
    policy_id: str = ""
    group_id: str = ""
    network_status: str = ""
    plan_type: str = ""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "clinicName": "Sunshine Rehab",
                "insuranceName": "Aetna",
                "policyId": "AETNA-12345",
                "groupId": "GRP-9988",
                "networkStatus": "InNetwork",
                "planType": "HMO",
            }
        },
    )


class CreateGroupRequest(CamelModel):
    name: str = Field(..., min_length=2, description="Insurance group name, unique case-insensitively")


class RuleScopeIn(CamelModel):
    insurance_name: str = Field(..., min_length=1)
    plan_type: Optional[str] = None
    network_status: Optional[str] = None
    clinic_name: Optional[str] = None
    group_id: Optional[str] = None
    policy_id: Optional[str] = None


class CreateRuleRequest(CamelModel):
    insurance_group_id: str
    scope: RuleScopeIn
    status_to_set: str = Field(..., min_length=1)
    policy_match_type: PolicyMatchType = PolicyMatchType.EQUALS


class UpdateRuleRequest(CamelModel):
    scope: Optional[RuleScopeIn] = None
    status_to_set: Optional[str] = Field(default=None, min_length=1)
    policy_match_type: Optional[PolicyMatchType] = None


class SetActiveRequest(CamelModel):
    is_active: bool


class EvaluateRequest(CamelModel):
    inputs: RuleInputs
    insurance_group_id: Optional[str] = None


class BatchEvaluateRequest(CamelModel):
    inputs: RuleInputs = Field(default_factory=RuleInputs)


class GroupOut(CamelModel):
    id: str
    name: str
    updated_at: datetime

    @classmethod
    def from_group(cls, group: InsuranceGroup) -> "GroupOut":
        return cls(id=group.id, name=group.name, updated_at=group.updated_at)


class RuleOut(CamelModel):
    id: str
    rule_code: str
    insurance_group_id: str
    is_active: bool
    created_at: datetime
    updated_at: datetime
    scope: RuleScopeIn
    policy_match_type: PolicyMatchType
    status_to_set: str
    scope_level: str

    @classmethod
    def from_rule(cls, rule: Rule) -> "RuleOut":
        s = rule.scope
        return cls(
            id=rule.id, rule_code=rule.rule_code, insurance_group_id=rule.insurance_group_id,
            is_active=rule.is_active, created_at=rule.created_at, updated_at=rule.updated_at,
            scope=RuleScopeIn(
                insurance_name=s.insurance_name, plan_type=s.plan_type, network_status=s.network_status,
                clinic_name=s.clinic_name, group_id=s.group_id, policy_id=s.policy_id,
            ),
            policy_match_type=rule.policy_match_type, status_to_set=rule.action.status_to_set,
            scope_level=rule.scope_level.value,
        )


class EvaluationResponse(CamelModel):
    winner: Optional[RuleOut] = None
    reason: str
    message: str
    scope_level: Optional[str] = None
    status_to_set: Optional[str] = None
    tied_rule_codes: list[str] = Field(default_factory=list)
    audit_entry_id: str

    @classmethod
    def from_decision(cls, decision: RuleDecision, audit_entry_id: str) -> "EvaluationResponse":
        return cls(
            winner=RuleOut.from_rule(decision.winner) if decision.winner else None,
            reason=decision.reason,
            message=decision.message,
            scope_level=decision.scope_level.value if decision.scope_level else None,
            status_to_set=decision.status_to_set,
            tied_rule_codes=[r.rule_code for r in decision.tied],
            audit_entry_id=audit_entry_id,
        )
