from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from audit.models import RunOutcome

from .executor import ExecutionResult
from .graph import AccountType, NodeKind, TriggerType, WorkflowMeta


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class WorkflowInputs(CamelModel):
    entity_id: str = ""
    clinic_flag: str = ""
    status: str = ""
    insurance_name: str = ""
    plan_type: str = ""
    network_status: str = ""
    policy_id: str = ""
    group_id: str = ""
    winning_rule_code: str = ""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "entityId": "SUB-1001",
                "clinicFlag": "Onboarding",
                "status": "Pending Benefits",
                "insuranceName": "Aetna",
                "planType": "HMO",
                "networkStatus": "InNetwork",
                "policyId": "AETNA-12345",
                "groupId": "GRP-9988",
                "winningRuleCode": "RULE-000123",
            }
        },
    )


class CreateWorkflowRequest(CamelModel):
    account_type: AccountType
    name: str = Field(..., min_length=1)
    description: str = ""


class AddNodeRequest(CamelModel):
    kind: NodeKind
    name: Optional[str] = None


class AddEdgeRequest(CamelModel):
    source: str
    target: str
    label: str = ""
    priority: int = 1
    condition_group: Optional[dict[str, Any]] = None


class SetEdgeIfRequest(CamelModel):
    condition_group: Optional[dict[str, Any]] = None


class SetNodeActionsRequest(CamelModel):
    actions: list[dict[str, Any]]


class RunWorkflowRequest(CamelModel):
    inputs: WorkflowInputs
    trigger_type: TriggerType = TriggerType.RULE_ENGINE


class WorkflowSummary(CamelModel):
    id: str
    account_type: AccountType
    name: str
    description: str
    is_active: bool
    latest_version: Optional[int] = None
    enrollment: dict[str, Any]
    draft: dict[str, Any]

    @classmethod
    def from_meta(cls, meta: WorkflowMeta) -> "WorkflowSummary":
        latest = meta.latest_version
        return cls(
            id=meta.id, account_type=meta.account_type, name=meta.name,
            description=meta.description, is_active=meta.is_active,
            latest_version=latest.version if latest else None,
            enrollment=meta.enrollment.to_dict(), draft=meta.draft.to_dict(),
        )


class WorkflowRunResult(CamelModel):
    outcome: RunOutcome
    ok: bool
    message: str
    workflow_version: Optional[int] = None
    final_status: str = ""
    assigned_to: str = ""
    executed_actions: list[dict[str, Any]] = Field(default_factory=list)
    chosen_path: Optional[dict[str, str]] = None
    path: list[dict[str, str]] = Field(default_factory=list)
    audit_entry_id: Optional[str] = None

    @classmethod
    def from_execution(
        cls, result: ExecutionResult, outcome: RunOutcome, message: str, version: int
    ) -> "WorkflowRunResult":
        return cls(
            outcome=outcome, ok=result.ok, message=message, workflow_version=version,
            final_status=result.final_status, assigned_to=result.assigned_to,
            executed_actions=[a.to_dict() for a in result.executed_actions],
            chosen_path=result.chosen_path.to_dict() if result.chosen_path else None,
            path=[p.to_dict() for p in result.path],
        )
