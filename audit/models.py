from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class AuditEntryType(str, Enum):
    EVALUATE = "EVALUATE"
    BATCH_EVALUATE = "BATCH_EVALUATE"
    MANUAL_OVERRIDE = "MANUAL_OVERRIDE"


class RunOutcome(str, Enum):
    COMPLETED = "COMPLETED"
    STOPPED = "STOPPED"
    FAILED = "FAILED"
    NOT_ENROLLED = "NOT_ENROLLED"
    INACTIVE = "INACTIVE"


class AuditModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)


class RuleInputsSnapshot(AuditModel):
    clinic_name: str = ""
    insurance_name: str = ""
    policy_id: str = ""
    group_id: str = ""
    network_status: str = ""
    plan_type: str = ""


class WinningRuleSummary(AuditModel):
    rule_id: str = Field(..., description="Rule code of the winner, e.g. RULE-000123")
    scope_level: str
    precedence_reason: str
    status_to_set: str


class RuleAuditEntry(AuditModel):
    id: str
    created_at: datetime
    type: AuditEntryType
    insurance_group_name: Optional[str] = None
    inputs: RuleInputsSnapshot
    winning_rule: Optional[WinningRuleSummary] = None
    notes: str = ""


class PathSegment(AuditModel):
    from_: str = Field(..., alias="from")
    to: str
    edge_label: str = ""


class ActionSummary(AuditModel):
    type: str
    summary: str


class WorkflowAuditEntry(AuditModel):
    id: str
    created_at: datetime
    account_type: str
    workflow_id: str
    workflow_name: str
    workflow_version: int
    entity_id: str = "—"
    trigger_type: str
    winning_rule_code: Optional[str] = None
    outcome: RunOutcome
    chosen_path: Optional[PathSegment] = None
    executed_actions: tuple[ActionSummary, ...] = ()
    final_status: str = ""
    assigned_to: str = ""
    notes: str = ""


RULE_CSV_COLUMNS = ("time", "type", "insuranceGroup", "ruleId", "scopeLevel", "statusToSet", "notes")

WORKFLOW_CSV_COLUMNS = (
    "time", "accountType", "workflowId", "workflowName", "workflowVersion", "entityId",
    "triggerType", "winningRuleCode", "finalStatus", "assignedTo", "pathFrom", "pathTo",
    "pathLabel", "actions", "notes",
)
