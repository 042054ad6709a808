from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse

from api.dependencies import get_audit_log

from .models import AuditEntryType, RuleAuditEntry, WorkflowAuditEntry
from .service import AuditLog

router = APIRouter(prefix="/audit", tags=["Audit"])


@router.get("/rules", response_model=list[RuleAuditEntry])
def list_rule_entries(
    type: Optional[AuditEntryType] = None, audit_log: AuditLog = Depends(get_audit_log)
) -> list[RuleAuditEntry]:
    return audit_log.rule_entries(type)


@router.get("/workflows", response_model=list[WorkflowAuditEntry])
def list_workflow_entries(
    workflow_id: Optional[str] = None,
    entity_id: Optional[str] = None,
    audit_log: AuditLog = Depends(get_audit_log),
) -> list[WorkflowAuditEntry]:
    return audit_log.workflow_entries(workflow_id, entity_id)


@router.get("/rules.csv", response_class=PlainTextResponse)
def export_rule_entries(audit_log: AuditLog = Depends(get_audit_log)) -> PlainTextResponse:
    return PlainTextResponse(
        audit_log.export_rule_csv(),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="rule-audit-logs.csv"'},
    )


@router.get("/workflows.csv", response_class=PlainTextResponse)
def export_workflow_entries(
    workflow_id: Optional[str] = None, audit_log: AuditLog = Depends(get_audit_log)
) -> PlainTextResponse:
    entries = audit_log.workflow_entries(workflow_id) if workflow_id else None
    return PlainTextResponse(
        audit_log.export_workflow_csv(entries),
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="workflow-audit.csv"'},
    )
