from audit.service import AuditLog
from common.storage import InMemoryStorage
from rules.service import RuleService
from workflows.service import WorkflowService

storage = InMemoryStorage()
audit_log = AuditLog()
rule_service = RuleService(storage=storage, audit_log=audit_log)
workflow_service = WorkflowService(storage=storage, audit_log=audit_log)


def get_rule_service() -> RuleService:
    return rule_service


def get_workflow_service() -> WorkflowService:
    return workflow_service


def get_audit_log() -> AuditLog:
    return audit_log
