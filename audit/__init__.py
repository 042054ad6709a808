"""
Audit Trail

Append-only record of rule evaluations and workflow runs:
- Frozen entries, newest first
- Entries reference rules and workflows by id or code only
- Deterministic CSV export
"""

from .models import AuditEntryType, RuleAuditEntry, RunOutcome, WorkflowAuditEntry
from .service import AuditLog

__all__ = [
    "AuditEntryType",
    "RuleAuditEntry",
    "RunOutcome",
    "WorkflowAuditEntry",
    "AuditLog",
]
