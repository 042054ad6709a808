import csv
import io
from collections import deque
from threading import Lock
from typing import Callable, Iterable, Optional, Sequence

import structlog

from common.storage import default_id_factory, utc_now

from .models import (
    RULE_CSV_COLUMNS,
    WORKFLOW_CSV_COLUMNS,
    AuditEntryType,
    RuleAuditEntry,
    RuleInputsSnapshot,
    WinningRuleSummary,
    WorkflowAuditEntry,
)

logger = structlog.get_logger()


class AuditLog:
    """
    Append-only record of every rule evaluation and workflow run.

    Entries are frozen and kept newest first. Appends are serialized, so an
    entry recorded before another never ends up after it.
    """

    def __init__(
        self,
        id_factory: Callable[[], str] = default_id_factory,
        clock: Callable = utc_now,
    ):
        self._rule_entries: deque[RuleAuditEntry] = deque()
        self._workflow_entries: deque[WorkflowAuditEntry] = deque()
        self._lock = Lock()
        self._id_factory = id_factory
        self._clock = clock

    def record_rule_event(
        self,
        entry_type: AuditEntryType,
        inputs: dict,
        insurance_group_name: Optional[str] = None,
        winning_rule: Optional[WinningRuleSummary] = None,
        notes: str = "",
    ) -> RuleAuditEntry:
        with self._lock:
            entry = RuleAuditEntry(
                id=self._id_factory(),
                created_at=self._clock(),
                type=entry_type,
                insurance_group_name=insurance_group_name,
                inputs=RuleInputsSnapshot(**inputs),
                winning_rule=winning_rule,
                notes=notes,
            )
            self._rule_entries.appendleft(entry)
        logger.debug("rule_audit_appended", entry_id=entry.id, type=entry_type.value)
        return entry

    def record_workflow_run(self, **fields) -> WorkflowAuditEntry:
        with self._lock:
            entry = WorkflowAuditEntry(id=self._id_factory(), created_at=self._clock(), **fields)
            self._workflow_entries.appendleft(entry)
        logger.debug("workflow_audit_appended", entry_id=entry.id, outcome=entry.outcome.value)
        return entry

    def rule_entries(self, entry_type: Optional[AuditEntryType] = None) -> list[RuleAuditEntry]:
        entries = list(self._rule_entries)
        if entry_type:
            entries = [e for e in entries if e.type == entry_type]
        return entries

    def workflow_entries(
        self, workflow_id: Optional[str] = None, entity_id: Optional[str] = None
    ) -> list[WorkflowAuditEntry]:
        entries = list(self._workflow_entries)
        if workflow_id:
            entries = [e for e in entries if e.workflow_id == workflow_id]
        if entity_id:
            entries = [e for e in entries if e.entity_id == entity_id]
        return entries

    def export_rule_csv(self, entries: Optional[Iterable[RuleAuditEntry]] = None) -> str:
        rows = (
            [
                e.created_at.isoformat(),
                e.type.value,
                e.insurance_group_name or "",
                e.winning_rule.rule_id if e.winning_rule else "",
                e.winning_rule.scope_level if e.winning_rule else "",
                e.winning_rule.status_to_set if e.winning_rule else "",
                e.notes or "",
            ]
            for e in (self.rule_entries() if entries is None else entries)
        )
        return to_csv(RULE_CSV_COLUMNS, rows)

    def export_workflow_csv(self, entries: Optional[Iterable[WorkflowAuditEntry]] = None) -> str:
        rows = (
            [
                e.created_at.isoformat(),
                e.account_type,
                e.workflow_id,
                e.workflow_name,
                str(e.workflow_version),
                e.entity_id,
                e.trigger_type,
                e.winning_rule_code or "",
                e.final_status or "",
                e.assigned_to or "",
                e.chosen_path.from_ if e.chosen_path else "",
                e.chosen_path.to if e.chosen_path else "",
                e.chosen_path.edge_label if e.chosen_path else "",
                " | ".join(a.summary for a in e.executed_actions),
                e.notes or "",
            ]
            for e in (self.workflow_entries() if entries is None else entries)
        )
        return to_csv(WORKFLOW_CSV_COLUMNS, rows)

    def __len__(self) -> int:
        return len(self._rule_entries) + len(self._workflow_entries)


def to_csv(headers: Sequence[str], rows: Iterable[Sequence[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(headers)
    writer.writerows(rows)
    return buffer.getvalue().rstrip("\n")
