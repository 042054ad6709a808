"""
Unit Tests for the Audit Log

Tests cover:
1. Newest-first ordering and filters
2. Immutability of recorded entries
3. CSV export shape and quoting
"""

import csv
import io

import pytest
from pydantic import ValidationError

from audit.models import (
    RULE_CSV_COLUMNS,
    WORKFLOW_CSV_COLUMNS,
    ActionSummary,
    AuditEntryType,
    PathSegment,
    RunOutcome,
    WinningRuleSummary,
)
from audit.service import AuditLog, to_csv


@pytest.fixture
def audit_log(id_factory, clock):
    return AuditLog(id_factory=id_factory, clock=clock)


def record_run(audit_log, **overrides):
    fields = dict(
        account_type="EV", workflow_id="wf-1", workflow_name="EV Intake", workflow_version=1,
        entity_id="SUB-1", trigger_type="RULE_ENGINE", outcome=RunOutcome.COMPLETED,
    )
    fields.update(overrides)
    return audit_log.record_workflow_run(**fields)


class TestOrdering:
    """Tests for entry ordering and filtering."""

    def test_rule_entries_newest_first(self, audit_log):
        """Test rule entries are returned newest first and filter by type."""
        first = audit_log.record_rule_event(AuditEntryType.EVALUATE, {"insurance_name": "Aetna"})
        second = audit_log.record_rule_event(AuditEntryType.BATCH_EVALUATE, {"insurance_name": "Cigna"})

        assert audit_log.rule_entries() == [second, first]
        assert audit_log.rule_entries(AuditEntryType.EVALUATE) == [first]
        assert second.created_at > first.created_at

    def test_workflow_entries_filters(self, audit_log):
        """Test workflow entries filter by workflow and entity."""
        a = record_run(audit_log, entity_id="A")
        b = record_run(audit_log, entity_id="B", workflow_id="wf-2")

        assert audit_log.workflow_entries() == [b, a]
        assert audit_log.workflow_entries(workflow_id="wf-1") == [a]
        assert audit_log.workflow_entries(entity_id="B") == [b]
        assert len(audit_log) == 2


class TestImmutability:
    """Tests that recorded entries cannot change."""

    def test_entries_are_frozen(self, audit_log):
        """Test recorded entries cannot be modified."""
        entry = audit_log.record_rule_event(AuditEntryType.EVALUATE, {}, notes="original")

        with pytest.raises(ValidationError):
            entry.notes = "changed"
        assert audit_log.rule_entries()[0].notes == "original"

    def test_returned_lists_are_copies(self, audit_log):
        """Test clearing a returned list leaves the log intact."""
        audit_log.record_rule_event(AuditEntryType.EVALUATE, {})

        audit_log.rule_entries().clear()

        assert len(audit_log.rule_entries()) == 1


class TestCsvExport:
    """Tests for CSV export."""

    def test_rule_csv_has_header_plus_one_line_per_entry(self, audit_log):
        """Test the rule CSV has N+1 lines for N entries."""
        for _ in range(3):
            audit_log.record_rule_event(AuditEntryType.EVALUATE, {})

        lines = audit_log.export_rule_csv().split("\n")

        assert len(lines) == 4
        assert lines[0] == ",".join(f'"{c}"' for c in RULE_CSV_COLUMNS)

    def test_empty_log_exports_header_only(self, audit_log):
        """Test an empty log exports only the header row."""
        assert audit_log.export_workflow_csv() == ",".join(f'"{c}"' for c in WORKFLOW_CSV_COLUMNS)

    def test_commas_and_quotes_are_escaped(self, audit_log):
        """Test commas and quotes survive CSV export."""
        audit_log.record_rule_event(
            AuditEntryType.EVALUATE, {}, insurance_group_name="Blue Cross, Inc.",
            winning_rule=WinningRuleSummary(
                rule_id="RULE-000001", scope_level="Policy",
                precedence_reason="Matched 1 rule(s).", status_to_set='Set "Verified"',
            ),
        )

        exported = audit_log.export_rule_csv()
        row = list(csv.reader(io.StringIO(exported)))[1]

        assert '"Blue Cross, Inc."' in exported
        assert '"Set ""Verified"""' in exported
        assert row[2:6] == ["Blue Cross, Inc.", "RULE-000001", "Policy", 'Set "Verified"']

    def test_workflow_csv_row(self, audit_log):
        """Test a workflow entry exports path and joined actions."""
        record_run(
            audit_log,
            winning_rule_code="RULE-000123",
            chosen_path=PathSegment(**{"from": "Action: Set Status", "to": "End", "edge_label": "Complete"}),
            executed_actions=(
                ActionSummary(type="SET_STATUS", summary="Set Status → Verified"),
                ActionSummary(type="ASSIGN_USER", summary="Assign → ROLE:QA"),
            ),
            final_status="Verified",
            assigned_to="ROLE:QA",
        )

        rows = list(csv.DictReader(io.StringIO(audit_log.export_workflow_csv())))

        assert len(rows) == 1
        assert rows[0]["workflowVersion"] == "1"
        assert rows[0]["winningRuleCode"] == "RULE-000123"
        assert rows[0]["pathFrom"] == "Action: Set Status"
        assert rows[0]["pathLabel"] == "Complete"
        assert rows[0]["actions"] == "Set Status → Verified | Assign → ROLE:QA"

    def test_to_csv_quotes_every_cell(self):
        """Test every cell is quoted."""
        assert to_csv(["a", "b"], [["1", ""]]) == '"a","b"\n"1",""'
