"""
Unit Tests for the Workflow Executor

Tests cover:
1. IF / ELSE branch selection and priority order
2. Loop detection
3. Stopping when no branch applies
4. Action effects on final status and assignee
5. Enrollment gating
"""

import pytest

from rules.conditions import Condition, ConditionGroup, ConditionOperator, GroupOp
from workflows.executor import LOOP_DETECTED, NOT_ENROLLED, WORKFLOW_INACTIVE, check_enrollment, execute
from workflows.graph import (
    ActionType,
    EnrollmentConfig,
    HubEdge,
    HubNode,
    NodeKind,
    WorkflowAction,
    WorkflowDefinition,
    WorkflowMeta,
)


def when(field, operator, value=None):
    return ConditionGroup(items=[Condition(field, ConditionOperator(operator), value)])


def set_status(status):
    return WorkflowAction(ActionType.SET_STATUS, {"statusToSet": status})


def branching_definition():
    """Trigger branches to X when clinic flag is Onboarding, otherwise to Y. Both lead to End."""
    return WorkflowDefinition(
        nodes=[
            HubNode("t", NodeKind.TRIGGER, "Trigger"),
            HubNode("x", NodeKind.ACTION, "X", actions=[set_status("Onboarding Review")]),
            HubNode("y", NodeKind.ACTION, "Y", actions=[set_status("Standard Review")]),
            HubNode("e", NodeKind.END, "End"),
        ],
        edges=[
            HubEdge("t-y", "t", "y", priority=2, label="ELSE"),
            HubEdge("t-x", "t", "x", priority=1, label="IF", condition_group=when("clinic_flag", "EQUALS", "Onboarding")),
            HubEdge("x-e", "x", "e", label="Next"),
            HubEdge("y-e", "y", "e", label="Next"),
        ],
    )


class TestBranching:
    """Tests for edge selection at each node."""

    def test_matching_if_branch_is_taken(self):
        """Test the matching IF branch is followed."""
        result = execute(branching_definition(), {"clinic_flag": "onboarding ", "status": "New"})

        assert result.ok and result.completed
        assert [(p.from_node, p.to_node) for p in result.path] == [("Trigger", "X"), ("X", "End")]
        assert result.final_status == "Onboarding Review"

    def test_else_branch_taken_when_no_if_matches(self):
        """Test the ELSE branch is followed when no IF matches."""
        result = execute(branching_definition(), {"clinic_flag": "Active", "status": "New"})

        assert result.path[0].to_node == "Y"
        assert result.final_status == "Standard Review"

    def test_if_edges_checked_in_priority_order(self):
        """Test IF edges are tried in ascending priority."""
        definition = branching_definition()
        definition.edges.append(
            HubEdge("t-y-first", "t", "y", priority=0, label="IF status", condition_group=when("status", "IS_FILLED"))
        )

        result = execute(definition, {"clinic_flag": "Onboarding", "status": "New"})

        assert result.path[0].to_node == "Y"
        assert result.path[0].edge_label == "IF status"

    def test_if_edge_wins_over_lower_priority_else(self):
        """Test a matching IF beats an ELSE with a lower priority number."""
        definition = branching_definition()
        for edge in definition.edges:
            if edge.id == "t-y":
                edge.priority = 0

        result = execute(definition, {"clinic_flag": "Onboarding"})

        assert result.path[0].to_node == "X"

    def test_or_group(self):
        """Test an OR group on an edge."""
        definition = branching_definition()
        definition.edges[1].condition_group = ConditionGroup(
            group_op=GroupOp.OR,
            items=[
                Condition("clinic_flag", ConditionOperator.EQUALS, "Onboarding"),
                Condition("insurance_name", ConditionOperator.STARTS_WITH, "Aet"),
            ],
        )

        assert execute(definition, {"insurance_name": "Aetna"}).path[0].to_node == "X"

    def test_same_inputs_give_same_result(self):
        """Test identical inputs give identical runs."""
        inputs = {"clinic_flag": "Onboarding", "status": "New"}
        first = execute(branching_definition(), inputs)
        second = execute(branching_definition(), inputs)

        assert first.path == second.path
        assert first.final_status == second.final_status
        assert first.reason == second.reason


class TestStopping:
    """Tests for runs that end before reaching an END node."""

    def test_loop_is_detected(self):
        """Test revisiting a node aborts the run."""
        definition = WorkflowDefinition(
            nodes=[
                HubNode("t", NodeKind.TRIGGER, "Trigger"),
                HubNode("a", NodeKind.ACTION, "A"),
                HubNode("b", NodeKind.ACTION, "B"),
                HubNode("e", NodeKind.END, "End"),
            ],
            edges=[HubEdge("1", "t", "a"), HubEdge("2", "a", "b"), HubEdge("3", "b", "a")],
        )

        result = execute(definition, {})

        assert not result.ok
        assert LOOP_DETECTED in result.reason
        assert not result.completed

    def test_no_outgoing_edges(self):
        """Test a node without outgoing edges stops the run."""
        definition = branching_definition()
        definition.edges = [e for e in definition.edges if e.source != "x"]

        result = execute(definition, {"clinic_flag": "Onboarding"})

        assert result.ok and not result.completed
        assert result.reason.startswith("Stopped: no outgoing path")
        assert result.final_status == "Onboarding Review"

    def test_no_matching_branch_and_no_else(self):
        """Test the run stops when nothing matches and there is no ELSE."""
        definition = branching_definition()
        definition.edges = [e for e in definition.edges if e.id != "t-y"]

        result = execute(definition, {"clinic_flag": "Active", "status": "New"})

        assert result.ok and not result.completed
        assert "no matching branch and no ELSE" in result.reason
        assert result.path == []
        assert result.final_status == "New"

    def test_edge_to_missing_node_fails(self):
        """Test an edge to a missing node fails the run."""
        definition = branching_definition()
        definition.edges.insert(0, HubEdge("t-gone", "t", "gone", priority=0))

        result = execute(definition, {})

        assert not result.ok
        assert "gone" in result.reason

    def test_definition_without_trigger_fails(self):
        """Test a definition without TRIGGER fails the run."""
        result = execute(WorkflowDefinition(nodes=[HubNode("e", NodeKind.END, "End")]), {})

        assert not result.ok


class TestActions:
    """Tests for action effects during a run."""

    def test_last_status_and_assignee_win(self):
        """Test the last status and assignment applied win."""
        definition = WorkflowDefinition(
            nodes=[
                HubNode("t", NodeKind.TRIGGER, "Trigger", actions=[set_status("Started")]),
                HubNode("a", NodeKind.ACTION, "Route", actions=[
                    WorkflowAction(ActionType.ASSIGN_USER, {"mode": "ROLE", "value": "Intake"}),
                    set_status("Routed"),
                    WorkflowAction(ActionType.ASSIGN_USER, {"mode": "USER", "value": "jane"}),
                ]),
                HubNode("e", NodeKind.END, "End"),
            ],
            edges=[HubEdge("1", "t", "a"), HubEdge("2", "a", "e")],
        )

        result = execute(definition, {"status": "New"})

        assert result.final_status == "Routed"
        assert result.assigned_to == "USER:jane"
        assert [a.type for a in result.executed_actions] == [
            ActionType.SET_STATUS, ActionType.ASSIGN_USER, ActionType.SET_STATUS, ActionType.ASSIGN_USER,
        ]

    def test_email_and_autofill_are_recorded_without_side_effects(self):
        """Test email and autofill actions are recorded only."""
        definition = WorkflowDefinition(
            nodes=[
                HubNode("t", NodeKind.TRIGGER, "Trigger"),
                HubNode("a", NodeKind.ACTION, "Notify", actions=[
                    WorkflowAction(ActionType.SEND_EMAIL, {"templateId": "tpl-1", "to": "clinic"}),
                    WorkflowAction(ActionType.AUTOFILL_FIELDS, {"fields": [{"key": "notes", "value": "auto"}]}),
                ]),
                HubNode("e", NodeKind.END, "End"),
            ],
            edges=[HubEdge("1", "t", "a"), HubEdge("2", "a", "e")],
        )

        result = execute(definition, {"status": "New"})

        assert result.final_status == "New"
        assert result.assigned_to == ""
        assert [a.summary for a in result.executed_actions] == [
            "Email → clinic (template: tpl-1)", "Autofill 1 field(s)",
        ]
        assert result.executed_actions[0].to_dict()["nodeName"] == "Notify"


class TestEnrollment:
    """Tests for enrollment gating before a run."""

    @pytest.fixture
    def workflow(self, clock):
        now = clock()
        return WorkflowMeta(
            id="wf", account_type="EV", name="EV Flow", created_at=now, updated_at=now,
            draft=branching_definition(),
            enrollment=EnrollmentConfig(enrollment_group=when("status", "EQUALS", "Pending Benefits")),
        )

    def test_matching_inputs_enroll(self, workflow):
        """Test matching inputs are enrolled."""
        assert check_enrollment(workflow, {"status": "pending benefits"}) is None

    def test_non_matching_inputs_not_enrolled(self, workflow):
        """Test non-matching inputs are not enrolled."""
        assert check_enrollment(workflow, {"status": "Verified"}) == NOT_ENROLLED

    def test_disabled_enrollment_admits_everything(self, workflow):
        """Test disabled enrollment lets every input in."""
        workflow.enrollment.enabled = False
        assert check_enrollment(workflow, {"status": "Verified"}) is None

    def test_inactive_workflow_is_blocked_first(self, workflow):
        """Test an inactive workflow blocks before enrollment."""
        workflow.is_active = False
        assert check_enrollment(workflow, {"status": "Pending Benefits"}) == WORKFLOW_INACTIVE
