from dataclasses import dataclass, field
from typing import Any, Callable, Mapping, Optional

import structlog

from rules.conditions import group_matches

from .graph import ActionType, HubNode, NodeKind, WorkflowAction, WorkflowDefinition, WorkflowMeta

logger = structlog.get_logger()

LOOP_DETECTED = "loop detected"
NOT_ENROLLED = "not enrolled"
WORKFLOW_INACTIVE = "workflow inactive"


@dataclass(frozen=True)
class PathStep:
    from_node: str
    to_node: str
    edge_label: str = ""

    def to_dict(self) -> dict:
        return {"from": self.from_node, "to": self.to_node, "edgeLabel": self.edge_label}


@dataclass(frozen=True)
class ExecutedAction:
    node_id: str
    node_name: str
    action: WorkflowAction

    @property
    def type(self) -> ActionType:
        return self.action.type

    @property
    def summary(self) -> str:
        return self.action.summary()

    def to_dict(self) -> dict:
        return {
            "nodeId": self.node_id, "nodeName": self.node_name, "type": self.type.value,
            "summary": self.summary, "payload": self.action.to_dict()["payload"],
        }


@dataclass
class ExecutionResult:
    ok: bool
    reason: str
    final_status: str = ""
    assigned_to: str = ""
    executed_actions: list[ExecutedAction] = field(default_factory=list)
    path: list[PathStep] = field(default_factory=list)
    completed: bool = False

    @property
    def chosen_path(self) -> Optional[PathStep]:
        return self.path[-1] if self.path else None


@dataclass
class _RunState:
    final_status: str
    assigned_to: str = ""
    executed: list[ExecutedAction] = field(default_factory=list)
    path: list[PathStep] = field(default_factory=list)

    def result(self, ok: bool, reason: str, completed: bool = False) -> ExecutionResult:
        return ExecutionResult(
            ok=ok, reason=reason, final_status=self.final_status, assigned_to=self.assigned_to,
            executed_actions=list(self.executed), path=list(self.path), completed=completed,
        )


class WorkflowExecutor:
    """
    Walks a published definition from its TRIGGER node.

    Each node is visited at most once per run; reaching a node a second time
    aborts the run. At every node the outgoing edges are tried in ascending
    priority: the first IF edge whose conditions match wins, otherwise the
    first ELSE edge is taken.
    """

    def __init__(self):
        self.action_handlers: dict[ActionType, Callable[[dict, _RunState], None]] = {
            ActionType.SET_STATUS: self._handle_set_status,
            ActionType.ASSIGN_USER: self._handle_assign_user,
            ActionType.SEND_EMAIL: self._handle_record_only,
            ActionType.AUTOFILL_FIELDS: self._handle_record_only,
        }

    def execute(self, definition: WorkflowDefinition, inputs: Mapping[str, Any]) -> ExecutionResult:
        state = _RunState(final_status=str(inputs.get("status") or ""))
        current = definition.trigger()
        if current is None:
            return state.result(False, "Workflow has no TRIGGER node.")
        self._apply_actions(current, state)

        visited: set[str] = set()
        while True:
            if current.id in visited:
                logger.warning("workflow_loop_detected", node=current.name)
                return state.result(False, f"{LOOP_DETECTED}: node \"{current.name}\" was reached twice.")
            visited.add(current.id)

            outgoing = definition.outgoing(current.id)
            if not outgoing:
                return state.result(True, f'Stopped: no outgoing path from "{current.name}".')

            chosen = next((e for e in outgoing if not e.is_else and group_matches(e.condition_group, inputs)), None)
            if chosen is None:
                chosen = next((e for e in outgoing if e.is_else), None)
            if chosen is None:
                return state.result(
                    True, f'Stopped: no matching branch and no ELSE from "{current.name}".'
                )

            next_node = definition.get_node(chosen.target)
            if next_node is None:
                return state.result(False, f"Edge {chosen.id} points to missing node {chosen.target}.")

            self._apply_actions(next_node, state)
            state.path.append(PathStep(from_node=current.name, to_node=next_node.name, edge_label=chosen.label))

            if next_node.kind == NodeKind.END:
                return state.result(True, f'Completed: reached "{next_node.name}".', completed=True)
            current = next_node

    def _apply_actions(self, node: HubNode, state: _RunState) -> None:
        for action in node.actions:
            state.executed.append(ExecutedAction(node_id=node.id, node_name=node.name, action=action))
            self.action_handlers[action.type](action.params, state)

    def _handle_set_status(self, params: dict, state: _RunState) -> None:
        state.final_status = params["statusToSet"]

    def _handle_assign_user(self, params: dict, state: _RunState) -> None:
        state.assigned_to = f"{params['mode']}:{params['value']}"

    def _handle_record_only(self, params: dict, state: _RunState) -> None:
        pass


def check_enrollment(workflow: WorkflowMeta, inputs: Mapping[str, Any]) -> Optional[str]:
    """Return why the inputs may not enter the workflow, or None when they may."""
    if not workflow.is_active:
        return WORKFLOW_INACTIVE
    enrollment = workflow.enrollment
    if enrollment.enabled and not group_matches(enrollment.enrollment_group, inputs):
        return NOT_ENROLLED
    return None


def execute(definition: WorkflowDefinition, inputs: Mapping[str, Any]) -> ExecutionResult:
    return WorkflowExecutor().execute(definition, inputs)
