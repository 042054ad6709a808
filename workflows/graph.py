"""
Workflow graph model.

A workflow is a directed graph of nodes (TRIGGER, ACTION, DECISION, END)
connected by prioritised edges. Branch logic lives on the edges: an edge with
a non-empty condition group is an IF branch, an edge without one is the ELSE
fallback. DECISION nodes only organise the canvas and carry no logic.
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Mapping, Optional
from uuid import uuid4

from rules.conditions import ConditionGroup, ConditionOperator, DefinitionError, GroupOp, Condition


def _uid() -> str:
    return str(uuid4())


class NodeKind(str, Enum):
    TRIGGER = "TRIGGER"
    ACTION = "ACTION"
    DECISION = "DECISION"
    END = "END"


class ActionType(str, Enum):
    SET_STATUS = "SET_STATUS"
    AUTOFILL_FIELDS = "AUTOFILL_FIELDS"
    ASSIGN_USER = "ASSIGN_USER"
    SEND_EMAIL = "SEND_EMAIL"


class AssignMode(str, Enum):
    ROLE = "ROLE"
    USER = "USER"


class EmailRecipient(str, Enum):
    CLINIC = "clinic"
    AGENT = "agent"
    QA = "qa"


class TriggerType(str, Enum):
    RULE_ENGINE = "RULE_ENGINE"
    STATUS_CHANGE = "STATUS_CHANGE"
    FIELD_UPDATE = "FIELD_UPDATE"
    MANUAL_OVERRIDE = "MANUAL_OVERRIDE"


class AccountType(str, Enum):
    EV = "EV"
    PA = "PA"
    IV = "IV"
    WCPI = "WCPI"


class GraphIssue(str, Enum):
    MISSING_TRIGGER = "missing trigger"
    MISSING_END = "missing end"
    DANGLING_EDGE = "dangling edge"


DEFAULT_NODE_NAMES = {
    NodeKind.TRIGGER: "Trigger: Enrollment",
    NodeKind.DECISION: "Decision: IF / ELSE",
    NodeKind.ACTION: "Action: New Step",
    NodeKind.END: "End",
}

_REQUIRED_PARAMS = {
    ActionType.SET_STATUS: ("statusToSet",),
    ActionType.AUTOFILL_FIELDS: ("fields",),
    ActionType.ASSIGN_USER: ("mode", "value"),
    ActionType.SEND_EMAIL: ("templateId", "to"),
}


@dataclass
class WorkflowAction:
    type: ActionType
    params: dict = field(default_factory=dict)
    id: str = field(default_factory=_uid)

    def __post_init__(self):
        missing = [k for k in _REQUIRED_PARAMS[self.type] if k not in self.params]
        if missing:
            raise DefinitionError(f"{self.type.value} action requires {', '.join(missing)}")
        if self.type == ActionType.ASSIGN_USER:
            self.params["mode"] = AssignMode(self.params["mode"]).value
        if self.type == ActionType.SEND_EMAIL:
            self.params["to"] = EmailRecipient(self.params["to"]).value
        if self.type == ActionType.AUTOFILL_FIELDS:
            fields = self.params["fields"]
            if not isinstance(fields, list) or not all(isinstance(f, Mapping) and f.get("key") for f in fields):
                raise DefinitionError("AUTOFILL_FIELDS action requires a list of {key, value} fields")
            self.params["fields"] = [{"key": f["key"], "value": f.get("value", "")} for f in fields]

    def summary(self) -> str:
        p = self.params
        if self.type == ActionType.SET_STATUS: return f"Set Status → {p['statusToSet']}"
        if self.type == ActionType.AUTOFILL_FIELDS: return f"Autofill {len(p['fields'])} field(s)"
        if self.type == ActionType.ASSIGN_USER: return f"Assign → {p['mode']}:{p['value']}"
        if self.type == ActionType.SEND_EMAIL: return f"Email → {p['to']} (template: {p['templateId']})"
        return "Action"

    def to_dict(self) -> dict:
        return {"id": self.id, "type": self.type.value, "payload": copy.deepcopy(self.params)}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WorkflowAction":
        try:
            action_type = ActionType(data["type"])
        except (KeyError, ValueError):
            raise DefinitionError(f"Unknown workflow action type: {data.get('type')!r}") from None
        params = data.get("payload", data.get("params", {}))
        if not isinstance(params, Mapping):
            raise DefinitionError(f"{action_type.value} action payload must be an object")
        try:
            return cls(type=action_type, params=dict(params), id=data.get("id") or _uid())
        except (KeyError, TypeError, ValueError) as e:
            if isinstance(e, DefinitionError):
                raise
            raise DefinitionError(f"Invalid {action_type.value} payload: {e}") from None


@dataclass
class HubNode:
    id: str
    kind: NodeKind
    name: str
    actions: list[WorkflowAction] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"id": self.id, "kind": self.kind.value, "name": self.name, "actions": [a.to_dict() for a in self.actions]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HubNode":
        if not data.get("id"):
            raise DefinitionError("Node requires an id")
        try:
            kind = NodeKind(data.get("kind"))
        except ValueError:
            raise DefinitionError(f"Unknown node kind: {data.get('kind')!r}") from None
        actions = data.get("actions", [])
        if not isinstance(actions, list) or not all(isinstance(a, Mapping) for a in actions):
            raise DefinitionError(f"Node {data['id']} actions must be a list of objects")
        return cls(
            id=data["id"], kind=kind, name=data.get("name") or DEFAULT_NODE_NAMES[kind],
            actions=[WorkflowAction.from_dict(a) for a in actions],
        )


@dataclass
class HubEdge:
    id: str
    source: str
    target: str
    priority: int = 1
    label: str = ""
    condition_group: Optional[ConditionGroup] = None

    def __post_init__(self):
        if not self.source or not self.target:
            raise DefinitionError(f"Edge {self.id} requires both source and target")

    @property
    def is_else(self) -> bool:
        return self.condition_group is None or self.condition_group.is_empty

    def to_dict(self) -> dict:
        return {
            "id": self.id, "source": self.source, "target": self.target,
            "priority": self.priority, "label": self.label,
            "conditionGroup": self.condition_group.to_dict() if self.condition_group else None,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "HubEdge":
        group = data.get("conditionGroup")
        if group is not None and not isinstance(group, Mapping):
            raise DefinitionError(f"Edge {data.get('id')} conditionGroup must be an object")
        try:
            priority = int(data.get("priority", 1))
        except (TypeError, ValueError):
            raise DefinitionError(f"Edge {data.get('id')} priority must be an integer") from None
        return cls(
            id=data.get("id") or _uid(), source=data.get("source"), target=data.get("target"),
            priority=priority, label=data.get("label", ""),
            condition_group=ConditionGroup.from_dict(group) if group is not None else None,
        )


@dataclass
class WorkflowDefinition:
    nodes: list[HubNode] = field(default_factory=list)
    edges: list[HubEdge] = field(default_factory=list)

    def get_node(self, node_id: str) -> Optional[HubNode]:
        return next((n for n in self.nodes if n.id == node_id), None)

    def trigger(self) -> Optional[HubNode]:
        return next((n for n in self.nodes if n.kind == NodeKind.TRIGGER), None)

    def outgoing(self, node_id: str) -> list[HubEdge]:
        return sorted((e for e in self.edges if e.source == node_id), key=lambda e: e.priority)

    def copy(self) -> "WorkflowDefinition":
        return copy.deepcopy(self)

    def to_dict(self) -> dict:
        return {"nodes": [n.to_dict() for n in self.nodes], "edges": [e.to_dict() for e in self.edges]}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "WorkflowDefinition":
        if not isinstance(data.get("nodes"), list) or not isinstance(data.get("edges"), list):
            raise DefinitionError("Workflow definition requires 'nodes' and 'edges' lists")
        if not all(isinstance(item, Mapping) for item in data["nodes"] + data["edges"]):
            raise DefinitionError("Workflow nodes and edges must be objects")
        return cls(
            nodes=[HubNode.from_dict(n) for n in data["nodes"]],
            edges=[HubEdge.from_dict(e) for e in data["edges"]],
        )


@dataclass(frozen=True)
class WorkflowVersion:
    version: int
    created_at: datetime
    updated_at: datetime
    definition: WorkflowDefinition

    def to_dict(self) -> dict:
        return {
            "version": self.version, "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(), "definition": self.definition.to_dict(),
        }


@dataclass
class EnrollmentConfig:
    enabled: bool = True
    trigger_type: TriggerType = TriggerType.RULE_ENGINE
    re_enroll: bool = False
    enrollment_group: ConditionGroup = field(default_factory=ConditionGroup)

    def to_dict(self) -> dict:
        return {
            "enabled": self.enabled, "triggerType": self.trigger_type.value,
            "reEnroll": self.re_enroll, "enrollmentGroup": self.enrollment_group.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EnrollmentConfig":
        if not isinstance(data.get("enrollmentGroup"), Mapping):
            raise DefinitionError("Enrollment requires an enrollmentGroup")
        try:
            trigger_type = TriggerType(data.get("triggerType", TriggerType.RULE_ENGINE.value))
        except ValueError:
            raise DefinitionError(f"Unknown trigger type: {data.get('triggerType')!r}") from None
        return cls(
            enabled=bool(data.get("enabled", True)),
            trigger_type=trigger_type,
            re_enroll=bool(data.get("reEnroll", False)),
            enrollment_group=ConditionGroup.from_dict(data["enrollmentGroup"]),
        )


@dataclass
class WorkflowMeta:
    id: str
    account_type: AccountType
    name: str
    created_at: datetime
    updated_at: datetime
    draft: WorkflowDefinition
    enrollment: EnrollmentConfig
    versions: tuple[WorkflowVersion, ...] = ()
    description: str = ""
    is_active: bool = True

    @property
    def latest_version(self) -> Optional[WorkflowVersion]:
        return max(self.versions, key=lambda v: v.version, default=None)


def validate_for_publish(definition: WorkflowDefinition) -> Optional[str]:
    """Return a description of the first structural defect, or None when publishable."""
    if not any(n.kind == NodeKind.TRIGGER for n in definition.nodes):
        return f"{GraphIssue.MISSING_TRIGGER.value}: workflow must have a TRIGGER node."
    if not any(n.kind == NodeKind.END for n in definition.nodes):
        return f"{GraphIssue.MISSING_END.value}: workflow must have an END node."
    node_ids = {n.id for n in definition.nodes}
    for edge in definition.edges:
        for endpoint in (edge.source, edge.target):
            if endpoint not in node_ids:
                return f"{GraphIssue.DANGLING_EDGE.value}: branch {edge.id} references missing node {endpoint}."
    return None


def make_default_definition(id_factory: Callable[[], str] = _uid) -> WorkflowDefinition:
    trigger, action, end = id_factory(), id_factory(), id_factory()
    return WorkflowDefinition(
        nodes=[
            HubNode(id=trigger, kind=NodeKind.TRIGGER, name=DEFAULT_NODE_NAMES[NodeKind.TRIGGER]),
            HubNode(
                id=action, kind=NodeKind.ACTION, name="Action: Set Status",
                actions=[WorkflowAction(ActionType.SET_STATUS, {"statusToSet": "Pending Benefits"}, id=id_factory())],
            ),
            HubNode(id=end, kind=NodeKind.END, name=DEFAULT_NODE_NAMES[NodeKind.END]),
        ],
        edges=[
            HubEdge(id=id_factory(), source=trigger, target=action, priority=1, label="Next"),
            HubEdge(id=id_factory(), source=action, target=end, priority=1, label="Complete"),
        ],
    )


def make_default_enrollment(id_factory: Callable[[], str] = _uid) -> EnrollmentConfig:
    return EnrollmentConfig(
        enrollment_group=ConditionGroup(
            group_op=GroupOp.AND,
            items=[Condition("status", ConditionOperator.EQUALS, "Pending Benefits", id=id_factory())],
            id=id_factory(),
        ),
    )
