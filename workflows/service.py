from threading import RLock
from typing import Any, Callable, Mapping, Optional, Union

import structlog

from audit.models import ActionSummary, PathSegment, RunOutcome, WorkflowAuditEntry
from audit.service import AuditLog
from common.storage import InMemoryStorage, default_id_factory, utc_now
from rules.conditions import ConditionGroup, DefinitionError

from .executor import NOT_ENROLLED, WORKFLOW_INACTIVE, ExecutionResult, WorkflowExecutor, check_enrollment
from .graph import (
    DEFAULT_NODE_NAMES,
    AccountType,
    EnrollmentConfig,
    HubEdge,
    HubNode,
    NodeKind,
    TriggerType,
    WorkflowAction,
    WorkflowDefinition,
    WorkflowMeta,
    WorkflowVersion,
    make_default_definition,
    make_default_enrollment,
    validate_for_publish,
)
from .models import WorkflowInputs, WorkflowRunResult

logger = structlog.get_logger()


class WorkflowServiceError(Exception):
    pass


class WorkflowNotFoundError(WorkflowServiceError):
    pass


class NodeNotFoundError(WorkflowServiceError):
    pass


class EdgeNotFoundError(WorkflowServiceError):
    pass


class VersionNotFoundError(WorkflowServiceError):
    pass


class InvalidDefinitionError(WorkflowServiceError):
    pass


class PublishBlockedError(WorkflowServiceError):
    pass


class WorkflowService:
    def __init__(
        self,
        storage: Optional[InMemoryStorage] = None,
        audit_log: Optional[AuditLog] = None,
        id_factory: Callable[[], str] = default_id_factory,
        clock: Callable = utc_now,
        executor: Optional[WorkflowExecutor] = None,
    ):
        self.storage = storage if storage is not None else InMemoryStorage()
        self.audit_log = audit_log if audit_log is not None else AuditLog(id_factory=id_factory, clock=clock)
        self.executor = executor or WorkflowExecutor()
        self._id_factory = id_factory
        self._clock = clock
        self._lock = RLock()

    # Workflows

    def create_workflow(self, account_type: AccountType, name: str, description: str = "") -> WorkflowMeta:
        if not (name or "").strip():
            raise WorkflowServiceError("Workflow name is required")
        now = self._clock()
        definition = make_default_definition(self._id_factory)
        meta = WorkflowMeta(
            id=self._id_factory(),
            account_type=AccountType(account_type),
            name=name.strip(),
            description=description,
            created_at=now,
            updated_at=now,
            draft=definition,
            versions=(WorkflowVersion(version=1, created_at=now, updated_at=now, definition=definition.copy()),),
            enrollment=make_default_enrollment(self._id_factory),
        )
        self.storage.workflows.create(meta)
        logger.info("workflow_created", workflow_id=meta.id, account_type=meta.account_type.value, name=meta.name)
        return meta

    def get_workflow(self, workflow_id: str) -> WorkflowMeta:
        meta = self.storage.workflows.get(workflow_id)
        if not meta:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")
        return meta

    def list_workflows(self, account_type: Optional[AccountType] = None, search: Optional[str] = None) -> list[WorkflowMeta]:
        workflows = self.storage.workflows.list()
        if account_type:
            workflows = [w for w in workflows if w.account_type == account_type]
        q = (search or "").strip().lower()
        if q:
            workflows = [w for w in workflows if q in w.name.lower()]
        workflows.sort(key=lambda w: w.created_at, reverse=True)
        return workflows

    def toggle_workflow_active(self, workflow_id: str) -> WorkflowMeta:
        with self._lock:
            meta = self.get_workflow(workflow_id)
            updated = self._update(meta, is_active=not meta.is_active)
        logger.info("workflow_toggled", workflow_id=workflow_id, is_active=updated.is_active)
        return updated

    def set_only_active(self, workflow_id: str) -> WorkflowMeta:
        """Activate one workflow and deactivate every other workflow of its account type."""
        with self._lock:
            target = self.get_workflow(workflow_id)
            for meta in self.storage.workflows.list():
                if meta.account_type == target.account_type:
                    self._update(meta, is_active=meta.id == target.id)
        logger.info("workflow_set_only_active", workflow_id=workflow_id, account_type=target.account_type.value)
        return self.get_workflow(workflow_id)

    def update_enrollment(self, workflow_id: str, enrollment: Union[EnrollmentConfig, Mapping[str, Any]]) -> WorkflowMeta:
        if not isinstance(enrollment, EnrollmentConfig):
            enrollment = self._parse(EnrollmentConfig.from_dict, enrollment)
        with self._lock:
            return self._update(self.get_workflow(workflow_id), enrollment=enrollment)

    # Draft editing

    def update_draft(self, workflow_id: str, definition: WorkflowDefinition) -> WorkflowMeta:
        with self._lock:
            return self._update(self.get_workflow(workflow_id), draft=definition.copy())

    def import_definition(self, workflow_id: str, payload: Mapping[str, Any]) -> WorkflowMeta:
        return self.update_draft(workflow_id, self._parse(WorkflowDefinition.from_dict, payload))

    def export_definition(self, workflow_id: str, version: Optional[int] = None) -> dict:
        meta = self.get_workflow(workflow_id)
        if version is None:
            return meta.draft.to_dict()
        return self._get_version(meta, version).definition.to_dict()

    def add_node(self, workflow_id: str, kind: NodeKind, name: Optional[str] = None) -> HubNode:
        node = HubNode(id=self._id_factory(), kind=NodeKind(kind), name=name or DEFAULT_NODE_NAMES[NodeKind(kind)])
        self._edit_draft(workflow_id, lambda d: d.nodes.append(node))
        return node

    def remove_node(self, workflow_id: str, node_id: str) -> WorkflowMeta:
        """Remove a node and every edge that touches it."""
        def edit(d: WorkflowDefinition) -> None:
            self._require_node(d, node_id)
            d.nodes = [n for n in d.nodes if n.id != node_id]
            d.edges = [e for e in d.edges if e.source != node_id and e.target != node_id]
        return self._edit_draft(workflow_id, edit)

    def duplicate_node(self, workflow_id: str, node_id: str) -> HubNode:
        copied: list[HubNode] = []

        def edit(d: WorkflowDefinition) -> None:
            source = self._require_node(d, node_id)
            node = HubNode(
                id=self._id_factory(), kind=source.kind, name=f"{source.name} (Copy)",
                actions=[WorkflowAction(a.type, dict(a.params), id=self._id_factory()) for a in source.actions],
            )
            d.nodes.append(node)
            copied.append(node)

        self._edit_draft(workflow_id, edit)
        return copied[0]

    def set_node_actions(
        self, workflow_id: str, node_id: str, actions: list[Union[WorkflowAction, Mapping[str, Any]]]
    ) -> WorkflowMeta:
        actions = [a if isinstance(a, WorkflowAction) else self._parse(WorkflowAction.from_dict, a) for a in actions]

        def edit(d: WorkflowDefinition) -> None:
            self._require_node(d, node_id).actions = list(actions)
        return self._edit_draft(workflow_id, edit)

    def add_edge(
        self,
        workflow_id: str,
        source: str,
        target: str,
        label: str = "",
        priority: int = 1,
        condition_group: Union[ConditionGroup, Mapping[str, Any], None] = None,
    ) -> HubEdge:
        condition_group = self._condition_group(condition_group)
        try:
            edge = HubEdge(
                id=self._id_factory(), source=source, target=target,
                priority=priority, label=label, condition_group=condition_group,
            )
        except DefinitionError as e:
            raise InvalidDefinitionError(str(e)) from e
        self._edit_draft(workflow_id, lambda d: d.edges.append(edge))
        return edge

    def remove_edge(self, workflow_id: str, edge_id: str) -> WorkflowMeta:
        def edit(d: WorkflowDefinition) -> None:
            self._require_edge(d, edge_id)
            d.edges = [e for e in d.edges if e.id != edge_id]
        return self._edit_draft(workflow_id, edit)

    def set_edge_if(
        self, workflow_id: str, edge_id: str, condition_group: Union[ConditionGroup, Mapping[str, Any], None] = None
    ) -> WorkflowMeta:
        condition_group = self._condition_group(condition_group)

        def edit(d: WorkflowDefinition) -> None:
            edge = self._require_edge(d, edge_id)
            if not edge.label or edge.label.startswith("ELSE"):
                edge.label = "IF"
            edge.priority = max(1, edge.priority or 1)
            if condition_group is not None:
                edge.condition_group = condition_group
            elif edge.condition_group is None or edge.condition_group.is_empty:
                edge.condition_group = ConditionGroup(id=self._id_factory())
        return self._edit_draft(workflow_id, edit)

    def set_edge_else(self, workflow_id: str, edge_id: str) -> WorkflowMeta:
        def edit(d: WorkflowDefinition) -> None:
            edge = self._require_edge(d, edge_id)
            edge.label = "ELSE"
            edge.condition_group = None
        return self._edit_draft(workflow_id, edit)

    # Versioning

    def publish(self, workflow_id: str) -> WorkflowVersion:
        with self._lock:
            meta = self.get_workflow(workflow_id)
            error = validate_for_publish(meta.draft)
            if error:
                logger.warning("publish_blocked", workflow_id=workflow_id, error=error)
                raise PublishBlockedError(f"Publish blocked: {error}")

            now = self._clock()
            next_version = max((v.version for v in meta.versions), default=0) + 1
            version = WorkflowVersion(version=next_version, created_at=now, updated_at=now, definition=meta.draft.copy())
            self._update(meta, versions=(version,) + tuple(meta.versions))
        logger.info("workflow_published", workflow_id=workflow_id, version=next_version)
        return version

    def latest_version(self, workflow_id: str) -> Optional[WorkflowVersion]:
        return self.get_workflow(workflow_id).latest_version

    # Runs

    def run(
        self,
        workflow_id: str,
        inputs: WorkflowInputs,
        trigger_type: TriggerType = TriggerType.RULE_ENGINE,
    ) -> WorkflowRunResult:
        meta = self.get_workflow(workflow_id)
        published = meta.latest_version
        if published is None:
            raise VersionNotFoundError(f"Workflow {workflow_id} has no published version")
        values = inputs.model_dump()

        blocked = check_enrollment(meta, values)
        if blocked:
            if blocked == WORKFLOW_INACTIVE:
                outcome, message = RunOutcome.INACTIVE, f"{WORKFLOW_INACTIVE}: activate it or choose an active workflow."
            else:
                outcome, message = RunOutcome.NOT_ENROLLED, f"{NOT_ENROLLED}: enrollment conditions did not match."
            result = ExecutionResult(ok=True, reason=message, final_status=inputs.status)
        else:
            result = self.executor.execute(published.definition, values)
            if not result.ok:
                outcome, message = RunOutcome.FAILED, result.reason
            else:
                outcome = RunOutcome.COMPLETED if result.completed else RunOutcome.STOPPED
                message = f'{result.reason} Final Status: "{result.final_status}".'

        run_result = WorkflowRunResult.from_execution(result, outcome, message, published.version)
        entry = self._record_run(meta, published, inputs, trigger_type, result, outcome, message)
        run_result.audit_entry_id = entry.id
        logger.info(
            "workflow_run_finished", workflow_id=meta.id, version=published.version,
            entity_id=inputs.entity_id, outcome=outcome.value, final_status=result.final_status,
        )
        return run_result

    def _record_run(
        self,
        meta: WorkflowMeta,
        published: WorkflowVersion,
        inputs: WorkflowInputs,
        trigger_type: TriggerType,
        result: ExecutionResult,
        outcome: RunOutcome,
        message: str,
    ) -> WorkflowAuditEntry:
        step = result.chosen_path
        return self.audit_log.record_workflow_run(
            account_type=meta.account_type.value,
            workflow_id=meta.id,
            workflow_name=meta.name,
            workflow_version=published.version,
            entity_id=inputs.entity_id or "—",
            trigger_type=TriggerType(trigger_type).value,
            winning_rule_code=inputs.winning_rule_code or None,
            outcome=outcome,
            chosen_path=PathSegment(from_=step.from_node, to=step.to_node, edge_label=step.edge_label) if step else None,
            executed_actions=tuple(ActionSummary(type=a.type.value, summary=a.summary) for a in result.executed_actions),
            final_status=result.final_status,
            assigned_to=result.assigned_to,
            notes=message,
        )

    # Helpers

    def _update(self, meta: WorkflowMeta, **changes) -> WorkflowMeta:
        return self.storage.workflows.update(meta.id, updated_at=self._clock(), **changes)

    def _edit_draft(self, workflow_id: str, edit: Callable[[WorkflowDefinition], None]) -> WorkflowMeta:
        with self._lock:
            meta = self.get_workflow(workflow_id)
            draft = meta.draft.copy()
            edit(draft)
            return self._update(meta, draft=draft)

    def _get_version(self, meta: WorkflowMeta, version: int) -> WorkflowVersion:
        found = next((v for v in meta.versions if v.version == version), None)
        if not found:
            raise VersionNotFoundError(f"Workflow {meta.id} has no version {version}")
        return found

    @staticmethod
    def _require_node(definition: WorkflowDefinition, node_id: str) -> HubNode:
        node = definition.get_node(node_id)
        if not node:
            raise NodeNotFoundError(f"Node {node_id} not found")
        return node

    @staticmethod
    def _require_edge(definition: WorkflowDefinition, edge_id: str) -> HubEdge:
        edge = next((e for e in definition.edges if e.id == edge_id), None)
        if not edge:
            raise EdgeNotFoundError(f"Edge {edge_id} not found")
        return edge

    def _condition_group(self, group: Union[ConditionGroup, Mapping[str, Any], None]) -> Optional[ConditionGroup]:
        if group is None or isinstance(group, ConditionGroup):
            return group
        return self._parse(ConditionGroup.from_dict, group)

    @staticmethod
    def _parse(parser: Callable, payload: Any):
        try:
            return parser(payload)
        except DefinitionError as e:
            raise InvalidDefinitionError(str(e)) from e
