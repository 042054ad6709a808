from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, status

from api.dependencies import get_workflow_service

from .graph import AccountType
from .models import (
    AddEdgeRequest,
    AddNodeRequest,
    CreateWorkflowRequest,
    RunWorkflowRequest,
    SetEdgeIfRequest,
    SetNodeActionsRequest,
    WorkflowRunResult,
    WorkflowSummary,
)
from .service import (
    EdgeNotFoundError,
    InvalidDefinitionError,
    NodeNotFoundError,
    PublishBlockedError,
    VersionNotFoundError,
    WorkflowNotFoundError,
    WorkflowService,
)

router = APIRouter(prefix="/workflows", tags=["Workflows"])


def _not_found(workflow_id: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Workflow {workflow_id} not found")


@router.post("", response_model=WorkflowSummary, status_code=status.HTTP_201_CREATED)
def create_workflow(
    request: CreateWorkflowRequest, service: WorkflowService = Depends(get_workflow_service)
) -> WorkflowSummary:
    meta = service.create_workflow(request.account_type, request.name, request.description)
    return WorkflowSummary.from_meta(meta)


@router.get("", response_model=list[WorkflowSummary])
def list_workflows(
    account_type: Optional[AccountType] = None,
    search: Optional[str] = None,
    service: WorkflowService = Depends(get_workflow_service),
) -> list[WorkflowSummary]:
    return [WorkflowSummary.from_meta(w) for w in service.list_workflows(account_type, search)]


@router.get("/{workflow_id}", response_model=WorkflowSummary)
def get_workflow(workflow_id: str, service: WorkflowService = Depends(get_workflow_service)) -> WorkflowSummary:
    try:
        return WorkflowSummary.from_meta(service.get_workflow(workflow_id))
    except WorkflowNotFoundError:
        raise _not_found(workflow_id)


@router.post("/{workflow_id}/toggle", response_model=WorkflowSummary)
def toggle_workflow(workflow_id: str, service: WorkflowService = Depends(get_workflow_service)) -> WorkflowSummary:
    try:
        return WorkflowSummary.from_meta(service.toggle_workflow_active(workflow_id))
    except WorkflowNotFoundError:
        raise _not_found(workflow_id)


@router.post("/{workflow_id}/only-active", response_model=WorkflowSummary)
def set_only_active(workflow_id: str, service: WorkflowService = Depends(get_workflow_service)) -> WorkflowSummary:
    try:
        return WorkflowSummary.from_meta(service.set_only_active(workflow_id))
    except WorkflowNotFoundError:
        raise _not_found(workflow_id)


@router.put("/{workflow_id}/draft", response_model=WorkflowSummary)
def replace_draft(
    workflow_id: str, payload: dict[str, Any], service: WorkflowService = Depends(get_workflow_service)
) -> WorkflowSummary:
    try:
        return WorkflowSummary.from_meta(service.import_definition(workflow_id, payload))
    except WorkflowNotFoundError:
        raise _not_found(workflow_id)
    except InvalidDefinitionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.put("/{workflow_id}/enrollment", response_model=WorkflowSummary)
def update_enrollment(
    workflow_id: str, payload: dict[str, Any], service: WorkflowService = Depends(get_workflow_service)
) -> WorkflowSummary:
    try:
        return WorkflowSummary.from_meta(service.update_enrollment(workflow_id, payload))
    except WorkflowNotFoundError:
        raise _not_found(workflow_id)
    except InvalidDefinitionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/{workflow_id}/nodes", status_code=status.HTTP_201_CREATED)
def add_node(
    workflow_id: str, request: AddNodeRequest, service: WorkflowService = Depends(get_workflow_service)
) -> dict:
    try:
        return service.add_node(workflow_id, request.kind, request.name).to_dict()
    except WorkflowNotFoundError:
        raise _not_found(workflow_id)


@router.delete("/{workflow_id}/nodes/{node_id}", response_model=WorkflowSummary)
def remove_node(
    workflow_id: str, node_id: str, service: WorkflowService = Depends(get_workflow_service)
) -> WorkflowSummary:
    try:
        return WorkflowSummary.from_meta(service.remove_node(workflow_id, node_id))
    except WorkflowNotFoundError:
        raise _not_found(workflow_id)
    except NodeNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/{workflow_id}/nodes/{node_id}/duplicate", status_code=status.HTTP_201_CREATED)
def duplicate_node(workflow_id: str, node_id: str, service: WorkflowService = Depends(get_workflow_service)) -> dict:
    try:
        return service.duplicate_node(workflow_id, node_id).to_dict()
    except WorkflowNotFoundError:
        raise _not_found(workflow_id)
    except NodeNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.put("/{workflow_id}/nodes/{node_id}/actions", response_model=WorkflowSummary)
def set_node_actions(
    workflow_id: str,
    node_id: str,
    request: SetNodeActionsRequest,
    service: WorkflowService = Depends(get_workflow_service),
) -> WorkflowSummary:
    try:
        return WorkflowSummary.from_meta(service.set_node_actions(workflow_id, node_id, request.actions))
    except WorkflowNotFoundError:
        raise _not_found(workflow_id)
    except NodeNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidDefinitionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/{workflow_id}/edges", status_code=status.HTTP_201_CREATED)
def add_edge(
    workflow_id: str, request: AddEdgeRequest, service: WorkflowService = Depends(get_workflow_service)
) -> dict:
    try:
        edge = service.add_edge(
            workflow_id, request.source, request.target,
            label=request.label, priority=request.priority, condition_group=request.condition_group,
        )
        return edge.to_dict()
    except WorkflowNotFoundError:
        raise _not_found(workflow_id)
    except InvalidDefinitionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.delete("/{workflow_id}/edges/{edge_id}", response_model=WorkflowSummary)
def remove_edge(
    workflow_id: str, edge_id: str, service: WorkflowService = Depends(get_workflow_service)
) -> WorkflowSummary:
    try:
        return WorkflowSummary.from_meta(service.remove_edge(workflow_id, edge_id))
    except WorkflowNotFoundError:
        raise _not_found(workflow_id)
    except EdgeNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/{workflow_id}/edges/{edge_id}/if", response_model=WorkflowSummary)
def set_edge_if(
    workflow_id: str,
    edge_id: str,
    request: SetEdgeIfRequest,
    service: WorkflowService = Depends(get_workflow_service),
) -> WorkflowSummary:
    try:
        return WorkflowSummary.from_meta(service.set_edge_if(workflow_id, edge_id, request.condition_group))
    except WorkflowNotFoundError:
        raise _not_found(workflow_id)
    except EdgeNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except InvalidDefinitionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/{workflow_id}/edges/{edge_id}/else", response_model=WorkflowSummary)
def set_edge_else(
    workflow_id: str, edge_id: str, service: WorkflowService = Depends(get_workflow_service)
) -> WorkflowSummary:
    try:
        return WorkflowSummary.from_meta(service.set_edge_else(workflow_id, edge_id))
    except WorkflowNotFoundError:
        raise _not_found(workflow_id)
    except EdgeNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/{workflow_id}/publish", status_code=status.HTTP_201_CREATED)
def publish(workflow_id: str, service: WorkflowService = Depends(get_workflow_service)) -> dict:
    try:
        return service.publish(workflow_id).to_dict()
    except WorkflowNotFoundError:
        raise _not_found(workflow_id)
    except PublishBlockedError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/{workflow_id}/export")
def export_definition(
    workflow_id: str, version: Optional[int] = None, service: WorkflowService = Depends(get_workflow_service)
) -> dict:
    try:
        return service.export_definition(workflow_id, version)
    except WorkflowNotFoundError:
        raise _not_found(workflow_id)
    except VersionNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/{workflow_id}/run", response_model=WorkflowRunResult)
def run_workflow(
    workflow_id: str, request: RunWorkflowRequest, service: WorkflowService = Depends(get_workflow_service)
) -> WorkflowRunResult:
    try:
        return service.run(workflow_id, request.inputs, request.trigger_type)
    except WorkflowNotFoundError:
        raise _not_found(workflow_id)
    except VersionNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
