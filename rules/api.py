from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status

from api.dependencies import get_rule_service
from audit.models import RuleAuditEntry

from .models import (
    BatchEvaluateRequest,
    CreateGroupRequest,
    CreateRuleRequest,
    EvaluateRequest,
    EvaluationResponse,
    GroupOut,
    RuleOut,
    SetActiveRequest,
    UpdateRuleRequest,
)
from .service import (
    DuplicateGroupError,
    DuplicateRuleCodeError,
    GroupNotFoundError,
    RuleNotFoundError,
    RuleService,
    RuleServiceError,
)

router = APIRouter()


@router.post("/groups", response_model=GroupOut, status_code=status.HTTP_201_CREATED, tags=["Insurance Groups"])
def create_group(request: CreateGroupRequest, service: RuleService = Depends(get_rule_service)) -> GroupOut:
    try:
        return GroupOut.from_group(service.create_group(request.name))
    except DuplicateGroupError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except RuleServiceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/groups", response_model=list[GroupOut], tags=["Insurance Groups"])
def list_groups(search: Optional[str] = None, service: RuleService = Depends(get_rule_service)) -> list[GroupOut]:
    return [GroupOut.from_group(g) for g in service.list_groups(search)]


@router.put("/groups/{group_id}/rules/active", response_model=list[RuleOut], tags=["Insurance Groups"])
def set_group_rules_active(
    group_id: str, request: SetActiveRequest, service: RuleService = Depends(get_rule_service)
) -> list[RuleOut]:
    try:
        return [RuleOut.from_rule(r) for r in service.set_group_rules_active(group_id, request.is_active)]
    except GroupNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/groups/{group_id}/batch-evaluate", response_model=RuleAuditEntry, tags=["Insurance Groups"])
def batch_re_evaluate(
    group_id: str, request: BatchEvaluateRequest, service: RuleService = Depends(get_rule_service)
) -> RuleAuditEntry:
    try:
        return service.batch_re_evaluate(group_id, request.inputs)
    except GroupNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.post("/rules", response_model=RuleOut, status_code=status.HTTP_201_CREATED, tags=["Rules"])
def create_rule(request: CreateRuleRequest, service: RuleService = Depends(get_rule_service)) -> RuleOut:
    try:
        return RuleOut.from_rule(service.create_rule(request))
    except GroupNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except RuleServiceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/rules", response_model=list[RuleOut], tags=["Rules"])
def list_rules(
    group_id: Optional[str] = None, include_inactive: bool = True, service: RuleService = Depends(get_rule_service)
) -> list[RuleOut]:
    return [RuleOut.from_rule(r) for r in service.list_rules(group_id, include_inactive)]


@router.post("/rules/evaluate", response_model=EvaluationResponse, tags=["Rules"])
def evaluate(request: EvaluateRequest, service: RuleService = Depends(get_rule_service)) -> EvaluationResponse:
    try:
        return service.evaluate(request.inputs, request.insurance_group_id)
    except GroupNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/rules/export", tags=["Rules"])
def export_rules(group_id: Optional[str] = None, service: RuleService = Depends(get_rule_service)) -> list[dict]:
    return service.export_rules(group_id)


@router.post("/rules/import", response_model=list[RuleOut], status_code=status.HTTP_201_CREATED, tags=["Rules"])
def import_rules(payload: list[dict], service: RuleService = Depends(get_rule_service)) -> list[RuleOut]:
    try:
        return [RuleOut.from_rule(r) for r in service.import_rules(payload)]
    except GroupNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except DuplicateRuleCodeError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    except RuleServiceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.get("/rules/{rule_id}", response_model=RuleOut, tags=["Rules"])
def get_rule(rule_id: str, service: RuleService = Depends(get_rule_service)) -> RuleOut:
    try:
        return RuleOut.from_rule(service.get_rule(rule_id))
    except RuleNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Rule {rule_id} not found")


@router.patch("/rules/{rule_id}", response_model=RuleOut, tags=["Rules"])
def update_rule(rule_id: str, request: UpdateRuleRequest, service: RuleService = Depends(get_rule_service)) -> RuleOut:
    try:
        return RuleOut.from_rule(service.update_rule(rule_id, request))
    except RuleNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Rule {rule_id} not found")
    except RuleServiceError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))


@router.post("/rules/{rule_id}/toggle", response_model=RuleOut, tags=["Rules"])
def toggle_rule(rule_id: str, service: RuleService = Depends(get_rule_service)) -> RuleOut:
    try:
        return RuleOut.from_rule(service.toggle_rule_active(rule_id))
    except RuleNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Rule {rule_id} not found")
