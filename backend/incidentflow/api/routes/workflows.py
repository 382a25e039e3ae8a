"""Workflow API Routes - Definition management endpoints"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ..deps import get_current_actor_dep, get_correlation_id_dep, get_workflow_service_dep
from ...domain.models import (
    ActorContext, Workflow, WorkflowState, WorkflowTransition, TransitionCreate,
    TransitionRequirement, TransitionAction, WorkflowValidationReport
)
from ...domain.enums import RecordType, StateType
from ...services.workflow_service import WorkflowService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(dependencies=[Depends(get_correlation_id_dep)])


# ============================================================================
# Request/Response Models
# ============================================================================

class CreateWorkflowRequest(BaseModel):
    """Request to create a new workflow"""
    name: str = Field(..., min_length=1, max_length=200)
    code: str = Field(..., min_length=1, max_length=100)
    description: str = Field("", max_length=2000)
    record_type: RecordType = RecordType.INCIDENT
    required_fields: List[str] = Field(default_factory=list)
    is_default: bool = False


class DuplicateWorkflowRequest(BaseModel):
    new_code: str = Field(..., min_length=1, max_length=100)
    new_name: Optional[str] = None


class CreateStateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    code: str = Field(..., min_length=1, max_length=100)
    description: str = ""
    state_type: StateType = StateType.NORMAL
    sla_hours: Optional[int] = None
    viewable_role_ids: List[str] = Field(default_factory=list)
    sort_order: int = 0


class SetRolesRequest(BaseModel):
    role_ids: List[str]


# ============================================================================
# Workflows
# ============================================================================

@router.post("/", response_model=Workflow, status_code=status.HTTP_201_CREATED)
def create_workflow(
    request: CreateWorkflowRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: WorkflowService = Depends(get_workflow_service_dep)
):
    workflow = service.create_workflow(
        name=request.name,
        code=request.code,
        actor=actor,
        record_type=request.record_type,
        description=request.description,
        required_fields=request.required_fields,
        is_default=request.is_default
    )
    logger.info(f"Created workflow {workflow.code}", extra={"workflow_id": workflow.workflow_id})
    return workflow


@router.get("/", response_model=List[Workflow])
def list_workflows(
    record_type: Optional[RecordType] = Query(None),
    active_only: bool = Query(False),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    actor: ActorContext = Depends(get_current_actor_dep),
    service: WorkflowService = Depends(get_workflow_service_dep)
):
    return service.list_workflows(record_type=record_type, active_only=active_only, skip=skip, limit=limit)


@router.get("/deleted", response_model=List[Workflow])
def list_deleted_workflows(
    actor: ActorContext = Depends(get_current_actor_dep),
    service: WorkflowService = Depends(get_workflow_service_dep)
):
    return service.list_deleted_workflows()


@router.get("/{workflow_id}", response_model=Workflow)
def get_workflow(
    workflow_id: str,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: WorkflowService = Depends(get_workflow_service_dep)
):
    return service.get_workflow(workflow_id)


@router.delete("/{workflow_id}", response_model=Workflow)
def delete_workflow(
    workflow_id: str,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: WorkflowService = Depends(get_workflow_service_dep)
):
    return service.delete_workflow(workflow_id)


@router.post("/{workflow_id}/restore", response_model=Workflow)
def restore_workflow(
    workflow_id: str,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: WorkflowService = Depends(get_workflow_service_dep)
):
    return service.restore_workflow(workflow_id)


@router.post("/{workflow_id}/duplicate", response_model=Workflow, status_code=status.HTTP_201_CREATED)
def duplicate_workflow(
    workflow_id: str,
    request: DuplicateWorkflowRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: WorkflowService = Depends(get_workflow_service_dep)
):
    return service.duplicate_workflow(workflow_id, request.new_code, actor, new_name=request.new_name)


@router.get("/{workflow_id}/validate", response_model=WorkflowValidationReport)
def validate_workflow(
    workflow_id: str,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: WorkflowService = Depends(get_workflow_service_dep)
):
    return service.validate_workflow(workflow_id)


# ============================================================================
# States & Transitions
# ============================================================================

@router.post("/{workflow_id}/states", response_model=WorkflowState, status_code=status.HTTP_201_CREATED)
def create_state(
    workflow_id: str,
    request: CreateStateRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: WorkflowService = Depends(get_workflow_service_dep)
):
    return service.create_state(workflow_id, **request.model_dump())


@router.post("/{workflow_id}/transitions", response_model=WorkflowTransition, status_code=status.HTTP_201_CREATED)
def create_transition(
    workflow_id: str,
    request: TransitionCreate,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: WorkflowService = Depends(get_workflow_service_dep)
):
    return service.create_transition(workflow_id, request)


@router.put("/transitions/{transition_id}/roles", response_model=WorkflowTransition)
def set_transition_roles(
    transition_id: str,
    request: SetRolesRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: WorkflowService = Depends(get_workflow_service_dep)
):
    return service.set_transition_roles(transition_id, request.role_ids)


@router.put("/transitions/{transition_id}/requirements", response_model=WorkflowTransition)
def set_transition_requirements(
    transition_id: str,
    request: List[TransitionRequirement],
    actor: ActorContext = Depends(get_current_actor_dep),
    service: WorkflowService = Depends(get_workflow_service_dep)
):
    return service.set_transition_requirements(transition_id, request)


@router.put("/transitions/{transition_id}/actions", response_model=WorkflowTransition)
def set_transition_actions(
    transition_id: str,
    request: List[TransitionAction],
    actor: ActorContext = Depends(get_current_actor_dep),
    service: WorkflowService = Depends(get_workflow_service_dep)
):
    """Replace a transition's actions; configs are validated against their action type"""
    return service.set_transition_actions(transition_id, request)
