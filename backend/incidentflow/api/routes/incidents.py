"""Incident API Routes - Incident lifecycle endpoints"""
from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field

from ..deps import get_current_actor_dep, get_correlation_id_dep, get_incident_service_dep
from ...domain.models import (
    ActorContext, Incident, IncidentCreate, IncidentUpdate, IncidentComment, IncidentAttachment,
    AttachmentCreate, ConvertToRequestInput, ConversionResult, IncidentRevision, IncidentStats,
    TransitionHistory, TransitionRequest, TransitionResult, AvailableTransition
)
from ...domain.enums import RecordType, RevisionActionType
from ...services.incident_service import IncidentService
from ...utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(dependencies=[Depends(get_correlation_id_dep)])


# ============================================================================
# Request/Response Models
# ============================================================================

class AddCommentRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)
    is_internal: bool = False


class UpdateCommentRequest(BaseModel):
    content: str = Field(..., min_length=1, max_length=10000)


class AssignRequest(BaseModel):
    assignee_id: str = Field(..., min_length=1)


# ============================================================================
# Collection Endpoints
# ============================================================================

@router.post("/", response_model=Incident, status_code=status.HTTP_201_CREATED)
def create_incident(
    request: IncidentCreate,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: IncidentService = Depends(get_incident_service_dep)
):
    """Create an incident in the initial state of its workflow"""
    incident = service.create_incident(request, actor)
    logger.info(
        f"Created {incident.record_type.value} {incident.incident_number}",
        extra={"incident_id": incident.incident_id, "user_id": actor.user_id}
    )
    return incident


@router.get("/", response_model=List[Incident])
def list_incidents(
    workflow_id: Optional[str] = Query(None),
    state_id: Optional[str] = Query(None, description="Filter by current state"),
    assignee_id: Optional[str] = Query(None),
    record_type: Optional[RecordType] = Query(None),
    sla_breached: Optional[bool] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    actor: ActorContext = Depends(get_current_actor_dep),
    service: IncidentService = Depends(get_incident_service_dep)
):
    return service.list_incidents(
        workflow_id=workflow_id,
        current_state_id=state_id,
        assignee_id=assignee_id,
        record_type=record_type,
        sla_breached=sla_breached,
        skip=skip,
        limit=limit
    )


@router.get("/stats", response_model=IncidentStats)
def get_stats(
    workflow_id: Optional[str] = Query(None),
    actor: ActorContext = Depends(get_current_actor_dep),
    service: IncidentService = Depends(get_incident_service_dep)
):
    return service.get_stats(workflow_id)


@router.get("/sla-breached", response_model=List[Incident])
def get_sla_breached(
    limit: int = Query(100, ge=1, le=500),
    actor: ActorContext = Depends(get_current_actor_dep),
    service: IncidentService = Depends(get_incident_service_dep)
):
    return service.get_sla_breached(limit=limit)


# Comment routes keyed by comment id must precede /{incident_id}/...
@router.patch("/comments/{comment_id}", response_model=IncidentComment)
def update_comment(
    comment_id: str,
    request: UpdateCommentRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: IncidentService = Depends(get_incident_service_dep)
):
    return service.update_comment(comment_id, request.content, actor)


@router.delete("/comments/{comment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_comment(
    comment_id: str,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: IncidentService = Depends(get_incident_service_dep)
):
    service.delete_comment(comment_id, actor)


@router.delete("/attachments/{attachment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_attachment(
    attachment_id: str,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: IncidentService = Depends(get_incident_service_dep)
):
    service.delete_attachment(attachment_id, actor)


# ============================================================================
# Single Incident Endpoints
# ============================================================================

@router.get("/{incident_id}", response_model=Incident)
def get_incident(
    incident_id: str,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: IncidentService = Depends(get_incident_service_dep)
):
    return service.get_incident(incident_id)


@router.patch("/{incident_id}", response_model=Incident)
def update_incident(
    incident_id: str,
    request: IncidentUpdate,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: IncidentService = Depends(get_incident_service_dep)
):
    return service.update_incident(incident_id, request, actor)


@router.post("/{incident_id}/transitions", response_model=TransitionResult)
def execute_transition(
    incident_id: str,
    request: TransitionRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: IncidentService = Depends(get_incident_service_dep)
):
    """
    Execute a workflow transition

    The response always reflects the committed state change; failed
    side effects are reported in `diagnostics`.
    """
    return service.execute_transition(incident_id, request, actor)


@router.get("/{incident_id}/transitions", response_model=List[AvailableTransition])
def get_available_transitions(
    incident_id: str,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: IncidentService = Depends(get_incident_service_dep)
):
    return service.get_available_transitions(incident_id, actor)


@router.get("/{incident_id}/history", response_model=List[TransitionHistory])
def get_transition_history(
    incident_id: str,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: IncidentService = Depends(get_incident_service_dep)
):
    return service.get_transition_history(incident_id)


@router.get("/{incident_id}/revisions", response_model=List[IncidentRevision])
def list_revisions(
    incident_id: str,
    action_type: Optional[RevisionActionType] = Query(None),
    performed_by_id: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    actor: ActorContext = Depends(get_current_actor_dep),
    service: IncidentService = Depends(get_incident_service_dep)
):
    return service.list_revisions(
        incident_id,
        action_type=action_type,
        performed_by_id=performed_by_id,
        start=start,
        end=end,
        skip=skip,
        limit=limit
    )


@router.post("/{incident_id}/assign", response_model=Incident)
def assign_incident(
    incident_id: str,
    request: AssignRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: IncidentService = Depends(get_incident_service_dep)
):
    return service.assign_incident(incident_id, request.assignee_id, actor)


@router.post("/{incident_id}/convert", response_model=ConversionResult, status_code=status.HTTP_201_CREATED)
def convert_to_request(
    incident_id: str,
    request: ConvertToRequestInput,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: IncidentService = Depends(get_incident_service_dep)
):
    return service.convert_to_request(incident_id, request, actor)


@router.get("/{incident_id}/comments", response_model=List[IncidentComment])
def list_comments(
    incident_id: str,
    include_internal: bool = Query(True),
    actor: ActorContext = Depends(get_current_actor_dep),
    service: IncidentService = Depends(get_incident_service_dep)
):
    return service.list_comments(incident_id, include_internal=include_internal)


@router.post("/{incident_id}/comments", response_model=IncidentComment, status_code=status.HTTP_201_CREATED)
def add_comment(
    incident_id: str,
    request: AddCommentRequest,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: IncidentService = Depends(get_incident_service_dep)
):
    return service.add_comment(incident_id, request.content, actor, is_internal=request.is_internal)


@router.get("/{incident_id}/attachments", response_model=List[IncidentAttachment])
def list_attachments(
    incident_id: str,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: IncidentService = Depends(get_incident_service_dep)
):
    return service.list_attachments(incident_id)


@router.post("/{incident_id}/attachments", response_model=IncidentAttachment, status_code=status.HTTP_201_CREATED)
def add_attachment(
    incident_id: str,
    request: AttachmentCreate,
    actor: ActorContext = Depends(get_current_actor_dep),
    service: IncidentService = Depends(get_incident_service_dep)
):
    """Register attachment metadata; file bytes are uploaded to storage separately"""
    return service.add_attachment(incident_id, request, actor)
