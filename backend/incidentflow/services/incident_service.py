"""Incident Service - Incident business logic outside the transition engine

Every mutation here is followed by exactly one revision entry.
"""
from typing import Any, Dict, List, Optional, Tuple

from ..domain.models import (
    ActorContext, Incident, IncidentCreate, IncidentUpdate, IncidentComment,
    IncidentAttachment, AttachmentCreate, ConvertToRequestInput, ConversionResult,
    FieldChange, IncidentRevision, IncidentStats, TransitionHistory, TransitionRequest,
    TransitionResult, AvailableTransition
)
from ..domain.enums import RecordType, RevisionActionType
from ..domain.errors import (
    ValidationError, CommentNotFoundError, AttachmentNotFoundError
)
from ..engine.engine import WorkflowEngine
from ..engine.revision_writer import RevisionWriter
from ..utils.idgen import generate_incident_id, generate_comment_id, generate_attachment_id
from ..utils.time import utc_now, calculate_sla_deadline
from ..utils.logger import get_logger

logger = get_logger(__name__)


# Fields editable through update_incident: (attribute, label)
_EDITABLE_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("title", "Title"),
    ("description", "Description"),
    ("priority", "Priority"),
    ("severity", "Severity"),
    ("classification_id", "Classification"),
    ("location_id", "Location"),
    ("department_id", "Department"),
)


def _text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


class IncidentService:
    """Service for incident operations"""

    def __init__(self, engine: Optional[WorkflowEngine] = None):
        self.engine = engine or WorkflowEngine()
        self.incident_repo = self.engine.incident_repo
        self.workflow_repo = self.engine.workflow_repo
        self.user_repo = self.engine.user_repo
        self.permission_guard = self.engine.permission_guard
        self.revisions: RevisionWriter = self.engine.revision_writer

    # =========================================================================
    # Incident CRUD
    # =========================================================================

    def create_incident(self, data: IncidentCreate, actor: ActorContext) -> Incident:
        """Create an incident in its workflow's initial state"""
        return self.engine.create_incident(data, actor)

    def get_incident(self, incident_id: str) -> Incident:
        """Get incident by ID"""
        return self.incident_repo.get_incident_or_raise(incident_id)

    def list_incidents(self, **filters) -> List[Incident]:
        return self.incident_repo.list_incidents(**filters)

    def update_incident(self, incident_id: str, data: IncidentUpdate, actor: ActorContext) -> Incident:
        """
        Edit descriptive fields

        Only fields whose value actually changes are written; one
        field_change revision summarises them ("X and N more changes").
        """
        incident = self.incident_repo.get_incident_or_raise(incident_id)
        updates: Dict[str, Any] = {}
        changes: List[FieldChange] = []
        descriptions: List[str] = []

        for field, label in _EDITABLE_FIELDS:
            new_value = getattr(data, field)
            old_value = getattr(incident, field)
            if new_value is None or new_value == old_value:
                continue
            updates[field] = new_value
            changes.append(FieldChange(
                field_name=field,
                field_label=label,
                old_value=_text(old_value),
                new_value=_text(new_value)
            ))
            descriptions.append(f"{label} changed from {_text(old_value) or 'empty'} to {new_value}")

        if data.clear_due_date and incident.due_date is not None:
            updates["due_date"] = None
            changes.append(FieldChange(field_name="due_date", field_label="Due Date", old_value=_text(incident.due_date)))
            descriptions.append("Due Date cleared")
        elif data.due_date is not None and data.due_date != incident.due_date:
            updates["due_date"] = data.due_date
            changes.append(FieldChange(
                field_name="due_date",
                field_label="Due Date",
                old_value=_text(incident.due_date),
                new_value=_text(data.due_date)
            ))
            descriptions.append(f"Due Date changed to {data.due_date.isoformat()}")

        if not updates:
            return incident

        updated = self.incident_repo.update_fields(incident_id, updates)
        self.revisions.write_field_changes(incident_id, changes, descriptions, actor.user_id)
        return updated

    def assign_incident(self, incident_id: str, assignee_id: str, actor: ActorContext) -> Incident:
        """Set a single assignee directly"""
        incident = self.incident_repo.get_incident_or_raise(incident_id)
        new_assignee = self.user_repo.get_user_or_raise(assignee_id)
        old_name = "Unassigned"
        if incident.assignee_id:
            old_user = self.user_repo.get_user(incident.assignee_id)
            old_name = old_user.display_name if old_user else incident.assignee_id

        updated = self.incident_repo.update_fields(
            incident_id,
            {"assignee_id": assignee_id, "assignee_ids": [assignee_id]}
        )
        self.revisions.write_assignee_changed(
            incident_id,
            incident.assignee_id,
            old_name,
            assignee_id,
            new_assignee.display_name,
            actor.user_id
        )
        return updated

    # =========================================================================
    # Transitions (delegated to the engine)
    # =========================================================================

    def execute_transition(self, incident_id: str, request: TransitionRequest, actor: ActorContext) -> TransitionResult:
        return self.engine.execute_transition(incident_id, request, actor)

    def get_available_transitions(self, incident_id: str, actor: ActorContext) -> List[AvailableTransition]:
        return self.engine.get_available_transitions(incident_id, actor)

    def get_transition_history(self, incident_id: str) -> List[TransitionHistory]:
        self.incident_repo.get_incident_or_raise(incident_id)
        return self.incident_repo.list_transition_history(incident_id)

    # =========================================================================
    # Comments
    # =========================================================================

    def add_comment(
        self,
        incident_id: str,
        content: str,
        actor: ActorContext,
        is_internal: bool = False
    ) -> IncidentComment:
        """Add a comment"""
        if not content or not content.strip():
            raise ValidationError("Comment content is required")
        self.incident_repo.get_incident_or_raise(incident_id)

        comment = self.incident_repo.create_comment(IncidentComment(
            comment_id=generate_comment_id(),
            incident_id=incident_id,
            author_id=actor.user_id,
            content=content,
            is_internal=is_internal,
            created_at=utc_now()
        ))
        self.revisions.write_comment_added(incident_id, self._actor_name(actor), content, actor.user_id)
        return comment

    def list_comments(self, incident_id: str, include_internal: bool = True) -> List[IncidentComment]:
        return self.incident_repo.list_comments(incident_id, include_internal=include_internal)

    def update_comment(self, comment_id: str, content: str, actor: ActorContext) -> IncidentComment:
        """Edit a comment; author only"""
        if not content or not content.strip():
            raise ValidationError("Comment content is required")
        comment = self._get_comment_or_raise(comment_id)
        self.permission_guard.check_comment_owner(actor, comment)

        updated = self.incident_repo.update_comment(comment_id, content)
        self.revisions.write_comment_modified(comment.incident_id, content, actor.user_id)
        return updated

    def delete_comment(self, comment_id: str, actor: ActorContext) -> None:
        """Delete a comment; author only"""
        comment = self._get_comment_or_raise(comment_id)
        self.permission_guard.check_comment_owner(actor, comment)

        self.incident_repo.delete_comment(comment_id)
        self.revisions.write_comment_deleted(comment.incident_id, comment.content, actor.user_id)

    def _get_comment_or_raise(self, comment_id: str) -> IncidentComment:
        comment = self.incident_repo.get_comment(comment_id)
        if comment is None:
            raise CommentNotFoundError(f"Comment {comment_id} not found")
        return comment

    # =========================================================================
    # Attachments (metadata only)
    # =========================================================================

    def add_attachment(self, incident_id: str, data: AttachmentCreate, actor: ActorContext) -> IncidentAttachment:
        self.incident_repo.get_incident_or_raise(incident_id)
        attachment = self.incident_repo.create_attachment(IncidentAttachment(
            attachment_id=generate_attachment_id(),
            incident_id=incident_id,
            uploaded_by_id=actor.user_id,
            created_at=utc_now(),
            **data.model_dump()
        ))
        self.revisions.write_attachment_added(incident_id, attachment.file_name, actor.user_id)
        return attachment

    def list_attachments(self, incident_id: str) -> List[IncidentAttachment]:
        return self.incident_repo.list_attachments(incident_id)

    def delete_attachment(self, attachment_id: str, actor: ActorContext) -> None:
        """Delete attachment metadata; uploader only. Stored bytes are left to storage lifecycle."""
        attachment = self.incident_repo.get_attachment(attachment_id)
        if attachment is None:
            raise AttachmentNotFoundError(f"Attachment {attachment_id} not found")
        self.permission_guard.check_attachment_owner(actor, attachment)

        self.incident_repo.delete_attachment(attachment_id)
        self.revisions.write_attachment_removed(attachment.incident_id, attachment.file_name, actor.user_id)

    # =========================================================================
    # Conversion
    # =========================================================================

    def convert_to_request(
        self,
        incident_id: str,
        data: ConvertToRequestInput,
        actor: ActorContext
    ) -> ConversionResult:
        """
        Create a service request from an incident

        Algorithm:
        1. Reject sources that are already requests
        2. Optionally run a transition on the source first (hard failure)
        3. Create the request in the target workflow's initial state,
           copying reporter, location, custom fields and (unless
           overridden) assignee and department
        4. Back-reference the request on the source
        5. Write a revision on both records
        """
        source = self.incident_repo.get_incident_or_raise(incident_id)
        if source.record_type == RecordType.REQUEST:
            raise ValidationError("Cannot convert a request to another request")

        if data.transition_id:
            self.engine.execute_transition(
                incident_id,
                TransitionRequest(
                    transition_id=data.transition_id,
                    comment=data.transition_comment,
                    feedback=data.feedback
                ),
                actor
            )
            source = self.incident_repo.get_incident_or_raise(incident_id)

        workflow = self.workflow_repo.get_workflow_or_raise(data.workflow_id)
        initial_state = self.workflow_repo.get_initial_state(workflow.workflow_id)
        if initial_state is None:
            raise ValidationError(
                "Workflow has no initial state configured",
                details={"workflow_id": workflow.workflow_id}
            )

        now = utc_now()
        assignee_id = data.assignee_id or source.assignee_id
        request = self.incident_repo.create_incident(Incident(
            incident_id=generate_incident_id(),
            incident_number=self.incident_repo.next_record_number(RecordType.REQUEST, now.year),
            record_type=RecordType.REQUEST,
            title=data.title or source.title,
            description=data.description or source.description,
            workflow_id=workflow.workflow_id,
            current_state_id=initial_state.state_id,
            classification_id=data.classification_id or source.classification_id,
            location_id=source.location_id,
            department_id=data.department_id or source.department_id,
            priority=source.priority,
            severity=source.severity,
            assignee_id=assignee_id,
            assignee_ids=[assignee_id] if assignee_id else [],
            reporter_id=source.reporter_id,
            reporter_email=source.reporter_email,
            reporter_name=source.reporter_name,
            custom_fields=dict(source.custom_fields),
            due_date=data.due_date,
            sla_deadline=calculate_sla_deadline(now, initial_state.sla_hours),
            source_incident_id=incident_id,
            created_at=now,
            updated_at=now
        ))

        try:
            source = self.incident_repo.update_fields(incident_id, {"converted_request_id": request.incident_id})
        except Exception as e:
            logger.error(
                f"Failed to back-reference converted request: {e}",
                extra={"incident_id": incident_id}
            )

        self.revisions.write_converted(incident_id, request.incident_id, request.incident_number, actor.user_id)
        self.revisions.record(
            request.incident_id,
            RevisionActionType.CREATED,
            f"Request created from incident {source.incident_number}",
            [FieldChange(
                field_name="source_incident_id",
                field_label="Created from Incident",
                new_value=source.incident_number
            )],
            actor.user_id
        )
        logger.info(
            f"Incident {source.incident_number} converted to request {request.incident_number}",
            extra={"incident_id": incident_id}
        )
        return ConversionResult(original_incident=source, new_request=request)

    # =========================================================================
    # Revisions & Reporting
    # =========================================================================

    def list_revisions(self, incident_id: str, **filters) -> List[IncidentRevision]:
        self.incident_repo.get_incident_or_raise(incident_id)
        return self.revisions.list_revisions(incident_id, **filters)

    def get_stats(self, workflow_id: Optional[str] = None) -> IncidentStats:
        return self.incident_repo.get_stats(workflow_id=workflow_id)

    def get_sla_breached(self, limit: int = 100) -> List[Incident]:
        return self.incident_repo.get_sla_breached_incidents(limit=limit)

    def _actor_name(self, actor: ActorContext) -> str:
        if actor.display_name:
            return actor.display_name
        user = self.user_repo.get_user(actor.user_id)
        return user.display_name if user else actor.user_id
