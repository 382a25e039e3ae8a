"""Domain Models - Pydantic schemas for all entities"""
import json
from datetime import datetime
from typing import Any, Dict, List, Optional, Union
from pydantic import BaseModel, Field, EmailStr, ConfigDict, field_validator
from pydantic import ValidationError as PydanticValidationError

from .enums import (
    RecordType, StateType, RequirementType, ActionType, AssignmentMode,
    RevisionActionType, NotificationStatus
)
from .errors import ActionConfigError


# ============================================================================
# Users & Actors
# ============================================================================

class User(BaseModel):
    """Directory user as seen by the engine"""
    model_config = ConfigDict(extra="ignore")

    user_id: str = Field(..., description="User ID")
    username: str = Field(..., description="Login name")
    email: Optional[EmailStr] = None
    first_name: str = ""
    last_name: str = ""
    is_active: bool = True
    role_ids: List[str] = Field(default_factory=list)
    role_codes: List[str] = Field(default_factory=list)
    department_id: Optional[str] = Field(None, description="Primary department")
    department_ids: List[str] = Field(default_factory=list)
    location_ids: List[str] = Field(default_factory=list)
    classification_ids: List[str] = Field(default_factory=list)

    @property
    def display_name(self) -> str:
        """Full name when known, otherwise the username"""
        if self.first_name:
            return f"{self.first_name} {self.last_name}".strip()
        return self.username


class ActorContext(BaseModel):
    """The caller performing an operation"""
    model_config = ConfigDict(extra="forbid")

    user_id: str = Field(..., description="Acting user ID")
    email: Optional[EmailStr] = Field(None, description="User email")
    display_name: Optional[str] = Field(None, description="User display name")
    role_ids: List[str] = Field(default_factory=list, description="Assigned role IDs")


# ============================================================================
# Workflow Definition
# ============================================================================

class Workflow(BaseModel):
    """Named container of states and transitions for one record type"""
    model_config = ConfigDict(extra="ignore")

    workflow_id: str
    name: str
    code: str = Field(..., description="Unique workflow code")
    description: str = ""
    record_type: RecordType = RecordType.INCIDENT
    required_fields: List[str] = Field(default_factory=list)
    is_active: bool = True
    is_default: bool = False
    version: int = 1
    created_by_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None


class WorkflowState(BaseModel):
    """A node in the workflow graph"""
    model_config = ConfigDict(extra="ignore")

    state_id: str
    workflow_id: str
    name: str
    code: str
    description: str = ""
    state_type: StateType = StateType.NORMAL
    sla_hours: Optional[int] = Field(None, description="Hours allowed in this state")
    viewable_role_ids: List[str] = Field(default_factory=list, description="Empty = visible to all")
    sort_order: int = 0
    is_active: bool = True

    @property
    def is_terminal(self) -> bool:
        return self.state_type == StateType.TERMINAL

    @property
    def denotes_resolved(self) -> bool:
        """Terminal states coded or named 'resolved' also stamp resolved_at"""
        return self.code.lower() == "resolved" or self.name.lower() == "resolved"


class TransitionRequirement(BaseModel):
    """Precondition attached to a transition"""
    model_config = ConfigDict(extra="ignore")

    requirement_id: Optional[str] = None
    requirement_type: RequirementType
    is_mandatory: bool = True
    error_message: str = ""


# Action configuration payloads, one per action type

class NotificationActionConfig(BaseModel):
    """In-app notification: recipients are assignee, reporter, user:<id>, role:<code>"""
    model_config = ConfigDict(extra="ignore")

    recipients: List[str] = Field(default_factory=list)
    title: str = ""
    message: str = ""


class EmailActionConfig(BaseModel):
    """Email: same recipient tokens as notifications plus email:<addr>"""
    model_config = ConfigDict(extra="ignore")

    recipients: List[str] = Field(default_factory=list)
    subject: str = ""
    body: str = ""
    is_html: bool = False


class WebhookActionConfig(BaseModel):
    """Outbound HTTP call with a JSON body template"""
    model_config = ConfigDict(extra="ignore")

    url: str = Field(..., min_length=1)
    method: str = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)
    body: str = ""

    @field_validator("method")
    @classmethod
    def _normalize_method(cls, value: str) -> str:
        return (value or "POST").upper()


class FieldUpdateActionConfig(BaseModel):
    """Direct change of one incident field"""
    model_config = ConfigDict(extra="ignore")

    field: str = Field(..., min_length=1)
    value: Any = None


ActionConfig = Union[
    NotificationActionConfig,
    EmailActionConfig,
    WebhookActionConfig,
    FieldUpdateActionConfig,
]

ACTION_CONFIG_MODELS = {
    ActionType.NOTIFICATION: NotificationActionConfig,
    ActionType.EMAIL: EmailActionConfig,
    ActionType.WEBHOOK: WebhookActionConfig,
    ActionType.FIELD_UPDATE: FieldUpdateActionConfig,
}


class TransitionAction(BaseModel):
    """Side effect attached to a transition"""
    model_config = ConfigDict(extra="ignore")

    action_id: Optional[str] = None
    action_type: ActionType
    name: str = ""
    description: str = ""
    config: Dict[str, Any] = Field(default_factory=dict, description="Type-specific payload")
    execution_order: int = 0
    is_async: bool = False
    is_active: bool = True

    @field_validator("config", mode="before")
    @classmethod
    def _parse_config(cls, value: Any) -> Any:
        # Payloads may arrive as JSON text from older exports
        if value is None or value == "":
            return {}
        if isinstance(value, str):
            try:
                return json.loads(value)
            except json.JSONDecodeError as e:
                raise ValueError(f"config is not valid JSON: {e}") from e
        return value

    def decode_config(self) -> ActionConfig:
        """Decode the raw payload into the config model selected by action_type"""
        model = ACTION_CONFIG_MODELS[self.action_type]
        try:
            return model.model_validate(self.config)
        except PydanticValidationError as e:
            raise ActionConfigError(
                f"Invalid {self.action_type.value} action config",
                details={"action_id": self.action_id, "errors": e.errors(include_url=False, include_context=False, include_input=False)}
            ) from e


class WorkflowTransition(BaseModel):
    """Directed edge between two states of the same workflow"""
    model_config = ConfigDict(extra="ignore")

    transition_id: str
    workflow_id: str
    name: str
    code: str = ""
    description: str = ""
    from_state_id: str
    to_state_id: str
    is_active: bool = True
    sort_order: int = 0
    allowed_role_ids: List[str] = Field(default_factory=list, description="Empty = unrestricted")

    # Department policy
    assign_department_id: Optional[str] = None
    auto_detect_department: bool = False

    # Assignment policy
    assign_user_id: Optional[str] = None
    assignment_role_id: Optional[str] = None
    manual_select_user: bool = False
    auto_match_user: bool = False

    requirements: List[TransitionRequirement] = Field(default_factory=list)
    actions: List[TransitionAction] = Field(default_factory=list)

    # Populated only when loaded with relations
    from_state: Optional[WorkflowState] = None
    to_state: Optional[WorkflowState] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def assignment_mode(self) -> AssignmentMode:
        """Assignment policy, first match wins"""
        if self.assign_user_id:
            return AssignmentMode.STATIC
        if self.manual_select_user and self.assignment_role_id:
            return AssignmentMode.MANUAL_SELECT
        if self.auto_match_user and self.assignment_role_id:
            return AssignmentMode.AUTO_MATCH
        return AssignmentMode.NONE

    def to_document(self) -> Dict[str, Any]:
        """Storage form, without hydrated relations"""
        return self.model_dump(exclude={"from_state", "to_state"})


class TransitionCreate(BaseModel):
    """Administrator input for a new transition"""
    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1)
    code: str = ""
    description: str = ""
    from_state_id: str
    to_state_id: str
    sort_order: int = 0
    allowed_role_ids: List[str] = Field(default_factory=list)
    assign_department_id: Optional[str] = None
    auto_detect_department: bool = False
    assign_user_id: Optional[str] = None
    assignment_role_id: Optional[str] = None
    manual_select_user: bool = False
    auto_match_user: bool = False
    requirements: List[TransitionRequirement] = Field(default_factory=list)
    actions: List[TransitionAction] = Field(default_factory=list)


# ============================================================================
# Incident & Related Records
# ============================================================================

class Incident(BaseModel):
    """The record moved through a workflow"""
    model_config = ConfigDict(extra="ignore")

    incident_id: str
    incident_number: str
    record_type: RecordType = RecordType.INCIDENT
    title: str
    description: str = ""

    workflow_id: str
    current_state_id: str

    classification_id: Optional[str] = None
    location_id: Optional[str] = None
    department_id: Optional[str] = None

    priority: int = Field(3, ge=1, le=5)
    severity: int = Field(3, ge=1, le=5)

    assignee_id: Optional[str] = None
    assignee_ids: List[str] = Field(default_factory=list)

    reporter_id: Optional[str] = None
    reporter_email: Optional[str] = None
    reporter_name: Optional[str] = None

    custom_fields: Dict[str, Any] = Field(default_factory=dict)

    due_date: Optional[datetime] = None
    sla_deadline: Optional[datetime] = None
    sla_breached: bool = False
    resolved_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None

    source_incident_id: Optional[str] = None
    converted_request_id: Optional[str] = None

    version: int = 1
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TransitionHistory(BaseModel):
    """Immutable record of one executed transition"""
    model_config = ConfigDict(extra="ignore")

    history_id: str
    incident_id: str
    transition_id: str
    from_state_id: str
    to_state_id: str
    performed_by_id: str
    comment: str = ""
    transitioned_at: datetime


class IncidentComment(BaseModel):
    """Comment on an incident"""
    model_config = ConfigDict(extra="ignore")

    comment_id: str
    incident_id: str
    author_id: str
    content: str
    is_internal: bool = False
    transition_history_id: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class IncidentAttachment(BaseModel):
    """Attachment metadata; the bytes live in object storage under file_path"""
    model_config = ConfigDict(extra="ignore")

    attachment_id: str
    incident_id: str
    file_name: str
    file_path: str
    mime_type: Optional[str] = None
    file_size: int = 0
    uploaded_by_id: str
    transition_history_id: Optional[str] = None
    created_at: datetime


class IncidentFeedback(BaseModel):
    """Rating captured during a transition"""
    model_config = ConfigDict(extra="ignore")

    feedback_id: str
    incident_id: str
    rating: int = Field(..., ge=1, le=5)
    comment: str = ""
    created_by_id: str
    transition_history_id: Optional[str] = None
    created_at: datetime


class FieldChange(BaseModel):
    """One field's before/after values inside a revision"""
    field_name: str
    field_label: str
    old_value: Optional[str] = None
    new_value: Optional[str] = None


class IncidentRevision(BaseModel):
    """Append-only audit entry"""
    model_config = ConfigDict(extra="ignore")

    revision_id: str
    incident_id: str
    revision_number: int
    action_type: RevisionActionType
    action_description: str
    changes: List[FieldChange] = Field(default_factory=list)
    performed_by_id: str
    created_at: datetime


class IncidentStats(BaseModel):
    """Aggregate counts for operational visibility"""
    total: int = 0
    open: int = 0
    in_progress: int = 0
    sla_breached: int = 0
    by_state: Dict[str, int] = Field(default_factory=dict)


# ============================================================================
# Incident Inputs
# ============================================================================

class IncidentCreate(BaseModel):
    """Input for creating an incident (or request/complaint/query)"""
    model_config = ConfigDict(extra="forbid")

    title: str = Field(..., min_length=1, max_length=500)
    description: str = ""
    record_type: RecordType = RecordType.INCIDENT
    workflow_id: Optional[str] = Field(None, description="Defaults to the record type's default workflow")
    classification_id: Optional[str] = None
    location_id: Optional[str] = None
    department_id: Optional[str] = None
    priority: int = Field(3, ge=1, le=5)
    severity: int = Field(3, ge=1, le=5)
    reporter_email: Optional[str] = None
    reporter_name: Optional[str] = None
    custom_fields: Dict[str, Any] = Field(default_factory=dict)
    due_date: Optional[datetime] = None
    source_incident_id: Optional[str] = None


class IncidentUpdate(BaseModel):
    """Partial edit of an incident's descriptive fields; None = leave unchanged"""
    model_config = ConfigDict(extra="forbid")

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    priority: Optional[int] = Field(None, ge=1, le=5)
    severity: Optional[int] = Field(None, ge=1, le=5)
    classification_id: Optional[str] = None
    location_id: Optional[str] = None
    department_id: Optional[str] = None
    due_date: Optional[datetime] = None
    clear_due_date: bool = False


class AttachmentCreate(BaseModel):
    """Metadata of a file already stored in object storage"""
    model_config = ConfigDict(extra="forbid")

    file_name: str = Field(..., min_length=1)
    file_path: str = Field(..., min_length=1)
    mime_type: Optional[str] = None
    file_size: int = Field(0, ge=0)


class ConvertToRequestInput(BaseModel):
    """Input for converting an incident into a service request"""
    model_config = ConfigDict(extra="forbid")

    workflow_id: str
    classification_id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    assignee_id: Optional[str] = None
    department_id: Optional[str] = None
    due_date: Optional[datetime] = None
    transition_id: Optional[str] = Field(None, description="Transition to run on the source first")
    transition_comment: str = ""
    feedback: Optional["FeedbackInput"] = None


class ConversionResult(BaseModel):
    """Source incident and the request created from it"""
    original_incident: Incident
    new_request: Incident


# ============================================================================
# Transition Requests & Results
# ============================================================================

class FeedbackInput(BaseModel):
    """Feedback supplied with a transition (rating 0 = none)"""
    rating: int = Field(0, ge=0, le=5)
    comment: str = ""


class TransitionRequest(BaseModel):
    """Caller input for executing a transition"""
    model_config = ConfigDict(extra="forbid")

    transition_id: str
    comment: str = ""
    attachment_ids: List[str] = Field(default_factory=list)
    department_id: Optional[str] = Field(None, description="Department chosen by the caller")
    user_id: Optional[str] = Field(None, description="Assignee chosen by the caller (manual select)")
    feedback: Optional[FeedbackInput] = None

    @property
    def has_feedback(self) -> bool:
        return self.feedback is not None and self.feedback.rating > 0


class AssignmentResult(BaseModel):
    """Outcome of assignee resolution"""
    mode: AssignmentMode = AssignmentMode.NONE
    primary_assignee_id: Optional[str] = None
    assignee_ids: List[str] = Field(default_factory=list)

    @property
    def changes_assignment(self) -> bool:
        return self.primary_assignee_id is not None


class ActionOutcome(BaseModel):
    """Result of dispatching one transition action"""
    action_id: Optional[str] = None
    action_type: ActionType
    name: str = ""
    is_async: bool = False
    success: bool = True
    error: Optional[str] = None


class TransitionResult(BaseModel):
    """
    Committed incident state plus side-effect diagnostics.

    `incident` always reflects the committed transition; failures of
    best-effort steps are listed in `diagnostics` and never raised.
    """
    incident: Incident
    transition_history_id: Optional[str] = None
    actions: List[ActionOutcome] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    diagnostics: List[str] = Field(default_factory=list)


class AvailableTransition(BaseModel):
    """A transition out of the incident's current state, as the actor sees it"""
    transition: WorkflowTransition
    can_execute: bool
    reason: str = ""
    requirements: List[TransitionRequirement] = Field(default_factory=list)


class WorkflowValidationReport(BaseModel):
    """Structural check of a workflow graph"""
    workflow_id: str
    is_valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    unreachable_state_ids: List[str] = Field(default_factory=list)


# ============================================================================
# Notifications (outbound transport collaborator)
# ============================================================================

class NotificationRecord(BaseModel):
    """In-app notification for one user"""
    notification_id: str
    recipient_user_id: str
    incident_id: Optional[str] = None
    title: str
    message: str
    is_read: bool = False
    created_at: datetime


class EmailMessage(BaseModel):
    """Email queued in the outbox"""
    notification_id: str
    recipients: List[str]
    subject: str
    body: str
    is_html: bool = False
    incident_id: Optional[str] = None
    status: NotificationStatus = NotificationStatus.PENDING
    attempts: int = 0
    created_at: datetime


ConvertToRequestInput.model_rebuild()
