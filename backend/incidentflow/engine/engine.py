"""
Workflow Engine - The Brain of the System

This module contains the WorkflowEngine class that validates and executes
workflow transitions on incidents.

=============================================================================
MODULE STRUCTURE
=============================================================================

1. INITIALIZATION
   - Constructor with injectable repositories, services and clock

2. INCIDENT CREATION
   - create_incident: initial state, record number, SLA, creation revision

3. TRANSITIONS
   - execute_transition: the transition algorithm
   - get_available_transitions: what the actor may do next
   - _build_updates: the single atomic update set

4. BEST-EFFORT STEPS
   - history row, attachment links, internal comment, feedback,
     action dispatch, status revision

=============================================================================
FAILURE SEMANTICS
=============================================================================

Everything up to and including the conditional commit is a hard failure:
nothing is written and the error reaches the caller. The commit is
conditioned on the current state the engine read, so two racing
transitions cannot both land (the loser gets ConcurrencyError).

Every step after the commit is best-effort. Failures are logged with the
incident id and collected into TransitionResult.diagnostics; the committed
state change is never reverted.

=============================================================================
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, TypeVar

from ..domain.models import (
    ActorContext, Incident, IncidentCreate, WorkflowTransition, TransitionRequest,
    TransitionResult, TransitionHistory, IncidentComment, IncidentFeedback,
    AvailableTransition
)
from ..domain.enums import RecordType
from ..domain.errors import ValidationError
from ..repositories.incident_repo import IncidentRepository
from ..repositories.workflow_repo import WorkflowRepository
from ..repositories.user_repo import UserRepository
from ..repositories.revision_repo import RevisionRepository
from ..services.notification_service import NotificationService
from .permission_guard import PermissionGuard
from .transition_resolver import TransitionResolver
from .assignment_resolver import AssignmentResolver
from .revision_writer import RevisionWriter
from .action_executor import ActionExecutor
from ..utils.idgen import (
    generate_incident_id, generate_transition_history_id, generate_comment_id,
    generate_feedback_id
)
from ..utils.time import utc_now, calculate_sla_deadline, Clock
from ..utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

RECORD_LABELS = {
    RecordType.INCIDENT: "Incident",
    RecordType.REQUEST: "Request",
    RecordType.COMPLAINT: "Complaint",
    RecordType.QUERY: "Query",
}

# Workflow required_fields that map onto incident attributes
_REQUIRED_FIELD_ATTRS = ("description", "classification_id", "location_id", "department_id", "due_date")


def _has_field(data: IncidentCreate, name: str) -> bool:
    """Required-field check: known attributes first, then custom fields"""
    if name in _REQUIRED_FIELD_ATTRS or name == "title":
        return bool(getattr(data, name))
    return data.custom_fields.get(name) not in (None, "")


class WorkflowEngine:
    """
    The Workflow Engine - Central orchestrator for incident transitions

    Responsibilities:
    - Create incidents in the initial state of their workflow
    - Validate transitions (workflow, from-state, role gate, requirements)
    - Commit state/SLA/assignment/terminal fields in one conditional update
    - Record history, comments, feedback and revisions
    - Dispatch transition actions
    """

    def __init__(
        self,
        incident_repo: Optional[IncidentRepository] = None,
        workflow_repo: Optional[WorkflowRepository] = None,
        user_repo: Optional[UserRepository] = None,
        revision_repo: Optional[RevisionRepository] = None,
        notification_service: Optional[NotificationService] = None,
        action_executor: Optional[ActionExecutor] = None,
        clock: Clock = utc_now
    ):
        self.incident_repo = incident_repo or IncidentRepository()
        self.workflow_repo = workflow_repo or WorkflowRepository()
        self.user_repo = user_repo or UserRepository()
        self.revision_writer = RevisionWriter(revision_repo or RevisionRepository(), clock=clock)
        self.permission_guard = PermissionGuard()
        self.transition_resolver = TransitionResolver(self.workflow_repo)
        self.assignment_resolver = AssignmentResolver(self.user_repo)
        self.action_executor = action_executor or ActionExecutor(
            incident_repo=self.incident_repo,
            user_repo=self.user_repo,
            workflow_repo=self.workflow_repo,
            notification_service=notification_service or NotificationService(),
            revision_writer=self.revision_writer
        )
        self._clock = clock

    # =========================================================================
    # Incident Creation
    # =========================================================================

    def create_incident(self, data: IncidentCreate, actor: ActorContext) -> Incident:
        """
        Create a record in the initial state of its workflow

        Algorithm:
        1. Resolve the workflow (explicit or the record type's default)
        2. Check the workflow's required fields
        3. Find the initial state
        4. Allocate the record number
        5. Start the SLA clock from the initial state
        6. Write the creation revision
        """
        if data.workflow_id:
            workflow = self.workflow_repo.get_workflow_or_raise(data.workflow_id)
        else:
            workflow = self.workflow_repo.get_default_workflow(data.record_type)
            if workflow is None:
                raise ValidationError(
                    f"No default workflow configured for {data.record_type.value}",
                    details={"record_type": data.record_type.value}
                )

        if not workflow.is_active:
            raise ValidationError(f"Workflow {workflow.code} is not active", details={"workflow_id": workflow.workflow_id})

        missing = [name for name in workflow.required_fields if not _has_field(data, name)]
        if missing:
            raise ValidationError(
                f"Missing required fields: {', '.join(missing)}",
                details={"missing_fields": missing}
            )

        initial_state = self.workflow_repo.get_initial_state(workflow.workflow_id)
        if initial_state is None:
            raise ValidationError(
                f"Workflow {workflow.code} has no initial state",
                details={"workflow_id": workflow.workflow_id}
            )

        now = self._clock()
        incident = Incident(
            incident_id=generate_incident_id(),
            incident_number=self.incident_repo.next_record_number(data.record_type, now.year),
            record_type=data.record_type,
            title=data.title,
            description=data.description,
            workflow_id=workflow.workflow_id,
            current_state_id=initial_state.state_id,
            classification_id=data.classification_id,
            location_id=data.location_id,
            department_id=data.department_id,
            priority=data.priority,
            severity=data.severity,
            reporter_id=actor.user_id,
            reporter_email=data.reporter_email or actor.email,
            reporter_name=data.reporter_name or actor.display_name,
            custom_fields=data.custom_fields,
            due_date=data.due_date,
            sla_deadline=calculate_sla_deadline(now, initial_state.sla_hours),
            source_incident_id=data.source_incident_id,
            created_at=now,
            updated_at=now
        )
        self.incident_repo.create_incident(incident)

        self._best_effort(
            [], "creation revision", incident.incident_id,
            lambda: self.revision_writer.write_created(
                incident.incident_id,
                RECORD_LABELS.get(incident.record_type, "Incident"),
                incident.incident_number,
                actor.user_id
            )
        )
        logger.info(
            f"Incident {incident.incident_number} created in state {initial_state.name}",
            extra={"incident_id": incident.incident_id, "workflow_id": workflow.workflow_id}
        )
        return incident

    # =========================================================================
    # Transitions
    # =========================================================================

    def execute_transition(
        self,
        incident_id: str,
        request: TransitionRequest,
        actor: ActorContext
    ) -> TransitionResult:
        """
        Execute a workflow transition on an incident

        Hard failures (nothing written):
            IncidentNotFoundError, ValidationError, TransitionNotFoundError,
            InvalidTransitionError, ForbiddenError, RequirementNotMetError,
            ConcurrencyError
        """
        # 1-2. Load and validate
        incident = self.incident_repo.get_incident_or_raise(incident_id)
        transition = self.transition_resolver.resolve(incident, request.transition_id)

        # 3. Role gate
        self.permission_guard.check_transition(actor, transition)

        # 4. Requirements
        warnings = self.permission_guard.check_requirements(transition, request)

        # 5-6. Build and commit atomically, conditioned on the state we read
        now = self._clock()
        updates = self._build_updates(incident, transition, request, now)
        committed = self.incident_repo.update_fields(
            incident_id,
            updates,
            expected_state_id=incident.current_state_id
        )
        logger.info(
            f"Transition {transition.name}: {transition.from_state_id} -> {transition.to_state_id}",
            extra={
                "incident_id": incident_id,
                "transition_id": transition.transition_id,
                "user_id": actor.user_id,
            }
        )

        # 7. Best-effort records
        diagnostics: List[str] = []
        history = self._best_effort(
            diagnostics, "transition history", incident_id,
            lambda: self.incident_repo.create_transition_history(TransitionHistory(
                history_id=generate_transition_history_id(),
                incident_id=incident_id,
                transition_id=transition.transition_id,
                from_state_id=transition.from_state_id,
                to_state_id=transition.to_state_id,
                performed_by_id=actor.user_id,
                comment=request.comment,
                transitioned_at=now
            ))
        )
        history_id = history.history_id if history else None

        if request.attachment_ids and history_id:
            linked = self._best_effort(
                diagnostics, "attachment linking", incident_id,
                lambda: self.incident_repo.link_attachments_to_transition(
                    incident_id, request.attachment_ids, history_id
                )
            )
            if linked is not None and linked < len(request.attachment_ids):
                logger.warning(
                    f"Linked {linked} of {len(request.attachment_ids)} attachments",
                    extra={"incident_id": incident_id}
                )

        if request.comment and request.comment.strip():
            self._best_effort(
                diagnostics, "transition comment", incident_id,
                lambda: self.incident_repo.create_comment(IncidentComment(
                    comment_id=generate_comment_id(),
                    incident_id=incident_id,
                    author_id=actor.user_id,
                    content=request.comment,
                    is_internal=True,
                    transition_history_id=history_id,
                    created_at=now
                ))
            )

        if request.has_feedback:
            self._best_effort(
                diagnostics, "feedback", incident_id,
                lambda: self.incident_repo.create_feedback(IncidentFeedback(
                    feedback_id=generate_feedback_id(),
                    incident_id=incident_id,
                    rating=request.feedback.rating,
                    comment=request.feedback.comment,
                    created_by_id=actor.user_id,
                    transition_history_id=history_id,
                    created_at=now
                ))
            )

        # 8. Reload so actions see the new state and assignee, then dispatch
        current = self._reload(incident_id, committed, diagnostics)
        outcomes = self._best_effort(
            diagnostics, "actions", incident_id,
            lambda: self.action_executor.execute_actions(transition, current, actor)
        ) or []
        diagnostics.extend(
            f"action {o.name or o.action_type.value}: {o.error}" for o in outcomes if not o.success
        )

        # 9. Status revision
        self._best_effort(
            diagnostics, "status revision", incident_id,
            lambda: self.revision_writer.write_status_changed(
                incident_id,
                transition.from_state_id,
                transition.from_state.name if transition.from_state else transition.from_state_id,
                transition.to_state_id,
                transition.to_state.name,
                actor.user_id
            )
        )

        # 10. Final reload picks up synchronous field_update actions
        return TransitionResult(
            incident=self._reload(incident_id, current, diagnostics),
            transition_history_id=history_id,
            actions=outcomes,
            warnings=warnings,
            diagnostics=diagnostics
        )

    def _build_updates(
        self,
        incident: Incident,
        transition: WorkflowTransition,
        request: TransitionRequest,
        now: datetime
    ) -> Dict[str, Any]:
        """All field changes of a transition, applied in one statement"""
        to_state = transition.to_state
        updates: Dict[str, Any] = {
            "current_state_id": to_state.state_id,
            "updated_at": now,
        }

        # Department: static wins, else caller's pick when auto-detect is on
        if transition.assign_department_id:
            updates["department_id"] = transition.assign_department_id
        elif transition.auto_detect_department and request.department_id:
            updates["department_id"] = request.department_id

        # Auto-match filters on the department this transition is setting
        match_target = incident
        if "department_id" in updates:
            match_target = incident.model_copy(update={"department_id": updates["department_id"]})
        assignment = self.assignment_resolver.resolve(transition, match_target, request.user_id)
        if assignment.changes_assignment:
            updates["assignee_id"] = assignment.primary_assignee_id
            updates["assignee_ids"] = assignment.assignee_ids

        # SLA: a new clock (and breach reset) only when the target state has one
        deadline = calculate_sla_deadline(now, to_state.sla_hours)
        if deadline is not None:
            updates["sla_deadline"] = deadline
            updates["sla_breached"] = False

        if to_state.is_terminal:
            updates["closed_at"] = now
            if to_state.denotes_resolved:
                updates["resolved_at"] = now

        return updates

    def get_available_transitions(self, incident_id: str, actor: ActorContext) -> List[AvailableTransition]:
        """Transitions out of the incident's current state, flagged for the actor"""
        incident = self.incident_repo.get_incident_or_raise(incident_id)
        available = []
        for transition in self.transition_resolver.outgoing(incident):
            reason = self.permission_guard.denial_reason(actor, transition)
            available.append(AvailableTransition(
                transition=transition,
                can_execute=reason is None,
                reason=reason or "",
                requirements=transition.requirements
            ))
        return available

    # =========================================================================
    # Helpers
    # =========================================================================

    def _reload(self, incident_id: str, fallback: Incident, diagnostics: List[str]) -> Incident:
        reloaded = self._best_effort(
            diagnostics, "reload", incident_id,
            lambda: self.incident_repo.get_incident(incident_id)
        )
        return reloaded or fallback

    @staticmethod
    def _best_effort(
        diagnostics: List[str],
        step: str,
        incident_id: str,
        fn: Callable[[], T]
    ) -> Optional[T]:
        """Run a post-commit step; log and collect its failure instead of raising"""
        try:
            return fn()
        except Exception as e:
            logger.error(
                f"Post-transition step '{step}' failed: {e}",
                extra={"incident_id": incident_id},
                exc_info=True
            )
            diagnostics.append(f"{step}: {e}")
            return None
