"""Workflow Service - Workflow definition management business logic"""
from typing import Dict, List, Optional, Set

from ..domain.models import (
    Workflow, WorkflowState, WorkflowTransition, TransitionCreate, TransitionRequirement,
    TransitionAction, WorkflowValidationReport, ActorContext
)
from ..domain.enums import RecordType, StateType
from ..domain.errors import (
    AlreadyExistsError, StateNotFoundError, TransitionNotFoundError, WorkflowValidationError
)
from ..repositories.workflow_repo import WorkflowRepository
from ..engine.transition_resolver import TransitionResolver
from ..utils.idgen import (
    generate_workflow_id, generate_state_id, generate_transition_id,
    generate_requirement_id, generate_action_id
)
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class WorkflowService:
    """Service for workflow definition operations"""

    def __init__(self, repo: Optional[WorkflowRepository] = None):
        self.repo = repo or WorkflowRepository()
        self.transition_resolver = TransitionResolver(self.repo)

    # =========================================================================
    # Workflows
    # =========================================================================

    def create_workflow(
        self,
        name: str,
        code: str,
        actor: ActorContext,
        record_type: RecordType = RecordType.INCIDENT,
        description: str = "",
        required_fields: Optional[List[str]] = None,
        is_default: bool = False,
        version: int = 1
    ) -> Workflow:
        """Create a new workflow; codes are unique across live and deleted workflows"""
        if self.repo.get_workflow_by_code(code):
            raise AlreadyExistsError(f"Workflow with code {code} already exists", details={"code": code})

        now = utc_now()
        workflow = Workflow(
            workflow_id=generate_workflow_id(),
            name=name,
            code=code,
            description=description,
            record_type=record_type,
            required_fields=required_fields or [],
            is_default=is_default,
            version=version,
            created_by_id=actor.user_id,
            created_at=now,
            updated_at=now
        )
        return self.repo.create_workflow(workflow)

    def get_workflow(self, workflow_id: str) -> Workflow:
        """Get workflow by ID"""
        return self.repo.get_workflow_or_raise(workflow_id)

    def list_workflows(
        self,
        record_type: Optional[RecordType] = None,
        active_only: bool = False,
        skip: int = 0,
        limit: int = 50
    ) -> List[Workflow]:
        """List workflows"""
        return self.repo.list_workflows(record_type=record_type, active_only=active_only, skip=skip, limit=limit)

    def delete_workflow(self, workflow_id: str) -> Workflow:
        """Soft delete; incidents already on the workflow keep working"""
        return self.repo.soft_delete_workflow(workflow_id)

    def restore_workflow(self, workflow_id: str) -> Workflow:
        return self.repo.restore_workflow(workflow_id)

    def list_deleted_workflows(self) -> List[Workflow]:
        return self.repo.list_deleted_workflows()

    def duplicate_workflow(
        self,
        workflow_id: str,
        new_code: str,
        actor: ActorContext,
        new_name: Optional[str] = None
    ) -> Workflow:
        """
        Copy a workflow with all its states and transitions

        The copy gets fresh IDs throughout, version + 1, and is never the
        default. Transitions are re-pointed at the copied states.
        """
        source = self.repo.get_workflow_or_raise(workflow_id)
        copy = self.create_workflow(
            name=new_name or f"{source.name} (Copy)",
            code=new_code,
            actor=actor,
            record_type=source.record_type,
            description=source.description,
            required_fields=list(source.required_fields),
            version=source.version + 1
        )

        state_map: Dict[str, str] = {}
        for state in self.repo.list_states(workflow_id):
            new_state = state.model_copy(update={
                "state_id": generate_state_id(),
                "workflow_id": copy.workflow_id,
            })
            self.repo.create_state(new_state)
            state_map[state.state_id] = new_state.state_id

        for transition in self.repo.list_transitions(workflow_id):
            if transition.from_state_id not in state_map or transition.to_state_id not in state_map:
                logger.warning(
                    f"Skipping transition {transition.transition_id} with missing states",
                    extra={"workflow_id": workflow_id, "transition_id": transition.transition_id}
                )
                continue
            self.repo.create_transition(transition.model_copy(update={
                "transition_id": generate_transition_id(),
                "workflow_id": copy.workflow_id,
                "from_state_id": state_map[transition.from_state_id],
                "to_state_id": state_map[transition.to_state_id],
                "requirements": [
                    r.model_copy(update={"requirement_id": generate_requirement_id()})
                    for r in transition.requirements
                ],
                "actions": [
                    a.model_copy(update={"action_id": generate_action_id()})
                    for a in transition.actions
                ],
                "from_state": None,
                "to_state": None,
            }))

        logger.info(
            f"Duplicated workflow {source.code} as {new_code}",
            extra={"workflow_id": copy.workflow_id}
        )
        return copy

    # =========================================================================
    # States & Transitions
    # =========================================================================

    def create_state(
        self,
        workflow_id: str,
        name: str,
        code: str,
        state_type: StateType = StateType.NORMAL,
        sla_hours: Optional[int] = None,
        viewable_role_ids: Optional[List[str]] = None,
        sort_order: int = 0,
        description: str = ""
    ) -> WorkflowState:
        """Add a state to a workflow; at most one initial state per workflow"""
        self.repo.get_workflow_or_raise(workflow_id)
        if state_type == StateType.INITIAL and self.repo.get_initial_state(workflow_id):
            raise WorkflowValidationError(
                "Workflow already has an initial state",
                details={"workflow_id": workflow_id}
            )
        if sla_hours is not None and sla_hours <= 0:
            raise WorkflowValidationError("SLA hours must be positive", details={"sla_hours": sla_hours})

        state = WorkflowState(
            state_id=generate_state_id(),
            workflow_id=workflow_id,
            name=name,
            code=code,
            description=description,
            state_type=state_type,
            sla_hours=sla_hours,
            viewable_role_ids=viewable_role_ids or [],
            sort_order=sort_order
        )
        return self.repo.create_state(state)

    def create_transition(self, workflow_id: str, data: TransitionCreate) -> WorkflowTransition:
        """Add a transition; both states must exist in the same workflow"""
        self.repo.get_workflow_or_raise(workflow_id)
        for state_id in (data.from_state_id, data.to_state_id):
            state = self.repo.get_state(state_id)
            if state is None:
                raise StateNotFoundError(f"State {state_id} not found")
            if state.workflow_id != workflow_id:
                raise WorkflowValidationError(
                    "Transition states must belong to the transition's workflow",
                    details={"state_id": state_id, "workflow_id": workflow_id}
                )

        now = utc_now()
        transition = WorkflowTransition(
            transition_id=generate_transition_id(),
            workflow_id=workflow_id,
            created_at=now,
            updated_at=now,
            **data.model_dump(exclude={"requirements", "actions"}),
            requirements=self._prepare_requirements(data.requirements),
            actions=self._prepare_actions(data.actions)
        )
        return self.repo.create_transition(transition)

    def set_transition_roles(self, transition_id: str, role_ids: List[str]) -> WorkflowTransition:
        self._get_transition_or_raise(transition_id)
        return self.repo.update_transition(transition_id, {"allowed_role_ids": list(dict.fromkeys(role_ids))})

    def set_transition_requirements(
        self,
        transition_id: str,
        requirements: List[TransitionRequirement]
    ) -> WorkflowTransition:
        self._get_transition_or_raise(transition_id)
        prepared = self._prepare_requirements(requirements)
        return self.repo.update_transition(transition_id, {"requirements": [r.model_dump() for r in prepared]})

    def set_transition_actions(self, transition_id: str, actions: List[TransitionAction]) -> WorkflowTransition:
        """Replace a transition's actions; malformed configs raise ActionConfigError"""
        self._get_transition_or_raise(transition_id)
        prepared = self._prepare_actions(actions)
        return self.repo.update_transition(transition_id, {"actions": [a.model_dump() for a in prepared]})

    def _get_transition_or_raise(self, transition_id: str) -> WorkflowTransition:
        transition = self.repo.get_transition(transition_id)
        if transition is None:
            raise TransitionNotFoundError(f"Transition {transition_id} not found")
        return transition

    @staticmethod
    def _prepare_requirements(requirements: List[TransitionRequirement]) -> List[TransitionRequirement]:
        return [
            r if r.requirement_id else r.model_copy(update={"requirement_id": generate_requirement_id()})
            for r in requirements
        ]

    @staticmethod
    def _prepare_actions(actions: List[TransitionAction]) -> List[TransitionAction]:
        prepared = []
        for action in actions:
            action.decode_config()
            if not action.action_id:
                action = action.model_copy(update={"action_id": generate_action_id()})
            prepared.append(action)
        return prepared

    # =========================================================================
    # Validation
    # =========================================================================

    def reachable_state_ids(self, workflow_id: str) -> Set[str]:
        return self.transition_resolver.reachable_state_ids(workflow_id)

    def validate_workflow(self, workflow_id: str) -> WorkflowValidationReport:
        """
        Structural checks of a workflow graph

        Errors: no initial state, more than one initial state, transitions
        referencing missing or foreign states.
        Warnings: states unreachable from the initial state, terminal
        states with outgoing transitions, active workflow without a
        terminal state.
        """
        self.repo.get_workflow_or_raise(workflow_id)
        states = {s.state_id: s for s in self.repo.list_states(workflow_id)}
        transitions = self.repo.list_transitions(workflow_id)
        errors: List[str] = []
        warnings: List[str] = []

        initial = [s for s in states.values() if s.state_type == StateType.INITIAL]
        if not initial:
            errors.append("Workflow has no initial state")
        elif len(initial) > 1:
            errors.append(f"Workflow has {len(initial)} initial states; exactly one is required")

        for transition in transitions:
            for label, state_id in (("from", transition.from_state_id), ("to", transition.to_state_id)):
                if state_id not in states:
                    errors.append(f"Transition {transition.name} references missing {label}-state {state_id}")
            source = states.get(transition.from_state_id)
            if source and source.is_terminal and transition.is_active:
                warnings.append(f"Terminal state {source.name} has outgoing transition {transition.name}")

        if not any(s.is_terminal for s in states.values()):
            warnings.append("Workflow has no terminal state")

        reachable = self.reachable_state_ids(workflow_id) if len(initial) == 1 else set()
        unreachable = [sid for sid in states if sid not in reachable] if initial else []
        for state_id in unreachable:
            warnings.append(f"State {states[state_id].name} is not reachable from the initial state")

        return WorkflowValidationReport(
            workflow_id=workflow_id,
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            unreachable_state_ids=unreachable
        )
