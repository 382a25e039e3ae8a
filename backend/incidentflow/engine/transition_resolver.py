"""Transition Resolver - Locate and validate transitions in the workflow graph"""
from collections import deque
from typing import List, Set, TYPE_CHECKING

from ..domain.models import Incident, WorkflowTransition
from ..domain.errors import (
    ValidationError, TransitionNotFoundError, InvalidTransitionError, StateNotFoundError
)
from ..utils.logger import get_logger

if TYPE_CHECKING:
    from ..repositories.workflow_repo import WorkflowRepository

logger = get_logger(__name__)


class TransitionResolver:
    """
    Resolve transitions against an incident's workflow and current state

    Given incident I and transition T:
    1. T must exist (loaded with its from/to states)
    2. T.workflow_id must equal I.workflow_id
    3. T.from_state_id must equal I.current_state_id
    4. T must be active
    """

    def __init__(self, workflow_repo: "WorkflowRepository"):
        self.workflow_repo = workflow_repo

    def resolve(self, incident: Incident, transition_id: str) -> WorkflowTransition:
        """
        Load a transition with relations and verify it applies to the incident

        Raises:
            ValidationError: Empty transition ID
            TransitionNotFoundError: Unknown transition
            InvalidTransitionError: Wrong workflow, wrong from-state, or inactive
        """
        if not transition_id or not transition_id.strip():
            raise ValidationError("Transition ID is required")

        transition = self.workflow_repo.find_transition_with_relations(transition_id)
        if transition is None:
            raise TransitionNotFoundError(f"Transition {transition_id} not found")

        if transition.workflow_id != incident.workflow_id:
            raise InvalidTransitionError(
                "Transition does not belong to the incident's workflow",
                details={"transition_id": transition_id, "workflow_id": incident.workflow_id}
            )
        if transition.from_state_id != incident.current_state_id:
            raise InvalidTransitionError(
                "Invalid transition from current state",
                details={
                    "transition_id": transition_id,
                    "current_state_id": incident.current_state_id,
                    "from_state_id": transition.from_state_id,
                }
            )
        if not transition.is_active:
            raise InvalidTransitionError(
                "Transition is inactive",
                details={"transition_id": transition_id}
            )
        if transition.to_state is None:
            raise StateNotFoundError(f"Target state {transition.to_state_id} not found")
        return transition

    def outgoing(self, incident: Incident) -> List[WorkflowTransition]:
        """Transitions leaving the incident's current state"""
        return [
            t for t in self.workflow_repo.list_transitions_from_state(incident.current_state_id)
            if t.workflow_id == incident.workflow_id
        ]

    def reachable_state_ids(self, workflow_id: str) -> Set[str]:
        """Breadth-first walk of active transitions from the initial state"""
        initial = self.workflow_repo.get_initial_state(workflow_id)
        if initial is None:
            return set()

        edges = {}
        for transition in self.workflow_repo.list_transitions(workflow_id):
            if transition.is_active:
                edges.setdefault(transition.from_state_id, []).append(transition.to_state_id)

        seen = {initial.state_id}
        queue = deque([initial.state_id])
        while queue:
            for next_id in edges.get(queue.popleft(), []):
                if next_id not in seen:
                    seen.add(next_id)
                    queue.append(next_id)
        return seen
