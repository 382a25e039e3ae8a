"""Workflow Repository - Data access for workflows, states and transitions"""
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from .mongo_client import get_collection
from ..domain.models import Workflow, WorkflowState, WorkflowTransition
from ..domain.enums import RecordType, StateType
from ..domain.errors import (
    WorkflowNotFoundError, TransitionNotFoundError, AlreadyExistsError
)
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _strip_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    doc.pop("_id", None)
    return doc


class WorkflowRepository:
    """Repository for workflow definition operations"""

    def __init__(self):
        self._workflows: Collection = get_collection("workflows")
        self._states: Collection = get_collection("workflow_states")
        self._transitions: Collection = get_collection("workflow_transitions")

    # =========================================================================
    # Workflow CRUD
    # =========================================================================

    def create_workflow(self, workflow: Workflow) -> Workflow:
        """Create a new workflow"""
        doc = workflow.model_dump()
        doc["_id"] = workflow.workflow_id

        try:
            self._workflows.insert_one(doc)
        except DuplicateKeyError:
            raise AlreadyExistsError(
                f"Workflow with code {workflow.code} already exists",
                details={"code": workflow.code}
            )
        logger.info(f"Created workflow: {workflow.workflow_id}", extra={"workflow_id": workflow.workflow_id})
        return workflow

    def get_workflow(self, workflow_id: str, include_deleted: bool = False) -> Optional[Workflow]:
        """Get workflow by ID"""
        query: Dict[str, Any] = {"workflow_id": workflow_id}
        if not include_deleted:
            query["deleted_at"] = None
        doc = self._workflows.find_one(query)
        return Workflow.model_validate(_strip_id(doc)) if doc else None

    def get_workflow_or_raise(self, workflow_id: str) -> Workflow:
        """Get workflow by ID or raise error"""
        workflow = self.get_workflow(workflow_id)
        if not workflow:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")
        return workflow

    def get_workflow_by_code(self, code: str) -> Optional[Workflow]:
        """Get workflow by its unique code, deleted ones included"""
        doc = self._workflows.find_one({"code": code})
        return Workflow.model_validate(_strip_id(doc)) if doc else None

    def get_default_workflow(self, record_type: RecordType) -> Optional[Workflow]:
        """Default active workflow for a record type"""
        doc = self._workflows.find_one({
            "record_type": {"$in": [record_type.value, RecordType.ALL.value]},
            "is_default": True,
            "is_active": True,
            "deleted_at": None,
        })
        return Workflow.model_validate(_strip_id(doc)) if doc else None

    def list_workflows(
        self,
        record_type: Optional[RecordType] = None,
        active_only: bool = False,
        skip: int = 0,
        limit: int = 50
    ) -> List[Workflow]:
        """List non-deleted workflows"""
        query: Dict[str, Any] = {"deleted_at": None}
        if record_type:
            query["record_type"] = record_type.value
        if active_only:
            query["is_active"] = True

        cursor = self._workflows.find(query).sort("name", ASCENDING).skip(skip).limit(limit)
        return [Workflow.model_validate(_strip_id(doc)) for doc in cursor]

    def list_deleted_workflows(self) -> List[Workflow]:
        """List soft-deleted workflows"""
        cursor = self._workflows.find({"deleted_at": {"$ne": None}}).sort("deleted_at", DESCENDING)
        return [Workflow.model_validate(_strip_id(doc)) for doc in cursor]

    def soft_delete_workflow(self, workflow_id: str) -> Workflow:
        """Mark workflow deleted"""
        return self._set_deleted_at(workflow_id, datetime.now(timezone.utc), {"deleted_at": None})

    def restore_workflow(self, workflow_id: str) -> Workflow:
        """Clear the deleted marker"""
        return self._set_deleted_at(workflow_id, None, {"deleted_at": {"$ne": None}})

    def _set_deleted_at(
        self,
        workflow_id: str,
        value: Optional[datetime],
        condition: Dict[str, Any]
    ) -> Workflow:
        result = self._workflows.find_one_and_update(
            {"workflow_id": workflow_id, **condition},
            {"$set": {"deleted_at": value, "updated_at": datetime.now(timezone.utc)}},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise WorkflowNotFoundError(f"Workflow {workflow_id} not found")
        logger.info(
            f"Workflow {'deleted' if value else 'restored'}: {workflow_id}",
            extra={"workflow_id": workflow_id}
        )
        return Workflow.model_validate(_strip_id(result))

    # =========================================================================
    # States
    # =========================================================================

    def create_state(self, state: WorkflowState) -> WorkflowState:
        """Create a workflow state"""
        doc = state.model_dump()
        doc["_id"] = state.state_id
        self._states.insert_one(doc)
        logger.info(
            f"Created state {state.code} in workflow {state.workflow_id}",
            extra={"workflow_id": state.workflow_id, "state_id": state.state_id}
        )
        return state

    def get_state(self, state_id: str) -> Optional[WorkflowState]:
        """Get state by ID"""
        doc = self._states.find_one({"state_id": state_id})
        return WorkflowState.model_validate(_strip_id(doc)) if doc else None

    find_state_by_id = get_state

    def list_states(self, workflow_id: str) -> List[WorkflowState]:
        """List states of a workflow in display order"""
        cursor = self._states.find({"workflow_id": workflow_id}).sort("sort_order", ASCENDING)
        return [WorkflowState.model_validate(_strip_id(doc)) for doc in cursor]

    def get_initial_state(self, workflow_id: str) -> Optional[WorkflowState]:
        """Get the initial state of a workflow"""
        doc = self._states.find_one({
            "workflow_id": workflow_id,
            "state_type": StateType.INITIAL.value,
            "is_active": True,
        })
        return WorkflowState.model_validate(_strip_id(doc)) if doc else None

    def list_terminal_state_ids(self) -> List[str]:
        """IDs of every terminal state across all workflows"""
        cursor = self._states.find({"state_type": StateType.TERMINAL.value}, {"state_id": 1})
        return [doc["state_id"] for doc in cursor]

    # =========================================================================
    # Transitions
    # =========================================================================

    def create_transition(self, transition: WorkflowTransition) -> WorkflowTransition:
        """Create a workflow transition"""
        doc = transition.to_document()
        doc["_id"] = transition.transition_id
        self._transitions.insert_one(doc)
        logger.info(
            f"Created transition {transition.name}",
            extra={"workflow_id": transition.workflow_id, "transition_id": transition.transition_id}
        )
        return transition

    def get_transition(self, transition_id: str) -> Optional[WorkflowTransition]:
        """Get transition by ID without relations"""
        doc = self._transitions.find_one({"transition_id": transition_id})
        return WorkflowTransition.model_validate(_strip_id(doc)) if doc else None

    find_transition_by_id = get_transition

    def find_transition_with_relations(self, transition_id: str) -> Optional[WorkflowTransition]:
        """Get transition with its from/to states populated"""
        transition = self.get_transition(transition_id)
        if transition is None:
            return None
        transition.from_state = self.get_state(transition.from_state_id)
        transition.to_state = self.get_state(transition.to_state_id)
        return transition

    def list_transitions(self, workflow_id: str) -> List[WorkflowTransition]:
        """List all transitions of a workflow"""
        cursor = self._transitions.find({"workflow_id": workflow_id}).sort("sort_order", ASCENDING)
        return [WorkflowTransition.model_validate(_strip_id(doc)) for doc in cursor]

    def list_transitions_from_state(self, state_id: str) -> List[WorkflowTransition]:
        """List transitions leaving a state, with relations"""
        cursor = self._transitions.find({"from_state_id": state_id}).sort("sort_order", ASCENDING)
        transitions = [WorkflowTransition.model_validate(_strip_id(doc)) for doc in cursor]
        for transition in transitions:
            transition.from_state = self.get_state(transition.from_state_id)
            transition.to_state = self.get_state(transition.to_state_id)
        return transitions

    def update_transition(self, transition_id: str, updates: Dict[str, Any]) -> WorkflowTransition:
        """Update transition fields"""
        updates["updated_at"] = datetime.now(timezone.utc)
        result = self._transitions.find_one_and_update(
            {"transition_id": transition_id},
            {"$set": updates},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise TransitionNotFoundError(f"Transition {transition_id} not found")
        logger.info(f"Updated transition: {transition_id}", extra={"transition_id": transition_id})
        return WorkflowTransition.model_validate(_strip_id(result))
