"""Assignment Resolver - Pick assignees for a transition"""
from typing import Optional, TYPE_CHECKING

from ..domain.models import Incident, WorkflowTransition, AssignmentResult
from ..domain.enums import AssignmentMode
from ..utils.logger import get_logger

if TYPE_CHECKING:
    from ..repositories.user_repo import UserRepository

logger = get_logger(__name__)


class AssignmentResolver:
    """
    Resolve the assignee(s) a transition should set

    Policy precedence (first match wins):
    - STATIC: the transition names a fixed user
    - MANUAL_SELECT: the caller picks a user; none picked = no change
    - AUTO_MATCH: users holding the assignment role, filtered by the
      incident's classification, location and department, excluding the
      current assignee; falls back to role-only when nothing matches
    - NONE: no change

    Never raises for "no match"; lookup failures degrade to no change.
    """

    def __init__(self, user_repo: "UserRepository"):
        self.user_repo = user_repo

    def resolve(
        self,
        transition: WorkflowTransition,
        incident: Incident,
        selected_user_id: Optional[str] = None
    ) -> AssignmentResult:
        mode = transition.assignment_mode

        if mode == AssignmentMode.STATIC:
            return AssignmentResult(
                mode=mode,
                primary_assignee_id=transition.assign_user_id,
                assignee_ids=[transition.assign_user_id]
            )

        if mode == AssignmentMode.MANUAL_SELECT:
            if not selected_user_id:
                logger.info(
                    "Manual assignment without a selected user; keeping current assignee",
                    extra={"incident_id": incident.incident_id, "transition_id": transition.transition_id}
                )
                return AssignmentResult(mode=mode)
            return AssignmentResult(
                mode=mode,
                primary_assignee_id=selected_user_id,
                assignee_ids=[selected_user_id]
            )

        if mode == AssignmentMode.AUTO_MATCH:
            return self._auto_match(transition, incident)

        return AssignmentResult(mode=mode)

    def _auto_match(self, transition: WorkflowTransition, incident: Incident) -> AssignmentResult:
        role_id = transition.assignment_role_id
        try:
            users = self.user_repo.find_matching(
                role_id=role_id,
                classification_id=incident.classification_id,
                location_id=incident.location_id,
                department_id=incident.department_id,
                exclude_user_id=incident.assignee_id
            )
            if not users:
                users = self.user_repo.find_matching(
                    role_id=role_id,
                    exclude_user_id=incident.assignee_id
                )
        except Exception as e:
            logger.error(
                f"Auto-match lookup failed: {e}",
                extra={"incident_id": incident.incident_id, "transition_id": transition.transition_id}
            )
            return AssignmentResult(mode=AssignmentMode.AUTO_MATCH)

        if not users:
            logger.info(
                f"No users match role {role_id}; keeping current assignee",
                extra={"incident_id": incident.incident_id}
            )
            return AssignmentResult(mode=AssignmentMode.AUTO_MATCH)

        # Deterministic primary regardless of repository ordering
        user_ids = sorted(u.user_id for u in users)
        return AssignmentResult(
            mode=AssignmentMode.AUTO_MATCH,
            primary_assignee_id=user_ids[0],
            assignee_ids=user_ids
        )
