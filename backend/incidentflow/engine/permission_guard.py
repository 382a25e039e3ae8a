"""Permission Guard - Authorization and precondition gates for incident actions"""
from typing import List, Optional

from ..domain.models import (
    ActorContext, WorkflowTransition, TransitionRequest, TransitionRequirement,
    IncidentComment, IncidentAttachment
)
from ..domain.enums import RequirementType
from ..domain.errors import ForbiddenError, PermissionDeniedError, RequirementNotMetError
from ..utils.logger import get_logger

logger = get_logger(__name__)


DEFAULT_REQUIREMENT_MESSAGES = {
    RequirementType.COMMENT: "Comment is required for this transition",
    RequirementType.ATTACHMENT: "Attachment is required for this transition",
    RequirementType.FEEDBACK: "Feedback is required for this transition",
}


class PermissionGuard:
    """
    Permission enforcement for incident operations

    Rules:
    - A transition with an allowed-role set needs an actor holding one of those roles
    - A transition with no allowed roles is open to everyone
    - Only the author may edit or delete a comment
    - Only the uploader may delete an attachment
    """

    def can_execute_transition(self, actor: ActorContext, transition: WorkflowTransition) -> bool:
        """Role gate: empty allowed set is unrestricted"""
        if not transition.allowed_role_ids:
            return True
        return bool(set(actor.role_ids) & set(transition.allowed_role_ids))

    def check_transition(self, actor: ActorContext, transition: WorkflowTransition) -> None:
        """Raise ForbiddenError when the role gate fails"""
        if not self.can_execute_transition(actor, transition):
            logger.warning(
                f"Actor {actor.user_id} lacks roles for transition {transition.name}",
                extra={"user_id": actor.user_id, "transition_id": transition.transition_id}
            )
            raise ForbiddenError(
                "You don't have permission to perform this transition",
                details={"transition_id": transition.transition_id}
            )

    def check_requirements(
        self,
        transition: WorkflowTransition,
        request: TransitionRequest
    ) -> List[str]:
        """
        Validate requirements in declaration order.

        The first unmet mandatory requirement raises RequirementNotMetError.
        Unmet optional requirements are returned as warning messages.
        """
        warnings: List[str] = []
        for requirement in transition.requirements:
            if self._is_satisfied(requirement, request):
                continue
            message = requirement.error_message or DEFAULT_REQUIREMENT_MESSAGES[requirement.requirement_type]
            if requirement.is_mandatory:
                raise RequirementNotMetError(
                    message,
                    details={
                        "transition_id": transition.transition_id,
                        "requirement_type": requirement.requirement_type.value,
                    }
                )
            logger.info(
                f"Optional requirement not met: {requirement.requirement_type.value}",
                extra={"transition_id": transition.transition_id}
            )
            warnings.append(message)
        return warnings

    @staticmethod
    def _is_satisfied(requirement: TransitionRequirement, request: TransitionRequest) -> bool:
        if requirement.requirement_type == RequirementType.COMMENT:
            return bool(request.comment and request.comment.strip())
        if requirement.requirement_type == RequirementType.ATTACHMENT:
            return len(request.attachment_ids) > 0
        if requirement.requirement_type == RequirementType.FEEDBACK:
            return request.has_feedback
        return True

    # =========================================================================
    # Ownership checks
    # =========================================================================

    def check_comment_owner(self, actor: ActorContext, comment: IncidentComment) -> None:
        if comment.author_id != actor.user_id:
            raise PermissionDeniedError("You can only modify your own comments")

    def check_attachment_owner(self, actor: ActorContext, attachment: IncidentAttachment) -> None:
        if attachment.uploaded_by_id != actor.user_id:
            raise PermissionDeniedError("You can only delete your own attachments")

    def denial_reason(self, actor: ActorContext, transition: WorkflowTransition) -> Optional[str]:
        """Why a transition is not executable for the actor, or None"""
        if not transition.is_active:
            return "Transition is inactive"
        if not self.can_execute_transition(actor, transition):
            return "Insufficient permissions"
        return None
