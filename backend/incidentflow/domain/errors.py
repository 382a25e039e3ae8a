"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error - all errors extend this"""

    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response dict"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# Authorization Errors
class ForbiddenError(DomainError):
    """Actor lacks permission for action"""
    error_code = "FORBIDDEN"
    http_status = 403


class PermissionDeniedError(ForbiddenError):
    """Specific permission denied (e.g. editing someone else's comment)"""
    error_code = "PERMISSION_DENIED"


# Validation Errors
class ValidationError(DomainError):
    """Input validation failed (malformed identifiers or configuration)"""
    error_code = "VALIDATION_ERROR"
    http_status = 400


class WorkflowValidationError(ValidationError):
    """Workflow definition validation failed"""
    error_code = "WORKFLOW_VALIDATION_ERROR"


class ActionConfigError(ValidationError):
    """Transition action configuration could not be decoded"""
    error_code = "ACTION_CONFIG_ERROR"


class RequirementNotMetError(DomainError):
    """A mandatory transition requirement was not satisfied"""
    error_code = "REQUIREMENT_NOT_MET"
    http_status = 422


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class WorkflowNotFoundError(NotFoundError):
    """Workflow not found"""
    error_code = "WORKFLOW_NOT_FOUND"


class StateNotFoundError(NotFoundError):
    """Workflow state not found"""
    error_code = "STATE_NOT_FOUND"


class TransitionNotFoundError(NotFoundError):
    """Workflow transition not found"""
    error_code = "TRANSITION_NOT_FOUND"


class IncidentNotFoundError(NotFoundError):
    """Incident not found"""
    error_code = "INCIDENT_NOT_FOUND"


class CommentNotFoundError(NotFoundError):
    """Comment not found"""
    error_code = "COMMENT_NOT_FOUND"


class AttachmentNotFoundError(NotFoundError):
    """Attachment not found"""
    error_code = "ATTACHMENT_NOT_FOUND"


class UserNotFoundError(NotFoundError):
    """User not found"""
    error_code = "USER_NOT_FOUND"


# Conflict Errors
class ConflictError(DomainError):
    """Resource conflict"""
    error_code = "CONFLICT"
    http_status = 409


class ConcurrencyError(ConflictError):
    """Optimistic concurrency conflict - retry with a fresh read"""
    error_code = "CONCURRENCY_CONFLICT"


class InvalidTransitionError(ConflictError):
    """Transition not valid for the incident's workflow or current state"""
    error_code = "INVALID_TRANSITION"


class AlreadyExistsError(ConflictError):
    """Resource already exists"""
    error_code = "ALREADY_EXISTS"


# Side-effect Errors
class ActionFailureError(DomainError):
    """A transition action failed; never fatal to the transition itself"""
    error_code = "ACTION_FAILURE"
    http_status = 502
