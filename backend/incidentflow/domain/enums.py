"""Domain Enumerations - All status and type definitions"""
from enum import Enum


class RecordType(str, Enum):
    """Kind of record a workflow drives"""
    INCIDENT = "incident"
    REQUEST = "request"
    COMPLAINT = "complaint"
    QUERY = "query"
    ALL = "all"


class StateType(str, Enum):
    """Role of a state in the workflow graph"""
    INITIAL = "initial"
    NORMAL = "normal"
    TERMINAL = "terminal"


class RequirementType(str, Enum):
    """Preconditions a transition may demand"""
    COMMENT = "comment"
    ATTACHMENT = "attachment"
    FEEDBACK = "feedback"


class ActionType(str, Enum):
    """Side effects a transition may trigger"""
    NOTIFICATION = "notification"
    EMAIL = "email"
    WEBHOOK = "webhook"
    FIELD_UPDATE = "field_update"


class AssignmentMode(str, Enum):
    """How a transition resolves its assignee"""
    STATIC = "STATIC"
    MANUAL_SELECT = "MANUAL_SELECT"
    AUTO_MATCH = "AUTO_MATCH"
    NONE = "NONE"


class RevisionActionType(str, Enum):
    """Kinds of change recorded in the revision log"""
    CREATED = "created"
    FIELD_CHANGE = "field_change"
    STATUS_CHANGED = "status_changed"
    ASSIGNEE_CHANGED = "assignee_changed"
    COMMENT_ADDED = "comment_added"
    COMMENT_MODIFIED = "comment_modified"
    COMMENT_DELETED = "comment_deleted"
    ATTACHMENT_ADDED = "attachment_added"
    ATTACHMENT_REMOVED = "attachment_removed"


class NotificationStatus(str, Enum):
    """Outbox delivery status"""
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"


# Field names a field_update action may change
UPDATABLE_ACTION_FIELDS = frozenset({"priority", "severity", "assignee_id", "department_id"})

# Record number prefixes
RECORD_NUMBER_PREFIXES = {
    RecordType.INCIDENT: "INC",
    RecordType.REQUEST: "REQ",
    RecordType.COMPLAINT: "COMP",
    RecordType.QUERY: "QRY",
}
