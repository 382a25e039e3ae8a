"""Repository modules - Data access layer"""
from .mongo_client import get_database, get_collection
from .workflow_repo import WorkflowRepository
from .incident_repo import IncidentRepository
from .revision_repo import RevisionRepository
from .user_repo import UserRepository
from .notification_repo import NotificationRepository

__all__ = [
    "get_database",
    "get_collection",
    "WorkflowRepository",
    "IncidentRepository",
    "RevisionRepository",
    "UserRepository",
    "NotificationRepository",
]
