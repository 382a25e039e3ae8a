"""Service modules - Business logic layer

IncidentService is imported from its module directly; it depends on the
engine, which itself uses NotificationService from this package.
"""
from .notification_service import NotificationService
from .workflow_service import WorkflowService

__all__ = [
    "NotificationService",
    "WorkflowService",
]
