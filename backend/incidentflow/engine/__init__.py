"""Workflow Engine - The brain of the system"""
from .engine import WorkflowEngine
from .permission_guard import PermissionGuard
from .transition_resolver import TransitionResolver
from .assignment_resolver import AssignmentResolver
from .action_executor import ActionExecutor, render_placeholders
from .revision_writer import RevisionWriter

__all__ = [
    "WorkflowEngine",
    "PermissionGuard",
    "TransitionResolver",
    "AssignmentResolver",
    "ActionExecutor",
    "render_placeholders",
    "RevisionWriter",
]
