"""ID Generation Utilities"""
import uuid
from datetime import datetime, timezone
from typing import Optional


def generate_id(prefix: Optional[str] = None) -> str:
    """
    Generate a unique ID with optional prefix

    Args:
        prefix: Optional prefix for the ID (e.g., 'WF', 'ICD', 'REV')

    Returns:
        Unique ID string

    Examples:
        >>> generate_id('WF')
        'WF-a1b2c3d4e5f6'
        >>> generate_id()
        'a1b2c3d4e5f6'
    """
    unique_part = uuid.uuid4().hex[:12]

    if prefix:
        return f"{prefix}-{unique_part}"
    return unique_part


def generate_workflow_id() -> str:
    """Generate workflow ID"""
    return generate_id("WF")


def generate_state_id() -> str:
    """Generate workflow state ID"""
    return generate_id("WST")


def generate_transition_id() -> str:
    """Generate workflow transition ID"""
    return generate_id("WTR")


def generate_requirement_id() -> str:
    """Generate transition requirement ID"""
    return generate_id("TRQ")


def generate_action_id() -> str:
    """Generate transition action ID"""
    return generate_id("ACT")


def generate_incident_id() -> str:
    """Generate incident ID"""
    return generate_id("ICD")


def generate_transition_history_id() -> str:
    """Generate transition history ID"""
    return generate_id("THS")


def generate_comment_id() -> str:
    """Generate comment ID"""
    return generate_id("CMT")


def generate_attachment_id() -> str:
    """Generate attachment ID"""
    return generate_id("ATT")


def generate_feedback_id() -> str:
    """Generate feedback ID"""
    return generate_id("FBK")


def generate_revision_id() -> str:
    """Generate revision ID"""
    return generate_id("REV")


def generate_notification_id() -> str:
    """Generate notification ID"""
    return generate_id("NTF")


def format_record_number(prefix: str, year: int, sequence: int) -> str:
    """
    Format a human-readable record number

    Examples:
        >>> format_record_number('INC', 2026, 42)
        'INC-2026-000042'
    """
    return f"{prefix}-{year}-{sequence:06d}"


def generate_correlation_id() -> str:
    """
    Generate a correlation ID for request tracing

    Returns:
        Correlation ID string with timestamp prefix
    """
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
    unique_part = uuid.uuid4().hex[:8]
    return f"COR-{timestamp}-{unique_part}"
