"""Revision Writer - Append-only, numbered incident revisions"""
from datetime import datetime
from typing import Any, List, Optional, TYPE_CHECKING

from ..domain.models import IncidentRevision, FieldChange
from ..domain.enums import RevisionActionType
from ..config.settings import settings
from ..utils.idgen import generate_revision_id
from ..utils.time import utc_now, Clock
from ..utils.logger import get_logger

if TYPE_CHECKING:
    from ..repositories.revision_repo import RevisionRepository

logger = get_logger(__name__)


def truncate(text: str, max_length: Optional[int] = None) -> str:
    """Shorten free text for revision descriptions"""
    limit = max_length if max_length is not None else settings.revision_description_max_length
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def _stringify(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)


class RevisionWriter:
    """
    Write incident revisions (append-only)

    Every mutation of an incident produces exactly one revision. Numbers
    come from the repository's atomic per-incident counter. The number is
    reserved before the insert; a failed insert raises and leaves a gap.
    """

    def __init__(self, repo: "RevisionRepository", clock: Clock = utc_now):
        self.repo = repo
        self._clock = clock

    def record(
        self,
        incident_id: str,
        action_type: RevisionActionType,
        description: str,
        field_changes: Optional[List[FieldChange]] = None,
        actor_id: str = ""
    ) -> IncidentRevision:
        """Allocate the next number and append one revision"""
        revision = IncidentRevision(
            revision_id=generate_revision_id(),
            incident_id=incident_id,
            revision_number=self.repo.next_revision_number(incident_id),
            action_type=action_type,
            action_description=description,
            changes=field_changes or [],
            performed_by_id=actor_id,
            created_at=self._clock()
        )
        return self.repo.create_revision(revision)

    def list_revisions(self, incident_id: str, **filters) -> List[IncidentRevision]:
        return self.repo.list_revisions(incident_id, **filters)

    # =========================================================================
    # Typed helpers
    # =========================================================================

    def write_created(self, incident_id: str, record_label: str, record_number: str, actor_id: str) -> IncidentRevision:
        """Write creation revision, e.g. 'Incident INC-2026-000001 created'"""
        return self.record(
            incident_id,
            RevisionActionType.CREATED,
            f"{record_label} {record_number} created",
            actor_id=actor_id
        )

    def write_status_changed(
        self,
        incident_id: str,
        from_state_id: str,
        from_state_name: str,
        to_state_id: str,
        to_state_name: str,
        actor_id: str
    ) -> IncidentRevision:
        """Write state change revision"""
        return self.record(
            incident_id,
            RevisionActionType.STATUS_CHANGED,
            f"Status changed from {from_state_name} to {to_state_name}",
            [FieldChange(
                field_name="current_state_id",
                field_label="Status",
                old_value=from_state_id,
                new_value=to_state_id
            )],
            actor_id
        )

    def write_field_changes(
        self,
        incident_id: str,
        changes: List[FieldChange],
        descriptions: List[str],
        actor_id: str
    ) -> Optional[IncidentRevision]:
        """Write one revision summarising several field edits; nothing when no change"""
        if not changes:
            return None
        description = "Fields updated"
        if descriptions:
            description = descriptions[0]
            if len(descriptions) > 1:
                description = f"{description} and {len(descriptions) - 1} more changes"
        return self.record(incident_id, RevisionActionType.FIELD_CHANGE, description, changes, actor_id)

    def write_field_change(
        self,
        incident_id: str,
        field_name: str,
        field_label: str,
        old_value: Any,
        new_value: Any,
        actor_id: str
    ) -> IncidentRevision:
        change = FieldChange(
            field_name=field_name,
            field_label=field_label,
            old_value=_stringify(old_value),
            new_value=_stringify(new_value)
        )
        description = f"{field_label} changed from {change.old_value or 'empty'} to {change.new_value or 'empty'}"
        return self.record(incident_id, RevisionActionType.FIELD_CHANGE, description, [change], actor_id)

    def write_comment_added(self, incident_id: str, author_name: str, content: str, actor_id: str) -> IncidentRevision:
        return self.record(
            incident_id,
            RevisionActionType.COMMENT_ADDED,
            f"Comment added by {author_name} - {truncate(content)}",
            actor_id=actor_id
        )

    def write_comment_modified(self, incident_id: str, content: str, actor_id: str) -> IncidentRevision:
        return self.record(
            incident_id,
            RevisionActionType.COMMENT_MODIFIED,
            f"Comment modified - {truncate(content)}",
            actor_id=actor_id
        )

    def write_comment_deleted(self, incident_id: str, old_content: str, actor_id: str) -> IncidentRevision:
        return self.record(
            incident_id,
            RevisionActionType.COMMENT_DELETED,
            f"Comment deleted - {truncate(old_content)}",
            actor_id=actor_id
        )

    def write_attachment_added(self, incident_id: str, file_name: str, actor_id: str) -> IncidentRevision:
        return self.record(
            incident_id,
            RevisionActionType.ATTACHMENT_ADDED,
            f"Attachment added - {file_name}",
            actor_id=actor_id
        )

    def write_attachment_removed(self, incident_id: str, file_name: str, actor_id: str) -> IncidentRevision:
        return self.record(
            incident_id,
            RevisionActionType.ATTACHMENT_REMOVED,
            f"Attachment removed - {file_name}",
            actor_id=actor_id
        )

    def write_assignee_changed(
        self,
        incident_id: str,
        old_assignee_id: Optional[str],
        old_assignee_name: str,
        new_assignee_id: Optional[str],
        new_assignee_name: str,
        actor_id: str
    ) -> IncidentRevision:
        return self.record(
            incident_id,
            RevisionActionType.ASSIGNEE_CHANGED,
            f"AssignedTo changed from {old_assignee_name} to {new_assignee_name}",
            [FieldChange(
                field_name="assignee_id",
                field_label="Assigned To",
                old_value=old_assignee_id,
                new_value=new_assignee_id
            )],
            actor_id
        )

    def write_converted(self, incident_id: str, request_id: str, request_number: str, actor_id: str) -> IncidentRevision:
        """Write the source-side revision of an incident-to-request conversion"""
        return self.record(
            incident_id,
            RevisionActionType.FIELD_CHANGE,
            f"Incident converted to request {request_number}",
            [FieldChange(
                field_name="converted_request_id",
                field_label="Converted To Request",
                new_value=request_id
            )],
            actor_id
        )
