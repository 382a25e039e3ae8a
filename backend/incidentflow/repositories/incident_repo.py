"""Incident Repository - Data access for incidents and incident-owned records"""
from typing import Any, Dict, List, Optional
from datetime import datetime, timezone
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from .mongo_client import get_collection
from ..domain.models import (
    Incident, TransitionHistory, IncidentComment, IncidentAttachment,
    IncidentFeedback, IncidentStats
)
from ..domain.enums import RecordType, StateType, RECORD_NUMBER_PREFIXES
from ..domain.errors import (
    IncidentNotFoundError, CommentNotFoundError, AttachmentNotFoundError, ConcurrencyError
)
from ..utils.idgen import format_record_number
from ..utils.logger import get_logger

logger = get_logger(__name__)


def _strip_id(doc: Dict[str, Any]) -> Dict[str, Any]:
    doc.pop("_id", None)
    return doc


class IncidentRepository:
    """Repository for incident operations"""

    def __init__(self):
        self._incidents: Collection = get_collection("incidents")
        self._history: Collection = get_collection("transition_history")
        self._comments: Collection = get_collection("incident_comments")
        self._attachments: Collection = get_collection("incident_attachments")
        self._feedback: Collection = get_collection("incident_feedback")
        self._states: Collection = get_collection("workflow_states")
        self._counters: Collection = get_collection("counters")

    # =========================================================================
    # Incident CRUD
    # =========================================================================

    def create_incident(self, incident: Incident) -> Incident:
        """Create a new incident"""
        # Keep datetimes native so deadline comparisons work server-side
        doc = incident.model_dump()
        doc["_id"] = incident.incident_id

        self._incidents.insert_one(doc)
        logger.info(f"Created incident: {incident.incident_number}", extra={"incident_id": incident.incident_id})
        return incident

    def get_incident(self, incident_id: str) -> Optional[Incident]:
        """Get incident by ID"""
        doc = self._incidents.find_one({"incident_id": incident_id})
        return Incident.model_validate(_strip_id(doc)) if doc else None

    def get_incident_or_raise(self, incident_id: str) -> Incident:
        """Get incident by ID or raise error"""
        incident = self.get_incident(incident_id)
        if not incident:
            raise IncidentNotFoundError(f"Incident {incident_id} not found")
        return incident

    def get_incident_by_number(self, incident_number: str) -> Optional[Incident]:
        """Get incident by its human-readable number"""
        doc = self._incidents.find_one({"incident_number": incident_number})
        return Incident.model_validate(_strip_id(doc)) if doc else None

    def list_incidents(
        self,
        workflow_id: Optional[str] = None,
        current_state_id: Optional[str] = None,
        assignee_id: Optional[str] = None,
        record_type: Optional[RecordType] = None,
        sla_breached: Optional[bool] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[Incident]:
        """List incidents with filters, newest first"""
        query: Dict[str, Any] = {}
        if workflow_id:
            query["workflow_id"] = workflow_id
        if current_state_id:
            query["current_state_id"] = current_state_id
        if assignee_id:
            query["$or"] = [{"assignee_id": assignee_id}, {"assignee_ids": assignee_id}]
        if record_type:
            query["record_type"] = record_type.value
        if sla_breached is not None:
            query["sla_breached"] = sla_breached

        cursor = self._incidents.find(query).sort("created_at", DESCENDING).skip(skip).limit(limit)
        return [Incident.model_validate(_strip_id(doc)) for doc in cursor]

    def update_fields(
        self,
        incident_id: str,
        updates: Dict[str, Any],
        expected_state_id: Optional[str] = None
    ) -> Incident:
        """
        Apply a partial update in one atomic statement.

        When expected_state_id is given the write only lands if the incident
        is still in that state; otherwise ConcurrencyError is raised and
        nothing is written.
        """
        updates = dict(updates)
        updates["updated_at"] = updates.get("updated_at") or datetime.now(timezone.utc)
        updates.pop("version", None)

        filter_query: Dict[str, Any] = {"incident_id": incident_id}
        if expected_state_id is not None:
            filter_query["current_state_id"] = expected_state_id

        result = self._incidents.find_one_and_update(
            filter_query,
            {"$set": updates, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER
        )

        if result is None:
            if expected_state_id is not None:
                exists = self._incidents.find_one({"incident_id": incident_id}, {"current_state_id": 1})
                if exists:
                    raise ConcurrencyError(
                        f"Incident {incident_id} was modified concurrently. Please refresh and try again.",
                        details={
                            "expected_state_id": expected_state_id,
                            "actual_state_id": exists.get("current_state_id"),
                        }
                    )
            raise IncidentNotFoundError(f"Incident {incident_id} not found")

        logger.debug(
            f"Updated incident fields: {sorted(updates)}",
            extra={"incident_id": incident_id}
        )
        return Incident.model_validate(_strip_id(result))

    def next_record_number(self, record_type: RecordType, year: int) -> str:
        """Allocate the next human-readable number for a record type and year"""
        prefix = RECORD_NUMBER_PREFIXES.get(record_type, RECORD_NUMBER_PREFIXES[RecordType.INCIDENT])
        counter = self._counters.find_one_and_update(
            {"_id": f"record_number:{prefix}:{year}"},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        return format_record_number(prefix, year, counter["seq"])

    # =========================================================================
    # Transition History
    # =========================================================================

    def create_transition_history(self, history: TransitionHistory) -> TransitionHistory:
        """Append a transition history row"""
        doc = history.model_dump()
        doc["_id"] = history.history_id
        self._history.insert_one(doc)
        return history

    def list_transition_history(self, incident_id: str) -> List[TransitionHistory]:
        """Transition history for an incident, newest first"""
        cursor = self._history.find({"incident_id": incident_id}).sort("transitioned_at", DESCENDING)
        return [TransitionHistory.model_validate(_strip_id(doc)) for doc in cursor]

    def link_attachments_to_transition(
        self,
        incident_id: str,
        attachment_ids: List[str],
        history_id: str
    ) -> int:
        """Point existing attachments of the incident at a history row"""
        if not attachment_ids:
            return 0
        result = self._attachments.update_many(
            {"incident_id": incident_id, "attachment_id": {"$in": attachment_ids}},
            {"$set": {"transition_history_id": history_id}}
        )
        return result.modified_count

    # =========================================================================
    # Comments
    # =========================================================================

    def create_comment(self, comment: IncidentComment) -> IncidentComment:
        """Create a comment"""
        doc = comment.model_dump()
        doc["_id"] = comment.comment_id
        self._comments.insert_one(doc)
        return comment

    def get_comment(self, comment_id: str) -> Optional[IncidentComment]:
        """Get comment by ID"""
        doc = self._comments.find_one({"comment_id": comment_id})
        return IncidentComment.model_validate(_strip_id(doc)) if doc else None

    def list_comments(self, incident_id: str, include_internal: bool = True) -> List[IncidentComment]:
        """Comments of an incident in creation order"""
        query: Dict[str, Any] = {"incident_id": incident_id}
        if not include_internal:
            query["is_internal"] = False
        cursor = self._comments.find(query).sort("created_at", ASCENDING)
        return [IncidentComment.model_validate(_strip_id(doc)) for doc in cursor]

    def update_comment(self, comment_id: str, content: str) -> IncidentComment:
        """Replace comment content"""
        result = self._comments.find_one_and_update(
            {"comment_id": comment_id},
            {"$set": {"content": content, "updated_at": datetime.now(timezone.utc)}},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise CommentNotFoundError(f"Comment {comment_id} not found")
        return IncidentComment.model_validate(_strip_id(result))

    def delete_comment(self, comment_id: str) -> None:
        """Delete a comment"""
        result = self._comments.delete_one({"comment_id": comment_id})
        if result.deleted_count == 0:
            raise CommentNotFoundError(f"Comment {comment_id} not found")

    # =========================================================================
    # Attachments
    # =========================================================================

    def create_attachment(self, attachment: IncidentAttachment) -> IncidentAttachment:
        """Record attachment metadata"""
        doc = attachment.model_dump()
        doc["_id"] = attachment.attachment_id
        self._attachments.insert_one(doc)
        return attachment

    def get_attachment(self, attachment_id: str) -> Optional[IncidentAttachment]:
        """Get attachment by ID"""
        doc = self._attachments.find_one({"attachment_id": attachment_id})
        return IncidentAttachment.model_validate(_strip_id(doc)) if doc else None

    def list_attachments(self, incident_id: str) -> List[IncidentAttachment]:
        """Attachments of an incident"""
        cursor = self._attachments.find({"incident_id": incident_id}).sort("created_at", ASCENDING)
        return [IncidentAttachment.model_validate(_strip_id(doc)) for doc in cursor]

    def delete_attachment(self, attachment_id: str) -> None:
        """Delete attachment metadata"""
        result = self._attachments.delete_one({"attachment_id": attachment_id})
        if result.deleted_count == 0:
            raise AttachmentNotFoundError(f"Attachment {attachment_id} not found")

    # =========================================================================
    # Feedback
    # =========================================================================

    def create_feedback(self, feedback: IncidentFeedback) -> IncidentFeedback:
        """Record feedback"""
        doc = feedback.model_dump()
        doc["_id"] = feedback.feedback_id
        self._feedback.insert_one(doc)
        return feedback

    def list_feedback(self, incident_id: str) -> List[IncidentFeedback]:
        """Feedback rows of an incident"""
        cursor = self._feedback.find({"incident_id": incident_id}).sort("created_at", ASCENDING)
        return [IncidentFeedback.model_validate(_strip_id(doc)) for doc in cursor]

    # =========================================================================
    # SLA
    # =========================================================================

    def _terminal_state_ids(self) -> List[str]:
        cursor = self._states.find({"state_type": StateType.TERMINAL.value}, {"state_id": 1})
        return [doc["state_id"] for doc in cursor]

    def mark_sla_breached(self, now: datetime) -> int:
        """
        Flag every overdue, unflagged, non-terminal incident as breached.

        Already-breached incidents never match, so repeated calls are no-ops.
        """
        result = self._incidents.update_many(
            {
                "sla_deadline": {"$ne": None, "$lt": now},
                "sla_breached": False,
                "current_state_id": {"$nin": self._terminal_state_ids()},
            },
            {"$set": {"sla_breached": True}}
        )
        return result.modified_count

    def get_sla_breached_incidents(self, now: Optional[datetime] = None, limit: int = 100) -> List[Incident]:
        """Incidents flagged breached or already past an unflagged deadline"""
        now = now or datetime.now(timezone.utc)
        cursor = self._incidents.find({
            "$or": [
                {"sla_breached": True},
                {"sla_deadline": {"$ne": None, "$lt": now}, "sla_breached": False},
            ]
        }).sort("sla_deadline", ASCENDING).limit(limit)
        return [Incident.model_validate(_strip_id(doc)) for doc in cursor]

    def get_stats(self, workflow_id: Optional[str] = None) -> IncidentStats:
        """Aggregate counts by state and state type"""
        match: Dict[str, Any] = {}
        if workflow_id:
            match["workflow_id"] = workflow_id

        pipeline = [
            {"$match": match},
            {"$group": {"_id": "$current_state_id", "count": {"$sum": 1}}},
        ]
        counts = {row["_id"]: row["count"] for row in self._incidents.aggregate(pipeline)}
        states = {
            doc["state_id"]: doc
            for doc in self._states.find({"state_id": {"$in": list(counts)}})
        }

        stats = IncidentStats(
            total=sum(counts.values()),
            sla_breached=self._incidents.count_documents({**match, "sla_breached": True}),
        )
        for state_id, count in counts.items():
            state = states.get(state_id, {})
            stats.by_state[state.get("name", state_id)] = stats.by_state.get(state.get("name", state_id), 0) + count
            if state.get("state_type") == StateType.INITIAL.value:
                stats.open += count
            elif state.get("state_type") == StateType.NORMAL.value:
                stats.in_progress += count
        return stats
