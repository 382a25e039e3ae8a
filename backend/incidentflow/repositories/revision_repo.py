"""Revision Repository - Append-only incident revision log"""
from typing import Any, Dict, List, Optional
from datetime import datetime
from pymongo.collection import Collection
from pymongo import DESCENDING, ReturnDocument

from .mongo_client import get_collection
from ..domain.models import IncidentRevision
from ..domain.enums import RevisionActionType
from ..utils.logger import get_logger

logger = get_logger(__name__)


class RevisionRepository:
    """Repository for incident revisions (immutable - no update/delete operations)"""

    def __init__(self):
        self._revisions: Collection = get_collection("incident_revisions")
        self._counters: Collection = get_collection("counters")

    def next_revision_number(self, incident_id: str) -> int:
        """
        Allocate the next revision number for an incident.

        A single $inc on a per-incident counter document, so concurrent
        writers always receive distinct, increasing numbers.
        """
        counter = self._counters.find_one_and_update(
            {"_id": f"revision:{incident_id}"},
            {"$inc": {"seq": 1}},
            upsert=True,
            return_document=ReturnDocument.AFTER
        )
        return counter["seq"]

    def create_revision(self, revision: IncidentRevision) -> IncidentRevision:
        """Append a revision"""
        doc = revision.model_dump()
        doc["_id"] = revision.revision_id
        self._revisions.insert_one(doc)
        logger.debug(
            f"Revision {revision.revision_number}: {revision.action_type.value}",
            extra={"incident_id": revision.incident_id, "revision_number": revision.revision_number}
        )
        return revision

    def list_revisions(
        self,
        incident_id: str,
        action_type: Optional[RevisionActionType] = None,
        performed_by_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        skip: int = 0,
        limit: int = 50
    ) -> List[IncidentRevision]:
        """Revisions for an incident, newest first"""
        query: Dict[str, Any] = {"incident_id": incident_id}
        if action_type:
            query["action_type"] = action_type.value
        if performed_by_id:
            query["performed_by_id"] = performed_by_id
        if start or end:
            query["created_at"] = {}
            if start:
                query["created_at"]["$gte"] = start
            if end:
                query["created_at"]["$lte"] = end

        cursor = self._revisions.find(query).sort("revision_number", DESCENDING).skip(skip).limit(limit)
        revisions = []
        for doc in cursor:
            doc.pop("_id", None)
            revisions.append(IncidentRevision.model_validate(doc))
        return revisions

    def count_revisions(self, incident_id: str) -> int:
        """Number of revisions for an incident"""
        return self._revisions.count_documents({"incident_id": incident_id})
