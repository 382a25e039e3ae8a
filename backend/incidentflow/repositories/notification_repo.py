"""Notification Repository - In-app notifications and email outbox

Emails are written as PENDING rows; delivery is done by an external sender
that picks them up and marks them SENT or FAILED.
"""
from typing import List
from pymongo.collection import Collection
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from .mongo_client import get_collection
from ..domain.models import NotificationRecord, EmailMessage
from ..domain.enums import NotificationStatus
from ..domain.errors import NotFoundError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class NotificationRepository:
    """Repository for notification operations"""

    def __init__(self):
        self._notifications: Collection = get_collection("notifications")
        self._outbox: Collection = get_collection("email_outbox")

    # =========================================================================
    # In-app notifications
    # =========================================================================

    def create_notifications_bulk(self, notifications: List[NotificationRecord]) -> List[NotificationRecord]:
        """Create multiple in-app notifications"""
        if not notifications:
            return []

        docs = []
        for notification in notifications:
            doc = notification.model_dump()
            doc["_id"] = notification.notification_id
            docs.append(doc)

        self._notifications.insert_many(docs)
        logger.info(f"Created {len(notifications)} notifications")
        return notifications

    def list_for_user(self, user_id: str, unread_only: bool = False, limit: int = 50) -> List[NotificationRecord]:
        """Notifications for a user, newest first"""
        query = {"recipient_user_id": user_id}
        if unread_only:
            query["is_read"] = False
        cursor = self._notifications.find(query).sort("created_at", DESCENDING).limit(limit)
        return [NotificationRecord.model_validate({k: v for k, v in doc.items() if k != "_id"}) for doc in cursor]

    # =========================================================================
    # Email outbox
    # =========================================================================

    def enqueue_email(self, message: EmailMessage) -> EmailMessage:
        """Queue an email for delivery"""
        doc = message.model_dump()
        doc["_id"] = message.notification_id
        self._outbox.insert_one(doc)
        logger.info(
            f"Queued email to {len(message.recipients)} recipient(s)",
            extra={"incident_id": message.incident_id}
        )
        return message

    def get_pending_emails(self, limit: int = 50) -> List[EmailMessage]:
        """Oldest pending emails"""
        cursor = self._outbox.find(
            {"status": NotificationStatus.PENDING.value}
        ).sort("created_at", ASCENDING).limit(limit)
        return [EmailMessage.model_validate({k: v for k, v in doc.items() if k != "_id"}) for doc in cursor]

    def mark_email_status(self, notification_id: str, status: NotificationStatus) -> EmailMessage:
        """Record a delivery attempt"""
        result = self._outbox.find_one_and_update(
            {"notification_id": notification_id},
            {"$set": {"status": status.value}, "$inc": {"attempts": 1}},
            return_document=ReturnDocument.AFTER
        )
        if result is None:
            raise NotFoundError(f"Email {notification_id} not found")
        result.pop("_id", None)
        return EmailMessage.model_validate(result)
