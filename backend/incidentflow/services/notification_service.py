"""Notification Service - In-app notifications and outbound email queue

Delivery itself (SMTP, SMS) is handled by an external sender reading the
email outbox; this service only records what must be sent.
"""
from typing import List, Optional

from ..domain.models import NotificationRecord, EmailMessage
from ..repositories.notification_repo import NotificationRepository
from ..utils.idgen import generate_notification_id
from ..utils.time import utc_now
from ..utils.logger import get_logger

logger = get_logger(__name__)


class NotificationService:
    """Service for recording notifications"""

    def __init__(self, repo: Optional[NotificationRepository] = None):
        self.repo = repo or NotificationRepository()

    def notify_users(
        self,
        user_ids: List[str],
        title: str,
        message: str,
        incident_id: Optional[str] = None
    ) -> List[NotificationRecord]:
        """Create one in-app notification per recipient"""
        if not user_ids:
            logger.info("No notification recipients resolved", extra={"incident_id": incident_id})
            return []

        now = utc_now()
        records = [
            NotificationRecord(
                notification_id=generate_notification_id(),
                recipient_user_id=user_id,
                incident_id=incident_id,
                title=title,
                message=message,
                created_at=now
            )
            for user_id in user_ids
        ]
        return self.repo.create_notifications_bulk(records)

    def enqueue_email(
        self,
        recipients: List[str],
        subject: str,
        body: str,
        is_html: bool = False,
        incident_id: Optional[str] = None
    ) -> Optional[EmailMessage]:
        """Queue an email in the outbox"""
        if not recipients:
            logger.info("No email recipients resolved", extra={"incident_id": incident_id})
            return None

        message = EmailMessage(
            notification_id=generate_notification_id(),
            recipients=recipients,
            subject=subject,
            body=body,
            is_html=is_html,
            incident_id=incident_id,
            created_at=utc_now()
        )
        return self.repo.enqueue_email(message)
