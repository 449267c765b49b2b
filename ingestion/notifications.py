"""
Notification sink for report lifecycle events.

Notifications are fire-and-forget: a failed write is logged and never
changes the outcome of the transition it describes. Callers await each
notify() in transition order, which keeps notifications ordered.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional
from sqlalchemy.exc import SQLAlchemyError
from models.notification import Notification
from ingestion.loaders.report_store import as_report_id
import logging

logger = logging.getLogger(__name__)


class NotificationType:
    """Notification type keys understood by the dashboard"""
    REPORT_RECEIVED = "report_received"
    REPORT_PROCESSING = "report_processing"
    REPORT_COMPLETED = "report_completed"
    REPORT_ERROR = "report_error"
    REPORT_REJECTED = "report_rejected"
    REPORT_APPROVED = "report_approved"
    REPORT_SCORED = "report_scored"


class NotificationSink(ABC):
    @abstractmethod
    async def notify(
        self,
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        related_report_id: Optional[Any] = None
    ) -> None:
        pass


class DatabaseNotificationSink(NotificationSink):
    """Write notifications to the notifications table."""

    def __init__(self, session_factory):
        self.session_factory = session_factory

    async def notify(
        self,
        user_id: str,
        notification_type: str,
        title: str,
        message: str,
        related_report_id: Optional[Any] = None
    ) -> None:
        try:
            async with self.session_factory() as session:
                session.add(Notification(
                    user_id=user_id,
                    type=notification_type,
                    title=title,
                    message=message,
                    related_report_id=as_report_id(related_report_id) if related_report_id else None,
                ))
                await session.commit()
            logger.debug(f"Notified {user_id}: {notification_type} ({title})")
        except SQLAlchemyError as e:
            logger.error(
                f"Failed to write {notification_type} notification for user {user_id}: {str(e)}",
                extra={"error_context": {
                    "user_id": user_id,
                    "type": notification_type,
                    "related_report_id": str(related_report_id),
                    "error_type": type(e).__name__,
                }}
            )
