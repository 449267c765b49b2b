from sqlalchemy import Column, String, Text, Boolean, DateTime, ForeignKey, Uuid
from datetime import datetime
import uuid
from models.base import Base


class Notification(Base):
    """
    Outbound event for a submitter.

    Written by the pipeline as a sink; reading and marking as read belong to
    the dashboard.
    """
    __tablename__ = "notifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(String(64), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    related_report_id = Column(Uuid, ForeignKey("reports.id"), nullable=True, index=True)
    is_read = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
