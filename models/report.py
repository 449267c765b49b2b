from sqlalchemy import Column, String, Text, Float, DateTime, Index, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from models.base import Base, JSONType, ReportStatus, enum_column_type


class Report(Base):
    """
    One spreadsheet upload and its journey through the scoring pipeline.

    Durable contract (read by dashboards and notifications):
    - status: lifecycle state, see ReportStatus
    - raw_data: upload metadata, parsed sheet grid and extracted row-records
    - processed_data: transformed records, link summary, duplicate findings,
      score breakdown
    - calculated_score: set only while pending_approval/approved/completed
    - rejection_reason: set only for rejected/system_rejected/failed
    - video_hashes: flat list of this report's content fingerprints, compared
      against every later report

    Lease columns (claim_token, claimed_at) make the queued -> processing
    transition an atomic conditional update and let a stale processing report
    be re-claimed after a worker crash.
    """
    __tablename__ = "reports"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    # Submission
    user_id = Column(String(64), nullable=False, index=True)
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=True)
    indicator_type = Column(String(100), nullable=False, index=True)

    # Lifecycle
    status = Column(
        enum_column_type(ReportStatus, "report_status"),
        default=ReportStatus.QUEUED,
        nullable=False,
        index=True
    )

    # Payloads
    raw_data = Column(JSONType, nullable=True)
    processed_data = Column(JSONType, nullable=True)
    calculated_score = Column(Float, nullable=True)
    rejection_reason = Column(Text, nullable=True)
    video_hashes = Column(JSONType, nullable=True)

    # Admin decision
    approved_by = Column(String(64), nullable=True)
    approval_note = Column(Text, nullable=True)
    approved_at = Column(DateTime, nullable=True)
    rejected_by = Column(String(64), nullable=True)
    rejected_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    # Worker lease
    claim_token = Column(String(64), nullable=True)
    claimed_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    media_items = relationship(
        "ProcessedMediaItem",
        back_populates="report",
        order_by="ProcessedMediaItem.position"
    )

    __table_args__ = (
        Index("idx_reports_status_created", "status", "created_at"),
    )
