from sqlalchemy import Column, String, Text, Integer, Boolean, DateTime, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from models.base import Base, JSONType, MediaType, enum_column_type


class ProcessedMediaItem(Base):
    """
    One link extracted from one report row.

    Purpose:
    - Audit trail of how every submitted link was resolved
    - URL fingerprints for cross-report duplicate detection
    - Input for re-scoring after admin approval

    Design:
    - Immutable: a reprocess creates a new set, rows are never updated
    - position keeps the report's link order
    - metadata holds the HTTP status code and duplicate sub-reasons
    """
    __tablename__ = "processed_media_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    report_id = Column(Uuid, ForeignKey("reports.id"), nullable=False, index=True)

    position = Column(Integer, nullable=False, default=0)
    row_number = Column(Integer, nullable=True)

    # Link
    original_url = Column(Text, nullable=False)
    final_url = Column(Text, nullable=True)
    normalized_url = Column(Text, nullable=True)
    media_type = Column(enum_column_type(MediaType, "media_type"), nullable=False, index=True)

    # Validation
    content_hash = Column(String(64), nullable=True, index=True)  # SHA-256 hex
    is_valid = Column(Boolean, nullable=False, default=False)
    is_duplicate = Column(Boolean, nullable=False, default=False)
    validation_error = Column(Text, nullable=True)
    extra_metadata = Column("metadata", JSONType, nullable=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    # Relationships
    report = relationship("Report", back_populates="media_items")

    __table_args__ = (
        Index("idx_media_items_normalized_url", "normalized_url"),
        Index("idx_media_items_report_position", "report_id", "position"),
    )
