from sqlalchemy import Column, String, Text, Float, Boolean, DateTime, ForeignKey, Index, Uuid
from sqlalchemy.orm import relationship
from datetime import datetime
import uuid
from models.base import Base, CalculationType, ScoringPeriod, enum_column_type


class KPIDefinition(Base):
    """
    A scoring dimension managed by administrators.

    Design:
    - indicator_type selects which uploads the KPI scores
    - dimension narrows it to one media type (media family) or one
      indicator name (target/realization family); NULL means everything
    - weight_percentage is this KPI's share of 100 across all active KPIs
    - Reports copy the computed values, they never reference a KPI row, so
      later edits do not rewrite historical scores
    """
    __tablename__ = "kpi_definitions"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)

    code = Column(String(100), nullable=False, unique=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    indicator_type = Column(String(100), nullable=False, index=True)
    dimension = Column(String(100), nullable=True)

    calculation_type = Column(enum_column_type(CalculationType, "kpi_calculation_type"), nullable=False)
    target_value = Column(Float, nullable=False, default=0)
    monthly_target = Column(Float, nullable=True)
    semester_target = Column(Float, nullable=True)
    weight_percentage = Column(Float, nullable=False, default=0)
    unit = Column(String(50), nullable=True)
    scoring_period = Column(
        enum_column_type(ScoringPeriod, "kpi_scoring_period"),
        nullable=False,
        default=ScoringPeriod.MONTHLY
    )

    is_active = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    scoring_ranges = relationship(
        "ScoringRange",
        back_populates="kpi",
        cascade="all, delete-orphan",
        order_by="ScoringRange.min_percentage"
    )


class ScoringRange(Base):
    """
    One achievement-percentage band of a KPI.

    min_percentage is inclusive, max_percentage exclusive. A NULL
    max_percentage marks the unbounded top band.
    """
    __tablename__ = "kpi_scoring_ranges"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    kpi_id = Column(Uuid, ForeignKey("kpi_definitions.id"), nullable=False)

    min_percentage = Column(Float, nullable=False)
    max_percentage = Column(Float, nullable=True)
    score_value = Column(Float, nullable=False)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    kpi = relationship("KPIDefinition", back_populates="scoring_ranges")

    __table_args__ = (
        Index("idx_scoring_ranges_kpi", "kpi_id", "min_percentage"),
    )
