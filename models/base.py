from sqlalchemy import JSON, Enum
from sqlalchemy.orm import declarative_base
from sqlalchemy.dialects.postgresql import JSONB
import enum

Base = declarative_base()

# JSONB on PostgreSQL, plain JSON elsewhere. Python None is stored as SQL NULL.
JSONType = JSON(none_as_null=True).with_variant(JSONB(none_as_null=True), "postgresql")


def enum_column_type(enum_cls, name: str) -> Enum:
    """Enum column storing member values ("pending_approval"), not member names."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


# ============================================================================
# ENUMS
# ============================================================================

class ReportStatus(str, enum.Enum):
    """Report lifecycle status"""
    QUEUED = "queued"
    PROCESSING = "processing"
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    SYSTEM_REJECTED = "system_rejected"
    FAILED = "failed"
    COMPLETED = "completed"


# Statuses that carry a candidate or final score
SCORED_STATUSES = frozenset({
    ReportStatus.PENDING_APPROVAL,
    ReportStatus.APPROVED,
    ReportStatus.COMPLETED,
})

TERMINAL_STATUSES = frozenset({
    ReportStatus.FAILED,
    ReportStatus.REJECTED,
    ReportStatus.SYSTEM_REJECTED,
    ReportStatus.COMPLETED,
})


class MediaType(str, enum.Enum):
    """Media channel a processed link belongs to"""
    ONLINE_NEWS = "online_news"
    SOCIAL_MEDIA = "social_media"
    RADIO = "radio"
    PRINT_MEDIA = "print_media"
    RUNNING_TEXT = "running_text"
    TV = "tv"
    VIDEO = "video"


class IndicatorFamily(str, enum.Enum):
    """Shape of the records an indicator produces"""
    MEDIA_LINKS = "media_links"
    TARGET_REALIZATION = "target_realization"


class CalculationType(str, enum.Enum):
    """How a KPI derives its actual value"""
    COUNT = "count"
    SUM = "sum"
    PERCENTAGE = "percentage"


class ScoringPeriod(str, enum.Enum):
    """Which target a KPI is measured against"""
    MONTHLY = "monthly"
    SEMESTER = "semester"
