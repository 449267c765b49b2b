"""
SQLAlchemy ORM models for database tables.

Models:
    base: Declarative base, JSON column type and shared enums
          (ReportStatus, MediaType, IndicatorFamily, CalculationType, ScoringPeriod)
    report: Uploaded report and its lifecycle state
    media_item: Per-link processing results
    kpi: KPI definitions and their scoring ranges
    notification: Outbound notifications for submitters

Usage:
    from models.report import Report
    from models.base import ReportStatus

Relationships:
    - Report → ProcessedMediaItem (one-to-many)
    - KPIDefinition → ScoringRange (one-to-many)
    - Report → Notification (one-to-many, via related_report_id)
"""

from models.base import Base, ReportStatus, MediaType, IndicatorFamily, CalculationType, ScoringPeriod
from models.report import Report
from models.media_item import ProcessedMediaItem
from models.kpi import KPIDefinition, ScoringRange
from models.notification import Notification

__all__ = [
    "Base",
    "ReportStatus",
    "MediaType",
    "IndicatorFamily",
    "CalculationType",
    "ScoringPeriod",
    "Report",
    "ProcessedMediaItem",
    "KPIDefinition",
    "ScoringRange",
    "Notification",
]
