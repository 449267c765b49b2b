"""
Pydantic schemas for data validation and serialization.

This package defines Pydantic models for the records that flow through the
report pipeline and for the API request/response bodies:

Schemas:
    records: Extracted rows, domain records, link resolutions, fingerprints
        and duplicate findings
    kpi: KPI definitions, scoring ranges and their configuration checks
    scoring: Per-KPI scores and a report's aggregate score
    api: API endpoint request/response schemas

Usage:
    from schemas.records import MediaLinkRecord, ProcessedItem
    from schemas.kpi import KPIConfig, ScoringRangeConfig
    from schemas.api import ReportResponse

Example:
    # Stored records are rebuilt from their ``kind`` tag
    record = parse_record({"kind": "target_realization", "row_number": 2, "target": 10, "realisasi": 8})
    assert isinstance(record, TargetRealizationRecord)
"""

from schemas.records import ExtractedRow, MediaLinkRecord, TargetRealizationRecord, ProcessedItem
from schemas.kpi import KPIConfig, ScoringRangeConfig
from schemas.scoring import ScoreResult
from schemas.api import ReportResponse

__all__ = [
    "ExtractedRow",
    "MediaLinkRecord",
    "TargetRealizationRecord",
    "ProcessedItem",
    "KPIConfig",
    "ScoringRangeConfig",
    "ScoreResult",
    "ReportResponse",
]
