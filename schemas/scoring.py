"""
Pydantic schemas for score results.

These are what a report stores in processed_data: computed values rather than
KPI references, so later KPI edits leave historical scores untouched.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from models.base import CalculationType


class KPIScore(BaseModel):
    """Score of one KPI dimension."""
    kpi_code: str
    kpi_name: str
    dimension: Optional[str] = None
    calculation_type: CalculationType
    target: float
    actual: float
    achievement_percentage: float
    score_value: float
    weight_percentage: float
    weighted_score: float
    unit: Optional[str] = None

    class Config:
        use_enum_values = True


class ScoreResult(BaseModel):
    """Per-KPI breakdown and the report's aggregate weighted score."""
    indicator_type: str
    breakdown: List[KPIScore] = Field(default_factory=list)
    aggregate_score: float = 0.0
    usable_units: int = 0
    total_units: int = 0
