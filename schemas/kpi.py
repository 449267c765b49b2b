"""
Pydantic schemas for KPI configuration with validation
"""

from pydantic import BaseModel, Field, validator
from typing import Optional, List
from models.base import CalculationType, ScoringPeriod
from core.exceptions import ScoringConfigError


class ScoringRangeConfig(BaseModel):
    """
    One achievement band: min_percentage <= p < max_percentage.

    max_percentage None is the unbounded top band.
    """
    min_percentage: float
    max_percentage: Optional[float] = None
    score_value: float = Field(..., ge=0)

    def contains(self, percentage: float) -> bool:
        if percentage < self.min_percentage:
            return False
        return self.max_percentage is None or percentage < self.max_percentage

    class Config:
        from_attributes = True


class KPIConfig(BaseModel):
    """KPI definition as used by the scorer."""
    code: str = Field(..., min_length=1, max_length=100)
    name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    indicator_type: str
    dimension: Optional[str] = None

    calculation_type: CalculationType
    target_value: float = Field(0, ge=0)
    monthly_target: Optional[float] = Field(None, ge=0)
    semester_target: Optional[float] = Field(None, ge=0)
    weight_percentage: float = Field(0, ge=0, le=100)
    unit: Optional[str] = None
    scoring_period: ScoringPeriod = ScoringPeriod.MONTHLY
    is_active: bool = True

    scoring_ranges: List[ScoringRangeConfig] = Field(default_factory=list)

    @validator("code")
    def clean_code(cls, v):
        v = v.strip().upper()
        if not v:
            raise ValueError("KPI code cannot be empty after stripping")
        return v

    @validator("dimension", pre=True)
    def blank_dimension_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    def effective_target(self) -> float:
        """Target for the KPI's scoring period, falling back to target_value."""
        if self.scoring_period == ScoringPeriod.SEMESTER and self.semester_target is not None:
            return self.semester_target
        if self.scoring_period == ScoringPeriod.MONTHLY and self.monthly_target is not None:
            return self.monthly_target
        return self.target_value

    def sorted_ranges(self) -> List[ScoringRangeConfig]:
        return sorted(self.scoring_ranges, key=lambda r: r.min_percentage)

    class Config:
        from_attributes = True


# ============================================================================
# Configuration validation
# ============================================================================

def validate_scoring_ranges(kpi: KPIConfig) -> None:
    """
    Check that a KPI's bands form one contiguous partition starting at 0.

    Raises:
        ScoringConfigError: No bands, min >= max, overlap, gap, a non-final
            unbounded band, or a lowest band that does not start at 0
    """
    ranges = kpi.sorted_ranges()
    context = {"kpi_code": kpi.code}

    if not ranges:
        raise ScoringConfigError(f"KPI {kpi.code} has no scoring ranges", context=context)

    if ranges[0].min_percentage != 0:
        raise ScoringConfigError(
            f"KPI {kpi.code}: lowest scoring range starts at {ranges[0].min_percentage}, expected 0",
            context=context
        )

    for index, band in enumerate(ranges):
        if band.max_percentage is not None and band.min_percentage >= band.max_percentage:
            raise ScoringConfigError(
                f"KPI {kpi.code}: scoring range [{band.min_percentage}, {band.max_percentage}) is empty",
                context=context
            )

        if index == len(ranges) - 1:
            break

        following = ranges[index + 1]
        if band.max_percentage is None or band.max_percentage > following.min_percentage:
            raise ScoringConfigError(
                f"KPI {kpi.code}: scoring ranges overlap at {following.min_percentage}",
                context=context
            )
        if band.max_percentage < following.min_percentage:
            raise ScoringConfigError(
                f"KPI {kpi.code}: gap in scoring ranges between "
                f"{band.max_percentage} and {following.min_percentage}",
                context=context
            )


def validate_weights(kpis: List[KPIConfig]) -> None:
    """
    Active KPI weights may not add up to more than 100.

    Raises:
        ScoringConfigError: Total active weight above 100
    """
    total = sum(k.weight_percentage for k in kpis if k.is_active)
    if round(total, 6) > 100:
        raise ScoringConfigError(
            f"Active KPI weights sum to {total:g}, which exceeds 100",
            context={"kpi_codes": [k.code for k in kpis if k.is_active]}
        )


def validate_catalog(kpis: List[KPIConfig]) -> None:
    """Validate every active KPI's ranges, then the weight total."""
    for kpi in kpis:
        if kpi.is_active:
            validate_scoring_ranges(kpi)
    validate_weights(kpis)
