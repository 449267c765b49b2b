"""
KPI scoring.

For every active KPI of the report's indicator:

    actual       -> from usable units (valid, non-duplicate)
    achievement  -> actual / target * 100   (target 0 -> 0%)
    score_value  -> band with min <= achievement < max
    weighted     -> score_value * weight_percentage / 100

The report's aggregate score is the sum of weighted scores, rounded to 2
decimals. A KPI whose own dimension is empty still goes through the band
lookup (0% lands in the lowest band). Only a report without a single usable
unit in any dimension scores 0 on every KPI; it still reaches admin review.

Range policy:
- NULL max_percentage is the unbounded top band
- Above a bounded top band: clamp to the top band
- Below the lowest band or inside a gap: ScoringConfigError
"""

from typing import List, Optional, Sequence
from ingestion.indicators import IndicatorConfig
from schemas.kpi import KPIConfig, validate_scoring_ranges, validate_weights
from schemas.records import DomainRecord, ProcessedItem, TargetRealizationRecord
from schemas.scoring import KPIScore, ScoreResult
from models.base import CalculationType, IndicatorFamily
from core.exceptions import ScoringConfigError
import logging

logger = logging.getLogger(__name__)


def lookup_score(kpi: KPIConfig, achievement_percentage: float) -> float:
    """
    Score value of the band containing achievement_percentage.

    Raises:
        ScoringConfigError: Percentage below the lowest band or inside a gap
    """
    ranges = kpi.sorted_ranges()
    if not ranges:
        raise ScoringConfigError(f"KPI {kpi.code} has no scoring ranges", context={"kpi_code": kpi.code})

    for band in ranges:
        if band.contains(achievement_percentage):
            return band.score_value

    top = ranges[-1]
    if top.max_percentage is not None and achievement_percentage >= top.max_percentage:
        logger.warning(
            f"KPI {kpi.code}: {achievement_percentage:.2f}% is above the top band "
            f"(max {top.max_percentage:g}); clamping to score {top.score_value:g}"
        )
        return top.score_value

    raise ScoringConfigError(
        f"KPI {kpi.code}: no scoring range covers {achievement_percentage:.2f}%",
        context={"kpi_code": kpi.code, "achievement_percentage": achievement_percentage}
    )


class Scorer:
    """Compute per-KPI scores and the aggregate score of one report."""

    def score(
        self,
        indicator: IndicatorConfig,
        records: Sequence[DomainRecord],
        items: Sequence[ProcessedItem],
        kpis: Sequence[KPIConfig]
    ) -> ScoreResult:
        """
        Raises:
            ScoringConfigError: No active KPI for the indicator, invalid
                ranges, weights above 100, or an uncovered percentage
        """
        active = [k for k in kpis if k.is_active and k.indicator_type == indicator.key]
        if not active:
            raise ScoringConfigError(
                f"No active KPI configured for indicator '{indicator.key}'",
                context={"indicator_type": indicator.key}
            )

        for kpi in active:
            validate_scoring_ranges(kpi)
        validate_weights(active)

        actuals = []
        usable_total = 0
        unit_total = 0

        for kpi in active:
            if indicator.family == IndicatorFamily.TARGET_REALIZATION:
                actual, usable, total = self._actual_target(kpi, records, items)
            else:
                actual, usable, total = self._actual_media(kpi, items)
            actuals.append((kpi, actual))
            usable_total += usable
            unit_total += total

        # Band lookup applies per KPI unless the whole report has no usable unit
        has_usable = usable_total > 0
        breakdown = [self._build(kpi, actual, has_usable) for kpi, actual in actuals]

        aggregate = round(sum(s.weighted_score for s in breakdown), 2)

        logger.info(
            f"Scored '{indicator.key}': aggregate={aggregate} from {len(breakdown)} KPI(s), "
            f"{usable_total}/{unit_total} usable units"
        )
        return ScoreResult(
            indicator_type=indicator.key,
            breakdown=breakdown,
            aggregate_score=aggregate,
            usable_units=usable_total,
            total_units=unit_total,
        )

    # ------------------------------------------------------------------
    # Media-links family: units are processed links
    # ------------------------------------------------------------------

    def _actual_media(self, kpi: KPIConfig, items: Sequence[ProcessedItem]):
        in_dimension = [
            i for i in items
            if kpi.dimension is None or _value(i.media_type) == kpi.dimension
        ]
        usable = [i for i in in_dimension if i.is_usable]

        if kpi.calculation_type == CalculationType.PERCENTAGE:
            actual = len(usable) / len(in_dimension) * 100 if in_dimension else 0.0
        else:
            actual = float(len(usable))

        return actual, len(usable), len(in_dimension)

    # ------------------------------------------------------------------
    # Target/realization family: units are rows
    # ------------------------------------------------------------------

    def _actual_target(self, kpi: KPIConfig, records: Sequence[DomainRecord], items: Sequence[ProcessedItem]):
        rows = [
            r for r in records
            if isinstance(r, TargetRealizationRecord)
            and (kpi.dimension is None or r.indikator.strip().lower() == kpi.dimension.strip().lower())
        ]

        items_by_row = {}
        for item in items:
            items_by_row.setdefault(item.row_number, []).append(item)

        usable = [
            r for r in rows
            if all(i.is_usable for i in items_by_row.get(r.row_number, []))
        ]

        if kpi.calculation_type == CalculationType.COUNT:
            actual = float(len(usable))
        elif kpi.calculation_type == CalculationType.SUM:
            actual = sum(r.realisasi for r in usable)
        else:
            total_target = sum(r.target for r in usable)
            actual = sum(r.realisasi for r in usable) / total_target * 100 if total_target > 0 else 0.0

        return actual, len(usable), len(rows)

    # ------------------------------------------------------------------

    def _build(self, kpi: KPIConfig, actual: float, has_usable: bool) -> KPIScore:
        target = kpi.effective_target()

        if kpi.calculation_type == CalculationType.PERCENTAGE:
            achievement = actual
        else:
            achievement = actual / target * 100 if target > 0 else 0.0

        score_value = lookup_score(kpi, achievement) if has_usable else 0.0
        weighted = score_value * kpi.weight_percentage / 100

        return KPIScore(
            kpi_code=kpi.code,
            kpi_name=kpi.name,
            dimension=kpi.dimension,
            calculation_type=kpi.calculation_type,
            target=target,
            actual=actual,
            achievement_percentage=round(achievement, 4),
            score_value=score_value,
            weight_percentage=kpi.weight_percentage,
            weighted_score=weighted,
            unit=kpi.unit,
        )


def _value(enum_or_str) -> Optional[str]:
    return getattr(enum_or_str, "value", enum_or_str)
