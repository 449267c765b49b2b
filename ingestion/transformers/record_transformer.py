"""
Transform extracted rows into typed domain records
"""

import re
from typing import Any, Dict, List, Optional
from ingestion.indicators import IndicatorConfig
from ingestion.extractors.link_resolver import is_cloud_storage_link
from schemas.records import (
    ExtractedRow,
    LinkRef,
    MediaLinkRecord,
    TargetRealizationRecord,
    DomainRecord,
)
from models.base import IndicatorFamily
import logging

logger = logging.getLogger(__name__)

ABSOLUTE_URL_PATTERN = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)

# "1.500" is one thousand five hundred in Indonesian sheets
THOUSANDS_PATTERN = re.compile(r"^-?[1-9]\d{0,2}\.\d{3}$")


class RecordTransformer:
    """
    Turn ExtractedRows into MediaLinkRecords or TargetRealizationRecords.

    Handles:
    - Link collection per row, in field order
    - Numeric parsing ("1.500", "75%", "" -> 0)
    - Percentage with a zero-target guard
    - Soft URL validation (warning only, HTTP resolution is authoritative)
    """

    def __init__(self, indicator: IndicatorConfig):
        self.indicator = indicator

    def transform(self, rows: List[ExtractedRow]) -> List[DomainRecord]:
        """Transform rows in order. Output has one record per input row."""
        if self.indicator.family == IndicatorFamily.TARGET_REALIZATION:
            records = [self._transform_target(row) for row in rows]
        else:
            records = [self._transform_media(row) for row in rows]

        link_count = sum(len(r.links) for r in records)
        logger.info(
            f"Transformed {len(records)} rows for '{self.indicator.key}' ({link_count} links)"
        )
        return records

    def _transform_media(self, row: ExtractedRow) -> MediaLinkRecord:
        links = []
        fields = {}

        for spec in self.indicator.fields:
            if spec.name not in row.fields:
                continue
            value = row.fields[spec.name]
            if spec.is_link:
                link = self._link(value, spec.name, spec.media_type, row.row_number)
                if link:
                    links.append(link)
            elif spec.numeric:
                fields[spec.name] = self._parse_float(value)
            else:
                fields[spec.name] = self._clean_text(value)

        return MediaLinkRecord(
            row_number=row.row_number,
            links=links,
            fields=fields,
            additional_data=row.additional_data,
        )

    def _transform_target(self, row: ExtractedRow) -> TargetRealizationRecord:
        target = self._parse_float(row.fields.get("target"))
        realisasi = self._parse_float(row.fields.get("realisasi"))

        links = []
        for spec in self.indicator.link_fields:
            link = self._link(row.fields.get(spec.name), spec.name, spec.media_type, row.row_number)
            if link:
                links.append(link)

        return TargetRealizationRecord(
            row_number=row.row_number,
            indikator=self._clean_text(row.fields.get("indikator")) or "",
            target=target,
            realisasi=realisasi,
            percentage=self.compute_percentage(realisasi, target),
            links=links,
            additional_data=row.additional_data,
        )

    def _link(self, value: Any, field: str, media_type, row_number: int) -> Optional[LinkRef]:
        text = self._clean_text(value)
        if not text:
            return None

        if not ABSOLUTE_URL_PATTERN.match(text) and not is_cloud_storage_link(text):
            logger.warning(
                f"Row {row_number}, {field}: '{text}' does not look like a URL; "
                f"keeping it for resolution"
            )

        return LinkRef(url=text, media_type=media_type, field=field)

    @staticmethod
    def compute_percentage(realisasi: float, target: float) -> float:
        """realisasi / target * 100, or 0 when the target is not positive."""
        if target <= 0:
            return 0.0
        return realisasi / target * 100

    @staticmethod
    def _clean_text(value: Any) -> Optional[str]:
        if value is None:
            return None
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        text = str(value).strip()
        return text or None

    @staticmethod
    def _parse_float(value: Any) -> float:
        """Safely parse a number; missing or non-numeric values become 0."""
        if value is None or isinstance(value, bool):
            return 0.0
        if isinstance(value, (int, float)):
            return float(value)

        text = str(value).strip().replace("%", "").replace(" ", "")
        if not text:
            return 0.0

        # "1.500,5" / "1,500.5" / "1.500" -> 1500.5 / 1500.5 / 1500
        if "," in text and "." in text:
            if text.rfind(",") > text.rfind("."):
                text = text.replace(".", "").replace(",", ".")
            else:
                text = text.replace(",", "")
        elif "," in text:
            decimals = text.rpartition(",")[2]
            if text.count(",") == 1 and len(decimals) != 3:
                text = text.replace(",", ".")
            else:
                text = text.replace(",", "")
        elif text.count(".") > 1 or THOUSANDS_PATTERN.match(text):
            text = text.replace(".", "")

        try:
            number = float(text)
        except (ValueError, TypeError):
            return 0.0
        if number != number or number in (float("inf"), float("-inf")):
            return 0.0
        return number


def transform(rows: List[ExtractedRow], indicator: IndicatorConfig) -> List[DomainRecord]:
    """Module-level shortcut for RecordTransformer(indicator).transform(rows)."""
    return RecordTransformer(indicator).transform(rows)
