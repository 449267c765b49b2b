"""
Column mapping and row extraction for uploaded sheets.

Sheets arrive with hand-typed headers ("Link Berita Media Online",
"link berita online ", "Media Online (link)") that have to be mapped onto an
indicator's canonical fields. Matching runs in two phases:

1. Exact, case-insensitive alias match for every field
2. Case-insensitive substring containment (either direction) for fields still
   unmatched, over headers no other field has claimed

Within a phase the first matching alias wins, so alias order is the
tie-break. Both functions are pure.
"""

from typing import Any, Dict, List, Optional, Sequence
from ingestion.indicators import IndicatorConfig
from schemas.records import ExtractedRow
from core.exceptions import SchemaError
import logging

logger = logging.getLogger(__name__)

# Shorter strings are not trusted for substring containment ("No" in "Monitoring")
MIN_SUBSTRING_LENGTH = 3

# Header row is sheet row 1
FIRST_DATA_ROW_NUMBER = 2


def _normalize_header(value: Any) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split()).lower()


def _contains_either_way(header: str, alias: str) -> bool:
    if len(header) >= MIN_SUBSTRING_LENGTH and header in alias:
        return True
    return len(alias) >= MIN_SUBSTRING_LENGTH and alias in header


def map_columns(headers: Sequence[Any], indicator: IndicatorConfig) -> Dict[str, int]:
    """
    Map canonical field names to column indexes.

    Args:
        headers: Header row cells in sheet order
        indicator: Indicator whose fields are being located

    Returns:
        {field name: column index} for every field that was found
    """
    normalized = [_normalize_header(h) for h in headers]
    mapping: Dict[str, int] = {}
    claimed = set()

    # Phase 1: exact
    for spec in indicator.fields:
        for alias in spec.aliases:
            wanted = _normalize_header(alias)
            index = _first_index(normalized, claimed, lambda h: h == wanted)
            if index is not None:
                mapping[spec.name] = index
                claimed.add(index)
                break

    # Phase 2: substring over unclaimed headers
    for spec in indicator.fields:
        if spec.name in mapping:
            continue
        for alias in spec.aliases:
            wanted = _normalize_header(alias)
            index = _first_index(normalized, claimed, lambda h: _contains_either_way(h, wanted))
            if index is not None:
                mapping[spec.name] = index
                claimed.add(index)
                break

    return mapping


def _first_index(headers: List[str], claimed: set, predicate) -> Optional[int]:
    for index, header in enumerate(headers):
        if index in claimed or not header:
            continue
        if predicate(header):
            return index
    return None


def extract(
    headers: Sequence[Any],
    data_rows: Sequence[Sequence[Any]],
    indicator: IndicatorConfig
) -> List[ExtractedRow]:
    """
    Extract one ExtractedRow per data row.

    Raises:
        SchemaError: Missing or empty header row, no data rows, or fewer than
            indicator.min_fields canonical fields found
    """
    expected = indicator.field_names
    base_context = {
        "indicator_type": indicator.key,
        "expected_fields": expected,
        "min_fields": indicator.min_fields,
    }

    if not headers or not any(_normalize_header(h) for h in headers):
        raise SchemaError(
            f"Sheet has no header row; expected columns for: {', '.join(expected)}",
            context={**base_context, "found_fields": []}
        )

    if not data_rows:
        raise SchemaError(
            "Sheet has a header row but no data rows",
            context={**base_context, "found_fields": []}
        )

    mapping = map_columns(headers, indicator)
    found = [name for name in expected if name in mapping]

    if len(found) < indicator.min_fields:
        missing = [name for name in expected if name not in mapping]
        raise SchemaError(
            f"Sheet matches {len(found)} of {len(expected)} columns for '{indicator.key}' "
            f"(at least {indicator.min_fields} required). "
            f"Found: {', '.join(found) or 'none'}. Missing: {', '.join(missing)}",
            context={
                **base_context,
                "found_fields": found,
                "missing_fields": missing,
                "headers": [str(h) for h in headers if h is not None],
            }
        )

    logger.info(
        f"Mapped {len(found)}/{len(expected)} fields for '{indicator.key}': "
        + ", ".join(f"{name}->{headers[mapping[name]]!r}" for name in found)
    )

    mapped_indexes = set(mapping.values())
    unmapped = [
        (index, str(header).strip())
        for index, header in enumerate(headers)
        if index not in mapped_indexes and _normalize_header(header)
    ]

    rows: List[ExtractedRow] = []
    for offset, row in enumerate(data_rows):
        cells = list(row)
        # Blank rows keep their row number but produce no record
        if not any(_normalize_header(cell) for cell in cells):
            continue
        rows.append(ExtractedRow(
            row_number=offset + FIRST_DATA_ROW_NUMBER,
            fields={name: _cell(cells, index) for name, index in mapping.items()},
            additional_data={header: _cell(cells, index) for index, header in unmapped},
        ))

    if not rows:
        raise SchemaError(
            "Sheet has a header row but every data row is blank",
            context={**base_context, "found_fields": found}
        )

    return rows


def _cell(cells: List[Any], index: int) -> Any:
    return cells[index] if index < len(cells) else None
