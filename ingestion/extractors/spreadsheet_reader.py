"""
Spreadsheet reader: uploaded bytes -> header row + data rows
"""

import io
import math
from datetime import date, datetime
from pathlib import PurePath
from typing import Any, List
import pandas as pd
import numpy as np
from schemas.records import SheetGrid
from core.exceptions import SchemaError
import logging

logger = logging.getLogger(__name__)

EXCEL_ENGINES = {
    ".xlsx": "openpyxl",
    ".xls": "xlrd",
}


def read_spreadsheet(content: bytes, file_name: str) -> SheetGrid:
    """
    Read the first worksheet of an .xlsx/.xls/.csv upload.

    The first row is the header row. Cells are converted to JSON-safe values
    (NaN -> None, timestamps -> ISO strings, numpy scalars -> Python scalars)
    so the grid can be stored as-is in a report's raw_data. Blank rows in the
    middle of the sheet are kept so row numbers match the original sheet;
    trailing blank rows are dropped.

    Raises:
        SchemaError: Unsupported extension or unreadable file
    """
    extension = PurePath(file_name).suffix.lower()

    try:
        if extension == ".csv":
            df = pd.read_csv(
                io.BytesIO(content),
                header=None,
                dtype=object,
                keep_default_na=False,
                skip_blank_lines=False,
            )
        elif extension in EXCEL_ENGINES:
            df = pd.read_excel(
                io.BytesIO(content),
                sheet_name=0,
                header=None,
                dtype=object,
                engine=EXCEL_ENGINES[extension],
            )
        else:
            raise SchemaError(
                f"Unsupported spreadsheet type '{extension or file_name}'",
                context={"file_name": file_name}
            )
    except SchemaError:
        raise
    except Exception as e:
        raise SchemaError(
            f"Could not read spreadsheet '{file_name}'",
            context={"file_name": file_name},
            original_exception=e
        )

    grid = [[_json_safe(cell) for cell in row] for row in df.itertuples(index=False, name=None)]

    while grid and _is_blank_row(grid[-1]):
        grid.pop()

    if not grid:
        return SheetGrid()

    headers = ["" if cell is None else str(cell).strip() for cell in grid[0]]
    logger.info(f"Read '{file_name}': {len(headers)} columns, {len(grid) - 1} data rows")
    return SheetGrid(headers=headers, rows=grid[1:])


def _is_blank_row(row: List[Any]) -> bool:
    return all(cell is None or (isinstance(cell, str) and not cell.strip()) for cell in row)


def _json_safe(value: Any) -> Any:
    """Convert a pandas/numpy cell into a JSON-serializable Python value."""
    if value is None:
        return None
    if isinstance(value, (pd.Timestamp, datetime, date)):
        if pd.isna(value):
            return None
        return value.isoformat()
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float):
        if math.isnan(value) or math.isinf(value):
            return None
        return value
    if isinstance(value, (bool, int, str)):
        return value
    if value is pd.NaT:
        return None
    return str(value)
