"""
EXCEL READER
------------
Reads spreadsheet documents into raw row-major lists with NO transformation.
Supplier price lists rarely have a clean header row, so every non-empty row is
returned as-is (headers included) and the AI decides which columns matter.
"""

from __future__ import annotations

from io import BytesIO
from typing import Any, List

import pandas as pd
from openpyxl import load_workbook


def read_excel(content: bytes, sheet_name: str | None = None) -> List[List[Any]]:
    """
    Read an .xlsx document (first sheet unless `sheet_name` is given).

    Args:
        content: Raw document bytes
        sheet_name: Optional sheet name

    Returns:
        List of rows, each a list of cell values (trailing empty cells trimmed)

    Raises:
        ValueError: If the bytes are not a readable workbook
    """
    try:
        wb = load_workbook(BytesIO(content), data_only=True, read_only=True)
    except Exception as e:
        raise ValueError(f"Cannot read Excel file (is it corrupted or wrong format?): {e}") from e

    try:
        ws = wb[sheet_name] if sheet_name else wb.worksheets[0]

        rows: List[List[Any]] = []
        for values in ws.iter_rows(values_only=True):
            row = list(values)
            while row and row[-1] in (None, ""):
                row.pop()
            if row:
                rows.append(row)
    finally:
        wb.close()

    return rows


def read_legacy_excel(content: bytes) -> List[List[Any]]:
    """Read a legacy .xls document through pandas (needs the `xlrd` engine installed)."""
    try:
        df = pd.read_excel(BytesIO(content), header=None, sheet_name=0, engine="xlrd")
    except ImportError as e:
        raise ValueError("Reading .xls files requires the 'xlrd' package (install the 'xls' extra)") from e
    except Exception as e:
        raise ValueError(f"Cannot read Excel file (is it corrupted or wrong format?): {e}") from e

    df = df.dropna(how="all")
    return [[None if pd.isna(v) else v for v in row] for row in df.itertuples(index=False, name=None)]
