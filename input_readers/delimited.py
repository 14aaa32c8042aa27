"""
CSV READER
----------
Reads CSV documents into raw row-major lists (all cells as strings).
Rows may have different lengths; supplier exports often do.
"""

from __future__ import annotations

import csv
from io import StringIO
from typing import List

ENCODINGS = ("utf-8-sig", "cp1252", "latin-1")


def decode_text(content: bytes) -> str:
    """Decode document bytes trying the encodings supplier exports usually come in."""
    for encoding in ENCODINGS:
        try:
            return content.decode(encoding)
        except UnicodeDecodeError:
            continue
    return content.decode("utf-8", errors="replace")


def read_csv(content: bytes) -> List[List[str]]:
    """
    Read CSV bytes; the delimiter is sniffed (comma, semicolon, tab or pipe).

    Raises:
        ValueError: If the content cannot be parsed as CSV
    """
    text = decode_text(content)
    if not text.strip():
        return []

    try:
        delimiter = csv.Sniffer().sniff(text[:4096], delimiters=",;\t|").delimiter
    except csv.Error:
        delimiter = ","

    rows: List[List[str]] = []
    try:
        for values in csv.reader(StringIO(text), delimiter=delimiter):
            row = [v.strip() for v in values]
            while row and row[-1] == "":
                row.pop()
            if row:
                rows.append(row)
    except csv.Error as e:
        raise ValueError(f"Cannot read CSV file: {e}") from e

    return rows
