"""
RawRecord schema definition.

This TypedDict is the model-agnostic structure every extraction path
(spreadsheet, CSV, image, PDF) maps the AI output into before anything is
persisted. It mirrors the JSON objects the extraction instruction asks for,
with types already normalized: the name is trimmed and never empty, the price
is a non-negative float and the confidence is an int in [0, 100].

Optional fields stay None when the supplier document does not provide them.
"""

from __future__ import annotations

from typing import Optional, TypedDict


class RawRecord(TypedDict, total=False):
    code: Optional[str]
    name: str
    packaging: Optional[str]
    unit: Optional[str]
    brand: Optional[str]

    price: float
    confidence: int

    source_row: Optional[int]
