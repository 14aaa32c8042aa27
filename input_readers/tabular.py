"""
Bounded textual rendering of tabular documents.

Spreadsheet/CSV rows are serialized row-major as JSON and capped at a fixed
character budget before they are sent to the AI, which bounds extraction cost
regardless of the document size.
"""

from __future__ import annotations

import json
from datetime import date, datetime, time
from typing import Any, List

import pandas as pd

from config import MAX_TEXT_CHARS_BEFORE_LLM


def _sanitize_for_json(obj: Any) -> Any:
    """Convert non-JSON-serializable values (datetime, pandas NA/NaT) into JSON-safe types."""
    if isinstance(obj, (datetime, date, time)):
        return obj.isoformat()
    if isinstance(obj, dict):
        return {k: _sanitize_for_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [_sanitize_for_json(item) for item in obj]
    if obj is None:
        return None
    try:
        if pd.isna(obj):
            return None
    except (TypeError, ValueError):
        pass
    if isinstance(obj, (str, int, float, bool)):
        return obj
    return str(obj)


def rows_to_text(rows: List[List[Any]], max_chars: int = MAX_TEXT_CHARS_BEFORE_LLM) -> str:
    """Serialize rows row-major (one JSON array per line) and truncate to `max_chars`."""
    lines = [json.dumps(_sanitize_for_json(row), ensure_ascii=False) for row in rows]
    text = "\n".join(lines)
    if len(text) > max_chars:
        return text[:max_chars]
    return text
