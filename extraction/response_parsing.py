"""
Parsing of AI replies.

Models frequently wrap the requested JSON in markdown fences or a sentence of
prose. These helpers strip that wrapping and parse the payload:
- parse_product_array(): the extraction reply, a JSON array of product objects
  (an object with a "products" array is accepted too).
- parse_score(): the pairwise-comparison reply, a single float in [0, 1].

A reply that still is not JSON after unwrapping is an ExtractionFormatError,
never an empty result.
"""

from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional

from domain.errors import ExtractionFormatError

_FENCE = re.compile(r"```(?:json)?\s*(.*?)\s*```", flags=re.DOTALL | re.IGNORECASE)
_TRAILING_COMMA = re.compile(r",\s*([}\]])")
_SCORE = re.compile(r"(?<![\d.])(?:0(?:\.\d+)?|1(?:\.0+)?|\.\d+)(?!\.?\d)")


def _extract_json_from_text(text: str) -> str:
    """Extract the outermost JSON array (or object) from a reply that may include markdown or prose."""
    text = (text or "").strip()

    if "```" in text:
        match = _FENCE.search(text)
        if match:
            text = match.group(1).strip()
        else:
            text = re.sub(r"```(?:json)?", "", text, flags=re.IGNORECASE).strip()

    start = text.find("[")
    end = text.rfind("]")
    if start != -1 and end > start:
        return text[start : end + 1]

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        return text[start : end + 1]

    return text


def _loads_with_repair(json_text: str) -> Any:
    try:
        return json.loads(json_text)
    except json.JSONDecodeError as e:
        repaired = _TRAILING_COMMA.sub(r"\1", json_text)
        if repaired != json_text:
            try:
                return json.loads(repaired)
            except json.JSONDecodeError:
                pass
        raise ExtractionFormatError(
            f"AI reply is not valid JSON (position {e.pos}: {e.msg}). "
            f"First 300 chars: {json_text[:300]!r}"
        ) from e


def parse_product_array(raw_response: str) -> List[Dict[str, Any]]:
    """Parse the extraction reply into a list of product dicts."""
    if not raw_response or not raw_response.strip():
        raise ExtractionFormatError("AI returned an empty response")

    parsed = _loads_with_repair(_extract_json_from_text(raw_response))

    if isinstance(parsed, dict) and isinstance(parsed.get("products"), list):
        parsed = parsed["products"]

    if not isinstance(parsed, list):
        raise ExtractionFormatError(
            f"AI reply is not a JSON array of products (got {type(parsed).__name__})"
        )

    return [item for item in parsed if isinstance(item, dict)]


def parse_score(raw_response: str) -> Optional[float]:
    """Return the first number in [0, 1] found in the reply, or None."""
    if not raw_response:
        return None
    match = _SCORE.search(raw_response.strip())
    if not match:
        return None
    return min(1.0, max(0.0, float(match.group(0))))
