"""
AI-based extraction into the RawRecord format.

This module provides a single normalized interface to convert supplier price
lists from:
- Spreadsheets / CSV (structured mode: bounded row-major text)
- Images (multimodal mode: inline base64 media)
- PDF (multimodal mode when enabled, otherwise "conversion needed")

into a list of RawRecord dictionaries plus an approximate token count.

Core responsibilities:
- Build the extraction prompt and call the AI capability.
- Parse the reply (fences/prose stripped); unparseable replies are fatal.
- Convert product dicts into RawRecord with type normalization, dropping
  nameless rows and clamping confidence.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from domain.canonical import RawRecord
from domain.enums import AIModel, SourceFormat
from domain.errors import ConversionNeededError, ExtractionFormatError
from domain.results import ExtractionResult
from fields.normalization import clamp_confidence, to_float
from input_readers import read_csv, read_excel, read_legacy_excel, rows_to_text, to_inline_media

from .llm_client import TextGenerator
from .prompts import build_extraction_prompt
from .response_parsing import parse_product_array
from .usage import estimate_tokens

logger = logging.getLogger(__name__)


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _dict_to_raw_record(product: Dict[str, Any], source_row: int) -> Optional[RawRecord]:
    """Convert a model-produced product dict into a typed RawRecord; None when unusable."""
    name = _clean_text(product.get("name"))
    if not name:
        return None

    price = to_float(product.get("price"))
    if price is None:
        price = 0.0
    if price < 0:
        logger.warning("Dropping row %d (%r): negative price %s", source_row, name, price)
        return None

    return RawRecord(
        code=_clean_text(product.get("code")),
        name=name,
        packaging=_clean_text(product.get("packaging")),
        unit=_clean_text(product.get("unit")),
        brand=_clean_text(product.get("brand")),
        price=price,
        confidence=clamp_confidence(product.get("confidence")),
        source_row=source_row,
    )


def to_raw_records(products: List[Dict[str, Any]]) -> List[RawRecord]:
    records: List[RawRecord] = []
    for idx, product in enumerate(products, start=1):
        record = _dict_to_raw_record(product, idx)
        if record is not None:
            records.append(record)

    dropped = len(products) - len(records)
    if dropped:
        logger.info("Dropped %d of %d extracted rows without a usable name/price", dropped, len(products))
    return records


class ExtractionGateway:
    """Turns a raw document into RawRecords through the AI capability."""

    def __init__(self, generator: TextGenerator):
        self.generator = generator

    def requires_conversion(self, fmt: SourceFormat) -> bool:
        """True when the format cannot be sent to the AI and must be resubmitted as an image."""
        return fmt == SourceFormat.PDF and not getattr(self.generator, "supports_pdf", False)

    def extract(self, document: bytes, fmt: SourceFormat, model: AIModel | str) -> ExtractionResult:
        fmt = SourceFormat(fmt)
        model_id = model.value if isinstance(model, AIModel) else str(model)

        if not document:
            raise ExtractionFormatError("Document is empty")

        if self.requires_conversion(fmt):
            raise ConversionNeededError(fmt.value)

        if fmt.is_tabular:
            return self._extract_structured(document, fmt, model_id)
        return self._extract_multimodal(document, fmt, model_id)

    # ------------------------------------------------------------------
    # Structured mode
    # ------------------------------------------------------------------
    def _read_rows(self, document: bytes, fmt: SourceFormat) -> List[List[Any]]:
        try:
            if fmt == SourceFormat.CSV:
                return read_csv(document)
            if fmt == SourceFormat.XLS:
                return read_legacy_excel(document)
            return read_excel(document)
        except ValueError as e:
            raise ExtractionFormatError(f"Cannot read {fmt.value.upper()} document: {e}") from e

    def _extract_structured(self, document: bytes, fmt: SourceFormat, model: str) -> ExtractionResult:
        rows = self._read_rows(document, fmt)
        if not rows:
            raise ExtractionFormatError(f"{fmt.value.upper()} document has no rows")

        content = rows_to_text(rows)
        prompt = build_extraction_prompt(fmt.value, content)

        logger.info("Structured extraction: %d rows, %d chars, model=%s", len(rows), len(content), model)
        raw_output = self.generator.generate(prompt, model)

        records = to_raw_records(parse_product_array(raw_output))
        return ExtractionResult(records=records, tokens_used=estimate_tokens(prompt, raw_output))

    # ------------------------------------------------------------------
    # Multimodal mode
    # ------------------------------------------------------------------
    def _extract_multimodal(self, document: bytes, fmt: SourceFormat, model: str) -> ExtractionResult:
        try:
            media = to_inline_media(document, fmt.mime_type)
        except ValueError as e:
            raise ExtractionFormatError(str(e)) from e

        prompt = build_extraction_prompt(fmt.value)

        logger.info("Multimodal extraction: %s, %d bytes, model=%s", fmt.value, len(document), model)
        raw_output = self.generator.generate(prompt, model, media=media)

        records = to_raw_records(parse_product_array(raw_output))
        return ExtractionResult(
            records=records,
            tokens_used=estimate_tokens(prompt, raw_output, has_media=True),
        )

