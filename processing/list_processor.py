"""
Per-list ingestion pipeline.

upload_list() validates and stores a supplier document and creates its
PENDING PriceList. process_list() drives it through

    PENDING/ERROR -> PROCESSING -> COMPLETED
                     PROCESSING -> ERROR

download -> extract -> persist ListRecords -> match each record against the
catalog -> record AI usage -> COMPLETED. The PROCESSING claim is an optimistic
compare-and-set persisted before any external call, so a crash leaves an
observable PROCESSING list and two callers can never process the same list.
Any failure after the claim moves the list to ERROR and is re-raised as
ProcessingError; records persisted before the failure are not rolled back.
"""

from __future__ import annotations

import logging
import time
from datetime import date
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError

from config import DEFAULT_MODEL, MAX_FILE_SIZE_MB
from domain.canonical import RawRecord
from domain.enums import REPROCESSABLE_STATES, AIOperation, Currency, ProcessingState, SourceFormat
from domain.errors import (
    ConversionNeededError,
    InputValidationError,
    InvalidStateError,
    NotFoundError,
    PriceListError,
    ProcessingError,
)
from domain.results import ConversionNeeded, MatcherUnavailable, MatchFound, ProcessingOutcome, ProcessingSummary
from extraction.gateway import ExtractionGateway
from extraction.usage import estimate_cost
from fields.normalization import clamp_confidence, normalize_name
from matching.engine import MatchingEngine
from storage.document_store import DocumentStore
from storage.models import AIUsage, ListRecord, PriceList
from storage.repository import PriceRepository

logger = logging.getLogger(__name__)


def _parse_list_date(value) -> date:
    if value is None or value == "":
        return date.today()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip())
    except ValueError as e:
        raise InputValidationError(f"list_date must be an ISO date (YYYY-MM-DD), got {value!r}") from e


def _parse_exchange_rate(value) -> Optional[float]:
    if value is None:
        return None
    try:
        rate = float(value)
    except (TypeError, ValueError) as e:
        raise InputValidationError(f"exchange_rate must be a number, got {value!r}") from e
    if not rate > 0:
        raise InputValidationError(f"exchange_rate must be > 0, got {value!r}")
    return rate


def _model_id(model) -> str:
    return getattr(model, "value", None) or str(model)


class ListProcessor:
    def __init__(
        self,
        repository: PriceRepository,
        document_store: DocumentStore,
        gateway: ExtractionGateway,
        matcher: MatchingEngine,
    ):
        self.repository = repository
        self.document_store = document_store
        self.gateway = gateway
        self.matcher = matcher

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------
    def upload_list(
        self,
        company_id: str,
        filename: str,
        content: bytes,
        supplier_name: str,
        list_date=None,
        currency: str = Currency.USD.value,
        exchange_rate: Optional[float] = None,
    ) -> str:
        """Validate, store the document and create a PENDING price list; returns its id."""
        if not company_id or not str(company_id).strip():
            raise InputValidationError("company_id is required")
        if not supplier_name or not str(supplier_name).strip():
            raise InputValidationError("supplier_name is required")
        if not filename:
            raise InputValidationError("filename is required")
        if not content:
            raise InputValidationError(f"File {filename!r} is empty")
        if len(content) > MAX_FILE_SIZE_MB * 1024 * 1024:
            raise InputValidationError(f"File {filename!r} exceeds the {MAX_FILE_SIZE_MB} MB limit")

        fmt = SourceFormat.from_filename(filename)
        if fmt is None:
            allowed = ", ".join(f.value for f in SourceFormat)
            raise InputValidationError(f"Unsupported file format {filename!r}. Allowed: {allowed}")

        try:
            currency_value = Currency(str(currency).strip().upper())
        except ValueError as e:
            allowed = ", ".join(c.value for c in Currency)
            raise InputValidationError(f"Unsupported currency {currency!r}. Allowed: {allowed}") from e

        rate = _parse_exchange_rate(exchange_rate)

        parsed_date = _parse_list_date(list_date)

        path_ref = self.document_store.upload(company_id, filename, content)
        try:
            price_list = self.repository.add_price_list(
                PriceList(
                    company_id=company_id,
                    supplier_name=str(supplier_name).strip(),
                    list_date=parsed_date,
                    currency=currency_value.value,
                    exchange_rate=rate,
                    source_file_ref=path_ref,
                    source_format=fmt.value,
                    processing_state=ProcessingState.PENDING.value,
                    extracted_product_count=0,
                )
            )
        except SQLAlchemyError:
            self.document_store.delete(path_ref)
            raise

        logger.info("Uploaded list %s (%s, %s) for company %s", price_list.id, supplier_name, fmt.value, company_id)
        return price_list.id

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------
    def process_list(self, list_id: str, model=DEFAULT_MODEL, company_id: Optional[str] = None) -> ProcessingOutcome:
        model_id = _model_id(model)

        price_list = self.repository.get_price_list(list_id, company_id)
        if price_list is None:
            raise NotFoundError(f"Price list {list_id} not found")

        if price_list.processing_state not in {s.value for s in REPROCESSABLE_STATES}:
            raise InvalidStateError(
                f"Price list {list_id} is {price_list.processing_state}; only PENDING or ERROR lists can be processed"
            )

        fmt = SourceFormat(price_list.source_format)
        if self.gateway.requires_conversion(fmt):
            logger.info("List %s needs conversion (%s) before processing", list_id, fmt.value)
            return ConversionNeeded(
                list_id=list_id,
                source_format=fmt.value,
                message=str(ConversionNeededError(fmt.value)),
            )

        if not self.repository.claim_for_processing(list_id):
            raise InvalidStateError(f"Price list {list_id} is already being processed")
        logger.info("List %s: PROCESSING (model=%s)", list_id, model_id)

        started = time.monotonic()
        tokens_used = 0
        try:
            document = self.document_store.download(price_list.source_file_ref)
            extraction = self.gateway.extract(document, fmt, model_id)
            tokens_used = extraction.tokens_used

            removed = self.repository.delete_records(list_id)
            if removed:
                logger.info("List %s: removed %d records from an earlier attempt", list_id, removed)

            records = self.repository.add_records(self._to_list_records(price_list, extraction.records))
            matched = self._match_records(records, price_list.company_id)

            elapsed_ms = int((time.monotonic() - started) * 1000)
            cost = estimate_cost(model_id, tokens_used)
            self.repository.add_usage(
                AIUsage(
                    list_id=list_id,
                    operation=AIOperation.EXTRACTION.value,
                    model=model_id,
                    tokens_used=tokens_used,
                    estimated_cost=cost,
                    elapsed_ms=elapsed_ms,
                    success=True,
                )
            )
            self.repository.update_price_list(
                list_id,
                processing_state=ProcessingState.COMPLETED.value,
                extracted_product_count=len(records),
                error_message=None,
            )
        except Exception as e:
            elapsed_ms = int((time.monotonic() - started) * 1000)
            logger.exception("List %s: processing failed", list_id)
            self._mark_failed(list_id, model_id, tokens_used, elapsed_ms, e)
            raise ProcessingError(f"Processing of price list {list_id} failed: {e}") from e

        avg_confidence = (
            round(sum(r.extraction_confidence for r in records) / len(records), 2) if records else 0.0
        )
        logger.info(
            "List %s: COMPLETED (%d records, %d matched, %d ms)", list_id, len(records), matched, elapsed_ms
        )
        return ProcessingSummary(
            list_id=list_id,
            extracted=len(records),
            matched=matched,
            avg_confidence=avg_confidence,
            elapsed_ms=elapsed_ms,
            estimated_cost=cost,
            tokens_used=tokens_used,
        )

    def _to_list_records(self, price_list: PriceList, raw_records: List[RawRecord]) -> List[ListRecord]:
        records: List[ListRecord] = []
        for raw in raw_records:
            normalized = normalize_name(raw.get("name"))
            if not normalized:
                logger.warning("List %s: dropping %r, nothing left after normalization", price_list.id, raw.get("name"))
                continue
            records.append(
                ListRecord(
                    list_id=price_list.id,
                    source_row=raw.get("source_row"),
                    original_code=raw.get("code"),
                    original_name=raw["name"],
                    normalized_name=normalized,
                    packaging_description=raw.get("packaging"),
                    unit_of_measure=raw.get("unit"),
                    unit_price=raw.get("price") or 0.0,
                    price_currency=price_list.currency,
                    brand=raw.get("brand"),
                    extraction_confidence=clamp_confidence(raw.get("confidence")),
                )
            )
        return records

    def _match_records(self, records: List[ListRecord], company_id: str) -> int:
        matched = 0
        for record in records:
            outcome = self.matcher.match(record, company_id)
            if isinstance(outcome, MatchFound):
                try:
                    self.matcher.link(record, outcome.entry)
                except (SQLAlchemyError, PriceListError) as e:
                    logger.warning("Could not link record %s to %s: %s", record.id, outcome.entry.id, e)
                    continue
                matched += 1
            elif isinstance(outcome, MatcherUnavailable):
                logger.warning("Matcher unavailable for record %s: %s", record.id, outcome.reason)
        return matched

    def _mark_failed(self, list_id: str, model: str, tokens_used: int, elapsed_ms: int, error: Exception) -> None:
        message = str(error) or type(error).__name__
        try:
            self.repository.update_price_list(
                list_id,
                processing_state=ProcessingState.ERROR.value,
                error_message=message[:2000],
            )
            self.repository.add_usage(
                AIUsage(
                    list_id=list_id,
                    operation=AIOperation.EXTRACTION.value,
                    model=model,
                    tokens_used=tokens_used,
                    estimated_cost=estimate_cost(model, tokens_used),
                    elapsed_ms=elapsed_ms,
                    success=False,
                    error=message[:2000],
                )
            )
        except SQLAlchemyError:
            logger.exception("List %s: could not record the failure", list_id)

    # ------------------------------------------------------------------
    # Queries and maintenance
    # ------------------------------------------------------------------
    def get_list(self, company_id: str, list_id: str) -> PriceList:
        price_list = self.repository.get_price_list(list_id, company_id)
        if price_list is None:
            raise NotFoundError(f"Price list {list_id} not found")
        return price_list

    def list_lists(self, company_id: str, state=None, supplier: Optional[str] = None) -> List[PriceList]:
        return self.repository.list_price_lists(company_id, state=state, supplier=supplier)

    def get_records(self, company_id: str, list_id: str) -> List[ListRecord]:
        self.get_list(company_id, list_id)
        return self.repository.records_for_list(list_id)

    def delete_list(self, company_id: str, list_id: str) -> None:
        """Delete a list, its records and its source document."""
        price_list = self.get_list(company_id, list_id)
        self.document_store.delete(price_list.source_file_ref)
        self.repository.delete_price_list(list_id)
        logger.info("Deleted list %s (%s)", list_id, price_list.supplier_name)

    def cleanup_orphans(self, company_id: str) -> int:
        """Delete lists whose source document no longer exists in the document store."""
        removed = 0
        for price_list in self.repository.list_price_lists(company_id):
            if self.document_store.exists(price_list.source_file_ref):
                continue
            self.repository.delete_price_list(price_list.id)
            removed += 1
            logger.warning("Removed orphaned list %s (missing %s)", price_list.id, price_list.source_file_ref)
        return removed
