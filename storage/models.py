"""
Relational model of the price-list engine (SQLAlchemy declarative ORM).

Tables:
- price_lists: one uploaded supplier document and its processing state.
- list_records: one extracted product line, owned by exactly one price list.
- catalog_entries: company-scoped master products, the join key across lists.
- comparison_runs / comparison_results: n-way comparisons and their per-product rows.
- ai_usage: one row per AI-backed processing attempt, for cost accounting.

Record-level invariants (confidence range, non-negative price, non-empty
normalized name) are enforced with ORM validators, so an invalid ListRecord
can never be flushed.
"""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship, validates

from domain.enums import ComparisonState, ProcessingState

Base = declarative_base()


def generate_id() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PriceList(Base):
    __tablename__ = "price_lists"

    id = Column(String(36), primary_key=True, default=generate_id)
    company_id = Column(String(64), nullable=False, index=True)
    supplier_name = Column(String(255), nullable=False)
    list_date = Column(Date, nullable=True)
    currency = Column(String(8), nullable=False, default="USD")
    exchange_rate = Column(Float, nullable=True)
    source_file_ref = Column(String(512), nullable=False)
    source_format = Column(String(16), nullable=False)
    processing_state = Column(String(16), nullable=False, default=ProcessingState.PENDING.value, index=True)
    extracted_product_count = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    records = relationship(
        "ListRecord",
        back_populates="price_list",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ListRecord.source_row",
    )

    def __repr__(self) -> str:
        return f"<PriceList {self.id} {self.supplier_name!r} {self.processing_state}>"


class ListRecord(Base):
    __tablename__ = "list_records"

    id = Column(String(36), primary_key=True, default=generate_id)
    list_id = Column(String(36), ForeignKey("price_lists.id", ondelete="CASCADE"), nullable=False, index=True)
    source_row = Column(Integer, nullable=True)
    original_code = Column(String(128), nullable=True)
    original_name = Column(String(512), nullable=False)
    normalized_name = Column(String(512), nullable=False)
    packaging_description = Column(String(255), nullable=True)
    unit_of_measure = Column(String(64), nullable=True)
    unit_price = Column(Float, nullable=False, default=0.0)
    price_currency = Column(String(8), nullable=False, default="USD")
    brand = Column(String(255), nullable=True)
    extraction_confidence = Column(Integer, nullable=False, default=85)
    catalog_match_id = Column(
        String(36), ForeignKey("catalog_entries.id", ondelete="SET NULL"), nullable=True, index=True
    )

    price_list = relationship("PriceList", back_populates="records")
    catalog_entry = relationship("CatalogEntry")

    @validates("extraction_confidence")
    def _validate_confidence(self, key, value):
        if value is None or not 0 <= int(value) <= 100:
            raise ValueError(f"extraction_confidence must be within [0, 100], got {value!r}")
        return int(value)

    @validates("unit_price")
    def _validate_price(self, key, value):
        if value is None or float(value) < 0:
            raise ValueError(f"unit_price must be >= 0, got {value!r}")
        return float(value)

    @validates("normalized_name")
    def _validate_normalized_name(self, key, value):
        if not value or not str(value).strip():
            raise ValueError("normalized_name must not be empty")
        return value

    def __repr__(self) -> str:
        return f"<ListRecord {self.id} {self.original_name!r} {self.unit_price}>"


class CatalogEntry(Base):
    __tablename__ = "catalog_entries"
    __table_args__ = (UniqueConstraint("company_id", "code", name="uq_catalog_company_code"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    company_id = Column(String(64), nullable=False, index=True)
    code = Column(String(128), nullable=False)
    canonical_name = Column(String(512), nullable=False)
    alternate_names = Column(JSON, nullable=False, default=list)
    packaging_description = Column(String(255), nullable=True)
    unit_of_measure = Column(String(64), nullable=False, default="UNIDAD")
    category = Column(String(128), nullable=False, default="GENERAL")
    brand = Column(String(255), nullable=True)
    active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<CatalogEntry {self.code} {self.canonical_name!r}>"


class ComparisonRun(Base):
    __tablename__ = "comparison_runs"

    id = Column(String(36), primary_key=True, default=generate_id)
    company_id = Column(String(64), nullable=False, index=True)
    list_ids = Column(JSON, nullable=False)
    total_products_compared = Column(Integer, nullable=False, default=0)
    products_matched = Column(Integer, nullable=False, default=0)
    match_rate = Column(Float, nullable=False, default=0.0)
    state = Column(String(16), nullable=False, default=ComparisonState.PENDING.value)
    error_message = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    results = relationship(
        "ComparisonResult",
        back_populates="run",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class ComparisonResult(Base):
    __tablename__ = "comparison_results"

    id = Column(String(36), primary_key=True, default=generate_id)
    comparison_run_id = Column(
        String(36), ForeignKey("comparison_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    catalog_entry_id = Column(String(36), nullable=True)
    product_name = Column(String(512), nullable=False)
    packaging_description = Column(String(255), nullable=True)
    # [{supplier_name, list_id, record_id, price, currency, normalized_price_usd, confidence_percent}]
    per_supplier_prices = Column(JSON, nullable=False)
    # {supplier_name, list_id, amount, price, currency}; amount is in USD
    best_price = Column(JSON, nullable=False)
    spread_percent = Column(Float, nullable=False, default=0.0)
    anomaly_flag = Column(String(32), nullable=True)

    run = relationship("ComparisonRun", back_populates="results")

    @validates("per_supplier_prices")
    def _validate_prices(self, key, value):
        if not value:
            raise ValueError("per_supplier_prices must contain at least one entry")
        return value


class AIUsage(Base):
    __tablename__ = "ai_usage"

    id = Column(String(36), primary_key=True, default=generate_id)
    list_id = Column(String(36), nullable=True, index=True)
    operation = Column(String(32), nullable=False)
    model = Column(String(64), nullable=False)
    tokens_used = Column(Integer, nullable=False, default=0)
    estimated_cost = Column(Float, nullable=False, default=0.0)
    elapsed_ms = Column(Integer, nullable=False, default=0)
    success = Column(Boolean, nullable=False, default=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
