"""
Company-scoped access to the relational store.

PriceRepository is the only place that talks SQL. Every read that can leak
data between companies takes the company id and filters on it. Each method
runs in its own short transaction and returns detached ORM objects
(`expire_on_commit=False`), so callers never hold a session across AI or
document-store calls.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy import delete, func, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from domain.enums import REPROCESSABLE_STATES, ProcessingState
from domain.errors import NotFoundError

from .database import create_db_engine, create_session_factory, session_scope
from .models import AIUsage, CatalogEntry, ComparisonResult, ComparisonRun, ListRecord, PriceList, utcnow

logger = logging.getLogger(__name__)


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min, tzinfo=timezone.utc)


class PriceRepository:
    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    @classmethod
    def from_url(cls, url: Optional[str] = None) -> "PriceRepository":
        engine: Engine = create_db_engine(url)
        return cls(create_session_factory(engine))

    def _session(self):
        return session_scope(self._session_factory)

    # ------------------------------------------------------------------
    # Price lists
    # ------------------------------------------------------------------
    def add_price_list(self, price_list: PriceList) -> PriceList:
        with self._session() as s:
            s.add(price_list)
        return price_list

    def get_price_list(self, list_id: str, company_id: Optional[str] = None) -> Optional[PriceList]:
        with self._session() as s:
            stmt = select(PriceList).where(PriceList.id == list_id)
            if company_id is not None:
                stmt = stmt.where(PriceList.company_id == company_id)
            return s.scalars(stmt).first()

    def get_price_lists(self, list_ids: Sequence[str]) -> Dict[str, PriceList]:
        with self._session() as s:
            rows = s.scalars(select(PriceList).where(PriceList.id.in_(list(list_ids)))).all()
            return {row.id: row for row in rows}

    def claim_for_processing(self, list_id: str) -> bool:
        """Compare-and-set PENDING|ERROR -> PROCESSING; False when another caller won."""
        with self._session() as s:
            result = s.execute(
                update(PriceList)
                .where(
                    PriceList.id == list_id,
                    PriceList.processing_state.in_([st.value for st in REPROCESSABLE_STATES]),
                )
                .values(
                    processing_state=ProcessingState.PROCESSING.value,
                    error_message=None,
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            return result.rowcount == 1

    def update_price_list(self, list_id: str, **values) -> None:
        values.setdefault("updated_at", utcnow())
        with self._session() as s:
            s.execute(
                update(PriceList)
                .where(PriceList.id == list_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )

    def list_price_lists(
        self,
        company_id: str,
        state: Optional[str] = None,
        supplier: Optional[str] = None,
    ) -> List[PriceList]:
        with self._session() as s:
            stmt = select(PriceList).where(PriceList.company_id == company_id)
            if state:
                stmt = stmt.where(PriceList.processing_state == str(getattr(state, "value", state)))
            if supplier:
                stmt = stmt.where(func.lower(PriceList.supplier_name).contains(supplier.strip().lower()))
            stmt = stmt.order_by(PriceList.created_at.desc())
            return list(s.scalars(stmt).all())

    def delete_price_list(self, list_id: str) -> None:
        with self._session() as s:
            s.execute(delete(ListRecord).where(ListRecord.list_id == list_id))
            s.execute(delete(PriceList).where(PriceList.id == list_id))

    # ------------------------------------------------------------------
    # List records
    # ------------------------------------------------------------------
    def delete_records(self, list_id: str) -> int:
        with self._session() as s:
            result = s.execute(delete(ListRecord).where(ListRecord.list_id == list_id))
            return result.rowcount or 0

    def add_records(self, records: Iterable[ListRecord]) -> List[ListRecord]:
        records = list(records)
        with self._session() as s:
            s.add_all(records)
        return records

    def records_for_list(self, list_id: str) -> List[ListRecord]:
        with self._session() as s:
            stmt = (
                select(ListRecord)
                .where(ListRecord.list_id == list_id)
                .order_by(ListRecord.source_row, ListRecord.id)
            )
            return list(s.scalars(stmt).all())

    def records_for_lists(self, list_ids: Sequence[str]) -> Dict[str, List[ListRecord]]:
        grouped: Dict[str, List[ListRecord]] = {list_id: [] for list_id in list_ids}
        with self._session() as s:
            stmt = (
                select(ListRecord)
                .where(ListRecord.list_id.in_(list(list_ids)))
                .order_by(ListRecord.source_row, ListRecord.id)
            )
            for record in s.scalars(stmt):
                grouped[record.list_id].append(record)
        return grouped

    def count_records(self, list_id: Optional[str] = None) -> int:
        with self._session() as s:
            stmt = select(func.count(ListRecord.id))
            if list_id is not None:
                stmt = stmt.where(ListRecord.list_id == list_id)
            return s.scalar(stmt) or 0

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------
    def get_entry(self, entry_id: str, company_id: Optional[str] = None) -> Optional[CatalogEntry]:
        with self._session() as s:
            stmt = select(CatalogEntry).where(CatalogEntry.id == entry_id)
            if company_id is not None:
                stmt = stmt.where(CatalogEntry.company_id == company_id)
            return s.scalars(stmt).first()

    def find_entry_by_code(self, company_id: str, code: str) -> Optional[CatalogEntry]:
        """Case-insensitive code lookup within one company's active catalog."""
        if not code or not code.strip():
            return None
        with self._session() as s:
            stmt = (
                select(CatalogEntry)
                .where(
                    CatalogEntry.company_id == company_id,
                    CatalogEntry.active.is_(True),
                    func.lower(CatalogEntry.code) == code.strip().lower(),
                )
                .order_by(CatalogEntry.updated_at.desc())
            )
            return s.scalars(stmt).first()

    def code_exists(self, company_id: str, code: str) -> bool:
        with self._session() as s:
            stmt = select(func.count(CatalogEntry.id)).where(
                CatalogEntry.company_id == company_id,
                func.lower(CatalogEntry.code) == code.strip().lower(),
            )
            return (s.scalar(stmt) or 0) > 0

    def active_entries(self, company_id: str, limit: Optional[int] = None) -> List[CatalogEntry]:
        """Active catalog entries of a company, most recently updated first."""
        with self._session() as s:
            stmt = (
                select(CatalogEntry)
                .where(CatalogEntry.company_id == company_id, CatalogEntry.active.is_(True))
                .order_by(CatalogEntry.updated_at.desc())
            )
            if limit is not None:
                stmt = stmt.limit(limit)
            return list(s.scalars(stmt).all())

    def add_entry(self, entry: CatalogEntry) -> CatalogEntry:
        with self._session() as s:
            s.add(entry)
        return entry

    def link_record(self, record_id: str, entry_id: str, raw_name: Optional[str]) -> CatalogEntry:
        """
        Point a record at a catalog entry and add its raw name to the entry's
        alternate names (read-modify-write, last writer wins).
        """
        with self._session() as s:
            entry = s.get(CatalogEntry, entry_id)
            if entry is None:
                raise NotFoundError(f"Catalog entry {entry_id} does not exist")

            names = list(entry.alternate_names or [])
            if raw_name and raw_name not in names:
                names.append(raw_name)
                # JSON columns only persist on reassignment
                entry.alternate_names = names
                entry.updated_at = utcnow()

            s.execute(
                update(ListRecord)
                .where(ListRecord.id == record_id)
                .values(catalog_match_id=entry_id)
                .execution_options(synchronize_session=False)
            )
            return entry

    # ------------------------------------------------------------------
    # Comparisons
    # ------------------------------------------------------------------
    def add_run(self, run: ComparisonRun) -> ComparisonRun:
        with self._session() as s:
            s.add(run)
        return run

    def update_run(self, run_id: str, **values) -> None:
        values.setdefault("updated_at", utcnow())
        with self._session() as s:
            s.execute(
                update(ComparisonRun)
                .where(ComparisonRun.id == run_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )

    def complete_run(self, run_id: str, results: List[ComparisonResult], **values) -> None:
        """Persist every result row and the run aggregates in one transaction."""
        values.setdefault("updated_at", utcnow())
        with self._session() as s:
            s.add_all(results)
            s.execute(
                update(ComparisonRun)
                .where(ComparisonRun.id == run_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )

    def get_run(self, run_id: str, company_id: Optional[str] = None) -> Optional[ComparisonRun]:
        with self._session() as s:
            stmt = select(ComparisonRun).where(ComparisonRun.id == run_id)
            if company_id is not None:
                stmt = stmt.where(ComparisonRun.company_id == company_id)
            return s.scalars(stmt).first()

    def list_runs(
        self,
        company_id: str,
        date_from: Optional[date] = None,
        date_to: Optional[date] = None,
    ) -> List[ComparisonRun]:
        with self._session() as s:
            stmt = select(ComparisonRun).where(ComparisonRun.company_id == company_id)
            if date_from is not None:
                stmt = stmt.where(ComparisonRun.created_at >= _day_start(date_from))
            if date_to is not None:
                stmt = stmt.where(ComparisonRun.created_at < _day_start(date_to + timedelta(days=1)))
            stmt = stmt.order_by(ComparisonRun.created_at.desc())
            return list(s.scalars(stmt).all())

    def results_for_run(self, run_id: str) -> List[ComparisonResult]:
        with self._session() as s:
            stmt = (
                select(ComparisonResult)
                .where(ComparisonResult.comparison_run_id == run_id)
                .order_by(ComparisonResult.spread_percent.desc(), ComparisonResult.product_name)
            )
            return list(s.scalars(stmt).all())

    # ------------------------------------------------------------------
    # AI usage
    # ------------------------------------------------------------------
    def add_usage(self, usage: AIUsage) -> AIUsage:
        with self._session() as s:
            s.add(usage)
        return usage

    def usage_for_list(self, list_id: str) -> List[AIUsage]:
        with self._session() as s:
            stmt = select(AIUsage).where(AIUsage.list_id == list_id).order_by(AIUsage.created_at)
            return list(s.scalars(stmt).all())
