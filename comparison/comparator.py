"""
N-way price comparison across processed lists.

The first list is the anchor. For each of its records a group is built by
looking, in every other list, for the record describing the same product:
first a record already resolved to the same catalog entry, otherwise the best
pairwise AI score at or above the match threshold. A record joins at most one
group. Groups found in two or more lists become ComparisonResult rows with
USD-normalized prices, best price, spread and anomaly flag; single-member
groups only count toward the total.

Pair scoring is the expensive part: candidates are capped per anchor and
scored in parallel batches, stopping as soon as a batch yields a near-certain
match. Worker threads only call the AI; everything is persisted afterwards on
the calling thread.
"""

from __future__ import annotations

import logging
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from config import (
    ANOMALY_SPREAD_PERCENT,
    COMPARE_WORKERS,
    DEFAULT_MODEL,
    EARLY_STOP_SCORE,
    MATCH_THRESHOLD,
    MAX_PAIR_CANDIDATES,
)
from domain.enums import AnomalyFlag, ComparisonState, Currency, ProcessingState
from domain.errors import ComparisonError, InputValidationError, InvalidStateError, NotFoundError
from domain.results import ComparisonReport, MatcherUnavailable, PairScore
from matching.engine import MatchingEngine
from storage.models import ComparisonResult, ComparisonRun, ListRecord, PriceList
from storage.repository import PriceRepository

from .statistics import compute_statistics

logger = logging.getLogger(__name__)

T = TypeVar("T")


def chunked(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield lists with ``size`` elements from ``items``."""
    if size <= 0:
        raise ValueError("size must be positive")
    for start in range(0, len(items), size):
        yield list(items[start : start + size])


def to_usd(price: float, price_list: PriceList) -> float:
    if price_list.currency == Currency.BS.value:
        return price / price_list.exchange_rate
    return price


def spread_percent(prices: Iterable[float]) -> float:
    """(max - min) / max * 100; 0 when the highest price is 0."""
    values = list(prices)
    highest, lowest = max(values), min(values)
    if highest <= 0:
        return 0.0
    return (highest - lowest) / highest * 100


@dataclass
class _Member:
    record: ListRecord
    price_list: PriceList
    score: float


@dataclass
class _Group:
    members: List[_Member] = field(default_factory=list)

    @property
    def records(self) -> List[ListRecord]:
        return [m.record for m in self.members]


class Comparator:
    def __init__(
        self,
        repository: PriceRepository,
        matcher: MatchingEngine,
        threshold: float = MATCH_THRESHOLD,
        max_candidates: int = MAX_PAIR_CANDIDATES,
        early_stop_score: float = EARLY_STOP_SCORE,
        workers: int = COMPARE_WORKERS,
        anomaly_threshold: float = ANOMALY_SPREAD_PERCENT,
    ):
        self.repository = repository
        self.matcher = matcher
        self.threshold = threshold
        self.max_candidates = max_candidates
        self.early_stop_score = early_stop_score
        self.workers = max(1, workers)
        self.anomaly_threshold = anomaly_threshold

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def _validate(self, company_id: str, list_ids: Sequence[str]) -> Dict[str, PriceList]:
        if not company_id:
            raise InputValidationError("company_id is required")
        if len(list_ids) < 2:
            raise InputValidationError("At least two different price lists are required for a comparison")

        lists = self.repository.get_price_lists(list_ids)
        for list_id in list_ids:
            price_list = lists.get(list_id)
            if price_list is None or price_list.company_id != company_id:
                raise NotFoundError(f"Price list {list_id} not found")
            if price_list.processing_state != ProcessingState.COMPLETED.value:
                raise InvalidStateError(
                    f"Price list {list_id} ({price_list.supplier_name}) is {price_list.processing_state}, "
                    "only COMPLETED lists can be compared"
                )
            if price_list.currency == Currency.BS.value and not (price_list.exchange_rate or 0) > 0:
                raise InputValidationError(
                    f"Price list {list_id} ({price_list.supplier_name}) is in {Currency.BS.value} "
                    "and needs a positive exchange rate"
                )
        return lists

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------
    def compare(self, company_id: str, list_ids: Sequence[str], model: Optional[str] = None) -> ComparisonReport:
        ids = list(dict.fromkeys(list_ids or []))
        lists = self._validate(company_id, ids)
        model_id = getattr(model, "value", None) or model or DEFAULT_MODEL

        run = self.repository.add_run(
            ComparisonRun(company_id=company_id, list_ids=ids, state=ComparisonState.PENDING.value)
        )
        self.repository.update_run(run.id, state=ComparisonState.RUNNING.value)
        logger.info("Comparison %s: RUNNING over %d lists", run.id, len(ids))

        try:
            records_by_list = self.repository.records_for_lists(ids)
            with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="pair-score") as executor:
                groups = self._build_groups(ids, lists, records_by_list, model_id, executor)

            results = [self._persist_group(company_id, run.id, g) for g in groups if len(g.members) > 1]
            total = len(groups)
            matched = len(results)
            match_rate = matched / total if total else 0.0

            self.repository.complete_run(
                run.id,
                results,
                total_products_compared=total,
                products_matched=matched,
                match_rate=match_rate,
                state=ComparisonState.DONE.value,
                error_message=None,
            )
        except Exception as e:
            logger.exception("Comparison %s failed", run.id)
            try:
                self.repository.update_run(run.id, state=ComparisonState.ERROR.value, error_message=str(e)[:2000])
            except SQLAlchemyError:
                logger.exception("Comparison %s: could not record the failure", run.id)
            raise ComparisonError(f"Comparison {run.id} failed: {e}") from e

        logger.info("Comparison %s: DONE (%d/%d products matched)", run.id, matched, total)
        return ComparisonReport(
            run=self.repository.get_run(run.id),
            results=results,
            stats=compute_statistics(results),
        )

    # ------------------------------------------------------------------
    # Grouping
    # ------------------------------------------------------------------
    def _build_groups(
        self,
        list_ids: Sequence[str],
        lists: Dict[str, PriceList],
        records_by_list: Dict[str, List[ListRecord]],
        model: str,
        executor: Executor,
    ) -> List[_Group]:
        anchor_id, other_ids = list_ids[0], list_ids[1:]
        consumed: Set[str] = set()
        groups: List[_Group] = []

        for anchor in records_by_list.get(anchor_id, []):
            if anchor.id in consumed:
                continue
            consumed.add(anchor.id)
            group = _Group(members=[_Member(anchor, lists[anchor_id], 1.0)])

            for list_id in other_ids:
                available = [r for r in records_by_list.get(list_id, []) if r.id not in consumed]
                found = self._find_counterpart(anchor, available, model, executor)
                if found is not None:
                    record, score = found
                    consumed.add(record.id)
                    group.members.append(_Member(record, lists[list_id], score))

            groups.append(group)
        return groups

    def _find_counterpart(
        self,
        anchor: ListRecord,
        candidates: List[ListRecord],
        model: str,
        executor: Executor,
    ):
        if not candidates:
            return None

        if anchor.catalog_match_id:
            for candidate in candidates:
                if candidate.catalog_match_id == anchor.catalog_match_id:
                    return candidate, 1.0

        best: Optional[ListRecord] = None
        best_score = 0.0
        unavailable = 0

        for batch in chunked(candidates[: self.max_candidates], self.workers):
            outcomes = list(executor.map(lambda c: self.matcher.compare_pair(anchor, c, model), batch))
            for candidate, outcome in zip(batch, outcomes):
                if isinstance(outcome, MatcherUnavailable):
                    unavailable += 1
                    continue
                if isinstance(outcome, PairScore) and outcome.score >= self.threshold and outcome.score > best_score:
                    best, best_score = candidate, outcome.score
            if best_score >= self.early_stop_score:
                break

        if unavailable:
            logger.warning("Pair scoring unavailable for %d candidates of record %s", unavailable, anchor.id)
        return (best, best_score) if best is not None else None

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------
    def _persist_group(self, company_id: str, run_id: str, group: _Group) -> ComparisonResult:
        entry = self.matcher.upsert_group(company_id, group.records)

        prices = []
        for member in group.members:
            record, price_list = member.record, member.price_list
            prices.append(
                {
                    "supplier_name": price_list.supplier_name,
                    "list_id": price_list.id,
                    "record_id": record.id,
                    "product_name": record.original_name,
                    "price": record.unit_price,
                    "currency": price_list.currency,
                    "normalized_price_usd": to_usd(record.unit_price, price_list),
                    "confidence_percent": int(round(member.score * 100)),
                }
            )

        best = min(prices, key=lambda p: p["normalized_price_usd"])
        spread = spread_percent(p["normalized_price_usd"] for p in prices)

        return ComparisonResult(
            comparison_run_id=run_id,
            catalog_entry_id=entry.id,
            product_name=entry.canonical_name,
            packaging_description=entry.packaging_description,
            per_supplier_prices=prices,
            best_price={
                "supplier_name": best["supplier_name"],
                "list_id": best["list_id"],
                "record_id": best["record_id"],
                "amount": best["normalized_price_usd"],
                "price": best["price"],
                "currency": best["currency"],
            },
            spread_percent=spread,
            anomaly_flag=AnomalyFlag.ABNORMAL_RISE.value if spread > self.anomaly_threshold else None,
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def list_comparisons(self, company_id: str, date_from=None, date_to=None) -> List[ComparisonRun]:
        return self.repository.list_runs(company_id, date_from=date_from, date_to=date_to)

    def get_results(self, company_id: str, run_id: str) -> ComparisonReport:
        run = self.repository.get_run(run_id, company_id)
        if run is None:
            raise NotFoundError(f"Comparison {run_id} not found")
        results = self.repository.results_for_run(run_id)
        return ComparisonReport(run=run, results=results, stats=compute_statistics(results))
