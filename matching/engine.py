"""
Catalog matching.

MatchingEngine resolves a list record to a company-scoped catalog entry,
trying cheaper strategies first; the first tier that succeeds wins:

1. Exact code: the record's supplier code equals an entry's code (case-insensitive).
2. Search index: top hit for the normalized name (an agreeing brand scores
   higher), accepted at or above the threshold.
3. Local heuristic: only when the index is unavailable or has no hits; a scan
   of the most recently updated entries, code first, then substring
   containment of normalized names in either direction.
4. Pairwise AI (compare_pair): used by the comparator only, scores two records
   from different lists.

Outcomes are explicit values (MatchFound / NoMatch / MatcherUnavailable), so a
broken matcher is never mistaken for "no such product".

The engine is also the only writer of the catalog: link() attaches a record to
an entry and accumulates its raw name, upsert_group() creates or reuses the
entry for a group of records confirmed to be the same product.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from sqlalchemy.exc import SQLAlchemyError

from catalog_code import allocate
from config import DEFAULT_MODEL, LOCAL_FALLBACK_LIMIT, MATCH_THRESHOLD, PAIR_MAX_OUTPUT_TOKENS, SEARCH_RESULT_LIMIT
from domain.errors import AIUnavailableError
from domain.results import MatcherUnavailable, MatchFound, MatchOutcome, NoMatch, PairOutcome, PairScore
from extraction.llm_client import TextGenerator
from extraction.prompts import build_pair_prompt, describe_product
from extraction.response_parsing import parse_score
from fields.normalization import normalize_name
from storage.models import CatalogEntry, ListRecord

from .search_index import SearchIndex

logger = logging.getLogger(__name__)

DEFAULT_UNIT = "UNIDAD"
DEFAULT_CATEGORY = "GENERAL"


def _same_code(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a and b and a.strip().lower() == b.strip().lower())


def _containment(query: str, candidate: str) -> float:
    """Length ratio of the shorter key to the longer one when either contains the other, else 0."""
    if not query or not candidate:
        return 0.0
    if query in candidate or candidate in query:
        return min(len(query), len(candidate)) / max(len(query), len(candidate))
    return 0.0


def _distinct_names(records: Iterable[ListRecord]) -> List[str]:
    names: List[str] = []
    for record in records:
        name = (record.original_name or "").strip()
        if name and name not in names:
            names.append(name)
    return names


class MatchingEngine:
    def __init__(
        self,
        repository,
        search_index: SearchIndex,
        generator: TextGenerator,
        threshold: float = MATCH_THRESHOLD,
        fallback_limit: int = LOCAL_FALLBACK_LIMIT,
        code_state_path: Optional[Path] = None,
    ):
        self.repository = repository
        self.search_index = search_index
        self.generator = generator
        self.threshold = threshold
        self.fallback_limit = fallback_limit
        self.code_state_path = code_state_path

    # ------------------------------------------------------------------
    # Tiers 1-3
    # ------------------------------------------------------------------
    def match(self, record: ListRecord, company_id: str) -> MatchOutcome:
        try:
            return self._match(record, company_id)
        except SQLAlchemyError as e:
            logger.error("Catalog lookup failed for record %s: %s", record.id, e)
            return MatcherUnavailable(reason=f"catalog store error: {e}")

    def _match(self, record: ListRecord, company_id: str) -> MatchOutcome:
        if record.original_code:
            entry = self.repository.find_entry_by_code(company_id, record.original_code)
            if entry is not None:
                return MatchFound(entry=entry, confidence=1.0, strategy="code")

        key = record.normalized_name or normalize_name(record.original_name)

        result = self.search_index.query(company_id, key, SEARCH_RESULT_LIMIT, brand=record.brand)
        hits = [h for h in result.hits if h.company_id == company_id]
        if result.available and hits:
            top = hits[0]
            if top.score < self.threshold:
                return NoMatch(reason=f"best search score {top.score:.2f} below threshold {self.threshold}")
            entry = self.repository.get_entry(top.entry_id, company_id)
            if entry is None or not entry.active:
                return NoMatch(reason=f"search hit {top.entry_id} is not an active catalog entry")
            return MatchFound(entry=entry, confidence=top.score, strategy="search")

        if not result.available:
            logger.warning("Search index unavailable (%s); using local catalog scan", result.reason)
        return self._local_fallback(record, key, company_id)

    def _local_fallback(self, record: ListRecord, key: str, company_id: str) -> MatchOutcome:
        entries = self.repository.active_entries(company_id, limit=self.fallback_limit)
        if not entries:
            return NoMatch(reason="catalog is empty")

        for entry in entries:
            if _same_code(record.original_code, entry.code):
                return MatchFound(entry=entry, confidence=1.0, strategy="local-code")

        for entry in entries:
            for name in [entry.canonical_name] + list(entry.alternate_names or []):
                ratio = _containment(key, normalize_name(name))
                if ratio > 0:
                    return MatchFound(entry=entry, confidence=ratio, strategy="local-name")

        return NoMatch(reason=f"no match among the {len(entries)} most recent catalog entries")

    # ------------------------------------------------------------------
    # Tier 4
    # ------------------------------------------------------------------
    def compare_pair(self, first: ListRecord, second: ListRecord, model: str = DEFAULT_MODEL) -> PairOutcome:
        """Ask the AI how likely two records are the same product; a score in [0, 1]."""
        prompt = build_pair_prompt(
            describe_product(first.original_name, first.packaging_description),
            describe_product(second.original_name, second.packaging_description),
        )
        try:
            reply = self.generator.generate(prompt, model, max_tokens=PAIR_MAX_OUTPUT_TOKENS)
        except AIUnavailableError as e:
            return MatcherUnavailable(reason=str(e))

        score = parse_score(reply)
        if score is None:
            return MatcherUnavailable(reason=f"AI reply contained no score: {reply[:80]!r}")
        return PairScore(score=score)

    # ------------------------------------------------------------------
    # Catalog side effects
    # ------------------------------------------------------------------
    def _notify_index(self, entry: CatalogEntry) -> None:
        try:
            self.search_index.upsert(entry)
        except Exception as e:
            logger.warning("Search index update failed for catalog entry %s: %s", entry.id, e)

    def link(self, record: ListRecord, entry: CatalogEntry) -> CatalogEntry:
        """Attach `record` to `entry` and add its raw name to the entry's alternate names."""
        updated = self.repository.link_record(record.id, entry.id, record.original_name)
        record.catalog_match_id = updated.id
        self._notify_index(updated)
        return updated

    def _allocate_code(self, company_id: str) -> str:
        return allocate(
            company_id,
            1,
            state_path=self.code_state_path,
            taken=lambda code: self.repository.code_exists(company_id, code),
        )[0]

    def upsert_group(self, company_id: str, records: Sequence[ListRecord]) -> CatalogEntry:
        """
        Resolve the catalog entry for records confirmed to be the same product.

        Reuses the entry any member already points to, else the entry carrying
        the anchor's code, else creates one seeded with every distinct raw name
        of the group. Every member ends up linked to the returned entry.
        """
        if not records:
            raise ValueError("upsert_group needs at least one record")

        anchor = records[0]
        entry: Optional[CatalogEntry] = None

        for record in records:
            if record.catalog_match_id:
                entry = self.repository.get_entry(record.catalog_match_id, company_id)
                if entry is not None:
                    break

        if entry is None and anchor.original_code:
            entry = self.repository.find_entry_by_code(company_id, anchor.original_code)

        if entry is None:
            code = anchor.original_code.strip() if anchor.original_code else self._allocate_code(company_id)
            entry = self.repository.add_entry(
                CatalogEntry(
                    company_id=company_id,
                    code=code,
                    canonical_name=anchor.original_name,
                    alternate_names=_distinct_names(records),
                    packaging_description=anchor.packaging_description,
                    unit_of_measure=anchor.unit_of_measure or DEFAULT_UNIT,
                    category=DEFAULT_CATEGORY,
                    brand=anchor.brand,
                    active=True,
                )
            )
            logger.info("Created catalog entry %s (%s) for %d records", entry.code, entry.canonical_name, len(records))

        for record in records:
            entry = self.link(record, entry)
        return entry
