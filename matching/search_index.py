"""
Catalog search index.

The matching engine looks catalog entries up by normalized product name
through the SearchIndex contract. Two implementations, chosen once at start:

- FuzzyCatalogIndex: every active catalog entry of the company sharing at
  least one token with the query is a hit. Hits are scored with thefuzz
  token_sort_ratio over accent-folded canonical and alternate names, so extra
  or missing words lower the score ("leche" vs "leche condensada" is a weak
  hit, not a full one). An exact brand agreement adds a bonus, capped at 1.
- NullSearchIndex: search disabled; every query reports "unavailable" so the
  engine falls through to its local heuristic.

An index never raises on query: a broken backend is reported as an
unavailable SearchResult.
"""

from __future__ import annotations

import logging
from typing import Dict, List, NamedTuple, Optional, Protocol, Tuple

from sqlalchemy.exc import SQLAlchemyError
from thefuzz import fuzz

from config import SEARCH_BRAND_BONUS, SEARCH_RESULT_LIMIT
from domain.results import SearchHit, SearchResult
from fields.normalization import fold_accents, normalize_name

logger = logging.getLogger(__name__)


class SearchIndex(Protocol):
    def query(
        self,
        company_id: str,
        normalized_name: str,
        limit: int = SEARCH_RESULT_LIMIT,
        brand: Optional[str] = None,
    ) -> SearchResult:
        ...

    def upsert(self, entry) -> None:
        ...


class _Document(NamedTuple):
    entry_id: str
    keys: List[str]
    brand: str


def _brand_key(brand: Optional[str]) -> str:
    return fold_accents((brand or "").strip().lower())


def _entry_keys(entry) -> List[str]:
    names = [entry.canonical_name] + list(entry.alternate_names or [])
    keys = []
    for name in names:
        key = fold_accents(normalize_name(name))
        if key and key not in keys:
            keys.append(key)
    return keys


class FuzzyCatalogIndex:
    """In-process fuzzy index over the relational catalog, cached per company."""

    def __init__(self, repository, brand_bonus: float = SEARCH_BRAND_BONUS):
        self.repository = repository
        self.brand_bonus = brand_bonus
        self._cache: Dict[str, List[_Document]] = {}

    def _documents(self, company_id: str) -> List[_Document]:
        if company_id not in self._cache:
            entries = self.repository.active_entries(company_id)
            self._cache[company_id] = [_Document(e.id, _entry_keys(e), _brand_key(e.brand)) for e in entries]
        return self._cache[company_id]

    def query(
        self,
        company_id: str,
        normalized_name: str,
        limit: int = SEARCH_RESULT_LIMIT,
        brand: Optional[str] = None,
    ) -> SearchResult:
        needle = fold_accents(normalized_name or "").strip()
        if not needle:
            return SearchResult(hits=[])

        try:
            documents = self._documents(company_id)
        except SQLAlchemyError as e:
            logger.warning("Catalog search unavailable for company %s: %s", company_id, e)
            return SearchResult.unavailable(f"catalog store error: {e}")

        terms = set(needle.split())
        wanted_brand = _brand_key(brand)

        ranked: List[Tuple[float, bool, SearchHit]] = []
        for doc in documents:
            ratios = [fuzz.token_sort_ratio(needle, key) for key in doc.keys if terms & set(key.split())]
            if not ratios:
                continue
            score = max(ratios) / 100
            same_brand = bool(wanted_brand) and wanted_brand == doc.brand
            if same_brand:
                score = min(1.0, score + self.brand_bonus)
            ranked.append((score, same_brand, SearchHit(entry_id=doc.entry_id, company_id=company_id, score=score)))

        # brand agreement breaks ties left by the cap
        ranked.sort(key=lambda r: (r[0], r[1]), reverse=True)
        return SearchResult(hits=[hit for _, _, hit in ranked[:limit]])

    def upsert(self, entry) -> None:
        """Drop the cached documents of the entry's company; the next query reloads them."""
        self._cache.pop(entry.company_id, None)


class NullSearchIndex:
    """Search disabled by configuration."""

    def __init__(self, reason: str = "search index disabled"):
        self.reason = reason

    def query(
        self,
        company_id: str,
        normalized_name: str,
        limit: int = SEARCH_RESULT_LIMIT,
        brand: Optional[str] = None,
    ) -> SearchResult:
        return SearchResult.unavailable(self.reason)

    def upsert(self, entry) -> None:
        return None
