"""
Result variants returned across component boundaries.

Fallback situations (search index down, PDF needing conversion, AI unable to
score a pair) are modeled as explicit values instead of exceptions, so callers
can tell "no match" apart from "matcher broken".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from .canonical import RawRecord


# ---------------------------------------------------------------------------
# Search index
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class SearchHit:
    entry_id: str
    company_id: str
    score: float


@dataclass(frozen=True)
class SearchResult:
    hits: List[SearchHit] = field(default_factory=list)
    available: bool = True
    reason: Optional[str] = None

    @classmethod
    def unavailable(cls, reason: str) -> "SearchResult":
        return cls(hits=[], available=False, reason=reason)


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class MatchFound:
    entry: Any
    confidence: float
    strategy: str


@dataclass(frozen=True)
class NoMatch:
    reason: str = "no catalog entry above threshold"


@dataclass(frozen=True)
class MatcherUnavailable:
    reason: str


@dataclass(frozen=True)
class PairScore:
    score: float


MatchOutcome = Union[MatchFound, NoMatch, MatcherUnavailable]
PairOutcome = Union[PairScore, MatcherUnavailable]


# ---------------------------------------------------------------------------
# Extraction / processing
# ---------------------------------------------------------------------------
@dataclass
class ExtractionResult:
    records: List[RawRecord]
    tokens_used: int


@dataclass(frozen=True)
class ProcessingSummary:
    list_id: str
    extracted: int
    matched: int
    avg_confidence: float
    elapsed_ms: int
    estimated_cost: float
    tokens_used: int


@dataclass(frozen=True)
class ConversionNeeded:
    list_id: str
    source_format: str
    message: str


ProcessingOutcome = Union[ProcessingSummary, ConversionNeeded]


# ---------------------------------------------------------------------------
# Comparison
# ---------------------------------------------------------------------------
@dataclass(frozen=True)
class SupplierShare:
    supplier_name: str
    share_percent: float


@dataclass(frozen=True)
class ComparisonStats:
    total_products: int
    products_with_variation: int
    average_spread_percent: float
    cheapest_supplier: Optional[SupplierShare]
    most_expensive_supplier: Optional[SupplierShare]
    anomaly_count: int


@dataclass
class ComparisonReport:
    run: Any
    results: List[Any]
    stats: ComparisonStats

    def as_rows(self) -> List[Dict[str, Any]]:
        """Flatten results to one row per supplier price (for tables and exports)."""
        rows: List[Dict[str, Any]] = []
        for result in self.results:
            best = result.best_price or {}
            for price in result.per_supplier_prices:
                rows.append(
                    {
                        "product": result.product_name,
                        "packaging": result.packaging_description,
                        "supplier": price["supplier_name"],
                        "price": price["price"],
                        "currency": price["currency"],
                        "price_usd": price["normalized_price_usd"],
                        "match_confidence": price["confidence_percent"],
                        "best_supplier": best.get("supplier_name"),
                        "best_price_usd": best.get("amount"),
                        "spread_percent": round(result.spread_percent, 2),
                        "anomaly": result.anomaly_flag,
                    }
                )
        return rows
