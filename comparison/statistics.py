"""Summary statistics over the result rows of a comparison run."""

from __future__ import annotations

from collections import Counter
from typing import Optional, Sequence

import numpy as np

from config import VARIATION_SPREAD_PERCENT
from domain.results import ComparisonStats, SupplierShare


def _share(counter: Counter, total: int) -> Optional[SupplierShare]:
    if not counter or total <= 0:
        return None
    supplier, count = counter.most_common(1)[0]
    return SupplierShare(supplier_name=supplier, share_percent=round(count / total * 100, 2))


def _most_expensive_supplier(result) -> Optional[str]:
    prices = result.per_supplier_prices or []
    if not prices:
        return None
    return max(prices, key=lambda p: p["normalized_price_usd"])["supplier_name"]


def compute_statistics(results: Sequence, variation_threshold: float = VARIATION_SPREAD_PERCENT) -> ComparisonStats:
    """
    Aggregate ComparisonResult rows.

    The cheapest supplier is the one most often holding the best price, the
    most expensive one the supplier most often quoting the highest price; each
    comes with its share of the compared products.
    """
    total = len(results)
    spreads = np.array([float(r.spread_percent or 0.0) for r in results], dtype=float)

    cheapest = Counter(
        (r.best_price or {}).get("supplier_name") for r in results if (r.best_price or {}).get("supplier_name")
    )
    most_expensive = Counter(s for s in (_most_expensive_supplier(r) for r in results) if s)

    return ComparisonStats(
        total_products=total,
        products_with_variation=int((spreads > variation_threshold).sum()) if total else 0,
        average_spread_percent=round(float(spreads.mean()), 2) if total else 0.0,
        cheapest_supplier=_share(cheapest, total),
        most_expensive_supplier=_share(most_expensive, total),
        anomaly_count=sum(1 for r in results if r.anomaly_flag),
    )
