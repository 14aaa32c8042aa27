"""
Excel export of a comparison report.

Writes two sheets with pandas + openpyxl:
- "Comparison": one row per supplier price (ComparisonReport.as_rows()).
- "Summary": the aggregate statistics.
"""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO, Union

import pandas as pd
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter

from domain.results import ComparisonReport

COMPARISON_HEADERS = [
    "product",
    "packaging",
    "supplier",
    "price",
    "currency",
    "price_usd",
    "match_confidence",
    "best_supplier",
    "best_price_usd",
    "spread_percent",
    "anomaly",
]


def _summary_frame(report: ComparisonReport) -> pd.DataFrame:
    stats = report.stats
    rows = [
        ("Products compared", stats.total_products),
        ("Products with price variation", stats.products_with_variation),
        ("Average spread %", stats.average_spread_percent),
        ("Price anomalies", stats.anomaly_count),
    ]
    if stats.cheapest_supplier:
        rows.append(
            ("Cheapest supplier", f"{stats.cheapest_supplier.supplier_name} ({stats.cheapest_supplier.share_percent}%)")
        )
    if stats.most_expensive_supplier:
        rows.append(
            (
                "Most expensive supplier",
                f"{stats.most_expensive_supplier.supplier_name} ({stats.most_expensive_supplier.share_percent}%)",
            )
        )
    run = report.run
    if run is not None:
        rows.append(("Match rate %", round(float(run.match_rate or 0.0) * 100, 2)))
    return pd.DataFrame(rows, columns=["metric", "value"])


def _autosize(worksheet) -> None:
    for cell in worksheet[1]:
        cell.font = Font(bold=True)
    for idx, column in enumerate(worksheet.iter_cols(values_only=True), start=1):
        width = max((len(str(v)) for v in column if v is not None), default=8)
        worksheet.column_dimensions[get_column_letter(idx)].width = min(60, width + 2)


def export_results_to_excel(report: ComparisonReport, output: Union[str, Path, BinaryIO]) -> Union[Path, BinaryIO]:
    """Write the report to `output` (a path or a binary buffer) and return it."""
    comparison = pd.DataFrame(report.as_rows(), columns=COMPARISON_HEADERS)
    summary = _summary_frame(report)

    target = Path(output) if isinstance(output, (str, Path)) else output
    if isinstance(target, Path):
        target.parent.mkdir(parents=True, exist_ok=True)

    with pd.ExcelWriter(target, engine="openpyxl") as writer:
        comparison.to_excel(writer, sheet_name="Comparison", index=False)
        summary.to_excel(writer, sheet_name="Summary", index=False)
        for worksheet in writer.sheets.values():
            _autosize(worksheet)

    return target
