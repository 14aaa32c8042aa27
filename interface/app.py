# interface/app.py
"""
Price Comparator - Main Application

Streamlit interface for uploading supplier price lists, extracting them with
AI and comparing prices across suppliers.
"""

import io
import sys
from datetime import date
from pathlib import Path

import pandas as pd
import streamlit as st

sys.path.append(str(Path(__file__).parent.parent))
from config import configure_logging  # noqa: E402
from domain.enums import AIModel, Currency, ProcessingState, SourceFormat  # noqa: E402
from domain.errors import PriceListError  # noqa: E402
from domain.results import ConversionNeeded  # noqa: E402
from interface.service import build_service  # noqa: E402

XLSX_MIME = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@st.cache_resource
def get_service():
    configure_logging()
    return build_service()


def _lists_frame(price_lists) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "Supplier": pl.supplier_name,
                "Date": pl.list_date,
                "Currency": pl.currency,
                "Rate": pl.exchange_rate,
                "Format": pl.source_format,
                "State": pl.processing_state,
                "Products": pl.extracted_product_count,
                "Error": pl.error_message or "",
                "Id": pl.id,
            }
            for pl in price_lists
        ]
    )


def _label(pl) -> str:
    return f"{pl.supplier_name} ({pl.list_date}, {pl.extracted_product_count} products)"


# ============================================================================
# PAGE CONFIG
# ============================================================================
st.set_page_config(
    page_title="Price Comparator",
    page_icon="📊",
    layout="wide",
    initial_sidebar_state="expanded",
)

# ============================================================================
# SESSION STATE INITIALIZATION
# ============================================================================
if "report" not in st.session_state:
    st.session_state.report = None
if "last_summary" not in st.session_state:
    st.session_state.last_summary = None

service = get_service()

# ============================================================================
# SIDEBAR
# ============================================================================
st.sidebar.title("📊 Price Comparator")
company_id = st.sidebar.text_input("Company", value=st.session_state.get("company_id", ""))
st.session_state.company_id = company_id
model = st.sidebar.selectbox("AI model", [m.value for m in AIModel], index=0)

if not company_id:
    st.info("Enter a company to start.")
    st.stop()

tab_upload, tab_lists, tab_compare, tab_history = st.tabs(["Upload", "Lists", "Compare", "History"])

# ============================================================================
# UPLOAD & PROCESS
# ============================================================================
with tab_upload:
    uploaded_file = st.file_uploader(
        "Supplier price list",
        type=[f.value for f in SourceFormat],
        help="Excel, CSV, PDF or a photo of the list",
    )
    col1, col2, col3, col4 = st.columns(4)
    supplier_name = col1.text_input("Supplier")
    list_date = col2.date_input("List date", value=date.today())
    currency = col3.selectbox("Currency", [c.value for c in Currency])
    exchange_rate = col4.number_input(
        "Exchange rate (BS per USD)", min_value=0.0, value=0.0, disabled=currency != Currency.BS.value
    )

    if uploaded_file and st.button("🚀 Upload and process", type="primary"):
        try:
            list_id = service.upload_list(
                company_id,
                uploaded_file.name,
                uploaded_file.getvalue(),
                supplier_name,
                list_date=list_date,
                currency=currency,
                exchange_rate=exchange_rate if currency == Currency.BS.value and exchange_rate > 0 else None,
            )
            with st.spinner("🔄 Extracting products..."):
                outcome = service.process_list(list_id, model=model, company_id=company_id)
        except PriceListError as e:
            st.error(f"❌ {e}")
        else:
            if isinstance(outcome, ConversionNeeded):
                st.warning(f"⚠️ {outcome.message}")
            else:
                st.session_state.last_summary = outcome
                st.success(
                    f"✅ {outcome.extracted} products extracted, {outcome.matched} matched to the catalog "
                    f"(avg. confidence {outcome.avg_confidence:.0f}%, {outcome.elapsed_ms / 1000:.1f}s, "
                    f"~${outcome.estimated_cost:.4f})"
                )

# ============================================================================
# LISTS
# ============================================================================
with tab_lists:
    col1, col2 = st.columns(2)
    state_filter = col1.selectbox("State", ["All"] + [s.value for s in ProcessingState])
    supplier_filter = col2.text_input("Supplier contains")

    price_lists = service.list_lists(
        company_id,
        state=None if state_filter == "All" else state_filter,
        supplier=supplier_filter or None,
    )
    if not price_lists:
        st.info("No price lists yet.")
    else:
        st.dataframe(_lists_frame(price_lists), hide_index=True, width="stretch")

        by_label = {_label(pl): pl for pl in price_lists}
        selected = st.selectbox("List", list(by_label))
        chosen = by_label[selected]

        col1, col2, col3 = st.columns(3)
        if col1.button("🔁 Reprocess", disabled=chosen.processing_state not in ("PENDING", "ERROR")):
            try:
                with st.spinner("🔄 Extracting products..."):
                    outcome = service.process_list(chosen.id, model=model, company_id=company_id)
                if isinstance(outcome, ConversionNeeded):
                    st.warning(f"⚠️ {outcome.message}")
                else:
                    st.success(f"✅ {outcome.extracted} products extracted")
            except PriceListError as e:
                st.error(f"❌ {e}")
        if col2.button("🗑️ Delete"):
            service.delete_list(company_id, chosen.id)
            st.rerun()
        if col3.button("🧹 Remove lists with missing files"):
            removed = service.cleanup_orphans(company_id)
            st.success(f"Removed {removed} orphaned lists")

        records = service.get_records(company_id, chosen.id)
        if records:
            st.dataframe(
                pd.DataFrame(
                    [
                        {
                            "Code": r.original_code,
                            "Name": r.original_name,
                            "Packaging": r.packaging_description,
                            "Unit": r.unit_of_measure,
                            "Price": r.unit_price,
                            "Confidence": r.extraction_confidence,
                            "Matched": bool(r.catalog_match_id),
                        }
                        for r in records
                    ]
                ),
                hide_index=True,
                width="stretch",
            )

# ============================================================================
# COMPARE
# ============================================================================
with tab_compare:
    completed = service.list_lists(company_id, state=ProcessingState.COMPLETED.value)
    by_label = {_label(pl): pl.id for pl in completed}
    chosen_labels = st.multiselect("Lists to compare (the first one is the reference)", list(by_label))

    if st.button("⚖️ Compare", type="primary", disabled=len(chosen_labels) < 2):
        try:
            with st.spinner("🔄 Matching products across suppliers..."):
                st.session_state.report = service.compare_lists(
                    company_id, [by_label[label] for label in chosen_labels], model=model
                )
        except PriceListError as e:
            st.error(f"❌ {e}")

    report = st.session_state.report
    if report is not None:
        stats = report.stats
        c1, c2, c3, c4 = st.columns(4)
        c1.metric("Products compared", report.run.total_products_compared)
        c2.metric("Matched", report.run.products_matched, f"{report.run.match_rate * 100:.0f}%")
        c3.metric("Average spread", f"{stats.average_spread_percent:.1f}%")
        c4.metric("Anomalies", stats.anomaly_count)
        if stats.cheapest_supplier:
            st.write(
                f"Cheapest supplier: **{stats.cheapest_supplier.supplier_name}** "
                f"({stats.cheapest_supplier.share_percent:.0f}% of products)"
            )

        st.dataframe(pd.DataFrame(report.as_rows()), hide_index=True, width="stretch")

        buffer = io.BytesIO()
        service.export_comparison(report, buffer)
        st.download_button(
            label="📥 Download Excel",
            data=buffer.getvalue(),
            file_name=f"comparison_{report.run.id[:8]}.xlsx",
            mime=XLSX_MIME,
            type="secondary",
            width="stretch",
            key="download_comparison",
        )

# ============================================================================
# HISTORY
# ============================================================================
with tab_history:
    col1, col2 = st.columns(2)
    date_from = col1.date_input("From", value=None)
    date_to = col2.date_input("To", value=None)
    runs = service.list_comparisons(company_id, date_from=date_from, date_to=date_to)
    if not runs:
        st.info("No comparisons yet.")
    else:
        st.dataframe(
            pd.DataFrame(
                [
                    {
                        "Date": run.created_at,
                        "Lists": len(run.list_ids or []),
                        "Compared": run.total_products_compared,
                        "Matched": run.products_matched,
                        "Match rate %": round((run.match_rate or 0) * 100, 1),
                        "State": run.state,
                        "Id": run.id,
                    }
                    for run in runs
                ]
            ),
            hide_index=True,
            width="stretch",
        )
        done = {f"{run.created_at:%Y-%m-%d %H:%M} ({run.id[:8]})": run.id for run in runs if run.state == "DONE"}
        if done:
            picked = st.selectbox("Comparison", list(done))
            if st.button("📂 Open comparison"):
                st.session_state.report = service.get_comparison(company_id, done[picked])
                st.rerun()
