import pytest

from conftest import FakeGenerator, product, products_json
from comparison import Comparator, spread_percent, to_usd
from domain.enums import ComparisonState, ProcessingState
from domain.errors import ComparisonError, InputValidationError, InvalidStateError, NotFoundError
from fields.normalization import fold_accents
from matching import MatchingEngine, NullSearchIndex
from storage import CatalogEntry, PriceList


def same_first_word(first, second):
    """Pair scorer: products sharing their first word are the same product."""
    a = fold_accents(first.split()[0].lower())
    b = fold_accents(second.split()[0].lower())
    return "0.9" if a == b else "0.1"


@pytest.fixture
def make_comparator(repository, code_state):
    def _make(generator, **kwargs):
        matcher = MatchingEngine(repository, NullSearchIndex(), generator, code_state_path=code_state)
        return Comparator(repository, matcher, **kwargs)

    return _make


def test_spread_and_currency_helpers():
    assert spread_percent([12.5, 12.8]) == pytest.approx(2.34375)
    assert spread_percent([0, 0]) == 0.0
    assert to_usd(500, PriceList(currency="BS", exchange_rate=40)) == 12.5
    assert to_usd(7.5, PriceList(currency="USD", exchange_rate=None)) == 7.5


def test_two_suppliers_end_to_end(make_service):
    generator = FakeGenerator(
        extraction=[
            products_json(product("Café Especial 500 GR", 12.50)),
            products_json(product("CAFE ESPECIAL 500GR", 12.80)),
        ],
        pair="0.92",
    )
    service = make_service(generator)
    first = service.upload_list("acme", "norte.csv", b"Producto,Precio\nCafe Especial 500 GR,12.50\n", "Norte")
    second = service.upload_list("acme", "sur.csv", b"Producto,Precio\nCAFE ESPECIAL 500GR,12.80\n", "Sur")
    service.process_list(first)
    service.process_list(second)

    report = service.compare_lists("acme", [first, second])

    assert report.run.state == ComparisonState.DONE.value
    assert report.run.total_products_compared == 1
    assert report.run.products_matched == 1
    assert report.run.match_rate == 1.0

    (result,) = report.results
    assert len(result.per_supplier_prices) == 2
    assert result.best_price["supplier_name"] == "Norte"
    assert result.best_price["amount"] == pytest.approx(12.5)
    assert result.spread_percent == pytest.approx(2.34, abs=0.1)
    assert result.anomaly_flag is None
    assert [p["confidence_percent"] for p in result.per_supplier_prices] == [100, 92]
    assert report.stats.cheapest_supplier.supplier_name == "Norte"

    stored = service.get_comparison("acme", report.run.id)
    assert [r.id for r in stored.results] == [result.id]


def test_packaging_column_and_name_suffix_are_compared(make_service):
    generator = FakeGenerator(
        extraction=[
            products_json(product("Café Especial", 12.50, packaging="500GR")),
            products_json(product("CAFE ESPECIAL 500 GR", 12.80)),
        ],
        pair=lambda first, second: "0.92" if (first, second) == ("Café Especial 500GR", "CAFE ESPECIAL 500 GR") else "0",
    )
    service = make_service(generator)
    first = service.upload_list(
        "acme", "norte.csv", "Producto,Empaque,Precio\nCafé Especial,500GR,12.50\n".encode("utf-8"), "Norte"
    )
    second = service.upload_list(
        "acme", "sur.csv", "Producto,Empaque,Precio\nCAFE ESPECIAL 500 GR,,12.80\n".encode("utf-8"), "Sur"
    )
    service.process_list(first)
    service.process_list(second)

    report = service.compare_lists("acme", [first, second])

    assert len(generator.pair_calls) == 1
    (result,) = report.results
    assert len(result.per_supplier_prices) == 2
    assert result.packaging_description == "500GR"
    assert [p["price"] for p in result.per_supplier_prices] == [12.5, 12.8]
    assert result.spread_percent == pytest.approx(2.34, abs=0.1)


def test_contained_catalog_name_does_not_shortcut_the_comparison(make_service):
    generator = FakeGenerator(
        extraction=[
            products_json(product("Leche", 1.0)),
            products_json(product("LECHE", 1.1)),
            products_json(product("Leche Condensada", 3.0)),
        ],
        pair=lambda first, second: "0.95" if first.lower() == second.lower() else "0.2",
    )
    service = make_service(generator)
    a = service.upload_list("acme", "a.csv", b"Producto,Precio\nLeche,1.0\n", "A")
    b = service.upload_list("acme", "b.csv", b"Producto,Precio\nLECHE,1.1\n", "B")
    service.process_list(a)
    service.process_list(b)
    assert len(service.compare_lists("acme", [a, b]).results) == 1

    c = service.upload_list("acme", "c.csv", b"Producto,Precio\nLeche Condensada,3.0\n", "C")
    summary = service.process_list(c)
    calls_before = len(generator.pair_calls)

    report = service.compare_lists("acme", [a, c])

    assert summary.matched == 0
    assert service.get_records("acme", c)[0].catalog_match_id is None
    assert len(generator.pair_calls) == calls_before + 1
    assert report.results == []
    assert report.run.match_rate == 0.0


def test_match_rate_counts_anchor_groups(make_list, make_comparator):
    a, _ = make_list("acme", "A", [("Café Especial", 10.0), ("Detergente Líquido", 4.0)])
    b, _ = make_list("acme", "B", [("CAFE ESPECIAL", 11.0)])
    c, _ = make_list("acme", "C", [("Jabón en Barra", 2.0)])
    comparator = make_comparator(FakeGenerator(pair=same_first_word))

    report = comparator.compare("acme", [a.id, b.id, c.id])

    assert report.run.total_products_compared == 2
    assert report.run.products_matched == 1
    assert report.run.match_rate == pytest.approx(0.5)
    assert report.run.match_rate < 1
    (result,) = report.results
    assert [p["supplier_name"] for p in result.per_supplier_prices] == ["A", "B"]


def test_a_record_joins_at_most_one_group(make_list, make_comparator):
    a, _ = make_list("acme", "A", [("Café Especial", 10.0), ("Café Molido", 9.0)])
    b, _ = make_list("acme", "B", [("CAFE ESPECIAL", 11.0)])
    c, _ = make_list("acme", "C", [("Café Premium", 12.0), ("Café Tostado", 8.0)])
    comparator = make_comparator(FakeGenerator(pair="0.9"))

    report = comparator.compare("acme", [a.id, b.id, c.id])

    record_ids = [p["record_id"] for r in report.results for p in r.per_supplier_prices]
    assert len(record_ids) == len(set(record_ids))
    assert len(report.results) == 2
    assert report.run.total_products_compared == 2


def test_bs_prices_are_normalized_to_usd(make_list, make_comparator):
    a, _ = make_list("acme", "A", [("Harina PAN", 13.0)])
    b, _ = make_list("acme", "B", [("HARINA PAN 1KG", 500.0)], currency="BS", exchange_rate=40)
    comparator = make_comparator(FakeGenerator(pair="0.9"))

    (result,) = comparator.compare("acme", [a.id, b.id]).results

    bs_price = next(p for p in result.per_supplier_prices if p["supplier_name"] == "B")
    assert bs_price["price"] == 500.0
    assert bs_price["currency"] == "BS"
    assert bs_price["normalized_price_usd"] == pytest.approx(12.5)
    assert result.best_price["supplier_name"] == "B"
    assert result.best_price["amount"] == pytest.approx(12.5)
    assert result.spread_percent == pytest.approx((13.0 - 12.5) / 13.0 * 100)


def test_large_spread_is_flagged(make_list, make_comparator):
    a, _ = make_list("acme", "A", [("Aceite Vegetal", 10.0)])
    b, _ = make_list("acme", "B", [("ACEITE VEGETAL 1L", 25.0)])
    comparator = make_comparator(FakeGenerator(pair="0.9"))

    report = comparator.compare("acme", [a.id, b.id])

    (result,) = report.results
    assert result.spread_percent == pytest.approx(60.0)
    assert result.anomaly_flag == "abnormal-rise"
    assert report.stats.anomaly_count == 1


def test_shared_catalog_entry_skips_pair_scoring(repository, make_list, make_comparator):
    a, (rec_a,) = make_list("acme", "A", [("Leche Completa", 2.0)])
    b, (rec_b,) = make_list("acme", "B", [("LECHE ENTERA", 2.2)])
    generator = FakeGenerator(pair="0.9")
    comparator = make_comparator(generator)
    entry = repository.add_entry(
        CatalogEntry(company_id="acme", code="L1", canonical_name="Leche", alternate_names=["Leche"])
    )
    comparator.matcher.link(rec_a, entry)
    comparator.matcher.link(rec_b, entry)

    (result,) = comparator.compare("acme", [a.id, b.id]).results

    assert generator.pair_calls == []
    assert result.catalog_entry_id == entry.id
    assert result.product_name == "Leche"
    assert [p["confidence_percent"] for p in result.per_supplier_prices] == [100, 100]


def test_near_certain_score_stops_the_candidate_scan(make_list, make_comparator):
    a, _ = make_list("acme", "A", [("Azúcar", 1.0)])
    b, _ = make_list("acme", "B", [("Azúcar Blanca", 1.1), ("Azúcar Morena", 1.2), ("Azúcar Refinada", 1.3)])
    generator = FakeGenerator(pair="0.96")
    comparator = make_comparator(generator, workers=1)

    (result,) = comparator.compare("acme", [a.id, b.id]).results

    assert len(generator.pair_calls) == 1
    assert result.per_supplier_prices[1]["product_name"] == "Azúcar Blanca"


def test_first_highest_score_wins(make_list, make_comparator):
    a, _ = make_list("acme", "A", [("Pasta Larga", 1.0)])
    b, _ = make_list("acme", "B", [("Pasta Corta", 1.1), ("Pasta Larga 500", 1.2), ("Pasta Larga 1KG", 1.3)])
    scores = {"Pasta Corta": "0.75", "Pasta Larga 500": "0.9", "Pasta Larga 1KG": "0.9"}
    comparator = make_comparator(FakeGenerator(pair=lambda first, second: scores[second]), workers=1)

    (result,) = comparator.compare("acme", [a.id, b.id]).results

    assert result.per_supplier_prices[1]["product_name"] == "Pasta Larga 500"
    assert result.per_supplier_prices[1]["confidence_percent"] == 90


def test_candidates_are_capped(make_list, make_comparator):
    a, _ = make_list("acme", "A", [("Galletas", 1.0)])
    b, _ = make_list("acme", "B", [(f"Producto {i}", 1.0) for i in range(5)])
    generator = FakeGenerator(pair="0.5")
    comparator = make_comparator(generator, max_candidates=2, workers=1)

    report = comparator.compare("acme", [a.id, b.id])

    assert len(generator.pair_calls) == 2
    assert report.results == []
    assert report.run.products_matched == 0
    assert report.run.match_rate == 0.0


def test_unavailable_ai_means_no_match(make_list, make_comparator):
    a, _ = make_list("acme", "A", [("Galletas", 1.0)])
    b, _ = make_list("acme", "B", [("GALLETAS", 1.0)])
    comparator = make_comparator(FakeGenerator(pair="no idea"))

    report = comparator.compare("acme", [a.id, b.id])

    assert report.run.state == ComparisonState.DONE.value
    assert report.results == []


class TestValidation:
    def test_needs_two_distinct_lists(self, repository, make_list, make_comparator):
        a, _ = make_list("acme", "A", [("Café", 1.0)])
        comparator = make_comparator(FakeGenerator())

        with pytest.raises(InputValidationError):
            comparator.compare("acme", [a.id])
        with pytest.raises(InputValidationError):
            comparator.compare("acme", [a.id, a.id])
        assert repository.list_runs("acme") == []

    def test_lists_of_other_companies_are_not_found(self, repository, make_list, make_comparator):
        a, _ = make_list("acme", "A", [("Café", 1.0)])
        b, _ = make_list("globex", "B", [("Café", 1.0)])
        comparator = make_comparator(FakeGenerator())

        with pytest.raises(NotFoundError):
            comparator.compare("acme", [a.id, b.id])
        with pytest.raises(NotFoundError):
            comparator.compare("acme", [a.id, "missing"])
        assert repository.list_runs("acme") == []

    def test_only_completed_lists(self, repository, make_list, make_comparator):
        a, _ = make_list("acme", "A", [("Café", 1.0)])
        b, _ = make_list("acme", "B", [("Café", 1.0)], state=ProcessingState.ERROR)

        with pytest.raises(InvalidStateError):
            make_comparator(FakeGenerator()).compare("acme", [a.id, b.id])
        assert repository.list_runs("acme") == []

    def test_bs_list_needs_a_rate(self, repository, make_list, make_comparator):
        a, _ = make_list("acme", "A", [("Café", 1.0)])
        b, _ = make_list("acme", "B", [("Café", 100.0)], currency="BS")

        with pytest.raises(InputValidationError, match="exchange rate"):
            make_comparator(FakeGenerator()).compare("acme", [a.id, b.id])
        assert repository.list_runs("acme") == []


def test_failure_moves_the_run_to_error(repository, make_list, make_comparator, monkeypatch):
    a, _ = make_list("acme", "A", [("Café", 1.0)])
    b, _ = make_list("acme", "B", [("CAFE", 1.2)])
    comparator = make_comparator(FakeGenerator(pair="0.9"))

    def broken(company_id, records):
        raise RuntimeError("catalog write failed")

    monkeypatch.setattr(comparator.matcher, "upsert_group", broken)

    with pytest.raises(ComparisonError, match="catalog write failed"):
        comparator.compare("acme", [a.id, b.id])

    (run,) = repository.list_runs("acme")
    assert run.state == ComparisonState.ERROR.value
    assert "catalog write failed" in run.error_message
    assert repository.results_for_run(run.id) == []


def test_history_and_results_are_company_scoped(make_list, make_comparator):
    a, _ = make_list("acme", "A", [("Café", 1.0)])
    b, _ = make_list("acme", "B", [("CAFE", 1.2)])
    comparator = make_comparator(FakeGenerator(pair="0.9"))
    report = comparator.compare("acme", [a.id, b.id])

    assert [run.id for run in comparator.list_comparisons("acme")] == [report.run.id]
    assert comparator.list_comparisons("globex") == []
    assert len(comparator.get_results("acme", report.run.id).results) == 1
    with pytest.raises(NotFoundError):
        comparator.get_results("globex", report.run.id)
