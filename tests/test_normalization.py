import pytest

from fields.normalization import clamp_confidence, fold_accents, normalize_name, to_float, to_int


@pytest.mark.parametrize(
    "variant",
    [
        "Café Especial 500 GR",
        "CAFÉ ESPECIAL 500GR",
        "  café   especial, 500-gr ",
        "Café Especial (500 gr.)",
        "café especial 500 g caja",
    ],
)
def test_normalize_converges_on_one_key(variant):
    assert normalize_name(variant) == "café especial 500"


@pytest.mark.parametrize(
    "raw",
    ["Café Especial 500 GR Caja", "ARROZ x 1KG", "Aceite 1L display 12 und", "", "  ", "¡¿?!", "Ñame"],
)
def test_normalize_is_idempotent(raw):
    once = normalize_name(raw)
    assert normalize_name(once) == once


def test_normalize_overlaps_with_and_without_units():
    assert normalize_name("Café Especial 500 GR Caja") == "café especial 500"
    assert normalize_name("café especial caja") == "café especial"
    assert normalize_name("café especial caja") in normalize_name("Café Especial 500 GR Caja")


def test_normalize_empty_and_unit_only_inputs():
    assert normalize_name(None) == ""
    assert normalize_name("") == ""
    assert normalize_name("Caja x 12 und") == "12"
    assert normalize_name("KG") == ""


def test_fold_accents():
    assert fold_accents("café año pingüino") == "cafe ano pinguino"
    assert fold_accents(None) == ""


@pytest.mark.parametrize(
    "value, expected",
    [
        (12.5, 12.5),
        (3, 3.0),
        ("12.50", 12.5),
        ("12,50", 12.5),
        ("$1.234,50", 1234.5),
        ("1,234.50", 1234.5),
        ("Bs. 1,250.00", 1250.0),
        ("1,250", 1250.0),
        ("1.234.567", 1234567.0),
        ("USD 7", 7.0),
    ],
)
def test_to_float(value, expected):
    assert to_float(value) == pytest.approx(expected)


@pytest.mark.parametrize("value", [None, "", "n/a", True, float("nan")])
def test_to_float_rejects_non_numbers(value):
    assert to_float(value) is None


def test_to_int_rounds():
    assert to_int("84,6") == 85
    assert to_int(None) is None


@pytest.mark.parametrize(
    "value, expected",
    [(None, 85), ("", 85), ("abc", 85), (90, 90), ("72.4", 72), (150, 100), (-3, 0)],
)
def test_clamp_confidence(value, expected):
    assert clamp_confidence(value) == expected
