import io

import pytest
from openpyxl import Workbook

from conftest import FakeGenerator, product, products_json
from domain.enums import SourceFormat
from domain.errors import AIUnavailableError, ConversionNeededError, ExtractionFormatError
from extraction import ExtractionGateway, UnconfiguredGenerator, estimate_tokens
from input_readers import read_csv, read_excel, rows_to_text


def _xlsx_bytes(rows):
    wb = Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    buffer = io.BytesIO()
    wb.save(buffer)
    return buffer.getvalue()


def test_structured_csv_extraction():
    reply = products_json(
        product("Café Especial", "12.50", packaging="500GR"),
        product("Arroz", 3, code="A-1", confidence=150),
        product("   ", 1),
        product("Azúcar", -2),
        product("Sal", None, confidence=40),
    )
    generator = FakeGenerator(extraction=[reply])
    gateway = ExtractionGateway(generator)

    result = gateway.extract(b"Cafe Especial,500GR,12.50\nArroz,,3\n", SourceFormat.CSV, "gpt-4o-mini")

    call = generator.extraction_calls[0]
    assert call["media"] is None
    assert '["Cafe Especial", "500GR", "12.50"]' in call["prompt"]

    names = [r["name"] for r in result.records]
    assert names == ["Café Especial", "Arroz", "Sal"]
    assert result.records[0]["price"] == pytest.approx(12.5)
    assert result.records[0]["confidence"] == 85
    assert result.records[0]["packaging"] == "500GR"
    assert result.records[1]["confidence"] == 100
    assert result.records[1]["code"] == "A-1"
    assert result.records[2]["price"] == 0.0
    assert result.tokens_used == estimate_tokens(call["prompt"], reply)


def test_structured_xlsx_extraction_reads_rows():
    generator = FakeGenerator(extraction=[products_json(product("Harina PAN", 1.2))])
    document = _xlsx_bytes([["Producto", "Precio"], ["Harina PAN 1KG", 1.2], [None, None]])

    result = ExtractionGateway(generator).extract(document, SourceFormat.XLSX, "gpt-4o-mini")

    assert [r["name"] for r in result.records] == ["Harina PAN"]
    assert '["Harina PAN 1KG", 1.2]' in generator.extraction_calls[0]["prompt"]


def test_multimodal_image_extraction():
    generator = FakeGenerator(extraction=["```json\n" + products_json(product("Leche", 2.1)) + "\n```"])
    result = ExtractionGateway(generator).extract(b"\x89PNG fake", SourceFormat.PNG, "gpt-4o")

    media = generator.extraction_calls[0]["media"]
    assert media.mime_type == "image/png"
    assert media.is_image
    assert media.data_url.startswith("data:image/png;base64,")
    assert [r["name"] for r in result.records] == ["Leche"]
    assert result.tokens_used > estimate_tokens(generator.extraction_calls[0]["prompt"], "")


def test_pdf_without_multimodal_support_needs_conversion():
    generator = FakeGenerator()
    gateway = ExtractionGateway(generator)

    assert gateway.requires_conversion(SourceFormat.PDF)
    with pytest.raises(ConversionNeededError) as exc:
        gateway.extract(b"%PDF-1.4", SourceFormat.PDF, "gpt-4o-mini")
    assert exc.value.source_format == "pdf"
    assert generator.calls == []


def test_pdf_with_multimodal_support_is_sent_inline():
    generator = FakeGenerator(extraction=[products_json(product("Queso", 8))], supports_pdf=True)
    gateway = ExtractionGateway(generator)

    assert not gateway.requires_conversion(SourceFormat.PDF)
    result = gateway.extract(b"%PDF-1.4", SourceFormat.PDF, "gpt-4o-mini")

    media = generator.extraction_calls[0]["media"]
    assert media.mime_type == "application/pdf"
    assert not media.is_image
    assert len(result.records) == 1


def test_prose_reply_is_a_format_error():
    generator = FakeGenerator(extraction=["Sorry, this document does not look like a price list."])
    with pytest.raises(ExtractionFormatError):
        ExtractionGateway(generator).extract(b"a,b\n", SourceFormat.CSV, "gpt-4o-mini")


def test_empty_document_is_a_format_error():
    with pytest.raises(ExtractionFormatError):
        ExtractionGateway(FakeGenerator()).extract(b"", SourceFormat.CSV, "gpt-4o-mini")


def test_unreadable_spreadsheet_is_a_format_error():
    with pytest.raises(ExtractionFormatError):
        ExtractionGateway(FakeGenerator()).extract(b"not a zip file", SourceFormat.XLSX, "gpt-4o-mini")


def test_unconfigured_ai_is_unavailable():
    with pytest.raises(AIUnavailableError):
        ExtractionGateway(UnconfiguredGenerator()).extract(b"a,1\n", SourceFormat.CSV, "gpt-4o-mini")


def test_rows_to_text_is_bounded():
    rows = [["product %d" % i, i] for i in range(1000)]
    text = rows_to_text(rows, max_chars=500)
    assert len(text) == 500
    assert text.startswith('["product 0", 0]')


def test_read_csv_sniffs_semicolons_and_decodes_latin1():
    content = "Código;Descripción;Precio\nA1;Café;12,50\n".encode("cp1252")
    assert read_csv(content) == [["Código", "Descripción", "Precio"], ["A1", "Café", "12,50"]]


def test_read_excel_trims_trailing_empty_cells():
    rows = read_excel(_xlsx_bytes([["A", 1, None, None], [None, None], ["B", 2]]))
    assert rows == [["A", 1], ["B", 2]]
