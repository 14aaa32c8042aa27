import json
import re
import threading
from datetime import date

import pytest

from domain.enums import ProcessingState
from domain.errors import AIUnavailableError
from interface.service import build_service
from matching import FuzzyCatalogIndex, MatchingEngine, NullSearchIndex
from storage import FileSystemDocumentStore, ListRecord, PriceList, PriceRepository
from fields.normalization import normalize_name

_PAIR_LINE = re.compile(r"^Product ([12]): (.*)$", flags=re.MULTILINE)


class FakeGenerator:
    """
    Scripted AI capability.

    Extraction prompts pop the next reply from `extraction` (a string, or an
    exception instance to raise). Pair prompts are answered by `pair`, either a
    fixed string or a callable taking both product descriptions.
    """

    def __init__(self, extraction=None, pair="0", supports_pdf=False):
        self.extraction = list(extraction or [])
        self.pair = pair
        self.supports_pdf = supports_pdf
        self.calls = []
        self._lock = threading.Lock()

    @property
    def pair_calls(self):
        return [c for c in self.calls if c["kind"] == "pair"]

    @property
    def extraction_calls(self):
        return [c for c in self.calls if c["kind"] == "extraction"]

    def generate(self, prompt, model, media=None, max_tokens=None):
        products = dict(_PAIR_LINE.findall(prompt))
        if products:
            with self._lock:
                self.calls.append({"kind": "pair", "prompt": prompt, "model": model, "products": products})
            if callable(self.pair):
                return self.pair(products["1"], products["2"])
            return self.pair

        with self._lock:
            self.calls.append({"kind": "extraction", "prompt": prompt, "model": model, "media": media})
            if not self.extraction:
                raise AIUnavailableError("no scripted extraction reply left")
            reply = self.extraction.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def products_json(*products):
    return json.dumps(list(products), ensure_ascii=False)


def product(name, price, code=None, packaging=None, confidence=None, **extra):
    item = {"name": name, "price": price, "code": code, "packaging": packaging}
    if confidence is not None:
        item["confidence"] = confidence
    item.update(extra)
    return item


@pytest.fixture
def repository():
    return PriceRepository.from_url("sqlite://")


@pytest.fixture
def document_store(tmp_path):
    return FileSystemDocumentStore(tmp_path / "documents")


@pytest.fixture
def code_state(tmp_path):
    return tmp_path / "catalog_codes.json"


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest.fixture
def matcher(repository, generator, code_state):
    return MatchingEngine(repository, NullSearchIndex(), generator, code_state_path=code_state)


@pytest.fixture
def fuzzy_matcher(repository, generator, code_state):
    return MatchingEngine(repository, FuzzyCatalogIndex(repository), generator, code_state_path=code_state)


@pytest.fixture
def make_service(tmp_path, code_state):
    def _make(generator, search_enabled=True):
        return build_service(
            database_url="sqlite://",
            document_store=FileSystemDocumentStore(tmp_path / "documents"),
            generator=generator,
            search_enabled=search_enabled,
            code_state_path=code_state,
        )

    return _make


@pytest.fixture
def make_list(repository):
    """Persist a COMPLETED price list with records given as (name, price[, code[, packaging]]) tuples."""

    def _make(company_id, supplier, rows, currency="USD", exchange_rate=None, state=ProcessingState.COMPLETED):
        price_list = repository.add_price_list(
            PriceList(
                company_id=company_id,
                supplier_name=supplier,
                list_date=date.today(),
                currency=currency,
                exchange_rate=exchange_rate,
                source_file_ref=f"{company_id}/{supplier}.csv",
                source_format="csv",
                processing_state=state.value,
                extracted_product_count=len(rows),
            )
        )
        records = []
        for idx, row in enumerate(rows, start=1):
            name, price = row[0], row[1]
            code = row[2] if len(row) > 2 else None
            packaging = row[3] if len(row) > 3 else None
            records.append(
                ListRecord(
                    list_id=price_list.id,
                    source_row=idx,
                    original_code=code,
                    original_name=name,
                    normalized_name=normalize_name(name),
                    packaging_description=packaging,
                    unit_price=price,
                    price_currency=currency,
                    extraction_confidence=90,
                )
            )
        repository.add_records(records)
        return price_list, records

    return _make
