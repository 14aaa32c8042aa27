"""
Service facade exposed to the UI and other collaborators.

build_service() decides every collaborator once, from configuration: the
relational store, the document store, the AI capability (OpenAI or the
unconfigured stand-in) and the search index (fuzzy catalog index or disabled).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import BinaryIO, List, Optional, Sequence, Union

from comparison import Comparator, export_results_to_excel
from config import CATALOG_CODE_STATE, DEFAULT_MODEL, SEARCH_INDEX_ENABLED
from domain.results import ComparisonReport, ProcessingOutcome
from extraction import ExtractionGateway, TextGenerator, build_generator
from matching import FuzzyCatalogIndex, MatchingEngine, NullSearchIndex
from processing import ListProcessor
from storage import FileSystemDocumentStore, PriceRepository
from storage.document_store import DocumentStore
from storage.models import ComparisonRun, ListRecord, PriceList

logger = logging.getLogger(__name__)


class PriceComparisonService:
    def __init__(self, processor: ListProcessor, comparator: Comparator):
        self.processor = processor
        self.comparator = comparator

    # Lists
    def upload_list(
        self,
        company_id: str,
        filename: str,
        content: bytes,
        supplier_name: str,
        list_date=None,
        currency: str = "USD",
        exchange_rate: Optional[float] = None,
    ) -> str:
        return self.processor.upload_list(
            company_id,
            filename,
            content,
            supplier_name,
            list_date=list_date,
            currency=currency,
            exchange_rate=exchange_rate,
        )

    def process_list(self, list_id: str, model=DEFAULT_MODEL, company_id: Optional[str] = None) -> ProcessingOutcome:
        return self.processor.process_list(list_id, model=model, company_id=company_id)

    def list_lists(self, company_id: str, state=None, supplier: Optional[str] = None) -> List[PriceList]:
        return self.processor.list_lists(company_id, state=state, supplier=supplier)

    def get_list(self, company_id: str, list_id: str) -> PriceList:
        return self.processor.get_list(company_id, list_id)

    def get_records(self, company_id: str, list_id: str) -> List[ListRecord]:
        return self.processor.get_records(company_id, list_id)

    def delete_list(self, company_id: str, list_id: str) -> None:
        self.processor.delete_list(company_id, list_id)

    def cleanup_orphans(self, company_id: str) -> int:
        return self.processor.cleanup_orphans(company_id)

    # Comparisons
    def compare_lists(self, company_id: str, list_ids: Sequence[str], model=None) -> ComparisonReport:
        return self.comparator.compare(company_id, list_ids, model=model)

    def list_comparisons(self, company_id: str, date_from=None, date_to=None) -> List[ComparisonRun]:
        return self.comparator.list_comparisons(company_id, date_from=date_from, date_to=date_to)

    def get_comparison(self, company_id: str, run_id: str) -> ComparisonReport:
        return self.comparator.get_results(company_id, run_id)

    def export_comparison(self, report: ComparisonReport, output: Union[str, Path, BinaryIO]):
        return export_results_to_excel(report, output)


def build_service(
    database_url: Optional[str] = None,
    document_store: Optional[DocumentStore] = None,
    generator: Optional[TextGenerator] = None,
    search_enabled: bool = SEARCH_INDEX_ENABLED,
    code_state_path: Optional[Path] = None,
) -> PriceComparisonService:
    """Wire every collaborator once; arguments override configuration (used by tests)."""
    repository = PriceRepository.from_url(database_url)
    store = document_store or FileSystemDocumentStore()
    ai = generator or build_generator()

    if search_enabled:
        search_index = FuzzyCatalogIndex(repository)
    else:
        logger.warning("Search index disabled; matching uses the local catalog scan")
        search_index = NullSearchIndex()

    matcher = MatchingEngine(
        repository,
        search_index,
        ai,
        code_state_path=code_state_path or CATALOG_CODE_STATE,
    )
    processor = ListProcessor(repository, store, ExtractionGateway(ai), matcher)
    return PriceComparisonService(processor, Comparator(repository, matcher))
