from .document_store import FileSystemDocumentStore  # noqa: F401
from .models import CatalogEntry, ComparisonResult, ComparisonRun, ListRecord, PriceList  # noqa: F401
from .repository import PriceRepository  # noqa: F401
