from .engine import MatchingEngine  # noqa: F401
from .search_index import FuzzyCatalogIndex, NullSearchIndex  # noqa: F401
