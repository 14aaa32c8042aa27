from .comparator import Comparator, spread_percent, to_usd  # noqa: F401
from .export import export_results_to_excel  # noqa: F401
from .statistics import compute_statistics  # noqa: F401
