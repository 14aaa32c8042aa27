from .excel import read_excel, read_legacy_excel  # noqa: F401
from .delimited import read_csv  # noqa: F401
from .image import InlineMedia, to_inline_media  # noqa: F401
from .tabular import rows_to_text  # noqa: F401
