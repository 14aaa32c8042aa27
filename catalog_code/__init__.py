from .logic import CatalogCodeConfig, CatalogCodeError, allocate, format_catalog_code, peek_next  # noqa: F401
