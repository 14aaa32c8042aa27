from .list_processor import ListProcessor  # noqa: F401
