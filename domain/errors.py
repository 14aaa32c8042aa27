"""
Exception taxonomy for the price-list engine.

Every low-level failure (SQLAlchemy, OpenAI, filesystem, JSON) is wrapped into
one of these before it crosses a component boundary, so callers only ever need
to handle `PriceListError` subclasses.
"""

from __future__ import annotations


class PriceListError(RuntimeError):
    """Base class for every error raised by the engine."""
    pass


class InputValidationError(PriceListError, ValueError):
    """Raised synchronously, before any state mutation, for bad caller input."""
    pass


class NotFoundError(PriceListError):
    """Raised when a list, comparison or catalog entry does not exist for the company."""
    pass


class InvalidStateError(PriceListError):
    """Raised when a list is not in a state that allows the requested transition."""
    pass


class AIUnavailableError(PriceListError):
    """Raised when the AI capability is not configured or the call itself failed."""
    pass


class ExtractionFormatError(PriceListError):
    """Raised when the AI reply cannot be parsed as a JSON array of products."""
    pass


class ConversionNeededError(PriceListError):
    """Raised when a document has to be resubmitted in another format (e.g. PDF as image)."""

    def __init__(self, source_format: str, message: str | None = None):
        self.source_format = source_format
        super().__init__(
            message
            or f"Documents in '{source_format}' format cannot be read directly. "
            "Convert the document to an image (PNG/JPG) and upload it again."
        )


class DocumentStoreError(PriceListError):
    """Raised when the document store cannot save, load or delete a document."""
    pass


class ProcessingError(PriceListError):
    """Raised when processing a list failed and the list was moved to ERROR."""
    pass


class ComparisonError(PriceListError):
    """Raised when a comparison run failed and was moved to ERROR."""
    pass
