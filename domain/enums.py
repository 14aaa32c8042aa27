"""Closed value sets shared by the ingestion, matching and comparison layers."""

from __future__ import annotations

from enum import Enum


class ProcessingState(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


REPROCESSABLE_STATES = (ProcessingState.PENDING, ProcessingState.ERROR)


class ComparisonState(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    DONE = "DONE"
    ERROR = "ERROR"


class Currency(str, Enum):
    USD = "USD"
    BS = "BS"


REFERENCE_CURRENCY = Currency.USD


class SourceFormat(str, Enum):
    XLSX = "xlsx"
    XLS = "xls"
    CSV = "csv"
    PDF = "pdf"
    PNG = "png"
    JPG = "jpg"
    JPEG = "jpeg"
    WEBP = "webp"
    HEIC = "heic"
    HEIF = "heif"

    @classmethod
    def from_filename(cls, filename: str) -> "SourceFormat | None":
        if not filename or "." not in filename:
            return None
        extension = filename.rsplit(".", 1)[-1].strip().lower()
        try:
            return cls(extension)
        except ValueError:
            return None

    @property
    def is_tabular(self) -> bool:
        return self in TABULAR_FORMATS

    @property
    def is_image(self) -> bool:
        return self in IMAGE_FORMATS

    @property
    def mime_type(self) -> str:
        return MIME_TYPES.get(self, "application/octet-stream")


TABULAR_FORMATS = frozenset({SourceFormat.XLSX, SourceFormat.XLS, SourceFormat.CSV})
IMAGE_FORMATS = frozenset(
    {
        SourceFormat.PNG,
        SourceFormat.JPG,
        SourceFormat.JPEG,
        SourceFormat.WEBP,
        SourceFormat.HEIC,
        SourceFormat.HEIF,
    }
)

MIME_TYPES = {
    SourceFormat.PDF: "application/pdf",
    SourceFormat.PNG: "image/png",
    SourceFormat.JPG: "image/jpeg",
    SourceFormat.JPEG: "image/jpeg",
    SourceFormat.WEBP: "image/webp",
    SourceFormat.HEIC: "image/heic",
    SourceFormat.HEIF: "image/heif",
    SourceFormat.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    SourceFormat.XLS: "application/vnd.ms-excel",
    SourceFormat.CSV: "text/csv",
}


class AIModel(str, Enum):
    GPT_4O_MINI = "gpt-4o-mini"
    GPT_4O = "gpt-4o"
    GPT_41_MINI = "gpt-4.1-mini"


class AnomalyFlag(str, Enum):
    ABNORMAL_RISE = "abnormal-rise"


class AIOperation(str, Enum):
    EXTRACTION = "extraction"
    MATCHING = "matching"
