"""
Document store for uploaded supplier files.

Documents are addressed by a relative path reference
`<company_id>/<timestamp>_<filename>`. FileSystemDocumentStore keeps them
under a root directory and refuses references that resolve outside it.
"""

from __future__ import annotations

import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Protocol

from config import DOCUMENT_STORE_ROOT
from domain.errors import DocumentStoreError

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(filename: str) -> str:
    """Basename of `filename` with every character outside [A-Za-z0-9._-] replaced by '_'."""
    name = Path(str(filename).replace("\\", "/")).name
    name = _UNSAFE.sub("_", name).strip("._")
    return name or "document"


class DocumentStore(Protocol):
    def upload(self, company_id: str, filename: str, content: bytes) -> str:
        ...

    def download(self, path_ref: str) -> bytes:
        ...

    def delete(self, path_ref: str) -> None:
        ...

    def exists(self, path_ref: str) -> bool:
        ...


class FileSystemDocumentStore:
    def __init__(self, root: Optional[Path] = None):
        self.root = Path(root or DOCUMENT_STORE_ROOT).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path_ref: str) -> Path:
        if not path_ref:
            raise DocumentStoreError("Empty document reference")
        path = (self.root / path_ref).resolve()
        if path != self.root and self.root not in path.parents:
            raise DocumentStoreError(f"Document reference escapes the store root: {path_ref!r}")
        return path

    def upload(self, company_id: str, filename: str, content: bytes) -> str:
        company_dir = safe_filename(company_id)
        timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%f")
        path_ref = f"{company_dir}/{timestamp}_{safe_filename(filename)}"

        path = self._resolve(path_ref)
        tmp_path = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_bytes(content)
            tmp_path.replace(path)
        except OSError as e:
            raise DocumentStoreError(f"Failed to store document {path_ref!r}: {e}") from e

        logger.info("Stored document %s (%d bytes)", path_ref, len(content))
        return path_ref

    def download(self, path_ref: str) -> bytes:
        path = self._resolve(path_ref)
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise DocumentStoreError(f"Document not found: {path_ref!r}") from e
        except OSError as e:
            raise DocumentStoreError(f"Failed to read document {path_ref!r}: {e}") from e

    def delete(self, path_ref: str) -> None:
        path = self._resolve(path_ref)
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise DocumentStoreError(f"Failed to delete document {path_ref!r}: {e}") from e

    def exists(self, path_ref: str) -> bool:
        try:
            return self._resolve(path_ref).is_file()
        except DocumentStoreError:
            return False
