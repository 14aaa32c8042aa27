import pytest

from domain.errors import DocumentStoreError
from storage.document_store import safe_filename


def test_upload_download_delete(document_store):
    ref = document_store.upload("acme", "Lista Proveedor A.xlsx", b"content")

    assert ref.startswith("acme/")
    assert ref.endswith("_Lista_Proveedor_A.xlsx")
    assert document_store.exists(ref)
    assert document_store.download(ref) == b"content"

    document_store.delete(ref)
    assert not document_store.exists(ref)
    document_store.delete(ref)


def test_missing_document(document_store):
    with pytest.raises(DocumentStoreError):
        document_store.download("acme/missing.csv")


@pytest.mark.parametrize("ref", ["../outside.csv", "acme/../../outside.csv", "/etc/passwd", ""])
def test_references_cannot_escape_the_root(document_store, ref):
    with pytest.raises(DocumentStoreError):
        document_store.download(ref)
    assert not document_store.exists(ref)


def test_uploaded_names_are_sanitized(document_store):
    ref = document_store.upload("../acme", "../../evil name?.csv", b"x")
    assert ref.startswith("acme/")
    assert ".." not in ref
    assert document_store.download(ref) == b"x"


@pytest.mark.parametrize(
    "raw, expected",
    [("lista.csv", "lista.csv"), ("dir\\sub\\lista.csv", "lista.csv"), ("café 1.png", "caf_1.png"), ("..", "document")],
)
def test_safe_filename(raw, expected):
    assert safe_filename(raw) == expected
