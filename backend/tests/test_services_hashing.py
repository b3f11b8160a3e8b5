import pytest

from signproof.core.errors import DocumentHashError
from signproof.services.hashing import (
    PACKAGE_HASH_FIELDS,
    canonical_json,
    compute_document_hash,
    hash_fields,
    sha256_hex,
)


def test_document_hash_normalizes_line_endings() -> None:
    assert compute_document_hash("linha 1\r\nlinha 2\r\n") == compute_document_hash("linha 1\nlinha 2\n")


def test_document_hash_normalizes_unicode() -> None:
    composed = "Cl\u00e1usula"
    decomposed = "Cla\u0301usula"

    assert compute_document_hash(composed) == compute_document_hash(decomposed)


def test_document_hash_is_plain_sha256_of_canonical_text() -> None:
    assert compute_document_hash("abc") == sha256_hex(b"abc")


@pytest.mark.parametrize("content", [None, "", "   \n"])
def test_empty_document_cannot_be_hashed(content) -> None:
    with pytest.raises(DocumentHashError):
        compute_document_hash(content)


def test_canonical_json_is_key_order_independent() -> None:
    assert canonical_json({"b": 1, "a": "é"}) == canonical_json({"a": "é", "b": 1})
    assert canonical_json({"a": "é"}) == '{"a":"é"}'.encode("utf-8")


def test_hash_fields_depends_on_every_field() -> None:
    fields = {name: f"value-{name}" for name in PACKAGE_HASH_FIELDS}
    baseline = hash_fields(fields)

    for name in PACKAGE_HASH_FIELDS:
        changed = dict(fields, **{name: "other"})
        assert hash_fields(changed) != baseline, name


def test_hash_fields_ignores_unknown_keys() -> None:
    fields = {name: 1 for name in PACKAGE_HASH_FIELDS}

    assert hash_fields(fields) == hash_fields(dict(fields, extra="ignored"))
