"""
Protocolo de hashes do pacote de evidências.

Tudo aqui é puro e reprodutível fora do sistema:

* ``document_content_hash`` = SHA-256 (hex) do texto canônico do contrato:
  normalização Unicode NFC e quebras de linha ``\\n``. Nunca sobre HTML renderizado.
* ``package_hash`` = SHA-256 (hex) sobre os campos congelados, na ordem de
  ``PACKAGE_HASH_FIELDS``. Cada campo entra como ``<nome>=<json canônico>\\n``,
  onde o JSON canônico usa chaves ordenadas, separadores ``,`` e ``:`` sem
  espaços e UTF-8 sem escape. Datas seguem a serialização ISO 8601 do pydantic.
"""
from __future__ import annotations

import hashlib
import json
import unicodedata
from typing import Any, Mapping

from signproof.core.errors import DocumentHashError
from signproof.schemas.evidence import SignerSnapshot

PACKAGE_HASH_FIELDS: tuple[str, ...] = (
    "contract_id",
    "signature_id",
    "document_content_hash",
    "document_version",
    "signature_image_sha256",
    "party",
    "consents",
    "required_consents",
    "witness",
    "notary",
    "device",
    "geolocation",
    "ip_address",
    "signature_metadata",
    "signed_at",
)


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def canonical_json(value: Any) -> bytes:
    return json.dumps(
        value,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    ).encode("utf-8")


def canonical_document_text(content: str) -> str:
    text = content.replace("\r\n", "\n").replace("\r", "\n")
    return unicodedata.normalize("NFC", text)


def compute_document_hash(content: str | None) -> str:
    if content is None or not content.strip():
        raise DocumentHashError("Document content is empty; refusing to hash an unknown version.")
    return sha256_hex(canonical_document_text(content).encode("utf-8"))


def package_hash_fields(contract_id: str, signature_id: str, snapshot: SignerSnapshot) -> dict[str, Any]:
    data = snapshot.model_dump(mode="json")
    fields: dict[str, Any] = {"contract_id": contract_id, "signature_id": signature_id}
    for name in PACKAGE_HASH_FIELDS[2:]:
        fields[name] = data.get(name)
    return fields


def hash_fields(fields: Mapping[str, Any]) -> str:
    hasher = hashlib.sha256()
    for name in PACKAGE_HASH_FIELDS:
        hasher.update(f"{name}=".encode("utf-8"))
        hasher.update(canonical_json(fields.get(name)))
        hasher.update(b"\n")
    return hasher.hexdigest()


def compute_package_hash(contract_id: str, signature_id: str, snapshot: SignerSnapshot) -> str:
    return hash_fields(package_hash_fields(contract_id, signature_id, snapshot))
