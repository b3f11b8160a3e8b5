from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Protocol

from signproof.capture.raster import decode_data_url
from signproof.core.errors import DocumentHashError
from signproof.core.logging_setup import logger
from signproof.schemas.contract import ContractRead
from signproof.schemas.evidence import (
    DefectCode,
    EvidencePackage,
    ValidationDefect,
    ValidationMode,
    ValidationResult,
)
from signproof.services.attestors import notary_record_errors, witness_record_errors
from signproof.services.hashing import compute_document_hash, compute_package_hash, sha256_hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EvidenceRepository(Protocol):
    def get(self, package_id: str) -> EvidencePackage | None:
        ...


class DocumentProvider(Protocol):
    def get_contract(self, contract_id: str) -> ContractRead | None:
        ...


class ValidationService:
    """
    Revalida um pacote de evidências armazenado e lista todos os defeitos encontrados.

    O modo padrão ("as-signed") compara o pacote consigo mesmo; o modo
    "current document" também compara com o hash do documento vigente, pois
    aditivos posteriores não invalidam retroativamente uma assinatura anterior.
    Divergência de hash é um resultado esperado e inspecionável: vira defeito,
    nunca exceção. O serviço não altera nada (idempotente).
    """

    def __init__(
        self,
        repository: EvidenceRepository,
        *,
        documents: DocumentProvider | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._documents = documents
        self._clock = clock

    def validate(self, package_id: str, mode: ValidationMode = ValidationMode.AS_SIGNED) -> ValidationResult:
        package = self._repository.get(package_id)
        if package is None:
            return self._result(
                [ValidationDefect(code=DefectCode.PACKAGE_NOT_FOUND, message=f"Evidence package {package_id} not found")],
                mode,
            )
        return self.validate_package(package, mode)

    def validate_package(
        self,
        package: EvidencePackage,
        mode: ValidationMode = ValidationMode.AS_SIGNED,
    ) -> ValidationResult:
        defects: list[ValidationDefect] = []
        defects.extend(self._check_hashes(package))
        defects.extend(self._check_consents(package))
        defects.extend(self._check_attestors(package))
        if mode == ValidationMode.CURRENT_DOCUMENT:
            defects.extend(self._check_current_document(package))
        result = self._result(defects, mode)
        if not result.is_valid:
            logger.warning(
                "Evidence package %s failed validation (%s): %s",
                package.id,
                mode.value,
                ", ".join(defect.code.value for defect in defects),
            )
        return result

    # ===============================================================
    # Verificações
    # ===============================================================
    def _check_hashes(self, package: EvidencePackage) -> list[ValidationDefect]:
        defects: list[ValidationDefect] = []
        snapshot = package.signer_snapshot

        recomputed = compute_package_hash(package.contract_id, package.signature_id, snapshot)
        if recomputed != package.package_hash:
            defects.append(
                ValidationDefect(
                    code=DefectCode.INTEGRITY_ERROR,
                    message="Package hash mismatch: the frozen evidence was altered after signing",
                )
            )

        if package.document_content_hash != snapshot.document_content_hash:
            defects.append(
                ValidationDefect(
                    code=DefectCode.DOCUMENT_HASH_MISMATCH,
                    message="Document content hash differs from the as-signed hash recorded in the snapshot",
                )
            )

        try:
            image_bytes, _ = decode_data_url(package.signature_image)
            image_sha = sha256_hex(image_bytes)
        except ValueError:
            image_sha = None
        if image_sha != snapshot.signature_image_sha256:
            defects.append(
                ValidationDefect(
                    code=DefectCode.SIGNATURE_IMAGE_MISMATCH,
                    message="Signature image does not match the recorded image digest",
                )
            )
        return defects

    def _check_consents(self, package: EvidencePackage) -> list[ValidationDefect]:
        snapshot = package.signer_snapshot
        accepted = {record.key for record in snapshot.consents if record.accepted}
        return [
            ValidationDefect(code=DefectCode.MISSING_CONSENT, message=f"Required consent '{key}' was not accepted")
            for key in snapshot.required_consents
            if key not in accepted
        ]

    def _check_attestors(self, package: EvidencePackage) -> list[ValidationDefect]:
        snapshot = package.signer_snapshot
        messages = witness_record_errors(snapshot.witness) + notary_record_errors(snapshot.notary)
        return [ValidationDefect(code=DefectCode.MISSING_ATTESTOR, message=message) for message in messages]

    def _check_current_document(self, package: EvidencePackage) -> list[ValidationDefect]:
        if self._documents is None:
            return [
                ValidationDefect(
                    code=DefectCode.DOCUMENT_UNAVAILABLE,
                    message="No document provider configured for current-document validation",
                )
            ]
        try:
            contract = self._documents.get_contract(package.contract_id)
            live_hash = compute_document_hash(contract.content) if contract else None
        except DocumentHashError as exc:
            logger.warning("Live document for contract %s cannot be hashed: %s", package.contract_id, exc)
            live_hash = None
        if live_hash is None:
            return [
                ValidationDefect(
                    code=DefectCode.DOCUMENT_UNAVAILABLE,
                    message=f"Current version of contract {package.contract_id} is unavailable",
                )
            ]
        if live_hash != package.document_content_hash:
            return [
                ValidationDefect(
                    code=DefectCode.DOCUMENT_AMENDED,
                    message="Contract was amended after signing; the signature covers an earlier version",
                )
            ]
        return []

    def _result(self, defects: list[ValidationDefect], mode: ValidationMode) -> ValidationResult:
        is_valid = not defects
        message = (
            "Evidence package is valid"
            if is_valid
            else f"Evidence package has {len(defects)} defect(s)"
        )
        return ValidationResult(
            is_valid=is_valid,
            errors=[defect.message for defect in defects],
            defects=defects,
            timestamp=self._clock(),
            message=message,
            mode=mode,
        )
