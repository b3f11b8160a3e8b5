from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import Field

from signproof.schemas.common import FrozenWireModel, WireModel
from signproof.schemas.contract import PartyRole, PartySnapshot


# ===============================================================
# Registros congelados (snapshot do signatário)
# ===============================================================
class ConsentRecord(FrozenWireModel):
    key: str
    accepted: bool
    accepted_at: datetime | None = None
    version: str | None = None


class WitnessRecord(FrozenWireModel):
    name: str
    email: str
    phone: str | None = None
    required: bool = True


class NotaryRecord(FrozenWireModel):
    name: str
    commission: str
    required: bool = True


class DeviceRecord(FrozenWireModel):
    user_agent: str = "unknown"
    platform: str | None = None
    language: str | None = None
    screen_resolution: str | None = None
    color_depth: int | None = None
    timezone: str | None = None
    cookies_enabled: bool | None = None
    online: bool | None = None
    hardware_concurrency: int | None = None
    status: str = "unavailable"


class GeolocationRecord(FrozenWireModel):
    status: str = "unavailable"
    latitude: float | None = None
    longitude: float | None = None
    accuracy: float | None = None
    reason: str | None = None


class BoundingBoxRecord(FrozenWireModel):
    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0


class SignatureMetadataRecord(FrozenWireModel):
    stroke_count: int = Field(default=0, ge=0)
    total_points: int = Field(default=0, ge=0)
    bounding_box: BoundingBoxRecord = Field(default_factory=BoundingBoxRecord)
    duration_ms: int = Field(default=0, ge=0)
    captured_at: datetime | None = None


class SignerSnapshot(FrozenWireModel):
    """Cópia profunda e imutável de tudo que foi apresentado e aceito no ato da assinatura."""

    party: PartySnapshot
    document_content_hash: str
    document_version: str
    consents: tuple[ConsentRecord, ...] = ()
    required_consents: tuple[str, ...] = ()
    witness: WitnessRecord | None = None
    notary: NotaryRecord | None = None
    device: DeviceRecord = Field(default_factory=DeviceRecord)
    geolocation: GeolocationRecord = Field(default_factory=GeolocationRecord)
    ip_address: str = "unknown"
    signature_metadata: SignatureMetadataRecord = Field(default_factory=SignatureMetadataRecord)
    signature_image_sha256: str
    signed_at: datetime


class EvidencePackage(FrozenWireModel):
    id: str
    contract_id: str
    signature_id: str
    package_hash: str
    signer_snapshot: SignerSnapshot
    document_content_hash: str
    signature_image: str
    cryptographic_signature: str | None = None
    certificate_generated: bool = False
    created_at: datetime
    is_archived: bool = False

    def with_flags(
        self,
        *,
        certificate_generated: bool | None = None,
        is_archived: bool | None = None,
    ) -> "EvidencePackage":
        """Única forma de alterar um pacote: devolve uma cópia com as flags assíncronas atualizadas."""
        update: dict[str, Any] = {}
        if certificate_generated is not None:
            update["certificate_generated"] = certificate_generated
        if is_archived is not None:
            update["is_archived"] = is_archived
        return self.model_copy(update=update)


# ===============================================================
# Validação
# ===============================================================
class ValidationMode(str, Enum):
    AS_SIGNED = "as_signed"
    CURRENT_DOCUMENT = "current_document"


class DefectCode(str, Enum):
    PACKAGE_NOT_FOUND = "package_not_found"
    INTEGRITY_ERROR = "integrity_error"
    DOCUMENT_HASH_MISMATCH = "document_hash_mismatch"
    SIGNATURE_IMAGE_MISMATCH = "signature_image_mismatch"
    MISSING_CONSENT = "missing_consent"
    MISSING_ATTESTOR = "missing_attestor"
    DOCUMENT_AMENDED = "document_amended"
    DOCUMENT_UNAVAILABLE = "document_unavailable"


class ValidationDefect(FrozenWireModel):
    code: DefectCode
    message: str


class ValidationResult(WireModel):
    is_valid: bool
    errors: list[str] = Field(default_factory=list)
    defects: list[ValidationDefect] = Field(default_factory=list)
    timestamp: datetime
    message: str
    mode: ValidationMode = ValidationMode.AS_SIGNED


# ===============================================================
# Contrato de envio
# ===============================================================
class SubmissionMetadata(WireModel):
    ip_address: str = "unknown"
    user_agent: str = "unknown"
    timestamp: datetime
    geolocation: GeolocationRecord | None = None
    device_info: DeviceRecord | None = None
    signature: SignatureMetadataRecord | None = None


class SignatureSubmission(WireModel):
    party_type: PartyRole
    party_index: int | None = None
    signature_method: str = "electronic"
    signature_image: str
    metadata: SubmissionMetadata
    witness: WitnessRecord | None = None
    notary: NotaryRecord | None = None
    evidence_package: EvidencePackage


class SignatureDecline(WireModel):
    party_type: PartyRole
    party_index: int | None = None
    reason: str | None = Field(default=None, max_length=2000)


class SubmissionReceipt(WireModel):
    signature_id: str
    evidence_package_id: str
    status: str = "signed"
    signed_at: datetime | None = None


class SignatureRead(WireModel):
    id: str
    contract_id: str
    party_id: str
    party_type: PartyRole
    signature_method: str
    status: str
    ip_address: str | None = None
    user_agent: str | None = None
    reason: str | None = None
    signed_at: datetime | None = None


class EvidenceFlagsUpdate(WireModel):
    certificate_generated: bool | None = None
    is_archived: bool | None = None


class SignResponse(WireModel):
    signature: SignatureRead
    evidence_package: EvidencePackage


class AuditEntryRead(WireModel):
    id: UUID
    contract_id: UUID | None = None
    event_type: str
    actor: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class AuditEntryList(WireModel):
    items: list[AuditEntryRead]
    total: int
    page: int
    page_size: int
