from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable, Iterable, Protocol, Sequence
from uuid import uuid4

from signproof.capture.device import DeviceContext, DeviceSnapshot, Geolocation
from signproof.capture.metadata import SignatureMetadata
from signproof.capture.points import Stroke
from signproof.capture.raster import render_strokes, to_data_url
from signproof.core.config import settings
from signproof.core.errors import DocumentHashError
from signproof.core.logging_setup import logger
from signproof.schemas.contract import ContractRead, Party, PartySnapshot
from signproof.schemas.evidence import (
    BoundingBoxRecord,
    ConsentRecord,
    DeviceRecord,
    EvidencePackage,
    GeolocationRecord,
    NotaryRecord,
    SignatureMetadataRecord,
    SignerSnapshot,
    WitnessRecord,
)
from signproof.services.hashing import compute_document_hash, compute_package_hash, sha256_hex


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PackageSigner(Protocol):
    """Assinador criptográfico plugável. Recebe o package_hash e devolve a assinatura."""

    def sign(self, package_hash: str) -> str:
        ...


def device_record(context: DeviceContext | None) -> DeviceRecord:
    if context is None:
        return DeviceRecord()
    return DeviceRecord.model_validate(context.as_dict())


def geolocation_record(location: Geolocation | None) -> GeolocationRecord:
    if location is None:
        return GeolocationRecord(reason="not_requested")
    return GeolocationRecord.model_validate(location.as_dict())


def metadata_record(metadata: SignatureMetadata) -> SignatureMetadataRecord:
    box = metadata.bounding_box
    return SignatureMetadataRecord(
        stroke_count=metadata.stroke_count,
        total_points=metadata.total_points,
        bounding_box=BoundingBoxRecord(x=box.x, y=box.y, width=box.width, height=box.height),
        duration_ms=metadata.duration_ms,
        captured_at=metadata.captured_at,
    )


def resolve_document_hash(contract: ContractRead) -> str:
    """Hash da versão exata exibida ao signatário. Falha se não for possível garanti-lo."""
    computed = compute_document_hash(contract.content)
    declared = (contract.content_hash or "").strip().lower()
    if declared and declared != computed:
        raise DocumentHashError(
            "Document content does not match the declared content hash.",
            details={"contract_id": str(contract.id), "declared": declared, "computed": computed},
        )
    return computed


class EvidencePackageBuilder:
    """
    Monta o pacote de evidências imutável de um evento de assinatura.

    1. renderiza os traços selados (ordem e fundo fixos);
    2. calcula o hash do texto canônico do contrato;
    3. congela parte, consentimentos, testemunha/tabelião e contexto do dispositivo;
    4. calcula o package_hash na ordem documentada em ``services.hashing``.
    """

    def __init__(
        self,
        *,
        signer: PackageSigner | None = None,
        size: tuple[int, int] | None = None,
        background: str | None = None,
        clock: Callable[[], datetime] = _utcnow,
        id_factory: Callable[[], str] = lambda: str(uuid4()),
    ) -> None:
        self._signer = signer
        self._size = size or (settings.canvas_width, settings.canvas_height)
        self._background = background or settings.background_color
        self._clock = clock
        self._id_factory = id_factory

    def render(self, strokes: Sequence[Stroke]) -> bytes:
        return render_strokes(strokes, self._size, self._background)

    def build(
        self,
        *,
        contract: ContractRead,
        party: Party,
        strokes: Sequence[Stroke],
        metadata: SignatureMetadata,
        consents: Iterable[ConsentRecord],
        required_consents: Iterable[str],
        device: DeviceSnapshot | None = None,
        witness: WitnessRecord | None = None,
        notary: NotaryRecord | None = None,
        signature_id: str | None = None,
    ) -> EvidencePackage:
        if not strokes:
            raise ValueError("Cannot build an evidence package from an empty signature capture.")

        # fail fast antes de qualquer outro trabalho
        document_hash = resolve_document_hash(contract)

        image_png = self.render(strokes)
        device = device or DeviceSnapshot()
        signed_at = self._clock()
        signature_id = signature_id or self._id_factory()

        snapshot = SignerSnapshot(
            party=PartySnapshot.model_validate(party.model_dump()),
            document_content_hash=document_hash,
            document_version=contract.version,
            consents=tuple(consents),
            required_consents=tuple(required_consents),
            witness=witness,
            notary=notary,
            device=device_record(device.device),
            geolocation=geolocation_record(device.geolocation),
            ip_address=device.ip_address,
            signature_metadata=metadata_record(metadata),
            signature_image_sha256=sha256_hex(image_png),
            signed_at=signed_at,
        )
        contract_id = str(contract.id)
        package_hash = compute_package_hash(contract_id, signature_id, snapshot)

        cryptographic_signature = None
        if self._signer is not None:
            cryptographic_signature = self._signer.sign(package_hash)

        package = EvidencePackage(
            id=self._id_factory(),
            contract_id=contract_id,
            signature_id=signature_id,
            package_hash=package_hash,
            signer_snapshot=snapshot,
            document_content_hash=document_hash,
            signature_image=to_data_url(image_png),
            cryptographic_signature=cryptographic_signature,
            created_at=signed_at,
        )
        logger.info(
            "Evidence package %s built for contract %s (party=%s, strokes=%d)",
            package.id,
            contract_id,
            party.id,
            len(strokes),
        )
        return package
