from uuid import UUID

from sqlmodel import Session, select

from signproof.core.errors import PackageNotFoundError
from signproof.models.signature import EvidencePackageRecord
from signproof.schemas.evidence import EvidencePackage, SignerSnapshot


def _as_uuid(value: UUID | str) -> UUID | None:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class EvidenceStore:
    """
    Repositório de pacotes de evidências sobre SQLModel.

    O snapshot é gravado uma única vez em ``save``; depois disso apenas
    certificate_generated e is_archived podem ser alterados (``update_flags``).
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def save(self, package: EvidencePackage, *, commit: bool = True) -> EvidencePackageRecord:
        record = EvidencePackageRecord(
            id=UUID(package.id),
            contract_id=UUID(package.contract_id),
            signature_id=UUID(package.signature_id),
            package_hash=package.package_hash,
            document_content_hash=package.document_content_hash,
            signer_snapshot=package.signer_snapshot.model_dump(mode="json"),
            signature_image=package.signature_image,
            cryptographic_signature=package.cryptographic_signature,
            certificate_generated=package.certificate_generated,
            is_archived=package.is_archived,
            created_at=package.created_at,
        )
        self.session.add(record)
        if commit:
            self.session.commit()
        return record

    def get(self, package_id: UUID | str) -> EvidencePackage | None:
        key = _as_uuid(package_id)
        record = self.session.get(EvidencePackageRecord, key) if key else None
        return self.to_package(record) if record else None

    def get_by_signature(self, signature_id: UUID | str) -> EvidencePackage | None:
        key = _as_uuid(signature_id)
        if key is None:
            return None
        record = self.session.exec(
            select(EvidencePackageRecord).where(EvidencePackageRecord.signature_id == key)
        ).first()
        return self.to_package(record) if record else None

    def update_flags(
        self,
        package_id: UUID | str,
        *,
        certificate_generated: bool | None = None,
        is_archived: bool | None = None,
    ) -> EvidencePackage:
        key = _as_uuid(package_id)
        record = self.session.get(EvidencePackageRecord, key) if key else None
        if record is None:
            raise PackageNotFoundError(f"Evidence package {package_id} not found")
        if certificate_generated is not None:
            record.certificate_generated = certificate_generated
        if is_archived is not None:
            record.is_archived = is_archived
        self.session.add(record)
        self.session.commit()
        self.session.refresh(record)
        return self.to_package(record)

    @staticmethod
    def to_package(record: EvidencePackageRecord) -> EvidencePackage:
        return EvidencePackage(
            id=str(record.id),
            contract_id=str(record.contract_id),
            signature_id=str(record.signature_id),
            package_hash=record.package_hash,
            signer_snapshot=SignerSnapshot.model_validate(record.signer_snapshot),
            document_content_hash=record.document_content_hash,
            signature_image=record.signature_image,
            cryptographic_signature=record.cryptographic_signature,
            certificate_generated=record.certificate_generated,
            created_at=record.created_at,
            is_archived=record.is_archived,
        )
