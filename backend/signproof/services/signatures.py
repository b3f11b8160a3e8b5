from uuid import UUID

from sqlmodel import Session, select

from signproof.core.config import settings
from signproof.core.errors import DocumentHashError
from signproof.core.logging_setup import logger
from signproof.models.contract import Contract
from signproof.models.signature import Signature, SignatureStatus
from signproof.schemas.evidence import (
    EvidencePackage,
    SignatureDecline,
    SignatureRead,
    SignatureSubmission,
    ValidationMode,
)
from signproof.services.audit import AuditService
from signproof.services.contracts import ContractService
from signproof.services.evidence_store import EvidenceStore
from signproof.services.validation import ValidationService


class SignatureService:
    """Recebe envios de assinatura, confere o pacote de evidências e grava tudo numa transação."""

    def __init__(self, session: Session) -> None:
        self.session = session
        self.store = EvidenceStore(session)
        self.audit = AuditService(session)

    def sign(
        self,
        contract: Contract,
        submission: SignatureSubmission,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> tuple[Signature, EvidencePackage]:
        package = submission.evidence_package
        snapshot = package.signer_snapshot
        contract_read = ContractService.to_read(contract)

        party = contract_read.resolve_party(submission.party_type, submission.party_index)
        if party is None:
            raise ValueError("Participante inválido para este contrato.")
        if package.contract_id != str(contract.id):
            raise ValueError("Pacote de evidências pertence a outro contrato.")
        if snapshot.party.id != party.id or snapshot.party.role != party.role:
            raise ValueError("Pacote de evidências foi gerado para outro participante.")
        if submission.signature_image != package.signature_image:
            raise ValueError("Imagem da assinatura difere da imagem do pacote de evidências.")
        if package.document_content_hash != contract.content_hash:
            raise DocumentHashError(
                "Hash do documento assinado não confere com a versão atual do contrato.",
                details={"contract_id": str(contract.id), "document_content_hash": package.document_content_hash},
            )

        missing = [key for key in settings.required_consent_keys() if key not in snapshot.required_consents]
        if missing:
            raise ValueError(f"Pacote de evidências sem os consentimentos obrigatórios: {', '.join(missing)}.")

        result = ValidationService(self.store).validate_package(package, ValidationMode.AS_SIGNED)
        if not result.is_valid:
            raise ValueError("; ".join(result.errors))

        if self._already_signed(contract.id, party.id):
            raise ValueError("Participante já assinou este contrato.")
        try:
            signature_id = UUID(package.signature_id)
            UUID(package.id)
        except ValueError as exc:
            raise ValueError("Identificadores do pacote de evidências devem ser UUIDs.") from exc
        if self.session.get(Signature, signature_id) is not None:
            raise ValueError("Assinatura já registrada.")

        signature = Signature(
            id=signature_id,
            contract_id=contract.id,
            party_id=party.id,
            party_type=party.role.value,
            party_index=submission.party_index,
            signature_method=submission.signature_method,
            status=SignatureStatus.SIGNED,
            ip_address=snapshot.ip_address,
            user_agent=snapshot.device.user_agent,
            signed_at=snapshot.signed_at,
        )
        self.session.add(signature)
        # assinatura precisa existir antes do pacote (chave estrangeira)
        self.session.flush()
        self.store.save(package, commit=False)
        self.audit.record_event(
            event_type="signature_added",
            contract_id=contract.id,
            actor=party.name,
            ip_address=ip_address,
            user_agent=user_agent,
            details={
                "signature_id": str(signature.id),
                "evidence_package_id": package.id,
                "package_hash": package.package_hash,
                "party_type": party.role.value,
            },
            commit=False,
        )
        self.session.commit()
        self.session.refresh(signature)
        logger.info("Signature %s stored for contract %s", signature.id, contract.id)
        return signature, package

    def decline(
        self,
        contract: Contract,
        decline: SignatureDecline,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> Signature:
        party = ContractService.to_read(contract).resolve_party(decline.party_type, decline.party_index)
        if party is None:
            raise ValueError("Participante inválido para este contrato.")
        if self._already_signed(contract.id, party.id):
            raise ValueError("Participante já assinou este contrato.")

        signature = Signature(
            contract_id=contract.id,
            party_id=party.id,
            party_type=party.role.value,
            party_index=decline.party_index,
            status=SignatureStatus.DECLINED,
            ip_address=ip_address,
            user_agent=user_agent,
            reason=decline.reason,
        )
        self.session.add(signature)
        self.audit.record_event(
            event_type="signature_declined",
            contract_id=contract.id,
            actor=party.name,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"party_type": party.role.value, "reason": decline.reason},
            commit=False,
        )
        self.session.commit()
        self.session.refresh(signature)
        return signature

    def _already_signed(self, contract_id: UUID, party_id: str) -> bool:
        statement = select(Signature).where(
            Signature.contract_id == contract_id,
            Signature.party_id == party_id,
            Signature.status == SignatureStatus.SIGNED,
        )
        return self.session.exec(statement).first() is not None

    @staticmethod
    def to_read(signature: Signature) -> SignatureRead:
        return SignatureRead(
            id=str(signature.id),
            contract_id=str(signature.contract_id),
            party_id=signature.party_id,
            party_type=signature.party_type,
            signature_method=signature.signature_method,
            status=SignatureStatus(signature.status).value,
            ip_address=signature.ip_address,
            user_agent=signature.user_agent,
            reason=signature.reason,
            signed_at=signature.signed_at,
        )
