from __future__ import annotations

from pydantic import ValidationError

from signproof.capture.device import DeviceSnapshot
from signproof.core.errors import TransportError
from signproof.core.logging_setup import logger
from signproof.schemas.contract import PartyRole
from signproof.schemas.evidence import (
    EvidencePackage,
    NotaryRecord,
    SignatureDecline,
    SignatureSubmission,
    SignResponse,
    SubmissionMetadata,
    SubmissionReceipt,
    WitnessRecord,
)
from signproof.services.clients import SIGNATURES_PREFIX, ApiClient


def build_submission(
    *,
    party_type: PartyRole,
    party_index: int | None,
    package: EvidencePackage,
    device: DeviceSnapshot,
    witness: WitnessRecord | None = None,
    notary: NotaryRecord | None = None,
) -> SignatureSubmission:
    """Serializa a saída do fluxo no formato de rede aceito pelo endpoint de assinatura."""
    snapshot = package.signer_snapshot
    return SignatureSubmission(
        party_type=party_type,
        party_index=party_index,
        signature_image=package.signature_image,
        metadata=SubmissionMetadata(
            ip_address=device.ip_address,
            user_agent=device.device.user_agent,
            timestamp=snapshot.signed_at,
            geolocation=snapshot.geolocation if snapshot.geolocation.status == "available" else None,
            device_info=snapshot.device,
            signature=snapshot.signature_metadata,
        ),
        witness=witness,
        notary=notary,
        evidence_package=package,
    )


class SubmissionGateway(ApiClient):
    """
    Envia a assinatura ao endpoint externo. Uma única tentativa: em caso de falha
    o controle volta ao usuário, que decide reenviar.
    """

    async def submit(self, contract_id: str, submission: SignatureSubmission) -> SubmissionReceipt:
        data = await self._request_json(
            "POST",
            f"{SIGNATURES_PREFIX}/contract/{contract_id}/sign",
            json=submission.model_dump(mode="json", by_alias=True),
        )
        try:
            response = SignResponse.model_validate(data)
        except ValidationError as exc:
            raise TransportError(
                f"Invalid response from signature endpoint for contract {contract_id}",
                details={"errors": [error["msg"] for error in exc.errors()]},
            ) from exc
        logger.info(
            "Signature %s committed for contract %s (package %s)",
            response.signature.id,
            contract_id,
            response.evidence_package.id,
        )
        return SubmissionReceipt(
            signature_id=response.signature.id,
            evidence_package_id=response.evidence_package.id,
            status=response.signature.status,
            signed_at=response.signature.signed_at,
        )

    async def decline(self, contract_id: str, decline: SignatureDecline) -> None:
        await self._request(
            "POST",
            f"{SIGNATURES_PREFIX}/contract/{contract_id}/decline",
            json=decline.model_dump(mode="json", by_alias=True),
        )
        logger.info("Signature declined for contract %s (%s)", contract_id, decline.party_type.value)
