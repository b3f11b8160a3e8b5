from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from sqlmodel import Session

from signproof.api.deps import client_ip, get_db
from signproof.core.errors import DocumentHashError, PackageNotFoundError
from signproof.core.logging_setup import logger
from signproof.models.contract import Contract
from signproof.schemas.evidence import (
    EvidenceFlagsUpdate,
    EvidencePackage,
    SignatureDecline,
    SignatureRead,
    SignatureSubmission,
    SignResponse,
    ValidationMode,
    ValidationResult,
)
from signproof.services.archive import archive_filename, build_evidence_archive
from signproof.services.audit import AuditService
from signproof.services.contracts import ContractService
from signproof.services.evidence_store import EvidenceStore
from signproof.services.signatures import SignatureService
from signproof.services.validation import ValidationService

router = APIRouter(prefix="/contracts/signatures", tags=["signatures"])


def _get_contract(session: Session, contract_id: UUID) -> Contract:
    contract = ContractService(session).get(contract_id)
    if not contract:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contract not found")
    return contract


def _get_package(store: EvidenceStore, package_id: UUID) -> EvidencePackage:
    package = store.get(package_id)
    if not package:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Evidence package not found")
    return package


def _validation_service(session: Session, store: EvidenceStore) -> ValidationService:
    return ValidationService(store, documents=ContractService(session))


# ===============================================================
# Assinatura
# ===============================================================
@router.post(
    "/contract/{contract_id}/sign",
    response_model=SignResponse,
    status_code=status.HTTP_201_CREATED,
)
def sign_contract(
    contract_id: UUID,
    payload: SignatureSubmission,
    request: Request,
    session: Session = Depends(get_db),
) -> SignResponse:
    contract = _get_contract(session, contract_id)
    service = SignatureService(session)
    try:
        signature, package = service.sign(
            contract,
            payload,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except DocumentHashError as exc:
        session.rollback()
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except ValueError as exc:
        session.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return SignResponse(signature=service.to_read(signature), evidence_package=package)


@router.post(
    "/contract/{contract_id}/decline",
    response_model=SignatureRead,
    status_code=status.HTTP_201_CREATED,
)
def decline_contract(
    contract_id: UUID,
    payload: SignatureDecline,
    request: Request,
    session: Session = Depends(get_db),
) -> SignatureRead:
    contract = _get_contract(session, contract_id)
    service = SignatureService(session)
    try:
        signature = service.decline(
            contract,
            payload,
            ip_address=client_ip(request),
            user_agent=request.headers.get("user-agent"),
        )
    except ValueError as exc:
        session.rollback()
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return service.to_read(signature)


# ===============================================================
# Evidências
# ===============================================================
@router.get("/evidence/signature/{signature_id}", response_model=EvidencePackage)
def get_evidence_by_signature(signature_id: UUID, session: Session = Depends(get_db)) -> EvidencePackage:
    package = EvidenceStore(session).get_by_signature(signature_id)
    if not package:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Evidence package not found")
    return package


@router.get("/evidence/{package_id}", response_model=EvidencePackage)
def get_evidence(package_id: UUID, session: Session = Depends(get_db)) -> EvidencePackage:
    return _get_package(EvidenceStore(session), package_id)


@router.patch("/evidence/{package_id}", response_model=EvidencePackage)
def update_evidence_flags(
    package_id: UUID,
    payload: EvidenceFlagsUpdate,
    session: Session = Depends(get_db),
) -> EvidencePackage:
    try:
        package = EvidenceStore(session).update_flags(
            package_id,
            certificate_generated=payload.certificate_generated,
            is_archived=payload.is_archived,
        )
    except PackageNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    AuditService(session).record_event(
        event_type="evidence_flags_updated",
        contract_id=UUID(package.contract_id),
        details=payload.model_dump(exclude_none=True),
    )
    return package


@router.get("/evidence/{package_id}/validate", response_model=ValidationResult)
def validate_evidence(
    package_id: UUID,
    mode: ValidationMode = ValidationMode.AS_SIGNED,
    session: Session = Depends(get_db),
) -> ValidationResult:
    store = EvidenceStore(session)
    return _validation_service(session, store).validate(str(package_id), mode)


@router.get("/evidence/{package_id}/export")
def export_evidence(
    package_id: UUID,
    request: Request,
    mode: ValidationMode = ValidationMode.AS_SIGNED,
    session: Session = Depends(get_db),
) -> Response:
    store = EvidenceStore(session)
    package = _get_package(store, package_id)
    result = _validation_service(session, store).validate_package(package, mode)
    zip_bytes = build_evidence_archive(package, result)
    AuditService(session).record_event(
        event_type="evidence_exported",
        contract_id=UUID(package.contract_id),
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent"),
        details={"evidence_package_id": package.id, "is_valid": result.is_valid},
    )
    logger.info("Evidence package %s exported (%d bytes)", package.id, len(zip_bytes))
    return Response(
        zip_bytes,
        media_type="application/zip",
        headers={"Content-Disposition": f'attachment; filename="{archive_filename(package)}"'},
    )
