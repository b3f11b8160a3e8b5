from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlmodel import Session

from signproof.api.deps import get_db
from signproof.schemas.contract import ContractCreate, ContractRead
from signproof.schemas.evidence import AuditEntryList, AuditEntryRead
from signproof.services.audit import AuditService
from signproof.services.contracts import ContractService

router = APIRouter(prefix="/contracts", tags=["contracts"])


@router.post("", response_model=ContractRead, status_code=status.HTTP_201_CREATED)
def create_contract(payload: ContractCreate, session: Session = Depends(get_db)) -> ContractRead:
    service = ContractService(session)
    contract = service.create_contract(payload)
    AuditService(session).record_event(
        event_type="contract_created",
        contract_id=contract.id,
        details={"version": contract.version, "content_hash": contract.content_hash},
    )
    return service.to_read(contract)


@router.get("/{contract_id}", response_model=ContractRead)
def get_contract(contract_id: UUID, session: Session = Depends(get_db)) -> ContractRead:
    service = ContractService(session)
    contract = service.get(contract_id)
    if not contract:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contract not found")
    return service.to_read(contract)


@router.get("/{contract_id}/audit", response_model=AuditEntryList)
def list_contract_audit(
    contract_id: UUID,
    event_type: str | None = None,
    page: int = 1,
    page_size: int = 50,
    session: Session = Depends(get_db),
) -> AuditEntryList:
    if not ContractService(session).get(contract_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Contract not found")
    items, total = AuditService(session).list_events(
        contract_id=contract_id,
        event_type=event_type,
        page=page,
        page_size=page_size,
    )
    return AuditEntryList(
        items=[AuditEntryRead.model_validate(item) for item in items],
        total=total,
        page=page,
        page_size=page_size,
    )
