from uuid import UUID

from sqlmodel import Session

from signproof.models.contract import Contract
from signproof.schemas.contract import ContractCreate, ContractRead
from signproof.services.hashing import compute_document_hash


class ContractService:
    def __init__(self, session: Session) -> None:
        self.session = session

    def create_contract(self, payload: ContractCreate) -> Contract:
        contract = Contract(
            title=payload.title.strip(),
            version=payload.version,
            content=payload.content,
            content_hash=compute_document_hash(payload.content),
            parties=[party.model_dump(mode="json") for party in payload.parties],
            terms=payload.terms,
        )
        self.session.add(contract)
        self.session.commit()
        self.session.refresh(contract)
        return contract

    def get(self, contract_id: UUID | str) -> Contract | None:
        try:
            key = contract_id if isinstance(contract_id, UUID) else UUID(str(contract_id))
        except ValueError:
            return None
        return self.session.get(Contract, key)

    @staticmethod
    def to_read(contract: Contract) -> ContractRead:
        return ContractRead.model_validate(contract)

    def get_contract(self, contract_id: str) -> ContractRead | None:
        contract = self.get(contract_id)
        return self.to_read(contract) if contract else None
