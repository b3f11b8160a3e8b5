from __future__ import annotations

from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import Field, field_validator

from signproof.schemas.common import FrozenWireModel, IDModel, Timestamped, WireModel


class PartyRole(str, Enum):
    PRIMARY = "primary"
    SECONDARY = "secondary"
    ADDITIONAL = "additional"


class Party(WireModel):
    id: str
    role: PartyRole
    name: str
    email: str = ""
    phone: str | None = None
    type: str = "individual"

    @field_validator("name")
    @classmethod
    def _strip_name(cls, value: str) -> str:
        return value.strip()


class PartySnapshot(FrozenWireModel):
    id: str
    role: PartyRole
    name: str
    email: str = ""
    phone: str | None = None
    type: str = "individual"


class ContractCreate(WireModel):
    title: str = Field(min_length=1, max_length=255)
    version: str = Field(default="1", min_length=1, max_length=64)
    content: str = Field(min_length=1)
    parties: list[Party] = Field(default_factory=list)
    terms: dict[str, Any] | None = None


class ContractRead(IDModel, Timestamped):
    title: str
    version: str
    content: str
    content_hash: str
    parties: list[Party] = Field(default_factory=list)
    terms: dict[str, Any] | None = None

    def resolve_party(self, party_type: PartyRole | str, party_index: int | None = None) -> Party | None:
        """Localiza a parte signatária pelo papel (e índice, para partes adicionais)."""
        role = PartyRole(party_type)
        candidates = [party for party in self.parties if party.role == role]
        if role == PartyRole.ADDITIONAL:
            if party_index is None or not 0 <= party_index < len(candidates):
                return None
            return candidates[party_index]
        return candidates[0] if candidates else None


class ContractSummary(WireModel):
    id: UUID
    title: str
    version: str
    content_hash: str
