from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import JSON, Text
from sqlmodel import Field

from signproof.models.base import TimestampedModel, UUIDModel


class SignatureStatus(str, Enum):
    SIGNED = "signed"
    DECLINED = "declined"


class Signature(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "signatures"

    contract_id: UUID = Field(foreign_key="contracts.id", index=True)
    party_id: str = Field(index=True)
    party_type: str
    party_index: int | None = Field(default=None)
    signature_method: str = Field(default="electronic")
    status: SignatureStatus = Field(default=SignatureStatus.SIGNED)
    ip_address: str | None = Field(default=None)
    user_agent: str | None = Field(default=None)
    reason: str | None = Field(default=None)
    signed_at: datetime | None = Field(default=None)


class EvidencePackageRecord(UUIDModel, TimestampedModel, table=True):
    """Pacote armazenado. O snapshot é gravado uma única vez; só as flags mudam depois."""

    __tablename__ = "evidence_packages"

    contract_id: UUID = Field(foreign_key="contracts.id", index=True)
    signature_id: UUID = Field(foreign_key="signatures.id", index=True, unique=True)
    package_hash: str = Field(index=True, max_length=64)
    document_content_hash: str = Field(max_length=64)
    signer_snapshot: dict = Field(default_factory=dict, sa_type=JSON)
    signature_image: str = Field(sa_type=Text)
    cryptographic_signature: str | None = Field(default=None, sa_type=Text)
    certificate_generated: bool = Field(default=False)
    is_archived: bool = Field(default=False)
