from uuid import UUID

from sqlalchemy import JSON
from sqlmodel import Field

from signproof.models.base import TimestampedModel, UUIDModel


class AuditLog(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "audit_logs"

    contract_id: UUID | None = Field(default=None, foreign_key="contracts.id", index=True)
    event_type: str = Field(index=True)
    actor: str | None = Field(default=None)
    ip_address: str | None = Field(default=None)
    user_agent: str | None = Field(default=None)
    details: dict | None = Field(default_factory=dict, sa_type=JSON)
