from sqlalchemy import JSON, Text
from sqlmodel import Field

from signproof.models.base import TimestampedModel, UUIDModel


class Contract(UUIDModel, TimestampedModel, table=True):
    __tablename__ = "contracts"

    title: str = Field(max_length=255)
    version: str = Field(default="1", max_length=64)
    content: str = Field(sa_type=Text)
    content_hash: str = Field(index=True, max_length=64)
    parties: list | None = Field(default_factory=list, sa_type=JSON)
    terms: dict | None = Field(default=None, sa_type=JSON)
