from typing import Generator

from fastapi import Request
from sqlmodel import Session

from signproof.db.session import get_session


def get_db() -> Generator[Session, None, None]:
    yield from get_session()


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None
