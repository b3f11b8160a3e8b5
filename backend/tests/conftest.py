from __future__ import annotations

import os
import uuid
from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient
from sqlmodel import Session, SQLModel, create_engine

from signproof.api.deps import get_db
from signproof.capture.points import Point
from signproof.capture.recorder import StrokeRecorder
from signproof.db import session as db_session_module
from signproof.db.session import get_session
from signproof.main import app
from signproof.schemas.contract import ContractRead, Party, PartyRole
from signproof.services.hashing import compute_document_hash

pytestmark = pytest.mark.anyio

CONTRACT_TEXT = "Contrato de prestação de serviços.\nCláusula 1: objeto.\nCláusula 2: preço.\n"
FIXED_NOW = datetime(2026, 3, 14, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture()
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture()
def db_engine(tmp_path):
    test_database_url = os.getenv("TEST_DATABASE_URL")
    if not test_database_url:
        db_path = tmp_path / f"test_{uuid.uuid4().hex}.db"
        test_database_url = f"sqlite:///{db_path}"

    engine = create_engine(test_database_url, connect_args={"check_same_thread": False})
    SQLModel.metadata.create_all(bind=engine)

    original_engine = db_session_module.engine
    db_session_module.engine = engine

    def override_dependency():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = override_dependency
    app.dependency_overrides[get_db] = override_dependency

    yield engine

    app.dependency_overrides.pop(get_session, None)
    app.dependency_overrides.pop(get_db, None)
    db_session_module.engine = original_engine
    engine.dispose()


@pytest.fixture()
def client(db_engine) -> TestClient:
    return TestClient(app)


@pytest.fixture()
def db_session(db_engine) -> Session:
    with Session(db_engine) as session:
        yield session


@pytest.fixture()
def parties() -> list[Party]:
    return [
        Party(id="p-1", role=PartyRole.PRIMARY, name="Ana Souza", email="ana@example.com"),
        Party(id="p-2", role=PartyRole.SECONDARY, name="Bruno Lima", email="bruno@example.com"),
        Party(id="p-3", role=PartyRole.ADDITIONAL, name="Carla Dias", email="carla@example.com"),
    ]


@pytest.fixture()
def contract(parties) -> ContractRead:
    return ContractRead(
        id=uuid.uuid4(),
        created_at=FIXED_NOW,
        title="Prestação de serviços",
        version="1",
        content=CONTRACT_TEXT,
        content_hash=compute_document_hash(CONTRACT_TEXT),
        parties=parties,
    )


def draw(recorder: StrokeRecorder, *segments: list[tuple[float, float]], start_ms: int = 1_000) -> None:
    """Desenha um traço por lista de coordenadas, com 10 ms entre pontos."""
    clock = start_ms
    for coords in segments:
        first, *rest = coords
        recorder.begin(Point(first[0], first[1], timestamp_ms=clock))
        for x, y in rest:
            clock += 10
            recorder.extend(Point(x, y, timestamp_ms=clock))
        recorder.end()
        clock += 100


@pytest.fixture()
def signed_recorder() -> StrokeRecorder:
    recorder = StrokeRecorder(width=200, height=100)
    draw(recorder, [(10, 10), (40, 30), (70, 20)], [(80, 60), (120, 70)])
    return recorder
