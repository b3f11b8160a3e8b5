import io
import json
import zipfile
from uuid import UUID

import pytest
from fastapi import status
from fastapi.testclient import TestClient
from sqlmodel import Session, select

from signproof.capture.device import DeviceContext, DeviceSnapshot
from signproof.core.config import settings
from signproof.models.audit import AuditLog
from signproof.models.signature import EvidencePackageRecord
from signproof.schemas.contract import ContractRead, PartyRole
from signproof.services.consent import ConsentLedger
from signproof.services.evidence import EvidencePackageBuilder
from signproof.services.gateway import build_submission
from signproof.services.hashing import compute_document_hash
from tests.conftest import CONTRACT_TEXT  # type: ignore

API = settings.api_v1_str
SIGNATURES = f"{API}/contracts/signatures"


@pytest.fixture()
def stored_contract(client: TestClient) -> ContractRead:
    response = client.post(
        f"{API}/contracts",
        json={
            "title": "Prestação de serviços",
            "content": CONTRACT_TEXT,
            "parties": [
                {"id": "p-1", "role": "primary", "name": "Ana Souza", "email": "ana@example.com"},
                {"id": "p-2", "role": "secondary", "name": "Bruno Lima", "email": "bruno@example.com"},
            ],
        },
    )
    assert response.status_code == status.HTTP_201_CREATED, response.json()
    return ContractRead.model_validate(response.json())


def _submission_payload(contract: ContractRead, recorder, *, party_type=PartyRole.PRIMARY, accept_terms=True) -> dict:
    ledger = ConsentLedger()
    ledger.accept("privacy")
    if accept_terms:
        ledger.accept("terms")
    party = contract.resolve_party(party_type)
    package = EvidencePackageBuilder(size=(200, 100)).build(
        contract=contract,
        party=party,
        strokes=recorder.strokes,
        metadata=recorder.metadata,
        consents=ledger.records(),
        required_consents=ledger.required_keys,
    )
    submission = build_submission(
        party_type=party_type,
        party_index=None,
        package=package,
        device=DeviceSnapshot(device=DeviceContext(user_agent="pytest-browser"), ip_address="203.0.113.5"),
    )
    return submission.model_dump(mode="json", by_alias=True)


def _sign(client: TestClient, contract: ContractRead, recorder, **kwargs):
    payload = _submission_payload(contract, recorder, **kwargs)
    return client.post(f"{SIGNATURES}/contract/{contract.id}/sign", json=payload), payload


def test_create_contract_computes_content_hash(client: TestClient, stored_contract: ContractRead) -> None:
    response = client.get(f"{API}/contracts/{stored_contract.id}")

    assert response.status_code == status.HTTP_200_OK
    body = response.json()
    assert len(body["contentHash"]) == 64
    assert [party["role"] for party in body["parties"]] == ["primary", "secondary"]


def test_unknown_contract_returns_404(client: TestClient) -> None:
    response = client.get(f"{API}/contracts/00000000-0000-4000-8000-000000000000")

    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_sign_and_fetch_evidence(client: TestClient, stored_contract: ContractRead, signed_recorder) -> None:
    response, payload = _sign(client, stored_contract, signed_recorder)

    assert response.status_code == status.HTTP_201_CREATED, response.json()
    body = response.json()
    assert body["signature"]["status"] == "signed"
    assert body["signature"]["partyId"] == "p-1"
    package_id = body["evidencePackage"]["id"]
    signature_id = body["signature"]["id"]

    fetched = client.get(f"{SIGNATURES}/evidence/signature/{signature_id}")
    assert fetched.status_code == status.HTTP_200_OK
    assert fetched.json()["packageHash"] == payload["evidencePackage"]["packageHash"]
    assert fetched.json()["id"] == package_id

    validation = client.get(f"{SIGNATURES}/evidence/{package_id}/validate")
    assert validation.status_code == status.HTTP_200_OK
    assert validation.json()["isValid"] is True, validation.json()


def test_same_party_cannot_sign_twice(client: TestClient, stored_contract: ContractRead, signed_recorder) -> None:
    first, _ = _sign(client, stored_contract, signed_recorder)
    second, _ = _sign(client, stored_contract, signed_recorder)

    assert first.status_code == status.HTTP_201_CREATED
    assert second.status_code == status.HTTP_400_BAD_REQUEST
    assert second.json()["detail"] == "Participante já assinou este contrato."


def test_tampered_package_is_rejected(client: TestClient, stored_contract: ContractRead, signed_recorder) -> None:
    payload = _submission_payload(stored_contract, signed_recorder)
    payload["evidencePackage"]["signerSnapshot"]["ipAddress"] = "10.0.0.1"

    response = client.post(f"{SIGNATURES}/contract/{stored_contract.id}/sign", json=payload)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "Package hash mismatch" in response.json()["detail"]


def test_missing_required_consent_is_rejected(client: TestClient, stored_contract: ContractRead, signed_recorder) -> None:
    response, _ = _sign(client, stored_contract, signed_recorder, accept_terms=False)

    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert "terms" in response.json()["detail"]


def test_unknown_document_version_is_a_conflict(client: TestClient, stored_contract: ContractRead, signed_recorder) -> None:
    other_text = CONTRACT_TEXT + "Cláusula 3: foro.\n"
    stale = stored_contract.model_copy(update={"content": other_text, "content_hash": compute_document_hash(other_text)})

    response, _ = _sign(client, stale, signed_recorder)

    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["detail"] == "Hash do documento assinado não confere com a versão atual do contrato."


def test_altered_stored_snapshot_fails_validation(
    client: TestClient,
    db_session: Session,
    stored_contract: ContractRead,
    signed_recorder,
) -> None:
    response, _ = _sign(client, stored_contract, signed_recorder)
    package_id = response.json()["evidencePackage"]["id"]

    record = db_session.get(EvidencePackageRecord, UUID(package_id))
    record.signer_snapshot = dict(record.signer_snapshot, ip_address="10.10.10.10")
    db_session.add(record)
    db_session.commit()

    validation = client.get(f"{SIGNATURES}/evidence/{package_id}/validate").json()

    assert validation["isValid"] is False
    assert [defect["code"] for defect in validation["defects"]] == ["integrity_error"]


def test_validate_unknown_package_reports_defect(client: TestClient) -> None:
    response = client.get(f"{SIGNATURES}/evidence/00000000-0000-4000-8000-000000000001/validate")

    assert response.status_code == status.HTTP_200_OK
    assert response.json()["defects"][0]["code"] == "package_not_found"


def test_export_returns_zip_with_evidence(
    client: TestClient,
    stored_contract: ContractRead,
    signed_recorder,
) -> None:
    response, _ = _sign(client, stored_contract, signed_recorder)
    package_id = response.json()["evidencePackage"]["id"]

    export = client.get(f"{SIGNATURES}/evidence/{package_id}/export")

    assert export.status_code == status.HTTP_200_OK
    assert export.headers["content-type"] == "application/zip"
    assert "attachment" in export.headers["content-disposition"]
    with zipfile.ZipFile(io.BytesIO(export.content)) as archive:
        assert sorted(archive.namelist()) == ["evidence.json", "signature.png", "validation.json"]
        evidence = json.loads(archive.read("evidence.json"))
        report = json.loads(archive.read("validation.json"))
        assert archive.read("signature.png").startswith(b"\x89PNG")
    assert evidence["id"] == package_id
    assert report["isValid"] is True


def test_export_unknown_package_returns_404(client: TestClient) -> None:
    response = client.get(f"{SIGNATURES}/evidence/00000000-0000-4000-8000-000000000002/export")

    assert response.status_code == status.HTTP_404_NOT_FOUND


def test_flags_can_change_without_touching_hash(client: TestClient, stored_contract: ContractRead, signed_recorder) -> None:
    response, payload = _sign(client, stored_contract, signed_recorder)
    package_id = response.json()["evidencePackage"]["id"]

    patched = client.patch(f"{SIGNATURES}/evidence/{package_id}", json={"isArchived": True})

    assert patched.status_code == status.HTTP_200_OK
    assert patched.json()["isArchived"] is True
    assert patched.json()["packageHash"] == payload["evidencePackage"]["packageHash"]
    assert client.get(f"{SIGNATURES}/evidence/{package_id}/validate").json()["isValid"] is True


def test_decline_is_recorded(client: TestClient, stored_contract: ContractRead) -> None:
    response = client.post(
        f"{SIGNATURES}/contract/{stored_contract.id}/decline",
        json={"partyType": "secondary", "reason": "Valor divergente"},
    )

    assert response.status_code == status.HTTP_201_CREATED, response.json()
    assert response.json()["status"] == "declined"
    assert response.json()["reason"] == "Valor divergente"


def test_audit_trail_lists_signature_events(
    client: TestClient,
    db_session: Session,
    stored_contract: ContractRead,
    signed_recorder,
) -> None:
    _sign(client, stored_contract, signed_recorder)

    response = client.get(f"{API}/contracts/{stored_contract.id}/audit")

    assert response.status_code == status.HTTP_200_OK
    events = {item["eventType"] for item in response.json()["items"]}
    assert {"contract_created", "signature_added"} <= events
    stored = db_session.exec(select(AuditLog).where(AuditLog.event_type == "signature_added")).one()
    assert stored.details["party_type"] == "primary"


def test_health_endpoints(client: TestClient) -> None:
    assert client.get(f"{API}/health/live").json() == {"status": "ok"}
    assert client.get(f"{API}/health/ready").json() == {"status": "ready"}
