import io
import json
import zipfile
from pathlib import Path

import httpx
import pytest

from signproof.capture.device import DeviceContext, DeviceSnapshot
from signproof.core.errors import TransportError
from signproof.schemas.contract import PartyRole
from signproof.schemas.evidence import SignatureDecline, ValidationMode
from signproof.services.clients import ContractClient, EvidenceClient
from signproof.services.consent import ConsentLedger
from signproof.services.evidence import EvidencePackageBuilder
from signproof.services.gateway import SubmissionGateway, build_submission
from tests.conftest import FIXED_NOW  # type: ignore

pytestmark = pytest.mark.anyio

BASE_URL = "https://api.test/api/v1"


@pytest.fixture()
def package(contract, signed_recorder):
    ledger = ConsentLedger(clock=lambda: FIXED_NOW)
    ledger.accept("terms")
    ledger.accept("privacy")
    return EvidencePackageBuilder(size=(200, 100), clock=lambda: FIXED_NOW).build(
        contract=contract,
        party=contract.parties[0],
        strokes=signed_recorder.strokes,
        metadata=signed_recorder.metadata,
        consents=ledger.records(),
        required_consents=ledger.required_keys,
    )


def _submission(package):
    return build_submission(
        party_type=PartyRole.PRIMARY,
        party_index=None,
        package=package,
        device=DeviceSnapshot(device=DeviceContext(user_agent="pytest"), ip_address="203.0.113.1"),
    )


async def test_submit_posts_camel_case_payload(contract, package) -> None:
    captured: dict = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["auth"] = request.headers.get("authorization")
        captured["body"] = json.loads(request.content)
        return httpx.Response(
            201,
            json={
                "signature": {
                    "id": package.signature_id,
                    "contractId": package.contract_id,
                    "partyId": "p-1",
                    "partyType": "primary",
                    "signatureMethod": "electronic",
                    "status": "signed",
                    "signedAt": FIXED_NOW.isoformat(),
                },
                "evidencePackage": package.model_dump(mode="json", by_alias=True),
            },
        )

    gateway = SubmissionGateway(BASE_URL, access_token="token-1", transport=httpx.MockTransport(handler))
    receipt = await gateway.submit(str(contract.id), _submission(package))

    assert captured["path"] == f"/api/v1/contracts/signatures/contract/{contract.id}/sign"
    assert captured["auth"] == "Bearer token-1"
    body = captured["body"]
    assert body["partyType"] == "primary"
    assert body["metadata"]["ipAddress"] == "203.0.113.1"
    assert "geolocation" in body["metadata"] and body["metadata"]["geolocation"] is None
    assert body["evidencePackage"]["packageHash"] == package.package_hash
    assert receipt.signature_id == package.signature_id
    assert receipt.evidence_package_id == package.id


async def test_submit_error_response_becomes_transport_error(contract, package) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(409, json={"detail": "hash mismatch"}))
    gateway = SubmissionGateway(BASE_URL, transport=transport)

    with pytest.raises(TransportError) as excinfo:
        await gateway.submit(str(contract.id), _submission(package))

    assert excinfo.value.status_code == 409
    assert str(excinfo.value) == "hash mismatch"


async def test_submit_unexpected_success_body_becomes_transport_error(contract, package) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(201, json={}))
    gateway = SubmissionGateway(BASE_URL, transport=transport)

    with pytest.raises(TransportError) as excinfo:
        await gateway.submit(str(contract.id), _submission(package))

    assert "Invalid response" in str(excinfo.value)
    assert excinfo.value.details["errors"]


async def test_submit_timeout_becomes_transport_error(contract, package) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("too slow", request=request)

    gateway = SubmissionGateway(BASE_URL, transport=httpx.MockTransport(handler))

    with pytest.raises(TransportError, match="timed out"):
        await gateway.submit(str(contract.id), _submission(package))


async def test_decline_posts_reason(contract) -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(201, json={})

    gateway = SubmissionGateway(BASE_URL, transport=httpx.MockTransport(handler))
    await gateway.decline(str(contract.id), SignatureDecline(party_type=PartyRole.SECONDARY, reason="Prazo"))

    assert seen == [{"partyType": "secondary", "partyIndex": None, "reason": "Prazo"}]


async def test_contract_client_parses_contract(contract) -> None:
    payload = contract.model_dump(mode="json", by_alias=True)
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json=payload))

    loaded = await ContractClient(BASE_URL, transport=transport).get_contract(str(contract.id))

    assert loaded == contract


async def test_evidence_client_fetch_and_validate(package) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/validate"):
            assert request.url.params["mode"] == "current_document"
            return httpx.Response(
                200,
                json={"isValid": True, "errors": [], "timestamp": FIXED_NOW.isoformat(), "message": "ok", "mode": "current_document"},
            )
        return httpx.Response(200, json=package.model_dump(mode="json", by_alias=True))

    client = EvidenceClient(BASE_URL, transport=httpx.MockTransport(handler))

    fetched = await client.fetch_by_signature(package.signature_id)
    result = await client.validate(package.id, ValidationMode.CURRENT_DOCUMENT)

    assert fetched.package_hash == package.package_hash
    assert result.is_valid


def _zip_bytes() -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        archive.writestr("evidence.json", "{}")
    return buffer.getvalue()


async def test_export_archive_removes_temporary_file() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=_zip_bytes()))
    client = EvidenceClient(BASE_URL, transport=transport)

    async with client.export_archive("pkg-1") as path:
        assert path.exists()
        assert zipfile.is_zipfile(path)
        kept: Path = path

    assert not kept.exists()


async def test_export_archive_cleans_up_on_error() -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=_zip_bytes()))
    client = EvidenceClient(BASE_URL, transport=transport)

    with pytest.raises(RuntimeError):
        async with client.export_archive("pkg-1") as path:
            kept = path
            raise RuntimeError("boom")

    assert not kept.exists()


async def test_download_archive_copies_to_destination(tmp_path) -> None:
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=_zip_bytes()))

    target = await EvidenceClient(BASE_URL, transport=transport).download_archive("pkg-1", tmp_path / "out.zip")

    assert zipfile.is_zipfile(target)
