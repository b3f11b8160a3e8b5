import pytest

from signproof.core.config import ConsentDefinition
from signproof.schemas.evidence import NotaryRecord, WitnessRecord
from signproof.services.attestors import Notary, Witness, notary_record_errors, witness_record_errors
from signproof.services.consent import ConsentLedger
from tests.conftest import FIXED_NOW  # type: ignore


def test_default_catalog_requires_terms_and_privacy() -> None:
    ledger = ConsentLedger()

    assert ledger.required_keys == ["terms", "privacy"]
    assert ledger.missing_required() == ["terms", "privacy"]


def test_guard_errors_name_the_missing_consent() -> None:
    ledger = ConsentLedger()
    ledger.accept("privacy")

    errors = ledger.guard_errors()

    assert [error.field for error in errors] == ["consent.terms"]
    assert "terms" in str(errors[0])


def test_accept_and_revoke_track_timestamp() -> None:
    ledger = ConsentLedger(clock=lambda: FIXED_NOW)

    accepted = ledger.accept("terms")
    assert accepted.accepted_at == FIXED_NOW

    revoked = ledger.revoke("terms")
    assert revoked.accepted is False
    assert revoked.accepted_at is None


def test_unknown_consent_is_rejected() -> None:
    with pytest.raises(KeyError):
        ConsentLedger().accept("marketing")


def test_catalog_comes_from_configuration() -> None:
    catalog = [
        ConsentDefinition(key="lgpd", text="Tratamento de dados", version="2024-01"),
        ConsentDefinition(key="newsletter", text="Novidades", required=False),
    ]
    ledger = ConsentLedger(catalog, clock=lambda: FIXED_NOW)
    ledger.accept("lgpd")

    records = ledger.records()

    assert ledger.required_keys == ["lgpd"]
    assert ledger.guard_errors() == []
    assert [(r.key, r.accepted, r.version) for r in records] == [
        ("lgpd", True, "2024-01"),
        ("newsletter", False, "v1"),
    ]


def test_reset_clears_acceptances() -> None:
    ledger = ConsentLedger()
    ledger.accept("terms")

    ledger.reset()

    assert not ledger.is_accepted("terms")


def test_optional_witness_has_no_errors_and_no_record() -> None:
    witness = Witness()

    assert witness.guard_errors() == []
    assert witness.to_record() is None


def test_required_witness_needs_name_and_valid_email() -> None:
    witness = Witness(name=" ", email="not-an-email", required=True)

    messages = [error.message for error in witness.guard_errors()]

    assert messages == ["Witness name is required", "Witness email is invalid"]


def test_required_witness_record_normalizes_email() -> None:
    witness = Witness(name=" Dora ", email="Dora@Example.COM", phone="", required=True)

    record = witness.to_record()

    assert record.name == "Dora"
    assert record.email.endswith("@example.com")
    assert record.phone is None


def test_required_notary_needs_commission() -> None:
    notary = Notary(name="Eva", required=True)

    assert [error.field for error in notary.guard_errors()] == ["notary.commission"]


def test_record_checks_for_stored_attestors() -> None:
    assert witness_record_errors(WitnessRecord(name="", email="x@example.com")) == ["Witness name is missing"]
    assert notary_record_errors(NotaryRecord(name="Eva", commission="123")) == []
    assert witness_record_errors(None) == []
