from __future__ import annotations

from dataclasses import dataclass

from signproof.core.errors import GuardError
from signproof.schemas.evidence import NotaryRecord, WitnessRecord
from signproof.utils.email_validation import is_valid_email, normalize_email


@dataclass
class Witness:
    name: str = ""
    email: str = ""
    phone: str = ""
    required: bool = False

    def guard_errors(self) -> list[GuardError]:
        if not self.required:
            return []
        errors: list[GuardError] = []
        if not self.name.strip():
            errors.append(GuardError(field="witness.name", message="Witness name is required"))
        if not self.email.strip():
            errors.append(GuardError(field="witness.email", message="Witness email is required"))
        elif not is_valid_email(self.email):
            errors.append(GuardError(field="witness.email", message="Witness email is invalid"))
        return errors

    def to_record(self) -> WitnessRecord | None:
        if not self.required:
            return None
        return WitnessRecord(
            name=self.name.strip(),
            email=normalize_email(self.email),
            phone=self.phone.strip() or None,
            required=True,
        )


@dataclass
class Notary:
    name: str = ""
    commission: str = ""
    required: bool = False

    def guard_errors(self) -> list[GuardError]:
        if not self.required:
            return []
        errors: list[GuardError] = []
        if not self.name.strip():
            errors.append(GuardError(field="notary.name", message="Notary name is required"))
        if not self.commission.strip():
            errors.append(GuardError(field="notary.commission", message="Notary commission is required"))
        return errors

    def to_record(self) -> NotaryRecord | None:
        if not self.required:
            return None
        return NotaryRecord(name=self.name.strip(), commission=self.commission.strip(), required=True)


def witness_record_errors(record: WitnessRecord | None) -> list[str]:
    if record is None or not record.required:
        return []
    missing = [name for name in ("name", "email") if not (getattr(record, name) or "").strip()]
    return [f"Witness {name} is missing" for name in missing]


def notary_record_errors(record: NotaryRecord | None) -> list[str]:
    if record is None or not record.required:
        return []
    missing = [name for name in ("name", "commission") if not (getattr(record, name) or "").strip()]
    return [f"Notary {name} is missing" for name in missing]
