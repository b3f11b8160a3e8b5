from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable

from signproof.core.config import ConsentDefinition, settings
from signproof.core.errors import GuardError
from signproof.schemas.evidence import ConsentRecord


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Consent:
    key: str
    accepted: bool = False
    accepted_at: datetime | None = None


class ConsentLedger:
    """
    Estado dos aceites da etapa legal.

    O catálogo (chaves, textos, versões, obrigatoriedade) vem da configuração;
    nada aqui conhece a taxonomia jurídica em si.
    """

    def __init__(
        self,
        catalog: Iterable[ConsentDefinition] | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._catalog = {item.key: item for item in (catalog if catalog is not None else settings.consent_catalog)}
        self._clock = clock
        self._consents: dict[str, Consent] = {}
        self.reset()

    @property
    def catalog(self) -> list[ConsentDefinition]:
        return list(self._catalog.values())

    @property
    def required_keys(self) -> list[str]:
        return [key for key, item in self._catalog.items() if item.required]

    def reset(self) -> None:
        self._consents = {key: Consent(key=key) for key in self._catalog}

    def set(self, key: str, accepted: bool) -> Consent:
        if key not in self._catalog:
            raise KeyError(f"Unknown consent '{key}'")
        consent = self._consents[key]
        if accepted and not consent.accepted:
            consent.accepted_at = self._clock()
        elif not accepted:
            consent.accepted_at = None
        consent.accepted = accepted
        return consent

    def accept(self, key: str) -> Consent:
        return self.set(key, True)

    def revoke(self, key: str) -> Consent:
        return self.set(key, False)

    def is_accepted(self, key: str) -> bool:
        consent = self._consents.get(key)
        return bool(consent and consent.accepted)

    def missing_required(self) -> list[str]:
        return [key for key in self.required_keys if not self.is_accepted(key)]

    def guard_errors(self) -> list[GuardError]:
        return [
            GuardError(field=f"consent.{key}", message=f"Consent '{key}' must be accepted")
            for key in self.missing_required()
        ]

    def records(self) -> tuple[ConsentRecord, ...]:
        return tuple(
            ConsentRecord(
                key=key,
                accepted=consent.accepted,
                accepted_at=consent.accepted_at,
                version=self._catalog[key].version,
            )
            for key, consent in self._consents.items()
        )
