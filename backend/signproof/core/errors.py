from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional


class SignProofError(RuntimeError):
    """Erro de domínio base, com detalhes estruturados para logs e respostas HTTP."""

    def __init__(
        self,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.details = details or {}


class CaptureError(SignProofError):
    """O ambiente não consegue desenhar (superfície raster indisponível). Fatal, reportado uma vez."""


class StepValidationError(SignProofError):
    """Falha de guarda de etapa do fluxo. Recuperável: os dados digitados são preservados."""

    def __init__(self, errors: Iterable[Any], message: str | None = None) -> None:
        self.errors = list(errors)
        summary = message or "; ".join(str(error) for error in self.errors) or "Validation failed"
        super().__init__(summary, details={"errors": [str(error) for error in self.errors]})


class TransportError(SignProofError):
    """Falha de rede ou resposta de erro de um endpoint externo. Recuperável."""

    def __init__(
        self,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.status_code = status_code


class DocumentHashError(SignProofError):
    """O hash do conteúdo do documento não pôde ser calculado ou não confere com o informado."""


class PackageNotFoundError(SignProofError):
    """Pacote de evidências inexistente no repositório."""


@dataclass(frozen=True)
class GuardError:
    """Motivo de bloqueio de uma transição, identificado pelo campo que o causou."""

    field: str
    message: str

    def __str__(self) -> str:
        return self.message
