from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Protocol, TypeVar

from signproof.capture.device import DeviceContextCollector, DeviceSnapshot
from signproof.capture.recorder import StrokeRecorder
from signproof.core.config import settings
from signproof.core.errors import GuardError, StepValidationError, TransportError
from signproof.core.logging_setup import logger
from signproof.schemas.contract import ContractRead, Party, PartyRole
from signproof.schemas.evidence import (
    EvidencePackage,
    SignatureDecline,
    SignatureSubmission,
    SubmissionReceipt,
)
from signproof.services.attestors import Notary, Witness
from signproof.services.consent import ConsentLedger
from signproof.services.evidence import EvidencePackageBuilder
from signproof.services.gateway import build_submission

T = TypeVar("T")


class WorkflowState(str, Enum):
    IDENTITY = "identity"
    CAPTURE = "capture"
    LEGAL_ACKNOWLEDGMENT = "legal_acknowledgment"
    SUBMITTING = "submitting"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class Transition:
    """Resultado de uma transição: o estado atual e todos os erros de guarda, juntos."""

    state: WorkflowState
    errors: tuple[GuardError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors

    def error_fields(self) -> list[str]:
        return [error.field for error in self.errors]

    def raise_for_errors(self) -> "Transition":
        if self.errors:
            raise StepValidationError(self.errors)
        return self


class SubmissionEndpoint(Protocol):
    async def submit(self, contract_id: str, submission: SignatureSubmission) -> SubmissionReceipt:
        ...

    async def decline(self, contract_id: str, decline: SignatureDecline) -> None:
        ...


_BACK = {
    WorkflowState.CAPTURE: WorkflowState.IDENTITY,
    WorkflowState.LEGAL_ACKNOWLEDGMENT: WorkflowState.CAPTURE,
    WorkflowState.FAILED: WorkflowState.LEGAL_ACKNOWLEDGMENT,
}


class ConsentWorkflowController:
    """
    Assistente de assinatura: Identity -> Capture -> LegalAcknowledgment -> Submitting -> Complete.

    Cada transição é protegida por guardas que devolvem a lista completa de
    erros; nada é ajustado silenciosamente. Voltar nunca descarta dados. Falha
    de transporte passa por FAILED e retorna a LegalAcknowledgment com a
    assinatura preservada para um novo envio manual.
    """

    def __init__(
        self,
        *,
        contract: ContractRead | None,
        party_type: PartyRole | str,
        gateway: SubmissionEndpoint,
        party_index: int | None = None,
        recorder: StrokeRecorder | None = None,
        consents: ConsentLedger | None = None,
        collector: DeviceContextCollector | None = None,
        builder: EvidencePackageBuilder | None = None,
        require_witness: bool = False,
        require_notary: bool = False,
        geolocation_wait_seconds: float | None = None,
    ) -> None:
        self.contract = contract
        self.party_type = PartyRole(party_type)
        self.party_index = party_index
        self.collector = collector
        self.recorder = recorder or StrokeRecorder(
            device_context=(lambda: collector.collect_device()) if collector else None,
        )
        self.consents = consents or ConsentLedger()
        self.builder = builder or EvidencePackageBuilder(
            size=(self.recorder.width, self.recorder.height),
            background=self.recorder.background,
        )
        self._gateway = gateway
        self._require_witness = require_witness
        self._require_notary = require_notary
        self._geolocation_wait = (
            geolocation_wait_seconds
            if geolocation_wait_seconds is not None
            else settings.geolocation_timeout_seconds
        )
        self._session = 0
        self._tasks: set[asyncio.Task] = set()
        self.state = WorkflowState.IDENTITY
        self.history: list[WorkflowState] = [WorkflowState.IDENTITY]
        self.last_errors: tuple[GuardError, ...] = ()
        self.last_failure: TransportError | None = None
        self.package: EvidencePackage | None = None
        self.receipt: SubmissionReceipt | None = None
        self.witness = Witness(required=require_witness)
        self.notary = Notary(required=require_notary)

    # ===============================================================
    # Sessão
    # ===============================================================
    @property
    def party(self) -> Party | None:
        if self.contract is None:
            return None
        return self.contract.resolve_party(self.party_type, self.party_index)

    async def open(self, contract: ContractRead | None = None) -> Transition:
        """Abre (ou reabre) o diálogo: sempre volta a Identity, sem herdar dados da sessão anterior."""
        self._cancel_tasks()
        if contract is not None:
            self.contract = contract
        self._session += 1
        self._reset()
        if self.collector is not None:
            self.collector.start()
        logger.info("Signature workflow opened (party=%s, session=%d)", self.party_type.value, self._session)
        return Transition(self.state)

    async def close(self) -> None:
        """Fecha o diálogo: cancela chamadas de rede pendentes e descarta a captura."""
        self._cancel_tasks()
        if self.collector is not None:
            self.collector.cancel()
        self._session += 1
        self._reset()

    def _reset(self) -> None:
        self.recorder.clear()
        self.consents.reset()
        self.witness = Witness(required=self._require_witness)
        self.notary = Notary(required=self._require_notary)
        self.last_errors = ()
        self.last_failure = None
        self.package = None
        self.receipt = None
        self.state = WorkflowState.IDENTITY
        self.history = [WorkflowState.IDENTITY]

    def _enter(self, state: WorkflowState) -> None:
        logger.debug("Workflow %s -> %s", self.state.value, state.value)
        self.state = state
        self.history.append(state)

    def _cancel_tasks(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

    # ===============================================================
    # Guardas
    # ===============================================================
    def identity_errors(self) -> list[GuardError]:
        if self.party is None:
            return [GuardError(field="party", message="Invalid party information")]
        return []

    def capture_errors(self) -> list[GuardError]:
        # assinatura e testemunha/tabelião são verificados juntos, sem curto-circuito
        errors: list[GuardError] = []
        if self.recorder.is_empty:
            errors.append(GuardError(field="signature", message="Signature is required"))
        errors.extend(self.witness.guard_errors())
        errors.extend(self.notary.guard_errors())
        return errors

    def legal_errors(self) -> list[GuardError]:
        return self.consents.guard_errors()

    def _reject(self, errors: list[GuardError]) -> Transition:
        self.last_errors = tuple(errors)
        return Transition(self.state, self.last_errors)

    # ===============================================================
    # Transições
    # ===============================================================
    def advance(self) -> Transition:
        if self.state == WorkflowState.IDENTITY:
            errors, target = self.identity_errors(), WorkflowState.CAPTURE
        elif self.state == WorkflowState.CAPTURE:
            errors, target = self.capture_errors(), WorkflowState.LEGAL_ACKNOWLEDGMENT
        elif self.state == WorkflowState.LEGAL_ACKNOWLEDGMENT:
            return self._reject([GuardError(field="state", message="Use submit() to leave the legal acknowledgment step")])
        else:
            return self._reject([GuardError(field="state", message=f"No forward transition from '{self.state.value}'")])

        if errors:
            return self._reject(errors)
        self.last_errors = ()
        self._enter(target)
        return Transition(self.state)

    def back(self) -> Transition:
        if self.state == WorkflowState.SUBMITTING:
            return self._reject([GuardError(field="state", message="Cannot go back while submitting")])
        target = _BACK.get(self.state)
        if target is None:
            return self._reject([GuardError(field="state", message=f"No previous step from '{self.state.value}'")])
        self.last_errors = ()
        self._enter(target)
        return Transition(self.state)

    async def submit(self) -> Transition:
        if self.state != WorkflowState.LEGAL_ACKNOWLEDGMENT:
            return self._reject(
                [GuardError(field="state", message=f"Cannot submit from '{self.state.value}'")]
            )

        # revalida todas as etapas antes de sair do aceite legal
        errors = self.identity_errors() + self.capture_errors() + self.legal_errors()
        party, contract = self.party, self.contract
        if errors or party is None or contract is None:
            return self._reject(errors or self.identity_errors())

        # a captura revisada é congelada antes de qualquer espera
        session = self._session
        strokes = self.recorder.strokes
        metadata = self.recorder.metadata
        consents = self.consents.records()
        required_consents = self.consents.required_keys
        witness = self.witness.to_record()
        notary = self.notary.to_record()

        self.last_errors = ()
        self.last_failure = None
        self._enter(WorkflowState.SUBMITTING)

        try:
            device = await self._run_tracked(self._device_snapshot())
        except asyncio.CancelledError:
            if session != self._session:
                return self._cancelled()
            raise
        if session != self._session:
            return self._cancelled()

        try:
            package = self.builder.build(
                contract=contract,
                party=party,
                strokes=strokes,
                metadata=metadata,
                consents=consents,
                required_consents=required_consents,
                device=device,
                witness=witness,
                notary=notary,
            )
        except Exception:
            self._enter(WorkflowState.LEGAL_ACKNOWLEDGMENT)
            raise

        submission = build_submission(
            party_type=self.party_type,
            party_index=self.party_index,
            package=package,
            device=device,
            witness=package.signer_snapshot.witness,
            notary=package.signer_snapshot.notary,
        )
        try:
            receipt = await self._run_tracked(self._gateway.submit(str(contract.id), submission))
        except asyncio.CancelledError:
            if session != self._session:
                logger.info("Submission abandoned: workflow closed")
                return self._cancelled()
            raise
        except TransportError as exc:
            if session != self._session:
                return self._cancelled()
            return self._fail(exc)
        except Exception:
            if session == self._session:
                logger.exception("Unexpected error while submitting signature")
                self._enter(WorkflowState.LEGAL_ACKNOWLEDGMENT)
            raise

        if session != self._session:
            # sessão encerrada durante o envio: nenhum efeito local
            return self._cancelled()

        self.package = package
        self.receipt = receipt
        self._enter(WorkflowState.COMPLETE)
        return Transition(self.state)

    async def decline(self, reason: str | None = None) -> Transition:
        if self.state in (WorkflowState.SUBMITTING, WorkflowState.COMPLETE):
            return self._reject([GuardError(field="state", message=f"Cannot decline from '{self.state.value}'")])
        if self.contract is None:
            return self._reject([GuardError(field="party", message="Invalid party information")])
        session = self._session
        decline = SignatureDecline(party_type=self.party_type, party_index=self.party_index, reason=reason)
        try:
            await self._run_tracked(self._gateway.decline(str(self.contract.id), decline))
        except asyncio.CancelledError:
            if session != self._session:
                logger.info("Decline abandoned: workflow closed")
                return self._cancelled()
            raise
        except TransportError as exc:
            if session != self._session:
                return self._cancelled()
            return self._reject([GuardError(field="submission", message=str(exc))])
        if session != self._session:
            return self._cancelled()
        return Transition(self.state)

    # ===============================================================
    # Internos
    # ===============================================================
    async def _run_tracked(self, coro: Awaitable[T]) -> T:
        """Executa a chamada como tarefa registrada, para que close() possa cancelá-la."""
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        try:
            return await task
        finally:
            self._tasks.discard(task)

    async def _device_snapshot(self) -> DeviceSnapshot:
        if self.collector is None:
            return DeviceSnapshot()
        return await self.collector.snapshot(wait_seconds=self._geolocation_wait)

    def _cancelled(self) -> Transition:
        return Transition(self.state, (GuardError(field="submission", message="Submission cancelled"),))

    def _fail(self, exc: TransportError) -> Transition:
        logger.warning("Signature submission failed: %s", exc)
        self.last_failure = exc
        self._enter(WorkflowState.FAILED)
        # a captura e os aceites continuam intactos para o reenvio manual
        self._enter(WorkflowState.LEGAL_ACKNOWLEDGMENT)
        return self._reject([GuardError(field="submission", message=str(exc))])
