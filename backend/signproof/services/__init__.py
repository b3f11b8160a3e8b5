from signproof.services.attestors import Notary, Witness
from signproof.services.audit import AuditService
from signproof.services.consent import ConsentLedger
from signproof.services.contracts import ContractService
from signproof.services.evidence import EvidencePackageBuilder
from signproof.services.evidence_store import EvidenceStore
from signproof.services.gateway import SubmissionGateway
from signproof.services.signatures import SignatureService
from signproof.services.validation import ValidationService
from signproof.services.workflow import ConsentWorkflowController, WorkflowState

__all__ = [
    "AuditService",
    "ConsentLedger",
    "ConsentWorkflowController",
    "ContractService",
    "EvidencePackageBuilder",
    "EvidenceStore",
    "Notary",
    "SignatureService",
    "SubmissionGateway",
    "ValidationService",
    "Witness",
    "WorkflowState",
]
