"""Payroll core services."""

from payroll_my.services.claims import (
    REASON_AI_VERIFIED,
    REASON_DUPLICATE_RECEIPT,
    REASON_MEAL_CAP,
    ClaimDecision,
    ClaimDecisionPolicy,
    ClaimService,
    ClaimSubmission,
    ReceiptVerification,
    compute_receipt_hash,
    supervisor_may_decide,
)
from payroll_my.services.exports import BANK_FILE_HEADER, BankFileRow, ExportService
from payroll_my.services.immutability import (
    ImmutabilityGuard,
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from payroll_my.services.retry import with_retry
from payroll_my.services.run_coordinator import MaterializeResult, PayrollRunCoordinator
from payroll_my.services.state_machine import RunStateMachine, RunStatus

__all__ = [
    "BANK_FILE_HEADER",
    "REASON_AI_VERIFIED",
    "REASON_DUPLICATE_RECEIPT",
    "REASON_MEAL_CAP",
    "BankFileRow",
    "ClaimDecision",
    "ClaimDecisionPolicy",
    "ClaimService",
    "ClaimSubmission",
    "ExportService",
    "ImmutabilityGuard",
    "MaterializeResult",
    "PayrollRunCoordinator",
    "ReceiptVerification",
    "RunStateMachine",
    "RunStatus",
    "compute_receipt_hash",
    "register_immutability_listeners",
    "supervisor_may_decide",
    "unregister_immutability_listeners",
    "with_retry",
]
