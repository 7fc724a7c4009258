"""Error taxonomy for the payroll core."""

from __future__ import annotations

from typing import Any, Iterable
from uuid import UUID


class PayrollError(Exception):
    """Base class for all payroll core errors."""


class InvalidWageInput(PayrollError):
    """Raised when a wage component is negative or not numeric.

    Fatal to a single item; the coordinator records it on that item and
    keeps materializing the rest of the run.
    """

    def __init__(self, field: str, value: Any, reason: str | None = None):
        self.field = field
        self.value = value
        self.reason = reason or "must be a non-negative number"
        super().__init__(f"Invalid wage input '{field}'={value!r}: {self.reason}")


class FinalizedRunImmutable(PayrollError):
    """Raised on any write against a finalized or approved run or its items."""

    def __init__(self, run_id: UUID | None, status: str, action: str | None = None):
        self.run_id = run_id
        self.status = status
        self.action = action
        msg = f"Payroll run {run_id} is {status} and cannot be modified"
        if action:
            msg += f" ({action})"
        super().__init__(msg)


class ClaimConsumedConcurrently(PayrollError):
    """Raised at finalize when a contributing claim was consumed by another run.

    The caller should re-draft (rematerialize) and retry the finalize.
    """

    def __init__(self, claim_ids: Iterable[UUID]):
        self.claim_ids = sorted(claim_ids, key=str)
        joined = ", ".join(str(c) for c in self.claim_ids)
        super().__init__(f"Claim(s) already consumed by another payroll item: {joined}")


class ConfigMissing(PayrollError):
    """Raised when a tenant lacks a required payroll configuration value."""

    def __init__(self, tenant_id: UUID | None, key: str):
        self.tenant_id = tenant_id
        self.key = key
        super().__init__(f"Tenant {tenant_id} is missing required payroll config '{key}'")


class RunNotFound(PayrollError):
    """Raised when a payroll run id does not resolve."""

    def __init__(self, run_id: UUID):
        self.run_id = run_id
        super().__init__(f"Payroll run {run_id} not found")


class EmployeeNotFound(PayrollError):
    """Raised when an employee does not exist within the tenant."""

    def __init__(self, tenant_id: UUID, employee_id: UUID):
        self.tenant_id = tenant_id
        self.employee_id = employee_id
        super().__init__(f"Employee {employee_id} not found in tenant {tenant_id}")


class GroupNotFound(PayrollError):
    """Raised when a department/outlet does not exist within the tenant."""

    def __init__(self, tenant_id: UUID, group_id: UUID):
        self.tenant_id = tenant_id
        self.group_id = group_id
        super().__init__(f"Group {group_id} not found in tenant {tenant_id}")


class ItemNotFound(PayrollError):
    """Raised when a run has no item for the employee."""

    def __init__(self, run_id: UUID, employee_id: UUID):
        self.run_id = run_id
        self.employee_id = employee_id
        super().__init__(f"Payroll run {run_id} has no item for employee {employee_id}")


class InvalidTransitionError(PayrollError):
    """Raised when an invalid run status transition is attempted."""

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class BlockingWarningsPresent(PayrollError):
    """Raised at finalize when items carry warnings the tenant marks as blocking."""

    def __init__(self, run_id: UUID, codes: dict[str, int]):
        self.run_id = run_id
        self.codes = codes
        summary = ", ".join(f"{code} x{count}" for code, count in sorted(codes.items()))
        super().__init__(f"Payroll run {run_id} has blocking warnings: {summary}")


class ItemErrorsPresent(PayrollError):
    """Raised at finalize when any item failed to materialize."""

    def __init__(self, run_id: UUID, employee_ids: list[UUID]):
        self.run_id = run_id
        self.employee_ids = employee_ids
        super().__init__(
            f"Payroll run {run_id} has {len(employee_ids)} item(s) in error status"
        )


class ClaimNotFound(PayrollError):
    """Raised when a claim id does not resolve within the tenant."""

    def __init__(self, claim_id: UUID):
        self.claim_id = claim_id
        super().__init__(f"Claim {claim_id} not found")


class ClaimAlreadyDecided(PayrollError):
    """Raised when a decision is attempted on a claim that is no longer pending."""

    def __init__(self, claim_id: UUID, status: str):
        self.claim_id = claim_id
        self.status = status
        super().__init__(f"Claim {claim_id} is already {status}")


class ClaimDecisionForbidden(PayrollError):
    """Raised when a supervisor does not share scope with the claimant."""

    def __init__(self, supervisor_id: UUID, claim_id: UUID):
        self.supervisor_id = supervisor_id
        self.claim_id = claim_id
        super().__init__(f"Supervisor {supervisor_id} may not decide claim {claim_id}")


class TransientStoreError(PayrollError):
    """Raised by store implementations for retryable failures."""


class TenantNotFound(PayrollError):
    """Raised when a tenant id does not resolve."""

    def __init__(self, tenant_id: UUID):
        self.tenant_id = tenant_id
        super().__init__(f"Tenant {tenant_id} not found")
