"""Abstract readers the payroll core consumes."""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol, runtime_checkable
from uuid import UUID

from payroll_my.calculators.types import ClaimRef, Period, WageComponents
from payroll_my.schemas import TenantConfig
from payroll_my.snapshots import EmployeeSnapshot


@runtime_checkable
class PayrollReader(Protocol):
    """Snapshot, activity, claim and configuration reads for one transaction."""

    async def get_tenant_config(self, tenant_id: UUID) -> TenantConfig:
        """Parsed tenant configuration; raises ConfigMissing when incomplete."""
        ...

    async def get_employee(self, tenant_id: UUID, employee_id: UUID) -> EmployeeSnapshot:
        """Employee snapshot; raises EmployeeNotFound."""
        ...

    async def get_wage_components(
        self,
        tenant_id: UUID,
        employee_id: UUID,
        period: Period,
    ) -> WageComponents:
        """Raw wage components recorded for the employee-period."""
        ...

    async def get_unconsumed_approved_claims(
        self,
        tenant_id: UUID,
        employee_id: UUID,
        period: Period,
    ) -> list[ClaimRef]:
        """Approved claims not yet reimbursed by a finalized item."""
        ...

    async def get_previous_net(
        self,
        tenant_id: UUID,
        employee_id: UUID,
        period: Period,
    ) -> Decimal | None:
        """Net pay from the employee's latest locked item before ``period``."""
        ...
