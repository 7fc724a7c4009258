"""PCB (monthly tax withholding) resolution.

The core does not carry the PCB schedule. A resolver is a plug-in; the
default passes through whatever withholding the period's components supply.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Protocol, runtime_checkable

from payroll_my.calculators.money import ZERO, round_cents
from payroll_my.calculators.types import Period, WageComponents
from payroll_my.snapshots import EmployeeSnapshot


@runtime_checkable
class PcbResolver(Protocol):
    """Resolves the PCB amount for an employee-period."""

    def resolve(
        self,
        employee: EmployeeSnapshot,
        components: WageComponents,
        period: Period,
    ) -> Decimal:
        """Return a non-negative withholding amount."""
        ...


class SuppliedPcbResolver:
    """Passes the supplied PCB value through, or 0 when none was supplied."""

    def resolve(
        self,
        employee: EmployeeSnapshot,
        components: WageComponents,
        period: Period,
    ) -> Decimal:
        if components.pcb is None:
            return ZERO
        return round_cents(components.pcb)
