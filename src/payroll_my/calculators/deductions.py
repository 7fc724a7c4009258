"""Deductions assembler."""

from __future__ import annotations

from decimal import Decimal

from payroll_my.calculators.money import ZERO, round_cents
from payroll_my.calculators.types import DeductionsVector, StatutoryResult, WageComponents


def unpaid_leave_deduction(basic: Decimal, unpaid_days: Decimal, working_days: int) -> Decimal:
    """round2(unpaid_days x basic / working_days)."""
    if unpaid_days <= 0 or basic <= 0:
        return ZERO
    return round_cents(unpaid_days * (basic / Decimal(working_days)))


class DeductionsAssembler:
    """Builds the employee-side deductions vector."""

    def assemble(
        self,
        components: WageComponents,
        statutory: StatutoryResult,
        working_days_per_month: int,
    ) -> DeductionsVector:
        return DeductionsVector(
            epf_employee=statutory.epf.employee,
            socso_employee=statutory.socso.employee,
            eis_employee=statutory.eis.employee,
            pcb=statutory.pcb,
            unpaid_leave_days=components.unpaid_leave_days,
            unpaid_leave_deduction=unpaid_leave_deduction(
                components.basic,
                components.unpaid_leave_days,
                working_days_per_month,
            ),
            salary_advance=components.salary_advance,
            other_deductions=components.other_deductions,
            other_deductions_description=components.other_deductions_description,
        )
