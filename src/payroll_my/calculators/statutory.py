"""EPF, SOCSO and EIS contribution calculator."""

from __future__ import annotations

from decimal import ROUND_CEILING, Decimal

from payroll_my.calculators.money import ZERO, round_ringgit
from payroll_my.calculators.rate_tables import (
    DEFAULT_EMPLOYEE_EPF_RATE,
    EPF_WAGE_BAND,
    employer_epf_rate,
    lookup_eis,
    lookup_socso,
)
from payroll_my.calculators.types import (
    EpfResult,
    SchemeContribution,
    StatutoryInput,
    StatutoryResult,
)
from payroll_my.schemas import StatutoryToggles


class StatutoryCalculator:
    """Computes employee/employer statutory contributions.

    EPF:
    - base = basic + commission + bonus (allowance and overtime excluded)
    - base rounded up to the next RM100 before the rate is applied, except a
      zero-basic earner receiving a bonus, whose raw base is used
    - employer 13% when rounded base <= 5000, else 12%, unless overridden
    - both contributions rounded to whole ringgit, half away from zero

    SOCSO / EIS:
    - wage = basic + commission, optionally widened with overtime and/or
      allowance by tenant toggles
    - exact table values; a zero wage contributes nothing
    """

    def __init__(self, toggles: StatutoryToggles | None = None):
        self.toggles = toggles or StatutoryToggles()

    def calculate(self, inp: StatutoryInput) -> StatutoryResult:
        """Compute the statutory result for one wage breakdown."""
        epf = self.calculate_epf(inp)

        wage = self.socso_wage(inp)
        socso = self._table_contribution(wage, lookup_socso, self.toggles.socso_enabled)
        eis = self._table_contribution(wage, lookup_eis, self.toggles.eis_enabled)

        return StatutoryResult(epf=epf, socso=socso, eis=eis)

    def calculate_epf(self, inp: StatutoryInput) -> EpfResult:
        base = inp.basic + inp.commission + inp.bonus
        rounded_base = self.round_epf_base(base, inp.basic, inp.bonus)

        employee_rate = (
            inp.employee_epf_rate
            if inp.employee_epf_rate is not None
            else DEFAULT_EMPLOYEE_EPF_RATE
        )
        employer_rate = employer_epf_rate(rounded_base, inp.employer_epf_rate_override)

        if not (self.toggles.epf_enabled and inp.epf_applicable):
            return EpfResult(
                base=base,
                rounded_base=rounded_base,
                employee=ZERO,
                employer=ZERO,
                employee_rate=ZERO,
                employer_rate=ZERO,
            )

        return EpfResult(
            base=base,
            rounded_base=rounded_base,
            employee=round_ringgit(rounded_base * employee_rate),
            employer=round_ringgit(rounded_base * employer_rate),
            employee_rate=employee_rate,
            employer_rate=employer_rate,
        )

    @staticmethod
    def round_epf_base(base: Decimal, basic: Decimal, bonus: Decimal) -> Decimal:
        """Round the EPF base up to the next RM100 band."""
        if basic == 0 and bonus > 0:
            return base
        bands = (base / EPF_WAGE_BAND).to_integral_value(rounding=ROUND_CEILING)
        return bands * EPF_WAGE_BAND

    def socso_wage(self, inp: StatutoryInput) -> Decimal:
        """Wage used for SOCSO and EIS table lookup."""
        wage = inp.basic + inp.commission
        if self.toggles.statutory_on_ot:
            wage += inp.overtime
        if self.toggles.statutory_on_allowance:
            wage += inp.allowance
        return wage

    @staticmethod
    def _table_contribution(wage: Decimal, lookup, enabled: bool) -> SchemeContribution:
        if not enabled or wage <= 0:
            return SchemeContribution(wage=wage, employee=ZERO, employer=ZERO)
        row = lookup(wage)
        return SchemeContribution(wage=wage, employee=row.employee, employer=row.employer)


def calculate_statutory(**raw) -> StatutoryResult:
    """Convenience wrapper: coerce loose inputs and calculate with default toggles.

    Raises:
        InvalidWageInput: negative or non-numeric component.
    """
    return StatutoryCalculator().calculate(StatutoryInput.of(**raw))
