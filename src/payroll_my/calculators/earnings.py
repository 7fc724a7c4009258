"""Earnings assembler."""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from payroll_my.calculators.money import ZERO, round_cents
from payroll_my.calculators.types import ClaimRef, EarningsVector, WageComponents
from payroll_my.schemas import TenantConfig
from payroll_my.snapshots import EmployeeSnapshot


class EarningsAssembler:
    """Normalizes raw wage components into the stored earnings vector.

    - overtime: supplied amount, else ot_hours x overtime rate
    - PH pay: supplied amount, else ph_days_worked x daily rate
    - claims: supplied reimbursement plus every contributing approved claim
    """

    def assemble(
        self,
        components: WageComponents,
        employee: EmployeeSnapshot,
        config: TenantConfig,
        claims: Iterable[ClaimRef] = (),
    ) -> EarningsVector:
        ot_amount = components.ot_amount
        if ot_amount is None:
            ot_amount = round_cents(components.ot_hours * self.overtime_rate(employee, config))

        ph_pay = components.ph_pay
        if ph_pay is None:
            ph_pay = round_cents(
                components.ph_days_worked * self.ph_daily_rate(components, employee, config)
            )

        claims_total = sum((c.amount for c in claims), ZERO)

        return EarningsVector(
            basic=components.basic,
            fixed_allowance=components.fixed_allowance,
            ot_hours=components.ot_hours,
            ot_amount=ot_amount,
            ph_days_worked=components.ph_days_worked,
            ph_pay=ph_pay,
            commission=components.commission,
            trade_commission=components.trade_commission,
            incentive=components.incentive,
            outstation=components.outstation,
            claims_amount=round_cents(components.claims_amount + claims_total),
            bonus=components.bonus,
        )

    @staticmethod
    def overtime_rate(employee: EmployeeSnapshot, config: TenantConfig) -> Decimal:
        """Hourly overtime rate: explicit OT rate, else hourly rate x tenant multiplier."""
        if employee.overtime_rate is not None:
            return employee.overtime_rate
        if employee.hourly_rate is not None:
            return employee.hourly_rate * config.ot_multiplier
        return ZERO

    @staticmethod
    def ph_daily_rate(
        components: WageComponents,
        employee: EmployeeSnapshot,
        config: TenantConfig,
    ) -> Decimal:
        """Public-holiday day rate: daily rate, else basic / working days."""
        if employee.daily_rate is not None:
            daily = employee.daily_rate
        elif components.basic > 0:
            daily = components.basic / Decimal(config.working_days_per_month)
        else:
            return ZERO
        return daily * config.ph_multiplier
