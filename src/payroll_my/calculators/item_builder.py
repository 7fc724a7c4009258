"""Payroll item builder with deterministic calculation ids."""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from payroll_my.calculators.deductions import DeductionsAssembler
from payroll_my.calculators.earnings import EarningsAssembler
from payroll_my.calculators.money import ZERO, money_str, round_cents
from payroll_my.calculators.pcb import PcbResolver, SuppliedPcbResolver
from payroll_my.calculators.statutory import StatutoryCalculator
from payroll_my.calculators.types import (
    BuiltItem,
    ClaimRef,
    EmployerContributions,
    ItemWarning,
    Period,
    StatutoryInput,
    WageComponents,
    WarningCode,
)
from payroll_my.schemas import TenantConfig
from payroll_my.snapshots import EmployeeSnapshot, EpfContributionType

DEFAULT_ENGINE_VERSION = "1.0.0"


class PayrollItemBuilder:
    """Builds one payroll item from components, snapshot and tenant config.

    Pipeline (stable order):
    1) Earnings vector (OT/PH derivation, claims)
    2) Statutory contributions on the pensionable/insurable wage
    3) PCB via the configured resolver
    4) Deductions vector (statutory, PCB, unpaid leave, advances, other)
    5) Totals and warnings

    Totals:
    - gross = sum of positive earnings
    - net = gross - total_deductions (never clamped)
    - employer_cost = gross + EPF/SOCSO/EIS employer contributions

    The builder does no I/O; identical inputs produce identical items,
    including the calculation id.
    """

    def __init__(
        self,
        pcb_resolver: PcbResolver | None = None,
        engine_version: str = DEFAULT_ENGINE_VERSION,
    ):
        self.pcb_resolver = pcb_resolver or SuppliedPcbResolver()
        self.engine_version = engine_version
        self.earnings_assembler = EarningsAssembler()
        self.deductions_assembler = DeductionsAssembler()

    def build(
        self,
        components: WageComponents,
        employee: EmployeeSnapshot,
        config: TenantConfig,
        period: Period,
        claims: Iterable[ClaimRef] = (),
        prev_month_net: Decimal | None = None,
    ) -> BuiltItem:
        claims = tuple(sorted(_unique_claims(claims), key=lambda c: (c.claim_date, str(c.claim_id))))

        earnings = self.earnings_assembler.assemble(components, employee, config, claims)

        calculator = StatutoryCalculator(config.statutory)
        statutory = calculator.calculate(self.statutory_input(earnings, employee, config))

        pcb = ZERO
        if config.statutory.pcb_enabled:
            pcb = self.pcb_resolver.resolve(employee, components, period)
            if pcb < 0:
                raise ValueError(f"PCB resolver returned a negative amount: {pcb}")
        statutory = statutory.with_pcb(pcb)

        deductions = self.deductions_assembler.assemble(
            components, statutory, config.working_days_per_month
        )
        employer = EmployerContributions(
            epf_employer=statutory.epf.employer,
            socso_employer=statutory.socso.employer,
            eis_employer=statutory.eis.employer,
        )

        gross = round_cents(earnings.gross)
        total_deductions = round_cents(deductions.total)
        net = gross - total_deductions
        employer_cost = gross + employer.total

        variance_amount = None
        variance_percent = None
        if prev_month_net is not None and prev_month_net > 0:
            variance_amount = net - prev_month_net
            variance_percent = round_cents(variance_amount / prev_month_net * 100)

        warnings = self.collect_warnings(
            components, net, variance_percent, config.variance_warning_percent
        )

        inputs_fingerprint = self.compute_inputs_fingerprint(
            components, employee, config, claims, prev_month_net
        )
        calculation_id = self.generate_calculation_id(
            employee.employee_id, period, inputs_fingerprint
        )

        return BuiltItem(
            employee_id=employee.employee_id,
            calculation_id=calculation_id,
            inputs_fingerprint=inputs_fingerprint,
            components=components,
            earnings=earnings,
            deductions=deductions,
            employer=employer,
            statutory=statutory,
            gross=gross,
            total_deductions=total_deductions,
            net=net,
            employer_cost=employer_cost,
            warnings=warnings,
            claims=claims,
            prev_month_net=prev_month_net,
            variance_amount=variance_amount,
            variance_percent=variance_percent,
        )

    @staticmethod
    def statutory_input(earnings, employee: EmployeeSnapshot, config: TenantConfig) -> StatutoryInput:
        """Map the earnings vector and EPF scheme onto calculator input."""
        commission = earnings.commission
        if config.epf_include_trade_commission:
            commission += earnings.trade_commission

        employee_rate: Decimal | None = employee.employee_epf_rate
        employer_override: Decimal | None = None
        applicable = True
        if employee.epf_contribution_type == EpfContributionType.FOREIGN:
            employee_rate = config.foreign_epf_employee_rate
            employer_override = config.foreign_epf_employer_rate
        elif employee.epf_contribution_type == EpfContributionType.EXEMPT:
            applicable = False

        return StatutoryInput(
            basic=earnings.basic,
            commission=commission,
            allowance=earnings.fixed_allowance,
            overtime=earnings.ot_amount,
            bonus=earnings.bonus,
            employee_epf_rate=employee_rate,
            employer_epf_rate_override=employer_override,
            epf_applicable=applicable,
        )

    @staticmethod
    def collect_warnings(
        components: WageComponents,
        net: Decimal,
        variance_percent: Decimal | None,
        variance_threshold: Decimal,
    ) -> tuple[ItemWarning, ...]:
        warnings: list[ItemWarning] = []
        if components.basic == 0:
            warnings.append(
                ItemWarning(WarningCode.NO_BASIC_SALARY, "Employee has no basic salary")
            )
        if net < 0:
            warnings.append(
                ItemWarning(WarningCode.NEGATIVE_NET_PAY, f"Net pay is negative ({money_str(net)})")
            )
        if variance_percent is not None and abs(variance_percent) > variance_threshold:
            warnings.append(
                ItemWarning(
                    WarningCode.LARGE_VARIANCE,
                    f"Net pay differs from previous month by {variance_percent}%",
                )
            )
        return tuple(warnings)

    def compute_inputs_fingerprint(
        self,
        components: WageComponents,
        employee: EmployeeSnapshot,
        config: TenantConfig,
        claims: tuple[ClaimRef, ...],
        prev_month_net: Decimal | None,
    ) -> str:
        """Fingerprint of everything the item was computed from."""
        data: dict[str, Any] = {
            "components": components.to_dict(),
            "employee": employee.to_dict(),
            "config": config.to_json(),
            "claims": [
                {"id": str(c.claim_id), "date": c.claim_date.isoformat(), "amount": str(c.amount)}
                for c in claims
            ],
            "prev_month_net": None if prev_month_net is None else str(prev_month_net),
        }
        json_str = json.dumps(data, sort_keys=True, default=str)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]

    def generate_calculation_id(
        self,
        employee_id: UUID,
        period: Period,
        inputs_fingerprint: str,
    ) -> UUID:
        """Generate deterministic calculation ID."""
        data = {
            "employee_id": str(employee_id),
            "period": str(period),
            "engine_version": self.engine_version,
            "inputs_fingerprint": inputs_fingerprint,
        }
        json_str = json.dumps(data, sort_keys=True)
        hash_bytes = hashlib.sha256(json_str.encode()).digest()
        return UUID(bytes=hash_bytes[:16])


def _unique_claims(claims: Iterable[ClaimRef]) -> list[ClaimRef]:
    seen: dict[UUID, ClaimRef] = {}
    for claim in claims:
        seen.setdefault(claim.claim_id, claim)
    return list(seen.values())
