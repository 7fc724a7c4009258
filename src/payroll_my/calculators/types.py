"""Type definitions for the payroll calculation pipeline."""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field, fields, replace
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

from payroll_my.calculators.money import ZERO, money_str, to_decimal, to_money, to_rate
from payroll_my.exceptions import InvalidWageInput


class WarningCode(str, Enum):
    """Non-fatal item warning codes."""

    NEGATIVE_NET_PAY = "negative_net_pay"
    NO_BASIC_SALARY = "no_basic_salary"
    LARGE_VARIANCE = "large_variance"


@dataclass(frozen=True)
class ItemWarning:
    """A non-fatal warning attached to a payroll item."""

    code: WarningCode
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"code": self.code.value, "message": self.message}


@dataclass(frozen=True)
class Period:
    """A tenant-local calendar month."""

    year: int
    month: int

    def __post_init__(self) -> None:
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be 1..12, got {self.month}")
        if self.year < 1900:
            raise ValueError(f"year out of range: {self.year}")

    @property
    def start(self) -> date:
        return date(self.year, self.month, 1)

    @property
    def end(self) -> date:
        return date(self.year, self.month, calendar.monthrange(self.year, self.month)[1])

    def previous(self) -> Period:
        if self.month == 1:
            return Period(self.year - 1, 12)
        return Period(self.year, self.month - 1)

    def __str__(self) -> str:
        return f"{self.year:04d}-{self.month:02d}"


# Amount fields carried as cents; the rest are quantities.
_MONEY_FIELDS = (
    "basic",
    "fixed_allowance",
    "commission",
    "trade_commission",
    "incentive",
    "outstation",
    "claims_amount",
    "bonus",
    "salary_advance",
    "other_deductions",
)
_QUANTITY_FIELDS = ("ot_hours", "ph_days_worked", "unpaid_leave_days")
_OPTIONAL_MONEY_FIELDS = ("ot_amount", "ph_pay", "pcb")


@dataclass(frozen=True)
class WageComponents:
    """Raw monthly inputs for one employee.

    ``ot_amount`` and ``ph_pay`` are ``None`` when they should be derived from
    hours/days and the employee's rates. ``pcb`` is ``None`` when no
    withholding was supplied for the period. ``claims_amount`` holds any
    reimbursement recorded outside the claims ledger; approved claims are
    added on top by the earnings assembler.
    """

    basic: Decimal = ZERO
    fixed_allowance: Decimal = ZERO
    ot_hours: Decimal = ZERO
    ot_amount: Decimal | None = None
    ph_days_worked: Decimal = ZERO
    ph_pay: Decimal | None = None
    commission: Decimal = ZERO
    trade_commission: Decimal = ZERO
    incentive: Decimal = ZERO
    outstation: Decimal = ZERO
    claims_amount: Decimal = ZERO
    bonus: Decimal = ZERO
    unpaid_leave_days: Decimal = ZERO
    pcb: Decimal | None = None
    salary_advance: Decimal = ZERO
    other_deductions: Decimal = ZERO
    other_deductions_description: str | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> WageComponents:
        """Validate and coerce a raw mapping.

        Unknown keys are rejected so a typo in an override never silently
        becomes a zero.

        Raises:
            InvalidWageInput: negative, non-numeric or unknown component.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise InvalidWageInput(unknown[0], raw[unknown[0]], "unknown wage component")

        values: dict[str, Any] = {}
        for name in _MONEY_FIELDS:
            values[name] = to_money(name, raw.get(name))
        for name in _QUANTITY_FIELDS:
            values[name] = to_decimal(name, raw.get(name))
        for name in _OPTIONAL_MONEY_FIELDS:
            value = raw.get(name)
            values[name] = None if value is None else to_money(name, value)

        description = raw.get("other_deductions_description")
        values["other_deductions_description"] = str(description) if description else None
        return cls(**values)

    def with_overrides(self, overrides: Mapping[str, Any]) -> WageComponents:
        """Return a copy with ``overrides`` merged into the raw inputs."""
        merged = self.to_dict()
        merged.update(overrides)
        return WageComponents.from_mapping(merged)

    def to_dict(self) -> dict[str, Any]:
        """Canonical dict (amounts as strings) for snapshots and hashing."""
        out: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            out[f.name] = str(value) if isinstance(value, Decimal) else value
        return out


@dataclass(frozen=True)
class StatutoryInput:
    """Wage breakdown fed to the statutory calculator."""

    basic: Decimal = ZERO
    commission: Decimal = ZERO
    allowance: Decimal = ZERO
    overtime: Decimal = ZERO
    bonus: Decimal = ZERO
    employee_epf_rate: Decimal | None = None
    employer_epf_rate_override: Decimal | None = None
    epf_applicable: bool = True

    @classmethod
    def of(cls, **raw: Any) -> StatutoryInput:
        """Coerce loose inputs (ints, strings, ``None``) into a validated input."""
        return cls(
            basic=to_money("basic", raw.get("basic")),
            commission=to_money("commission", raw.get("commission")),
            allowance=to_money("allowance", raw.get("allowance")),
            overtime=to_money("overtime", raw.get("overtime")),
            bonus=to_money("bonus", raw.get("bonus")),
            employee_epf_rate=(
                None
                if raw.get("employee_epf_rate") is None
                else to_rate("employee_epf_rate", raw["employee_epf_rate"])
            ),
            employer_epf_rate_override=(
                None
                if raw.get("employer_epf_rate_override") is None
                else to_rate("employer_epf_rate_override", raw["employer_epf_rate_override"])
            ),
            epf_applicable=raw.get("epf_applicable", True),
        )


@dataclass(frozen=True)
class EpfResult:
    """EPF base, wage-band rounded base and both contributions."""

    base: Decimal
    rounded_base: Decimal
    employee: Decimal
    employer: Decimal
    employee_rate: Decimal
    employer_rate: Decimal


@dataclass(frozen=True)
class SchemeContribution:
    """Table-driven contribution (SOCSO or EIS) and the wage it was looked up at."""

    wage: Decimal
    employee: Decimal
    employer: Decimal


@dataclass(frozen=True)
class StatutorySummary:
    """Roll-up of the statutory result."""

    perkeso: Decimal
    total_employee_deductions: Decimal
    total_employer_contributions: Decimal


@dataclass(frozen=True)
class StatutoryResult:
    """Output of the statutory calculator."""

    epf: EpfResult
    socso: SchemeContribution
    eis: SchemeContribution
    pcb: Decimal = ZERO

    def summary(self) -> StatutorySummary:
        return StatutorySummary(
            perkeso=self.socso.employee + self.eis.employee,
            total_employee_deductions=self.epf.employee + self.socso.employee + self.eis.employee,
            total_employer_contributions=(
                self.epf.employer + self.socso.employer + self.eis.employer
            ),
        )

    def with_pcb(self, pcb: Decimal) -> StatutoryResult:
        return replace(self, pcb=pcb)

    def to_dict(self) -> dict[str, Any]:
        return {
            "epf": {
                "base": money_str(self.epf.base),
                "rounded_base": money_str(self.epf.rounded_base),
                "employee": money_str(self.epf.employee),
                "employer": money_str(self.epf.employer),
                "employee_rate": str(self.epf.employee_rate),
                "employer_rate": str(self.epf.employer_rate),
            },
            "socso": {
                "wage": money_str(self.socso.wage),
                "employee": money_str(self.socso.employee),
                "employer": money_str(self.socso.employer),
            },
            "eis": {
                "wage": money_str(self.eis.wage),
                "employee": money_str(self.eis.employee),
                "employer": money_str(self.eis.employer),
            },
            "pcb": money_str(self.pcb),
        }


@dataclass(frozen=True)
class ClaimRef:
    """An approved, not-yet-consumed claim contributing to an item."""

    claim_id: UUID
    claim_date: date
    category: str
    amount: Decimal


@dataclass(frozen=True)
class EarningsVector:
    """Normalized earnings for one employee-period."""

    basic: Decimal = ZERO
    fixed_allowance: Decimal = ZERO
    ot_hours: Decimal = ZERO
    ot_amount: Decimal = ZERO
    ph_days_worked: Decimal = ZERO
    ph_pay: Decimal = ZERO
    commission: Decimal = ZERO
    trade_commission: Decimal = ZERO
    incentive: Decimal = ZERO
    outstation: Decimal = ZERO
    claims_amount: Decimal = ZERO
    bonus: Decimal = ZERO

    AMOUNT_FIELDS = (
        "basic",
        "fixed_allowance",
        "ot_amount",
        "ph_pay",
        "commission",
        "trade_commission",
        "incentive",
        "outstation",
        "claims_amount",
        "bonus",
    )

    @property
    def gross(self) -> Decimal:
        """Sum of all positive earnings components."""
        total = ZERO
        for name in self.AMOUNT_FIELDS:
            amount = getattr(self, name)
            if amount > 0:
                total += amount
        return total

    def to_dict(self) -> dict[str, str]:
        out = {name: money_str(getattr(self, name)) for name in self.AMOUNT_FIELDS}
        out["ot_hours"] = str(self.ot_hours)
        out["ph_days_worked"] = str(self.ph_days_worked)
        return out


@dataclass(frozen=True)
class DeductionsVector:
    """Employee-side deductions for one employee-period."""

    epf_employee: Decimal = ZERO
    socso_employee: Decimal = ZERO
    eis_employee: Decimal = ZERO
    pcb: Decimal = ZERO
    unpaid_leave_days: Decimal = ZERO
    unpaid_leave_deduction: Decimal = ZERO
    salary_advance: Decimal = ZERO
    other_deductions: Decimal = ZERO
    other_deductions_description: str | None = None

    AMOUNT_FIELDS = (
        "epf_employee",
        "socso_employee",
        "eis_employee",
        "pcb",
        "unpaid_leave_deduction",
        "salary_advance",
        "other_deductions",
    )

    @property
    def total(self) -> Decimal:
        return sum((getattr(self, name) for name in self.AMOUNT_FIELDS), ZERO)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {name: money_str(getattr(self, name)) for name in self.AMOUNT_FIELDS}
        out["unpaid_leave_days"] = str(self.unpaid_leave_days)
        out["other_deductions_description"] = self.other_deductions_description
        return out


@dataclass(frozen=True)
class EmployerContributions:
    """Employer-side statutory contributions."""

    epf_employer: Decimal = ZERO
    socso_employer: Decimal = ZERO
    eis_employer: Decimal = ZERO

    @property
    def total(self) -> Decimal:
        return self.epf_employer + self.socso_employer + self.eis_employer

    def to_dict(self) -> dict[str, str]:
        return {
            "epf_employer": money_str(self.epf_employer),
            "socso_employer": money_str(self.socso_employer),
            "eis_employer": money_str(self.eis_employer),
        }


@dataclass(frozen=True)
class BuiltItem:
    """Result of building one payroll item (not yet persisted)."""

    employee_id: UUID
    calculation_id: UUID
    inputs_fingerprint: str
    components: WageComponents
    earnings: EarningsVector
    deductions: DeductionsVector
    employer: EmployerContributions
    statutory: StatutoryResult
    gross: Decimal
    total_deductions: Decimal
    net: Decimal
    employer_cost: Decimal
    warnings: tuple[ItemWarning, ...] = field(default_factory=tuple)
    claims: tuple[ClaimRef, ...] = field(default_factory=tuple)
    prev_month_net: Decimal | None = None
    variance_amount: Decimal | None = None
    variance_percent: Decimal | None = None

    @property
    def claim_ids(self) -> list[UUID]:
        return [c.claim_id for c in self.claims]

    @property
    def has_warnings(self) -> bool:
        return len(self.warnings) > 0
