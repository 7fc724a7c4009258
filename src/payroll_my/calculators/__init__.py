"""Pure payroll calculators: rate tables, statutory contributions, item assembly."""

from payroll_my.calculators.deductions import DeductionsAssembler, unpaid_leave_deduction
from payroll_my.calculators.earnings import EarningsAssembler
from payroll_my.calculators.item_builder import PayrollItemBuilder
from payroll_my.calculators.pcb import PcbResolver, SuppliedPcbResolver
from payroll_my.calculators.rate_tables import (
    EIS_TABLE,
    SOCSO_TABLE,
    TableContribution,
    employer_epf_rate,
    lookup_eis,
    lookup_socso,
)
from payroll_my.calculators.statutory import StatutoryCalculator, calculate_statutory
from payroll_my.calculators.types import (
    BuiltItem,
    ClaimRef,
    DeductionsVector,
    EarningsVector,
    EmployerContributions,
    ItemWarning,
    Period,
    StatutoryInput,
    StatutoryResult,
    WageComponents,
    WarningCode,
)

__all__ = [
    "BuiltItem",
    "ClaimRef",
    "DeductionsAssembler",
    "DeductionsVector",
    "EIS_TABLE",
    "EarningsAssembler",
    "EarningsVector",
    "EmployerContributions",
    "ItemWarning",
    "PayrollItemBuilder",
    "PcbResolver",
    "Period",
    "SOCSO_TABLE",
    "StatutoryCalculator",
    "StatutoryInput",
    "StatutoryResult",
    "SuppliedPcbResolver",
    "TableContribution",
    "WageComponents",
    "WarningCode",
    "calculate_statutory",
    "employer_epf_rate",
    "lookup_eis",
    "lookup_socso",
    "unpaid_leave_deduction",
]
