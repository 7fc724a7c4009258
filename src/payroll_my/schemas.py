"""Pydantic schemas for tenant payroll configuration and read models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Mapping
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from payroll_my.exceptions import ConfigMissing
from payroll_my.snapshots import GroupingMode

# Offered when a tenant is created; never applied at read time.
DEFAULT_WORKING_DAYS_PER_MONTH = 26


# ============================================================================
# Tenant configuration
# ============================================================================


class StatutoryToggles(BaseModel):
    """Per-tenant switches for each statutory scheme."""

    model_config = ConfigDict(frozen=True)

    epf_enabled: bool = True
    socso_enabled: bool = True
    eis_enabled: bool = True
    pcb_enabled: bool = True
    # Widen the SOCSO/EIS wage with overtime / fixed allowance.
    statutory_on_ot: bool = False
    statutory_on_allowance: bool = False


class ClaimPolicy(BaseModel):
    """Tenant policy for automatic claim decisions."""

    model_config = ConfigDict(frozen=True)

    auto_approve_meals_under_daily_cap: bool = False
    meal_cap_amount: Decimal = Field(default=Decimal("0"), ge=0)
    categories_treated_as_meal: frozenset[str] = frozenset({"MEAL", "FOOD", "MAKAN"})
    ai_verification_enabled: bool = False
    ai_auto_approve_threshold: Decimal = Field(default=Decimal("100"), ge=0)
    ai_amount_tolerance: Decimal = Field(default=Decimal("0.50"), ge=0)

    @field_validator("categories_treated_as_meal", mode="before")
    @classmethod
    def _upper_categories(cls, value: Any) -> Any:
        if isinstance(value, (list, tuple, set, frozenset)):
            return frozenset(str(v).strip().upper() for v in value)
        return value

    def is_meal(self, category: str) -> bool:
        return category.strip().upper() in self.categories_treated_as_meal


class TenantConfig(BaseModel):
    """Payroll configuration stored as JSON on the tenant row."""

    model_config = ConfigDict(frozen=True)

    working_days_per_month: int = Field(gt=0, le=31)
    grouping_mode: GroupingMode = GroupingMode.DEPARTMENT
    timezone: str = "Asia/Kuala_Lumpur"
    epf_include_trade_commission: bool = False
    statutory: StatutoryToggles = Field(default_factory=StatutoryToggles)
    foreign_epf_employee_rate: Decimal = Field(default=Decimal("0.02"), ge=0, le=1)
    foreign_epf_employer_rate: Decimal = Field(default=Decimal("0.02"), ge=0, le=1)
    ot_multiplier: Decimal = Field(default=Decimal("1.0"), ge=0)
    ph_multiplier: Decimal = Field(default=Decimal("1.0"), ge=0)
    blocking_warnings: frozenset[str] = frozenset()
    variance_warning_percent: Decimal = Field(default=Decimal("10"), ge=0)
    claims: ClaimPolicy = Field(default_factory=ClaimPolicy)

    @classmethod
    def parse(cls, tenant_id: UUID | None, raw: Mapping[str, Any] | None) -> TenantConfig:
        """Parse a tenant's stored config.

        Raises:
            ConfigMissing: ``working_days_per_month`` is absent.
            pydantic.ValidationError: a present value is invalid.
        """
        raw = dict(raw or {})
        if raw.get("working_days_per_month") is None:
            raise ConfigMissing(tenant_id, "working_days_per_month")
        return cls.model_validate(raw)

    def to_json(self) -> dict[str, Any]:
        """JSON-safe dump with sets sorted so the output is stable across processes."""
        data = self.model_dump(mode="json")
        data["blocking_warnings"] = sorted(data["blocking_warnings"])
        data["claims"]["categories_treated_as_meal"] = sorted(
            data["claims"]["categories_treated_as_meal"]
        )
        return data


def default_tenant_config(**overrides: Any) -> dict[str, Any]:
    """Raw config offered to newly created tenants."""
    raw: dict[str, Any] = {"working_days_per_month": DEFAULT_WORKING_DAYS_PER_MONTH}
    raw.update(overrides)
    return TenantConfig.model_validate(raw).to_json()


# ============================================================================
# Read models
# ============================================================================


class RunSummary(BaseModel):
    """Totals and warning counts for one payroll run."""

    model_config = ConfigDict(from_attributes=True)

    payroll_run_id: UUID
    tenant_id: UUID
    year: int
    month: int
    group_scope_id: UUID | None = None
    status: str
    employee_count: int
    error_count: int
    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal
    total_employer_cost: Decimal
    has_warnings: bool
    warning_counts: dict[str, int] = Field(default_factory=dict)
    created_at: datetime | None = None
    finalized_at: datetime | None = None
    approved_at: datetime | None = None


class SchemeTotals(BaseModel):
    """Employee/employer totals for one statutory scheme."""

    employee: Decimal = Decimal("0")
    employer: Decimal = Decimal("0")


class GroupPeriodSummary(BaseModel):
    """Per-group totals in a period summary."""

    group_name: str
    employee_count: int = 0
    total_gross: Decimal = Decimal("0")
    total_net: Decimal = Decimal("0")
    total_employer_cost: Decimal = Decimal("0")


class PeriodSummary(BaseModel):
    """Statutory and pay totals for a tenant-month across locked runs."""

    tenant_id: UUID
    year: int
    month: int
    run_count: int = 0
    employee_count: int = 0
    total_gross: Decimal = Decimal("0")
    total_net: Decimal = Decimal("0")
    total_employer_cost: Decimal = Decimal("0")
    epf: SchemeTotals = Field(default_factory=SchemeTotals)
    socso: SchemeTotals = Field(default_factory=SchemeTotals)
    eis: SchemeTotals = Field(default_factory=SchemeTotals)
    pcb: Decimal = Decimal("0")
    by_group: list[GroupPeriodSummary] = Field(default_factory=list)
