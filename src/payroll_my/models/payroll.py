"""Payroll run, payroll item and audit models."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_my.models.base import Base, JSONType, Money, Quantity, Rate, TimestampMixin, utcnow

ZERO = Decimal("0")

# Scope key used when a run covers the whole tenant.
WHOLE_TENANT_SCOPE = "all"


class PayrollRun(Base, TimestampMixin):
    """One payroll run per (tenant, year, month, scope)."""

    __tablename__ = "payroll_run"

    payroll_run_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    group_scope_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("org_group.group_id"),
        nullable=True,
    )
    scope_key: Mapped[str] = mapped_column(String, nullable=False, default=WHOLE_TENANT_SCOPE)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="draft")
    tenant_tz: Mapped[str] = mapped_column(String, nullable=False, default="Asia/Kuala_Lumpur")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[UUID | None] = mapped_column(nullable=True)

    finalized_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    finalized_by: Mapped[UUID | None] = mapped_column(nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_by: Mapped[UUID | None] = mapped_column(nullable=True)

    # Totals maintained after each materialize / edit
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    has_warnings: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    total_gross: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    total_deductions: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    total_net: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    total_employer_cost: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'finalized', 'approved')",
            name="payroll_run_status_check",
        ),
        CheckConstraint("month BETWEEN 1 AND 12", name="payroll_run_month_check"),
        # At most one open draft per tenant-period-scope.
        Index(
            "payroll_run_one_draft_per_scope",
            "tenant_id",
            "year",
            "month",
            "scope_key",
            unique=True,
            postgresql_where=text("status = 'draft'"),
            sqlite_where=text("status = 'draft'"),
        ),
        Index("payroll_run_tenant_period_idx", "tenant_id", "year", "month"),
    )

    # Relationships
    items: Mapped[list[PayrollItem]] = relationship(
        back_populates="payroll_run",
        passive_deletes=True,
    )


class PayrollItem(Base, TimestampMixin):
    """Snapshotted payslip for one employee in one run.

    Identity, bank and statutory-number columns are copies taken from the
    employee record; ``employee_snapshot`` holds the full copy. ``locked_at``
    is set when the owning run is finalized; from then on the row is
    read-only.
    """

    __tablename__ = "payroll_item"

    payroll_item_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    payroll_run_id: Mapped[UUID] = mapped_column(
        ForeignKey("payroll_run.payroll_run_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id"),
        nullable=False,
    )
    status: Mapped[str] = mapped_column(String, nullable=False, default="ok")
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Snapshot of the employee record
    employee_name: Mapped[str | None] = mapped_column(String, nullable=True)
    employee_number: Mapped[str | None] = mapped_column(String, nullable=True)
    ic_number: Mapped[str | None] = mapped_column(String, nullable=True)
    position: Mapped[str | None] = mapped_column(String, nullable=True)
    group_name: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_name: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_account_no: Mapped[str | None] = mapped_column(String, nullable=True)
    epf_number: Mapped[str | None] = mapped_column(String, nullable=True)
    socso_number: Mapped[str | None] = mapped_column(String, nullable=True)
    tax_number: Mapped[str | None] = mapped_column(String, nullable=True)
    employee_snapshot: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    # Earnings
    basic: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    fixed_allowance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    ot_hours: Mapped[Decimal] = mapped_column(Quantity, nullable=False, default=ZERO)
    ot_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    ph_days_worked: Mapped[Decimal] = mapped_column(Quantity, nullable=False, default=ZERO)
    ph_pay: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    commission: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    trade_commission: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    incentive: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    outstation: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    claims_amount: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    bonus: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)

    # Deductions
    epf_employee: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    socso_employee: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    eis_employee: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    pcb: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    unpaid_leave_days: Mapped[Decimal] = mapped_column(Quantity, nullable=False, default=ZERO)
    unpaid_leave_deduction: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    salary_advance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    other_deductions: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    other_deductions_description: Mapped[str | None] = mapped_column(String, nullable=True)

    # Employer contributions
    epf_employer: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    socso_employer: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    eis_employer: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    epf_base: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    epf_rounded_base: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    epf_employee_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False, default=ZERO)
    epf_employer_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False, default=ZERO)

    # Totals
    gross: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    total_deductions: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    net: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)
    employer_cost: Mapped[Decimal] = mapped_column(Money, nullable=False, default=ZERO)

    # Previous-month comparison
    prev_month_net: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    variance_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    variance_percent: Mapped[Decimal | None] = mapped_column(Money, nullable=True)

    # Traceability
    raw_inputs: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    overrides: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    warnings: Mapped[list[dict[str, Any]]] = mapped_column(JSONType, nullable=False, default=list)
    claim_ids: Mapped[list[str]] = mapped_column(JSONType, nullable=False, default=list)
    calculation_id: Mapped[UUID | None] = mapped_column(nullable=True)
    inputs_fingerprint: Mapped[str | None] = mapped_column(String, nullable=True)

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("payroll_run_id", "employee_id", name="payroll_item_run_employee_unique"),
        CheckConstraint("status IN ('ok', 'error')", name="payroll_item_status_check"),
    )

    # Relationships
    payroll_run: Mapped[PayrollRun] = relationship(back_populates="items")

    @property
    def warning_codes(self) -> list[str]:
        return [w["code"] for w in self.warnings or []]


class AuditEvent(Base, TimestampMixin):
    """Audit trail entry."""

    __tablename__ = "audit_event"

    audit_event_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    actor_id: Mapped[UUID | None] = mapped_column(nullable=True)
    entity_type: Mapped[str] = mapped_column(String, nullable=False)
    entity_id: Mapped[UUID] = mapped_column(nullable=False)
    action: Mapped[str] = mapped_column(String, nullable=False)
    before_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)
    after_json: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    __table_args__ = (
        Index("audit_event_entity_idx", "entity_type", "entity_id"),
    )
