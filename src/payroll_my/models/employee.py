"""Employee, period activity and salary advance models."""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_my.models.base import Base, JSONType, Money, Rate, TimestampMixin

if TYPE_CHECKING:
    from payroll_my.models.company import OrgGroup, Tenant


class Employee(Base, TimestampMixin):
    """Live employee record. Payroll items copy from it; they never reference it for pay."""

    __tablename__ = "employee"

    employee_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_number: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    ic_number: Mapped[str | None] = mapped_column(String, nullable=True)
    group_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("org_group.group_id"),
        nullable=True,
    )
    position: Mapped[str | None] = mapped_column(String, nullable=True)
    is_supervisor: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    employment_type: Mapped[str] = mapped_column(String, nullable=False, default="confirmed")
    employment_status: Mapped[str] = mapped_column(String, nullable=False, default="active")

    # Compensation defaults
    basic_salary: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    fixed_allowance: Mapped[Decimal] = mapped_column(Money, nullable=False, default=Decimal("0"))
    hourly_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    daily_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    overtime_rate: Mapped[Decimal | None] = mapped_column(Numeric(12, 4), nullable=True)
    commission_rate: Mapped[Decimal | None] = mapped_column(Rate, nullable=True)

    # Statutory identifiers and bank
    epf_number: Mapped[str | None] = mapped_column(String, nullable=True)
    socso_number: Mapped[str | None] = mapped_column(String, nullable=True)
    tax_number: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_name: Mapped[str | None] = mapped_column(String, nullable=True)
    bank_account_no: Mapped[str | None] = mapped_column(String, nullable=True)
    epf_contribution_type: Mapped[str] = mapped_column(String, nullable=False, default="standard")
    employee_epf_rate: Mapped[Decimal] = mapped_column(Rate, nullable=False, default=Decimal("0.11"))

    join_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    last_working_day: Mapped[date | None] = mapped_column(Date, nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "employee_number", name="employee_tenant_number_unique"),
        CheckConstraint(
            "employment_type IN ('probation', 'confirmed', 'contract', 'resigned')",
            name="employee_type_check",
        ),
        CheckConstraint(
            "employment_status IN ('active', 'notice', 'clearing', 'resigned', 'inactive')",
            name="employee_status_check",
        ),
        CheckConstraint(
            "epf_contribution_type IN ('standard', 'foreign', 'exempt')",
            name="employee_epf_type_check",
        ),
    )

    # Relationships
    tenant: Mapped[Tenant] = relationship(back_populates="employees")
    group: Mapped[OrgGroup | None] = relationship()


class PeriodActivity(Base, TimestampMixin):
    """Raw wage components recorded for one employee-month.

    ``components`` holds any subset of the wage component keys; basic and
    fixed allowance fall back to the employee's compensation defaults.
    """

    __tablename__ = "period_activity"

    period_activity_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)
    components: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("employee_id", "year", "month", name="period_activity_employee_month_unique"),
        CheckConstraint("month BETWEEN 1 AND 12", name="period_activity_month_check"),
    )


class SalaryAdvance(Base, TimestampMixin):
    """Salary advance repaid through payroll in a given month."""

    __tablename__ = "salary_advance"

    salary_advance_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    repay_year: Mapped[int] = mapped_column(Integer, nullable=False)
    repay_month: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="approved")

    __table_args__ = (
        CheckConstraint("amount >= 0", name="salary_advance_amount_check"),
        CheckConstraint("repay_month BETWEEN 1 AND 12", name="salary_advance_month_check"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'cancelled')",
            name="salary_advance_status_check",
        ),
    )
