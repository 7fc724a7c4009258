"""Expense claim model."""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import Boolean, CheckConstraint, Date, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from payroll_my.models.base import Base, JSONType, Money, TimestampMixin


class Claim(Base, TimestampMixin):
    """An expense claim that, once approved, is reimbursed through payroll.

    ``consumed_by_payroll_item_id`` is written exactly once, by the
    finalize of the run whose item reimbursed it.
    """

    __tablename__ = "claim"

    claim_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.employee_id", ondelete="CASCADE"),
        nullable=False,
    )
    claim_date: Mapped[date] = mapped_column(Date, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    receipt_ref: Mapped[str | None] = mapped_column(String, nullable=True)

    status: Mapped[str] = mapped_column(String, nullable=False, default="pending")
    auto_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    auto_approval_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    decided_by: Mapped[UUID | None] = mapped_column(nullable=True)
    decided_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Receipt verification
    receipt_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    extracted_fields: Mapped[dict[str, Any] | None] = mapped_column(JSONType, nullable=True)

    consumed_by_payroll_item_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("payroll_item.payroll_item_id"),
        nullable=True,
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected')",
            name="claim_status_check",
        ),
        CheckConstraint("amount >= 0", name="claim_amount_check"),
        Index("claim_employee_status_idx", "employee_id", "status"),
        Index("claim_receipt_hash_idx", "receipt_hash"),
    )
