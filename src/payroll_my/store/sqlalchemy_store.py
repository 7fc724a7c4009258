"""SQLAlchemy-backed payroll store.

One instance wraps one ``AsyncSession`` and therefore one transaction; the
caller owns commit/rollback.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable
from uuid import UUID

from sqlalchemy import and_, delete, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_my.calculators.money import ZERO
from payroll_my.calculators.types import BuiltItem, ClaimRef, Period, WageComponents
from payroll_my.exceptions import (
    EmployeeNotFound,
    GroupNotFound,
    RunNotFound,
    TenantNotFound,
)
from payroll_my.models import (
    WHOLE_TENANT_SCOPE,
    AuditEvent,
    Claim,
    Employee,
    OrgGroup,
    PayrollItem,
    PayrollRun,
    PeriodActivity,
    SalaryAdvance,
    Tenant,
)
from payroll_my.schemas import TenantConfig
from payroll_my.snapshots import PAYABLE_STATUSES, EmployeeSnapshot

# Run statuses whose items are read-only.
LOCKED_STATUSES = ("finalized", "approved")


def scope_key_for(group_scope_id: UUID | None) -> str:
    return str(group_scope_id) if group_scope_id else WHOLE_TENANT_SCOPE


class SqlAlchemyPayrollStore:
    """Reads and writes payroll records within one session."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # === Tenant / employee reads ===

    async def get_tenant(self, tenant_id: UUID) -> Tenant:
        tenant = await self.session.get(Tenant, tenant_id)
        if tenant is None:
            raise TenantNotFound(tenant_id)
        return tenant

    async def get_tenant_config(self, tenant_id: UUID) -> TenantConfig:
        tenant = await self.get_tenant(tenant_id)
        return TenantConfig.parse(tenant_id, tenant.payroll_config)

    async def get_group(self, tenant_id: UUID, group_id: UUID) -> OrgGroup:
        result = await self.session.execute(
            select(OrgGroup).where(OrgGroup.group_id == group_id, OrgGroup.tenant_id == tenant_id)
        )
        group = result.scalar_one_or_none()
        if group is None:
            raise GroupNotFound(tenant_id, group_id)
        return group

    async def get_employee(self, tenant_id: UUID, employee_id: UUID) -> EmployeeSnapshot:
        result = await self.session.execute(
            select(Employee, OrgGroup.name)
            .outerjoin(OrgGroup, OrgGroup.group_id == Employee.group_id)
            .where(Employee.employee_id == employee_id, Employee.tenant_id == tenant_id)
        )
        row = result.one_or_none()
        if row is None:
            raise EmployeeNotFound(tenant_id, employee_id)
        employee, group_name = row
        return EmployeeSnapshot.from_model(employee, group_name)

    async def list_employees_in_scope(
        self,
        tenant_id: UUID,
        group_scope_id: UUID | None = None,
    ) -> list[EmployeeSnapshot]:
        """Payable employees of the tenant, optionally limited to one group."""
        query = (
            select(Employee, OrgGroup.name)
            .outerjoin(OrgGroup, OrgGroup.group_id == Employee.group_id)
            .where(
                Employee.tenant_id == tenant_id,
                Employee.employment_status.in_([s.value for s in PAYABLE_STATUSES]),
            )
            .order_by(Employee.employee_number)
        )
        if group_scope_id is not None:
            query = query.where(Employee.group_id == group_scope_id)
        result = await self.session.execute(query)
        return [EmployeeSnapshot.from_model(emp, name) for emp, name in result.all()]

    # === Period activity ===

    async def get_wage_components(
        self,
        tenant_id: UUID,
        employee_id: UUID,
        period: Period,
    ) -> WageComponents:
        """Employee defaults overlaid with the period's recorded activity.

        Scheduled salary-advance repayments for the period are added to any
        ``salary_advance`` recorded on the activity.

        Raises:
            InvalidWageInput: a recorded component is negative or non-numeric.
        """
        employee = await self.get_employee(tenant_id, employee_id)

        raw: dict[str, Any] = {
            "basic": employee.basic_salary,
            "fixed_allowance": employee.fixed_allowance,
        }

        result = await self.session.execute(
            select(PeriodActivity).where(
                PeriodActivity.tenant_id == tenant_id,
                PeriodActivity.employee_id == employee_id,
                PeriodActivity.year == period.year,
                PeriodActivity.month == period.month,
            )
        )
        activity = result.scalar_one_or_none()
        if activity is not None:
            raw.update(activity.components or {})

        components = WageComponents.from_mapping(raw)

        advances = await self.session.execute(
            select(func.coalesce(func.sum(SalaryAdvance.amount), 0)).where(
                SalaryAdvance.tenant_id == tenant_id,
                SalaryAdvance.employee_id == employee_id,
                SalaryAdvance.repay_year == period.year,
                SalaryAdvance.repay_month == period.month,
                SalaryAdvance.status == "approved",
            )
        )
        scheduled = Decimal(str(advances.scalar_one()))
        if scheduled > 0:
            components = components.with_overrides(
                {"salary_advance": components.salary_advance + scheduled}
            )
        return components

    async def get_unconsumed_approved_claims(
        self,
        tenant_id: UUID,
        employee_id: UUID,
        period: Period,
    ) -> list[ClaimRef]:
        """Approved, unconsumed claims dated on or before the period end.

        Claims dated in an earlier, already-finalized period roll into the
        next open draft.
        """
        result = await self.session.execute(
            select(Claim)
            .where(
                Claim.tenant_id == tenant_id,
                Claim.employee_id == employee_id,
                Claim.status == "approved",
                Claim.consumed_by_payroll_item_id.is_(None),
                Claim.claim_date <= period.end,
            )
            .order_by(Claim.claim_date, Claim.claim_id)
        )
        return [
            ClaimRef(
                claim_id=c.claim_id,
                claim_date=c.claim_date,
                category=c.category,
                amount=c.amount,
            )
            for c in result.scalars()
        ]

    async def get_previous_net(
        self,
        tenant_id: UUID,
        employee_id: UUID,
        period: Period,
    ) -> Decimal | None:
        result = await self.session.execute(
            select(PayrollItem.net)
            .join(PayrollRun, PayrollRun.payroll_run_id == PayrollItem.payroll_run_id)
            .where(
                PayrollRun.tenant_id == tenant_id,
                PayrollRun.status.in_(LOCKED_STATUSES),
                PayrollItem.employee_id == employee_id,
                PayrollItem.status == "ok",
                or_(
                    PayrollRun.year < period.year,
                    and_(PayrollRun.year == period.year, PayrollRun.month < period.month),
                ),
            )
            .order_by(
                PayrollRun.year.desc(),
                PayrollRun.month.desc(),
                PayrollRun.finalized_at.desc(),
            )
            .limit(1)
        )
        return result.scalar_one_or_none()

    # === Runs ===

    async def get_run(self, run_id: UUID, for_update: bool = False) -> PayrollRun:
        query = select(PayrollRun).where(PayrollRun.payroll_run_id == run_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        run = result.scalar_one_or_none()
        if run is None:
            raise RunNotFound(run_id)
        return run

    async def find_draft(
        self,
        tenant_id: UUID,
        year: int,
        month: int,
        group_scope_id: UUID | None,
    ) -> PayrollRun | None:
        result = await self.session.execute(
            select(PayrollRun).where(
                PayrollRun.tenant_id == tenant_id,
                PayrollRun.year == year,
                PayrollRun.month == month,
                PayrollRun.scope_key == scope_key_for(group_scope_id),
                PayrollRun.status == "draft",
            )
        )
        return result.scalar_one_or_none()

    async def add_run(self, run: PayrollRun) -> PayrollRun:
        self.session.add(run)
        await self.session.flush()
        return run

    async def delete_run(self, run: PayrollRun) -> int:
        """Delete a run and its items; returns the number of items removed."""
        result = await self.session.execute(
            delete(PayrollItem)
            .where(PayrollItem.payroll_run_id == run.payroll_run_id)
            .execution_options(synchronize_session=False)
        )
        await self.session.delete(run)
        await self.session.flush()
        return result.rowcount or 0

    async def refresh_run_totals(self, run: PayrollRun) -> PayrollRun:
        items = await self.get_items(run.payroll_run_id)
        ok_items = [i for i in items if i.status == "ok"]

        run.employee_count = len(items)
        run.error_count = len(items) - len(ok_items)
        run.has_warnings = any(i.warnings for i in items)
        run.total_gross = sum((i.gross for i in ok_items), ZERO)
        run.total_deductions = sum((i.total_deductions for i in ok_items), ZERO)
        run.total_net = sum((i.net for i in ok_items), ZERO)
        run.total_employer_cost = sum((i.employer_cost for i in ok_items), ZERO)
        return run

    # === Items ===

    async def get_items(self, run_id: UUID) -> list[PayrollItem]:
        result = await self.session.execute(
            select(PayrollItem)
            .where(PayrollItem.payroll_run_id == run_id)
            .order_by(PayrollItem.employee_number, PayrollItem.employee_id)
        )
        return list(result.scalars())

    async def get_item(self, run_id: UUID, employee_id: UUID) -> PayrollItem | None:
        result = await self.session.execute(
            select(PayrollItem).where(
                PayrollItem.payroll_run_id == run_id,
                PayrollItem.employee_id == employee_id,
            )
        )
        return result.scalar_one_or_none()

    async def delete_items_not_in(self, run_id: UUID, employee_ids: Iterable[UUID]) -> int:
        """Drop items of employees no longer in the run's scope."""
        keep = list(employee_ids)
        stmt = delete(PayrollItem).where(PayrollItem.payroll_run_id == run_id)
        if keep:
            stmt = stmt.where(PayrollItem.employee_id.notin_(keep))
        result = await self.session.execute(stmt.execution_options(synchronize_session=False))
        return result.rowcount or 0

    async def upsert_item(
        self,
        run: PayrollRun,
        snapshot: EmployeeSnapshot,
        built: BuiltItem,
        overrides: dict[str, Any] | None = None,
    ) -> PayrollItem:
        """Insert or overwrite the (run, employee) item with a built result."""
        item = await self._get_or_new_item(run, snapshot.employee_id)
        stamp_snapshot(item, snapshot)

        item.status = "ok"
        item.error_message = None

        earnings = built.earnings
        for name in earnings.AMOUNT_FIELDS:
            setattr(item, name, getattr(earnings, name))
        item.ot_hours = earnings.ot_hours
        item.ph_days_worked = earnings.ph_days_worked

        deductions = built.deductions
        for name in deductions.AMOUNT_FIELDS:
            setattr(item, name, getattr(deductions, name))
        item.unpaid_leave_days = deductions.unpaid_leave_days
        item.other_deductions_description = deductions.other_deductions_description

        item.epf_employer = built.employer.epf_employer
        item.socso_employer = built.employer.socso_employer
        item.eis_employer = built.employer.eis_employer
        item.epf_base = built.statutory.epf.base
        item.epf_rounded_base = built.statutory.epf.rounded_base
        item.epf_employee_rate = built.statutory.epf.employee_rate
        item.epf_employer_rate = built.statutory.epf.employer_rate

        item.gross = built.gross
        item.total_deductions = built.total_deductions
        item.net = built.net
        item.employer_cost = built.employer_cost

        item.prev_month_net = built.prev_month_net
        item.variance_amount = built.variance_amount
        item.variance_percent = built.variance_percent

        item.raw_inputs = built.components.to_dict()
        item.overrides = dict(overrides or {})
        item.warnings = [w.to_dict() for w in built.warnings]
        item.claim_ids = [str(c) for c in built.claim_ids]
        item.calculation_id = built.calculation_id
        item.inputs_fingerprint = built.inputs_fingerprint

        await self.session.flush()
        return item

    async def upsert_error_item(
        self,
        run: PayrollRun,
        employee_id: UUID,
        message: str,
        snapshot: EmployeeSnapshot | None = None,
    ) -> PayrollItem:
        """Record a failed materialization as an item with status 'error'."""
        item = await self._get_or_new_item(run, employee_id)
        if snapshot is not None:
            stamp_snapshot(item, snapshot)
        item.status = "error"
        item.error_message = message
        for name in _ZEROED_ON_ERROR:
            setattr(item, name, ZERO)
        item.warnings = []
        item.claim_ids = []
        item.calculation_id = None
        item.inputs_fingerprint = None
        await self.session.flush()
        return item

    async def restamp_snapshot(self, tenant_id: UUID, item: PayrollItem) -> EmployeeSnapshot:
        """Copy the employee's current record onto the item; amounts are untouched."""
        snapshot = await self.get_employee(tenant_id, item.employee_id)
        stamp_snapshot(item, snapshot)
        return snapshot

    async def _get_or_new_item(self, run: PayrollRun, employee_id: UUID) -> PayrollItem:
        item = await self.get_item(run.payroll_run_id, employee_id)
        if item is None:
            item = PayrollItem(payroll_run_id=run.payroll_run_id, employee_id=employee_id)
            self.session.add(item)
        return item

    # === Claims ===

    async def consume_claims(self, claim_ids: Iterable[UUID], payroll_item_id: UUID) -> list[UUID]:
        """Mark claims consumed by an item; returns ids that were already taken.

        Each claim is claimed with a conditional update so only one item can
        ever own it.
        """
        lost: list[UUID] = []
        for claim_id in claim_ids:
            result = await self.session.execute(
                update(Claim)
                .where(
                    Claim.claim_id == claim_id,
                    Claim.consumed_by_payroll_item_id.is_(None),
                    Claim.status == "approved",
                )
                .values(consumed_by_payroll_item_id=payroll_item_id)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                lost.append(claim_id)
        return lost

    async def find_claims_by_receipt_hash(self, tenant_id: UUID, receipt_hash: str) -> list[Claim]:
        result = await self.session.execute(
            select(Claim).where(
                Claim.tenant_id == tenant_id,
                Claim.receipt_hash == receipt_hash,
                Claim.status != "rejected",
            )
        )
        return list(result.scalars())

    async def get_claim(self, tenant_id: UUID, claim_id: UUID, for_update: bool = False) -> Claim | None:
        query = select(Claim).where(Claim.claim_id == claim_id, Claim.tenant_id == tenant_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    # === Audit ===

    async def record_audit(
        self,
        tenant_id: UUID,
        entity_type: str,
        entity_id: UUID,
        action: str,
        actor_id: UUID | None = None,
        before: dict[str, Any] | None = None,
        after: dict[str, Any] | None = None,
    ) -> AuditEvent:
        event = AuditEvent(
            tenant_id=tenant_id,
            actor_id=actor_id,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            before_json=before,
            after_json=after,
        )
        self.session.add(event)
        return event


_ZEROED_ON_ERROR = (
    "basic",
    "fixed_allowance",
    "ot_hours",
    "ot_amount",
    "ph_days_worked",
    "ph_pay",
    "commission",
    "trade_commission",
    "incentive",
    "outstation",
    "claims_amount",
    "bonus",
    "epf_employee",
    "socso_employee",
    "eis_employee",
    "pcb",
    "unpaid_leave_days",
    "unpaid_leave_deduction",
    "salary_advance",
    "other_deductions",
    "epf_employer",
    "socso_employer",
    "eis_employer",
    "epf_base",
    "epf_rounded_base",
    "epf_employee_rate",
    "epf_employer_rate",
    "gross",
    "total_deductions",
    "net",
    "employer_cost",
)


def stamp_snapshot(item: PayrollItem, snapshot: EmployeeSnapshot) -> None:
    """Copy identity, bank and statutory-number fields onto the item."""
    item.employee_name = snapshot.name
    item.employee_number = snapshot.employee_number
    item.ic_number = snapshot.ic_number
    item.position = snapshot.position
    item.group_name = snapshot.group_name
    item.bank_name = snapshot.bank_name
    item.bank_account_no = snapshot.bank_account_no
    item.epf_number = snapshot.epf_number
    item.socso_number = snapshot.socso_number
    item.tax_number = snapshot.tax_number
    item.employee_snapshot = snapshot.to_dict()
