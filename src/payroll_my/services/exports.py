"""Downstream readers of locked payroll runs: bank file and period summary."""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from payroll_my.exceptions import PayrollError
from payroll_my.models import PayrollItem, PayrollRun
from payroll_my.schemas import GroupPeriodSummary, PeriodSummary, SchemeTotals
from payroll_my.services.state_machine import RunStateMachine
from payroll_my.store import SqlAlchemyPayrollStore
from payroll_my.store.sqlalchemy_store import LOCKED_STATUSES

BANK_FILE_HEADER = ["Bank Name", "Account Number", "Employee Name", "Net Pay"]

UNGROUPED = "Unassigned"


@dataclass(frozen=True)
class BankFileRow:
    """One disbursement line, taken from the item's snapshotted bank fields."""

    employee_id: UUID
    employee_name: str | None
    bank_name: str | None
    bank_account_no: str | None
    net: Decimal


class ExportService:
    """Exports built from finalized or approved runs only.

    Every field comes from the payroll item itself, never from the live
    employee record.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.store = SqlAlchemyPayrollStore(session)

    async def bank_file_rows(self, run_id: UUID) -> list[BankFileRow]:
        """Disbursement rows for every ok item with positive net pay."""
        run = await self.store.get_run(run_id)
        if not RunStateMachine.is_locked(run.status):
            raise PayrollError(
                f"Cannot export bank file for payroll run in status '{run.status}'"
            )

        items = await self.store.get_items(run_id)
        return [
            BankFileRow(
                employee_id=item.employee_id,
                employee_name=item.employee_name,
                bank_name=item.bank_name,
                bank_account_no=item.bank_account_no,
                net=item.net,
            )
            for item in items
            if item.status == "ok" and item.net > 0
        ]

    async def render_bank_file_csv(self, run_id: UUID) -> str:
        """Bank disbursement file as CSV text."""
        rows = await self.bank_file_rows(run_id)

        output = io.StringIO()
        writer = csv.writer(output)
        writer.writerow(BANK_FILE_HEADER)
        for row in rows:
            writer.writerow([
                row.bank_name or "",
                row.bank_account_no or "",
                row.employee_name or "",
                str(row.net),
            ])
        return output.getvalue()

    async def summarize_period(self, tenant_id: UUID, year: int, month: int) -> PeriodSummary:
        """Statutory and pay totals across the tenant-month's locked runs."""
        result = await self.session.execute(
            select(PayrollItem)
            .join(PayrollRun, PayrollRun.payroll_run_id == PayrollItem.payroll_run_id)
            .where(
                PayrollRun.tenant_id == tenant_id,
                PayrollRun.year == year,
                PayrollRun.month == month,
                PayrollRun.status.in_(LOCKED_STATUSES),
                PayrollItem.status == "ok",
            )
            .order_by(PayrollItem.group_name, PayrollItem.employee_number)
        )
        items = list(result.scalars())

        summary = PeriodSummary(
            tenant_id=tenant_id,
            year=year,
            month=month,
            run_count=len({i.payroll_run_id for i in items}),
            employee_count=len(items),
        )
        groups: dict[str, GroupPeriodSummary] = {}
        epf = SchemeTotals()
        socso = SchemeTotals()
        eis = SchemeTotals()
        for item in items:
            summary.total_gross += item.gross
            summary.total_net += item.net
            summary.total_employer_cost += item.employer_cost
            summary.pcb += item.pcb
            epf.employee += item.epf_employee
            epf.employer += item.epf_employer
            socso.employee += item.socso_employee
            socso.employer += item.socso_employer
            eis.employee += item.eis_employee
            eis.employer += item.eis_employer

            name = item.group_name or UNGROUPED
            group = groups.setdefault(name, GroupPeriodSummary(group_name=name))
            group.employee_count += 1
            group.total_gross += item.gross
            group.total_net += item.net
            group.total_employer_cost += item.employer_cost

        summary.epf = epf
        summary.socso = socso
        summary.eis = eis
        summary.by_group = [groups[name] for name in sorted(groups)]
        return summary
