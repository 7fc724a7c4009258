"""Seed a demo tenant and run one payroll month end to end.

Usage:
    python -m scripts.seed_demo [--database-url URL] [--year 2024 --month 6] [--finalize]

Creates the schema if needed, adds a small restaurant tenant with two
outlets, materializes a draft for the given month and prints the totals.
Useful for setting up a development environment.
"""

from __future__ import annotations

import argparse
import asyncio
from datetime import date
from decimal import Decimal
from uuid import UUID

from payroll_my.config import configure_logging, get_settings
from payroll_my.database import create_schema, get_engine, make_session_factory
from payroll_my.models import Employee, OrgGroup, PeriodActivity, Tenant
from payroll_my.schemas import default_tenant_config
from payroll_my.services import ExportService, PayrollRunCoordinator, register_immutability_listeners

DEMO_EMPLOYEES = [
    # number, name, outlet, basic, fixed allowance
    ("D001", "Aminah Yusof", "Bangsar", "3000", "500"),
    ("D002", "Lee Wei Ming", "Bangsar", "5000", "0"),
    ("D003", "Rajesh Kumar", "Bangsar", "6000", "0"),
    ("D004", "Siti Rahmah", "Mont Kiara", "2000", "150"),
]


async def seed_tenant(session_factory, year: int, month: int) -> UUID:
    """Insert the demo tenant, outlets, employees and one month of activity."""
    async with session_factory() as session:
        tenant = Tenant(
            name="Demo Restoran Sdn Bhd",
            payroll_config=default_tenant_config(grouping_mode="outlet"),
        )
        session.add(tenant)
        await session.flush()

        outlets: dict[str, OrgGroup] = {}
        for name in sorted({row[2] for row in DEMO_EMPLOYEES}):
            outlets[name] = OrgGroup(tenant_id=tenant.tenant_id, kind="outlet", name=name)
        session.add_all(outlets.values())
        await session.flush()

        for number, name, outlet, basic, allowance in DEMO_EMPLOYEES:
            employee = Employee(
                tenant_id=tenant.tenant_id,
                employee_number=number,
                name=name,
                group_id=outlets[outlet].group_id,
                basic_salary=Decimal(basic),
                fixed_allowance=Decimal(allowance),
                bank_name="Maybank",
                bank_account_no=f"5140{number[1:]}0000",
                join_date=date(2022, 1, 3),
            )
            session.add(employee)
            await session.flush()
            session.add(
                PeriodActivity(
                    tenant_id=tenant.tenant_id,
                    employee_id=employee.employee_id,
                    year=year,
                    month=month,
                    components={"ot_hours": "8", "ot_amount": "120"},
                )
            )

        await session.commit()
        return tenant.tenant_id


async def seed_demo(database_url: str, year: int, month: int, finalize: bool) -> None:
    engine = get_engine(database_url)
    try:
        await create_schema(engine)
        register_immutability_listeners()
        session_factory = make_session_factory(engine)

        tenant_id = await seed_tenant(session_factory, year, month)
        print(f"Created demo tenant {tenant_id}")

        coordinator = PayrollRunCoordinator(session_factory=session_factory)
        run = await coordinator.create_draft(tenant_id, year, month)
        result = await coordinator.materialize(run.payroll_run_id)
        print(f"Materialized {result.item_count} item(s), {result.error_count} error(s)")

        summary = await coordinator.summarize_run(run.payroll_run_id)
        print(f"\nRun {summary.payroll_run_id} ({year:04d}-{month:02d}):")
        print(f"  Gross:         {summary.total_gross}")
        print(f"  Deductions:    {summary.total_deductions}")
        print(f"  Net:           {summary.total_net}")
        print(f"  Employer cost: {summary.total_employer_cost}")

        if finalize:
            await coordinator.finalize(run.payroll_run_id)
            async with session_factory() as session:
                print("\nBank file:")
                print(await ExportService(session).render_bank_file_csv(run.payroll_run_id))
    finally:
        await engine.dispose()


def main() -> None:
    """Main entry point."""
    settings = get_settings()
    configure_logging(settings)

    parser = argparse.ArgumentParser(description="Seed a demo tenant and materialize one month")
    parser.add_argument(
        "--database-url",
        type=str,
        default=settings.database_url,
        help="Database URL (default: from settings)",
    )
    parser.add_argument("--year", type=int, default=2024)
    parser.add_argument("--month", type=int, default=6)
    parser.add_argument("--finalize", action="store_true", help="Finalize and print the bank file")

    args = parser.parse_args()

    asyncio.run(seed_demo(args.database_url, args.year, args.month, args.finalize))


if __name__ == "__main__":
    main()
