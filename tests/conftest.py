"""Pytest fixtures for payroll core tests."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Callable
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from payroll_my.database import make_session_factory
from payroll_my.models import (
    Base,
    Claim,
    Employee,
    OrgGroup,
    PayrollItem,
    PayrollRun,
    PeriodActivity,
    Tenant,
)
from payroll_my.schemas import TenantConfig, default_tenant_config
from payroll_my.services.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from payroll_my.snapshots import (
    EmployeeSnapshot,
    EmploymentStatus,
    EmploymentType,
    EpfContributionType,
)

# In-memory SQLite shared across sessions through a single static connection
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

PERIOD_YEAR = 2024
PERIOD_MONTH = 6


# ============================================================================
# Pure-calculator fixtures
# ============================================================================


@pytest.fixture
def make_snapshot() -> Callable[..., EmployeeSnapshot]:
    """Factory for employee snapshots with sensible defaults."""
    tenant_id = uuid4()

    def _make(**overrides: Any) -> EmployeeSnapshot:
        values: dict[str, Any] = {
            "employee_id": uuid4(),
            "tenant_id": tenant_id,
            "employee_number": "E001",
            "name": "Nur Aisyah",
            "ic_number": "900101-14-5678",
            "group_id": None,
            "group_name": "Kitchen",
            "position": "Cook",
            "employment_type": EmploymentType.CONFIRMED,
            "employment_status": EmploymentStatus.ACTIVE,
            "basic_salary": Decimal("3000.00"),
            "fixed_allowance": Decimal("0.00"),
            "hourly_rate": None,
            "daily_rate": None,
            "overtime_rate": None,
            "commission_rate": None,
            "epf_number": "EPF001",
            "socso_number": "SOC001",
            "tax_number": "TAX001",
            "bank_name": "Maybank",
            "bank_account_no": "1122334455",
            "epf_contribution_type": EpfContributionType.STANDARD,
            "employee_epf_rate": Decimal("0.11"),
            "join_date": date(2020, 1, 1),
        }
        values.update(overrides)
        return EmployeeSnapshot(**values)

    return _make


@pytest.fixture
def tenant_config() -> TenantConfig:
    """Tenant config with the documented defaults."""
    return TenantConfig.parse(None, default_tenant_config())


# ============================================================================
# Database fixtures
# ============================================================================


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    register_immutability_listeners()

    yield engine

    unregister_immutability_listeners()
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@dataclass
class SeededTenant:
    """Ids of the rows created by ``seeded``."""

    tenant_id: UUID
    kitchen_id: UUID
    front_id: UUID
    alice_id: UUID
    bob_id: UUID
    sam_id: UUID
    carol_id: UUID


@pytest_asyncio.fixture
async def seeded(session_factory) -> SeededTenant:
    """One tenant with two outlets and four employees.

    - Alice (E001, Kitchen): basic 3000, fixed allowance 500
    - Bob (E002, Kitchen): basic 5000
    - Sam (E003, Kitchen): basic 6000, supervisor
    - Carol (E004, Front): basic 2000
    """
    async with session_factory() as session:
        tenant = Tenant(
            name="Kedai Makan Sdn Bhd",
            payroll_config=default_tenant_config(grouping_mode="outlet"),
        )
        session.add(tenant)
        await session.flush()

        kitchen = OrgGroup(tenant_id=tenant.tenant_id, kind="outlet", name="Kitchen")
        front = OrgGroup(tenant_id=tenant.tenant_id, kind="outlet", name="Front")
        session.add_all([kitchen, front])
        await session.flush()

        def employee(number: str, name: str, group: OrgGroup, basic: str, **kwargs: Any) -> Employee:
            return Employee(
                tenant_id=tenant.tenant_id,
                employee_number=number,
                name=name,
                ic_number=f"{number}-IC",
                group_id=group.group_id,
                position="Staff",
                basic_salary=Decimal(basic),
                bank_name="Maybank",
                bank_account_no=f"ACC-{number}",
                epf_number=f"EPF-{number}",
                socso_number=f"SOC-{number}",
                tax_number=f"TAX-{number}",
                join_date=date(2021, 3, 1),
                **kwargs,
            )

        alice = employee("E001", "Alice Tan", kitchen, "3000", fixed_allowance=Decimal("500"))
        bob = employee("E002", "Bob Lim", kitchen, "5000")
        sam = employee("E003", "Sam Wong", kitchen, "6000", is_supervisor=True)
        carol = employee("E004", "Carol Raj", front, "2000")
        session.add_all([alice, bob, sam, carol])
        await session.commit()

        return SeededTenant(
            tenant_id=tenant.tenant_id,
            kitchen_id=kitchen.group_id,
            front_id=front.group_id,
            alice_id=alice.employee_id,
            bob_id=bob.employee_id,
            sam_id=sam.employee_id,
            carol_id=carol.employee_id,
        )


async def record_activity(
    session_factory: async_sessionmaker[AsyncSession],
    seeded: SeededTenant,
    employee_id: UUID,
    components: dict[str, Any],
    year: int = PERIOD_YEAR,
    month: int = PERIOD_MONTH,
) -> None:
    """Store period activity for an employee."""
    async with session_factory() as session:
        session.add(
            PeriodActivity(
                tenant_id=seeded.tenant_id,
                employee_id=employee_id,
                year=year,
                month=month,
                components=components,
            )
        )
        await session.commit()


@pytest.fixture
def add_activity(session_factory, seeded) -> Callable[..., Any]:
    """Async helper: ``await add_activity(employee_id, {...})``."""

    async def _add(employee_id: UUID, components: dict[str, Any], **period: int) -> None:
        await record_activity(session_factory, seeded, employee_id, components, **period)

    return _add


@pytest.fixture
def add_claim(session_factory, seeded) -> Callable[..., Any]:
    """Async helper: ``claim_id = await add_claim(employee_id, "50")``."""

    async def _add(
        employee_id: UUID,
        amount: str,
        claim_date: date = date(PERIOD_YEAR, PERIOD_MONTH, 10),
        category: str = "PARKING",
        status: str = "approved",
    ) -> UUID:
        async with session_factory() as session:
            claim = Claim(
                tenant_id=seeded.tenant_id,
                employee_id=employee_id,
                claim_date=claim_date,
                category=category,
                amount=Decimal(amount),
                status=status,
            )
            session.add(claim)
            await session.commit()
            return claim.claim_id

    return _add


@pytest.fixture
def update_employee(session_factory) -> Callable[..., Any]:
    """Async helper that edits the live employee record."""

    async def _update(employee_id: UUID, **values: Any) -> None:
        async with session_factory() as session:
            employee = await session.get(Employee, employee_id)
            for key, value in values.items():
                setattr(employee, key, value)
            await session.commit()

    return _update


@pytest.fixture
def set_tenant_config(session_factory, seeded) -> Callable[..., Any]:
    """Async helper that replaces the seeded tenant's payroll config."""

    async def _set(raw: dict[str, Any]) -> None:
        async with session_factory() as session:
            tenant = await session.get(Tenant, seeded.tenant_id)
            tenant.payroll_config = raw
            await session.commit()

    return _set


@pytest.fixture
def fetch_item(session_factory) -> Callable[..., Any]:
    """Async helper: the stored item for (run, employee), or None."""

    async def _fetch(run_id: UUID, employee_id: UUID) -> PayrollItem | None:
        async with session_factory() as session:
            result = await session.execute(
                select(PayrollItem).where(
                    PayrollItem.payroll_run_id == run_id,
                    PayrollItem.employee_id == employee_id,
                )
            )
            return result.scalar_one_or_none()

    return _fetch


@pytest.fixture
def fetch_run(session_factory) -> Callable[..., Any]:
    """Async helper: the stored run row."""

    async def _fetch(run_id: UUID) -> PayrollRun | None:
        async with session_factory() as session:
            return await session.get(PayrollRun, run_id)

    return _fetch
