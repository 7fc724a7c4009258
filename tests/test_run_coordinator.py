"""Payroll run lifecycle: draft, materialize, edit, finalize, approve.

Expected figures for the seeded employees (no period activity):

- Alice: basic 3000 + allowance 500, deductions 350.65, net 3149.35
- Bob: basic 5000, EPF 550/650, SOCSO 24.75/74.35, EIS 9.90/9.90
- Sam: basic 6000, EPF 660/720, SOCSO 29.75/89.35, EIS 11.90/11.90
- Carol: basic 2000, EPF 220/260, SOCSO 9.75/29.35, EIS 3.90/3.90
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from sqlalchemy import select

from payroll_my.events import AsyncEventEmitter
from payroll_my.exceptions import (
    BlockingWarningsPresent,
    ClaimConsumedConcurrently,
    ConfigMissing,
    FinalizedRunImmutable,
    GroupNotFound,
    InvalidTransitionError,
    InvalidWageInput,
    ItemErrorsPresent,
    ItemNotFound,
    RunNotFound,
)
from payroll_my.models import AuditEvent, Claim, PayrollItem, PayrollRun, SalaryAdvance, Tenant
from payroll_my.schemas import default_tenant_config
from payroll_my.services import PayrollRunCoordinator
from payroll_my.store import PayrollReader, SqlAlchemyPayrollStore

PERIOD_YEAR = 2024
PERIOD_MONTH = 6

pytestmark = pytest.mark.asyncio


@pytest.fixture
def events() -> list:
    return []


@pytest.fixture
def coordinator(session_factory, events) -> PayrollRunCoordinator:
    emitter = AsyncEventEmitter()
    emitter.on_all(events.append)
    return PayrollRunCoordinator(session_factory=session_factory, emitter=emitter)


async def materialized_run(coordinator, seeded, group_scope_id=None) -> UUID:
    """Create and fully materialize a June draft."""
    run = await coordinator.create_draft(
        seeded.tenant_id, PERIOD_YEAR, PERIOD_MONTH, group_scope_id=group_scope_id
    )
    await coordinator.materialize(run.payroll_run_id)
    return run.payroll_run_id


class TestCreateDraft:
    """Opening draft runs."""

    async def test_creates_draft(self, coordinator, seeded, events):
        run = await coordinator.create_draft(seeded.tenant_id, PERIOD_YEAR, PERIOD_MONTH)

        assert run.status == "draft"
        assert run.scope_key == "all"
        assert run.group_scope_id is None
        assert run.tenant_tz == "Asia/Kuala_Lumpur"
        assert [type(e).__name__ for e in events] == ["PayrollDraftCreated"]

    async def test_idempotent_per_scope(self, coordinator, seeded, events):
        """A second create for the same scope returns the open draft."""
        first = await coordinator.create_draft(seeded.tenant_id, PERIOD_YEAR, PERIOD_MONTH)
        second = await coordinator.create_draft(seeded.tenant_id, PERIOD_YEAR, PERIOD_MONTH)

        assert second.payroll_run_id == first.payroll_run_id
        assert len(events) == 1

    async def test_group_scope_is_separate_run(self, coordinator, seeded):
        whole = await coordinator.create_draft(seeded.tenant_id, PERIOD_YEAR, PERIOD_MONTH)
        kitchen = await coordinator.create_draft(
            seeded.tenant_id, PERIOD_YEAR, PERIOD_MONTH, group_scope_id=seeded.kitchen_id
        )

        assert kitchen.payroll_run_id != whole.payroll_run_id
        assert kitchen.scope_key == str(seeded.kitchen_id)

    async def test_missing_working_days_rejected(self, coordinator, session_factory):
        async with session_factory() as session:
            tenant = Tenant(name="Bare Tenant", payroll_config={})
            session.add(tenant)
            await session.commit()
            tenant_id = tenant.tenant_id

        with pytest.raises(ConfigMissing) as exc_info:
            await coordinator.create_draft(tenant_id, PERIOD_YEAR, PERIOD_MONTH)
        assert exc_info.value.key == "working_days_per_month"

    async def test_unknown_group_rejected(self, coordinator, seeded):
        group_id = uuid4()
        with pytest.raises(GroupNotFound) as exc_info:
            await coordinator.create_draft(
                seeded.tenant_id, PERIOD_YEAR, PERIOD_MONTH, group_scope_id=group_id
            )
        assert exc_info.value.group_id == group_id

    async def test_new_draft_after_finalize(self, coordinator, seeded):
        """Once the draft is finalized, the same scope can open a new draft."""
        run_id = await materialized_run(coordinator, seeded)
        await coordinator.finalize(run_id)

        again = await coordinator.create_draft(seeded.tenant_id, PERIOD_YEAR, PERIOD_MONTH)
        assert again.payroll_run_id != run_id
        assert again.status == "draft"

    async def test_audited(self, coordinator, seeded, session_factory):
        run = await coordinator.create_draft(seeded.tenant_id, PERIOD_YEAR, PERIOD_MONTH)

        async with session_factory() as session:
            result = await session.execute(
                select(AuditEvent).where(AuditEvent.entity_id == run.payroll_run_id)
            )
            actions = [e.action for e in result.scalars()]
        assert actions == ["create_draft"]


class TestMaterialize:
    """Building items for a draft run."""

    async def test_builds_one_item_per_employee(self, coordinator, seeded, fetch_item, events):
        run = await coordinator.create_draft(seeded.tenant_id, PERIOD_YEAR, PERIOD_MONTH)
        result = await coordinator.materialize(run.payroll_run_id)

        assert result.item_count == 4
        assert result.error_count == 0
        assert result.cancelled is False

        alice = await fetch_item(run.payroll_run_id, seeded.alice_id)
        assert alice.status == "ok"
        assert alice.employee_name == "Alice Tan"
        assert alice.group_name == "Kitchen"
        assert alice.bank_account_no == "ACC-E001"
        assert alice.gross == Decimal("3500")
        assert alice.epf_employee == Decimal("330")
        assert alice.epf_employer == Decimal("390")
        assert alice.socso_employee == Decimal("14.75")
        assert alice.eis_employee == Decimal("5.90")
        assert alice.total_deductions == Decimal("350.65")
        assert alice.net == Decimal("3149.35")
        assert alice.employer_cost == Decimal("3940.25")
        assert alice.calculation_id is not None
        assert alice.locked_at is None

        assert type(events[-1]).__name__ == "PayrollRunMaterialized"
        assert events[-1].item_count == 4

    async def test_statutory_per_employee(self, coordinator, seeded, fetch_item):
        run_id = await materialized_run(coordinator, seeded)

        bob = await fetch_item(run_id, seeded.bob_id)
        assert (bob.epf_employee, bob.epf_employer) == (Decimal("550"), Decimal("650"))
        assert (bob.socso_employee, bob.socso_employer) == (Decimal("24.75"), Decimal("74.35"))
        assert (bob.eis_employee, bob.eis_employer) == (Decimal("9.90"), Decimal("9.90"))
        assert bob.net == Decimal("4415.35")

        sam = await fetch_item(run_id, seeded.sam_id)
        assert sam.epf_employer_rate == Decimal("0.12")
        assert (sam.epf_employee, sam.epf_employer) == (Decimal("660"), Decimal("720"))
        assert (sam.socso_employee, sam.socso_employer) == (Decimal("29.75"), Decimal("89.35"))
        assert sam.eis_employee == Decimal("11.90")

        carol = await fetch_item(run_id, seeded.carol_id)
        assert (carol.epf_employee, carol.epf_employer) == (Decimal("220"), Decimal("260"))
        assert (carol.socso_employee, carol.socso_employer) == (Decimal("9.75"), Decimal("29.35"))
        assert carol.eis_employee == Decimal("3.90")

    async def test_run_totals(self, coordinator, seeded, fetch_run):
        run_id = await materialized_run(coordinator, seeded)
        run = await fetch_run(run_id)

        assert run.employee_count == 4
        assert run.error_count == 0
        assert run.total_gross == Decimal("16500")
        assert run.total_deductions == Decimal("1870.60")
        assert run.total_net == Decimal("14629.40")
        assert run.total_employer_cost == Decimal("18789.00")

    async def test_group_scope_limits_employees(self, coordinator, seeded, fetch_item):
        run_id = await materialized_run(coordinator, seeded, group_scope_id=seeded.front_id)

        assert await fetch_item(run_id, seeded.carol_id) is not None
        assert await fetch_item(run_id, seeded.alice_id) is None

    async def test_bad_input_isolated_to_one_item(self, coordinator, seeded, add_activity, fetch_item, fetch_run):
        """One employee's invalid component becomes an error item; the rest build."""
        await add_activity(seeded.bob_id, {"bonus": "-1"})
        run = await coordinator.create_draft(seeded.tenant_id, PERIOD_YEAR, PERIOD_MONTH)
        result = await coordinator.materialize(run.payroll_run_id)

        assert result.item_count == 3
        assert result.error_count == 1
        assert list(result.errors) == [seeded.bob_id]
        assert "bonus" in result.errors[seeded.bob_id]

        bob = await fetch_item(run.payroll_run_id, seeded.bob_id)
        assert bob.status == "error"
        assert "bonus" in bob.error_message
        assert bob.net == Decimal("0")
        assert bob.employee_name == "Bob Lim"

        alice = await fetch_item(run.payroll_run_id, seeded.alice_id)
        assert alice.status == "ok"

        stored = await fetch_run(run.payroll_run_id)
        assert stored.error_count == 1
        assert stored.total_gross == Decimal("11500")

    async def test_rematerialize_picks_up_activity(self, coordinator, seeded, add_activity, fetch_item):
        run_id = await materialized_run(coordinator, seeded)
        await add_activity(seeded.alice_id, {"ot_amount": "200"})
        await coordinator.materialize(run_id)

        alice = await fetch_item(run_id, seeded.alice_id)
        assert alice.ot_amount == Decimal("200")
        assert alice.gross == Decimal("3700")
        assert alice.net == Decimal("3349.35")
        assert alice.employer_cost == Decimal("4140.25")

    async def test_salary_advance_repaid(self, coordinator, seeded, session_factory, fetch_item):
        async with session_factory() as session:
            session.add(
                SalaryAdvance(
                    tenant_id=seeded.tenant_id,
                    employee_id=seeded.alice_id,
                    amount=Decimal("300"),
                    repay_year=PERIOD_YEAR,
                    repay_month=PERIOD_MONTH,
                )
            )
            await session.commit()

        run_id = await materialized_run(coordinator, seeded)
        alice = await fetch_item(run_id, seeded.alice_id)

        assert alice.salary_advance == Decimal("300")
        assert alice.net == Decimal("2849.35")

    async def test_approved_claim_reimbursed(self, coordinator, seeded, add_claim, fetch_item):
        claim_id = await add_claim(seeded.alice_id, "50")
        run_id = await materialized_run(coordinator, seeded)

        alice = await fetch_item(run_id, seeded.alice_id)
        assert alice.claims_amount == Decimal("50")
        assert alice.claim_ids == [str(claim_id)]
        # Claims are not contributory
        assert alice.epf_employee == Decimal("330")
        assert alice.net == Decimal("3199.35")

    async def test_pending_and_future_claims_ignored(self, coordinator, seeded, add_claim, fetch_item):
        await add_claim(seeded.alice_id, "20", status="pending")
        await add_claim(seeded.alice_id, "30", claim_date=date(PERIOD_YEAR, PERIOD_MONTH + 1, 1))
        run_id = await materialized_run(coordinator, seeded)

        alice = await fetch_item(run_id, seeded.alice_id)
        assert alice.claims_amount == Decimal("0")
        assert alice.claim_ids == []

    async def test_resigned_employee_dropped(self, coordinator, seeded, update_employee, fetch_item):
        run_id = await materialized_run(coordinator, seeded)
        await update_employee(seeded.bob_id, employment_status="resigned")

        result = await coordinator.materialize(run_id)

        assert result.item_count == 3
        assert result.removed == 1
        assert await fetch_item(run_id, seeded.bob_id) is None

    async def test_subset_keeps_other_items(self, coordinator, seeded, fetch_item):
        run_id = await materialized_run(coordinator, seeded)

        result = await coordinator.materialize(run_id, employee_ids=[seeded.alice_id])

        assert result.item_count == 1
        assert result.removed == 0
        assert await fetch_item(run_id, seeded.carol_id) is not None

    async def test_cancel_stops_before_next_employee(self, coordinator, seeded, fetch_run):
        run = await coordinator.create_draft(seeded.tenant_id, PERIOD_YEAR, PERIOD_MONTH)
        cancel = asyncio.Event()
        cancel.set()

        result = await coordinator.materialize(run.payroll_run_id, cancel=cancel)

        assert result.cancelled is True
        assert result.item_count == 0
        assert (await fetch_run(run.payroll_run_id)).employee_count == 0

    async def test_unknown_run(self, coordinator, seeded):
        with pytest.raises(RunNotFound):
            await coordinator.materialize(uuid4())

    async def test_deterministic_calculation_id(self, coordinator, seeded, fetch_item):
        """Rebuilding unchanged inputs reproduces the same calculation id."""
        run_id = await materialized_run(coordinator, seeded)
        first = await fetch_item(run_id, seeded.alice_id)

        await coordinator.materialize(run_id)
        second = await fetch_item(run_id, seeded.alice_id)

        assert second.payroll_item_id == first.payroll_item_id
        assert second.calculation_id == first.calculation_id
        assert second.inputs_fingerprint == first.inputs_fingerprint


class TestEditItem:
    """Manual overrides on draft items."""

    async def test_override_rebuilds_item(self, coordinator, seeded, fetch_item, fetch_run):
        run_id = await materialized_run(coordinator, seeded)

        item = await coordinator.edit_item(run_id, seeded.alice_id, {"bonus": "500"})

        assert item.bonus == Decimal("500")
        assert item.gross == Decimal("4000")
        assert item.epf_base == Decimal("3500")
        assert item.epf_employee == Decimal("385")
        assert Decimal(item.overrides["bonus"]) == Decimal("500")

        run = await fetch_run(run_id)
        assert run.total_gross == Decimal("17000")

    async def test_override_survives_rematerialize(self, coordinator, seeded, fetch_item):
        run_id = await materialized_run(coordinator, seeded)
        await coordinator.edit_item(run_id, seeded.alice_id, {"bonus": "500"})

        await coordinator.materialize(run_id)

        alice = await fetch_item(run_id, seeded.alice_id)
        assert alice.bonus == Decimal("500")

    async def test_overrides_accumulate(self, coordinator, seeded):
        run_id = await materialized_run(coordinator, seeded)
        await coordinator.edit_item(run_id, seeded.alice_id, {"bonus": "500"})
        item = await coordinator.edit_item(run_id, seeded.alice_id, {"incentive": "100"})

        assert item.bonus == Decimal("500")
        assert item.incentive == Decimal("100")
        assert set(item.overrides) == {"bonus", "incentive"}

    @pytest.mark.parametrize("overrides", [{"bonus": "-5"}, {"bonus": "abc"}, {"tips": "5"}])
    async def test_invalid_override_rejected(self, coordinator, seeded, fetch_item, overrides):
        run_id = await materialized_run(coordinator, seeded)

        with pytest.raises(InvalidWageInput):
            await coordinator.edit_item(run_id, seeded.alice_id, overrides)

        alice = await fetch_item(run_id, seeded.alice_id)
        assert alice.overrides == {}
        assert alice.net == Decimal("3149.35")

    async def test_employee_outside_scope_rejected(self, coordinator, seeded, fetch_item, fetch_run):
        """A Front-outlet employee cannot be edited into a Kitchen run."""
        run_id = await materialized_run(coordinator, seeded, group_scope_id=seeded.kitchen_id)

        with pytest.raises(ItemNotFound) as exc_info:
            await coordinator.edit_item(run_id, seeded.carol_id, {"bonus": "1"})
        assert exc_info.value.employee_id == seeded.carol_id

        await coordinator.finalize(run_id)

        assert await fetch_item(run_id, seeded.carol_id) is None
        run = await fetch_run(run_id)
        assert run.employee_count == 3
        assert run.total_gross == Decimal("14500")

    async def test_unmaterialized_employee_rejected(self, coordinator, seeded):
        run = await coordinator.create_draft(seeded.tenant_id, PERIOD_YEAR, PERIOD_MONTH)

        with pytest.raises(ItemNotFound):
            await coordinator.edit_item(run.payroll_run_id, seeded.alice_id, {"bonus": "1"})


class TestFinalize:
    """Locking a run."""

    async def test_finalize_and_approve(self, coordinator, seeded, fetch_item, events):
        run_id = await materialized_run(coordinator, seeded)
        actor = uuid4()

        run = await coordinator.finalize(run_id, actor_id=actor)
        assert run.status == "finalized"
        assert run.finalized_by == actor
        assert run.finalized_at is not None

        alice = await fetch_item(run_id, seeded.alice_id)
        assert alice.locked_at is not None

        run = await coordinator.approve(run_id, actor_id=actor)
        assert run.status == "approved"
        assert run.approved_by == actor

        names = [type(e).__name__ for e in events]
        assert names[-2:] == ["PayrollRunFinalized", "PayrollRunApproved"]

    async def test_finalized_run_ignores_employee_changes(
        self, coordinator, seeded, update_employee, fetch_item
    ):
        """Editing the employee record after finalize leaves the item untouched."""
        run_id = await materialized_run(coordinator, seeded)
        await coordinator.finalize(run_id)

        await update_employee(seeded.alice_id, basic_salary=Decimal("9999"), bank_account_no="NEW")

        with pytest.raises(FinalizedRunImmutable):
            await coordinator.materialize(run_id)

        alice = await fetch_item(run_id, seeded.alice_id)
        assert alice.basic == Decimal("3000")
        assert alice.net == Decimal("3149.35")
        assert alice.bank_account_no == "ACC-E001"

    async def test_employee_fields_copied_at_finalize(
        self, coordinator, seeded, update_employee, fetch_item
    ):
        """A bank correction between materialize and finalize reaches the locked item."""
        run_id = await materialized_run(coordinator, seeded)
        await update_employee(seeded.alice_id, bank_name="CIMB", bank_account_no="NEW-ACC")

        await coordinator.finalize(run_id)

        alice = await fetch_item(run_id, seeded.alice_id)
        assert (alice.bank_name, alice.bank_account_no) == ("CIMB", "NEW-ACC")
        assert alice.employee_snapshot["bank_account_no"] == "NEW-ACC"
        assert alice.net == Decimal("3149.35")

    async def test_locked_run_rejects_edits(self, coordinator, seeded):
        run_id = await materialized_run(coordinator, seeded)
        await coordinator.finalize(run_id)

        with pytest.raises(FinalizedRunImmutable):
            await coordinator.edit_item(run_id, seeded.alice_id, {"bonus": "1"})
        with pytest.raises(FinalizedRunImmutable):
            await coordinator.delete_draft(run_id)

    async def test_error_items_block_finalize(self, coordinator, seeded, add_activity, fetch_run):
        await add_activity(seeded.bob_id, {"bonus": "-1"})
        run_id = await materialized_run(coordinator, seeded)

        with pytest.raises(ItemErrorsPresent) as exc_info:
            await coordinator.finalize(run_id)

        assert exc_info.value.employee_ids == [seeded.bob_id]
        assert (await fetch_run(run_id)).status == "draft"

    async def test_blocking_warning_blocks_finalize(self, coordinator, seeded, set_tenant_config):
        await set_tenant_config(
            default_tenant_config(grouping_mode="outlet", blocking_warnings=["no_basic_salary"])
        )
        run_id = await materialized_run(coordinator, seeded)
        await coordinator.edit_item(run_id, seeded.carol_id, {"basic": "0"})

        with pytest.raises(BlockingWarningsPresent) as exc_info:
            await coordinator.finalize(run_id)
        assert exc_info.value.codes == {"no_basic_salary": 1}

    async def test_non_blocking_warning_allows_finalize(self, coordinator, seeded):
        run_id = await materialized_run(coordinator, seeded)
        await coordinator.edit_item(run_id, seeded.carol_id, {"basic": "0"})

        run = await coordinator.finalize(run_id)
        assert run.status == "finalized"

    async def test_empty_run_rejected(self, coordinator, seeded):
        run = await coordinator.create_draft(seeded.tenant_id, PERIOD_YEAR, PERIOD_MONTH)

        with pytest.raises(InvalidTransitionError):
            await coordinator.finalize(run.payroll_run_id)

    async def test_finalize_twice_rejected(self, coordinator, seeded):
        run_id = await materialized_run(coordinator, seeded)
        await coordinator.finalize(run_id)

        with pytest.raises(InvalidTransitionError):
            await coordinator.finalize(run_id)

    async def test_approve_requires_finalized(self, coordinator, seeded):
        run_id = await materialized_run(coordinator, seeded)

        with pytest.raises(InvalidTransitionError):
            await coordinator.approve(run_id)

    async def test_finalize_consumes_claims(self, coordinator, seeded, add_claim, session_factory, fetch_item, events):
        claim_id = await add_claim(seeded.alice_id, "50")
        run_id = await materialized_run(coordinator, seeded)

        await coordinator.finalize(run_id)

        alice = await fetch_item(run_id, seeded.alice_id)
        async with session_factory() as session:
            claim = await session.get(Claim, claim_id)
        assert claim.consumed_by_payroll_item_id == alice.payroll_item_id
        assert events[-1].consumed_claim_count == 1

    async def test_claim_consumed_by_overlapping_run(
        self, coordinator, seeded, add_claim, session_factory, fetch_item, fetch_run
    ):
        """Two drafts reimbursing the same claim: only the first finalize wins."""
        claim_id = await add_claim(seeded.alice_id, "50")
        whole_id = await materialized_run(coordinator, seeded)
        kitchen_id = await materialized_run(coordinator, seeded, group_scope_id=seeded.kitchen_id)

        await coordinator.finalize(whole_id)

        with pytest.raises(ClaimConsumedConcurrently) as exc_info:
            await coordinator.finalize(kitchen_id)
        assert exc_info.value.claim_ids == [claim_id]

        kitchen = await fetch_run(kitchen_id)
        assert kitchen.status == "draft"
        assert (await fetch_item(kitchen_id, seeded.alice_id)).locked_at is None

        # Re-draft drops the consumed claim, then finalize succeeds.
        await coordinator.materialize(kitchen_id)
        alice = await fetch_item(kitchen_id, seeded.alice_id)
        assert alice.claims_amount == Decimal("0")
        assert (await coordinator.finalize(kitchen_id)).status == "finalized"

        whole_alice = await fetch_item(whole_id, seeded.alice_id)
        async with session_factory() as session:
            claim = await session.get(Claim, claim_id)
        assert claim.consumed_by_payroll_item_id == whole_alice.payroll_item_id


class TestLockedRowsAtOrmLevel:
    """Direct writes to locked rows fail at flush, whatever the code path."""

    async def test_item_update_blocked(self, coordinator, seeded, session_factory, fetch_item):
        run_id = await materialized_run(coordinator, seeded)
        await coordinator.finalize(run_id)
        item_id = (await fetch_item(run_id, seeded.alice_id)).payroll_item_id

        async with session_factory() as session:
            item = await session.get(PayrollItem, item_id)
            item.net = Decimal("1")
            with pytest.raises(FinalizedRunImmutable):
                await session.commit()

        assert (await fetch_item(run_id, seeded.alice_id)).net == Decimal("3149.35")

    async def test_item_delete_blocked(self, coordinator, seeded, session_factory, fetch_item):
        run_id = await materialized_run(coordinator, seeded)
        await coordinator.finalize(run_id)
        item_id = (await fetch_item(run_id, seeded.alice_id)).payroll_item_id

        async with session_factory() as session:
            item = await session.get(PayrollItem, item_id)
            await session.delete(item)
            with pytest.raises(FinalizedRunImmutable):
                await session.commit()

    async def test_run_update_blocked(self, coordinator, seeded, session_factory):
        run_id = await materialized_run(coordinator, seeded)
        await coordinator.finalize(run_id)

        async with session_factory() as session:
            run = await session.get(PayrollRun, run_id)
            run.total_net = Decimal("0")
            with pytest.raises(FinalizedRunImmutable):
                await session.commit()

    async def test_run_revert_to_draft_blocked(self, coordinator, seeded, session_factory):
        run_id = await materialized_run(coordinator, seeded)
        await coordinator.finalize(run_id)

        async with session_factory() as session:
            run = await session.get(PayrollRun, run_id)
            run.status = "draft"
            with pytest.raises(FinalizedRunImmutable):
                await session.commit()


class TestDeleteDraft:
    """Dropping draft runs."""

    async def test_deletes_run_and_items(self, coordinator, seeded, fetch_item):
        run_id = await materialized_run(coordinator, seeded)

        removed = await coordinator.delete_draft(run_id)

        assert removed == 4
        assert await fetch_item(run_id, seeded.alice_id) is None
        with pytest.raises(RunNotFound):
            await coordinator.get_run(run_id)

    async def test_scope_reopens_after_delete(self, coordinator, seeded):
        run_id = await materialized_run(coordinator, seeded)
        await coordinator.delete_draft(run_id)

        again = await coordinator.create_draft(seeded.tenant_id, PERIOD_YEAR, PERIOD_MONTH)
        assert again.payroll_run_id != run_id


class TestReads:
    """Run summaries and previous-month comparison."""

    async def test_summarize_run(self, coordinator, seeded):
        run_id = await materialized_run(coordinator, seeded)
        await coordinator.edit_item(run_id, seeded.carol_id, {"basic": "0"})

        summary = await coordinator.summarize_run(run_id)

        assert summary.payroll_run_id == run_id
        assert summary.status == "draft"
        assert summary.employee_count == 4
        assert summary.has_warnings is True
        assert summary.warning_counts == {"no_basic_salary": 1}

    async def test_items_ordered_by_employee_number(self, coordinator, seeded):
        run_id = await materialized_run(coordinator, seeded)

        items = await coordinator.get_items(run_id)
        assert [i.employee_number for i in items] == ["E001", "E002", "E003", "E004"]

    async def test_previous_month_net(self, coordinator, seeded, fetch_item):
        june_id = await materialized_run(coordinator, seeded)
        await coordinator.finalize(june_id)

        july = await coordinator.create_draft(seeded.tenant_id, PERIOD_YEAR, PERIOD_MONTH + 1)
        await coordinator.materialize(july.payroll_run_id)

        alice = await fetch_item(july.payroll_run_id, seeded.alice_id)
        assert alice.prev_month_net == Decimal("3149.35")
        assert alice.variance_amount == Decimal("0")
        assert alice.warnings == []

    async def test_no_previous_net_from_draft(self, coordinator, seeded, fetch_item):
        """Only locked runs feed the previous-month comparison."""
        await materialized_run(coordinator, seeded)

        july = await coordinator.create_draft(seeded.tenant_id, PERIOD_YEAR, PERIOD_MONTH + 1)
        await coordinator.materialize(july.payroll_run_id)

        alice = await fetch_item(july.payroll_run_id, seeded.alice_id)
        assert alice.prev_month_net is None

    async def test_store_satisfies_reader_protocol(self, session_factory):
        async with session_factory() as session:
            assert isinstance(SqlAlchemyPayrollStore(session), PayrollReader)
