"""Payroll run coordinator: draft → finalized → approved."""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from functools import partial
from typing import Any, AsyncIterator, Iterable, Mapping
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from payroll_my.calculators.item_builder import PayrollItemBuilder
from payroll_my.calculators.types import BuiltItem, Period, WageComponents
from payroll_my.config import get_settings
from payroll_my.events import (
    AsyncEventEmitter,
    DomainEvent,
    EventMetadata,
    PayrollDraftCreated,
    PayrollRunApproved,
    PayrollRunFinalized,
    PayrollRunMaterialized,
)
from payroll_my.exceptions import (
    BlockingWarningsPresent,
    ClaimConsumedConcurrently,
    FinalizedRunImmutable,
    InvalidTransitionError,
    ItemErrorsPresent,
    ItemNotFound,
)
from payroll_my.models import PayrollItem, PayrollRun
from payroll_my.models.base import utcnow
from payroll_my.schemas import RunSummary, TenantConfig
from payroll_my.services.immutability import ImmutabilityGuard
from payroll_my.services.retry import with_retry
from payroll_my.services.state_machine import RunStateMachine, RunStatus
from payroll_my.snapshots import EmployeeSnapshot
from payroll_my.store import PayrollReader, SqlAlchemyPayrollStore, scope_key_for

logger = logging.getLogger(__name__)


@dataclass
class MaterializeResult:
    """Outcome of one materialize pass."""

    payroll_run_id: UUID
    # Successful builds only; failures are counted in errors.
    item_count: int = 0
    errors: dict[UUID, str] = field(default_factory=dict)
    removed: int = 0
    cancelled: bool = False

    @property
    def error_count(self) -> int:
        return len(self.errors)


class PayrollRunCoordinator:
    """Service for managing the payroll run lifecycle.

    Operations:
    - create_draft: open (or return) the draft for a tenant-period-scope
    - materialize: build one item per in-scope employee, each in its own
      transaction
    - edit_item: rebuild one draft item with overrides
    - finalize: lock the run and consume contributing claims atomically
    - approve: finalized → approved, audit only
    - delete_draft: drop a draft run and its items
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        builder: PayrollItemBuilder | None = None,
        emitter: AsyncEventEmitter | None = None,
    ):
        if session_factory is None:
            from payroll_my.database import init_db

            _, session_factory = init_db()
        self.session_factory = session_factory
        self.builder = builder or PayrollItemBuilder(
            engine_version=get_settings().engine_version
        )
        self.emitter = emitter

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[SqlAlchemyPayrollStore]:
        async with self.session_factory() as session:
            try:
                yield SqlAlchemyPayrollStore(session)
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def _emit(self, event: DomainEvent) -> None:
        if self.emitter is None:
            return
        errors = await self.emitter.emit(event)
        if errors:
            logger.warning("%d handler(s) failed for %s", len(errors), event.event_type)

    # === Draft ===

    async def create_draft(
        self,
        tenant_id: UUID,
        year: int,
        month: int,
        group_scope_id: UUID | None = None,
        actor_id: UUID | None = None,
        notes: str | None = None,
    ) -> PayrollRun:
        """Open a draft run, or return the one already open for this scope.

        Raises:
            ConfigMissing: the tenant's payroll config is incomplete.
        """
        period = Period(year, month)
        try:
            run, created = await self._open_draft(tenant_id, period, group_scope_id, actor_id, notes)
        except IntegrityError:
            # Lost the race on the one-draft-per-scope index.
            async with self._transaction() as store:
                run = await store.find_draft(tenant_id, year, month, group_scope_id)
            if run is None:
                raise
            created = False

        if created:
            logger.info(
                "Created draft payroll run %s for tenant %s period %s scope %s",
                run.payroll_run_id,
                tenant_id,
                period,
                run.scope_key,
            )
            await self._emit(
                PayrollDraftCreated(
                    metadata=EventMetadata.create(tenant_id, actor_id=actor_id),
                    payroll_run_id=run.payroll_run_id,
                    year=year,
                    month=month,
                    group_scope_id=group_scope_id,
                )
            )
        return run

    async def _open_draft(
        self,
        tenant_id: UUID,
        period: Period,
        group_scope_id: UUID | None,
        actor_id: UUID | None,
        notes: str | None,
    ) -> tuple[PayrollRun, bool]:
        async with self._transaction() as store:
            config = await store.get_tenant_config(tenant_id)
            if group_scope_id is not None:
                await store.get_group(tenant_id, group_scope_id)

            existing = await store.find_draft(tenant_id, period.year, period.month, group_scope_id)
            if existing is not None:
                return existing, False

            run = PayrollRun(
                tenant_id=tenant_id,
                group_scope_id=group_scope_id,
                scope_key=scope_key_for(group_scope_id),
                year=period.year,
                month=period.month,
                status=RunStatus.DRAFT.value,
                tenant_tz=config.timezone,
                notes=notes,
                created_by=actor_id,
            )
            await store.add_run(run)
            await store.record_audit(
                tenant_id,
                "payroll_run",
                run.payroll_run_id,
                "create_draft",
                actor_id=actor_id,
                after={"period": str(period), "scope": run.scope_key},
            )
            return run, True

    # === Materialize ===

    async def materialize(
        self,
        run_id: UUID,
        employee_ids: Iterable[UUID] | None = None,
        cancel: asyncio.Event | None = None,
        actor_id: UUID | None = None,
    ) -> MaterializeResult:
        """Build and store items for the run's employees.

        Each employee is built in its own transaction, so a failure on one
        employee becomes an ``error`` item and the rest carry on. Setting
        ``cancel`` stops before the next employee; items already written
        stay.

        Raises:
            RunNotFound: unknown run.
            FinalizedRunImmutable: the run is not a draft.
            ConfigMissing: the tenant's payroll config is incomplete.
        """
        async with self._transaction() as store:
            run = await store.get_run(run_id)
            ImmutabilityGuard.assert_writable(run, "materialize")
            config = await store.get_tenant_config(run.tenant_id)
            employees = await store.list_employees_in_scope(run.tenant_id, run.group_scope_id)

        targets = employees
        if employee_ids is not None:
            wanted = set(employee_ids)
            targets = [e for e in employees if e.employee_id in wanted]
            skipped = wanted - {e.employee_id for e in targets}
            if skipped:
                logger.warning(
                    "Skipping %d employee(s) outside run %s scope: %s",
                    len(skipped),
                    run_id,
                    sorted(str(s) for s in skipped),
                )

        result = MaterializeResult(payroll_run_id=run_id)
        for snapshot in targets:
            if cancel is not None and cancel.is_set():
                logger.info("Materialize of run %s cancelled after %d item(s)", run_id, result.item_count)
                result.cancelled = True
                break

            employee_id = snapshot.employee_id
            try:
                await with_retry(
                    partial(self._materialize_one, run_id, employee_id, config),
                    (run_id, employee_id, "materialize"),
                )
            except FinalizedRunImmutable:
                raise
            except Exception as e:
                logger.exception("Failed to materialize employee %s in run %s", employee_id, run_id)
                result.errors[employee_id] = str(e)
                await with_retry(
                    partial(self._record_item_error, run_id, snapshot, str(e)),
                    (run_id, employee_id, "record_error"),
                )
            else:
                result.item_count += 1

        async with self._transaction() as store:
            run = await store.get_run(run_id)
            ImmutabilityGuard.assert_writable(run, "materialize")
            if not result.cancelled and employee_ids is None:
                result.removed = await store.delete_items_not_in(
                    run_id, [e.employee_id for e in targets]
                )
            await store.refresh_run_totals(run)
            await store.record_audit(
                run.tenant_id,
                "payroll_run",
                run_id,
                "materialize",
                actor_id=actor_id,
                after={
                    "items": result.item_count,
                    "errors": result.error_count,
                    "removed": result.removed,
                    "cancelled": result.cancelled,
                },
            )
            tenant_id = run.tenant_id

        logger.info(
            "Materialized run %s: %d item(s), %d error(s), %d removed",
            run_id,
            result.item_count,
            result.error_count,
            result.removed,
        )
        await self._emit(
            PayrollRunMaterialized(
                metadata=EventMetadata.create(tenant_id, actor_id=actor_id),
                payroll_run_id=run_id,
                item_count=result.item_count,
                error_count=result.error_count,
                cancelled=result.cancelled,
            )
        )
        return result

    async def _materialize_one(self, run_id: UUID, employee_id: UUID, config: TenantConfig) -> PayrollItem:
        async with self._transaction() as store:
            run = await store.get_run(run_id)
            ImmutabilityGuard.assert_writable(run, "materialize item")
            existing = await store.get_item(run_id, employee_id)
            overrides = dict(existing.overrides or {}) if existing is not None else {}
            return await self._build_item(store, run, employee_id, config, overrides)

    async def _record_item_error(self, run_id: UUID, snapshot: EmployeeSnapshot, message: str) -> None:
        async with self._transaction() as store:
            run = await store.get_run(run_id)
            ImmutabilityGuard.assert_writable(run, "record item error")
            await store.upsert_error_item(run, snapshot.employee_id, message, snapshot)

    async def _build_item(
        self,
        store: SqlAlchemyPayrollStore,
        run: PayrollRun,
        employee_id: UUID,
        config: TenantConfig,
        overrides: Mapping[str, Any],
    ) -> PayrollItem:
        period = Period(run.year, run.month)
        snapshot, built = await self._calculate(store, run.tenant_id, employee_id, period, config, overrides)
        if built.net < 0:
            logger.warning(
                "Negative net pay %s for employee %s in run %s",
                built.net,
                employee_id,
                run.payroll_run_id,
            )
        return await store.upsert_item(run, snapshot, built, overrides)

    async def _calculate(
        self,
        reader: PayrollReader,
        tenant_id: UUID,
        employee_id: UUID,
        period: Period,
        config: TenantConfig,
        overrides: Mapping[str, Any],
    ) -> tuple[EmployeeSnapshot, BuiltItem]:
        snapshot = await reader.get_employee(tenant_id, employee_id)
        components = await reader.get_wage_components(tenant_id, employee_id, period)
        if overrides:
            components = components.with_overrides(overrides)
        claims = await reader.get_unconsumed_approved_claims(tenant_id, employee_id, period)
        prev_net = await reader.get_previous_net(tenant_id, employee_id, period)
        return snapshot, self.builder.build(components, snapshot, config, period, claims, prev_net)

    # === Edit ===

    async def edit_item(
        self,
        run_id: UUID,
        employee_id: UUID,
        overrides: Mapping[str, Any],
        actor_id: UUID | None = None,
    ) -> PayrollItem:
        """Rebuild one draft item with ``overrides`` merged into its raw inputs.

        Overrides accumulate across edits; a later edit of the same component
        replaces the earlier value.

        Only employees already materialized into the run can be edited.

        Raises:
            FinalizedRunImmutable: the run is not a draft.
            ItemNotFound: the employee has no item in this run.
            InvalidWageInput: an override is negative, non-numeric or unknown.
        """
        async with self._transaction() as store:
            run = await store.get_run(run_id)
            ImmutabilityGuard.assert_writable(run, "edit item")
            config = await store.get_tenant_config(run.tenant_id)

            item = await store.get_item(run_id, employee_id)
            if item is None:
                raise ItemNotFound(run_id, employee_id)
            before = {"net": str(item.net), "overrides": dict(item.overrides or {})}
            merged: dict[str, Any] = dict(item.overrides or {})
            merged.update(_normalize_overrides(overrides))

            item = await self._build_item(store, run, employee_id, config, merged)
            await store.refresh_run_totals(run)
            await store.record_audit(
                run.tenant_id,
                "payroll_item",
                item.payroll_item_id,
                "edit_item",
                actor_id=actor_id,
                before=before,
                after={"net": str(item.net), "overrides": merged},
            )

        logger.info("Edited item for employee %s in run %s", employee_id, run_id)
        return item

    # === Finalize / approve ===

    async def finalize(self, run_id: UUID, actor_id: UUID | None = None) -> PayrollRun:
        """Lock the run and consume every contributing claim in one transaction.

        Each item's employee fields (name, IC, bank, statutory numbers,
        position, group) are copied from the live record at this point and
        frozen with the lock.

        Raises:
            InvalidTransitionError: the run is not a draft, or has no items.
            ItemErrorsPresent: some item failed to materialize.
            BlockingWarningsPresent: an item carries a tenant-blocking warning.
            ClaimConsumedConcurrently: another run consumed a claim first; the
                run stays draft and should be rematerialized.
        """
        async with self._transaction() as store:
            run = await store.get_run(run_id, for_update=True)
            RunStateMachine.validate_transition(run.status, RunStatus.FINALIZED)
            config = await store.get_tenant_config(run.tenant_id)

            items = await store.get_items(run_id)
            if not items:
                raise InvalidTransitionError(run.status, RunStatus.FINALIZED.value, "run has no items")

            errored = [i.employee_id for i in items if i.status == "error"]
            if errored:
                raise ItemErrorsPresent(run_id, errored)

            blocking = Counter(
                code
                for item in items
                for code in item.warning_codes
                if code in config.blocking_warnings
            )
            if blocking:
                raise BlockingWarningsPresent(run_id, dict(blocking))

            now = utcnow()
            lost: list[UUID] = []
            consumed = 0
            for item in items:
                await store.restamp_snapshot(run.tenant_id, item)
                claim_ids = [UUID(c) for c in item.claim_ids or []]
                taken = await store.consume_claims(claim_ids, item.payroll_item_id)
                lost.extend(taken)
                consumed += len(claim_ids) - len(taken)
                item.locked_at = now
            if lost:
                logger.warning(
                    "Finalize of run %s aborted: %d claim(s) consumed concurrently",
                    run_id,
                    len(lost),
                )
                raise ClaimConsumedConcurrently(lost)

            old_status = run.status
            run.status = RunStatus.FINALIZED.value
            run.finalized_at = now
            run.finalized_by = actor_id
            await store.record_audit(
                run.tenant_id,
                "payroll_run",
                run_id,
                f"status_change:{old_status}:{run.status}",
                actor_id=actor_id,
                after={"items": len(items), "claims_consumed": consumed, "total_net": str(run.total_net)},
            )

        logger.info("Finalized payroll run %s (%d items, %d claims)", run_id, len(items), consumed)
        await self._emit(
            PayrollRunFinalized(
                metadata=EventMetadata.create(run.tenant_id, actor_id=actor_id),
                payroll_run_id=run_id,
                year=run.year,
                month=run.month,
                item_count=len(items),
                consumed_claim_count=consumed,
                total_net=run.total_net,
            )
        )
        return run

    async def approve(self, run_id: UUID, actor_id: UUID | None = None) -> PayrollRun:
        """finalized → approved. No item data changes."""
        async with self._transaction() as store:
            run = await store.get_run(run_id, for_update=True)
            RunStateMachine.validate_transition(run.status, RunStatus.APPROVED)

            old_status = run.status
            run.status = RunStatus.APPROVED.value
            run.approved_at = utcnow()
            run.approved_by = actor_id
            await store.record_audit(
                run.tenant_id,
                "payroll_run",
                run_id,
                f"status_change:{old_status}:{run.status}",
                actor_id=actor_id,
            )

        logger.info("Approved payroll run %s", run_id)
        await self._emit(
            PayrollRunApproved(
                metadata=EventMetadata.create(run.tenant_id, actor_id=actor_id),
                payroll_run_id=run_id,
                approved_by=actor_id,
            )
        )
        return run

    async def delete_draft(self, run_id: UUID, actor_id: UUID | None = None) -> int:
        """Delete a draft run and its items; returns the number of items removed."""
        async with self._transaction() as store:
            run = await store.get_run(run_id)
            ImmutabilityGuard.assert_writable(run, "delete")
            before = {
                "period": str(Period(run.year, run.month)),
                "scope": run.scope_key,
                "employee_count": run.employee_count,
            }
            tenant_id = run.tenant_id
            removed = await store.delete_run(run)
            await store.record_audit(
                tenant_id,
                "payroll_run",
                run_id,
                "delete_draft",
                actor_id=actor_id,
                before=before,
            )

        logger.info("Deleted draft payroll run %s (%d items)", run_id, removed)
        return removed

    # === Reads ===

    async def get_run(self, run_id: UUID) -> PayrollRun:
        async with self._transaction() as store:
            return await store.get_run(run_id)

    async def get_items(self, run_id: UUID) -> list[PayrollItem]:
        async with self._transaction() as store:
            await store.get_run(run_id)
            return await store.get_items(run_id)

    async def summarize_run(self, run_id: UUID) -> RunSummary:
        """Run totals plus a count of items per warning code."""
        async with self._transaction() as store:
            run = await store.get_run(run_id)
            items = await store.get_items(run_id)

        counts = Counter(code for item in items for code in item.warning_codes)
        return RunSummary.model_validate(run).model_copy(update={"warning_counts": dict(counts)})


def _normalize_overrides(overrides: Mapping[str, Any]) -> dict[str, Any]:
    """Validate overrides and return them in JSON-safe form."""
    canonical = WageComponents.from_mapping(overrides).to_dict()
    return {key: canonical[key] for key in overrides}
