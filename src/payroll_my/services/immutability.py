"""Immutability guard for finalized payroll runs.

Two layers:

- ``ImmutabilityGuard``: explicit checks every coordinator write path calls
  before touching a run or its items.
- ORM listeners (``register_immutability_listeners``): ``before_update`` and
  ``before_delete`` hooks on ``PayrollRun`` and ``PayrollItem`` that reject
  any flush modifying a locked row, whichever code path issued it.

The listeners check whether a row WAS locked before the flush, using
attribute history, so the finalize flush that locks a row is allowed while
every later change is not.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from payroll_my.exceptions import FinalizedRunImmutable
from payroll_my.models import PayrollItem, PayrollRun
from payroll_my.services.state_machine import RunStateMachine, RunStatus

logger = logging.getLogger(__name__)

# Row metadata that may change on a locked row.
_ITEM_AUDIT_FIELDS = frozenset({"updated_at"})

# Fields the finalized → approved transition may write.
_APPROVAL_FIELDS = frozenset({"status", "approved_at", "approved_by"})


class ImmutabilityGuard:
    """Explicit write-path checks for payroll runs."""

    @staticmethod
    def assert_writable(run: PayrollRun, action: str | None = None) -> None:
        """Raise FinalizedRunImmutable unless the run is still a draft."""
        if not RunStateMachine.can_modify_items(run.status):
            logger.warning(
                "Blocked %s on payroll run %s (status=%s)",
                action or "write",
                run.payroll_run_id,
                run.status,
            )
            raise FinalizedRunImmutable(run.payroll_run_id, run.status, action)


def _previous_value(target: Any, key: str) -> Any:
    """Value the attribute had before the pending flush."""
    history = get_history(target, key)
    if history.deleted:
        return history.deleted[0]
    if history.unchanged:
        return history.unchanged[0]
    return getattr(target, key)


def _changed_fields(target: Any) -> set[str]:
    insp = inspect(target)
    return {attr.key for attr in insp.attrs if attr.history.has_changes()}


def _check_run_update(mapper, connection, target: PayrollRun) -> None:
    """Block changes to a run that was already finalized or approved.

    finalized → approved is the one permitted change, and it may only write
    the approval fields.
    """
    was_status = _previous_value(target, "status")
    if not RunStateMachine.is_locked(was_status):
        return

    changed = _changed_fields(target)
    if not changed:
        return

    approving = was_status == RunStatus.FINALIZED and target.status == RunStatus.APPROVED
    if approving and changed <= _APPROVAL_FIELDS:
        return

    logger.error(
        "Immutability violation blocked: payroll_run %s fields %s",
        target.payroll_run_id,
        sorted(changed),
    )
    raise FinalizedRunImmutable(target.payroll_run_id, was_status, "update")


def _check_run_delete(mapper, connection, target: PayrollRun) -> None:
    was_status = _previous_value(target, "status")
    if RunStateMachine.is_locked(was_status):
        logger.error("Immutability violation blocked: delete payroll_run %s", target.payroll_run_id)
        raise FinalizedRunImmutable(target.payroll_run_id, was_status, "delete")


def _check_item_update(mapper, connection, target: PayrollItem) -> None:
    """Block changes to an item that was locked before this flush."""
    if _previous_value(target, "locked_at") is None:
        return

    changed = _changed_fields(target) - _ITEM_AUDIT_FIELDS
    if changed:
        logger.error(
            "Immutability violation blocked: payroll_item %s fields %s",
            target.payroll_item_id,
            sorted(changed),
        )
        raise FinalizedRunImmutable(target.payroll_run_id, "finalized", "update item")


def _check_item_delete(mapper, connection, target: PayrollItem) -> None:
    if _previous_value(target, "locked_at") is not None:
        logger.error("Immutability violation blocked: delete payroll_item %s", target.payroll_item_id)
        raise FinalizedRunImmutable(target.payroll_run_id, "finalized", "delete item")


_LISTENERS = (
    (PayrollRun, "before_update", _check_run_update),
    (PayrollRun, "before_delete", _check_run_delete),
    (PayrollItem, "before_update", _check_item_update),
    (PayrollItem, "before_delete", _check_item_delete),
)


def register_immutability_listeners() -> None:
    """Register the ORM listeners. Safe to call more than once."""
    for model, name, fn in _LISTENERS:
        if not event.contains(model, name, fn):
            event.listen(model, name, fn)


def unregister_immutability_listeners() -> None:
    """Remove the ORM listeners (tests only)."""
    for model, name, fn in _LISTENERS:
        if event.contains(model, name, fn):
            event.remove(model, name, fn)
