"""Payroll run state machine with transition validation."""

from __future__ import annotations

from enum import Enum

from payroll_my.exceptions import InvalidTransitionError


class RunStatus(str, Enum):
    """Payroll run status values."""

    DRAFT = "draft"
    FINALIZED = "finalized"
    APPROVED = "approved"


class RunStateMachine:
    """State machine for payroll run status transitions.

    Allowed transitions:
    - draft → finalized
    - finalized → approved

    There are no back-transitions; a mistake in a locked run is corrected
    with a new run.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        RunStatus.DRAFT: [RunStatus.FINALIZED],
        RunStatus.FINALIZED: [RunStatus.APPROVED],
        RunStatus.APPROVED: [],  # Terminal state
    }

    # Statuses where items may be (re)materialized, edited or deleted
    ITEMS_MUTABLE = {RunStatus.DRAFT}

    # Statuses where items are read-only
    LOCKED = {RunStatus.FINALIZED, RunStatus.APPROVED}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def can_modify_items(cls, status: str) -> bool:
        return status in cls.ITEMS_MUTABLE

    @classmethod
    def is_locked(cls, status: str) -> bool:
        return status in cls.LOCKED

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

