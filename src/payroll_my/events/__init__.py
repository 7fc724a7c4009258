"""Domain events for payroll runs and claims."""

from payroll_my.events.emitter import AsyncEventEmitter
from payroll_my.events.types import (
    ClaimDecided,
    DomainEvent,
    EventCategory,
    EventMetadata,
    PayrollDraftCreated,
    PayrollRunApproved,
    PayrollRunFinalized,
    PayrollRunMaterialized,
)

__all__ = [
    "AsyncEventEmitter",
    "ClaimDecided",
    "DomainEvent",
    "EventCategory",
    "EventMetadata",
    "PayrollDraftCreated",
    "PayrollRunApproved",
    "PayrollRunFinalized",
    "PayrollRunMaterialized",
]
