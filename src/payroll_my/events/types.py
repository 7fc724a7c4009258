"""Domain event types for payroll run and claim transitions.

All events are immutable, carry tracing metadata and serialize to JSON.
Downstream consumers (notifications, bank-file generation, statutory
submissions) subscribe to them instead of polling run status.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID, uuid4


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    PAYROLL = "payroll"
    CLAIMS = "claims"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    tenant_id: UUID
    correlation_id: UUID
    actor_id: UUID | None
    actor_type: str  # 'user', 'system'
    source_service: str
    version: int = 1

    @classmethod
    def create(
        cls,
        tenant_id: UUID,
        correlation_id: UUID | None = None,
        actor_id: UUID | None = None,
        actor_type: str | None = None,
        source_service: str = "payroll",
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=datetime.now(timezone.utc),
            tenant_id=tenant_id,
            correlation_id=correlation_id or uuid4(),
            actor_id=actor_id,
            actor_type=actor_type or ("user" if actor_id else "system"),
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = _serialize_dict(asdict(self))
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


def _serialize_dict(obj: Any) -> Any:
    """Recursively serialize objects for JSON compatibility."""
    if isinstance(obj, dict):
        return {k: _serialize_dict(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [_serialize_dict(v) for v in obj]
    elif isinstance(obj, UUID):
        return str(obj)
    elif isinstance(obj, (datetime, date)):
        return obj.isoformat()
    elif isinstance(obj, Decimal):
        return str(obj)
    elif isinstance(obj, Enum):
        return obj.value
    return obj


# =============================================================================
# Payroll Run Events
# =============================================================================


@dataclass(frozen=True)
class PayrollDraftCreated(DomainEvent):
    """A draft payroll run was opened for a tenant-period-scope."""

    payroll_run_id: UUID
    year: int
    month: int
    group_scope_id: UUID | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL


@dataclass(frozen=True)
class PayrollRunMaterialized(DomainEvent):
    """Items were (re)built for a draft run."""

    payroll_run_id: UUID
    item_count: int
    error_count: int
    cancelled: bool

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL


@dataclass(frozen=True)
class PayrollRunFinalized(DomainEvent):
    """A run was locked; its items are now immutable."""

    payroll_run_id: UUID
    year: int
    month: int
    item_count: int
    consumed_claim_count: int
    total_net: Decimal

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL


@dataclass(frozen=True)
class PayrollRunApproved(DomainEvent):
    """A finalized run was approved."""

    payroll_run_id: UUID
    approved_by: UUID | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL


# =============================================================================
# Claim Events
# =============================================================================


@dataclass(frozen=True)
class ClaimDecided(DomainEvent):
    """A claim left the pending state, automatically or by a supervisor."""

    claim_id: UUID
    employee_id: UUID
    status: str
    reason: str | None
    auto: bool

    @property
    def category(self) -> EventCategory:
        return EventCategory.CLAIMS
