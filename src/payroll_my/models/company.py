"""Tenant and organizational grouping models."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_my.models.base import Base, JSONType, TimestampMixin

if TYPE_CHECKING:
    from payroll_my.models.employee import Employee


class Tenant(Base, TimestampMixin):
    """Multi-tenant container.

    ``payroll_config`` holds the raw tenant payroll configuration, parsed by
    ``payroll_my.schemas.TenantConfig``.
    """

    __tablename__ = "tenant"

    tenant_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    payroll_config: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)

    __table_args__ = (
        CheckConstraint("status IN ('active', 'suspended', 'closed')", name="tenant_status_check"),
    )

    # Relationships
    groups: Mapped[list[OrgGroup]] = relationship(back_populates="tenant")
    employees: Mapped[list[Employee]] = relationship(back_populates="tenant")


class OrgGroup(Base, TimestampMixin):
    """A department or outlet, depending on the tenant's grouping mode."""

    __tablename__ = "org_group"

    group_id: Mapped[UUID] = mapped_column(primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    kind: Mapped[str] = mapped_column(String, nullable=False, default="department")
    name: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (
        UniqueConstraint("tenant_id", "kind", "name", name="org_group_tenant_name_unique"),
        CheckConstraint("kind IN ('department', 'outlet')", name="org_group_kind_check"),
    )

    # Relationships
    tenant: Mapped[Tenant] = relationship(back_populates="groups")
