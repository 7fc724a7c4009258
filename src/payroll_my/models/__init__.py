"""ORM models."""

from payroll_my.models.base import Base, TimestampMixin
from payroll_my.models.claims import Claim
from payroll_my.models.company import OrgGroup, Tenant
from payroll_my.models.employee import Employee, PeriodActivity, SalaryAdvance
from payroll_my.models.payroll import (
    WHOLE_TENANT_SCOPE,
    AuditEvent,
    PayrollItem,
    PayrollRun,
)

__all__ = [
    "AuditEvent",
    "Base",
    "Claim",
    "Employee",
    "OrgGroup",
    "PayrollItem",
    "PayrollRun",
    "PeriodActivity",
    "SalaryAdvance",
    "Tenant",
    "TimestampMixin",
    "WHOLE_TENANT_SCOPE",
]
