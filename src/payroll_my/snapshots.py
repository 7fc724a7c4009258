"""Employee snapshot value type.

The calculators consume a frozen copy of the employee record. The copy is
what gets stamped onto payroll items, so a historical payslip never joins
back to the live employee row for monetary or identity fields.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

if TYPE_CHECKING:
    from payroll_my.models import Employee


class GroupingMode(str, Enum):
    """How a tenant groups its employees."""

    DEPARTMENT = "department"
    OUTLET = "outlet"


class EmploymentType(str, Enum):
    PROBATION = "probation"
    CONFIRMED = "confirmed"
    CONTRACT = "contract"
    RESIGNED = "resigned"


class EmploymentStatus(str, Enum):
    ACTIVE = "active"
    NOTICE = "notice"
    CLEARING = "clearing"
    RESIGNED = "resigned"
    INACTIVE = "inactive"


class EpfContributionType(str, Enum):
    """EPF scheme the employee falls under."""

    STANDARD = "standard"
    FOREIGN = "foreign"
    EXEMPT = "exempt"


# Statuses whose employees are picked up by a new run.
PAYABLE_STATUSES = frozenset(
    {EmploymentStatus.ACTIVE, EmploymentStatus.NOTICE, EmploymentStatus.CLEARING}
)


@dataclass(frozen=True)
class EmployeeSnapshot:
    """Immutable view of an employee as of a point in time."""

    employee_id: UUID
    tenant_id: UUID
    employee_number: str
    name: str
    ic_number: str | None
    group_id: UUID | None
    group_name: str | None
    position: str | None
    employment_type: EmploymentType
    employment_status: EmploymentStatus
    basic_salary: Decimal
    fixed_allowance: Decimal
    hourly_rate: Decimal | None
    daily_rate: Decimal | None
    overtime_rate: Decimal | None
    commission_rate: Decimal | None
    epf_number: str | None
    socso_number: str | None
    tax_number: str | None
    bank_name: str | None
    bank_account_no: str | None
    epf_contribution_type: EpfContributionType
    employee_epf_rate: Decimal
    join_date: date | None
    last_working_day: date | None = None
    is_supervisor: bool = False

    @classmethod
    def from_model(cls, employee: Employee, group_name: str | None = None) -> EmployeeSnapshot:
        """Copy an ORM employee row into a snapshot."""
        return cls(
            employee_id=employee.employee_id,
            tenant_id=employee.tenant_id,
            employee_number=employee.employee_number,
            name=employee.name,
            ic_number=employee.ic_number,
            group_id=employee.group_id,
            group_name=group_name,
            position=employee.position,
            employment_type=EmploymentType(employee.employment_type),
            employment_status=EmploymentStatus(employee.employment_status),
            basic_salary=employee.basic_salary,
            fixed_allowance=employee.fixed_allowance,
            hourly_rate=employee.hourly_rate,
            daily_rate=employee.daily_rate,
            overtime_rate=employee.overtime_rate,
            commission_rate=employee.commission_rate,
            epf_number=employee.epf_number,
            socso_number=employee.socso_number,
            tax_number=employee.tax_number,
            bank_name=employee.bank_name,
            bank_account_no=employee.bank_account_no,
            epf_contribution_type=EpfContributionType(employee.epf_contribution_type),
            employee_epf_rate=employee.employee_epf_rate,
            join_date=employee.join_date,
            last_working_day=employee.last_working_day,
            is_supervisor=employee.is_supervisor,
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe dict stamped onto payroll items."""
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, Enum):
                data[key] = value.value
            elif isinstance(value, (UUID, Decimal)):
                data[key] = str(value)
            elif isinstance(value, date):
                data[key] = value.isoformat()
        return data
