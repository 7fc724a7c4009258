"""Persistence adapters for the payroll core."""

from payroll_my.store.base import PayrollReader
from payroll_my.store.sqlalchemy_store import SqlAlchemyPayrollStore, scope_key_for

__all__ = ["PayrollReader", "SqlAlchemyPayrollStore", "scope_key_for"]
