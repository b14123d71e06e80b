"""
CRUD layer for database operations.

Plain async functions over an AsyncSession; services compose them and own
the transaction.
"""

from . import base_crud, counter_crud, employee_crud, pagination

__all__ = [
    "base_crud",
    "counter_crud",
    "employee_crud",
    "pagination",
]
