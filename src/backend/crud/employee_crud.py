"""
Employee lookups shared by the request services.

Accounts and employee records are linked only by email address, compared
case-insensitively.
"""
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Employee


async def find_employee_by_email(db: AsyncSession, email: str) -> Optional[Employee]:
    result = await db.execute(
        select(Employee).where(func.lower(Employee.email) == email.lower())
    )
    return result.scalars().first()


async def get_employee_by_email(db: AsyncSession, email: str) -> Employee:
    """Like `find_employee_by_email`, raising 404 "Employee not found"."""
    employee = await find_employee_by_email(db, email)
    if employee is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")
    return employee
