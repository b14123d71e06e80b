"""
Base CRUD operations as plain functions.

Shared lookups used by the record services: fetch-or-404, uniqueness
checks for settings forms, and foreign key validation.
"""
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

from core.forms import FormValidationError

ModelType = TypeVar("ModelType", bound=SQLModel)


def _with_filters(stmt, model, filters: Optional[Dict[str, Any]]):
    if filters:
        for field, value in filters.items():
            stmt = stmt.where(getattr(model, field) == value)
    return stmt


async def find_by_id(
    db: AsyncSession,
    model: Type[ModelType],
    id_value: Any,
) -> Optional[ModelType]:
    """
    Find a single record by ID.

    Args:
        db: Database session
        model: SQLModel class
        id_value: The ID value to search for

    Returns:
        Model instance or None if not found
    """
    result = await db.execute(select(model).where(model.id == id_value))
    return result.scalar_one_or_none()


async def get_or_404(
    db: AsyncSession,
    model: Type[ModelType],
    id_value: Any,
    *,
    detail: Optional[str] = None,
) -> ModelType:
    """Like `find_by_id`, raising 404 "<Model> not found" when missing."""
    obj = await find_by_id(db, model, id_value)
    if obj is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=detail or f"{model.__name__} not found",
        )
    return obj


async def exists(
    db: AsyncSession,
    model: Type[ModelType],
    *,
    filters: Dict[str, Any],
    exclude_id: Optional[Any] = None
) -> bool:
    """
    Check if a record exists matching filters.

    Args:
        db: Database session
        model: SQLModel class
        filters: Dictionary of field:value filters
        exclude_id: Ignore this row (the one being edited)

    Returns:
        True if at least one record exists
    """
    stmt = _with_filters(select(func.count()).select_from(model), model, filters)
    if exclude_id is not None:
        stmt = stmt.where(model.id != exclude_id)
    result = await db.execute(stmt)
    return (result.scalar() or 0) > 0


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


async def check_references(
    db: AsyncSession,
    values: Dict[str, Any],
    references: Dict[str, Tuple[Type[SQLModel], str]],
) -> None:
    """
    Validate the foreign keys of a submitted form.

    Args:
        values: Column values about to be written
        references: column -> (referenced model, error message)

    Raises:
        FormValidationError: A submitted id names no row; reported on the
            camelCase form field
    """
    errors: Dict[str, List[str]] = {}
    for column, (model, message) in references.items():
        value = values.get(column)
        if value and await find_by_id(db, model, value) is None:
            errors[_camel(column)] = [message]
    if errors:
        raise FormValidationError(errors)
