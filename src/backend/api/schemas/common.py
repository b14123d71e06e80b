"""Schemas shared by several resources."""

from datetime import datetime
from typing import Generic, List, Optional, Type, TypeVar

from core.schema_base import HTTPSchemaModel
from crud.pagination import Page

T = TypeVar("T")


class PageResponse(HTTPSchemaModel, Generic[T]):
    """One page of a list view, as produced by `filter_and_paginate`."""

    data: List[T]
    total_pages: int
    current_page: int
    total_items: int = 0


class NamedRead(HTTPSchemaModel):
    """Minimal `{id, name}` projection for dropdowns and nested objects."""

    id: str
    name: str


class AttachmentRead(HTTPSchemaModel):
    id: str
    file_name: str
    extension: str
    content_type: str
    alt_text: Optional[str] = None
    type: str
    created_at: datetime


class EmployeeSummary(HTTPSchemaModel):
    id: str
    first_name: str
    family_name: str
    email: str


def to_page_response(page: Page, item_schema: Type[HTTPSchemaModel]) -> PageResponse:
    """Serialize a `Page` of ORM rows with `item_schema`."""
    return PageResponse[item_schema](
        data=[item_schema.model_validate(row) for row in page.data],
        total_pages=page.total_pages,
        current_page=page.current_page,
        total_items=page.total_items,
    )
