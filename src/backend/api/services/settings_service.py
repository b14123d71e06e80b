"""
Lookup table service for the settings screens.

Every lookup (countries, organs, departments, locations, floors, family
relationships, incident types, officers) has the same editor: add and edit
with a duplicate check, delete, paged list and detail. `LookupService`
carries the per-table differences.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, Sequence, Tuple, Type, TypeVar

from fastapi import HTTPException, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

from api.services.audit_service import AuditService
from core.decorators import critical_database_operation
from core.forms import FormValidationError
from core.metrics import track_record_change
from crud.base_crud import check_references, exists, get_or_404
from crud.pagination import ListQuery, Page, SQLModelSource, filter_and_paginate
from db.enums import AuditAction
from db.models import (
    Country,
    Department,
    FamilyRelationship,
    Floor,
    IncidentType,
    Location,
    Officer,
    Organ,
)

logger = logging.getLogger(__name__)

SETTINGS_ROLES = ("admin",)

LookupType = TypeVar("LookupType", bound=SQLModel)


@dataclass(frozen=True)
class LookupService(Generic[LookupType]):
    """
    CRUD for one lookup table.

    `unique` lists the columns whose combined values must not repeat; a clash
    is reported on `duplicate_field` with `duplicate_message`.
    """

    model: Type[LookupType]
    entity: str
    columns: Sequence[str]
    search_fields: Sequence[str] = ("name",)
    unique: Sequence[str] = ("name",)
    duplicate_field: str = "name"
    duplicate_message: str = ""
    references: Dict[str, Tuple[Type[SQLModel], str]] = field(default_factory=dict)
    order_by: str = "name"

    @property
    def slug(self) -> str:
        return self.entity.lower().replace(" ", "-")

    async def list_items(
        self, db: AsyncSession, query: ListQuery, where: Any = None
    ) -> Page[LookupType]:
        return await filter_and_paginate(
            SQLModelSource(db, self.model),
            query,
            search_fields=self.search_fields,
            where=where,
            order_by=(getattr(self.model, self.order_by),),
        )

    async def get_item(self, db: AsyncSession, item_id: str) -> LookupType:
        return await get_or_404(db, self.model, item_id, detail=f"{self.entity} not found")

    @critical_database_operation("upsert_lookup")
    async def upsert(
        self,
        db: AsyncSession,
        command,
        user_id: str,
        request: Optional[Request] = None,
    ) -> Tuple[LookupType, bool]:
        """
        Returns:
            Tuple of (row, created)

        Raises:
            FormValidationError: Duplicate or unknown reference
        """
        values = {column: getattr(command, column) for column in self.columns}
        item = None
        if command.intent == "edit":
            if not command.id:
                raise FormValidationError.single("id", f"{self.entity} id is required")
            item = await self.get_item(db, command.id)

        if await exists(
            db,
            self.model,
            filters={column: values[column] for column in self.unique},
            exclude_id=item.id if item is not None else None,
        ):
            message = self.duplicate_message or f"{self.entity} with this name already exists."
            raise FormValidationError.single(self.duplicate_field, message)
        await check_references(db, values, self.references)

        created = item is None
        if created:
            item = self.model(**values)
            db.add(item)
        else:
            for column, value in values.items():
                setattr(item, column, value)

        AuditService.record(
            db,
            AuditAction.CREATE if created else AuditAction.UPDATE,
            self.entity,
            entity_id=item.id,
            user_id=user_id,
            request=request,
            details={"name": values.get("name")},
        )
        await db.commit()
        track_record_change(self.slug, "create" if created else "update")
        logger.info(f"{self.entity} saved | Id: {item.id} | Created: {created}")
        return item, created

    @critical_database_operation("delete_lookup")
    async def delete(
        self,
        db: AsyncSession,
        item_id: str,
        user_id: str,
        request: Optional[Request] = None,
    ) -> None:
        """
        Raises:
            HTTPException: 404 when missing, 409 while other rows reference it
        """
        item = await self.get_item(db, item_id)
        await db.delete(item)
        AuditService.record(
            db, AuditAction.DELETE, self.entity, entity_id=item_id, user_id=user_id, request=request
        )
        try:
            await db.commit()
        except IntegrityError:
            await db.rollback()
            logger.warning(f"{self.entity} still referenced | Id: {item_id}")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"{self.entity} is in use and cannot be deleted",
            )
        track_record_change(self.slug, "delete")


countries: LookupService[Country] = LookupService(
    model=Country,
    entity="Country",
    columns=("name", "code"),
    search_fields=("name", "code"),
)

organs: LookupService[Organ] = LookupService(
    model=Organ,
    entity="Organ",
    columns=("name", "code", "address", "country_id"),
    search_fields=("name", "code", "country.name"),
    unique=("name", "country_id"),
    duplicate_message="Organ with this name already exists in the selected country.",
    references={"country_id": (Country, "Country not found")},
)

departments: LookupService[Department] = LookupService(
    model=Department,
    entity="Department",
    columns=("name", "code"),
    search_fields=("name", "code"),
)

locations: LookupService[Location] = LookupService(
    model=Location,
    entity="Location",
    columns=("name",),
)

floors: LookupService[Floor] = LookupService(
    model=Floor,
    entity="Floor",
    columns=("name", "location_id"),
    search_fields=("name", "location.name"),
    unique=("name", "location_id"),
    duplicate_message="Floor with this name already exists in the selected location.",
    references={"location_id": (Location, "Location not found")},
)

relationships: LookupService[FamilyRelationship] = LookupService(
    model=FamilyRelationship,
    entity="Relationship",
    columns=("name",),
)

incident_types: LookupService[IncidentType] = LookupService(
    model=IncidentType,
    entity="Incident Type",
    columns=("name", "code"),
    search_fields=("name", "code"),
)

officers: LookupService[Officer] = LookupService(
    model=Officer,
    entity="Officer",
    columns=("name", "email", "phone"),
    search_fields=("name", "email"),
    unique=("email",),
    duplicate_field="email",
    duplicate_message="Officer with this email already exists.",
)
