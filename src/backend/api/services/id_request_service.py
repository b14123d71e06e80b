"""
ID badge request service.

A request is for the employee, their spouse, one of their dependants, or a
private driver. Switching the type of an existing request clears the details
of the previous type.
"""

import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.id_request import (
    DeleteIdRequest,
    DependantIdRequestFields,
    EmployeeIdRequestFields,
    PrivateDriverIdRequestFields,
    SpouseIdRequestFields,
    UpsertIdRequest,
)
from api.services.audit_service import AuditService
from core.decorators import critical_database_operation, log_database_operation
from core.dependencies import require_owner_or_roles
from core.forms import FormValidationError
from core.metrics import track_record_change
from crud.base_crud import get_or_404
from crud.counter_crud import generate_serial_number
from crud.employee_crud import get_employee_by_email
from crud.pagination import ListQuery, Page, SQLModelSource, filter_and_paginate
from db.enums import AuditAction, SerialNumberType, StorageContainer
from db.models import Dependant, Employee, IdRequest, Spouse, User
from services.attachments import AttachmentPlan, AttachmentReconciler, BlobStore, apply_plan_to_rows

logger = logging.getLogger(__name__)

ID_REQUEST_ROLES = ("admin", "idRequestAdmin")
SEARCH_FIELDS = ("request_number", "requestor_email", "employee.first_name", "employee.family_name")
ENTITY = "ID Request"

DETAIL_COLUMNS = (
    "spouse_id",
    "dependant_id",
    "contract_expiry_date",
    "staff_au_id_number",
    "driver_full_name",
    "driver_id_number",
    "driver_title",
    "driver_phone_number",
    "driver_gender",
    "driver_nationality",
)


def id_request_reconciler(storage: BlobStore) -> AttachmentReconciler[IdRequest]:
    return AttachmentReconciler(
        StorageContainer.ID_REQUESTS,
        lambda id_request: id_request.request_number,
        storage,
    )


async def resolve_details(
    db: AsyncSession, command: UpsertIdRequest, employee: Employee
) -> Dict[str, Any]:
    """
    Column values for the request's type; every other detail column is None.

    Raises:
        FormValidationError: Missing section, or a spouse/dependant that is
            not the employee's
    """
    details: Dict[str, Any] = {column: None for column in DETAIL_COLUMNS}
    section = command.section()

    if isinstance(section, EmployeeIdRequestFields):
        details["contract_expiry_date"] = section.contract_expiry_date
    elif isinstance(section, SpouseIdRequestFields):
        spouse = await db.get(Spouse, section.spouse_id)
        if spouse is None or spouse.employee_id != employee.id:
            raise FormValidationError.single("spouseIdRequest.spouseId", "Spouse not found")
        details["spouse_id"] = spouse.id
    elif isinstance(section, DependantIdRequestFields):
        dependant = await db.get(Dependant, section.dependant_id)
        if dependant is None or dependant.employee_id != employee.id:
            raise FormValidationError.single(
                "dependantIdRequest.dependantId", "Dependant not found"
            )
        details["dependant_id"] = dependant.id
    elif isinstance(section, PrivateDriverIdRequestFields):
        details.update(
            staff_au_id_number=employee.au_id_number,
            driver_full_name=section.driver_full_name,
            driver_id_number=section.driver_id_number,
            driver_title=section.title,
            driver_phone_number=section.driver_phone_number,
            driver_gender=section.gender,
            driver_nationality=section.nationality,
        )
    return details


class IdRequestService:
    """Service for ID badge requests."""

    @staticmethod
    @critical_database_operation("list_id_requests")
    async def list_requests(
        db: AsyncSession, query: ListQuery, requestor_email: Optional[str] = None
    ) -> Page[IdRequest]:
        where = None
        if requestor_email is not None:
            where = IdRequest.requestor_email == requestor_email
        return await filter_and_paginate(
            SQLModelSource(db, IdRequest),
            query,
            search_fields=SEARCH_FIELDS,
            where=where,
            order_by=(IdRequest.created_at.desc(),),
        )

    @staticmethod
    @critical_database_operation("get_id_request")
    async def get_request(db: AsyncSession, request_id: str, user: User) -> IdRequest:
        id_request = await get_or_404(db, IdRequest, request_id, detail="ID Request not found")
        await require_owner_or_roles(db, user, id_request.requestor_email, ID_REQUEST_ROLES)
        return id_request

    @staticmethod
    @critical_database_operation("upsert_id_request")
    @log_database_operation("ID request upsert", level="info")
    async def upsert_request(
        db: AsyncSession,
        command: UpsertIdRequest,
        storage: BlobStore,
        user: User,
        request: Optional[Request] = None,
    ) -> Tuple[IdRequest, bool]:
        """
        File or edit a badge request for the user's own employee record.

        Returns:
            Tuple of (ID request, created)
        """
        employee = await get_employee_by_email(db, user.email)
        details = await resolve_details(db, command, employee)

        id_request: Optional[IdRequest] = None
        if command.intent == "edit":
            if not command.id:
                raise FormValidationError.single("id", "ID request id is required")
            id_request = await get_or_404(db, IdRequest, command.id, detail="ID Request not found")
            await require_owner_or_roles(db, user, id_request.requestor_email, ID_REQUEST_ROLES)
        created = id_request is None
        existing = list(id_request.attachments) if id_request is not None else []

        async def upsert(plan: AttachmentPlan) -> IdRequest:
            nonlocal id_request
            if id_request is None:
                number = await generate_serial_number(db, SerialNumberType.IDREQUEST)
                id_request = IdRequest(
                    request_number=number,
                    requestor_email=user.email,
                    employee_id=employee.id,
                    type=command.type,
                    reason=command.reason,
                    **details,
                )
                db.add(id_request)
            else:
                id_request.type = command.type
                id_request.reason = command.reason
                for column, value in details.items():
                    setattr(id_request, column, value)
            apply_plan_to_rows(id_request.attachments, plan, StorageContainer.ID_REQUESTS.value)
            AuditService.record(
                db,
                AuditAction.CREATE if created else AuditAction.UPDATE,
                ENTITY,
                entity_id=id_request.request_number,
                user_id=user.id,
                request=request,
                details={"type": command.type.value, "reason": command.reason.value},
            )
            return id_request

        saved = await id_request_reconciler(storage).save(
            db, existing, command.attachments, upsert
        )
        track_record_change("id-request", "create" if created else "update")
        return saved, created

    @staticmethod
    @critical_database_operation("delete_id_request")
    @log_database_operation("ID request deletion", level="info")
    async def delete_request(
        db: AsyncSession,
        command: DeleteIdRequest,
        storage: BlobStore,
        user: User,
        request: Optional[Request] = None,
    ) -> str:
        id_request = await get_or_404(db, IdRequest, command.id, detail="ID Request not found")
        await require_owner_or_roles(db, user, id_request.requestor_email, ID_REQUEST_ROLES)
        number = id_request.request_number
        await db.delete(id_request)
        AuditService.record(
            db, AuditAction.DELETE, ENTITY, entity_id=number, user_id=user.id, request=request
        )
        await db.commit()

        await id_request_reconciler(storage).delete_directory(number)
        track_record_change("id-request", "delete")
        return number
