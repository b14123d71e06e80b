"""
Car pass request service.

Requests are filed by employees for themselves (the requesting account's
email names the employee) and completed by car pass administrators.
"""

import logging
from typing import Optional, Tuple

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.car_pass_request import (
    CompleteCarPassRequest,
    DeleteCarPassRequest,
    UpsertCarPassRequest,
)
from api.services.audit_service import AuditService
from core.decorators import (
    critical_database_operation,
    log_database_operation,
    transactional_database_operation,
)
from core.dependencies import require_owner_or_roles
from core.forms import FormValidationError
from core.metrics import track_record_change
from crud.base_crud import get_or_404
from crud.counter_crud import generate_serial_number
from crud.employee_crud import get_employee_by_email
from crud.pagination import ListQuery, Page, SQLModelSource, filter_and_paginate
from db.enums import AuditAction, CarPassRequestStatus, SerialNumberType, StorageContainer
from db.models import CarPassRequest, User, Vehicle
from services.attachments import AttachmentPlan, AttachmentReconciler, BlobStore, apply_plan_to_rows

logger = logging.getLogger(__name__)

CAR_PASS_ROLES = ("admin", "carPassAdmin")
SEARCH_FIELDS = ("request_number", "requestor_email", "employee.first_name", "employee.family_name")
ENTITY = "Car Pass Request"


def car_pass_reconciler(storage: BlobStore) -> AttachmentReconciler[CarPassRequest]:
    return AttachmentReconciler(
        StorageContainer.CAR_PASS_REQUESTS,
        lambda car_pass: car_pass.request_number,
        storage,
    )


class CarPassService:
    """Service for car pass requests."""

    @staticmethod
    @critical_database_operation("list_car_pass_requests")
    async def list_requests(
        db: AsyncSession, query: ListQuery, requestor_email: Optional[str] = None
    ) -> Page[CarPassRequest]:
        """All requests, or only those filed by `requestor_email`."""
        where = None
        if requestor_email is not None:
            where = CarPassRequest.requestor_email == requestor_email
        return await filter_and_paginate(
            SQLModelSource(db, CarPassRequest),
            query,
            search_fields=SEARCH_FIELDS,
            where=where,
            order_by=(CarPassRequest.created_at.desc(),),
        )

    @staticmethod
    @critical_database_operation("get_car_pass_request")
    async def get_request(db: AsyncSession, request_id: str, user: User) -> CarPassRequest:
        car_pass = await get_or_404(
            db, CarPassRequest, request_id, detail="Car Pass Request not found"
        )
        await require_owner_or_roles(db, user, car_pass.requestor_email, CAR_PASS_ROLES)
        return car_pass

    @staticmethod
    @critical_database_operation("upsert_car_pass_request")
    @log_database_operation("car pass request upsert", level="info")
    async def upsert_request(
        db: AsyncSession,
        command: UpsertCarPassRequest,
        storage: BlobStore,
        user: User,
        request: Optional[Request] = None,
    ) -> Tuple[CarPassRequest, bool]:
        """
        File or edit a request for the user's own employee record.

        Returns:
            Tuple of (car pass request, created)

        Raises:
            HTTPException: 404 when the user has no employee record
            FormValidationError: The vehicle is not one of the employee's
        """
        employee = await get_employee_by_email(db, user.email)

        if command.vehicle_id:
            vehicle = await db.get(Vehicle, command.vehicle_id)
            if vehicle is None or vehicle.employee_id != employee.id:
                raise FormValidationError.single("vehicleId", "Vehicle not found")

        car_pass: Optional[CarPassRequest] = None
        if command.intent == "edit":
            if not command.id:
                raise FormValidationError.single("id", "Car pass request id is required")
            car_pass = await get_or_404(
                db, CarPassRequest, command.id, detail="Car Pass Request not found"
            )
            await require_owner_or_roles(db, user, car_pass.requestor_email, CAR_PASS_ROLES)
        created = car_pass is None
        existing = list(car_pass.attachments) if car_pass is not None else []

        async def upsert(plan: AttachmentPlan) -> CarPassRequest:
            nonlocal car_pass
            if car_pass is None:
                number = await generate_serial_number(db, SerialNumberType.CARPASSREQUEST)
                car_pass = CarPassRequest(
                    request_number=number,
                    requestor_email=user.email,
                    employee_id=employee.id,
                    type=command.type,
                    reason=command.reason,
                    vehicle_id=command.vehicle_id,
                )
                db.add(car_pass)
            else:
                car_pass.type = command.type
                car_pass.reason = command.reason
                car_pass.vehicle_id = command.vehicle_id
            apply_plan_to_rows(
                car_pass.attachments, plan, StorageContainer.CAR_PASS_REQUESTS.value
            )
            AuditService.record(
                db,
                AuditAction.CREATE if created else AuditAction.UPDATE,
                ENTITY,
                entity_id=car_pass.request_number,
                user_id=user.id,
                request=request,
                details={"type": command.type.value, "reason": command.reason.value},
            )
            return car_pass

        saved = await car_pass_reconciler(storage).save(db, existing, command.attachments, upsert)
        track_record_change("car-pass-request", "create" if created else "update")
        return saved, created

    @staticmethod
    @critical_database_operation("delete_car_pass_request")
    @log_database_operation("car pass request deletion", level="info")
    async def delete_request(
        db: AsyncSession,
        command: DeleteCarPassRequest,
        storage: BlobStore,
        user: User,
        request: Optional[Request] = None,
    ) -> str:
        car_pass = await get_or_404(
            db, CarPassRequest, command.id, detail="Car Pass Request not found"
        )
        await require_owner_or_roles(db, user, car_pass.requestor_email, CAR_PASS_ROLES)
        number = car_pass.request_number
        await db.delete(car_pass)
        AuditService.record(
            db, AuditAction.DELETE, ENTITY, entity_id=number, user_id=user.id, request=request
        )
        await db.commit()

        await car_pass_reconciler(storage).delete_directory(number)
        track_record_change("car-pass-request", "delete")
        return number

    @staticmethod
    @transactional_database_operation("complete_car_pass_request")
    @log_database_operation("car pass request completion", level="info")
    async def complete_request(
        db: AsyncSession,
        command: CompleteCarPassRequest,
        user: User,
        request: Optional[Request] = None,
    ) -> CarPassRequest:
        car_pass = await get_or_404(
            db, CarPassRequest, command.id, detail="Car Pass Request not found"
        )
        car_pass.status = CarPassRequestStatus.COMPLETED
        AuditService.record(
            db,
            AuditAction.UPDATE,
            ENTITY,
            entity_id=car_pass.request_number,
            user_id=user.id,
            request=request,
            details={"status": CarPassRequestStatus.COMPLETED.value},
        )
        track_record_change("car-pass-request", "complete")
        return car_pass
