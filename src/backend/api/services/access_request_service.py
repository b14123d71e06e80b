"""
Visitor access request service.

An employee files a request covering a date range and lists the visitors it
admits. Security staff check visitors in (handing out a badge) on any day of
that range and check them out again.
"""

import logging
from datetime import date
from typing import List, Optional, Tuple

from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.access_request import (
    CheckInVisitor,
    CheckOutVisitor,
    DeleteAccessRequest,
    UpsertAccessRequest,
    VisitorFieldSet,
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
from db.enums import AuditAction, SerialNumberType
from db.models import AccessRequest, User, Visitor, VisitorLog, utc_now

logger = logging.getLogger(__name__)

ACCESS_REQUEST_ROLES = ("admin", "accessRequestAdmin")
SEARCH_FIELDS = (
    "request_number",
    "requestor.first_name",
    "requestor.family_name",
    "visitors.first_name",
    "visitors.family_name",
)
ENTITY = "Access Request"

VISITOR_COLUMNS = (
    "first_name",
    "family_name",
    "telephone",
    "organization",
    "whom_to_visit",
    "destination",
    "car_plate_number",
)


def reconcile_visitors(
    visitors: List[Visitor], submitted: List[VisitorFieldSet]
) -> Tuple[int, int, int]:
    """
    Bring a request's visitor collection in line with the editor rows.

    Rows with an id the request owns update that visitor; rows without an id
    add one; visitors missing from the submission are removed together with
    their logs. Ids the request does not own are ignored.

    Returns:
        Tuple of (created, updated, deleted) counts
    """
    by_id = {v.id: v for v in visitors}
    kept = set()
    updated = 0
    new_rows = []

    for row in submitted:
        values = {column: getattr(row, column) for column in VISITOR_COLUMNS}
        if row.id:
            visitor = by_id.get(row.id)
            if visitor is None or row.id in kept:
                continue
            kept.add(row.id)
            for column, value in values.items():
                setattr(visitor, column, value)
            updated += 1
        else:
            new_rows.append(Visitor(**values))

    removed = [v for v in visitors if v.id not in kept]
    for visitor in removed:
        visitors.remove(visitor)
    visitors.extend(new_rows)
    return len(new_rows), updated, len(removed)


def check_in_window(access_request: AccessRequest, today: Optional[date] = None) -> None:
    """
    Raises:
        HTTPException: 403 unless `today` lies within the request's dates
    """
    today = today or utc_now().date()
    if not (access_request.start_date <= today <= access_request.end_date):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=(
                f"Check-in is only allowed from {access_request.start_date.isoformat()} "
                f"to {access_request.end_date.isoformat()}"
            ),
        )


def owner_email(access_request: AccessRequest) -> Optional[str]:
    return access_request.requestor.email if access_request.requestor else None


class AccessRequestService:
    """Service for access requests, visitors and visitor logs."""

    @staticmethod
    @critical_database_operation("list_access_requests")
    async def list_requests(
        db: AsyncSession, query: ListQuery, requestor_id: Optional[str] = None
    ) -> Page[AccessRequest]:
        where = None
        if requestor_id is not None:
            where = AccessRequest.requestor_id == requestor_id
        return await filter_and_paginate(
            SQLModelSource(db, AccessRequest),
            query,
            search_fields=SEARCH_FIELDS,
            where=where,
            order_by=(AccessRequest.start_date.desc(), AccessRequest.created_at.desc()),
        )

    @staticmethod
    @critical_database_operation("get_access_request")
    async def get_request(db: AsyncSession, request_id: str, user: User) -> AccessRequest:
        access_request = await get_or_404(
            db, AccessRequest, request_id, detail="Access Request not found"
        )
        await require_owner_or_roles(db, user, owner_email(access_request), ACCESS_REQUEST_ROLES)
        return access_request

    @staticmethod
    @transactional_database_operation("upsert_access_request")
    @log_database_operation("access request upsert", level="info")
    async def upsert_request(
        db: AsyncSession,
        command: UpsertAccessRequest,
        user: User,
        request: Optional[Request] = None,
    ) -> Tuple[AccessRequest, bool]:
        """
        File or edit a request for the user's own employee record.

        Returns:
            Tuple of (access request, created)
        """
        employee = await get_employee_by_email(db, user.email)

        if command.intent == "edit":
            if not command.id:
                raise FormValidationError.single("id", "Access request id is required")
            access_request = await get_or_404(
                db, AccessRequest, command.id, detail="Access Request not found"
            )
            await require_owner_or_roles(
                db, user, owner_email(access_request), ACCESS_REQUEST_ROLES
            )
            access_request.start_date = command.start_date
            access_request.end_date = command.end_date
            created = False
        else:
            number = await generate_serial_number(db, SerialNumberType.ACCESSREQUEST)
            access_request = AccessRequest(
                request_number=number,
                requestor_id=employee.id,
                start_date=command.start_date,
                end_date=command.end_date,
            )
            db.add(access_request)
            created = True

        added, updated, removed = reconcile_visitors(access_request.visitors, command.visitors)
        AuditService.record(
            db,
            AuditAction.CREATE if created else AuditAction.UPDATE,
            ENTITY,
            entity_id=access_request.request_number,
            user_id=user.id,
            request=request,
            details={"visitorsAdded": added, "visitorsUpdated": updated, "visitorsRemoved": removed},
        )
        track_record_change("access-request", "create" if created else "update")
        return access_request, created

    @staticmethod
    @transactional_database_operation("delete_access_request")
    @log_database_operation("access request deletion", level="info")
    async def delete_request(
        db: AsyncSession,
        command: DeleteAccessRequest,
        user: User,
        request: Optional[Request] = None,
    ) -> str:
        access_request = await get_or_404(
            db, AccessRequest, command.id, detail="Access Request not found"
        )
        await require_owner_or_roles(db, user, owner_email(access_request), ACCESS_REQUEST_ROLES)
        number = access_request.request_number
        await db.delete(access_request)
        AuditService.record(
            db, AuditAction.DELETE, ENTITY, entity_id=number, user_id=user.id, request=request
        )
        track_record_change("access-request", "delete")
        return number

    @staticmethod
    async def _get_visitor(db: AsyncSession, access_request_id: str, visitor_id: str) -> Visitor:
        visitor = await get_or_404(db, Visitor, visitor_id, detail="Visitor not found")
        if visitor.access_request_id != access_request_id:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Visitor not found")
        return visitor

    @staticmethod
    @transactional_database_operation("check_in_visitor")
    @log_database_operation("visitor check-in", level="info")
    async def check_in(
        db: AsyncSession,
        command: CheckInVisitor,
        user: User,
        request: Optional[Request] = None,
        today: Optional[date] = None,
    ) -> VisitorLog:
        """
        Open a visitor log with the handed-out badge.

        Raises:
            HTTPException: 404 for an unknown request or visitor, 403 outside
                the request's date range
        """
        access_request = await get_or_404(
            db, AccessRequest, command.id, detail="Access Request not found"
        )
        check_in_window(access_request, today)
        visitor = await AccessRequestService._get_visitor(db, access_request.id, command.visitor_id)

        log = VisitorLog(visitor_id=visitor.id, badge_number=command.badge_number)
        visitor.logs.append(log)
        AuditService.record(
            db,
            AuditAction.UPDATE,
            "Visitor",
            entity_id=visitor.id,
            user_id=user.id,
            request=request,
            details={"checkIn": True, "badgeNumber": command.badge_number},
        )
        logger.info(
            f"Visitor checked in | Request: {access_request.request_number} | "
            f"Visitor: {visitor.id} | Badge: {command.badge_number}"
        )
        return log

    @staticmethod
    @transactional_database_operation("check_out_visitor")
    @log_database_operation("visitor check-out", level="info")
    async def check_out(
        db: AsyncSession,
        command: CheckOutVisitor,
        user: User,
        request: Optional[Request] = None,
    ) -> VisitorLog:
        """
        Close the visitor's open log.

        Raises:
            HTTPException: 400 when the visitor is not checked in
        """
        access_request = await get_or_404(
            db, AccessRequest, command.id, detail="Access Request not found"
        )
        visitor = await AccessRequestService._get_visitor(db, access_request.id, command.visitor_id)

        open_logs = [log for log in visitor.logs if log.check_out_time is None]
        if not open_logs:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="No active check-in found for today",
            )
        log = max(open_logs, key=lambda entry: entry.check_in_time)
        log.check_out_time = utc_now()
        AuditService.record(
            db,
            AuditAction.UPDATE,
            "Visitor",
            entity_id=visitor.id,
            user_id=user.id,
            request=request,
            details={"checkOut": True, "badgeNumber": log.badge_number},
        )
        return log
