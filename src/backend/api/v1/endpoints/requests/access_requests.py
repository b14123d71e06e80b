"""
Visitor access request endpoints.

- GET ""        all requests (roles `admin`, `accessRequestAdmin`)
- GET "/mine"   requests filed by the session user's employee record
- GET "/{id}"   one request with visitors and their logs
- POST ""       editor: add / edit / delete (requestor),
                check-in / check-out (administrators)
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.access_request import (
    AccessRequestCommand,
    AccessRequestListItem,
    AccessRequestRead,
    CheckInVisitor,
    CheckOutVisitor,
    DeleteAccessRequest,
    UpsertAccessRequest,
)
from api.schemas.common import PageResponse, to_page_response
from api.services.access_request_service import ACCESS_REQUEST_ROLES, AccessRequestService
from core.commands import CommandDispatcher
from core.config import settings
from core.database import get_session
from core.dependencies import require_roles, require_user, require_user_with_roles
from core.forms import read_form
from core.sessions import redirect_with_toast
from crud.employee_crud import get_employee_by_email
from crud.pagination import ListQuery
from db.models import User

router = APIRouter()

ADMIN_URL = "/access-requests"
PROFILE_URL = "/profile/access-requests"


async def _upsert(
    command: UpsertAccessRequest, db: AsyncSession, user: User, request: Request
) -> RedirectResponse:
    access_request, created = await AccessRequestService.upsert_request(db, command, user, request)
    verb = "Created" if created else "Updated"
    return redirect_with_toast(
        PROFILE_URL,
        f"Access Request {verb}",
        f"Access Request {access_request.request_number} {verb.lower()} successfully.",
    )


async def _delete(
    command: DeleteAccessRequest, db: AsyncSession, user: User, request: Request
) -> RedirectResponse:
    await AccessRequestService.delete_request(db, command, user, request)
    return redirect_with_toast(
        PROFILE_URL, "Access Request Deleted", "Access Request deleted successfully."
    )


async def _check_in(
    command: CheckInVisitor, db: AsyncSession, user: User, request: Request
) -> RedirectResponse:
    await require_user_with_roles(request, db, ACCESS_REQUEST_ROLES)
    await AccessRequestService.check_in(db, command, user, request)
    return redirect_with_toast(
        f"{ADMIN_URL}/{command.id}", "Visitor Checked In", "Visitor checked in successfully."
    )


async def _check_out(
    command: CheckOutVisitor, db: AsyncSession, user: User, request: Request
) -> RedirectResponse:
    await require_user_with_roles(request, db, ACCESS_REQUEST_ROLES)
    await AccessRequestService.check_out(db, command, user, request)
    return redirect_with_toast(
        f"{ADMIN_URL}/{command.id}", "Visitor Checked Out", "Visitor checked out successfully."
    )


access_request_commands: CommandDispatcher[RedirectResponse] = CommandDispatcher(
    AccessRequestCommand,
    {
        UpsertAccessRequest: _upsert,
        DeleteAccessRequest: _delete,
        CheckInVisitor: _check_in,
        CheckOutVisitor: _check_out,
    },
)


@router.get("", response_model=PageResponse[AccessRequestListItem])
async def list_access_requests(
    request: Request,
    db: AsyncSession = Depends(get_session),
    _: User = Depends(require_roles(*ACCESS_REQUEST_ROLES)),
):
    query = ListQuery.from_params(request.query_params, settings.pagination.default_page_size)
    page = await AccessRequestService.list_requests(db, query)
    return to_page_response(page, AccessRequestListItem)


@router.get("/mine", response_model=PageResponse[AccessRequestListItem])
async def list_my_access_requests(
    request: Request,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_user),
):
    employee = await get_employee_by_email(db, user.email)
    query = ListQuery.from_params(request.query_params, settings.pagination.default_page_size)
    page = await AccessRequestService.list_requests(db, query, requestor_id=employee.id)
    return to_page_response(page, AccessRequestListItem)


@router.get("/{request_id}", response_model=AccessRequestRead)
async def get_access_request(
    request_id: str,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_user),
):
    return await AccessRequestService.get_request(db, request_id, user)


@router.post("")
async def access_request_editor(
    request: Request,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_user),
):
    data = await read_form(request)
    return await access_request_commands.handle(data, db, user, request)
