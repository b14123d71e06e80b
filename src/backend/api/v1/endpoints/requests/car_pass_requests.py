"""
Car pass request endpoints.

- GET ""        all requests (roles `admin`, `carPassAdmin`)
- GET "/mine"   the session user's requests
- GET "/{id}"   one request (its requestor or an administrator)
- POST ""       editor: add / edit / delete (requestor), complete (administrators)
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.car_pass_request import (
    CarPassRequestCommand,
    CarPassRequestListItem,
    CarPassRequestRead,
    CompleteCarPassRequest,
    DeleteCarPassRequest,
    UpsertCarPassRequest,
)
from api.schemas.common import PageResponse, to_page_response
from api.services.car_pass_service import CAR_PASS_ROLES, CarPassService
from core.commands import CommandDispatcher
from core.config import settings
from core.database import get_session
from core.dependencies import require_roles, require_user, require_user_with_roles
from core.forms import read_form
from core.sessions import redirect_with_toast
from crud.pagination import ListQuery
from db.models import User
from services.attachments import BlobStore
from services.blob_storage import get_blob_storage

router = APIRouter()

ADMIN_URL = "/car-pass-requests"
PROFILE_URL = "/profile/car-pass-requests"


async def _upsert(
    command: UpsertCarPassRequest, db: AsyncSession, user: User, storage: BlobStore, request: Request
) -> RedirectResponse:
    car_pass, created = await CarPassService.upsert_request(db, command, storage, user, request)
    verb = "Created" if created else "Updated"
    return redirect_with_toast(
        PROFILE_URL,
        f"Car Pass Request {verb}",
        f"Car Pass Request {car_pass.request_number} {verb.lower()} successfully.",
    )


async def _delete(
    command: DeleteCarPassRequest, db: AsyncSession, user: User, storage: BlobStore, request: Request
) -> RedirectResponse:
    await CarPassService.delete_request(db, command, storage, user, request)
    return redirect_with_toast(
        PROFILE_URL,
        "Car Pass Request Deleted",
        "Car Pass Request entry deleted successfully.",
    )


async def _complete(
    command: CompleteCarPassRequest, db: AsyncSession, user: User, storage: BlobStore, request: Request
) -> RedirectResponse:
    await require_user_with_roles(request, db, CAR_PASS_ROLES)
    car_pass = await CarPassService.complete_request(db, command, user, request)
    return redirect_with_toast(
        f"{ADMIN_URL}/{car_pass.id}",
        "Car Pass Request Completed",
        "Car pass request successfully completed.",
    )


car_pass_commands: CommandDispatcher[RedirectResponse] = CommandDispatcher(
    CarPassRequestCommand,
    {
        UpsertCarPassRequest: _upsert,
        DeleteCarPassRequest: _delete,
        CompleteCarPassRequest: _complete,
    },
)


@router.get("", response_model=PageResponse[CarPassRequestListItem])
async def list_car_pass_requests(
    request: Request,
    db: AsyncSession = Depends(get_session),
    _: User = Depends(require_roles(*CAR_PASS_ROLES)),
):
    query = ListQuery.from_params(request.query_params, settings.pagination.default_page_size)
    page = await CarPassService.list_requests(db, query)
    return to_page_response(page, CarPassRequestListItem)


@router.get("/mine", response_model=PageResponse[CarPassRequestListItem])
async def list_my_car_pass_requests(
    request: Request,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_user),
):
    query = ListQuery.from_params(request.query_params, settings.pagination.default_page_size)
    page = await CarPassService.list_requests(db, query, requestor_email=user.email)
    return to_page_response(page, CarPassRequestListItem)


@router.get("/{request_id}", response_model=CarPassRequestRead)
async def get_car_pass_request(
    request_id: str,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_user),
):
    return await CarPassService.get_request(db, request_id, user)


@router.post("")
async def car_pass_request_editor(
    request: Request,
    db: AsyncSession = Depends(get_session),
    storage: BlobStore = Depends(get_blob_storage),
    user: User = Depends(require_user),
):
    data = await read_form(request)
    return await car_pass_commands.handle(data, db, user, storage, request)
