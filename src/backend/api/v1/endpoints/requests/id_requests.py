"""
ID badge request endpoints.

- GET ""        all requests (roles `admin`, `idRequestAdmin`)
- GET "/mine"   the session user's requests
- GET "/{id}"   one request (its requestor or an administrator)
- POST ""       editor: add / edit / delete
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.common import PageResponse, to_page_response
from api.schemas.id_request import (
    DeleteIdRequest,
    IdRequestCommand,
    IdRequestListItem,
    IdRequestRead,
    UpsertIdRequest,
)
from api.services.id_request_service import ID_REQUEST_ROLES, IdRequestService
from core.commands import CommandDispatcher
from core.config import settings
from core.database import get_session
from core.dependencies import require_roles, require_user
from core.forms import read_form
from core.sessions import redirect_with_toast
from crud.pagination import ListQuery
from db.models import User
from services.attachments import BlobStore
from services.blob_storage import get_blob_storage

router = APIRouter()

PROFILE_URL = "/profile/id-requests"


async def _upsert(
    command: UpsertIdRequest, db: AsyncSession, user: User, storage: BlobStore, request: Request
) -> RedirectResponse:
    id_request, created = await IdRequestService.upsert_request(db, command, storage, user, request)
    verb = "Created" if created else "Updated"
    return redirect_with_toast(
        PROFILE_URL,
        f"ID Request {verb}",
        f"ID Request {id_request.request_number} {verb.lower()} successfully.",
    )


async def _delete(
    command: DeleteIdRequest, db: AsyncSession, user: User, storage: BlobStore, request: Request
) -> RedirectResponse:
    await IdRequestService.delete_request(db, command, storage, user, request)
    return redirect_with_toast(
        PROFILE_URL, "ID Request Deleted", "ID Request entry deleted successfully."
    )


id_request_commands: CommandDispatcher[RedirectResponse] = CommandDispatcher(
    IdRequestCommand,
    {UpsertIdRequest: _upsert, DeleteIdRequest: _delete},
)


@router.get("", response_model=PageResponse[IdRequestListItem])
async def list_id_requests(
    request: Request,
    db: AsyncSession = Depends(get_session),
    _: User = Depends(require_roles(*ID_REQUEST_ROLES)),
):
    query = ListQuery.from_params(request.query_params, settings.pagination.default_page_size)
    page = await IdRequestService.list_requests(db, query)
    return to_page_response(page, IdRequestListItem)


@router.get("/mine", response_model=PageResponse[IdRequestListItem])
async def list_my_id_requests(
    request: Request,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_user),
):
    query = ListQuery.from_params(request.query_params, settings.pagination.default_page_size)
    page = await IdRequestService.list_requests(db, query, requestor_email=user.email)
    return to_page_response(page, IdRequestListItem)


@router.get("/{request_id}", response_model=IdRequestRead)
async def get_id_request(
    request_id: str,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_user),
):
    return await IdRequestService.get_request(db, request_id, user)


@router.post("")
async def id_request_editor(
    request: Request,
    db: AsyncSession = Depends(get_session),
    storage: BlobStore = Depends(get_blob_storage),
    user: User = Depends(require_user),
):
    data = await read_form(request)
    return await id_request_commands.handle(data, db, user, storage, request)
