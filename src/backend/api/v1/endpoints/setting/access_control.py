"""
Role, permission and user administration under `/settings` (role `admin`).

- GET "/roles", "/permissions", "/users"             paged lists
- GET "/roles/{id}", "/permissions/{id}", "/users/{id}"
- POST "/roles"        add / edit (with `permissionIds`) / delete
- POST "/permissions"  add / edit (`entity`, `action`, `access`) / delete
- POST "/users"        add / edit (with `roleIds`, optional `password`) / delete
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.common import PageResponse, to_page_response
from api.schemas.settings import (
    DeleteSetting,
    PermissionCommand,
    PermissionRead,
    RoleCommand,
    RoleRead,
    UpsertPermission,
    UpsertRole,
    UpsertUser,
    UserCommand,
    UserRead,
)
from api.services.settings_service import SETTINGS_ROLES
from api.services.user_service import PermissionService, RoleService, UserService
from core.commands import CommandDispatcher
from core.config import settings
from core.database import get_session
from core.dependencies import require_roles
from core.forms import read_form
from core.sessions import redirect_with_toast
from crud.base_crud import get_or_404
from crud.pagination import ListQuery
from db.models import Permission, Role, User

router = APIRouter()

require_admin = require_roles(*SETTINGS_ROLES)


def _saved(url: str, entity: str, created: bool) -> RedirectResponse:
    verb = "Created" if created else "Updated"
    return redirect_with_toast(url, f"{entity} {verb}", f"{entity} {verb.lower()} successfully.")


def _deleted(url: str, entity: str) -> RedirectResponse:
    return redirect_with_toast(url, f"{entity} Deleted", f"{entity} deleted successfully.")


async def _upsert_role(
    command: UpsertRole, db: AsyncSession, user: User, request: Request
) -> RedirectResponse:
    _, created = await RoleService.upsert_role(db, command, user.id, request)
    return _saved("/settings/roles", "Role", created)


async def _delete_role(
    command: DeleteSetting, db: AsyncSession, user: User, request: Request
) -> RedirectResponse:
    await RoleService.delete_role(db, command.id, user.id, request)
    return _deleted("/settings/roles", "Role")


async def _upsert_permission(
    command: UpsertPermission, db: AsyncSession, user: User, request: Request
) -> RedirectResponse:
    _, created = await PermissionService.upsert_permission(db, command, user.id, request)
    return _saved("/settings/permissions", "Permission", created)


async def _delete_permission(
    command: DeleteSetting, db: AsyncSession, user: User, request: Request
) -> RedirectResponse:
    await PermissionService.delete_permission(db, command.id, user.id, request)
    return _deleted("/settings/permissions", "Permission")


async def _upsert_user(
    command: UpsertUser, db: AsyncSession, user: User, request: Request
) -> RedirectResponse:
    _, created = await UserService.upsert_user(db, command, user.id, request)
    return _saved("/settings/users", "User", created)


async def _delete_user(
    command: DeleteSetting, db: AsyncSession, user: User, request: Request
) -> RedirectResponse:
    await UserService.delete_user(db, command.id, user.id, request)
    return _deleted("/settings/users", "User")


role_commands: CommandDispatcher[RedirectResponse] = CommandDispatcher(
    RoleCommand, {UpsertRole: _upsert_role, DeleteSetting: _delete_role}
)
permission_commands: CommandDispatcher[RedirectResponse] = CommandDispatcher(
    PermissionCommand, {UpsertPermission: _upsert_permission, DeleteSetting: _delete_permission}
)
user_commands: CommandDispatcher[RedirectResponse] = CommandDispatcher(
    UserCommand, {UpsertUser: _upsert_user, DeleteSetting: _delete_user}
)


@router.get("/roles", response_model=PageResponse[RoleRead])
async def list_roles(
    request: Request,
    db: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
):
    query = ListQuery.from_params(request.query_params, settings.pagination.default_page_size)
    return to_page_response(await RoleService.list_roles(db, query), RoleRead)


@router.get("/roles/{role_id}", response_model=RoleRead)
async def get_role(
    role_id: str,
    db: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
):
    return await get_or_404(db, Role, role_id, detail="Role not found")


@router.post("/roles")
async def role_editor(
    request: Request,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_admin),
):
    data = await read_form(request)
    return await role_commands.handle(data, db, user, request)


@router.get("/permissions", response_model=PageResponse[PermissionRead])
async def list_permissions(
    request: Request,
    db: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
):
    query = ListQuery.from_params(request.query_params, settings.pagination.default_page_size)
    return to_page_response(await PermissionService.list_permissions(db, query), PermissionRead)


@router.get("/permissions/{permission_id}", response_model=PermissionRead)
async def get_permission(
    permission_id: str,
    db: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
):
    return await get_or_404(db, Permission, permission_id, detail="Permission not found")


@router.post("/permissions")
async def permission_editor(
    request: Request,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_admin),
):
    data = await read_form(request)
    return await permission_commands.handle(data, db, user, request)


@router.get("/users", response_model=PageResponse[UserRead])
async def list_users(
    request: Request,
    db: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
):
    query = ListQuery.from_params(request.query_params, settings.pagination.default_page_size)
    return to_page_response(await UserService.list_users(db, query), UserRead)


@router.get("/users/{user_id}", response_model=UserRead)
async def get_user(
    user_id: str,
    db: AsyncSession = Depends(get_session),
    _: User = Depends(require_admin),
):
    return await get_or_404(db, User, user_id, detail="User not found")


@router.post("/users")
async def user_editor(
    request: Request,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_admin),
):
    data = await read_form(request)
    return await user_commands.handle(data, db, user, request)
