"""
Lookup table endpoints under `/settings`.

Each table gets the same three routes:
- GET "/{table}"         paged list (`search`, `page`, `pageSize`)
- GET "/{table}/{id}"    one row
- POST "/{table}"        editor: add / edit / delete (role `admin`)

Floors additionally filter by `locationId`. Lists are open to any signed-in
user since the profile and request forms use them as dropdowns.
"""

from typing import Any, Callable, Optional, Type

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.common import NamedRead, PageResponse, to_page_response
from api.schemas.settings import (
    CodedRead,
    CountryCommand,
    DeleteSetting,
    DepartmentCommand,
    FloorCommand,
    FloorRead,
    IncidentTypeCommand,
    LocationCommand,
    LocationRead,
    OfficerCommand,
    OfficerRead,
    OrganCommand,
    OrganRead,
    RelationshipCommand,
    UpsertCountry,
    UpsertDepartment,
    UpsertFloor,
    UpsertIncidentType,
    UpsertLocation,
    UpsertOfficer,
    UpsertOrgan,
    UpsertRelationship,
)
from api.services import settings_service
from api.services.settings_service import SETTINGS_ROLES, LookupService
from core.commands import CommandDispatcher
from core.config import settings
from core.database import get_session
from core.dependencies import require_roles, require_user
from core.forms import read_form
from core.schema_base import HTTPSchemaModel
from core.sessions import redirect_with_toast
from crud.pagination import ListQuery
from db.models import Floor, User

router = APIRouter()


def register_lookup(
    path: str,
    service: LookupService,
    command_union: Any,
    upsert_type: Type[HTTPSchemaModel],
    read_schema: Type[HTTPSchemaModel],
    list_filter: Optional[Callable[[Request], Any]] = None,
) -> CommandDispatcher[RedirectResponse]:
    """Add list, detail and editor routes for one lookup table to `router`."""
    url = f"/settings/{path}"

    async def upsert(command, db: AsyncSession, user: User, request: Request) -> RedirectResponse:
        _, created = await service.upsert(db, command, user.id, request)
        verb = "Created" if created else "Updated"
        return redirect_with_toast(
            url, f"{service.entity} {verb}", f"{service.entity} {verb.lower()} successfully."
        )

    async def delete(
        command: DeleteSetting, db: AsyncSession, user: User, request: Request
    ) -> RedirectResponse:
        await service.delete(db, command.id, user.id, request)
        return redirect_with_toast(
            url, f"{service.entity} Deleted", f"{service.entity} deleted successfully."
        )

    commands: CommandDispatcher[RedirectResponse] = CommandDispatcher(
        command_union, {upsert_type: upsert, DeleteSetting: delete}
    )

    async def list_rows(
        request: Request,
        db: AsyncSession = Depends(get_session),
        _: User = Depends(require_user),
    ):
        query = ListQuery.from_params(request.query_params, settings.pagination.default_page_size)
        where = list_filter(request) if list_filter else None
        page = await service.list_items(db, query, where)
        return to_page_response(page, read_schema)

    async def get_row(
        item_id: str,
        db: AsyncSession = Depends(get_session),
        _: User = Depends(require_user),
    ):
        return await service.get_item(db, item_id)

    async def editor(
        request: Request,
        db: AsyncSession = Depends(get_session),
        user: User = Depends(require_roles(*SETTINGS_ROLES)),
    ):
        data = await read_form(request)
        return await commands.handle(data, db, user, request)

    router.add_api_route(
        f"/{path}",
        list_rows,
        methods=["GET"],
        response_model=PageResponse[read_schema],
        name=f"list_{path}",
    )
    router.add_api_route(
        f"/{path}/{{item_id}}",
        get_row,
        methods=["GET"],
        response_model=read_schema,
        name=f"get_{path}",
    )
    router.add_api_route(f"/{path}", editor, methods=["POST"], name=f"edit_{path}")
    return commands


def floors_of_location(request: Request) -> Any:
    location_id = request.query_params.get("locationId")
    return Floor.location_id == location_id if location_id else None


country_commands = register_lookup(
    "countries", settings_service.countries, CountryCommand, UpsertCountry, CodedRead
)
organ_commands = register_lookup(
    "organs", settings_service.organs, OrganCommand, UpsertOrgan, OrganRead
)
department_commands = register_lookup(
    "departments", settings_service.departments, DepartmentCommand, UpsertDepartment, CodedRead
)
location_commands = register_lookup(
    "locations", settings_service.locations, LocationCommand, UpsertLocation, LocationRead
)
floor_commands = register_lookup(
    "floors",
    settings_service.floors,
    FloorCommand,
    UpsertFloor,
    FloorRead,
    list_filter=floors_of_location,
)
relationship_commands = register_lookup(
    "relationships",
    settings_service.relationships,
    RelationshipCommand,
    UpsertRelationship,
    NamedRead,
)
incident_type_commands = register_lookup(
    "incident-types",
    settings_service.incident_types,
    IncidentTypeCommand,
    UpsertIncidentType,
    CodedRead,
)
officer_commands = register_lookup(
    "officers", settings_service.officers, OfficerCommand, UpsertOfficer, OfficerRead
)
