"""
Incident report endpoints.

**Loaders:**
- GET ""            paged list (`search`, `page`, `pageSize`)
- GET "/{id}"       report with attachments, assignment and assessment

**Editor (POST "", form body with `intent`):**
- add / edit        report fields plus `attachments[i].{id,file,altText}`
- delete            `id`
- assign-officer    `id`, `officerId`, `remarks`
- assess            `id`, `cause`, `actionTaken`, `severity`, `impactType`,
                    `likelihood`, `training`, `changeOfProcedure`,
                    `physicalMeasures`, `status`

**Permissions:** roles `admin` or `incidentAdmin`
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.common import PageResponse, to_page_response
from api.schemas.incident import (
    AssessIncident,
    AssignOfficer,
    DeleteIncident,
    IncidentCommand,
    IncidentListItem,
    IncidentRead,
    UpsertIncident,
)
from api.services.incident_service import INCIDENT_ROLES, IncidentService
from core.commands import CommandDispatcher
from core.config import settings
from core.database import get_session
from core.dependencies import require_roles
from core.forms import read_form
from core.sessions import redirect_with_toast
from crud.pagination import ListQuery
from db.models import User
from services.attachments import BlobStore
from services.blob_storage import get_blob_storage

router = APIRouter()

LIST_URL = "/incidents"


async def _upsert(
    command: UpsertIncident, db: AsyncSession, user: User, storage: BlobStore, request: Request
) -> RedirectResponse:
    incident, created = await IncidentService.upsert_incident(
        db, command, storage, user_id=user.id, request=request
    )
    title = "Incident Created" if created else "Incident Updated"
    return redirect_with_toast(
        f"{LIST_URL}/{incident.id}", title, f"Incident {incident.incident_number} saved"
    )


async def _delete(
    command: DeleteIncident, db: AsyncSession, user: User, storage: BlobStore, request: Request
) -> RedirectResponse:
    number = await IncidentService.delete_incident(
        db, command, storage, user_id=user.id, request=request
    )
    return redirect_with_toast(LIST_URL, "Incident Deleted", f"Incident {number} deleted")


async def _assign(
    command: AssignOfficer, db: AsyncSession, user: User, storage: BlobStore, request: Request
) -> RedirectResponse:
    _, created = await IncidentService.assign_officer(
        db, command, user_id=user.id, request=request
    )
    title = "Assignment Created" if created else "Assignment Updated"
    return redirect_with_toast(f"{LIST_URL}/{command.id}", title)


async def _assess(
    command: AssessIncident, db: AsyncSession, user: User, storage: BlobStore, request: Request
) -> RedirectResponse:
    await IncidentService.assess_incident(db, command, user_id=user.id, request=request)
    return redirect_with_toast(
        f"{LIST_URL}/{command.id}", "Assessment Saved", "Assessment successfully saved."
    )


incident_commands: CommandDispatcher[RedirectResponse] = CommandDispatcher(
    IncidentCommand,
    {
        UpsertIncident: _upsert,
        DeleteIncident: _delete,
        AssignOfficer: _assign,
        AssessIncident: _assess,
    },
)


@router.get("", response_model=PageResponse[IncidentListItem])
async def list_incidents(
    request: Request,
    db: AsyncSession = Depends(get_session),
    _: User = Depends(require_roles(*INCIDENT_ROLES)),
):
    """
    List incident reports, newest first.

    Search matches the incident number, location, description and incident
    type name.
    """
    query = ListQuery.from_params(request.query_params, settings.pagination.default_page_size)
    page = await IncidentService.list_incidents(db, query)
    return to_page_response(page, IncidentListItem)


@router.get("/{incident_id}", response_model=IncidentRead)
async def get_incident(
    incident_id: str,
    db: AsyncSession = Depends(get_session),
    _: User = Depends(require_roles(*INCIDENT_ROLES)),
):
    """
    Raises:
        HTTPException 404: Incident not found
    """
    return await IncidentService.get_incident(db, incident_id)


@router.post("")
async def incident_editor(
    request: Request,
    db: AsyncSession = Depends(get_session),
    storage: BlobStore = Depends(get_blob_storage),
    user: User = Depends(require_roles(*INCIDENT_ROLES)),
):
    """Apply one editor command and redirect with a toast."""
    data = await read_form(request)
    return await incident_commands.handle(data, db, user, storage, request)
