"""
Employee profile endpoints.

**Loaders:**
- GET ""                paged list, optional `status` (roles `admin`, `phpAdmin`)
- GET "/me"             the session user's own profile
- GET "/{id}"           profile with dependants, spouses and vehicles

**Editors (form body with `intent`):**
- POST ""                        add / edit / delete, approve / reject (review)
- POST "/{id}/dependants"        add / edit / delete
- POST "/{id}/spouses"           add / edit / delete
- POST "/{id}/vehicles"          add / edit / delete

Employees edit their own records; `delete`, `approve` and `reject` are
reserved for `admin` and `phpAdmin`.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.common import PageResponse, to_page_response
from api.schemas.employee import (
    ApproveProfile,
    DeleteEmployee,
    DeleteEmployeeRecord,
    DependantCommand,
    EmployeeCommand,
    EmployeeListItem,
    EmployeeRead,
    RejectProfile,
    SpouseCommand,
    UpsertDependant,
    UpsertEmployee,
    UpsertSpouse,
    UpsertVehicle,
    VehicleCommand,
)
from api.services.employee_service import (
    EMPLOYEE_ROLES,
    EmployeeRecordEditor,
    EmployeeService,
    dependant_editor,
    spouse_editor,
    vehicle_editor,
)
from core.commands import CommandDispatcher
from core.config import settings
from core.database import get_session
from core.dependencies import require_roles, require_user, require_user_with_roles
from core.forms import read_form
from core.sessions import redirect_with_toast
from crud.pagination import ListQuery
from db.enums import ProfileStatus
from db.models import User
from services.email_service import EmailService, get_email_service

router = APIRouter()

LIST_URL = "/employees"
PROFILE_URL = "/profile"


async def _upsert(
    command: UpsertEmployee, db: AsyncSession, user: User, mailer: EmailService, request: Request
) -> RedirectResponse:
    employee, created = await EmployeeService.upsert_employee(db, command, user, request)
    return redirect_with_toast(
        PROFILE_URL if created else f"{LIST_URL}/{employee.id}",
        "Profile Created" if created else "Profile Updated",
        "Your profile has been saved successfully.",
    )


async def _delete(
    command: DeleteEmployee, db: AsyncSession, user: User, mailer: EmailService, request: Request
) -> RedirectResponse:
    await require_user_with_roles(request, db, EMPLOYEE_ROLES)
    await EmployeeService.delete_employee(db, command, user, request)
    return redirect_with_toast(LIST_URL, "Employee Deleted", "Employee deleted successfully.")


async def _approve(
    command: ApproveProfile, db: AsyncSession, user: User, mailer: EmailService, request: Request
) -> RedirectResponse:
    await require_user_with_roles(request, db, EMPLOYEE_ROLES)
    employee = await EmployeeService.approve_profile(db, command, user, mailer, request)
    return redirect_with_toast(
        LIST_URL,
        "Employee Profile Approved",
        f"{employee.full_name}'s profile has been approved.",
    )


async def _reject(
    command: RejectProfile, db: AsyncSession, user: User, mailer: EmailService, request: Request
) -> RedirectResponse:
    await require_user_with_roles(request, db, EMPLOYEE_ROLES)
    employee = await EmployeeService.reject_profile(db, command, user, mailer, request)
    return redirect_with_toast(
        LIST_URL,
        "Employee Profile Rejected",
        f"{employee.full_name}'s profile has been rejected.",
    )


employee_commands: CommandDispatcher[RedirectResponse] = CommandDispatcher(
    EmployeeCommand,
    {
        UpsertEmployee: _upsert,
        DeleteEmployee: _delete,
        ApproveProfile: _approve,
        RejectProfile: _reject,
    },
)


def record_commands(
    editor: EmployeeRecordEditor, union, upsert_type
) -> CommandDispatcher[RedirectResponse]:
    """Editor for one kind of employee record (dependants, spouses, vehicles)."""

    async def upsert(command, employee_id: str, db: AsyncSession, user: User, request: Request):
        _, created = await editor.upsert(db, employee_id, command, user, request)
        verb = "Added" if created else "Updated"
        return redirect_with_toast(
            f"{PROFILE_URL}/{editor.collection}",
            f"{editor.entity} {verb}",
            f"{editor.entity} {verb.lower()} successfully.",
        )

    async def delete(
        command: DeleteEmployeeRecord,
        employee_id: str,
        db: AsyncSession,
        user: User,
        request: Request,
    ):
        await editor.delete(db, employee_id, command, user, request)
        return redirect_with_toast(
            f"{PROFILE_URL}/{editor.collection}",
            f"{editor.entity} Deleted",
            f"{editor.entity} deleted successfully.",
        )

    return CommandDispatcher(union, {upsert_type: upsert, DeleteEmployeeRecord: delete})


dependant_commands = record_commands(dependant_editor, DependantCommand, UpsertDependant)
spouse_commands = record_commands(spouse_editor, SpouseCommand, UpsertSpouse)
vehicle_commands = record_commands(vehicle_editor, VehicleCommand, UpsertVehicle)


@router.get("", response_model=PageResponse[EmployeeListItem])
async def list_employees(
    request: Request,
    profile_status: Optional[ProfileStatus] = Query(None, alias="status"),
    db: AsyncSession = Depends(get_session),
    _: User = Depends(require_roles(*EMPLOYEE_ROLES)),
):
    query = ListQuery.from_params(request.query_params, settings.pagination.default_page_size)
    page = await EmployeeService.list_employees(db, query, profile_status)
    return to_page_response(page, EmployeeListItem)


@router.get("/me", response_model=EmployeeRead)
async def get_my_profile(
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_user),
):
    employee = await EmployeeService.get_own_profile(db, user)
    if employee is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Employee not found")
    return employee


@router.get("/{employee_id}", response_model=EmployeeRead)
async def get_employee(
    employee_id: str,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_user),
):
    return await EmployeeService.get_employee(db, employee_id, user)


@router.post("")
async def employee_editor(
    request: Request,
    db: AsyncSession = Depends(get_session),
    mailer: EmailService = Depends(get_email_service),
    user: User = Depends(require_user),
):
    data = await read_form(request)
    return await employee_commands.handle(data, db, user, mailer, request)


@router.post("/{employee_id}/dependants")
async def dependant_form(
    employee_id: str,
    request: Request,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_user),
):
    data = await read_form(request)
    return await dependant_commands.handle(data, employee_id, db, user, request)


@router.post("/{employee_id}/spouses")
async def spouse_form(
    employee_id: str,
    request: Request,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_user),
):
    data = await read_form(request)
    return await spouse_commands.handle(data, employee_id, db, user, request)


@router.post("/{employee_id}/vehicles")
async def vehicle_form(
    employee_id: str,
    request: Request,
    db: AsyncSession = Depends(get_session),
    user: User = Depends(require_user),
):
    data = await read_form(request)
    return await vehicle_commands.handle(data, employee_id, db, user, request)
