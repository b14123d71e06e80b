"""
Employee profile service.

Employees maintain their own profile (matched to the account by email) and
their dependants, spouses and vehicles. Any change made by the employee puts
the profile back into review; PHP administrators approve or reject it and the
employee is notified by email.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Generic, Optional, Sequence, Tuple, Type, TypeVar

from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

from api.schemas.employee import (
    ApproveProfile,
    DeleteEmployee,
    DeleteEmployeeRecord,
    RejectProfile,
    UpsertEmployee,
)
from api.services.audit_service import AuditService
from core.decorators import (
    critical_database_operation,
    log_database_operation,
    transactional_database_operation,
)
from core.dependencies import require_owner_or_roles, user_has_any_role
from core.forms import FormValidationError
from core.metrics import track_record_change
from crud.base_crud import check_references, exists, get_or_404
from crud.employee_crud import find_employee_by_email
from crud.pagination import ListQuery, Page, SQLModelSource, filter_and_paginate
from db.enums import AuditAction, ProfileStatus
from db.models import (
    Country,
    Department,
    Dependant,
    Employee,
    FamilyRelationship,
    Floor,
    Location,
    Organ,
    Spouse,
    User,
    Vehicle,
)
from services.email_service import EmailService

logger = logging.getLogger(__name__)

EMPLOYEE_ROLES = ("admin", "phpAdmin")
SEARCH_FIELDS = ("first_name", "family_name", "middle_name", "email", "au_id_number")
ENTITY = "Employee"

PROFILE_COLUMNS = (
    "first_name",
    "family_name",
    "middle_name",
    "email",
    "au_id_number",
    "date_issued",
    "valid_until",
    "national_passport_number",
    "au_passport_number",
    "date_of_birth",
    "office_number",
    "mobile_telephone_number",
    "country_id",
    "organ_id",
    "department_id",
    "location_id",
    "floor_id",
)

# form field -> (model, error message)
PROFILE_REFERENCES: Dict[str, Tuple[Type[SQLModel], str]] = {
    "country_id": (Country, "Country not found"),
    "organ_id": (Organ, "Organ not found"),
    "department_id": (Department, "Department not found"),
    "location_id": (Location, "Location not found"),
    "floor_id": (Floor, "Floor not found"),
}

APPROVED_SUBJECT = "Profile Update Approved"
APPROVED_TEXT = (
    "Your profile update has been approved. "
    "You can now login to the system and request services."
)
REJECTED_SUBJECT = "Profile Update Rejected"
REJECTED_TEXT = (
    "Your profile has been rejected. Please ammend the changes requested and submit again."
)


async def _mark_for_review(db: AsyncSession, user: User, employee: Employee) -> None:
    """An employee editing their own data sends the profile back to review."""
    if not await user_has_any_role(db, user.id, EMPLOYEE_ROLES):
        employee.profile_status = ProfileStatus.PENDING


class EmployeeService:
    """Service for employee profiles and their review."""

    @staticmethod
    @critical_database_operation("list_employees")
    async def list_employees(
        db: AsyncSession, query: ListQuery, profile_status: Optional[ProfileStatus] = None
    ) -> Page[Employee]:
        where = None
        if profile_status is not None:
            where = Employee.profile_status == profile_status
        return await filter_and_paginate(
            SQLModelSource(db, Employee),
            query,
            search_fields=SEARCH_FIELDS,
            where=where,
            order_by=(Employee.family_name, Employee.first_name),
        )

    @staticmethod
    @critical_database_operation("get_employee")
    async def get_employee(db: AsyncSession, employee_id: str, user: User) -> Employee:
        employee = await get_or_404(db, Employee, employee_id, detail="Employee not found")
        await require_owner_or_roles(db, user, employee.email, EMPLOYEE_ROLES)
        return employee

    @staticmethod
    @critical_database_operation("get_own_employee")
    async def get_own_profile(db: AsyncSession, user: User) -> Optional[Employee]:
        return await find_employee_by_email(db, user.email)

    @staticmethod
    @transactional_database_operation("upsert_employee")
    @log_database_operation("employee upsert", level="info")
    async def upsert_employee(
        db: AsyncSession,
        command: UpsertEmployee,
        user: User,
        request: Optional[Request] = None,
    ) -> Tuple[Employee, bool]:
        """
        Create or update a profile.

        Employees may only create and edit the profile carrying their own
        email; administrators may edit any.

        Returns:
            Tuple of (employee, created)

        Raises:
            FormValidationError: Duplicate email or unknown reference
        """
        if command.intent == "edit":
            if not command.id:
                raise FormValidationError.single("id", "Employee id is required")
            employee = await get_or_404(db, Employee, command.id, detail="Employee not found")
            await require_owner_or_roles(db, user, employee.email, EMPLOYEE_ROLES)
        else:
            employee = None
            await require_owner_or_roles(db, user, command.email, EMPLOYEE_ROLES)

        if await exists(
            db,
            Employee,
            filters={"email": command.email},
            exclude_id=employee.id if employee else None,
        ):
            raise FormValidationError.single("email", "Profile with this name already exists.")

        values = {column: getattr(command, column) for column in PROFILE_COLUMNS}
        await check_references(db, values, PROFILE_REFERENCES)

        created = employee is None
        if created:
            employee = Employee(**values)
            db.add(employee)
        else:
            for column, value in values.items():
                setattr(employee, column, value)
            await _mark_for_review(db, user, employee)

        AuditService.record(
            db,
            AuditAction.CREATE if created else AuditAction.UPDATE,
            ENTITY,
            entity_id=employee.id,
            user_id=user.id,
            request=request,
        )
        track_record_change("employee", "create" if created else "update")
        return employee, created

    @staticmethod
    @transactional_database_operation("delete_employee")
    @log_database_operation("employee deletion", level="info")
    async def delete_employee(
        db: AsyncSession,
        command: DeleteEmployee,
        user: User,
        request: Optional[Request] = None,
    ) -> None:
        employee = await get_or_404(db, Employee, command.id, detail="Employee not found")
        await db.delete(employee)
        AuditService.record(
            db, AuditAction.DELETE, ENTITY, entity_id=command.id, user_id=user.id, request=request
        )
        track_record_change("employee", "delete")

    @staticmethod
    @critical_database_operation("approve_profile")
    @log_database_operation("profile approval", level="info")
    async def approve_profile(
        db: AsyncSession,
        command: ApproveProfile,
        user: User,
        mailer: EmailService,
        request: Optional[Request] = None,
    ) -> Employee:
        employee = await get_or_404(db, Employee, command.id, detail="Employee not found")
        employee.profile_status = ProfileStatus.APPROVED
        employee.profile_remarks = None
        AuditService.record(
            db,
            AuditAction.UPDATE,
            ENTITY,
            entity_id=employee.id,
            user_id=user.id,
            request=request,
            details={"profileStatus": ProfileStatus.APPROVED.value},
        )
        await db.commit()

        mailer.send_in_background(employee.email, APPROVED_SUBJECT, APPROVED_TEXT)
        logger.info(f"Profile approved | Employee: {employee.id} | By: {user.id}")
        return employee

    @staticmethod
    @critical_database_operation("reject_profile")
    @log_database_operation("profile rejection", level="info")
    async def reject_profile(
        db: AsyncSession,
        command: RejectProfile,
        user: User,
        mailer: EmailService,
        request: Optional[Request] = None,
    ) -> Employee:
        """Reject with the reason as remarks and notify the employee."""
        employee = await get_or_404(db, Employee, command.id, detail="Employee not found")
        employee.profile_status = ProfileStatus.REJECTED
        employee.profile_remarks = command.reason
        AuditService.record(
            db,
            AuditAction.UPDATE,
            ENTITY,
            entity_id=employee.id,
            user_id=user.id,
            request=request,
            details={"profileStatus": ProfileStatus.REJECTED.value, "reason": command.reason},
        )
        await db.commit()

        mailer.send_in_background(
            employee.email, REJECTED_SUBJECT, f"{REJECTED_TEXT}\n\nReason: {command.reason}"
        )
        logger.info(f"Profile rejected | Employee: {employee.id} | By: {user.id}")
        return employee


RecordType = TypeVar("RecordType", bound=SQLModel)


@dataclass(frozen=True)
class EmployeeRecordEditor(Generic[RecordType]):
    """
    Add, edit and delete one kind of record owned by an employee.

    `collection` names the Employee relationship holding the records and
    `columns` the fields copied from the submitted command.
    """

    model: Type[RecordType]
    collection: str
    entity: str
    columns: Sequence[str]
    references: Dict[str, Tuple[Type[SQLModel], str]]

    def _find(self, employee: Employee, record_id: str) -> RecordType:
        for record in getattr(employee, self.collection):
            if record.id == record_id:
                return record
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail=f"{self.entity} not found"
        )

    async def _employee(self, db: AsyncSession, employee_id: str, user: User) -> Employee:
        employee = await get_or_404(db, Employee, employee_id, detail="Employee not found")
        await require_owner_or_roles(db, user, employee.email, EMPLOYEE_ROLES)
        return employee

    async def upsert(
        self,
        db: AsyncSession,
        employee_id: str,
        command,
        user: User,
        request: Optional[Request] = None,
    ) -> Tuple[RecordType, bool]:
        """
        Returns:
            Tuple of (record, created)
        """
        employee = await self._employee(db, employee_id, user)
        values = {column: getattr(command, column) for column in self.columns}
        await check_references(db, values, self.references)

        if command.intent == "edit":
            if not command.id:
                raise FormValidationError.single("id", f"{self.entity} id is required")
            record = self._find(employee, command.id)
            for column, value in values.items():
                setattr(record, column, value)
            created = False
        else:
            record = self.model(employee_id=employee.id, **values)
            getattr(employee, self.collection).append(record)
            created = True

        await _mark_for_review(db, user, employee)
        AuditService.record(
            db,
            AuditAction.CREATE if created else AuditAction.UPDATE,
            self.entity,
            entity_id=record.id,
            user_id=user.id,
            request=request,
            details={"employeeId": employee.id},
        )
        await db.commit()
        track_record_change(self.entity.lower(), "create" if created else "update")
        logger.info(
            f"{self.entity} {'created' if created else 'updated'} | "
            f"Employee: {employee.id} | Id: {record.id}"
        )
        return record, created

    async def delete(
        self,
        db: AsyncSession,
        employee_id: str,
        command: DeleteEmployeeRecord,
        user: User,
        request: Optional[Request] = None,
    ) -> None:
        employee = await self._employee(db, employee_id, user)
        record = self._find(employee, command.id)
        getattr(employee, self.collection).remove(record)
        await _mark_for_review(db, user, employee)
        AuditService.record(
            db,
            AuditAction.DELETE,
            self.entity,
            entity_id=command.id,
            user_id=user.id,
            request=request,
            details={"employeeId": employee.id},
        )
        await db.commit()
        track_record_change(self.entity.lower(), "delete")


dependant_editor: EmployeeRecordEditor[Dependant] = EmployeeRecordEditor(
    model=Dependant,
    collection="dependants",
    entity="Dependant",
    columns=(
        "first_name",
        "family_name",
        "middle_name",
        "date_of_birth",
        "relationship_id",
        "au_id_number",
        "date_issued",
        "valid_until",
        "name_of_school",
    ),
    references={"relationship_id": (FamilyRelationship, "Relationship not found")},
)

spouse_editor: EmployeeRecordEditor[Spouse] = EmployeeRecordEditor(
    model=Spouse,
    collection="spouses",
    entity="Spouse",
    columns=(
        "first_name",
        "family_name",
        "middle_name",
        "date_of_birth",
        "au_id_number",
        "telephone_number",
        "date_issued",
        "valid_until",
    ),
    references={},
)

vehicle_editor: EmployeeRecordEditor[Vehicle] = EmployeeRecordEditor(
    model=Vehicle,
    collection="vehicles",
    entity="Vehicle",
    columns=("make", "model", "plate_number", "color", "year", "capacity"),
    references={},
)
