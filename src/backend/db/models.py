"""
Database models using SQLModel.

All tables use random string ids, UTC timestamps stored timezone-naive, and
selectin-loaded relationships so that async code never triggers lazy loads.
"""

from datetime import date, datetime, timezone
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import JSON, Column, Index, Text, UniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

from db.enums import (
    AssessmentLevel,
    AssessmentStatus,
    CarPassRequestStatus,
    CarPassRequestType,
    IdRequestType,
    ImpactType,
    IncidentSeverity,
    ProfileStatus,
    RequestReason,
)


def utc_now() -> datetime:
    """Current time in UTC, timezone-naive, for database storage."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_id() -> str:
    """Collision-resistant random identifier used for rows and blob names."""
    return uuid4().hex


class TableModel(SQLModel):
    """Base table model with common columns."""

    id: str = Field(default_factory=generate_id, primary_key=True, max_length=32)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column_kwargs={"onupdate": utc_now},
    )


# ============================================================================
# Users, roles and permissions
# ============================================================================


class UserRole(SQLModel, table=True):
    """User-Role junction table."""

    __tablename__ = "user_roles"

    user_id: str = Field(foreign_key="users.id", primary_key=True, ondelete="CASCADE")
    role_id: str = Field(foreign_key="roles.id", primary_key=True, ondelete="CASCADE")


class RolePermission(SQLModel, table=True):
    """Role-Permission junction table."""

    __tablename__ = "role_permissions"

    role_id: str = Field(foreign_key="roles.id", primary_key=True, ondelete="CASCADE")
    permission_id: str = Field(
        foreign_key="permissions.id", primary_key=True, ondelete="CASCADE"
    )


class User(TableModel, table=True):
    """Application account. Linked to an Employee by email."""

    __tablename__ = "users"

    email: str = Field(max_length=255, unique=True, index=True)
    username: str = Field(max_length=100, unique=True, index=True)
    name: Optional[str] = Field(default=None, max_length=200)
    password_hash: Optional[str] = Field(default=None, max_length=200)

    roles: List["Role"] = Relationship(
        back_populates="users",
        link_model=UserRole,
        sa_relationship_kwargs={"lazy": "selectin"},
    )
    sessions: List["UserSession"] = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"lazy": "selectin", "cascade": "all, delete-orphan"},
    )


class Role(TableModel, table=True):
    """Named role; grants permissions to its users."""

    __tablename__ = "roles"

    name: str = Field(max_length=100, unique=True, index=True)
    description: Optional[str] = Field(default=None, max_length=500)

    users: List[User] = Relationship(
        back_populates="roles",
        link_model=UserRole,
        sa_relationship_kwargs={"passive_deletes": True},
    )
    permissions: List["Permission"] = Relationship(
        back_populates="roles",
        link_model=RolePermission,
        sa_relationship_kwargs={"lazy": "selectin"},
    )


class Permission(TableModel, table=True):
    """An `entity:action:access` grant, e.g. `incident:update:any`."""

    __tablename__ = "permissions"

    entity: str = Field(max_length=100)
    action: str = Field(max_length=50)
    access: str = Field(max_length=50)
    description: Optional[str] = Field(default=None, max_length=500)

    roles: List[Role] = Relationship(
        back_populates="permissions",
        link_model=RolePermission,
        sa_relationship_kwargs={"passive_deletes": True},
    )

    __table_args__ = (
        UniqueConstraint("entity", "action", "access", name="uq_permission_entity_action_access"),
    )


class UserSession(TableModel, table=True):
    """Server-side login session referenced by the signed session cookie."""

    __tablename__ = "sessions"

    user_id: str = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    expiration_date: datetime

    user: Optional[User] = Relationship(back_populates="sessions")


class Verification(TableModel, table=True):
    """One pending verification code per (target, type)."""

    __tablename__ = "verifications"

    target: str = Field(max_length=255)
    type: str = Field(max_length=50)
    code_hash: str = Field(max_length=64)
    expires_at: datetime

    __table_args__ = (
        UniqueConstraint("target", "type", name="uq_verification_target_type"),
    )



class Connection(TableModel, table=True):
    """A third-party sign-in account linked to a user."""

    __tablename__ = "connections"

    provider_name: str = Field(max_length=50)
    provider_id: str = Field(max_length=255)
    user_id: str = Field(foreign_key="users.id", index=True, ondelete="CASCADE")

    __table_args__ = (
        UniqueConstraint("provider_name", "provider_id", name="uq_connection_provider"),
    )


class AuditLog(SQLModel, table=True):
    """Append-only record of user actions."""

    __tablename__ = "audit_logs"

    id: str = Field(default_factory=generate_id, primary_key=True, max_length=32)
    user_id: Optional[str] = Field(default=None, max_length=32, index=True)
    action: str = Field(max_length=30, index=True)
    entity: str = Field(max_length=100)
    entity_id: Optional[str] = Field(default=None, max_length=100)
    details: Optional[dict] = Field(default=None, sa_column=Column(JSON, nullable=True))
    correlation_id: Optional[str] = Field(default=None, max_length=64)
    ip_address: Optional[str] = Field(default=None, max_length=64)
    created_at: datetime = Field(default_factory=utc_now, index=True)


class Counter(SQLModel, table=True):
    """Last issued serial number per entity type."""

    __tablename__ = "counters"

    id: str = Field(default_factory=generate_id, primary_key=True, max_length=32)
    type: str = Field(max_length=50, unique=True)
    last_counter: int = Field(default=0)


# ============================================================================
# Lookup tables (settings)
# ============================================================================


class Country(TableModel, table=True):
    __tablename__ = "countries"

    name: str = Field(max_length=150, unique=True)
    code: Optional[str] = Field(default=None, max_length=10)


class Organ(TableModel, table=True):
    """A duty station / organ of the organization, located in a country."""

    __tablename__ = "organs"

    name: str = Field(max_length=200)
    code: Optional[str] = Field(default=None, max_length=20)
    address: Optional[str] = Field(default=None, max_length=500)
    country_id: str = Field(foreign_key="countries.id", index=True)

    country: Optional[Country] = Relationship(
        sa_relationship_kwargs={"lazy": "selectin"},
    )

    __table_args__ = (
        UniqueConstraint("name", "country_id", name="uq_organ_name_country"),
    )


class Department(TableModel, table=True):
    __tablename__ = "departments"

    name: str = Field(max_length=200, unique=True)
    code: Optional[str] = Field(default=None, max_length=20)


class Location(TableModel, table=True):
    __tablename__ = "locations"

    name: str = Field(max_length=200, unique=True)

    floors: List["Floor"] = Relationship(
        back_populates="location",
        sa_relationship_kwargs={"lazy": "selectin", "cascade": "all, delete-orphan"},
    )


class Floor(TableModel, table=True):
    __tablename__ = "floors"

    name: str = Field(max_length=100)
    location_id: str = Field(foreign_key="locations.id", index=True, ondelete="CASCADE")

    location: Optional[Location] = Relationship(
        back_populates="floors",
        sa_relationship_kwargs={"lazy": "selectin"},
    )

    __table_args__ = (
        UniqueConstraint("name", "location_id", name="uq_floor_name_location"),
    )


class FamilyRelationship(TableModel, table=True):
    """Dependant relationship kind (child, parent, ...)."""

    __tablename__ = "relationships"

    name: str = Field(max_length=100, unique=True)


class IncidentType(TableModel, table=True):
    __tablename__ = "incident_types"

    name: str = Field(max_length=100, unique=True)
    code: Optional[str] = Field(default=None, max_length=50)


class Officer(TableModel, table=True):
    """Security officer that incidents get assigned to."""

    __tablename__ = "officers"

    name: str = Field(max_length=200)
    email: str = Field(max_length=255, unique=True)
    phone: Optional[str] = Field(default=None, max_length=50)


# ============================================================================
# Employees
# ============================================================================


class Employee(TableModel, table=True):
    """HR profile record."""

    __tablename__ = "employees"

    first_name: str = Field(max_length=100)
    family_name: str = Field(max_length=100)
    middle_name: Optional[str] = Field(default=None, max_length=100)
    email: str = Field(max_length=255, unique=True, index=True)
    au_id_number: Optional[str] = Field(default=None, max_length=50)
    date_issued: Optional[date] = None
    valid_until: Optional[date] = None
    national_passport_number: Optional[str] = Field(default=None, max_length=50)
    au_passport_number: Optional[str] = Field(default=None, max_length=50)
    date_of_birth: Optional[date] = None
    office_number: Optional[str] = Field(default=None, max_length=50)
    mobile_telephone_number: Optional[str] = Field(default=None, max_length=50)
    country_id: Optional[str] = Field(default=None, foreign_key="countries.id")
    organ_id: Optional[str] = Field(default=None, foreign_key="organs.id")
    department_id: Optional[str] = Field(default=None, foreign_key="departments.id")
    location_id: Optional[str] = Field(default=None, foreign_key="locations.id")
    floor_id: Optional[str] = Field(default=None, foreign_key="floors.id")
    profile_status: ProfileStatus = Field(default=ProfileStatus.PENDING)
    profile_remarks: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))

    dependants: List["Dependant"] = Relationship(
        back_populates="employee",
        sa_relationship_kwargs={"lazy": "selectin", "cascade": "all, delete-orphan"},
    )
    spouses: List["Spouse"] = Relationship(
        back_populates="employee",
        sa_relationship_kwargs={"lazy": "selectin", "cascade": "all, delete-orphan"},
    )
    vehicles: List["Vehicle"] = Relationship(
        back_populates="employee",
        sa_relationship_kwargs={"lazy": "selectin", "cascade": "all, delete-orphan"},
    )

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.middle_name, self.family_name]
        return " ".join(p for p in parts if p)


class Dependant(TableModel, table=True):
    __tablename__ = "dependants"

    employee_id: str = Field(foreign_key="employees.id", index=True, ondelete="CASCADE")
    first_name: str = Field(max_length=100)
    family_name: str = Field(max_length=100)
    middle_name: Optional[str] = Field(default=None, max_length=100)
    date_of_birth: Optional[date] = None
    relationship_id: Optional[str] = Field(default=None, foreign_key="relationships.id")
    au_id_number: Optional[str] = Field(default=None, max_length=50)
    date_issued: Optional[date] = None
    valid_until: Optional[date] = None
    name_of_school: Optional[str] = Field(default=None, max_length=200)

    employee: Optional[Employee] = Relationship(back_populates="dependants")


class Spouse(TableModel, table=True):
    __tablename__ = "spouses"

    employee_id: str = Field(foreign_key="employees.id", index=True, ondelete="CASCADE")
    first_name: str = Field(max_length=100)
    family_name: str = Field(max_length=100)
    middle_name: Optional[str] = Field(default=None, max_length=100)
    date_of_birth: Optional[date] = None
    au_id_number: Optional[str] = Field(default=None, max_length=50)
    telephone_number: Optional[str] = Field(default=None, max_length=50)
    date_issued: Optional[date] = None
    valid_until: Optional[date] = None

    employee: Optional[Employee] = Relationship(back_populates="spouses")


class Vehicle(TableModel, table=True):
    __tablename__ = "vehicles"

    employee_id: str = Field(foreign_key="employees.id", index=True, ondelete="CASCADE")
    make: str = Field(max_length=100)
    model: str = Field(max_length=100)
    plate_number: str = Field(max_length=50)
    color: Optional[str] = Field(default=None, max_length=50)
    year: Optional[str] = Field(default=None, max_length=10)
    capacity: Optional[str] = Field(default=None, max_length=20)

    employee: Optional[Employee] = Relationship(back_populates="vehicles")


# ============================================================================
# Attachments
# ============================================================================


class Attachment(TableModel, table=True):
    """
    Metadata row for a stored blob.

    The blob lives at `{type}/{owner serial number}/{file_name}.{extension}`.
    Exactly one owner foreign key is set.
    """

    __tablename__ = "attachments"

    file_name: str = Field(max_length=64)
    extension: str = Field(default="", max_length=20)
    content_type: str = Field(default="application/octet-stream", max_length=150)
    alt_text: Optional[str] = Field(default=None, max_length=500)
    type: str = Field(max_length=50)
    incident_id: Optional[str] = Field(
        default=None, foreign_key="incidents.id", index=True, ondelete="CASCADE"
    )
    car_pass_request_id: Optional[str] = Field(
        default=None, foreign_key="car_pass_requests.id", index=True, ondelete="CASCADE"
    )
    id_request_id: Optional[str] = Field(
        default=None, foreign_key="id_requests.id", index=True, ondelete="CASCADE"
    )


# ============================================================================
# Incidents
# ============================================================================


class Incident(TableModel, table=True):
    __tablename__ = "incidents"

    incident_number: str = Field(max_length=20, unique=True, index=True)
    employee_id: str = Field(foreign_key="employees.id", index=True)
    incident_type_id: str = Field(foreign_key="incident_types.id")
    location: str = Field(max_length=200)
    severity: IncidentSeverity
    description: str = Field(sa_column=Column(Text, nullable=False))
    eye_witnesses: Optional[str] = Field(default=None, max_length=500)
    occured_while: Optional[str] = Field(default=None, max_length=500)
    occured_at: datetime
    time_of_day: Optional[str] = Field(default=None, max_length=20)

    employee: Optional[Employee] = Relationship(sa_relationship_kwargs={"lazy": "selectin"})
    incident_type: Optional[IncidentType] = Relationship(sa_relationship_kwargs={"lazy": "selectin"})
    attachments: List[Attachment] = Relationship(
        sa_relationship_kwargs={"lazy": "selectin", "cascade": "all, delete-orphan"},
    )
    assignment: Optional["IncidentAssignment"] = Relationship(
        back_populates="incident",
        sa_relationship_kwargs={
            "lazy": "selectin",
            "uselist": False,
            "cascade": "all, delete-orphan",
        },
    )

    assessment: Optional["IncidentAssessment"] = Relationship(
        back_populates="incident",
        sa_relationship_kwargs={
            "lazy": "selectin",
            "uselist": False,
            "cascade": "all, delete-orphan",
        },
    )

    __table_args__ = (Index("ix_incident_occured_at", "occured_at"),)


class IncidentAssignment(TableModel, table=True):
    """The officer an incident is assigned to. At most one per incident."""

    __tablename__ = "incident_assignments"

    incident_id: str = Field(
        foreign_key="incidents.id", unique=True, ondelete="CASCADE"
    )
    officer_id: str = Field(foreign_key="officers.id", index=True)
    assigned_by: Optional[str] = Field(default=None, max_length=32)
    remarks: Optional[str] = Field(default=None, max_length=500)

    incident: Optional[Incident] = Relationship(back_populates="assignment")
    officer: Optional[Officer] = Relationship(sa_relationship_kwargs={"lazy": "selectin"})


class IncidentAssessment(TableModel, table=True):
    """Follow-up review of an incident by an incident administrator. At most one per incident."""

    __tablename__ = "incident_assessments"

    incident_id: str = Field(
        foreign_key="incidents.id", unique=True, ondelete="CASCADE"
    )
    cause: str = Field(sa_column=Column(Text, nullable=False))
    action_taken: str = Field(sa_column=Column(Text, nullable=False))
    severity: AssessmentLevel
    impact_type: ImpactType
    likelihood: AssessmentLevel
    training: str = Field(sa_column=Column(Text, nullable=False))
    change_of_procedure: str = Field(sa_column=Column(Text, nullable=False))
    physical_measures: str = Field(sa_column=Column(Text, nullable=False))
    status: AssessmentStatus = AssessmentStatus.OPEN
    assessed_by: Optional[str] = Field(default=None, max_length=32)

    incident: Optional[Incident] = Relationship(back_populates="assessment")


# ============================================================================
# Car pass and ID requests
# ============================================================================


class CarPassRequest(TableModel, table=True):
    __tablename__ = "car_pass_requests"

    request_number: str = Field(max_length=20, unique=True, index=True)
    requestor_email: str = Field(max_length=255, index=True)
    employee_id: str = Field(foreign_key="employees.id", index=True)
    type: CarPassRequestType = Field(default=CarPassRequestType.EMPLOYEE)
    reason: RequestReason
    status: CarPassRequestStatus = Field(default=CarPassRequestStatus.PENDING)
    vehicle_id: Optional[str] = Field(default=None, foreign_key="vehicles.id")

    employee: Optional[Employee] = Relationship(sa_relationship_kwargs={"lazy": "selectin"})
    vehicle: Optional[Vehicle] = Relationship(sa_relationship_kwargs={"lazy": "selectin"})
    attachments: List[Attachment] = Relationship(
        sa_relationship_kwargs={"lazy": "selectin", "cascade": "all, delete-orphan"},
    )


class IdRequest(TableModel, table=True):
    """ID badge request for the employee, a family member or a private driver."""

    __tablename__ = "id_requests"

    request_number: str = Field(max_length=20, unique=True, index=True)
    requestor_email: str = Field(max_length=255, index=True)
    employee_id: str = Field(foreign_key="employees.id", index=True)
    type: IdRequestType
    reason: RequestReason
    spouse_id: Optional[str] = Field(default=None, foreign_key="spouses.id")
    dependant_id: Optional[str] = Field(default=None, foreign_key="dependants.id")
    contract_expiry_date: Optional[date] = None
    staff_au_id_number: Optional[str] = Field(default=None, max_length=50)
    driver_full_name: Optional[str] = Field(default=None, max_length=200)
    driver_id_number: Optional[str] = Field(default=None, max_length=50)
    driver_title: Optional[str] = Field(default=None, max_length=50)
    driver_phone_number: Optional[str] = Field(default=None, max_length=50)
    driver_gender: Optional[str] = Field(default=None, max_length=20)
    driver_nationality: Optional[str] = Field(default=None, max_length=100)

    employee: Optional[Employee] = Relationship(sa_relationship_kwargs={"lazy": "selectin"})
    attachments: List[Attachment] = Relationship(
        sa_relationship_kwargs={"lazy": "selectin", "cascade": "all, delete-orphan"},
    )


# ============================================================================
# Access requests and visitors
# ============================================================================


class AccessRequest(TableModel, table=True):
    __tablename__ = "access_requests"

    request_number: str = Field(max_length=20, unique=True, index=True)
    requestor_id: str = Field(foreign_key="employees.id", index=True)
    start_date: date
    end_date: date

    requestor: Optional[Employee] = Relationship(sa_relationship_kwargs={"lazy": "selectin"})
    visitors: List["Visitor"] = Relationship(
        back_populates="access_request",
        sa_relationship_kwargs={"lazy": "selectin", "cascade": "all, delete-orphan"},
    )


class Visitor(TableModel, table=True):
    __tablename__ = "visitors"

    access_request_id: str = Field(
        foreign_key="access_requests.id", index=True, ondelete="CASCADE"
    )
    first_name: str = Field(max_length=100)
    family_name: str = Field(max_length=100)
    telephone: str = Field(max_length=50)
    organization: str = Field(max_length=200)
    whom_to_visit: str = Field(max_length=200)
    destination: str = Field(max_length=200)
    car_plate_number: Optional[str] = Field(default=None, max_length=50)

    access_request: Optional[AccessRequest] = Relationship(
        back_populates="visitors",
        sa_relationship_kwargs={"lazy": "selectin"},
    )
    logs: List["VisitorLog"] = Relationship(
        back_populates="visitor",
        sa_relationship_kwargs={"lazy": "selectin", "cascade": "all, delete-orphan"},
    )


class VisitorLog(TableModel, table=True):
    """One visit: badge handed out at check-in, returned at check-out."""

    __tablename__ = "visitor_logs"

    visitor_id: str = Field(foreign_key="visitors.id", index=True, ondelete="CASCADE")
    badge_number: str = Field(max_length=50)
    check_in_time: datetime = Field(default_factory=utc_now)
    check_out_time: Optional[datetime] = None

    visitor: Optional[Visitor] = Relationship(back_populates="logs")
