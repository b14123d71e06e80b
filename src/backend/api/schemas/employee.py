"""Employee profile schemas, including the nested family and vehicle editors."""

from datetime import date, datetime
from typing import List, Literal, Optional, Union

from pydantic import EmailStr, Field, field_validator

from core.schema_base import HTTPSchemaModel
from db.enums import ProfileStatus


class UpsertEmployee(HTTPSchemaModel):
    intent: Literal["add", "edit"]
    id: Optional[str] = None
    first_name: str = Field(..., min_length=1, max_length=100)
    family_name: str = Field(..., min_length=1, max_length=100)
    middle_name: Optional[str] = Field(None, max_length=100)
    email: EmailStr
    au_id_number: Optional[str] = Field(None, max_length=50)
    date_issued: Optional[date] = None
    valid_until: Optional[date] = None
    national_passport_number: Optional[str] = Field(None, max_length=50)
    au_passport_number: Optional[str] = Field(None, max_length=50)
    date_of_birth: Optional[date] = None
    office_number: Optional[str] = Field(None, max_length=50)
    mobile_telephone_number: Optional[str] = Field(None, max_length=50)
    country_id: Optional[str] = None
    organ_id: Optional[str] = None
    department_id: Optional[str] = None
    location_id: Optional[str] = None
    floor_id: Optional[str] = None

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()


class DeleteEmployee(HTTPSchemaModel):
    intent: Literal["delete"]
    id: str


class ApproveProfile(HTTPSchemaModel):
    intent: Literal["approve"]
    id: str


class RejectProfile(HTTPSchemaModel):
    intent: Literal["reject"]
    id: str
    reason: str = Field(..., max_length=2000)

    @field_validator("reason")
    @classmethod
    def reason_required(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Reason for rejection is required")
        return v


EmployeeCommand = Union[UpsertEmployee, DeleteEmployee, ApproveProfile, RejectProfile]


class UpsertDependant(HTTPSchemaModel):
    intent: Literal["add", "edit"]
    id: Optional[str] = None
    first_name: str = Field(..., min_length=1, max_length=100)
    family_name: str = Field(..., min_length=1, max_length=100)
    middle_name: Optional[str] = Field(None, max_length=100)
    date_of_birth: Optional[date] = None
    relationship_id: Optional[str] = None
    au_id_number: Optional[str] = Field(None, max_length=50)
    date_issued: Optional[date] = None
    valid_until: Optional[date] = None
    name_of_school: Optional[str] = Field(None, max_length=200)


class UpsertSpouse(HTTPSchemaModel):
    intent: Literal["add", "edit"]
    id: Optional[str] = None
    first_name: str = Field(..., min_length=1, max_length=100)
    family_name: str = Field(..., min_length=1, max_length=100)
    middle_name: Optional[str] = Field(None, max_length=100)
    date_of_birth: Optional[date] = None
    au_id_number: Optional[str] = Field(None, max_length=50)
    telephone_number: Optional[str] = Field(None, max_length=50)
    date_issued: Optional[date] = None
    valid_until: Optional[date] = None


class UpsertVehicle(HTTPSchemaModel):
    intent: Literal["add", "edit"]
    id: Optional[str] = None
    make: str = Field(..., min_length=1, max_length=100)
    model: str = Field(..., min_length=1, max_length=100)
    plate_number: str = Field(..., min_length=1, max_length=50)
    color: Optional[str] = Field(None, max_length=50)
    year: Optional[str] = Field(None, max_length=10)
    capacity: Optional[str] = Field(None, max_length=20)


class DeleteEmployeeRecord(HTTPSchemaModel):
    """Removes one dependant, spouse or vehicle of the employee."""

    intent: Literal["delete"]
    id: str


DependantCommand = Union[UpsertDependant, DeleteEmployeeRecord]
SpouseCommand = Union[UpsertSpouse, DeleteEmployeeRecord]
VehicleCommand = Union[UpsertVehicle, DeleteEmployeeRecord]


class DependantRead(HTTPSchemaModel):
    id: str
    first_name: str
    family_name: str
    middle_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    relationship_id: Optional[str] = None
    au_id_number: Optional[str] = None
    date_issued: Optional[date] = None
    valid_until: Optional[date] = None
    name_of_school: Optional[str] = None


class SpouseRead(HTTPSchemaModel):
    id: str
    first_name: str
    family_name: str
    middle_name: Optional[str] = None
    date_of_birth: Optional[date] = None
    au_id_number: Optional[str] = None
    telephone_number: Optional[str] = None
    date_issued: Optional[date] = None
    valid_until: Optional[date] = None


class VehicleRead(HTTPSchemaModel):
    id: str
    make: str
    model: str
    plate_number: str
    color: Optional[str] = None
    year: Optional[str] = None
    capacity: Optional[str] = None


class EmployeeListItem(HTTPSchemaModel):
    id: str
    first_name: str
    family_name: str
    middle_name: Optional[str] = None
    email: str
    au_id_number: Optional[str] = None
    profile_status: ProfileStatus
    updated_at: datetime


class EmployeeRead(EmployeeListItem):
    date_issued: Optional[date] = None
    valid_until: Optional[date] = None
    national_passport_number: Optional[str] = None
    au_passport_number: Optional[str] = None
    date_of_birth: Optional[date] = None
    office_number: Optional[str] = None
    mobile_telephone_number: Optional[str] = None
    country_id: Optional[str] = None
    organ_id: Optional[str] = None
    department_id: Optional[str] = None
    location_id: Optional[str] = None
    floor_id: Optional[str] = None
    profile_remarks: Optional[str] = None
    dependants: List[DependantRead] = Field(default_factory=list)
    spouses: List[SpouseRead] = Field(default_factory=list)
    vehicles: List[VehicleRead] = Field(default_factory=list)
    created_at: datetime
