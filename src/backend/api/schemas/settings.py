"""Schemas for the administrative settings editors."""

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BeforeValidator, EmailStr, Field, field_validator

from api.schemas.common import NamedRead
from core.forms import as_list
from core.schema_base import HTTPSchemaModel


class DeleteSetting(HTTPSchemaModel):
    intent: Literal["delete"]
    id: str


class UpsertCountry(HTTPSchemaModel):
    intent: Literal["add", "edit"]
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=150)
    code: Optional[str] = Field(None, max_length=10)


class UpsertOrgan(HTTPSchemaModel):
    intent: Literal["add", "edit"]
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=200)
    code: Optional[str] = Field(None, max_length=20)
    address: Optional[str] = Field(None, max_length=500)
    country_id: str


class UpsertDepartment(HTTPSchemaModel):
    intent: Literal["add", "edit"]
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=200)
    code: Optional[str] = Field(None, max_length=20)


class UpsertLocation(HTTPSchemaModel):
    intent: Literal["add", "edit"]
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=200)


class UpsertFloor(HTTPSchemaModel):
    intent: Literal["add", "edit"]
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    location_id: str


class UpsertRelationship(HTTPSchemaModel):
    intent: Literal["add", "edit"]
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)


class UpsertIncidentType(HTTPSchemaModel):
    intent: Literal["add", "edit"]
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    code: Optional[str] = Field(None, max_length=50)


class UpsertOfficer(HTTPSchemaModel):
    intent: Literal["add", "edit"]
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=200)
    email: EmailStr
    phone: Optional[str] = Field(None, max_length=50)

    @field_validator("email")
    @classmethod
    def lowercase_email(cls, v: str) -> str:
        return v.lower()


class UpsertRole(HTTPSchemaModel):
    intent: Literal["add", "edit"]
    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    permission_ids: Annotated[List[str], BeforeValidator(as_list)] = Field(default_factory=list)


class UpsertPermission(HTTPSchemaModel):
    intent: Literal["add", "edit"]
    id: Optional[str] = None
    entity: str = Field(..., min_length=1, max_length=100)
    action: Literal["create", "read", "update", "delete"]
    access: Literal["own", "any"]
    description: Optional[str] = Field(None, max_length=500)


class UpsertUser(HTTPSchemaModel):
    intent: Literal["add", "edit"]
    id: Optional[str] = None
    username: str = Field(..., min_length=3, max_length=100)
    email: EmailStr
    name: Optional[str] = Field(None, max_length=200)
    password: Optional[str] = Field(None, max_length=100)
    role_ids: Annotated[List[str], BeforeValidator(as_list)] = Field(default_factory=list)

    @field_validator("email", "username")
    @classmethod
    def lowercase(cls, v: str) -> str:
        return v.lower()

    @field_validator("password")
    @classmethod
    def password_length(cls, v: Optional[str]) -> Optional[str]:
        if not v:
            return None
        if len(v) < 6:
            raise ValueError("Password must be at least 6 characters")
        return v


CountryCommand = Union[UpsertCountry, DeleteSetting]
OrganCommand = Union[UpsertOrgan, DeleteSetting]
DepartmentCommand = Union[UpsertDepartment, DeleteSetting]
LocationCommand = Union[UpsertLocation, DeleteSetting]
FloorCommand = Union[UpsertFloor, DeleteSetting]
RelationshipCommand = Union[UpsertRelationship, DeleteSetting]
IncidentTypeCommand = Union[UpsertIncidentType, DeleteSetting]
OfficerCommand = Union[UpsertOfficer, DeleteSetting]
RoleCommand = Union[UpsertRole, DeleteSetting]
PermissionCommand = Union[UpsertPermission, DeleteSetting]
UserCommand = Union[UpsertUser, DeleteSetting]


class CodedRead(NamedRead):
    code: Optional[str] = None


class OrganRead(CodedRead):
    address: Optional[str] = None
    country_id: str
    country: Optional[CodedRead] = None


class FloorRead(NamedRead):
    location_id: str


class LocationRead(NamedRead):
    floors: List[FloorRead] = Field(default_factory=list)


class OfficerRead(NamedRead):
    email: str
    phone: Optional[str] = None


class PermissionRead(HTTPSchemaModel):
    id: str
    entity: str
    action: str
    access: str
    description: Optional[str] = None


class RoleRead(NamedRead):
    description: Optional[str] = None
    permissions: List[PermissionRead] = Field(default_factory=list)


class UserRead(HTTPSchemaModel):
    id: str
    username: str
    email: str
    name: Optional[str] = None
    roles: List[NamedRead] = Field(default_factory=list)
    created_at: datetime
