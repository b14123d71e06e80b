"""
ID badge request schemas.

The editor form carries one nested section per request type; only the
section matching `type` is used:

    type=SPOUSE
    spouseIdRequest.spouseId=...
"""

from datetime import date, datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BeforeValidator, Field, field_validator

from api.schemas.common import AttachmentRead, EmployeeSummary
from core.forms import FormValidationError, as_list
from core.schema_base import HTTPSchemaModel
from db.enums import IdRequestType, RequestReason
from db.models import utc_now
from services.attachments import AttachmentFieldSet


class EmployeeIdRequestFields(HTTPSchemaModel):
    contract_expiry_date: date

    @field_validator("contract_expiry_date")
    @classmethod
    def not_in_past(cls, v: date) -> date:
        if v < utc_now().date():
            raise ValueError("Contract expiry date cannot be in the past")
        return v


class SpouseIdRequestFields(HTTPSchemaModel):
    spouse_id: str


class DependantIdRequestFields(HTTPSchemaModel):
    dependant_id: str


class PrivateDriverIdRequestFields(HTTPSchemaModel):
    driver_full_name: str = Field(..., max_length=200)
    driver_id_number: str = Field(..., max_length=50)
    title: str = Field(..., max_length=50)
    driver_phone_number: str = Field(..., max_length=50)
    gender: str = Field(..., max_length=20)
    nationality: str = Field(..., max_length=100)


# type -> (form section, model)
SECTIONS = {
    IdRequestType.EMPLOYEE: ("employeeIdRequest", "employee_id_request"),
    IdRequestType.SPOUSE: ("spouseIdRequest", "spouse_id_request"),
    IdRequestType.DEPENDANT: ("dependantIdRequest", "dependant_id_request"),
    IdRequestType.PRIVATEDRIVER: ("privateDriverIdRequest", "private_driver_id_request"),
}


class UpsertIdRequest(HTTPSchemaModel):
    intent: Literal["add", "edit"]
    id: Optional[str] = None
    type: IdRequestType
    reason: RequestReason
    employee_id_request: Optional[EmployeeIdRequestFields] = None
    spouse_id_request: Optional[SpouseIdRequestFields] = None
    dependant_id_request: Optional[DependantIdRequestFields] = None
    private_driver_id_request: Optional[PrivateDriverIdRequestFields] = None
    attachments: Annotated[List[AttachmentFieldSet], BeforeValidator(as_list)] = Field(
        default_factory=list
    )

    def section(self) -> HTTPSchemaModel:
        """
        The details section required by `type`.

        Raises:
            FormValidationError: The section is missing
        """
        form_name, attr = SECTIONS[self.type]
        value = getattr(self, attr)
        if value is None:
            raise FormValidationError.single(form_name, "Required")
        return value


class DeleteIdRequest(HTTPSchemaModel):
    intent: Literal["delete"]
    id: str


IdRequestCommand = Union[UpsertIdRequest, DeleteIdRequest]


class IdRequestListItem(HTTPSchemaModel):
    id: str
    request_number: str
    requestor_email: str
    type: IdRequestType
    reason: RequestReason
    employee: Optional[EmployeeSummary] = None
    created_at: datetime


class IdRequestRead(IdRequestListItem):
    employee_id: str
    spouse_id: Optional[str] = None
    dependant_id: Optional[str] = None
    contract_expiry_date: Optional[date] = None
    staff_au_id_number: Optional[str] = None
    driver_full_name: Optional[str] = None
    driver_id_number: Optional[str] = None
    driver_title: Optional[str] = None
    driver_phone_number: Optional[str] = None
    driver_gender: Optional[str] = None
    driver_nationality: Optional[str] = None
    attachments: List[AttachmentRead] = Field(default_factory=list)
    updated_at: datetime
