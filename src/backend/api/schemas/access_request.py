"""Visitor access request schemas."""

from datetime import date, datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BeforeValidator, Field, ValidationInfo, field_validator

from api.schemas.common import EmployeeSummary
from core.forms import as_list
from core.schema_base import HTTPSchemaModel


class VisitorFieldSet(HTTPSchemaModel):
    """One visitor row of the editor; rows without `id` are new visitors."""

    id: Optional[str] = None
    first_name: str = Field(..., max_length=100)
    family_name: str = Field(..., max_length=100)
    telephone: str = Field(..., max_length=50)
    organization: str = Field(..., max_length=200)
    whom_to_visit: str = Field(..., max_length=200)
    destination: str = Field(..., max_length=200)
    car_plate_number: Optional[str] = Field(None, max_length=50)


class UpsertAccessRequest(HTTPSchemaModel):
    intent: Literal["add", "edit"]
    id: Optional[str] = None
    start_date: date
    end_date: date
    visitors: Annotated[List[VisitorFieldSet], BeforeValidator(as_list)] = Field(
        default_factory=list
    )

    @field_validator("end_date")
    @classmethod
    def end_not_before_start(cls, v: date, info: ValidationInfo) -> date:
        start = info.data.get("start_date")
        if start is not None and v < start:
            raise ValueError("End date cannot be earlier than start date")
        return v


class DeleteAccessRequest(HTTPSchemaModel):
    intent: Literal["delete"]
    id: str


class CheckInVisitor(HTTPSchemaModel):
    intent: Literal["check-in"]
    id: str
    visitor_id: str
    badge_number: str = Field(..., min_length=1, max_length=50)


class CheckOutVisitor(HTTPSchemaModel):
    intent: Literal["check-out"]
    id: str
    visitor_id: str


AccessRequestCommand = Union[
    UpsertAccessRequest, DeleteAccessRequest, CheckInVisitor, CheckOutVisitor
]


class VisitorLogRead(HTTPSchemaModel):
    id: str
    badge_number: str
    check_in_time: datetime
    check_out_time: Optional[datetime] = None


class VisitorRead(HTTPSchemaModel):
    id: str
    first_name: str
    family_name: str
    telephone: str
    organization: str
    whom_to_visit: str
    destination: str
    car_plate_number: Optional[str] = None
    logs: List[VisitorLogRead] = Field(default_factory=list)


class AccessRequestListItem(HTTPSchemaModel):
    id: str
    request_number: str
    start_date: date
    end_date: date
    requestor: Optional[EmployeeSummary] = None
    created_at: datetime


class AccessRequestRead(AccessRequestListItem):
    requestor_id: str
    visitors: List[VisitorRead] = Field(default_factory=list)
    updated_at: datetime
