"""Car pass request schemas."""

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BeforeValidator, Field

from api.schemas.common import AttachmentRead, EmployeeSummary
from core.forms import as_list
from core.schema_base import HTTPSchemaModel
from db.enums import CarPassRequestStatus, CarPassRequestType, RequestReason
from services.attachments import AttachmentFieldSet


class UpsertCarPassRequest(HTTPSchemaModel):
    intent: Literal["add", "edit"]
    id: Optional[str] = None
    type: CarPassRequestType = CarPassRequestType.EMPLOYEE
    reason: RequestReason
    vehicle_id: Optional[str] = None
    attachments: Annotated[List[AttachmentFieldSet], BeforeValidator(as_list)] = Field(
        default_factory=list
    )


class DeleteCarPassRequest(HTTPSchemaModel):
    intent: Literal["delete"]
    id: str


class CompleteCarPassRequest(HTTPSchemaModel):
    """Marks a request as processed. Reserved for car pass administrators."""

    intent: Literal["complete"]
    id: str


CarPassRequestCommand = Union[UpsertCarPassRequest, DeleteCarPassRequest, CompleteCarPassRequest]


class VehicleSummary(HTTPSchemaModel):
    id: str
    make: str
    model: str
    plate_number: str
    color: Optional[str] = None


class CarPassRequestListItem(HTTPSchemaModel):
    id: str
    request_number: str
    requestor_email: str
    type: CarPassRequestType
    reason: RequestReason
    status: CarPassRequestStatus
    employee: Optional[EmployeeSummary] = None
    created_at: datetime


class CarPassRequestRead(CarPassRequestListItem):
    employee_id: str
    vehicle_id: Optional[str] = None
    vehicle: Optional[VehicleSummary] = None
    attachments: List[AttachmentRead] = Field(default_factory=list)
    updated_at: datetime
