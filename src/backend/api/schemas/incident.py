"""Incident report schemas: editor commands and read models."""

from datetime import date, datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BeforeValidator, EmailStr, Field, field_validator

from api.schemas.common import AttachmentRead, EmployeeSummary, NamedRead
from core.forms import as_list
from core.schema_base import HTTPSchemaModel
from db.enums import AssessmentLevel, AssessmentStatus, ImpactType, IncidentSeverity
from services.attachments import AttachmentFieldSet


class UpsertIncident(HTTPSchemaModel):
    """`add` creates a report, `edit` updates the one named by `id`."""

    intent: Literal["add", "edit"]
    id: Optional[str] = None
    email: EmailStr
    incident_type_id: str
    location: str = Field(..., min_length=1, max_length=200)
    severity: IncidentSeverity
    description: str = Field(..., min_length=1)
    eye_witnesses: Optional[str] = Field(None, max_length=500)
    occured_while: Optional[str] = Field(None, max_length=500)
    occured_at: date
    time_of_day: Optional[str] = Field(None, max_length=20)
    attachments: Annotated[List[AttachmentFieldSet], BeforeValidator(as_list)] = Field(
        default_factory=list
    )

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.lower()


class DeleteIncident(HTTPSchemaModel):
    intent: Literal["delete"]
    id: str


class AssignOfficer(HTTPSchemaModel):
    """Create or replace the single officer assignment of an incident."""

    intent: Literal["assign-officer"]
    id: str
    officer_id: str
    remarks: Optional[str] = Field(None, max_length=500)


class AssessIncident(HTTPSchemaModel):
    """Create or replace the assessment of the incident named by `id`."""

    intent: Literal["assess"]
    id: str
    cause: str = Field(..., min_length=1)
    action_taken: str = Field(..., min_length=1)
    severity: AssessmentLevel
    impact_type: ImpactType
    likelihood: AssessmentLevel
    training: str = Field(..., min_length=1)
    change_of_procedure: str = Field(..., min_length=1)
    physical_measures: str = Field(..., min_length=1)
    status: AssessmentStatus = AssessmentStatus.OPEN


IncidentCommand = Union[UpsertIncident, DeleteIncident, AssignOfficer, AssessIncident]


class IncidentAssignmentRead(HTTPSchemaModel):
    id: str
    officer_id: str
    remarks: Optional[str] = None
    assigned_by: Optional[str] = None
    officer: Optional[NamedRead] = None
    updated_at: datetime


class IncidentAssessmentRead(HTTPSchemaModel):
    id: str
    cause: str
    action_taken: str
    severity: AssessmentLevel
    impact_type: ImpactType
    likelihood: AssessmentLevel
    training: str
    change_of_procedure: str
    physical_measures: str
    status: AssessmentStatus
    assessed_by: Optional[str] = None
    updated_at: datetime


class IncidentListItem(HTTPSchemaModel):
    id: str
    incident_number: str
    location: str
    severity: IncidentSeverity
    occured_at: datetime
    incident_type: Optional[NamedRead] = None
    employee: Optional[EmployeeSummary] = None
    created_at: datetime


class IncidentRead(IncidentListItem):
    employee_id: str
    incident_type_id: str
    description: str
    eye_witnesses: Optional[str] = None
    occured_while: Optional[str] = None
    time_of_day: Optional[str] = None
    attachments: List[AttachmentRead] = Field(default_factory=list)
    assignment: Optional[IncidentAssignmentRead] = None
    assessment: Optional[IncidentAssessmentRead] = None
    updated_at: datetime
