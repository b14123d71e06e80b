"""
Incident report service.

Reports are numbered `INC-000001`, ... on creation; the number is also the
blob directory of the report's attachments.
"""

import logging
from datetime import datetime, time
from typing import Optional, Tuple

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.incident import AssessIncident, AssignOfficer, DeleteIncident, UpsertIncident
from api.services.audit_service import AuditService
from core.decorators import (
    critical_database_operation,
    log_database_operation,
    transactional_database_operation,
)
from core.forms import FormValidationError
from core.metrics import track_record_change
from crud.base_crud import get_or_404
from crud.counter_crud import generate_serial_number
from crud.employee_crud import get_employee_by_email
from crud.pagination import ListQuery, Page, SQLModelSource, filter_and_paginate
from db.enums import AuditAction, SerialNumberType, StorageContainer
from db.models import Incident, IncidentAssessment, IncidentAssignment, IncidentType, Officer
from services.attachments import AttachmentPlan, AttachmentReconciler, BlobStore, apply_plan_to_rows

logger = logging.getLogger(__name__)

INCIDENT_ROLES = ("admin", "incidentAdmin")
SEARCH_FIELDS = ("incident_number", "location", "description", "incident_type.name")


def incident_reconciler(storage: BlobStore) -> AttachmentReconciler[Incident]:
    return AttachmentReconciler(
        StorageContainer.INCIDENTS,
        lambda incident: incident.incident_number,
        storage,
    )


class IncidentService:
    """Service for incident reports, officer assignments and assessments."""

    @staticmethod
    @critical_database_operation("list_incidents")
    async def list_incidents(db: AsyncSession, query: ListQuery) -> Page[Incident]:
        return await filter_and_paginate(
            SQLModelSource(db, Incident),
            query,
            search_fields=SEARCH_FIELDS,
            order_by=(Incident.created_at.desc(),),
        )

    @staticmethod
    @critical_database_operation("get_incident")
    async def get_incident(db: AsyncSession, incident_id: str) -> Incident:
        return await get_or_404(db, Incident, incident_id, detail="Incident not found")

    @staticmethod
    @critical_database_operation("upsert_incident")
    @log_database_operation("incident upsert", level="info")
    async def upsert_incident(
        db: AsyncSession,
        command: UpsertIncident,
        storage: BlobStore,
        *,
        user_id: Optional[str] = None,
        request: Optional[Request] = None,
    ) -> Tuple[Incident, bool]:
        """
        Create or update a report together with its attachments.

        Rows (report, attachments, audit entry) commit in one transaction;
        blob uploads and deletes run afterwards as one batch.

        Returns:
            Tuple of (incident, created)

        Raises:
            HTTPException: 404 for an unknown employee email or incident id
            FormValidationError: Unknown incident type, or `edit` without an id
        """
        employee = await get_employee_by_email(db, command.email)
        if await db.get(IncidentType, command.incident_type_id) is None:
            raise FormValidationError.single("incidentTypeId", "Incident type not found")

        incident: Optional[Incident] = None
        if command.intent == "edit":
            if not command.id:
                raise FormValidationError.single("id", "Incident id is required")
            incident = await get_or_404(db, Incident, command.id, detail="Incident not found")
        created = incident is None
        existing = list(incident.attachments) if incident is not None else []

        values = dict(
            employee_id=employee.id,
            incident_type_id=command.incident_type_id,
            location=command.location,
            severity=command.severity,
            description=command.description,
            eye_witnesses=command.eye_witnesses,
            occured_while=command.occured_while,
            occured_at=datetime.combine(command.occured_at, time.min),
            time_of_day=command.time_of_day,
        )

        async def upsert(plan: AttachmentPlan) -> Incident:
            nonlocal incident
            if incident is None:
                number = await generate_serial_number(db, SerialNumberType.INCIDENT)
                incident = Incident(incident_number=number, **values)
                db.add(incident)
            else:
                for field, value in values.items():
                    setattr(incident, field, value)
            apply_plan_to_rows(incident.attachments, plan, StorageContainer.INCIDENTS.value)
            AuditService.record(
                db,
                AuditAction.CREATE if created else AuditAction.UPDATE,
                "Incident",
                entity_id=incident.incident_number,
                user_id=user_id,
                request=request,
                details={"attachments": len(plan.kept_ids), "removed": len(plan.to_delete)},
            )
            return incident

        saved = await incident_reconciler(storage).save(db, existing, command.attachments, upsert)
        track_record_change("incident", "create" if created else "update")
        logger.info(
            f"Incident saved | Number: {saved.incident_number} | Created: {created} | "
            f"Employee: {employee.email}"
        )
        return saved, created

    @staticmethod
    @critical_database_operation("delete_incident")
    @log_database_operation("incident deletion", level="info")
    async def delete_incident(
        db: AsyncSession,
        command: DeleteIncident,
        storage: BlobStore,
        *,
        user_id: Optional[str] = None,
        request: Optional[Request] = None,
    ) -> str:
        """
        Delete the row (attachments and assignment cascade), commit, then
        remove the report's blob directory.

        Returns:
            The deleted incident number
        """
        incident = await get_or_404(db, Incident, command.id, detail="Incident not found")
        number = incident.incident_number
        await db.delete(incident)
        AuditService.record(
            db, AuditAction.DELETE, "Incident", entity_id=number, user_id=user_id, request=request
        )
        await db.commit()

        await incident_reconciler(storage).delete_directory(number)
        track_record_change("incident", "delete")
        return number

    @staticmethod
    @transactional_database_operation("assign_officer")
    @log_database_operation("officer assignment", level="info")
    async def assign_officer(
        db: AsyncSession,
        command: AssignOfficer,
        *,
        user_id: Optional[str] = None,
        request: Optional[Request] = None,
    ) -> Tuple[IncidentAssignment, bool]:
        """
        Upsert the single assignment of an incident.

        Returns:
            Tuple of (assignment, created)
        """
        incident = await get_or_404(db, Incident, command.id, detail="Incident not found")
        await get_or_404(db, Officer, command.officer_id, detail="Officer not found")

        assignment = incident.assignment
        created = assignment is None
        if created:
            assignment = IncidentAssignment(incident_id=incident.id, officer_id=command.officer_id)
            db.add(assignment)
            incident.assignment = assignment
        else:
            assignment.officer_id = command.officer_id
        assignment.remarks = command.remarks
        assignment.assigned_by = user_id

        AuditService.record(
            db,
            AuditAction.CREATE if created else AuditAction.UPDATE,
            "IncidentAssignment",
            entity_id=incident.incident_number,
            user_id=user_id,
            request=request,
            details={"officerId": command.officer_id},
        )
        track_record_change("incident", "assign-officer")
        return assignment, created

    @staticmethod
    @transactional_database_operation("assess_incident")
    @log_database_operation("incident assessment", level="info")
    async def assess_incident(
        db: AsyncSession,
        command: AssessIncident,
        *,
        user_id: Optional[str] = None,
        request: Optional[Request] = None,
    ) -> Tuple[IncidentAssessment, bool]:
        """
        Upsert the single assessment of an incident.

        Returns:
            Tuple of (assessment, created)
        """
        incident = await get_or_404(db, Incident, command.id, detail="Incident not found")
        values = command.model_dump(exclude={"intent", "id"})

        assessment = incident.assessment
        created = assessment is None
        if created:
            assessment = IncidentAssessment(incident_id=incident.id, **values)
            db.add(assessment)
            incident.assessment = assessment
        else:
            for field, value in values.items():
                setattr(assessment, field, value)
        assessment.assessed_by = user_id

        AuditService.record(
            db,
            AuditAction.CREATE if created else AuditAction.UPDATE,
            "IncidentAssessment",
            entity_id=incident.incident_number,
            user_id=user_id,
            request=request,
            details={"status": command.status.value, "severity": command.severity.value},
        )
        track_record_change("incident", "assess")
        return assessment, created
