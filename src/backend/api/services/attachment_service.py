"""
Attachment download.

An attachment belongs to exactly one incident, car pass request or ID
request. Reading it is allowed to whoever may read the owner: the employee
who filed it, or the owner type's administrators.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from fastapi import HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from api.services.car_pass_service import CAR_PASS_ROLES
from api.services.id_request_service import ID_REQUEST_ROLES
from api.services.incident_service import INCIDENT_ROLES
from core.decorators import critical_database_operation
from core.dependencies import require_owner_or_roles
from crud.base_crud import get_or_404
from db.enums import StorageContainer
from db.models import Attachment, CarPassRequest, IdRequest, Incident, User
from services.attachments import BlobStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttachmentOwner:
    container: StorageContainer
    directory: str
    owner_email: Optional[str]
    roles: Sequence[str]


async def resolve_owner(db: AsyncSession, attachment: Attachment) -> AttachmentOwner:
    """
    Raises:
        HTTPException: 404 when the attachment has no owner row
    """
    if attachment.incident_id:
        incident = await get_or_404(db, Incident, attachment.incident_id)
        email = incident.employee.email if incident.employee else None
        return AttachmentOwner(
            StorageContainer.INCIDENTS, incident.incident_number, email, INCIDENT_ROLES
        )
    if attachment.car_pass_request_id:
        car_pass = await get_or_404(db, CarPassRequest, attachment.car_pass_request_id)
        return AttachmentOwner(
            StorageContainer.CAR_PASS_REQUESTS,
            car_pass.request_number,
            car_pass.requestor_email,
            CAR_PASS_ROLES,
        )
    if attachment.id_request_id:
        id_request = await get_or_404(db, IdRequest, attachment.id_request_id)
        return AttachmentOwner(
            StorageContainer.ID_REQUESTS,
            id_request.request_number,
            id_request.requestor_email,
            ID_REQUEST_ROLES,
        )
    logger.error(f"Attachment without owner | Id: {attachment.id}")
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Attachment not found")


class AttachmentService:
    """Service for reading stored attachments."""

    @staticmethod
    @critical_database_operation("download_attachment")
    async def download(
        db: AsyncSession, attachment_id: str, user: User, storage: BlobStore
    ) -> tuple[Attachment, bytes]:
        """
        Returns:
            Tuple of (attachment row, blob content)

        Raises:
            HTTPException: 404 for an unknown row or a missing blob
            AuthorizationError: The user may not read the owner
        """
        attachment = await get_or_404(db, Attachment, attachment_id, detail="Attachment not found")
        owner = await resolve_owner(db, attachment)
        await require_owner_or_roles(db, user, owner.owner_email, owner.roles)

        content = await storage.download_file(
            owner.container.value, owner.directory, attachment.file_name, attachment.extension
        )
        if content is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")
        return attachment, content
