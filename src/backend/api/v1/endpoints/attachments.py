"""
Attachment download.

- GET "/{id}"   stream the blob inline, for the owner or its administrators
"""

from urllib.parse import quote

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from api.services.attachment_service import AttachmentService
from core.database import get_session
from core.dependencies import require_user
from db.models import User
from services.attachments import BlobStore
from services.blob_storage import get_blob_storage

router = APIRouter()


@router.get("/{attachment_id}")
async def download_attachment(
    attachment_id: str,
    db: AsyncSession = Depends(get_session),
    storage: BlobStore = Depends(get_blob_storage),
    user: User = Depends(require_user),
):
    attachment, content = await AttachmentService.download(db, attachment_id, user, storage)
    name = attachment.file_name
    if attachment.extension:
        name = f"{name}.{attachment.extension}"
    return Response(
        content=content,
        media_type=attachment.content_type,
        headers={
            "Content-Disposition": f"inline; filename*=UTF-8''{quote(name)}",
            "Cache-Control": "private, max-age=3600",
        },
    )
