"""
Audit API endpoints for viewing audit logs.

**Access Control:** role `admin`.

Filters: `userId`, `action`, `entity`, `correlationId`, plus the usual
`search`, `page` and `pageSize`.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.audit import AuditLogRead
from api.schemas.common import PageResponse, to_page_response
from api.services.audit_service import AuditService
from core.config import settings
from core.database import get_session
from core.dependencies import require_role
from crud.pagination import ListQuery
from db.models import User

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=PageResponse[AuditLogRead])
async def get_audit_logs(
    request: Request,
    user_id: Optional[str] = Query(None, alias="userId"),
    action: Optional[str] = Query(None),
    entity: Optional[str] = Query(None),
    correlation_id: Optional[str] = Query(None, alias="correlationId"),
    db: AsyncSession = Depends(get_session),
    _: User = Depends(require_role("admin")),
):
    query = ListQuery.from_params(request.query_params, settings.pagination.default_page_size)
    page = await AuditService.list_logs(
        db,
        query,
        user_id=user_id,
        action=action,
        entity=entity,
        correlation_id=correlation_id,
    )
    return to_page_response(page, AuditLogRead)
