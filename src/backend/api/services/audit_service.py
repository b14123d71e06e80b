"""
Audit Service - Track user actions and record changes.

Each entry is written twice:
- a row in `audit_logs`, added to the caller's transaction so it commits (or
  rolls back) together with the change it describes
- a line on the `audit.*` logger, which lands in audit.log
"""

import logging
from typing import Any, Dict, Optional

from fastapi import Request
from sqlalchemy import and_
from sqlalchemy.ext.asyncio import AsyncSession

from core.decorators import critical_database_operation
from core.dependencies import get_client_ip
from core.logging_config import AuditLogger
from core.middleware.correlation import get_correlation_id
from crud.pagination import ListQuery, Page, SQLModelSource, filter_and_paginate
from db.enums import AuditAction
from db.models import AuditLog

logger = logging.getLogger(__name__)

audit_logger = AuditLogger("actions")


class AuditService:
    """Service for writing audit log entries."""

    @staticmethod
    def record(
        db: AsyncSession,
        action: AuditAction,
        entity: str,
        *,
        entity_id: Optional[str] = None,
        user_id: Optional[str] = None,
        request: Optional[Request] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        """
        Add an audit entry to the session without committing.

        Args:
            db: Database session holding the audited change
            action: What happened
            entity: Entity name, e.g. "Incident"
            entity_id: Affected row id or serial number
            user_id: Acting user (None for anonymous flows such as signup)
            request: Source of the client IP
            details: Extra JSON context

        Returns:
            The pending AuditLog row
        """
        ip_address = get_client_ip(request) if request is not None else None
        entry = AuditLog(
            user_id=user_id,
            action=action.value,
            entity=entity,
            entity_id=entity_id,
            details=details,
            correlation_id=get_correlation_id(),
            ip_address=ip_address,
        )
        db.add(entry)
        audit_logger.action(
            action.value,
            entity,
            entity_id=entity_id,
            user_id=user_id,
            ip_address=ip_address,
            details=details,
        )
        return entry

    @staticmethod
    @critical_database_operation("list_audit_logs")
    async def list_logs(
        db: AsyncSession,
        query: ListQuery,
        *,
        user_id: Optional[str] = None,
        action: Optional[str] = None,
        entity: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> Page[AuditLog]:
        """Newest entries first; `search` matches entity, entity id and action."""
        conditions = []
        if user_id:
            conditions.append(AuditLog.user_id == user_id)
        if action:
            conditions.append(AuditLog.action == action.upper())
        if entity:
            conditions.append(AuditLog.entity == entity)
        if correlation_id:
            conditions.append(AuditLog.correlation_id == correlation_id)
        return await filter_and_paginate(
            SQLModelSource(db, AuditLog),
            query,
            search_fields=("entity", "entity_id", "action"),
            where=and_(*conditions) if conditions else None,
            order_by=(AuditLog.created_at.desc(),),
        )
