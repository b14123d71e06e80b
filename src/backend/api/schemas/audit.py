"""
Audit log schemas.

Entries carry the correlation id of the request that wrote them so a log line
and its audit row can be matched.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import Field

from core.schema_base import HTTPSchemaModel


class AuditLogRead(HTTPSchemaModel):
    id: str
    user_id: Optional[str] = Field(None, description="User who performed the action")
    action: str = Field(..., description="CREATE, UPDATE, DELETE, LOGIN, ...")
    entity: str = Field(..., description="Affected entity, e.g. Incident")
    entity_id: Optional[str] = Field(None, description="Row id or serial number")
    details: Optional[Dict[str, Any]] = None
    correlation_id: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: datetime
