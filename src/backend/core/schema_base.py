"""
Base schema model for request and response bodies.

Field names are exposed in camelCase (form field `altText` fills `alt_text`),
snake_case input is still accepted, and datetimes are rendered in UTC with a
'Z' suffix.
"""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, field_serializer


def to_camel(string: str) -> str:
    """
    Convert snake_case to camelCase.

    Example:
        >>> to_camel("incident_number")
        'incidentNumber'
    """
    head, *rest = string.split("_")
    return head + "".join(word.capitalize() for word in rest)


def serialize_datetime(dt: Optional[datetime]) -> Optional[str]:
    """
    Render a stored (UTC, naive) or aware datetime as "2025-12-18T14:30:00Z".
    """
    if dt is None:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt.isoformat() + "Z"


class HTTPSchemaModel(BaseModel):
    """
    Base model for all HTTP schemas.

    - camelCase aliases, population by field name allowed
    - built from ORM rows (from_attributes=True)
    - datetimes serialized with the UTC indicator
    """

    model_config = ConfigDict(
        from_attributes=True,
        alias_generator=to_camel,
        populate_by_name=True,
    )

    @field_serializer("*", mode="wrap")
    def serialize_any_datetime(self, value: Any, handler: Any) -> Any:
        if isinstance(value, datetime):
            return serialize_datetime(value)
        return handler(value)
