"""
Serial number generation backed by the counters table.

Each entity type owns one counter row. Incrementing is a single
`UPDATE ... SET last_counter = last_counter + 1 RETURNING last_counter`, so
concurrent requests never receive the same number: the row lock is held by
the caller's transaction until it commits.
"""
import logging

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from core.metrics import track_serial_number
from db.enums import SerialNumberType
from db.models import Counter

logger = logging.getLogger(__name__)


def format_serial_number(serial_type: SerialNumberType, value: int) -> str:
    """
    Render a counter value as a request number.

    Example:
        >>> format_serial_number(SerialNumberType.INCIDENT, 42)
        'INC-000042'
    """
    return f"{serial_type.prefix}-{value:06d}"


async def increment_counter(db: AsyncSession, counter_type: str) -> int:
    """
    Atomically bump and return the counter for `counter_type`.

    Creates the counter (starting at 1) the first time a type is used.

    Args:
        db: Database session
        counter_type: Counter key

    Returns:
        The new counter value
    """
    stmt = (
        update(Counter)
        .where(Counter.type == counter_type)
        .values(last_counter=Counter.last_counter + 1)
        .returning(Counter.last_counter)
    )
    result = await db.execute(stmt)
    value = result.scalar_one_or_none()
    if value is not None:
        return value

    logger.info(f"Creating counter | Type: {counter_type}")
    db.add(Counter(type=counter_type, last_counter=1))
    await db.flush()
    return 1


async def generate_serial_number(db: AsyncSession, serial_type: SerialNumberType) -> str:
    """
    Issue the next human-readable number for `serial_type`.

    Args:
        db: Database session (the number is reserved when it commits)
        serial_type: Entity type

    Returns:
        Formatted serial number, e.g. "CPR-000007"
    """
    value = await increment_counter(db, serial_type.value)
    track_serial_number(serial_type.value)
    return format_serial_number(serial_type, value)
