"""
Error handling decorators for service-layer database operations.

Service methods are stacked like this:

    @staticmethod
    @transactional_database_operation("create_incident")
    @log_database_operation("incident creation", level="info")
    async def create_incident(db: AsyncSession, ...): ...

Every wrapper logs and re-raises; none of them turn a failure into a default
value. HTTPException and form validation errors pass through untouched.
"""
import functools
import inspect
import logging
from typing import Any, Callable, Optional

from fastapi import HTTPException
from sqlalchemy.exc import (
    DisconnectionError,
    IntegrityError,
    OperationalError,
    SQLAlchemyError,
    StatementError,
)
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.ext.asyncio import AsyncSession

from core.forms import FormValidationError

logger = logging.getLogger(__name__)


class DatabaseErrorHandler:
    """Classifies database failures for logging."""

    DATABASE_EXCEPTIONS = (SQLAlchemyError, ConnectionError)

    @staticmethod
    def describe(exc: Exception, operation: str) -> tuple[int, str]:
        """
        Build a log level and message for `exc`.

        Returns:
            Tuple of (logging level, message)
        """
        if isinstance(exc, IntegrityError):
            return logging.WARNING, f"Database integrity error during {operation}: {exc.orig}"
        if isinstance(exc, (ConnectionError, DisconnectionError)):
            return logging.ERROR, f"Database connection error during {operation}: {exc}"
        if isinstance(exc, PoolTimeoutError):
            return logging.WARNING, f"Database timeout during {operation}: {exc}"
        if isinstance(exc, OperationalError):
            return logging.ERROR, f"Database operational error during {operation}: {exc}"
        if isinstance(exc, StatementError):
            return logging.WARNING, f"Database statement error during {operation}: {exc}"
        return logging.ERROR, f"Unexpected database error during {operation}: {type(exc).__name__}: {exc}"


def _is_async(func: Callable) -> bool:
    return inspect.iscoroutinefunction(func) or inspect.iscoroutinefunction(
        getattr(func, "__wrapped__", None)
    )


def _find_session(args: tuple, kwargs: dict) -> Optional[AsyncSession]:
    for value in list(args) + list(kwargs.values()):
        if isinstance(value, AsyncSession):
            return value
    return None


def handle_database_exceptions(operation_name: Optional[str] = None) -> Callable:
    """
    Log database errors raised by an async function and re-raise them.

    Args:
        operation_name: Name used in log lines (defaults to the function name)
    """

    def decorator(func: Callable) -> Callable:
        operation = operation_name or func.__name__

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            try:
                result = await func(*args, **kwargs)
                logger.debug(f"Successfully completed {operation}")
                return result
            except (HTTPException, FormValidationError):
                raise
            except DatabaseErrorHandler.DATABASE_EXCEPTIONS as exc:
                level, message = DatabaseErrorHandler.describe(exc, operation)
                logger.log(level, message)
                raise
            except Exception as exc:
                logger.exception(f"Unexpected error in {operation}: {type(exc).__name__}: {exc}")
                raise

        return wrapper

    return decorator


def database_transaction(operation_name: Optional[str] = None) -> Callable:
    """
    Commit the AsyncSession argument when the wrapped function succeeds and
    roll it back when it raises.
    """

    def decorator(func: Callable) -> Callable:
        operation = operation_name or func.__name__

        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Any:
            db = _find_session(args, kwargs)
            if db is None:
                logger.warning(f"No AsyncSession found for transaction operation {operation}")
                return await func(*args, **kwargs)

            try:
                result = await func(*args, **kwargs)
                await db.commit()
                logger.debug(f"Transaction committed for {operation}")
                return result
            except Exception:
                await db.rollback()
                logger.debug(f"Transaction rolled back for {operation}")
                raise

        return wrapper

    return decorator


def log_database_operation(operation: str, level: str = "debug") -> Callable:
    """
    Log the start, completion and failure of an operation.

    Args:
        operation: Human readable description, e.g. "incident creation"
        level: Logger method name ('debug', 'info', 'warning')
    """

    def decorator(func: Callable) -> Callable:
        log = getattr(logger, level)

        if not _is_async(func):

            @functools.wraps(func)
            def sync_wrapper(*args, **kwargs) -> Any:
                log(f"Starting {operation} via {func.__name__}")
                try:
                    result = func(*args, **kwargs)
                except Exception as exc:
                    log(f"Failed {operation} via {func.__name__}: {exc}")
                    raise
                log(f"Completed {operation} via {func.__name__}")
                return result

            return sync_wrapper

        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            log(f"Starting {operation} via {func.__name__}")
            try:
                result = await func(*args, **kwargs)
            except Exception as exc:
                log(f"Failed {operation} via {func.__name__}: {exc}")
                raise
            log(f"Completed {operation} via {func.__name__}")
            return result

        return async_wrapper

    return decorator


def critical_database_operation(func=None, operation_name: Optional[str] = None) -> Callable:
    """
    Error logging for reads and writes that must succeed.

    Usable as `@critical_database_operation`, `@critical_database_operation()`
    or `@critical_database_operation("name")`.
    """
    if isinstance(func, str):
        return critical_database_operation(operation_name=func)

    def decorator(f: Callable) -> Callable:
        return handle_database_exceptions(operation_name)(f)

    return decorator(func) if callable(func) else decorator


def transactional_database_operation(func=None, operation_name: Optional[str] = None) -> Callable:
    """
    Transaction handling plus error logging for write operations.

    Usable as `@transactional_database_operation`,
    `@transactional_database_operation()` or
    `@transactional_database_operation("name")`.
    """
    if isinstance(func, str):
        return transactional_database_operation(operation_name=func)

    def decorator(f: Callable) -> Callable:
        return handle_database_exceptions(operation_name)(database_transaction(operation_name)(f))

    return decorator(func) if callable(func) else decorator
