"""
Middleware classes for the FastAPI application.
"""

from .correlation import CorrelationIdMiddleware, get_correlation_id

__all__ = [
    "CorrelationIdMiddleware",
    "get_correlation_id",
]
