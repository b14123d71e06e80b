"""
Root endpoint handler.
"""

from fastapi import APIRouter

from core.config import settings

router = APIRouter()


@router.get("/")
async def root():
    """Service identification, used by load balancers and smoke tests."""
    return {
        "name": settings.api.app_name,
        "version": settings.api.app_version,
        "status": "operational",
        "docs": "/api/docs",
    }
