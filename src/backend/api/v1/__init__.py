"""
API v1 routes.

Endpoints are organized in subdirectories: auth, requests, employees, setting.
"""

from fastapi import APIRouter

from .endpoints import attachments
from .endpoints.auth import audit, auth, connections
from .endpoints.employees import employees
from .endpoints.requests import access_requests, car_pass_requests, id_requests, incidents
from .endpoints.setting import access_control, lookups

api_router = APIRouter()

api_router.include_router(auth.router, tags=["auth"])

# After `auth`: its fixed /auth/... paths take precedence over /auth/{provider}
api_router.include_router(connections.router, tags=["auth"])

api_router.include_router(audit.router, prefix="/audit", tags=["audit"])

api_router.include_router(incidents.router, prefix="/incidents", tags=["incidents"])

api_router.include_router(
    car_pass_requests.router, prefix="/car-pass-requests", tags=["car-pass-requests"]
)

api_router.include_router(id_requests.router, prefix="/id-requests", tags=["id-requests"])

api_router.include_router(
    access_requests.router, prefix="/access-requests", tags=["access-requests"]
)

api_router.include_router(employees.router, prefix="/employees", tags=["employees"])

api_router.include_router(lookups.router, prefix="/settings", tags=["settings"])

api_router.include_router(access_control.router, prefix="/settings", tags=["settings"])

api_router.include_router(attachments.router, prefix="/attachments", tags=["attachments"])
