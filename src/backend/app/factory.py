"""
Application factory for FastAPI.

This module provides the create_app() function that creates and configures
the FastAPI application instance.
"""

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from api.v1 import api_router
from api.v1.endpoints.auth.auth import limiter
from app.routes import health_router, root_router
from core.config import settings
from core.dependencies import AuthorizationError, LoginRedirect
from core.forms import FormValidationError, form_validation_exception_handler
from core.instrumentator import instrumentator
from core.lifespan import lifespan
from core.middleware import CorrelationIdMiddleware
from core.sessions import clear_session_cookie

logger = logging.getLogger(__name__)


async def login_redirect_handler(request: Request, exc: LoginRedirect) -> RedirectResponse:
    response = RedirectResponse(url=exc.location, status_code=302)
    if exc.clear_session:
        clear_session_cookie(response)
    return response


async def authorization_error_handler(request: Request, exc: AuthorizationError) -> JSONResponse:
    logger.info(f"Authorization denied | Path: {request.url.path} | {exc.payload.get('message')}")
    return JSONResponse(status_code=exc.status_code, content=exc.payload)


def create_app() -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application with all necessary
    middleware, routes, exception handlers and instrumentation.

    Returns:
        FastAPI: Configured FastAPI application instance
    """
    app = FastAPI(
        title=settings.api.app_name,
        version=settings.api.app_version,
        description="Staff records, incidents and request workflows",
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    # Rate limiter shared with the login endpoint
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    app.add_exception_handler(FormValidationError, form_validation_exception_handler)
    app.add_exception_handler(LoginRedirect, login_redirect_handler)
    app.add_exception_handler(AuthorizationError, authorization_error_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors.origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Accept", "Origin", "X-Requested-With", "X-Correlation-ID"],
    )
    # Added last so it runs first and every log line carries the id
    app.add_middleware(CorrelationIdMiddleware)

    app.include_router(root_router)
    app.include_router(health_router)
    app.include_router(api_router, prefix=settings.api.api_v1_prefix)

    instrumentator.instrument(app)
    instrumentator.expose(app, endpoint="/metrics")

    return app
