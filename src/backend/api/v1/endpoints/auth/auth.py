"""
Authentication endpoints.

Form posts answer with a 303 redirect; validation problems come back as the
usual 400 form error payload.

- GET  /auth/csrf              issue the CSRF token cookie
- POST /auth/login             username or email + password (rate limited)
- POST /auth/logout
- POST /auth/signup            email a code for `onboarding`
- POST /auth/verify            check a code, mark the verification cookie
- POST /auth/onboarding        create the account for the verified email
- POST /auth/forgot-password   email a code for `reset-password`
- POST /auth/reset-password    set the new password for the verified user
- GET  /theme                  read the stored UI theme
- POST /theme                  store the UI theme
- GET  /toast                  read and clear the pending toast
"""

import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import RedirectResponse
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.auth import (
    CsrfRead,
    ForgotPasswordForm,
    LoginForm,
    OnboardingForm,
    ResetPasswordForm,
    SignupForm,
    ThemeForm,
    ThemeRead,
    ToastRead,
    VerifyForm,
)
from api.services.auth_service import AuthService, safe_redirect
from core.config import settings
from core.database import get_session
from core.dependencies import LoginRedirect
from core.forms import FormValidationError, read_form, validate_model
from core.sessions import (
    clear_session_cookie,
    clear_verification_cookie,
    get_session_id,
    get_theme,
    get_verification,
    issue_csrf_token,
    pop_toast,
    redirect_with_toast,
    set_session_cookie,
    set_theme_cookie,
    set_verification_cookie,
)
from db.enums import VerificationType
from services.email_service import EmailService, get_email_service

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)

router = APIRouter()

VERIFY_PATH = "/verify"
ONBOARDING_PATH = "/onboarding"
RESET_PASSWORD_PATH = "/reset-password"


def _verify_url(target: str, type_: VerificationType) -> str:
    return f"{VERIFY_PATH}?{urlencode({'type': type_.value, 'target': target})}"


def _send_code(mailer: EmailService, email: str, subject: str, code: str) -> None:
    mailer.send_in_background(
        email,
        subject,
        f"Here's your code: {code}",
        f"Here's your code: <strong>{code}</strong>",
    )


def _require_verified(request: Request, type_: VerificationType, fallback: str) -> dict:
    """Claims of a verified `type_` verification cookie; otherwise restart the flow."""
    claims = get_verification(request)
    if not claims or claims.get("type") != type_.value or not claims.get("verified"):
        raise LoginRedirect(fallback)
    return claims


@router.get("/auth/csrf", response_model=CsrfRead)
async def get_csrf(request: Request, response: Response):
    return CsrfRead(csrf=issue_csrf_token(request, response))


@router.post("/auth/login")
@limiter.limit(f"{settings.rate_limit.login_per_minute}/minute")
async def login(
    request: Request,  # Must be first param for rate limiter
    db: AsyncSession = Depends(get_session),
):
    data = await read_form(request, honeypot=True)
    form = validate_model(LoginForm, data)
    session = await AuthService.login(db, form.username, form.password, form.remember, request)

    response = RedirectResponse(url=safe_redirect(form.redirect_to), status_code=303)
    set_session_cookie(response, session.id, remember=form.remember)
    return response


@router.post("/auth/logout")
async def logout(request: Request, db: AsyncSession = Depends(get_session)):
    await read_form(request)
    session_id = get_session_id(request)
    if session_id:
        await AuthService.logout(db, session_id, request)
    response = RedirectResponse(url="/", status_code=303)
    clear_session_cookie(response)
    return response


@router.post("/auth/signup")
async def signup(
    request: Request,
    db: AsyncSession = Depends(get_session),
    mailer: EmailService = Depends(get_email_service),
):
    data = await read_form(request, honeypot=True)
    form = validate_model(SignupForm, data)
    await AuthService.email_available(db, form.email)

    code = await AuthService.prepare_verification(db, form.email, VerificationType.ONBOARDING)
    _send_code(mailer, form.email, f"Welcome to {settings.api.app_name}", code)

    response = RedirectResponse(
        url=_verify_url(form.email, VerificationType.ONBOARDING), status_code=303
    )
    set_verification_cookie(
        response, form.email, VerificationType.ONBOARDING.value, redirect_to=form.redirect_to
    )
    return response


@router.post("/auth/verify")
async def verify(request: Request, db: AsyncSession = Depends(get_session)):
    data = await read_form(request)
    form = validate_model(VerifyForm, data)
    await AuthService.verify_code(db, form.target, form.type, form.code, request)

    next_path = (
        ONBOARDING_PATH if form.type == VerificationType.ONBOARDING else RESET_PASSWORD_PATH
    )
    claims = get_verification(request) or {}
    response = RedirectResponse(url=next_path, status_code=303)
    set_verification_cookie(
        response,
        form.target,
        form.type.value,
        verified=True,
        redirect_to=form.redirect_to or claims.get("redirectTo"),
    )
    return response


@router.post("/auth/onboarding")
async def onboarding(request: Request, db: AsyncSession = Depends(get_session)):
    claims = _require_verified(request, VerificationType.ONBOARDING, "/signup")
    data = await read_form(request)
    form = validate_model(OnboardingForm, data)

    session = await AuthService.onboard(
        db,
        email=claims["target"],
        username=form.username,
        name=form.name,
        password=form.password,
        remember=form.remember,
        request=request,
    )
    target = safe_redirect(form.redirect_to or claims.get("redirectTo"))
    response = redirect_with_toast(target, "Welcome", "Thanks for signing up!")
    set_session_cookie(response, session.id, remember=form.remember)
    clear_verification_cookie(response)
    return response


@router.post("/auth/forgot-password")
async def forgot_password(
    request: Request,
    db: AsyncSession = Depends(get_session),
    mailer: EmailService = Depends(get_email_service),
):
    data = await read_form(request, honeypot=True)
    form = validate_model(ForgotPasswordForm, data)
    user = await AuthService.reset_target(db, form.username_or_email)
    if user is None:
        raise FormValidationError.single(
            "usernameOrEmail", "No user exists with this username or email"
        )

    code = await AuthService.prepare_verification(
        db, user.username, VerificationType.RESET_PASSWORD
    )
    _send_code(mailer, user.email, f"{settings.api.app_name} Password Reset", code)

    response = RedirectResponse(
        url=_verify_url(user.username, VerificationType.RESET_PASSWORD), status_code=303
    )
    set_verification_cookie(response, user.username, VerificationType.RESET_PASSWORD.value)
    return response


@router.post("/auth/reset-password")
async def reset_password(request: Request, db: AsyncSession = Depends(get_session)):
    claims = _require_verified(request, VerificationType.RESET_PASSWORD, "/login")
    data = await read_form(request)
    form = validate_model(ResetPasswordForm, data)

    await AuthService.reset_password(db, claims["target"], form.password, request)
    response = redirect_with_toast(
        settings.api.login_path, "Password Reset", "Your password has been reset."
    )
    clear_verification_cookie(response)
    return response


@router.get("/theme", response_model=ThemeRead)
async def read_theme(request: Request):
    return ThemeRead(theme=get_theme(request) or "system")


@router.post("/theme", response_model=ThemeRead)
async def set_theme(request: Request, response: Response):
    data = await read_form(request)
    form = validate_model(ThemeForm, data)
    set_theme_cookie(response, form.theme)
    return ThemeRead(theme=form.theme)


@router.get("/toast", response_model=Optional[ToastRead])
async def get_toast(request: Request, response: Response):
    toast = pop_toast(request, response)
    return ToastRead(**toast.model_dump()) if toast else None
