"""Signed cookie helpers.

Every cookie the application sets is a JWT signed by `core.security`:

- `session`: id of the server-side `sessions` row
- `verification`: pending one-time-code flow (`target`, `type`, verified flag)
- `connection`: OAuth handshake state for one provider, 10 minutes
- `theme`: UI preference
- `toast`: one-shot notification shown after a redirect
- `csrf`: anti-CSRF token echoed by every state-changing form

A cookie that fails verification is treated as absent.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Literal, Optional

from fastapi import Request, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel

from core.config import settings
from core.security import (
    SecurityError,
    generate_token,
    sign_value,
    unsign_value,
)
from db.models import utc_now

logger = logging.getLogger(__name__)

VERIFICATION_COOKIE = "verification"
CONNECTION_COOKIE = "connection"
THEME_COOKIE = "theme"
TOAST_COOKIE = "toast"
CSRF_COOKIE = "csrf"

Theme = Literal["light", "dark", "system"]


class Toast(BaseModel):
    """Notification displayed once on the next page."""

    type: Literal["success", "error", "message"] = "success"
    title: str
    description: str = ""


def _set_cookie(
    response: Response,
    name: str,
    value: str,
    max_age: Optional[int] = None,
) -> None:
    response.set_cookie(
        key=name,
        value=value,
        max_age=max_age,
        path="/",
        httponly=True,
        secure=settings.security.cookie_secure,
        samesite="lax",
    )


def _delete_cookie(response: Response, name: str) -> None:
    response.delete_cookie(
        key=name,
        path="/",
        httponly=True,
        secure=settings.security.cookie_secure,
        samesite="lax",
    )


def read_signed_cookie(request: Request, name: str) -> Optional[Dict[str, Any]]:
    """Return the claims of a signed cookie, or None if missing or invalid."""
    raw = request.cookies.get(name)
    if not raw:
        return None
    try:
        return unsign_value(raw)
    except SecurityError as e:
        logger.debug(f"Ignoring cookie | Name: {name} | Reason: {e}")
        return None


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


def session_expiration(remember: bool) -> datetime:
    """Expiry of a new session row; short-lived unless "remember me"."""
    if remember:
        return utc_now() + timedelta(days=settings.security.session_expiration_days)
    return utc_now() + timedelta(days=1)


def set_session_cookie(response: Response, session_id: str, remember: bool = False) -> None:
    """Store the session id; persistent for "remember me", browser-session otherwise."""
    lifetime = timedelta(days=settings.security.session_expiration_days)
    token = sign_value({"sid": session_id}, expires_delta=lifetime)
    max_age = int(lifetime.total_seconds()) if remember else None
    _set_cookie(response, settings.security.session_cookie_name, token, max_age=max_age)


def get_session_id(request: Request) -> Optional[str]:
    claims = read_signed_cookie(request, settings.security.session_cookie_name)
    if not claims:
        return None
    return claims.get("sid")


def clear_session_cookie(response: Response) -> None:
    _delete_cookie(response, settings.security.session_cookie_name)


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


def set_verification_cookie(
    response: Response,
    target: str,
    type_: str,
    verified: bool = False,
    redirect_to: Optional[str] = None,
) -> None:
    ttl = timedelta(minutes=settings.security.verification_ttl_minutes)
    data = {"target": target, "type": type_, "verified": verified}
    if redirect_to:
        data["redirectTo"] = redirect_to
    _set_cookie(
        response,
        VERIFICATION_COOKIE,
        sign_value(data, expires_delta=ttl),
        max_age=int(ttl.total_seconds()),
    )


def get_verification(request: Request) -> Optional[Dict[str, Any]]:
    return read_signed_cookie(request, VERIFICATION_COOKIE)


def clear_verification_cookie(response: Response) -> None:
    _delete_cookie(response, VERIFICATION_COOKIE)



def set_provider_onboarding_cookie(
    response: Response,
    email: str,
    provider_name: str,
    provider_id: str,
    prefilled: Dict[str, Any],
    redirect_to: Optional[str] = None,
) -> None:
    """Verified `onboarding` state for an account first seen through a provider."""
    ttl = timedelta(minutes=settings.security.verification_ttl_minutes)
    data = {
        "target": email,
        "type": "onboarding",
        "verified": True,
        "providerName": provider_name,
        "providerId": provider_id,
        "prefilled": prefilled,
    }
    if redirect_to:
        data["redirectTo"] = redirect_to
    _set_cookie(
        response,
        VERIFICATION_COOKIE,
        sign_value(data, expires_delta=ttl),
        max_age=int(ttl.total_seconds()),
    )


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


def set_connection_cookie(
    response: Response,
    provider_name: str,
    state: str,
    redirect_to: Optional[str] = None,
) -> None:
    """Remember the `state` sent to a provider until its callback comes back."""
    ttl = timedelta(minutes=settings.oauth.connection_ttl_minutes)
    data = {"provider": provider_name, "state": state}
    if redirect_to:
        data["redirectTo"] = redirect_to
    _set_cookie(
        response,
        CONNECTION_COOKIE,
        sign_value(data, expires_delta=ttl),
        max_age=int(ttl.total_seconds()),
    )


def get_connection(request: Request) -> Optional[Dict[str, Any]]:
    return read_signed_cookie(request, CONNECTION_COOKIE)


def clear_connection_cookie(response: Response) -> None:
    _delete_cookie(response, CONNECTION_COOKIE)


# ---------------------------------------------------------------------------
# Theme
# ---------------------------------------------------------------------------


def set_theme_cookie(response: Response, theme: Theme) -> None:
    if theme == "system":
        _delete_cookie(response, THEME_COOKIE)
        return
    _set_cookie(
        response,
        THEME_COOKIE,
        sign_value({"theme": theme}),
        max_age=365 * 24 * 3600,
    )


def get_theme(request: Request) -> Optional[str]:
    claims = read_signed_cookie(request, THEME_COOKIE)
    return claims.get("theme") if claims else None


# ---------------------------------------------------------------------------
# Toast
# ---------------------------------------------------------------------------


def set_toast(response: Response, toast: Toast) -> None:
    ttl = settings.security.toast_ttl_seconds
    _set_cookie(
        response,
        TOAST_COOKIE,
        sign_value({"toast": toast.model_dump()}, expires_delta=timedelta(seconds=ttl)),
        max_age=ttl,
    )


def pop_toast(request: Request, response: Response) -> Optional[Toast]:
    """Read the pending toast and clear it so it shows only once."""
    claims = read_signed_cookie(request, TOAST_COOKIE)
    if request.cookies.get(TOAST_COOKIE):
        _delete_cookie(response, TOAST_COOKIE)
    if not claims or "toast" not in claims:
        return None
    return Toast.model_validate(claims["toast"])


# ---------------------------------------------------------------------------
# CSRF
# ---------------------------------------------------------------------------


def issue_csrf_token(request: Request, response: Response) -> str:
    """Return the current CSRF token, creating and setting one if needed."""
    existing = get_csrf_token(request)
    if existing:
        return existing
    token = generate_token()
    _set_cookie(response, CSRF_COOKIE, sign_value({"csrf": token}))
    return token


def get_csrf_token(request: Request) -> Optional[str]:
    claims = read_signed_cookie(request, CSRF_COOKIE)
    return claims.get("csrf") if claims else None


def redirect_with_toast(
    url: str,
    title: str,
    description: str = "",
    type_: str = "success",
) -> RedirectResponse:
    """303 to `url` carrying a one-shot toast; the response of every successful editor action."""
    response = RedirectResponse(url=url, status_code=303)
    set_toast(response, Toast(type=type_, title=title, description=description))
    return response
