"""
Sign-in through a third-party provider (`microsoft`, `github`).

- GET  /auth/{provider}                 back to the login page
- POST /auth/{provider}                 start the handshake (CSRF), 303 to the provider
- GET  /auth/{provider}/callback        finish it: link, log in or onboard
- GET  /auth/onboarding/{provider}      email and suggested profile for onboarding
- POST /auth/onboarding/{provider}      create the account linked to the provider

The handshake `state` travels in the signed `connection` cookie and must come
back unchanged on the callback.
"""

import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.auth import ProviderOnboardingForm, ProviderOnboardingRead
from api.services.auth_service import AuthService, prefilled_username, safe_redirect
from core.config import settings
from core.database import get_session
from core.dependencies import LoginRedirect, get_optional_user_id
from core.forms import read_form, validate_model
from core.security import generate_token
from core.sessions import (
    clear_connection_cookie,
    clear_verification_cookie,
    get_connection,
    get_verification,
    redirect_with_toast,
    set_connection_cookie,
    set_provider_onboarding_cookie,
    set_session_cookie,
)
from services.oauth import OAuthProvider, ProviderAuthError, get_oauth_providers

logger = logging.getLogger(__name__)

router = APIRouter()

HOME_PATH = "/"
SIGNUP_PATH = "/signup"


def _provider(name: str, providers: Dict[str, OAuthProvider]) -> OAuthProvider:
    provider = providers.get(name)
    if provider is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown provider")
    return provider


def _callback_url(request: Request, provider: OAuthProvider) -> str:
    return str(request.url_for("oauth_callback", provider=provider.name))


def _failed(title: str, description: str) -> RedirectResponse:
    response = redirect_with_toast(settings.api.login_path, title, description, type_="error")
    clear_connection_cookie(response)
    return response


def _require_provider_onboarding(request: Request, provider: OAuthProvider) -> dict:
    claims = get_verification(request)
    if (
        not claims
        or claims.get("type") != "onboarding"
        or claims.get("providerName") != provider.name
        or not claims.get("providerId")
    ):
        raise LoginRedirect(SIGNUP_PATH)
    return claims


@router.get("/auth/{provider}")
async def provider_entry():
    return RedirectResponse(url=settings.api.login_path, status_code=302)


@router.post("/auth/{provider}")
async def start_provider_login(
    provider: str,
    request: Request,
    providers: Dict[str, OAuthProvider] = Depends(get_oauth_providers),
):
    data = await read_form(request)
    selected = _provider(provider, providers)
    state = generate_token()
    url = selected.authorization_url(_callback_url(request, selected), state)

    response = RedirectResponse(url=url, status_code=303)
    set_connection_cookie(response, selected.name, state, redirect_to=data.get("redirectTo"))
    return response


@router.get("/auth/{provider}/callback", name="oauth_callback")
async def provider_callback(
    provider: str,
    request: Request,
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
    db: AsyncSession = Depends(get_session),
    providers: Dict[str, OAuthProvider] = Depends(get_oauth_providers),
):
    selected = _provider(provider, providers)
    auth_failed = (
        "Auth Failed",
        f"There was an error authenticating with {selected.label}. Please try again.",
    )

    claims = get_connection(request)
    if error or not code or not claims:
        logger.warning(f"Provider callback rejected | Provider: {selected.name} | Error: {error}")
        return _failed(*auth_failed)
    if claims.get("provider") != selected.name or claims.get("state") != state:
        logger.warning(f"Provider state mismatch | Provider: {selected.name}")
        return _failed(*auth_failed)

    try:
        profile = await selected.fetch_profile(code, _callback_url(request, selected))
    except ProviderAuthError as e:
        return _failed(e.title, e.description)

    user_id = await get_optional_user_id(request, db)
    result = await AuthService.provider_sign_in(db, selected.name, profile, user_id, request)
    account = f'"{profile.username} {selected.label}"'
    redirect_to = safe_redirect(claims.get("redirectTo"))

    if result.outcome == "already-connected":
        description = (
            f"Your {account} account is already connected."
            if result.own_account
            else f"Your {account} account is already connected to another account."
        )
        response = redirect_with_toast(HOME_PATH, "Already Connected", description)
    elif result.outcome == "connected":
        response = redirect_with_toast(
            redirect_to if result.session else HOME_PATH,
            "Connected",
            f"Your {account} account has been connected.",
        )
    elif result.outcome == "logged-in":
        response = RedirectResponse(url=redirect_to, status_code=303)
    else:
        response = RedirectResponse(url=f"/onboarding/{selected.name}", status_code=303)
        set_provider_onboarding_cookie(
            response,
            profile.email,
            selected.name,
            profile.id,
            {"username": prefilled_username(profile.username), "name": profile.name},
            redirect_to=claims.get("redirectTo"),
        )

    if result.session is not None:
        set_session_cookie(response, result.session.id, remember=True)
    clear_connection_cookie(response)
    return response


@router.get("/auth/onboarding/{provider}", response_model=ProviderOnboardingRead)
async def provider_onboarding_data(
    provider: str,
    request: Request,
    providers: Dict[str, OAuthProvider] = Depends(get_oauth_providers),
):
    claims = _require_provider_onboarding(request, _provider(provider, providers))
    prefilled = claims.get("prefilled") or {}
    return ProviderOnboardingRead(
        email=claims["target"],
        username=prefilled.get("username"),
        name=prefilled.get("name"),
    )


@router.post("/auth/onboarding/{provider}")
async def provider_onboarding(
    provider: str,
    request: Request,
    db: AsyncSession = Depends(get_session),
    providers: Dict[str, OAuthProvider] = Depends(get_oauth_providers),
):
    selected = _provider(provider, providers)
    claims = _require_provider_onboarding(request, selected)
    data = await read_form(request)
    form = validate_model(ProviderOnboardingForm, data)

    session = await AuthService.onboard_with_provider(
        db,
        email=claims["target"],
        username=form.username,
        name=form.name,
        provider_name=selected.name,
        provider_id=claims["providerId"],
        remember=form.remember,
        request=request,
    )
    target = safe_redirect(form.redirect_to or claims.get("redirectTo"))
    response = redirect_with_toast(target, "Welcome", "Thanks for signing up!")
    set_session_cookie(response, session.id, remember=form.remember)
    clear_verification_cookie(response)
    return response
