"""
Third-party sign-in providers.

Each provider runs the authorization code flow with authlib's httpx-based
`AsyncOAuth2Client`: `authorization_url` builds the redirect carrying our
`state`, and `fetch_profile` exchanges the callback `code` for a token and
reads the account's id, primary email and display names.
"""

import logging
from typing import Any, Dict, Optional

import httpx
from authlib.common.errors import AuthlibBaseError
from authlib.integrations.httpx_client import AsyncOAuth2Client
from pydantic import BaseModel

from core.config import OAuthSettings, settings
from core.metrics import track_auth_attempt

logger = logging.getLogger(__name__)


class ProviderAuthError(Exception):
    """The provider handshake failed; shown to the user as an error toast."""

    def __init__(self, title: str, description: str):
        super().__init__(f"{title}: {description}")
        self.title = title
        self.description = description


class ProviderProfile(BaseModel):
    """The account a provider vouched for."""

    id: str
    email: str
    username: str
    name: Optional[str] = None
    image_url: Optional[str] = None


class OAuthProvider:
    """Authorization code flow against one provider."""

    name: str = ""
    label: str = ""
    authorize_url: str = ""
    token_url: str = ""
    scope: str = ""
    authorize_params: Dict[str, str] = {}

    def __init__(self, client_id: str, client_secret: str, timeout: int = 10):
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout

    def _client(self, redirect_uri: str) -> AsyncOAuth2Client:
        return AsyncOAuth2Client(
            client_id=self.client_id,
            client_secret=self.client_secret,
            scope=self.scope,
            redirect_uri=redirect_uri,
            timeout=self.timeout,
        )

    def authorization_url(self, redirect_uri: str, state: str) -> str:
        client = self._client(redirect_uri)
        url, _ = client.create_authorization_url(
            self.authorize_url, state=state, **self.authorize_params
        )
        return url

    async def fetch_profile(self, code: str, redirect_uri: str) -> ProviderProfile:
        """
        Exchange `code` for a token and read the account.

        Raises:
            ProviderAuthError: The exchange failed or the account has no email
        """
        try:
            async with self._client(redirect_uri) as client:
                await client.fetch_token(self.token_url, code=code)
                profile = await self._read_profile(client)
        except (AuthlibBaseError, httpx.HTTPError) as e:
            track_auth_attempt(self.name, False)
            logger.warning(f"Provider exchange failed | Provider: {self.name} | Error: {e}")
            raise ProviderAuthError(
                "Auth Failed",
                f"There was an error authenticating with {self.label}. Please try again.",
            ) from e

        if not profile.email:
            track_auth_attempt(self.name, False)
            raise ProviderAuthError(
                "No email found",
                f"Please add a verified email address to your {self.label} account to login.",
            )
        track_auth_attempt(self.name, True)
        return profile

    async def _read_profile(self, client: AsyncOAuth2Client) -> ProviderProfile:
        raise NotImplementedError


class MicrosoftProvider(OAuthProvider):
    """Microsoft Entra ID (Azure AD) of one tenant, via the OpenID userinfo endpoint."""

    name = "microsoft"
    label = "Microsoft"
    scope = "openid profile email"
    authorize_params = {"prompt": "login"}
    userinfo_url = "https://graph.microsoft.com/oidc/userinfo"

    def __init__(self, client_id: str, client_secret: str, tenant_id: str, timeout: int = 10):
        super().__init__(client_id, client_secret, timeout)
        base = f"https://login.microsoftonline.com/{tenant_id}/oauth2/v2.0"
        self.authorize_url = f"{base}/authorize"
        self.token_url = f"{base}/token"

    async def _read_profile(self, client: AsyncOAuth2Client) -> ProviderProfile:
        response = await client.get(self.userinfo_url)
        response.raise_for_status()
        info: Dict[str, Any] = response.json()
        return ProviderProfile(
            id=str(info["sub"]),
            email=(info.get("email") or "").strip().lower(),
            username=info.get("name") or info.get("preferred_username") or "",
            name=info.get("given_name"),
            image_url=info.get("picture"),
        )


class GitHubProvider(OAuthProvider):
    name = "github"
    label = "GitHub"
    authorize_url = "https://github.com/login/oauth/authorize"
    token_url = "https://github.com/login/oauth/access_token"
    scope = "read:user user:email"
    api_url = "https://api.github.com"

    async def _read_profile(self, client: AsyncOAuth2Client) -> ProviderProfile:
        response = await client.get(f"{self.api_url}/user")
        response.raise_for_status()
        info: Dict[str, Any] = response.json()

        emails = await client.get(f"{self.api_url}/user/emails")
        emails.raise_for_status()
        verified = [e for e in emails.json() if e.get("verified")]
        verified.sort(key=lambda e: not e.get("primary"))
        email = verified[0]["email"] if verified else ""

        return ProviderProfile(
            id=str(info["id"]),
            email=email.strip().lower(),
            username=info.get("login") or "",
            name=info.get("name"),
            image_url=info.get("avatar_url"),
        )


def build_providers(config: OAuthSettings) -> Dict[str, OAuthProvider]:
    """Providers that have a client id configured, keyed by route name."""
    providers: Dict[str, OAuthProvider] = {}
    if config.azure_client_id:
        providers["microsoft"] = MicrosoftProvider(
            config.azure_client_id,
            config.azure_client_secret,
            config.azure_tenant_id,
            timeout=config.timeout_seconds,
        )
    if config.github_client_id:
        providers["github"] = GitHubProvider(
            config.github_client_id,
            config.github_client_secret,
            timeout=config.timeout_seconds,
        )
    return providers


oauth_providers = build_providers(settings.oauth)


def get_oauth_providers() -> Dict[str, OAuthProvider]:
    """FastAPI dependency returning the configured providers."""
    return oauth_providers
