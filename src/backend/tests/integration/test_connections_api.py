"""
Integration tests for sign-in through GitHub.

The provider's token and API endpoints are answered in memory by the
`github` fixture, so the authorization code exchange runs for real.

Tests:
- Start: redirect to the provider carrying the state kept in the connection cookie
- Callback guards: wrong state, failed exchange, no verified email
- Linking and logging in by email, by existing link, and for a signed-in user
- Onboarding a user nobody knows yet
"""

from urllib.parse import parse_qs, urlparse

import pytest
from sqlalchemy import select

from core.sessions import CONNECTION_COOKIE
from db.models import AuditLog, Connection, User, UserSession
from tests.factories import api, create_user, form, login_as

VERIFIED = [
    {"email": "old@example.com", "primary": False, "verified": True},
    {"email": "Octo@Example.com", "primary": True, "verified": True},
]


async def _start(client, redirect_to: str = "/incidents") -> str:
    response = await client.post(api("/auth/github"), data=form(redirectTo=redirect_to))
    assert response.status_code == 303
    return parse_qs(urlparse(response.headers["location"]).query)["state"][0]


async def _callback(client, state: str, code: str = "code-1"):
    return await client.get(api("/auth/github/callback"), params={"code": code, "state": state})


async def _toast(client) -> dict:
    return (await client.get(api("/toast"))).json()


class TestProviderStart:
    @pytest.mark.asyncio
    async def test_redirects_to_github_with_state(self, client, seeded):
        response = await client.post(api("/auth/github"), data=form())

        assert response.status_code == 303
        location = urlparse(response.headers["location"])
        query = parse_qs(location.query)
        assert f"{location.netloc}{location.path}" == "github.com/login/oauth/authorize"
        assert query["client_id"] == ["test-client-id"]
        assert query["redirect_uri"][0].endswith("/api/v1/auth/github/callback")
        assert query["state"][0]
        assert CONNECTION_COOKIE in response.cookies

    @pytest.mark.asyncio
    async def test_unknown_provider_is_404(self, client, seeded):
        response = await client.post(api("/auth/gitlab"), data=form())

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_missing_csrf_is_rejected(self, client, seeded):
        response = await client.post(api("/auth/github"), data=form(csrf="forged"))

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_get_goes_back_to_login(self, client, seeded):
        response = await client.get(api("/auth/github"))

        assert response.status_code == 302
        assert response.headers["location"] == "/login"


class TestProviderCallback:
    @pytest.mark.asyncio
    async def test_wrong_state_fails_without_exchange(self, client, seeded, github):
        await _start(client)

        response = await _callback(client, "forged")

        assert response.status_code == 303
        assert response.headers["location"] == "/login"
        assert github.codes == []
        toast = await _toast(client)
        assert toast["type"] == "error"
        assert toast["title"] == "Auth Failed"

    @pytest.mark.asyncio
    async def test_callback_without_handshake_fails(self, client, seeded, github):
        response = await _callback(client, "any-state")

        assert response.status_code == 303
        assert response.headers["location"] == "/login"
        assert github.codes == []

    @pytest.mark.asyncio
    async def test_failed_exchange_fails(self, client, seeded, github):
        github.fail_exchange = True
        state = await _start(client)

        response = await _callback(client, state, code="stale")

        assert response.headers["location"] == "/login"
        assert github.codes == ["stale"]
        assert (await _toast(client))["title"] == "Auth Failed"

    @pytest.mark.asyncio
    async def test_account_without_verified_email_fails(self, client, seeded, github):
        github.emails = [{"email": "octo@example.com", "primary": True, "verified": False}]
        state = await _start(client)

        response = await _callback(client, state)

        assert response.headers["location"] == "/login"
        assert (await _toast(client))["title"] == "No email found"

    @pytest.mark.asyncio
    async def test_matching_email_links_and_logs_in(self, client, db_session, seeded, github):
        user = await create_user(db_session, "user", email="octo@example.com")
        github.emails = VERIFIED
        state = await _start(client)

        response = await _callback(client, state)

        assert response.status_code == 303
        assert response.headers["location"] == "/incidents"
        assert "session" in response.cookies
        connection = (await db_session.execute(select(Connection))).scalar_one()
        assert (connection.provider_name, connection.provider_id) == ("github", "4242")
        assert connection.user_id == user.id
        sessions = await db_session.execute(
            select(UserSession).where(UserSession.user_id == user.id)
        )
        assert len(sessions.scalars().all()) == 1
        assert (await _toast(client))["title"] == "Connected"
        audit = await db_session.execute(select(AuditLog).where(AuditLog.entity == "Connection"))
        assert audit.scalar_one().user_id == user.id

    @pytest.mark.asyncio
    async def test_linked_account_logs_owner_in(self, client, db_session, seeded, github):
        user = await create_user(db_session, "user", email="someone@example.com")
        db_session.add(Connection(provider_name="github", provider_id="4242", user_id=user.id))
        await db_session.commit()
        github.emails = VERIFIED
        state = await _start(client, redirect_to="/profile")

        response = await _callback(client, state)

        assert response.headers["location"] == "/profile"
        assert "session" in response.cookies
        connections = (await db_session.execute(select(Connection))).scalars().all()
        assert len(connections) == 1

    @pytest.mark.asyncio
    async def test_signed_in_user_connects_account(self, client, db_session, seeded, github):
        user = await create_user(db_session, "user", email="member@example.com")
        await login_as(client, db_session, user)
        github.emails = VERIFIED
        state = await _start(client)

        response = await _callback(client, state)

        assert response.headers["location"] == "/"
        connection = (await db_session.execute(select(Connection))).scalar_one()
        assert connection.user_id == user.id
        toast = await _toast(client)
        assert toast["title"] == "Connected"
        assert toast["description"] == 'Your "Octo Cat GitHub" account has been connected.'

    @pytest.mark.asyncio
    async def test_account_linked_to_someone_else_is_not_moved(
        self, client, db_session, seeded, github
    ):
        owner = await create_user(db_session, "user", email="owner@example.com")
        db_session.add(Connection(provider_name="github", provider_id="4242", user_id=owner.id))
        await db_session.commit()
        user = await create_user(db_session, "user", email="member@example.com")
        await login_as(client, db_session, user)
        github.emails = VERIFIED
        state = await _start(client)

        await _callback(client, state)

        connection = (await db_session.execute(select(Connection))).scalar_one()
        assert connection.user_id == owner.id
        toast = await _toast(client)
        assert toast["title"] == "Already Connected"
        assert toast["description"].endswith("already connected to another account.")


class TestProviderOnboarding:
    @pytest.mark.asyncio
    async def test_new_account_is_onboarded(self, client, db_session, seeded, github):
        github.emails = VERIFIED
        state = await _start(client)

        response = await _callback(client, state)

        assert response.status_code == 303
        assert response.headers["location"] == "/onboarding/github"
        assert "session" not in response.cookies

        prefilled = await client.get(api("/auth/onboarding/github"))
        assert prefilled.json() == {
            "email": "octo@example.com",
            "username": "octo_cat",
            "name": "Octo",
        }

        response = await client.post(
            api("/auth/onboarding/github"), data=form(username="octo_cat", name="Octo Cat")
        )

        assert response.status_code == 303
        assert response.headers["location"] == "/incidents"
        assert "session" in response.cookies
        user = (
            await db_session.execute(select(User).where(User.username == "octo_cat"))
        ).scalar_one()
        assert user.email == "octo@example.com"
        assert user.password_hash is None
        assert [role.name for role in user.roles] == ["user"]
        connection = (await db_session.execute(select(Connection))).scalar_one()
        assert (connection.user_id, connection.provider_id) == (user.id, "4242")

    @pytest.mark.asyncio
    async def test_taken_username_is_field_error(self, client, db_session, seeded, github):
        taken = await create_user(db_session, "user", email="first@example.com")
        github.emails = VERIFIED
        await _callback(client, await _start(client))

        response = await client.post(
            api("/auth/onboarding/github"), data=form(username=taken.username, name="Octo")
        )

        assert response.status_code == 400
        assert response.json()["result"]["error"] == {
            "username": ["A user already exists with this username"]
        }
        assert (await db_session.execute(select(Connection))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_without_provider_state_goes_to_signup(self, client, seeded):
        response = await client.get(api("/auth/onboarding/github"))

        assert response.status_code == 302
        assert response.headers["location"] == "/signup"
