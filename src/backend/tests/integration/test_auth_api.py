"""
Integration tests for the login, signup and password reset flows.
"""

import re

import pytest
from sqlalchemy import select

from db.models import User, UserSession
from tests.factories import api, create_user, form

CODE_PATTERN = re.compile(r"Here's your code: (\d+)")


def _code_from(mailer) -> str:
    return CODE_PATTERN.search(mailer.sent[-1]["text"]).group(1)


class TestLogin:
    @pytest.mark.asyncio
    async def test_login_sets_session_and_follows_local_redirect(
        self, client, db_session, seeded
    ):
        user = await create_user(db_session, "user", password="correct horse")

        response = await client.post(
            api("/auth/login"),
            data=form(username=user.username.upper(), password="correct horse", redirectTo="/incidents"),
        )

        assert response.status_code == 303
        assert response.headers["location"] == "/incidents"
        assert "session" in response.cookies
        sessions = (await db_session.execute(select(UserSession))).scalars().all()
        assert [s.user_id for s in sessions] == [user.id]

    @pytest.mark.asyncio
    async def test_external_redirect_is_ignored(self, client, db_session, seeded):
        user = await create_user(db_session, "user", password="correct horse")

        response = await client.post(
            api("/auth/login"),
            data=form(
                username=user.email, password="correct horse", redirectTo="https://evil.example"
            ),
        )

        assert response.headers["location"] == "/"

    @pytest.mark.asyncio
    async def test_bad_credentials(self, client, db_session, seeded):
        await create_user(db_session, "user", password="correct horse")

        response = await client.post(
            api("/auth/login"), data=form(username="nobody", password="x")
        )

        assert response.status_code == 400
        assert response.json() == {
            "result": {"status": "error", "error": {"": ["Invalid username or password"]}}
        }

    @pytest.mark.asyncio
    async def test_honeypot_rejected(self, client, db_session, seeded):
        response = await client.post(
            api("/auth/login"),
            data=form(username="admin", password="x", name__confirm="I am a bot"),
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_logout_deletes_session(self, client, db_session, seeded):
        user = await create_user(db_session, "user", password="correct horse")
        await client.post(
            api("/auth/login"), data=form(username=user.username, password="correct horse")
        )

        response = await client.post(api("/auth/logout"), data=form())

        assert response.status_code == 303
        assert (await db_session.execute(select(UserSession))).scalars().all() == []


class TestSignupFlow:
    @pytest.mark.asyncio
    async def test_signup_verify_onboard(self, client, db_session, seeded, mailer):
        response = await client.post(
            api("/auth/signup"), data=form(email="Fresh@Example.com")
        )

        assert response.status_code == 303
        assert response.headers["location"] == (
            "/verify?type=onboarding&target=fresh%40example.com"
        )
        assert mailer.sent[-1]["to"] == "fresh@example.com"
        code = _code_from(mailer)

        response = await client.post(
            api("/auth/verify"),
            data=form(code=code, type="onboarding", target="fresh@example.com"),
        )
        assert response.status_code == 303
        assert response.headers["location"] == "/onboarding"

        response = await client.post(
            api("/auth/onboarding"),
            data=form(
                username="Fresh.Hire",
                name="Fresh Hire",
                password="secret1",
                confirmPassword="secret1",
            ),
        )

        assert response.status_code == 303
        assert "session" in response.cookies
        user = (
            await db_session.execute(select(User).where(User.username == "fresh.hire"))
        ).scalar_one()
        assert user.email == "fresh@example.com"
        assert [r.name for r in user.roles] == ["user"]

    @pytest.mark.asyncio
    async def test_wrong_code(self, client, db_session, seeded, mailer):
        await client.post(api("/auth/signup"), data=form(email="fresh@example.com"))
        wrong = "000000" if _code_from(mailer) != "000000" else "111111"

        response = await client.post(
            api("/auth/verify"),
            data=form(code=wrong, type="onboarding", target="fresh@example.com"),
        )

        assert response.status_code == 400
        assert response.json()["result"]["error"] == {"code": ["Invalid code"]}

    @pytest.mark.asyncio
    async def test_onboarding_without_verification_restarts(self, client, seeded):
        response = await client.post(
            api("/auth/onboarding"),
            data=form(username="sneaky", name="S", password="secret1", confirmPassword="secret1"),
        )

        assert response.status_code == 302
        assert response.headers["location"] == "/signup"

    @pytest.mark.asyncio
    async def test_existing_email_cannot_sign_up(self, client, db_session, seeded, mailer):
        user = await create_user(db_session, "user")

        response = await client.post(api("/auth/signup"), data=form(email=user.email))

        assert response.status_code == 400
        assert mailer.sent == []


class TestPasswordReset:
    @pytest.mark.asyncio
    async def test_forgot_verify_reset(self, client, db_session, seeded, mailer):
        user = await create_user(db_session, "user", password="old-pass")

        response = await client.post(
            api("/auth/forgot-password"), data=form(usernameOrEmail=user.email)
        )
        assert response.status_code == 303
        assert mailer.sent[-1]["to"] == user.email

        response = await client.post(
            api("/auth/verify"),
            data=form(code=_code_from(mailer), type="reset-password", target=user.username),
        )
        assert response.headers["location"] == "/reset-password"

        response = await client.post(
            api("/auth/reset-password"),
            data=form(password="new-pass", confirmPassword="new-pass"),
        )

        assert response.status_code == 303
        assert response.headers["location"] == "/login"
        response = await client.post(
            api("/auth/login"), data=form(username=user.username, password="new-pass")
        )
        assert response.status_code == 303

    @pytest.mark.asyncio
    async def test_unknown_account(self, client, seeded):
        response = await client.post(
            api("/auth/forgot-password"), data=form(usernameOrEmail="ghost")
        )

        assert response.status_code == 400
        assert response.json()["result"]["error"] == {
            "usernameOrEmail": ["No user exists with this username or email"]
        }


class TestTheme:
    @pytest.mark.asyncio
    async def test_theme_defaults_to_system(self, client):
        response = await client.get(api("/theme"))

        assert response.status_code == 200
        assert response.json() == {"theme": "system"}

    @pytest.mark.asyncio
    async def test_stored_theme_is_read_back(self, client):
        response = await client.post(api("/theme"), data=form(theme="dark"))
        assert response.json() == {"theme": "dark"}

        assert (await client.get(api("/theme"))).json() == {"theme": "dark"}

        await client.post(api("/theme"), data=form(theme="system"))
        assert (await client.get(api("/theme"))).json() == {"theme": "system"}
