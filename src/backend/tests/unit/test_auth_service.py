"""
Unit tests for authentication service.

Tests:
- Password login by username or email
- Verification codes (issue, replace, consume, expire)
- Onboarding duplicate checks and default role
- Password reset ends every session
"""

from datetime import timedelta

import pytest
from sqlalchemy import select

from api.services.auth_service import AuthService
from core.forms import FormValidationError
from core.security import hash_code
from db.enums import AuditAction, VerificationType
from db.models import AuditLog, User, UserSession, Verification, utc_now
from tests.factories import create_user


class TestLogin:
    """Tests for AuthService.login."""

    @pytest.mark.asyncio
    async def test_login_by_username_or_email(self, db_session, seeded, mock_request):
        user = await create_user(db_session, "user", password="correct horse")

        by_name = await AuthService.login(db_session, user.username, "correct horse", False, mock_request)
        by_email = await AuthService.login(db_session, user.email, "correct horse", True, mock_request)

        assert by_name.user_id == user.id
        assert by_email.user_id == user.id
        assert by_email.expiration_date > by_name.expiration_date

    @pytest.mark.asyncio
    async def test_wrong_password_is_form_level_error(self, db_session, seeded, mock_request):
        user = await create_user(db_session, "user", password="correct horse")

        with pytest.raises(FormValidationError) as exc_info:
            await AuthService.login(db_session, user.username, "nope", False, mock_request)

        assert exc_info.value.errors == {"": ["Invalid username or password"]}

    @pytest.mark.asyncio
    async def test_unknown_user_gets_same_error(self, db_session, seeded, mock_request):
        with pytest.raises(FormValidationError) as exc_info:
            await AuthService.login(db_session, "ghost", "whatever", False, mock_request)

        assert exc_info.value.errors == {"": ["Invalid username or password"]}

    @pytest.mark.asyncio
    async def test_login_is_audited(self, db_session, seeded, mock_request):
        user = await create_user(db_session, "user", password="correct horse")

        await AuthService.login(db_session, user.username, "correct horse", False, mock_request)

        result = await db_session.execute(
            select(AuditLog).where(AuditLog.action == AuditAction.LOGIN.value)
        )
        log = result.scalar_one()
        assert log.user_id == user.id
        assert log.ip_address == "127.0.0.1"


class TestVerification:
    """Tests for the one-time-code flow."""

    @pytest.mark.asyncio
    async def test_code_verifies_once(self, db_session):
        code = await AuthService.prepare_verification(
            db_session, "new@example.com", VerificationType.ONBOARDING
        )

        await AuthService.verify_code(
            db_session, "new@example.com", VerificationType.ONBOARDING, code
        )

        with pytest.raises(FormValidationError) as exc_info:
            await AuthService.verify_code(
                db_session, "new@example.com", VerificationType.ONBOARDING, code
            )
        assert exc_info.value.errors == {"code": ["Invalid code"]}

    @pytest.mark.asyncio
    async def test_new_code_replaces_old(self, db_session):
        await AuthService.prepare_verification(db_session, "a@example.com", VerificationType.ONBOARDING)
        await AuthService.prepare_verification(db_session, "a@example.com", VerificationType.ONBOARDING)

        result = await db_session.execute(
            select(Verification).where(Verification.target == "a@example.com")
        )
        assert len(result.scalars().all()) == 1

    @pytest.mark.asyncio
    async def test_code_is_scoped_to_type(self, db_session):
        code = await AuthService.prepare_verification(
            db_session, "jdoe", VerificationType.RESET_PASSWORD
        )

        with pytest.raises(FormValidationError):
            await AuthService.verify_code(db_session, "jdoe", VerificationType.ONBOARDING, code)

    @pytest.mark.asyncio
    async def test_expired_code_rejected(self, db_session):
        db_session.add(
            Verification(
                target="late@example.com",
                type=VerificationType.ONBOARDING.value,
                code_hash=hash_code("111111"),
                expires_at=utc_now() - timedelta(minutes=1),
            )
        )
        await db_session.commit()

        with pytest.raises(FormValidationError):
            await AuthService.verify_code(
                db_session, "late@example.com", VerificationType.ONBOARDING, "111111"
            )


class TestOnboarding:
    """Tests for AuthService.onboard."""

    @pytest.mark.asyncio
    async def test_creates_user_with_default_role(self, db_session, seeded):
        session = await AuthService.onboard(
            db_session,
            email="fresh@example.com",
            username="fresh",
            name="Fresh Hire",
            password="secret1",
            remember=False,
        )

        user = await db_session.get(User, session.user_id)
        assert user.username == "fresh"
        assert [role.name for role in user.roles] == ["user"]

    @pytest.mark.asyncio
    async def test_duplicate_username(self, db_session, seeded):
        existing = await create_user(db_session, "user")

        with pytest.raises(FormValidationError) as exc_info:
            await AuthService.onboard(
                db_session,
                email="another@example.com",
                username=existing.username,
                name="Copy",
                password="secret1",
                remember=False,
            )

        assert "username" in exc_info.value.errors

    @pytest.mark.asyncio
    async def test_email_available(self, db_session, seeded):
        existing = await create_user(db_session, "user")

        await AuthService.email_available(db_session, "free@example.com")
        with pytest.raises(FormValidationError) as exc_info:
            await AuthService.email_available(db_session, existing.email)

        assert exc_info.value.errors == {
            "email": ["A user already exists with this email address"]
        }


class TestResetPassword:
    @pytest.mark.asyncio
    async def test_reset_replaces_hash_and_ends_sessions(self, db_session, seeded, mock_request):
        user = await create_user(db_session, "user", password="old-pass")
        await AuthService.login(db_session, user.username, "old-pass", False, mock_request)

        await AuthService.reset_password(db_session, user.username, "new-pass", mock_request)

        result = await db_session.execute(
            select(UserSession).where(UserSession.user_id == user.id)
        )
        assert result.scalars().all() == []
        session = await AuthService.login(db_session, user.email, "new-pass", False, mock_request)
        assert session.user_id == user.id
