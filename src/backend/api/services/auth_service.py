"""
Authentication service.

Handles password login against bcrypt hashes, server-side sessions, the
one-time-code verification used by signup and password reset, account
creation after onboarding, and sign-in through a linked provider account.
"""

import logging
import re
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from fastapi import Request
from sqlalchemy import delete, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from api.services.audit_service import AuditService
from core.config import settings
from core.decorators import critical_database_operation, transactional_database_operation
from core.dependencies import get_client_ip
from core.forms import FormValidationError
from core.logging_config import AuditLogger
from core.metrics import track_auth_attempt
from core.security import (
    codes_match,
    generate_verification_code,
    hash_code,
    hash_password,
    verify_password,
)
from core.sessions import session_expiration
from crud.base_crud import exists
from db.enums import AuditAction, VerificationType
from db.models import Connection, Role, User, UserSession, Verification, utc_now
from services.oauth import ProviderProfile

logger = logging.getLogger(__name__)
audit_logger = AuditLogger("auth")

DEFAULT_ROLE = "user"
INVALID_CREDENTIALS = "Invalid username or password"


def safe_redirect(target: Optional[str], default: str = "/") -> str:
    """Only same-site absolute paths are followed after login."""
    if not target or not target.startswith("/") or target.startswith("//"):
        return default
    return target


async def find_user_by_login(db: AsyncSession, identifier: str) -> Optional[User]:
    """Look a user up by username or email, both stored lowercase."""
    result = await db.execute(
        select(User).where(or_(User.username == identifier, User.email == identifier))
    )
    return result.scalars().first()


def prefilled_username(display_name: str) -> str:
    """Provider display name reduced to a username suggestion of 3 to 20 characters."""
    return re.sub(r"[^a-zA-Z0-9]", "_", display_name).lower()[:20].ljust(3, "_")


async def _register_user(
    db: AsyncSession,
    email: str,
    username: str,
    name: str,
    password_hash: Optional[str],
    remember: bool,
    request: Optional[Request],
) -> UserSession:
    if await exists(db, User, filters={"username": username}):
        raise FormValidationError.single("username", "A user already exists with this username")
    if await exists(db, User, filters={"email": email}):
        raise FormValidationError.single(
            "email", "A user already exists with this email address"
        )

    result = await db.execute(select(Role).where(Role.name == DEFAULT_ROLE))
    role = result.scalars().first()

    user = User(
        email=email,
        username=username,
        name=name,
        password_hash=password_hash,
        roles=[role] if role is not None else [],
    )
    db.add(user)
    session = UserSession(user_id=user.id, expiration_date=session_expiration(remember))
    db.add(session)
    AuditService.record(
        db, AuditAction.REGISTER, "User", entity_id=user.id, user_id=user.id, request=request
    )
    logger.info(f"User registered | User: {user.id} | Username: {username}")
    return session


def _link_provider(
    db: AsyncSession,
    provider_name: str,
    provider_id: str,
    user_id: str,
    request: Optional[Request],
) -> Connection:
    connection = Connection(provider_name=provider_name, provider_id=provider_id, user_id=user_id)
    db.add(connection)
    AuditService.record(
        db,
        AuditAction.CREATE,
        "Connection",
        entity_id=connection.id,
        user_id=user_id,
        request=request,
        details={"provider": provider_name},
    )
    logger.info(f"Provider linked | Provider: {provider_name} | User: {user_id}")
    return connection


def _open_provider_session(
    db: AsyncSession, user_id: str, provider_name: str, request: Optional[Request]
) -> UserSession:
    session = UserSession(user_id=user_id, expiration_date=session_expiration(True))
    db.add(session)
    AuditService.record(
        db,
        AuditAction.LOGIN,
        "User",
        entity_id=user_id,
        user_id=user_id,
        request=request,
        details={"provider": provider_name},
    )
    return session


@dataclass
class ProviderSignIn:
    """
    What a provider callback resolved to.

    outcome is one of:
    - "already-connected": the signed-in user sent an account that is linked
      (`own_account` tells whether to them)
    - "connected": the account was linked; `session` is set when this also
      logged its owner in
    - "logged-in": a linked account logged its owner in
    - "onboarding": nobody owns the account or its email yet
    """

    outcome: str
    session: Optional[UserSession] = None
    own_account: bool = True


class AuthService:
    """Service for logins, sessions and verification codes."""

    @staticmethod
    @transactional_database_operation("login")
    async def login(
        db: AsyncSession,
        identifier: str,
        password: str,
        remember: bool,
        request: Optional[Request] = None,
    ) -> UserSession:
        """
        Verify credentials and open a session.

        Raises:
            FormValidationError: Unknown user or wrong password, reported on
                the form as a whole so neither case is distinguishable
        """
        ip_address = get_client_ip(request) if request is not None else None
        user = await find_user_by_login(db, identifier)
        if user is None or not verify_password(password, user.password_hash):
            track_auth_attempt("password", False)
            audit_logger.login_failed(
                identifier, ip_address, "unknown user" if user is None else "wrong password"
            )
            raise FormValidationError({"": [INVALID_CREDENTIALS]})

        session = UserSession(user_id=user.id, expiration_date=session_expiration(remember))
        db.add(session)
        AuditService.record(
            db,
            AuditAction.LOGIN,
            "User",
            entity_id=user.id,
            user_id=user.id,
            request=request,
            details={"remember": remember},
        )
        track_auth_attempt("password", True)
        logger.info(f"User logged in | User: {user.id} | IP: {ip_address}")
        return session

    @staticmethod
    @transactional_database_operation("logout")
    async def logout(
        db: AsyncSession, session_id: str, request: Optional[Request] = None
    ) -> None:
        """Delete the session row. Unknown ids are ignored."""
        session = await db.get(UserSession, session_id)
        if session is None:
            return
        user_id = session.user_id
        await db.delete(session)
        AuditService.record(
            db, AuditAction.LOGOUT, "User", entity_id=user_id, user_id=user_id, request=request
        )

    @staticmethod
    @transactional_database_operation("prepare_verification")
    async def prepare_verification(
        db: AsyncSession, target: str, type_: VerificationType
    ) -> str:
        """
        Issue a fresh one-time code for `(target, type)`, replacing any
        pending one.

        Returns:
            The plain code, to be emailed
        """
        await db.execute(
            delete(Verification).where(
                Verification.target == target, Verification.type == type_.value
            )
        )
        code = generate_verification_code()
        db.add(
            Verification(
                target=target,
                type=type_.value,
                code_hash=hash_code(code),
                expires_at=utc_now()
                + timedelta(minutes=settings.security.verification_ttl_minutes),
            )
        )
        logger.info(f"Verification prepared | Type: {type_.value} | Target: {target}")
        return code

    @staticmethod
    @transactional_database_operation("verify_code")
    async def verify_code(
        db: AsyncSession,
        target: str,
        type_: VerificationType,
        code: str,
        request: Optional[Request] = None,
    ) -> None:
        """
        Consume a valid code.

        Raises:
            FormValidationError: `code` is wrong or expired
        """
        result = await db.execute(
            select(Verification).where(
                Verification.target == target,
                Verification.type == type_.value,
                Verification.expires_at > utc_now(),
            )
        )
        verification = result.scalars().first()
        if verification is None or not codes_match(code, verification.code_hash):
            logger.info(f"Invalid verification code | Type: {type_.value} | Target: {target}")
            raise FormValidationError.single("code", "Invalid code")

        await db.delete(verification)
        AuditService.record(
            db,
            AuditAction.VERIFY_EMAIL,
            "Verification",
            entity_id=target,
            request=request,
            details={"type": type_.value},
        )

    @staticmethod
    @transactional_database_operation("signup_check")
    async def email_available(db: AsyncSession, email: str) -> None:
        """
        Raises:
            FormValidationError: An account already uses `email`
        """
        if await exists(db, User, filters={"email": email}):
            raise FormValidationError.single(
                "email", "A user already exists with this email address"
            )

    @staticmethod
    @transactional_database_operation("onboard_user")
    async def onboard(
        db: AsyncSession,
        email: str,
        username: str,
        name: str,
        password: str,
        remember: bool,
        request: Optional[Request] = None,
    ) -> UserSession:
        """
        Create the account for a verified email with the `user` role and log
        it in.

        Raises:
            FormValidationError: Username or email already taken
        """
        return await _register_user(
            db, email, username, name, hash_password(password), remember, request
        )

    @staticmethod
    @transactional_database_operation("onboard_provider_user")
    async def onboard_with_provider(
        db: AsyncSession,
        email: str,
        username: str,
        name: str,
        provider_name: str,
        provider_id: str,
        remember: bool,
        request: Optional[Request] = None,
    ) -> UserSession:
        """
        Create a password-less account linked to the provider account it was
        first seen through, and log it in.

        Raises:
            FormValidationError: Username or email already taken
        """
        session = await _register_user(db, email, username, name, None, remember, request)
        db.add(
            Connection(
                provider_name=provider_name, provider_id=provider_id, user_id=session.user_id
            )
        )
        return session

    @staticmethod
    @transactional_database_operation("provider_sign_in")
    async def provider_sign_in(
        db: AsyncSession,
        provider_name: str,
        profile: ProviderProfile,
        current_user_id: Optional[str] = None,
        request: Optional[Request] = None,
    ) -> ProviderSignIn:
        """
        Resolve a provider account to a link, a login or an onboarding.

        A signed-in user gets the account linked to them. Otherwise a linked
        account logs its owner in, and an unlinked one whose email matches a
        user is linked to that user and logs them in.
        """
        result = await db.execute(
            select(Connection).where(
                Connection.provider_name == provider_name,
                Connection.provider_id == profile.id,
            )
        )
        existing = result.scalars().first()

        if current_user_id:
            if existing is not None:
                return ProviderSignIn(
                    "already-connected", own_account=existing.user_id == current_user_id
                )
            _link_provider(db, provider_name, profile.id, current_user_id, request)
            return ProviderSignIn("connected")

        if existing is not None:
            session = _open_provider_session(db, existing.user_id, provider_name, request)
            return ProviderSignIn("logged-in", session=session)

        result = await db.execute(select(User).where(User.email == profile.email))
        user = result.scalars().first()
        if user is not None:
            _link_provider(db, provider_name, profile.id, user.id, request)
            session = _open_provider_session(db, user.id, provider_name, request)
            return ProviderSignIn("connected", session=session)

        logger.info(f"Provider account needs onboarding | Provider: {provider_name}")
        return ProviderSignIn("onboarding")

    @staticmethod
    @critical_database_operation("reset_target")
    async def reset_target(db: AsyncSession, identifier: str) -> Optional[User]:
        return await find_user_by_login(db, identifier)

    @staticmethod
    @transactional_database_operation("reset_password")
    async def reset_password(
        db: AsyncSession, username: str, password: str, request: Optional[Request] = None
    ) -> User:
        """
        Replace the password and end every session of the account.

        Raises:
            FormValidationError: The account disappeared since verification
        """
        user = await find_user_by_login(db, username)
        if user is None:
            raise FormValidationError.single("password", "Account not found")
        user.password_hash = hash_password(password)
        await db.execute(delete(UserSession).where(UserSession.user_id == user.id))
        AuditService.record(
            db,
            AuditAction.RESET_PASSWORD,
            "User",
            entity_id=user.id,
            user_id=user.id,
            request=request,
        )
        return user
