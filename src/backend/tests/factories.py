"""
Test data factories for generating realistic test data.

Usage:
    user = UserFactory.create()
    employee = EmployeeFactory.create(email=user.email)
    access_request = AccessRequestFactory.create(requestor=employee)

Factories build unsaved rows; add them to the session in the test.
"""

import uuid
from datetime import date, datetime, timedelta
from typing import Dict, Optional, Sequence

from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.security import hash_password, sign_value
from core.sessions import session_expiration
from db.enums import IncidentSeverity, ProfileStatus
from db.models import (
    AccessRequest,
    Employee,
    Incident,
    IncidentType,
    Officer,
    Role,
    User,
    UserSession,
    Visitor,
)

CSRF_TOKEN = "test-csrf-token"


def _unique_suffix() -> str:
    """Generate a unique suffix for test data."""
    return uuid.uuid4().hex[:8]


class UserFactory:
    """Factory for creating User instances."""

    @classmethod
    def create(
        cls,
        username: Optional[str] = None,
        email: Optional[str] = None,
        name: Optional[str] = None,
        password: Optional[str] = None,
        roles: Sequence[Role] = (),
    ) -> User:
        suffix = _unique_suffix()
        if username is None:
            username = f"staff_{suffix}"
        if email is None:
            email = f"{username}@example.com"
        return User(
            username=username,
            email=email,
            name=name or username.replace("_", " ").title(),
            password_hash=hash_password(password) if password else None,
            roles=list(roles),
        )


class RoleFactory:
    """Factory for creating Role instances."""

    @classmethod
    def create(cls, name: Optional[str] = None, description: Optional[str] = None) -> Role:
        return Role(name=name or f"role_{_unique_suffix()}", description=description)


class EmployeeFactory:
    """Factory for creating Employee instances."""

    @classmethod
    def create(
        cls,
        email: Optional[str] = None,
        first_name: str = "Amina",
        family_name: str = "Tesfaye",
        profile_status: ProfileStatus = ProfileStatus.APPROVED,
        **kwargs,
    ) -> Employee:
        if email is None:
            email = f"employee_{_unique_suffix()}@example.com"
        return Employee(
            email=email,
            first_name=first_name,
            family_name=family_name,
            profile_status=profile_status,
            **kwargs,
        )


class OfficerFactory:
    @classmethod
    def create(cls, name: str = "Officer Bekele", email: Optional[str] = None) -> Officer:
        return Officer(name=name, email=email or f"officer_{_unique_suffix()}@example.com")


class IncidentFactory:
    """Factory for creating Incident instances."""

    @classmethod
    def create(
        cls,
        employee: Employee,
        incident_type: IncidentType,
        incident_number: Optional[str] = None,
        location: str = "Main gate",
        severity: IncidentSeverity = IncidentSeverity.MINOR,
        description: str = "Vehicle scraped the barrier",
    ) -> Incident:
        return Incident(
            incident_number=incident_number or f"INC-{_unique_suffix()}",
            employee_id=employee.id,
            incident_type_id=incident_type.id,
            location=location,
            severity=severity,
            description=description,
            occured_at=datetime(2026, 3, 2),
        )


class AccessRequestFactory:
    """Factory for creating AccessRequest instances."""

    @classmethod
    def create(
        cls,
        requestor: Employee,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        request_number: Optional[str] = None,
        visitors: Sequence[Visitor] = (),
    ) -> AccessRequest:
        today = date.today()
        return AccessRequest(
            request_number=request_number or f"ACR-{_unique_suffix()}",
            requestor_id=requestor.id,
            start_date=start_date or today - timedelta(days=1),
            end_date=end_date or today + timedelta(days=1),
            visitors=list(visitors),
        )


class VisitorFactory:
    """Factory for creating Visitor instances."""

    @classmethod
    def create(cls, first_name: str = "Kwame", family_name: str = "Mensah", **kwargs) -> Visitor:
        values = dict(
            telephone="+251911000000",
            organization="Partner Agency",
            whom_to_visit="Procurement",
            destination="Building C",
        )
        values.update(kwargs)
        return Visitor(first_name=first_name, family_name=family_name, **values)


# ============================================================================
# Persistence and session helpers
# ============================================================================


async def get_role(db: AsyncSession, name: str) -> Role:
    result = await db.execute(select(Role).where(Role.name == name))
    return result.scalar_one()


async def create_user(
    db: AsyncSession,
    *role_names: str,
    email: Optional[str] = None,
    password: Optional[str] = None,
) -> User:
    """Persist a user holding the named (already seeded) roles."""
    roles = [await get_role(db, name) for name in role_names]
    user = UserFactory.create(email=email, password=password, roles=roles)
    db.add(user)
    await db.commit()
    return user


async def login_as(http: AsyncClient, db: AsyncSession, user: User) -> UserSession:
    """Open a session row for `user` and put its signed cookie on the client."""
    session = UserSession(user_id=user.id, expiration_date=session_expiration(False))
    db.add(session)
    await db.commit()
    http.cookies.set(settings.security.session_cookie_name, sign_value({"sid": session.id}))
    return session


def api(path: str) -> str:
    return f"{settings.api.api_v1_prefix}{path}"


def form(**fields) -> Dict[str, object]:
    """Form body carrying the CSRF token that the test client's cookie holds."""
    return {settings.security.csrf_field: CSRF_TOKEN, **fields}
