"""
Authentication and authorization dependencies for FastAPI.

Authentication reads the signed `session` cookie and resolves it to a live
`sessions` row. A request without one is redirected to the login page with a
`redirectTo` back to where it came from; a session whose user has vanished
is destroyed.

Authorization is an existence query per request (no caching, no role
hierarchy): the user must hold at least one role named in the allowed set,
or at least one role granting the requested `entity:action:access`
permission. Failures are 403s carrying a structured payload:

    {"error": "Unauthorized", "requiredRoles": [...], "message": "Unauthorized: required roles: a, b"}
"""

import ipaddress
import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple
from urllib.parse import urlencode

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import and_, delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import settings
from core.database import get_session
from core.sessions import get_session_id
from db.models import Permission, Role, User, UserSession, utc_now

logger = logging.getLogger(__name__)


class AuthenticationError(HTTPException):
    """Custom authentication error."""

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


class AuthorizationError(HTTPException):
    """403 with a payload naming what was required."""

    def __init__(self, payload: dict):
        super().__init__(status_code=status.HTTP_403_FORBIDDEN, detail=payload)
        self.payload = payload


class LoginRedirect(Exception):
    """
    Raised when a request needs a session it does not have.

    Rendered as a 302 by the application's exception handler; when
    `clear_session` is set the session cookie is deleted as well.
    """

    def __init__(self, location: str, clear_session: bool = False):
        super().__init__(location)
        self.location = location
        self.clear_session = clear_session


@dataclass(frozen=True)
class PermissionSpec:
    """Parsed `entity:action[:access]` string; `access` may list several values."""

    entity: str
    action: str
    access: Tuple[str, ...] = ()

    def as_payload(self) -> dict:
        data = {"entity": self.entity, "action": self.action}
        if self.access:
            data["access"] = list(self.access)
        return data


def parse_permission(permission: str) -> PermissionSpec:
    """
    Parse a permission string.

    Example:
        >>> parse_permission("incident:update:own,any")
        PermissionSpec(entity='incident', action='update', access=('own', 'any'))
    """
    parts = permission.split(":")
    if len(parts) not in (2, 3) or not all(parts[:2]):
        raise ValueError(f"Invalid permission string: {permission!r}")
    access: Tuple[str, ...] = ()
    if len(parts) == 3 and parts[2]:
        access = tuple(a.strip() for a in parts[2].split(",") if a.strip())
    return PermissionSpec(entity=parts[0], action=parts[1], access=access)


def login_redirect_for(request: Request) -> LoginRedirect:
    target = request.url.path
    if request.url.query:
        target = f"{target}?{request.url.query}"
    query = urlencode({"redirectTo": target})
    return LoginRedirect(f"{settings.api.login_path}?{query}")


async def get_optional_user_id(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> Optional[str]:
    """User id of the request's live session, or None.

    Raises:
        LoginRedirect: The session points at a user that no longer exists
    """
    session_id = get_session_id(request)
    if not session_id:
        return None

    result = await db.execute(
        select(UserSession.user_id).where(
            UserSession.id == session_id,
            UserSession.expiration_date > utc_now(),
        )
    )
    user_id = result.scalar_one_or_none()
    if user_id is None:
        return None

    exists = await db.execute(select(User.id).where(User.id == user_id))
    if exists.scalar_one_or_none() is None:
        logger.warning(f"Session user missing | Session: {session_id} | User: {user_id}")
        await db.execute(delete(UserSession).where(UserSession.id == session_id))
        await db.commit()
        raise LoginRedirect("/", clear_session=True)
    return user_id


async def require_user_id(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> str:
    """User id of the request's session; redirects to login without one."""
    user_id = await get_optional_user_id(request, db)
    if user_id is None:
        raise login_redirect_for(request)
    return user_id


async def require_user(
    request: Request,
    db: AsyncSession = Depends(get_session),
) -> User:
    user_id = await require_user_id(request, db)
    user = await db.get(User, user_id)
    if user is None:
        raise LoginRedirect("/", clear_session=True)
    return user


async def require_user_with_role(request: Request, db: AsyncSession, role: str) -> User:
    """The session user, if they hold `role`.

    Raises:
        LoginRedirect: No session
        AuthorizationError: The user lacks the role
    """
    user_id = await require_user_id(request, db)
    result = await db.execute(
        select(User).where(User.id == user_id, User.roles.any(Role.name == role))
    )
    user = result.scalar_one_or_none()
    if user is None:
        logger.info(f"Role check failed | User: {user_id} | Required: {role}")
        raise AuthorizationError(
            {
                "error": "Unauthorized",
                "requiredRole": role,
                "message": f"Unauthorized: required role: {role}",
            }
        )
    return user


async def require_user_with_roles(
    request: Request, db: AsyncSession, roles: Sequence[str]
) -> User:
    """The session user, if they hold at least one of `roles`."""
    user_id = await require_user_id(request, db)
    roles = list(roles)
    result = await db.execute(
        select(User).where(User.id == user_id, User.roles.any(Role.name.in_(roles)))
    )
    user = result.scalar_one_or_none()
    if user is None:
        logger.info(f"Role check failed | User: {user_id} | Required one of: {roles}")
        raise AuthorizationError(
            {
                "error": "Unauthorized",
                "requiredRoles": roles,
                "message": f"Unauthorized: required roles: {', '.join(roles)}",
            }
        )
    return user


async def require_user_with_permission(
    request: Request, db: AsyncSession, permission: str
) -> str:
    """The session user's id, if one of their roles grants `permission`."""
    user_id = await require_user_id(request, db)
    spec = parse_permission(permission)

    conditions = [Permission.entity == spec.entity, Permission.action == spec.action]
    if spec.access:
        conditions.append(Permission.access.in_(spec.access))

    result = await db.execute(
        select(User.id).where(
            User.id == user_id,
            User.roles.any(Role.permissions.any(and_(*conditions))),
        )
    )
    if result.scalar_one_or_none() is None:
        logger.info(f"Permission check failed | User: {user_id} | Required: {permission}")
        raise AuthorizationError(
            {
                "error": "Unauthorized",
                "requiredPermission": spec.as_payload(),
                "message": f"Unauthorized: required permissions: {permission}",
            }
        )
    return user_id


async def user_has_any_role(db: AsyncSession, user_id: str, roles: Sequence[str]) -> bool:
    """Non-raising role check for ownership-or-admin decisions."""
    result = await db.execute(
        select(User.id).where(User.id == user_id, User.roles.any(Role.name.in_(list(roles))))
    )
    return result.scalar_one_or_none() is not None


def require_role(role: str):
    """Dependency factory: the session user must hold `role`."""

    async def role_checker(request: Request, db: AsyncSession = Depends(get_session)) -> User:
        return await require_user_with_role(request, db, role)

    return role_checker


def require_roles(*roles: str):
    """Dependency factory: the session user must hold any of `roles`."""

    async def roles_checker(request: Request, db: AsyncSession = Depends(get_session)) -> User:
        return await require_user_with_roles(request, db, roles)

    return roles_checker


def require_permission(permission: str):
    """Dependency factory: the session user's roles must grant `permission`."""
    parse_permission(permission)

    async def permission_checker(
        request: Request, db: AsyncSession = Depends(get_session)
    ) -> str:
        return await require_user_with_permission(request, db, permission)

    return permission_checker


def get_client_ip(request: Request) -> str:
    """Client address, honouring the first X-Forwarded-For hop."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        candidate = forwarded_for.split(",")[0].strip()
        try:
            ipaddress.ip_address(candidate)
            return candidate
        except ValueError:
            pass

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


def role_names(user: User) -> List[str]:
    return [role.name for role in user.roles]


async def require_owner_or_roles(
    db: AsyncSession, user: User, owner_email: Optional[str], roles: Sequence[str]
) -> None:
    """Allow the record's owner (matched by email) or a holder of any of `roles`.

    Raises:
        AuthorizationError: Neither owner nor privileged
    """
    if owner_email and owner_email.lower() == user.email.lower():
        return
    if await user_has_any_role(db, user.id, roles):
        return
    roles = list(roles)
    logger.info(f"Ownership check failed | User: {user.id} | Owner: {owner_email}")
    raise AuthorizationError(
        {
            "error": "Unauthorized",
            "requiredRoles": roles,
            "message": f"Unauthorized: required roles: {', '.join(roles)}",
        }
    )
