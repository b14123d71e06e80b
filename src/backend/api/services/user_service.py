"""
Service for accounts, roles and permissions.

Roles bundle permissions (`entity:action:access`); users hold roles. Passwords
are bcrypt hashes and are only replaced when the form supplies a new one.
"""

import logging
from typing import List, Optional, Sequence, Tuple, Type, TypeVar

from fastapi import HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import SQLModel

from api.schemas.settings import UpsertPermission, UpsertRole, UpsertUser
from api.services.audit_service import AuditService
from core.decorators import critical_database_operation, transactional_database_operation
from core.forms import FormValidationError
from core.metrics import track_record_change
from core.security import hash_password
from crud.base_crud import exists, get_or_404
from crud.pagination import ListQuery, Page, SQLModelSource, filter_and_paginate
from db.enums import AuditAction
from db.models import Permission, Role, User

logger = logging.getLogger(__name__)

ModelType = TypeVar("ModelType", bound=SQLModel)


async def _load_many(
    db: AsyncSession, model: Type[ModelType], ids: Sequence[str], field: str, label: str
) -> List[ModelType]:
    """
    Raises:
        FormValidationError: Some of `ids` do not exist
    """
    if not ids:
        return []
    unique_ids = list(dict.fromkeys(ids))
    result = await db.execute(select(model).where(model.id.in_(unique_ids)))
    rows = list(result.scalars().all())
    if len(rows) != len(unique_ids):
        raise FormValidationError.single(field, f"Unknown {label}")
    return rows


class RoleService:
    """Service for roles and their permission grants."""

    @staticmethod
    @critical_database_operation("list_roles")
    async def list_roles(db: AsyncSession, query: ListQuery) -> Page[Role]:
        return await filter_and_paginate(
            SQLModelSource(db, Role),
            query,
            search_fields=("name", "description"),
            order_by=(Role.name,),
        )

    @staticmethod
    @transactional_database_operation("upsert_role")
    async def upsert_role(
        db: AsyncSession, command: UpsertRole, user_id: str, request: Optional[Request] = None
    ) -> Tuple[Role, bool]:
        role = None
        if command.intent == "edit":
            if not command.id:
                raise FormValidationError.single("id", "Role id is required")
            role = await get_or_404(db, Role, command.id, detail="Role not found")

        if await exists(
            db, Role, filters={"name": command.name}, exclude_id=role.id if role else None
        ):
            raise FormValidationError.single("name", "Role with this name already exists.")
        permissions = await _load_many(
            db, Permission, command.permission_ids, "permissionIds", "permission"
        )

        created = role is None
        if created:
            role = Role(name=command.name, description=command.description)
            db.add(role)
        else:
            role.name = command.name
            role.description = command.description
        role.permissions = permissions

        AuditService.record(
            db,
            AuditAction.CREATE if created else AuditAction.UPDATE,
            "Role",
            entity_id=role.id,
            user_id=user_id,
            request=request,
            details={"permissions": len(permissions)},
        )
        track_record_change("role", "create" if created else "update")
        return role, created

    @staticmethod
    @transactional_database_operation("delete_role")
    async def delete_role(
        db: AsyncSession, role_id: str, user_id: str, request: Optional[Request] = None
    ) -> None:
        role = await get_or_404(db, Role, role_id, detail="Role not found")
        if role.name == "admin":
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="The admin role cannot be deleted"
            )
        await db.delete(role)
        AuditService.record(
            db, AuditAction.DELETE, "Role", entity_id=role_id, user_id=user_id, request=request
        )
        track_record_change("role", "delete")


class PermissionService:
    """Service for `entity:action:access` permissions."""

    @staticmethod
    @critical_database_operation("list_permissions")
    async def list_permissions(db: AsyncSession, query: ListQuery) -> Page[Permission]:
        return await filter_and_paginate(
            SQLModelSource(db, Permission),
            query,
            search_fields=("entity", "action", "access", "description"),
            order_by=(Permission.entity, Permission.action, Permission.access),
        )

    @staticmethod
    @transactional_database_operation("upsert_permission")
    async def upsert_permission(
        db: AsyncSession,
        command: UpsertPermission,
        user_id: str,
        request: Optional[Request] = None,
    ) -> Tuple[Permission, bool]:
        permission = None
        if command.intent == "edit":
            if not command.id:
                raise FormValidationError.single("id", "Permission id is required")
            permission = await get_or_404(db, Permission, command.id, detail="Permission not found")

        key = {"entity": command.entity, "action": command.action, "access": command.access}
        if await exists(
            db, Permission, filters=key, exclude_id=permission.id if permission else None
        ):
            raise FormValidationError.single("entity", "Permission already exists.")

        created = permission is None
        if created:
            permission = Permission(**key, description=command.description)
            db.add(permission)
        else:
            for column, value in key.items():
                setattr(permission, column, value)
            permission.description = command.description

        AuditService.record(
            db,
            AuditAction.CREATE if created else AuditAction.UPDATE,
            "Permission",
            entity_id=permission.id,
            user_id=user_id,
            request=request,
            details=key,
        )
        track_record_change("permission", "create" if created else "update")
        return permission, created

    @staticmethod
    @transactional_database_operation("delete_permission")
    async def delete_permission(
        db: AsyncSession, permission_id: str, user_id: str, request: Optional[Request] = None
    ) -> None:
        permission = await get_or_404(db, Permission, permission_id, detail="Permission not found")
        await db.delete(permission)
        AuditService.record(
            db,
            AuditAction.DELETE,
            "Permission",
            entity_id=permission_id,
            user_id=user_id,
            request=request,
        )
        track_record_change("permission", "delete")


class UserService:
    """Service for user accounts managed by administrators."""

    @staticmethod
    @critical_database_operation("list_users")
    async def list_users(db: AsyncSession, query: ListQuery) -> Page[User]:
        return await filter_and_paginate(
            SQLModelSource(db, User),
            query,
            search_fields=("username", "email", "name", "roles.name"),
            order_by=(User.username,),
        )

    @staticmethod
    @transactional_database_operation("upsert_user")
    async def upsert_user(
        db: AsyncSession, command: UpsertUser, user_id: str, request: Optional[Request] = None
    ) -> Tuple[User, bool]:
        """
        Create or update an account.

        Raises:
            FormValidationError: Duplicate username or email, unknown role,
                or a new account without a password
        """
        account = None
        if command.intent == "edit":
            if not command.id:
                raise FormValidationError.single("id", "User id is required")
            account = await get_or_404(db, User, command.id, detail="User not found")
        elif not command.password:
            raise FormValidationError.single("password", "Password is required")

        exclude_id = account.id if account else None
        if await exists(db, User, filters={"username": command.username}, exclude_id=exclude_id):
            raise FormValidationError.single("username", "Username is already taken.")
        if await exists(db, User, filters={"email": command.email}, exclude_id=exclude_id):
            raise FormValidationError.single("email", "A user with this email already exists.")
        roles = await _load_many(db, Role, command.role_ids, "roleIds", "role")

        created = account is None
        if created:
            account = User(username=command.username, email=command.email, name=command.name)
            db.add(account)
        else:
            account.username = command.username
            account.email = command.email
            account.name = command.name
        if command.password:
            account.password_hash = hash_password(command.password)
        account.roles = roles

        AuditService.record(
            db,
            AuditAction.CREATE if created else AuditAction.UPDATE,
            "User",
            entity_id=account.id,
            user_id=user_id,
            request=request,
            details={
                "roles": [role.name for role in roles],
                "passwordChanged": bool(command.password),
            },
        )
        track_record_change("user", "create" if created else "update")
        return account, created

    @staticmethod
    @transactional_database_operation("delete_user")
    async def delete_user(
        db: AsyncSession, account_id: str, user_id: str, request: Optional[Request] = None
    ) -> None:
        if account_id == user_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="You cannot delete your own account"
            )
        account = await get_or_404(db, User, account_id, detail="User not found")
        await db.delete(account)
        AuditService.record(
            db, AuditAction.DELETE, "User", entity_id=account_id, user_id=user_id, request=request
        )
        track_record_change("user", "delete")
