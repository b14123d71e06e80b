"""
Database setup module for initializing default values.

Seeds the rows the application cannot run without:
- roles and the entity/action/access permission grid, with grants
- one serial-number counter per request type
- incident types and "Unknown" placeholders for lookup tables
- the initial administrator account

Every step is idempotent: existing rows are left untouched.
"""

import logging
import os
from typing import Dict, Iterable, List, Optional, Tuple

from dotenv import load_dotenv
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.security import hash_password
from db import (
    Counter,
    Country,
    Department,
    FamilyRelationship,
    IncidentType,
    Location,
    Organ,
    Permission,
    Role,
    SerialNumberType,
    User,
)

load_dotenv()

logger = logging.getLogger(__name__)

ROLES: List[Tuple[str, str]] = [
    ("admin", "System administrator with full access"),
    ("incidentAdmin", "Manages incident reports and officer assignments"),
    ("carPassAdmin", "Processes car pass requests"),
    ("idRequestAdmin", "Processes ID badge requests"),
    ("accessRequestAdmin", "Manages visitor access requests and check-ins"),
    ("phpAdmin", "Reviews employee profile updates"),
    ("user", "Regular staff member"),
]

PERMISSION_ENTITIES = [
    "user",
    "employee",
    "incident",
    "car-pass-request",
    "id-request",
    "access-request",
]
PERMISSION_ACTIONS = ["create", "read", "update", "delete"]
PERMISSION_ACCESS = ["own", "any"]

# role -> entities granted with "any" access
ROLE_ENTITY_GRANTS: Dict[str, List[str]] = {
    "admin": PERMISSION_ENTITIES,
    "incidentAdmin": ["incident"],
    "carPassAdmin": ["car-pass-request"],
    "idRequestAdmin": ["id-request"],
    "accessRequestAdmin": ["access-request"],
    "phpAdmin": ["employee"],
}

INCIDENT_TYPES = ["Accident", "Theft", "Fire", "Injury", "Harassment", "Other"]
RELATIONSHIPS = ["Child", "Parent", "Sibling", "Other"]
UNKNOWN = "Unknown"


class DatabaseSetup:
    """Handles default data setup."""

    def __init__(self):
        self.admin_username = os.getenv("ADMIN_USERNAME", "admin")
        self.admin_password = os.getenv("ADMIN_PASSWORD", "Admin123!@#")
        self.admin_email = os.getenv("ADMIN_EMAIL", "admin@example.com")
        self.admin_name = os.getenv("ADMIN_FULL_NAME", "System Administrator")

    async def create_roles(self, db: AsyncSession) -> Dict[str, Role]:
        logger.info("Creating default roles...")
        roles: Dict[str, Role] = {}
        for name, description in ROLES:
            result = await db.execute(select(Role).where(Role.name == name))
            role = result.scalar_one_or_none()
            if role is None:
                role = Role(name=name, description=description, permissions=[])
                db.add(role)
                logger.info(f"✅ Created role: {name}")
            roles[name] = role
        await db.flush()
        return roles

    async def create_permissions(self, db: AsyncSession) -> Dict[Tuple[str, str, str], Permission]:
        logger.info("Creating permission grid...")
        result = await db.execute(select(Permission))
        permissions = {(p.entity, p.action, p.access): p for p in result.scalars().all()}

        for entity in PERMISSION_ENTITIES:
            for action in PERMISSION_ACTIONS:
                for access in PERMISSION_ACCESS:
                    key = (entity, action, access)
                    if key in permissions:
                        continue
                    permission = Permission(
                        entity=entity,
                        action=action,
                        access=access,
                        description=f"{action.capitalize()} {access} {entity}",
                    )
                    db.add(permission)
                    permissions[key] = permission
        await db.flush()
        return permissions

    async def grant_permissions(
        self,
        roles: Dict[str, Role],
        permissions: Dict[Tuple[str, str, str], Permission],
    ) -> None:
        """Admin roles get "any" on their entities; "user" gets "own" everywhere."""

        def grant(role: Role, keys: Iterable[Tuple[str, str, str]]) -> None:
            current = {p.id for p in role.permissions}
            for key in keys:
                permission = permissions[key]
                if permission.id not in current:
                    role.permissions.append(permission)
                    current.add(permission.id)

        for role_name, entities in ROLE_ENTITY_GRANTS.items():
            grant(
                roles[role_name],
                [(e, a, "any") for e in entities for a in PERMISSION_ACTIONS],
            )
        grant(
            roles["user"],
            [(e, a, "own") for e in PERMISSION_ENTITIES for a in PERMISSION_ACTIONS],
        )

    async def create_counters(self, db: AsyncSession) -> None:
        result = await db.execute(select(Counter.type))
        existing = set(result.scalars().all())
        for serial_type in SerialNumberType:
            if serial_type.value not in existing:
                db.add(Counter(type=serial_type.value, last_counter=0))
                logger.info(f"✅ Created counter: {serial_type.value}")

    async def _ensure_named(self, db: AsyncSession, model, names: Iterable[str]) -> None:
        result = await db.execute(select(model.name))
        existing = set(result.scalars().all())
        for name in names:
            if name not in existing:
                db.add(model(name=name))

    async def create_lookups(self, db: AsyncSession) -> None:
        logger.info("Creating lookup data...")
        await self._ensure_named(db, IncidentType, INCIDENT_TYPES)
        await self._ensure_named(db, FamilyRelationship, RELATIONSHIPS)
        await self._ensure_named(db, Department, [UNKNOWN])
        await self._ensure_named(db, Location, [UNKNOWN])
        await self._ensure_named(db, Country, [UNKNOWN])
        await db.flush()

        country = (
            await db.execute(select(Country).where(Country.name == UNKNOWN))
        ).scalar_one()
        organ = (
            await db.execute(
                select(Organ).where(Organ.name == UNKNOWN, Organ.country_id == country.id)
            )
        ).scalar_one_or_none()
        if organ is None:
            db.add(Organ(name=UNKNOWN, country_id=country.id))

    async def create_admin_user(self, db: AsyncSession, admin_role: Role) -> User:
        result = await db.execute(select(User).where(User.username == self.admin_username))
        user: Optional[User] = result.scalar_one_or_none()
        if user is None:
            user = User(
                username=self.admin_username,
                email=self.admin_email.lower(),
                name=self.admin_name,
                password_hash=hash_password(self.admin_password),
                roles=[],
            )
            db.add(user)
            logger.info(f"✅ Created admin user: {self.admin_username}")
        if admin_role not in user.roles:
            user.roles.append(admin_role)
        return user

    async def run_setup(self, db: AsyncSession) -> User:
        """Seed everything and commit. Errors propagate after rollback by the caller."""
        logger.info("🚀 Database setup process started...")
        roles = await self.create_roles(db)
        permissions = await self.create_permissions(db)
        await self.grant_permissions(roles, permissions)
        await self.create_counters(db)
        await self.create_lookups(db)
        admin = await self.create_admin_user(db, roles["admin"])
        await db.commit()
        logger.info(f"✅ Admin user ready: {admin.username} ({admin.email})")
        return admin


database_setup = DatabaseSetup()


async def setup_database_default_data(db: AsyncSession) -> User:
    """
    Convenience function to setup database default data.

    Returns:
        The administrator account
    """
    return await database_setup.run_setup(db)
