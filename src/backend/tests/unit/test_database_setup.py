"""
Unit tests for default data seeding.

Tests:
- Seeding an empty database
- Re-running the seed from a new session leaves the data unchanged
"""

import pytest
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from db.models import Counter, Permission, Role, RolePermission, User
from db.setup import ROLES, setup_database_default_data


async def _count(db: AsyncSession, model) -> int:
    return (await db.execute(select(func.count()).select_from(model))).scalar_one()


class TestSetupDatabaseDefaultData:
    @pytest.mark.asyncio
    async def test_seeds_empty_database(self, db_session):
        admin = await setup_database_default_data(db_session)

        assert admin.username == "admin"
        assert [r.name for r in admin.roles] == ["admin"]
        roles = (await db_session.execute(select(Role))).scalars().all()
        assert sorted(r.name for r in roles) == sorted(name for name, _ in ROLES)
        by_name = {r.name: r for r in roles}
        assert {(p.entity, p.access) for p in by_name["incidentAdmin"].permissions} == {
            ("incident", "any")
        }
        assert {p.access for p in by_name["user"].permissions} == {"own"}
        assert await _count(db_session, Counter) == 4

    @pytest.mark.asyncio
    async def test_second_run_from_new_session_is_idempotent(self, test_engine):
        session_maker = async_sessionmaker(
            bind=test_engine, class_=AsyncSession, expire_on_commit=False
        )
        async with session_maker() as first:
            await setup_database_default_data(first)
            counts = [
                await _count(first, model)
                for model in (Role, Permission, RolePermission, User, Counter)
            ]

        async with session_maker() as second:
            admin = await setup_database_default_data(second)
            again = [
                await _count(second, model)
                for model in (Role, Permission, RolePermission, User, Counter)
            ]

        assert again == counts
        assert [r.name for r in admin.roles] == ["admin"]
