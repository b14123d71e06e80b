"""
Integration tests for the settings editors.

Tests:
- Lookup add / edit / delete with duplicate checks
- Scoped uniqueness (organ per country, floor per location)
- Role, permission and user administration
"""

import pytest
from sqlalchemy import select

from core.security import verify_password
from db.models import Country, Department, Floor, Location, Officer, Role, User
from tests.factories import api, create_user, form, login_as


async def _admin_client(client, db_session):
    admin = await create_user(db_session, "admin")
    await login_as(client, db_session, admin)
    return admin


async def _unknown_country(db_session) -> Country:
    result = await db_session.execute(select(Country).where(Country.name == "Unknown"))
    return result.scalar_one()


class TestLookups:
    @pytest.mark.asyncio
    async def test_add_edit_delete_department(self, client, db_session, seeded):
        await _admin_client(client, db_session)

        response = await client.post(
            api("/settings/departments"), data=form(intent="add", name="Finance", code="FIN")
        )
        assert response.status_code == 303
        assert response.headers["location"] == "/settings/departments"
        department = (
            await db_session.execute(select(Department).where(Department.name == "Finance"))
        ).scalar_one()

        response = await client.post(
            api("/settings/departments"),
            data=form(intent="edit", id=department.id, name="Finance & Budget", code="FIN"),
        )
        assert response.status_code == 303
        assert department.name == "Finance & Budget"

        response = await client.post(
            api("/settings/departments"), data=form(intent="delete", id=department.id)
        )
        assert response.status_code == 303
        assert await db_session.get(Department, department.id) is None

    @pytest.mark.asyncio
    async def test_duplicate_organ_in_same_country(self, client, db_session, seeded):
        await _admin_client(client, db_session)
        country = await _unknown_country(db_session)

        response = await client.post(
            api("/settings/organs"),
            data=form(intent="add", name="Unknown", countryId=country.id),
        )

        assert response.status_code == 400
        assert response.json()["result"]["error"] == {
            "name": ["Organ with this name already exists in the selected country."]
        }

    @pytest.mark.asyncio
    async def test_same_organ_name_in_other_country(self, client, db_session, seeded):
        await _admin_client(client, db_session)
        other = Country(name="Ethiopia", code="ET")
        db_session.add(other)
        await db_session.commit()

        response = await client.post(
            api("/settings/organs"),
            data=form(intent="add", name="Unknown", countryId=other.id),
        )

        assert response.status_code == 303

    @pytest.mark.asyncio
    async def test_unknown_reference_is_field_error(self, client, db_session, seeded):
        await _admin_client(client, db_session)

        response = await client.post(
            api("/settings/organs"),
            data=form(intent="add", name="Commission", countryId="missing"),
        )

        assert response.status_code == 400
        assert "countryId" in response.json()["result"]["error"]

    @pytest.mark.asyncio
    async def test_floors_filtered_by_location(self, client, db_session, seeded):
        await _admin_client(client, db_session)
        main = Location(name="Main Building")
        annex = Location(name="Annex")
        db_session.add_all([main, annex])
        await db_session.flush()
        db_session.add_all(
            [
                Floor(name="Ground", location_id=main.id),
                Floor(name="First", location_id=main.id),
                Floor(name="Ground", location_id=annex.id),
            ]
        )
        await db_session.commit()

        response = await client.get(
            api("/settings/floors"), params={"locationId": main.id, "pageSize": "all"}
        )

        assert response.status_code == 200
        assert sorted(f["name"] for f in response.json()["data"]) == ["First", "Ground"]

    @pytest.mark.asyncio
    async def test_duplicate_officer_email(self, client, db_session, seeded):
        await _admin_client(client, db_session)
        db_session.add(Officer(name="Existing", email="guard@example.com"))
        await db_session.commit()

        response = await client.post(
            api("/settings/officers"),
            data=form(intent="add", name="Another", email="Guard@Example.com"),
        )

        assert response.status_code == 400
        assert response.json()["result"]["error"] == {
            "email": ["Officer with this email already exists."]
        }

    @pytest.mark.asyncio
    async def test_non_admin_cannot_edit(self, client, db_session, seeded):
        user = await create_user(db_session, "user")
        await login_as(client, db_session, user)

        response = await client.post(
            api("/settings/departments"), data=form(intent="add", name="Shadow IT")
        )

        assert response.status_code == 403


class TestAccessControl:
    @pytest.mark.asyncio
    async def test_create_user_with_roles(self, client, db_session, seeded):
        await _admin_client(client, db_session)
        role = (await db_session.execute(select(Role).where(Role.name == "phpAdmin"))).scalar_one()

        response = await client.post(
            api("/settings/users"),
            data=form(
                intent="add",
                username="Reviewer",
                email="Reviewer@Example.com",
                name="Profile Reviewer",
                password="secret12",
                roleIds=role.id,
            ),
        )

        assert response.status_code == 303
        user = (
            await db_session.execute(select(User).where(User.username == "reviewer"))
        ).scalar_one()
        assert user.email == "reviewer@example.com"
        assert [r.name for r in user.roles] == ["phpAdmin"]
        assert verify_password("secret12", user.password_hash)

    @pytest.mark.asyncio
    async def test_new_user_requires_password(self, client, db_session, seeded):
        await _admin_client(client, db_session)

        response = await client.post(
            api("/settings/users"),
            data=form(intent="add", username="nopass", email="nopass@example.com"),
        )

        assert response.status_code == 400
        assert response.json()["result"]["error"] == {"password": ["Password is required"]}

    @pytest.mark.asyncio
    async def test_admin_role_cannot_be_deleted(self, client, db_session, seeded):
        await _admin_client(client, db_session)
        role = (await db_session.execute(select(Role).where(Role.name == "admin"))).scalar_one()

        response = await client.post(api("/settings/roles"), data=form(intent="delete", id=role.id))

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_cannot_delete_own_account(self, client, db_session, seeded):
        admin = await _admin_client(client, db_session)

        response = await client.post(api("/settings/users"), data=form(intent="delete", id=admin.id))

        assert response.status_code == 400
        assert response.json()["detail"] == "You cannot delete your own account"

    @pytest.mark.asyncio
    async def test_seeded_admin_can_be_saved_through_user_form(self, client, db_session, seeded):
        await _admin_client(client, db_session)
        role = (await db_session.execute(select(Role).where(Role.name == "admin"))).scalar_one()

        response = await client.post(
            api("/settings/users"),
            data=form(
                intent="edit",
                id=seeded.id,
                username=seeded.username,
                email=seeded.email,
                name="Renamed Administrator",
                roleIds=role.id,
            ),
        )

        assert response.status_code == 303
        await db_session.refresh(seeded)
        assert seeded.name == "Renamed Administrator"
        assert seeded.email == "admin@example.com"
