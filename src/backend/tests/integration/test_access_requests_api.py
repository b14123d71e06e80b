"""
Integration tests for access requests and visitor check-in/out.
"""

from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy import select

from db.models import AccessRequest, Employee, VisitorLog, utc_now
from tests.factories import (
    AccessRequestFactory,
    EmployeeFactory,
    VisitorFactory,
    api,
    create_user,
    form,
    login_as,
)


@pytest_asyncio.fixture
async def requestor(db_session, seeded):
    user = await create_user(db_session, "user", email="host@example.com")
    employee = EmployeeFactory.create(email=user.email)
    db_session.add(employee)
    await db_session.commit()
    return user, employee


def _visitor_fields(index: int, **values):
    defaults = dict(
        firstName="Kwame",
        familyName="Mensah",
        telephone="+251911000000",
        organization="Partner Agency",
        whomToVisit="Procurement",
        destination="Building C",
    )
    defaults.update(values)
    return {f"visitors[{index}].{key}": value for key, value in defaults.items()}


async def _persist_request(db_session, employee: Employee, start, end) -> AccessRequest:
    access_request = AccessRequestFactory.create(
        requestor=employee,
        start_date=start,
        end_date=end,
        visitors=[VisitorFactory.create()],
    )
    db_session.add(access_request)
    await db_session.commit()
    return access_request


class TestAccessRequestEditor:
    @pytest.mark.asyncio
    async def test_add_and_edit_visitors(self, client, db_session, requestor):
        user, employee = requestor
        await login_as(client, db_session, user)
        today = utc_now().date()

        response = await client.post(
            api("/access-requests"),
            data=form(
                intent="add",
                startDate=today.isoformat(),
                endDate=(today + timedelta(days=2)).isoformat(),
                **_visitor_fields(0),
                **_visitor_fields(1, firstName="Ama"),
            ),
        )

        assert response.status_code == 303
        assert response.headers["location"] == "/profile/access-requests"
        access_request = (await db_session.execute(select(AccessRequest))).scalar_one()
        assert access_request.request_number == "ACR-000001"
        assert access_request.requestor_id == employee.id
        assert sorted(v.first_name for v in access_request.visitors) == ["Ama", "Kwame"]

        kept = next(v for v in access_request.visitors if v.first_name == "Ama")
        response = await client.post(
            api("/access-requests"),
            data=form(
                intent="edit",
                id=access_request.id,
                startDate=today.isoformat(),
                endDate=today.isoformat(),
                **_visitor_fields(0, id=kept.id, firstName="Ama Serwa"),
            ),
        )

        assert response.status_code == 303
        await db_session.refresh(access_request)
        assert [v.first_name for v in access_request.visitors] == ["Ama Serwa"]
        assert access_request.end_date == today

    @pytest.mark.asyncio
    async def test_end_before_start_is_rejected(self, client, db_session, requestor):
        user, _ = requestor
        await login_as(client, db_session, user)

        response = await client.post(
            api("/access-requests"),
            data=form(intent="add", startDate="2026-06-10", endDate="2026-06-01"),
        )

        assert response.status_code == 400
        assert response.json()["result"]["error"]["endDate"] == [
            "End date cannot be earlier than start date"
        ]

    @pytest.mark.asyncio
    async def test_other_users_request_is_forbidden(self, client, db_session, requestor):
        _, employee = requestor
        today = utc_now().date()
        access_request = await _persist_request(db_session, employee, today, today)
        stranger = await create_user(db_session, "user")
        await login_as(client, db_session, stranger)

        response = await client.get(api(f"/access-requests/{access_request.id}"))

        assert response.status_code == 403


class TestVisitorCheckInOut:
    @pytest.mark.asyncio
    async def test_check_in_then_out(self, client, db_session, requestor):
        _, employee = requestor
        today = utc_now().date()
        access_request = await _persist_request(db_session, employee, today, today)
        visitor = access_request.visitors[0]
        guard = await create_user(db_session, "accessRequestAdmin")
        await login_as(client, db_session, guard)

        response = await client.post(
            api("/access-requests"),
            data=form(
                intent="check-in", id=access_request.id, visitorId=visitor.id, badgeNumber="B-17"
            ),
        )

        assert response.status_code == 303
        assert response.headers["location"] == f"/access-requests/{access_request.id}"
        log = (await db_session.execute(select(VisitorLog))).scalar_one()
        assert log.badge_number == "B-17"
        assert log.check_out_time is None

        response = await client.post(
            api("/access-requests"),
            data=form(intent="check-out", id=access_request.id, visitorId=visitor.id),
        )

        assert response.status_code == 303
        await db_session.refresh(log)
        assert log.check_out_time is not None

        detail = await client.get(api(f"/access-requests/{access_request.id}"))
        logs = detail.json()["visitors"][0]["logs"]
        assert logs[0]["badgeNumber"] == "B-17"
        assert logs[0]["checkOutTime"].endswith("Z")

    @pytest.mark.asyncio
    async def test_check_in_outside_dates_is_forbidden(self, client, db_session, requestor):
        _, employee = requestor
        tomorrow = utc_now().date() + timedelta(days=1)
        access_request = await _persist_request(
            db_session, employee, tomorrow, tomorrow + timedelta(days=3)
        )
        guard = await create_user(db_session, "accessRequestAdmin")
        await login_as(client, db_session, guard)

        response = await client.post(
            api("/access-requests"),
            data=form(
                intent="check-in",
                id=access_request.id,
                visitorId=access_request.visitors[0].id,
                badgeNumber="B-1",
            ),
        )

        assert response.status_code == 403
        assert (await db_session.execute(select(VisitorLog))).scalars().all() == []

    @pytest.mark.asyncio
    async def test_check_out_without_check_in_is_400(self, client, db_session, requestor):
        _, employee = requestor
        today = utc_now().date()
        access_request = await _persist_request(db_session, employee, today, today)
        guard = await create_user(db_session, "accessRequestAdmin")
        await login_as(client, db_session, guard)

        response = await client.post(
            api("/access-requests"),
            data=form(
                intent="check-out", id=access_request.id, visitorId=access_request.visitors[0].id
            ),
        )

        assert response.status_code == 400
        assert response.json()["detail"] == "No active check-in found for today"

    @pytest.mark.asyncio
    async def test_requestor_cannot_check_in(self, client, db_session, requestor):
        user, employee = requestor
        today = utc_now().date()
        access_request = await _persist_request(db_session, employee, today, today)
        await login_as(client, db_session, user)

        response = await client.post(
            api("/access-requests"),
            data=form(
                intent="check-in",
                id=access_request.id,
                visitorId=access_request.visitors[0].id,
                badgeNumber="B-2",
            ),
        )

        assert response.status_code == 403
