"""
Unit tests for visitor reconciliation and the check-in window.
"""

from datetime import date

import pytest
from fastapi import HTTPException

from api.schemas.access_request import VisitorFieldSet
from api.services.access_request_service import check_in_window, reconcile_visitors
from db.models import AccessRequest
from tests.factories import VisitorFactory


def _row(**kwargs) -> VisitorFieldSet:
    values = dict(
        first_name="Kwame",
        family_name="Mensah",
        telephone="+251911000000",
        organization="Partner Agency",
        whom_to_visit="Procurement",
        destination="Building C",
    )
    values.update(kwargs)
    return VisitorFieldSet(**values)


class TestReconcileVisitors:
    def test_update_add_and_remove(self):
        kept = VisitorFactory.create(id="v1", first_name="Old")
        dropped = VisitorFactory.create(id="v2")
        visitors = [kept, dropped]

        counts = reconcile_visitors(
            visitors, [_row(id="v1", first_name="New"), _row(first_name="Fresh")]
        )

        assert counts == (1, 1, 1)
        assert kept.first_name == "New"
        assert dropped not in visitors
        assert [v.first_name for v in visitors] == ["New", "Fresh"]

    def test_foreign_ids_are_ignored(self):
        visitors = [VisitorFactory.create(id="v1")]

        counts = reconcile_visitors(visitors, [_row(id="elsewhere")])

        assert counts == (0, 0, 1)
        assert visitors == []

    def test_empty_submission_removes_all(self):
        visitors = [VisitorFactory.create(id="v1"), VisitorFactory.create(id="v2")]

        assert reconcile_visitors(visitors, []) == (0, 0, 2)
        assert visitors == []


class TestCheckInWindow:
    def _request(self) -> AccessRequest:
        return AccessRequest(
            request_number="ACR-000001",
            requestor_id="e1",
            start_date=date(2026, 5, 10),
            end_date=date(2026, 5, 12),
        )

    @pytest.mark.parametrize("day", [date(2026, 5, 10), date(2026, 5, 11), date(2026, 5, 12)])
    def test_inside_window(self, day):
        check_in_window(self._request(), day)

    @pytest.mark.parametrize("day", [date(2026, 5, 9), date(2026, 5, 13)])
    def test_outside_window_is_forbidden(self, day):
        with pytest.raises(HTTPException) as exc_info:
            check_in_window(self._request(), day)

        assert exc_info.value.status_code == 403
        assert exc_info.value.detail == "Check-in is only allowed from 2026-05-10 to 2026-05-12"
