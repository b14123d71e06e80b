"""
Unit tests for the list query helper.

Tests:
- Query string parsing (defaults, clamping, pageSize=all)
- Page arithmetic against an in-memory data source
- Search and fixed filters against the SQLAlchemy source
"""

import math
from typing import Any, List, Optional, Sequence

import pytest

from crud.pagination import (
    Criteria,
    ListQuery,
    SQLModelSource,
    filter_and_paginate,
)
from db.models import Department


class ListSource:
    """DataSource over a Python list; records the criteria it was given."""

    def __init__(self, rows: List[Any]):
        self.rows = rows
        self.seen: List[Criteria] = []

    async def count(self, criteria: Criteria) -> int:
        self.seen.append(criteria)
        return len(self.rows)

    async def find_many(
        self,
        criteria: Criteria,
        *,
        order_by: Sequence[Any] = (),
        take: Optional[int] = None,
        skip: Optional[int] = None,
    ) -> List[Any]:
        start = skip or 0
        end = None if take is None else start + take
        return self.rows[start:end]


class TestListQueryParsing:
    """Tests for ListQuery.from_params."""

    def test_defaults(self):
        query = ListQuery.from_params({})

        assert query.search_term is None
        assert query.page == 1
        assert query.page_size == 10

    def test_explicit_values(self):
        query = ListQuery.from_params({"search": "gate", "page": "3", "pageSize": "25"})

        assert query.search_term == "gate"
        assert query.page == 3
        assert query.page_size == 25
        assert query.skip == 50
        assert query.take == 25

    @pytest.mark.parametrize("value", ["all", "ALL", " All "])
    def test_page_size_all_disables_paging(self, value):
        query = ListQuery.from_params({"pageSize": value, "page": "4"})

        assert query.page_size is None
        assert query.is_paged is False
        assert query.skip is None

    @pytest.mark.parametrize("page", ["0", "-2", "abc"])
    def test_invalid_page_falls_back_to_first(self, page):
        assert ListQuery.from_params({"page": page}).page == 1

    @pytest.mark.parametrize("size", ["0", "-5", "ten"])
    def test_invalid_page_size_uses_default(self, size):
        assert ListQuery.from_params({"pageSize": size}, default_page_size=20).page_size == 20

    def test_empty_search_means_no_filter(self):
        assert ListQuery.from_params({"search": ""}).search_term is None


class TestFilterAndPaginate:
    """Tests for page arithmetic."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("total", [0, 1, 9, 10, 11, 25])
    @pytest.mark.parametrize("page_size", [1, 3, 10])
    async def test_total_pages_and_page_length(self, total, page_size):
        """Every page holds min(pageSize, remaining) rows; later pages are empty."""
        rows = list(range(total))
        total_pages = math.ceil(total / page_size)

        for page in range(1, total_pages + 2):
            result = await filter_and_paginate(
                ListSource(rows),
                ListQuery(page=page, page_size=page_size),
                search_fields=("name",),
            )
            expected = max(0, min(page_size, total - (page - 1) * page_size))
            assert result.total_pages == total_pages
            assert result.current_page == page
            assert len(result.data) == expected

    @pytest.mark.asyncio
    async def test_all_returns_every_row_on_one_page(self):
        rows = list(range(37))

        result = await filter_and_paginate(
            ListSource(rows), ListQuery(page=5, page_size=None), search_fields=("name",)
        )

        assert result.total_pages == 1
        assert result.data == rows
        assert result.current_page == 5

    @pytest.mark.asyncio
    async def test_search_is_passed_with_fixed_filter(self):
        source = ListSource([])

        await filter_and_paginate(
            source,
            ListQuery(search_term="abc"),
            search_fields=("name", "code"),
            where="fixed",
        )

        criteria = source.seen[0]
        assert criteria.fixed == "fixed"
        assert criteria.search.term == "abc"
        assert criteria.search.fields == ("name", "code")

    @pytest.mark.asyncio
    async def test_no_search_without_term(self):
        source = ListSource([])

        await filter_and_paginate(source, ListQuery(), search_fields=("name",))

        assert source.seen[0].search is None


class TestSQLModelSource:
    """filter_and_paginate against a real table."""

    @pytest.mark.asyncio
    async def test_search_is_case_insensitive_contains(self, db_session):
        for name in ("Finance", "Human Resources", "Security Operations", "Legal"):
            db_session.add(Department(name=name))
        await db_session.commit()

        page = await filter_and_paginate(
            SQLModelSource(db_session, Department),
            ListQuery(search_term="RES"),
            search_fields=("name",),
            order_by=(Department.name,),
        )

        assert [d.name for d in page.data] == ["Human Resources"]
        assert page.total_items == 1

    @pytest.mark.asyncio
    async def test_like_wildcards_are_literal(self, db_session):
        db_session.add(Department(name="Ops_North"))
        db_session.add(Department(name="OpsXNorth"))
        await db_session.commit()

        page = await filter_and_paginate(
            SQLModelSource(db_session, Department),
            ListQuery(search_term="s_N"),
            search_fields=("name",),
        )

        assert [d.name for d in page.data] == ["Ops_North"]

    @pytest.mark.asyncio
    async def test_fixed_filter_and_order(self, db_session):
        for name in ("Alpha", "Bravo", "Charlie", "Delta"):
            db_session.add(Department(name=name, code="X" if name != "Delta" else "Y"))
        await db_session.commit()

        page = await filter_and_paginate(
            SQLModelSource(db_session, Department),
            ListQuery(page=2, page_size=2),
            search_fields=("name",),
            where=Department.code == "X",
            order_by=(Department.name.desc(),),
        )

        assert page.total_pages == 2
        assert [d.name for d in page.data] == ["Alpha"]
