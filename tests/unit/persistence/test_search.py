"""Search paging, ordering, and total counts."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from docstore.domain import EntitiesWithCount
from docstore.persistence import SearchQuery

from . import (
    ORDER_BY_TEXT,
    ExampleEntity,
    ExampleTextSearchQuery,
    make_dao,
    make_db,
    make_search_repository,
    make_search_repository_with_count,
)

if TYPE_CHECKING:
    from pathlib import Path

    from docstore.domain import StoredItem
    from docstore.persistence import DocumentDB


def _texts(items: list[StoredItem[ExampleEntity]]) -> list[str]:
    return [stored.item.text for stored in items]


def _seed(tmp_path: Path, *texts: str) -> DocumentDB:
    db = make_db(tmp_path)
    dao = make_dao(db)
    for text in texts:
        dao.create(ExampleEntity.create(text))
    return db


def test_search_orders_by_expression_ascending_and_descending(tmp_path: Path) -> None:
    db = _seed(tmp_path, "1", "2", "3")
    repo = make_search_repository(db)

    ascending = repo.search(SearchQuery(order_by=ORDER_BY_TEXT))
    descending = repo.search(SearchQuery(order_by=ORDER_BY_TEXT, order_desc=True))

    assert _texts(ascending) == ["1", "2", "3"]
    assert _texts(descending) == ["3", "2", "1"]


def test_search_defaults_to_creation_order_with_id_tiebreak(tmp_path: Path) -> None:
    db = _seed(tmp_path, "c", "a", "b")
    repo = make_search_repository(db)

    found = repo.search(SearchQuery())

    assert len(found) == 3
    keys = [(stored.created_at, stored.item.id.value) for stored in found]
    assert keys == sorted(keys)


def test_search_pages_with_limit_and_offset(tmp_path: Path) -> None:
    db = _seed(tmp_path, "1", "2", "3", "4")
    repo = make_search_repository(db)

    first_page = repo.search(SearchQuery(limit=2, order_by=ORDER_BY_TEXT))
    second_page = repo.search(SearchQuery(limit=2, offset=2, order_by=ORDER_BY_TEXT))
    tail = repo.search(SearchQuery(offset=3, order_by=ORDER_BY_TEXT))

    assert _texts(first_page) == ["1", "2"]
    assert _texts(second_page) == ["3", "4"]
    assert _texts(tail) == ["4"]


def test_search_with_count_reports_total_beyond_page(tmp_path: Path) -> None:
    db = _seed(tmp_path, "1", "2", "3")
    repo = make_search_repository_with_count(db)

    page = repo.search_with_count(SearchQuery(limit=2, order_by=ORDER_BY_TEXT))

    assert isinstance(page, EntitiesWithCount)
    assert _texts(page.entities) == ["1", "2"]
    assert page.count == 3


def test_search_with_count_past_the_end_still_counts(tmp_path: Path) -> None:
    db = _seed(tmp_path, "1", "2", "3")
    repo = make_search_repository_with_count(db)

    page = repo.search_with_count(SearchQuery(limit=10, offset=1000))

    assert page.entities == []
    assert page.count == 3


def test_search_with_count_on_empty_table(tmp_path: Path) -> None:
    repo = make_search_repository_with_count(make_db(tmp_path))

    page = repo.search_with_count(SearchQuery())

    assert page.entities == []
    assert page.count == 0


def test_text_query_filters_before_counting(tmp_path: Path) -> None:
    db = _seed(tmp_path, "apple pie", "apple tart", "banana bread", "crab apple")
    repo = make_search_repository_with_count(db)

    page = repo.search_with_count(
        ExampleTextSearchQuery(text="apple", limit=2, order_by=ORDER_BY_TEXT)
    )

    assert _texts(page.entities) == ["apple pie", "apple tart"]
    assert page.count == 3
    assert _texts(repo.search(ExampleTextSearchQuery(text="bread"))) == ["banana bread"]
    assert repo.search(ExampleTextSearchQuery(text="kiwi")) == []


def test_repository_predicate_helper(tmp_path: Path) -> None:
    db = _seed(tmp_path, "apple pie", "crab apple", "apple tart")
    repo = make_search_repository(db)

    assert _texts(repo.list_by_text_prefix("apple")) == ["apple pie", "apple tart"]
    assert _texts(repo.list_by_text_prefix("apple", limit=1)) == ["apple pie"]


@pytest.mark.parametrize(
    ("limit", "offset"),
    [(0, 0), (-1, 0), (None, -1), (1, -5)],
)
def test_search_query_rejects_invalid_paging(limit: int | None, offset: int) -> None:
    with pytest.raises(ValueError):
        SearchQuery(limit=limit, offset=offset)


def test_large_limit_returns_every_match(tmp_path: Path) -> None:
    db = _seed(tmp_path, "1", "2", "3")
    repo = make_search_repository_with_count(db)

    page = repo.search_with_count(SearchQuery(limit=20_000, order_by=ORDER_BY_TEXT))

    assert _texts(page.entities) == ["1", "2", "3"]
    assert page.count == 3


@pytest.mark.asyncio
async def test_async_search_mirrors(tmp_path: Path) -> None:
    db = _seed(tmp_path, "1", "2", "3")
    repo = make_search_repository_with_count(db)

    found = await repo.search_async(SearchQuery(order_by=ORDER_BY_TEXT, order_desc=True))
    page = await repo.search_with_count_async(SearchQuery(limit=1, order_by=ORDER_BY_TEXT))

    assert _texts(found) == ["3", "2", "1"]
    assert _texts(page.entities) == ["1"]
    assert page.count == 3
