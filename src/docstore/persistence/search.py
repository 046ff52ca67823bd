"""Predicate search over a document table, with optional total counts.

Query objects subclass :class:`SearchQuery` and override ``where_clause`` /
``where_params``; repositories with bespoke filters can instead call
:meth:`SearchRepository.get_by_predicate` directly.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Final, TypeVar

from docstore.domain.entity import Entity, EntityId
from docstore.domain.models import EntitiesWithCount, StoredItem
from docstore.persistence.crud import _COLUMNS, _BaseDao
from docstore.persistence.database import SQLParams, SQLValue
from docstore.persistence.transactions import Transaction, transaction_scope

I = TypeVar("I", bound=EntityId)  # noqa: E741
E = TypeVar("E", bound=Entity[Any])

DEFAULT_ORDER_BY: Final[str] = "created_at"

_MATCH_ALL: Final[str] = "1 = 1"


@dataclass(frozen=True, slots=True, kw_only=True)
class SearchQuery:
    """Paging and ordering for one search.

    ``order_by`` is a SQL expression over the table's columns, e.g.
    ``"json_extract(data, '$.text')"``. Rows that tie on it are ordered by id
    in the same direction.
    """

    limit: int | None = None
    offset: int = 0
    order_by: str | None = None
    order_desc: bool = False

    def __post_init__(self) -> None:
        if self.limit is not None and (isinstance(self.limit, bool) or self.limit <= 0):
            raise ValueError(f"limit must be positive, got {self.limit!r}")
        if isinstance(self.offset, bool) or self.offset < 0:
            raise ValueError(f"offset must be >= 0, got {self.offset!r}")

    def where_clause(self) -> str:
        return _MATCH_ALL

    def where_params(self) -> tuple[SQLValue, ...]:
        return ()


class SearchRepository(_BaseDao[I, E]):
    """Lists documents of one table matching a :class:`SearchQuery`."""

    def search(self, query: SearchQuery) -> list[StoredItem[E]]:
        return self.get_by_predicate(
            query.where_clause(),
            query.where_params(),
            limit=query.limit,
            offset=query.offset,
            order_by=query.order_by,
            order_desc=query.order_desc,
        )

    async def search_async(self, query: SearchQuery) -> list[StoredItem[E]]:
        return await asyncio.to_thread(self.search, query)

    def get_by_predicate(
        self,
        where: str = _MATCH_ALL,
        params: SQLParams = (),
        *,
        limit: int | None = None,
        offset: int = 0,
        order_by: str | None = None,
        order_desc: bool = False,
    ) -> list[StoredItem[E]]:
        sql, page_params = self._page_sql(
            where, params, limit=limit, offset=offset, order_by=order_by, order_desc=order_desc
        )
        with transaction_scope(self._db, immediate=False, logger=self._logger) as tx:
            rows = tx.query_all(sql, page_params, operation=f"search {self._table}")
        return [self._to_stored_item(row) for row in rows]

    def _page_sql(
        self,
        where: str,
        params: SQLParams,
        *,
        limit: int | None,
        offset: int,
        order_by: str | None,
        order_desc: bool,
        columns: str = _COLUMNS,
    ) -> tuple[str, tuple[SQLValue, ...]]:
        # SQLite only accepts OFFSET after LIMIT; -1 means unbounded.
        page_limit = -1 if limit is None else limit
        if limit is not None:
            self._validate_page(limit, offset)
        elif offset < 0:
            raise ValueError("offset must be >= 0")

        direction = "DESC" if order_desc else "ASC"
        expression = order_by if order_by else DEFAULT_ORDER_BY
        sql = (
            f"SELECT {columns} FROM {self._table} WHERE ({where}) "
            f"ORDER BY {expression} {direction}, id {direction} LIMIT ? OFFSET ?"
        )
        return sql, (*params, page_limit, offset)


class SearchRepositoryWithCount(SearchRepository[I, E]):
    """Search that also reports how many documents match in total."""

    def search_with_count(self, query: SearchQuery) -> EntitiesWithCount[E]:
        return self.get_by_predicate_with_count(
            query.where_clause(),
            query.where_params(),
            limit=query.limit,
            offset=query.offset,
            order_by=query.order_by,
            order_desc=query.order_desc,
        )

    async def search_with_count_async(self, query: SearchQuery) -> EntitiesWithCount[E]:
        return await asyncio.to_thread(self.search_with_count, query)

    def get_by_predicate_with_count(
        self,
        where: str = _MATCH_ALL,
        params: SQLParams = (),
        *,
        limit: int | None = None,
        offset: int = 0,
        order_by: str | None = None,
        order_desc: bool = False,
    ) -> EntitiesWithCount[E]:
        """One page plus the unpaginated match count.

        The count rides along on each page row; an empty page falls back to a
        separate count in the same unit-of-work, so an offset past the end
        still reports the true total.
        """
        sql, page_params = self._page_sql(
            where,
            params,
            limit=limit,
            offset=offset,
            order_by=order_by,
            order_desc=order_desc,
            columns=f"{_COLUMNS}, COUNT(*) OVER () AS total_count",
        )
        with transaction_scope(self._db, immediate=False, logger=self._logger) as tx:
            rows = tx.query_all(sql, page_params, operation=f"search_with_count {self._table}")
            if rows:
                total = int(rows[0]["total_count"])  # type: ignore[arg-type]
            else:
                total = self._count(tx, where, params)
        return EntitiesWithCount(
            entities=[self._to_stored_item(row) for row in rows],
            count=total,
        )

    def _count(self, tx: Transaction, where: str, params: SQLParams) -> int:
        row = tx.query_one(
            f"SELECT COUNT(*) AS total_count FROM {self._table} WHERE ({where})",
            tuple(params),
            operation=f"count {self._table}",
        )
        return 0 if row is None else int(row["total_count"])  # type: ignore[arg-type]


__all__ = [
    "DEFAULT_ORDER_BY",
    "SearchQuery",
    "SearchRepository",
    "SearchRepositoryWithCount",
]
