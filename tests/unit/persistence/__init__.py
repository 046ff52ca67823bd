"""Shared deterministic builders for persistence tests."""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final

from docstore.domain import AbstractEntityRoot, EntityId
from docstore.domain.models import as_utc_datetime, to_iso8601z, utc_now
from docstore.persistence import (
    CrudDao,
    DocumentDB,
    JsonSerializationAdapter,
    SearchQuery,
    SearchRepository,
    SearchRepositoryWithCount,
)
from docstore.persistence.database import SQLValue

EXAMPLE_TABLE: Final[str] = "example"
ORDER_BY_TEXT: Final[str] = "json_extract(data, '$.text')"

FIXED_NOW: Final[datetime] = datetime(2020, 10, 11, 23, 25, 0, tzinfo=UTC)


@dataclass(frozen=True, slots=True, order=True)
class ExampleId(EntityId):
    pass


@dataclass(frozen=True, eq=False)
class ExampleEntity(AbstractEntityRoot[ExampleId]):
    id: ExampleId
    text: str
    created_at: datetime
    modified_at: datetime
    more_text: str | None = None

    @classmethod
    def create(
        cls,
        text: str,
        *,
        more_text: str | None = None,
        now: datetime | None = None,
        id: ExampleId | None = None,  # noqa: A002
    ) -> ExampleEntity:
        timestamp = now if now is not None else utc_now()
        return cls(
            id=id if id is not None else ExampleId.generate(),
            text=text,
            created_at=timestamp,
            modified_at=timestamp,
            more_text=more_text,
        )

    def update_text(self, text: str, *, more_text: str | None = None) -> ExampleEntity:
        return dataclasses.replace(
            self,
            text=text,
            more_text=more_text if more_text is not None else self.more_text,
            modified_at=utc_now(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id.value,
            "text": self.text,
            "more_text": self.more_text,
            "created_at": to_iso8601z(self.created_at),
            "modified_at": to_iso8601z(self.modified_at),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> ExampleEntity:
        return cls(
            id=ExampleId(payload["id"]),
            text=payload["text"],
            more_text=payload.get("more_text"),
            created_at=as_utc_datetime(payload["created_at"], "ExampleEntity.created_at"),
            modified_at=as_utc_datetime(payload["modified_at"], "ExampleEntity.modified_at"),
        )


@dataclass(frozen=True, slots=True, kw_only=True)
class ExampleTextSearchQuery(SearchQuery):
    text: str

    def where_clause(self) -> str:
        return "json_extract(data, '$.text') LIKE ?"

    def where_params(self) -> tuple[SQLValue, ...]:
        return (f"%{self.text}%",)


class ExampleSearchRepository(SearchRepository[ExampleId, ExampleEntity]):
    def list_by_text_prefix(self, prefix: str, *, limit: int = 100) -> list[Any]:
        return self.get_by_predicate(
            "json_extract(data, '$.text') LIKE ?",
            (f"{prefix}%",),
            limit=limit,
            order_by=ORDER_BY_TEXT,
        )


def example_adapter() -> JsonSerializationAdapter[ExampleEntity]:
    return JsonSerializationAdapter(ExampleEntity.from_dict, ExampleEntity.to_dict)


def make_db(tmp_path: Path, **kwargs: Any) -> DocumentDB:
    return DocumentDB(tmp_path / "state" / "docstore.sqlite3", **kwargs)


def make_dao(db: DocumentDB, table: str = EXAMPLE_TABLE) -> CrudDao[ExampleId, ExampleEntity]:
    return CrudDao(db, table, example_adapter())


def make_search_repository(
    db: DocumentDB, table: str = EXAMPLE_TABLE
) -> ExampleSearchRepository:
    return ExampleSearchRepository(db, table, example_adapter())


def make_search_repository_with_count(
    db: DocumentDB, table: str = EXAMPLE_TABLE
) -> SearchRepositoryWithCount[ExampleId, ExampleEntity]:
    return SearchRepositoryWithCount(db, table, example_adapter())
