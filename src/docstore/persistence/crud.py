"""Create/read/update/delete access to one document table.

Each call outside a transaction scope runs in its own unit-of-work. Inside a
scope (see ``docstore.persistence.transactions``) every call joins the scope's
connection, so reads observe the scope's uncommitted writes.
"""

from __future__ import annotations

import asyncio
import sqlite3
from collections.abc import Iterable, Mapping
from typing import Any, Final, Generic, NoReturn, TypeVar

from docstore.domain.entity import Entity, EntityId
from docstore.domain.ids import validate_sql_identifier
from docstore.domain.models import StoredItem, Version, to_iso8601z, utc_now
from docstore.observability.logging import get_logger
from docstore.persistence.database import DocumentDB, RowValue
from docstore.persistence.errors import ConflictError, StoreIOError
from docstore.persistence.serialization import SerializationAdapter
from docstore.persistence.transactions import transaction_scope

I = TypeVar("I", bound=EntityId)  # noqa: E741
E = TypeVar("E", bound=Entity[Any])

_COLUMNS: Final[str] = "id, data, version, created_at, modified_at"

# Stays under SQLite's host-parameter limit on older builds.
_IN_CLAUSE_CHUNK: Final[int] = 500

_PRIMARY_KEY_CODES: Final[frozenset[int]] = frozenset(
    code
    for code in (
        getattr(sqlite3, "SQLITE_CONSTRAINT_PRIMARYKEY", None),
        getattr(sqlite3, "SQLITE_CONSTRAINT_UNIQUE", None),
    )
    if isinstance(code, int)
)


class _BaseDao(Generic[I, E]):
    def __init__(
        self,
        db: DocumentDB,
        table_name: str,
        serialization_adapter: SerializationAdapter[E],
        *,
        create_table: bool = True,
        logger: Any | None = None,
    ) -> None:
        self._db = db
        self._table = validate_sql_identifier(table_name, field="table_name")
        self._adapter = serialization_adapter
        self._logger = logger if logger is not None else get_logger(__name__)
        if create_table:
            self._db.ensure_table(self._table)

    @property
    def db(self) -> DocumentDB:
        return self._db

    @property
    def table_name(self) -> str:
        return self._table

    def _to_stored_item(self, row: Mapping[str, RowValue]) -> StoredItem[E]:
        data = row["data"]
        version = row["version"]
        if not isinstance(data, str):
            raise StoreIOError(f"{self._table}.data must be TEXT, got {type(data).__name__}")
        if isinstance(version, bool) or not isinstance(version, int):
            raise StoreIOError(
                f"{self._table}.version must be INTEGER, got {type(version).__name__}"
            )
        try:
            item = self._adapter.from_json(data)
            return StoredItem(
                item=item,
                version=Version(version),
                created_at=row["created_at"],  # type: ignore[arg-type]
                modified_at=row["modified_at"],  # type: ignore[arg-type]
            )
        except ValueError as exc:
            raise StoreIOError(
                f"unreadable document {row['id']!r} in {self._table}: {exc}"
            ) from exc

    @staticmethod
    def _validate_page(limit: int, offset: int) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        if offset < 0:
            raise ValueError("offset must be >= 0")


class CrudDao(_BaseDao[I, E]):
    """Versioned CRUD for entities of one kind stored in ``table_name``."""

    def create(self, entity: E) -> StoredItem[E]:
        entity_id = str(entity.id)
        data = self._adapter.to_json(entity)
        version = Version.initial()
        now = utc_now()
        timestamp = to_iso8601z(now)

        with transaction_scope(self._db, logger=self._logger) as tx:
            try:
                tx.execute(
                    f"INSERT INTO {self._table} ({_COLUMNS}) VALUES (?, ?, ?, ?, ?)",
                    (entity_id, data, version.value, timestamp, timestamp),
                    operation=f"create {self._table}",
                )
            except StoreIOError as exc:
                cause = exc.__cause__
                if not isinstance(cause, sqlite3.IntegrityError) or not _is_duplicate_key(cause):
                    raise
                self._logger.info(
                    "docstore_conflict", table=self._table, id=entity_id, reason="duplicate_id"
                )
                raise ConflictError(
                    f"{self._table} already holds a document with id {entity_id!r}",
                    table=self._table,
                    entity_id=entity_id,
                ) from exc

        return StoredItem(item=entity, version=version, created_at=now, modified_at=now)

    def get(self, entity_id: I) -> StoredItem[E] | None:
        with transaction_scope(self._db, immediate=False, logger=self._logger) as tx:
            row = tx.query_one(
                f"SELECT {_COLUMNS} FROM {self._table} WHERE id = ?",
                (str(entity_id),),
                operation=f"get {self._table}",
            )
        if row is None:
            return None
        return self._to_stored_item(row)

    def get_by_ids(self, entity_ids: Iterable[I]) -> list[StoredItem[E]]:
        """Return the documents that exist among ``entity_ids``, ordered by id."""
        keys = sorted({str(entity_id) for entity_id in entity_ids})
        if not keys:
            return []

        rows: list[dict[str, RowValue]] = []
        with transaction_scope(self._db, immediate=False, logger=self._logger) as tx:
            for start in range(0, len(keys), _IN_CLAUSE_CHUNK):
                chunk = keys[start : start + _IN_CLAUSE_CHUNK]
                placeholders = ", ".join("?" for _ in chunk)
                rows.extend(
                    tx.query_all(
                        f"SELECT {_COLUMNS} FROM {self._table} "
                        f"WHERE id IN ({placeholders}) ORDER BY id",
                        chunk,
                        operation=f"get_by_ids {self._table}",
                    )
                )
        return [self._to_stored_item(row) for row in rows]

    def update(self, entity: E, previous_version: Version) -> StoredItem[E]:
        """Overwrite ``entity`` if its stored version is still ``previous_version``.

        Raises ``ConflictError`` without writing anything when the stored
        version differs or the document no longer exists.
        """
        entity_id = str(entity.id)
        data = self._adapter.to_json(entity)
        version = previous_version.next()
        now = utc_now()

        with transaction_scope(self._db, logger=self._logger) as tx:
            updated = tx.execute(
                f"UPDATE {self._table} SET data = ?, version = ?, modified_at = ? "
                "WHERE id = ? AND version = ?",
                (data, version.value, to_iso8601z(now), entity_id, previous_version.value),
                operation=f"update {self._table}",
            )
            if updated == 0:
                self._raise_version_conflict(entity_id, previous_version, action="update")
            row = tx.query_one(
                f"SELECT created_at FROM {self._table} WHERE id = ?",
                (entity_id,),
                operation=f"update {self._table}",
            )

        if row is None:
            raise StoreIOError(f"{self._table} row {entity_id!r} vanished during update")
        return StoredItem(
            item=entity,
            version=version,
            created_at=row["created_at"],  # type: ignore[arg-type]
            modified_at=now,
        )

    def delete(self, entity_id: I, previous_version: Version) -> None:
        key = str(entity_id)
        with transaction_scope(self._db, logger=self._logger) as tx:
            deleted = tx.execute(
                f"DELETE FROM {self._table} WHERE id = ? AND version = ?",
                (key, previous_version.value),
                operation=f"delete {self._table}",
            )
            if deleted == 0:
                self._raise_version_conflict(key, previous_version, action="delete")

    async def create_async(self, entity: E) -> StoredItem[E]:
        return await asyncio.to_thread(self.create, entity)

    async def get_async(self, entity_id: I) -> StoredItem[E] | None:
        return await asyncio.to_thread(self.get, entity_id)

    async def get_by_ids_async(self, entity_ids: Iterable[I]) -> list[StoredItem[E]]:
        return await asyncio.to_thread(self.get_by_ids, list(entity_ids))

    async def update_async(self, entity: E, previous_version: Version) -> StoredItem[E]:
        return await asyncio.to_thread(self.update, entity, previous_version)

    async def delete_async(self, entity_id: I, previous_version: Version) -> None:
        await asyncio.to_thread(self.delete, entity_id, previous_version)

    def _raise_version_conflict(
        self, entity_id: str, previous_version: Version, *, action: str
    ) -> NoReturn:
        self._logger.info(
            "docstore_conflict",
            table=self._table,
            id=entity_id,
            reason="version_mismatch",
            action=action,
            expected_version=previous_version.value,
        )
        raise ConflictError(
            f"{action} of {self._table} {entity_id!r} expected version "
            f"{previous_version.value}, but the stored document has a different "
            "version or no longer exists",
            table=self._table,
            entity_id=entity_id,
            expected_version=previous_version.value,
        )


def _is_duplicate_key(exc: sqlite3.IntegrityError) -> bool:
    code = getattr(exc, "sqlite_errorcode", None)
    if isinstance(code, int) and code in _PRIMARY_KEY_CODES:
        return True
    return "unique constraint failed" in str(exc).lower()


__all__ = ["CrudDao"]
