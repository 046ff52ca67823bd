"""SQLite connection lifecycle, retry policy, and document table bootstrap.

``DocumentDB`` hands out configured connections and executes statements with
bounded busy retries, translating SQLite failures into the store's error
taxonomy. It holds no connection of its own: every unit-of-work opens one
connection and closes it on release (see ``docstore.persistence.transactions``).
"""

from __future__ import annotations

import asyncio
import sqlite3
import time
from collections.abc import Iterator, Mapping, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Final, NoReturn

from docstore.constants import (
    ASYNC_BLOCKING_POLICIES,
    DEFAULT_ASYNC_BLOCKING_POLICY,
    DEFAULT_BUSY_RETRY_BACKOFF_MS,
    DEFAULT_BUSY_RETRY_LIMIT,
    DEFAULT_BUSY_TIMEOUT_MS,
    AsyncBlockingPolicy,
)
from docstore.domain.ids import validate_sql_identifier
from docstore.observability.logging import get_logger
from docstore.persistence.errors import (
    StoreAsyncPolicyError,
    StoreBusyError,
    StoreCorruptionError,
    StoreIOError,
)
from docstore.persistence.transactions import transaction_scope

SQLValue = str | int | float | bytes | None
SQLParams = Sequence[SQLValue]
RowValue = str | int | float | bytes | None

_SQLITE_BUSY_CODES: Final[frozenset[int]] = frozenset(
    code
    for code in (
        getattr(sqlite3, "SQLITE_BUSY", None),
        getattr(sqlite3, "SQLITE_BUSY_RECOVERY", None),
        getattr(sqlite3, "SQLITE_BUSY_SNAPSHOT", None),
        getattr(sqlite3, "SQLITE_LOCKED", None),
        getattr(sqlite3, "SQLITE_LOCKED_SHAREDCACHE", None),
    )
    if isinstance(code, int)
)

_SQLITE_CORRUPTION_CODES: Final[frozenset[int]] = frozenset(
    code
    for code in (
        getattr(sqlite3, "SQLITE_CORRUPT", None),
        getattr(sqlite3, "SQLITE_NOTADB", None),
    )
    if isinstance(code, int)
)

_BUSY_SUBSTRINGS: Final[tuple[str, ...]] = (
    "database is locked",
    "database table is locked",
    "database schema is locked",
)

_CORRUPTION_SUBSTRINGS: Final[tuple[str, ...]] = (
    "database disk image is malformed",
    "malformed database",
    "file is not a database",
)


def document_table_statements(table_name: str) -> tuple[str, ...]:
    """DDL for one document table: id, serialized body, version, timestamps."""
    name = validate_sql_identifier(table_name, field="table_name")
    return (
        f"""
        CREATE TABLE IF NOT EXISTS {name} (
            id TEXT PRIMARY KEY,
            data TEXT NOT NULL,
            version INTEGER NOT NULL CHECK (version > 0),
            created_at TEXT NOT NULL,
            modified_at TEXT NOT NULL
        )
        """,
        f"CREATE INDEX IF NOT EXISTS idx_{name}_created_at ON {name}(created_at, id)",
    )


class DocumentDB:
    """SQLite-backed document database with bounded busy retries."""

    def __init__(
        self,
        path: str | Path,
        *,
        busy_timeout_ms: int = DEFAULT_BUSY_TIMEOUT_MS,
        busy_retry_limit: int = DEFAULT_BUSY_RETRY_LIMIT,
        busy_retry_backoff_ms: int = DEFAULT_BUSY_RETRY_BACKOFF_MS,
        async_blocking_policy: AsyncBlockingPolicy = DEFAULT_ASYNC_BLOCKING_POLICY,
        logger: Any | None = None,
    ) -> None:
        if str(path) == ":memory:" or str(path).startswith("file:"):
            raise ValueError(
                "DocumentDB needs a filesystem path; every unit-of-work opens its own "
                "connection, so in-memory databases would not be shared"
            )
        if busy_timeout_ms < 0:
            raise ValueError("busy_timeout_ms must be >= 0")
        if busy_retry_limit < 0:
            raise ValueError("busy_retry_limit must be >= 0")
        if busy_retry_backoff_ms < 0:
            raise ValueError("busy_retry_backoff_ms must be >= 0")
        if async_blocking_policy not in ASYNC_BLOCKING_POLICIES:
            allowed = ", ".join(ASYNC_BLOCKING_POLICIES)
            raise ValueError(
                f"async_blocking_policy must be one of: {allowed}; got {async_blocking_policy!r}"
            )

        self._path = Path(path).expanduser().resolve()
        self._busy_timeout_ms = busy_timeout_ms
        self._busy_retry_limit = busy_retry_limit
        self._busy_retry_backoff_ms = busy_retry_backoff_ms
        self._async_blocking_policy = async_blocking_policy
        self._logger = logger if logger is not None else get_logger(__name__)

    @classmethod
    def from_config(cls, config: Mapping[str, object], *, logger: Any | None = None) -> DocumentDB:
        """Build a database from a loaded config mapping (see ``docstore.config``)."""
        section = config.get("database")
        if not isinstance(section, Mapping):
            raise ValueError("config is missing the [database] section")
        return cls(
            str(section["path"]),
            busy_timeout_ms=int(section["busy_timeout_ms"]),  # type: ignore[call-overload]
            busy_retry_limit=int(section["busy_retry_limit"]),  # type: ignore[call-overload]
            busy_retry_backoff_ms=int(section["busy_retry_backoff_ms"]),  # type: ignore[call-overload]
            async_blocking_policy=section["async_blocking_policy"],  # type: ignore[arg-type]
            logger=logger,
        )

    @property
    def path(self) -> Path:
        return self._path

    @property
    def key(self) -> str:
        """Identity used to bind active units-of-work to this database."""
        return str(self._path)

    @property
    def async_blocking_policy(self) -> str:
        return self._async_blocking_policy

    def __repr__(self) -> str:
        return f"DocumentDB({str(self._path)!r})"

    def assert_sync_io_allowed(self, *, operation: str) -> None:
        if self._async_blocking_policy != "strict":
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        raise StoreAsyncPolicyError(
            f"{operation} is disallowed from an active event loop thread for {self._path}; "
            "use the *_async APIs or co_transactional(...) instead"
        )

    def connect(self) -> sqlite3.Connection:
        """Open a configured connection. The caller owns and must close it."""

        self.assert_sync_io_allowed(operation="connect")
        self._path.parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(
                self._path,
                timeout=self._busy_timeout_ms / 1000.0,
                isolation_level=None,
                check_same_thread=False,
            )
        except sqlite3.Error as exc:
            self._raise_actionable_error(exc, operation="connect")
        conn.row_factory = sqlite3.Row
        try:
            self._configure_connection(conn)
        except BaseException:
            conn.close()
            raise
        return conn

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        conn = self.connect()
        try:
            yield conn
        finally:
            conn.close()

    def ensure_table(self, table_name: str) -> None:
        """Create the document table and its index if they do not exist."""

        statements = document_table_statements(table_name)
        with transaction_scope(self, logger=self._logger) as tx:
            for statement in statements:
                tx.execute(statement, operation=f"create table {table_name}")
        self._logger.debug("docstore_table_ensured", table=table_name, path=str(self._path))

    async def ensure_table_async(self, table_name: str) -> None:
        await asyncio.to_thread(self.ensure_table, table_name)

    def execute(
        self,
        conn: sqlite3.Connection,
        sql: str,
        params: SQLParams = (),
        *,
        operation: str,
    ) -> sqlite3.Cursor:
        """Execute one statement with busy retries.

        ``sqlite3.IntegrityError`` is re-raised unchanged so callers can tell
        uniqueness violations apart; every other SQLite error is mapped to a
        ``StoreIOError`` subclass.
        """
        for attempt in range(self._busy_retry_limit + 1):
            try:
                return conn.execute(sql, tuple(params))
            except sqlite3.IntegrityError:
                raise
            except sqlite3.Error as exc:
                if self._is_busy_error(exc) and attempt < self._busy_retry_limit:
                    delay = (self._busy_retry_backoff_ms / 1000.0) * float(2**attempt)
                    self._logger.warning(
                        "docstore_busy_retry",
                        operation=operation,
                        attempt=attempt + 1,
                        delay_seconds=delay,
                    )
                    time.sleep(delay)
                    continue
                self._raise_actionable_error(exc, operation=operation)
        raise StoreBusyError(f"{operation} exhausted retries unexpectedly")

    def _configure_connection(self, conn: sqlite3.Connection) -> None:
        self.execute(conn, f"PRAGMA busy_timeout={self._busy_timeout_ms}", operation="pragma")
        journal_row = self.execute(conn, "PRAGMA journal_mode=WAL", operation="pragma").fetchone()
        if journal_row is None:
            raise StoreIOError("failed to configure journal_mode")
        journal_mode = str(journal_row[0]).lower()
        if journal_mode != "wal":
            raise StoreIOError(f"journal_mode must be WAL, got {journal_mode!r}")

    def _is_busy_error(self, exc: sqlite3.Error) -> bool:
        code = getattr(exc, "sqlite_errorcode", None)
        if isinstance(code, int) and code in _SQLITE_BUSY_CODES:
            return True
        message = str(exc).lower()
        return any(fragment in message for fragment in _BUSY_SUBSTRINGS)

    def _is_corruption_error(self, exc: sqlite3.Error) -> bool:
        code = getattr(exc, "sqlite_errorcode", None)
        if isinstance(code, int) and code in _SQLITE_CORRUPTION_CODES:
            return True
        message = str(exc).lower()
        return any(fragment in message for fragment in _CORRUPTION_SUBSTRINGS)

    def _raise_actionable_error(self, exc: sqlite3.Error, *, operation: str) -> NoReturn:
        if self._is_corruption_error(exc):
            raise StoreCorruptionError(f"{operation} failed for {self._path}: {exc}") from exc
        if self._is_busy_error(exc):
            raise StoreBusyError(
                f"{operation} hit SQLITE_BUSY for {self._path} after "
                f"{self._busy_retry_limit + 1} attempt(s): {exc}"
            ) from exc
        raise StoreIOError(f"{operation} failed for {self._path}: {exc}") from exc


__all__ = [
    "DocumentDB",
    "RowValue",
    "SQLParams",
    "SQLValue",
    "document_table_statements",
]
