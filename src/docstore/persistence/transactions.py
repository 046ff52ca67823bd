"""Unit-of-work scoping with implicit propagation to nested calls.

The active unit-of-work for each database is bound in a ``ContextVar``, so it
follows the logical execution context: a thread for blocking callers, a task
for ``async`` callers, and any worker thread entered through
``asyncio.to_thread`` (which copies the caller's context). Independent threads
and tasks never see each other's binding.

Scope rules:

- Opening a scope while one is already active for the same database joins it.
  A joined scope creates no commit or rollback boundary of its own: its work
  commits or rolls back with the outermost scope.
- The outermost scope commits when its block returns normally. On any
  exception, including ``asyncio.CancelledError``, it rolls back everything
  done since it opened and re-raises the exception unchanged.
- The connection is closed exactly once, when the outermost scope releases.

Blocking and ``async`` entry points share the open/join/release steps in
``_Scope``; they differ only in how the blocking steps are run (inline, or
in a worker thread that is awaited to completion even under cancellation).
"""

from __future__ import annotations

import asyncio
import contextvars
import sqlite3
import threading
from collections.abc import AsyncIterator, Awaitable, Callable, Iterator
from contextlib import asynccontextmanager, contextmanager
from enum import StrEnum
from typing import TYPE_CHECKING, Any, ParamSpec, TypeVar

from docstore.domain import ids
from docstore.observability.logging import get_logger
from docstore.persistence.errors import StoreIOError, TransactionScopeError

if TYPE_CHECKING:
    from docstore.persistence.database import DocumentDB, RowValue, SQLParams

T = TypeVar("T")
P = ParamSpec("P")

_ActiveState = tuple[tuple[str, "Transaction"], ...]
_ACTIVE_TRANSACTIONS: contextvars.ContextVar[_ActiveState] = contextvars.ContextVar(
    "docstore_active_transactions", default=()
)

_TRANSACTION_ID_PREFIX = "txn"


class TransactionState(StrEnum):
    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


class Transaction:
    """One open connection running one SQLite transaction.

    Statement execution is serialized, so tasks that inherit the binding
    never drive the connection concurrently.
    """

    def __init__(
        self,
        db: DocumentDB,
        conn: sqlite3.Connection,
        *,
        immediate: bool,
        logger: Any,
    ) -> None:
        self._db = db
        self._conn = conn
        self._immediate = immediate
        self._logger = logger
        self._lock = threading.RLock()
        self._state = TransactionState.OPEN
        self.transaction_id = ids.new_prefixed_id(_TRANSACTION_ID_PREFIX)

    @property
    def database(self) -> DocumentDB:
        return self._db

    @property
    def state(self) -> TransactionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is TransactionState.OPEN

    @property
    def immediate(self) -> bool:
        return self._immediate

    def __repr__(self) -> str:
        return f"Transaction({self.transaction_id!r}, state={self._state.value!r})"

    def execute(self, sql: str, params: SQLParams = (), *, operation: str) -> int:
        """Execute a statement and return the affected row count."""
        with self._lock:
            cursor = self._cursor(sql, params, operation=operation)
            return cursor.rowcount

    def query_all(
        self, sql: str, params: SQLParams = (), *, operation: str
    ) -> list[dict[str, RowValue]]:
        with self._lock:
            cursor = self._cursor(sql, params, operation=operation)
            return [_row_to_dict(row) for row in cursor.fetchall()]

    def query_one(
        self, sql: str, params: SQLParams = (), *, operation: str
    ) -> dict[str, RowValue] | None:
        with self._lock:
            cursor = self._cursor(sql, params, operation=operation)
            row = cursor.fetchone()
            return None if row is None else _row_to_dict(row)

    def _cursor(self, sql: str, params: SQLParams, *, operation: str) -> sqlite3.Cursor:
        self._ensure_open(operation)
        self._db.assert_sync_io_allowed(operation=operation)
        try:
            return self._db.execute(self._conn, sql, params, operation=operation)
        except sqlite3.IntegrityError as exc:
            raise StoreIOError(f"{operation} failed: {exc}") from exc

    def _ensure_open(self, operation: str) -> None:
        if self._state is not TransactionState.OPEN:
            raise TransactionScopeError(
                f"{operation} on {self.transaction_id} after it was {self._state.value}"
            )

    def _begin(self) -> None:
        begin_sql = "BEGIN IMMEDIATE" if self._immediate else "BEGIN"
        with self._lock:
            self._db.execute(self._conn, begin_sql, operation="begin transaction")

    def _release(self, *, commit: bool) -> None:
        with self._lock:
            self._ensure_open("commit" if commit else "rollback")
            try:
                if commit:
                    try:
                        self._db.execute(self._conn, "COMMIT", operation="commit transaction")
                    except BaseException:
                        self._rollback_after_failed_commit()
                        raise
                    self._state = TransactionState.COMMITTED
                else:
                    self._db.execute(self._conn, "ROLLBACK", operation="rollback transaction")
                    self._state = TransactionState.ROLLED_BACK
            finally:
                if self._state is TransactionState.OPEN:
                    # Closing a connection mid-transaction discards its work.
                    self._state = TransactionState.ROLLED_BACK
                self._conn.close()

    def _rollback_after_failed_commit(self) -> None:
        if not self._conn.in_transaction:
            return
        try:
            self._db.execute(self._conn, "ROLLBACK", operation="rollback transaction")
        except StoreIOError as exc:
            self._logger.warning(
                "docstore_rollback_after_commit_failure_failed",
                transaction_id=self.transaction_id,
                error=str(exc),
            )


class _Scope:
    """Open/join/release steps shared by the blocking and async entry points."""

    __slots__ = ("_db", "_immediate", "_logger")

    def __init__(self, db: DocumentDB, *, immediate: bool, logger: Any | None) -> None:
        self._db = db
        self._immediate = immediate
        self._logger = logger if logger is not None else get_logger(__name__)

    def join(self) -> Transaction | None:
        existing = current_transaction(self._db)
        if existing is not None:
            self._logger.debug(
                "docstore_transaction_joined", transaction_id=existing.transaction_id
            )
        return existing

    def open(self) -> Transaction:
        conn = self._db.connect()
        transaction = Transaction(
            self._db, conn, immediate=self._immediate, logger=self._logger
        )
        try:
            transaction._begin()
        except BaseException:
            conn.close()
            raise
        self._logger.debug(
            "docstore_transaction_opened",
            transaction_id=transaction.transaction_id,
            immediate=self._immediate,
            path=str(self._db.path),
        )
        return transaction

    def release(self, transaction: Transaction, error: BaseException | None) -> None:
        if error is None:
            transaction._release(commit=True)
            self._logger.debug(
                "docstore_transaction_committed", transaction_id=transaction.transaction_id
            )
            return
        transaction._release(commit=False)
        self._logger.info(
            "docstore_transaction_rolled_back",
            transaction_id=transaction.transaction_id,
            error_type=type(error).__name__,
        )

    @contextmanager
    def bound(self, transaction: Transaction) -> Iterator[None]:
        # Must run in the caller's context, never inside a worker thread.
        token = _ACTIVE_TRANSACTIONS.set(
            (*_ACTIVE_TRANSACTIONS.get(), (self._db.key, transaction))
        )
        try:
            yield
        finally:
            _ACTIVE_TRANSACTIONS.reset(token)


def current_transaction(db: DocumentDB) -> Transaction | None:
    """Return the unit-of-work active for ``db`` in the current context, if any."""
    for key, transaction in reversed(_ACTIVE_TRANSACTIONS.get()):
        if key == db.key and transaction.is_open:
            return transaction
    return None


@contextmanager
def transaction_scope(
    db: DocumentDB,
    *,
    immediate: bool = True,
    logger: Any | None = None,
) -> Iterator[Transaction]:
    """Open a unit-of-work for ``db``, or join the one already active.

    ``immediate`` takes the write lock at scope open; pass ``False`` for
    read-only scopes. It is ignored when joining.
    """
    scope = _Scope(db, immediate=immediate, logger=logger)
    joined = scope.join()
    if joined is not None:
        yield joined
        return

    transaction = scope.open()
    with scope.bound(transaction):
        try:
            yield transaction
        except BaseException as exc:
            scope.release(transaction, exc)
            raise
        scope.release(transaction, None)


@asynccontextmanager
async def async_transaction_scope(
    db: DocumentDB,
    *,
    immediate: bool = True,
    logger: Any | None = None,
) -> AsyncIterator[Transaction]:
    """``async`` counterpart of :func:`transaction_scope` with identical semantics.

    Store I/O runs in worker threads. Open and release are awaited to
    completion even if the task is cancelled meanwhile, so a cancelled scope
    is always rolled back and its connection closed before the cancellation
    propagates.
    """
    scope = _Scope(db, immediate=immediate, logger=logger)
    joined = scope.join()
    if joined is not None:
        yield joined
        return

    transaction, cancelled = await _run_to_completion(scope.open)
    if cancelled:
        interrupt = asyncio.CancelledError()
        await _run_to_completion(scope.release, transaction, interrupt)
        raise interrupt

    with scope.bound(transaction):
        try:
            yield transaction
        except BaseException as exc:
            await _run_to_completion(scope.release, transaction, exc)
            raise
        _, cancelled = await _run_to_completion(scope.release, transaction, None)
        if cancelled:
            raise asyncio.CancelledError()


def transactional(
    db: DocumentDB,
    block: Callable[P, T],
    /,
    *args: P.args,
    **kwargs: P.kwargs,
) -> T:
    """Run ``block`` inside a unit-of-work for ``db`` and return its result."""
    with transaction_scope(db):
        return block(*args, **kwargs)


async def co_transactional(
    db: DocumentDB,
    block: Callable[P, Awaitable[T]],
    /,
    *args: P.args,
    **kwargs: P.kwargs,
) -> T:
    """Await ``block`` inside a unit-of-work for ``db`` and return its result."""
    async with async_transaction_scope(db):
        return await block(*args, **kwargs)


async def _run_to_completion(
    func: Callable[..., T], /, *args: object
) -> tuple[T, bool]:
    """Run ``func`` in a worker thread and wait for it even through cancellation.

    Returns the result and whether a cancellation arrived while waiting; the
    caller decides when to re-raise it.
    """
    task = asyncio.ensure_future(asyncio.to_thread(func, *args))
    cancelled = False
    while not task.done():
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            if task.done() and task.cancelled():
                raise
            cancelled = True
    return task.result(), cancelled


def _row_to_dict(row: sqlite3.Row) -> dict[str, RowValue]:
    raw = dict(row)
    return {str(key): raw[key] for key in raw}


__all__ = [
    "Transaction",
    "TransactionState",
    "async_transaction_scope",
    "co_transactional",
    "current_transaction",
    "transaction_scope",
    "transactional",
]
