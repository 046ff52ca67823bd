"""Versioning and stored-item value types shared by the persistence layer."""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Generic, NoReturn, TypeVar

E = TypeVar("E")

_INITIAL_VERSION = 1


@dataclass(frozen=True, slots=True, order=True)
class Version:
    """Optimistic-lock token stored next to every document row."""

    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            _fail("Version.value", f"expected int, got {type(self.value).__name__}")
        if self.value < _INITIAL_VERSION:
            _fail("Version.value", f"must be >= {_INITIAL_VERSION}, got {self.value}")

    @classmethod
    def initial(cls) -> Version:
        return cls(_INITIAL_VERSION)

    def next(self) -> Version:
        return Version(self.value + 1)

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True, slots=True)
class StoredItem(Generic[E]):
    """An entity as read from or written to the store, with its current version.

    Unpacks as ``item, version = stored``.
    """

    item: E
    version: Version
    created_at: datetime
    modified_at: datetime

    def __post_init__(self) -> None:
        if not isinstance(self.version, Version):
            _fail("StoredItem.version", f"expected Version, got {type(self.version).__name__}")
        object.__setattr__(self, "created_at", as_utc_datetime(self.created_at, "created_at"))
        object.__setattr__(self, "modified_at", as_utc_datetime(self.modified_at, "modified_at"))

    def __iter__(self) -> Iterator[Any]:
        yield self.item
        yield self.version


@dataclass(frozen=True, slots=True)
class EntitiesWithCount(Generic[E]):
    """One page of search results plus the unpaginated match count."""

    entities: list[StoredItem[E]] = field(default_factory=list)
    count: int = 0

    def __post_init__(self) -> None:
        if isinstance(self.count, bool) or not isinstance(self.count, int) or self.count < 0:
            _fail("EntitiesWithCount.count", f"must be a non-negative int, got {self.count!r}")
        if len(self.entities) > self.count:
            _fail("EntitiesWithCount", "page cannot hold more entities than the total count")


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc_datetime(value: object, path: str) -> datetime:
    parsed: datetime
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as exc:
            _fail(path, f"invalid ISO-8601 datetime: {value!r} ({exc})")
    else:
        _fail(path, f"expected datetime or ISO-8601 string, got {type(value).__name__}")

    if parsed.tzinfo is None or parsed.utcoffset() is None:
        _fail(path, "datetime must be timezone-aware UTC")
    return parsed.astimezone(UTC)


def to_iso8601z(value: datetime) -> str:
    """Fixed-width UTC text, so lexical order in SQL equals time order."""
    normalized = as_utc_datetime(value, "datetime")
    return normalized.isoformat(timespec="microseconds").replace("+00:00", "Z")


def _fail(path: str, message: str) -> NoReturn:
    raise ValueError(f"{path}: {message}")


__all__ = [
    "EntitiesWithCount",
    "StoredItem",
    "Version",
    "as_utc_datetime",
    "to_iso8601z",
    "utc_now",
]
