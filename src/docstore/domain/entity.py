"""Entity identity primitives.

Entities compare by identity, not content: two entities are equal when they
are instances of the same concrete class and carry equal ids. Dataclass
entities must be declared with ``eq=False`` so the dataclass machinery does
not replace the identity-based ``__eq__``/``__hash__`` inherited from
:class:`AbstractEntity`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Generic, Protocol, TypeVar, runtime_checkable

from docstore.domain import ids

I = TypeVar("I", bound="EntityId")  # noqa: E741
I_co = TypeVar("I_co", bound="EntityId", covariant=True)
_IdT = TypeVar("_IdT", bound="EntityId")


@dataclass(frozen=True, slots=True, order=True)
class EntityId:
    """Opaque, hashable id of one entity within its table.

    Subclass once per entity kind. Ids of different subclasses never compare
    equal even when their text matches. Set ``prefix`` on a subclass to have
    :meth:`generate` produce ``<prefix>-<ulid>`` values.
    """

    prefix: ClassVar[str | None] = None

    value: str

    def __post_init__(self) -> None:
        ids.validate_id_text(self.value)

    @classmethod
    def generate(cls: type[_IdT]) -> _IdT:
        if cls.prefix is None:
            return cls(ids.new_ulid())
        return cls(ids.new_prefixed_id(cls.prefix))

    @classmethod
    def parse(cls: type[_IdT], text: str) -> _IdT:
        return cls(text)

    def __str__(self) -> str:
        return self.value


@runtime_checkable
class Entity(Protocol[I_co]):
    @property
    def id(self) -> I_co: ...


@runtime_checkable
class EntityRoot(Entity[I_co], Protocol[I_co]):
    """Marker for aggregate roots: the unit that is stored as one document."""


class AbstractEntity(Generic[I]):
    """Base class giving entities identity equality on ``(type, id)``."""

    __slots__ = ()

    id: I

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if type(self) is not type(other):
            return NotImplemented
        return bool(self.id == other.id)  # type: ignore[attr-defined]

    def __hash__(self) -> int:
        return hash(self.id)


class AbstractEntityRoot(AbstractEntity[I]):
    __slots__ = ()


__all__ = [
    "AbstractEntity",
    "AbstractEntityRoot",
    "Entity",
    "EntityId",
    "EntityRoot",
]
