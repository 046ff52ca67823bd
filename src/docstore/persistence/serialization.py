"""Entity <-> stored body conversion."""

from __future__ import annotations

import json
from collections.abc import Callable, Mapping
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

E = TypeVar("E")

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]


@runtime_checkable
class SerializationAdapter(Protocol[E]):
    """Turns an entity into the text stored in the ``data`` column and back."""

    def to_json(self, entity: E) -> str: ...

    def from_json(self, text: str) -> E: ...


class JsonSerializationAdapter(Generic[E]):
    """Adapter built from a pair of dict converters, writing canonical JSON."""

    def __init__(
        self,
        from_dict: Callable[[Mapping[str, Any]], E],
        to_dict: Callable[[E], Mapping[str, Any]],
    ) -> None:
        self._from_dict = from_dict
        self._to_dict = to_dict

    def to_json(self, entity: E) -> str:
        return canonical_json(self._to_dict(entity))

    def from_json(self, text: str) -> E:
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise ValueError(f"stored document is not valid JSON: {exc}") from exc
        if not isinstance(payload, dict):
            raise ValueError(
                f"stored document must be a JSON object, got {type(payload).__name__}"
            )
        return self._from_dict(payload)


def canonical_json(value: object) -> str:
    """Deterministic JSON for persisted documents."""

    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


__all__ = [
    "JSONScalar",
    "JSONValue",
    "JsonSerializationAdapter",
    "SerializationAdapter",
    "canonical_json",
]
