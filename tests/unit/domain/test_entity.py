"""Identity semantics of entity ids and entities."""

from __future__ import annotations

from dataclasses import dataclass

import pytest

from docstore.domain import AbstractEntity, AbstractEntityRoot, Entity, EntityId, EntityRoot
from docstore.domain import ids


@dataclass(frozen=True, slots=True, order=True)
class NoteId(EntityId):
    prefix = "note"


@dataclass(frozen=True, slots=True, order=True)
class TagId(EntityId):
    pass


@dataclass(frozen=True, eq=False)
class Note(AbstractEntityRoot[NoteId]):
    id: NoteId
    text: str


@dataclass(frozen=True, eq=False)
class OtherNote(AbstractEntity[NoteId]):
    id: NoteId
    text: str


def test_generated_ids_use_declared_prefix() -> None:
    note_id = NoteId.generate()
    assert note_id.value.startswith("note-")
    assert len(note_id.value) == len("note-") + ids.ULID_LENGTH
    assert str(note_id) == note_id.value

    tag_id = TagId.generate()
    assert len(tag_id.value) == ids.ULID_LENGTH
    assert set(tag_id.value) <= set(ids.ULID_ALPHABET)


def test_ids_compare_by_kind_and_value() -> None:
    assert NoteId("a") == NoteId.parse("a")
    assert hash(NoteId("a")) == hash(NoteId("a"))
    assert NoteId("a") != NoteId("b")
    assert NoteId("a") != TagId("a")
    assert NoteId("a") < NoteId("b")


def test_id_rejects_blank_text() -> None:
    with pytest.raises(ValueError, match="entity id"):
        NoteId("")


def test_entities_equal_by_id_not_content() -> None:
    note_id = NoteId.generate()
    first = Note(id=note_id, text="One")
    second = Note(id=note_id, text="Two")

    assert first == second
    assert hash(first) == hash(second)
    assert len({first, second}) == 1
    assert first != Note(id=NoteId.generate(), text="One")


def test_entities_of_different_kinds_never_equal() -> None:
    note_id = NoteId.generate()
    assert Note(id=note_id, text="One") != OtherNote(id=note_id, text="One")


def test_entities_satisfy_entity_protocols() -> None:
    note = Note(id=NoteId.generate(), text="One")
    assert isinstance(note, Entity)
    assert isinstance(note, EntityRoot)
