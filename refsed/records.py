"""
The records module defines the record model that the search and replace engines operate on, along
with the protocols that a record store must implement.

The engines never create or delete records. They read fields off of records, and request whole
value replacement (a field, or the entire creator list) followed by a save.
"""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Sequence
from typing import Any, Literal, Protocol

from refsed.common import RefsedError

CreatorSubfield = Literal["firstName", "lastName", "fullName"]


class InvalidFieldError(RefsedError):
    pass


@dataclasses.dataclass(frozen=True)
class Creator:
    first_name: str = ""
    last_name: str = ""
    # Single-field name (institutions, mononyms). Takes precedence in the display name when set.
    full_name: str = ""
    creator_type: str = "author"

    @property
    def display_name(self) -> str:
        if self.full_name:
            return self.full_name
        return f"{self.first_name} {self.last_name}".strip()

    def get(self, subfield: CreatorSubfield) -> str:
        if subfield == "firstName":
            return self.first_name
        if subfield == "lastName":
            return self.last_name
        return self.display_name

    def with_value(self, subfield: CreatorSubfield, value: str) -> Creator:
        if subfield == "firstName":
            return dataclasses.replace(self, first_name=value)
        if subfield == "lastName":
            return dataclasses.replace(self, last_name=value)
        return dataclasses.replace(self, full_name=value)

    def dump(self) -> dict[str, str]:
        return {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "fullName": self.full_name,
            "creatorType": self.creator_type,
        }

    @classmethod
    def parse(cls, data: dict[str, Any]) -> Creator:
        return Creator(
            first_name=data.get("firstName", "") or "",
            last_name=data.get("lastName", "") or "",
            full_name=data.get("fullName", "") or "",
            creator_type=data.get("creatorType", "author") or "author",
        )


def dump_creators(creators: Sequence[Creator]) -> str:
    """Serialize a creator list into the snapshot format stored on creator field changes."""
    return json.dumps([c.dump() for c in creators], ensure_ascii=False)


def parse_creators(snapshot: str) -> tuple[Creator, ...]:
    return tuple(Creator.parse(d) for d in json.loads(snapshot))


class Record(Protocol):
    id: int
    key: str
    library_id: int
    item_type_id: int | None

    def get_field(self, name: str) -> str: ...

    def set_field(self, name: str, value: str) -> None: ...

    def get_creators(self) -> tuple[Creator, ...]: ...

    def set_creators(self, creators: Sequence[Creator]) -> None: ...

    def get_tags(self) -> list[str]: ...

    def get_collections(self) -> list[int]: ...

    def save(self) -> None: ...


StoreOperator = Literal["contains", "is"]


class RecordStore(Protocol):
    def query_by_condition(
        self,
        field: str,
        operator: StoreOperator,
        term: str,
        library_id: int | None = None,
    ) -> list[int]: ...

    def list_record_ids(self, library_id: int | None = None) -> list[int]: ...

    def load_records(self, ids: Sequence[int]) -> Sequence[Record]: ...


# Canonical item type names. A record's item_type_id is the 1-based position in this list.
ITEM_TYPES: list[str] = [
    "artwork",
    "attachment",
    "audioRecording",
    "bill",
    "blogPost",
    "book",
    "bookSection",
    "case",
    "computerProgram",
    "conferencePaper",
    "dataset",
    "dictionaryEntry",
    "document",
    "email",
    "encyclopediaArticle",
    "film",
    "forumPost",
    "hearing",
    "instantMessage",
    "interview",
    "journalArticle",
    "letter",
    "magazineArticle",
    "manuscript",
    "map",
    "newspaperArticle",
    "note",
    "patent",
    "podcast",
    "preprint",
    "presentation",
    "radioBroadcast",
    "report",
    "standard",
    "statute",
    "thesis",
    "tvBroadcast",
    "videoRecording",
    "webpage",
]


def item_type_name(item_type_id: int | None) -> str | None:
    if item_type_id is None or not 1 <= item_type_id <= len(ITEM_TYPES):
        return None
    return ITEM_TYPES[item_type_id - 1]


def item_type_id(name: str) -> int | None:
    try:
        return ITEM_TYPES.index(name) + 1
    except ValueError:
        return None
