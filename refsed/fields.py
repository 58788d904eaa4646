"""
The fields module parses field identifiers into field references.

A condition names the field it tests with a string such as `title`, `creator.lastName`, or `tags`.
We parse that string once, when the condition is constructed, into one of the field reference
variants below, so that the resolver and the replace engine can dispatch on the variant type
instead of re-inspecting the string.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import get_args

from refsed.records import CreatorSubfield

logger = logging.getLogger(__name__)

# Bibliographic scalar fields that records may carry. Records reject fields that do not apply to
# their item type by raising InvalidFieldError from `get_field`.
SCALAR_FIELDS: list[str] = [
    "title",
    "shortTitle",
    "abstractNote",
    "date",
    "dateAdded",
    "dateModified",
    "accessDate",
    "publicationTitle",
    "bookTitle",
    "proceedingsTitle",
    "websiteTitle",
    "blogTitle",
    "seriesTitle",
    "series",
    "journalAbbreviation",
    "publisher",
    "place",
    "edition",
    "volume",
    "issue",
    "pages",
    "numPages",
    "language",
    "DOI",
    "ISBN",
    "ISSN",
    "url",
    "callNumber",
    "archive",
    "archiveLocation",
    "libraryCatalog",
    "rights",
    "extra",
    "note",
    "university",
    "institution",
    "thesisType",
    "reportType",
    "reportNumber",
    "websiteType",
    "manuscriptType",
    "letterType",
    "presentationType",
]

# Fields holding dates. The indexed store has no substring semantics for these.
DATE_FIELDS: list[str] = ["date", "dateAdded", "dateModified", "accessDate"]

CREATOR_SUBFIELDS: tuple[CreatorSubfield, ...] = get_args(CreatorSubfield)


@dataclasses.dataclass(frozen=True)
class ScalarField:
    name: str

    def __str__(self) -> str:
        return self.name


@dataclasses.dataclass(frozen=True)
class CreatorField:
    subfield: CreatorSubfield

    def __str__(self) -> str:
        return f"creator.{self.subfield}"


@dataclasses.dataclass(frozen=True)
class TagsField:
    def __str__(self) -> str:
        return "tags"


@dataclasses.dataclass(frozen=True)
class ItemTypeField:
    def __str__(self) -> str:
        return "itemType"


@dataclasses.dataclass(frozen=True)
class CollectionField:
    def __str__(self) -> str:
        return "collection"


@dataclasses.dataclass(frozen=True)
class UnknownField:
    name: str

    def __str__(self) -> str:
        return self.name


FieldRef = ScalarField | CreatorField | TagsField | ItemTypeField | CollectionField | UnknownField

KNOWN_FIELD_IDS: list[str] = [
    *SCALAR_FIELDS,
    *[f"creator.{s}" for s in CREATOR_SUBFIELDS],
    "tags",
    "itemType",
    "collection",
]


def parse_field(field_id: str) -> FieldRef:
    if field_id in SCALAR_FIELDS:
        return ScalarField(field_id)
    if field_id.startswith("creator."):
        subfield = field_id.removeprefix("creator.")
        if subfield in CREATOR_SUBFIELDS:
            return CreatorField(subfield)  # type: ignore[arg-type]
    if field_id == "tags":
        return TagsField()
    if field_id == "itemType":
        return ItemTypeField()
    if field_id == "collection":
        return CollectionField()
    logger.debug(f"Parsed unrecognized field identifier {field_id}")
    return UnknownField(field_id)


def is_date_field(ref: FieldRef) -> bool:
    return isinstance(ref, ScalarField) and ref.name in DATE_FIELDS
