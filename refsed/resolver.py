"""
The resolver module extracts the values a condition tests from a record and tests them.

Each field kind has its own strategy:

- Scalar fields are tested as a single value. Empty values are not tested, except that the reserved
  empty-check regexes match them.
- Creator subfields are tested creator by creator, stopping at the first creator that matches.
- Tags are tested name by name, stopping at the first tag that matches.
- The item type is resolved to its canonical name and tested as a scalar.
- Collections are tested by membership: the pattern is a collection ID.

Unrecognized fields and fields that a record does not carry never match, and never raise.
"""

from __future__ import annotations

import dataclasses
import logging

from refsed.condition_parser import Condition
from refsed.fields import (
    CollectionField,
    CreatorField,
    ItemTypeField,
    ScalarField,
    TagsField,
    UnknownField,
)
from refsed.matcher import is_empty_check, test
from refsed.records import InvalidFieldError, Record, item_type_name

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class MatchDetail:
    field: str
    value: str
    # -1 when a position is not meaningful, such as for tag matches.
    match_index: int
    match_length: int


def match_field(record: Record, condition: Condition) -> MatchDetail | None:
    """Test one condition's field on one record. Returns the match detail, or None for no match."""
    ref = condition.ref
    if isinstance(ref, ScalarField):
        try:
            value = record.get_field(ref.name)
        except InvalidFieldError as e:
            logger.debug(f"Skipping field {ref.name} on record {record.id}: {e}")
            return None
        return _match_scalar(condition, value)
    if isinstance(ref, CreatorField):
        return _match_creators(record, condition, ref)
    if isinstance(ref, TagsField):
        return _match_tags(record, condition)
    if isinstance(ref, ItemTypeField):
        return _match_scalar(condition, _resolve_item_type(record))
    if isinstance(ref, CollectionField):
        return _match_collection(record, condition)
    if isinstance(ref, UnknownField):
        logger.debug(f"Skipping unrecognized field {ref.name} on record {record.id}")
        return None
    raise AssertionError(f"Unhandled field reference {ref!r}")  # pragma: no cover


def _matches_empty(condition: Condition) -> bool:
    return condition.pattern_type == "regex" and is_empty_check(condition.pattern)


def _match_scalar(condition: Condition, value: str | None) -> MatchDetail | None:
    value = value or ""
    if not value:
        if _matches_empty(condition):
            return MatchDetail(condition.field, value, 0, 0)
        return None
    outcome = test(value, condition.pattern, condition.pattern_type, condition.case_sensitive)
    if not outcome.matched:
        return None
    return MatchDetail(condition.field, value, outcome.match_index, outcome.match_length)


def _match_creators(record: Record, condition: Condition, ref: CreatorField) -> MatchDetail | None:
    creators = record.get_creators()
    if not creators:
        logger.debug(f"Record {record.id} has no creators, skipping {condition.field}")
        return None
    # One match detail per field, not per creator: stop at the first creator that matches.
    for creator in creators:
        detail = _match_scalar(condition, creator.get(ref.subfield))
        if detail is not None:
            return detail
    return None


def _match_tags(record: Record, condition: Condition) -> MatchDetail | None:
    for tag in record.get_tags():
        outcome = test(tag, condition.pattern, condition.pattern_type, condition.case_sensitive)
        if outcome.matched:
            return MatchDetail(condition.field, tag, -1, -1)
    return None


def _resolve_item_type(record: Record) -> str:
    name = item_type_name(record.item_type_id)
    if name is not None:
        return name
    try:
        return record.get_field("itemType")
    except InvalidFieldError:
        logger.debug(f"Record {record.id} has no resolvable item type")
        return ""


def _match_collection(record: Record, condition: Condition) -> MatchDetail | None:
    try:
        collection_id = int(condition.pattern.strip())
    except ValueError:
        logger.debug(f"Collection pattern {condition.pattern} is not a collection ID, skipping")
        return None
    if collection_id not in record.get_collections():
        return None
    return MatchDetail(condition.field, f"collection:{collection_id}", 0, len(str(collection_id)))
