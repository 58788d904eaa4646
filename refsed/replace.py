"""
The replace module applies replacements to record fields.

Replacement happens in two steps. `preview_fields` computes the changes a replacement would make to
a record without touching it, and `commit` writes a list of changes to a record and saves it.
`process_batch` runs both steps over many records, isolating each record's failures from the rest
of the batch.

Creators are always replaced as a whole list. A change to a creator field carries JSON snapshots of
the entire creator list before and after the replacement.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from collections.abc import Callable, Sequence

from refsed.fields import CreatorField, ScalarField, parse_field
from refsed.matcher import PatternType, compile_pattern, validate_pattern
from refsed.records import InvalidFieldError, Record, dump_creators, parse_creators
from refsed.replacement import ReplacementSpec, compile_replacement

logger = logging.getLogger(__name__)

NO_CHANGES_MESSAGE = "No changes needed"
SAVED_MESSAGE = "Saved successfully"


@dataclasses.dataclass(frozen=True)
class ReplaceResult:
    result: str
    replacements: int


@dataclasses.dataclass(frozen=True)
class FieldChange:
    field: str
    # For creator fields, these are JSON snapshots of the whole creator list.
    original: str
    replaced: str
    replacements: int = 0


@dataclasses.dataclass(frozen=True)
class CommitResult:
    success: bool
    changes: list[FieldChange]
    message: str


@dataclasses.dataclass(frozen=True)
class BatchError:
    record_id: int
    error: str


@dataclasses.dataclass
class BatchResult:
    modified: int = 0
    skipped: int = 0
    errors: list[BatchError] = dataclasses.field(default_factory=list)


@dataclasses.dataclass(frozen=True)
class ReplaceProgress:
    current: int
    total: int
    record_id: int


def apply_replace(
    value: str | None,
    search: str,
    replacement: ReplacementSpec,
    *,
    pattern_type: PatternType = "regex",
    case_sensitive: bool = False,
) -> ReplaceResult:
    """
    Replaces every occurrence of `search` in `value`.

    With the regex pattern type, `search` is a regex and `replacement` may use placeholders. The
    replacement count is the number of matches of `search` in the original value. With every other
    pattern type, `search` and a string `replacement` are literals and the search is case
    sensitive.
    """
    value = value if value is not None else ""

    if pattern_type == "regex":
        rx = compile_pattern(search, "regex", case_sensitive)
        # Count on the original value: the replacement text itself may contain matches.
        replacements = sum(1 for _ in rx.finditer(value))
        return ReplaceResult(rx.sub(compile_replacement(replacement), value), replacements)

    if not search:
        return ReplaceResult(value, 0)
    replacements = value.count(search)
    if callable(replacement):
        return ReplaceResult(re.sub(re.escape(search), replacement, value), replacements)
    return ReplaceResult(replacement.join(value.split(search)), replacements)


def preview_fields(
    record: Record,
    search: str,
    replacement: ReplacementSpec,
    *,
    fields: Sequence[str],
    pattern_type: PatternType = "regex",
    case_sensitive: bool = False,
) -> list[FieldChange]:
    """Computes the changes a replacement would make to the given fields. Does not modify the record."""
    changes: list[FieldChange] = []
    for field in fields:
        ref = parse_field(field)

        if isinstance(ref, CreatorField):
            creators = record.get_creators()
            if not creators:
                continue
            modified = list(creators)
            replacements = 0
            for i, creator in enumerate(creators):
                value = creator.get(ref.subfield)
                if not value:
                    continue
                r = apply_replace(
                    value,
                    search,
                    replacement,
                    pattern_type=pattern_type,
                    case_sensitive=case_sensitive,
                )
                if r.result != value:
                    modified[i] = creator.with_value(ref.subfield, r.result)
                    replacements += r.replacements
            if modified != list(creators):
                changes.append(
                    FieldChange(field, dump_creators(creators), dump_creators(modified), replacements)
                )
            continue

        if isinstance(ref, ScalarField):
            try:
                original = record.get_field(ref.name)
            except InvalidFieldError as e:
                logger.debug(f"Skipping field {field} on record {record.id}: {e}")
                continue
            r = apply_replace(
                original,
                search,
                replacement,
                pattern_type=pattern_type,
                case_sensitive=case_sensitive,
            )
            if r.result != (original or ""):
                changes.append(FieldChange(field, original or "", r.result, r.replacements))
            continue

        logger.debug(f"Skipping field {field} on record {record.id}: field is not replaceable")

    return changes


def commit(record: Record, changes: Sequence[FieldChange]) -> CommitResult:
    """
    Writes the changes to the record and saves it once. A failed save is reported through the
    result, along with the changes that were attempted.
    """
    if not changes:
        return CommitResult(False, [], NO_CHANGES_MESSAGE)

    for change in changes:
        if isinstance(parse_field(change.field), CreatorField):
            record.set_creators(parse_creators(change.replaced))
        else:
            record.set_field(change.field, change.replaced)

    try:
        record.save()
    except Exception as e:
        logger.warning(f"Failed to save record {record.id}: {e}")
        return CommitResult(False, list(changes), str(e))
    logger.debug(f"Saved {len(changes)} field changes to record {record.id}")
    return CommitResult(True, list(changes), SAVED_MESSAGE)


def process_batch(
    records: Sequence[Record],
    search: str,
    replacement: ReplacementSpec,
    *,
    fields: Sequence[str],
    pattern_type: PatternType = "regex",
    case_sensitive: bool = False,
    progress: Callable[[ReplaceProgress], None] | None = None,
) -> BatchResult:
    """
    Replaces over every record, in order. Each record ends up counted exactly once: as modified, as
    skipped (no changes were needed), or as an error. A failing record does not stop the batch.
    """
    # Fail the whole batch before touching any record if the pattern is bad.
    validate_pattern(search, pattern_type)
    if pattern_type == "regex":
        replacement = compile_replacement(replacement)

    result = BatchResult()
    for i, record in enumerate(records, start=1):
        if progress is not None:
            progress(ReplaceProgress(current=i, total=len(records), record_id=record.id))
        try:
            changes = preview_fields(
                record,
                search,
                replacement,
                fields=fields,
                pattern_type=pattern_type,
                case_sensitive=case_sensitive,
            )
            cr = commit(record, changes)
        except Exception as e:
            logger.warning(f"Failed to replace on record {record.id}: {e}")
            result.errors.append(BatchError(record.id, str(e)))
            continue
        if cr.success:
            result.modified += 1
        elif not cr.changes:
            result.skipped += 1
        else:
            result.errors.append(BatchError(record.id, cr.message))

    logger.info(
        f"Replaced over {len(records)} records: {result.modified} modified, "
        f"{result.skipped} skipped, {len(result.errors)} errors"
    )
    return result
