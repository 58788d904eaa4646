"""
The runner module executes searches and replacements against the configured library, printing the
results for a human and asking for confirmation before writing changes.
"""

from __future__ import annotations

import logging
import shlex
import time
from collections.abc import Sequence

import click

from refsed.common import uniq
from refsed.condition_parser import Condition
from refsed.config import Config
from refsed.fields import CreatorField, parse_field
from refsed.library import Library
from refsed.matcher import PatternType, validate_pattern
from refsed.records import Record, parse_creators
from refsed.replace import BatchResult, FieldChange, ReplaceProgress, preview_fields, process_batch
from refsed.search import FilterProgress, RefineProgress, SearchResult, search_records

logger = logging.getLogger(__name__)


def _log_progress(p: FilterProgress | RefineProgress | ReplaceProgress) -> None:
    if isinstance(p, FilterProgress):
        logger.debug(f"Filter phase: {p.count if p.count is not None else 'fetching all'} records")
    elif isinstance(p, RefineProgress):
        if p.current == p.total or p.current % 1000 == 0:
            logger.debug(f"Refine phase: {p.current}/{p.total} records")
    else:
        logger.debug(f"Replacing on record {p.record_id} ({p.current}/{p.total})")


def _search(c: Config, conditions: Sequence[Condition], library_id: int | None) -> list[SearchResult]:
    logger.debug(f"Searching for {' '.join(shlex.quote(str(x)) for x in conditions)}")
    start = time.time()
    results = search_records(
        Library(c.library_path),
        conditions,
        library_id=library_id,
        progress=_log_progress,
        prefilter_field_threshold=c.prefilter_field_threshold,
    )
    logger.debug(f"Search found {len(results)} records in {time.time() - start:.3f}s")
    return results


def _highlight(value: str, index: int, length: int) -> str:
    if index < 0 or length <= 0:
        return value
    return (
        value[:index]
        + click.style(value[index : index + length], fg="green", bold=True)
        + value[index + length :]
    )


def execute_search(
    c: Config,
    conditions: Sequence[Condition],
    *,
    library_id: int | None = None,
) -> list[SearchResult]:
    results = _search(c, conditions, library_id)
    if not results:
        click.secho("No matching records found", dim=True, italic=True)
        return results

    for r in results:
        click.secho(r.record_key, underline=True)
        for d in r.match_details:
            click.echo(f"      {d.field}: ", nl=False)
            click.echo(_highlight(d.value, d.match_index, d.match_length))
    click.echo()
    click.echo(f"Found {len(results)} matching records.")
    return results


def _display_value(change: FieldChange, snapshot: str) -> str:
    if isinstance(parse_field(change.field), CreatorField):
        return "; ".join(x.display_name for x in parse_creators(snapshot))
    return snapshot


def execute_replace(
    c: Config,
    conditions: Sequence[Condition],
    search: str,
    replacement: str,
    *,
    fields: Sequence[str] | None = None,
    pattern_type: PatternType = "regex",
    case_sensitive: bool = False,
    library_id: int | None = None,
    dry_run: bool = False,
    confirm_yes: bool = False,
    enter_number_to_confirm_above_count: int | None = None,
) -> BatchResult | None:
    """
    Replace `search` with `replacement` in the records matching the conditions. Without explicit
    fields, the fields tested by the positive conditions are replaced.
    """
    if enter_number_to_confirm_above_count is None:
        enter_number_to_confirm_above_count = c.confirm_above_count

    # Fail on a bad pattern before running the search.
    validate_pattern(search, pattern_type)
    if not fields:
        fields = uniq([x.field for x in conditions if not x.negative])

    # === Step 1: Find the matching records ===

    results = _search(c, conditions, library_id)

    # === Step 2: Compute the changes ===

    actionable: list[tuple[Record, list[FieldChange]]] = []
    for r in results:
        changes = preview_fields(
            r.record,
            search,
            replacement,
            fields=fields,
            pattern_type=pattern_type,
            case_sensitive=case_sensitive,
        )
        if changes:
            actionable.append((r.record, changes))
        else:
            logger.debug(f"Skipping matched record {r.record_key}: no changes calculated")
    if not actionable:
        click.secho("No matching records found", dim=True, italic=True)
        click.echo()
        return None

    # === Step 3: Display changes and ask for user confirmation ===

    for record, changes in actionable:
        click.secho(record.key, underline=True)
        for change in changes:
            click.echo(f"      {change.field}: ", nl=False)
            click.secho(_display_value(change, change.original), fg="red", nl=False)
            click.echo(" -> ", nl=False)
            click.secho(_display_value(change, change.replaced), fg="green", bold=True)

    # If we're dry-running, then abort here.
    if dry_run:
        click.echo()
        click.secho(
            f"This is a dry run, aborting. {len(actionable)} records would have been modified.",
            dim=True,
        )
        return None

    # And then let's go for the confirmation.
    if confirm_yes:
        click.echo()
        if len(actionable) > enter_number_to_confirm_above_count:
            while True:
                userconfirmation = click.prompt(
                    f"Write changes to {len(actionable)} records? Enter {click.style(len(actionable), bold=True)} to confirm (or 'no' to abort)"
                )
                if userconfirmation == "no":
                    logger.debug("Aborting planned replacements after user confirmation")
                    return None
                if userconfirmation == str(len(actionable)):
                    click.echo()
                    break
        else:
            if not click.confirm(
                f"Write changes to {click.style(len(actionable), bold=True)} records?",
                default=True,
                prompt_suffix="",
            ):
                logger.debug("Aborting planned replacements after user confirmation")
                return None
            click.echo()

    # === Step 4: Write the changes ===

    logger.info(f"Replacing {search!r} with {replacement!r} in {len(actionable)} records")
    result = process_batch(
        [record for record, _ in actionable],
        search,
        replacement,
        fields=fields,
        pattern_type=pattern_type,
        case_sensitive=case_sensitive,
        progress=_log_progress,
    )

    click.echo()
    click.echo(f"Modified {result.modified} records.")
    if result.skipped:
        click.secho(f"Skipped {result.skipped} records that needed no changes.", dim=True)
    if result.errors:
        click.secho(f"Failed to modify {len(result.errors)} records:", fg="red")
        keys = {record.id: record.key for record, _ in actionable}
        for e in result.errors:
            click.secho(f"      {keys.get(e.record_id, e.record_id)}: {e.error}", fg="red")
    return result
