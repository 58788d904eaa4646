"""
The cli module defines refsed's CLI interface. It does not have any domain logic of its own. It is
dedicated to parsing, resolving arguments, and delegating to the appropriate module.
"""

import logging
from dataclasses import dataclass
from pathlib import Path

import click

from refsed.common import VERSION
from refsed.condition_parser import Condition
from refsed.config import Config
from refsed.library import Library, export_records, import_records
from refsed.matcher import PATTERN_TYPES, PatternType
from refsed.runner import execute_replace, execute_search

logger = logging.getLogger(__name__)


@dataclass
class Context:
    config: Config


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Emit verbose logging.")
@click.option("--config", "-c", type=click.Path(path_type=Path), help="Override the config file location.")  # fmt: skip
@click.pass_context
def cli(cc: click.Context, verbose: bool, config: Path | None = None) -> None:
    """Search and replace across the fields of bibliographic records."""

    cc.obj = Context(
        config=Config.parse(config_path_override=config),
    )
    if verbose:
        logging.getLogger("refsed").setLevel(logging.DEBUG)
    Library(cc.obj.config.library_path).initialize()


@cli.command()
def version() -> None:
    """Print version."""

    click.echo(VERSION)


@cli.command()
@click.argument("conditions", type=str, nargs=-1, required=True)
@click.option("--library-id", "-l", type=int, help="Only search records in this library.")
@click.pass_obj
def search(ctx: Context, conditions: list[str], library_id: int | None) -> None:
    """
    Print the records matching all conditions. A condition has the form
    `[operator/]field:pattern[:flags]`; the first condition's operator selects how the conditions
    combine.
    """
    parsed = [Condition.parse(x) for x in conditions]
    execute_search(ctx.config, parsed, library_id=library_id)


# fmt: off
@cli.command()
@click.argument("conditions", type=str, nargs=-1, required=True)
@click.option("--find", "-f", "find", type=str, required=True, help="The pattern to replace.")
@click.option("--replace", "-r", "replace", type=str, required=True, help="The replacement. Regex replacements support $1, ${name}, $&, $', $`, and $+.")
@click.option("--field", "-F", "fields", type=str, multiple=True, help="A field to replace in. Defaults to the fields of the conditions.")
@click.option("--type", "-t", "pattern_type", type=click.Choice(PATTERN_TYPES), default="regex", help="How to interpret the pattern to replace.")
@click.option("--case-sensitive", "-C", is_flag=True, help="Match the pattern to replace case sensitively.")
@click.option("--library-id", "-l", type=int, help="Only search records in this library.")
@click.option("--dry-run", "-d", is_flag=True, help="Display intended changes without applying them.")
@click.option("--yes", "-y", is_flag=True, help="Bypass confirmation prompts.")
@click.pass_obj
# fmt: on
def replace(
    ctx: Context,
    conditions: list[str],
    find: str,
    replace: str,
    fields: list[str],
    pattern_type: PatternType,
    case_sensitive: bool,
    library_id: int | None,
    dry_run: bool,
    yes: bool,
) -> None:
    """Replace text in the fields of the records matching all conditions."""
    parsed = [Condition.parse(x) for x in conditions]
    execute_replace(
        ctx.config,
        parsed,
        find,
        replace,
        fields=list(fields),
        pattern_type=pattern_type,
        case_sensitive=case_sensitive,
        library_id=library_id,
        dry_run=dry_run,
        confirm_yes=not yes,
    )


@cli.group()
def library() -> None:
    """Manage the record library."""


@library.command(name="import")
@click.argument("path", type=click.Path(path_type=Path), nargs=1)
@click.pass_obj
def import_cmd(ctx: Context, path: Path) -> None:
    """Import records from a TOML file. Records with an existing key are replaced."""
    count = import_records(ctx.config, path)
    click.echo(f"Imported {count} records.")


@library.command(name="export")
@click.option("--library-id", "-l", type=int, help="Only export records in this library.")
@click.pass_obj
def export_cmd(ctx: Context, library_id: int | None) -> None:
    """Print the library's records as TOML."""
    click.echo(export_records(ctx.config, library_id), nl=False)
