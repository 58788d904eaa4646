"""
The condition_parser module provides the Condition type and a parser for the condition syntax used
on the command line:

    [operator/]field:pattern[:flags]

The operator prefix is one of `and/`, `or/`, `and-not/`, and `or-not/`, and defaults to `and/`. A
literal colon in the pattern is escaped by doubling it (`::`). Flags are single characters: `c` for
a case-sensitive match, and at most one pattern type flag out of `r` (regex, the default), `e`
(exact), `s` (substring), `l` (SQL LIKE), and `g` (SQL GLOB).
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Literal, get_args

import click

from refsed.common import RefsedExpectedError
from refsed.fields import FieldRef, parse_field
from refsed.matcher import PatternType

logger = logging.getLogger(__name__)

Operator = Literal["AND", "OR", "AND_NOT", "OR_NOT"]
OPERATORS: tuple[Operator, ...] = get_args(Operator)
POSITIVE_OPERATORS: list[Operator] = ["AND", "OR"]
NEGATIVE_OPERATORS: list[Operator] = ["AND_NOT", "OR_NOT"]

OPERATOR_PREFIXES: dict[str, Operator] = {
    "and-not/": "AND_NOT",
    "or-not/": "OR_NOT",
    "and/": "AND",
    "or/": "OR",
}

PATTERN_TYPE_FLAGS: dict[str, PatternType] = {
    "r": "regex",
    "e": "exact",
    "s": "contains",
    "l": "sql_like",
    "g": "sql_glob",
}

SUPPORTED_FLAGS_HELP = (
    "`c` (case sensitive), `r` (regex), `e` (exact), `s` (substring), `l` (SQL LIKE), `g` (SQL GLOB)"
)


class InvalidConditionError(RefsedExpectedError):
    pass


class ConditionSyntaxError(InvalidConditionError):
    def __init__(self, *, condition: str, index: int, feedback: str) -> None:
        self.condition = condition
        self.index = index
        self.feedback = feedback
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"""\
Failed to parse condition, invalid syntax:

    {self.condition}
    {" " * self.index}{click.style("^", fg="red")}
    {" " * self.index}{click.style(self.feedback, bold=True)}
"""


@dataclasses.dataclass(frozen=True)
class Condition:
    field: str
    pattern: str
    pattern_type: PatternType = "regex"
    case_sensitive: bool = False
    operator: Operator = "AND"
    # Parsed from `field` on construction.
    ref: FieldRef = dataclasses.field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "ref", parse_field(self.field))

    @property
    def negative(self) -> bool:
        return self.operator in NEGATIVE_OPERATORS

    def __str__(self) -> str:
        r = ""
        if self.operator != "AND":
            r += next(p for p, o in OPERATOR_PREFIXES.items() if o == self.operator)
        r += self.field
        r += ":"
        r += escape(self.pattern)
        flags = ""
        if self.case_sensitive:
            flags += "c"
        if self.pattern_type != "regex":
            flags += next(f for f, t in PATTERN_TYPE_FLAGS.items() if t == self.pattern_type)
        if flags:
            r += ":" + flags
        return r

    @classmethod
    def parse(cls, raw: str) -> Condition:
        idx = 0
        # Common arguments to feed into Syntax Error.
        err = {"condition": raw}

        # First, the optional operator prefix.
        operator: Operator = "AND"
        for prefix, op in OPERATOR_PREFIXES.items():
            if raw.startswith(prefix):
                operator = op
                idx += len(prefix)
                break

        # Then the field.
        colon = raw.find(":", idx)
        if colon == -1:
            raise ConditionSyntaxError(
                **err,
                index=len(raw),
                feedback="Expected to find ':' after the field, found end of string.",
            )
        field = raw[idx:colon]
        if not field:
            raise ConditionSyntaxError(
                **err,
                index=idx,
                feedback="No field specified: Please specify a field, such as `title` or `creator.lastName`.",
            )
        idx = colon + 1

        # Then the pattern.
        pattern, fwd, terminated = take(raw[idx:])
        if not pattern:
            raise ConditionSyntaxError(
                **err,
                index=idx,
                feedback="No pattern specified: Please specify a pattern after the field.",
            )
        idx += fwd

        # If the pattern was terminated by a colon, the remaining input is single-character flags.
        pattern_type: PatternType = "regex"
        case_sensitive = False
        if terminated:
            flags, _, _ = take(raw[idx:])
            if not flags:
                raise ConditionSyntaxError(
                    **err,
                    index=idx,
                    feedback=f"No flags specified: Please remove this section (by deleting the colon) or specify one of the supported flags: {SUPPORTED_FLAGS_HELP}.",
                )
            seen_type_flag = False
            for i, flag in enumerate(flags):
                if flag == "c":
                    case_sensitive = True
                    continue
                if flag in PATTERN_TYPE_FLAGS:
                    if seen_type_flag:
                        raise ConditionSyntaxError(
                            **err,
                            index=idx + i,
                            feedback="Multiple pattern types specified: Please specify at most one of `r`, `e`, `s`, `l`, `g`.",
                        )
                    seen_type_flag = True
                    pattern_type = PATTERN_TYPE_FLAGS[flag]
                    continue
                raise ConditionSyntaxError(
                    **err,
                    index=idx + i,
                    feedback=f"Unrecognized flag: Please specify one of the supported flags: {SUPPORTED_FLAGS_HELP}.",
                )
            idx += len(flags)

        if raw[idx:]:
            raise ConditionSyntaxError(
                **err,
                index=idx,
                feedback="Extra input found after end of condition. Perhaps you meant to escape this colon?",
            )

        condition = Condition(
            field=field,
            pattern=pattern,
            pattern_type=pattern_type,
            case_sensitive=case_sensitive,
            operator=operator,
        )
        logger.debug(f"Parsed condition {raw=} as {condition=}")
        return condition


def take(x: str, until: str = ":") -> tuple[str, int, bool]:
    """
    Reads until the next unescaped `until` or end of string is found. Returns the read string, the
    number of characters consumed from the input (counting the `until` if one was found), and
    whether an unescaped `until` was found.

    The returned string is unescaped; that is, `::` becomes `:`.
    """
    out: list[str] = []
    i = 0
    while i < len(x):
        if x[i] == until:
            if x[i + 1 : i + 2] == until:
                out.append(until)
                i += 2
                continue
            return "".join(out), i + 1, True
        out.append(x[i])
        i += 1
    return "".join(out), i, False


def escape(x: str) -> str:
    """Escape the special characters in a string."""
    return x.replace(":", "::")
