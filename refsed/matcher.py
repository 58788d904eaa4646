"""
The matcher module tests a single string value against a single pattern.

Five pattern semantics are supported:

- regex: a Python regular expression, searched anywhere in the value.
- exact: full string equality.
- contains: plain substring search.
- sql_like: a SQL LIKE pattern (`%` and `_` wildcards), searched anywhere in the value.
- sql_glob: a SQL GLOB pattern (`*` and `?` wildcards), anchored to the whole value.

All of them are case-insensitive unless the caller asks for case sensitivity.
"""

import dataclasses
import functools
import logging
import re
from typing import Literal, get_args

from refsed.common import RefsedExpectedError

logger = logging.getLogger(__name__)

PatternType = Literal["regex", "exact", "contains", "sql_like", "sql_glob"]
PATTERN_TYPES: tuple[PatternType, ...] = get_args(PatternType)

# Reserved idioms that test for an empty field. The field resolver lets these match empty values,
# which would otherwise be skipped without being tested.
EMPTY_CHECK_PATTERNS = ["^$", r"^\s*$"]


class InvalidPatternError(RefsedExpectedError):
    pass


@dataclasses.dataclass(frozen=True)
class MatchOutcome:
    matched: bool
    match_text: str | None = None
    match_index: int = -1
    match_length: int = -1


NO_MATCH = MatchOutcome(matched=False)


def is_empty_check(pattern: str) -> bool:
    return pattern in EMPTY_CHECK_PATTERNS


def validate_pattern(pattern: str, pattern_type: PatternType) -> None:
    """
    Raise InvalidPatternError if the pattern cannot be used. Only regexes can be malformed; the
    other pattern types are translated into valid regexes by construction.
    """
    if pattern_type not in PATTERN_TYPES:
        raise InvalidPatternError(
            f"Invalid pattern type {pattern_type}: must be one of {', '.join(PATTERN_TYPES)}"
        )
    if pattern_type == "regex":
        compile_pattern(pattern, "regex", True)


@functools.lru_cache(maxsize=256)
def compile_pattern(
    pattern: str,
    pattern_type: PatternType,
    case_sensitive: bool,
) -> re.Pattern[str]:
    flags = 0 if case_sensitive else re.IGNORECASE
    if pattern_type == "regex":
        source = pattern
    elif pattern_type == "contains":
        source = re.escape(pattern)
    elif pattern_type == "sql_like":
        source = like_to_regex(pattern)
    elif pattern_type == "sql_glob":
        source = "^" + glob_to_regex(pattern) + "$"
    else:
        raise InvalidPatternError(f"Pattern type {pattern_type} does not compile to a regex")
    try:
        return re.compile(source, flags)
    except re.error as e:
        raise InvalidPatternError(f"Invalid regex: {e}") from e


def like_to_regex(pattern: str) -> str:
    """Translate a SQL LIKE pattern into a regex. A backslash escapes the following character."""
    out: list[str] = []
    escaped = False
    for c in pattern:
        if escaped:
            out.append(re.escape(c))
            escaped = False
        elif c == "\\":
            escaped = True
        elif c == "%":
            out.append(".*")
        elif c == "_":
            out.append(".")
        else:
            out.append(re.escape(c))
    # A trailing backslash escapes nothing; treat it as a literal.
    if escaped:
        out.append(re.escape("\\"))
    return "".join(out)


def glob_to_regex(pattern: str) -> str:
    out: list[str] = []
    for c in pattern:
        if c == "*":
            out.append(".*")
        elif c == "?":
            out.append(".")
        else:
            out.append(re.escape(c))
    return "".join(out)


def test(
    value: str | None,
    pattern: str,
    pattern_type: PatternType = "regex",
    case_sensitive: bool = False,
) -> MatchOutcome:
    value = value if value is not None else ""

    if pattern_type == "exact":
        if case_sensitive:
            matched = value == pattern
        else:
            matched = value.casefold() == pattern.casefold()
        if not matched:
            return NO_MATCH
        return MatchOutcome(True, value, 0, len(value))

    if pattern_type not in PATTERN_TYPES:
        raise InvalidPatternError(f"Invalid pattern type {pattern_type}")

    m = compile_pattern(pattern, pattern_type, case_sensitive).search(value)
    if m is None:
        return NO_MATCH
    return MatchOutcome(True, m.group(0), m.start(), len(m.group(0)))


# Keep pytest from collecting the matcher's `test` function when it's imported into a test module.
test.__test__ = False  # type: ignore[attr-defined]
