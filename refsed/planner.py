"""
The planner module decides whether a search can narrow its candidate records with one indexed
store query before evaluating the conditions on every record.

The plan is advisory. A probe only ever selects a superset of the records the conditions match, so
evaluating the conditions over the probe's candidates yields the same results as evaluating them
over the whole library. When we cannot guarantee that, we return no plan and the search scans the
whole library instead.

Only positive conditions are probed. Negative conditions cannot narrow a candidate set, and in the
OR mode a probe on one condition would drop records matched by the others.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from collections.abc import Sequence

from refsed.condition_parser import NEGATIVE_OPERATORS, Condition
from refsed.fields import CollectionField, CreatorField, ItemTypeField, ScalarField, TagsField
from refsed.matcher import is_empty_check
from refsed.records import StoreOperator

logger = logging.getLogger(__name__)

DEFAULT_FIELD_THRESHOLD = 5

# Scalar fields that the store can search by substring.
FIELDS_WITH_CONTAINS: list[str] = [
    "title",
    "abstractNote",
    "publicationTitle",
    "publisher",
    "DOI",
    "ISBN",
    "ISSN",
    "url",
    "callNumber",
    "extra",
    "place",
    "archiveLocation",
    "libraryCatalog",
    "note",
]

# Scalar fields that the store can test for equality. Non-exact patterns probe them by substring.
FIELDS_WITH_IS: list[str] = ["volume", "issue", "pages"]

ALNUM_RUN_REGEX = re.compile(r"[A-Za-z0-9]{2,}")
QUANTIFIER_BRACE_REGEX = re.compile(r"\{(\d*)(,?)(\d*)\}")


@dataclasses.dataclass(frozen=True)
class PrefilterPlan:
    field: str
    operator: StoreOperator
    term: str


def plan(
    conditions: Sequence[Condition],
    *,
    field_threshold: int = DEFAULT_FIELD_THRESHOLD,
) -> PrefilterPlan | None:
    """Returns the store probe to run, or None if the whole library must be scanned."""
    if not conditions:
        return None

    fields = {c.field for c in conditions}
    if len(fields) > field_threshold:
        logger.debug(f"Not pre-filtering: {len(fields)} distinct fields exceed {field_threshold}")
        return None
    if any(c.operator in NEGATIVE_OPERATORS for c in conditions):
        logger.debug("Not pre-filtering: query contains a negative condition")
        return None
    if conditions[0].operator == "OR" and len(conditions) > 1:
        logger.debug("Not pre-filtering: query combines several conditions in OR mode")
        return None

    for c in conditions:
        if "|" in c.pattern:
            continue
        p = _plan_condition(c)
        if p is not None:
            logger.debug(f"Pre-filtering on condition {c}: {p}")
            return p

    logger.debug("Not pre-filtering: no condition can be probed in the store")
    return None


def _plan_condition(c: Condition) -> PrefilterPlan | None:
    if not c.pattern:
        return None
    if c.pattern_type == "regex" and is_empty_check(c.pattern):
        return None

    ref = c.ref
    if isinstance(ref, CreatorField):
        # The full name is synthesized from the first and last names, so only alphanumeric runs are
        # guaranteed to appear in a single stored name.
        term = longest_alnum_run(c.pattern) if c.pattern_type in ["exact", "contains"] else probe_term(c)
        return PrefilterPlan("creator", "contains", term) if term else None
    if isinstance(ref, TagsField):
        term = probe_term(c)
        return PrefilterPlan("tag", "contains", term) if term else None
    if isinstance(ref, CollectionField):
        try:
            collection_id = int(c.pattern.strip())
        except ValueError:
            return None
        return PrefilterPlan("collection", "is", str(collection_id))
    if isinstance(ref, ItemTypeField) or (isinstance(ref, ScalarField) and ref.name in FIELDS_WITH_IS):
        if c.pattern_type == "exact":
            return PrefilterPlan(str(ref), "is", c.pattern)
        term = probe_term(c)
        return PrefilterPlan(str(ref), "contains", term) if term else None
    if isinstance(ref, ScalarField) and ref.name in FIELDS_WITH_CONTAINS:
        term = probe_term(c)
        return PrefilterPlan(ref.name, "contains", term) if term else None
    # Date fields, unknown fields, and the remaining scalar fields have no indexed test.
    return None


def probe_term(c: Condition) -> str | None:
    if c.pattern_type in ["exact", "contains"]:
        return c.pattern
    if c.pattern_type == "regex":
        return extract_literal(c.pattern)
    return longest_alnum_run(c.pattern)


def longest_alnum_run(x: str) -> str | None:
    """Returns the longest run of at least two ASCII alphanumerics. The first run wins ties."""
    best: str | None = None
    for m in ALNUM_RUN_REGEX.finditer(x):
        if best is None or len(m.group(0)) > len(best):
            best = m.group(0)
    return best


def extract_literal(pattern: str) -> str | None:
    """
    Extracts a literal that every string matching the regex `pattern` contains. Returns None if no
    usable literal exists.

    We walk the pattern and emit its literal characters into a stream, emitting a break wherever the
    matched text may contain something other than the literal text on either side (escapes,
    character classes, wildcards, repetition). Atoms that may match zero times, negative groups,
    and lookarounds are removed from the stream. The longest alphanumeric run in the stream is the
    literal.
    """
    # Breaks are represented as None.
    stream: list[str | None] = []
    # Stack of the stream positions at which the open groups began, along with whether the group's
    # content is discarded once closed.
    groups: list[tuple[int, bool]] = []
    # The stream position of the last quantifiable atom, or None if the last atom was a break.
    last_atom: int | None = None

    i = 0
    n = len(pattern)
    while i < n:
        c = pattern[i]

        if c == "\\":
            i = _skip_escape(pattern, i)
            stream.append(None)
            last_atom = None
            continue

        if c == "[":
            i = _skip_class(pattern, i)
            stream.append(None)
            last_atom = None
            continue

        if c in "?*+{":
            fwd, optional = _parse_quantifier(pattern, i)
            if fwd == 0:
                # A brace that does not form a quantifier is a literal brace.
                stream.append(None)
                last_atom = None
                i += 1
                continue
            i += fwd
            # Skip the lazy and possessive modifiers.
            if i < n and pattern[i] in "?+":
                i += 1
            if last_atom is not None and optional:
                del stream[last_atom:]
            stream.append(None)
            last_atom = None
            continue

        if c == "(":
            header, discard, verbose = _parse_group_header(pattern, i)
            if verbose:
                return None
            if header is None:
                # Not a group at all (comments, standalone flags, backreferences).
                i = _skip_to_group_end(pattern, i)
                stream.append(None)
                last_atom = None
                continue
            groups.append((len(stream), discard))
            stream.append(None)
            i += header
            continue

        if c == ")":
            if not groups:
                # Unbalanced; the pattern was validated, so this should not happen.
                return None
            start, discard = groups.pop()
            if discard:
                del stream[start:]
            stream.append(None)
            last_atom = start
            i += 1
            continue

        if c in ".^$|":
            stream.append(None)
            last_atom = None
            i += 1
            continue

        last_atom = len(stream)
        stream.append(c)
        i += 1

    runs: list[str] = []
    current: list[str] = []
    for s in stream:
        if s is None:
            runs.append("".join(current))
            current = []
        else:
            current.append(s)
    runs.append("".join(current))

    best: str | None = None
    for run in runs:
        candidate = longest_alnum_run(run)
        if candidate is not None and (best is None or len(candidate) > len(best)):
            best = candidate
    return best


def _skip_escape(pattern: str, i: int) -> int:
    """Returns the index after the escape sequence starting at `i`."""
    nxt = pattern[i + 1 : i + 2]
    if nxt == "x":
        return i + 4
    if nxt == "u":
        return i + 6
    if nxt == "U":
        return i + 10
    if nxt == "N":
        end = pattern.find("}", i)
        return end + 1 if end != -1 else len(pattern)
    if nxt.isdigit():
        # Backreferences and octal escapes.
        j = i + 1
        while j < len(pattern) and pattern[j].isdigit():
            j += 1
        return j
    return i + 2


def _skip_class(pattern: str, i: int) -> int:
    """Returns the index after the character class starting at `i`."""
    j = i + 1
    if pattern[j : j + 1] == "^":
        j += 1
    # A leading `]` is a literal member of the class.
    if pattern[j : j + 1] == "]":
        j += 1
    while j < len(pattern):
        if pattern[j] == "\\":
            j += 2
            continue
        if pattern[j] == "]":
            return j + 1
        j += 1
    return len(pattern)


def _parse_quantifier(pattern: str, i: int) -> tuple[int, bool]:
    """Returns the length of the quantifier at `i` (0 if there is none) and whether it is optional."""
    c = pattern[i]
    if c in "?*":
        return 1, True
    if c == "+":
        return 1, False
    m = QUANTIFIER_BRACE_REGEX.match(pattern, i)
    if m is None or (not m.group(1) and not m.group(3)):
        return 0, False
    minimum = int(m.group(1)) if m.group(1) else 0
    return len(m.group(0)), minimum == 0


def _parse_group_header(pattern: str, i: int) -> tuple[int | None, bool, bool]:
    """
    Parses the group opening at `i`. Returns the header length (None if this is not a group that
    contains a subpattern), whether the group's content must be discarded, and whether the pattern
    turns on verbose mode.
    """
    if pattern[i + 1 : i + 2] != "?":
        return 1, False, False
    rest = pattern[i + 2 :]
    if rest.startswith(":"):
        return 3, False, False
    if rest.startswith("P<"):
        end = pattern.find(">", i)
        return (end - i + 1 if end != -1 else None), False, False
    if rest.startswith("<") and not rest.startswith(("<=", "<!")):
        end = pattern.find(">", i)
        return (end - i + 1 if end != -1 else None), False, False
    # Lookarounds, atomic groups, and conditionals do not consume a contiguous literal.
    if rest.startswith(("=", "!", "<=", "<!")):
        return 3 + (1 if rest.startswith("<") else 0), True, False
    if rest.startswith(">"):
        return 3, True, False
    if rest.startswith(("P=", "#", "(")):
        return None, False, False
    # Inline flags, either standalone `(?i)` or scoped `(?i:...)`.
    m = re.match(r"[aiLmsux-]*", rest)
    flags = m.group(0) if m else ""
    if "x" in flags.split("-")[0]:
        return None, False, True
    after = rest[len(flags) : len(flags) + 1]
    if after == ":":
        return 2 + len(flags) + 1, False, False
    return None, False, False


def _skip_to_group_end(pattern: str, i: int) -> int:
    j = i + 1
    while j < len(pattern):
        if pattern[j] == "\\":
            j += 2
            continue
        if pattern[j] == ")":
            return j + 1
        j += 1
    return len(pattern)
