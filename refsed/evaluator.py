"""
The evaluator module decides whether a record satisfies a list of conditions.

The operator of the first condition selects how the whole list is combined; it is a mode, not the
start of a left-to-right boolean fold:

- AND: every positive condition matched, and no negative condition matched.
- OR: at least one positive condition matched, and no negative condition matched.
- AND_NOT: every condition matched, the first condition did not match, and no negative condition
  matched.
- OR_NOT: any (or every) condition matched, the first condition did not match, and no negative
  condition matched.

Positive conditions carry the AND and OR operators. Negative conditions carry AND_NOT and OR_NOT,
and match ("fire") when their own field test matches.

The AND_NOT mode can never match, since it requires the first condition to both match and not
match. This is preserved as is: interfaces always give the first condition the AND operator.
"""

from __future__ import annotations

import dataclasses
import logging
from collections.abc import Callable, Sequence

from refsed.condition_parser import NEGATIVE_OPERATORS, Condition, Operator
from refsed.records import Record
from refsed.resolver import MatchDetail, match_field

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class Evaluation:
    matched: bool
    # May contain duplicates if several conditions test the same field.
    matched_fields: list[str] = dataclasses.field(default_factory=list)
    match_details: list[MatchDetail] = dataclasses.field(default_factory=list)


NO_EVALUATION = Evaluation(matched=False)


@dataclasses.dataclass(frozen=True)
class ConditionResults:
    """The per-condition verdicts of one record, in condition order."""

    results: list[bool]
    positive: list[bool]
    negative: list[bool]

    @property
    def first(self) -> bool:
        return self.results[0]

    @property
    def vetoed(self) -> bool:
        return any(self.negative)


def _and_mode(r: ConditionResults) -> bool:
    return all(r.positive) and not r.vetoed


def _or_mode(r: ConditionResults) -> bool:
    return any(r.positive) and not r.vetoed


def _and_not_mode(r: ConditionResults) -> bool:
    return all(r.results) and not r.first and not r.vetoed


def _or_not_mode(r: ConditionResults) -> bool:
    return (any(r.results) or all(r.results)) and not r.first and not r.vetoed


MODES: dict[Operator, Callable[[ConditionResults], bool]] = {
    "AND": _and_mode,
    "OR": _or_mode,
    "AND_NOT": _and_not_mode,
    "OR_NOT": _or_not_mode,
}


def evaluate(record: Record, conditions: Sequence[Condition]) -> Evaluation:
    if not conditions:
        return NO_EVALUATION

    if len(conditions) == 1:
        detail = match_field(record, conditions[0])
        if detail is None:
            return NO_EVALUATION
        return Evaluation(True, [detail.field], [detail])

    # Every condition is evaluated regardless of its operator, so that the details of all the
    # satisfied conditions are available to preview and replace.
    results: list[bool] = []
    matched_fields: list[str] = []
    match_details: list[MatchDetail] = []
    for c in conditions:
        detail = match_field(record, c)
        results.append(detail is not None)
        if detail is not None:
            matched_fields.append(detail.field)
            match_details.append(detail)

    r = ConditionResults(
        results=results,
        positive=[m for c, m in zip(conditions, results) if c.operator not in NEGATIVE_OPERATORS],
        negative=[m for c, m in zip(conditions, results) if c.operator in NEGATIVE_OPERATORS],
    )
    matched = MODES[conditions[0].operator](r)
    logger.debug(f"Evaluated record {record.id} in {conditions[0].operator} mode: {results=} {matched=}")
    return Evaluation(matched, matched_fields, match_details)
