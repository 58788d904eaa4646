"""
The search module runs a query against a record store in two phases:

1. Filter: narrow the library to a set of candidate record IDs, either with the planner's indexed
   probe or by listing every record in the library.
2. Refine: load the candidates and evaluate the conditions on each one, in candidate order.

Progress is reported through an optional callback, once for the filter phase and once per record
for the refine phase.
"""

from __future__ import annotations

import dataclasses
import logging
import time
from collections.abc import Callable, Sequence

from refsed.common import RefsedExpectedError
from refsed.condition_parser import Condition
from refsed.evaluator import evaluate
from refsed.matcher import InvalidPatternError, validate_pattern
from refsed.planner import DEFAULT_FIELD_THRESHOLD, plan
from refsed.records import Record, RecordStore
from refsed.resolver import MatchDetail

logger = logging.getLogger(__name__)


class SearchError(RefsedExpectedError):
    def __init__(self, message: str, code: str = "INVALID_REGEX") -> None:
        self.message = message
        self.code = code
        super().__init__(message)


@dataclasses.dataclass(frozen=True)
class FilterProgress:
    # None while the candidate count is not yet known.
    count: int | None


@dataclasses.dataclass(frozen=True)
class RefineProgress:
    current: int
    total: int


ProgressCallback = Callable[[FilterProgress | RefineProgress], None]


@dataclasses.dataclass(frozen=True)
class SearchResult:
    record: Record
    matched_fields: list[str]
    match_details: list[MatchDetail]

    @property
    def record_id(self) -> int:
        return self.record.id

    @property
    def record_key(self) -> str:
        return self.record.key

    @property
    def library_id(self) -> int:
        return self.record.library_id


def search_records(
    store: RecordStore,
    conditions: Sequence[Condition],
    *,
    library_id: int | None = None,
    progress: ProgressCallback | None = None,
    prefilter_field_threshold: int = DEFAULT_FIELD_THRESHOLD,
) -> list[SearchResult]:
    if not conditions:
        return []

    def report(p: FilterProgress | RefineProgress) -> None:
        if progress is not None:
            progress(p)

    # Validate every pattern before touching the store, so that a bad pattern fails the whole
    # search instead of silently matching nothing.
    for c in conditions:
        try:
            validate_pattern(c.pattern, c.pattern_type)
        except InvalidPatternError as e:
            raise SearchError(str(e), code="INVALID_REGEX") from e

    start = time.time()
    p = plan(conditions, field_threshold=prefilter_field_threshold)
    if p is not None:
        ids = store.query_by_condition(p.field, p.operator, p.term, library_id)
        report(FilterProgress(count=len(ids)))
    else:
        report(FilterProgress(count=None))
        ids = store.list_record_ids(library_id)
        report(FilterProgress(count=len(ids)))
    logger.debug(f"Filter phase found {len(ids)} candidates in {time.time() - start:.3f}s")
    if not ids:
        return []

    start = time.time()
    records = store.load_records(ids)
    results: list[SearchResult] = []
    for i, record in enumerate(records, start=1):
        report(RefineProgress(current=i, total=len(records)))
        ev = evaluate(record, conditions)
        if ev.matched:
            results.append(SearchResult(record, ev.matched_fields, ev.match_details))
    logger.debug(
        f"Refine phase matched {len(results)} of {len(records)} records in {time.time() - start:.3f}s"
    )
    return results
