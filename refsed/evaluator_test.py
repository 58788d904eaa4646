from conftest import make_record
from refsed.condition_parser import Condition
from refsed.evaluator import evaluate
from refsed.resolver import MatchDetail

RECORD = make_record(
    fields={
        "title": "A draft of the paper",
        "url": "http://example.com/article",
        "publisher": "Academic Press",
    },
    tags=["physics"],
)


def test_no_conditions_never_match() -> None:
    ev = evaluate(RECORD, [])
    assert not ev.matched
    assert ev.matched_fields == []
    assert ev.match_details == []


def test_single_condition() -> None:
    ev = evaluate(RECORD, [Condition("url", "http://")])
    assert ev.matched
    assert ev.matched_fields == ["url"]
    assert ev.match_details == [MatchDetail("url", "http://example.com/article", 0, 7)]
    assert not evaluate(RECORD, [Condition("url", "ftp://")]).matched


def test_and_mode() -> None:
    assert evaluate(RECORD, [Condition("url", "http"), Condition("title", "draft")]).matched
    assert not evaluate(RECORD, [Condition("url", "http"), Condition("title", "final")]).matched


def test_and_mode_unions_details_of_all_satisfied_conditions() -> None:
    ev = evaluate(
        RECORD,
        [Condition("url", "http"), Condition("title", "draft"), Condition("tags", "phys")],
    )
    assert ev.matched
    assert ev.matched_fields == ["url", "title", "tags"]
    assert [d.field for d in ev.match_details] == ["url", "title", "tags"]


def test_or_mode() -> None:
    conditions = [
        Condition("url", "ftp", operator="OR"),
        Condition("title", "draft", operator="OR"),
    ]
    ev = evaluate(RECORD, conditions)
    assert ev.matched
    # Only the satisfied conditions contribute details.
    assert ev.matched_fields == ["title"]
    assert not evaluate(
        RECORD,
        [Condition("url", "ftp", operator="OR"), Condition("title", "final", operator="OR")],
    ).matched


def test_negative_condition_vetoes_match() -> None:
    conditions = [
        Condition("url", "http://"),
        Condition("title", "draft", operator="AND_NOT"),
    ]
    assert not evaluate(RECORD, conditions).matched

    clean = make_record(fields={"title": "The final paper", "url": "http://example.com"})
    ev = evaluate(clean, conditions)
    assert ev.matched
    assert ev.matched_fields == ["url"]


def test_negative_condition_vetoes_or_mode() -> None:
    conditions = [
        Condition("url", "ftp", operator="OR"),
        Condition("publisher", "academic", operator="OR"),
        Condition("title", "draft", operator="OR_NOT"),
    ]
    assert not evaluate(RECORD, conditions).matched
    conditions[2] = Condition("title", "final", operator="OR_NOT")
    assert evaluate(RECORD, conditions).matched


def test_negatives_are_partitioned_by_operator_not_position() -> None:
    # The negative condition sits between positives; it must still be treated as the negative.
    conditions = [
        Condition("url", "http"),
        Condition("title", "final", operator="AND_NOT"),
        Condition("publisher", "academic"),
    ]
    assert evaluate(RECORD, conditions).matched
    conditions[2] = Condition("publisher", "springer")
    assert not evaluate(RECORD, conditions).matched


def test_and_not_first_operator_quirk_never_matches() -> None:
    # With AND_NOT as the mode, the first condition must both match and not match.
    assert not evaluate(
        RECORD,
        [Condition("title", "final", operator="AND_NOT"), Condition("url", "http")],
    ).matched
    assert not evaluate(
        RECORD,
        [Condition("title", "draft", operator="AND_NOT"), Condition("url", "http")],
    ).matched


def test_or_not_first_operator_quirk() -> None:
    # With OR_NOT as the mode, a record matches when the first condition does not match and any
    # other condition does.
    assert evaluate(
        RECORD,
        [Condition("title", "final", operator="OR_NOT"), Condition("url", "http")],
    ).matched
    assert not evaluate(
        RECORD,
        [Condition("title", "draft", operator="OR_NOT"), Condition("url", "http")],
    ).matched
    assert not evaluate(
        RECORD,
        [Condition("title", "final", operator="OR_NOT"), Condition("url", "ftp")],
    ).matched
    # A later negative condition vetoes the record here too.
    assert not evaluate(
        RECORD,
        [
            Condition("title", "final", operator="OR_NOT"),
            Condition("url", "http"),
            Condition("publisher", "academic", operator="AND_NOT"),
        ],
    ).matched
    assert evaluate(
        RECORD,
        [
            Condition("title", "final", operator="OR_NOT"),
            Condition("url", "http"),
            Condition("publisher", "springer", operator="AND_NOT"),
        ],
    ).matched


def test_negative_conditions_veto_in_every_mode() -> None:
    record = make_record(fields={"title": "final", "url": "http://x", "publisher": "Academic Press"})
    vetoing = Condition("publisher", "academic", operator="AND_NOT")
    for mode in ["AND", "OR", "AND_NOT", "OR_NOT"]:
        conditions = [Condition("title", "draft", operator=mode), Condition("url", "http"), vetoing]
        assert not evaluate(record, conditions).matched, mode
    # Without the veto, the OR_NOT mode matches this record.
    assert evaluate(
        record,
        [Condition("title", "draft", operator="OR_NOT"), Condition("url", "http")],
    ).matched


def test_single_negative_condition_delegates() -> None:
    # A lone condition is tested directly, whatever its operator.
    assert evaluate(RECORD, [Condition("title", "draft", operator="AND_NOT")]).matched
