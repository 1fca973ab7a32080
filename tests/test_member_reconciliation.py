import pytest

from gestionale.db.models import Member
from gestionale.domain.members.reconciliation import (
    ACTION_INSERT,
    ACTION_OVERWRITE,
    ACTION_SKIP,
    ImportPlanValidationError,
    check_choices,
    deduplicate_rows,
    detect_conflicts,
    plan_actions,
)


class FakeMemberStore:
    """Answers fiscal-code lookups from a fixed list and records every call."""

    def __init__(self, members=()):
        self.members = list(members)
        self.lookups = []

    def find_by_fiscal_codes(self, owner_id, fiscal_codes):
        codes = list(fiscal_codes)
        self.lookups.append(codes)
        return [member for member in self.members if member.user_id == owner_id and member.fiscal_code in codes]


def _member(member_id, fiscal_code, owner_id=1, **fields):
    return Member(id=member_id, user_id=owner_id, fiscal_code=fiscal_code, **fields)


def test_deduplicate_keeps_first_occurrence_and_all_rows_without_code():
    result = deduplicate_rows(
        [
            {"fiscal_code": "ABC", "first_name": "First"},
            {"fiscal_code": "abc ", "first_name": "Second"},
            {"fiscal_code": "", "first_name": "NoCode"},
            {"fiscal_code": None, "first_name": "NoCodeEither"},
        ]
    )

    assert [row["first_name"] for row in result.rows] == ["First", "NoCode", "NoCodeEither"]
    assert result.duplicates_in_file == 1
    assert result.duplicates[0]["incoming"]["first_name"] == "Second"
    assert result.duplicates[0]["first_occurrence"]["first_name"] == "First"


def test_deduplicate_abc_abc_empty_gives_two_rows():
    result = deduplicate_rows([{"fiscal_code": "ABC"}, {"fiscal_code": "ABC"}, {"fiscal_code": ""}])

    assert len(result.rows) == 2
    assert result.duplicates_in_file == 1


def test_deduplicate_is_idempotent():
    first = deduplicate_rows(
        [
            {"fiscal_code": "ABC", "first_name": "Anna"},
            {"fiscal_code": "DEF", "first_name": "Luca"},
            {"fiscal_code": "ABC", "first_name": "Anna bis"},
            {"fiscal_code": None, "first_name": "Senza codice"},
            {"fiscal_code": None, "first_name": "Senza codice"},
        ]
    )

    second = deduplicate_rows(first.rows)

    assert second.rows == first.rows
    assert second.duplicates_in_file == 0
    assert second.duplicates == []


def test_detect_conflicts_looks_up_codes_in_chunks():
    store = FakeMemberStore([_member(10, "C3")])
    rows = [{"fiscal_code": f"C{i}"} for i in range(5)]

    conflicts = detect_conflicts(store, 1, rows, chunk_size=2)

    assert [len(chunk) for chunk in store.lookups] == [2, 2, 1]
    assert len(conflicts) == 1
    assert conflicts[0].existing_id == 10
    assert conflicts[0].incoming["fiscal_code"] == "C3"


def test_detect_conflicts_reports_each_existing_member_once():
    store = FakeMemberStore([_member(7, "ABC", first_name="Old")])

    conflicts = detect_conflicts(store, 1, [{"fiscal_code": "ABC"}, {"fiscal_code": "abc"}])

    assert len(conflicts) == 1
    assert conflicts[0].existing["first_name"] == "Old"


def test_detect_conflicts_is_scoped_to_the_owner():
    store = FakeMemberStore([_member(7, "ABC", owner_id=2)])

    assert detect_conflicts(store, 1, [{"fiscal_code": "ABC"}]) == []


def test_detect_conflicts_skips_store_when_no_row_has_a_code():
    store = FakeMemberStore()

    assert detect_conflicts(store, 1, [{"fiscal_code": None}, {"first_name": "x"}]) == []
    assert store.lookups == []


def test_detect_conflicts_rejects_non_positive_chunk_size():
    with pytest.raises(ValueError):
        detect_conflicts(FakeMemberStore(), 1, [{"fiscal_code": "A"}], chunk_size=0)


def _conflicting_rows():
    store = FakeMemberStore([_member(7, "ABC")])
    rows = [{"fiscal_code": "ABC", "first_name": "Incoming"}, {"fiscal_code": "NEW1"}, {"fiscal_code": None}]
    return rows, detect_conflicts(store, 1, rows)


def test_plan_defaults_conflicts_to_overwrite():
    rows, conflicts = _conflicting_rows()

    actions = plan_actions(rows, conflicts)

    assert len(actions) == len(rows)
    assert actions[0].action == ACTION_OVERWRITE
    assert actions[0].target_id == 7
    assert [action.action for action in actions[1:]] == [ACTION_INSERT, ACTION_INSERT]


def test_plan_skip_choice():
    rows, conflicts = _conflicting_rows()

    actions = plan_actions(rows, conflicts, choices={"7": "skip"})

    assert actions[0].action == ACTION_SKIP
    assert actions[0].target_id is None


def test_plan_keep_both_uses_alternate_fiscal_code():
    rows, conflicts = _conflicting_rows()

    actions = plan_actions(rows, conflicts, choices={7: "insert"}, alternate_fiscal_codes={7: " xyz2 "})

    assert actions[0].action == ACTION_INSERT
    assert actions[0].incoming["fiscal_code"] == "XYZ2"
    assert actions[0].incoming["first_name"] == "Incoming"


def test_plan_keep_both_without_alternate_code_is_refused():
    rows, conflicts = _conflicting_rows()

    with pytest.raises(ImportPlanValidationError) as excinfo:
        plan_actions(rows, conflicts, choices={"7": "insert"}, alternate_fiscal_codes={"7": "  "})

    assert excinfo.value.missing_alternate_ids == ["7"]


def test_plan_rejects_unknown_choice():
    rows, conflicts = _conflicting_rows()

    with pytest.raises(ImportPlanValidationError) as excinfo:
        plan_actions(rows, conflicts, choices={"7": "merge"})

    assert excinfo.value.invalid_choices == {"7": "merge"}


def test_check_choices_needs_no_store():
    check_choices({"7": "overwrite", "8": "skip"}, {})
    check_choices({"7": "insert"}, {"7": "XYZ2"})

    with pytest.raises(ImportPlanValidationError) as excinfo:
        check_choices({"7": "insert", "9": "insert"}, {"9": "ok"})
    assert excinfo.value.missing_alternate_ids == ["7"]
