from __future__ import annotations

import pytest

from fmeca_staging.models.changeset import CellModification
from fmeca_staging.models.dataset import Dataset
from fmeca_staging.services.diff_engine import apply_changeset, as_dataset, diff, match_rows
from fmeca_staging.services.errors import MalformedCandidateError
from fmeca_staging.services.row_identity import CompositeKeyIdentity

FLOC_ONLY = CompositeKeyIdentity(["FLOC"])


def test_identical_datasets_produce_empty_changeset(fmeca_dataset):
    cs = diff(fmeca_dataset, fmeca_dataset.copy())
    assert cs.added == [] and cs.deleted == [] and cs.modified == []
    assert cs.is_empty()


def test_modified_cell_detected():
    original = Dataset.from_rows([{"FLOC": "A", "Component": "Pump", "Severity": "3"}])
    candidate = [{"FLOC": "A", "Component": "Pump", "Severity": "5"}]
    cs = diff(original, candidate)
    assert cs.added == []
    assert cs.deleted == []
    assert [m.to_dict() for m in cs.modified] == [
        {"rowIndex": 0, "columnId": "Severity", "oldValue": "3", "newValue": "5"}
    ]


def test_added_row_against_empty_original():
    cs = diff(Dataset(), [{"FLOC": "B", "Component": "Motor"}])
    assert cs.added == [{"FLOC": "B", "Component": "Motor"}]
    assert cs.added_positions == [0]
    assert cs.deleted == [] and cs.modified == []


def test_deleted_row():
    original = Dataset.from_rows([{"FLOC": "A"}, {"FLOC": "B"}])
    cs = diff(original, [{"FLOC": "A"}])
    assert cs.deleted == [{"FLOC": "B"}]
    assert cs.deleted_positions == [1]
    assert cs.added == [] and cs.modified == []


def test_empty_candidate_deletes_everything(fmeca_dataset):
    cs = diff(fmeca_dataset, [])
    assert len(cs.deleted) == 3
    assert cs.added == [] and cs.modified == []


@pytest.mark.parametrize("bad", [None, "rows", {"FLOC": "A"}, 42, [1, 2], [{"FLOC": "A"}, "x"]])
def test_malformed_candidate_rejected(fmeca_dataset, bad):
    with pytest.raises(MalformedCandidateError):
        diff(fmeca_dataset, bad)


def test_null_equivalence_no_spurious_modification():
    original = Dataset(rows=[{"FLOC": "A", "Notes": ""}], columns=["FLOC", "Notes", "Extra"])
    candidate = [{"FLOC": "A", "Extra": None}]  # Notes 欠落, Extra None
    cs = diff(original, candidate)
    assert cs.modified == []


def test_number_vs_string_compares_by_text():
    original = Dataset.from_rows([{"FLOC": "A", "Severity": "3"}])
    cs = diff(original, [{"FLOC": "A", "Severity": 3}])
    assert cs.modified == []


def test_zero_is_not_blank():
    original = Dataset.from_rows([{"FLOC": "A", "Downtime Hrs": ""}])
    cs = diff(original, [{"FLOC": "A", "Downtime Hrs": 0}])
    assert len(cs.modified) == 1
    assert cs.modified[0].new_value == 0


def test_modified_uses_candidate_row_index_after_reordering():
    original = Dataset.from_rows([
        {"FLOC": "A", "Severity": "1"},
        {"FLOC": "B", "Severity": "2"},
    ])
    candidate = [
        {"FLOC": "C", "Severity": "9"},
        {"FLOC": "B", "Severity": "2"},
        {"FLOC": "A", "Severity": "4"},
    ]
    cs = diff(original, candidate, identity=FLOC_ONLY)
    assert cs.modified == [CellModification(row_index=2, column_id="Severity", old_value="1",
                                            new_value="4", original_index=0)]
    assert cs.added == [{"FLOC": "C", "Severity": "9"}]
    assert cs.matches == {0: 2, 1: 1}


def test_edited_key_field_is_add_plus_delete():
    original = Dataset.from_rows([{"Asset Type": "Pump", "Component": "Seal", "FLOC": "P1"}])
    cs = diff(original, [{"Asset Type": "Pump", "Component": "Seal", "FLOC": "P2"}])
    assert len(cs.added) == 1 and len(cs.deleted) == 1 and cs.modified == []


def test_new_candidate_column_is_compared():
    original = Dataset.from_rows([{"FLOC": "A", "Severity": "1"}])
    cs = diff(original, [{"FLOC": "A", "Severity": "1", "Owner": "Ops"}])
    assert [(m.column_id, m.old_value, m.new_value) for m in cs.modified] == [("Owner", None, "Ops")]


def test_explicit_columns_limit_comparison():
    original = Dataset.from_rows([{"FLOC": "A", "Severity": "1", "Notes": "x"}])
    cs = diff(original, [{"FLOC": "A", "Severity": "2", "Notes": "y"}], columns=["Severity"])
    assert [m.column_id for m in cs.modified] == ["Severity"]


def test_added_and_deleted_are_disjoint_by_key():
    ident = CompositeKeyIdentity()
    original = Dataset.from_rows([
        {"Asset Type": "Pump", "Component": "Seal", "FLOC": "P1"},
        {"Asset Type": "Pump", "Component": "Seal", "FLOC": "P1", "Severity": "2"},
        {"Asset Type": "Fan", "Component": "Blade", "FLOC": "F1"},
    ])
    candidate = [
        {"Asset Type": "Pump", "Component": "Seal", "FLOC": "P1"},
        {"Asset Type": "Motor", "Component": "Rotor", "FLOC": "M1"},
    ]
    cs = diff(original, candidate, identity=ident)
    added_keys = {ident.key_of(r) for r in cs.added}
    deleted_keys = {ident.key_of(r) for r in cs.deleted}
    assert added_keys.isdisjoint(deleted_keys)


class TestDuplicateKeys:
    def test_exact_match_preferred_over_position(self):
        original = Dataset.from_rows([
            {"FLOC": "A", "Severity": "1"},
            {"FLOC": "A", "Severity": "2"},
        ])
        # candidate の順序が逆でも、完全一致ペアが優先される
        candidate = [{"FLOC": "A", "Severity": "2"}, {"FLOC": "A", "Severity": "1"}]
        cs = diff(original, candidate, identity=FLOC_ONLY)
        assert cs.is_empty()
        assert cs.matches == {0: 1, 1: 0}

    def test_fallback_to_first_unmatched_in_order(self):
        original = Dataset.from_rows([
            {"FLOC": "A", "Severity": "1"},
            {"FLOC": "A", "Severity": "2"},
        ])
        candidate = [{"FLOC": "A", "Severity": "7"}, {"FLOC": "A", "Severity": "8"}]
        cs = diff(original, candidate, identity=FLOC_ONLY)
        assert [(m.original_index, m.row_index, m.new_value) for m in cs.modified] == [
            (0, 0, "7"),
            (1, 1, "8"),
        ]

    def test_surplus_duplicates_become_added_or_deleted(self):
        original = Dataset.from_rows([{"FLOC": "A"}, {"FLOC": "A"}])
        cs = diff(original, [{"FLOC": "A"}], identity=FLOC_ONLY)
        assert cs.deleted_positions == [1]
        cs2 = diff(original, [{"FLOC": "A"}, {"FLOC": "A"}, {"FLOC": "A"}], identity=FLOC_ONLY)
        assert cs2.added_positions == [2]


def test_diff_does_not_mutate_inputs(fmeca_dataset):
    before = fmeca_dataset.copy()
    candidate = [dict(r) for r in fmeca_dataset.rows]
    candidate[0]["Overall Severity Level"] = "1"
    snapshot = [dict(r) for r in candidate]
    diff(fmeca_dataset, candidate)
    assert fmeca_dataset == before
    assert candidate == snapshot


def test_diff_is_deterministic(fmeca_dataset):
    candidate = [dict(r) for r in reversed(fmeca_dataset.rows)]
    candidate[1]["Failure Modes"] = "Belt ripped"
    assert diff(fmeca_dataset, candidate) == diff(fmeca_dataset, candidate)


def test_match_rows_returns_sorted_indices():
    matches, added, deleted = match_rows([{"FLOC": "A"}, {"FLOC": "B"}], [{"FLOC": "C"}, {"FLOC": "A"}], FLOC_ONLY)
    assert matches == {0: 1}
    assert added == [0]
    assert deleted == [1]


def test_as_dataset_derives_columns_in_first_appearance_order():
    ds = as_dataset([{"b": 1, "a": 2}, {"c": 3, "a": 4}])
    assert ds.columns == ["b", "a", "c"]


def test_apply_changeset_round_trip(fmeca_dataset):
    candidate = [dict(r) for r in fmeca_dataset.rows[1:]]
    candidate[0]["Overall Severity Level"] = "5"
    candidate.append({"Asset Type": "Fan", "Component": "Blade", "FLOC": "F1",
                      "Failure Modes": "Cracked", "Overall Severity Level": "2"})
    cs = diff(fmeca_dataset, candidate)
    applied = apply_changeset(fmeca_dataset, cs)
    assert diff(applied, candidate).is_empty()
    assert len(applied.rows) == len(candidate)
