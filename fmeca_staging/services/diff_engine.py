from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from ..models.changeset import CellModification, Changeset
from ..models.dataset import Dataset, Row, values_equal
from .errors import MalformedCandidateError
from .row_identity import CompositeKeyIdentity, RowIdentity, RowKey, rows_equal

logger = logging.getLogger(__name__)

"""Diff engine: classify a candidate dataset against the original.

Given ``original`` and ``candidate`` the engine produces a Changeset with
added rows, deleted rows and modified cells. Rows are paired by RowKey; when
several rows share a key, pairing prefers an exact full-row match and then
falls back to the first unmatched row with that key in original order.

The engine is pure: inputs are never mutated and the same pair of datasets
always yields the same Changeset.
"""

__all__ = [
    "as_dataset",
    "match_rows",
    "compare_columns",
    "diff",
    "apply_changeset",
]


def as_dataset(candidate: Any, columns: Sequence[str] | None = None) -> Dataset:
    """Validate a raw candidate (e.g. decoded AI JSON) and wrap it in a Dataset.

    Raises:
        MalformedCandidateError: candidate is not a list of mappings
    """
    if isinstance(candidate, Dataset):
        return candidate
    if candidate is None or isinstance(candidate, (str, bytes, Mapping)) or not isinstance(candidate, Sequence):
        raise MalformedCandidateError(
            f"candidate must be a list of rows, got {type(candidate).__name__}"
        )
    rows: list[Row] = []
    for i, raw in enumerate(candidate):
        if not isinstance(raw, Mapping):
            raise MalformedCandidateError(
                f"candidate row {i} is not an object (got {type(raw).__name__})"
            )
        rows.append({str(k): v for k, v in raw.items()})
    return Dataset.from_rows(rows, columns)


def match_rows(
    original_rows: Sequence[Mapping[str, Any]],
    candidate_rows: Sequence[Mapping[str, Any]],
    identity: RowIdentity,
) -> tuple[dict[int, int], list[int], list[int]]:
    """Pair original rows with candidate rows by RowKey.

    Returns:
        tuple: (matches original->candidate index, added candidate indices,
        deleted original indices), the index lists in ascending order
    """
    by_key: dict[RowKey, list[int]] = {}
    for ci, row in enumerate(candidate_rows):
        by_key.setdefault(identity.key_of(row), []).append(ci)

    original_keys = [identity.key_of(row) for row in original_rows]
    matches: dict[int, int] = {}
    used: set[int] = set()

    # Pass 1: exact full-row matches win, so duplicates pair deterministically
    for oi, row in enumerate(original_rows):
        for ci in by_key.get(original_keys[oi], ()):
            if ci not in used and rows_equal(row, candidate_rows[ci]):
                matches[oi] = ci
                used.add(ci)
                break

    # Pass 2: first unmatched candidate with the same key
    for oi in range(len(original_rows)):
        if oi in matches:
            continue
        for ci in by_key.get(original_keys[oi], ()):
            if ci not in used:
                matches[oi] = ci
                used.add(ci)
                break

    added = [ci for ci in range(len(candidate_rows)) if ci not in used]
    deleted = [oi for oi in range(len(original_rows)) if oi not in matches]
    return matches, added, deleted


def compare_columns(original: Dataset, candidate: Dataset) -> list[str]:
    """Declared column set for cell comparison: original order, then new candidate columns."""
    cols = list(original.columns)
    known = set(cols)
    for c in list(candidate.columns) + candidate.missing_columns():
        if c not in known:
            known.add(c)
            cols.append(c)
    return cols


def diff(
    original: Dataset,
    candidate: Dataset | Sequence[Mapping[str, Any]],
    *,
    identity: RowIdentity | None = None,
    columns: Sequence[str] | None = None,
) -> Changeset:
    """Compute the Changeset between ``original`` and ``candidate``.

    An empty candidate against a non-empty original means every row was deleted;
    rejecting empty proposals is the caller's decision.

    Args:
        original: Current dataset
        candidate: Proposed dataset (Dataset or raw list of row mappings)
        identity: Row identity strategy (default: asset type + component + FLOC)
        columns: Columns compared on matched rows (default: compare_columns())

    Returns:
        Changeset with added/deleted rows and modified cells

    Raises:
        MalformedCandidateError: candidate is not a list of row mappings
    """
    cand = as_dataset(candidate)
    ident = identity or CompositeKeyIdentity()
    cols = list(columns) if columns is not None else compare_columns(original, cand)

    matches, added_idx, deleted_idx = match_rows(original.rows, cand.rows, ident)

    modified: list[CellModification] = []
    for oi in sorted(matches):
        ci = matches[oi]
        old_row = original.rows[oi]
        new_row = cand.rows[ci]
        for col in cols:
            old_value = old_row.get(col)
            new_value = new_row.get(col)
            if values_equal(old_value, new_value):
                continue
            modified.append(
                CellModification(
                    row_index=ci,
                    column_id=col,
                    old_value=old_value,
                    new_value=new_value,
                    original_index=oi,
                )
            )

    changeset = Changeset(
        added=[dict(cand.rows[ci]) for ci in added_idx],
        deleted=[dict(original.rows[oi]) for oi in deleted_idx],
        modified=modified,
        matches=dict(matches),
        added_positions=list(added_idx),
        deleted_positions=list(deleted_idx),
    )
    logger.debug(
        f"diff original={len(original.rows)} candidate={len(cand.rows)} "
        f"added={len(changeset.added)} modified={len(changeset.modified)} deleted={len(changeset.deleted)}"
    )
    return changeset


def apply_changeset(original: Dataset, changeset: Changeset) -> Dataset:
    """Materialize ``original`` + ``changeset``: overlay modified cells, drop deleted rows, append added rows.

    The result is equivalent to the candidate under diff() (row order may differ).
    """
    rows = [dict(r) for r in original.rows]
    for m in changeset.modified:
        if 0 <= m.original_index < len(rows):
            rows[m.original_index][m.column_id] = m.new_value
    dropped = set(changeset.deleted_positions)
    kept = [r for i, r in enumerate(rows) if i not in dropped]
    kept.extend(dict(r) for r in changeset.added)
    columns = list(original.columns)
    result = Dataset(rows=kept, columns=columns)
    columns.extend(result.missing_columns())
    return result
