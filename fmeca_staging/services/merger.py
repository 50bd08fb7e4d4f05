from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass
from typing import Any

from ..models.changeset import CellModification, Changeset
from ..models.dataset import Dataset, values_equal
from .errors import RowNotFoundError

logger = logging.getLogger(__name__)

"""Fold direct user edits into a staged changeset.

While a changeset is staged the UI keeps showing the preview dataset, so edit
and delete events arrive with *preview* row indices: ``0..len(original)-1``
address original rows (deleted ones included), anything after that addresses
added rows in order.

With no changeset staged the same events mutate the original dataset directly.
Edits are applied in the order they are issued; the last write to a cell wins.
"""

__all__ = [
    "CellEdit",
    "RowDelete",
    "locate_preview_row",
    "merge_direct_edit",
    "merge_row_delete",
]


@dataclass(frozen=True)
class CellEdit:
    row_index: int  # preview row index
    column_id: str
    new_value: Any


@dataclass(frozen=True)
class RowDelete:
    row_index: int  # preview row index


def locate_preview_row(original: Dataset, changeset: Changeset, preview_index: int) -> tuple[str, int]:
    """Map a preview row index to ("original", original_index) or ("added", added_position)."""
    n = len(original.rows)
    if 0 <= preview_index < n:
        return "original", preview_index
    k = preview_index - n
    if preview_index >= n and k < len(changeset.added):
        return "added", k
    raise RowNotFoundError(preview_index)


def _ensure_column(dataset: Dataset | None, column_id: str) -> None:
    if dataset is not None and column_id not in dataset.columns:
        dataset.columns.append(column_id)


def _shift_after(changeset: Changeset, removed: int) -> None:
    # candidate 側の行を1つ削除したので、それより後ろの index を詰める
    for oi, ci in changeset.matches.items():
        if ci > removed:
            changeset.matches[oi] = ci - 1
    changeset.added_positions[:] = [p - 1 if p > removed else p for p in changeset.added_positions]
    for m in changeset.modified:
        if m.row_index > removed:
            m.row_index -= 1


def merge_direct_edit(
    original: Dataset,
    changeset: Changeset | None,
    proposed: Dataset | None,
    edit: CellEdit,
) -> Changeset | None:
    """Apply a cell edit.

    Idle (``changeset is None``): the original row is updated in place.
    Staged: the edit is recorded in ``changeset`` and mirrored onto ``proposed``:
    - added row: the row itself is updated (no modified entry)
    - matched row: the (row, column) modified entry is overwritten or appended;
      an edit back to the original value removes the entry

    Returns:
        The (mutated) changeset, or None when idle

    Raises:
        RowNotFoundError: index out of range, or the row is staged for deletion
    """
    if changeset is None:
        if not 0 <= edit.row_index < len(original.rows):
            raise RowNotFoundError(edit.row_index)
        original.rows[edit.row_index][edit.column_id] = edit.new_value
        _ensure_column(original, edit.column_id)
        return None

    if proposed is None:
        raise ValueError("proposed dataset required while a changeset is staged")

    kind, pos = locate_preview_row(original, changeset, edit.row_index)
    if kind == "added":
        changeset.added[pos][edit.column_id] = edit.new_value
        proposed.rows[changeset.added_positions[pos]][edit.column_id] = edit.new_value
        _ensure_column(proposed, edit.column_id)
        logger.debug(f"edit added row={pos} col={edit.column_id}")
        return changeset

    oi = pos
    if changeset.is_row_deleted(oi):
        raise RowNotFoundError(edit.row_index, "row is staged for deletion")
    ci = changeset.matches.get(oi)
    if ci is None:  # pragma: no cover (matched or deleted is exhaustive)
        raise RowNotFoundError(edit.row_index, "row has no counterpart in the proposal")

    old_value = original.rows[oi].get(edit.column_id)
    existing = changeset.find_modification(oi, edit.column_id)
    if values_equal(old_value, edit.new_value):
        if existing is not None:
            changeset.modified.remove(existing)
    elif existing is not None:
        existing.new_value = edit.new_value  # last write wins
    else:
        changeset.modified.append(
            CellModification(
                row_index=ci,
                column_id=edit.column_id,
                old_value=old_value,
                new_value=edit.new_value,
                original_index=oi,
            )
        )
    proposed.rows[ci][edit.column_id] = edit.new_value
    _ensure_column(proposed, edit.column_id)
    logger.debug(f"edit matched row={oi} col={edit.column_id}")
    return changeset


def merge_row_delete(
    original: Dataset,
    changeset: Changeset | None,
    proposed: Dataset | None,
    delete: RowDelete,
) -> Changeset | None:
    """Apply a row deletion.

    Idle: the row is removed from ``original``.
    Staged: deleting an added row un-adds it; deleting a matched original row
    moves it to ``deleted`` (dropping its modified entries). Either way the row
    leaves ``proposed``.

    Raises:
        RowNotFoundError: index out of range, or the row is already deleted
    """
    if changeset is None:
        if not 0 <= delete.row_index < len(original.rows):
            raise RowNotFoundError(delete.row_index)
        original.rows.pop(delete.row_index)
        return None

    if proposed is None:
        raise ValueError("proposed dataset required while a changeset is staged")

    kind, pos = locate_preview_row(original, changeset, delete.row_index)
    if kind == "added":
        ci = changeset.added_positions.pop(pos)
        changeset.added.pop(pos)
        proposed.rows.pop(ci)
        _shift_after(changeset, ci)
        return changeset

    oi = pos
    if changeset.is_row_deleted(oi):
        raise RowNotFoundError(delete.row_index, "row is already staged for deletion")
    ci = changeset.matches.pop(oi)
    changeset.modified[:] = [m for m in changeset.modified if m.original_index != oi]
    at = bisect.bisect_left(changeset.deleted_positions, oi)
    changeset.deleted_positions.insert(at, oi)
    changeset.deleted.insert(at, dict(original.rows[oi]))
    proposed.rows.pop(ci)
    _shift_after(changeset, ci)
    return changeset
