from __future__ import annotations

import copy
from dataclasses import asdict, dataclass, field
from typing import Any

from .dataset import Row

"""Changeset model: the staged diff between an original dataset and a candidate.

``added`` / ``deleted`` hold whole rows, ``modified`` holds per-cell entries for
rows present on both sides. Position bookkeeping (which candidate row each
original row was paired with, where added rows live in the candidate) is kept
alongside so that direct edits can be folded in without re-running the diff.
"""

__all__ = [
    "CellModification",
    "Changeset",
]


@dataclass
class CellModification:
    """One changed cell of a row matched on both sides.

    row_index is the row's position in the candidate (proposed) dataset;
    original_index is its position in the original dataset.
    """
    row_index: int
    column_id: str
    old_value: Any
    new_value: Any
    original_index: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "rowIndex": self.row_index,
            "columnId": self.column_id,
            "oldValue": self.old_value,
            "newValue": self.new_value,
        }


@dataclass
class Changeset:
    added: list[Row] = field(default_factory=list)
    deleted: list[Row] = field(default_factory=list)
    modified: list[CellModification] = field(default_factory=list)
    # original index -> candidate index, for every row matched on both sides
    matches: dict[int, int] = field(default_factory=dict, compare=False, repr=False)
    # candidate index of each entry in ``added`` (same order)
    added_positions: list[int] = field(default_factory=list, compare=False, repr=False)
    # original index of each entry in ``deleted`` (same order)
    deleted_positions: list[int] = field(default_factory=list, compare=False, repr=False)

    @property
    def total_changes(self) -> int:
        return len(self.added) + len(self.deleted) + len(self.modified)

    def is_empty(self) -> bool:
        return self.total_changes == 0

    def find_modification(self, original_index: int, column_id: str) -> CellModification | None:
        for m in self.modified:
            if m.original_index == original_index and m.column_id == column_id:
                return m
        return None

    def modifications_for_row(self, original_index: int) -> list[CellModification]:
        return [m for m in self.modified if m.original_index == original_index]

    def is_cell_modified(self, original_index: int, column_id: str) -> bool:
        return self.find_modification(original_index, column_id) is not None

    def is_row_deleted(self, original_index: int) -> bool:
        return original_index in self.deleted_positions

    def is_row_added(self, candidate_index: int) -> bool:
        return candidate_index in self.added_positions

    def snapshot(self) -> Changeset:
        """Deep copy, used to prove a failed operation left the changeset untouched."""
        return copy.deepcopy(self)

    def to_dict(self) -> dict[str, Any]:
        """Serializable view (camelCase keys as the front-end consumes them)."""
        return {
            "added": [dict(r) for r in self.added],
            "deleted": [dict(r) for r in self.deleted],
            "modified": [m.to_dict() for m in self.modified],
        }

    def counts(self) -> dict[str, int]:
        return {
            "added": len(self.added),
            "modified": len(self.modified),
            "deleted": len(self.deleted),
        }

    def __deepcopy__(self, memo: dict[int, Any]) -> Changeset:
        return Changeset(
            added=[dict(r) for r in self.added],
            deleted=[dict(r) for r in self.deleted],
            modified=[CellModification(**asdict(m)) for m in self.modified],
            matches=dict(self.matches),
            added_positions=list(self.added_positions),
            deleted_positions=list(self.deleted_positions),
        )
