from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

"""Dataset model for FMECA tables.

A Row is a plain column-name -> scalar mapping with no fixed schema. A Dataset
pairs an ordered row list with an ordered column list; the column order drives
display and is preserved through save/load.

Preview rows carry internal marker keys (``__isAddedRow`` etc.). They are for
rendering only and must be stripped before any save or export.
"""

__all__ = [
    "Row",
    "Dataset",
    "ADDED_MARKER",
    "MODIFIED_MARKER",
    "DELETED_MARKER",
    "MARKER_KEYS",
    "strip_markers",
    "is_blank",
    "values_equal",
]

Row = dict[str, Any]

ADDED_MARKER = "__isAddedRow"
MODIFIED_MARKER = "__hasModifiedCells"
DELETED_MARKER = "__isDeletedRow"
MARKER_KEYS = frozenset({ADDED_MARKER, MODIFIED_MARKER, DELETED_MARKER})


def is_blank(value: Any) -> bool:
    """Null-equivalence: None and "" (or a missing key) are the same empty cell."""
    return value is None or value == ""


def values_equal(old: Any, new: Any) -> bool:
    """Compare two cell values the way the diff does.

    Blank values are equal to each other; everything else is compared by its
    string form so that ``3`` and ``"3"`` never produce a spurious change.
    """
    if is_blank(old) and is_blank(new):
        return True
    if is_blank(old) or is_blank(new):
        return False
    if old == new:
        return True
    return str(old) == str(new)


def strip_markers(row: Mapping[str, Any]) -> Row:
    return {k: v for k, v in row.items() if k not in MARKER_KEYS}


@dataclass
class Dataset:
    """Ordered rows + ordered columns."""
    rows: list[Row] = field(default_factory=list)
    columns: list[str] = field(default_factory=list)

    @classmethod
    def from_rows(cls, rows: Iterable[Mapping[str, Any]], columns: Iterable[str] | None = None) -> Dataset:
        """Build a Dataset, deriving columns from row keys when none are given.

        Derived columns follow first-appearance order across all rows.
        """
        row_list = [dict(r) for r in rows]
        if columns is None:
            cols: list[str] = []
            seen: set[str] = set()
            for r in row_list:
                for k in r:
                    if k not in seen and k not in MARKER_KEYS:
                        seen.add(k)
                        cols.append(k)
        else:
            cols = list(columns)
        return cls(rows=row_list, columns=cols)

    def copy(self) -> Dataset:
        # 行 dict 単位でコピー (値はスカラー前提なので shallow で十分)
        return Dataset(rows=[dict(r) for r in self.rows], columns=list(self.columns))

    def cleaned(self) -> Dataset:
        """Return a copy with every internal marker key removed."""
        return Dataset(rows=[strip_markers(r) for r in self.rows], columns=list(self.columns))

    def missing_columns(self) -> list[str]:
        """Columns used by rows but absent from ``columns`` (first-appearance order)."""
        known = set(self.columns)
        extra: list[str] = []
        for r in self.rows:
            for k in r:
                if k not in known and k not in MARKER_KEYS:
                    known.add(k)
                    extra.append(k)
        return extra

    def __len__(self) -> int:
        return len(self.rows)
