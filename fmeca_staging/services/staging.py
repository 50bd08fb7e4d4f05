from __future__ import annotations

import logging
from typing import Any

from ..models.changeset import Changeset
from ..models.dataset import (
    ADDED_MARKER,
    DELETED_MARKER,
    MODIFIED_MARKER,
    Dataset,
    strip_markers,
)
from ..models.stage_state import StageStatus
from .diff_engine import as_dataset, compare_columns, diff
from .errors import AlreadyStagedError, CommitInProgressError, UnknownColumnError
from .merger import CellEdit, RowDelete, merge_direct_edit, merge_row_delete
from .row_identity import CompositeKeyIdentity, RowIdentity

logger = logging.getLogger(__name__)

"""StagingStore: the single in-flight changeset of one dataset.

One store per dataset/session (no module-level singleton). It owns the
original dataset, the proposed dataset, the changeset and a snapshot of the
original taken at stage time. The preview is derived on every call from the
original and the changeset and is never stored.
"""

__all__ = [
    "NEW_COLUMN_POLICIES",
    "StagingStore",
]

NEW_COLUMN_POLICIES = ("extend", "reject")


class StagingStore:
    """Holds at most one staged changeset for a dataset."""

    def __init__(
        self,
        original: Dataset | None = None,
        *,
        identity: RowIdentity | None = None,
        new_column_policy: str = "extend",
    ) -> None:
        if new_column_policy not in NEW_COLUMN_POLICIES:
            raise ValueError(f"unknown new_column_policy: {new_column_policy}")
        self.original: Dataset = original if original is not None else Dataset()
        self.identity: RowIdentity = identity or CompositeKeyIdentity()
        self.new_column_policy = new_column_policy
        self.proposed: Dataset | None = None
        self.changeset: Changeset | None = None
        self.previous: Dataset | None = None
        self._status = StageStatus.IDLE

    @property
    def status(self) -> StageStatus:
        return self._status

    @property
    def has_staged_changes(self) -> bool:
        return self.changeset is not None

    @property
    def is_committing(self) -> bool:
        return self._status is StageStatus.COMMITTING

    def _guard_not_committing(self, action: str) -> None:
        if self.is_committing:
            raise CommitInProgressError(f"cannot {action}: accept already committing")

    def _resolve_columns(self, candidate: Dataset) -> list[str]:
        columns = compare_columns(self.original, candidate)
        new_cols = columns[len(self.original.columns):]
        if new_cols and self.new_column_policy == "reject":
            raise UnknownColumnError(new_cols)
        if new_cols:
            logger.info(f"extending columns with {new_cols}")
        return columns

    def stage(self, candidate: Any, changeset: Changeset | None = None) -> Changeset:
        """Stage a candidate dataset.

        When ``changeset`` is None it is computed with the store's identity.

        Raises:
            AlreadyStagedError: a changeset is already pending
            CommitInProgressError: an accept is running
            MalformedCandidateError: candidate is not a list of row mappings
        """
        self._guard_not_committing("stage")
        if self.changeset is not None:
            raise AlreadyStagedError("changes are already staged; accept or revert them first")
        cand = as_dataset(candidate)
        columns = self._resolve_columns(cand)
        proposed = Dataset(rows=[strip_markers(r) for r in cand.rows], columns=columns)
        if changeset is None:
            changeset = diff(self.original, proposed, identity=self.identity, columns=columns)
        self.previous = self.original.copy()
        self.proposed = proposed
        self.changeset = changeset
        self._status = StageStatus.STAGED
        logger.debug(f"staged total_changes={changeset.total_changes}")
        return changeset

    def preview(self) -> Dataset:
        """Original rows with modified cells overlaid, then added rows.

        Rows carry markers for rendering: ``__hasModifiedCells`` on rows with a
        modified cell, ``__isDeletedRow`` on rows staged for deletion,
        ``__isAddedRow`` on appended rows.
        """
        if self.changeset is None:
            return self.original.copy()
        cs = self.changeset
        by_row: dict[int, list[Any]] = {}
        for m in cs.modified:
            by_row.setdefault(m.original_index, []).append(m)
        deleted = set(cs.deleted_positions)

        rows = []
        for oi, row in enumerate(self.original.rows):
            r = dict(row)
            for m in by_row.get(oi, ()):
                r[m.column_id] = m.new_value
            if oi in by_row:
                r[MODIFIED_MARKER] = True
            if oi in deleted:
                r[DELETED_MARKER] = True
            rows.append(r)
        for added in cs.added:
            r = dict(added)
            r[ADDED_MARKER] = True
            rows.append(r)
        columns = list(self.proposed.columns) if self.proposed is not None else list(self.original.columns)
        return Dataset(rows=rows, columns=columns)

    def apply_edit(self, edit: CellEdit) -> None:
        self._guard_not_committing("edit")
        merge_direct_edit(self.original, self.changeset, self.proposed, edit)

    def apply_delete(self, delete: RowDelete) -> None:
        self._guard_not_committing("delete rows")
        merge_row_delete(self.original, self.changeset, self.proposed, delete)

    def begin_commit(self) -> Dataset:
        """Enter COMMITTING and return the proposed dataset with markers stripped."""
        self._guard_not_committing("accept")
        if self.proposed is None or self.changeset is None:
            raise ValueError("nothing staged")
        self._status = StageStatus.COMMITTING
        return self.proposed.cleaned()

    def abort_commit(self) -> None:
        if self.is_committing:
            self._status = StageStatus.STAGED

    def complete_commit(self, cleaned: Dataset) -> None:
        self.original = cleaned
        self._status = StageStatus.IDLE
        self.clear()

    def clear(self) -> None:
        """Drop proposed, changeset and previous. The original is untouched."""
        self._guard_not_committing("clear")
        self.proposed = None
        self.changeset = None
        self.previous = None
        self._status = StageStatus.IDLE
