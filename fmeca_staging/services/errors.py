from __future__ import annotations

"""Staging error taxonomy.

All errors raised by the staging core derive from StagingError so that callers
can present them uniformly. None of them leave the original dataset or the
active changeset in a partially-updated state.
"""

__all__ = [
    "StagingError",
    "AlreadyStagedError",
    "CommitInProgressError",
    "PersistenceError",
    "MalformedCandidateError",
    "UnknownColumnError",
    "RowNotFoundError",
]


class StagingError(Exception):
    """Base exception for staging errors."""
    pass


class AlreadyStagedError(StagingError):
    """A changeset is already pending; accept or revert it first."""


class CommitInProgressError(StagingError):
    """An accept is already running for this dataset."""


class PersistenceError(StagingError):
    """The save collaborator failed during accept. The changeset stays staged."""


class MalformedCandidateError(StagingError):
    """The proposed dataset is not a list of row-like mappings."""


class UnknownColumnError(MalformedCandidateError):
    """The proposed dataset uses columns outside the column list (reject policy)."""

    def __init__(self, columns: list[str]) -> None:
        self.columns = columns
        super().__init__(f"candidate introduces unknown columns: {columns}")


class RowNotFoundError(StagingError):
    """A direct edit targets a row index that does not exist (or is staged for deletion)."""

    def __init__(self, row_index: int, reason: str = "no such row") -> None:
        self.row_index = row_index
        super().__init__(f"row {row_index}: {reason}")
