"""Staging core: row identity, diff, staging store, merge and accept/revert."""

from .controller import AcceptRevertController
from .diff_engine import apply_changeset, diff
from .errors import (
    AlreadyStagedError,
    CommitInProgressError,
    MalformedCandidateError,
    PersistenceError,
    RowNotFoundError,
    StagingError,
    UnknownColumnError,
)
from .merger import CellEdit, RowDelete
from .row_identity import CompositeKeyIdentity, RowIdentity
from .session import StagingSession
from .staging import StagingStore

__all__ = [
    "AcceptRevertController",
    "AlreadyStagedError",
    "CellEdit",
    "CommitInProgressError",
    "CompositeKeyIdentity",
    "MalformedCandidateError",
    "PersistenceError",
    "RowDelete",
    "RowIdentity",
    "RowNotFoundError",
    "StagingError",
    "StagingSession",
    "StagingStore",
    "UnknownColumnError",
    "apply_changeset",
    "diff",
]
