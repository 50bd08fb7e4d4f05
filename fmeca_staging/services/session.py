from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from ..logging.error_log import ErrorLogBuffer
from ..logging.init import SUMMARY_LEVEL
from ..models.changeset import Changeset
from ..models.config_models import StagingConfig
from ..models.dataset import Dataset
from ..models.stage_state import StageStatus
from .controller import AcceptRevertController, PersistFn
from .errors import AlreadyStagedError, MalformedCandidateError, PersistenceError, RowNotFoundError
from .merger import CellEdit, RowDelete
from .row_identity import CompositeKeyIdentity, RowIdentity
from .staging import StagingStore
from .summary import describe_changes, render_change_summary

logger = logging.getLogger(__name__)

"""Staging session: one dataset, its StagingStore and the boundary handlers.

This is the layer the UI (or CLI) talks to. It routes AI proposals into the
store, turns cell-edit / row-delete events into merges, and runs accept/revert.
Recoverable failures come back as values (a ChatReply with ``error=True``, a
False from an edit handler) and are recorded in the error log; the dataset and
changeset are left as they were.
"""

__all__ = [
    "CHAT_MODES",
    "ProposalResult",
    "ProposalService",
    "ChatReply",
    "StagingSession",
]

CHAT_MODES = ("ask", "edit")
ERROR_REPLY_PREFIX = "Sorry, I ran into an error. "


@dataclass(frozen=True)
class ProposalResult:
    """Answer from the AI service. ``candidate`` is None for pure question answering."""
    response: str
    candidate: Any | None = None


class ProposalService(Protocol):
    async def propose(self, original: Dataset, instruction: str) -> ProposalResult: ...


@dataclass(frozen=True)
class ChatReply:
    text: str
    changeset: Changeset | None = None
    summary: str | None = None
    error: bool = False


class StagingSession:
    def __init__(
        self,
        original: Dataset | None = None,
        *,
        identity: RowIdentity | None = None,
        new_column_policy: str = "extend",
        error_log: ErrorLogBuffer | None = None,
    ) -> None:
        self.store = StagingStore(original, identity=identity, new_column_policy=new_column_policy)
        self.controller = AcceptRevertController(self.store)
        self.error_log = error_log if error_log is not None else ErrorLogBuffer()

    @classmethod
    def from_config(cls, original: Dataset | None, cfg: StagingConfig) -> StagingSession:
        return cls(
            original,
            identity=CompositeKeyIdentity(cfg.key_fields),
            new_column_policy=cfg.new_column_policy,
            error_log=ErrorLogBuffer(cfg.error_log_directory),
        )

    @property
    def original(self) -> Dataset:
        return self.store.original

    @property
    def changeset(self) -> Changeset | None:
        return self.store.changeset

    @property
    def has_staged_changes(self) -> bool:
        return self.store.has_staged_changes

    @property
    def status(self) -> StageStatus:
        return self.store.status

    def preview(self) -> Dataset:
        return self.store.preview()

    def load(self, dataset: Dataset) -> None:
        """Replace the original dataset (e.g. after import). Not allowed while staged."""
        if self.store.has_staged_changes or self.store.is_committing:
            raise AlreadyStagedError("cannot load a new dataset while changes are staged")
        self.store.original = dataset

    # -- AI proposals -----------------------------------------------------

    async def ask(self, service: ProposalService, instruction: str, mode: str = "edit") -> ChatReply:
        """Send an instruction to the AI service and stage any returned candidate.

        Raises:
            AlreadyStagedError: changes are staged; accept or revert first
            ValueError: empty instruction or unknown mode
        """
        if mode not in CHAT_MODES:
            raise ValueError(f"unknown chat mode: {mode}")
        if not instruction.strip():
            raise ValueError("instruction must not be empty")
        if self.store.has_staged_changes:
            raise AlreadyStagedError("changes are staged; accept or revert them before sending a new instruction")

        try:
            result = await service.propose(self.store.original.copy(), instruction)
        except Exception as e:
            logger.error(f"propose: {e}")
            self.error_log.record("propose", -1, "PROPOSAL_FAILED", str(e))
            return ChatReply(text=ERROR_REPLY_PREFIX + str(e), error=True)

        if mode == "ask" or result.candidate is None:
            # ask モードではデータ変更を受け付けない
            return ChatReply(text=result.response)
        return self.apply_proposal(result)

    def apply_proposal(self, result: ProposalResult) -> ChatReply:
        """Diff and stage ``result.candidate``; a malformed candidate becomes an error reply."""
        try:
            changeset = self.store.stage(result.candidate)
        except MalformedCandidateError as e:
            logger.warning(f"propose: discarded malformed candidate: {e}")
            self.error_log.record("stage", -1, "MALFORMED_CANDIDATE", str(e))
            return ChatReply(text=ERROR_REPLY_PREFIX + str(e), error=True)
        logger.log(SUMMARY_LEVEL, render_change_summary(changeset)[len("SUMMARY "):])
        return ChatReply(text=result.response, changeset=changeset, summary=describe_changes(changeset))

    # -- direct edits -----------------------------------------------------

    def edit_cell(self, row_index: int, column_id: str, new_value: Any) -> bool:
        """onCellEdit handler. Returns False when the edit was dropped."""
        try:
            self.store.apply_edit(CellEdit(row_index, column_id, new_value))
        except RowNotFoundError as e:
            logger.warning(f"edit dropped: {e}")
            self.error_log.record("edit", row_index, "ROW_NOT_FOUND", str(e))
            return False
        return True

    def delete_row(self, row_index: int) -> bool:
        """onRowDelete handler. Returns False when the deletion was dropped."""
        try:
            self.store.apply_delete(RowDelete(row_index))
        except RowNotFoundError as e:
            logger.warning(f"delete dropped: {e}")
            self.error_log.record("delete", row_index, "ROW_NOT_FOUND", str(e))
            return False
        return True

    # -- accept / revert --------------------------------------------------

    async def accept(self, persist: PersistFn) -> Dataset | None:
        """Commit the staged changes through ``persist``.

        Raises:
            PersistenceError: save failed; changes remain staged for retry or revert
            CommitInProgressError: another accept is running
        """
        staged = self.store.changeset.snapshot() if self.store.changeset is not None else None
        try:
            committed = await self.controller.accept(persist)
        except PersistenceError as e:
            self.error_log.record("accept", -1, "PERSISTENCE_FAILED", str(e))
            raise
        if committed is not None and staged is not None:
            logger.log(SUMMARY_LEVEL, render_change_summary(staged)[len("SUMMARY "):])
        return committed

    def revert(self) -> None:
        self.controller.revert()
