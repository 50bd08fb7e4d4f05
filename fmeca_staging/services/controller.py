from __future__ import annotations

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Union

from ..models.dataset import Dataset
from .errors import PersistenceError
from .staging import StagingStore

logger = logging.getLogger(__name__)

"""Accept / revert of a staged changeset.

accept() strips the preview markers, hands the cleaned dataset to the persist
callable and only on success swaps it in as the new original. A failing persist
leaves the store exactly as it was (still staged, same changeset), so accept can
simply be retried. revert() only clears staging: the original dataset is never
touched while changes are staged.
"""

__all__ = [
    "PersistFn",
    "AcceptRevertController",
]

PersistFn = Callable[[Dataset], Union[Awaitable[None], None]]


class AcceptRevertController:
    def __init__(self, store: StagingStore) -> None:
        self.store = store

    async def accept(self, persist: PersistFn) -> Dataset | None:
        """Commit the staged changeset.

        Args:
            persist: save callable (sync or async) receiving the cleaned dataset

        Returns:
            The committed dataset, or None when nothing was staged

        Raises:
            CommitInProgressError: another accept is still running
            PersistenceError: persist failed; the changeset stays staged
        """
        store = self.store
        if not store.has_staged_changes:
            logger.debug("accept: nothing staged")
            return None

        cleaned = store.begin_commit()
        try:
            result = persist(cleaned.copy())
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            store.abort_commit()
            logger.error(f"accept: persistence failed: {e}")
            raise PersistenceError(f"failed to save dataset: {e}") from e
        except BaseException:
            # キャンセル等でも STAGED に戻す (部分コミット無し)
            store.abort_commit()
            raise

        store.complete_commit(cleaned)
        logger.info(f"accept: committed rows={len(cleaned.rows)} columns={len(cleaned.columns)}")
        return cleaned

    def revert(self) -> None:
        """Discard the staged changeset.

        Raises:
            CommitInProgressError: an accept is running (revert is not allowed mid-accept)
        """
        self.store.clear()
        logger.info("revert: staged changes discarded")
