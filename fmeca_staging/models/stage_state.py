from __future__ import annotations

from enum import Enum

"""Staging lifecycle status.

State transitions (per dataset):
    IDLE --stage--> STAGED --accept ok--> IDLE
    STAGED --accept begins--> COMMITTING --persist fails--> STAGED
    STAGED --revert--> IDLE
"""


class StageStatus(Enum):
    """Status of a StagingStore.

    - IDLE: no changeset; direct edits mutate the original dataset
    - STAGED: one changeset pending accept/revert
    - COMMITTING: accept in flight (persistence I/O running)
    """
    IDLE = "idle"
    STAGED = "staged"
    COMMITTING = "committing"
