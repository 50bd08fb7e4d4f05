"""Domain models for the FMECA staging engine.

Datasets are schema-less row lists with a tracked column order; changesets are
the staged diff produced against them.
"""

from .changeset import CellModification, Changeset
from .dataset import Dataset, Row
from .stage_state import StageStatus

__all__ = [
    # Data
    "Dataset",
    "Row",
    # Staging
    "CellModification",
    "Changeset",
    "StageStatus",
]
