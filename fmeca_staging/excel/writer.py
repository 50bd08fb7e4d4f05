from __future__ import annotations

from datetime import date
from pathlib import Path

import pandas as pd

from ..models.dataset import Dataset
from .reader import EmptyWorkbookError

"""FMECA workbook export: one sheet, header row in column order, markers stripped."""

EXPORT_SHEET_NAME = "FMECA Data"


def default_export_name(today: date | None = None) -> str:
    d = today or date.today()
    return f"FMECA_Export_{d.isoformat()}.xlsx"


def dataset_to_frame(dataset: Dataset) -> pd.DataFrame:
    cleaned = dataset.cleaned()
    cols = cleaned.columns
    records = [{c: ("" if r.get(c) is None else r.get(c)) for c in cols} for r in cleaned.rows]
    return pd.DataFrame(records, columns=cols)


def write_fmeca_workbook(dataset: Dataset, path: Path) -> Path:
    """Write ``dataset`` to ``path`` (directories are created as needed).

    Raises:
        EmptyWorkbookError: no rows or no columns to export
    """
    if not dataset.rows or not dataset.columns:
        raise EmptyWorkbookError("No data to export")
    df = dataset_to_frame(dataset)
    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=EXPORT_SHEET_NAME, index=False)
    return path
