from __future__ import annotations

import zipfile
from pathlib import Path
from typing import Any

import pandas as pd

from ..models.config_models import DEFAULT_MAX_UPLOAD_BYTES
from ..models.dataset import Dataset

"""FMECA workbook reader.

Layout: first sheet, first row is the header, data from the second row on.
Column names are kept exactly as written and in sheet order. Every value is
read as text; empty cells become "" and fully blank rows are skipped.
"""

VALID_SUFFIXES = (".xlsx", ".xls")


class WorkbookError(Exception):
    """Base class for workbook import/export failures."""


class InvalidWorkbookError(WorkbookError):
    """Raised when the file is missing, too large or not an Excel workbook."""


class EmptyWorkbookError(WorkbookError):
    """Raised when the sheet has no header or no data rows."""


def validate_workbook_file(path: Path, max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> None:
    if not path.exists():
        raise InvalidWorkbookError(f"file not found: {path}")
    if path.suffix.lower() not in VALID_SUFFIXES:
        raise InvalidWorkbookError(
            f"Invalid file type. Please upload an Excel file (.xlsx or .xls): {path.name}"
        )
    size = path.stat().st_size
    if size > max_bytes:
        raise InvalidWorkbookError(
            f"File too large ({size} bytes). Limit is {max_bytes} bytes."
        )


def _cell_text(val: Any) -> str:
    if val is None or (not isinstance(val, str) and pd.isna(val)):
        return ""
    return str(val)


def normalize_frame(df: pd.DataFrame) -> Dataset:
    """Turn a raw header-less DataFrame into a Dataset (first row = header)."""
    if df.shape[0] < 2:
        raise EmptyWorkbookError("Excel file appears to be empty or has no data rows")
    columns = [_cell_text(c) for c in df.iloc[0].tolist()]
    rows: list[dict[str, Any]] = []
    for raw in df.iloc[1:].itertuples(index=False):
        values = [_cell_text(v) for v in raw]
        if all(v == "" for v in values):
            continue
        rows.append({col: val for col, val in zip(columns, values, strict=False)})
    return Dataset(rows=rows, columns=columns)


def read_fmeca_workbook(path: Path, max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES) -> Dataset:
    """Read the first sheet of an FMECA workbook.

    Raises:
        InvalidWorkbookError: file missing, wrong extension, over size limit or unreadable
        EmptyWorkbookError: fewer than one data row
    """
    validate_workbook_file(path, max_bytes)
    try:
        df = pd.read_excel(path, sheet_name=0, header=None, dtype=str, keep_default_na=False)
    except (ValueError, OSError, zipfile.BadZipFile) as e:
        raise InvalidWorkbookError(f"failed to read workbook {path.name}: {e}") from e
    return normalize_frame(df)
