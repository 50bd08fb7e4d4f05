# Shared pytest fixtures
from __future__ import annotations
import tempfile
from pathlib import Path

import pandas as pd
import pytest

from fmeca_staging.logging.init import reset_logging
from fmeca_staging.models.dataset import Dataset

FMECA_COLUMNS = ["Asset Type", "Component", "FLOC", "Failure Modes", "Overall Severity Level"]


@pytest.fixture()
def temp_workdir(monkeypatch) -> Path:
    with tempfile.TemporaryDirectory() as d:
        p = Path(d)
        (p / "config").mkdir()
        (p / "data").mkdir()
        (p / "logs").mkdir()
        monkeypatch.chdir(p)
        yield p


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    yield
    reset_logging()


@pytest.fixture()
def sample_config_yaml() -> str:
    return """key_fields: ["Asset Type", "Component", "FLOC"]
new_column_policy: extend
error_log_directory: ./logs
max_upload_bytes: 1048576
database:
  host: localhost
  port: 5432
  user: fmeca
  password: secret
  database: fmeca
"""


@pytest.fixture()
def write_config(temp_workdir: Path, sample_config_yaml: str) -> Path:
    cfg = temp_workdir / "config" / "staging.yml"
    cfg.write_text(sample_config_yaml, encoding="utf-8")
    return cfg


@pytest.fixture()
def fmeca_dataset() -> Dataset:
    rows = [
        {"Asset Type": "Conveyor", "Component": "Idlers", "FLOC": "FLOC S",
         "Failure Modes": "Bearing Failure", "Overall Severity Level": "4"},
        {"Asset Type": "Conveyor", "Component": "Conveyor Belt", "FLOC": "FLOC S",
         "Failure Modes": "Belt worn", "Overall Severity Level": "4"},
        {"Asset Type": "Pump", "Component": "Impeller", "FLOC": "FLOC P1",
         "Failure Modes": "Cavitation", "Overall Severity Level": "3"},
    ]
    return Dataset(rows=rows, columns=list(FMECA_COLUMNS))


def make_workbook(path: Path, header: list[str], rows: list[list[object]]) -> Path:
    """Write a single-sheet workbook with ``header`` on the first row."""
    path.parent.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame([header] + rows)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name="FMECA Data", header=False, index=False)
    return path


@pytest.fixture()
def workbook_factory(temp_workdir: Path):
    def _make(name: str, header: list[str], rows: list[list[object]]) -> Path:
        return make_workbook(temp_workdir / "data" / name, header, rows)
    return _make
