from __future__ import annotations

import time

import numpy as np

from fmeca_staging.models.dataset import Dataset
from fmeca_staging.services.diff_engine import diff
from fmeca_staging.services.merger import CellEdit
from fmeca_staging.services.staging import StagingStore

"""Performance smoke test: diff and staged edits on a 10k-row dataset.

Budgets are lenient so CI stays stable; they catch accidental O(n^2) matching.
"""

COLUMNS = ["Asset Type", "Component", "FLOC", "Failure Modes", "Overall Severity Level", "Notes"]


def generate_dataset(rows: int = 10_000, seed: int = 42) -> Dataset:
    rng = np.random.default_rng(seed)
    severities = rng.integers(1, 6, size=rows)
    data = [
        {
            "Asset Type": ("Conveyor", "Pump", "Crusher")[i % 3],
            "Component": f"Component {i % 50}",
            "FLOC": f"FLOC-{i:06d}",
            "Failure Modes": "Bearing Failure",
            "Overall Severity Level": str(int(severities[i])),
            "Notes": "",
        }
        for i in range(rows)
    ]
    return Dataset(rows=data, columns=list(COLUMNS))


def test_diff_throughput():
    original = generate_dataset()
    candidate = [dict(r) for r in original.rows]
    for i in range(0, len(candidate), 10):
        candidate[i]["Overall Severity Level"] = "5" if candidate[i]["Overall Severity Level"] != "5" else "1"
    candidate = candidate[500:]
    candidate.extend({"Asset Type": "Pump", "Component": "Impeller", "FLOC": f"NEW-{j}"} for j in range(500))

    start = time.perf_counter()
    cs = diff(original, candidate)
    elapsed = time.perf_counter() - start

    assert len(cs.deleted) == 500
    assert len(cs.added) == 500
    assert len(cs.modified) == 950
    assert elapsed < 5.0, f"diff too slow: {elapsed:.3f}s"
    throughput = len(original.rows) / elapsed
    assert throughput > 2_000


def test_staged_edits_throughput():
    original = generate_dataset(2_000)
    store = StagingStore(original)
    store.stage([dict(r) for r in original.rows])

    start = time.perf_counter()
    for i in range(0, 2_000, 2):
        store.apply_edit(CellEdit(i, "Notes", f"checked {i}"))
    preview = store.preview()
    elapsed = time.perf_counter() - start

    assert len(store.changeset.modified) == 1_000
    assert preview.rows[0]["Notes"] == "checked 0"
    assert elapsed < 10.0, f"staged edits too slow: {elapsed:.3f}s"
