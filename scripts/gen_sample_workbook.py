#!/usr/bin/env python3
"""Sample FMECA workbook generator.

Writes a synthetic FMECA table (header on the first row) and, optionally, a
"candidate" copy with a few edited, removed and appended rows, so that the
`fmeca-stage diff` command has something to chew on.

    python scripts/gen_sample_workbook.py --rows 200 --out data/sample.xlsx --candidate data/candidate.xlsx
"""
from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

ASSET_TYPES = {
    "Conveyor": ["Idlers", "Conveyor Belt", "Drive Pulley", "Gearbox", "Motor"],
    "Pump": ["Impeller", "Mechanical Seal", "Bearing", "Motor", "Casing"],
    "Crusher": ["Liner", "Mantle", "Eccentric Bushing", "Lube System"],
}
FAILURE_MODES = ["Bearing Failure", "Belt worn", "Seal leak", "Overheating", "Cracked", "Misalignment"]
CONTROLS = ["Routine Inspection", "Vibration Monitoring", "Oil Analysis", "Thermography"]

COLUMNS = [
    "Asset Type",
    "Classification",
    "FLOC",
    "Component",
    "Failure Modes",
    "Effect of Final Failure",
    "Overall Severity Level",
    "Safety Severity Level",
    "Control Required",
    "Recommended Control Frequency Interval",
    "Recommended Control Frequency Units",
]


def generate_rows(rows: int, seed: int = 42) -> list[dict[str, Any]]:
    rng = np.random.default_rng(seed)
    out: list[dict[str, Any]] = []
    assets = list(ASSET_TYPES)
    for i in range(rows):
        asset = assets[i % len(assets)]
        components = ASSET_TYPES[asset]
        component = components[(i // len(assets)) % len(components)]
        # FLOC はコンポーネント組み合わせごとに一意にする
        floc = f"FLOC-{asset[:3].upper()}-{i // (len(assets) * len(components)):04d}"
        out.append({
            "Asset Type": asset,
            "Classification": f"{asset} Unit",
            "FLOC": floc,
            "Component": component,
            "Failure Modes": str(rng.choice(FAILURE_MODES)),
            "Effect of Final Failure": "Production Loss",
            "Overall Severity Level": str(int(rng.integers(1, 6))),
            "Safety Severity Level": str(int(rng.integers(1, 6))),
            "Control Required": f"{component} - {rng.choice(CONTROLS)}",
            "Recommended Control Frequency Interval": str(int(rng.integers(1, 13))),
            "Recommended Control Frequency Units": str(rng.choice(["Weeks", "Months"])),
        })
    return out


def mutate_rows(rows: list[dict[str, Any]], seed: int = 7, fraction: float = 0.05) -> list[dict[str, Any]]:
    """Return a candidate copy: some severities changed, some rows dropped, some appended."""
    rng = np.random.default_rng(seed)
    n = len(rows)
    k = max(1, int(n * fraction))
    candidate = [dict(r) for r in rows]
    for idx in rng.choice(n, size=min(k, n), replace=False):
        candidate[int(idx)]["Overall Severity Level"] = "5"
    drop = set(int(i) for i in rng.choice(n, size=min(k, n), replace=False))
    candidate = [r for i, r in enumerate(candidate) if i not in drop]
    for j in range(k):
        candidate.append({
            "Asset Type": "Pump",
            "Classification": "Pump Unit",
            "FLOC": f"FLOC-NEW-{j:04d}",
            "Component": "Impeller",
            "Failure Modes": "Cavitation",
            "Effect of Final Failure": "Reduced flow",
            "Overall Severity Level": "3",
            "Safety Severity Level": "1",
            "Control Required": "Impeller - Vibration Monitoring",
            "Recommended Control Frequency Interval": "1",
            "Recommended Control Frequency Units": "Months",
        })
    return candidate


def write_workbook(path: Path, rows: list[dict[str, Any]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    df = pd.DataFrame(rows, columns=COLUMNS)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name="FMECA Data", index=False)


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Generate sample FMECA workbooks")
    p.add_argument("--rows", type=int, default=50)
    p.add_argument("--seed", type=int, default=42)
    p.add_argument("--out", type=Path, default=Path("data/sample_fmeca.xlsx"))
    p.add_argument("--candidate", type=Path, default=None, help="Also write a mutated candidate workbook")
    args = p.parse_args(argv)

    if args.rows <= 0:
        print("rows must be positive", file=sys.stderr)
        return 1

    rows = generate_rows(args.rows, args.seed)
    write_workbook(args.out, rows)
    print(f"wrote {args.out} rows={len(rows)}")
    if args.candidate is not None:
        cand = mutate_rows(rows)
        write_workbook(args.candidate, cand)
        print(f"wrote {args.candidate} rows={len(cand)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
