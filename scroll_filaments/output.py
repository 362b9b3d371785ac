"""output.py

On-disk records of a run.

Outputs (all under the run directory)
-------------------------------------
- fields_XXXXXXX.npz      u, v, ucv_mag and time at each field sample
- filaments_XXXXXXX.csv   one row per filament point at each curve sample
- writhe.csv              one row per filament per curve sample (appended)
- meta.json               config + grid + start time
- summary.json            written when the run ends
"""

from __future__ import annotations

import json
import os
from typing import Any, Dict, List

import numpy as np
import pandas as pd

from .curves import Snapshot


POINT_COLUMNS = [
    "time", "component", "index", "x", "y", "z", "ax", "ay", "az",
    "curvature", "torsion", "twist", "writhe", "length",
    "vx", "vy", "vz", "spin_rate",
]

WRITHE_COLUMNS = ["time", "component", "n_points", "writhe", "twist", "length", "status",
                  "converged_fraction"]


# -------------------------
# JSON helper
# -------------------------

def _json_sanitize(o: Any):
    if isinstance(o, (np.integer,)):
        return int(o)
    if isinstance(o, (np.floating,)):
        return float(o)
    if isinstance(o, (np.bool_,)):
        return bool(o)
    if isinstance(o, (np.ndarray,)):
        return o.tolist()
    return str(o)


def ensure_dir(p: str) -> None:
    os.makedirs(p, exist_ok=True)


def save_json(path: str, obj: Any) -> None:
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, sort_keys=True, default=_json_sanitize)


# -------------------------
# Fields
# -------------------------

def sample_name(prefix: str, index: int, ext: str) -> str:
    return f"{prefix}_{index:07d}.{ext}"


def save_fields_npz(outdir: str, index: int, u: np.ndarray, v: np.ndarray, ucv_mag: np.ndarray, time: float) -> str:
    path = os.path.join(outdir, sample_name("fields", index, "npz"))
    np.savez_compressed(path, u=u, v=v, ucv_mag=ucv_mag, time=np.float64(time))
    return path


# -------------------------
# Filaments
# -------------------------

def snapshot_frame(snap: Snapshot) -> pd.DataFrame:
    rows: List[pd.DataFrame] = []
    for c in snap.curves:
        P = len(c)
        rows.append(pd.DataFrame({
            "time": np.full(P, snap.time),
            "component": np.full(P, c.component, dtype=int),
            "index": np.arange(P),
            "x": c.points[:, 0], "y": c.points[:, 1], "z": c.points[:, 2],
            "ax": c.frame[:, 0], "ay": c.frame[:, 1], "az": c.frame[:, 2],
            "curvature": c.curvature,
            "torsion": c.torsion,
            "twist": c.twist,
            "writhe": c.writhe,
            "length": c.ds,
            "vx": c.velocity[:, 0], "vy": c.velocity[:, 1], "vz": c.velocity[:, 2],
            "spin_rate": c.spin_rate,
        }))
    if not rows:
        return pd.DataFrame(columns=POINT_COLUMNS)
    return pd.concat(rows, ignore_index=True)[POINT_COLUMNS]


def totals_frame(snap: Snapshot) -> pd.DataFrame:
    rows = [
        {
            "time": snap.time,
            "component": c.component,
            "n_points": len(c),
            "writhe": c.total_writhe,
            "twist": c.total_twist,
            "length": c.length,
            "status": c.status,
            "converged_fraction": c.converged_fraction,
        }
        for c in snap.curves
    ]
    return pd.DataFrame(rows, columns=WRITHE_COLUMNS)


def write_snapshot(outdir: str, snap: Snapshot) -> str:
    path = os.path.join(outdir, sample_name("filaments", snap.index, "csv"))
    snapshot_frame(snap).to_csv(path, index=False)
    return path


def append_totals(path: str, snap: Snapshot) -> None:
    df = totals_frame(snap)
    header = not os.path.exists(path)
    if df.empty and not header:
        return
    df.to_csv(path, mode="a", header=header, index=False)


def read_totals(path: str) -> pd.DataFrame:
    return pd.read_csv(path)


# -------------------------
# Meta / summary
# -------------------------

def write_meta(outdir: str, meta: Dict[str, Any]) -> None:
    save_json(os.path.join(outdir, "meta.json"), meta)


def write_summary(outdir: str, summary: Dict[str, Any]) -> None:
    save_json(os.path.join(outdir, "summary.json"), summary)


def load_meta(run_dir: str) -> Dict[str, Any]:
    path = os.path.join(run_dir, "meta.json")
    if not os.path.exists(path):
        raise FileNotFoundError(f"meta.json not found in {run_dir}")
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)
