"""driver.py

Time loop of a filament run.

Per timestep n (t = start_time + n*dt):
- if a curve sample or a field sample is due, grad u x grad v is recomputed
- curve sample: extract filaments, process their geometry, hand the snapshot
  to the tracker; the snapshot the tracker releases (the previous one, now
  with velocities and spin rates) is written out
- field sample: u, v and |grad u x grad v| are written
- the integrator advances one step

Sample k of a cadence `every` is due once n >= sample_step(k, every, dt),
the step nearest k * every (halves round up).
At the end the tracker is flushed so the last snapshot is written too.

Outputs
-------
See output.py. With save_png, fields_XXXXXXX.png mid-plane images and a
montage of the last ones; with save_plots, writhe.png and per-snapshot
filament projections.
"""

from __future__ import annotations

import hashlib
import math
import json
import os
import sys
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from .config import FilamentConfig
from .crossgrad import central_gradient, cross_gradient, magnitude
from .curves import Snapshot
from .extraction import ExtractorSettings, FilamentExtractor
from .geometry import GeometryProcessor
from .grid import Grid
from .initial import initial_state
from .integrator import FHNParams, FieldIntegrator, FieldState
from .output import (
    _json_sanitize,
    append_totals,
    ensure_dir,
    read_totals,
    save_fields_npz,
    sample_name,
    write_meta,
    write_snapshot,
    write_summary,
)
from .tracking import CorrespondenceTracker
from . import viz


def stable_hash(d: Dict[str, Any]) -> str:
    s = json.dumps(d, sort_keys=True, default=_json_sanitize)
    return hashlib.sha1(s.encode("utf-8")).hexdigest()[:10]


def build_grid(c: FilamentConfig) -> Grid:
    return Grid(c.nx, c.ny, c.nz, c.h, c.boundary)


def sample_step(k: int, every: float, dt: float) -> int:
    return int(math.floor(k * every / dt + 0.5 + 1e-9))


class FilamentRun:
    """One run: owns the integrator, extractor, geometry processor and tracker."""

    def __init__(self, cfg: FilamentConfig, outdir: str, state: Optional[FieldState] = None):
        self.cfg = cfg
        self.outdir = outdir
        self.grid = build_grid(cfg)
        self.state = state if state is not None else initial_state(cfg, self.grid)
        self.integrator = FieldIntegrator(
            self.grid,
            FHNParams(cfg.epsilon, cfg.beta, cfg.gamma),
            dt=cfg.dt,
            scheme=cfg.integrator,
            workers=cfg.workers,
        )
        self.extractor = FilamentExtractor(
            self.grid,
            ExtractorSettings(wavelength=cfg.wavelength, threshold=cfg.threshold, max_steps=cfg.max_steps),
        )
        self.geometry = GeometryProcessor(self.grid, cfg.wavelength, kappa_floor=cfg.straight_curvature)
        self.tracker = CorrespondenceTracker(self.grid, interval=cfg.curve_every)

        self.filament_counts: List[int] = []
        self.discarded = 0
        self.misses = 0
        self.written_snapshots = 0
        self.field_samples = 0
        self.field_pngs: List[str] = []

    def log(self, msg: str) -> None:
        if self.cfg.verbose:
            print(msg)

    # ----------------------------------------------------------------

    def sample_curves(self, ucv: np.ndarray, t: float, index: int) -> Snapshot:
        curves = self.extractor.extract(ucv)
        self.discarded += self.extractor.stats.discarded
        grad_u = central_gradient(self.state.u, self.grid)
        for c in curves:
            self.geometry.process(c, self.state.u, grad_u)
        snap = Snapshot(time=t, curves=curves, index=index)
        self.filament_counts.append(len(curves))
        self.log(f"T = {t:.3f}  filaments={len(curves)}  discarded={self.extractor.stats.discarded}")
        return snap

    def emit(self, snap: Optional[Snapshot]) -> None:
        if snap is None:
            return
        write_snapshot(self.outdir, snap)
        append_totals(os.path.join(self.outdir, "writhe.csv"), snap)
        if self.cfg.save_plots and snap.curves:
            viz.plot_curves(snap, os.path.join(self.outdir, sample_name("filaments", snap.index, "png")), self.grid.extent)
        self.written_snapshots += 1

    def sample_fields(self, ucv: np.ndarray, t: float, index: int) -> None:
        mag = magnitude(ucv)
        if self.cfg.save_fields:
            save_fields_npz(self.outdir, index, self.state.u, self.state.v, mag, t)
        if self.cfg.save_png:
            path = os.path.join(self.outdir, sample_name("fields", index, "png"))
            self.field_pngs.append(viz.slice_png(mag, path))
        self.field_samples += 1

    # ----------------------------------------------------------------

    def run(self) -> Dict[str, Any]:
        c = self.cfg
        nsteps = int(round(c.total_time / c.dt))
        q = 0
        p = 0
        t0 = time.time()
        try:
            for n in range(nsteps + 1):
                t = c.start_time + n * c.dt
                curve_due = n >= sample_step(q, c.curve_every, c.dt)
                field_due = n >= sample_step(p, c.field_every, c.dt)
                if curve_due or field_due:
                    ucv = cross_gradient(self.state.u, self.state.v, self.grid, self.integrator.pool)
                    if curve_due:
                        snap = self.sample_curves(ucv, t, q)
                        done = self.tracker.update(snap)
                        if done is not None:
                            self.misses += self.tracker.stats.misses
                            self.emit(done)
                        q += 1
                    if field_due:
                        self.sample_fields(ucv, t, p)
                        p += 1
                if n < nsteps:
                    self.integrator.step(self.state)
            self.emit(self.tracker.flush())
        finally:
            self.integrator.close()

        if c.save_png and self.field_pngs:
            viz.montage(self.field_pngs, os.path.join(self.outdir, "fields_montage.png"))
        writhe_path = os.path.join(self.outdir, "writhe.csv")
        if c.save_plots and os.path.exists(writhe_path):
            viz.plot_totals(read_totals(writhe_path), os.path.join(self.outdir, "writhe.png"))

        if not np.all(np.isfinite(self.state.u)):
            print("[warn] u contains non-finite values; reduce dt", file=sys.stderr)

        return {
            "steps": nsteps,
            "final_time": c.start_time + nsteps * c.dt,
            "curve_samples": q,
            "field_samples": self.field_samples,
            "snapshots_written": self.written_snapshots,
            "filaments_per_sample": self.filament_counts,
            "discarded_traces": self.discarded,
            "correspondence_misses": self.misses,
            "wall_seconds": time.time() - t0,
        }


# --------------------------
# Main simulation
# --------------------------

def run_simulation(cfg: Dict[str, Any], outdir: str, state: Optional[FieldState] = None) -> Tuple[str, Dict[str, Any]]:
    """
    Run one simulation with parameters in cfg (dict).
    Returns the output directory and a summary dict.
    """
    fc = FilamentConfig.from_dict(cfg)
    ensure_dir(outdir)

    run = FilamentRun(fc, outdir, state)
    meta = {
        "created": datetime.now(timezone.utc).isoformat(),
        "param_hash": stable_hash(fc.to_dict()),
        "cfg": fc.to_dict(),
        "grid": {"shape": list(run.grid.shape), "h": fc.h, "periodic": list(run.grid.periodic)},
    }
    write_meta(outdir, meta)

    summary = run.run()
    summary["param_hash"] = meta["param_hash"]
    write_summary(outdir, summary)
    return outdir, summary
