#!/usr/bin/env python3
"""
run_filaments.py

Runner for FitzHugh-Nagumo scroll-wave filament experiments.

Saves:
 - outputs/<param_hash>/fields_*.npz / fields_*.png
 - outputs/<param_hash>/filaments_*.csv
 - outputs/<param_hash>/writhe.csv
 - outputs/<param_hash>/meta.json, summary.json

Usage:
    python run_filaments.py --config ring.json --workers 4
    python run_filaments.py --init-mode polyline --init-file trefoil.txt --boundary z_periodic

Notes:
 - Command-line flags override values from --config.
 - A failing initial condition (missing or malformed file) aborts the run
   before the time loop with exit status 1.
"""

import argparse
import os
import sys

from scroll_filaments.config import FilamentConfig, load_config
from scroll_filaments.driver import run_simulation, stable_hash


# -------------------------
# CLI
# -------------------------
def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="FitzHugh-Nagumo filament tracker")
    parser.add_argument("--config", type=str, default=None, help="JSON config (bare cfg or meta.json)")
    parser.add_argument("--outdir", type=str, default=None, help="Run directory (default outputs/<param_hash>)")
    parser.add_argument("--outbase", type=str, default="outputs", help="Base output directory")
    parser.add_argument("--nx", type=int, default=None)
    parser.add_argument("--ny", type=int, default=None)
    parser.add_argument("--nz", type=int, default=None)
    parser.add_argument("--h", type=float, default=None, help="Grid spacing")
    parser.add_argument("--dt", type=float, default=None, help="Timestep")
    parser.add_argument("--total-time", type=float, default=None)
    parser.add_argument("--start-time", type=float, default=None)
    parser.add_argument("--curve-every", type=float, default=None, help="Filament sampling interval")
    parser.add_argument("--field-every", type=float, default=None, help="Field dump interval")
    parser.add_argument("--boundary", type=str, default=None, choices=["reflecting", "z_periodic", "periodic"])
    parser.add_argument("--integrator", type=str, default=None, choices=["rk4", "euler"])
    parser.add_argument("--workers", type=int, default=None, help="Threads for the grid passes")
    parser.add_argument("--init-mode", type=str, default=None,
                        choices=["function", "uv_file", "phi_file", "polyline", "surface"])
    parser.add_argument("--init-function", type=str, default=None, choices=["straight", "ring", "linked"])
    parser.add_argument("--init-file", type=str, default=None)
    parser.add_argument("--ring-radius", type=float, default=None)
    parser.add_argument("--no-png", action="store_true", help="Skip field slice images")
    parser.add_argument("--no-plots", action="store_true", help="Skip writhe / filament plots")
    parser.add_argument("--quiet", action="store_true")
    return parser.parse_args(argv)


def build_cfg(args) -> dict:
    cfg = load_config(args.config) if args.config else {}
    overrides = {
        "nx": args.nx, "ny": args.ny, "nz": args.nz, "h": args.h, "dt": args.dt,
        "total_time": args.total_time, "start_time": args.start_time,
        "curve_every": args.curve_every, "field_every": args.field_every,
        "boundary": args.boundary, "integrator": args.integrator, "workers": args.workers,
        "init_mode": args.init_mode, "init_function": args.init_function,
        "init_file": args.init_file, "ring_radius": args.ring_radius,
    }
    cfg.update({k: v for k, v in overrides.items() if v is not None})
    if args.no_png:
        cfg["save_png"] = False
    if args.no_plots:
        cfg["save_plots"] = False
    if args.quiet:
        cfg["verbose"] = False
    return cfg


def main(argv=None):
    args = parse_args(argv)
    try:
        cfg = build_cfg(args)
        outdir = args.outdir or os.path.join(args.outbase, stable_hash(FilamentConfig.from_dict(cfg).to_dict()))
        outdir, summary = run_simulation(cfg, outdir)
    except (FileNotFoundError, ValueError) as e:
        print(f"[ERR] {e}", file=sys.stderr)
        return 1
    print(f"[OK] Done: {outdir}  ({summary['snapshots_written']} snapshots, {summary['wall_seconds']:.1f}s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
