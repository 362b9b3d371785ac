"""config.py

Run configuration.

Configs are plain dicts (as stored in meta.json) read with `cfg.get(key,
default)`; FilamentConfig is the typed view the driver works from.

Keys (all optional)
-------------------
Grid / time:
- nx, ny, nz: int cells per axis (default 64, 64, 32)
- h: float spacing (default 0.5)
- dt: float timestep (default 0.02)
- total_time: float simulated time (default 100.0)
- start_time: float time stamp of the initial state (default 0.0)
- field_every: float interval between field dumps (default 10.0)
- curve_every: float interval between filament samples (default 1.0)

Model:
- epsilon, beta, gamma: FitzHugh-Nagumo parameters (0.3, 0.7, 0.5)
- wavelength: float spiral wavelength lambda (default 21.3)
- boundary: "reflecting" | "z_periodic" | "periodic" (default "reflecting")
- integrator: "rk4" | "euler" (default "rk4")
- workers: int threads for the grid passes (default 1)

Initialisation:
- init_mode: "function" | "uv_file" | "phi_file" | "polyline" | "surface"
- init_function: "straight" | "ring" | "linked" (default "ring")
- init_file: str path for the file modes
- ring_radius: float (default: a quarter of the smallest box side)
- fill_fraction: float box fraction a polyline is scaled into (default 0.75)

Extraction:
- threshold: float minimum |grad u x grad v| for a seed (default 0.7)
- max_steps: int trace step cap (default 50000)
- straight_curvature: float curvature below which torsion is reported 0
  (default 1e-3)

Output:
- save_fields, save_png, save_plots: bool (True, True, True)
- verbose: bool (default True)
"""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from .grid import BOUNDARY_MODES
from .integrator import SCHEMES


INIT_MODES = ("function", "uv_file", "phi_file", "polyline", "surface")
INIT_FUNCTIONS = ("straight", "ring", "linked")


def _bool(v: Any) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes", "on")
    return bool(v)


@dataclass
class FilamentConfig:
    nx: int = 64
    ny: int = 64
    nz: int = 32
    h: float = 0.5
    dt: float = 0.02
    total_time: float = 100.0
    start_time: float = 0.0
    field_every: float = 10.0
    curve_every: float = 1.0

    epsilon: float = 0.3
    beta: float = 0.7
    gamma: float = 0.5
    wavelength: float = 21.3
    boundary: str = "reflecting"
    integrator: str = "rk4"
    workers: int = 1

    init_mode: str = "function"
    init_function: str = "ring"
    init_file: Optional[str] = None
    ring_radius: Optional[float] = None
    fill_fraction: float = 0.75

    threshold: float = 0.7
    max_steps: int = 50000
    straight_curvature: float = 1e-3

    save_fields: bool = True
    save_png: bool = True
    save_plots: bool = True
    verbose: bool = True

    @classmethod
    def from_dict(cls, cfg: Dict[str, Any]) -> "FilamentConfig":
        d = cls()
        ring_radius = cfg.get("ring_radius", d.ring_radius)
        init_file = cfg.get("init_file", d.init_file)
        c = cls(
            nx=int(cfg.get("nx", d.nx)),
            ny=int(cfg.get("ny", d.ny)),
            nz=int(cfg.get("nz", d.nz)),
            h=float(cfg.get("h", d.h)),
            dt=float(cfg.get("dt", d.dt)),
            total_time=float(cfg.get("total_time", d.total_time)),
            start_time=float(cfg.get("start_time", d.start_time)),
            field_every=float(cfg.get("field_every", d.field_every)),
            curve_every=float(cfg.get("curve_every", d.curve_every)),
            epsilon=float(cfg.get("epsilon", d.epsilon)),
            beta=float(cfg.get("beta", d.beta)),
            gamma=float(cfg.get("gamma", d.gamma)),
            wavelength=float(cfg.get("wavelength", d.wavelength)),
            boundary=str(cfg.get("boundary", d.boundary)),
            integrator=str(cfg.get("integrator", d.integrator)).lower(),
            workers=int(cfg.get("workers", d.workers)),
            init_mode=str(cfg.get("init_mode", d.init_mode)),
            init_function=str(cfg.get("init_function", d.init_function)),
            init_file=None if init_file is None else str(init_file),
            ring_radius=None if ring_radius is None else float(ring_radius),
            fill_fraction=float(cfg.get("fill_fraction", d.fill_fraction)),
            threshold=float(cfg.get("threshold", d.threshold)),
            max_steps=int(cfg.get("max_steps", d.max_steps)),
            straight_curvature=float(cfg.get("straight_curvature", d.straight_curvature)),
            save_fields=_bool(cfg.get("save_fields", d.save_fields)),
            save_png=_bool(cfg.get("save_png", d.save_png)),
            save_plots=_bool(cfg.get("save_plots", d.save_plots)),
            verbose=_bool(cfg.get("verbose", d.verbose)),
        )
        c.validate()
        return c

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def validate(self) -> None:
        for key in ("nx", "ny", "nz"):
            if getattr(self, key) < 2:
                raise ValueError(f"{key} must be >= 2, got {getattr(self, key)}")
        for key in ("h", "dt", "wavelength", "epsilon", "curve_every", "field_every"):
            if not getattr(self, key) > 0:
                raise ValueError(f"{key} must be positive, got {getattr(self, key)}")
        if self.total_time < 0:
            raise ValueError(f"total_time must be >= 0, got {self.total_time}")
        if self.boundary not in BOUNDARY_MODES:
            raise ValueError(f"Unknown boundary {self.boundary!r} (expected one of {sorted(BOUNDARY_MODES)})")
        if self.integrator not in SCHEMES:
            raise ValueError(f"Unknown integrator {self.integrator!r} (expected one of {SCHEMES})")
        if self.init_mode not in INIT_MODES:
            raise ValueError(f"Unknown init_mode {self.init_mode!r} (expected one of {INIT_MODES})")
        if self.init_mode == "function" and self.init_function not in INIT_FUNCTIONS:
            raise ValueError(f"Unknown init_function {self.init_function!r} (expected one of {INIT_FUNCTIONS})")
        if self.init_mode != "function" and not self.init_file:
            raise ValueError(f"init_mode {self.init_mode!r} needs init_file")
        if self.workers < 1:
            raise ValueError(f"workers must be >= 1, got {self.workers}")


def load_config(path: str) -> Dict[str, Any]:
    """Read a JSON config; accepts a bare cfg dict or a meta.json ({"cfg": ...})."""
    if not os.path.exists(path):
        raise FileNotFoundError(f"Config not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if not isinstance(data, dict):
        raise ValueError(f"Config {path} must hold a JSON object")
    if isinstance(data.get("cfg"), dict):
        return dict(data["cfg"])
    return data
