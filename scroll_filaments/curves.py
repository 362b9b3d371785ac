"""curves.py

Data model for extracted filaments.

A FilamentCurve stores its P points as parallel arrays (struct of arrays).
Per-point quantities:

- points      (P, 3) positions, unwrapped along periodic axes
- frame       (P, 3) unit frame vector a, perpendicular to the tangent
- curvature, torsion, writhe, twist   (P,) densities
- ds          (P,) length of segment s -> s+1
- velocity    (P, 3) and spin_rate (P,), NaN until the tracker fills them

Segment s joins point s to point s+1; the last segment joins point P-1 to
point 0 + closure_shift, where closure_shift is zero for a loop closed in the
box and one lattice period for a filament closed through a periodic boundary.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np


STATUS_CLOSED = "closed"
STATUS_STEP_CAP = "step_cap"
STATUS_OUT_OF_BOUNDS = "out_of_bounds"
STATUS_PATH_NOT_FOUND = "path_not_found"


@dataclass
class FilamentPoint:
    position: np.ndarray
    frame: np.ndarray
    curvature: float
    torsion: float
    writhe: float
    twist: float
    ds: float
    velocity: np.ndarray
    spin_rate: float


def _nan(*shape) -> np.ndarray:
    return np.full(shape, np.nan, dtype=np.float64)


@dataclass
class FilamentCurve:
    points: np.ndarray
    component: int = 0
    status: str = STATUS_CLOSED
    closure_shift: np.ndarray = field(default_factory=lambda: np.zeros(3))
    converged_fraction: float = 1.0
    frame: Optional[np.ndarray] = None
    curvature: Optional[np.ndarray] = None
    torsion: Optional[np.ndarray] = None
    writhe: Optional[np.ndarray] = None
    twist: Optional[np.ndarray] = None
    ds: Optional[np.ndarray] = None
    velocity: Optional[np.ndarray] = None
    spin_rate: Optional[np.ndarray] = None

    def __post_init__(self):
        self.points = np.asarray(self.points, dtype=np.float64).reshape(-1, 3)
        self.closure_shift = np.asarray(self.closure_shift, dtype=np.float64)
        self.reset_geometry()

    def reset_geometry(self) -> None:
        """(Re)allocate per-point arrays whose size no longer matches points."""
        P = len(self.points)
        for name, shape in (
            ("frame", (P, 3)),
            ("curvature", (P,)),
            ("torsion", (P,)),
            ("writhe", (P,)),
            ("twist", (P,)),
            ("ds", (P,)),
            ("velocity", (P, 3)),
            ("spin_rate", (P,)),
        ):
            cur = getattr(self, name)
            if cur is None or cur.shape != shape:
                setattr(self, name, _nan(*shape))

    def __len__(self) -> int:
        return len(self.points)

    def next_points(self) -> np.ndarray:
        """Point s+1 for every s, with the closing lattice shift applied."""
        nxt = np.roll(self.points, -1, axis=0)
        nxt[-1] = nxt[-1] + self.closure_shift
        return nxt

    def segments(self) -> np.ndarray:
        return self.next_points() - self.points

    @property
    def centroid(self) -> np.ndarray:
        return self.points.mean(axis=0)

    @property
    def length(self) -> float:
        if np.all(np.isfinite(self.ds)):
            return float(np.sum(self.ds))
        return float(np.sum(np.linalg.norm(self.segments(), axis=1)))

    @property
    def total_writhe(self) -> float:
        return float(np.sum(self.writhe * self.ds))

    @property
    def total_twist(self) -> float:
        return float(np.sum(self.twist * self.ds))

    @property
    def has_kinematics(self) -> bool:
        return bool(np.any(np.isfinite(self.spin_rate)))

    def point(self, i: int) -> FilamentPoint:
        return FilamentPoint(
            position=self.points[i].copy(),
            frame=self.frame[i].copy(),
            curvature=float(self.curvature[i]),
            torsion=float(self.torsion[i]),
            writhe=float(self.writhe[i]),
            twist=float(self.twist[i]),
            ds=float(self.ds[i]),
            velocity=self.velocity[i].copy(),
            spin_rate=float(self.spin_rate[i]),
        )


@dataclass
class Snapshot:
    time: float
    curves: List[FilamentCurve] = field(default_factory=list)
    index: int = 0

    def __len__(self) -> int:
        return len(self.curves)
