"""grid.py

Structured 3D lattice for the FitzHugh-Nagumo solver.

Fields live on cell centres of an (nx, ny, nz) box of spacing h, centred on
the origin:

    x_i = (i + 0.5 - nx/2) * h

Arrays are C-ordered with shape (nx, ny, nz), so the flat index of cell
(i, j, k) is i*ny*nz + j*nz + k.

Each axis carries its own boundary rule:
- "clamp": reflecting / zero-flux, neighbour -1 -> 0 and N -> N-1
- "wrap":  periodic, neighbour -1 -> N-1 and N -> 0

Boundary modes map onto per-axis rules:
- "reflecting": clamp, clamp, clamp
- "z_periodic": clamp, clamp, wrap
- "periodic":   wrap, wrap, wrap
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

import numpy as np


BOUNDARY_MODES = {
    "reflecting": ("clamp", "clamp", "clamp"),
    "z_periodic": ("clamp", "clamp", "wrap"),
    "periodic": ("wrap", "wrap", "wrap"),
}


def axis_rules(boundary: str) -> Tuple[str, str, str]:
    try:
        return BOUNDARY_MODES[boundary]
    except KeyError:
        raise ValueError(
            f"Unknown boundary {boundary!r} (expected one of {sorted(BOUNDARY_MODES)})"
        ) from None


# --------------------------
# Boundary indexing
# --------------------------

class BoundaryIndexer:
    """Resolve out-of-range neighbour indices along one axis."""

    def __init__(self, n: int, rule: str):
        if rule not in ("clamp", "wrap"):
            raise ValueError(f"Unknown axis rule {rule!r} (expected 'clamp' or 'wrap')")
        self.n = int(n)
        self.rule = rule

    @property
    def periodic(self) -> bool:
        return self.rule == "wrap"

    def resolve(self, idx):
        """Map index (scalar or array) into [0, n) according to the axis rule."""
        if self.rule == "wrap":
            return np.mod(idx, self.n)
        return np.clip(idx, 0, self.n - 1)

    def neighbors(self) -> Tuple[np.ndarray, np.ndarray]:
        """Index arrays of the lower and upper neighbour of every cell."""
        idx = np.arange(self.n)
        return self.resolve(idx - 1), self.resolve(idx + 1)


# --------------------------
# Grid
# --------------------------

@dataclass(frozen=True)
class Grid:
    nx: int
    ny: int
    nz: int
    h: float
    boundary: str = "reflecting"
    indexers: Tuple[BoundaryIndexer, BoundaryIndexer, BoundaryIndexer] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self):
        if min(self.nx, self.ny, self.nz) < 2:
            raise ValueError(f"Grid needs at least 2 cells per axis, got {self.shape}")
        if not self.h > 0:
            raise ValueError(f"Grid spacing must be positive, got {self.h}")
        rules = axis_rules(self.boundary)
        idx = tuple(BoundaryIndexer(n, r) for n, r in zip(self.shape, rules))
        object.__setattr__(self, "indexers", idx)

    @property
    def shape(self) -> Tuple[int, int, int]:
        return (self.nx, self.ny, self.nz)

    @property
    def periodic(self) -> Tuple[bool, bool, bool]:
        return tuple(ix.periodic for ix in self.indexers)  # type: ignore

    @property
    def extent(self) -> np.ndarray:
        """Box side lengths (the lattice period on wrapped axes)."""
        return np.array(self.shape, dtype=np.float64) * self.h

    def flat_index(self, i, j, k):
        return (i * self.ny + j) * self.nz + k

    def axis_coords(self, axis: int) -> np.ndarray:
        n = self.shape[axis]
        return (np.arange(n) + 0.5 - n / 2.0) * self.h

    def coords(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        return self.axis_coords(0), self.axis_coords(1), self.axis_coords(2)

    def mesh(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        x, y, z = self.coords()
        return np.meshgrid(x, y, z, indexing="ij")

    def to_grid_units(self, p) -> np.ndarray:
        """Continuous cell coordinate: integer values sit on cell centres."""
        p = np.asarray(p, dtype=np.float64)
        return p / self.h - 0.5 + np.array(self.shape) / 2.0

    def position(self, i, j, k) -> np.ndarray:
        n = np.array(self.shape, dtype=np.float64)
        return (np.array([i, j, k], dtype=np.float64) + 0.5 - n / 2.0) * self.h

    def cell_of(self, p) -> np.ndarray:
        """Lower corner cell of the interpolation stencil containing p."""
        return np.floor(self.to_grid_units(p) + 1e-12).astype(np.int64)

    def minimum_image(self, d) -> np.ndarray:
        """Shortest displacement equivalent to d under the periodic axes."""
        d = np.array(d, dtype=np.float64)
        L = self.extent
        for ax in range(3):
            if self.indexers[ax].periodic:
                d[..., ax] -= L[ax] * np.round(d[..., ax] / L[ax])
        return d

    def empty_field(self) -> np.ndarray:
        return np.zeros(self.shape, dtype=np.float64)
