"""sampling.py

Trilinear interpolation of grid fields at arbitrary points.

A point p is converted to continuous cell units g = p/h - 0.5 + N/2; the
stencil is the 8 cells {floor(g), floor(g)+1} per axis, weighted by the
fractional offset. On periodic axes both corner indices wrap, so points may
sit anywhere along that axis (positions stay unwrapped). On clamped axes the
upper corner is clamped to N-1, and a point whose lower corner falls outside
[0, N-1] raises OutOfBounds unless the sampler was built with clamp=True, in
which case the point is pushed back onto the box face.
"""

from __future__ import annotations

from typing import Tuple

import numpy as np

from .grid import Grid


class OutOfBounds(Exception):
    """An interpolation lookup fell outside a non-periodic axis."""


# corner offsets in the order m -> (m%2, (m/2)%2, (m/4)%2)
_CORNERS = np.array([[m % 2, (m // 2) % 2, (m // 4) % 2] for m in range(8)], dtype=np.int64)


class Sampler:
    def __init__(self, grid: Grid, clamp: bool = False):
        self.grid = grid
        self.clamp = clamp
        self._n = np.array(grid.shape, dtype=np.int64)
        self._wrap = np.array(grid.periodic, dtype=bool)

    def inside(self, p) -> bool:
        """True if p can be sampled without clamping."""
        try:
            self._stencil(np.atleast_2d(np.asarray(p, dtype=np.float64)), clamp=False)
        except OutOfBounds:
            return False
        return True

    def _stencil(self, pts: np.ndarray, clamp: bool) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        g = self.grid.to_grid_units(pts)
        lo = np.floor(g + 1e-12).astype(np.int64)
        d = g - lo
        n = self._n
        hi = lo + 1
        for ax in range(3):
            if self._wrap[ax]:
                lo[:, ax] %= n[ax]
                hi[:, ax] %= n[ax]
                continue
            bad = (lo[:, ax] < 0) | (lo[:, ax] > n[ax] - 1)
            if np.any(bad):
                if not clamp:
                    raise OutOfBounds(f"point outside grid along axis {ax}")
                below = lo[:, ax] < 0
                above = lo[:, ax] > n[ax] - 1
                lo[below, ax] = 0
                d[below, ax] = 0.0
                lo[above, ax] = n[ax] - 1
                d[above, ax] = 0.0
            hi[:, ax] = np.minimum(lo[:, ax] + 1, n[ax] - 1)
        return lo, hi, d

    def interpolate(self, field: np.ndarray, p) -> np.ndarray:
        """Trilinear value of `field` at p.

        field is (nx, ny, nz) or (C, nx, ny, nz); p is (3,) or (M, 3).
        Returns a scalar / (C,) for a single point, (M,) / (M, C) otherwise.
        """
        p = np.asarray(p, dtype=np.float64)
        single = p.ndim == 1
        pts = np.atleast_2d(p)
        lo, hi, d = self._stencil(pts, self.clamp)

        vector = field.ndim == 4
        out = None
        for off in _CORNERS:
            idx = np.where(off == 1, hi, lo)
            w = np.prod(np.where(off == 1, d, 1.0 - d), axis=1)
            if vector:
                vals = field[:, idx[:, 0], idx[:, 1], idx[:, 2]].T * w[:, None]
            else:
                vals = field[idx[:, 0], idx[:, 1], idx[:, 2]] * w
            out = vals if out is None else out + vals
        return out[0] if single else out
