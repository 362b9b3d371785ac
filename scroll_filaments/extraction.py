"""extraction.py

Filament extraction from a grad(u) x grad(v) snapshot.

Repeats until nothing qualifies:

1) seed: the cell of largest |ucv| among cells not marked on all three axes;
   stop when that maximum is below `threshold`
2) trace: walk along the interpolated ucv direction in steps of
   step_fraction * core, snapping every trial point back onto the |ucv|
   ridge with a 2-parameter Nelder-Mead search in the plane normal to the
   walk direction
3) mark cells within ceil(core/h) of every accepted point, per axis

A trace ends with one of the statuses in curves.py:

- closed:         back within closure_factor*h of the start after more than
                  min_steps steps (minimum image on periodic axes)
- step_cap:       more than max_steps steps
- out_of_bounds:  a lookup left a non-periodic axis
- path_not_found: ucv vanished under the walker

Truncated traces are kept only when they ended close to their start
(keep_factor * closure radius) with enough points to form a loop; the cells
they marked stay marked either way, so the seed search always moves on.

core = wavelength / (2 pi)
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from .crossgrad import central_gradient, magnitude
from .curves import (
    STATUS_CLOSED,
    STATUS_OUT_OF_BOUNDS,
    STATUS_PATH_NOT_FOUND,
    STATUS_STEP_CAP,
    FilamentCurve,
)
from .grid import Grid
from .minimize import Minimizer, NelderMeadMinimizer
from .sampling import OutOfBounds, Sampler


def core_length(wavelength: float) -> float:
    return wavelength / (2.0 * math.pi)


def any_perpendicular(t: np.ndarray) -> np.ndarray:
    """Some unit vector perpendicular to unit vector t."""
    axis = np.zeros(3)
    axis[int(np.argmin(np.abs(t)))] = 1.0
    p = axis - np.dot(axis, t) * t
    return p / np.linalg.norm(p)


# --------------------------
# Marking state
# --------------------------

class MarkingState:
    """Per-axis marks of cells already covered by a traced filament."""

    def __init__(self, grid: Grid):
        self.grid = grid
        self.x = np.zeros(grid.nx, dtype=bool)
        self.y = np.zeros(grid.ny, dtype=bool)
        self.z = np.zeros(grid.nz, dtype=bool)

    def reset(self) -> None:
        self.x[:] = False
        self.y[:] = False
        self.z[:] = False

    def mark(self, cell, radius: int) -> None:
        offs = np.arange(-radius, radius + 1)
        for arr, ix, c in zip((self.x, self.y, self.z), self.grid.indexers, cell):
            arr[ix.resolve(int(c) + offs)] = True

    def unmarked_mask(self) -> np.ndarray:
        """True for cells not marked along at least one axis."""
        full = self.x[:, None, None] & self.y[None, :, None] & self.z[None, None, :]
        return ~full


# --------------------------
# Termination
# --------------------------

@dataclass
class TerminationRule:
    closure_radius: float
    min_steps: int = 10
    max_steps: int = 50000

    def check(self, grid: Grid, start: np.ndarray, current: np.ndarray, steps: int) -> Optional[str]:
        d = grid.minimum_image(current - start)
        if steps > self.min_steps and np.linalg.norm(d) < self.closure_radius:
            return STATUS_CLOSED
        if steps > self.max_steps:
            return STATUS_STEP_CAP
        return None


# --------------------------
# Extractor
# --------------------------

@dataclass
class ExtractorSettings:
    wavelength: float = 21.3
    threshold: float = 0.7
    step_fraction: float = 0.1
    closure_factor: float = 3.0
    min_steps: int = 10
    max_steps: int = 50000
    keep_factor: float = 2.0
    min_points: int = 4
    size_tol: float = 1e-2
    max_iter: int = 500
    max_components: int = 1000


@dataclass
class ExtractionStats:
    found: int = 0
    discarded: int = 0
    statuses: List[str] = field(default_factory=list)


class FilamentExtractor:
    def __init__(
        self,
        grid: Grid,
        settings: ExtractorSettings = None,
        minimizer: Minimizer = None,
    ):
        self.grid = grid
        self.settings = settings if settings is not None else ExtractorSettings()
        s = self.settings
        self.core = core_length(s.wavelength)
        self.mark_radius = int(math.ceil(self.core / grid.h))
        self.step = s.step_fraction * self.core
        self.simplex_step = s.wavelength / (8.0 * math.pi)
        self.rule = TerminationRule(
            closure_radius=s.closure_factor * grid.h,
            min_steps=s.min_steps,
            max_steps=s.max_steps,
        )
        self.minimizer = minimizer if minimizer is not None else NelderMeadMinimizer(s.size_tol, s.max_iter)
        self.sampler = Sampler(grid)
        self.marks = MarkingState(grid)
        self.stats = ExtractionStats()

        self._ucv: Optional[np.ndarray] = None
        self._grad_mag: Optional[np.ndarray] = None

    # ----------------------------------------------------------------

    def extract(self, ucv: np.ndarray) -> List[FilamentCurve]:
        """All filaments in one cross-gradient snapshot, shape (3, nx, ny, nz)."""
        self._ucv = ucv
        mag = magnitude(ucv)
        self._grad_mag = central_gradient(mag, self.grid)
        self.marks.reset()
        self.stats = ExtractionStats()

        curves: List[FilamentCurve] = []
        for _ in range(self.settings.max_components):
            masked = np.where(self.marks.unmarked_mask(), mag, -1.0)
            flat = int(np.argmax(masked))
            if masked.flat[flat] < self.settings.threshold:
                break
            cell = np.unravel_index(flat, self.grid.shape)
            curve = self.trace(self.grid.position(*cell), seed_cell=cell)
            self.stats.statuses.append(curve.status)
            if self.keep(curve):
                curve.component = len(curves)
                curves.append(curve)
            else:
                self.stats.discarded += 1
        self.stats.found = len(curves)
        return curves

    def keep(self, curve: FilamentCurve) -> bool:
        if curve.status == STATUS_CLOSED:
            return True
        s = self.settings
        if len(curve) < max(s.min_points, s.min_steps + 1):
            return False
        gap = self.grid.minimum_image(curve.points[-1] - curve.points[0])
        return bool(np.linalg.norm(gap) < s.keep_factor * self.rule.closure_radius)

    # ----------------------------------------------------------------

    def _objective(self, origin: np.ndarray, f: np.ndarray, b: np.ndarray):
        def fn(x: np.ndarray) -> float:
            q = origin + x[0] * f + x[1] * b
            try:
                val = self.sampler.interpolate(self._ucv, q)
            except OutOfBounds:
                return 0.0
            return -float(np.sqrt(np.dot(val, val)))

        return fn

    def _tangent(self, p: np.ndarray) -> Optional[np.ndarray]:
        t = self.sampler.interpolate(self._ucv, p)
        n = np.linalg.norm(t)
        if not n > 0:
            return None
        return t / n

    def _snap(self, origin: np.ndarray, t: np.ndarray):
        """Move origin onto the |ucv| ridge within the plane normal to t."""
        g = self.sampler.interpolate(self._grad_mag, origin)
        f = g - np.dot(g, t) * t
        nf = np.linalg.norm(f)
        f = f / nf if nf > 1e-12 else any_perpendicular(t)
        b = np.cross(f, t)
        res = self.minimizer.minimize(self._objective(origin, f, b), np.zeros(2), self.simplex_step)
        return origin + res.x[0] * f + res.x[1] * b, res.converged

    def trace(self, seed: np.ndarray, seed_cell=None) -> FilamentCurve:
        grid = self.grid
        if seed_cell is None:
            seed_cell = grid.cell_of(seed)
        self.marks.mark(seed_cell, self.mark_radius)

        start = np.asarray(seed, dtype=np.float64)
        try:
            t0 = self._tangent(start)
            if t0 is not None:
                start, _ = self._snap(start, t0)
        except OutOfBounds:
            pass

        pts = [start]
        converged = 0
        status = None
        while status is None:
            p = pts[-1]
            try:
                t = self._tangent(p)
                if t is None:
                    status = STATUS_PATH_NOT_FOUND
                    break
                trial = p + self.step * t
                new, ok = self._snap(trial, t)
            except OutOfBounds:
                status = STATUS_OUT_OF_BOUNDS
                break
            converged += int(ok)
            pts.append(new)
            self.marks.mark(grid.cell_of(new), self.mark_radius)
            status = self.rule.check(grid, pts[0], new, len(pts) - 1)

        points = np.array(pts)
        gap = points[-1] - points[0]
        shift = gap - grid.minimum_image(gap)
        return FilamentCurve(
            points=points,
            status=status,
            closure_shift=shift,
            converged_fraction=converged / max(1, len(pts) - 1),
        )
