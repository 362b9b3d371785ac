"""tracking.py

Correspondence between filaments of consecutive snapshots, and the
kinematics derived from it.

For every old curve paired with a new one:

- alignment: the new point nearest to the old first point gives the offset
  (the new curve is first moved by a lattice vector onto the old one when it
  lives in another periodic image)
- for each old point s, the old segment s -> s+1 defines a plane (through
  old[s], normal along the segment); new segments are tested against it
  starting from the aligned guess and working outwards 0, -1, +1, -2, +2, ...
- at the intersection, the new frame is linearly interpolated, its part
  along the old segment removed and renormalised
- velocity  = (intersection - old[s]) / dt
  spin_rate = |a_interp - a_old| / dt

Points with no intersection keep NaN kinematics.

Pairing is an optimal assignment on
    |centroid_old - centroid_new| + |length_old - length_new|
so every old curve gets at most one partner and ties resolve by index.
"""

from __future__ import annotations

import sys
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
from scipy.optimize import linear_sum_assignment

from .curves import FilamentCurve, Snapshot
from .grid import Grid


NO_INTERSECTION = 0
INTERSECTS = 1
COPLANAR = 2

PARALLEL_COS = 0.01


def intersect_segment_plane(
    seg_start: np.ndarray,
    seg_end: np.ndarray,
    plane_start: np.ndarray,
    plane_end: np.ndarray,
) -> Tuple[int, float, Optional[np.ndarray]]:
    """Intersect segment [seg_start, seg_end] with the plane through
    plane_start whose normal is plane_end - plane_start.

    Returns (code, fraction, point); fraction/point are only meaningful for
    INTERSECTS. Segments within PARALLEL_COS of parallel to the plane never
    intersect: they are COPLANAR when lying in it, NO_INTERSECTION otherwise.
    """
    u = seg_end - seg_start
    w = seg_start - plane_start
    n = plane_end - plane_start

    D = float(np.dot(n, u))
    N = -float(np.dot(n, w))
    scale = np.linalg.norm(n) * np.linalg.norm(u)
    cos = D / scale if scale > 0 else 0.0

    if abs(cos) < PARALLEL_COS:
        if abs(N) <= 1e-12 * max(1.0, np.linalg.norm(n) * np.linalg.norm(w)):
            return COPLANAR, float("nan"), None
        return NO_INTERSECTION, float("nan"), None

    sI = N / D
    if sI < 0.0 or sI > 1.0:
        return NO_INTERSECTION, float("nan"), None
    return INTERSECTS, sI, seg_start + sI * u


def outward_offsets(limit: int):
    """0, -1, +1, -2, +2, ... with `limit` entries."""
    yield 0
    k = 1
    n = 1
    while n < limit:
        yield -k
        n += 1
        if n >= limit:
            break
        yield k
        n += 1
        k += 1


# --------------------------
# Pairing / alignment
# --------------------------

def pairing_cost(old: List[FilamentCurve], new: List[FilamentCurve], grid: Optional[Grid] = None) -> np.ndarray:
    cost = np.zeros((len(old), len(new)))
    for i, a in enumerate(old):
        for j, b in enumerate(new):
            d = b.centroid - a.centroid
            if grid is not None:
                d = grid.minimum_image(d)
            cost[i, j] = np.linalg.norm(d) + abs(a.length - b.length)
    return cost


def pair_curves(old: List[FilamentCurve], new: List[FilamentCurve], grid: Optional[Grid] = None) -> List[Tuple[int, int]]:
    """Optimal one-to-one (old index, new index) pairs."""
    if not old or not new:
        return []
    rows, cols = linear_sum_assignment(pairing_cost(old, new, grid))
    return sorted(zip(rows.tolist(), cols.tolist()))


def align_offset(anchor: np.ndarray, points: np.ndarray, grid: Optional[Grid] = None) -> int:
    d = points - anchor
    if grid is not None:
        d = grid.minimum_image(d)
    return int(np.argmin(np.sum(d * d, axis=1)))


# --------------------------
# Kinematics
# --------------------------

@dataclass
class TrackStats:
    pairs: int = 0
    points: int = 0
    misses: int = 0


def curve_kinematics(
    old: FilamentCurve,
    new: FilamentCurve,
    dt: float,
    grid: Optional[Grid] = None,
    search: Optional[int] = None,
) -> int:
    """Fill old.velocity / old.spin_rate from new. Returns the miss count."""
    P_old, P_new = len(old), len(new)
    offset = align_offset(old.points[0], new.points, grid)

    lattice = new.points[offset] - old.points[0]
    if grid is not None:
        lattice = lattice - grid.minimum_image(lattice)
    new_pts = new.points - lattice
    new_next = new.next_points() - lattice
    old_next = old.next_points()
    limit = P_new if search is None else min(int(search), P_new)

    misses = 0
    for s in range(P_old):
        base = offset + int(round(s * P_new / P_old))
        hit = None
        for k in outward_offsets(limit):
            m = (base + k) % P_new
            code, frac, point = intersect_segment_plane(new_pts[m], new_next[m], old.points[s], old_next[s])
            if code == INTERSECTS:
                hit = (m, frac, point)
                break
        if hit is None:
            misses += 1
            continue

        m, frac, point = hit
        a = new.frame[(m + 1) % P_new] * frac + new.frame[m] * (1.0 - frac)
        n = old_next[s] - old.points[s]
        a = a - np.dot(a, n) / np.dot(n, n) * n
        a = a / np.linalg.norm(a)

        old.velocity[s] = (point - old.points[s]) / dt
        old.spin_rate[s] = np.linalg.norm(a - old.frame[s]) / dt
    return misses


class CorrespondenceTracker:
    """Holds the previous snapshot and fills its kinematics from the next one."""

    def __init__(self, grid: Optional[Grid] = None, interval: Optional[float] = None, search: Optional[int] = None):
        self.grid = grid
        self.interval = interval
        self.search = search
        self.previous: Optional[Snapshot] = None
        self.stats = TrackStats()

    def _dt(self, prev: Snapshot, cur: Snapshot) -> Optional[float]:
        dt = cur.time - prev.time
        if dt > 0:
            return dt
        if self.interval:
            return float(self.interval)
        return None

    def update(self, snapshot: Snapshot) -> Optional[Snapshot]:
        """Retain `snapshot`; return the previous one with kinematics filled
        in, or None on the first call."""
        prev, self.previous = self.previous, snapshot
        if prev is None:
            return None

        self.stats = TrackStats()
        dt = self._dt(prev, snapshot)
        if dt is None:
            print(f"[warn] snapshots at t={prev.time} and t={snapshot.time} have no positive interval;"
                  " kinematics left as NaN", file=sys.stderr)
            return prev
        for i, j in pair_curves(prev.curves, snapshot.curves, self.grid):
            old = prev.curves[i]
            self.stats.pairs += 1
            self.stats.points += len(old)
            self.stats.misses += curve_kinematics(old, snapshot.curves[j], dt, self.grid, self.search)
        return prev

    def flush(self) -> Optional[Snapshot]:
        """Hand back the retained snapshot (no successor, so no kinematics)."""
        prev, self.previous = self.previous, None
        return prev
