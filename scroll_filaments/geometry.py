"""geometry.py

Differential geometry of traced filaments.

GeometryProcessor.process runs, in place on the curve:

1) resample: `passes` rounds of redistribution to uniform arc length along
   the closed polyline
2) smooth:   spectral low-pass of x, y, z with cutoff 2 pi L / (6 lambda);
             on curves closed through a periodic face the linear ramp
             s/P * closure_shift is removed before filtering and restored
             after
3) frame:    a = grad(u) with its tangential part removed, normalised;
             then low-passed, re-projected and renormalised
4) invariants on a forward stencil of three segments T0, T1, T2:
     curvature  |T1 - T0| / ds0
     torsion    ((N1 - N0)/ds0 + k0 T0) . (T0 x N0), zero where k0 or k1 < kappa_floor
     twist      T0 . (a_s x (a_{s+1} - a_s)/ds0) / (2 pi |T0|)
     writhe     sum_{m != s} r . (T0 x d_m) / (4 pi |r|^3), r = mid_s - mid_m

Totals on the curve: length = sum ds, writhe = sum w ds, twist = sum tw ds.
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from .crossgrad import central_gradient
from .curves import FilamentCurve
from .extraction import any_perpendicular
from .grid import Grid
from .sampling import Sampler
from .spectral import DEFAULT_TRANSFORM, SpectralTransform, lowpass_filter


# --------------------------
# Resampling / smoothing
# --------------------------

def closed_polyline(points: np.ndarray, shift: np.ndarray) -> np.ndarray:
    """points with the closing vertex (points[0] + shift) appended."""
    return np.vstack([points, points[:1] + shift])


def resample_uniform(points: np.ndarray, shift: np.ndarray, passes: int = 3) -> np.ndarray:
    """Redistribute the P points to equal arc-length spacing along the loop."""
    P = len(points)
    out = np.asarray(points, dtype=np.float64)
    for _ in range(passes):
        poly = closed_polyline(out, shift)
        seg = np.linalg.norm(np.diff(poly, axis=0), axis=1)
        s = np.concatenate([[0.0], np.cumsum(seg)])
        total = s[-1]
        if not total > 0:
            break
        targets = np.arange(P) * (total / P)
        out = np.column_stack([np.interp(targets, s, poly[:, ax]) for ax in range(3)])
    return out


def polyline_length(points: np.ndarray, shift: np.ndarray) -> float:
    poly = closed_polyline(points, shift)
    return float(np.sum(np.linalg.norm(np.diff(poly, axis=0), axis=1)))


def smoothing_cutoff(length: float, wavelength: float) -> float:
    return 2.0 * math.pi * length / (6.0 * wavelength)


def smooth_points(
    points: np.ndarray,
    shift: np.ndarray,
    cutoff: float,
    transform: SpectralTransform = DEFAULT_TRANSFORM,
) -> np.ndarray:
    P = len(points)
    ramp = np.outer(np.arange(P) / P, shift)
    return lowpass_filter(points - ramp, cutoff, transform) + ramp


# --------------------------
# Frame vector
# --------------------------

def central_tangents(points: np.ndarray, shift: np.ndarray) -> np.ndarray:
    nxt = np.roll(points, -1, axis=0)
    nxt[-1] += shift
    prv = np.roll(points, 1, axis=0)
    prv[0] -= shift
    return 0.5 * (nxt - prv)


def project_normalise(a: np.ndarray, tangents: np.ndarray) -> np.ndarray:
    """Remove the tangential part of each row of a and normalise."""
    tt = np.sum(tangents * tangents, axis=1)
    tt = np.where(tt > 0, tt, 1.0)
    a = a - (np.sum(a * tangents, axis=1) / tt)[:, None] * tangents
    norm = np.linalg.norm(a, axis=1)
    bad = ~(norm > 1e-12)
    a = a / np.where(bad, 1.0, norm)[:, None]
    for i in np.nonzero(bad)[0]:
        t = tangents[i] / max(np.linalg.norm(tangents[i]), 1e-300)
        a[i] = any_perpendicular(t)
    return a


def frame_vectors(
    points: np.ndarray,
    shift: np.ndarray,
    grad_u: np.ndarray,
    sampler: Sampler,
) -> np.ndarray:
    g = sampler.interpolate(grad_u, points)
    return project_normalise(g, central_tangents(points, shift))


# --------------------------
# Invariants
# --------------------------

def _forward_stencil(points: np.ndarray, shift: np.ndarray, width: int) -> np.ndarray:
    """(P, width, 3): points s, s+1, ..., s+width-1 continued across closure."""
    P = len(points)
    idx = np.arange(P)[:, None] + np.arange(width)[None, :]
    return points[idx % P] + (idx // P)[..., None] * shift


def curvature_torsion(points: np.ndarray, shift: np.ndarray, kappa_floor: float = 1e-3):
    st = _forward_stencil(points, shift, 4)
    d = np.diff(st, axis=1)
    deltas = np.linalg.norm(d, axis=2)
    T = d / deltas[..., None]

    Nv = (T[:, 1:] - T[:, :-1]) / deltas[:, :2, None]
    kappa = np.linalg.norm(Nv, axis=2)
    Nhat = Nv / np.where(kappa > 0, kappa, 1.0)[..., None]

    B0 = np.cross(T[:, 0], Nhat[:, 0])
    dN = (Nhat[:, 1] - Nhat[:, 0]) / deltas[:, 0, None] + kappa[:, 0, None] * T[:, 0]
    torsion = np.sum(dN * B0, axis=1)
    straight = (kappa[:, 0] < kappa_floor) | (kappa[:, 1] < kappa_floor)
    torsion = np.where(straight, 0.0, torsion)
    return kappa[:, 0], torsion


def twist_density(points: np.ndarray, shift: np.ndarray, frame: np.ndarray) -> np.ndarray:
    d = np.roll(points, -1, axis=0) - points
    d[-1] += shift
    ds = np.linalg.norm(d, axis=1)
    T = d / ds[:, None]
    da = (np.roll(frame, -1, axis=0) - frame) / ds[:, None]
    return np.sum(T * np.cross(frame, da), axis=1) / (2.0 * math.pi * np.linalg.norm(T, axis=1))


def writhe_density(points: np.ndarray, shift: np.ndarray, chunk: int = 256) -> np.ndarray:
    """Discrete Gauss integral of the curve with itself, per segment."""
    nxt = np.roll(points, -1, axis=0)
    nxt[-1] += shift
    d = nxt - points
    ds = np.linalg.norm(d, axis=1)
    t = d / ds[:, None]
    mid = 0.5 * (points + nxt)

    P = len(points)
    out = np.empty(P)
    for a in range(0, P, chunk):
        b = min(P, a + chunk)
        r = mid[a:b, None, :] - mid[None, :, :]
        cr = np.cross(t[a:b, None, :], d[None, :, :])
        num = np.sum(r * cr, axis=2)
        r3 = np.sum(r * r, axis=2) ** 1.5
        rows = np.arange(a, b)
        r3[rows - a, rows] = np.inf
        out[a:b] = np.sum(num / r3, axis=1) / (4.0 * math.pi)
    return out


# --------------------------
# Driver-facing entry point
# --------------------------

class GeometryProcessor:
    def __init__(
        self,
        grid: Grid,
        wavelength: float = 21.3,
        passes: int = 3,
        kappa_floor: float = 1e-3,
        transform: SpectralTransform = DEFAULT_TRANSFORM,
    ):
        self.grid = grid
        self.wavelength = float(wavelength)
        self.passes = int(passes)
        self.kappa_floor = float(kappa_floor)
        self.transform = transform
        self.sampler = Sampler(grid, clamp=True)

    def process(self, curve: FilamentCurve, u: np.ndarray, grad_u: Optional[np.ndarray] = None) -> FilamentCurve:
        if grad_u is None:
            grad_u = central_gradient(u, self.grid)
        shift = curve.closure_shift

        pts = resample_uniform(curve.points, shift, self.passes)
        cutoff = smoothing_cutoff(polyline_length(pts, shift), self.wavelength)
        pts = smooth_points(pts, shift, cutoff, self.transform)

        frame = frame_vectors(pts, shift, grad_u, self.sampler)
        frame = lowpass_filter(frame, cutoff, self.transform)
        frame = project_normalise(frame, central_tangents(pts, shift))

        curve.points = pts
        curve.reset_geometry()
        curve.frame = frame
        curve.ds = np.linalg.norm(curve.segments(), axis=1)
        curve.curvature, curve.torsion = curvature_torsion(pts, shift, self.kappa_floor)
        curve.twist = twist_density(pts, shift, frame)
        curve.writhe = writhe_density(pts, shift)
        return curve
