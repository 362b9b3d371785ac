"""initial.py

Initial (u, v) fields.

Every mode except "uv_file" builds a phase field phi on the grid, wrapped to
(-pi, pi], and sets

    u = 2 cos(phi) - 0.4
    v = sin(phi) - 0.4

Modes
-----
- function: analytic phase
    straight  atan2(y, x), one filament along z
    ring      atan2(z, rho - R), a vortex ring of radius R in the xy plane
    linked    atan2(y - lam, x - lam) - atan2(y, cos(th) x - sin(th) z), th = 0.5
- uv_file:  .npz with arrays u, v (a field dump of a previous run)
- phi_file: .npz with array phi
- polyline: text file of "x y z" rows describing one closed curve; it is
            scaled into `fill_fraction` of the box (aspect ratio kept) and
            phi = Omega / 2, with Omega the solid angle the curve subtends
- surface:  .npz with triangle `centres` (K,3), `normals` (K,3), `areas` (K,);
            phi = sum (r . n) A / (2 |r|^3), r = centre - x

Missing files raise FileNotFoundError, malformed ones ValueError.
"""

from __future__ import annotations

import math
import os
from typing import Optional, Tuple

import numpy as np

from .config import FilamentConfig
from .grid import Grid
from .integrator import FieldState


def wrap_phase(phi: np.ndarray) -> np.ndarray:
    """Map phases into (-pi, pi]."""
    return math.pi - np.mod(math.pi - phi, 2.0 * math.pi)


def uv_from_phase(phi: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    return 2.0 * np.cos(phi) - 0.4, np.sin(phi) - 0.4


# --------------------------
# Analytic phases
# --------------------------

def phase_straight(grid: Grid) -> np.ndarray:
    X, Y, _ = grid.mesh()
    return wrap_phase(np.arctan2(Y, X))


def phase_ring(grid: Grid, radius: Optional[float] = None) -> np.ndarray:
    if radius is None:
        radius = 0.25 * float(np.min(grid.extent))
    X, Y, Z = grid.mesh()
    rho = np.sqrt(X * X + Y * Y)
    return wrap_phase(np.arctan2(Z, rho - radius))


def phase_linked(grid: Grid, wavelength: float, theta: float = 0.5) -> np.ndarray:
    X, Y, Z = grid.mesh()
    phi = np.arctan2(Y - wavelength, X - wavelength) - np.arctan2(Y, -math.sin(theta) * Z + math.cos(theta) * X)
    return wrap_phase(phi)


# --------------------------
# Files
# --------------------------

def _require(path: Optional[str]) -> str:
    if not path:
        raise ValueError("No init_file given")
    if not os.path.exists(path):
        raise FileNotFoundError(f"Initial condition file not found: {path}")
    return path


def _load_npz(path: str, keys) -> dict:
    with np.load(_require(path)) as data:
        missing = [k for k in keys if k not in data.files]
        if missing:
            raise ValueError(f"{path} is missing arrays {missing} (has {data.files})")
        return {k: np.asarray(data[k], dtype=np.float64) for k in keys}


def load_uv_file(path: str, grid: Grid) -> Tuple[np.ndarray, np.ndarray]:
    d = _load_npz(path, ("u", "v"))
    for k in ("u", "v"):
        if d[k].shape != grid.shape:
            raise ValueError(f"{path}: {k} has shape {d[k].shape}, grid is {grid.shape}")
    return d["u"], d["v"]


def load_phi_file(path: str, grid: Grid) -> np.ndarray:
    phi = _load_npz(path, ("phi",))["phi"]
    if phi.shape != grid.shape:
        raise ValueError(f"{path}: phi has shape {phi.shape}, grid is {grid.shape}")
    return wrap_phase(phi)


def read_polyline(path: str) -> np.ndarray:
    try:
        pts = np.loadtxt(_require(path), ndmin=2)
    except ValueError as e:
        raise ValueError(f"{path}: could not parse polyline ({e})") from e
    if pts.shape[1] != 3:
        raise ValueError(f"{path}: expected 3 columns (x y z), got {pts.shape[1]}")
    if len(pts) < 3:
        raise ValueError(f"{path}: a closed polyline needs at least 3 points, got {len(pts)}")
    if np.allclose(pts[0], pts[-1]):
        pts = pts[:-1]
    return pts


def fit_to_box(points: np.ndarray, grid: Grid, fill: float = 0.75, preserve_ratio: bool = True) -> np.ndarray:
    """Centre points on the origin and scale them into `fill` of the box."""
    lo, hi = points.min(axis=0), points.max(axis=0)
    mid = 0.5 * (lo + hi)
    span = hi - lo
    target = fill * grid.extent
    nonzero = span > 0
    scale = np.ones(3)
    scale[nonzero] = target[nonzero] / span[nonzero]
    if preserve_ratio and np.any(nonzero):
        scale[:] = scale[nonzero].min()
    return (points - mid) * scale


def polyline_solid_angle(points: np.ndarray, grid: Grid) -> np.ndarray:
    """Signed solid angle subtended by the closed polyline at every cell.

    The curve is spanned by the fan of triangles (p0, p_i, p_i+1); each
    triangle contributes 2 atan2(a.(b x c), |a||b||c| + (a.b)|c| + (a.c)|b| + (b.c)|a|).
    """
    X, Y, Z = grid.mesh()
    cells = np.stack([X, Y, Z], axis=-1)
    omega = np.zeros(grid.shape)
    a = points[0] - cells
    la = np.linalg.norm(a, axis=-1)
    for i in range(1, len(points) - 1):
        b = points[i] - cells
        c = points[i + 1] - cells
        lb = np.linalg.norm(b, axis=-1)
        lc = np.linalg.norm(c, axis=-1)
        num = np.sum(a * np.cross(b, c), axis=-1)
        den = (
            la * lb * lc
            + np.sum(a * b, axis=-1) * lc
            + np.sum(a * c, axis=-1) * lb
            + np.sum(b * c, axis=-1) * la
        )
        omega += 2.0 * np.arctan2(num, den)
    return omega


def phase_polyline(path: str, grid: Grid, fill: float = 0.75) -> np.ndarray:
    pts = fit_to_box(read_polyline(path), grid, fill)
    return wrap_phase(0.5 * polyline_solid_angle(pts, grid))


def phase_surface(path: str, grid: Grid) -> np.ndarray:
    d = _load_npz(path, ("centres", "normals", "areas"))
    centres, normals, areas = d["centres"], d["normals"], d["areas"].reshape(-1)
    if centres.ndim != 2 or centres.shape[1] != 3 or normals.shape != centres.shape or len(areas) != len(centres):
        raise ValueError(f"{path}: centres/normals must be (K,3) and areas (K,)")
    X, Y, Z = grid.mesh()
    phi = np.zeros(grid.shape)
    for c, n, A in zip(centres, normals, areas):
        rx, ry, rz = c[0] - X, c[1] - Y, c[2] - Z
        r = np.sqrt(rx * rx + ry * ry + rz * rz)
        contrib = (rx * n[0] + ry * n[1] + rz * n[2]) * A / (2.0 * np.where(r > 0, r, 1.0) ** 3)
        phi += np.where(r > 0, contrib, 0.0)
    return wrap_phase(phi)


# --------------------------
# Entry point
# --------------------------

def initial_state(cfg: FilamentConfig, grid: Grid) -> FieldState:
    mode = cfg.init_mode
    if mode == "uv_file":
        u, v = load_uv_file(cfg.init_file, grid)
        return FieldState(u, v, cfg.start_time)

    if mode == "function":
        if cfg.init_function == "straight":
            phi = phase_straight(grid)
        elif cfg.init_function == "ring":
            phi = phase_ring(grid, cfg.ring_radius)
        elif cfg.init_function == "linked":
            phi = phase_linked(grid, cfg.wavelength)
        else:
            raise ValueError(f"Unknown init_function {cfg.init_function!r} (expected 'straight', 'ring' or 'linked')")
    elif mode == "phi_file":
        phi = load_phi_file(cfg.init_file, grid)
    elif mode == "polyline":
        phi = phase_polyline(cfg.init_file, grid, cfg.fill_fraction)
    elif mode == "surface":
        phi = phase_surface(cfg.init_file, grid)
    else:
        raise ValueError(f"Unknown init_mode {mode!r} (expected one of function, uv_file, phi_file, polyline, surface)")

    u, v = uv_from_phase(phi)
    return FieldState(u, v, cfg.start_time)
