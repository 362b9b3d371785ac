from __future__ import annotations

import math

import numpy as np
import pytest

from scroll_filaments.curves import FilamentCurve
from scroll_filaments.geometry import (
    curvature_torsion,
    polyline_length,
    resample_uniform,
    smooth_points,
    smoothing_cutoff,
    twist_density,
    writhe_density,
)

ZERO = np.zeros(3)


def _circle(radius: float, n: int, phase: float = 0.0) -> np.ndarray:
    t = phase + 2.0 * np.pi * np.arange(n) / n
    return np.column_stack([radius * np.cos(t), radius * np.sin(t), np.zeros(n)])


def _trefoil(n: int = 400) -> np.ndarray:
    t = 2.0 * np.pi * np.arange(n) / n
    return np.column_stack([
        np.sin(t) + 2.0 * np.sin(2 * t),
        np.cos(t) - 2.0 * np.cos(2 * t),
        -np.sin(3 * t),
    ])


def _total_writhe(points: np.ndarray, shift: np.ndarray = ZERO) -> float:
    c = FilamentCurve(points, closure_shift=shift)
    c.ds = np.linalg.norm(c.segments(), axis=1)
    c.writhe = writhe_density(points, shift)
    return c.total_writhe


def test_resampling_equalises_spacing() -> None:
    # points bunched on one side of an ellipse
    t = 2.0 * np.pi * (np.linspace(0, 1, 120, endpoint=False) ** 2)
    pts = np.column_stack([3.0 * np.cos(t), np.sin(t), np.zeros_like(t)])
    out = resample_uniform(pts, ZERO, passes=3)
    seg = np.linalg.norm(np.diff(np.vstack([out, out[:1]]), axis=0), axis=1)
    assert len(out) == len(pts)
    assert seg.max() / seg.min() < 1.05


def test_resampling_keeps_periodic_lift() -> None:
    z = np.linspace(0.0, 8.0, 40, endpoint=False) ** 1.2
    pts = np.column_stack([np.zeros_like(z), np.zeros_like(z), z])
    shift = np.array([0.0, 0.0, 8.0 ** 1.2])
    out = resample_uniform(pts, shift)
    np.testing.assert_allclose(np.diff(out[:, 2]), shift[2] / 40, rtol=1e-9)
    assert polyline_length(out, shift) == pytest.approx(shift[2])


def test_smoothing_removes_ramp_on_lifted_curves() -> None:
    P = 64
    z = np.arange(P) * 0.125
    pts = np.column_stack([np.zeros(P), np.zeros(P), z])
    shift = np.array([0.0, 0.0, 8.0])
    out = smooth_points(pts, shift, smoothing_cutoff(8.0, 4.0 * math.pi))
    np.testing.assert_allclose(out, pts, atol=1e-12)


def test_circle_curvature_and_zero_torsion() -> None:
    R = 2.5
    kappa, tau = curvature_torsion(_circle(R, 200), ZERO)
    np.testing.assert_allclose(kappa, 1.0 / R, rtol=1e-9)
    np.testing.assert_allclose(tau, 0.0, atol=1e-9)


def test_helix_curvature_and_torsion() -> None:
    a, b, turns, P = 2.0, 0.5, 3, 600
    t = 2.0 * np.pi * turns * np.arange(P) / P
    pts = np.column_stack([a * np.cos(t), a * np.sin(t), b * t])
    shift = np.array([0.0, 0.0, 2.0 * np.pi * turns * b])
    kappa, tau = curvature_torsion(pts, shift)
    c2 = a * a + b * b
    np.testing.assert_allclose(kappa, a / c2, rtol=2e-2)
    np.testing.assert_allclose(tau, b / c2, rtol=2e-2)


def test_straight_line_has_zero_torsion() -> None:
    P = 50
    pts = np.column_stack([np.zeros(P), np.zeros(P), np.arange(P) * 0.2])
    kappa, tau = curvature_torsion(pts, np.array([0.0, 0.0, 10.0]))
    np.testing.assert_allclose(kappa, 0.0, atol=1e-9)
    assert np.all(tau == 0.0)


def test_planar_curve_has_no_writhe() -> None:
    pts = _circle(3.0, 150)
    pts[:, 0] *= 1.7
    np.testing.assert_allclose(writhe_density(pts, ZERO), 0.0, atol=1e-10)


def test_writhe_rotation_invariant_and_mirror_odd() -> None:
    pts = _trefoil()
    w = _total_writhe(pts)
    assert abs(w) > 1.0

    ang = 0.7
    rot = np.array([
        [math.cos(ang), -math.sin(ang), 0.0],
        [math.sin(ang), math.cos(ang), 0.0],
        [0.0, 0.0, 1.0],
    ])
    assert _total_writhe(pts @ rot.T) == pytest.approx(w, rel=1e-9)

    mirrored = pts * np.array([1.0, 1.0, -1.0])
    assert _total_writhe(mirrored) == pytest.approx(-w, rel=1e-9)


def test_writhe_chunking_does_not_change_result() -> None:
    pts = _trefoil(300)
    np.testing.assert_allclose(writhe_density(pts, ZERO, chunk=7), writhe_density(pts, ZERO), atol=1e-12)


def test_rotating_frame_twist_counts_turns() -> None:
    P, turns, L = 200, 2, 10.0
    s = np.arange(P)
    pts = np.column_stack([np.zeros(P), np.zeros(P), s * L / P])
    shift = np.array([0.0, 0.0, L])
    phi = 2.0 * np.pi * turns * s / P
    frame = np.column_stack([np.cos(phi), np.sin(phi), np.zeros(P)])

    tw = twist_density(pts, shift, frame)
    assert np.sum(tw * (L / P)) == pytest.approx(turns, rel=1e-3)

    still = np.tile([1.0, 0.0, 0.0], (P, 1))
    np.testing.assert_allclose(twist_density(pts, shift, still), 0.0, atol=1e-14)
