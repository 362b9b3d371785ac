from __future__ import annotations

import math

import numpy as np

from scroll_filaments.crossgrad import cross_gradient
from scroll_filaments.curves import STATUS_CLOSED, STATUS_OUT_OF_BOUNDS, STATUS_STEP_CAP, FilamentCurve
from scroll_filaments.extraction import (
    ExtractorSettings,
    FilamentExtractor,
    MarkingState,
    TerminationRule,
    any_perpendicular,
    core_length,
)
from scroll_filaments.geometry import GeometryProcessor
from scroll_filaments.grid import Grid

from .conftest import line_fields


def test_core_length() -> None:
    assert core_length(2.0 * math.pi) == 1.0


def test_any_perpendicular_is_unit_and_orthogonal() -> None:
    for t in ([0.0, 0.0, 1.0], [1.0, 0.0, 0.0], [0.6, 0.8, 0.0]):
        t = np.array(t)
        p = any_perpendicular(t)
        assert abs(np.dot(p, t)) < 1e-12
        assert abs(np.linalg.norm(p) - 1.0) < 1e-12


def test_marking_wraps_and_clamps_per_axis() -> None:
    g = Grid(8, 8, 8, 1.0, "z_periodic")
    marks = MarkingState(g)
    marks.mark((0, 3, 7), 1)
    np.testing.assert_array_equal(np.nonzero(marks.x)[0], [0, 1])
    np.testing.assert_array_equal(np.nonzero(marks.y)[0], [2, 3, 4])
    np.testing.assert_array_equal(np.nonzero(marks.z)[0], [0, 6, 7])

    mask = marks.unmarked_mask()
    assert not mask[1, 2, 0]
    assert mask[2, 2, 0]
    marks.reset()
    assert marks.unmarked_mask().all()


def test_termination_rule() -> None:
    g = Grid(16, 16, 16, 0.5, "z_periodic")
    rule = TerminationRule(closure_radius=1.5, min_steps=10, max_steps=100)
    start = np.zeros(3)
    near = np.array([0.5, 0.0, 0.0])
    assert rule.check(g, start, near, 10) is None
    assert rule.check(g, start, near, 11) == STATUS_CLOSED
    # 7.5 along z is 0.5 away through the periodic face
    assert rule.check(g, start, np.array([0.0, 0.0, 7.5]), 20) == STATUS_CLOSED
    assert rule.check(g, start, np.array([3.0, 0.0, 0.0]), 101) == STATUS_STEP_CAP


def test_truncated_trace_keep_rule() -> None:
    g = Grid(16, 16, 16, 0.5)
    ex = FilamentExtractor(g, ExtractorSettings(wavelength=4.0 * math.pi))
    t = np.linspace(0.0, 1.9 * np.pi, 40)
    almost_closed = FilamentCurve(np.column_stack([2 * np.cos(t), 2 * np.sin(t), 0 * t]), status=STATUS_STEP_CAP)
    assert ex.keep(almost_closed)

    open_arc = FilamentCurve(np.column_stack([2 * np.cos(t / 2), 2 * np.sin(t / 2), 0 * t]), status=STATUS_OUT_OF_BOUNDS)
    assert not ex.keep(open_arc)

    short = FilamentCurve(almost_closed.points[:5], status=STATUS_STEP_CAP)
    assert not ex.keep(short)


def test_ring_is_extracted_as_one_closed_curve(ring_setup) -> None:
    grid, radius, wavelength, ucv = ring_setup
    ex = FilamentExtractor(grid, ExtractorSettings(wavelength=wavelength))
    curves = ex.extract(ucv)

    assert len(curves) == 1
    assert ex.stats.found == 1
    assert ex.stats.statuses == [STATUS_CLOSED]
    c = curves[0]
    assert c.component == 0
    np.testing.assert_allclose(c.closure_shift, 0.0)

    _, _, Z = grid.mesh()
    GeometryProcessor(grid, wavelength / 2).process(c, Z.copy())

    assert c.length == np.sum(c.ds)
    assert abs(c.length - 2 * np.pi * radius) < 0.05 * 2 * np.pi * radius
    assert abs(np.mean(c.curvature) - 1 / radius) < 0.05 / radius
    assert np.all(np.abs(c.curvature - 1 / radius) < 0.25 / radius)
    assert abs(c.total_writhe) < 0.05
    np.testing.assert_allclose(np.linalg.norm(c.frame, axis=1), 1.0, atol=1e-9)
    np.testing.assert_allclose(np.sum(c.frame * c.segments(), axis=1), 0.0, atol=0.05)


def test_line_leaving_reflecting_box_is_discarded() -> None:
    grid = Grid(16, 16, 16, 0.5, "reflecting")
    u, v = line_fields(grid, 0.25, 0.25)
    ex = FilamentExtractor(grid, ExtractorSettings(wavelength=4.0 * math.pi))
    curves = ex.extract(cross_gradient(u, v, grid))
    assert curves == []
    assert ex.stats.discarded >= 1
    assert set(ex.stats.statuses) == {STATUS_OUT_OF_BOUNDS}


def test_straight_line_closes_through_periodic_face(line_setup) -> None:
    grid, u, v = line_setup
    wavelength = 4.0 * math.pi
    ex = FilamentExtractor(grid, ExtractorSettings(wavelength=wavelength))
    curves = ex.extract(cross_gradient(u, v, grid))

    assert len(curves) == 1
    c = curves[0]
    assert c.status == STATUS_CLOSED
    np.testing.assert_allclose(c.closure_shift, [0.0, 0.0, grid.extent[2]])
    np.testing.assert_allclose(c.points[:, :2], 0.25, atol=0.05)

    GeometryProcessor(grid, wavelength, kappa_floor=1e-2).process(c, u)
    assert abs(c.length - grid.extent[2]) < 0.05
    assert np.all(c.curvature < 1e-2)
    assert np.all(c.torsion == 0.0)
    assert abs(c.total_writhe) < 1e-3
