from __future__ import annotations

import numpy as np
import pytest

from scroll_filaments.grid import BoundaryIndexer, Grid
from scroll_filaments.sampling import OutOfBounds, Sampler


def test_wrap_indexer_resolves_both_ends() -> None:
    ix = BoundaryIndexer(8, "wrap")
    assert ix.resolve(-1) == 7
    assert ix.resolve(8) == 0
    lo, hi = ix.neighbors()
    assert lo[0] == 7 and hi[7] == 0


def test_clamp_indexer_resolves_both_ends() -> None:
    ix = BoundaryIndexer(8, "clamp")
    assert ix.resolve(-1) == 0
    assert ix.resolve(8) == 7
    lo, hi = ix.neighbors()
    assert lo[0] == 0 and hi[7] == 7


@pytest.mark.parametrize(
    "boundary,expected",
    [
        ("reflecting", (False, False, False)),
        ("z_periodic", (False, False, True)),
        ("periodic", (True, True, True)),
    ],
)
def test_boundary_modes(boundary: str, expected) -> None:
    assert Grid(4, 4, 4, 1.0, boundary).periodic == expected


def test_unknown_boundary_rejected() -> None:
    with pytest.raises(ValueError, match="expected"):
        Grid(4, 4, 4, 1.0, "mirror")


def test_cell_centres_are_centred_on_origin() -> None:
    g = Grid(4, 6, 2, 0.5)
    np.testing.assert_allclose(g.axis_coords(0), [-0.75, -0.25, 0.25, 0.75])
    np.testing.assert_allclose(g.axis_coords(2), [-0.25, 0.25])
    np.testing.assert_allclose(g.position(0, 5, 1), [-0.75, 1.25, 0.25])


def test_flat_index_is_c_order() -> None:
    g = Grid(3, 4, 5, 1.0)
    assert g.flat_index(2, 1, 3) == np.ravel_multi_index((2, 1, 3), g.shape)
    assert g.flat_index(2, 1, 3) == 2 * 4 * 5 + 1 * 5 + 3


def test_cell_of_round_trips_positions() -> None:
    g = Grid(8, 8, 8, 0.5)
    for cell in [(0, 0, 0), (3, 5, 7), (7, 7, 7)]:
        np.testing.assert_array_equal(g.cell_of(g.position(*cell)), cell)


def test_minimum_image_only_on_periodic_axes() -> None:
    g = Grid(16, 16, 16, 0.5, "z_periodic")
    d = g.minimum_image(np.array([7.0, 0.0, 7.0]))
    np.testing.assert_allclose(d, [7.0, 0.0, -1.0])


def test_trilinear_is_exact_for_linear_fields() -> None:
    g = Grid(8, 8, 8, 0.5)
    X, Y, Z = g.mesh()
    f = 2.0 * X + 3.0 * Y - Z + 1.0
    s = Sampler(g)
    rng = np.random.default_rng(0)
    pts = rng.uniform(-1.7, 1.7, size=(20, 3))
    expected = 2.0 * pts[:, 0] + 3.0 * pts[:, 1] - pts[:, 2] + 1.0
    np.testing.assert_allclose(s.interpolate(f, pts), expected, atol=1e-12)


def test_vector_interpolation_shape() -> None:
    g = Grid(6, 6, 6, 1.0)
    field = np.ones((3,) + g.shape)
    out = Sampler(g).interpolate(field, np.zeros(3))
    np.testing.assert_allclose(out, [1.0, 1.0, 1.0])


def test_reflecting_lookup_outside_raises() -> None:
    g = Grid(8, 8, 8, 0.5)
    with pytest.raises(OutOfBounds):
        Sampler(g).interpolate(g.empty_field(), np.array([0.0, 0.0, 5.0]))
    assert not Sampler(g).inside(np.array([-2.6, 0.0, 0.0]))


def test_clamped_sampler_does_not_raise() -> None:
    g = Grid(8, 8, 8, 0.5)
    f = g.empty_field() + 2.0
    assert Sampler(g, clamp=True).interpolate(f, np.array([0.0, 0.0, 5.0])) == pytest.approx(2.0)


def test_periodic_lookup_wraps_instead_of_raising() -> None:
    g = Grid(8, 8, 8, 0.5, "z_periodic")
    rng = np.random.default_rng(1)
    f = rng.normal(size=g.shape)
    s = Sampler(g)
    p = np.array([0.3, -0.2, 1.1])
    shifted = p + np.array([0.0, 0.0, g.extent[2]])
    assert s.interpolate(f, shifted) == pytest.approx(s.interpolate(f, p))
