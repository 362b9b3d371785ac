from __future__ import annotations

import math

import numpy as np
import pytest

from scroll_filaments.grid import Grid


def ring_cross_gradient(grid: Grid, radius: float, z0: float = 0.0, sigma: float = 0.75, amp: float = 1.0) -> np.ndarray:
    """Azimuthal vector field whose magnitude is a Gaussian tube around a
    ring of the given radius in the plane z = z0."""
    X, Y, Z = grid.mesh()
    rho = np.sqrt(X * X + Y * Y)
    rho_safe = np.where(rho > 0, rho, 1.0)
    mag = amp * np.exp(-((rho - radius) ** 2 + (Z - z0) ** 2) / (2.0 * sigma ** 2))
    return np.stack([-Y / rho_safe * mag, X / rho_safe * mag, np.zeros_like(mag)])


def line_fields(grid: Grid, x0: float, y0: float, amp: float = 1.5, width: float = 1.0):
    """u depends on x only, v on y only: grad u x grad v points along +z and
    peaks on the line x = x0, y = y0."""
    X, Y, _ = grid.mesh()
    return amp * np.tanh((X - x0) / width), amp * np.tanh((Y - y0) / width)


@pytest.fixture
def ring_setup():
    grid = Grid(32, 32, 8, 0.5, "z_periodic")
    radius = 4.0
    wavelength = 4.0 * math.pi
    return grid, radius, wavelength, ring_cross_gradient(grid, radius, z0=0.25)


@pytest.fixture
def line_setup():
    grid = Grid(16, 16, 16, 0.5, "z_periodic")
    u, v = line_fields(grid, 0.25, 0.25)
    return grid, u, v
