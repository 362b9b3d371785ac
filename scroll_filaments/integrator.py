"""integrator.py

Explicit time stepping of the FitzHugh-Nagumo pair on a Grid.

    du/dt = (u - u^3/3 - v) / epsilon + lap(u)
    dv/dt = epsilon * (u + beta - gamma * v)

lap is the 7-point stencil divided by h^2, evaluated with the per-axis
boundary rule of the grid (clamp = zero flux, wrap = periodic). Only u
diffuses.

Schemes
-------
- "rk4":   classic four-stage Runge-Kutta. Stage derivatives are summed into a
           running total with weights 1, 2, 2 while the working fields are
           advanced from the step start by dt*1/2, dt*1/2, dt*1; the last
           stage closes with u = u_old + dt/6 * (total + k4).
- "euler": forward Euler. lap(u) is taken from the old u, u is updated, then v
           is updated using the new u.

All grid-wide passes go through a SlabPool; each `map` is a barrier, so one
stage is finished everywhere before the next stage reads it.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .grid import Grid
from .parallel import SlabPool


SCHEMES = ("rk4", "euler")


@dataclass
class FHNParams:
    epsilon: float = 0.3
    beta: float = 0.7
    gamma: float = 0.5


@dataclass
class FieldState:
    """The two scalar fields, mutated in place by the integrator."""

    u: np.ndarray
    v: np.ndarray
    time: float = 0.0

    def copy(self) -> "FieldState":
        return FieldState(self.u.copy(), self.v.copy(), self.time)


# --------------------------
# Stencil / reaction terms
# --------------------------

def neighbor_tables(grid: Grid) -> Tuple[Tuple[np.ndarray, np.ndarray], ...]:
    return tuple(ix.neighbors() for ix in grid.indexers)


def laplacian(u: np.ndarray, grid: Grid, s: slice = slice(None), tables=None) -> np.ndarray:
    """7-point Laplacian of u on the x-slab s."""
    if tables is None:
        tables = neighbor_tables(grid)
    (xl, xu), (yl, yu), (zl, zu) = tables
    us = u[s]
    out = u[xl[s]] + u[xu[s]]
    out += us[:, yl] + us[:, yu]
    out += us[:, :, zl] + us[:, :, zu]
    out -= 6.0 * us
    out /= grid.h * grid.h
    return out


def reaction_u(u: np.ndarray, v: np.ndarray, p: FHNParams) -> np.ndarray:
    return (u - u * u * u / 3.0 - v) / p.epsilon


def reaction_v(u: np.ndarray, v: np.ndarray, p: FHNParams) -> np.ndarray:
    return p.epsilon * (u + p.beta - p.gamma * v)


# --------------------------
# Integrator
# --------------------------

class FieldIntegrator:
    def __init__(
        self,
        grid: Grid,
        params: FHNParams = None,
        dt: float = 0.02,
        scheme: str = "rk4",
        workers: int = 1,
        diffusion: bool = True,
    ):
        if scheme not in SCHEMES:
            raise ValueError(f"Unknown integrator {scheme!r} (expected one of {SCHEMES})")
        self.grid = grid
        self.params = params if params is not None else FHNParams()
        self.dt = float(dt)
        self.scheme = scheme
        self.diffusion = diffusion
        self.pool = SlabPool(grid.nx, workers)
        self._tables = neighbor_tables(grid)

        shape = grid.shape
        self._ku = np.zeros(shape)
        self._kv = np.zeros(shape)
        if scheme == "rk4":
            self._kut = np.zeros(shape)
            self._kvt = np.zeros(shape)
            self._uold = np.zeros(shape)
            self._vold = np.zeros(shape)

    def close(self) -> None:
        self.pool.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False

    # ----------------------------------------------------------------

    def _derivatives(self, u: np.ndarray, v: np.ndarray) -> None:
        p = self.params

        def work(s: slice) -> None:
            ku = reaction_u(u[s], v[s], p)
            if self.diffusion:
                ku += laplacian(u, self.grid, s, self._tables)
            self._ku[s] = ku
            self._kv[s] = reaction_v(u[s], v[s], p)

        self.pool.map(work)

    def step(self, state: FieldState) -> FieldState:
        if self.scheme == "rk4":
            self._step_rk4(state)
        else:
            self._step_euler(state)
        state.time += self.dt
        return state

    def advance(self, state: FieldState, nsteps: int) -> FieldState:
        for _ in range(int(nsteps)):
            self.step(state)
        return state

    def _step_rk4(self, state: FieldState) -> None:
        u, v, dt = state.u, state.v, self.dt
        ku, kv, kut, kvt = self._ku, self._kv, self._kut, self._kvt
        uold, vold = self._uold, self._vold

        def start(s: slice) -> None:
            uold[s] = u[s]
            vold[s] = v[s]
            kut[s] = 0.0
            kvt[s] = 0.0

        self.pool.map(start)

        for frac, weight in ((0.5, 1.0), (0.5, 2.0), (1.0, 2.0)):
            self._derivatives(u, v)

            def add(s: slice, frac=frac, weight=weight) -> None:
                u[s] = uold[s] + dt * frac * ku[s]
                v[s] = vold[s] + dt * frac * kv[s]
                kut[s] += weight * ku[s]
                kvt[s] += weight * kv[s]

            self.pool.map(add)

        self._derivatives(u, v)

        def finish(s: slice) -> None:
            u[s] = uold[s] + dt / 6.0 * (kut[s] + ku[s])
            v[s] = vold[s] + dt / 6.0 * (kvt[s] + kv[s])

        self.pool.map(finish)

    def _step_euler(self, state: FieldState) -> None:
        u, v, dt, p = state.u, state.v, self.dt, self.params
        d2u = self._ku

        def lap(s: slice) -> None:
            if self.diffusion:
                d2u[s] = laplacian(u, self.grid, s, self._tables)
            else:
                d2u[s] = 0.0

        self.pool.map(lap)

        def update(s: slice) -> None:
            u[s] = u[s] + dt * (reaction_u(u[s], v[s], p) + d2u[s])
            v[s] = v[s] + dt * reaction_v(u[s], v[s], p)

        self.pool.map(update)
