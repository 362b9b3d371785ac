"""minimize.py

Bounded derivative-free minimisation over two parameters, used to snap a
trial filament point back onto the ridge of |grad u x grad v|.

The default backend is scipy's Nelder-Mead with an axis-aligned initial
simplex of side `step`. Termination is on simplex size only (xatol) or the
iteration cap; hitting the cap is not an error, the best vertex is returned
with converged=False.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

import numpy as np
from scipy.optimize import minimize


@dataclass
class MinimizeResult:
    x: np.ndarray
    fun: float
    converged: bool
    iterations: int


class Minimizer:
    def minimize(
        self,
        fn: Callable[[np.ndarray], float],
        x0: np.ndarray,
        step: float,
    ) -> MinimizeResult:
        raise NotImplementedError


class NelderMeadMinimizer(Minimizer):
    def __init__(self, size_tol: float = 1e-2, max_iter: int = 500):
        self.size_tol = float(size_tol)
        self.max_iter = int(max_iter)

    def minimize(self, fn, x0, step) -> MinimizeResult:
        x0 = np.asarray(x0, dtype=np.float64)
        simplex = np.vstack([x0, x0 + step * np.eye(x0.size)])
        res = minimize(
            fn,
            x0,
            method="Nelder-Mead",
            options={
                "initial_simplex": simplex,
                "xatol": self.size_tol,
                "fatol": np.inf,
                "maxiter": self.max_iter,
            },
        )
        return MinimizeResult(
            x=np.asarray(res.x, dtype=np.float64),
            fun=float(res.fun),
            converged=bool(res.success),
            iterations=int(res.nit),
        )
