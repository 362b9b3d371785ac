"""parallel.py

Fixed pool of worker threads for the grid-wide stencil passes.

The x axis is split into contiguous slabs, one per worker. Each call to
`SlabPool.map` hands every slab to the pool and returns only when all of them
are done, so consecutive calls are separated by a barrier. Every cell belongs
to exactly one slab, so workers never write the same output cell.
"""

from __future__ import annotations

from multiprocessing.pool import ThreadPool
from typing import Callable, List, Optional

import numpy as np


def slab_bounds(n: int, workers: int) -> List[slice]:
    """Split range(n) into at most `workers` contiguous, near-equal slices."""
    workers = max(1, min(int(workers), int(n)))
    edges = np.linspace(0, n, workers + 1).round().astype(int)
    return [slice(int(a), int(b)) for a, b in zip(edges[:-1], edges[1:]) if b > a]


class SlabPool:
    def __init__(self, nx: int, workers: int = 1):
        self.workers = max(1, int(workers))
        self.slabs = slab_bounds(nx, self.workers)
        self._pool: Optional[ThreadPool] = None
        if len(self.slabs) > 1:
            self._pool = ThreadPool(processes=len(self.slabs))

    def map(self, fn: Callable[[slice], None]) -> None:
        """Run fn(slab) for every slab and wait for all of them."""
        if self._pool is None:
            for s in self.slabs:
                fn(s)
        else:
            self._pool.map(fn, self.slabs)

    def close(self) -> None:
        if self._pool is not None:
            self._pool.close()
            self._pool.join()
            self._pool = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()
        return False
