"""spectral.py

Real spectral transform over periodic sequences and the soft low-pass filter
used to smooth filament coordinates and frame vectors.

The filter multiplies Fourier mode k (k = 0 .. P//2) by

    1 / sqrt(1 + (2k / cutoff)^8)

i.e. the response is evaluated at the index 2k that mode k occupies in a
packed real/imaginary (halfcomplex) layout. cutoff -> inf leaves the sequence unchanged.
"""

from __future__ import annotations

import numpy as np


class SpectralTransform:
    """Forward/inverse real transform along axis 0 of arbitrary length."""

    def forward(self, values: np.ndarray) -> np.ndarray:
        raise NotImplementedError

    def inverse(self, coeffs: np.ndarray, n: int) -> np.ndarray:
        raise NotImplementedError

    def wavenumbers(self, n: int) -> np.ndarray:
        raise NotImplementedError


class NumpyRealFFT(SpectralTransform):
    def forward(self, values: np.ndarray) -> np.ndarray:
        return np.fft.rfft(values, axis=0)

    def inverse(self, coeffs: np.ndarray, n: int) -> np.ndarray:
        return np.fft.irfft(coeffs, n=n, axis=0)

    def wavenumbers(self, n: int) -> np.ndarray:
        return 2.0 * np.arange(n // 2 + 1, dtype=np.float64)


DEFAULT_TRANSFORM = NumpyRealFFT()


def filter_response(k: np.ndarray, cutoff: float) -> np.ndarray:
    if not cutoff > 0:
        raise ValueError(f"cutoff must be positive, got {cutoff}")
    return 1.0 / np.sqrt(1.0 + (k / cutoff) ** 8)


def lowpass_filter(
    values: np.ndarray,
    cutoff: float,
    transform: SpectralTransform = DEFAULT_TRANSFORM,
) -> np.ndarray:
    """Low-pass a periodic sequence (P,) or a stack of channels (P, C)."""
    values = np.asarray(values, dtype=np.float64)
    n = values.shape[0]
    if np.isinf(cutoff):
        return values.copy()
    coeffs = transform.forward(values)
    resp = filter_response(transform.wavenumbers(n), cutoff)
    if coeffs.ndim > 1:
        resp = resp.reshape((-1,) + (1,) * (coeffs.ndim - 1))
    return transform.inverse(coeffs * resp, n)
