"""Random return generators and order statistics for the Monte Carlo engine."""

from __future__ import annotations

import math
from typing import Optional, Sequence, Tuple, Union

import numpy as np
from numba import njit

Size = Union[int, Tuple[int, ...]]


@njit(cache=True)
def _box_muller_jit(u1: np.ndarray, u2: np.ndarray) -> np.ndarray:
    """JIT-compiled Box-Muller transform of two flat uniform arrays."""
    out = np.empty(u1.shape[0])
    for i in range(u1.shape[0]):
        out[i] = np.sqrt(-2.0 * np.log(u1[i])) * np.cos(2.0 * np.pi * u2[i])
    return out


@njit(cache=True)
def _lognormal_jit(z: np.ndarray, mu_log: float, sigma: float) -> np.ndarray:
    """Map standard normals onto simple returns ``exp(mu_log + sigma*z) - 1``."""
    out = np.empty(z.shape[0])
    for i in range(z.shape[0]):
        out[i] = np.exp(mu_log + sigma * z[i]) - 1.0
    return out


@njit(cache=True)
def _percentile_jit(sorted_values: np.ndarray, percentile: float) -> float:
    """Linear interpolation between the two ranks surrounding ``percentile``."""
    n = sorted_values.shape[0]
    rank = percentile / 100.0 * n - 0.5
    if rank <= 0.0:
        return sorted_values[0]
    if rank >= n - 1:
        return sorted_values[n - 1]
    lower = int(np.floor(rank))
    weight = rank - lower
    if weight == 0.0:
        return sorted_values[lower]
    return sorted_values[lower] * (1.0 - weight) + sorted_values[lower + 1] * weight


def _nonzero_uniforms(rng, count: int) -> np.ndarray:
    """Draw ``count`` uniforms, rerolling exact zeros so ``log`` stays finite."""

    u = np.array(rng.random(count), dtype=np.float64).reshape(count)
    zeros = u == 0.0
    while zeros.any():
        u[zeros] = rng.random(int(zeros.sum()))
        zeros = u == 0.0
    return u


def generate_standard_normal(rng=None, size: Optional[Size] = None):
    """Return standard normal draws built from uniforms via Box-Muller.

    ``rng`` only needs a ``random(size)`` method, which lets tests stub the
    random source with a constant.
    """

    if rng is None:
        rng = np.random.default_rng()
    shape = () if size is None else np.atleast_1d(size)
    count = int(np.prod(shape)) if size is not None else 1
    z = _box_muller_jit(_nonzero_uniforms(rng, count), _nonzero_uniforms(rng, count))
    if size is None:
        return float(z[0])
    return z.reshape(tuple(int(s) for s in shape))


def lognormal_parameters(arithmetic_mean: float, volatility: float) -> Tuple[float, float]:
    """Convert percentage mean/volatility into ``(mu_log, sigma)``."""

    mu = arithmetic_mean / 100
    sigma = volatility / 100
    return math.log(1 + mu) - 0.5 * sigma * sigma, sigma


def generate_lognormal_returns(
    arithmetic_mean: float, volatility: float, size: Size, rng=None
) -> np.ndarray:
    """Draw simple annual returns whose gross value ``1 + r`` is lognormal.

    Every draw is strictly greater than -1.0 so a single period of
    compounding can never take a balance below zero.
    """

    mu_log, sigma = lognormal_parameters(arithmetic_mean, volatility)
    z = np.asarray(generate_standard_normal(rng, size), dtype=np.float64)
    flat = _lognormal_jit(z.reshape(-1), mu_log, sigma)
    return flat.reshape(z.shape)


def generate_lognormal_return(arithmetic_mean: float, volatility: float, rng=None) -> float:
    """Single-draw convenience wrapper around :func:`generate_lognormal_returns`."""

    return float(generate_lognormal_returns(arithmetic_mean, volatility, 1, rng)[0])


def calculate_percentile(sorted_values: Sequence[float], percentile: float) -> float:
    """Interpolated percentile of an ascending sample; ``0.0`` when empty."""

    arr = np.asarray(sorted_values, dtype=np.float64)
    if arr.size == 0:
        return 0.0
    return float(_percentile_jit(arr, float(percentile)))
