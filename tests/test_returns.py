import math

import numpy as np
import pytest

from returns import (
    calculate_percentile,
    generate_lognormal_return,
    generate_lognormal_returns,
    generate_standard_normal,
    lognormal_parameters,
)


@pytest.mark.parametrize(
    "mean, volatility",
    [(7, 15), (0, 0), (10, 50), (-20, 80), (4, 5)],
)
def test_lognormal_draws_never_lose_everything(mean, volatility):
    draws = generate_lognormal_returns(mean, volatility, 10_000, np.random.default_rng(7))
    assert draws.shape == (10_000,)
    assert np.all(draws > -1.0)


def test_lognormal_draws_match_arithmetic_mean():
    draws = generate_lognormal_returns(7, 15, 100_000, np.random.default_rng(2024))
    assert draws.mean() == pytest.approx(0.07, abs=0.005)


def test_zero_volatility_returns_the_mean():
    draws = generate_lognormal_returns(6, 0, 5, np.random.default_rng(1))
    assert np.allclose(draws, 0.06)


def test_matrix_shape():
    draws = generate_lognormal_returns(7, 15, (4, 3), np.random.default_rng(3))
    assert draws.shape == (4, 3)


def test_lognormal_parameters():
    mu_log, sigma = lognormal_parameters(7, 15)
    assert sigma == pytest.approx(0.15)
    assert mu_log == pytest.approx(math.log(1.07) - 0.5 * 0.15**2)


def test_constant_source_gives_constant_normals(constant_random):
    rng = constant_random(0.5)
    value = generate_standard_normal(rng)
    assert value == pytest.approx(-math.sqrt(2 * math.log(2)))
    draws = generate_standard_normal(constant_random(0.5), size=6)
    assert np.allclose(draws, value)


def test_single_draw_is_float(constant_random):
    assert isinstance(generate_lognormal_return(7, 15, constant_random(0.25)), float)


class _ZeroThenHalf:
    def __init__(self):
        self.first = True

    def random(self, size=None):
        if self.first:
            self.first = False
            return np.zeros(size)
        return np.full(size, 0.5)


def test_zero_uniforms_are_redrawn():
    value = generate_standard_normal(_ZeroThenHalf())
    assert math.isfinite(value)


@pytest.mark.parametrize(
    "percentile, expected",
    [(0, 10.0), (25, 17.5), (50, 30.0), (75, 42.5), (100, 50.0)],
)
def test_percentile_interpolation(percentile, expected):
    assert calculate_percentile([10, 20, 30, 40, 50], percentile) == pytest.approx(expected)


def test_percentile_of_empty_sample():
    assert calculate_percentile([], 50) == 0.0


@pytest.mark.parametrize("percentile", [0, 10, 50, 90, 100])
def test_percentile_of_single_value(percentile):
    assert calculate_percentile([42.0], percentile) == 42.0
