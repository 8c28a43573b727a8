import numpy as np
import pytest

from core import HouseholdConfig, MonteCarloSettings
from projection import build_projection


class ConstantRandom:
    """Random source that returns the same uniform value for every draw."""

    def __init__(self, value: float = 0.5):
        self.value = value
        self.calls = 0

    def random(self, size=None):
        self.calls += 1
        if size is None:
            return self.value
        return np.full(size, self.value, dtype=np.float64)


@pytest.fixture
def household():
    return HouseholdConfig()


@pytest.fixture
def projection(household):
    return build_projection(household)


@pytest.fixture
def small_settings():
    return MonteCarloSettings(iterations=20)


@pytest.fixture
def constant_random():
    return ConstantRandom
