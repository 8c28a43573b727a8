"""Historical S&P 500 annual returns and bootstrap sequence sessions.

Total returns including dividends, 1928-2024 (Shiller data, Yahoo Finance,
FRED). Values are percentages.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

Seed = Union[int, Sequence[int]]


@dataclass(frozen=True)
class HistoricalReturn:
    year: int
    nominal_return: float
    inflation: float
    real_return: float


# (year, nominal %, CPI inflation %, real %)
_RAW_RETURNS = [
    (1928, 43.61, -1.16, 44.77),
    (1929, -8.42, 0.58, -9.00),
    (1930, -24.90, -2.34, -22.56),
    (1931, -43.34, -9.32, -34.02),
    (1932, -8.19, -10.27, 2.08),
    (1933, 53.99, -5.09, 59.08),
    (1934, -1.44, 3.11, -4.55),
    (1935, 47.67, 2.23, 45.44),
    (1936, 33.92, 1.45, 32.47),
    (1937, -35.03, 3.56, -38.59),
    (1938, 31.12, -2.78, 33.90),
    (1939, -0.41, -1.42, 1.01),
    (1940, -9.78, 0.71, -10.49),
    (1941, -11.59, 5.00, -16.59),
    (1942, 20.34, 10.88, 9.46),
    (1943, 25.90, 6.13, 19.77),
    (1944, 19.75, 1.67, 18.08),
    (1945, 36.44, 2.30, 34.14),
    (1946, -8.07, 8.33, -16.40),
    (1947, 5.71, 14.36, -8.65),
    (1948, 5.50, 8.07, -2.57),
    (1949, 18.79, -1.24, 20.03),
    (1950, 31.71, 1.26, 30.45),
    (1951, 24.02, 7.88, 16.14),
    (1952, 18.37, 1.93, 16.44),
    (1953, -0.99, 0.75, -1.74),
    (1954, 52.62, 0.37, 52.25),
    (1955, 31.56, -0.37, 31.93),
    (1956, 6.56, 1.49, 5.07),
    (1957, -10.78, 3.56, -14.34),
    (1958, 43.36, 2.85, 40.51),
    (1959, 11.96, 0.69, 11.27),
    (1960, 0.47, 1.72, -1.25),
    (1961, 26.89, 1.01, 25.88),
    (1962, -8.73, 1.00, -9.73),
    (1963, 22.80, 1.64, 21.16),
    (1964, 16.48, 1.28, 15.20),
    (1965, 12.45, 1.59, 10.86),
    (1966, -10.06, 3.02, -13.08),
    (1967, 23.98, 3.09, 20.89),
    (1968, 11.06, 4.72, 6.34),
    (1969, -8.50, 6.20, -14.70),
    (1970, 4.01, 5.57, -1.56),
    (1971, 14.31, 3.27, 11.04),
    (1972, 18.98, 3.41, 15.57),
    (1973, -14.66, 8.71, -23.37),
    (1974, -26.47, 12.34, -38.81),
    (1975, 37.20, 6.94, 30.26),
    (1976, 23.84, 4.86, 18.98),
    (1977, -7.18, 6.70, -13.88),
    (1978, 6.56, 9.02, -2.46),
    (1979, 18.44, 13.29, 5.15),
    (1980, 32.42, 12.52, 19.90),
    (1981, -4.91, 8.92, -13.83),
    (1982, 21.55, 3.83, 17.72),
    (1983, 22.56, 3.79, 18.77),
    (1984, 6.27, 3.95, 2.32),
    (1985, 31.73, 3.80, 27.93),
    (1986, 18.67, 1.10, 17.57),
    (1987, 5.25, 4.43, 0.82),
    (1988, 16.61, 4.42, 12.19),
    (1989, 31.69, 4.65, 27.04),
    (1990, -3.10, 6.11, -9.21),
    (1991, 30.47, 3.06, 27.41),
    (1992, 7.62, 2.90, 4.72),
    (1993, 10.08, 2.75, 7.33),
    (1994, 1.32, 2.67, -1.35),
    (1995, 37.58, 2.54, 35.04),
    (1996, 22.96, 3.32, 19.64),
    (1997, 33.36, 1.70, 31.66),
    (1998, 28.58, 1.61, 26.97),
    (1999, 21.04, 2.68, 18.36),
    (2000, -9.10, 3.39, -12.49),
    (2001, -11.89, 1.55, -13.44),
    (2002, -22.10, 2.38, -24.48),
    (2003, 28.68, 1.88, 26.80),
    (2004, 10.88, 3.26, 7.62),
    (2005, 4.91, 3.42, 1.49),
    (2006, 15.79, 2.54, 13.25),
    (2007, 5.49, 4.08, 1.41),
    (2008, -37.00, 0.09, -37.09),
    (2009, 26.46, 2.72, 23.74),
    (2010, 15.06, 1.50, 13.56),
    (2011, 2.11, 2.96, -0.85),
    (2012, 16.00, 1.74, 14.26),
    (2013, 32.39, 1.50, 30.89),
    (2014, 13.69, 0.76, 12.93),
    (2015, 1.38, 0.73, 0.65),
    (2016, 11.96, 2.07, 9.89),
    (2017, 21.83, 2.11, 19.72),
    (2018, -4.38, 1.91, -6.29),
    (2019, 31.49, 2.29, 29.20),
    (2020, 18.40, 1.36, 17.04),
    (2021, 28.71, 7.04, 21.67),
    (2022, -18.11, 6.45, -24.56),
    (2023, 26.29, 3.35, 22.94),
    (2024, 25.00, 2.90, 22.10),
]

SP500_HISTORICAL_RETURNS: Tuple[HistoricalReturn, ...] = tuple(
    HistoricalReturn(*row) for row in _RAW_RETURNS
)


@dataclass(frozen=True)
class HistoricalStatistics:
    mean_nominal_return: float
    mean_real_return: float
    std_dev_nominal: float
    std_dev_real: float
    worst_year: HistoricalReturn
    best_year: HistoricalReturn


def historical_statistics(
    returns: Sequence[HistoricalReturn] = SP500_HISTORICAL_RETURNS,
) -> HistoricalStatistics:
    """Population mean and standard deviation of the table, plus extremes by real return."""

    nominal = np.array([r.nominal_return for r in returns], dtype=np.float64)
    real = np.array([r.real_return for r in returns], dtype=np.float64)
    return HistoricalStatistics(
        mean_nominal_return=float(nominal.mean()),
        mean_real_return=float(real.mean()),
        std_dev_nominal=float(nominal.std()),
        std_dev_real=float(real.std()),
        worst_year=min(returns, key=lambda r: r.real_return),
        best_year=max(returns, key=lambda r: r.real_return),
    )


def historical_year_range(
    returns: Sequence[HistoricalReturn] = SP500_HISTORICAL_RETURNS,
) -> Tuple[int, int]:
    return returns[0].year, returns[-1].year


def generate_historical_sequence(
    length: int,
    seed: Optional[Seed] = None,
    returns: Sequence[HistoricalReturn] = SP500_HISTORICAL_RETURNS,
    rng=None,
) -> Tuple[List[float], Optional[int]]:
    """Bootstrap ``length`` annual returns (as fractions) with replacement.

    The same ``seed`` always yields the same sequence. Returns the values and
    the historical year of the first draw (``None`` for an empty sequence).
    """

    if seed is not None:
        rng = np.random.default_rng(seed)
    elif rng is None:
        rng = np.random.default_rng()
    if length <= 0:
        return [], None
    u = np.asarray(rng.random(length), dtype=np.float64)
    indices = np.minimum((u * len(returns)).astype(np.int64), len(returns) - 1)
    values = [returns[int(i)].nominal_return / 100 for i in indices]
    return values, returns[int(indices[0])].year


def generate_sequential_history(
    start_year: int,
    length: int,
    returns: Sequence[HistoricalReturn] = SP500_HISTORICAL_RETURNS,
) -> List[float]:
    """Replay history in order from ``start_year``, wrapping past the last year."""

    start_index = next(
        (i for i, r in enumerate(returns) if r.year == start_year), None
    )
    if start_index is None:
        raise ValueError(f"Start year {start_year} not found in historical data")
    return [
        returns[(start_index + i) % len(returns)].nominal_return / 100
        for i in range(length)
    ]


class HistoricalSequence:
    """Caller-owned cursor over a bootstrapped historical return sequence.

    Lifecycle is ``initialize`` -> ``draw`` ... -> ``reset``. Each Monte Carlo
    trial owns its own instance so trials never share a cursor.
    """

    def __init__(
        self,
        returns: Sequence[HistoricalReturn] = SP500_HISTORICAL_RETURNS,
        rng=None,
    ):
        self.returns = returns
        self._rng = rng
        self._values: Optional[List[float]] = None
        self._index = 0
        self.first_year: Optional[int] = None

    @property
    def initialized(self) -> bool:
        return self._values is not None

    @property
    def remaining(self) -> int:
        if self._values is None:
            return 0
        return len(self._values) - self._index

    def initialize(self, length: int, seed: Optional[Seed] = None) -> None:
        self._values, self.first_year = generate_historical_sequence(
            length, seed=seed, returns=self.returns, rng=self._rng
        )
        self._index = 0

    def draw(self) -> float:
        """Next fractional return; an unseeded table draw once the sequence runs out."""

        if self._values is None or self._index >= len(self._values):
            if self._rng is None:
                self._rng = np.random.default_rng()
            index = min(int(self._rng.random() * len(self.returns)), len(self.returns) - 1)
            entry = self.returns[index]
            if self.first_year is None:
                self.first_year = entry.year
            return entry.nominal_return / 100
        value = self._values[self._index]
        self._index += 1
        return value

    def reset(self) -> None:
        self._values = None
        self._index = 0
        self.first_year = None
