"""Monte Carlo replay of the deterministic projection with randomized returns.

Two simulators share one structure.  Returns for every trial and year are
drawn up front as float matrices (parametric lognormal or bootstrapped
history), then each trial walks its own local balances in Decimal.  Trials
never share state, so a failing trial aborts the whole batch instead of
being skipped.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

import numpy as np
from numba import njit

from core import HouseholdConfig, MonteCarloSettings, SimulationError
from historical_returns import HistoricalSequence
from money import (
    HUNDRED,
    ZERO,
    add,
    apply_return,
    clamp_min,
    dec,
    div,
    mul,
    percentage,
    round_dollars,
    round_to,
    sub,
)
from projection import ProjectionResult, YearlySnapshot
from returns import calculate_percentile, generate_lognormal_returns

logger = logging.getLogger(__name__)

PERCENTILES = (10, 25, 50, 75, 90)
GROSS_UP_ITERATIONS = 3
DEFAULT_RETIREMENT_OFFSET = 20


@dataclass(frozen=True)
class AccumulationSample:
    crossing_year: Optional[int]
    crossing_age: Optional[int]
    crossing_portfolio: Optional[Decimal]

    @property
    def crossed(self) -> bool:
        return self.crossing_year is not None


@dataclass(frozen=True)
class ReadinessPoint:
    year: int
    age: int
    probability: float  # percent of trials already ready, one decimal


@dataclass(frozen=True)
class ReadinessPercentile:
    percentile: int
    year: Optional[int]
    age: Optional[int]
    portfolio: Optional[int]
    success_rate: float


@dataclass(frozen=True)
class HistoricalRunInfo:
    sequence_start_years: Tuple[Optional[int], ...]
    stock_allocation: float
    bond_return: float


@dataclass(frozen=True)
class AccumulationMonteCarloResult:
    samples: Tuple[AccumulationSample, ...]
    readiness_by_year: Tuple[ReadinessPoint, ...]
    percentiles: Tuple[ReadinessPercentile, ...]
    historical: Optional[HistoricalRunInfo] = None

    def percentile(self, percentile: int) -> Optional[ReadinessPercentile]:
        return next((p for p in self.percentiles if p.percentile == percentile), None)


@dataclass(frozen=True)
class TimelineEntry:
    year: int
    portfolio: Decimal
    retirement_start: bool


@dataclass(frozen=True)
class WithdrawalTrajectory:
    retirement_year: int
    retirement_age: int
    final_portfolio: Decimal
    depleted: bool
    depletion_year: Optional[int]
    timeline: Tuple[TimelineEntry, ...]


@dataclass(frozen=True)
class YearlyPercentiles:
    p10: int
    p25: int
    p50: int
    p75: int
    p90: int


@dataclass(frozen=True)
class WithdrawalMonteCarloResult:
    survival_probability: float
    depletion_probability: float
    median_depletion_year: Optional[int]
    yearly_percentiles: Dict[int, YearlyPercentiles]
    trajectories: Tuple[WithdrawalTrajectory, ...]
    historical: Optional[HistoricalRunInfo] = None

    def meets_target(self, target_survival: float) -> bool:
        return self.survival_probability >= target_survival


@dataclass(frozen=True)
class WithdrawalOptions:
    retirement_year: int
    starting_portfolio: Decimal

    def __post_init__(self) -> None:
        object.__setattr__(self, "starting_portfolio", dec(self.starting_portfolio))


@dataclass(frozen=True)
class RetirementScenario:
    year: int
    age: int
    starting_portfolio: Decimal
    percentile: int
    probability: float


@njit(cache=True)
def _cumulative_readiness_jit(crossing_index: np.ndarray, n_years: int) -> np.ndarray:
    """Count trials whose crossing index is at or before each year index.

    ``-1`` marks a trial that never crossed.
    """
    counts = np.zeros(n_years, dtype=np.int64)
    for i in range(crossing_index.shape[0]):
        idx = crossing_index[i]
        if 0 <= idx < n_years:
            counts[idx] += 1
    for j in range(1, n_years):
        counts[j] += counts[j - 1]
    return counts


def _draw_return_paths(
    cfg: HouseholdConfig,
    settings: MonteCarloSettings,
    n_years: int,
    rng,
) -> Tuple[np.ndarray, np.ndarray, Optional[HistoricalRunInfo]]:
    """Return ``(tax_advantaged, taxable, historical_info)`` fractional returns.

    Matrices have one row per trial and one column per simulated year.
    """

    shape = (settings.iterations, n_years)
    if not settings.use_historical_returns:
        advantaged = generate_lognormal_returns(
            cfg.tax_advantaged_return, settings.volatility, shape, rng
        )
        taxable = generate_lognormal_returns(
            cfg.taxable_return, settings.volatility, shape, rng
        )
        return advantaged, taxable, None

    stock_weight = settings.stock_allocation / 100
    bond = settings.bond_return / 100
    blended = np.empty(shape, dtype=np.float64)
    start_years: List[Optional[int]] = []
    for trial in range(settings.iterations):
        sequence = HistoricalSequence(rng=None if settings.historical_seed is not None else rng)
        seed = None if settings.historical_seed is None else (settings.historical_seed, trial)
        sequence.initialize(n_years, seed=seed)
        for j in range(n_years):
            blended[trial, j] = stock_weight * sequence.draw() + (1 - stock_weight) * bond
        start_years.append(sequence.first_year)
        sequence.reset()

    info = HistoricalRunInfo(
        sequence_start_years=tuple(start_years),
        stock_allocation=settings.stock_allocation,
        bond_return=settings.bond_return,
    )
    # Both account types hold the same blended allocation.
    return blended, blended.copy(), info


def _check_paths(*paths: np.ndarray) -> None:
    for path in paths:
        if not np.isfinite(path).all():
            raise SimulationError("Return draws contain non-finite values")


def _checked_balance(balance: Decimal, trial: int, year: int) -> Decimal:
    if not balance.is_finite() or balance < 0:
        raise SimulationError(
            f"Trial {trial} produced an invalid balance {balance} in {year}"
        )
    return balance


def _probability(count: int, iterations: int) -> float:
    if iterations <= 0:
        return 0.0
    return float(round_to(mul(div(count, iterations), HUNDRED), 1))


def _rounded(value: float) -> int:
    return int(round_dollars(value))


def run_accumulation_monte_carlo(
    cfg: HouseholdConfig,
    projection: ProjectionResult,
    settings: MonteCarloSettings,
    rng=None,
) -> AccumulationMonteCarloResult:
    """Replay the projection's cash flows with random returns until readiness.

    Each trial stops at the first year its combined portfolio reaches that
    year's deterministic target.
    """

    if rng is None:
        rng = np.random.default_rng()
    years = projection.years
    n_years = len(years)
    iterations = settings.iterations
    logger.info(
        "Running %d accumulation trials over %d years (%s returns)",
        iterations,
        n_years,
        "historical" if settings.use_historical_returns else "parametric",
    )

    advantaged_paths, taxable_paths, historical = _draw_return_paths(
        cfg, settings, n_years, rng
    )
    _check_paths(advantaged_paths, taxable_paths)

    initial = dec(cfg.initial_savings)
    initial_taxable = percentage(initial, cfg.initial_taxable_pct)
    initial_advantaged = sub(initial, initial_taxable)

    samples: List[AccumulationSample] = []
    crossing_index = np.full(iterations, -1, dtype=np.int64)
    for trial in range(iterations):
        advantaged = initial_advantaged
        taxable = initial_taxable
        sample = AccumulationSample(None, None, None)
        for j, snapshot in enumerate(years):
            advantaged = clamp_min(
                add(
                    apply_return(advantaged, float(advantaged_paths[trial, j])),
                    snapshot.tax_advantaged_contribution,
                ),
                0,
            )
            taxable = clamp_min(
                sub(
                    add(
                        apply_return(taxable, float(taxable_paths[trial, j])),
                        snapshot.taxable_contribution,
                    ),
                    snapshot.taxable_withdrawal,
                ),
                0,
            )
            portfolio = _checked_balance(add(advantaged, taxable), trial, snapshot.year)
            if portfolio >= snapshot.target:
                sample = AccumulationSample(
                    snapshot.year, cfg.primary_age(snapshot.year), portfolio
                )
                crossing_index[trial] = j
                break
        samples.append(sample)

    counts = _cumulative_readiness_jit(crossing_index, n_years)
    readiness_by_year = tuple(
        ReadinessPoint(
            year=snapshot.year,
            age=cfg.primary_age(snapshot.year),
            probability=_probability(int(counts[j]), iterations),
        )
        for j, snapshot in enumerate(years)
    )

    percentiles = _readiness_percentiles(samples, readiness_by_year, iterations)
    crossed = sum(1 for s in samples if s.crossed)
    logger.info("Accumulation finished: %d of %d trials reached target", crossed, iterations)

    return AccumulationMonteCarloResult(
        samples=tuple(samples),
        readiness_by_year=readiness_by_year,
        percentiles=percentiles,
        historical=historical,
    )


def _readiness_percentiles(
    samples: List[AccumulationSample],
    readiness_by_year: Tuple[ReadinessPoint, ...],
    iterations: int,
) -> Tuple[ReadinessPercentile, ...]:
    successful = [s for s in samples if s.crossed]
    overall = len(successful) / iterations * 100 if iterations > 0 else 0.0

    # Each column is sorted on its own so every percentile is a true order statistic.
    years_sorted = sorted(float(s.crossing_year) for s in successful)
    ages_sorted = sorted(float(s.crossing_age) for s in successful)
    portfolios_sorted = sorted(float(s.crossing_portfolio) for s in successful)

    entries = []
    for pct in PERCENTILES:
        if not successful or overall < pct:
            entries.append(ReadinessPercentile(pct, None, None, None, overall))
            continue
        year = _rounded(calculate_percentile(years_sorted, pct))
        age = _rounded(calculate_percentile(ages_sorted, pct))
        portfolio = _rounded(calculate_percentile(portfolios_sorted, pct))
        point = _readiness_point_for(year, readiness_by_year)
        entries.append(
            ReadinessPercentile(
                percentile=pct,
                year=year,
                age=age,
                portfolio=portfolio,
                success_rate=point.probability if point is not None else overall,
            )
        )
    return tuple(entries)


def _readiness_point_for(
    year: int, readiness_by_year: Tuple[ReadinessPoint, ...]
) -> Optional[ReadinessPoint]:
    """First curve point at or after ``year``; the last point when none is."""

    for point in readiness_by_year:
        if point.year >= year:
            return point
    return readiness_by_year[-1] if readiness_by_year else None


def _gross_withdrawal(
    net_need: Decimal, taxable: Decimal, capital_gains_rate: float, ordinary_rate: float
) -> Decimal:
    """Gross up ``net_need`` for withdrawal tax with a fixed number of passes."""

    gross = net_need
    for _ in range(GROSS_UP_ITERATIONS):
        from_taxable = min(gross, taxable)
        from_advantaged = clamp_min(sub(gross, from_taxable), 0)
        tax = add(
            percentage(from_taxable, capital_gains_rate),
            percentage(from_advantaged, ordinary_rate),
        )
        gross = add(net_need, tax)
    return gross


def _withdrawal_window(
    cfg: HouseholdConfig,
    projection: ProjectionResult,
    settings: MonteCarloSettings,
    retirement_year: int,
) -> Tuple[int, int]:
    start = projection.index_of(retirement_year)
    if start is None:
        raise ValueError(
            f"Retirement year {retirement_year} is outside the projection timeline"
        )
    end_year = cfg.primary_birth_year + settings.retirement_end_age
    if retirement_year > end_year:
        raise ValueError(
            f"Retirement year {retirement_year} is after the simulation end age "
            f"{settings.retirement_end_age}"
        )
    end = start
    while end < len(projection.years) and projection.years[end].year <= end_year:
        end += 1
    return start, end


def _split_ratio(cfg: HouseholdConfig, base: YearlySnapshot) -> Decimal:
    """Tax-advantaged share of the portfolio at retirement."""

    advantaged = clamp_min(base.tax_advantaged_portfolio, 0)
    taxable = clamp_min(base.taxable_portfolio, 0)
    combined = add(advantaged, taxable)
    if combined > 0:
        return div(advantaged, combined)
    return div(sub(HUNDRED, cfg.initial_taxable_pct), HUNDRED)


def run_withdrawal_monte_carlo(
    cfg: HouseholdConfig,
    projection: ProjectionResult,
    settings: MonteCarloSettings,
    options: WithdrawalOptions,
    rng=None,
) -> WithdrawalMonteCarloResult:
    """Draw the portfolio down from ``options.retirement_year`` to the end age.

    Raises ``ValueError`` when the retirement year cannot be simulated and
    ``SimulationError`` when any trial yields an unusable balance.
    """

    start, end = _withdrawal_window(cfg, projection, settings, options.retirement_year)
    if rng is None:
        rng = np.random.default_rng()
    window = projection.years[start:end]
    n_years = len(window)
    iterations = settings.iterations
    logger.info(
        "Running %d withdrawal trials from %d over %d years",
        iterations,
        options.retirement_year,
        n_years,
    )

    advantaged_paths, taxable_paths, historical = _draw_return_paths(
        cfg, settings, n_years, rng
    )
    _check_paths(advantaged_paths, taxable_paths)

    advantaged_ratio = _split_ratio(cfg, projection.years[start])
    start_advantaged = mul(options.starting_portfolio, advantaged_ratio)
    start_taxable = sub(options.starting_portfolio, start_advantaged)
    floor = dec(settings.depletion_floor)

    trajectories: List[WithdrawalTrajectory] = []
    balances = np.zeros((iterations, n_years), dtype=np.float64)
    for trial in range(iterations):
        advantaged = start_advantaged
        taxable = start_taxable
        depletion_year: Optional[int] = None
        timeline: List[TimelineEntry] = []
        for j, snapshot in enumerate(window):
            advantaged = apply_return(advantaged, float(advantaged_paths[trial, j]))
            taxable = apply_return(taxable, float(taxable_paths[trial, j]))

            net_need = clamp_min(
                sub(
                    snapshot.total_expenses,
                    add(snapshot.rental_net_cash_flow, snapshot.social_security_income),
                ),
                0,
            )
            if net_need > 0:
                gross = _gross_withdrawal(
                    net_need,
                    clamp_min(taxable, 0),
                    settings.capital_gains_rate,
                    settings.ordinary_income_rate,
                )
                if taxable >= gross:
                    taxable = sub(taxable, gross)
                else:
                    advantaged = sub(advantaged, sub(gross, clamp_min(taxable, 0)))
                    taxable = ZERO

            advantaged = clamp_min(advantaged, 0)
            taxable = clamp_min(taxable, 0)
            portfolio = _checked_balance(add(advantaged, taxable), trial, snapshot.year)
            if depletion_year is None and portfolio < floor:
                depletion_year = snapshot.year

            balances[trial, j] = float(portfolio)
            timeline.append(TimelineEntry(snapshot.year, portfolio, j == 0))

        trajectories.append(
            WithdrawalTrajectory(
                retirement_year=options.retirement_year,
                retirement_age=cfg.primary_age(options.retirement_year),
                final_portfolio=timeline[-1].portfolio,
                depleted=depletion_year is not None,
                depletion_year=depletion_year,
                timeline=tuple(timeline),
            )
        )

    depletion_years = sorted(
        float(t.depletion_year) for t in trajectories if t.depleted
    )
    survived = iterations - len(depletion_years)
    survival = survived / iterations * 100 if iterations > 0 else 0.0
    depletion = len(depletion_years) / iterations * 100 if iterations > 0 else 0.0
    median_depletion = (
        _rounded(calculate_percentile(depletion_years, 50)) if depletion_years else None
    )

    logger.info("Withdrawal finished: %.1f%% of trials survived", survival)
    return WithdrawalMonteCarloResult(
        survival_probability=survival,
        depletion_probability=depletion,
        median_depletion_year=median_depletion,
        yearly_percentiles=_yearly_percentiles(window, balances),
        trajectories=tuple(trajectories),
        historical=historical,
    )


def _yearly_percentiles(
    window: Tuple[YearlySnapshot, ...], balances: np.ndarray
) -> Dict[int, YearlyPercentiles]:
    ordered = np.sort(balances, axis=0)
    table = {}
    for j, snapshot in enumerate(window):
        column = ordered[:, j]
        p10, p25, p50, p75, p90 = (
            _rounded(calculate_percentile(column, pct)) for pct in PERCENTILES
        )
        table[snapshot.year] = YearlyPercentiles(p10, p25, p50, p75, p90)
    return table


def derive_retirement_scenario(
    cfg: HouseholdConfig,
    projection: ProjectionResult,
    result: Optional[AccumulationMonteCarloResult],
    percentile: int = 50,
) -> RetirementScenario:
    """Pick the retirement point the withdrawal simulator should start from.

    Prefers the accumulation percentile.  Falls back to the deterministic
    readiness year (certain by construction) and finally to a default year
    twenty years out with the initial savings (probability zero).
    """

    entry = result.percentile(percentile) if result is not None else None
    if entry is not None and entry.year is not None and entry.portfolio is not None:
        return RetirementScenario(
            year=entry.year,
            age=entry.age,
            starting_portfolio=clamp_min(entry.portfolio, 0),
            percentile=percentile,
            probability=entry.success_rate,
        )

    ready = projection.readiness_snapshot
    if ready is not None:
        return RetirementScenario(
            year=ready.year,
            age=ready.primary_age,
            starting_portfolio=ready.portfolio,
            percentile=percentile,
            probability=100.0,
        )

    year = cfg.current_year + DEFAULT_RETIREMENT_OFFSET
    return RetirementScenario(
        year=year,
        age=cfg.primary_age(year),
        starting_portfolio=dec(cfg.initial_savings),
        percentile=percentile,
        probability=0.0,
    )


def withdrawal_options_for(scenario: RetirementScenario) -> WithdrawalOptions:
    return WithdrawalOptions(scenario.year, scenario.starting_portfolio)
