from dataclasses import replace
from decimal import Decimal

import numpy as np
import pytest

from core import HouseholdConfig, MonteCarloSettings, SimulationError
from historical_returns import SP500_HISTORICAL_RETURNS
from money import add, apply_return, clamp_min, mul, sub
from montecarlo import (
    PERCENTILES,
    WithdrawalOptions,
    _gross_withdrawal,
    _split_ratio,
    derive_retirement_scenario,
    run_accumulation_monte_carlo,
    run_withdrawal_monte_carlo,
)
from projection import ProjectionResult, build_projection
from returns import generate_lognormal_return


class ExplodingRandom:
    """Fails the test if anything asks it for randomness."""

    def random(self, size=None):
        raise AssertionError("random source should not be used")


@pytest.fixture
def rich_household():
    return HouseholdConfig(initial_savings=1_000_000_000)


@pytest.fixture
def unreachable_household():
    return HouseholdConfig(target_multiple=1_000)


def _with_balances(projection, year, advantaged, taxable):
    """Copy of ``projection`` with the account balances of ``year`` replaced."""

    years = tuple(
        replace(
            s,
            tax_advantaged_portfolio=Decimal(advantaged),
            taxable_portfolio=Decimal(taxable),
            portfolio=Decimal(advantaged + taxable),
        )
        if s.year == year
        else s
        for s in projection.years
    )
    return ProjectionResult(years, projection.readiness_snapshot, projection.overfunding_warning)


def _net_need(snapshot):
    return clamp_min(
        sub(
            snapshot.total_expenses,
            add(snapshot.rental_net_cash_flow, snapshot.social_security_income),
        ),
        0,
    )


def test_accumulation_is_deterministic_with_constant_source(
    household, projection, small_settings, constant_random
):
    first = run_accumulation_monte_carlo(
        household, projection, small_settings, constant_random(0.5)
    )
    second = run_accumulation_monte_carlo(
        household, projection, small_settings, constant_random(0.5)
    )
    assert first.samples == second.samples
    assert first.readiness_by_year == second.readiness_by_year
    assert len(first.samples) == small_settings.iterations
    # Every trial sees identical returns.
    assert len(set(first.samples)) == 1


def test_readiness_curve_is_monotone(household, projection, small_settings):
    result = run_accumulation_monte_carlo(
        household, projection, small_settings, np.random.default_rng(11)
    )
    probabilities = [p.probability for p in result.readiness_by_year]
    assert probabilities == sorted(probabilities)
    assert all(0.0 <= p <= 100.0 for p in probabilities)
    assert [p.year for p in result.readiness_by_year] == [s.year for s in projection.years]


def test_everyone_crosses_in_first_year(rich_household, small_settings, constant_random):
    projection = build_projection(rich_household)
    result = run_accumulation_monte_carlo(
        rich_household, projection, small_settings, constant_random(0.5)
    )
    assert all(s.crossing_year == 2025 for s in result.samples)
    assert all(p.probability == 100.0 for p in result.readiness_by_year)
    for entry in result.percentiles:
        assert entry.year == 2025
        assert entry.age == 38
        assert entry.success_rate == 100.0
    assert [entry.percentile for entry in result.percentiles] == list(PERCENTILES)


def test_percentiles_null_when_nobody_crosses(
    unreachable_household, small_settings, constant_random
):
    projection = build_projection(unreachable_household)
    result = run_accumulation_monte_carlo(
        unreachable_household, projection, small_settings, constant_random(0.5)
    )
    assert all(s.crossing_year is None for s in result.samples)
    assert all(p.probability == 0.0 for p in result.readiness_by_year)
    for entry in result.percentiles:
        assert entry.year is None
        assert entry.age is None
        assert entry.portfolio is None
        assert entry.success_rate == 0.0


def test_seeded_historical_mode_ignores_injected_source(household, projection):
    settings = MonteCarloSettings(
        iterations=5, use_historical_returns=True, historical_seed=11
    )
    first = run_accumulation_monte_carlo(household, projection, settings, ExplodingRandom())
    second = run_accumulation_monte_carlo(household, projection, settings, ExplodingRandom())
    assert first.samples == second.samples
    info = first.historical
    assert info is not None
    assert info.sequence_start_years == second.historical.sequence_start_years
    assert len(info.sequence_start_years) == 5
    assert all(1928 <= y <= 2024 for y in info.sequence_start_years)
    assert info.stock_allocation == 60


def test_parametric_mode_has_no_historical_info(
    household, projection, small_settings, constant_random
):
    result = run_accumulation_monte_carlo(
        household, projection, small_settings, constant_random(0.5)
    )
    assert result.historical is None


def test_non_finite_draws_abort_the_batch(household, projection, small_settings, constant_random):
    with pytest.raises(SimulationError):
        run_accumulation_monte_carlo(
            household, projection, small_settings, constant_random(float("nan"))
        )


@pytest.mark.parametrize("year", [1990, 2200])
def test_withdrawal_rejects_year_outside_projection(
    household, projection, small_settings, year
):
    with pytest.raises(ValueError):
        run_withdrawal_monte_carlo(
            household, projection, small_settings, WithdrawalOptions(year, 1_000_000)
        )


def test_withdrawal_rejects_year_after_end_age(household, projection, constant_random):
    settings = MonteCarloSettings(iterations=5, retirement_end_age=40)
    with pytest.raises(ValueError):
        run_withdrawal_monte_carlo(
            household,
            projection,
            settings,
            WithdrawalOptions(2030, 1_000_000),
            constant_random(0.5),
        )


def test_large_portfolio_always_survives(
    household, projection, small_settings, constant_random
):
    result = run_withdrawal_monte_carlo(
        household,
        projection,
        small_settings,
        WithdrawalOptions(2040, 1_000_000_000),
        constant_random(0.9),
    )
    assert result.survival_probability == 100.0
    assert result.depletion_probability == 0.0
    assert result.median_depletion_year is None
    assert result.meets_target(90)
    assert sorted(result.yearly_percentiles) == list(range(2040, 2078))
    assert len(result.trajectories) == small_settings.iterations
    trajectory = result.trajectories[0]
    assert trajectory.timeline[0].retirement_start
    assert not trajectory.timeline[1].retirement_start
    assert trajectory.retirement_age == 53


def test_empty_portfolio_depletes_immediately(
    household, projection, small_settings, constant_random
):
    result = run_withdrawal_monte_carlo(
        household,
        projection,
        small_settings,
        WithdrawalOptions(2040, 0),
        constant_random(0.5),
    )
    assert result.survival_probability == 0.0
    assert result.depletion_probability == 100.0
    assert result.median_depletion_year == 2040
    assert not result.meets_target(90)
    assert all(t.depletion_year == 2040 for t in result.trajectories)
    assert all(t.final_portfolio == 0 for t in result.trajectories)


def test_withdrawal_percentiles_are_ordered(household, projection, small_settings):
    result = run_withdrawal_monte_carlo(
        household,
        projection,
        small_settings,
        WithdrawalOptions(2045, 6_000_000),
        np.random.default_rng(5),
    )
    for row in result.yearly_percentiles.values():
        assert row.p10 <= row.p25 <= row.p50 <= row.p75 <= row.p90
        assert row.p10 >= 0
    for trajectory in result.trajectories:
        assert all(entry.portfolio >= 0 for entry in trajectory.timeline)


def test_depletion_is_latched(household, projection, small_settings):
    result = run_withdrawal_monte_carlo(
        household,
        projection,
        small_settings,
        WithdrawalOptions(2045, 300_000),
        np.random.default_rng(8),
    )
    assert any(t.depleted for t in result.trajectories)
    for trajectory in result.trajectories:
        below = [e.year for e in trajectory.timeline if e.portfolio < 1_000]
        if trajectory.depleted:
            assert trajectory.depletion_year == below[0]
        else:
            assert below == []


@pytest.mark.parametrize(
    "taxable, expected",
    [
        (Decimal(1_000), Decimal("117.5875")),
        (Decimal(0), Decimal("143.5891")),
    ],
)
def test_gross_up_runs_three_passes(taxable, expected):
    assert _gross_withdrawal(Decimal(100), taxable, 15, 31) == expected


def test_scenario_from_accumulation_percentile(
    rich_household, small_settings, constant_random
):
    projection = build_projection(rich_household)
    result = run_accumulation_monte_carlo(
        rich_household, projection, small_settings, constant_random(0.5)
    )
    scenario = derive_retirement_scenario(rich_household, projection, result, 50)
    assert scenario.year == 2025
    assert scenario.probability == 100.0
    assert scenario.starting_portfolio > 0


def test_scenario_falls_back_to_deterministic_readiness(rich_household):
    projection = build_projection(rich_household)
    scenario = derive_retirement_scenario(rich_household, projection, None)
    assert scenario.year == projection.readiness_year
    assert scenario.probability == 100.0
    assert scenario.starting_portfolio == projection.readiness_snapshot.portfolio


def test_scenario_falls_back_to_default_year(unreachable_household):
    projection = build_projection(unreachable_household)
    scenario = derive_retirement_scenario(unreachable_household, projection, None, 25)
    assert scenario.year == 2045
    assert scenario.age == 58
    assert scenario.probability == 0.0
    assert scenario.percentile == 25
    assert scenario.starting_portfolio == 500_000


def test_unseeded_historical_mode_draws_from_injected_source(
    household, projection, constant_random
):
    settings = MonteCarloSettings(iterations=3, use_historical_returns=True)
    result = run_accumulation_monte_carlo(
        household, projection, settings, constant_random(0.5)
    )
    assert len(set(result.samples)) == 1
    assert result.historical.sequence_start_years == (SP500_HISTORICAL_RETURNS[48].year,) * 3


def test_seeded_historical_withdrawal_is_repeatable(household, projection):
    settings = MonteCarloSettings(
        iterations=4, use_historical_returns=True, historical_seed=21
    )
    options = WithdrawalOptions(2045, 4_000_000)
    first = run_withdrawal_monte_carlo(
        household, projection, settings, options, ExplodingRandom()
    )
    second = run_withdrawal_monte_carlo(
        household, projection, settings, options, ExplodingRandom()
    )
    assert first.trajectories == second.trajectories
    assert first.yearly_percentiles == second.yearly_percentiles
    assert first.historical.sequence_start_years == second.historical.sequence_start_years
    assert len(first.historical.sequence_start_years) == 4


@pytest.mark.parametrize(
    "advantaged, taxable, taxable_pct, expected",
    [
        (2_000_000, 0, 60, Decimal(1)),
        (0, 500_000, 60, Decimal(0)),
        (300_000, 100_000, 60, Decimal("0.75")),
        (0, 0, 40, Decimal("0.6")),
        (0, 0, 100, Decimal(0)),
    ],
)
def test_split_ratio(household, projection, advantaged, taxable, taxable_pct, expected):
    cfg = replace(household, initial_taxable_pct=taxable_pct)
    modified = _with_balances(projection, 2040, advantaged, taxable)
    assert _split_ratio(cfg, modified.snapshot_for(2040)) == expected


def test_tax_deferred_only_withdrawal_uses_ordinary_rate(
    household, projection, constant_random
):
    settings = MonteCarloSettings(iterations=3)
    modified = _with_balances(projection, 2040, 2_000_000, 0)
    need = _net_need(modified.snapshot_for(2040))
    assert need > 0

    result = run_withdrawal_monte_carlo(
        household,
        modified,
        settings,
        WithdrawalOptions(2040, 3_000_000),
        constant_random(0.5),
    )
    rate = generate_lognormal_return(
        household.tax_advantaged_return, settings.volatility, constant_random(0.5)
    )
    # Three passes at 31% on an all tax-deferred draw.
    expected = sub(apply_return(3_000_000, rate), mul(need, Decimal("1.435891")))
    for trajectory in result.trajectories:
        assert float(trajectory.timeline[0].portfolio) == pytest.approx(
            float(expected), rel=1e-12
        )


def test_empty_snapshot_splits_by_initial_taxable_share(
    household, projection, constant_random
):
    cfg = replace(household, initial_taxable_pct=40)
    settings = MonteCarloSettings(iterations=3)
    modified = _with_balances(projection, 2040, 0, 0)
    need = _net_need(modified.snapshot_for(2040))

    result = run_withdrawal_monte_carlo(
        cfg,
        modified,
        settings,
        WithdrawalOptions(2040, 2_000_000),
        constant_random(0.5),
    )
    advantaged = apply_return(
        1_200_000,
        generate_lognormal_return(cfg.tax_advantaged_return, settings.volatility, constant_random(0.5)),
    )
    taxable = apply_return(
        800_000,
        generate_lognormal_return(cfg.taxable_return, settings.volatility, constant_random(0.5)),
    )
    gross = _gross_withdrawal(need, taxable, 15, 31)
    assert taxable >= gross
    expected = add(advantaged, sub(taxable, gross))
    for trajectory in result.trajectories:
        assert float(trajectory.timeline[0].portfolio) == pytest.approx(
            float(expected), rel=1e-12
        )


def test_single_year_window(household, projection, constant_random):
    settings = MonteCarloSettings(iterations=3, retirement_end_age=53)
    result = run_withdrawal_monte_carlo(
        household,
        projection,
        settings,
        WithdrawalOptions(2040, 5_000_000),
        constant_random(0.5),
    )
    assert sorted(result.yearly_percentiles) == [2040]
    for trajectory in result.trajectories:
        assert len(trajectory.timeline) == 1
        assert trajectory.timeline[0].retirement_start
        assert trajectory.final_portfolio == trajectory.timeline[0].portfolio
