"""Core configuration records for household projections and simulations."""

from __future__ import annotations

import json
import math
import os
from dataclasses import asdict, dataclass, fields
from typing import Optional, Tuple

from mortgage import MortgageConfig


CONFIG_FILE = "config.json"

# The projection walks the start year plus this many further years.
PROJECTION_HORIZON_YEARS = 62


class SimulationError(RuntimeError):
    """A Monte Carlo trial produced an unusable value and the batch was aborted."""


@dataclass(frozen=True)
class HouseholdConfig:
    """Validated household inputs for one projection run.

    Rates are percentages (``3`` means 3%), money values are nominal dollars
    anchored to ``current_year``.  Rental income, mortgage P&I and expenses
    are monthly figures; everything else is annual.
    """

    current_year: int = 2025

    # Portfolio
    initial_savings: float = 500_000
    initial_taxable_pct: float = 60
    tax_advantaged_return: float = 7
    taxable_return: float = 6

    # Spending
    monthly_expenses: float = 10_000
    property_tax: float = 20_000
    property_tax_growth: float = 2
    inflation_rate: float = 3
    spending_decrement_start_age: int = 65
    spending_decrement_65_74: float = 1
    spending_decrement_75_84: float = 4
    spending_decrement_85_plus: float = 2

    # Readiness target
    target_expenses: float = 135_000
    target_multiple: float = 20
    include_healthcare_buffer: bool = False
    annual_healthcare_cost: float = 12_000
    healthcare_eligibility_age: int = 65

    # Household
    primary_birth_year: int = 1987
    spouse_birth_year: int = 1989
    spouse_income: float = 200_000
    spouse_income_growth: float = 3

    # Primary earner career timeline
    primary_income: float = 40_000
    firm_start_year: int = 2028
    interlude_start_year: int = 2029
    interlude_end_year: int = 2031
    interlude_salary: float = 100_000
    firm_return_tenure: int = 3
    final_phase_year: int = 2036
    final_phase_salary: float = 110_000
    final_phase_growth: float = 3

    # Social Security (annual benefit in claim-year dollars)
    primary_ss_amount: float = 35_000
    primary_ss_claim_age: int = 68
    spouse_ss_amount: float = 40_000
    spouse_ss_claim_age: int = 70

    # Primary earner's own tuition
    tuition_per_semester: float = 30_000
    tuition_start_year: int = 2026
    tuition_semesters: int = 3

    # Education accounts, one per beneficiary
    beneficiary_birth_years: Tuple[int, ...] = (2021, 2025)
    initial_education_balance: float = 0
    annual_education_contribution: float = 9_000
    education_contribution_start_year: int = 2028
    college_cost_per_year: float = 40_000
    college_inflation: float = 3.5
    college_start_age: int = 18
    education_cutoff_age: int = 22

    # Rental property
    rental_income: float = 5_800
    rental_mortgage_payment: float = 1_633
    mortgage_start_year: int = 2020
    mortgage_principal: float = 400_000
    mortgage_rate: float = 2.75
    mortgage_end_year: int = 2051
    rental_property_tax: float = 8_000
    rental_property_tax_growth: float = 2
    rental_insurance: float = 3_323
    rental_maintenance: float = 11_000
    rental_vacancy_rate: float = 5

    # Tax
    standard_deduction: float = 29_200
    itemized_deductions: float = 0
    ss_wage_base: float = 168_600
    ss_wage_base_growth: float = 4

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "beneficiary_birth_years", tuple(self.beneficiary_birth_years)
        )
        if not 0 <= self.initial_taxable_pct <= 100:
            raise ValueError("initial_taxable_pct must be between 0 and 100")
        if self.firm_start_year > self.interlude_start_year:
            raise ValueError("firm_start_year must be on or before interlude_start_year")
        if self.interlude_start_year > self.interlude_end_year:
            raise ValueError("interlude_end_year must not precede interlude_start_year")
        if self.mortgage_start_year > self.mortgage_end_year:
            raise ValueError("mortgage_end_year must not precede mortgage_start_year")
        if self.college_start_age > self.education_cutoff_age:
            raise ValueError("college_start_age must not exceed education_cutoff_age")

    @property
    def horizon_end_year(self) -> int:
        return self.current_year + PROJECTION_HORIZON_YEARS

    @property
    def withdrawal_rate(self) -> float:
        """Safe withdrawal rate implied by the target multiple, in percent."""
        if not math.isfinite(self.target_multiple) or self.target_multiple <= 0:
            return 0.0
        return 100 / self.target_multiple

    @property
    def mortgage(self) -> MortgageConfig:
        return MortgageConfig(
            start_year=self.mortgage_start_year,
            end_year=self.mortgage_end_year,
            principal=self.mortgage_principal,
            annual_rate=self.mortgage_rate,
        )

    def primary_age(self, year: int) -> int:
        return year - self.primary_birth_year


@dataclass(frozen=True)
class MonteCarloSettings:
    iterations: int = 2000
    volatility: float = 15
    target_survival: float = 90
    retirement_end_age: int = 90
    use_historical_returns: bool = False
    historical_seed: Optional[int] = None
    stock_allocation: float = 60
    bond_return: float = 4
    depletion_floor: float = 1_000
    capital_gains_rate: float = 15
    ordinary_income_rate: float = 31

    def __post_init__(self) -> None:
        if self.iterations < 1:
            raise ValueError("iterations must be at least 1")
        if self.volatility < 0:
            raise ValueError("volatility cannot be negative")
        if not 0 <= self.stock_allocation <= 100:
            raise ValueError("stock_allocation must be between 0 and 100")


def _build(cls, data: dict):
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {', '.join(unknown)}")
    return cls(**data)


def config_from_dict(data: dict) -> Tuple[HouseholdConfig, MonteCarloSettings]:
    """Build configuration records from a ``{"household", "monte_carlo"}`` mapping."""

    household = _build(HouseholdConfig, data.get("household", {}))
    settings = _build(MonteCarloSettings, data.get("monte_carlo", {}))
    return household, settings


def load_config(path: str = CONFIG_FILE) -> Tuple[HouseholdConfig, MonteCarloSettings]:
    """Load saved configuration if available, defaults otherwise."""

    if os.path.exists(path):
        with open(path) as f:
            return config_from_dict(json.load(f))
    return HouseholdConfig(), MonteCarloSettings()


def save_config(
    cfg: HouseholdConfig,
    settings: MonteCarloSettings,
    path: str = CONFIG_FILE,
) -> None:
    """Persist the provided configuration to disk."""

    household = asdict(cfg)
    household["beneficiary_birth_years"] = list(cfg.beneficiary_birth_years)
    data = {"household": household, "monte_carlo": asdict(settings)}
    with open(path, "w") as f:
        json.dump(data, f, indent=2)
