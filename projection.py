"""Deterministic year-by-year household projection.

One forward pass over calendar years produces an ordered sequence of
immutable snapshots.  The Monte Carlo simulators replay these snapshots with
randomized returns, so every cash-flow figure they need is recorded here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields
from decimal import Decimal
from typing import List, Optional, Sequence, Tuple

from career import primary_income_for_year
from contributions import max_tax_advantaged_contribution
from core import HouseholdConfig
from money import (
    HUNDRED,
    ONE,
    ZERO,
    Number,
    add,
    clamp_min,
    dec,
    div,
    growth_factor,
    mul,
    percentage,
    round_dollars,
    sub,
    total,
)
from mortgage import mortgage_interest
from taxes import calculate_taxes

logger = logging.getLogger(__name__)

SEMESTERS_PER_YEAR = 2
DECREMENT_BAND_YEARS = 10


@dataclass(frozen=True)
class YearlySnapshot:
    year: int
    primary_age: int
    primary_income: Decimal
    spouse_income: Decimal
    social_security_income: Decimal
    total_income: Decimal
    federal_tax: Decimal
    state_tax: Decimal
    payroll_tax: Decimal
    total_tax: Decimal
    effective_rate: str
    net_income: Decimal
    tuition: Decimal
    expenses: Decimal
    education_contribution: Decimal
    education_costs: Tuple[Decimal, ...]
    education_shortfall: Decimal
    total_expenses: Decimal
    adjusted_rental_income: Decimal
    rental_insurance: Decimal
    mortgage_interest: Decimal
    rental_net_for_taxes: Decimal
    rental_net_cash_flow: Decimal
    net_savings: Decimal
    tax_advantaged_contribution: Decimal
    taxable_contribution: Decimal
    taxable_withdrawal: Decimal
    portfolio_growth: Decimal
    tax_advantaged_portfolio: Decimal
    taxable_portfolio: Decimal
    portfolio: Decimal
    education_balances: Tuple[Decimal, ...]
    total_education_balance: Decimal
    sustainable_withdrawal: Decimal
    education_reserve: Decimal
    healthcare_buffer: Decimal
    target: Decimal
    meets_target: bool
    is_ready: bool
    deficit: bool

    def to_record(self) -> dict:
        """Presentation view: money rounded half-up to whole dollars as floats."""

        record = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Decimal):
                value = float(round_dollars(value))
            elif isinstance(value, tuple):
                value = [float(round_dollars(v)) for v in value]
            record[f.name] = value
        return record


@dataclass(frozen=True)
class ProjectionResult:
    years: Tuple[YearlySnapshot, ...]
    readiness_snapshot: Optional[YearlySnapshot]
    overfunding_warning: Optional[str]

    @property
    def readiness_year(self) -> Optional[int]:
        if self.readiness_snapshot is None:
            return None
        return self.readiness_snapshot.year

    def index_of(self, year: int) -> Optional[int]:
        offset = year - self.years[0].year if self.years else -1
        if 0 <= offset < len(self.years):
            return offset
        return None

    def snapshot_for(self, year: int) -> Optional[YearlySnapshot]:
        index = self.index_of(year)
        return None if index is None else self.years[index]


@dataclass(frozen=True)
class RentalFlows:
    adjusted_income: Decimal  # monthly rent in the projection year
    property_tax: Decimal
    insurance: Decimal
    maintenance: Decimal
    vacancy_loss: Decimal
    mortgage_interest: Decimal
    net_for_taxes: Decimal
    net_cash_flow: Decimal


def social_security_income(year: int, cfg: HouseholdConfig) -> Decimal:
    """Both earners' benefits, each inflated from its own claim year."""

    benefits = ZERO
    for birth_year, claim_age, amount in (
        (cfg.primary_birth_year, cfg.primary_ss_claim_age, cfg.primary_ss_amount),
        (cfg.spouse_birth_year, cfg.spouse_ss_claim_age, cfg.spouse_ss_amount),
    ):
        claim_year = birth_year + claim_age
        if year >= claim_year:
            benefits = add(
                benefits, mul(amount, growth_factor(cfg.inflation_rate, year - claim_year))
            )
    return benefits


def rental_flows(year: int, inflation_factor: Number, cfg: HouseholdConfig) -> RentalFlows:
    years_from_now = year - cfg.current_year
    monthly_rent = mul(cfg.rental_income, inflation_factor)
    annual_rent = mul(monthly_rent, 12)
    property_tax = mul(
        cfg.rental_property_tax,
        growth_factor(cfg.rental_property_tax_growth, years_from_now),
    )
    insurance = mul(cfg.rental_insurance, inflation_factor)
    maintenance = mul(cfg.rental_maintenance, inflation_factor)
    vacancy_loss = percentage(annual_rent, cfg.rental_vacancy_rate)
    interest = mortgage_interest(year, cfg.mortgage)

    operating = total(property_tax, insurance, maintenance, vacancy_loss)
    net_for_taxes = sub(sub(annual_rent, operating), interest)
    # Cash view pays full P&I while the loan is outstanding.
    cash_flow = sub(annual_rent, operating)
    if year < cfg.mortgage_end_year:
        cash_flow = sub(cash_flow, mul(cfg.rental_mortgage_payment, 12))

    return RentalFlows(
        adjusted_income=monthly_rent,
        property_tax=property_tax,
        insurance=insurance,
        maintenance=maintenance,
        vacancy_loss=vacancy_loss,
        mortgage_interest=interest,
        net_for_taxes=net_for_taxes,
        net_cash_flow=cash_flow,
    )


def tuition_for_year(year: int, cfg: HouseholdConfig) -> Decimal:
    """Two semesters a year from ``tuition_start_year`` until the count runs out."""

    if year < cfg.tuition_start_year:
        return ZERO
    already_paid = (year - cfg.tuition_start_year) * SEMESTERS_PER_YEAR
    semesters = max(0, min(SEMESTERS_PER_YEAR, cfg.tuition_semesters - already_paid))
    return mul(cfg.tuition_per_semester, semesters)


def spending_decrement(age: int, cfg: HouseholdConfig) -> Decimal:
    """Compounded spending reduction across three successive ten-year age bands."""

    start = cfg.spending_decrement_start_age
    if age < start:
        return ONE
    bands = (
        (start, cfg.spending_decrement_65_74, True),
        (start + DECREMENT_BAND_YEARS, cfg.spending_decrement_75_84, True),
        (start + 2 * DECREMENT_BAND_YEARS, cfg.spending_decrement_85_plus, False),
    )
    factor = ONE
    for band_start, rate, capped in bands:
        years_in_band = max(0, age - band_start)
        if capped:
            years_in_band = min(years_in_band, DECREMENT_BAND_YEARS)
        if years_in_band > 0:
            factor = mul(factor, growth_factor(sub(0, rate), years_in_band))
    return factor


def living_expenses(year: int, inflation_factor: Number, cfg: HouseholdConfig) -> Decimal:
    expenses = add(
        mul(mul(cfg.monthly_expenses, 12), inflation_factor),
        mul(cfg.property_tax, growth_factor(cfg.property_tax_growth, year - cfg.current_year)),
    )
    return mul(expenses, spending_decrement(cfg.primary_age(year), cfg))


def college_cost(year: int, cfg: HouseholdConfig) -> Decimal:
    return mul(
        cfg.college_cost_per_year,
        growth_factor(cfg.college_inflation, year - cfg.current_year),
    )


def education_reserve(
    balance: Number, age: int, birth_year: int, cfg: HouseholdConfig
) -> Decimal:
    """Unfunded future college cost for one beneficiary.

    Re-simulates the beneficiary's remaining years up to the cutoff age:
    future costs accumulate while the balance keeps compounding and receiving
    contributions.  Pure; called afresh every outer year.
    """

    future_balance = dec(balance)
    future_costs = ZERO
    growth = add(ONE, div(cfg.tax_advantaged_return, HUNDRED))
    for future_age in range(age, cfg.education_cutoff_age):
        future_year = birth_year + future_age
        if future_age >= cfg.college_start_age:
            future_costs = add(future_costs, college_cost(future_year, cfg))
        contribution = (
            ZERO
            if future_year < cfg.education_contribution_start_year
            else dec(cfg.annual_education_contribution)
        )
        future_balance = add(mul(future_balance, growth), contribution)
    return clamp_min(sub(future_costs, future_balance), 0)


def healthcare_buffer(year: int, inflation_factor: Number, cfg: HouseholdConfig) -> Decimal:
    """Reserve covering healthcare until the primary earner reaches eligibility age."""

    if not cfg.include_healthcare_buffer:
        return ZERO
    years_until_eligible = max(0, cfg.healthcare_eligibility_age - cfg.primary_age(year))
    return mul(mul(cfg.annual_healthcare_cost, inflation_factor), years_until_eligible)


def effective_multiple(cfg: HouseholdConfig) -> Decimal:
    """Target multiple with non-finite or non-positive values treated as zero."""

    multiple = dec(cfg.target_multiple)
    if not multiple.is_finite() or multiple <= 0:
        return ZERO
    return multiple


def build_projection(cfg: HouseholdConfig) -> ProjectionResult:
    """Walk ``cfg.current_year`` through the fixed horizon and snapshot each year."""

    initial = dec(cfg.initial_savings)
    tax_advantaged = div(mul(initial, sub(HUNDRED, cfg.initial_taxable_pct)), HUNDRED)
    taxable = div(mul(initial, cfg.initial_taxable_pct), HUNDRED)

    beneficiaries = cfg.beneficiary_birth_years
    if beneficiaries:
        share = div(cfg.initial_education_balance, len(beneficiaries))
        education_balances: List[Decimal] = [share for _ in beneficiaries]
    else:
        education_balances = []

    multiple = effective_multiple(cfg)
    education_growth = add(ONE, div(cfg.tax_advantaged_return, HUNDRED))
    ready = False
    readiness_snapshot: Optional[YearlySnapshot] = None
    snapshots: List[YearlySnapshot] = []

    for year in range(cfg.current_year, cfg.horizon_end_year + 1):
        years_from_now = year - cfg.current_year
        inflation_factor = growth_factor(cfg.inflation_rate, years_from_now)
        ages = [year - birth for birth in beneficiaries]

        primary_income = primary_income_for_year(year, cfg)
        spouse_income = mul(
            cfg.spouse_income, growth_factor(cfg.spouse_income_growth, years_from_now)
        )
        ss_income = social_security_income(year, cfg)
        total_income = total(primary_income, spouse_income, ss_income)

        rental = rental_flows(year, inflation_factor, cfg)
        tuition = tuition_for_year(year, cfg)
        taxes = calculate_taxes(
            year, primary_income, spouse_income, rental.net_for_taxes, ss_income, cfg
        )
        net_income = sub(total_income, taxes.total_tax)
        expenses = living_expenses(year, inflation_factor, cfg)

        costs = [
            college_cost(year, cfg)
            if cfg.college_start_age <= age < cfg.education_cutoff_age
            else ZERO
            for age in ages
        ]
        # Balances only compound while the beneficiary is under the cutoff age.
        education_balances = [
            mul(balance, education_growth) if age < cfg.education_cutoff_age else balance
            for balance, age in zip(education_balances, ages)
        ]

        net_before_education = sub(
            add(net_income, rental.net_cash_flow), add(expenses, tuition)
        )

        education_contribution = ZERO
        if year >= cfg.education_contribution_start_year and net_before_education > 0:
            wanted = [
                dec(cfg.annual_education_contribution)
                if age < cfg.education_cutoff_age
                else ZERO
                for age in ages
            ]
            wanted_total = total(*wanted)
            education_contribution = min(wanted_total, mul(net_before_education, "0.5"))
            if wanted_total > 0:
                education_balances = [
                    add(balance, mul(education_contribution, div(w, wanted_total)))
                    for balance, w in zip(education_balances, wanted)
                ]

        shortfall = ZERO
        for i, cost in enumerate(costs):
            if cost <= 0:
                continue
            if education_balances[i] >= cost:
                education_balances[i] = sub(education_balances[i], cost)
            else:
                shortfall = add(shortfall, sub(cost, education_balances[i]))
                education_balances[i] = ZERO

        total_expenses = total(expenses, tuition, shortfall)
        net_savings = sub(sub(net_before_education, education_contribution), shortfall)

        max_advantaged = max_tax_advantaged_contribution(
            primary_income, spouse_income, year, inflation_factor, cfg
        )
        advantaged_contribution = ZERO
        taxable_contribution = ZERO
        taxable_withdrawal = ZERO
        deficit = False
        if net_savings > 0:
            advantaged_contribution = min(net_savings, max_advantaged)
            taxable_contribution = clamp_min(sub(net_savings, max_advantaged), 0)
        elif net_savings < 0:
            needed = sub(0, net_savings)
            if taxable >= needed:
                taxable_withdrawal = needed
            else:
                # Penalized early access to tax-deferred money is not modelled.
                deficit = True
                taxable_withdrawal = taxable

        advantaged_growth = percentage(tax_advantaged, cfg.tax_advantaged_return)
        taxable_growth = percentage(taxable, cfg.taxable_return)
        tax_advantaged = clamp_min(
            total(tax_advantaged, advantaged_growth, advantaged_contribution), 0
        )
        taxable = clamp_min(
            sub(total(taxable, taxable_growth, taxable_contribution), taxable_withdrawal), 0
        )
        portfolio = add(tax_advantaged, taxable)

        reserve = total(
            *(
                education_reserve(balance, age, birth, cfg)
                for balance, age, birth in zip(education_balances, ages, beneficiaries)
                if age < cfg.education_cutoff_age
            )
        )
        buffer = healthcare_buffer(year, inflation_factor, cfg)
        target = total(
            mul(mul(cfg.target_expenses, inflation_factor), multiple), reserve, buffer
        )
        sustainable = div(portfolio, multiple) if multiple > 0 else ZERO

        meets_target = portfolio >= target
        newly_ready = meets_target and not ready
        ready = ready or meets_target

        snapshot = YearlySnapshot(
            year=year,
            primary_age=cfg.primary_age(year),
            primary_income=primary_income,
            spouse_income=spouse_income,
            social_security_income=ss_income,
            total_income=total_income,
            federal_tax=taxes.federal_tax,
            state_tax=taxes.state_tax,
            payroll_tax=taxes.payroll_tax,
            total_tax=taxes.total_tax,
            effective_rate=taxes.effective_rate,
            net_income=net_income,
            tuition=tuition,
            expenses=expenses,
            education_contribution=education_contribution,
            education_costs=tuple(costs),
            education_shortfall=shortfall,
            total_expenses=total_expenses,
            adjusted_rental_income=rental.adjusted_income,
            rental_insurance=rental.insurance,
            mortgage_interest=rental.mortgage_interest,
            rental_net_for_taxes=rental.net_for_taxes,
            rental_net_cash_flow=rental.net_cash_flow,
            net_savings=net_savings,
            tax_advantaged_contribution=advantaged_contribution,
            taxable_contribution=taxable_contribution,
            taxable_withdrawal=taxable_withdrawal,
            portfolio_growth=add(advantaged_growth, taxable_growth),
            tax_advantaged_portfolio=tax_advantaged,
            taxable_portfolio=taxable,
            portfolio=portfolio,
            education_balances=tuple(education_balances),
            total_education_balance=total(*education_balances),
            sustainable_withdrawal=sustainable,
            education_reserve=reserve,
            healthcare_buffer=buffer,
            target=target,
            meets_target=meets_target,
            is_ready=ready,
            deficit=deficit,
        )
        if newly_ready:
            readiness_snapshot = snapshot
        snapshots.append(snapshot)

    overfunding_warning = _overfunding_warning(snapshots)
    if readiness_snapshot is not None:
        logger.debug("Portfolio first meets target in %d", readiness_snapshot.year)
    else:
        logger.debug("Portfolio never meets target before %d", cfg.horizon_end_year)

    return ProjectionResult(
        years=tuple(snapshots),
        readiness_snapshot=readiness_snapshot,
        overfunding_warning=overfunding_warning,
    )


def _overfunding_warning(snapshots: Sequence[YearlySnapshot]) -> Optional[str]:
    """Balances left after every beneficiary has aged out are overfunding."""

    if not snapshots:
        return None
    final_balance = snapshots[-1].total_education_balance
    if final_balance <= 0:
        return None
    logger.warning("Education accounts retain %s after final cutoff age", final_balance)
    return (
        "Education accounts may be overfunded. "
        f"Final balance: ${round_dollars(final_balance):,}. "
        "Consider reducing contributions."
    )
