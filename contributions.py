"""Employer match and tax-advantaged contribution room."""

from __future__ import annotations

from decimal import Decimal

from money import ZERO, Number, add, mul, total

MATCH_RATE = Decimal("0.04")

# 2025 IRS limits, inflated alongside everything else.
EMPLOYEE_DEFERRAL_LIMIT = Decimal(23_500)
IRA_LIMIT = Decimal(7_000)
ACCOUNT_HOLDERS = 2


def primary_match_active(year: int, cfg) -> bool:
    """The primary earner's employer only matches in the interlude and final phases."""

    if cfg.interlude_start_year <= year < cfg.interlude_end_year:
        return True
    return year >= cfg.final_phase_year


def employer_match(primary_income: Number, spouse_income: Number, year: int, cfg) -> Decimal:
    spouse_match = mul(spouse_income, MATCH_RATE)
    primary_match = mul(primary_income, MATCH_RATE) if primary_match_active(year, cfg) else ZERO
    return add(primary_match, spouse_match)


def max_tax_advantaged_contribution(
    primary_income: Number, spouse_income: Number, year: int, inflation_factor: Number, cfg
) -> Decimal:
    """Two deferral limits, two IRA limits and the employer match."""

    return total(
        mul(mul(EMPLOYEE_DEFERRAL_LIMIT, inflation_factor), ACCOUNT_HOLDERS),
        mul(mul(IRA_LIMIT, inflation_factor), ACCOUNT_HOLDERS),
        employer_match(primary_income, spouse_income, year, cfg),
    )
