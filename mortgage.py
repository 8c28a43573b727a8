"""
Rental mortgage amortization.

Everything here is closed-form: the balance at any point is recomputed from
origination rather than carried as state, so a projection can ask for any
year in any order.

    M = P * r / (1 - (1 + r)^-n)
    B_k = P * (1 + r)^k - M * ((1 + r)^k - 1) / r

where P is the original principal, r the monthly rate, n the term in months
and k the number of payments already made.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_CEILING, Decimal
from typing import Optional

from money import (
    MONEY_CONTEXT,
    ONE,
    ZERO,
    Number,
    add,
    clamp_min,
    dec,
    div,
    mul,
    sub,
)

MONTHS_PER_YEAR = 12


@dataclass(frozen=True)
class MortgageConfig:
    start_year: int
    end_year: int
    principal: float
    annual_rate: float  # percent, e.g. 2.75

    @property
    def term_months(self) -> int:
        return max(0, (self.end_year - self.start_year) * MONTHS_PER_YEAR)

    @property
    def monthly_rate(self) -> Decimal:
        return div(div(self.annual_rate, 100), MONTHS_PER_YEAR)


def monthly_payment(principal: Number, annual_rate: Number, term_months: int) -> Decimal:
    """Level monthly payment that retires ``principal`` in ``term_months``."""

    principal = dec(principal)
    if term_months <= 0 or principal <= 0:
        return ZERO
    r = div(div(annual_rate, 100), MONTHS_PER_YEAR)
    if r == 0:
        return div(principal, term_months)
    discount = MONEY_CONTEXT.power(add(ONE, r), -term_months)
    return div(mul(principal, r), sub(ONE, discount))


def remaining_balance(config: MortgageConfig, months_elapsed: int) -> Decimal:
    """Outstanding principal after ``months_elapsed`` scheduled payments."""

    months_elapsed = max(0, min(months_elapsed, config.term_months))
    payment = monthly_payment(config.principal, config.annual_rate, config.term_months)
    r = config.monthly_rate
    if r == 0:
        return clamp_min(sub(config.principal, mul(payment, months_elapsed)), 0)
    factor = MONEY_CONTEXT.power(add(ONE, r), months_elapsed)
    balance = sub(
        mul(config.principal, factor),
        div(mul(payment, sub(factor, ONE)), r),
    )
    return clamp_min(balance, 0)


def mortgage_interest(year: int, config: MortgageConfig) -> Decimal:
    """Total interest paid during calendar ``year``.

    Zero from the payoff year onward.  Starts from the closed-form balance at
    the beginning of the year and steps forward at most twelve months, so a
    partial final year only accrues the months actually remaining.
    """

    if year >= config.end_year:
        return ZERO
    term = config.term_months
    months_elapsed = max(0, (year - config.start_year) * MONTHS_PER_YEAR)
    months_remaining = max(0, term - months_elapsed)
    if months_remaining <= 0:
        return ZERO

    r = config.monthly_rate
    payment = monthly_payment(config.principal, config.annual_rate, term)
    balance = remaining_balance(config, months_elapsed)

    interest_total = ZERO
    for _ in range(min(MONTHS_PER_YEAR, months_remaining)):
        interest = mul(balance, r)
        interest_total = add(interest_total, interest)
        balance = sub(balance, sub(payment, interest))
    return interest_total


def calculate_months_remaining(
    principal: Number, annual_rate: Number, payment: Number
) -> Optional[int]:
    """
    Calculate how many months remain on a loan.

    Uses the formula: n = -log(1 - (r * P) / M) / log(1 + r)

    Returns None if the payment doesn't cover the monthly interest.
    """

    principal = dec(principal)
    payment = dec(payment)
    if principal <= 0:
        return 0
    if payment <= 0:
        return None
    r = div(div(annual_rate, 100), MONTHS_PER_YEAR)
    if r <= 0:
        # No interest - simple division
        return int(div(principal, payment).to_integral_value(rounding=ROUND_CEILING))
    if payment <= mul(principal, r):
        return None

    n = div(
        MONEY_CONTEXT.ln(sub(ONE, div(mul(r, principal), payment))),
        MONEY_CONTEXT.ln(add(ONE, r)),
    )
    n = sub(ZERO, n)
    return int(n.to_integral_value(rounding=ROUND_CEILING))
