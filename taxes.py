"""Annual household tax estimate: federal, state and payroll."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Optional, Sequence, Tuple

from money import (
    HUNDRED,
    ZERO,
    Number,
    add,
    clamp_min,
    dec,
    div,
    growth_factor,
    mul,
    round_dollars,
    round_to,
    sub,
    total,
)

Bracket = Tuple[Optional[Decimal], Decimal]

# 2025 married-filing-jointly brackets.  Each entry is (upper limit, rate);
# ``None`` marks the open-ended top bracket.  Limits are inflated each year.
FEDERAL_BRACKETS: Tuple[Bracket, ...] = (
    (Decimal(23_200), Decimal("0.10")),
    (Decimal(94_300), Decimal("0.12")),
    (Decimal(201_050), Decimal("0.22")),
    (Decimal(383_900), Decimal("0.24")),
    (Decimal(487_450), Decimal("0.32")),
    (Decimal(731_200), Decimal("0.35")),
    (None, Decimal("0.37")),
)

# California joint brackets, same inflation treatment.
STATE_BRACKETS: Tuple[Bracket, ...] = (
    (Decimal(20_198), Decimal("0.01")),
    (Decimal(47_884), Decimal("0.02")),
    (Decimal(75_576), Decimal("0.04")),
    (Decimal(105_146), Decimal("0.06")),
    (Decimal(132_590), Decimal("0.08")),
    (Decimal(679_278), Decimal("0.093")),
    (Decimal(814_732), Decimal("0.103")),
    (Decimal(1_000_000), Decimal("0.113")),
    (None, Decimal("0.123")),
)

# Provisional-income thresholds for taxing Social Security benefits.
SS_BENEFIT_THRESHOLD_1 = Decimal(32_000)
SS_BENEFIT_THRESHOLD_2 = Decimal(44_000)

HSA_CONTRIBUTION = Decimal(8_550)
DEPENDENT_CARE_FSA = Decimal(7_500)
DEPENDENT_CARE_FSA_FIRST_YEAR = Decimal(5_000)

SOCIAL_SECURITY_RATE = Decimal("0.062")
MEDICARE_RATE = Decimal("0.0145")
ADDITIONAL_MEDICARE_RATE = Decimal("0.009")
# Not indexed to inflation.
ADDITIONAL_MEDICARE_THRESHOLD = Decimal(250_000)


@dataclass(frozen=True)
class TaxBreakdown:
    federal_tax: Decimal
    state_tax: Decimal
    social_security_tax: Decimal
    medicare_tax: Decimal
    additional_medicare: Decimal
    total_tax: Decimal
    effective_rate: str
    taxable_income: Decimal = ZERO

    @property
    def payroll_tax(self) -> Decimal:
        return total(self.social_security_tax, self.medicare_tax, self.additional_medicare)


def bracket_tax(
    taxable_income: Number,
    brackets: Sequence[Bracket] = FEDERAL_BRACKETS,
    inflation_factor: Number = 1,
) -> Decimal:
    """Fill each bracket in turn before spilling into the next one."""

    remaining = dec(taxable_income)
    previous_limit = ZERO
    tax = ZERO
    for limit, rate in brackets:
        if remaining <= 0:
            break
        if limit is None:
            in_bracket = remaining
        else:
            upper = mul(limit, inflation_factor)
            in_bracket = min(remaining, sub(upper, previous_limit))
            previous_limit = upper
        tax = add(tax, mul(in_bracket, rate))
        remaining = sub(remaining, in_bracket)
    return tax


def taxable_social_security(
    provisional_income: Number, benefits: Number, inflation_factor: Number = 1
) -> Decimal:
    """Portion of Social Security benefits included in income (0%, 50% or 85%)."""

    provisional_income = dec(provisional_income)
    benefits = dec(benefits)
    threshold1 = mul(SS_BENEFIT_THRESHOLD_1, inflation_factor)
    threshold2 = mul(SS_BENEFIT_THRESHOLD_2, inflation_factor)

    if provisional_income <= threshold1:
        return ZERO
    if provisional_income <= threshold2:
        return min(
            mul(benefits, "0.5"), mul(sub(provisional_income, threshold1), "0.5")
        )
    first_tier = mul(sub(threshold2, threshold1), "0.5")
    second_tier = mul(sub(provisional_income, threshold2), "0.85")
    return min(mul(benefits, "0.85"), add(first_tier, second_tier))


def above_the_line_deductions(year: int, cfg) -> Decimal:
    """HSA plus dependent-care FSA allowances for ``year``.

    The dependent-care allowance uses a reduced value in the first projected
    year and inflates from the second year onward.
    """

    years_from_now = year - cfg.current_year
    hsa = mul(HSA_CONTRIBUTION, growth_factor(cfg.inflation_rate, years_from_now))
    if year == cfg.current_year:
        fsa = DEPENDENT_CARE_FSA_FIRST_YEAR
    else:
        fsa = mul(
            DEPENDENT_CARE_FSA,
            growth_factor(cfg.inflation_rate, max(0, years_from_now - 1)),
        )
    return add(hsa, fsa)


def calculate_taxes(
    year: int,
    primary_wages: Number,
    spouse_wages: Number,
    rental_net: Number,
    social_security_income: Number,
    cfg,
) -> TaxBreakdown:
    """Compute federal, state and payroll tax for a single year.

    ``cfg`` needs ``current_year``, ``inflation_rate``, ``standard_deduction``,
    ``itemized_deductions``, ``ss_wage_base`` and ``ss_wage_base_growth``.
    Bracket limits, deductions and benefit thresholds are anchored to the
    first projected year and inflated forward.
    """

    primary_wages = dec(primary_wages)
    spouse_wages = dec(spouse_wages)
    rental_net = dec(rental_net)
    social_security_income = dec(social_security_income)

    years_from_now = year - cfg.current_year
    inflation_factor = growth_factor(cfg.inflation_rate, years_from_now)

    wage_income = add(primary_wages, spouse_wages)
    provisional_income = total(
        wage_income, rental_net, mul(social_security_income, "0.5")
    )
    taxable_ss = taxable_social_security(
        provisional_income, social_security_income, inflation_factor
    )
    total_income = total(wage_income, rental_net, taxable_ss)

    chosen_deduction = max(
        mul(cfg.standard_deduction, inflation_factor),
        mul(cfg.itemized_deductions, inflation_factor),
    )
    deductions = add(above_the_line_deductions(year, cfg), chosen_deduction)
    taxable_income = clamp_min(sub(total_income, deductions), 0)

    federal_tax = bracket_tax(taxable_income, FEDERAL_BRACKETS, inflation_factor)
    state_tax = bracket_tax(taxable_income, STATE_BRACKETS, inflation_factor)

    wage_base = mul(
        cfg.ss_wage_base, growth_factor(cfg.ss_wage_base_growth, years_from_now)
    )
    social_security_tax = mul(
        add(min(primary_wages, wage_base), min(spouse_wages, wage_base)),
        SOCIAL_SECURITY_RATE,
    )
    medicare_tax = mul(wage_income, MEDICARE_RATE)
    additional_medicare = mul(
        clamp_min(sub(wage_income, ADDITIONAL_MEDICARE_THRESHOLD), 0),
        ADDITIONAL_MEDICARE_RATE,
    )

    total_tax = total(
        federal_tax, state_tax, social_security_tax, medicare_tax, additional_medicare
    )
    if total_income > 0:
        effective_rate = str(round_to(mul(div(total_tax, total_income), HUNDRED), 1))
    else:
        effective_rate = "0.0"

    return TaxBreakdown(
        federal_tax=round_dollars(federal_tax),
        state_tax=round_dollars(state_tax),
        social_security_tax=round_dollars(social_security_tax),
        medicare_tax=round_dollars(medicare_tax),
        additional_medicare=round_dollars(additional_medicare),
        total_tax=round_dollars(total_tax),
        effective_rate=effective_rate,
        taxable_income=taxable_income,
    )
