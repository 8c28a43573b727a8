"""Decimal helpers used for every money-valued calculation."""

from __future__ import annotations

import numbers
from decimal import ROUND_HALF_UP, Context, Decimal
from typing import Union

Number = Union[Decimal, int, float, str]

# Private context so the process-wide decimal context is never touched.
MONEY_CONTEXT = Context(prec=40, rounding=ROUND_HALF_UP)

ZERO = Decimal(0)
ONE = Decimal(1)
HUNDRED = Decimal(100)


def dec(value: Number) -> Decimal:
    """Normalise ``value`` into a Decimal.

    Floats go through ``repr`` so ``0.1`` becomes ``Decimal('0.1')`` rather
    than the exact binary expansion.
    """

    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(repr(float(value)))
    if isinstance(value, numbers.Integral):
        return Decimal(int(value))
    return Decimal(value)


def to_float(value: Number) -> float:
    """Convert to a native float; only for presentation boundaries."""

    return float(dec(value))


def add(a: Number, b: Number) -> Decimal:
    return MONEY_CONTEXT.add(dec(a), dec(b))


def sub(a: Number, b: Number) -> Decimal:
    return MONEY_CONTEXT.subtract(dec(a), dec(b))


def mul(a: Number, b: Number) -> Decimal:
    return MONEY_CONTEXT.multiply(dec(a), dec(b))


def div(a: Number, b: Number) -> Decimal:
    return MONEY_CONTEXT.divide(dec(a), dec(b))


def total(*values: Number) -> Decimal:
    """Sum any number of values in the money context."""

    result = ZERO
    for value in values:
        result = add(result, value)
    return result


def clamp_min(value: Number, minimum: Number = 0) -> Decimal:
    value = dec(value)
    minimum = dec(minimum)
    return minimum if value < minimum else value


def percentage(value: Number, rate: Number) -> Decimal:
    """Return ``value * rate / 100``."""

    return mul(value, div(rate, HUNDRED))


def growth_factor(rate_pct: Number, periods: int) -> Decimal:
    """Return ``(1 + rate_pct / 100) ** periods``."""

    base = add(ONE, div(rate_pct, HUNDRED))
    return MONEY_CONTEXT.power(base, periods)


def compound(principal: Number, rate: Number, periods: int) -> Decimal:
    """Grow ``principal`` at a fractional ``rate`` (0.05 for 5%) for ``periods``."""

    base = add(ONE, rate)
    return mul(principal, MONEY_CONTEXT.power(base, periods))


def apply_return(value: Number, rate: Number) -> Decimal:
    """Apply a single-period fractional return: ``value * (1 + rate)``."""

    return mul(value, add(ONE, rate))


def round_dollars(value: Number) -> Decimal:
    """Round half-up to whole dollars."""

    return dec(value).quantize(ONE, rounding=ROUND_HALF_UP, context=MONEY_CONTEXT)


def round_to(value: Number, places: int) -> Decimal:
    """Round half-up to ``places`` decimal digits."""

    exponent = Decimal(1).scaleb(-places)
    return dec(value).quantize(exponent, rounding=ROUND_HALF_UP, context=MONEY_CONTEXT)
