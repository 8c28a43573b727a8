from decimal import Decimal, getcontext

import numpy as np
import pytest

from money import (
    add,
    apply_return,
    clamp_min,
    compound,
    dec,
    growth_factor,
    percentage,
    round_dollars,
    round_to,
    total,
)


@pytest.mark.parametrize(
    "value, expected",
    [
        (0.1, Decimal("0.1")),
        (np.float64(0.1), Decimal("0.1")),
        (np.int64(5), Decimal(5)),
        (7, Decimal(7)),
        ("2.75", Decimal("2.75")),
    ],
)
def test_dec(value, expected):
    assert dec(value) == expected


def test_float_addition_is_exact():
    assert add(0.1, 0.2) == Decimal("0.3")
    assert total(0.1, 0.1, 0.1) == Decimal("0.3")


@pytest.mark.parametrize(
    "value, expected",
    [
        ("2.5", 3),
        ("2.4999", 2),
        ("-2.5", -3),
        ("1632.5", 1633),
    ],
)
def test_round_dollars_half_up(value, expected):
    assert round_dollars(value) == expected


def test_round_to_places():
    assert str(round_to("12.345", 2)) == "12.35"
    assert str(round_to(0, 1)) == "0.0"


def test_growth_and_percentage():
    assert growth_factor(3, 2) == Decimal("1.0609")
    assert growth_factor(3, 0) == 1
    assert percentage(200, 15) == 30
    assert compound(100, "0.1", 2) == Decimal("121")
    assert apply_return(1_000, -0.25) == 750


def test_clamp_min():
    assert clamp_min(-5) == 0
    assert clamp_min(5) == 5
    assert clamp_min(3, 10) == 10


def test_global_context_untouched():
    before = (getcontext().prec, getcontext().rounding)
    growth_factor(7, 40)
    round_dollars("1.5")
    assert (getcontext().prec, getcontext().rounding) == before
