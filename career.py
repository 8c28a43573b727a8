"""Career phases and lockstep compensation for the primary earner."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from decimal import Decimal

from money import dec, growth_factor, mul

# 2025 lockstep associate scale: base salary plus the standard year-end bonus,
# keyed by class year.  Held constant in nominal dollars.
LOCKSTEP_SCALE = {
    1: 225_000 + 20_000,
    2: 235_000 + 25_000,
    3: 260_000 + 35_000,
    4: 305_000 + 55_000,
    5: 340_000 + 75_000,
    6: 365_000 + 90_000,
    7: 410_000 + 115_000,
    8: 420_000 + 115_000,
}
TOP_TIER = max(LOCKSTEP_SCALE)


class CareerPhase(enum.Enum):
    PRE_CAREER = "pre_career"
    FIRM = "firm"
    INTERLUDE = "interlude"
    FIRM_RETURN = "firm_return"
    FINAL = "final"


@dataclass(frozen=True)
class PhaseResolution:
    phase: CareerPhase
    # Tenure within the phase. For the firm phases this is the class year on
    # the lockstep scale, otherwise years elapsed since the phase started.
    tenure: int


def lockstep_compensation(class_year: int) -> Decimal:
    """Total compensation for ``class_year``, clamped to the ends of the scale."""

    if class_year <= 0:
        return Decimal(LOCKSTEP_SCALE[1])
    if class_year >= TOP_TIER:
        return Decimal(LOCKSTEP_SCALE[TOP_TIER])
    return Decimal(LOCKSTEP_SCALE[class_year])


def resolve_phase(year: int, cfg) -> PhaseResolution:
    """Select the single career phase active in ``year``.

    Phases are checked in timeline order, so the earliest matching range wins.
    """

    if year < cfg.firm_start_year:
        return PhaseResolution(CareerPhase.PRE_CAREER, 0)
    if year < cfg.interlude_start_year:
        return PhaseResolution(CareerPhase.FIRM, year - cfg.firm_start_year + 1)
    if year < cfg.interlude_end_year:
        return PhaseResolution(CareerPhase.INTERLUDE, year - cfg.interlude_start_year)
    if year < cfg.final_phase_year:
        return PhaseResolution(
            CareerPhase.FIRM_RETURN,
            cfg.firm_return_tenure + (year - cfg.interlude_end_year),
        )
    return PhaseResolution(CareerPhase.FINAL, year - cfg.final_phase_year)


def phase_income(resolution: PhaseResolution, cfg) -> Decimal:
    phase = resolution.phase
    if phase is CareerPhase.PRE_CAREER:
        return dec(cfg.primary_income)
    if phase in (CareerPhase.FIRM, CareerPhase.FIRM_RETURN):
        return lockstep_compensation(resolution.tenure)
    if phase is CareerPhase.INTERLUDE:
        return mul(
            cfg.interlude_salary, growth_factor(cfg.inflation_rate, resolution.tenure)
        )
    return mul(
        cfg.final_phase_salary, growth_factor(cfg.final_phase_growth, resolution.tenure)
    )


def primary_income_for_year(year: int, cfg) -> Decimal:
    return phase_income(resolve_phase(year, cfg), cfg)
