"""Single annual time-step of the age × area population.

advance_one_year() is a pure function of its inputs:
  1. Recruitment into age 0 from per-area spawning biomass
  2. Survival and ageing: N[a, y+1] = N[a−1, y] · exp(−Z[a−1, y])
  3. Optional plus group: oldest class divided by 1 − exp(−Z_last)
  4. Movement between areas

The projection loop calls it once per year; it keeps no history.
"""

from __future__ import annotations

import numpy as np

from fishpopdyn.errors import OutOfRangeMortality
from fishpopdyn.movement import apply_movement, validate_movement
from fishpopdyn.recruitment import StockRecruit


def survive_and_age(numbers: np.ndarray, total_mortality: np.ndarray,
                    recruits: np.ndarray, plusgroup: bool = False) -> np.ndarray:
    """Age every class one year under total mortality Z.

    Args:
        numbers: (maxage, nareas) abundance this year.
        total_mortality: (maxage, nareas) Z this year.
        recruits: (nareas,) new age-0 fish.
        plusgroup: Pool the oldest class instead of letting it age out.

    Returns:
        (maxage, nareas) abundance next year, before movement.
    """
    nxt = np.empty_like(numbers)
    nxt[0] = recruits
    nxt[1:] = numbers[:-1] * np.exp(-total_mortality[:-1])
    if plusgroup:
        z_last = total_mortality[-1]
        pooled = z_last > 0
        # Z_last == 0 leaves the divisor undefined; those areas stay unpooled
        nxt[-1, pooled] = nxt[-1, pooled] / (1 - np.exp(-z_last[pooled]))
    return nxt


def advance_one_year(
    ssb: np.ndarray,
    numbers: np.ndarray,
    total_mortality: np.ndarray,
    deviation: float,
    stock_recruit: StockRecruit,
    steepness: float,
    movement: np.ndarray,
    plusgroup: bool = False,
    check_movement: bool = True,
) -> np.ndarray:
    """Project numbers-at-age-per-area forward one year.

    Args:
        ssb: (nareas,) spawning biomass driving recruitment.
        numbers: (maxage, nareas) current numbers-at-age.
        total_mortality: (maxage, nareas) current total mortality Z.
        deviation: Multiplicative recruitment deviation for this step.
        stock_recruit: BevertonHolt or Ricker with per-area parameters.
        steepness: Shared steepness h.
        movement: (maxage, nareas, nareas) fractions [age, from, to].
        plusgroup: Pool survivors in the oldest age class.
        check_movement: Validate row sums of `movement`. The projection
            loop turns this off because MovementSchedule already did.

    Returns:
        (maxage, nareas) numbers-at-age next year.

    Raises:
        DegenerateRecruitment: recruitment undefined for these inputs.
        InvalidMovementField: movement rows do not sum to 1.
        OutOfRangeMortality: Z negative or non-finite.
    """
    numbers = np.asarray(numbers, dtype=np.float64)
    total_mortality = np.asarray(total_mortality, dtype=np.float64)
    ssb = np.asarray(ssb, dtype=np.float64)
    movement = np.asarray(movement, dtype=np.float64)
    maxage, nareas = numbers.shape

    if total_mortality.shape != (maxage, nareas):
        raise ValueError(
            f"total_mortality shape {total_mortality.shape} does not match "
            f"numbers shape {numbers.shape}"
        )
    if ssb.shape != (nareas,):
        raise ValueError(f"ssb must have shape ({nareas},), got {ssb.shape}")
    if movement.shape != (maxage, nareas, nareas):
        raise ValueError(
            f"movement must have shape {(maxage, nareas, nareas)}, "
            f"got {movement.shape}"
        )
    if stock_recruit.nareas != nareas:
        raise ValueError(
            f"stock-recruit parameters cover {stock_recruit.nareas} areas, "
            f"population has {nareas}"
        )
    if not np.all(np.isfinite(total_mortality)) or np.any(total_mortality < 0):
        raise OutOfRangeMortality('total mortality')
    if check_movement:
        validate_movement(movement)

    recruits = stock_recruit.recruits(ssb, deviation, steepness)
    aged = survive_and_age(numbers, total_mortality, recruits, plusgroup)
    return apply_movement(aged, movement)
