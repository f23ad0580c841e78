"""Multi-year projection of an age × area structured fish population.

project_population() owns the whole history of a projection:
  - Year 0: derived quantities from the starting numbers-at-age, effort
    distribution from vulnerable biomass (no closures), F and Z
  - Years 1..n_years−1: advance_one_year() with year y's Z and the
    recruitment deviation at index y + maxage, then derived quantities,
    effort distribution, closure reallocation, F and Z for year y+1
  - Unfished reference mode: no fishing; after each step the per-area
    spawning biomass is rescaled to the reference unfished total and the
    stock-recruit parameters are re-derived from it

Schedules are (maxage, n_years) arrays indexed [age, year]. Every output
is an AgeYearArea cube; nothing written for a year is overwritten later.
"""

from __future__ import annotations

import logging
import warnings
from typing import Dict, Optional, Sequence, Tuple, Union

import numpy as np

from fishpopdyn.config import ProjectionConfig, build_stock_recruit
from fishpopdyn.errors import DegenerateEffortAllocation, OutOfRangeMortality
from fishpopdyn.fishing import (
    ClosureSchedule,
    EffortControl,
    clamp_fishing_mortality,
    effort_distribution,
    fishing_mortality_at_age,
    reallocate_closed_effort,
)
from fishpopdyn.movement import MovementSchedule
from fishpopdyn.perf import PerfMonitor
from fishpopdyn.recruitment import BevertonHolt, Ricker, StockRecruit
from fishpopdyn.rng import (
    create_rng_hierarchy,
    get_replicate_rng,
    make_recruitment_deviations,
)
from fishpopdyn.transition import advance_one_year
from fishpopdyn.types import OUTPUT_NAMES, AgeYearArea, ControlMode, ProjectionResult

logger = logging.getLogger(__name__)

CLOSURE_FALLBACKS = ('zero', 'raise')


# ═══════════════════════════════════════════════════════════════════════
# INPUT CHECKS
# ═══════════════════════════════════════════════════════════════════════

def _schedule(values, name: str, maxage: int, n_years: int,
              nonnegative: bool = True) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64)
    if arr.ndim != 2 or arr.shape[0] != maxage or arr.shape[1] < n_years:
        raise ValueError(
            f"{name} must have shape ({maxage}, >= {n_years}), got {arr.shape}"
        )
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} contains non-finite values")
    if nonnegative and np.any(arr < 0):
        raise ValueError(f"{name} contains negative values")
    return arr


def _rescale_to_total(values: np.ndarray, total: float) -> np.ndarray:
    with np.errstate(divide='ignore', invalid='ignore'):
        return values / (values.sum() / total)


def _zero_effort_fallback(year: int, closure_fallback: str, nareas: int) -> np.ndarray:
    if closure_fallback == 'raise':
        raise DegenerateEffortAllocation(year=year)
    warnings.warn(
        f"no fishing effort lands in open areas in year {year}; "
        f"fishing mortality set to zero",
        RuntimeWarning,
        stacklevel=3,
    )
    return np.zeros(nareas)


# ═══════════════════════════════════════════════════════════════════════
# UNFISHED REFERENCE
# ═══════════════════════════════════════════════════════════════════════

def rescale_unfished_reference(
    stock_recruit: StockRecruit,
    ssb_this_year: np.ndarray,
    ssb_next_year: np.ndarray,
    ssb0_total: float,
    r0_total: Optional[float],
    steepness: float,
) -> Tuple[np.ndarray, StockRecruit]:
    """One unfished-reference update of the stock-recruit relationship.

    Per-area SSB0 is next year's spawning biomass rescaled to sum to
    ssb0_total. For Beverton-Holt, per-area R0 is this year's spawning
    biomass rescaled to sum to r0_total; Ricker alpha and beta are
    re-derived from steepness against the per-area SSB0.

    Returns:
        (per-area SSB0, relationship for the next step)
    """
    ssb0_area = _rescale_to_total(np.asarray(ssb_next_year, dtype=np.float64), ssb0_total)
    r0_area = None
    if r0_total is not None:
        r0_area = _rescale_to_total(np.asarray(ssb_this_year, dtype=np.float64), r0_total)
    return ssb0_area, stock_recruit.rescale_unfished(ssb0_area, r0_area, steepness)


# ═══════════════════════════════════════════════════════════════════════
# PROJECTION
# ═══════════════════════════════════════════════════════════════════════

def project_population(
    numbers0: np.ndarray,
    n_years: int,
    natural_mortality: np.ndarray,
    weight: np.ndarray,
    maturity: np.ndarray,
    vulnerability: np.ndarray,
    retention: np.ndarray,
    recruitment_deviations: np.ndarray,
    movement: Union[MovementSchedule, np.ndarray, Sequence[np.ndarray]],
    stock_recruit: StockRecruit,
    steepness: float,
    control_mode: Union[ControlMode, int],
    effort_control: EffortControl,
    area_size: np.ndarray,
    closures: Optional[ClosureSchedule] = None,
    plusgroup: bool = False,
    ssb0_total: Optional[float] = None,
    closure_fallback: str = 'zero',
    perf: Optional[PerfMonitor] = None,
) -> ProjectionResult:
    """Project numbers-at-age per area forward n_years.

    Args:
        numbers0: (maxage, nareas) numbers-at-age in year 0.
        n_years: Number of years, including year 0.
        natural_mortality: (maxage, n_years) M by age and year.
        weight: (maxage, n_years) weight-at-age.
        maturity: (maxage, n_years) proportion mature.
        vulnerability: (maxage, n_years) vulnerability to fishing.
        retention: (maxage, n_years) retention-at-age.
        recruitment_deviations: Multiplicative deviations, length
            >= n_years − 1 + maxage; entry y + maxage drives recruits of y+1.
        movement: MovementSchedule, or tensors it can be built from.
        stock_recruit: BevertonHolt or Ricker, one parameter per area.
        steepness: Shared steepness h.
        control_mode: EFFORT (1), APICAL_F (2) or UNFISHED (3).
        effort_control: Effort series, q, apical F, targeting exponent, max F.
        area_size: (nareas,) relative size of each area.
        closures: Closure fractions; row y masks effort for year y+1.
            Defaults to all areas open.
        plusgroup: Pool survivors in the oldest age class.
        ssb0_total: Reference unfished SSB summed over areas (UNFISHED only).
        closure_fallback: 'zero' gives zero F in a year where no effort
            lands in open areas (with a RuntimeWarning); 'raise' raises
            DegenerateEffortAllocation. Applies to year 0 too, where the
            only way to lose all effort is zero vulnerable biomass.
        perf: Optional PerfMonitor for stage timing.

    Returns:
        ProjectionResult with eight (maxage, n_years, nareas) cubes.

    Raises:
        ValueError: Inconsistent shapes, invalid controls, or negative
            schedules or recruitment deviations.
        OutOfRangeMortality: Negative/non-finite natural or fishing mortality.
        DegenerateRecruitment: Recruitment undefined in some year.
        InvalidMovementField: Movement fractions do not sum to 1.
        DegenerateEffortAllocation: fracE == 0 with closure_fallback='raise'.
    """
    if perf is None:
        perf = PerfMonitor(enabled=False)
    perf.start()

    numbers0 = np.asarray(numbers0, dtype=np.float64)
    if numbers0.ndim != 2:
        raise ValueError(f"numbers0 must be (maxage, nareas), got {numbers0.shape}")
    if not np.all(np.isfinite(numbers0)) or np.any(numbers0 < 0):
        raise ValueError("numbers0 must be finite and >= 0")
    maxage, nareas = numbers0.shape
    if n_years < 1:
        raise ValueError(f"n_years must be >= 1, got {n_years}")

    mode = ControlMode(control_mode)
    if closure_fallback not in CLOSURE_FALLBACKS:
        raise ValueError(
            f"closure_fallback must be one of {CLOSURE_FALLBACKS}, got '{closure_fallback}'"
        )

    m_age = _schedule(natural_mortality, 'natural_mortality', maxage, n_years,
                      nonnegative=False)
    if np.any(m_age < 0):
        raise OutOfRangeMortality('natural mortality')
    wt_age = _schedule(weight, 'weight', maxage, n_years)
    mat_age = _schedule(maturity, 'maturity', maxage, n_years)
    vuln = _schedule(vulnerability, 'vulnerability', maxage, n_years)
    ret = _schedule(retention, 'retention', maxage, n_years)

    devs = np.asarray(recruitment_deviations, dtype=np.float64)
    if devs.ndim != 1 or devs.shape[0] < n_years - 1 + maxage:
        raise ValueError(
            f"recruitment_deviations needs >= {n_years - 1 + maxage} entries "
            f"(n_years - 1 + maxage), got shape {devs.shape}"
        )
    if not np.all(np.isfinite(devs)) or np.any(devs < 0):
        raise ValueError("recruitment_deviations must be finite and >= 0")

    if not isinstance(movement, MovementSchedule):
        movement = MovementSchedule(movement)
    if (movement.maxage, movement.nareas) != (maxage, nareas):
        raise ValueError(
            f"movement covers (maxage={movement.maxage}, nareas={movement.nareas}), "
            f"population is ({maxage}, {nareas})"
        )
    if not movement.is_constant and movement.nyears < n_years - 1:
        raise ValueError(
            f"movement schedule has {movement.nyears} years, needs >= {n_years - 1}"
        )

    if closures is None:
        closures = ClosureSchedule.all_open(max(n_years - 1, 1), nareas)
    if closures.nareas != nareas:
        raise ValueError(f"closure schedule has {closures.nareas} areas, expected {nareas}")
    if mode != ControlMode.UNFISHED and closures.nyears < n_years - 1:
        raise ValueError(
            f"closure schedule has {closures.nyears} years, needs >= {n_years - 1}"
        )

    area_size = np.asarray(area_size, dtype=np.float64)
    if area_size.shape != (nareas,) or np.any(area_size <= 0):
        raise ValueError(f"area_size must be {nareas} positive values, got {area_size}")
    if stock_recruit.nareas != nareas:
        raise ValueError(
            f"stock-recruit parameters cover {stock_recruit.nareas} areas, "
            f"population has {nareas}"
        )
    if mode == ControlMode.EFFORT and effort_control.effort.shape[0] < n_years:
        raise ValueError(
            f"effort series has {effort_control.effort.shape[0]} years, needs >= {n_years}"
        )
    if mode == ControlMode.UNFISHED and (ssb0_total is None or ssb0_total <= 0):
        raise ValueError("ssb0_total must be positive in the unfished reference mode")
    if (mode == ControlMode.UNFISHED and isinstance(stock_recruit, Ricker)
            and stock_recruit.ssbpr is None):
        raise ValueError("Ricker.ssbpr is required in the unfished reference mode")

    logger.debug(
        "projecting %d years, %d ages, %d areas, mode=%s, relationship=%s",
        n_years, maxage, nareas, mode.name, type(stock_recruit).__name__,
    )

    cubes: Dict[str, AgeYearArea] = {
        name: AgeYearArea(maxage, n_years, nareas) for name in OUTPUT_NAMES
    }

    def record_year(year: int, numbers: np.ndarray) -> None:
        wt = wt_age[:, year, np.newaxis]
        cubes['numbers'].set_year(year, numbers)
        cubes['biomass'].set_year(year, numbers * wt)
        cubes['mature_numbers'].set_year(year, numbers * mat_age[:, year, np.newaxis])
        cubes['spawning_biomass'].set_year(
            year, numbers * wt * mat_age[:, year, np.newaxis])
        cubes['vulnerable_biomass'].set_year(
            year, numbers * wt * vuln[:, year, np.newaxis])

    def record_mortality(year: int, share: np.ndarray) -> None:
        f = fishing_mortality_at_age(mode, share, vuln[:, year], area_size,
                                     effort_control, year)
        f_ret = fishing_mortality_at_age(mode, share, ret[:, year], area_size,
                                         effort_control, year)
        f = clamp_fishing_mortality(f, effort_control.max_f, year=year)
        f_ret = clamp_fishing_mortality(
            f_ret, effort_control.max_f, 'retained fishing mortality', year=year)
        cubes['fishing_mortality'].set_year(year, f)
        cubes['retained_fishing_mortality'].set_year(year, f_ret)
        cubes['total_mortality'].set_year(year, m_age[:, year, np.newaxis] + f)

    # Year 0
    with perf.track('derived'):
        record_year(0, numbers0)
    with perf.track('allocation'):
        share = effort_distribution(cubes['vulnerable_biomass'].area_totals(0),
                                    effort_control.spatial_targeting)
        if mode != ControlMode.UNFISHED and share.sum() == 0:
            share = _zero_effort_fallback(0, closure_fallback, nareas)
    with perf.track('fishing'):
        record_mortality(0, share)

    sr = stock_recruit
    r0_total = float(sr.r0.sum()) if isinstance(sr, BevertonHolt) else None
    ssb0_area = None

    for yr in range(n_years - 1):
        ssb = cubes['spawning_biomass'].area_totals(yr)
        if yr > 0 and mode == ControlMode.UNFISHED:
            ssb = ssb0_area

        with perf.track('transition'):
            next_n = advance_one_year(
                ssb,
                cubes['numbers'].year_slice(yr),
                cubes['total_mortality'].year_slice(yr),
                devs[yr + maxage],
                sr,
                steepness,
                movement.for_year(yr),
                plusgroup=plusgroup,
                check_movement=False,
            )
        with perf.track('derived'):
            record_year(yr + 1, next_n)

        if mode == ControlMode.UNFISHED:
            with perf.track('unfished_reference'):
                cubes['total_mortality'].set_year(
                    yr + 1, np.repeat(m_age[:, yr + 1, np.newaxis], nareas, axis=1))
                ssb0_area, sr = rescale_unfished_reference(
                    sr,
                    cubes['spawning_biomass'].area_totals(yr),
                    cubes['spawning_biomass'].area_totals(yr + 1),
                    ssb0_total,
                    r0_total,
                    steepness,
                )
            continue

        with perf.track('allocation'):
            dist = effort_distribution(cubes['vulnerable_biomass'].area_totals(yr + 1),
                                       effort_control.spatial_targeting)
            try:
                share, _ = reallocate_closed_effort(dist, closures.open_fraction(yr), yr + 1)
            except DegenerateEffortAllocation:
                share = _zero_effort_fallback(yr + 1, closure_fallback, nareas)
        with perf.track('fishing'):
            record_mortality(yr + 1, share)

    perf.stop()
    logger.debug(
        "projection done: final total numbers %.6g, spawning biomass %.6g",
        cubes['numbers'].values[:, -1, :].sum(),
        cubes['spawning_biomass'].values[:, -1, :].sum(),
    )
    return ProjectionResult(**cubes)


# ═══════════════════════════════════════════════════════════════════════
# CONFIG-DRIVEN ENTRY POINT
# ═══════════════════════════════════════════════════════════════════════

def project_from_config(
    config: ProjectionConfig,
    numbers0: np.ndarray,
    natural_mortality: np.ndarray,
    weight: np.ndarray,
    maturity: np.ndarray,
    vulnerability: np.ndarray,
    retention: np.ndarray,
    movement: Union[MovementSchedule, np.ndarray, Sequence[np.ndarray]],
    effort: Optional[np.ndarray] = None,
    closures: Optional[ClosureSchedule] = None,
    recruitment_deviations: Optional[np.ndarray] = None,
    replicate: int = 0,
    perf: Optional[PerfMonitor] = None,
) -> ProjectionResult:
    """Run project_population() with scalar controls taken from a config.

    When no deviation series is given, one is drawn from the replicate's
    stream of the hierarchy seeded by config.recruitment.seed.
    """
    p = config.projection
    if recruitment_deviations is None:
        rngs = create_rng_hierarchy(config.recruitment.seed, replicate + 1)
        recruitment_deviations = make_recruitment_deviations(
            p.n_years,
            p.maxage,
            config.recruitment.sigma,
            get_replicate_rng(rngs, replicate),
            autocorrelation=config.recruitment.autocorrelation,
            bias_correct=config.recruitment.bias_correct,
        )
    f = config.fishing
    control = EffortControl(
        effort=effort if effort is not None else np.zeros(p.n_years),
        q=f.q,
        f_apical=f.f_apical,
        spatial_targeting=f.spatial_targeting,
        max_f=f.max_f,
    )
    return project_population(
        numbers0=numbers0,
        n_years=p.n_years,
        natural_mortality=natural_mortality,
        weight=weight,
        maturity=maturity,
        vulnerability=vulnerability,
        retention=retention,
        recruitment_deviations=recruitment_deviations,
        movement=movement,
        stock_recruit=build_stock_recruit(config),
        steepness=config.stock_recruit.steepness,
        control_mode=p.control_mode,
        effort_control=control,
        area_size=np.asarray(config.spatial.area_size, dtype=np.float64),
        closures=closures,
        plusgroup=p.plusgroup,
        ssb0_total=config.stock_recruit.ssb0_total,
        closure_fallback=p.closure_fallback,
        perf=perf,
    )
