"""Fishing effort allocation and fishing mortality.

Per year:
  1. Effort distribution across areas ∝ (vulnerable biomass)^e, e the
     spatial-targeting exponent, normalised to sum to 1
  2. Closures: weights masked by each area's open fraction; the masked
     total fracE is the share of nominal effort landing in open areas, and
     the masked weights are scaled by (fracE + (1 − fracE)) / fracE so the
     displaced effort moves proportionally into open areas
  3. F-at-age per area from effort × q (EFFORT) or apical F (APICAL_F)
  4. Hard ceiling at max F
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Tuple

import numpy as np

from fishpopdyn.errors import DegenerateEffortAllocation, OutOfRangeMortality
from fishpopdyn.types import ControlMode


# ═══════════════════════════════════════════════════════════════════════
# CONTROLS
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class EffortControl:
    """Fishing controls shared by all years of a projection.

    effort is indexed by projection year and only read in EFFORT mode.
    """
    effort: np.ndarray = field(default_factory=lambda: np.zeros(1))
    q: float = 0.0                  # Catchability
    f_apical: float = 0.0           # Apical F (APICAL_F mode)
    spatial_targeting: float = 1.0  # Exponent on vulnerable biomass
    max_f: float = 3.0              # Ceiling on F for any age class

    def __post_init__(self):
        self.effort = np.atleast_1d(np.asarray(self.effort, dtype=np.float64))
        if self.max_f < 0:
            raise ValueError(f"max_f must be >= 0, got {self.max_f}")

    def effort_in(self, year: int) -> float:
        if not 0 <= year < self.effort.shape[0]:
            raise IndexError(
                f"no effort for year {year}; series covers "
                f"[0, {self.effort.shape[0]})"
            )
        return float(self.effort[year])


class ClosureSchedule:
    """Per-year, per-area closure fraction (0 = fully open, 1 = fully closed)."""

    def __init__(self, closure: np.ndarray):
        closure = np.atleast_2d(np.asarray(closure, dtype=np.float64))
        if closure.ndim != 2:
            raise ValueError(f"closure schedule must be (nyears, nareas), got {closure.shape}")
        if not np.all(np.isfinite(closure)) or np.any(closure < 0) or np.any(closure > 1):
            raise ValueError("closure fractions must lie in [0, 1]")
        closure = closure.copy()
        closure.flags.writeable = False
        self._closure = closure

    @classmethod
    def all_open(cls, nyears: int, nareas: int) -> 'ClosureSchedule':
        """Schedule with every area open in every year."""
        return cls(np.zeros((nyears, nareas)))

    @property
    def nyears(self) -> int:
        return self._closure.shape[0]

    @property
    def nareas(self) -> int:
        return self._closure.shape[1]

    def closed_fraction(self, year: int) -> np.ndarray:
        if not 0 <= year < self.nyears:
            raise IndexError(
                f"no closure row for year {year}; schedule covers [0, {self.nyears})"
            )
        return self._closure[year]

    def open_fraction(self, year: int) -> np.ndarray:
        return 1.0 - self.closed_fraction(year)


# ═══════════════════════════════════════════════════════════════════════
# SPATIAL EFFORT ALLOCATION
# ═══════════════════════════════════════════════════════════════════════

def effort_distribution(vulnerable_biomass: np.ndarray,
                        spatial_targeting: float) -> np.ndarray:
    """Share of nominal effort sent to each area, before closures.

    Returns all zeros when no area carries any weight.
    """
    vb = np.asarray(vulnerable_biomass, dtype=np.float64)
    with np.errstate(divide='ignore'):
        weight = np.power(vb, spatial_targeting)
    total = weight.sum()
    if total == 0:
        return np.zeros_like(weight)
    return weight / total


def reallocate_closed_effort(distribution: np.ndarray,
                             open_fraction: np.ndarray,
                             year: int) -> Tuple[np.ndarray, float]:
    """Mask effort by open fraction and push displaced effort to open areas.

    Returns:
        (share per area, fracE) where fracE is the open-area fraction of
        nominal effort before reallocation.

    Raises:
        DegenerateEffortAllocation: fracE is zero.
    """
    masked = open_fraction * distribution
    frac_e = float(masked.sum())
    if frac_e == 0:
        raise DegenerateEffortAllocation(year=year)
    return masked * (frac_e + (1 - frac_e)) / frac_e, frac_e


# ═══════════════════════════════════════════════════════════════════════
# FISHING MORTALITY
# ═══════════════════════════════════════════════════════════════════════

def fishing_mortality_at_age(
    mode: ControlMode,
    share: np.ndarray,
    selectivity: np.ndarray,
    area_size: np.ndarray,
    control: EffortControl,
    year: int,
) -> np.ndarray:
    """F-at-age per area, shape (maxage, nareas), before the max-F ceiling.

    `selectivity` is vulnerability-at-age for F, or retention-at-age for
    retained F. UNFISHED mode returns zeros.
    """
    selectivity = np.asarray(selectivity, dtype=np.float64)
    if mode == ControlMode.EFFORT:
        intensity = control.effort_in(year) * control.q * share / area_size
    elif mode == ControlMode.APICAL_F:
        intensity = control.f_apical * share / area_size
    elif mode == ControlMode.UNFISHED:
        return np.zeros((selectivity.shape[0], share.shape[0]))
    else:
        raise ValueError(f"unknown control mode {mode!r}")
    return np.outer(selectivity, intensity)


def clamp_fishing_mortality(f: np.ndarray, max_f: float,
                            quantity: str = 'fishing mortality',
                            year=None) -> np.ndarray:
    """Apply the max-F ceiling after checking F is finite and nonnegative.

    Raises:
        OutOfRangeMortality: F negative or non-finite before clamping.
    """
    if not np.all(np.isfinite(f)) or np.any(f < 0):
        raise OutOfRangeMortality(quantity, year=year)
    return np.minimum(f, max_f)
