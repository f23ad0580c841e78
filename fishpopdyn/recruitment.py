"""Stock-recruitment relationships and unfished per-recruit quantities.

Two relationships, each a frozen dataclass carrying its own per-area
parameters:

  BevertonHolt(r0, ssbpr)   R = 4·R0·h·S / (SSBpR·R0·(1−h) + (5h−1)·S)
  Ricker(alpha, beta)       R = α·S·exp(−β·S)

Steepness h is shared by all areas and passed alongside the relationship.
The projection dispatches once per call on the relationship type; in the
unfished reference mode it derives a fresh instance every year through
`rescale_unfished` rather than mutating the one it was given.

Also here: unfished survivorship, spawning biomass per recruit, and the
equilibrium age structure used to seed projections.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

import numpy as np

from fishpopdyn.errors import DegenerateRecruitment


def _as_area_vector(values, name: str, nonnegative: bool = False) -> np.ndarray:
    arr = np.atleast_1d(np.asarray(values, dtype=np.float64)).copy()
    if arr.ndim != 1:
        raise ValueError(f"{name} must be a 1-D per-area vector, got shape {arr.shape}")
    if nonnegative and np.any(arr < 0):
        raise ValueError(f"{name} must be >= 0, got {arr}")
    arr.flags.writeable = False
    return arr


def _check_ssb(ssb: np.ndarray) -> None:
    if not np.all(np.isfinite(ssb)) or np.any(ssb < 0):
        raise DegenerateRecruitment(
            f"spawning biomass must be finite and >= 0, got {ssb}"
        )


# ═══════════════════════════════════════════════════════════════════════
# BEVERTON-HOLT
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class BevertonHolt:
    """Beverton-Holt relationship parameterised by unfished R0 and SSBpR per area."""
    r0: np.ndarray
    ssbpr: np.ndarray

    def __post_init__(self):
        object.__setattr__(
            self, 'r0', _as_area_vector(self.r0, 'r0', nonnegative=True))
        object.__setattr__(
            self, 'ssbpr', _as_area_vector(self.ssbpr, 'ssbpr', nonnegative=True))
        if self.r0.shape != self.ssbpr.shape:
            raise ValueError(
                f"r0 and ssbpr must have the same length, "
                f"got {self.r0.shape} and {self.ssbpr.shape}"
            )

    @property
    def nareas(self) -> int:
        return self.r0.shape[0]

    @classmethod
    def from_unfished(cls, r0, ssbpr, area_weights=None) -> 'BevertonHolt':
        """Build from total-or-per-area R0 and per-area SSBpR.

        A scalar r0 is a stock-wide total, split across the areas of
        `ssbpr` in proportion to `area_weights` (equal shares when None).
        A vector r0 is taken as already per area.
        """
        ssbpr = np.atleast_1d(np.asarray(ssbpr, dtype=np.float64))
        if np.ndim(r0) == 0:
            if area_weights is None:
                area_weights = np.ones(ssbpr.shape[0])
            weights = np.asarray(area_weights, dtype=np.float64)
            if weights.shape != ssbpr.shape or np.any(weights < 0) or weights.sum() <= 0:
                raise ValueError(
                    f"area_weights must be {ssbpr.shape[0]} nonnegative values "
                    f"with a positive sum, got {area_weights}"
                )
            r0 = float(r0) * weights / weights.sum()
        return cls(r0=r0, ssbpr=ssbpr)

    def recruits(self, ssb: np.ndarray, deviation: float,
                 steepness: float) -> np.ndarray:
        """Age-0 recruits per area.

        Raises:
            DegenerateRecruitment: negative SSB, a non-positive denominator,
                or any non-finite result.
        """
        ssb = np.asarray(ssb, dtype=np.float64)
        _check_ssb(ssb)
        h = steepness
        denom = self.ssbpr * self.r0 * (1 - h) + (5 * h - 1) * ssb
        if np.any(denom <= 0) or not np.all(np.isfinite(denom)):
            raise DegenerateRecruitment(
                f"Beverton-Holt denominator must be positive, got {denom} "
                f"(h={h}, r0={self.r0}, ssbpr={self.ssbpr})"
            )
        rec = deviation * (4 * self.r0 * h * ssb) / denom
        if not np.all(np.isfinite(rec)):
            raise DegenerateRecruitment(f"non-finite Beverton-Holt recruitment: {rec}")
        return rec

    def rescale_unfished(self, ssb0_area: np.ndarray, r0_area: np.ndarray,
                         steepness: float) -> 'BevertonHolt':
        """Relationship for the next unfished-reference year (R0 replaced)."""
        return BevertonHolt(r0=r0_area, ssbpr=self.ssbpr)


# ═══════════════════════════════════════════════════════════════════════
# RICKER
# ═══════════════════════════════════════════════════════════════════════

@dataclass(frozen=True, eq=False)
class Ricker:
    """Ricker relationship with per-area alpha and beta.

    `ssbpr` is only needed when the relationship is re-derived from
    steepness in the unfished reference mode.
    """
    alpha: np.ndarray
    beta: np.ndarray
    ssbpr: Optional[np.ndarray] = None

    def __post_init__(self):
        object.__setattr__(
            self, 'alpha', _as_area_vector(self.alpha, 'alpha', nonnegative=True))
        object.__setattr__(self, 'beta', _as_area_vector(self.beta, 'beta'))
        if self.alpha.shape != self.beta.shape:
            raise ValueError(
                f"alpha and beta must have the same length, "
                f"got {self.alpha.shape} and {self.beta.shape}"
            )
        if self.ssbpr is not None:
            object.__setattr__(
                self, 'ssbpr', _as_area_vector(self.ssbpr, 'ssbpr', nonnegative=True))
            if self.ssbpr.shape != self.alpha.shape:
                raise ValueError("ssbpr must have one value per area")

    @property
    def nareas(self) -> int:
        return self.alpha.shape[0]

    def recruits(self, ssb: np.ndarray, deviation: float,
                 steepness: float) -> np.ndarray:
        """Age-0 recruits per area. Steepness is unused by this form."""
        ssb = np.asarray(ssb, dtype=np.float64)
        _check_ssb(ssb)
        with np.errstate(over='ignore', invalid='ignore'):
            rec = deviation * self.alpha * ssb * np.exp(-self.beta * ssb)
        if not np.all(np.isfinite(rec)):
            raise DegenerateRecruitment(
                f"non-finite Ricker recruitment: {rec} "
                f"(alpha={self.alpha}, beta={self.beta})"
            )
        return rec

    def rescale_unfished(self, ssb0_area: np.ndarray, r0_area: np.ndarray,
                         steepness: float) -> 'Ricker':
        """Re-derive alpha/beta so steepness holds against per-area SSB0."""
        if self.ssbpr is None:
            raise ValueError(
                "Ricker.ssbpr is required to re-derive parameters in the "
                "unfished reference mode"
            )
        return ricker_from_steepness(steepness, ssb0_area, self.ssbpr)


StockRecruit = Union[BevertonHolt, Ricker]


def ricker_from_steepness(steepness: float, ssb0, ssbpr) -> Ricker:
    """Ricker parameters that give steepness h at per-area unfished SSB0.

        β = ln(5h) / (0.8·SSB0)
        α = exp(β·SSB0) / SSBpR
    """
    ssb0 = np.asarray(ssb0, dtype=np.float64)
    ssbpr = np.asarray(ssbpr, dtype=np.float64)
    with np.errstate(divide='ignore', invalid='ignore', over='ignore'):
        beta = np.log(5 * steepness) / (0.8 * ssb0)
        alpha = np.exp(beta * ssb0) / ssbpr
    return Ricker(alpha=alpha, beta=beta, ssbpr=ssbpr)


# ═══════════════════════════════════════════════════════════════════════
# UNFISHED PER-RECRUIT QUANTITIES
# ═══════════════════════════════════════════════════════════════════════

def unfished_survivorship(m: np.ndarray, plusgroup: bool = False) -> np.ndarray:
    """Fraction of a recruit surviving to each age with natural mortality only.

    l[0] = 1, l[a] = l[a−1]·exp(−M[a−1]). With a plus group the oldest
    class is divided by 1 − exp(−M_last), matching the projection step.
    """
    m = np.asarray(m, dtype=np.float64)
    surv = np.ones_like(m)
    for age in range(1, m.shape[0]):
        surv[age] = surv[age - 1] * np.exp(-m[age - 1])
    if plusgroup and m[-1] > 0:
        surv[-1] = surv[-1] / (1 - np.exp(-m[-1]))
    return surv


def unfished_spawning_per_recruit(m: np.ndarray, weight: np.ndarray,
                                  maturity: np.ndarray,
                                  plusgroup: bool = False) -> float:
    """Spawning biomass produced per recruit in the absence of fishing."""
    surv = unfished_survivorship(m, plusgroup)
    return float(np.sum(surv * np.asarray(weight) * np.asarray(maturity)))


def equilibrium_numbers_at_age(r0, m: np.ndarray,
                               plusgroup: bool = False) -> np.ndarray:
    """Unfished numbers-at-age per area. Shape: (maxage, nareas)."""
    r0 = np.atleast_1d(np.asarray(r0, dtype=np.float64))
    return np.outer(unfished_survivorship(m, plusgroup), r0)
