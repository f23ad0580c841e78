"""Core data types for fishpopdyn.

This module holds:
  - ControlMode: how fishing mortality is derived each year
  - AgeYearArea: age x year x area cube with bounds-checked accessors
  - ProjectionResult: the eight output cubes of a projection

All history buffers of a projection are AgeYearArea instances owned by the
projection loop; consumers get them back through ProjectionResult.
"""

from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, Tuple

import numpy as np


# ═══════════════════════════════════════════════════════════════════════
# ENUMERATIONS
# ═══════════════════════════════════════════════════════════════════════

class ControlMode(IntEnum):
    """Fishing-mortality control modes.

      EFFORT    F = effort(y) × q × area share × vulnerability / area size
      APICAL_F  F = apical F × area share × vulnerability / area size
      UNFISHED  no fishing; stock-recruit parameters re-derived every year
                to give a spatially explicit unfished reference trajectory
    """
    EFFORT   = 1
    APICAL_F = 2
    UNFISHED = 3


# Output cube names, in the order the projection fills them
OUTPUT_NAMES: Tuple[str, ...] = (
    'numbers',
    'biomass',
    'mature_numbers',
    'spawning_biomass',
    'vulnerable_biomass',
    'fishing_mortality',
    'retained_fishing_mortality',
    'total_mortality',
)


# ═══════════════════════════════════════════════════════════════════════
# AGE × YEAR × AREA CUBE
# ═══════════════════════════════════════════════════════════════════════

class AgeYearArea:
    """Age × year × area array with bounds-checked accessors.

    Indices are 0-based. Negative indices are rejected rather than wrapped,
    so an off-by-one year never silently reads the last year.
    """

    def __init__(self, maxage: int, nyears: int, nareas: int):
        if maxage < 1 or nyears < 1 or nareas < 1:
            raise ValueError(
                f"cube dimensions must be >= 1, got "
                f"({maxage}, {nyears}, {nareas})"
            )
        self._data = np.zeros((maxage, nyears, nareas), dtype=np.float64)

    @property
    def shape(self) -> Tuple[int, int, int]:
        return self._data.shape

    @property
    def maxage(self) -> int:
        return self._data.shape[0]

    @property
    def nyears(self) -> int:
        return self._data.shape[1]

    @property
    def nareas(self) -> int:
        return self._data.shape[2]

    @property
    def values(self) -> np.ndarray:
        """Read-only view of the whole cube, shape (maxage, nyears, nareas)."""
        view = self._data.view()
        view.flags.writeable = False
        return view

    def _check(self, age: int, year: int, area: int) -> None:
        for name, idx, bound in (('age', age, self.maxage),
                                 ('year', year, self.nyears),
                                 ('area', area, self.nareas)):
            if not 0 <= idx < bound:
                raise IndexError(f"{name} index {idx} out of range [0, {bound})")

    def _check_year(self, year: int) -> None:
        if not 0 <= year < self.nyears:
            raise IndexError(f"year index {year} out of range [0, {self.nyears})")

    def get(self, age: int, year: int, area: int) -> float:
        self._check(age, year, area)
        return float(self._data[age, year, area])

    def set(self, age: int, year: int, area: int, value: float) -> None:
        self._check(age, year, area)
        self._data[age, year, area] = value

    def year_slice(self, year: int) -> np.ndarray:
        """Copy of one year, shape (maxage, nareas)."""
        self._check_year(year)
        return self._data[:, year, :].copy()

    def set_year(self, year: int, values: np.ndarray) -> None:
        """Write one year from a (maxage, nareas) array."""
        self._check_year(year)
        values = np.asarray(values, dtype=np.float64)
        if values.shape != (self.maxage, self.nareas):
            raise ValueError(
                f"year values must have shape {(self.maxage, self.nareas)}, "
                f"got {values.shape}"
            )
        self._data[:, year, :] = values

    def area_totals(self, year: int) -> np.ndarray:
        """Sum over ages for one year. Shape: (nareas,)."""
        self._check_year(year)
        return self._data[:, year, :].sum(axis=0)

    def copy_array(self) -> np.ndarray:
        return self._data.copy()

    def __repr__(self) -> str:
        return f"AgeYearArea(maxage={self.maxage}, nyears={self.nyears}, nareas={self.nareas})"


# ═══════════════════════════════════════════════════════════════════════
# PROJECTION RESULT
# ═══════════════════════════════════════════════════════════════════════

@dataclass
class ProjectionResult:
    """Outputs of a projection: eight parallel age × year × area cubes."""
    numbers: AgeYearArea
    biomass: AgeYearArea
    mature_numbers: AgeYearArea
    spawning_biomass: AgeYearArea
    vulnerable_biomass: AgeYearArea
    fishing_mortality: AgeYearArea
    retained_fishing_mortality: AgeYearArea
    total_mortality: AgeYearArea

    @property
    def nyears(self) -> int:
        return self.numbers.nyears

    @property
    def nareas(self) -> int:
        return self.numbers.nareas

    @property
    def maxage(self) -> int:
        return self.numbers.maxage

    def _cube(self, name: str) -> AgeYearArea:
        if name not in OUTPUT_NAMES:
            raise KeyError(f"unknown output '{name}'; expected one of {OUTPUT_NAMES}")
        return getattr(self, name)

    def by_area(self, name: str) -> np.ndarray:
        """Sum over ages. Shape: (nyears, nareas)."""
        return self._cube(name).values.sum(axis=0)

    def totals(self, name: str) -> np.ndarray:
        """Sum over ages and areas. Shape: (nyears,)."""
        return self._cube(name).values.sum(axis=(0, 2))

    def as_dict(self) -> Dict[str, np.ndarray]:
        """Independent copies of all cubes keyed by output name."""
        return {name: self._cube(name).copy_array() for name in OUTPUT_NAMES}
