"""Inter-area movement of numbers-at-age.

A movement tensor for one year has shape (maxage, nareas, nareas) and is
indexed mov[age, from_area, to_area]: the fraction of fish of that age in
`from_area` that end the year in `to_area`. Rows (fixed age and source)
must sum to 1 so movement conserves numbers.

MovementSchedule wraps the per-year tensors behind an accessor keyed by
year and validates every tensor once, at construction.

Redistribution for one age is  N'[to] = Σ_from N[from] × mov[from, to],
i.e. mov.T @ N, the same form as the pathogen exchange between nodes.
"""

from __future__ import annotations

from typing import Sequence, Union

import numpy as np

from fishpopdyn.errors import InvalidMovementField

ROW_SUM_ATOL = 1e-6


def validate_movement(mov: np.ndarray, year: int = 0,
                      atol: float = ROW_SUM_ATOL) -> None:
    """Check a (maxage, nareas, nareas) tensor is a valid set of fractions.

    Raises:
        ValueError: wrong dimensionality or non-square area axes.
        InvalidMovementField: a negative/non-finite fraction, or a row that
            does not sum to 1 within `atol`.
    """
    mov = np.asarray(mov, dtype=np.float64)
    if mov.ndim != 3 or mov.shape[1] != mov.shape[2]:
        raise ValueError(
            f"movement tensor must have shape (maxage, nareas, nareas), "
            f"got {mov.shape}"
        )
    row_sums = mov.sum(axis=2)
    bad_value = ~np.isfinite(mov) | (mov < 0)
    bad_row = bad_value.any(axis=2) | ~np.isclose(row_sums, 1.0, rtol=0.0, atol=atol)
    if bad_row.any():
        age, src = np.argwhere(bad_row)[0]
        raise InvalidMovementField(
            year=int(year), age=int(age), source_area=int(src),
            row_sum=float(row_sums[age, src]),
        )


def apply_movement(numbers: np.ndarray, mov: np.ndarray) -> np.ndarray:
    """Redistribute numbers-at-age across areas.

    Args:
        numbers: (maxage, nareas) abundance before movement.
        mov: (maxage, nareas, nareas) fractions indexed [age, from, to].

    Returns:
        (maxage, nareas) abundance after movement.
    """
    return np.einsum('af,aft->at', numbers, mov)


# ═══════════════════════════════════════════════════════════════════════
# PER-YEAR SCHEDULE
# ═══════════════════════════════════════════════════════════════════════

class MovementSchedule:
    """Validated movement tensors keyed by year.

    A schedule built from a single tensor returns it for every year.
    """

    def __init__(self, tensors: Union[np.ndarray, Sequence[np.ndarray]],
                 atol: float = ROW_SUM_ATOL):
        arr = np.asarray(tensors, dtype=np.float64)
        if arr.ndim == 3:
            arr = arr[np.newaxis]
        if arr.ndim != 4:
            raise ValueError(
                f"movement schedule must be (nyears, maxage, nareas, nareas) "
                f"or a single (maxage, nareas, nareas) tensor, got {arr.shape}"
            )
        for year in range(arr.shape[0]):
            validate_movement(arr[year], year=year, atol=atol)
        arr = arr.copy()
        arr.flags.writeable = False
        self._tensors = arr

    @property
    def nyears(self) -> int:
        return self._tensors.shape[0]

    @property
    def maxage(self) -> int:
        return self._tensors.shape[1]

    @property
    def nareas(self) -> int:
        return self._tensors.shape[2]

    @property
    def is_constant(self) -> bool:
        return self.nyears == 1

    def for_year(self, year: int) -> np.ndarray:
        """Movement tensor applied when stepping from `year` to `year + 1`."""
        if self.is_constant:
            if year < 0:
                raise IndexError(f"year {year} must be >= 0")
            return self._tensors[0]
        if not 0 <= year < self.nyears:
            raise IndexError(
                f"no movement tensor for year {year}; schedule covers "
                f"[0, {self.nyears})"
            )
        return self._tensors[year]

    def __repr__(self) -> str:
        return (f"MovementSchedule(nyears={self.nyears}, maxage={self.maxage}, "
                f"nareas={self.nareas})")


# ═══════════════════════════════════════════════════════════════════════
# BUILDERS
# ═══════════════════════════════════════════════════════════════════════

def resident_movement(maxage: int, nareas: int) -> np.ndarray:
    """No movement: every fish stays in its area."""
    return np.broadcast_to(np.eye(nareas), (maxage, nareas, nareas)).copy()


def uniform_movement(maxage: int, nareas: int) -> np.ndarray:
    """Full mixing: each source spreads evenly over all areas."""
    return np.full((maxage, nareas, nareas), 1.0 / nareas)


def age_invariant_movement(matrix: np.ndarray, maxage: int) -> np.ndarray:
    """Repeat one (nareas, nareas) from→to matrix for every age."""
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ValueError(f"movement matrix must be square, got {matrix.shape}")
    return np.broadcast_to(matrix, (maxage,) + matrix.shape).copy()
