"""Error taxonomy for the projection core.

Every error is a precondition or invariant violation on numeric inputs;
none is recoverable inside the projection. All derive from ProjectionError,
itself a ValueError, so callers that already catch ValueError from the
config layer keep working.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


class ProjectionError(ValueError):
    """Base class for numeric failures inside a projection."""
    pass


class DegenerateRecruitment(ProjectionError):
    """Stock-recruit formula produced a non-finite or undefined result."""
    pass


@dataclass(eq=False)
class InvalidMovementField(ProjectionError):
    """Destination fractions from one source area do not sum to 1."""
    year: int
    age: int
    source_area: int
    row_sum: float

    def __post_init__(self) -> None:
        super().__init__(
            f"movement fractions for year {self.year}, age {self.age}, "
            f"from area {self.source_area} sum to {self.row_sum:.8g} (expected 1)"
        )


@dataclass(eq=False)
class DegenerateEffortAllocation(ProjectionError):
    """No effort lands in open areas, so closure reallocation is undefined."""
    year: int

    def __post_init__(self) -> None:
        super().__init__(
            f"open-area effort fraction is zero in year {self.year}; "
            f"closure reallocation is undefined"
        )


@dataclass(eq=False)
class OutOfRangeMortality(ProjectionError):
    """Negative or non-finite mortality, supplied or computed."""
    quantity: str
    year: Optional[int] = None

    def __post_init__(self) -> None:
        where = f" in year {self.year}" if self.year is not None else ""
        super().__init__(
            f"{self.quantity} contains negative or non-finite values{where}"
        )
