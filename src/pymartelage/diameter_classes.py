"""
Diameter class grid and classifier.

Stems are grouped by the lower bound of their diameter class. The default
grid runs from 5 to 120 cm in 5 cm steps (read from engine_defaults.yaml).
"""
from bisect import bisect_right
from dataclasses import dataclass
from typing import Iterable, Iterator, Tuple, Union

from .config_loader import load_engine_defaults
from .exceptions import InvalidParameterError

__all__ = [
    'DiameterClassGrid',
    'diameter_class_for',
]


@dataclass(frozen=True)
class DiameterClassGrid:
    """Strictly increasing tuple of integer class lower bounds (cm).

    Unsorted or duplicated input is normalized; an empty grid is rejected.
    """

    bounds: Tuple[int, ...]

    def __post_init__(self):
        bounds = tuple(sorted({int(b) for b in self.bounds}))
        if not bounds:
            raise InvalidParameterError('class_grid', self.bounds, "must contain at least one class")
        object.__setattr__(self, 'bounds', bounds)

    @classmethod
    def from_range(cls, start: int, stop: int, step: int) -> "DiameterClassGrid":
        """Grid from start to stop inclusive."""
        if step <= 0:
            raise InvalidParameterError('step', step, "must be positive")
        return cls(tuple(range(start, stop + 1, step)))

    @classmethod
    def default(cls) -> "DiameterClassGrid":
        """Grid configured in engine_defaults.yaml (5..120 step 5)."""
        cfg = load_engine_defaults().get('diameter_classes', {})
        return cls.from_range(
            int(cfg.get('start', 5)), int(cfg.get('stop', 120)), int(cfg.get('step', 5))
        )

    def extended(self, bound: int) -> "DiameterClassGrid":
        """New grid with an extra class bound."""
        return DiameterClassGrid(self.bounds + (int(bound),))

    @property
    def smallest(self) -> int:
        return self.bounds[0]

    @property
    def largest(self) -> int:
        return self.bounds[-1]

    def class_for(self, diameter_cm: float) -> int:
        """Greatest lower bound <= diameter, clamped to the smallest bound."""
        index = bisect_right(self.bounds, diameter_cm) - 1
        return self.bounds[max(index, 0)]

    def __iter__(self) -> Iterator[int]:
        return iter(self.bounds)

    def __len__(self) -> int:
        return len(self.bounds)

    def __contains__(self, bound: object) -> bool:
        return bound in self.bounds


GridLike = Union[DiameterClassGrid, Iterable[int]]


def _as_grid(class_grid: GridLike) -> DiameterClassGrid:
    if isinstance(class_grid, DiameterClassGrid):
        return class_grid
    return DiameterClassGrid(tuple(class_grid))


def diameter_class_for(diameter_cm: float, class_grid: GridLike) -> int:
    """Diameter class of a stem.

    Args:
        diameter_cm: Stem diameter (cm)
        class_grid: DiameterClassGrid or an iterable of class lower bounds

    Returns:
        The greatest class bound <= diameter; the smallest bound when the
        diameter lies below the grid

    Raises:
        InvalidParameterError: If the grid is empty
    """
    return _as_grid(class_grid).class_for(diameter_cm)
