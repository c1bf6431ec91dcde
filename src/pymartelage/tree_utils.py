"""
Stem geometry utilities for pymartelage.

Provides common calculations used across multiple modules to avoid duplication
and ensure consistency.
"""
import math
from typing import Iterable, TYPE_CHECKING

from .exceptions import InvalidParameterError

if TYPE_CHECKING:
    from .stem import Stem

__all__ = [
    'BASAL_AREA_FACTOR',
    'compute_g',
    'calculate_stand_basal_area',
    'girth_from_diameter',
]


# Basal area constant: pi / 4, applied to the diameter in metres
# Formula: G = pi/4 * (D/100)^2
BASAL_AREA_FACTOR = math.pi / 4.0


def compute_g(diameter_cm: float) -> float:
    """Calculate basal area for a single stem.

    Basal area is the cross-sectional area of a stem at breast height (1.30 m).
    Formula: G = pi/4 * (D/100)^2, with no rounding.

    Args:
        diameter_cm: Diameter at breast height in centimetres

    Returns:
        Basal area in square metres

    Raises:
        InvalidParameterError: If the diameter is negative
    """
    if diameter_cm < 0:
        raise InvalidParameterError('diameter_cm', diameter_cm, "must not be negative")
    return BASAL_AREA_FACTOR * (diameter_cm / 100.0) ** 2


def calculate_stand_basal_area(stems: Iterable['Stem']) -> float:
    """Calculate total basal area for a collection of stems.

    Args:
        stems: Stem objects with a diameter_cm attribute

    Returns:
        Total basal area in square metres
    """
    return sum(compute_g(s.diameter_cm) for s in stems)


def girth_from_diameter(diameter_cm: float) -> float:
    """Girth at breast height in metres (C = pi * D / 100)."""
    return math.pi * diameter_cm / 100.0
