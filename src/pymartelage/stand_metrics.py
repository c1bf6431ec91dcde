"""
Stand metrics calculator for pymartelage.

Stand-level dendrometric figures shared by the aggregator and the reporting
views:
- Quadratic mean diameter (Dg) from basal area and stem count
- Lorey's height (basal-area-weighted mean height)
- Diameter coefficient of variation
- Per-hectare scaling from a sample surface in m2
"""
import math
from typing import Dict, Iterable, Optional, Sequence, Tuple, TYPE_CHECKING

import numpy as np

from .exceptions import EmptyScopeError
from .tree_utils import calculate_stand_basal_area

if TYPE_CHECKING:
    from .stem import Stem

__all__ = [
    'StandMetricsCalculator',
    'get_metrics_calculator',
    'calculate_dg',
    'calculate_lorey_height',
    'calculate_diameter_cv',
    'per_hectare',
]

M2_PER_HA = 10000.0


class StandMetricsCalculator:
    """Calculator for stand-level metrics.

    Stateless; one shared instance is exposed through get_metrics_calculator().
    """

    @staticmethod
    def surface_ha(surface_m2: float) -> float:
        return surface_m2 / M2_PER_HA

    def per_hectare(self, value: Optional[float], surface_m2: float) -> Optional[float]:
        """Scale a sample total to one hectare. None stays None."""
        if value is None or surface_m2 <= 0:
            return None
        return value / self.surface_ha(surface_m2)

    def calculate_dg(self, basal_area_m2: float, n_stems: int) -> Optional[float]:
        """Quadratic mean diameter (cm): sqrt(4G / (pi N)) * 100.

        Args:
            basal_area_m2: Total basal area
            n_stems: Number of stems

        Returns:
            Dg in cm, None without stems
        """
        if n_stems <= 0:
            return None
        return math.sqrt(4.0 * basal_area_m2 / (math.pi * n_stems)) * 100.0

    def calculate_lorey_height(self, pairs: Iterable[Tuple[float, Optional[float]]]) -> Optional[float]:
        """Lorey's height from (basal area, height) pairs.

        Pairs without a height are skipped.
        """
        gh = 0.0
        g_sum = 0.0
        for g, h in pairs:
            if h is None:
                continue
            gh += g * h
            g_sum += g
        if g_sum <= 0:
            return None
        return gh / g_sum

    def calculate_diameter_cv(self, diameters: Sequence[float]) -> Optional[float]:
        """Coefficient of variation of diameters (%).

        Uses the sample standard deviation; needs at least two stems.
        """
        if len(diameters) < 2:
            return None
        values = np.asarray(diameters, dtype=float)
        mean = values.mean()
        if mean <= 0:
            return None
        return float(values.std(ddof=1) / mean * 100.0)

    def calculate_all_metrics(self, stems: Sequence['Stem'], surface_m2: float) -> Dict[str, Optional[float]]:
        """Geometry-only metrics for a set of stems.

        Args:
            stems: Stems in scope
            surface_m2: Sample surface

        Returns:
            Dictionary with n, G, Dg, diameter range and dispersion, and
            per-hectare figures

        Raises:
            EmptyScopeError: If there are no stems
        """
        if not stems:
            raise EmptyScopeError("stand metrics")
        n = len(stems)
        g = calculate_stand_basal_area(stems)
        diameters = [s.diameter_cm for s in stems]
        return {
            'n': n,
            'g_m2': g,
            'n_per_ha': self.per_hectare(n, surface_m2),
            'g_per_ha': self.per_hectare(g, surface_m2),
            'dg_cm': self.calculate_dg(g, n),
            'd_mean_cm': float(np.mean(diameters)),
            'd_min_cm': min(diameters),
            'd_max_cm': max(diameters),
            'd_cv_pct': self.calculate_diameter_cv(diameters),
        }


_default_calculator: Optional[StandMetricsCalculator] = None


def get_metrics_calculator() -> StandMetricsCalculator:
    """Get the shared metrics calculator."""
    global _default_calculator
    if _default_calculator is None:
        _default_calculator = StandMetricsCalculator()
    return _default_calculator


def calculate_dg(basal_area_m2: float, n_stems: int) -> Optional[float]:
    """Convenience function for the quadratic mean diameter."""
    return get_metrics_calculator().calculate_dg(basal_area_m2, n_stems)


def calculate_lorey_height(pairs: Iterable[Tuple[float, Optional[float]]]) -> Optional[float]:
    """Convenience function for Lorey's height."""
    return get_metrics_calculator().calculate_lorey_height(pairs)


def calculate_diameter_cv(diameters: Sequence[float]) -> Optional[float]:
    """Convenience function for the diameter coefficient of variation."""
    return get_metrics_calculator().calculate_diameter_cv(diameters)


def per_hectare(value: Optional[float], surface_m2: float) -> Optional[float]:
    """Convenience function for per-hectare scaling."""
    return get_metrics_calculator().per_hectare(value, surface_m2)
