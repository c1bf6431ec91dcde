"""
Tests for stem geometry helpers and diameter classes.
"""
import math

import pytest

from pymartelage.diameter_classes import DiameterClassGrid, diameter_class_for
from pymartelage.exceptions import InvalidParameterError
from pymartelage.tree_utils import BASAL_AREA_FACTOR, calculate_stand_basal_area, compute_g, girth_from_diameter


# ============================================================================
# Basal Area
# ============================================================================

class TestComputeG:
    """Tests for single-stem basal area."""

    def test_twenty_cm(self):
        """A 20 cm stem has pi/4 * 0.2^2 m2 of basal area."""
        assert compute_g(20.0) == pytest.approx(math.pi / 4.0 * 0.04)

    def test_factor_applies_to_metres(self):
        """The constant is pi/4; a one metre stem has exactly that area."""
        assert BASAL_AREA_FACTOR == pytest.approx(math.pi / 4.0)
        assert compute_g(100.0) == pytest.approx(BASAL_AREA_FACTOR)

    def test_zero_diameter(self):
        """Zero diameter gives zero basal area."""
        assert compute_g(0.0) == 0.0

    def test_negative_diameter_rejected(self):
        """Negative diameters raise InvalidParameterError."""
        with pytest.raises(InvalidParameterError):
            compute_g(-1.0)

    def test_not_rounded(self):
        """The value is not rounded to a fixed number of decimals."""
        assert compute_g(33.3) == pytest.approx(math.pi / 4.0 * 0.333 ** 2, rel=1e-12)

    def test_stand_basal_area_sums(self, make_stem):
        """Stand basal area is the sum over stems."""
        stems = [make_stem(diameter_cm=20.0), make_stem(diameter_cm=40.0)]
        expected = compute_g(20.0) + compute_g(40.0)
        assert calculate_stand_basal_area(stems) == pytest.approx(expected)

    def test_girth(self):
        """A 100 cm stem has a girth of pi metres."""
        assert girth_from_diameter(100.0) == pytest.approx(math.pi)


# ============================================================================
# Diameter Classes
# ============================================================================

class TestDiameterClassGrid:
    """Tests for the class grid and classifier."""

    def test_default_grid(self, default_grid):
        """The default grid runs 5..120 in steps of 5."""
        assert default_grid.smallest == 5
        assert default_grid.largest == 120
        assert len(default_grid) == 24

    def test_floor_classification(self, default_grid):
        """A stem falls in the greatest class bound not above its diameter."""
        assert diameter_class_for(37.9, default_grid) == 35
        assert diameter_class_for(35.0, default_grid) == 35
        assert diameter_class_for(34.99, default_grid) == 30

    def test_below_grid_clamps_to_smallest(self, default_grid):
        """Diameters under the smallest bound land in the smallest class."""
        assert diameter_class_for(2.0, default_grid) == 5

    def test_above_grid_uses_largest(self, default_grid):
        """Diameters beyond the grid land in the largest class."""
        assert diameter_class_for(250.0, default_grid) == 120

    def test_unsorted_input_normalized(self):
        """Bounds are sorted and deduplicated."""
        grid = DiameterClassGrid((30, 10, 20, 20))
        assert grid.bounds == (10, 20, 30)

    def test_plain_iterable_accepted(self):
        """A list of bounds works like a grid."""
        assert diameter_class_for(27.0, [10, 20, 30]) == 20

    def test_empty_grid_rejected(self):
        """An empty grid is an error."""
        with pytest.raises(InvalidParameterError):
            DiameterClassGrid(())
        with pytest.raises(InvalidParameterError):
            diameter_class_for(20.0, [])

    def test_extended(self):
        """extended adds a bound without touching the original grid."""
        grid = DiameterClassGrid.from_range(10, 30, 10)
        bigger = grid.extended(5)
        assert bigger.bounds == (5, 10, 20, 30)
        assert grid.bounds == (10, 20, 30)
        assert 5 in bigger

    def test_invalid_step(self):
        """A non-positive step is rejected."""
        with pytest.raises(InvalidParameterError):
            DiameterClassGrid.from_range(5, 120, 0)
