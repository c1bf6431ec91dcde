"""
Shared pytest fixtures for pymartelage tests.

This module provides commonly used fixtures for building stems, grids and
tariff selections, reducing code duplication across test files.
"""
import itertools

import pytest

from pymartelage.config_loader import set_config_dir
from pymartelage.diameter_classes import DiameterClassGrid
from pymartelage.species import SpeciesCatalog
from pymartelage.stem import Stem
from pymartelage.tariffs import TarifMethod, TarifSelection


# =============================================================================
# Cache Isolation
# =============================================================================

@pytest.fixture(autouse=True)
def clear_caches():
    """Point the loader back at the packaged tables around each test.

    Resetting the directory also drops the tariff and catalog caches.
    """
    set_config_dir(None)
    yield
    set_config_dir(None)


# =============================================================================
# Stem Fixtures - Factory and Typical Marking Records
# =============================================================================

@pytest.fixture
def make_stem():
    """Factory building stems with sequential ids.

    Usage:
        stem = make_stem('HETRE_COMMUN', 35.0, height_m=24.0)

    Every stem gets parcel 'P1' unless another parcel is passed.
    """
    counter = itertools.count(1)

    def _make(species_code='HETRE_COMMUN', diameter_cm=30.0, **kwargs):
        kwargs.setdefault('parcel_id', 'P1')
        stem_id = kwargs.pop('id', f"T{next(counter)}")
        return Stem(id=stem_id, species_code=species_code, diameter_cm=diameter_cm, **kwargs)

    return _make


@pytest.fixture
def beech_stems(make_stem):
    """Four measured beech stems, 35 cm and 24 m.

    All fall in the 35 cm class of the default grid.
    """
    return [make_stem('HETRE_COMMUN', 35.0, height_m=24.0) for _ in range(4)]


@pytest.fixture
def mixed_stems(make_stem):
    """A small mixed oak/beech marking with one unmeasured oak.

    Returns:
    - 3 beech at 25, 32 and 47 cm, all measured
    - 2 sessile oak at 40 cm, one measured (26 m), one without height
    """
    return [
        make_stem('HETRE_COMMUN', 25.0, height_m=18.0),
        make_stem('HETRE_COMMUN', 32.0, height_m=22.0),
        make_stem('HETRE_COMMUN', 47.0, height_m=27.0),
        make_stem('CH_SESSILE', 40.0, height_m=26.0),
        make_stem('CH_SESSILE', 40.0),
    ]


# =============================================================================
# Grid, Catalog and Tariff Fixtures
# =============================================================================

@pytest.fixture
def default_grid():
    """The configured default grid (5 to 120 cm, 5 cm steps)."""
    return DiameterClassGrid.default()


@pytest.fixture
def catalog():
    """The packaged species catalog."""
    return SpeciesCatalog.default()


@pytest.fixture
def schaeffer_one_entry():
    """One-entry Schaeffer selection, numero 8 (no height needed)."""
    return TarifSelection(TarifMethod.SCHAEFFER_1E, numero=8)


@pytest.fixture
def algan():
    """Default two-entry ALGAN selection."""
    return TarifSelection(TarifMethod.ALGAN)
