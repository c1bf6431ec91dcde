"""
pymartelage: forestry synthesis and cubage engine for marking rounds

Turns recorded stems (species, diameter, optional height) into per-class,
per-species and stand-level statistics: stem counts, basal area, volume
under French cubage tariffs (Schaeffer, Algan, IFN, form factor), revenue
and per-hectare figures.

Quick Start:
    >>> from pymartelage import Stem, compute_martelage_stats
    >>> stems = [Stem(id=str(i), parcel_id='P1', species_code='HETRE_COMMUN',
    ...               diameter_cm=35.0, height_m=24.0) for i in range(4)]
    >>> stats = compute_martelage_stats(stems, surface_m2=2000.0)
    >>> stats.n_per_ha
    20.0
"""

# =============================================================================
# Package Metadata
# =============================================================================
__version__ = "0.1.0"
__author__ = "pymartelage Development Team"

# =============================================================================
# Core Records
# =============================================================================
from .stem import Stem, StemCategory, SPECIAL_CATEGORIES
from .species import Essence, SpeciesCatalog, get_default_catalog
from .quality import WoodQualityGrade

# =============================================================================
# Stand Aggregation - Primary API
# =============================================================================
from .martelage import (
    ClassDistributionEntry,
    HarvestRates,
    QualityDistributionEntry,
    SpecialTreeDetail,
    SpecialTreeEntry,
    SpeciesStats,
    StandStatistics,
    compute_martelage_stats,
)

# =============================================================================
# Per-Species Synthesis
# =============================================================================
from .synthesis import (
    ClassSynthesis,
    SynthesisFailure,
    SynthesisParams,
    SynthesisSuccess,
    SynthesisTotals,
    synthesis_for_essence,
    synthesize_species,
)

# =============================================================================
# Cubage - Tariffs and Volume
# =============================================================================
from .tariffs import (
    TarifMethod,
    TarifSelection,
    available_tarif_numbers,
    recommended_tarif_numero,
    requires_height,
)
from .volume_library import (
    VolumeCalculator,
    VolumeResult,
    calculate_tree_volume,
    get_volume_library_info,
    validate_volume_library,
    volume_for_stem,
)
from .tree_utils import compute_g

# =============================================================================
# Diameter Classes and Heights
# =============================================================================
from .diameter_classes import DiameterClassGrid, diameter_class_for
from .height_overrides import (
    HeightOverrideMap,
    Scope,
    ScopeKind,
    ScopedHeightOverrides,
    merge_height_overrides,
)
from .height_resolver import (
    HeightCurve,
    HeightMode,
    HeightModeEntry,
    HeightRange,
    HeightResolver,
    HeightSource,
)

# =============================================================================
# Pricing
# =============================================================================
from .pricing import PriceEntry, PriceTable, ProductRule, classify_product

# =============================================================================
# Stand Metrics, Sanity and Biodiversity
# =============================================================================
from .stand_metrics import StandMetricsCalculator, get_metrics_calculator
from .sanity import SanityChecker, SanityDomain, SanitySeverity, SanityWarning
from .biodiversity import BiodiversityIndex, compute_biodiversity_index

# =============================================================================
# Configuration Loading
# =============================================================================
from .config_loader import get_config_loader, set_config_dir, clear_config_cache

# =============================================================================
# Logging
# =============================================================================
from .logging_config import get_logger, setup_logging

# =============================================================================
# Utilities
# =============================================================================
from .utils import normalize_code, normalize_species_code

# =============================================================================
# Exceptions
# =============================================================================
from .exceptions import (
    MartelageError,
    ConfigurationError,
    SpeciesNotFoundError,
    TariffError,
    ParameterError,
    InvalidParameterError,
    InvalidTariffSelectionError,
    AggregationError,
    EmptyScopeError,
    DataError,
    InvalidDataError,
)

# =============================================================================
# Base Classes (for extension)
# =============================================================================
from .model_base import ParameterizedModel

__all__ = [
    # Metadata
    "__version__",
    # Core Records
    "Stem",
    "StemCategory",
    "SPECIAL_CATEGORIES",
    "Essence",
    "SpeciesCatalog",
    "get_default_catalog",
    "WoodQualityGrade",
    # Stand Aggregation
    "ClassDistributionEntry",
    "HarvestRates",
    "QualityDistributionEntry",
    "SpecialTreeDetail",
    "SpecialTreeEntry",
    "SpeciesStats",
    "StandStatistics",
    "compute_martelage_stats",
    # Per-Species Synthesis
    "ClassSynthesis",
    "SynthesisFailure",
    "SynthesisParams",
    "SynthesisSuccess",
    "SynthesisTotals",
    "synthesis_for_essence",
    "synthesize_species",
    # Cubage
    "TarifMethod",
    "TarifSelection",
    "available_tarif_numbers",
    "recommended_tarif_numero",
    "requires_height",
    "VolumeCalculator",
    "VolumeResult",
    "calculate_tree_volume",
    "get_volume_library_info",
    "validate_volume_library",
    "volume_for_stem",
    "compute_g",
    # Diameter Classes and Heights
    "DiameterClassGrid",
    "diameter_class_for",
    "HeightOverrideMap",
    "Scope",
    "ScopeKind",
    "ScopedHeightOverrides",
    "merge_height_overrides",
    "HeightCurve",
    "HeightMode",
    "HeightModeEntry",
    "HeightRange",
    "HeightResolver",
    "HeightSource",
    # Pricing
    "PriceEntry",
    "PriceTable",
    "ProductRule",
    "classify_product",
    # Stand Metrics, Sanity and Biodiversity
    "StandMetricsCalculator",
    "get_metrics_calculator",
    "SanityChecker",
    "SanityDomain",
    "SanitySeverity",
    "SanityWarning",
    "BiodiversityIndex",
    "compute_biodiversity_index",
    # Configuration
    "get_config_loader",
    "set_config_dir",
    "clear_config_cache",
    # Logging
    "get_logger",
    "setup_logging",
    # Utilities
    "normalize_code",
    "normalize_species_code",
    # Exceptions
    "MartelageError",
    "ConfigurationError",
    "SpeciesNotFoundError",
    "TariffError",
    "ParameterError",
    "InvalidParameterError",
    "InvalidTariffSelectionError",
    "AggregationError",
    "EmptyScopeError",
    "DataError",
    "InvalidDataError",
    # Base Classes
    "ParameterizedModel",
]
