"""
Stand aggregation of a marking round ("martelage").

``compute_martelage_stats`` runs the per-species synthesis for every selected
species and folds the results into one immutable ``StandStatistics``:
counts, basal area, volume and revenue (totals and per hectare), mean and
dominant dimensions, class and quality distributions, per-species rows,
special trees, sanity warnings, biodiversity and harvest rates.

Counts and basal area always come from stem geometry. Everything that needs
a volume sits behind a single ``volume_available`` flag, false as soon as
one selected species has a diameter class with an unresolved height.
"""
from collections import Counter
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .biodiversity import BiodiversityIndex, compute_biodiversity_index
from .diameter_classes import DiameterClassGrid, diameter_class_for
from .height_overrides import HeightOverrideMap
from .logging_config import get_logger, log_synthesis_summary
from .quality import WoodQualityGrade
from .sanity import SanityChecker, SanityWarning
from .species import SpeciesCatalog, get_default_catalog
from .stem import Stem, StemCategory
from .stand_metrics import get_metrics_calculator
from .synthesis import SynthesisFailure, SynthesisParams, SynthesisSuccess, synthesize_species
from .tariffs import TarifSelection
from .tree_utils import compute_g
from .utils import normalize_species_code

__all__ = [
    'ClassDistributionEntry',
    'QualityDistributionEntry',
    'SpeciesStats',
    'SpecialTreeDetail',
    'SpecialTreeEntry',
    'HarvestRates',
    'StandStatistics',
    'compute_martelage_stats',
]

logger = get_logger(__name__)


@dataclass(frozen=True)
class ClassDistributionEntry:
    diam_class: int
    count: int
    basal_area_m2: float
    volume_m3: Optional[float]


@dataclass(frozen=True)
class QualityDistributionEntry:
    grade: WoodQualityGrade
    count: int
    pct: float


@dataclass(frozen=True)
class SpeciesStats:
    """Per-species breakdown row.

    Percentages are shares of the stand totals. Volume figures are None when
    the stand volume is unavailable or the species synthesis failed.
    mean_diameter_cm is the arithmetic mean of the species' stems.
    """

    species_code: str
    species_name: str
    n: int
    n_pct: float
    basal_area_m2: float
    g_pct: float
    g_per_ha: float
    volume_m3: Optional[float]
    v_pct: Optional[float]
    v_per_ha: Optional[float]
    mean_diameter_cm: Optional[float]
    dg_cm: Optional[float]
    mean_price_per_m3: Optional[float]
    revenue_eur: Optional[float]
    revenue_per_ha: Optional[float]
    dominant_quality: Optional[WoodQualityGrade]
    quality_assessed_pct: float
    height_complete: bool = True
    failed: bool = False


@dataclass(frozen=True)
class SpecialTreeDetail:
    stem_id: str
    species_code: str
    species_name: str
    diameter_cm: float
    height_m: Optional[float]
    defects: Tuple[str, ...]
    note: Optional[str]
    has_gps: bool


@dataclass(frozen=True)
class SpecialTreeEntry:
    category: StemCategory
    count: int
    trees: Tuple[SpecialTreeDetail, ...]


@dataclass(frozen=True)
class HarvestRates:
    """Removal rates (%) against the stand before harvest, and residual densities."""

    n_pct: Optional[float]
    g_pct: Optional[float]
    residual_n_per_ha: Optional[float]
    residual_g_per_ha: Optional[float]


@dataclass(frozen=True)
class StandStatistics:
    """Immutable result of one aggregation pass."""

    n_total: int
    n_per_ha: float
    basal_area_m2: float
    g_per_ha: float
    volume_m3: Optional[float]
    v_per_ha: Optional[float]
    unpriced_volume_m3: Optional[float]
    unpriced_volume_per_ha: Optional[float]
    unpriced_species_names: Tuple[str, ...]
    revenue_eur: Optional[float]
    revenue_per_ha: Optional[float]
    mean_diameter_cm: Optional[float]
    mean_height_m: Optional[float]
    dg_cm: Optional[float]
    lorey_height_m: Optional[float]
    d_min_cm: Optional[float]
    d_max_cm: Optional[float]
    d_cv_pct: Optional[float]
    ratio_vg: Optional[float]
    surface_ha: float
    class_distribution: Tuple[ClassDistributionEntry, ...]
    quality_distribution: Tuple[QualityDistributionEntry, ...]
    quality_assessed_count: int
    species: Tuple[SpeciesStats, ...]
    volume_available: bool
    volume_completeness_pct: float
    missing_heights: Mapping[str, Tuple[int, ...]]
    missing_height_species_names: Tuple[str, ...]
    failed_species: Tuple[SynthesisFailure, ...] = ()
    special_trees: Tuple[SpecialTreeEntry, ...] = ()
    sanity_warnings: Tuple[SanityWarning, ...] = ()
    biodiversity: Optional[BiodiversityIndex] = None
    harvest: Optional[HarvestRates] = None


TariffParams = Union[SynthesisParams, TarifSelection, None]


def _as_params(tariff_params: TariffParams) -> SynthesisParams:
    if tariff_params is None:
        return SynthesisParams()
    if isinstance(tariff_params, TarifSelection):
        return SynthesisParams(tarif_selection=tariff_params)
    return tariff_params


def _overrides_for(height_overrides, species_code: str):
    """Override entries relevant to one species.

    A raw mapping is sliced per species so that one malformed entry only
    fails its own species.
    """
    if height_overrides is None or isinstance(height_overrides, HeightOverrideMap):
        return height_overrides
    merged: Dict = {}
    for code, classes in height_overrides.items():
        if normalize_species_code(code) == species_code:
            merged.update(dict(classes))
    return {species_code: merged} if merged else None


def _pct(part: Optional[float], whole: Optional[float]) -> Optional[float]:
    if part is None or not whole:
        return None
    return part / whole * 100.0


def _quality_summary(stems: Sequence[Stem]) -> Tuple[Optional[WoodQualityGrade], int]:
    grades = [s.quality_grade for s in stems if s.quality_grade is not None]
    if not grades:
        return None, 0
    counts = Counter(grades)
    dominant = max(WoodQualityGrade, key=lambda g: (counts.get(g, 0), -g.index))
    return dominant, len(grades)


def _special_entries(stems: Iterable[Stem], catalog: SpeciesCatalog) -> Tuple[SpecialTreeEntry, ...]:
    by_category: Dict[StemCategory, List[SpecialTreeDetail]] = {}
    for s in stems:
        category = s.special_category
        if category is None:
            continue
        by_category.setdefault(category, []).append(SpecialTreeDetail(
            stem_id=s.id,
            species_code=s.species_key,
            species_name=catalog.name_for(s.species_code),
            diameter_cm=s.diameter_cm,
            height_m=s.height_m,
            defects=s.defects,
            note=s.note,
            has_gps=s.gps_wkt is not None,
        ))
    return tuple(
        SpecialTreeEntry(category, len(trees), tuple(trees))
        for category, trees in sorted(by_category.items(), key=lambda item: item[0].value)
    )


def _harvest(n_per_ha: float, g_per_ha: float,
             n_ha_before: Optional[float], g_ha_before: Optional[float]) -> Optional[HarvestRates]:
    if n_ha_before is None and g_ha_before is None:
        return None
    n_pct = None
    g_pct = None
    if n_ha_before is not None and n_ha_before > 0 and n_per_ha > 0:
        n_pct = min(100.0, n_per_ha / n_ha_before * 100.0)
    if g_ha_before is not None and g_ha_before > 0 and g_per_ha > 0:
        g_pct = min(100.0, g_per_ha / g_ha_before * 100.0)
    residual_n = max(0.0, n_ha_before - n_per_ha) if n_ha_before is not None and n_per_ha > 0 else None
    residual_g = max(0.0, g_ha_before - g_per_ha) if g_ha_before is not None and g_per_ha > 0 else None
    return HarvestRates(n_pct, g_pct, residual_n, residual_g)


def compute_martelage_stats(
    stems_in_scope: Iterable[Stem],
    surface_m2: float,
    selected_species_codes: Iterable[str] = (),
    height_overrides: Optional[Union[HeightOverrideMap, Mapping]] = None,
    tariff_params: TariffParams = None,
    class_grid: Optional[Union[DiameterClassGrid, Iterable[int]]] = None,
    species_catalog: Optional[SpeciesCatalog] = None,
    *,
    n_ha_before: Optional[float] = None,
    g_ha_before: Optional[float] = None,
) -> Optional[StandStatistics]:
    """Aggregate a marking round over a sampled surface.

    Args:
        stems_in_scope: Stems of the plot, parcel or forest being summarized
        surface_m2: Sampled surface in m2
        selected_species_codes: Species to include; empty means all
        height_overrides: Effective manual heights (species -> class -> m)
        tariff_params: SynthesisParams bundle (a bare TarifSelection is
            accepted); None means the configured default tariff without prices
        class_grid: Diameter class grid; None means the configured default
        species_catalog: Catalog for display names; None means the packaged one
        n_ha_before: Stems per hectare before harvest
        g_ha_before: Basal area per hectare before harvest

    Returns:
        StandStatistics, or None when there are no stems, the surface is not
        positive, the class grid is empty or no regular stem of the selected
        species is in scope
    """
    stems = tuple(stems_in_scope)
    if not stems or surface_m2 <= 0:
        return None
    if class_grid is None:
        grid = DiameterClassGrid.default()
    elif isinstance(class_grid, DiameterClassGrid):
        grid = class_grid
    else:
        bounds = tuple(class_grid)
        if not bounds:
            return None
        grid = DiameterClassGrid(bounds)

    params = _as_params(tariff_params)
    catalog = species_catalog if species_catalog is not None else get_default_catalog()
    calc = get_metrics_calculator()
    surface_ha = calc.surface_ha(surface_m2)
    selected = {normalize_species_code(c) for c in selected_species_codes}

    by_species: Dict[str, List[Stem]] = {}
    for s in stems:
        if s.is_special:
            continue
        if selected and s.species_key not in selected:
            continue
        by_species.setdefault(s.species_key, []).append(s)
    if not by_species:
        return None

    outcomes = {
        code: synthesize_species(code, grid, by_species[code], _overrides_for(height_overrides, code), params)
        for code in sorted(by_species)
    }
    successes = {c: o for c, o in outcomes.items() if isinstance(o, SynthesisSuccess)}
    failures = tuple(o for o in outcomes.values() if isinstance(o, SynthesisFailure))

    missing = {c: o.totals.missing_classes for c, o in successes.items() if not o.totals.height_complete}
    volume_available = not missing

    regular = [s for code in sorted(by_species) for s in by_species[code]]
    n_total = len(regular)
    g_by_species = {code: sum(compute_g(s.diameter_cm) for s in by_species[code]) for code in by_species}
    g_total = sum(g_by_species.values())
    n_per_ha = n_total / surface_ha
    g_per_ha = g_total / surface_ha

    # Class distribution: counts and G from geometry, volumes from the synthesis
    class_dist: Dict[int, List] = {}
    for s in regular:
        entry = class_dist.setdefault(diameter_class_for(s.diameter_cm, grid), [0, 0.0, None])
        entry[0] += 1
        entry[1] += compute_g(s.diameter_cm)
    if volume_available:
        for outcome in successes.values():
            for row in outcome.classes:
                if row.volume_m3 is not None:
                    entry = class_dist[row.diam_class]
                    entry[2] = (entry[2] or 0.0) + row.volume_m3
    class_distribution = tuple(
        ClassDistributionEntry(c, n, g, v) for c, (n, g, v) in sorted(class_dist.items())
    )

    volume_total = sum(o.totals.volume_m3 or 0.0 for o in successes.values())
    revenues = [o.totals.revenue_eur for o in successes.values() if o.totals.revenue_eur is not None]
    revenue_total = sum(revenues) if revenues else None
    unpriced_total = sum(o.totals.unpriced_volume_m3 for o in successes.values())
    unpriced_names = tuple(
        catalog.name_for(c) for c, o in successes.items() if o.totals.unpriced_volume_m3 > 0
    )
    h_sum = sum(o.totals.height_sum for o in successes.values())
    h_count = sum(o.totals.height_count for o in successes.values())
    expected = sum(o.totals.volume_expected_count for o in successes.values())
    computed = sum(o.totals.volume_computed_count for o in successes.values())

    if volume_available:
        volume = volume_total
        revenue = revenue_total
        unpriced = unpriced_total
        mean_height = h_sum / h_count if h_count else None
        lorey = calc.calculate_lorey_height(
            (o.totals.lorey_g_sum, o.totals.lorey_height_m) for o in successes.values()
        )
        ratio_vg = volume / g_total if g_total > 0 and volume > 0 else None
    else:
        volume = revenue = unpriced = mean_height = lorey = ratio_vg = None

    diameters = [s.diameter_cm for s in regular]
    mean_diameter = sum(diameters) / len(diameters) if diameters else None

    grade_counts = Counter(s.quality_grade for s in regular if s.quality_grade is not None)
    graded = sum(grade_counts.values())
    quality_distribution = tuple(
        QualityDistributionEntry(grade, grade_counts[grade], grade_counts[grade] / graded * 100.0)
        for grade in WoodQualityGrade if grade_counts.get(grade, 0) > 0
    )

    rows = []
    for code, species_stems in by_species.items():
        outcome = outcomes[code]
        n = len(species_stems)
        g = g_by_species[code]
        totals = outcome.totals if isinstance(outcome, SynthesisSuccess) else None
        v = totals.volume_m3 if totals is not None and volume_available else None
        rev = totals.revenue_eur if totals is not None and volume_available else None
        dominant, n_graded = _quality_summary(species_stems)
        rows.append(SpeciesStats(
            species_code=code,
            species_name=catalog.name_for(code),
            n=n,
            n_pct=n / n_total * 100.0,
            basal_area_m2=g,
            g_pct=g / g_total * 100.0 if g_total > 0 else 0.0,
            g_per_ha=g / surface_ha,
            volume_m3=v,
            v_pct=_pct(v, volume),
            v_per_ha=v / surface_ha if v is not None else None,
            mean_diameter_cm=sum(s.diameter_cm for s in species_stems) / n,
            dg_cm=calc.calculate_dg(g, n),
            mean_price_per_m3=rev / v if rev is not None and v else None,
            revenue_eur=rev,
            revenue_per_ha=rev / surface_ha if rev is not None else None,
            dominant_quality=dominant,
            quality_assessed_pct=n_graded / n * 100.0,
            height_complete=totals.height_complete if totals is not None else True,
            failed=totals is None,
        ))
    rows.sort(key=lambda r: (r.species_name, r.species_code))

    special_trees = _special_entries(stems, catalog)
    checker = SanityChecker()
    warnings = checker.check_all_stems(stems)
    warnings.extend(checker.check_aggregates(
        n_per_ha=n_per_ha,
        g_per_ha=g_per_ha,
        v_per_ha=volume / surface_ha if volume is not None else None,
        revenue_per_ha=revenue / surface_ha if revenue is not None else None,
        surface_ha=surface_ha,
        ratio_vg=ratio_vg,
    ))

    biodiversity = compute_biodiversity_index({c: len(v) for c, v in by_species.items()}, stems)

    log_synthesis_summary(logger, len(outcomes), n_total, volume_available, len(failures))

    return StandStatistics(
        n_total=n_total,
        n_per_ha=n_per_ha,
        basal_area_m2=g_total,
        g_per_ha=g_per_ha,
        volume_m3=volume,
        v_per_ha=volume / surface_ha if volume is not None else None,
        unpriced_volume_m3=unpriced,
        unpriced_volume_per_ha=unpriced / surface_ha if unpriced is not None else None,
        unpriced_species_names=unpriced_names,
        revenue_eur=revenue,
        revenue_per_ha=revenue / surface_ha if revenue is not None else None,
        mean_diameter_cm=mean_diameter,
        mean_height_m=mean_height,
        dg_cm=calc.calculate_dg(g_total, n_total),
        lorey_height_m=lorey,
        d_min_cm=min(diameters) if diameters else None,
        d_max_cm=max(diameters) if diameters else None,
        d_cv_pct=calc.calculate_diameter_cv(diameters),
        ratio_vg=ratio_vg,
        surface_ha=surface_ha,
        class_distribution=class_distribution,
        quality_distribution=quality_distribution,
        quality_assessed_count=graded,
        species=tuple(rows),
        volume_available=volume_available,
        volume_completeness_pct=min(100.0, computed / expected * 100.0) if expected else 100.0,
        missing_heights=MappingProxyType(dict(missing)),
        missing_height_species_names=tuple(catalog.name_for(c) for c in sorted(missing)),
        failed_species=failures,
        special_trees=special_trees,
        sanity_warnings=tuple(warnings),
        biodiversity=biodiversity,
        harvest=_harvest(n_per_ha, g_per_ha, n_ha_before, g_ha_before),
    )
