"""
Per-species synthesis by diameter class.

For one species, stems are grouped by diameter class. Each class gets a
count, basal area, resolved height, volume and monetary value; the species
gets totals. When heights are required and a class still has a stem without
a resolvable height, that class's volume is withheld and the species is
flagged height-incomplete.

``synthesize_species`` wraps ``synthesis_for_essence`` and turns engine and
arithmetic errors into an explicit ``SynthesisFailure`` so that one bad
species never aborts a stand aggregation.
"""
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from .diameter_classes import DiameterClassGrid, diameter_class_for
from .exceptions import MartelageError
from .height_overrides import HeightOverrideMap
from .height_resolver import (
    HeightCurve, HeightModeEntry, HeightResolution, HeightResolver, HeightSource,
)
from .logging_config import get_logger, log_species_failure
from .pricing import PriceTable, ProductRule, classify_product
from .stem import Stem
from .tariffs import TarifSelection
from .tree_utils import compute_g
from .utils import normalize_species_code
from .volume_library import VolumeCalculator

__all__ = [
    'ClassSynthesis',
    'SynthesisTotals',
    'SynthesisSuccess',
    'SynthesisFailure',
    'SynthesisOutcome',
    'SynthesisParams',
    'synthesis_for_essence',
    'synthesize_species',
]

logger = get_logger(__name__)

# Errors converted to a SynthesisFailure instead of propagating
SPECIES_FAILURE_ERRORS = (MartelageError, ValueError, KeyError, TypeError, ArithmeticError)


@dataclass(frozen=True)
class ClassSynthesis:
    """Synthesis row for one diameter class of one species.

    Attributes:
        diam_class: Class lower bound (cm)
        count: Number of stems
        basal_area_m2: Summed basal area
        mean_height_m: Mean effective height, None when no stem has one
        volume_m3: Summed volume, None when withheld or not computable
        value_eur: Summed value of priced stems, None when none is priced
        unpriced_volume_m3: Volume of stems without a matching price
        height_source: Source of the height used for unmeasured stems
            (MEASURED when every stem is measured)
        height_missing: True when a stem of the class has no resolvable height,
            whatever the tariff arity
    """

    diam_class: int
    count: int
    basal_area_m2: float
    mean_height_m: Optional[float]
    volume_m3: Optional[float]
    value_eur: Optional[float]
    unpriced_volume_m3: Optional[float]
    height_source: HeightSource
    height_missing: bool = False


@dataclass(frozen=True)
class SynthesisTotals:
    """Totals for one species.

    g_weighted_diameter_cm is weighted by basal area, unlike the arithmetic
    SpeciesStats.mean_diameter_cm of the stand rows.
    """

    n_total: int
    volume_m3: Optional[float]
    g_weighted_diameter_cm: Optional[float]
    mean_height_m: Optional[float]
    basal_area_m2: float = 0.0
    revenue_eur: Optional[float] = None
    unpriced_volume_m3: float = 0.0
    lorey_gh_sum: float = 0.0
    lorey_g_sum: float = 0.0
    height_sum: float = 0.0
    height_count: int = 0
    volume_computed_count: int = 0
    volume_expected_count: int = 0
    height_complete: bool = True
    missing_classes: Tuple[int, ...] = ()

    @property
    def volume_completeness_pct(self) -> float:
        if self.volume_expected_count == 0:
            return 100.0
        pct = 100.0 * self.volume_computed_count / self.volume_expected_count
        return min(100.0, max(0.0, pct))

    @property
    def lorey_height_m(self) -> Optional[float]:
        if self.lorey_g_sum <= 0:
            return None
        return self.lorey_gh_sum / self.lorey_g_sum


@dataclass(frozen=True)
class SynthesisSuccess:
    species_code: str
    classes: Tuple[ClassSynthesis, ...]
    totals: SynthesisTotals

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class SynthesisFailure:
    """A species whose synthesis raised; reason is the error message."""

    species_code: str
    reason: str
    error_type: str

    @property
    def ok(self) -> bool:
        return False


SynthesisOutcome = Union[SynthesisSuccess, SynthesisFailure]


@dataclass(frozen=True)
class SynthesisParams:
    """Parameters shared by every species of one aggregation pass.

    Attributes:
        tarif_selection: Active tariff selection (configured default when None)
        height_modes: Per (species, class) height modes
        prices: Price table, None when no prices are known
        product_rules: Ordered product rules
        height_curve: Height-diameter curve used when heights are not required
        require_heights: Withhold volume of classes with unresolved heights
    """

    tarif_selection: Optional[TarifSelection] = None
    height_modes: Tuple[HeightModeEntry, ...] = ()
    prices: Optional[PriceTable] = None
    product_rules: Tuple[ProductRule, ...] = ()
    height_curve: Optional[HeightCurve] = None
    require_heights: bool = True

    def __post_init__(self):
        object.__setattr__(self, 'height_modes', tuple(self.height_modes or ()))
        object.__setattr__(self, 'product_rules', tuple(self.product_rules or ()))
        if self.tarif_selection is None:
            object.__setattr__(self, 'tarif_selection', TarifSelection.default())


def _price_stem(stem: Stem, species_code: str, diam_class: int,
                prices: Optional[PriceTable], rules: Sequence[ProductRule]) -> Optional[float]:
    """EUR/m3 for a stem, None when the table has no match."""
    if not prices:
        return None
    default_product = classify_product(species_code, diam_class, rules)
    product = stem.assigned_product or classify_product(
        species_code, diam_class, rules, stem.quality, stem.defects
    )
    price = prices.price_for(species_code, product, diam_class)
    if price is None and product.lower() != default_product.lower():
        price = prices.price_for(species_code, default_product, diam_class)
    return price


def _mean(values: Sequence[float]) -> Optional[float]:
    return sum(values) / len(values) if values else None


def synthesis_for_essence(
    species_code: str,
    class_grid: Union[DiameterClassGrid, Iterable[int]],
    stems: Iterable[Stem],
    manual_heights: Optional[Union[HeightOverrideMap, Mapping]] = None,
    tariff_selection: Optional[TarifSelection] = None,
    require_heights: bool = True,
    height_modes: Iterable[HeightModeEntry] = None,
    prices: Optional[PriceTable] = None,
    product_rules: Iterable[ProductRule] = None,
    height_curve: Optional[HeightCurve] = None,
) -> Tuple[Tuple[ClassSynthesis, ...], SynthesisTotals]:
    """Synthesize one species by diameter class.

    Only stems of the species without a special-tree category are used.

    Args:
        species_code: Species to synthesize
        class_grid: Diameter class grid
        stems: Stems (other species are ignored)
        manual_heights: Effective height overrides
        tariff_selection: Active tariff selection (configured default when None)
        require_heights: Withhold class volume on unresolved heights
        height_modes: Per (species, class) height modes
        prices: Price table
        product_rules: Ordered product rules
        height_curve: Height curve, consulted only when heights are not required

    Returns:
        (class rows sorted by class, species totals)

    Raises:
        InvalidParameterError: On an empty grid or a non-positive diameter
        TariffError: On unusable tariff data
        InvalidDataError: On a malformed override
    """
    grid = class_grid if isinstance(class_grid, DiameterClassGrid) else DiameterClassGrid(tuple(class_grid))
    key = normalize_species_code(species_code)
    selection = tariff_selection if tariff_selection is not None else TarifSelection.default()
    calculator = VolumeCalculator(selection)
    needs_height = selection.method_for(key).inputs == 2
    rules = tuple(product_rules or ())
    resolver = HeightResolver(manual_heights, height_modes or (), height_curve, require_heights)

    by_class = {}
    for stem in stems:
        if stem.species_key != key or stem.is_special:
            continue
        by_class.setdefault(diameter_class_for(stem.diameter_cm, grid), []).append(stem)

    rows: List[ClassSynthesis] = []
    n_total = 0
    g_total = 0.0
    gd_sum = 0.0
    h_sum = 0.0
    h_count = 0
    lorey_gh = 0.0
    lorey_g = 0.0
    v_total = 0.0
    revenue = 0.0
    any_priced = False
    unpriced_total = 0.0
    withheld_any = False
    expected = 0
    computed = 0
    missing: List[int] = []

    for diam_class in sorted(by_class):
        class_stems = by_class[diam_class]
        class_res = resolver.resolve_class(key, diam_class, class_stems)
        resolutions: List[HeightResolution] = [
            HeightResolution(s.height_m, HeightSource.MEASURED) if s.height_m is not None else class_res
            for s in class_stems
        ]
        # One-entry volumes need no height, but the gap still blocks the height figures
        unresolved = any(not r.is_resolved for r in resolutions)
        withheld = unresolved and needs_height and require_heights
        if unresolved:
            missing.append(diam_class)
        withheld_any = withheld_any or withheld

        class_g = 0.0
        heights: List[float] = []
        class_volume = 0.0
        class_value = 0.0
        class_unpriced = 0.0
        class_computed = 0
        class_priced = 0
        for stem, res in zip(class_stems, resolutions):
            g = compute_g(stem.diameter_cm)
            class_g += g
            gd_sum += g * stem.diameter_cm
            if res.is_resolved:
                heights.append(res.height_m)
                lorey_gh += g * res.height_m
                lorey_g += g
            expected += 1
            if withheld:
                continue
            volume = calculator.calculate_volume(stem, res.height_m).volume_m3
            if volume is None:
                continue
            class_computed += 1
            class_volume += volume
            price = _price_stem(stem, key, diam_class, prices, rules)
            if price is None:
                class_unpriced += volume
            else:
                class_priced += 1
                class_value += volume * price

        computed += class_computed
        n_total += len(class_stems)
        g_total += class_g
        h_sum += sum(heights)
        h_count += len(heights)

        if withheld or class_computed == 0:
            volume_out = None
            value_out = None
            unpriced_out = None if withheld else 0.0
        else:
            volume_out = class_volume
            value_out = class_value if class_priced else None
            unpriced_out = class_unpriced
            v_total += class_volume
            unpriced_total += class_unpriced
            if class_priced:
                revenue += class_value
                any_priced = True

        if all(r.source is HeightSource.MEASURED for r in resolutions):
            source = HeightSource.MEASURED
        else:
            source = class_res.source

        rows.append(ClassSynthesis(
            diam_class=diam_class,
            count=len(class_stems),
            basal_area_m2=class_g,
            mean_height_m=_mean(heights),
            volume_m3=volume_out,
            value_eur=value_out,
            unpriced_volume_m3=unpriced_out,
            height_source=source,
            height_missing=unresolved,
        ))

    totals = SynthesisTotals(
        n_total=n_total,
        volume_m3=None if withheld_any else v_total,
        g_weighted_diameter_cm=gd_sum / g_total if g_total > 0 else None,
        mean_height_m=h_sum / h_count if h_count else None,
        basal_area_m2=g_total,
        revenue_eur=revenue if any_priced and not withheld_any else None,
        unpriced_volume_m3=unpriced_total,
        lorey_gh_sum=lorey_gh,
        lorey_g_sum=lorey_g,
        height_sum=h_sum,
        height_count=h_count,
        volume_computed_count=computed,
        volume_expected_count=expected,
        height_complete=not missing,
        missing_classes=tuple(missing),
    )
    return tuple(rows), totals


def synthesize_species(
    species_code: str,
    class_grid: Union[DiameterClassGrid, Iterable[int]],
    stems: Iterable[Stem],
    manual_heights: Optional[Union[HeightOverrideMap, Mapping]] = None,
    params: Optional[SynthesisParams] = None,
) -> SynthesisOutcome:
    """Synthesize one species, capturing failures as a result value.

    Args:
        species_code: Species to synthesize
        class_grid: Diameter class grid
        stems: Stems in scope
        manual_heights: Effective height overrides
        params: Shared synthesis parameters (defaults when None)

    Returns:
        SynthesisSuccess, or SynthesisFailure when the synthesis raised
    """
    params = params if params is not None else SynthesisParams()
    code = normalize_species_code(species_code)
    try:
        classes, totals = synthesis_for_essence(
            code,
            class_grid,
            stems,
            manual_heights=manual_heights,
            tariff_selection=params.tarif_selection,
            require_heights=params.require_heights,
            height_modes=params.height_modes,
            prices=params.prices,
            product_rules=params.product_rules,
            height_curve=params.height_curve,
        )
    except SPECIES_FAILURE_ERRORS as e:
        log_species_failure(logger, code, e)
        return SynthesisFailure(code, str(e), type(e).__name__)
    return SynthesisSuccess(code, classes, totals)
