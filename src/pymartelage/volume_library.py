"""
Volume calculation module for pymartelage.

Implements the French cubage tariffs used for standing-stem volume:
- Schaeffer (1949) one- and two-entry tariffs
- Algan (1958), coefficients from Pardé & Bouchon (1988)
- IFN fast (one-entry) and slow (two-entry) tariffs
- Form factor method V = G * H * f

Coefficient tables live in cfg/*.json and are loaded through the shared
ConfigLoader cache. Every formula is clamped at zero so the volume stays
monotonically non-decreasing in diameter for a fixed height.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple, Type, TYPE_CHECKING

from .config_loader import register_cache_clear_hook
from .exceptions import InvalidParameterError, TariffError, validate_positive
from .model_base import ParameterizedModel
from .tariffs import TarifMethod, TarifSelection
from .tree_utils import compute_g, girth_from_diameter

if TYPE_CHECKING:
    from .stem import Stem

__all__ = [
    'VolumeResult',
    'VolumeCalculator',
    'SchaefferOneEntryTariff',
    'SchaefferTwoEntryTariff',
    'AlganTariff',
    'IfnRapideTariff',
    'IfnLentTariff',
    'FormFactorTariff',
    'get_tariff_model',
    'clear_tariff_cache',
    'volume_for_stem',
    'calculate_tree_volume',
    'get_volume_library_info',
    'validate_volume_library',
]


class TariffModel(ParameterizedModel):
    """A single tariff table row able to compute a stem volume."""

    def volume(self, diameter_cm: float, height_m: Optional[float] = None) -> float:
        raise NotImplementedError


class SchaefferOneEntryTariff(TariffModel):
    """V = a + b * C^2, C = girth at 1.30 m in metres."""

    COEFFICIENT_FILE = 'schaeffer_coefficients.json'
    COEFFICIENT_KEY = 'one_entry.numeros'
    SPECIES_KEYED = False

    def volume(self, diameter_cm: float, height_m: Optional[float] = None) -> float:
        c = girth_from_diameter(diameter_cm)
        return max(0.0, self.get_coefficient('a') + self.get_coefficient('b') * c * c)


class SchaefferTwoEntryTariff(TariffModel):
    """V = a + b * C^2 * H."""

    COEFFICIENT_FILE = 'schaeffer_coefficients.json'
    COEFFICIENT_KEY = 'two_entry.numeros'
    SPECIES_KEYED = False

    def volume(self, diameter_cm: float, height_m: Optional[float] = None) -> float:
        c = girth_from_diameter(diameter_cm)
        return max(0.0, self.get_coefficient('a') + self.get_coefficient('b') * c * c * height_m)


class AlganTariff(TariffModel):
    """V = a * D^b * H^c with per-species coefficients."""

    COEFFICIENT_FILE = 'algan_coefficients.json'
    COEFFICIENT_KEY = 'species_coefficients'
    DEFAULT_KEY = 'HETRE_COMMUN'
    FALLBACK_PARAMETERS = {
        'HETRE_COMMUN': {'a': 0.0000362, 'b': 2.158, 'c': 0.860},
    }

    def volume(self, diameter_cm: float, height_m: Optional[float] = None) -> float:
        if diameter_cm <= 0 or height_m is None or height_m <= 0:
            return 0.0
        a = self.get_coefficient('a')
        b = self.get_coefficient('b')
        c = self.get_coefficient('c')
        return max(0.0, a * diameter_cm ** b * height_m ** c)


class IfnRapideTariff(TariffModel):
    """V(dm3) = a0 + a1 * D + a2 * D^2, returned in m3."""

    COEFFICIENT_FILE = 'ifn_coefficients.json'
    COEFFICIENT_KEY = 'rapide.numeros'
    SPECIES_KEYED = False

    def volume(self, diameter_cm: float, height_m: Optional[float] = None) -> float:
        d = diameter_cm
        v_dm3 = (self.get_coefficient('a0') + self.get_coefficient('a1') * d
                 + self.get_coefficient('a2') * d * d)
        return max(0.0, v_dm3 / 1000.0)


class IfnLentTariff(TariffModel):
    """V(dm3) = a0 + a1 * D^2 + a2 * D^2 * H, returned in m3."""

    COEFFICIENT_FILE = 'ifn_coefficients.json'
    COEFFICIENT_KEY = 'lent.numeros'
    SPECIES_KEYED = False

    def volume(self, diameter_cm: float, height_m: Optional[float] = None) -> float:
        d2 = diameter_cm * diameter_cm
        v_dm3 = (self.get_coefficient('a0') + self.get_coefficient('a1') * d2
                 + self.get_coefficient('a2') * d2 * height_m)
        return max(0.0, v_dm3 / 1000.0)


class FormFactorTariff(TariffModel):
    """V = G * H * f, f per species with a file-level default."""

    COEFFICIENT_FILE = 'form_factors.json'
    COEFFICIENT_KEY = 'species_coefficients'
    DEFAULT_FORM_FACTOR = 0.45

    def _load_parameters(self) -> None:
        try:
            super()._load_parameters()
        except TariffError:
            self.resolved_key = '*'
            self.coefficients = {'f': self.raw_data.get('default', self.DEFAULT_FORM_FACTOR)}

    @property
    def form_factor(self) -> float:
        return self.get_coefficient('f')

    def volume(self, diameter_cm: float, height_m: Optional[float] = None,
               form_factor: Optional[float] = None) -> float:
        f = form_factor if form_factor is not None else self.form_factor
        return max(0.0, compute_g(diameter_cm) * height_m * f)


_MODEL_CLASSES: Dict[TarifMethod, Type[TariffModel]] = {
    TarifMethod.SCHAEFFER_1E: SchaefferOneEntryTariff,
    TarifMethod.SCHAEFFER_2E: SchaefferTwoEntryTariff,
    TarifMethod.ALGAN: AlganTariff,
    TarifMethod.IFN_RAPIDE: IfnRapideTariff,
    TarifMethod.IFN_LENT: IfnLentTariff,
    TarifMethod.COEF_FORME: FormFactorTariff,
}

# Cache of tariff rows keyed by (method, species code or numero)
_tariff_models: Dict[Tuple[TarifMethod, str], TariffModel] = {}


def get_tariff_model(method: TarifMethod, species_code: str,
                     numero: Optional[int] = None) -> TariffModel:
    """Get or create the tariff row for a method.

    Numbered methods are keyed by numero, species methods by species code.

    Args:
        method: Tariff method
        species_code: Species code (used by ALGAN and COEF_FORME)
        numero: Table numero (used by Schaeffer and IFN tariffs)

    Returns:
        TariffModel instance (cached)

    Raises:
        TariffError: If the table has no usable row
    """
    method = TarifMethod.from_string(method)
    if method.numero_range is not None:
        if numero is None:
            raise TariffError(method.value, "a tariff numero is required")
        key = str(numero)
    else:
        key = species_code
    cache_key = (method, key)
    if cache_key not in _tariff_models:
        _tariff_models[cache_key] = _MODEL_CLASSES[method](key)
    return _tariff_models[cache_key]


@register_cache_clear_hook
def clear_tariff_cache() -> None:
    """Drop cached tariff rows. Runs on every configuration directory swap."""
    _tariff_models.clear()


@dataclass(frozen=True)
class VolumeResult:
    """Container for a single stem volume computation."""

    volume_m3: Optional[float]
    method: TarifMethod
    numero: Optional[int] = None
    height_m: Optional[float] = None
    table_key: Optional[str] = None

    def is_valid(self) -> bool:
        """Check if a volume could be computed."""
        return self.volume_m3 is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for easy access."""
        return {
            'volume_m3': self.volume_m3,
            'method': self.method.value,
            'numero': self.numero,
            'height_m': self.height_m,
            'table_key': self.table_key,
        }


class VolumeCalculator:
    """Calculate stem volumes under a tariff selection.

    Two-entry methods need a height: the stem's own measurement, or a height
    resolved by the caller and passed explicitly. Without one the result
    carries no volume.
    """

    def __init__(self, selection: Optional[TarifSelection] = None):
        self.selection = selection if selection is not None else TarifSelection.default()

    def calculate_volume(self, stem: 'Stem', height_m: Optional[float] = None) -> VolumeResult:
        """Calculate the volume of one stem.

        Args:
            stem: Stem to measure
            height_m: Resolved height; defaults to the stem's measured height

        Returns:
            VolumeResult, with volume_m3 None when a needed height is absent

        Raises:
            InvalidParameterError: If the diameter is not positive or the
                height is not positive
            TariffError: If the tariff table has no usable row
        """
        validate_positive(stem.diameter_cm, 'diameter_cm')
        method = self.selection.method_for(stem.species_code)
        numero = self.selection.numero_for(stem.species_code)
        height = height_m if height_m is not None else stem.height_m

        if method.inputs == 2:
            if height is None:
                return VolumeResult(None, method, numero)
            if height <= 0:
                raise InvalidParameterError('height_m', height, "must be positive")

        model = get_tariff_model(method, stem.species_code, numero)
        if isinstance(model, FormFactorTariff) and stem.form_coefficient:
            volume = model.volume(stem.diameter_cm, height, form_factor=stem.form_coefficient)
        else:
            volume = model.volume(stem.diameter_cm, height)
        return VolumeResult(volume, method, numero, height, model.resolved_key)


def volume_for_stem(stem: 'Stem', tariff_selection: Optional[TarifSelection] = None,
                    height_m: Optional[float] = None) -> Optional[float]:
    """Volume of one stem in m3 under a tariff selection.

    Convenience function around VolumeCalculator.

    Args:
        stem: Stem to measure
        tariff_selection: Active selection (configured default when None)
        height_m: Resolved height for stems without a measurement

    Returns:
        Volume in m3, or None when a two-entry method has no height
    """
    return VolumeCalculator(tariff_selection).calculate_volume(stem, height_m).volume_m3


def calculate_tree_volume(
    diameter_cm: float,
    height_m: Optional[float] = None,
    species_code: str = "HETRE_COMMUN",
    method: TarifMethod = TarifMethod.ALGAN,
    numero: Optional[int] = None,
) -> Optional[float]:
    """Volume from raw measurements, without building a Stem.

    Args:
        diameter_cm: Diameter at breast height (cm)
        height_m: Total height (m)
        species_code: Species code
        method: Tariff method
        numero: Table numero for numbered methods (recommended one when None)

    Returns:
        Volume in m3, or None when a two-entry method has no height
    """
    from .stem import Stem

    method = TarifMethod.from_string(method)
    if method.numero_range is not None and numero is None:
        selection = TarifSelection.recommended(method, species_code)
    else:
        selection = TarifSelection(method, numero)
    stem = Stem(id='-', parcel_id='-', species_code=species_code,
                diameter_cm=diameter_cm, height_m=height_m)
    return volume_for_stem(stem, selection)


def get_volume_library_info() -> Dict[str, Any]:
    """Get information about the volume library.

    Returns:
        Dictionary with library information
    """
    return {
        'name': 'pymartelage cubage tariffs',
        'description': 'French standing-stem cubage tariffs',
        'references': [
            'Schaeffer (1949) - Tarifs de cubage à une et deux entrées',
            'Algan (1958); Pardé & Bouchon (1988) - Dendrométrie',
            'Inventaire Forestier National - tarifs rapides et lents',
        ],
        'methods': {
            m.value: {
                'label': m.label,
                'inputs': m.inputs,
                'numeros': (m.numero_range.start, m.numero_range.stop - 1) if m.numero_range else None,
            }
            for m in TarifMethod
        },
        'equations': {
            'SCHAEFFER_1E': 'V = a + b × C²',
            'SCHAEFFER_2E': 'V = a + b × C² × H',
            'ALGAN': 'V = a × D^b × H^c',
            'IFN_RAPIDE': 'V = (a0 + a1 × D + a2 × D²) / 1000',
            'IFN_LENT': 'V = (a0 + a1 × D² + a2 × D² × H) / 1000',
            'COEF_FORME': 'V = G × H × f',
        },
    }


def validate_volume_library() -> Dict[str, Any]:
    """Validate the volume library against its own tables.

    Returns:
        Dictionary with validation results
    """
    test_cases = [
        {'diameter_cm': 30.0, 'height_m': 25.0, 'species': 'HETRE_COMMUN', 'method': TarifMethod.ALGAN},
        {'diameter_cm': 30.0, 'height_m': None, 'species': 'CH_SESSILE', 'method': TarifMethod.SCHAEFFER_1E},
        {'diameter_cm': 40.0, 'height_m': None, 'species': 'DOUGLAS_VERT', 'method': TarifMethod.IFN_RAPIDE},
        {'diameter_cm': 35.0, 'height_m': 28.0, 'species': 'EPICEA_COMMUN', 'method': TarifMethod.IFN_LENT},
        {'diameter_cm': 25.0, 'height_m': 20.0, 'species': 'PIN_SYLVESTRE', 'method': TarifMethod.COEF_FORME},
    ]

    results = []
    for case in test_cases:
        volume = calculate_tree_volume(
            case['diameter_cm'],
            case['height_m'],
            case['species'],
            case['method'],
        )
        results.append({
            'input': case,
            'volume_m3': volume,
            'valid': volume is not None and volume > 0.0,
        })

    return {
        'status': 'ok',
        'test_results': results,
        'all_valid': all(r['valid'] for r in results),
    }
