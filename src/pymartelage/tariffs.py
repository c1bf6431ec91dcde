"""
Tariff method enumeration and tariff selection model.

A tariff ("tarif de cubage") converts a stem diameter, and for two-entry
methods its height, into a stem volume. Schaeffer and IFN tariffs come as
numbered tables; the numero picks the table row that matches the local
stand shape.

Usage:
    from pymartelage.tariffs import TarifMethod, TarifSelection

    selection = TarifSelection(TarifMethod.SCHAEFFER_1E, numero=8)
    selection.method_for('HETRE_COMMUN')   # TarifMethod.SCHAEFFER_1E
"""
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from .config_loader import load_coefficient_file, load_engine_defaults
from .exceptions import InvalidParameterError, InvalidTariffSelectionError
from .utils import normalize_code, normalize_species_code

__all__ = [
    'TarifMethod',
    'TarifSelection',
    'available_tarif_numbers',
    'recommended_tarif_numero',
    'requires_height',
    'DEFAULT_TARIF_METHOD',
]


class TarifMethod(str, Enum):
    """Cubage methods supported by the engine.

    Inherits from (str, Enum) so members compare equal to their stored code.
    """

    SCHAEFFER_1E = "SCHAEFFER_1E"
    """Schaeffer one-entry tariff, V = a + b*C^2 (numero 1-16)."""

    SCHAEFFER_2E = "SCHAEFFER_2E"
    """Schaeffer two-entry tariff, V = a + b*C^2*H (numero 1-8)."""

    ALGAN = "ALGAN"
    """Algan species tariff, V = a*D^b*H^c."""

    IFN_RAPIDE = "IFN_RAPIDE"
    """IFN fast (one-entry) tariff (numero 1-36)."""

    IFN_LENT = "IFN_LENT"
    """IFN slow (two-entry) tariff (numero 1-8)."""

    COEF_FORME = "COEF_FORME"
    """Form factor method, V = G*H*f."""

    @property
    def inputs(self) -> int:
        """Number of required inputs: 1 = diameter only, 2 = diameter + height."""
        return _METHOD_INPUTS[self]

    @property
    def numero_range(self) -> Optional[range]:
        """Valid tariff numeros, or None for methods without numbered tables."""
        return _NUMERO_RANGES.get(self)

    @property
    def label(self) -> str:
        return _METHOD_LABELS[self]

    @classmethod
    def from_string(cls, code: str) -> "TarifMethod":
        """Convert a stored method code to a TarifMethod.

        Args:
            code: Method code, case and whitespace insensitive

        Returns:
            TarifMethod member

        Raises:
            InvalidParameterError: If the code is unknown
        """
        if isinstance(code, cls):
            return code
        normalized = normalize_code(code)
        try:
            return cls(normalized)
        except ValueError:
            raise InvalidParameterError(
                'method', code, f"valid methods: {[m.value for m in cls]}"
            ) from None

    def __str__(self) -> str:
        return self.value


_METHOD_INPUTS: Dict[TarifMethod, int] = {
    TarifMethod.SCHAEFFER_1E: 1,
    TarifMethod.SCHAEFFER_2E: 2,
    TarifMethod.ALGAN: 2,
    TarifMethod.IFN_RAPIDE: 1,
    TarifMethod.IFN_LENT: 2,
    TarifMethod.COEF_FORME: 2,
}

_NUMERO_RANGES: Dict[TarifMethod, range] = {
    TarifMethod.SCHAEFFER_1E: range(1, 17),
    TarifMethod.SCHAEFFER_2E: range(1, 9),
    TarifMethod.IFN_RAPIDE: range(1, 37),
    TarifMethod.IFN_LENT: range(1, 9),
}

_METHOD_LABELS: Dict[TarifMethod, str] = {
    TarifMethod.SCHAEFFER_1E: "Schaeffer 1 entrée",
    TarifMethod.SCHAEFFER_2E: "Schaeffer 2 entrées",
    TarifMethod.ALGAN: "Algan",
    TarifMethod.IFN_RAPIDE: "Tarif rapide IFN",
    TarifMethod.IFN_LENT: "Tarif lent IFN",
    TarifMethod.COEF_FORME: "Coefficient de forme",
}

DEFAULT_TARIF_METHOD = TarifMethod.ALGAN


def available_tarif_numbers(method: TarifMethod) -> Optional[range]:
    """Get the valid numero range for a method.

    Args:
        method: Tariff method (member or code)

    Returns:
        range of valid numeros, or None when the method takes no numero
    """
    return TarifMethod.from_string(method).numero_range


def requires_height(method: TarifMethod) -> bool:
    """Whether the method needs a height in addition to the diameter."""
    return TarifMethod.from_string(method).inputs == 2


def _ifn_recommendations(table: str) -> Dict[str, int]:
    data = load_coefficient_file('ifn_coefficients.json')
    return data.get(table, {}).get('recommended_numero', {})


def recommended_tarif_numero(method: TarifMethod, species_code: str) -> Optional[int]:
    """Recommended numero for a species under a numbered tariff.

    Schaeffer tariffs default to the middle of their range (8 and 4). IFN
    tariffs use the per-species recommendation table; unknown species get
    the table mean for the fast tariff and 4 for the slow one.

    Args:
        method: Tariff method
        species_code: Species code

    Returns:
        Recommended numero, or None for methods without numbered tables
    """
    method = TarifMethod.from_string(method)
    code = normalize_species_code(species_code)

    if method == TarifMethod.SCHAEFFER_1E:
        return 8
    if method == TarifMethod.SCHAEFFER_2E:
        return 4
    if method == TarifMethod.IFN_RAPIDE:
        table = _ifn_recommendations('rapide')
        if code in table:
            return int(table[code])
        return sum(table.values()) // len(table) if table else 18
    if method == TarifMethod.IFN_LENT:
        return int(_ifn_recommendations('lent').get(code, 4))
    return None


def _validate_numero(method: TarifMethod, numero: Optional[int]) -> None:
    valid = method.numero_range
    if valid is None:
        if numero is not None:
            raise InvalidTariffSelectionError(method.value, numero, "method takes no tariff numero")
        return
    if numero is None:
        raise InvalidTariffSelectionError(
            method.value, numero, f"a numero in {valid.start}-{valid.stop - 1} is required"
        )
    if isinstance(numero, bool) or not isinstance(numero, int) or numero not in valid:
        raise InvalidTariffSelectionError(
            method.value, numero, f"must be between {valid.start} and {valid.stop - 1}"
        )


@dataclass(frozen=True)
class TarifSelection:
    """The active cubage method, its numero and per-species method overrides.

    Attributes:
        method: Tariff method applied to every species without an override
        numero: Table numero, required for numbered methods
        species_overrides: Species code -> method. Numbered override methods
            use the recommended numero for that species.
    """

    method: TarifMethod = DEFAULT_TARIF_METHOD
    numero: Optional[int] = None
    species_overrides: Mapping[str, TarifMethod] = field(default_factory=dict)

    def __post_init__(self):
        method = TarifMethod.from_string(self.method)
        _validate_numero(method, self.numero)
        overrides = {
            normalize_species_code(code): TarifMethod.from_string(m)
            for code, m in dict(self.species_overrides).items()
        }
        object.__setattr__(self, 'method', method)
        object.__setattr__(self, 'species_overrides', MappingProxyType(overrides))

    def __hash__(self) -> int:
        return hash((self.method, self.numero, tuple(sorted(self.species_overrides.items()))))

    @classmethod
    def default(cls) -> "TarifSelection":
        """Selection configured as default_tarif_method in engine_defaults.yaml."""
        method = load_engine_defaults().get('default_tarif_method') or DEFAULT_TARIF_METHOD
        return cls.recommended(method)

    @classmethod
    def recommended(cls, method: TarifMethod, species_code: str = '') -> "TarifSelection":
        """Build a selection using the recommended numero for a species."""
        method = TarifMethod.from_string(method)
        return cls(method, recommended_tarif_numero(method, species_code))

    def method_for(self, species_code: str) -> TarifMethod:
        """Method applied to a species, honouring overrides."""
        return self.species_overrides.get(normalize_species_code(species_code), self.method)

    def numero_for(self, species_code: str) -> Optional[int]:
        """Numero applied to a species under its resolved method."""
        method = self.method_for(species_code)
        if method == self.method:
            return self.numero
        return recommended_tarif_numero(method, species_code)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for an external selection store."""
        return {
            'method': self.method.value,
            'numero': self.numero,
            'species_overrides': {k: v.value for k, v in self.species_overrides.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TarifSelection":
        """Rebuild a selection loaded from an external store (validated)."""
        return cls(
            method=data.get('method', DEFAULT_TARIF_METHOD),
            numero=data.get('numero'),
            species_overrides=data.get('species_overrides') or {},
        )
