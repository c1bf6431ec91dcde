"""
Species ("essence") metadata and catalog.

The species catalog is an immutable snapshot of the species store, indexed by
normalized code. It is only used for display names and metadata; an unknown
species code is still valid input and is displayed by its code.

Usage:
    from pymartelage.species import SpeciesCatalog

    catalog = SpeciesCatalog.default()
    catalog.name_for('hetre_commun')   # "Hêtre commun"
    catalog.is_valid('XX')             # False
"""
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Dict, Iterable, Iterator, Mapping, Optional

from .config_loader import get_config_loader, register_cache_clear_hook
from .exceptions import InvalidDataError, SpeciesNotFoundError
from .utils import normalize_species_code

__all__ = [
    'Essence',
    'SpeciesCatalog',
    'get_default_catalog',
    'clear_default_catalog',
]


@dataclass(frozen=True)
class Essence:
    """A tree species.

    Attributes:
        code: Unique species code
        name: Display name
        color_hex: Optional display color (e.g. '#2E7D32')
        category: Silvicultural category (Feuillu, Résineux, Conifère)
        density: Wood density in kg/m3
    """

    code: str
    name: str
    color_hex: Optional[str] = None
    category: Optional[str] = None
    density: Optional[float] = None

    @property
    def key(self) -> str:
        return normalize_species_code(self.code)

    @property
    def is_conifer(self) -> bool:
        """True for resinous and conifer categories."""
        if not self.category:
            return False
        category = self.category.strip().lower()
        return category.startswith(('résineux', 'resineux', 'conifère', 'conifere'))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Essence":
        try:
            code = str(data['code'])
        except KeyError:
            raise InvalidDataError("species entry", f"missing 'code' in {dict(data)}") from None
        density = data.get('density')
        return cls(
            code=code,
            name=str(data.get('name') or code),
            color_hex=data.get('color_hex'),
            category=data.get('category'),
            density=float(density) if density is not None else None,
        )


class SpeciesCatalog:
    """Immutable index of species by normalized code."""

    def __init__(self, essences: Iterable[Essence] = ()):
        index: Dict[str, Essence] = {}
        for essence in essences:
            index[essence.key] = essence
        self._index = MappingProxyType(index)

    @classmethod
    def default(cls) -> "SpeciesCatalog":
        """Catalog built from the packaged species_catalog.yaml."""
        data = get_config_loader().load_species_catalog_data()
        return cls(Essence.from_dict(entry) for entry in data['species'])

    def __contains__(self, code: object) -> bool:
        return isinstance(code, str) and normalize_species_code(code) in self._index

    def __iter__(self) -> Iterator[Essence]:
        return iter(self._index.values())

    def __len__(self) -> int:
        return len(self._index)

    def get(self, code: str) -> Optional[Essence]:
        return self._index.get(normalize_species_code(code))

    def require(self, code: str) -> Essence:
        """Get a species, raising when it is not in the catalog.

        Raises:
            SpeciesNotFoundError: If the code is unknown
        """
        essence = self.get(code)
        if essence is None:
            raise SpeciesNotFoundError(code)
        return essence

    def is_valid(self, code: str) -> bool:
        return code in self

    def name_for(self, code: str) -> str:
        """Display name for a code, falling back to the normalized code."""
        essence = self.get(code)
        return essence.name if essence is not None else normalize_species_code(code)

    def codes(self) -> list[str]:
        return sorted(self._index)

    def __repr__(self) -> str:
        return f"SpeciesCatalog({len(self)} species)"


_default_catalog: Optional[SpeciesCatalog] = None


def get_default_catalog() -> SpeciesCatalog:
    """Get the cached packaged species catalog."""
    global _default_catalog
    if _default_catalog is None:
        _default_catalog = SpeciesCatalog.default()
    return _default_catalog


@register_cache_clear_hook
def clear_default_catalog() -> None:
    """Forget the cached catalog so the next call reloads it."""
    global _default_catalog
    _default_catalog = None
