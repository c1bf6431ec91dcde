"""
Product classification and timber price lookup.

A stem's product (BO sawlog, BI industry wood, BCh firewood, PATE pulpwood)
is its field-assigned code when present, otherwise the first matching
ProductRule, otherwise a quality/defect/diameter heuristic whose thresholds
live in engine_defaults.yaml.

Prices are looked up in a PriceTable (EUR per m3) by species, product and
diameter class, with wildcard fallbacks.
"""
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence, Tuple

from .config_loader import load_engine_defaults
from .exceptions import InvalidDataError
from .utils import normalize_code, species_code_candidates

__all__ = [
    'BO', 'BI', 'BCH', 'PATE',
    'WILDCARD',
    'PriceEntry',
    'PriceTable',
    'ProductRule',
    'classify_product',
    'fallback_product',
]

BO = "BO"
BI = "BI"
BCH = "BCh"
PATE = "PATE"
WILDCARD = "*"

# Built-in thresholds when engine_defaults.yaml has no product_fallback section
_FALLBACK_THRESHOLDS = {
    'pulp_min_quality': 3,
    'firewood_min_quality': 2,
    'firewood_quality_min_class': 20,
    'defect_firewood_min_class': 20,
    'sawlog_min_class': 35,
    'industry_min_class': 20,
    'firewood_min_class': 7,
}


def _is_wildcard(code: Optional[str]) -> bool:
    return code is None or code.strip() in ('', WILDCARD)


def _same_code(a: str, b: str) -> bool:
    return normalize_code(a) == normalize_code(b)


@dataclass(frozen=True)
class PriceEntry:
    """Price in EUR/m3 for a species and product over a class range.

    ``species`` and ``product`` accept '*' as a wildcard.
    """

    species: str
    product: str
    min_class: int
    max_class: int
    eur_per_m3: float

    def covers(self, diam_class: int) -> bool:
        return self.min_class <= diam_class <= self.max_class

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PriceEntry":
        """Build from a stored record (essence/species, product, min, max, eurPerM3)."""
        try:
            return cls(
                species=str(data.get('species', data.get('essence'))).strip(),
                product=str(data['product']).strip(),
                min_class=int(data.get('min_class', data.get('min'))),
                max_class=int(data.get('max_class', data.get('max'))),
                eur_per_m3=float(data.get('eur_per_m3', data.get('eurPerM3'))),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise InvalidDataError("price entry", f"{dict(data)}: {e}") from e


class PriceTable:
    """Ordered price entries; the first matching entry at each level wins."""

    def __init__(self, entries: Iterable[PriceEntry] = ()):
        self.entries: Tuple[PriceEntry, ...] = tuple(entries)

    @classmethod
    def from_records(cls, records: Iterable[Mapping[str, Any]]) -> "PriceTable":
        return cls(PriceEntry.from_dict(r) for r in records)

    def __len__(self) -> int:
        return len(self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)

    def _first(self, diam_class: int, species_match, product_match) -> Optional[float]:
        for entry in self.entries:
            if entry.covers(diam_class) and species_match(entry.species) and product_match(entry.product):
                return entry.eur_per_m3
        return None

    def price_for(self, species_code: str, product: str, diam_class: int) -> Optional[float]:
        """Price (EUR/m3) for a species, product and diameter class.

        Lookup order, each restricted to entries covering the class:
        for each species alias candidate, exact species and product, then
        species with product '*'; then '*' species with the product; then
        '*' for both.

        Returns:
            Price per m3, or None when nothing matches
        """
        product = product.strip()
        for candidate in species_code_candidates(species_code):
            exact = self._first(
                diam_class,
                lambda s, c=candidate: _same_code(s, c),
                lambda p: _same_code(p, product),
            )
            if exact is not None:
                return exact
            any_product = self._first(
                diam_class,
                lambda s, c=candidate: _same_code(s, c),
                lambda p: p.strip() == WILDCARD,
            )
            if any_product is not None:
                return any_product

        any_species = self._first(
            diam_class,
            lambda s: s.strip() == WILDCARD,
            lambda p: _same_code(p, product),
        )
        if any_species is not None:
            return any_species
        return self._first(
            diam_class,
            lambda s: s.strip() == WILDCARD,
            lambda p: p.strip() == WILDCARD,
        )


@dataclass(frozen=True)
class ProductRule:
    """Product assignment rule. None bounds and a '*' or None species match anything.

    Attributes:
        product: Product code assigned when the rule matches
        species: Species code or wildcard
        min_class, max_class: Inclusive diameter class bounds
        min_quality, max_quality: Inclusive quality index bounds; a bound
            never matches an ungraded stem
        requires_defect: Defect tag the stem must carry
        excludes_defect: Defect tag the stem must not carry
    """

    product: str
    species: Optional[str] = None
    min_class: Optional[int] = None
    max_class: Optional[int] = None
    min_quality: Optional[int] = None
    max_quality: Optional[int] = None
    requires_defect: Optional[str] = None
    excludes_defect: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ProductRule":
        if 'product' not in data:
            raise InvalidDataError("product rule", f"missing 'product' in {dict(data)}")

        def opt_int(*keys):
            for key in keys:
                if data.get(key) is not None:
                    return int(data[key])
            return None

        return cls(
            product=str(data['product']).strip(),
            species=data.get('species', data.get('essence')),
            min_class=opt_int('min_class', 'min'),
            max_class=opt_int('max_class', 'max'),
            min_quality=opt_int('min_quality', 'minQuality'),
            max_quality=opt_int('max_quality', 'maxQuality'),
            requires_defect=data.get('requires_defect', data.get('requiresDefect')),
            excludes_defect=data.get('excludes_defect', data.get('excludesDefect')),
        )

    def matches(self, species_code: str, diam_class: int,
                quality: Optional[int] = None, defects: Sequence[str] = ()) -> bool:
        if not _is_wildcard(self.species):
            if not any(_same_code(self.species, c) for c in species_code_candidates(species_code)):
                return False
        if self.min_class is not None and diam_class < self.min_class:
            return False
        if self.max_class is not None and diam_class > self.max_class:
            return False
        if self.min_quality is not None and (quality is None or quality < self.min_quality):
            return False
        if self.max_quality is not None and (quality is None or quality > self.max_quality):
            return False
        tags = {normalize_code(d) for d in defects}
        if self.requires_defect and self.requires_defect.strip():
            if normalize_code(self.requires_defect) not in tags:
                return False
        if self.excludes_defect and self.excludes_defect.strip():
            if normalize_code(self.excludes_defect) in tags:
                return False
        return True


def _thresholds() -> Dict[str, int]:
    configured = load_engine_defaults().get('product_fallback') or {}
    return {**_FALLBACK_THRESHOLDS, **configured}


def fallback_product(diam_class: int, quality: Optional[int] = None,
                     defects: Sequence[str] = ()) -> str:
    """Heuristic product when no rule matches."""
    t = _thresholds()
    if quality is not None:
        if quality >= t['pulp_min_quality']:
            return PATE
        if quality >= t['firewood_min_quality'] and diam_class >= t['firewood_quality_min_class']:
            return BCH
    if any(d.strip() for d in defects) and diam_class >= t['defect_firewood_min_class']:
        return BCH
    if diam_class >= t['sawlog_min_class']:
        return BO
    if diam_class >= t['industry_min_class']:
        return BI
    if diam_class >= t['firewood_min_class']:
        return BCH
    return PATE


def classify_product(species_code: str, diam_class: int,
                     rules: Iterable[ProductRule] = (),
                     quality: Optional[int] = None,
                     defects: Sequence[str] = ()) -> str:
    """Product for a stem: first matching rule, else the heuristic.

    Args:
        species_code: Species code
        diam_class: Diameter class lower bound
        rules: Ordered product rules
        quality: Quality index (0 = A .. 3 = D), None when ungraded
        defects: Defect tags

    Returns:
        Product code
    """
    defects = tuple(defects or ())
    for rule in rules:
        if rule.matches(species_code, diam_class, quality, defects):
            return rule.product.strip()
    return fallback_product(diam_class, quality, defects)
