"""
Stem ("tige") record: one tree measured during a marking round.

Stems are immutable snapshots handed to the engine by the stem store. The
engine never mutates them; derived values (class, resolved height, volume)
live in the synthesis results.
"""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Tuple

from .quality import WoodQualityGrade
from .utils import normalize_code, normalize_species_code

__all__ = [
    'Stem',
    'StemCategory',
    'SPECIAL_CATEGORIES',
]


class StemCategory(str, Enum):
    """Special-tree markers. Marked stems are kept out of class counts."""

    DEPERISSANT = "DEPERISSANT"
    """Dying tree."""

    ARBRE_BIO = "ARBRE_BIO"
    """Tree kept for biodiversity (habitat tree)."""

    MORT = "MORT"
    """Standing dead tree."""

    PARASITE = "PARASITE"
    """Parasitized tree."""

    @classmethod
    def from_string(cls, value: Optional[str]) -> Optional["StemCategory"]:
        """Parse a stored category; unknown or empty values give None."""
        if isinstance(value, cls):
            return value
        code = normalize_code(value)
        try:
            return cls(code)
        except ValueError:
            return None


SPECIAL_CATEGORIES = frozenset(StemCategory)


@dataclass(frozen=True)
class Stem:
    """A single recorded stem.

    Attributes:
        id: Stem identifier
        parcel_id: Parcel the stem belongs to
        species_code: Species code as entered
        diameter_cm: Diameter at breast height (cm)
        plot_id: Optional plot identifier
        height_m: Measured total height (m), None when not measured
        gps_wkt: Position as a WKT point
        precision_m: GPS precision (m)
        altitude_m: Altitude (m)
        timestamp: Creation instant
        note: Free text note
        product: Assigned product code (BO, BI, BCh, PATE...)
        form_coefficient: Stem specific form factor for the form factor method
        value_eur: Monetary value entered in the field
        number: Sequence number painted on the tree
        category: Special-tree marker (see StemCategory)
        quality: Quality grade index, 0 = A .. 3 = D
        defects: Defect tags
        photo_uri: Photo reference
    """

    id: str
    parcel_id: str
    species_code: str
    diameter_cm: float
    plot_id: Optional[str] = None
    height_m: Optional[float] = None
    gps_wkt: Optional[str] = None
    precision_m: Optional[float] = None
    altitude_m: Optional[float] = None
    timestamp: Optional[datetime] = None
    note: Optional[str] = None
    product: Optional[str] = None
    form_coefficient: Optional[float] = None
    value_eur: Optional[float] = None
    number: Optional[int] = None
    category: Optional[str] = None
    quality: Optional[int] = None
    defects: Tuple[str, ...] = field(default_factory=tuple)
    photo_uri: Optional[str] = None

    def __post_init__(self):
        if self.defects is None:
            object.__setattr__(self, 'defects', ())
        elif not isinstance(self.defects, tuple):
            object.__setattr__(self, 'defects', tuple(self.defects))

    @property
    def species_key(self) -> str:
        """Normalized species code."""
        return normalize_species_code(self.species_code)

    @property
    def has_height(self) -> bool:
        return self.height_m is not None

    @property
    def special_category(self) -> Optional[StemCategory]:
        return StemCategory.from_string(self.category)

    @property
    def is_special(self) -> bool:
        """True for dying, habitat, dead or parasitized stems."""
        return self.special_category is not None

    @property
    def quality_grade(self) -> Optional[WoodQualityGrade]:
        return WoodQualityGrade.from_index(self.quality)

    @property
    def assigned_product(self) -> Optional[str]:
        """Field-assigned product code, None when blank."""
        if self.product is None:
            return None
        product = self.product.strip()
        return product or None
