"""
Height resolution for stems without a measured height.

Two-entry tariffs need a height for every stem. A stem's own measurement is
always used. For the others the resolver walks a fixed priority chain for the
stem's (species, diameter class) and stops at the first hit:

1. manual override from the effective override map
2. FIXED height mode with a positive value
3. mean of the measured heights in the same (species, class)
4. species height curve, only when heights are not strictly required

Anything left is unresolved and reported as missing.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, TYPE_CHECKING

from .exceptions import InvalidDataError
from .height_overrides import HeightOverrideMap
from .utils import normalize_code, normalize_species_code, species_code_candidates

if TYPE_CHECKING:
    from .stem import Stem

__all__ = [
    'HeightMode',
    'HeightModeEntry',
    'HeightSource',
    'HeightResolution',
    'HeightRange',
    'HeightCurve',
    'HeightResolver',
]

WILDCARD = '*'


class HeightMode(str, Enum):
    """Configured height mode for a (species, class) pair."""

    DEFAULT = "DEFAULT"
    FIXED = "FIXED"
    SAMPLES = "SAMPLES"

    @classmethod
    def from_string(cls, value: Optional[str]) -> "HeightMode":
        """Parse a stored mode; blank or unknown values mean DEFAULT."""
        if isinstance(value, cls):
            return value
        try:
            return cls(normalize_code(value))
        except ValueError:
            return cls.DEFAULT


@dataclass(frozen=True)
class HeightModeEntry:
    """Height mode for one (species, diameter class).

    Attributes:
        species: Species code
        diam_class: Diameter class lower bound
        mode: DEFAULT, FIXED or SAMPLES
        fixed: Height (m) used by FIXED mode
    """

    species: str
    diam_class: int
    mode: HeightMode = HeightMode.DEFAULT
    fixed: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, 'species', normalize_species_code(self.species))
        object.__setattr__(self, 'diam_class', int(self.diam_class))
        object.__setattr__(self, 'mode', HeightMode.from_string(self.mode))

    @property
    def fixed_height(self) -> Optional[float]:
        """The fixed height when the entry is a usable FIXED mode."""
        if self.mode is HeightMode.FIXED and self.fixed is not None and self.fixed > 0:
            return float(self.fixed)
        return None


class HeightSource(str, Enum):
    """Where a stem's effective height came from."""

    MEASURED = "MEASURED"
    MANUAL = "MANUAL"
    FIXED = "FIXED"
    SAMPLES = "SAMPLES"
    CURVE = "CURVE"
    UNRESOLVED = "UNRESOLVED"


@dataclass(frozen=True)
class HeightResolution:
    height_m: Optional[float]
    source: HeightSource

    @property
    def is_resolved(self) -> bool:
        return self.height_m is not None


UNRESOLVED = HeightResolution(None, HeightSource.UNRESOLVED)


@dataclass(frozen=True)
class HeightRange:
    """Default height for a species over a diameter range (cm, inclusive)."""

    species: str
    min_cm: int
    max_cm: int
    height_m: float

    def __post_init__(self):
        species = self.species.strip()
        object.__setattr__(self, 'species', WILDCARD if species == WILDCARD else normalize_species_code(species))
        if not self.height_m > 0:
            raise InvalidDataError("height range", f"{self.species}: height must be positive")

    @property
    def midpoint(self) -> float:
        return (self.min_cm + self.max_cm) / 2.0

    def contains(self, diameter_cm: float) -> bool:
        return self.min_cm <= int(diameter_cm) <= self.max_cm


class HeightCurve:
    """Height-diameter curve built from default height ranges.

    A diameter inside a range takes that range's height. Otherwise heights
    are interpolated linearly between range midpoints and clamped at the
    ends. Species ranges are searched through alias candidates, then the
    wildcard '*' ranges.
    """

    def __init__(self, ranges: Iterable[HeightRange] = ()):
        by_species: Dict[str, List[HeightRange]] = {}
        for r in ranges:
            by_species.setdefault(r.species, []).append(r)
        self._ranges: Dict[str, Tuple[HeightRange, ...]] = {k: tuple(v) for k, v in by_species.items()}

    @classmethod
    def from_records(cls, records: Iterable[Mapping]) -> "HeightCurve":
        """Build from stored dicts with keys species (or essence), min, max, h."""
        return cls(
            HeightRange(
                species=str(rec.get('species', rec.get('essence', WILDCARD))),
                min_cm=int(rec['min']),
                max_cm=int(rec['max']),
                height_m=float(rec['h']),
            )
            for rec in records
        )

    def __bool__(self) -> bool:
        return bool(self._ranges)

    def _ranges_for(self, species_code: str) -> Sequence[HeightRange]:
        for candidate in species_code_candidates(species_code):
            if candidate in self._ranges:
                return self._ranges[candidate]
        return ()

    @staticmethod
    def _interpolate(ranges: Sequence[HeightRange], diameter_cm: float) -> Optional[float]:
        if not ranges:
            return None
        points: Dict[float, float] = {}
        for r in ranges:
            points.setdefault(r.midpoint, r.height_m)
        xs = sorted(points)
        if len(xs) == 1 or diameter_cm <= xs[0]:
            return points[xs[0]]
        if diameter_cm >= xs[-1]:
            return points[xs[-1]]
        for x1, x2 in zip(xs, xs[1:]):
            if x1 <= diameter_cm <= x2:
                y1, y2 = points[x1], points[x2]
                return y1 + (y2 - y1) * (diameter_cm - x1) / (x2 - x1)
        return None

    @classmethod
    def _lookup(cls, ranges: Sequence[HeightRange], diameter_cm: float) -> Optional[float]:
        for r in ranges:
            if r.contains(diameter_cm):
                return r.height_m
        return cls._interpolate(ranges, diameter_cm)

    def height_for(self, species_code: str, diameter_cm: float) -> Optional[float]:
        """Curve height for a species at a diameter, None without ranges."""
        height = self._lookup(self._ranges_for(species_code), diameter_cm)
        if height is not None:
            return height
        return self._lookup(self._ranges.get(WILDCARD, ()), diameter_cm)


class HeightResolver:
    """Resolve effective heights for one computation pass.

    Attributes:
        manual_heights: Effective (already merged) override map
        height_modes: (species, class) -> HeightModeEntry
        height_curve: Optional height-diameter curve
        require_heights: When True the curve is never consulted
    """

    def __init__(
        self,
        manual_heights: Optional[HeightOverrideMap] = None,
        height_modes: Iterable[HeightModeEntry] = (),
        height_curve: Optional[HeightCurve] = None,
        require_heights: bool = True,
    ):
        if manual_heights is None or not isinstance(manual_heights, HeightOverrideMap):
            manual_heights = HeightOverrideMap(manual_heights)
        self.manual_heights = manual_heights
        self.height_modes: Dict[Tuple[str, int], HeightModeEntry] = {
            (entry.species, entry.diam_class): entry for entry in height_modes
        }
        self.height_curve = height_curve
        self.require_heights = require_heights

    def mode_for(self, species_code: str, diam_class: int) -> Optional[HeightModeEntry]:
        return self.height_modes.get((normalize_species_code(species_code), diam_class))

    def resolve_class(self, species_code: str, diam_class: int,
                      class_stems: Iterable['Stem']) -> HeightResolution:
        """Height for stems of a class that have no measurement.

        Args:
            species_code: Species code
            diam_class: Diameter class lower bound
            class_stems: All stems of this species in the class

        Returns:
            HeightResolution, UNRESOLVED when nothing applies
        """
        manual = self.manual_heights.height_for(species_code, diam_class)
        if manual is not None:
            return HeightResolution(manual, HeightSource.MANUAL)

        entry = self.mode_for(species_code, diam_class)
        if entry is not None and entry.fixed_height is not None:
            return HeightResolution(entry.fixed_height, HeightSource.FIXED)

        measured = [s.height_m for s in class_stems if s.height_m is not None]
        if measured:
            return HeightResolution(sum(measured) / len(measured), HeightSource.SAMPLES)

        if not self.require_heights and self.height_curve:
            height = self.height_curve.height_for(species_code, float(diam_class))
            if height is not None:
                return HeightResolution(height, HeightSource.CURVE)

        return UNRESOLVED

    def resolve(self, stem: 'Stem', diam_class: int,
                class_stems: Iterable['Stem']) -> HeightResolution:
        """Effective height for one stem; a measurement always wins."""
        if stem.height_m is not None:
            return HeightResolution(stem.height_m, HeightSource.MEASURED)
        return self.resolve_class(stem.species_code, diam_class, class_stems)
