"""
Manual height overrides and their configuration scopes.

Overrides give a height (m) for a (species, diameter class) pair. They can be
registered for the whole application (GLOBAL), a forest (FOREST) or a parcel
or plot (LOCAL). The effective map is a key-by-key merge where the most
specific scope wins, so a class defined only at forest level stays visible
under a parcel that overrides other classes.

Usage:
    from pymartelage.height_overrides import (
        HeightOverrideMap, Scope, ScopedHeightOverrides,
    )

    registry = (ScopedHeightOverrides()
                .with_scope(Scope.forest('F1'), {'HETRE': {20: 12.0, 25: 14.0}})
                .with_scope(Scope.local('P7'), {'hetre ': {20: 15.0}}))
    registry.effective('F1', 'P7').height_for('HETRE', 20)   # 15.0
    registry.effective('F1', 'P7').height_for('HETRE', 25)   # 14.0
"""
from dataclasses import dataclass
from enum import Enum
from numbers import Real
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, Mapping, Optional, Tuple, Union

from .exceptions import InvalidDataError, InvalidParameterError
from .utils import normalize_species_code

__all__ = [
    'ScopeKind',
    'Scope',
    'HeightOverrideMap',
    'merge_height_overrides',
    'ScopedHeightOverrides',
]


class ScopeKind(str, Enum):
    """Configuration scope, from broadest to most specific."""

    GLOBAL = "GLOBAL"
    FOREST = "FOREST"
    LOCAL = "LOCAL"
    """Parcel or plot."""

    @property
    def precedence(self) -> int:
        """Higher wins on merge."""
        return _PRECEDENCE[self]


_PRECEDENCE = {ScopeKind.GLOBAL: 0, ScopeKind.FOREST: 1, ScopeKind.LOCAL: 2}


@dataclass(frozen=True)
class Scope:
    """Typed scope identifier. GLOBAL carries no identifier."""

    kind: ScopeKind
    identifier: Optional[str] = None

    def __post_init__(self):
        kind = ScopeKind(self.kind)
        object.__setattr__(self, 'kind', kind)
        if kind is ScopeKind.GLOBAL:
            if self.identifier is not None:
                raise InvalidParameterError('identifier', self.identifier, "GLOBAL scope takes no identifier")
        elif not self.identifier:
            raise InvalidParameterError('identifier', self.identifier, f"{kind.value} scope needs an identifier")

    @classmethod
    def global_(cls) -> "Scope":
        return cls(ScopeKind.GLOBAL)

    @classmethod
    def forest(cls, forest_id: str) -> "Scope":
        return cls(ScopeKind.FOREST, forest_id)

    @classmethod
    def local(cls, local_id: str) -> "Scope":
        return cls(ScopeKind.LOCAL, local_id)

    def __str__(self) -> str:
        if self.identifier is None:
            return self.kind.value
        return f"{self.kind.value}:{self.identifier}"


def _validated_height(species: str, diam_class, height) -> float:
    if isinstance(height, bool) or not isinstance(height, Real):
        raise InvalidDataError(
            "height override", f"{species}/{diam_class}: height {height!r} is not a number"
        )
    height = float(height)
    if not height > 0:
        raise InvalidDataError(
            "height override", f"{species}/{diam_class}: height {height} must be positive"
        )
    return height


def _validated_class(species: str, diam_class) -> int:
    try:
        return int(diam_class)
    except (TypeError, ValueError):
        raise InvalidDataError(
            "height override", f"{species}: diameter class {diam_class!r} is not an integer"
        ) from None


RawOverrides = Mapping[str, Mapping[int, float]]


class HeightOverrideMap(Mapping):
    """Immutable species -> (diameter class -> height) map.

    Species keys are normalized on construction, so ' hetre' and 'HETRE'
    land on the same entry (the later one wins when both are given).

    Raises:
        InvalidDataError: On a non-numeric or non-positive height
    """

    def __init__(self, overrides: Optional[Union["HeightOverrideMap", RawOverrides]] = None):
        data: Dict[str, Dict[int, float]] = {}
        for species, classes in dict(overrides or {}).items():
            key = normalize_species_code(species)
            bucket = data.setdefault(key, {})
            for diam_class, height in dict(classes).items():
                bucket[_validated_class(key, diam_class)] = _validated_height(key, diam_class, height)
        self._data: Mapping[str, Mapping[int, float]] = MappingProxyType(
            {k: MappingProxyType(v) for k, v in data.items() if v}
        )

    def __getitem__(self, species: str) -> Mapping[int, float]:
        return self._data[normalize_species_code(species)]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, HeightOverrideMap):
            return self.to_dict() == other.to_dict()
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(sorted(self.items_flat())))

    def height_for(self, species: str, diam_class: int) -> Optional[float]:
        """Override height for (species, class), None when absent."""
        classes = self._data.get(normalize_species_code(species))
        if classes is None:
            return None
        return classes.get(int(diam_class))

    def items_flat(self) -> Iterable[Tuple[str, int, float]]:
        """(species, class, height) triples."""
        for species, classes in self._data.items():
            for diam_class, height in classes.items():
                yield species, diam_class, height

    def to_dict(self) -> Dict[str, Dict[int, float]]:
        return {species: dict(classes) for species, classes in self._data.items()}

    def __repr__(self) -> str:
        return f"HeightOverrideMap({self.to_dict()!r})"


def merge_height_overrides(
    scoped_maps: Mapping[Scope, Union[HeightOverrideMap, RawOverrides]],
) -> HeightOverrideMap:
    """Merge override maps key by key, most specific scope winning.

    Maps are applied in ascending precedence (GLOBAL, FOREST, LOCAL), so for
    every (species, class) key the value from the narrowest scope defining
    it survives, and keys defined only in a broader scope remain.

    Args:
        scoped_maps: Scope -> override map

    Returns:
        The effective HeightOverrideMap
    """
    merged: Dict[str, Dict[int, float]] = {}
    ordered = sorted(scoped_maps.items(), key=lambda item: item[0].kind.precedence)
    for _scope, overrides in ordered:
        if not isinstance(overrides, HeightOverrideMap):
            overrides = HeightOverrideMap(overrides)
        for species, diam_class, height in overrides.items_flat():
            merged.setdefault(species, {})[diam_class] = height
    return HeightOverrideMap(merged)


class ScopedHeightOverrides:
    """Immutable registry of override maps by scope.

    ``with_scope`` returns a new registry; registering the same scope twice
    replaces the earlier map.
    """

    def __init__(self, maps: Optional[Mapping[Scope, Union[HeightOverrideMap, RawOverrides]]] = None):
        self._maps: Mapping[Scope, HeightOverrideMap] = MappingProxyType({
            scope: m if isinstance(m, HeightOverrideMap) else HeightOverrideMap(m)
            for scope, m in dict(maps or {}).items()
        })

    def with_scope(self, scope: Scope, overrides: Union[HeightOverrideMap, RawOverrides]) -> "ScopedHeightOverrides":
        maps = dict(self._maps)
        maps[scope] = overrides
        return ScopedHeightOverrides(maps)

    def scopes(self) -> Tuple[Scope, ...]:
        return tuple(self._maps)

    def for_scope(self, scope: Scope) -> Optional[HeightOverrideMap]:
        return self._maps.get(scope)

    def effective(self, forest_id: Optional[str] = None, local_id: Optional[str] = None) -> HeightOverrideMap:
        """Effective overrides for a parcel or plot inside a forest.

        Args:
            forest_id: Forest identifier, or None to skip forest scope
            local_id: Parcel or plot identifier, or None to skip local scope
        """
        applicable = {}
        for scope, overrides in self._maps.items():
            if scope.kind is ScopeKind.GLOBAL:
                applicable[scope] = overrides
            elif scope.kind is ScopeKind.FOREST and forest_id is not None and scope.identifier == forest_id:
                applicable[scope] = overrides
            elif scope.kind is ScopeKind.LOCAL and local_id is not None and scope.identifier == local_id:
                applicable[scope] = overrides
        return merge_height_overrides(applicable)

    def __len__(self) -> int:
        return len(self._maps)

    def __repr__(self) -> str:
        return f"ScopedHeightOverrides({[str(s) for s in self._maps]})"
