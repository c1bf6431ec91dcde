"""
Tests for height overrides, scopes and height resolution.
"""
import pytest

from pymartelage.exceptions import InvalidDataError, InvalidParameterError
from pymartelage.height_overrides import (
    HeightOverrideMap,
    Scope,
    ScopeKind,
    ScopedHeightOverrides,
    merge_height_overrides,
)
from pymartelage.height_resolver import (
    HeightCurve,
    HeightMode,
    HeightModeEntry,
    HeightRange,
    HeightResolver,
    HeightSource,
)


# ============================================================================
# Override Maps
# ============================================================================

class TestHeightOverrideMap:
    """Tests for the immutable override map."""

    def test_species_keys_normalized(self):
        """Species codes are trimmed and upper-cased."""
        overrides = HeightOverrideMap({' hetre ': {20: 15.0}})
        assert list(overrides) == ['HETRE']
        assert overrides.height_for('Hetre', 20) == 15.0
        assert overrides['hetre'][20] == 15.0

    def test_absent_entries(self):
        """Unknown species or classes give None."""
        overrides = HeightOverrideMap({'HETRE': {20: 15.0}})
        assert overrides.height_for('HETRE', 25) is None
        assert overrides.height_for('CHARME', 20) is None

    def test_non_positive_height_rejected(self):
        """Zero or negative heights are malformed."""
        with pytest.raises(InvalidDataError):
            HeightOverrideMap({'HETRE': {20: 0.0}})
        with pytest.raises(InvalidDataError):
            HeightOverrideMap({'HETRE': {20: -3.0}})

    def test_non_numeric_height_rejected(self):
        """Non-numeric heights are malformed."""
        with pytest.raises(InvalidDataError):
            HeightOverrideMap({'HETRE': {20: 'tall'}})

    def test_non_integer_class_rejected(self):
        """Class keys must convert to integers."""
        with pytest.raises(InvalidDataError):
            HeightOverrideMap({'HETRE': {'big': 12.0}})

    def test_equality_and_hash(self):
        """Maps with the same content are equal and hash alike."""
        a = HeightOverrideMap({'hetre': {20: 15.0}})
        b = HeightOverrideMap({'HETRE': {20: 15.0}})
        assert a == b
        assert hash(a) == hash(b)

    def test_empty(self):
        """None builds an empty map."""
        assert len(HeightOverrideMap(None)) == 0


# ============================================================================
# Scopes and Merging
# ============================================================================

class TestScopedOverrides:
    """Tests for scope precedence and key-by-key merging."""

    def test_scope_identifiers(self):
        """GLOBAL takes no identifier, the others need one."""
        assert str(Scope.global_()) == 'GLOBAL'
        assert str(Scope.forest('F1')) == 'FOREST:F1'
        with pytest.raises(InvalidParameterError):
            Scope(ScopeKind.GLOBAL, 'X')
        with pytest.raises(InvalidParameterError):
            Scope(ScopeKind.LOCAL)

    def test_local_wins_forest_survives(self):
        """The most specific scope wins per key; other keys stay visible."""
        registry = (ScopedHeightOverrides()
                    .with_scope(Scope.forest('F1'), {'HETRE': {20: 12.0, 25: 14.0}})
                    .with_scope(Scope.local('P7'), {'hetre ': {20: 15.0}}))
        effective = registry.effective('F1', 'P7')
        assert effective.height_for('HETRE', 20) == 15.0
        assert effective.height_for('HETRE', 25) == 14.0

    def test_other_forest_ignored(self):
        """Overrides of another forest do not apply."""
        registry = ScopedHeightOverrides({
            Scope.global_(): {'HETRE': {20: 10.0}},
            Scope.forest('F2'): {'HETRE': {20: 30.0}},
        })
        assert registry.effective('F1').height_for('HETRE', 20) == 10.0

    def test_with_scope_returns_new_registry(self):
        """Registering a scope leaves the original registry untouched."""
        base = ScopedHeightOverrides()
        extended = base.with_scope(Scope.global_(), {'HETRE': {20: 10.0}})
        assert len(base) == 0
        assert len(extended) == 1
        assert extended.for_scope(Scope.global_()).height_for('HETRE', 20) == 10.0

    def test_merge_order_independent_of_insertion(self):
        """Precedence, not insertion order, decides the winner."""
        merged = merge_height_overrides({
            Scope.local('P1'): {'HETRE': {20: 15.0}},
            Scope.global_(): {'HETRE': {20: 9.0, 30: 20.0}},
        })
        assert merged.height_for('HETRE', 20) == 15.0
        assert merged.height_for('HETRE', 30) == 20.0


# ============================================================================
# Height Curve
# ============================================================================

class TestHeightCurve:
    """Tests for the default height-diameter curve."""

    @pytest.fixture
    def curve(self):
        return HeightCurve.from_records([
            {'species': 'HETRE_COMMUN', 'min': 10, 'max': 19, 'h': 15.0},
            {'species': 'HETRE_COMMUN', 'min': 30, 'max': 39, 'h': 25.0},
            {'essence': '*', 'min': 0, 'max': 200, 'h': 18.0},
        ])

    def test_range_match(self, curve):
        """A diameter inside a range takes its height."""
        assert curve.height_for('HETRE_COMMUN', 15.0) == 15.0

    def test_interpolation_between_midpoints(self, curve):
        """Gaps between ranges are interpolated linearly."""
        assert curve.height_for('HETRE_COMMUN', 24.5) == pytest.approx(20.0)

    def test_clamped_beyond_last_range(self, curve):
        """Heights are clamped past the last midpoint."""
        assert curve.height_for('HETRE_COMMUN', 80.0) == 25.0

    def test_alias_lookup(self, curve):
        """A short species code finds the full code's ranges."""
        assert curve.height_for('HETRE', 35.0) == 25.0

    def test_wildcard_fallback(self, curve):
        """Species without ranges use the '*' ranges."""
        assert curve.height_for('CHARME', 40.0) == 18.0

    def test_empty_curve(self):
        """An empty curve is falsy and returns None."""
        curve = HeightCurve()
        assert not curve
        assert curve.height_for('HETRE', 30.0) is None

    def test_invalid_range_height(self):
        """Ranges need a positive height."""
        with pytest.raises(InvalidDataError):
            HeightRange('HETRE', 10, 20, 0.0)


# ============================================================================
# Resolver Priority Chain
# ============================================================================

class TestHeightResolver:
    """Tests for the height resolution order."""

    def test_measured_height_always_wins(self, make_stem):
        """A stem's own measurement is used even with an override."""
        resolver = HeightResolver(HeightOverrideMap({'HETRE_COMMUN': {30: 10.0}}))
        stem = make_stem(diameter_cm=32.0, height_m=21.0)
        resolution = resolver.resolve(stem, 30, [stem])
        assert resolution.height_m == 21.0
        assert resolution.source is HeightSource.MEASURED

    def test_manual_before_fixed(self, make_stem):
        """Manual overrides beat a FIXED mode."""
        resolver = HeightResolver(
            HeightOverrideMap({'HETRE_COMMUN': {30: 19.0}}),
            [HeightModeEntry('HETRE_COMMUN', 30, HeightMode.FIXED, 23.0)],
        )
        resolution = resolver.resolve_class('HETRE_COMMUN', 30, [make_stem(diameter_cm=31.0)])
        assert resolution.height_m == 19.0
        assert resolution.source is HeightSource.MANUAL

    def test_fixed_mode(self, make_stem):
        """A FIXED mode with a positive value is used without overrides."""
        resolver = HeightResolver(height_modes=[HeightModeEntry('hetre_commun', 30, 'fixed', 23.0)])
        resolution = resolver.resolve_class('HETRE_COMMUN', 30, [make_stem(diameter_cm=31.0)])
        assert resolution.height_m == 23.0
        assert resolution.source is HeightSource.FIXED

    def test_zero_fixed_falls_through_to_samples(self, make_stem):
        """A FIXED mode without a positive value is skipped."""
        resolver = HeightResolver(height_modes=[HeightModeEntry('HETRE_COMMUN', 30, HeightMode.FIXED, 0.0)])
        class_stems = [
            make_stem(diameter_cm=31.0, height_m=20.0),
            make_stem(diameter_cm=33.0, height_m=22.0),
            make_stem(diameter_cm=32.0),
        ]
        resolution = resolver.resolve_class('HETRE_COMMUN', 30, class_stems)
        assert resolution.height_m == pytest.approx(21.0)
        assert resolution.source is HeightSource.SAMPLES

    def test_curve_only_when_heights_not_required(self, make_stem):
        """The curve is consulted only when heights are not strictly required."""
        curve = HeightCurve([HeightRange('*', 0, 200, 18.0)])
        stems = [make_stem(diameter_cm=31.0)]
        strict = HeightResolver(height_curve=curve, require_heights=True)
        lenient = HeightResolver(height_curve=curve, require_heights=False)
        assert not strict.resolve_class('HETRE_COMMUN', 30, stems).is_resolved
        resolution = lenient.resolve_class('HETRE_COMMUN', 30, stems)
        assert resolution.height_m == 18.0
        assert resolution.source is HeightSource.CURVE

    def test_unresolved(self, make_stem):
        """Nothing applicable leaves the class unresolved."""
        resolution = HeightResolver().resolve_class('HETRE_COMMUN', 30, [make_stem(diameter_cm=31.0)])
        assert resolution.height_m is None
        assert resolution.source is HeightSource.UNRESOLVED

    def test_unknown_mode_is_default(self):
        """Unknown stored modes read as DEFAULT."""
        assert HeightMode.from_string('whatever') is HeightMode.DEFAULT
        assert HeightMode.from_string(None) is HeightMode.DEFAULT
