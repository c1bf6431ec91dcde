"""
Tests for the stand aggregation of a marking round.

Covers per-hectare scaling, the volume availability flag, species rows,
special trees, failure isolation, harvest rates and scoped height overrides.
"""
import pytest

from pymartelage.height_overrides import Scope, ScopedHeightOverrides
from pymartelage.martelage import compute_martelage_stats
from pymartelage.pricing import PriceEntry, PriceTable
from pymartelage.quality import WoodQualityGrade
from pymartelage.stand_metrics import calculate_lorey_height
from pymartelage.stem import StemCategory
from pymartelage.synthesis import SynthesisParams, synthesis_for_essence
from pymartelage.tariffs import TarifMethod, TarifSelection
from pymartelage.tree_utils import compute_g
from pymartelage.volume_library import calculate_tree_volume


# ============================================================================
# Basic Stand Figures
# ============================================================================

class TestStandFigures:
    """Counts, basal area and per-hectare scaling."""

    def test_empty_scope(self):
        """No stems gives no result."""
        assert compute_martelage_stats([], 2000.0) is None

    def test_non_positive_surface(self, beech_stems):
        """A zero or negative surface gives no result."""
        assert compute_martelage_stats(beech_stems, 0.0) is None
        assert compute_martelage_stats(beech_stems, -5.0) is None

    def test_empty_grid(self, beech_stems):
        """An empty class grid gives no result."""
        assert compute_martelage_stats(beech_stems, 2000.0, class_grid=[]) is None

    def test_per_hectare(self, make_stem):
        """40 stems on 2000 m2 is 200 stems per hectare."""
        stems = [make_stem(diameter_cm=30.0, height_m=20.0) for _ in range(40)]
        stats = compute_martelage_stats(stems, 2000.0)
        assert stats.surface_ha == pytest.approx(0.2)
        assert stats.n_total == 40
        assert stats.n_per_ha == pytest.approx(200.0)
        assert stats.g_per_ha == pytest.approx(40 * compute_g(30.0) / 0.2)

    def test_dg_of_equal_stems(self, make_stem):
        """Four 20 cm stems have a quadratic mean diameter of 20 cm."""
        stems = [make_stem(diameter_cm=20.0, height_m=16.0) for _ in range(4)]
        stats = compute_martelage_stats(stems, 1000.0)
        assert stats.dg_cm == pytest.approx(20.0)
        assert stats.mean_diameter_cm == pytest.approx(20.0)
        assert stats.d_min_cm == 20.0
        assert stats.d_max_cm == 20.0

    def test_idempotent(self, mixed_stems):
        """Repeated calls on the same inputs give equal results."""
        assert compute_martelage_stats(mixed_stems, 2500.0) == compute_martelage_stats(mixed_stems, 2500.0)

    def test_lorey_height_across_species(self, make_stem):
        """The stand Lorey height weights every stem by its basal area."""
        stems = [make_stem(diameter_cm=20.0, height_m=16.0), make_stem('CH_SESSILE', 40.0, height_m=28.0)]
        stats = compute_martelage_stats(stems, 1000.0)
        expected = calculate_lorey_height([(compute_g(20.0), 16.0), (compute_g(40.0), 28.0)])
        assert stats.lorey_height_m == pytest.approx(expected)
        assert stats.lorey_height_m == pytest.approx((16.0 + 4 * 28.0) / 5)

    def test_volume_and_heights(self, beech_stems):
        """Measured stems give volume, mean and Lorey heights."""
        stats = compute_martelage_stats(beech_stems, 2000.0)
        expected = 4 * calculate_tree_volume(35.0, 24.0, 'HETRE_COMMUN', TarifMethod.ALGAN)
        assert stats.volume_available
        assert stats.volume_m3 == pytest.approx(expected)
        assert stats.v_per_ha == pytest.approx(expected / 0.2)
        assert stats.mean_height_m == pytest.approx(24.0)
        assert stats.lorey_height_m == pytest.approx(24.0)
        assert stats.ratio_vg == pytest.approx(expected / (4 * compute_g(35.0)))

    def test_class_distribution(self, mixed_stems):
        """Class counts and volumes add up to the stand totals."""
        stats = compute_martelage_stats(mixed_stems, 2000.0)
        assert sum(e.count for e in stats.class_distribution) == stats.n_total
        assert sum(e.volume_m3 for e in stats.class_distribution) == pytest.approx(stats.volume_m3)
        assert [e.diam_class for e in stats.class_distribution] == [25, 30, 40, 45]

    def test_species_selection(self, mixed_stems):
        """Only the selected species are aggregated."""
        stats = compute_martelage_stats(mixed_stems, 2000.0, selected_species_codes=['ch_sessile'])
        assert stats.n_total == 2
        assert [row.species_code for row in stats.species] == ['CH_SESSILE']

    def test_selection_absent_from_scope(self, make_stem):
        """Selecting a species with no stem in scope gives no result."""
        stems = [make_stem(diameter_cm=30.0, height_m=20.0)]
        assert compute_martelage_stats(stems, 2000.0, selected_species_codes=['CH_SESSILE']) is None

    def test_only_special_stems(self, make_stem):
        """A scope holding only special trees gives no result."""
        stems = [make_stem(diameter_cm=60.0, category='MORT'), make_stem(diameter_cm=70.0, category='ARBRE_BIO')]
        assert compute_martelage_stats(stems, 2000.0) is None


# ============================================================================
# Volume Availability
# ============================================================================

class TestVolumeAvailability:
    """The single flag gating every volume-based figure."""

    @pytest.fixture
    def incomplete(self, mixed_stems, make_stem):
        """Mixed marking plus an unmeasured 62 cm beech alone in its class."""
        return mixed_stems + [make_stem('HETRE_COMMUN', 62.0)]

    def test_sampled_height_keeps_volume(self, mixed_stems):
        """An unmeasured oak sharing a class with a measured one is resolved."""
        stats = compute_martelage_stats(mixed_stems, 2000.0)
        assert stats.volume_available
        assert stats.volume_completeness_pct == 100.0
        assert not stats.missing_heights

    def test_unresolved_class_disables_volume(self, incomplete):
        """One unresolved class hides all volume figures but not counts."""
        stats = compute_martelage_stats(incomplete, 2000.0)
        assert not stats.volume_available
        assert stats.n_total == 6
        assert stats.basal_area_m2 > 0
        assert stats.volume_m3 is None
        assert stats.v_per_ha is None
        assert stats.revenue_eur is None
        assert stats.mean_height_m is None
        assert stats.lorey_height_m is None
        assert stats.ratio_vg is None
        assert all(e.volume_m3 is None for e in stats.class_distribution)
        assert all(row.volume_m3 is None for row in stats.species)
        assert dict(stats.missing_heights) == {'HETRE_COMMUN': (60,)}
        assert stats.missing_height_species_names == ('Hêtre commun',)
        assert stats.volume_completeness_pct < 100.0

    def test_override_restores_volume(self, incomplete):
        """A manual height for the missing class restores the volume."""
        stats = compute_martelage_stats(incomplete, 2000.0, height_overrides={'HETRE_COMMUN': {60: 30.0}})
        assert stats.volume_available
        assert stats.volume_m3 is not None

    def test_one_entry_tariff_reports_missing_height(self, make_stem):
        """A one-entry tariff still reports unresolved heights and hides the height figures."""
        stems = [make_stem(diameter_cm=30.0, height_m=20.0), make_stem(diameter_cm=62.0)]
        stats = compute_martelage_stats(stems, 2000.0,
                                        tariff_params=TarifSelection(TarifMethod.SCHAEFFER_1E, 8))
        assert not stats.volume_available
        assert dict(stats.missing_heights) == {'HETRE_COMMUN': (60,)}
        assert stats.mean_height_m is None
        assert stats.lorey_height_m is None
        assert stats.volume_m3 is None
        assert stats.n_total == 2

    def test_one_entry_tariff_with_all_heights(self, mixed_stems):
        """Resolved heights keep a one-entry stand available."""
        stats = compute_martelage_stats(mixed_stems, 2000.0,
                                        tariff_params=TarifSelection(TarifMethod.SCHAEFFER_1E, 8))
        assert stats.volume_available
        assert stats.volume_m3 > 0
        assert stats.lorey_height_m is not None


# ============================================================================
# Species Rows
# ============================================================================

class TestSpeciesRows:
    """Per-species breakdown."""

    def test_sorted_by_display_name(self, mixed_stems):
        """Rows are ordered by species name."""
        stats = compute_martelage_stats(mixed_stems, 2000.0)
        assert [row.species_name for row in stats.species] == ['Chêne sessile', 'Hêtre commun']

    def test_mean_diameters(self, make_stem, default_grid):
        """Rows carry the arithmetic mean; the synthesis totals weight by basal area."""
        stems = [make_stem(diameter_cm=20.0, height_m=15.0), make_stem(diameter_cm=40.0, height_m=25.0)]
        row = compute_martelage_stats(stems, 1000.0).species[0]
        _, totals = synthesis_for_essence('HETRE_COMMUN', default_grid, stems)
        assert row.mean_diameter_cm == pytest.approx(30.0)
        assert totals.g_weighted_diameter_cm == pytest.approx(36.0)

    def test_shares_sum_to_100(self, mixed_stems):
        """Count, basal area and volume shares each sum to 100%."""
        stats = compute_martelage_stats(mixed_stems, 2000.0)
        assert sum(row.n_pct for row in stats.species) == pytest.approx(100.0)
        assert sum(row.g_pct for row in stats.species) == pytest.approx(100.0)
        assert sum(row.v_pct for row in stats.species) == pytest.approx(100.0)

    def test_dominant_quality_tie_goes_to_better_grade(self, make_stem):
        """Equal counts pick the better grade."""
        stems = [
            make_stem(diameter_cm=30.0, height_m=20.0, quality=0),
            make_stem(diameter_cm=30.0, height_m=20.0, quality=1),
            make_stem(diameter_cm=30.0, height_m=20.0, quality=1),
            make_stem(diameter_cm=30.0, height_m=20.0, quality=0),
            make_stem(diameter_cm=30.0, height_m=20.0),
        ]
        stats = compute_martelage_stats(stems, 2000.0)
        row = stats.species[0]
        assert row.dominant_quality is WoodQualityGrade.A
        assert row.quality_assessed_pct == pytest.approx(80.0)
        assert stats.quality_assessed_count == 4
        assert [(e.grade, e.pct) for e in stats.quality_distribution] == [
            (WoodQualityGrade.A, 50.0), (WoodQualityGrade.B, 50.0),
        ]

    def test_revenue_and_mean_price(self, make_stem):
        """Priced species carry revenue and a mean price."""
        stems = [make_stem(diameter_cm=47.0, height_m=27.0) for _ in range(2)]
        params = SynthesisParams(prices=PriceTable([PriceEntry('*', '*', 5, 120, 50.0)]))
        stats = compute_martelage_stats(stems, 2000.0, tariff_params=params)
        assert stats.revenue_eur == pytest.approx(stats.volume_m3 * 50.0)
        assert stats.species[0].mean_price_per_m3 == pytest.approx(50.0)
        assert stats.unpriced_species_names == ()

    def test_unpriced_species_listed(self, beech_stems):
        """Species without prices are listed as unpriced."""
        stats = compute_martelage_stats(beech_stems, 2000.0)
        assert stats.unpriced_species_names == ('Hêtre commun',)
        assert stats.unpriced_volume_m3 == pytest.approx(stats.volume_m3)

    def test_unknown_species_displayed_by_code(self, make_stem):
        """Codes missing from the catalog are shown as their code."""
        stats = compute_martelage_stats([make_stem('xx_rare', 30.0, height_m=20.0)], 2000.0)
        assert stats.species[0].species_name == 'XX_RARE'


# ============================================================================
# Special Trees, Failures and Harvest
# ============================================================================

class TestSpecialTrees:
    """Marked special trees."""

    def test_excluded_from_counts(self, beech_stems, make_stem):
        """Special stems are listed but never counted."""
        stems = beech_stems + [
            make_stem(diameter_cm=75.0, category='ARBRE_BIO', gps_wkt='POINT(1 2)'),
            make_stem(diameter_cm=40.0, category='MORT', note='chandelle'),
            make_stem(diameter_cm=42.0, category='mort'),
        ]
        stats = compute_martelage_stats(stems, 2000.0)
        assert stats.n_total == 4
        assert [(e.category, e.count) for e in stats.special_trees] == [
            (StemCategory.ARBRE_BIO, 1), (StemCategory.MORT, 2),
        ]
        bio = stats.special_trees[0].trees[0]
        assert bio.has_gps
        assert bio.species_name == 'Hêtre commun'

    def test_biodiversity_counts_special_trees(self, beech_stems, make_stem):
        """Habitat and dead trees feed the biodiversity index."""
        stems = beech_stems + [make_stem(diameter_cm=75.0, category='ARBRE_BIO')]
        stats = compute_martelage_stats(stems, 2000.0)
        assert stats.biodiversity.bio_tree_count == 1
        assert stats.biodiversity.very_large_tree_count == 1
        assert stats.biodiversity.species_count == 1


class TestFailureIsolation:
    """One bad species never aborts the stand."""

    def test_malformed_override_fails_one_species(self, mixed_stems):
        """The failing species is reported, the others are aggregated."""
        stats = compute_martelage_stats(mixed_stems, 2000.0,
                                        height_overrides={'CH_SESSILE': {40: -1.0}})
        assert [f.species_code for f in stats.failed_species] == ['CH_SESSILE']
        rows = {row.species_code: row for row in stats.species}
        assert rows['CH_SESSILE'].failed
        assert rows['CH_SESSILE'].volume_m3 is None
        assert rows['CH_SESSILE'].n == 2
        assert not rows['HETRE_COMMUN'].failed
        assert rows['HETRE_COMMUN'].volume_m3 is not None
        assert stats.n_total == 5
        assert stats.volume_available


class TestHarvestRates:
    """Removal rates against the stand before harvest."""

    def test_absent_without_before_figures(self, beech_stems):
        """No before figure means no harvest rates."""
        assert compute_martelage_stats(beech_stems, 2000.0).harvest is None

    def test_rates(self, beech_stems):
        """20 stems/ha marked out of 80 is a 25% removal."""
        stats = compute_martelage_stats(beech_stems, 2000.0, n_ha_before=80.0, g_ha_before=20.0)
        assert stats.harvest.n_pct == pytest.approx(25.0)
        assert stats.harvest.residual_n_per_ha == pytest.approx(60.0)
        assert stats.harvest.g_pct == pytest.approx(stats.g_per_ha / 20.0 * 100.0)


# ============================================================================
# Scoped Overrides
# ============================================================================

class TestScopedOverrides:
    """Effective overrides flowing into the aggregation."""

    def test_local_and_forest_merge(self, make_stem):
        """A parcel override wins for its class; the forest one fills the other."""
        registry = (ScopedHeightOverrides()
                    .with_scope(Scope.forest('F1'), {'HETRE': {20: 12.0, 25: 14.0}})
                    .with_scope(Scope.local('P7'), {'hetre ': {20: 15.0}}))
        stems = [make_stem('HETRE', 22.0), make_stem('HETRE', 27.0)]
        stats = compute_martelage_stats(stems, 1000.0, height_overrides=registry.effective('F1', 'P7'))
        expected = (calculate_tree_volume(22.0, 15.0, 'HETRE', TarifMethod.ALGAN)
                    + calculate_tree_volume(27.0, 14.0, 'HETRE', TarifMethod.ALGAN))
        assert stats.volume_available
        assert stats.volume_m3 == pytest.approx(expected)
        assert stats.mean_height_m == pytest.approx(14.5)
