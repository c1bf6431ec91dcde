"""Tests for biodiversity indicators."""
import math

import pytest

from pymartelage.biodiversity import (
    IBP_MAX,
    compute_biodiversity_index,
    pielou_evenness,
    shannon_index,
)


class TestDiversityIndices:
    """Shannon and Pielou indices."""

    def test_shannon_even_two_species(self):
        """Two equally abundant species give ln 2."""
        assert shannon_index([5, 5]) == pytest.approx(math.log(2))

    def test_shannon_single_species(self):
        """One species has no diversity."""
        assert shannon_index([12]) == 0.0

    def test_shannon_ignores_zero_counts(self):
        """Zero counts do not contribute."""
        assert shannon_index([5, 5, 0]) == pytest.approx(math.log(2))

    def test_pielou(self):
        """Pielou is H' over ln S, 0 for one species and None for none."""
        assert pielou_evenness(math.log(3), 3) == pytest.approx(1.0)
        assert pielou_evenness(0.0, 1) == 0.0
        assert pielou_evenness(0.0, 0) is None


class TestBiodiversityIndex:
    """Simplified IBP score."""

    def test_none_without_regular_stems(self, make_stem):
        """No counted stem gives no index."""
        assert compute_biodiversity_index({}, [make_stem(category='MORT')]) is None

    def test_rich_stand(self, make_stem):
        """A diverse stand with habitat features scores high."""
        counts = {code: 2 for code in ('HETRE_COMMUN', 'CH_SESSILE', 'CHARME',
                                        'FRENE_ELEVE', 'ERABLE_SYC', 'MERISIER')}
        stems = (
            [make_stem(diameter_cm=80.0) for _ in range(3)]
            + [make_stem(diameter_cm=40.0, category='ARBRE_BIO') for _ in range(3)]
            + [make_stem(diameter_cm=40.0, category='MORT')]
            + [make_stem(diameter_cm=40.0, category='DEPERISSANT')]
        )
        index = compute_biodiversity_index(counts, stems)
        assert index.species_count == 6
        assert index.pielou_j == pytest.approx(1.0)
        assert index.ibp_details == (
            'diversite_6+', 'tgb_3+', 'bio_3+', 'mort_1+', 'deperissant_1+', 'equitabilite',
        )
        assert index.ibp_score == 9
        assert index.ibp_max == IBP_MAX

    def test_monospecific_stand(self, make_stem):
        """A single-species stand without features scores zero."""
        index = compute_biodiversity_index({'HETRE_COMMUN': 4}, [make_stem() for _ in range(4)])
        assert index.ibp_score == 0
        assert index.ibp_details == ()
        assert index.shannon_h == 0.0
