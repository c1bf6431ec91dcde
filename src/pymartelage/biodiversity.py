"""
Biodiversity indicators for a marked stand.

Shannon diversity and Pielou evenness are computed over per-species stem
counts. The IBP ("Indice de Biodiversité Potentielle") score is a
simplified 0-10 version built from what a marking round records: species
richness, very large trees, habitat trees, standing dead and dying trees.
"""
import math
from dataclasses import dataclass
from typing import Iterable, Mapping, Optional, Tuple, TYPE_CHECKING

from .stem import StemCategory

if TYPE_CHECKING:
    from .stem import Stem

__all__ = [
    'BiodiversityIndex',
    'IBP_MAX',
    'VERY_LARGE_TREE_CM',
    'compute_biodiversity_index',
    'shannon_index',
    'pielou_evenness',
]

IBP_MAX = 10
VERY_LARGE_TREE_CM = 70.0


@dataclass(frozen=True)
class BiodiversityIndex:
    shannon_h: float
    pielou_j: Optional[float]
    species_count: int
    very_large_tree_count: int
    bio_tree_count: int
    dead_tree_count: int
    dying_tree_count: int
    ibp_score: int
    ibp_max: int = IBP_MAX
    ibp_details: Tuple[str, ...] = ()


def shannon_index(counts: Iterable[int]) -> float:
    """Shannon H' = -sum(p ln p) over the non-zero counts."""
    counts = [c for c in counts if c > 0]
    total = sum(counts)
    if total == 0:
        return 0.0
    h = 0.0
    for c in counts:
        p = c / total
        h -= p * math.log(p)
    return h


def pielou_evenness(shannon_h: float, species_count: int) -> Optional[float]:
    """Pielou J = H' / ln(S); 0 for one species, None for none."""
    if species_count > 1:
        return shannon_h / math.log(species_count)
    if species_count == 1:
        return 0.0
    return None


def _tiered(count: int, high: int, label: str) -> Tuple[int, Optional[str]]:
    if count >= high:
        return 2, f"{label}_{high}+"
    if count >= 1:
        return 1, f"{label}_1+"
    return 0, None


def compute_biodiversity_index(species_counts: Mapping[str, int],
                               stems: Iterable['Stem']) -> Optional[BiodiversityIndex]:
    """Biodiversity index for a stand.

    Args:
        species_counts: Stem count per species over regular (non-special) stems
        stems: Every stem in scope, special ones included

    Returns:
        BiodiversityIndex, or None when no regular stem was counted
    """
    counts = {code: n for code, n in species_counts.items() if n > 0}
    if sum(counts.values()) == 0:
        return None
    stems = list(stems)

    shannon = shannon_index(counts.values())
    species_count = len(counts)
    pielou = pielou_evenness(shannon, species_count)

    very_large = sum(1 for s in stems if s.diameter_cm >= VERY_LARGE_TREE_CM)
    by_category = {category: 0 for category in StemCategory}
    for s in stems:
        category = s.special_category
        if category is not None:
            by_category[category] += 1
    bio = by_category[StemCategory.ARBRE_BIO]
    dead = by_category[StemCategory.MORT]
    dying = by_category[StemCategory.DEPERISSANT]

    score = 0
    details = []
    if species_count >= 6:
        score += 2
        details.append('diversite_6+')
    elif species_count >= 3:
        score += 1
        details.append('diversite_3+')

    for count, label in ((very_large, 'tgb'), (bio, 'bio'), (dead, 'mort')):
        points, detail = _tiered(count, 3, label)
        score += points
        if detail:
            details.append(detail)

    if dying >= 1:
        score += 1
        details.append('deperissant_1+')

    if pielou is not None and pielou >= 0.6:
        score += 1
        details.append('equitabilite')

    return BiodiversityIndex(
        shannon_h=shannon,
        pielou_j=pielou,
        species_count=species_count,
        very_large_tree_count=very_large,
        bio_tree_count=bio,
        dead_tree_count=dead,
        dying_tree_count=dying,
        ibp_score=min(score, IBP_MAX),
        ibp_details=tuple(details),
    )
