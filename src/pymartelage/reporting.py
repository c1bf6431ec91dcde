"""
Tabular views of stand statistics.

Presentation and export collaborators consume the immutable results through
pandas DataFrames. Missing values (volume unavailable, unpriced species) stay
as NaN/None rather than zero.
"""
from typing import Any, Dict, Iterable, List, Sequence

import pandas as pd

from .martelage import StandStatistics
from .synthesis import ClassSynthesis

__all__ = [
    'species_table',
    'class_distribution_table',
    'class_synthesis_table',
    'quality_table',
    'sanity_table',
    'stand_summary',
]

SPECIES_COLUMNS = [
    'species_code', 'species_name', 'n', 'n_pct', 'basal_area_m2', 'g_pct', 'g_per_ha',
    'volume_m3', 'v_pct', 'v_per_ha', 'mean_diameter_cm', 'dg_cm', 'mean_price_per_m3',
    'revenue_eur', 'revenue_per_ha', 'dominant_quality', 'quality_assessed_pct',
    'height_complete', 'failed',
]


def species_table(stats: StandStatistics) -> pd.DataFrame:
    """One row per species, in the result's order (by name).

    Args:
        stats: Stand statistics

    Returns:
        DataFrame with SPECIES_COLUMNS
    """
    records: List[Dict[str, Any]] = []
    for row in stats.species:
        record = {col: getattr(row, col) for col in SPECIES_COLUMNS}
        record['dominant_quality'] = row.dominant_quality.value if row.dominant_quality else None
        records.append(record)
    return pd.DataFrame.from_records(records, columns=SPECIES_COLUMNS)


def class_distribution_table(stats: StandStatistics) -> pd.DataFrame:
    """Stand distribution by diameter class, indexed by class."""
    df = pd.DataFrame(
        [(e.diam_class, e.count, e.basal_area_m2, e.volume_m3) for e in stats.class_distribution],
        columns=['diam_class', 'count', 'basal_area_m2', 'volume_m3'],
    )
    df['count_per_ha'] = df['count'] / stats.surface_ha
    df['g_per_ha'] = df['basal_area_m2'] / stats.surface_ha
    return df.set_index('diam_class')


def class_synthesis_table(rows: Iterable[ClassSynthesis]) -> pd.DataFrame:
    """Per-class rows of one species synthesis."""
    return pd.DataFrame(
        [
            {
                'diam_class': r.diam_class,
                'count': r.count,
                'basal_area_m2': r.basal_area_m2,
                'mean_height_m': r.mean_height_m,
                'volume_m3': r.volume_m3,
                'value_eur': r.value_eur,
                'unpriced_volume_m3': r.unpriced_volume_m3,
                'height_source': r.height_source.value,
                'height_missing': r.height_missing,
            }
            for r in rows
        ],
        columns=['diam_class', 'count', 'basal_area_m2', 'mean_height_m', 'volume_m3',
                 'value_eur', 'unpriced_volume_m3', 'height_source', 'height_missing'],
    ).set_index('diam_class')


def quality_table(stats: StandStatistics) -> pd.DataFrame:
    """Wood quality histogram over graded stems."""
    return pd.DataFrame(
        [(e.grade.value, e.count, e.pct) for e in stats.quality_distribution],
        columns=['grade', 'count', 'pct'],
    )


def sanity_table(stats: StandStatistics) -> pd.DataFrame:
    """Sanity warnings as a table."""
    return pd.DataFrame(
        [(w.severity.value, w.domain.value, w.code, w.stem_id, w.value) for w in stats.sanity_warnings],
        columns=['severity', 'domain', 'code', 'stem_id', 'value'],
    )


_SUMMARY_FIELDS: Sequence[str] = (
    'surface_ha', 'n_total', 'n_per_ha', 'basal_area_m2', 'g_per_ha',
    'volume_m3', 'v_per_ha', 'revenue_eur', 'revenue_per_ha',
    'unpriced_volume_m3', 'unpriced_volume_per_ha',
    'mean_diameter_cm', 'dg_cm', 'd_min_cm', 'd_max_cm', 'd_cv_pct',
    'mean_height_m', 'lorey_height_m', 'ratio_vg',
    'volume_available', 'volume_completeness_pct',
)


def stand_summary(stats: StandStatistics) -> pd.Series:
    """Stand-level figures as a Series keyed by field name."""
    data = {name: getattr(stats, name) for name in _SUMMARY_FIELDS}
    if stats.biodiversity is not None:
        data['shannon_h'] = stats.biodiversity.shannon_h
        data['pielou_j'] = stats.biodiversity.pielou_j
        data['ibp_score'] = stats.biodiversity.ibp_score
    if stats.harvest is not None:
        data['harvest_n_pct'] = stats.harvest.n_pct
        data['harvest_g_pct'] = stats.harvest.g_pct
    return pd.Series(data, dtype=object, name='stand')
