"""
Plausibility checks on stem inputs, per-tree results and stand aggregates.

Bounds reflect the extremes of French dendrometry (a 300 cm giant, 65 m
douglas firs, 30 m3 stems) and typical stand densities. They are read from
the ``sanity_thresholds`` section of engine_defaults.yaml, with built-in
values for any key the file omits.

Checks never raise: they return SanityWarning records for the caller to
display.
"""
import math
from dataclasses import dataclass
from enum import Enum
from itertools import groupby
from typing import Dict, Iterable, List, Optional, Sequence, TYPE_CHECKING

from .config_loader import load_engine_defaults
from .utils import normalize_species_code

if TYPE_CHECKING:
    from .stem import Stem

__all__ = [
    'SanitySeverity',
    'SanityDomain',
    'SanityWarning',
    'SanityChecker',
    'DEFAULT_THRESHOLDS',
]


class SanitySeverity(str, Enum):
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


class SanityDomain(str, Enum):
    INPUT = "INPUT"
    VOLUME = "VOLUME"
    REVENUE = "REVENUE"
    AGGREGATE = "AGGREGATE"


@dataclass(frozen=True)
class SanityWarning:
    severity: SanitySeverity
    domain: SanityDomain
    code: str
    stem_id: Optional[str] = None
    value: Optional[float] = None


DEFAULT_THRESHOLDS: Dict[str, float] = {
    'diam_min_cm': 0.5,
    'diam_max_cm': 300.0,
    'diam_warn_max_cm': 150.0,
    'height_min_m': 0.5,
    'height_max_m': 65.0,
    'height_warn_max_m': 50.0,
    'form_coef_min': 0.15,
    'form_coef_max': 0.85,
    'hd_ratio_warn': 1.2,
    'hd_ratio_error': 2.0,
    'vol_tree_warn_m3': 15.0,
    'vol_tree_max_m3': 30.0,
    'form_height_max_m': 60.0,
    'revenue_tree_max_eur': 50000.0,
    'g_ha_warn_low': 1.0,
    'g_ha_warn_high': 80.0,
    'g_ha_error_high': 150.0,
    'v_ha_warn_high': 1200.0,
    'v_ha_error_high': 3000.0,
    'n_ha_warn_high': 5000.0,
    'n_ha_error_high': 20000.0,
    'revenue_ha_warn_high': 100000.0,
    'vg_ratio_warn_low': 3.0,
    'vg_ratio_warn_high': 35.0,
    'surface_warn_min_ha': 0.001,
    'max_detailed_alerts': 10,
    'duplicate_window_s': 60,
}


class SanityChecker:
    """Garde-fou over field inputs and computed results.

    Attributes:
        thresholds: Effective threshold values
    """

    def __init__(self, thresholds: Optional[Dict[str, float]] = None):
        if thresholds is None:
            thresholds = load_engine_defaults().get('sanity_thresholds') or {}
        self.thresholds = {**DEFAULT_THRESHOLDS, **thresholds}

    def _t(self, name: str) -> float:
        return self.thresholds[name]

    def check_stem(self, stem: 'Stem') -> List[SanityWarning]:
        """Input checks for one stem: diameter, height, slenderness, form factor."""
        t = self._t
        w: List[SanityWarning] = []
        d = stem.diameter_cm

        if d <= 0:
            w.append(SanityWarning(SanitySeverity.ERROR, SanityDomain.INPUT, 'diam_zero', stem.id))
        elif d < t('diam_min_cm'):
            w.append(SanityWarning(SanitySeverity.ERROR, SanityDomain.INPUT, 'diam_too_small', stem.id, d))
        elif d > t('diam_max_cm'):
            w.append(SanityWarning(SanitySeverity.ERROR, SanityDomain.INPUT, 'diam_too_large', stem.id, d))
        elif d > t('diam_warn_max_cm'):
            w.append(SanityWarning(SanitySeverity.WARNING, SanityDomain.INPUT, 'diam_very_large', stem.id, d))

        h = stem.height_m
        if h is not None:
            if h <= 0:
                w.append(SanityWarning(SanitySeverity.ERROR, SanityDomain.INPUT, 'height_zero', stem.id))
            elif h < t('height_min_m'):
                w.append(SanityWarning(SanitySeverity.ERROR, SanityDomain.INPUT, 'height_too_small', stem.id, h))
            elif h > t('height_max_m'):
                w.append(SanityWarning(SanitySeverity.ERROR, SanityDomain.INPUT, 'height_too_large', stem.id, h))
            elif h > t('height_warn_max_m'):
                w.append(SanityWarning(SanitySeverity.WARNING, SanityDomain.INPUT, 'height_very_large', stem.id, h))

            # H (m) / D (cm): 0.4-1.0 is typical
            if h > 0 and d > 0:
                ratio = h / d
                if ratio > t('hd_ratio_error'):
                    w.append(SanityWarning(SanitySeverity.ERROR, SanityDomain.INPUT, 'hd_ratio_extreme', stem.id, ratio))
                elif ratio > t('hd_ratio_warn'):
                    w.append(SanityWarning(SanitySeverity.WARNING, SanityDomain.INPUT, 'hd_ratio_high', stem.id, ratio))

        f = stem.form_coefficient
        if f is not None and (f < t('form_coef_min') or f > t('form_coef_max')):
            w.append(SanityWarning(SanitySeverity.WARNING, SanityDomain.INPUT, 'coef_forme_out_of_range', stem.id, f))

        return w

    def check_tree_volume(self, stem_id: str, diameter_cm: float, volume_m3: float) -> List[SanityWarning]:
        """Checks on a computed stem volume and its form height V/g."""
        t = self._t
        w: List[SanityWarning] = []
        if volume_m3 < 0:
            w.append(SanityWarning(SanitySeverity.ERROR, SanityDomain.VOLUME, 'volume_negative', stem_id, volume_m3))
        elif volume_m3 > t('vol_tree_max_m3'):
            w.append(SanityWarning(SanitySeverity.ERROR, SanityDomain.VOLUME, 'volume_tree_extreme', stem_id, volume_m3))
        elif volume_m3 > t('vol_tree_warn_m3'):
            w.append(SanityWarning(SanitySeverity.WARNING, SanityDomain.VOLUME, 'volume_tree_very_large', stem_id, volume_m3))

        if diameter_cm > 0 and volume_m3 > 0:
            g = math.pi / 4.0 * (diameter_cm / 100.0) ** 2
            form_height = volume_m3 / g
            if form_height > t('form_height_max_m'):
                w.append(SanityWarning(
                    SanitySeverity.ERROR, SanityDomain.VOLUME, 'volume_vs_diam_incoherent', stem_id, form_height
                ))
        return w

    def check_tree_revenue(self, stem_id: str, revenue_eur: float) -> List[SanityWarning]:
        w: List[SanityWarning] = []
        if revenue_eur < 0:
            w.append(SanityWarning(SanitySeverity.ERROR, SanityDomain.REVENUE, 'revenue_negative', stem_id, revenue_eur))
        elif revenue_eur > self._t('revenue_tree_max_eur'):
            w.append(SanityWarning(SanitySeverity.WARNING, SanityDomain.REVENUE, 'revenue_tree_extreme', stem_id, revenue_eur))
        return w

    def check_aggregates(
        self,
        n_per_ha: float,
        g_per_ha: float,
        v_per_ha: Optional[float],
        revenue_per_ha: Optional[float],
        surface_ha: float,
        ratio_vg: Optional[float],
    ) -> List[SanityWarning]:
        """Checks on per-hectare figures of a marking synthesis.

        Volume-based checks are skipped when the value is None.
        """
        t = self._t
        w: List[SanityWarning] = []
        agg = SanityDomain.AGGREGATE

        if surface_ha <= 0:
            w.append(SanityWarning(SanitySeverity.ERROR, agg, 'surface_zero'))
        elif surface_ha < t('surface_warn_min_ha'):
            w.append(SanityWarning(SanitySeverity.WARNING, agg, 'surface_very_small', value=surface_ha))

        if n_per_ha > t('n_ha_error_high'):
            w.append(SanityWarning(SanitySeverity.ERROR, agg, 'n_ha_extreme', value=n_per_ha))
        elif n_per_ha > t('n_ha_warn_high'):
            w.append(SanityWarning(SanitySeverity.WARNING, agg, 'n_ha_very_high', value=n_per_ha))

        if g_per_ha > t('g_ha_error_high'):
            w.append(SanityWarning(SanitySeverity.ERROR, agg, 'g_ha_extreme', value=g_per_ha))
        elif g_per_ha > t('g_ha_warn_high'):
            w.append(SanityWarning(SanitySeverity.WARNING, agg, 'g_ha_very_high', value=g_per_ha))
        elif 0 < g_per_ha < t('g_ha_warn_low'):
            w.append(SanityWarning(SanitySeverity.INFO, agg, 'g_ha_very_low', value=g_per_ha))

        if v_per_ha is not None:
            if v_per_ha > t('v_ha_error_high'):
                w.append(SanityWarning(SanitySeverity.ERROR, agg, 'v_ha_extreme', value=v_per_ha))
            elif v_per_ha > t('v_ha_warn_high'):
                w.append(SanityWarning(SanitySeverity.WARNING, agg, 'v_ha_very_high', value=v_per_ha))

        if ratio_vg is not None:
            if ratio_vg < t('vg_ratio_warn_low'):
                w.append(SanityWarning(SanitySeverity.WARNING, agg, 'vg_ratio_low', value=ratio_vg))
            elif ratio_vg > t('vg_ratio_warn_high'):
                w.append(SanityWarning(SanitySeverity.WARNING, agg, 'vg_ratio_high', value=ratio_vg))

        if revenue_per_ha is not None:
            if revenue_per_ha < 0:
                w.append(SanityWarning(SanitySeverity.ERROR, SanityDomain.REVENUE, 'revenue_ha_negative', value=revenue_per_ha))
            elif revenue_per_ha > t('revenue_ha_warn_high'):
                w.append(SanityWarning(SanitySeverity.WARNING, SanityDomain.REVENUE, 'revenue_ha_very_high', value=revenue_per_ha))

        return w

    def count_potential_duplicates(self, stems: Iterable['Stem']) -> int:
        """Stems followed by an identical (plot, species, diameter) record within the window."""
        window = self._t('duplicate_window_s')
        timed = [s for s in stems if s.timestamp is not None]

        def key(s: 'Stem'):
            return (s.plot_id or '', normalize_species_code(s.species_code), s.diameter_cm)

        count = 0
        for _key, group in groupby(sorted(timed, key=key), key=key):
            ordered = sorted(group, key=lambda s: s.timestamp)
            for a, b in zip(ordered, ordered[1:]):
                if (b.timestamp - a.timestamp).total_seconds() < window:
                    count += 1
        return count

    def check_all_stems(self, stems: Sequence['Stem']) -> List[SanityWarning]:
        """Input checks over a batch, without flooding.

        Detailed alerts are added only while fewer than ``max_detailed_alerts``
        are listed; past that a single ``many_input_errors`` warning carries
        the number of stems with alerts.
        """
        max_detailed = int(self._t('max_detailed_alerts'))
        w: List[SanityWarning] = []
        stems_with_alerts = 0
        for stem in stems:
            alerts = self.check_stem(stem)
            if alerts:
                stems_with_alerts += 1
                if len(w) < max_detailed:
                    w.extend(alerts)

        if stems_with_alerts > max_detailed:
            w.append(SanityWarning(
                SanitySeverity.WARNING, SanityDomain.INPUT, 'many_input_errors', value=float(stems_with_alerts)
            ))

        duplicates = self.count_potential_duplicates(stems)
        if duplicates:
            w.append(SanityWarning(
                SanitySeverity.INFO, SanityDomain.INPUT, 'potential_duplicates', value=float(duplicates)
            ))
        return w

