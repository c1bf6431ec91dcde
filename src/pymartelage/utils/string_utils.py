"""
String normalization helpers for species codes and product codes.

Species codes arrive from field entry, price tables and override stores with
inconsistent case and stray whitespace. Every lookup key in the engine goes
through ``normalize_species_code`` once, at the boundary.
"""
from typing import Dict, List, Optional, Tuple

__all__ = [
    'normalize_code',
    'normalize_species_code',
    'species_code_candidates',
    'SPECIES_ALIASES',
]


# Lookup order for species-keyed tables. The code itself always comes first.
SPECIES_ALIASES: Dict[str, Tuple[str, ...]] = {
    'HETRE': ('HETRE_COMMUN',),
    'HETRE_COMMUN': ('HETRE',),
    'DOUGLAS': ('DOUGLAS_VERT',),
    'DOUGLAS_VERT': ('DOUGLAS',),
    'TREMBLE': ('PEUPLIER_TREMB',),
    'PEUPLIER_TREMB': ('TREMBLE',),
    'CHENE': ('CH_SESSILE', 'CH_PEDONCULE'),
    'PEUPLIER': ('PEUPLIER_HYBR', 'PEUPLIER_NOIR'),
    'BOULEAU': ('BOUL_VERRUQ', 'BOUL_PUBESC'),
    'ERABLE': ('ERABLE_SYC', 'ERABLE_PLANE', 'ERABLE_CHAMP'),
    'AULNE': ('AULNE_GLUT', 'AULNE_BLANC'),
    'ORME': ('ORME_CHAMP', 'ORME_LISSE', 'ORME_MONT'),
    'SAULE': ('SAULE_BLANC', 'SAULE_FRAGILE', 'SAULE_MARSAULT'),
    'TILLEUL': ('TIL_PET_FEUIL', 'TIL_GR_FEUIL'),
    'PIN': ('PIN_SYLVESTRE', 'PIN_MARITIME', 'PIN_NOIR_AUTR', 'PIN_LARICIO'),
    'MELEZE': ('MEL_EUROPE', 'MEL_HYBRIDE'),
    'ALISIER': ('ALISIER_TORM', 'ALISIER_BLANC'),
}


def normalize_code(code: Optional[str]) -> str:
    """Trim and upper-case a code. ``None`` becomes an empty string."""
    if code is None:
        return ''
    return str(code).strip().upper()


def normalize_species_code(code: Optional[str]) -> str:
    """Normalize a species code for use as a lookup key.

    Args:
        code: Raw species code (e.g. ' hetre_commun ')

    Returns:
        Normalized code (e.g. 'HETRE_COMMUN')
    """
    return normalize_code(code)


def species_code_candidates(code: Optional[str]) -> List[str]:
    """Return the codes to try, in order, when looking a species up in a table.

    Args:
        code: Raw species code

    Returns:
        List starting with the normalized code followed by its aliases
    """
    normalized = normalize_species_code(code)
    return [normalized, *SPECIES_ALIASES.get(normalized, ())]
