"""
Utility functions for pymartelage.

This module provides common utilities used throughout the codebase.
"""

from .string_utils import (
    normalize_code,
    normalize_species_code,
    species_code_candidates,
    SPECIES_ALIASES,
)

__all__ = [
    "normalize_code",
    "normalize_species_code",
    "species_code_candidates",
    "SPECIES_ALIASES",
]
