"""
Base class for table-driven cubage models.

Provides common functionality for loading coefficients keyed by species code
or tariff numero from JSON configuration files, with caching and fallback
support.

Usage:
    class AlganTariff(ParameterizedModel):
        COEFFICIENT_FILE = 'algan_coefficients.json'
        COEFFICIENT_KEY = 'species_coefficients'
        DEFAULT_KEY = 'HETRE_COMMUN'
        FALLBACK_PARAMETERS = {
            'HETRE_COMMUN': {'a': 0.0000362, 'b': 2.158, 'c': 0.860}
        }
"""
from abc import ABC
from typing import Any, Dict, List, Optional

from .config_loader import load_coefficient_file
from .exceptions import FileNotFoundError as MartelageFileNotFoundError, TariffError
from .utils import species_code_candidates


class ParameterizedModel(ABC):
    """Base class for models whose coefficients come from a lookup table.

    Subclasses must define:
        COEFFICIENT_FILE: str - Name of the JSON file containing coefficients
        COEFFICIENT_KEY: str - Dotted path to the table inside the file
            (e.g. 'one_entry.numeros')

    Optional class attributes:
        FALLBACK_PARAMETERS: dict - Coefficients used when the file is missing
        DEFAULT_KEY: str - Table row used when the requested key is absent.
            When None, an absent key raises TariffError.
        SPECIES_KEYED: bool - Try species alias candidates when looking up

    Attributes:
        key: The requested table key (species code or tariff numero)
        resolved_key: The table row actually used
        coefficients: The loaded coefficients for the row
        raw_data: The complete raw data loaded from the coefficient file
    """

    COEFFICIENT_FILE: str = None
    COEFFICIENT_KEY: str = 'species_coefficients'
    FALLBACK_PARAMETERS: Dict[str, Dict[str, Any]] = {}
    DEFAULT_KEY: Optional[str] = None
    SPECIES_KEYED: bool = True

    def __init__(self, key: Any):
        self.key = str(key)
        self.resolved_key: Optional[str] = None
        self.coefficients: Dict[str, Any] = {}
        self.raw_data: Dict[str, Any] = {}
        self._load_parameters()

    def _get_coefficient_data(self) -> Dict[str, Any]:
        """Load coefficient data using the shared ConfigLoader cache.

        Returns:
            Dictionary containing the full coefficient file data,
            or empty dict if file not found.
        """
        if self.COEFFICIENT_FILE is None:
            raise NotImplementedError(
                f"{self.__class__.__name__} must define COEFFICIENT_FILE class attribute"
            )

        try:
            return load_coefficient_file(self.COEFFICIENT_FILE)
        except MartelageFileNotFoundError:
            return {}

    def _table(self) -> Dict[str, Any]:
        """Walk COEFFICIENT_KEY down the raw data."""
        table: Any = self.raw_data
        for part in self.COEFFICIENT_KEY.split('.'):
            if not isinstance(table, dict):
                return {}
            table = table.get(part, {})
        return table if isinstance(table, dict) else {}

    def _lookup_keys(self) -> List[str]:
        if self.SPECIES_KEYED:
            return species_code_candidates(self.key)
        return [self.key]

    def _load_parameters(self) -> None:
        """Load coefficients for the requested key.

        This method:
        1. Loads the coefficient file data (cached)
        2. Tries the key (and its species aliases)
        3. Falls back to DEFAULT_KEY when defined
        4. Falls back to FALLBACK_PARAMETERS if the file is unavailable
        """
        self.raw_data = self._get_coefficient_data()
        table = self._table() if self.raw_data else self.FALLBACK_PARAMETERS

        for candidate in self._lookup_keys():
            if candidate in table:
                self.resolved_key = candidate
                self.coefficients = dict(table[candidate])
                return

        if self.DEFAULT_KEY is not None and self.DEFAULT_KEY in table:
            self.resolved_key = self.DEFAULT_KEY
            self.coefficients = dict(table[self.DEFAULT_KEY])
            return

        raise TariffError(
            self.__class__.__name__,
            f"no coefficients for '{self.key}' in {self.COEFFICIENT_FILE}",
        )

    def get_coefficients(self) -> Dict[str, Any]:
        """Get a copy of the coefficients for this row."""
        return self.coefficients.copy()

    def get_coefficient(self, name: str) -> float:
        """Get a specific coefficient value.

        Raises:
            TariffError: If the coefficient is missing or not numeric
        """
        try:
            return float(self.coefficients[name])
        except (KeyError, TypeError, ValueError) as e:
            raise TariffError(
                self.__class__.__name__,
                f"coefficient '{name}' missing or invalid for '{self.resolved_key}'",
            ) from e

    def __repr__(self) -> str:
        """Return string representation of the model."""
        return f"{self.__class__.__name__}(key='{self.key}')"
