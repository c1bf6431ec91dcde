"""
Configuration loader for pymartelage.
Provides unified access to YAML, TOML, and JSON configuration files.

Supports:
- YAML (.yaml, .yml) - engine defaults, species catalog
- TOML (.toml) - user supplied overrides of the same structures
- JSON (.json) - tariff coefficient files (Schaeffer, Algan, IFN, form factors)

Features:
- Coefficient file caching for performance
- Replaceable table directory, so externally sourced tariff tables can be
  used without touching the package data
"""
import json
import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

import yaml

from .exceptions import ConfigurationError, FileNotFoundError as MartelageFileNotFoundError, InvalidDataError

# Handle TOML imports for different Python versions
if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

__all__ = [
    'ConfigLoader',
    'ENGINE_DEFAULTS_FILE',
    'SPECIES_CATALOG_FILE',
    'get_config_loader',
    'set_config_dir',
    'load_coefficient_file',
    'load_engine_defaults',
    'clear_config_cache',
    'register_cache_clear_hook',
]

ENGINE_DEFAULTS_FILE = 'engine_defaults.yaml'
SPECIES_CATALOG_FILE = 'species_catalog.yaml'


class ConfigLoader:
    """Loads and caches pymartelage configuration from a cfg/ directory.

    Provides unified access to:
    - Engine defaults (YAML)
    - Species catalog (YAML)
    - Tariff coefficient files (JSON) with caching

    Attributes:
        cfg_dir: Path to the configuration directory
    """

    def __init__(self, cfg_dir: Optional[Union[str, Path]] = None):
        """Initialize the configuration loader.

        Args:
            cfg_dir: Path to the configuration directory. Defaults to the
                cfg/ directory shipped inside the package.
        """
        if cfg_dir is None:
            cfg_dir = Path(__file__).parent / 'cfg'
        self.cfg_dir = Path(cfg_dir)
        if not self.cfg_dir.is_dir():
            raise ConfigurationError(f"Configuration directory does not exist: {self.cfg_dir}")

        # Cache for coefficient files (loaded once, reused)
        self._coefficient_cache: Dict[str, Dict[str, Any]] = {}

    def _load_config_file(self, file_path: Path) -> Dict[str, Any]:
        """Load configuration from a YAML, TOML or JSON file.

        Args:
            file_path: Path to the configuration file

        Returns:
            Dictionary containing configuration data

        Raises:
            FileNotFoundError: If file doesn't exist
            ConfigurationError: If file format is not supported or loading fails
            InvalidDataError: If parsing fails or the file is empty
        """
        if not file_path.exists():
            raise MartelageFileNotFoundError(str(file_path), "configuration file")

        suffix = file_path.suffix.lower()

        try:
            if suffix in ['.yaml', '.yml']:
                with open(file_path, 'r', encoding='utf-8') as f:
                    data = yaml.safe_load(f)
                    if data is None:
                        raise InvalidDataError("YAML file", "file is empty or contains only comments")
                    return data
            elif suffix == '.toml':
                with open(file_path, 'rb') as f:
                    return tomllib.load(f)
            elif suffix == '.json':
                with open(file_path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
                    if data is None:
                        raise InvalidDataError("JSON file", "file is empty or contains null")
                    return data
            else:
                raise ConfigurationError(f"Unsupported configuration file format: {suffix}. "
                                         f"Supported formats: .yaml, .yml, .toml, .json")
        except yaml.YAMLError as e:
            raise InvalidDataError("YAML configuration", f"parsing error: {str(e)}") from e
        except json.JSONDecodeError as e:
            raise InvalidDataError("JSON configuration", f"parsing error: {str(e)}") from e
        except tomllib.TOMLDecodeError as e:
            raise InvalidDataError("TOML configuration", f"parsing error: {str(e)}") from e
        except (ConfigurationError, InvalidDataError):
            raise
        except OSError as e:
            raise ConfigurationError(f"Failed to load configuration from {file_path}: {str(e)}") from e

    def load_coefficient_file(self, filename: str) -> Dict[str, Any]:
        """Load a coefficient file with caching.

        Coefficient files are loaded once and cached for performance.

        Args:
            filename: Name of the coefficient file (e.g., 'algan_coefficients.json')

        Returns:
            Dictionary containing coefficient data

        Raises:
            FileNotFoundError: If the file doesn't exist
            InvalidDataError: If the file cannot be parsed
        """
        if filename not in self._coefficient_cache:
            self._coefficient_cache[filename] = self._load_config_file(self.cfg_dir / filename)
        return self._coefficient_cache[filename]

    def load_engine_defaults(self) -> Dict[str, Any]:
        """Load engine defaults (class grid, default tariff, sanity thresholds)."""
        return self.load_coefficient_file(ENGINE_DEFAULTS_FILE)

    def load_species_catalog_data(self) -> Dict[str, Any]:
        """Load the raw species catalog data."""
        data = self.load_coefficient_file(SPECIES_CATALOG_FILE)
        if 'species' not in data:
            raise InvalidDataError("species catalog", "missing 'species' list")
        return data

    def clear_coefficient_cache(self) -> None:
        """Clear the coefficient file cache.

        Useful for testing or when configuration files may have changed.
        """
        self._coefficient_cache.clear()


# Global configuration loader instance
_config_loader: Optional[ConfigLoader] = None

# Caches built from the tables, dropped whenever the tables change
_cache_clear_hooks: List[Callable[[], None]] = []


def register_cache_clear_hook(hook: Callable[[], None]) -> Callable[[], None]:
    """Register a callback clearing a cache derived from the loaded tables.

    The hook runs on set_config_dir() and clear_config_cache(). Usable as a
    decorator.
    """
    if hook not in _cache_clear_hooks:
        _cache_clear_hooks.append(hook)
    return hook


def _run_cache_clear_hooks() -> None:
    for hook in _cache_clear_hooks:
        hook()


def get_config_loader() -> ConfigLoader:
    """Get the shared configuration loader instance.

    Returns:
        ConfigLoader instance reading the active cfg/ directory
    """
    global _config_loader
    if _config_loader is None:
        _config_loader = ConfigLoader()
    return _config_loader


def set_config_dir(cfg_dir: Optional[Union[str, Path]]) -> ConfigLoader:
    """Point the shared loader at another table directory.

    Args:
        cfg_dir: Directory holding replacement configuration files, or None
            to go back to the packaged defaults

    Returns:
        The new shared ConfigLoader
    """
    global _config_loader
    _config_loader = ConfigLoader(cfg_dir)
    _run_cache_clear_hooks()
    return _config_loader


def load_coefficient_file(filename: str) -> Dict[str, Any]:
    """Convenience function to load a coefficient file with caching.

    Args:
        filename: Name of the coefficient file (e.g., 'ifn_coefficients.json')

    Returns:
        Dictionary containing coefficient data
    """
    return get_config_loader().load_coefficient_file(filename)


def load_engine_defaults() -> Dict[str, Any]:
    """Convenience function to load the engine defaults."""
    return get_config_loader().load_engine_defaults()


def clear_config_cache() -> None:
    """Clear the shared loader's cache and every cache derived from it."""
    get_config_loader().clear_coefficient_cache()
    _run_cache_clear_hooks()
