"""
Logging configuration for pymartelage.

Every module obtains its logger through ``get_logger(__name__)`` so that the
whole package hangs off the ``pymartelage`` logger and can be configured in
one place with ``setup_logging``.
"""
import logging
from pathlib import Path
from typing import Optional, Union

__all__ = [
    'PACKAGE_LOGGER_NAME',
    'DEFAULT_FORMAT',
    'get_logger',
    'setup_logging',
    'log_species_failure',
    'log_synthesis_summary',
]

PACKAGE_LOGGER_NAME = 'pymartelage'
DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Library default: stay silent unless the application configures logging.
logging.getLogger(PACKAGE_LOGGER_NAME).addHandler(logging.NullHandler())


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a pymartelage module.

    Args:
        name: Usually ``__name__`` of the calling module

    Returns:
        Logger instance
    """
    return logging.getLogger(name)


def setup_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
    fmt: str = DEFAULT_FORMAT,
) -> logging.Logger:
    """Configure the package logger.

    Calling this more than once replaces the handlers installed by the
    previous call instead of stacking them.

    Args:
        level: Logging level (name or number)
        log_file: Optional file to write log records to
        fmt: Record format string

    Returns:
        The configured package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    if isinstance(level, str):
        level = level.upper()
    logger.setLevel(level)

    for handler in list(logger.handlers):
        if getattr(handler, '_pymartelage_handler', False):
            logger.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(fmt)
    handlers = [logging.StreamHandler()]
    if log_file is not None:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(path, encoding='utf-8'))

    for handler in handlers:
        handler.setFormatter(formatter)
        handler._pymartelage_handler = True
        logger.addHandler(handler)

    return logger


def log_species_failure(logger: logging.Logger, species_code: str,
                        error: BaseException) -> None:
    """Log a per-species synthesis failure."""
    logger.warning(
        "Synthesis failed for species %s (%s): %s",
        species_code, type(error).__name__, error,
    )


def log_synthesis_summary(logger: logging.Logger, n_species: int, n_stems: int,
                          volume_available: bool, n_failed: int) -> None:
    """Log the outcome of one aggregation pass at DEBUG level."""
    logger.debug(
        "Aggregated %d stems over %d species (volume available: %s, failed species: %d)",
        n_stems, n_species, volume_available, n_failed,
    )
