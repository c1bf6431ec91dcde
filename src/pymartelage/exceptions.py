"""
Custom exceptions for pymartelage.
Provides domain-specific error handling with informative messages.
"""


class MartelageError(Exception):
    """Base exception for all pymartelage errors."""
    pass


class ConfigurationError(MartelageError):
    """Raised when there are configuration-related issues."""
    pass


class SpeciesNotFoundError(ConfigurationError):
    """Raised when a species code is not found in a catalog or table."""
    def __init__(self, species_code: str, where: str = "species catalog"):
        self.species_code = species_code
        self.where = where
        super().__init__(f"Species '{species_code}' not found in {where}.")


class TariffError(ConfigurationError):
    """Raised when a tariff table cannot be used for a volume computation."""
    def __init__(self, method: str, reason: str):
        self.method = method
        self.reason = reason
        super().__init__(f"Tariff '{method}' unusable: {reason}")


class ParameterError(MartelageError):
    """Raised when parameters are invalid or out of bounds."""
    pass


class InvalidParameterError(ParameterError):
    """Raised when a parameter value is invalid."""
    def __init__(self, param_name: str, value: object, reason: str = ""):
        self.param_name = param_name
        self.value = value
        self.reason = reason
        message = f"Invalid value for parameter '{param_name}': {value}"
        if reason:
            message += f" ({reason})"
        super().__init__(message)


class InvalidTariffSelectionError(InvalidParameterError):
    """Raised when a tariff numero is missing or outside its method's range."""
    def __init__(self, method: str, numero: object, reason: str):
        self.method = method
        super().__init__('numero', numero, f"{method}: {reason}")


class AggregationError(MartelageError):
    """Raised when stand-level aggregation cannot proceed."""
    pass


class EmptyScopeError(AggregationError):
    """Raised when an operation needs stems but the scope holds none."""
    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Cannot perform '{operation}' on an empty stem scope.")


class DataError(MartelageError):
    """Raised when there are data-related issues."""
    pass


class FileNotFoundError(DataError):
    """Raised when a required file is not found."""
    def __init__(self, file_path: str, file_type: str = "file"):
        self.file_path = file_path
        self.file_type = file_type
        super().__init__(f"Required {file_type} not found: {file_path}")


class InvalidDataError(DataError):
    """Raised when data is malformed or invalid."""
    def __init__(self, data_description: str, reason: str):
        self.data_description = data_description
        self.reason = reason
        super().__init__(f"Invalid {data_description}: {reason}")


# Validation utilities
def validate_positive(value: float, param_name: str) -> float:
    """Validate that a value is positive.

    Args:
        value: Value to validate
        param_name: Parameter name for error message

    Returns:
        The validated value

    Raises:
        InvalidParameterError: If value is not positive
    """
    if value <= 0:
        raise InvalidParameterError(param_name, value, "must be positive")
    return value

