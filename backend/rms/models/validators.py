"""Model-level validation utilities for data integrity.

Reusable validators that enforce business rules at the ORM level, so invalid
data never reaches the database regardless of which engine writes it.
"""

from decimal import Decimal


def non_negative(key: str, value):
    """Validate that a numeric value is >= 0."""
    if value is not None:
        v = Decimal(str(value)) if not isinstance(value, Decimal) else value
        if v < 0:
            raise ValueError(f"{key} cannot be negative, got {value}")
    return value


def positive(key: str, value):
    """Validate that a numeric value is > 0."""
    if value is not None:
        v = Decimal(str(value)) if not isinstance(value, Decimal) else value
        if v <= 0:
            raise ValueError(f"{key} must be positive, got {value}")
    return value


def fraction(key: str, value):
    """Validate that a rate is between 0 and 1 inclusive."""
    if value is not None:
        v = Decimal(str(value)) if not isinstance(value, Decimal) else value
        if v < 0 or v > 1:
            raise ValueError(f"{key} must be between 0 and 1, got {value}")
    return value


def validate_id_list(key: str, value):
    """Validate that a JSON column value is a list of ints (or None)."""
    if value is not None:
        if not isinstance(value, list):
            raise ValueError(f"{key} must be a list, got {type(value).__name__}")
        for i, item in enumerate(value):
            if not isinstance(item, int):
                raise ValueError(f"{key}[{i}] must be an int, got {type(item).__name__}")
    return value
