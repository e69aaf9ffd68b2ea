"""Configuration validation engine."""

from .engine import (
    FieldError,
    FieldErrorCode,
    ValidationResult,
    validate,
    validate_value,
)

__all__ = [
    'FieldError',
    'FieldErrorCode',
    'ValidationResult',
    'validate',
    'validate_value',
]
