"""
Domain layer: entity schemas, validation results and repository hooks.
"""

from .validation import ValidationResult, format_pydantic_errors, validate_with_model

__all__ = [
    "ValidationResult",
    "format_pydantic_errors",
    "validate_with_model",
]
