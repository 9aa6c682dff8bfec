"""
Entity validation results.
"""

from typing import Any, Iterable, List, Mapping, Type

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError


class ValidationResult(BaseModel):
    """Outcome of validating one entity; one message per violated rule."""

    is_valid: bool
    errors: List[str] = Field(default_factory=list)

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(is_valid=True)

    @classmethod
    def failed(cls, errors: Iterable[str]) -> "ValidationResult":
        errors = list(errors)
        if not errors:
            raise ValueError("A failed validation needs at least one error")
        return cls(is_valid=False, errors=errors)

    @classmethod
    def from_errors(cls, errors: Iterable[str]) -> "ValidationResult":
        """Valid when ``errors`` is empty."""
        errors = list(errors)
        return cls(is_valid=not errors, errors=errors)

    def merge(self, other: "ValidationResult") -> "ValidationResult":
        return ValidationResult.from_errors([*self.errors, *other.errors])


def format_pydantic_errors(error: PydanticValidationError) -> List[str]:
    """Flatten pydantic errors into '<field path>: <message>' strings."""
    messages = []
    for detail in error.errors():
        location = ".".join(str(part) for part in detail.get("loc", ())) or "entity"
        messages.append(f"{location}: {detail.get('msg', 'invalid value')}")
    return messages


def validate_with_model(
    model: Type[BaseModel], entity: Mapping[str, Any]
) -> ValidationResult:
    """Validate a dict entity against a pydantic model."""
    try:
        model.model_validate(entity)
    except PydanticValidationError as e:
        return ValidationResult.failed(format_pydantic_errors(e))
    return ValidationResult.ok()
