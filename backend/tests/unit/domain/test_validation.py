"""
Unit tests for validation results.
"""

import pytest
from pydantic import BaseModel, Field

from entity_store.domain.validation import ValidationResult, validate_with_model


class Thing(BaseModel):
    id: str = Field(..., min_length=1)
    count: int = Field(default=0, ge=0)


class TestValidationResult:
    def test_ok(self):
        result = ValidationResult.ok()

        assert result.is_valid
        assert result.errors == []

    def test_failed_requires_errors(self):
        with pytest.raises(ValueError):
            ValidationResult.failed([])

    def test_from_errors(self):
        assert ValidationResult.from_errors([]).is_valid
        assert not ValidationResult.from_errors(["bad"]).is_valid

    def test_merge_aggregates_errors(self):
        merged = ValidationResult.failed(["a"]).merge(ValidationResult.failed(["b"]))

        assert not merged.is_valid
        assert merged.errors == ["a", "b"]

    def test_merge_of_valid_results_is_valid(self):
        assert ValidationResult.ok().merge(ValidationResult.ok()).is_valid


class TestValidateWithModel:
    def test_valid_entity(self):
        assert validate_with_model(Thing, {"id": "1", "count": 2}).is_valid

    def test_errors_name_the_field(self):
        result = validate_with_model(Thing, {"id": "", "count": -1})

        assert [error.split(":")[0] for error in result.errors] == ["id", "count"]

    def test_missing_field(self):
        result = validate_with_model(Thing, {})

        assert result.errors == ["id: Field required"]
