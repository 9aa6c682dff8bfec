"""
Entity hooks for the stored domain types.

Each hook pairs a pydantic schema with the entity's primary key fields and
cache key prefix; EntityRepository uses them for validation and key
derivation.
"""

from datetime import datetime
from typing import Any, List, Mapping, Type

from pydantic import BaseModel

from entity_store.repositories.base import KeyFieldHooks
from .models import ArtifactMetadata, HeritageSite, MultimediaContent, UserSession
from .validation import ValidationResult, validate_with_model


class ModelHooks(KeyFieldHooks):
    """KeyFieldHooks that validate entities against a pydantic model."""

    model: Type[BaseModel]

    def validate_entity(self, entity: Any) -> ValidationResult:
        if not isinstance(entity, Mapping):
            return ValidationResult.failed(["entity: must be a mapping"])
        return validate_with_model(self.model, entity)


class HeritageSiteHooks(ModelHooks):
    model = HeritageSite
    key_fields = ("siteId",)
    cache_prefix = "heritage-site"


class ArtifactHooks(ModelHooks):
    model = ArtifactMetadata
    key_fields = ("siteId", "artifactId")
    cache_prefix = "artifact"


class UserSessionHooks(ModelHooks):
    model = UserSession
    key_fields = ("sessionId",)
    cache_prefix = "user-session"


def _is_timestamp(value: Any) -> bool:
    if not isinstance(value, str) or not value:
        return False
    try:
        # fromisoformat only accepts a trailing "Z" from Python 3.11 on
        datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return False
    return True


class ContentCacheHooks(ModelHooks):
    """
    Cached multimedia content.

    Besides the MultimediaContent schema, cached entries carry access
    bookkeeping that must be well formed: a non-negative accessCount and
    ISO-8601 lastAccessed/expiresAt timestamps.
    """

    model = MultimediaContent
    key_fields = ("contentId",)
    cache_prefix = "content-cache"

    def validate_entity(self, entity: Any) -> ValidationResult:
        base = super().validate_entity(entity)
        if not base.is_valid:
            return base

        errors: List[str] = []
        access_count = entity.get("accessCount")
        if (
            not isinstance(access_count, (int, float))
            or isinstance(access_count, bool)
            or access_count < 0
        ):
            errors.append("accessCount: must be a non-negative number")
        if not _is_timestamp(entity.get("lastAccessed")):
            errors.append("lastAccessed: must be a valid ISO timestamp")
        if not _is_timestamp(entity.get("expiresAt")):
            errors.append("expiresAt: must be a valid ISO timestamp")
        return ValidationResult.from_errors(errors)
