"""
Repository factories for the domain entity types.

Repositories are built explicitly from a store client and settings; there
are no module-level repository instances.
"""

from typing import Any, Dict, Optional, Tuple

import structlog

from entity_store.core.config import Settings, get_settings
from entity_store.domain.hooks import (
    ArtifactHooks,
    ContentCacheHooks,
    HeritageSiteHooks,
    UserSessionHooks,
)
from entity_store.infrastructure.store.client import StoreClient
from .base import EntityRepository, KeyFieldHooks

logger = structlog.get_logger()


def entity_tables(settings: Optional[Settings] = None) -> Dict[str, Tuple[str, ...]]:
    """Table name -> key fields for every domain table, for store setup."""
    settings = settings or get_settings()
    return {
        settings.HERITAGE_SITES_TABLE: HeritageSiteHooks.key_fields,
        settings.ARTIFACTS_TABLE: ArtifactHooks.key_fields,
        settings.USER_SESSIONS_TABLE: UserSessionHooks.key_fields,
        settings.CONTENT_CACHE_TABLE: ContentCacheHooks.key_fields,
    }


def _build(
    store: StoreClient,
    table_name: str,
    hooks: KeyFieldHooks,
    cache_ttl_seconds: float,
    settings: Settings,
    overrides: Dict[str, Any],
) -> EntityRepository:
    options: Dict[str, Any] = {"cache_ttl_seconds": cache_ttl_seconds}
    options.update(overrides)
    repository = EntityRepository(
        store, table_name, hooks, settings=settings, **options
    )
    logger.debug(
        "Repository created",
        table=table_name,
        cache_enabled=repository.cache_enabled,
        cache_ttl_seconds=repository.cache_ttl_seconds,
    )
    return repository


def build_heritage_sites_repository(
    store: StoreClient, settings: Optional[Settings] = None, **overrides: Any
) -> EntityRepository:
    settings = settings or get_settings()
    return _build(
        store,
        settings.HERITAGE_SITES_TABLE,
        HeritageSiteHooks(),
        settings.HERITAGE_SITES_CACHE_TTL_SECONDS,
        settings,
        overrides,
    )


def build_artifacts_repository(
    store: StoreClient, settings: Optional[Settings] = None, **overrides: Any
) -> EntityRepository:
    settings = settings or get_settings()
    return _build(
        store,
        settings.ARTIFACTS_TABLE,
        ArtifactHooks(),
        settings.ARTIFACTS_CACHE_TTL_SECONDS,
        settings,
        overrides,
    )


def build_user_sessions_repository(
    store: StoreClient, settings: Optional[Settings] = None, **overrides: Any
) -> EntityRepository:
    settings = settings or get_settings()
    return _build(
        store,
        settings.USER_SESSIONS_TABLE,
        UserSessionHooks(),
        settings.USER_SESSIONS_CACHE_TTL_SECONDS,
        settings,
        overrides,
    )


def build_content_cache_repository(
    store: StoreClient, settings: Optional[Settings] = None, **overrides: Any
) -> EntityRepository:
    settings = settings or get_settings()
    return _build(
        store,
        settings.CONTENT_CACHE_TABLE,
        ContentCacheHooks(),
        settings.CONTENT_CACHE_CACHE_TTL_SECONDS,
        settings,
        overrides,
    )
