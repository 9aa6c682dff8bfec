"""
Repository layer.

Domain repository factories live in entity_store.repositories.factories.
"""

from .base import EntityHooks, EntityRepository, KeyFieldHooks
from .cache import CacheEntry, CacheStats, CacheStore
from .retry import RetryConfig, RetryExecutor
from .update_expression import UNSET, UpdateExpression, build_update_expression

__all__ = [
    "EntityHooks",
    "EntityRepository",
    "KeyFieldHooks",
    "CacheEntry",
    "CacheStats",
    "CacheStore",
    "RetryConfig",
    "RetryExecutor",
    "UNSET",
    "UpdateExpression",
    "build_update_expression",
]
