"""
Document Store Infrastructure

Store client interface, implementations and the store error taxonomy.

This module provides:
- StoreClient: Async interface EntityRepository depends on
- InMemoryStoreClient: Process-local store for development and tests
- RedisStoreClient: Redis-backed JSON document store
- Exceptions: Validation, conditional, transient and permanent failures
"""

from .client import PutCondition, StoreClient
from .exceptions import (
    BatchLimitExceededException,
    ConditionalCheckFailedException,
    PermanentStoreException,
    StoreException,
    TransientStoreException,
    ValidationException,
    is_retryable_error,
)
from .memory import InMemoryStoreClient
from .redis_store import RedisStoreClient

__all__ = [
    # Interface
    "StoreClient",
    "PutCondition",
    # Implementations
    "InMemoryStoreClient",
    "RedisStoreClient",
    # Exceptions
    "StoreException",
    "ValidationException",
    "ConditionalCheckFailedException",
    "TransientStoreException",
    "PermanentStoreException",
    "BatchLimitExceededException",
    "is_retryable_error",
]
