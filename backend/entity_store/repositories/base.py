"""
Entity Repository

Generic data-access layer over a document store: retry-wrapped CRUD, query,
scan and batch operations, validation-gated writes and a TTL entity cache.

Entity-specific behaviour comes from an injected EntityHooks object
(validation, primary key projection, cache key derivation), so domain
repositories are built by composition rather than subclassing.

RULES:
- Validation failures never reach the store
- The cache is only touched after the store confirms a result
- Absence is never cached
- No batch call exceeds the store's read/write limits
"""

import json
from typing import (
    Any,
    Dict,
    Generic,
    Iterable,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Set,
    TypeVar,
)

import structlog

from entity_store.core.config import Settings, get_settings
from entity_store.domain.validation import ValidationResult
from entity_store.infrastructure.store.client import (
    RETURN_VALUES,
    Key,
    PutCondition,
    StoreClient,
)
from entity_store.infrastructure.store.exceptions import ValidationException
from .cache import CacheStats, CacheStore
from .retry import RetryConfig, RetryExecutor
from .update_expression import build_update_expression

logger = structlog.get_logger()

T = TypeVar("T", bound=Mapping[str, Any])


class EntityHooks(Protocol):
    """Entity-specific behaviour supplied to EntityRepository."""

    def validate_entity(self, entity: Any) -> ValidationResult:
        """Check an entity before it is written."""
        ...

    def get_primary_key(self, entity: Any) -> Key:
        """Project the primary key fields out of an entity."""
        ...

    def get_cache_key(self, key: Key) -> str:
        """Derive a unique, deterministic cache key from a primary key."""
        ...


class KeyFieldHooks:
    """
    Hooks for entities keyed by a fixed list of fields.

    Primary key is the projection of ``key_fields``; cache key is
    ``"{prefix}:{value1}:{value2}..."`` in ``key_fields`` order, with each
    value encoded by _encode_key_part. Subclasses override validate_entity.
    """

    key_fields: Sequence[str] = ()
    cache_prefix: str = ""

    def __init__(
        self,
        key_fields: Optional[Sequence[str]] = None,
        cache_prefix: Optional[str] = None,
    ):
        if key_fields is not None:
            self.key_fields = tuple(key_fields)
        if cache_prefix is not None:
            self.cache_prefix = cache_prefix
        if not self.key_fields:
            raise ValueError("key_fields must name at least one field")
        if not self.cache_prefix:
            raise ValueError("cache_prefix is required")

    def validate_entity(self, entity: Any) -> ValidationResult:
        errors = [
            f"{field} is required"
            for field in self.key_fields
            if entity.get(field) in (None, "")
        ]
        return ValidationResult.from_errors(errors)

    def get_primary_key(self, entity: Any) -> Key:
        return {field: entity[field] for field in self.key_fields}

    def get_cache_key(self, key: Key) -> str:
        missing = [field for field in self.key_fields if field not in key]
        if missing:
            raise KeyError(f"Key is missing fields: {', '.join(missing)}")
        parts = [_encode_key_part(key[field]) for field in self.key_fields]
        return ":".join([self.cache_prefix, *parts])


def _encode_key_part(value: Any) -> str:
    """
    Encode one key value as a cache key segment.

    Strings are kept readable with ``\\`` and ``:`` escaped and a leading
    ``#`` escaped. Any other value is ``#`` followed by its escaped JSON, so
    ``1`` and ``"1"`` get different segments.
    """
    is_text = isinstance(value, str)
    text = value if is_text else json.dumps(value, sort_keys=True, default=str)
    text = text.replace("\\", "\\\\").replace(":", "\\:")
    if not is_text:
        return "#" + text
    if text.startswith("#"):
        return "\\" + text
    return text


def _batch_limit(
    name: str, requested: Optional[int], cap: int, store_limit: Any
) -> int:
    """Resolve a batch size: settings cap, optional override, store's own limit."""
    limit = cap if requested is None else requested
    if not 1 <= limit <= cap:
        raise ValueError(f"{name} must be between 1 and {cap}")
    if (
        isinstance(store_limit, int)
        and not isinstance(store_limit, bool)
        and 0 < store_limit < limit
    ):
        return store_limit
    return limit


def _chunked(items: Sequence[Any], size: int) -> Iterable[Sequence[Any]]:
    for start in range(0, len(items), size):
        yield items[start : start + size]


class EntityRepository(Generic[T]):
    """
    Generic entity repository.

    One instance per entity type, constructed once with a fixed table,
    retry policy, cache flag and TTL. Store calls run through a
    RetryExecutor; successful results refresh or invalidate the cache.
    Cache faults are logged and degrade to plain store access.
    """

    def __init__(
        self,
        store: StoreClient,
        table_name: str,
        hooks: EntityHooks,
        retry_config: Optional[RetryConfig] = None,
        cache_enabled: Optional[bool] = None,
        cache_ttl_seconds: Optional[float] = None,
        read_batch_limit: Optional[int] = None,
        write_batch_limit: Optional[int] = None,
        cache: Optional[CacheStore] = None,
        sleep=None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize repository.

        Args:
            store: Document store client
            table_name: Table every call is scoped to
            hooks: Validation, primary key and cache key behaviour
            retry_config: Retry policy, defaults to the RETRY_* settings
            cache_enabled: Enable the entity cache, defaults to CACHE_ENABLED
            cache_ttl_seconds: Entity cache TTL, defaults to CACHE_DEFAULT_TTL_SECONDS
            read_batch_limit: Max keys per batch get call
            write_batch_limit: Max puts+deletes per batch write call
            cache: Pre-built CacheStore (ignored when caching is disabled)
            sleep: Awaitable sleep used between retries
            settings: Settings to read defaults from

        Raises:
            ValueError: If table_name is empty or a limit is outside
                1..STORE_*_BATCH_LIMIT

        Batch limits are further lowered to the store's own
        read_batch_limit/write_batch_limit when it declares smaller ones.
        """
        if not table_name:
            raise ValueError("table_name is required")

        settings = settings or get_settings()

        self.store = store
        self.table_name = table_name
        self.hooks = hooks
        self.retry_config = retry_config or settings.default_retry_config()
        self.cache_enabled = (
            settings.CACHE_ENABLED if cache_enabled is None else cache_enabled
        )
        self.cache_ttl_seconds = (
            cache_ttl_seconds
            if cache_ttl_seconds is not None
            else settings.CACHE_DEFAULT_TTL_SECONDS
        )
        self.read_batch_limit = _batch_limit(
            "read_batch_limit",
            read_batch_limit,
            settings.STORE_READ_BATCH_LIMIT,
            getattr(store, "read_batch_limit", None),
        )
        self.write_batch_limit = _batch_limit(
            "write_batch_limit",
            write_batch_limit,
            settings.STORE_WRITE_BATCH_LIMIT,
            getattr(store, "write_batch_limit", None),
        )

        self._cache: Optional[CacheStore] = None
        if self.cache_enabled:
            self._cache = (
                cache
                if cache is not None
                else CacheStore(
                    default_ttl_seconds=self.cache_ttl_seconds,
                    max_entries=settings.CACHE_MAX_ENTRIES,
                )
            )

        self._retry = RetryExecutor(
            self.retry_config, table_name=table_name, sleep=sleep
        )

    # Cache access; failures here never abort an operation

    def _cache_get(self, cache_key: str) -> Optional[T]:
        if self._cache is None:
            return None
        try:
            return self._cache.get(cache_key)
        except Exception as e:
            logger.warning(
                "Repository: Cache read failed, falling back to store",
                table=self.table_name,
                cache_key=cache_key,
                error=str(e),
            )
            return None

    def _cache_set(self, key: Key, entity: T) -> None:
        if self._cache is None:
            return
        cache_key = self.hooks.get_cache_key(key)
        try:
            self._cache.set(cache_key, entity, self.cache_ttl_seconds)
        except Exception as e:
            logger.warning(
                "Repository: Cache write failed",
                table=self.table_name,
                cache_key=cache_key,
                error=str(e),
            )
            self._cache_invalidate(key)

    def _cache_reserve(self, cache_key: str) -> Optional[object]:
        if self._cache is None:
            return None
        try:
            return self._cache.reserve(cache_key)
        except Exception as e:
            logger.warning(
                "Repository: Cache reservation failed",
                table=self.table_name,
                cache_key=cache_key,
                error=str(e),
            )
            return None

    def _cache_fill(self, cache_key: str, token: Optional[object], entity: T) -> None:
        """Store a read result unless a write touched the key since reserve."""
        if self._cache is None or token is None:
            return
        try:
            self._cache.set_if_current(
                cache_key, token, entity, self.cache_ttl_seconds
            )
        except Exception as e:
            logger.warning(
                "Repository: Cache fill failed",
                table=self.table_name,
                cache_key=cache_key,
                error=str(e),
            )
            self._cache_drop(cache_key)

    def _cache_release(self, cache_key: str, token: Optional[object]) -> None:
        if self._cache is None or token is None:
            return
        try:
            self._cache.release(cache_key, token)
        except Exception as e:
            logger.warning(
                "Repository: Cache release failed",
                table=self.table_name,
                cache_key=cache_key,
                error=str(e),
            )

    def _cache_invalidate(self, key: Key) -> None:
        if self._cache is None:
            return
        self._cache_drop(self.hooks.get_cache_key(key))

    def _cache_drop(self, cache_key: str) -> None:
        try:
            self._cache.invalidate(cache_key)
        except Exception as e:
            logger.warning(
                "Repository: Cache invalidation failed",
                table=self.table_name,
                cache_key=cache_key,
                error=str(e),
            )

    def _ensure_valid(self, entity: T) -> None:
        result = self.hooks.validate_entity(entity)
        if not result.is_valid:
            errors = result.errors or ["Entity is invalid"]
            logger.warning(
                "Repository: Entity validation failed",
                table=self.table_name,
                errors=errors,
            )
            raise ValidationException(errors)

    async def get(self, key: Key) -> Optional[T]:
        """
        Get entity by primary key.

        Args:
            key: Primary key fields

        Returns:
            Entity if found, None otherwise (absence is not cached)

        Raises:
            StoreException: If the store call fails permanently or runs out of retries
        """
        cache_key = self.hooks.get_cache_key(key)
        cached = self._cache_get(cache_key)
        if cached is not None:
            logger.debug(
                "Repository: Cache hit", table=self.table_name, cache_key=cache_key
            )
            return cached

        token = self._cache_reserve(cache_key)
        try:
            item = await self._retry.execute(
                lambda: self.store.get_item(self.table_name, key),
                "get",
                {"key": key},
            )
        except BaseException:
            self._cache_release(cache_key, token)
            raise

        if item is None:
            self._cache_release(cache_key, token)
            return None

        self._cache_fill(cache_key, token, item)
        return item

    async def put(self, entity: T, overwrite: bool = True) -> None:
        """
        Write entity.

        Args:
            entity: Entity to store
            overwrite: When False the write only succeeds if no item
                with the same primary key exists

        Raises:
            ValidationException: If the entity is invalid (no store I/O happens)
            ConditionalCheckFailedException: If overwrite=False and the key exists
            StoreException: If the store call fails
        """
        self._ensure_valid(entity)

        key = self.hooks.get_primary_key(entity)
        condition = (
            None
            if overwrite
            else PutCondition(must_not_exist=True, key_fields=tuple(key))
        )

        await self._retry.execute(
            lambda: self.store.put_item(self.table_name, entity, condition),
            "put",
            {"key": key, "overwrite": overwrite},
        )

        self._cache_set(key, entity)
        logger.info("Repository: Entity stored", table=self.table_name, key=key)

    async def update(
        self,
        key: Key,
        updates: Mapping[str, Any],
        return_values: str = "ALL_NEW",
    ) -> Optional[T]:
        """
        Apply a partial update.

        Args:
            key: Primary key fields
            updates: Field -> new value; UNSET values are skipped, None is written
            return_values: Store return mode (ALL_NEW by default)

        Returns:
            Attributes reported by the store, None if it reported nothing

        Raises:
            ValidationException: If no field is left to update
            ValueError: If return_values is unknown
            StoreException: If the store call fails
        """
        if return_values not in RETURN_VALUES:
            raise ValueError(f"return_values must be one of: {RETURN_VALUES}")

        try:
            expression = build_update_expression(updates)
        except ValueError as e:
            raise ValidationException([str(e)]) from e

        try:
            attributes = await self._retry.execute(
                lambda: self.store.update_item(
                    self.table_name, key, expression, return_values
                ),
                "update",
                {"key": key, "fields": list(expression.names.values())},
            )
        except Exception:
            self._cache_invalidate(key)
            raise

        if not attributes:
            self._cache_invalidate(key)
            return None

        if return_values == "ALL_NEW":
            self._cache_set(key, attributes)
        else:
            # Partial or old attributes are not the current item
            self._cache_invalidate(key)

        logger.info(
            "Repository: Entity updated",
            table=self.table_name,
            key=key,
            fields=list(expression.names.values()),
        )
        return attributes

    async def delete(self, key: Key) -> Optional[T]:
        """
        Delete entity.

        Args:
            key: Primary key fields

        Returns:
            Pre-delete attributes if the store reported them, None otherwise

        Raises:
            StoreException: If the store call fails (the cache entry is
                invalidated anyway)
        """
        try:
            attributes = await self._retry.execute(
                lambda: self.store.delete_item(self.table_name, key),
                "delete",
                {"key": key},
            )
        finally:
            self._cache_invalidate(key)

        logger.info("Repository: Entity deleted", table=self.table_name, key=key)
        return attributes or None

    async def query(self, params: Mapping[str, Any]) -> List[T]:
        """Run a store-native query; returns [] when nothing matched."""
        items = await self._retry.execute(
            lambda: self.store.query(self.table_name, params),
            "query",
            {"params": dict(params)},
        )
        return list(items or [])

    async def scan(self, params: Optional[Mapping[str, Any]] = None) -> List[T]:
        """Run a store-native scan; returns [] when nothing matched."""
        items = await self._retry.execute(
            lambda: self.store.scan(self.table_name, params),
            "scan",
            {"params": dict(params) if params else None},
        )
        return list(items or [])

    async def batch_get(self, keys: Sequence[Key]) -> List[T]:
        """
        Get many entities.

        Cached entities are served from the cache. Remaining keys are
        deduplicated and fetched in chunks of at most read_batch_limit keys,
        one store call per chunk. Missing entities are omitted.

        Args:
            keys: Primary keys

        Returns:
            Cached entities followed by fetched entities
        """
        if not keys:
            return []

        results: List[T] = []
        seen: Set[str] = set()
        pending: Dict[str, Key] = {}
        for key in keys:
            cache_key = self.hooks.get_cache_key(key)
            if cache_key in seen:
                continue
            seen.add(cache_key)
            cached = self._cache_get(cache_key)
            if cached is not None:
                results.append(cached)
            else:
                pending[cache_key] = key

        if not pending:
            return results

        tokens = {
            cache_key: self._cache_reserve(cache_key) for cache_key in pending
        }
        pending_keys = list(pending.values())
        try:
            for chunk in _chunked(pending_keys, self.read_batch_limit):
                items = await self._retry.execute(
                    lambda chunk=chunk: self.store.batch_get_item(
                        self.table_name, list(chunk)
                    ),
                    "batch_get",
                    {"key_count": len(chunk)},
                )
                for item in items or []:
                    cache_key = self.hooks.get_cache_key(
                        self.hooks.get_primary_key(item)
                    )
                    self._cache_fill(cache_key, tokens.pop(cache_key, None), item)
                    results.append(item)
        finally:
            for cache_key, token in tokens.items():
                self._cache_release(cache_key, token)

        logger.debug(
            "Repository: Batch get completed",
            table=self.table_name,
            requested=len(keys),
            fetched=len(pending_keys),
            returned=len(results),
        )
        return results

    async def batch_write(
        self,
        put_entities: Sequence[T] = (),
        delete_keys: Sequence[Key] = (),
    ) -> None:
        """
        Write and delete many entities.

        Every put is validated before any I/O; failures from all items are
        reported together. Puts then deletes are sent in chunks of at most
        write_batch_limit requests, one store call per chunk, in order.

        Args:
            put_entities: Entities to write
            delete_keys: Primary keys to delete

        Raises:
            ValidationException: If any put entity is invalid (nothing is written)
            StoreException: If a chunk fails; earlier chunks stay committed
        """
        puts = list(put_entities)
        deletes = list(delete_keys)
        if not puts and not deletes:
            return

        errors: List[str] = []
        for index, entity in enumerate(puts):
            result = self.hooks.validate_entity(entity)
            if not result.is_valid:
                item_errors = result.errors or ["Entity is invalid"]
                errors.extend(f"item {index}: {message}" for message in item_errors)
        if errors:
            logger.warning(
                "Repository: Batch validation failed",
                table=self.table_name,
                errors=errors,
            )
            raise ValidationException(
                errors, message=f"Validation failed for batch put: {', '.join(errors)}"
            )

        requests = [(True, entity) for entity in puts] + [
            (False, key) for key in deletes
        ]
        for chunk in _chunked(requests, self.write_batch_limit):
            chunk_puts = [payload for is_put, payload in chunk if is_put]
            chunk_deletes = [payload for is_put, payload in chunk if not is_put]

            await self._retry.execute(
                lambda chunk_puts=chunk_puts, chunk_deletes=chunk_deletes: self.store.batch_write_item(
                    self.table_name, chunk_puts, chunk_deletes
                ),
                "batch_write",
                {"put_count": len(chunk_puts), "delete_count": len(chunk_deletes)},
            )

            for entity in chunk_puts:
                self._cache_set(self.hooks.get_primary_key(entity), entity)
            for key in chunk_deletes:
                self._cache_invalidate(key)

        logger.info(
            "Repository: Batch write completed",
            table=self.table_name,
            put_count=len(puts),
            delete_count=len(deletes),
        )

    def invalidate(self, key: Key) -> None:
        """Drop the cached entity for ``key``."""
        self._cache_invalidate(key)

    def clear_cache(self) -> None:
        """Drop every cached entity of this repository."""
        if self._cache is not None:
            self._cache.clear()

    def cache_stats(self) -> CacheStats:
        """Cache size and hit/miss counters (empty when caching is disabled)."""
        if self._cache is None:
            return CacheStats(size=0)
        return self._cache.stats()
