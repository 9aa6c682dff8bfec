"""
Redis Store Client

StoreClient implementation over redis.asyncio. Each item is a JSON document
under "{prefix}:{table}:{key json}", the key fields dumped as sorted JSON so
value types stay apart. Conditional puts use SET NX, updates run as
optimistic WATCH/MULTI transactions, batch calls use MGET and pipelines.
Redis errors are translated into the store error taxonomy.
"""

import json
import re
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import structlog
from redis.asyncio import Redis
from redis.exceptions import (
    BusyLoadingError,
    ConnectionError as RedisConnectionError,
    RedisError,
    TimeoutError as RedisTimeoutError,
    TryAgainError,
    WatchError,
)

from entity_store.core.config import settings
from .client import (
    RETURN_VALUES,
    Item,
    Key,
    PutCondition,
    apply_limit,
    matches_params,
    select_return_values,
)
from .exceptions import (
    BatchLimitExceededException,
    ConditionalCheckFailedException,
    PermanentStoreException,
    StoreException,
    TransientStoreException,
)

logger = structlog.get_logger()

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def _escape_glob(value: str) -> str:
    return _GLOB_SPECIAL.sub(r"\\\1", value)


class RedisStoreClient:
    """
    Redis-backed document store.

    Tables are registered with their key fields; the key fields of an item
    determine its Redis key.
    """

    def __init__(
        self,
        redis: Redis,
        tables: Mapping[str, Sequence[str]],
        key_prefix: Optional[str] = None,
        read_batch_limit: Optional[int] = None,
        write_batch_limit: Optional[int] = None,
        max_watch_retries: int = 5,
        scan_count: int = 500,
    ):
        if max_watch_retries < 1:
            raise ValueError("max_watch_retries must be at least 1")

        self.redis = redis
        self.key_prefix = (
            settings.REDIS_KEY_PREFIX if key_prefix is None else key_prefix
        )
        self.read_batch_limit = (
            settings.STORE_READ_BATCH_LIMIT
            if read_batch_limit is None
            else read_batch_limit
        )
        self.write_batch_limit = (
            settings.STORE_WRITE_BATCH_LIMIT
            if write_batch_limit is None
            else write_batch_limit
        )
        if self.read_batch_limit < 1 or self.write_batch_limit < 1:
            raise ValueError("batch limits must be positive")
        self.max_watch_retries = max_watch_retries
        self.scan_count = scan_count
        self._key_fields: Dict[str, Tuple[str, ...]] = {}
        for name, key_fields in tables.items():
            if not key_fields:
                raise ValueError(f"Table '{name}' needs at least one key field")
            self._key_fields[name] = tuple(key_fields)

    @classmethod
    def from_url(
        cls,
        tables: Mapping[str, Sequence[str]],
        url: Optional[str] = None,
        **kwargs: Any,
    ) -> "RedisStoreClient":
        """Build a client with its own connection pool."""
        redis = Redis.from_url(
            url or settings.REDIS_URL,
            max_connections=settings.REDIS_MAX_CONNECTIONS,
            decode_responses=True,
        )
        return cls(redis, tables, **kwargs)

    async def close(self) -> None:
        """Release the connection pool."""
        await self.redis.aclose()

    def item_key(self, table: str, key: Mapping[str, Any]) -> str:
        """Redis key for the item identified by ``key``."""
        key_fields = self._table_key_fields(table)
        missing = [field for field in key_fields if field not in key]
        if missing:
            raise PermanentStoreException(
                f"Key is missing fields: {', '.join(missing)}",
                error_code="ValidationException",
                details={"table": table, "missing": missing},
            )
        identity = json.dumps(
            {field: key[field] for field in key_fields}, sort_keys=True, default=str
        )
        return f"{self.key_prefix}:{table}:{identity}"

    def _table_key_fields(self, table: str) -> Tuple[str, ...]:
        try:
            return self._key_fields[table]
        except KeyError:
            raise PermanentStoreException(
                f"Requested table not found: {table}",
                error_code="ResourceNotFoundException",
                details={"table": table},
            ) from None

    @asynccontextmanager
    async def _translate_errors(self, operation: str, table: str):
        try:
            yield
        except StoreException:
            raise
        except (RedisTimeoutError, BusyLoadingError, TryAgainError, RedisConnectionError) as e:
            if isinstance(e, RedisTimeoutError):
                code = "STORE_TIMEOUT"
            elif isinstance(e, (BusyLoadingError, TryAgainError)):
                code = "STORE_BUSY"
            else:
                code = "STORE_CONNECTION_ERROR"
            logger.warning(
                "RedisStore: Transient failure",
                operation=operation,
                table=table,
                error_code=code,
                error=str(e),
            )
            raise TransientStoreException(
                f"Redis {operation} failed: {e}",
                error_code=code,
                details={"operation": operation, "table": table},
                original_error=e,
            ) from e
        except RedisError as e:
            logger.error(
                "RedisStore: Operation failed",
                operation=operation,
                table=table,
                error=str(e),
            )
            raise PermanentStoreException(
                f"Redis {operation} failed: {e}",
                error_code="STORE_ERROR",
                details={"operation": operation, "table": table},
                original_error=e,
            ) from e

    @staticmethod
    def _dumps(item: Mapping[str, Any]) -> str:
        return json.dumps(item, default=str)

    @staticmethod
    def _loads(raw: Any) -> Optional[Item]:
        if raw is None:
            return None
        return json.loads(raw)

    async def get_item(self, table: str, key: Key) -> Optional[Item]:
        redis_key = self.item_key(table, key)
        async with self._translate_errors("get_item", table):
            raw = await self.redis.get(redis_key)
        return self._loads(raw)

    async def put_item(
        self, table: str, item: Item, condition: Optional[PutCondition] = None
    ) -> None:
        redis_key = self.item_key(table, item)
        payload = self._dumps(item)
        async with self._translate_errors("put_item", table):
            if condition is not None and condition.must_not_exist:
                stored = await self.redis.set(redis_key, payload, nx=True)
                if not stored:
                    raise ConditionalCheckFailedException(
                        table,
                        key={f: item[f] for f in self._table_key_fields(table)},
                    )
            else:
                await self.redis.set(redis_key, payload)

    async def update_item(
        self, table: str, key: Key, update, return_values: str = "ALL_NEW"
    ) -> Optional[Item]:
        if return_values not in RETURN_VALUES:
            raise PermanentStoreException(
                f"Unknown return_values: {return_values}",
                error_code="ValidationException",
            )

        redis_key = self.item_key(table, key)
        key_fields = self._table_key_fields(table)
        assignments = list(update.assignments())
        touched_keys = [field for field, _ in assignments if field in key_fields]
        if touched_keys:
            raise PermanentStoreException(
                f"Cannot update key attributes: {', '.join(touched_keys)}",
                error_code="ValidationException",
            )
        updated_fields = [field for field, _ in assignments]

        async with self._translate_errors("update_item", table):
            async with self.redis.pipeline(transaction=True) as pipe:
                for _ in range(self.max_watch_retries):
                    try:
                        await pipe.watch(redis_key)
                        old = self._loads(await pipe.get(redis_key))
                        new = dict(old) if old is not None else {f: key[f] for f in key_fields}
                        for field, value in assignments:
                            new[field] = value
                        pipe.multi()
                        pipe.set(redis_key, self._dumps(new))
                        await pipe.execute()
                    except WatchError:
                        logger.debug(
                            "RedisStore: Concurrent update, retrying transaction",
                            table=table,
                            key=redis_key,
                        )
                        continue
                    return select_return_values(return_values, old, new, updated_fields)

        raise TransientStoreException(
            f"Update of {redis_key} lost {self.max_watch_retries} optimistic races",
            error_code="STORE_WRITE_CONFLICT",
            details={"table": table, "key": key},
        )

    async def delete_item(self, table: str, key: Key) -> Optional[Item]:
        redis_key = self.item_key(table, key)
        async with self._translate_errors("delete_item", table):
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.get(redis_key)
                pipe.delete(redis_key)
                raw, _ = await pipe.execute()
        return self._loads(raw)

    async def batch_get_item(self, table: str, keys: Sequence[Key]) -> List[Item]:
        if len(keys) > self.read_batch_limit:
            raise BatchLimitExceededException(
                "batch_get_item", len(keys), self.read_batch_limit
            )
        if not keys:
            return []

        redis_keys = [self.item_key(table, key) for key in keys]
        async with self._translate_errors("batch_get_item", table):
            raws = await self.redis.mget(redis_keys)
        return [item for item in map(self._loads, raws) if item is not None]

    async def batch_write_item(
        self, table: str, puts: Sequence[Item], deletes: Sequence[Key]
    ) -> None:
        size = len(puts) + len(deletes)
        if size > self.write_batch_limit:
            raise BatchLimitExceededException(
                "batch_write_item", size, self.write_batch_limit
            )
        if size == 0:
            return

        put_rows = [(self.item_key(table, item), self._dumps(item)) for item in puts]
        delete_keys = [self.item_key(table, key) for key in deletes]
        async with self._translate_errors("batch_write_item", table):
            async with self.redis.pipeline(transaction=False) as pipe:
                for redis_key, payload in put_rows:
                    pipe.set(redis_key, payload)
                for redis_key in delete_keys:
                    pipe.delete(redis_key)
                await pipe.execute()

    async def query(self, table: str, params: Mapping[str, Any]) -> List[Item]:
        key_conditions = (params or {}).get("key_conditions")
        if not key_conditions:
            raise PermanentStoreException(
                "Query requires key_conditions", error_code="ValidationException"
            )

        key_fields = self._table_key_fields(table)
        if all(field in key_conditions for field in key_fields):
            item = await self.get_item(table, key_conditions)
            matched = [item] if item is not None and matches_params(item, params) else []
            return apply_limit(matched, params)

        return await self._scan_table(table, params, "query")

    async def scan(
        self, table: str, params: Optional[Mapping[str, Any]] = None
    ) -> List[Item]:
        return await self._scan_table(table, params, "scan")

    async def _scan_table(
        self, table: str, params: Optional[Mapping[str, Any]], operation: str
    ) -> List[Item]:
        self._table_key_fields(table)
        pattern = f"{_escape_glob(self.key_prefix)}:{_escape_glob(table)}:*"
        limit = (params or {}).get("limit")

        matched: List[Item] = []
        async with self._translate_errors(operation, table):
            # Cursor-based SCAN keeps Redis responsive on large tables
            batch: List[str] = []
            async for redis_key in self.redis.scan_iter(match=pattern, count=self.scan_count):
                batch.append(redis_key)
                if len(batch) >= self.read_batch_limit:
                    matched.extend(await self._load_matching(batch, params))
                    batch = []
                if limit is not None and len(matched) >= int(limit):
                    break
            if batch and (limit is None or len(matched) < int(limit)):
                matched.extend(await self._load_matching(batch, params))

        return apply_limit(matched, params)

    async def _load_matching(
        self, redis_keys: List[str], params: Optional[Mapping[str, Any]]
    ) -> List[Item]:
        raws = await self.redis.mget(redis_keys)
        items = [item for item in map(self._loads, raws) if item is not None]
        return [item for item in items if matches_params(item, params)]
