"""
In-Memory Store Client

Process-local document store implementing the StoreClient interface with
the same batch limits, conditional puts and update semantics as the remote
store. Used for local development and tests.
"""

import copy
import json
from collections import defaultdict
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import structlog

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
)

logger = structlog.get_logger()


class InMemoryStoreClient:
    """
    Dictionary-backed document store.

    Tables must be registered with their key fields before use. Items are
    copied on the way in and out so callers never share state with the store.
    """

    def __init__(
        self,
        tables: Optional[Mapping[str, Sequence[str]]] = None,
        read_batch_limit: int = 100,
        write_batch_limit: int = 25,
    ):
        self.read_batch_limit = read_batch_limit
        self.write_batch_limit = write_batch_limit
        self._key_fields: Dict[str, Tuple[str, ...]] = {}
        self._tables: Dict[str, Dict[str, Item]] = {}
        self._failures: Dict[str, List[BaseException]] = defaultdict(list)
        self.call_counts: Dict[str, int] = defaultdict(int)

        for name, key_fields in (tables or {}).items():
            self.create_table(name, key_fields)

    def create_table(self, name: str, key_fields: Sequence[str]) -> None:
        """Register a table and its primary key fields."""
        if not key_fields:
            raise ValueError("key_fields must name at least one field")
        self._key_fields[name] = tuple(key_fields)
        self._tables.setdefault(name, {})
        logger.debug(
            "InMemoryStore: Table registered", table=name, key_fields=list(key_fields)
        )

    def inject_failure(
        self, operation: str, error: BaseException, times: int = 1
    ) -> None:
        """Make the next ``times`` calls of ``operation`` raise ``error``."""
        self._failures[operation].extend([error] * times)

    def _begin(self, operation: str) -> None:
        self.call_counts[operation] += 1
        pending = self._failures.get(operation)
        if pending:
            raise pending.pop(0)

    def _table(self, table: str) -> Dict[str, Item]:
        if table not in self._tables:
            raise PermanentStoreException(
                f"Requested table not found: {table}",
                error_code="ResourceNotFoundException",
                details={"table": table},
            )
        return self._tables[table]

    def _item_id(self, table: str, key: Mapping[str, Any]) -> str:
        key_fields = self._key_fields[table]
        missing = [field for field in key_fields if field not in key]
        if missing:
            raise PermanentStoreException(
                f"Key is missing fields: {', '.join(missing)}",
                error_code="ValidationException",
                details={"table": table, "missing": missing},
            )
        return json.dumps(
            {field: key[field] for field in key_fields}, sort_keys=True, default=str
        )

    async def get_item(self, table: str, key: Key) -> Optional[Item]:
        self._begin("get_item")
        item = self._table(table).get(self._item_id(table, key))
        return copy.deepcopy(item) if item is not None else None

    async def put_item(
        self, table: str, item: Item, condition: Optional[PutCondition] = None
    ) -> None:
        self._begin("put_item")
        rows = self._table(table)
        item_id = self._item_id(table, item)
        if condition is not None and condition.must_not_exist and item_id in rows:
            raise ConditionalCheckFailedException(
                table, key={f: item[f] for f in self._key_fields[table]}
            )
        rows[item_id] = copy.deepcopy(dict(item))

    async def update_item(
        self, table: str, key: Key, update, return_values: str = "ALL_NEW"
    ) -> Optional[Item]:
        self._begin("update_item")
        if return_values not in RETURN_VALUES:
            raise PermanentStoreException(
                f"Unknown return_values: {return_values}",
                error_code="ValidationException",
            )

        rows = self._table(table)
        item_id = self._item_id(table, key)
        assignments = list(update.assignments())
        key_fields = self._key_fields[table]
        touched_keys = [field for field, _ in assignments if field in key_fields]
        if touched_keys:
            raise PermanentStoreException(
                f"Cannot update key attributes: {', '.join(touched_keys)}",
                error_code="ValidationException",
            )

        old = rows.get(item_id)
        new = copy.deepcopy(old) if old is not None else {f: key[f] for f in key_fields}
        for field, value in assignments:
            new[field] = copy.deepcopy(value)
        rows[item_id] = new

        return select_return_values(
            return_values, old, new, [field for field, _ in assignments]
        )

    async def delete_item(self, table: str, key: Key) -> Optional[Item]:
        self._begin("delete_item")
        return self._table(table).pop(self._item_id(table, key), None)

    async def batch_get_item(self, table: str, keys: Sequence[Key]) -> List[Item]:
        self._begin("batch_get_item")
        if len(keys) > self.read_batch_limit:
            raise BatchLimitExceededException(
                "batch_get_item", len(keys), self.read_batch_limit
            )
        rows = self._table(table)
        found = []
        for key in keys:
            item = rows.get(self._item_id(table, key))
            if item is not None:
                found.append(copy.deepcopy(item))
        return found

    async def batch_write_item(
        self, table: str, puts: Sequence[Item], deletes: Sequence[Key]
    ) -> None:
        self._begin("batch_write_item")
        size = len(puts) + len(deletes)
        if size > self.write_batch_limit:
            raise BatchLimitExceededException(
                "batch_write_item", size, self.write_batch_limit
            )
        rows = self._table(table)
        # Resolve every id first so a malformed request writes nothing
        put_rows = [(self._item_id(table, item), item) for item in puts]
        delete_ids = [self._item_id(table, key) for key in deletes]
        for item_id, item in put_rows:
            rows[item_id] = copy.deepcopy(dict(item))
        for item_id in delete_ids:
            rows.pop(item_id, None)

    async def query(self, table: str, params: Mapping[str, Any]) -> List[Item]:
        self._begin("query")
        if not (params or {}).get("key_conditions"):
            raise PermanentStoreException(
                "Query requires key_conditions", error_code="ValidationException"
            )
        return self._select(table, params)

    async def scan(
        self, table: str, params: Optional[Mapping[str, Any]] = None
    ) -> List[Item]:
        self._begin("scan")
        return self._select(table, params)

    def _select(self, table: str, params: Optional[Mapping[str, Any]]) -> List[Item]:
        matched = [
            copy.deepcopy(item)
            for item in self._table(table).values()
            if matches_params(item, params)
        ]
        return apply_limit(matched, params)

