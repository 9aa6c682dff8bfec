"""
Store Client Interface

The document store collaborator used by EntityRepository. Every call is
scoped to a named table; keys and items are JSON-like dictionaries.
"""

import copy
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    runtime_checkable,
)

if TYPE_CHECKING:
    from entity_store.repositories.update_expression import UpdateExpression

Item = Dict[str, Any]
Key = Dict[str, Any]

# Return modes for update_item
RETURN_VALUES = ("NONE", "ALL_OLD", "UPDATED_OLD", "ALL_NEW", "UPDATED_NEW")


@dataclass(frozen=True)
class PutCondition:
    """Precondition for a conditional put."""

    # Fail the write if an item with the same key already exists
    must_not_exist: bool = False
    key_fields: tuple = ()


@runtime_checkable
class StoreClient(Protocol):
    """Async document store client."""

    async def get_item(self, table: str, key: Key) -> Optional[Item]:
        """Return the item stored under ``key`` or None."""
        ...

    async def put_item(
        self, table: str, item: Item, condition: Optional[PutCondition] = None
    ) -> None:
        """Store ``item``; raise ConditionalCheckFailedException if ``condition`` fails."""
        ...

    async def update_item(
        self,
        table: str,
        key: Key,
        update: "UpdateExpression",
        return_values: str = "ALL_NEW",
    ) -> Optional[Item]:
        """Apply ``update`` and return the attributes selected by ``return_values``."""
        ...

    async def delete_item(self, table: str, key: Key) -> Optional[Item]:
        """Delete the item and return its previous attributes, if any."""
        ...

    async def batch_get_item(self, table: str, keys: Sequence[Key]) -> List[Item]:
        """Return the items found for ``keys``; missing keys are omitted."""
        ...

    async def batch_write_item(
        self, table: str, puts: Sequence[Item], deletes: Sequence[Key]
    ) -> None:
        """Write ``puts`` and remove ``deletes`` in one call."""
        ...

    async def query(self, table: str, params: Mapping[str, Any]) -> List[Item]:
        """Return items matching the query description."""
        ...

    async def scan(
        self, table: str, params: Optional[Mapping[str, Any]] = None
    ) -> List[Item]:
        """Return all items matching the optional filter description."""
        ...


def matches_params(item: Mapping[str, Any], params: Optional[Mapping[str, Any]]) -> bool:
    """Equality match of ``key_conditions`` and ``filters`` against an item."""
    if not params:
        return True
    for section in ("key_conditions", "filters"):
        for field, expected in (params.get(section) or {}).items():
            if item.get(field) != expected:
                return False
    return True


def apply_limit(items: List[Item], params: Optional[Mapping[str, Any]]) -> List[Item]:
    """Truncate to ``params["limit"]`` when given."""
    limit = (params or {}).get("limit")
    if limit is None:
        return items
    return items[: int(limit)]


def select_return_values(
    return_values: str,
    old: Optional[Item],
    new: Item,
    updated_fields: Sequence[str],
) -> Optional[Item]:
    """Pick the attributes an update reports back."""
    if return_values == "ALL_NEW":
        return copy.deepcopy(new)
    if return_values == "UPDATED_NEW":
        return {field: copy.deepcopy(new[field]) for field in updated_fields}
    if return_values == "ALL_OLD":
        return copy.deepcopy(old) if old is not None else None
    if return_values == "UPDATED_OLD":
        if old is None:
            return None
        previous = {f: copy.deepcopy(old[f]) for f in updated_fields if f in old}
        return previous or None
    return None
