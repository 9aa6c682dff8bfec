"""
Update Expression Builder

Turns a partial-update mapping into a SET-style store update description
with generated attribute name/value placeholders.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, Mapping, Tuple


class _Unset:
    """Sentinel for 'no value supplied'; distinct from None."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()

_ASSIGNMENT = re.compile(r"(#n\d+)\s*=\s*(:v\d+)")


@dataclass(frozen=True)
class UpdateExpression:
    """SET expression plus its placeholder maps."""

    expression: str
    names: Dict[str, str] = field(default_factory=dict)
    values: Dict[str, Any] = field(default_factory=dict)

    def assignments(self) -> Iterator[Tuple[str, Any]]:
        """Yield (field, value) pairs in expression order."""
        for name_key, value_key in _ASSIGNMENT.findall(self.expression):
            yield self.names[name_key], self.values[value_key]


def build_update_expression(updates: Mapping[str, Any]) -> UpdateExpression:
    """
    Build a SET update expression.

    Fields whose value is UNSET are skipped. None and empty values are
    written as-is. The i-th included field gets ``#n{i}`` and ``:v{i}``.

    Raises:
        ValueError: If no field remains after dropping UNSET values
    """
    set_expressions = []
    names: Dict[str, str] = {}
    values: Dict[str, Any] = {}

    for field_name, value in updates.items():
        if value is UNSET:
            continue
        index = len(set_expressions)
        name_key = f"#n{index}"
        value_key = f":v{index}"
        names[name_key] = field_name
        values[value_key] = value
        set_expressions.append(f"{name_key} = {value_key}")

    if not set_expressions:
        raise ValueError("Update contains no fields to set")

    return UpdateExpression(
        expression=f"SET {', '.join(set_expressions)}",
        names=names,
        values=values,
    )
