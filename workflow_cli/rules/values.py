from __future__ import annotations

import copy
import json
import math
from collections.abc import Iterator, Mapping
from enum import Enum
from types import MappingProxyType
from typing import Any

from workflow_cli.rules.errors import InvalidContextError


class ValueKind(str, Enum):
    NULL = "null"
    BOOL = "boolean"
    NUMBER = "number"
    STRING = "string"
    ARRAY = "array"
    OBJECT = "object"


def kind_of(value: object) -> ValueKind:
    """Classify a JSON-like value. ``bool`` is checked before numbers on purpose."""
    if value is None:
        return ValueKind.NULL
    if isinstance(value, bool):
        return ValueKind.BOOL
    if isinstance(value, (int, float)):
        return ValueKind.NUMBER
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, (list, tuple)):
        return ValueKind.ARRAY
    if isinstance(value, Mapping):
        return ValueKind.OBJECT
    raise TypeError(f"Unsupported value type '{type(value).__name__}'.")


def to_json_text(value: object) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


def display_text(value: object) -> str:
    if isinstance(value, str):
        return value
    return to_json_text(value)


def values_equal(left: object, right: object) -> bool:
    left_kind = kind_of(left)
    if left_kind is not kind_of(right):
        return False

    if left_kind is ValueKind.ARRAY:
        if len(left) != len(right):  # type: ignore[arg-type]
            return False
        return all(values_equal(a, b) for a, b in zip(left, right))  # type: ignore[call-overload]

    if left_kind is ValueKind.OBJECT:
        if set(left) != set(right):  # type: ignore[call-overload]
            return False
        return all(values_equal(left[key], right[key]) for key in left)  # type: ignore[index]

    return left == right


def is_empty(value: object) -> bool:
    kind = kind_of(value)
    if kind is ValueKind.NULL:
        return True
    if kind is ValueKind.STRING:
        return value.strip() == ""  # type: ignore[union-attr]
    if kind in {ValueKind.ARRAY, ValueKind.OBJECT}:
        return len(value) == 0  # type: ignore[arg-type]
    return False


def _check_value(value: object, where: str) -> None:
    try:
        kind = kind_of(value)
    except TypeError as exc:
        raise InvalidContextError(f"{where}: {exc}") from exc

    if kind is ValueKind.NUMBER and not math.isfinite(value):  # type: ignore[arg-type]
        raise InvalidContextError(f"{where}: numbers must be finite.")
    if kind is ValueKind.ARRAY:
        for index, item in enumerate(value):  # type: ignore[arg-type]
            _check_value(item, f"{where}[{index}]")
    elif kind is ValueKind.OBJECT:
        for key, item in value.items():  # type: ignore[union-attr]
            if not isinstance(key, str):
                raise InvalidContextError(f"{where}: object keys must be strings.")
            _check_value(item, f"{where}.{key}")


class InputContext(Mapping[str, Any]):
    """Read-only snapshot of upstream node outputs, keyed by node name."""

    __slots__ = ("_nodes",)

    def __init__(self, nodes: Mapping[str, dict[str, Any]] | None = None) -> None:
        self._nodes = MappingProxyType(dict(nodes or {}))

    @classmethod
    def of(cls, nodes: Mapping[str, Any] | None) -> InputContext:
        if isinstance(nodes, InputContext):
            return nodes
        snapshot: dict[str, dict[str, Any]] = {}
        for name, output in (nodes or {}).items():
            if not isinstance(name, str) or not name:
                raise InvalidContextError("Node names must be non-empty strings.")
            if not isinstance(output, Mapping):
                raise InvalidContextError(f"Output of node '{name}' must be an object.")
            _check_value(output, name)
            snapshot[name] = copy.deepcopy(dict(output))
        return cls(snapshot)

    def __getitem__(self, name: str) -> dict[str, Any]:
        return self._nodes[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"InputContext(nodes={list(self._nodes)})"

    def node_at(self, position: int) -> tuple[str, dict[str, Any]] | None:
        if position < 0 or position >= len(self._nodes):
            return None
        name = list(self._nodes)[position]
        return name, self._nodes[name]
