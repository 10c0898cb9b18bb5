from __future__ import annotations

import logging
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from typing import Any, Union

from workflow_cli.rules.builtins import DEFAULT_BUILTINS, BuiltinRegistry
from workflow_cli.rules.errors import PathSyntaxError
from workflow_cli.rules.values import InputContext


LOGGER = logging.getLogger(__name__)
INPUT_ROOT_RE = re.compile(r"^input-(\d+)$")
PLAIN_KEY_RE = re.compile(r'^[^.\[\]"\s](?:[^.\[\]"]*[^.\[\]"\s])?$')


@dataclass(frozen=True, slots=True)
class Key:
    name: str


@dataclass(frozen=True, slots=True)
class Index:
    index: int


PathSegment = Union[Key, Index]


@dataclass(frozen=True, slots=True)
class VariablePath:
    segments: tuple[PathSegment, ...]

    @property
    def root(self) -> str:
        first = self.segments[0]
        assert isinstance(first, Key)
        return first.name

    @property
    def rest(self) -> tuple[PathSegment, ...]:
        return self.segments[1:]

    def __str__(self) -> str:
        rendered = ""
        for segment in self.segments:
            if isinstance(segment, Index):
                rendered = build_array_path(rendered, segment.index)
            else:
                rendered = build_variable_path(rendered, segment.name)
        return rendered


@dataclass(frozen=True, slots=True)
class ResolutionResult:
    exists: bool
    value: Any = None

    def __post_init__(self) -> None:
        if not self.exists and self.value is not None:
            raise ValueError("A missing path cannot carry a value.")


NOT_FOUND = ResolutionResult(exists=False)


def quote_segment(name: str) -> str:
    escaped = name.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def _format_key(name: str) -> str:
    if PLAIN_KEY_RE.match(name):
        return name
    return quote_segment(name)


def build_variable_path(prefix: str, key: str) -> str:
    if not prefix:
        return _format_key(key)
    return f"{prefix}.{_format_key(key)}"


def build_array_path(prefix: str, index: int) -> str:
    return f"{prefix}[{index}]"


def _read_quoted(text: str, start: int, path: str) -> tuple[str, int]:
    chars: list[str] = []
    i = start + 1
    escaped = False
    while i < len(text):
        char = text[i]
        if escaped:
            chars.append(char)
            escaped = False
        elif char == "\\":
            escaped = True
        elif char == '"':
            return "".join(chars), i + 1
        else:
            chars.append(char)
        i += 1
    raise PathSyntaxError(path, "unterminated quoted segment")


def _skip_spaces(text: str, i: int) -> int:
    while i < len(text) and text[i].isspace():
        i += 1
    return i


def parse_path(path: str) -> VariablePath:
    """Parse ``Node.items[2].name`` (or ``"Node name".x``) into segments."""
    text = (path or "").strip()
    if not text:
        raise PathSyntaxError(path, "path is empty")

    segments: list[PathSegment] = []
    i = 0
    while True:
        i = _skip_spaces(text, i)
        if i < len(text) and text[i] == '"':
            name, i = _read_quoted(text, i, path)
        else:
            end = i
            while end < len(text) and text[end] not in ".[]":
                end += 1
            name = text[i:end].strip()
            if not name:
                raise PathSyntaxError(path, f"missing key at position {i}")
            if '"' in name:
                raise PathSyntaxError(path, f"stray quote in segment '{name}'")
            i = end
        segments.append(Key(name))

        i = _skip_spaces(text, i)
        while i < len(text) and text[i] == "[":
            close = text.find("]", i)
            if close == -1:
                raise PathSyntaxError(path, "unterminated '['")
            inner = text[i + 1 : close].strip()
            if not (inner.isascii() and inner.isdigit()):
                raise PathSyntaxError(path, f"index '{inner}' is not a non-negative integer")
            segments.append(Index(int(inner)))
            i = _skip_spaces(text, close + 1)

        if i == len(text):
            break
        if text[i] != ".":
            raise PathSyntaxError(path, f"unexpected '{text[i]}' at position {i}")
        i += 1
        if _skip_spaces(text, i) == len(text):
            raise PathSyntaxError(path, "path ends with '.'")

    return VariablePath(tuple(segments))


def walk_segments(segments: tuple[PathSegment, ...], start: object) -> ResolutionResult:
    current = start
    for segment in segments:
        if isinstance(segment, Index):
            if isinstance(current, (list, tuple)) and segment.index < len(current):
                current = current[segment.index]
                continue
            return NOT_FOUND
        if isinstance(current, Mapping) and segment.name in current:
            current = current[segment.name]
            continue
        return NOT_FOUND
    return ResolutionResult(exists=True, value=current)


def _lookup_root(root: str, ctx: Mapping[str, Any]) -> ResolutionResult:
    if root in ctx:
        return ResolutionResult(exists=True, value=ctx[root])

    match = INPUT_ROOT_RE.match(root)
    if match:
        nodes = ctx if isinstance(ctx, InputContext) else InputContext(ctx)
        entry = nodes.node_at(int(match.group(1)))
        if entry is not None:
            return ResolutionResult(exists=True, value=entry[1])
    return NOT_FOUND


def resolve_parsed(
    path: VariablePath,
    ctx: Mapping[str, Any] | None,
    *,
    builtins: BuiltinRegistry | None = None,
) -> ResolutionResult:
    registry = DEFAULT_BUILTINS if builtins is None else builtins
    root = path.root

    if root in registry:
        _, value = registry.resolve(root)
        return walk_segments(path.rest, value)

    found = _lookup_root(root, ctx or {})
    if not found.exists:
        return NOT_FOUND
    return walk_segments(path.rest, found.value)


def resolve_path(
    path: str,
    ctx: Mapping[str, Any] | None,
    *,
    builtins: BuiltinRegistry | None = None,
) -> ResolutionResult:
    """Resolve a variable path against upstream node outputs. Never raises."""
    try:
        parsed = parse_path(path)
    except PathSyntaxError as exc:
        LOGGER.debug("Treating malformed path as missing: %s", exc)
        return NOT_FOUND
    return resolve_parsed(parsed, ctx, builtins=builtins)


def iter_variable_paths(ctx: Mapping[str, Any] | None) -> Iterator[tuple[str, object]]:
    """Yield ``(path, value)`` for every node, container and leaf in document order."""
    for name, output in (ctx or {}).items():
        root = build_variable_path("", name)
        yield root, output
        yield from _iter_nested(root, output)


def _iter_nested(prefix: str, value: object) -> Iterator[tuple[str, object]]:
    if isinstance(value, Mapping):
        for key, item in value.items():
            path = build_variable_path(prefix, str(key))
            yield path, item
            yield from _iter_nested(path, item)
    elif isinstance(value, (list, tuple)):
        for index, item in enumerate(value):
            path = build_array_path(prefix, index)
            yield path, item
            yield from _iter_nested(path, item)
