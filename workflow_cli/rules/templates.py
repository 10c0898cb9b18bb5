from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from workflow_cli.rules.builtins import BuiltinRegistry
from workflow_cli.rules.paths import ResolutionResult, build_variable_path, resolve_path
from workflow_cli.rules.values import display_text, to_json_text


LOGGER = logging.getLogger(__name__)

TEMPLATE_INLINE_RE = re.compile(r"\{\{([^{}]+)\}\}")
TEMPLATE_VALUE_RE = re.compile(r"^\{\{([^{}]+)\}\}$")
N8N_REFERENCE_RE = re.compile(r"""^\$\(\s*(['"])(.+?)\1\s*\)\.item\.json(?:\.(.+))?$""")


class RenderMode(str, Enum):
    HIGHLIGHT = "highlight"
    SUBSTITUTE = "substitute"


class SpanKind(str, Enum):
    LITERAL = "literal"
    VARIABLE = "variable"


@dataclass(slots=True)
class TemplateSpan:
    kind: SpanKind
    text: str
    exists: bool = True
    path: str | None = None
    resolved: str | None = None


@dataclass(slots=True)
class SubstitutionResult:
    text: str
    token_count: int
    missing: list[str]

    @property
    def fully_resolved(self) -> bool:
        return not self.missing


def normalize_reference(content: str) -> str:
    """Turn token content into a path, accepting n8n's ``$('Node').item.json.x`` form."""
    stripped = content.strip()
    match = N8N_REFERENCE_RE.match(stripped)
    if not match:
        return stripped
    root = build_variable_path("", match.group(2).strip())
    rest = (match.group(3) or "").strip()
    return f"{root}.{rest}" if rest else root


def resolve_reference(
    content: str,
    ctx: Mapping[str, Any] | None,
    *,
    builtins: BuiltinRegistry | None = None,
) -> ResolutionResult:
    return resolve_path(normalize_reference(content), ctx, builtins=builtins)


def highlight(
    text: str,
    ctx: Mapping[str, Any] | None,
    *,
    builtins: BuiltinRegistry | None = None,
) -> list[TemplateSpan]:
    spans: list[TemplateSpan] = []
    cursor = 0
    for match in TEMPLATE_INLINE_RE.finditer(text):
        if match.start() > cursor:
            spans.append(TemplateSpan(kind=SpanKind.LITERAL, text=text[cursor : match.start()]))
        path = normalize_reference(match.group(1))
        found = resolve_path(path, ctx, builtins=builtins)
        spans.append(
            TemplateSpan(
                kind=SpanKind.VARIABLE,
                text=match.group(0),
                exists=found.exists,
                path=path,
                resolved=display_text(found.value) if found.exists else None,
            )
        )
        cursor = match.end()
    if cursor < len(text):
        spans.append(TemplateSpan(kind=SpanKind.LITERAL, text=text[cursor:]))
    return spans


def substitute_with_report(
    text: str,
    ctx: Mapping[str, Any] | None,
    *,
    builtins: BuiltinRegistry | None = None,
) -> SubstitutionResult:
    missing: list[str] = []
    count = 0

    def _replace(match: re.Match[str]) -> str:
        nonlocal count
        count += 1
        found = resolve_reference(match.group(1), ctx, builtins=builtins)
        if not found.exists:
            missing.append(normalize_reference(match.group(1)))
            return match.group(0)
        return display_text(found.value)

    rendered = TEMPLATE_INLINE_RE.sub(_replace, text)
    return SubstitutionResult(text=rendered, token_count=count, missing=missing)


def substitute(
    text: str,
    ctx: Mapping[str, Any] | None,
    *,
    builtins: BuiltinRegistry | None = None,
) -> str:
    return substitute_with_report(text, ctx, builtins=builtins).text


def render_template(
    text: str,
    ctx: Mapping[str, Any] | None,
    mode: RenderMode = RenderMode.SUBSTITUTE,
    *,
    builtins: BuiltinRegistry | None = None,
) -> str | list[TemplateSpan]:
    if RenderMode(mode) is RenderMode.HIGHLIGHT:
        return highlight(text, ctx, builtins=builtins)
    return substitute(text, ctx, builtins=builtins)


def resolve_value(
    value: object,
    ctx: Mapping[str, Any] | None,
    *,
    builtins: BuiltinRegistry | None = None,
) -> object:
    """Resolve templates nested anywhere in a config value.

    A string that is exactly one ``{{path}}`` token yields the raw value it
    points at, so arrays and objects keep their shape. Any other string is
    substituted as text.
    """
    if isinstance(value, str):
        match = TEMPLATE_VALUE_RE.fullmatch(value.strip())
        if match:
            found = resolve_reference(match.group(1), ctx, builtins=builtins)
            return found.value if found.exists else value
        if "{{" in value and "}}" in value:
            return substitute(value, ctx, builtins=builtins)
        return value

    if isinstance(value, dict):
        return {key: resolve_value(item, ctx, builtins=builtins) for key, item in value.items()}

    if isinstance(value, list):
        return [resolve_value(item, ctx, builtins=builtins) for item in value]

    return value


def substitute_json(
    text: str,
    ctx: Mapping[str, Any] | None,
    *,
    builtins: BuiltinRegistry | None = None,
) -> str:
    try:
        decoded = json.loads(text)
    except json.JSONDecodeError:
        LOGGER.warning("Body is not valid JSON, using plain template substitution.")
        return substitute(text, ctx, builtins=builtins)
    return to_json_text(_substitute_strings(decoded, ctx, builtins))


def _substitute_strings(value: object, ctx: Mapping[str, Any] | None, builtins: BuiltinRegistry | None) -> object:
    if isinstance(value, str):
        return substitute(value, ctx, builtins=builtins) if "{{" in value else value
    if isinstance(value, dict):
        return {key: _substitute_strings(item, ctx, builtins) for key, item in value.items()}
    if isinstance(value, list):
        return [_substitute_strings(item, ctx, builtins) for item in value]
    return value


def substitute_code(
    text: str,
    ctx: Mapping[str, Any] | None,
    *,
    builtins: BuiltinRegistry | None = None,
) -> str:
    """Splice resolved values into source code as JSON literals."""

    def _replace(match: re.Match[str]) -> str:
        found = resolve_reference(match.group(1), ctx, builtins=builtins)
        if not found.exists:
            return match.group(0)
        return to_json_text(found.value)

    return TEMPLATE_INLINE_RE.sub(_replace, text)


def extract_references(value: object) -> set[str]:
    refs: set[str] = set()

    if isinstance(value, str):
        for match in TEMPLATE_INLINE_RE.finditer(value):
            refs.add(normalize_reference(match.group(1)))
        return refs

    if isinstance(value, dict):
        for item in value.values():
            refs.update(extract_references(item))
        return refs

    if isinstance(value, list):
        for item in value:
            refs.update(extract_references(item))
        return refs

    return refs
