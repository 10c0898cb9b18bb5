from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Literal

import regex

from workflow_cli.rules.builtins import DEFAULT_BUILTINS, BuiltinRegistry
from workflow_cli.rules.conditions import (
    OPERATORS_BY_TYPE,
    SWITCH_OPERATORS,
    UNARY_OPERATORS,
    Condition,
    DataType,
    Operator,
)
from workflow_cli.rules.errors import ConfigValidationError, PathSyntaxError
from workflow_cli.rules.paths import INPUT_ROOT_RE, parse_path
from workflow_cli.rules.routing import (
    DEFAULT_FALLBACK_OUTPUT,
    CombineOperation,
    ConditionSet,
    Rule,
    RuleSet,
)
from workflow_cli.rules.templates import TEMPLATE_INLINE_RE, extract_references


DiagnosticSeverity = Literal["error", "warning", "info"]


@dataclass(slots=True)
class ConfigDiagnostic:
    code: str
    severity: DiagnosticSeverity
    message: str
    path: str | None = None
    hint: str | None = None


def render_diagnostic(diagnostic: ConfigDiagnostic) -> str:
    location = f" (path={diagnostic.path})" if diagnostic.path else ""
    hint = f" Hint: {diagnostic.hint}" if diagnostic.hint else ""
    return f"[{diagnostic.severity.upper()}] {diagnostic.code}: {diagnostic.message}{location}.{hint}".rstrip()


def render_diagnostics(diagnostics: list[ConfigDiagnostic]) -> str:
    if not diagnostics:
        return ""

    order = {"error": 0, "warning": 1, "info": 2}
    sorted_items = sorted(
        diagnostics,
        key=lambda item: (order.get(item.severity, 9), item.code, item.path or ""),
    )
    return "\n".join(f"- {render_diagnostic(item)}" for item in sorted_items)


def has_errors(diagnostics: Iterable[ConfigDiagnostic]) -> bool:
    return any(item.severity == "error" for item in diagnostics)


def _check_templates(
    value: object,
    *,
    where: str,
    known_nodes: set[str] | None,
    builtins: BuiltinRegistry,
    diagnostics: list[ConfigDiagnostic],
) -> None:
    if not isinstance(value, str):
        diagnostics.append(
            ConfigDiagnostic(
                code="TEMPLATE_NOT_STRING",
                severity="error",
                message=f"Expected a template string, got {type(value).__name__}",
                path=where,
            )
        )
        return

    for ref in sorted(extract_references(value)):
        try:
            root = parse_path(ref).root
        except PathSyntaxError as exc:
            diagnostics.append(
                ConfigDiagnostic(
                    code="TEMPLATE_PATH_SYNTAX",
                    severity="warning",
                    message=f"Template reference '{{{{{ref}}}}}' cannot be parsed: {exc.reason}",
                    path=where,
                    hint="It will be left verbatim when rendered.",
                )
            )
            continue

        if known_nodes is None or root in builtins or root in known_nodes or INPUT_ROOT_RE.match(root):
            continue
        diagnostics.append(
            ConfigDiagnostic(
                code="TEMPLATE_UNKNOWN_REFERENCE",
                severity="warning",
                message=f"Template reference '{{{{{ref}}}}}' points to unknown node '{root}'",
                path=where,
                hint="Use an upstream node name or a built-in such as 'now'.",
            )
        )


def _check_regex_literal(value2: object, *, where: str, diagnostics: list[ConfigDiagnostic]) -> None:
    if not isinstance(value2, str) or TEMPLATE_INLINE_RE.search(value2):
        return
    try:
        regex.compile(value2)
    except regex.error as exc:
        diagnostics.append(
            ConfigDiagnostic(
                code="REGEX_INVALID",
                severity="warning",
                message=f"Pattern '{value2}' does not compile: {exc}",
                path=where,
                hint="The condition will always evaluate to false.",
            )
        )


def _check_operand2(
    operator: Operator,
    record: dict[str, Any],
    *,
    key: str,
    where: str,
    known_nodes: set[str] | None,
    builtins: BuiltinRegistry,
    diagnostics: list[ConfigDiagnostic],
) -> None:
    value2 = record.get(key, "")
    if operator in UNARY_OPERATORS:
        if isinstance(value2, str) and value2.strip():
            diagnostics.append(
                ConfigDiagnostic(
                    code="VALUE2_IGNORED",
                    severity="info",
                    message=f"'{key}' is ignored by unary operator '{operator.value}'",
                    path=f"{where}.{key}",
                )
            )
        return

    _check_templates(value2, where=f"{where}.{key}", known_nodes=known_nodes, builtins=builtins, diagnostics=diagnostics)
    if operator in {Operator.REGEX, Operator.NOT_REGEX}:
        _check_regex_literal(value2, where=f"{where}.{key}", diagnostics=diagnostics)


def validate_if_config(
    config: dict[str, Any],
    *,
    known_nodes: Iterable[str] | None = None,
    builtins: BuiltinRegistry | None = None,
) -> list[ConfigDiagnostic]:
    diagnostics: list[ConfigDiagnostic] = []
    registry = DEFAULT_BUILTINS if builtins is None else builtins
    nodes = set(known_nodes) if known_nodes is not None else None

    combine = config.get("combineOperation", CombineOperation.AND.value)
    if str(combine).strip().upper() not in {item.value for item in CombineOperation}:
        diagnostics.append(
            ConfigDiagnostic(
                code="COMBINE_INVALID",
                severity="error",
                message=f"Unsupported combine operation '{combine}'",
                path="combineOperation",
                hint="Use AND or OR.",
            )
        )

    conditions = config.get("conditions")
    if not isinstance(conditions, list) or not conditions:
        diagnostics.append(
            ConfigDiagnostic(
                code="CONDITIONS_EMPTY",
                severity="error",
                message="An If node needs a non-empty 'conditions' list",
                path="conditions",
            )
        )
        return diagnostics

    for index, record in enumerate(conditions):
        where = f"conditions[{index}]"
        if not isinstance(record, dict):
            diagnostics.append(
                ConfigDiagnostic(code="CONDITION_MALFORMED", severity="error", message="Condition must be an object", path=where)
            )
            continue

        raw_type = record.get("dataType", DataType.STRING.value)
        try:
            data_type = DataType(raw_type)
        except ValueError:
            diagnostics.append(
                ConfigDiagnostic(
                    code="DATATYPE_UNKNOWN",
                    severity="error",
                    message=f"Unknown data type '{raw_type}'",
                    path=f"{where}.dataType",
                    hint="Use string, number, dateTime, boolean, array or object.",
                )
            )
            continue

        raw_operator = record.get("operator", Operator.EQUAL.value)
        allowed = OPERATORS_BY_TYPE[data_type]
        if not isinstance(raw_operator, str) or raw_operator not in {item.value for item in allowed}:
            diagnostics.append(
                ConfigDiagnostic(
                    code="OPERATOR_NOT_ALLOWED",
                    severity="error",
                    message=f"Operator '{raw_operator}' is not available for {data_type.value}",
                    path=f"{where}.operator",
                    hint="Allowed: " + ", ".join(item.value for item in allowed) + ".",
                )
            )
            continue

        operator = Operator(raw_operator)
        _check_templates(
            record.get("value1", ""),
            where=f"{where}.value1",
            known_nodes=nodes,
            builtins=registry,
            diagnostics=diagnostics,
        )
        _check_operand2(
            operator,
            record,
            key="value2",
            where=where,
            known_nodes=nodes,
            builtins=registry,
            diagnostics=diagnostics,
        )

    return diagnostics


def validate_switch_config(
    config: dict[str, Any],
    *,
    known_nodes: Iterable[str] | None = None,
    builtins: BuiltinRegistry | None = None,
) -> list[ConfigDiagnostic]:
    diagnostics: list[ConfigDiagnostic] = []
    registry = DEFAULT_BUILTINS if builtins is None else builtins
    nodes = set(known_nodes) if known_nodes is not None else None

    mode = config.get("mode", "rules")
    if mode != "rules":
        diagnostics.append(
            ConfigDiagnostic(
                code="SWITCH_MODE_UNSUPPORTED",
                severity="error",
                message=f"Unsupported switch mode '{mode}'",
                path="mode",
                hint="Only 'rules' mode is evaluated.",
            )
        )

    fallback = config.get("fallbackOutput", DEFAULT_FALLBACK_OUTPUT)
    if not isinstance(fallback, str):
        diagnostics.append(
            ConfigDiagnostic(
                code="FALLBACK_INVALID",
                severity="error",
                message="'fallbackOutput' must be a string",
                path="fallbackOutput",
            )
        )

    rules = config.get("rules")
    if not isinstance(rules, list) or not rules:
        diagnostics.append(
            ConfigDiagnostic(
                code="RULES_EMPTY",
                severity="error",
                message="A Switch node needs a non-empty 'rules' list",
                path="rules",
            )
        )
        return diagnostics

    seen_outputs: set[str] = set()
    for index, record in enumerate(rules):
        where = f"rules[{index}]"
        if not isinstance(record, dict):
            diagnostics.append(
                ConfigDiagnostic(code="RULE_MALFORMED", severity="error", message="Rule must be an object", path=where)
            )
            continue

        raw_operator = record.get("operator", Operator.EQUAL.value)
        if not isinstance(raw_operator, str) or raw_operator not in {item.value for item in SWITCH_OPERATORS}:
            diagnostics.append(
                ConfigDiagnostic(
                    code="OPERATOR_NOT_ALLOWED",
                    severity="error",
                    message=f"Operator '{raw_operator}' is not available for switch rules",
                    path=f"{where}.operator",
                    hint="Allowed: " + ", ".join(sorted(item.value for item in SWITCH_OPERATORS)) + ".",
                )
            )
            continue

        output_name = record.get("outputName")
        if not isinstance(output_name, str) or not output_name.strip():
            diagnostics.append(
                ConfigDiagnostic(
                    code="OUTPUT_NAME_MISSING",
                    severity="error",
                    message="Rule needs a non-empty 'outputName'",
                    path=f"{where}.outputName",
                )
            )
        elif output_name in seen_outputs:
            diagnostics.append(
                ConfigDiagnostic(
                    code="OUTPUT_NAME_DUPLICATE",
                    severity="warning",
                    message=f"Output '{output_name}' is used by more than one rule",
                    path=f"{where}.outputName",
                    hint="Only the first matching rule is ever selected.",
                )
            )
        else:
            seen_outputs.add(output_name)

        operator = Operator(raw_operator)
        _check_templates(
            record.get("value", ""),
            where=f"{where}.value",
            known_nodes=nodes,
            builtins=registry,
            diagnostics=diagnostics,
        )
        _check_operand2(
            operator,
            record,
            key="value2",
            where=where,
            known_nodes=nodes,
            builtins=registry,
            diagnostics=diagnostics,
        )

    return diagnostics


def _text(record: dict[str, Any], key: str) -> str:
    value = record.get(key)
    return value if isinstance(value, str) else ""


def _raise_on_errors(kind: str, diagnostics: list[ConfigDiagnostic]) -> None:
    if not has_errors(diagnostics):
        return
    rendered = render_diagnostics([item for item in diagnostics if item.severity == "error"])
    raise ConfigValidationError(f"{kind} configuration is invalid:\n{rendered}", diagnostics)


def load_if_config(
    config: dict[str, Any],
    *,
    known_nodes: Iterable[str] | None = None,
    builtins: BuiltinRegistry | None = None,
) -> ConditionSet:
    diagnostics = validate_if_config(config, known_nodes=known_nodes, builtins=builtins)
    _raise_on_errors("If node", diagnostics)

    conditions = [
        Condition(
            data_type=DataType(record.get("dataType", DataType.STRING.value)),
            value1=record.get("value1", ""),
            operator=Operator(record.get("operator", Operator.EQUAL.value)),
            value2=_text(record, "value2"),
        )
        for record in config["conditions"]
    ]
    return ConditionSet(conditions, config.get("combineOperation", CombineOperation.AND))


def load_switch_config(
    config: dict[str, Any],
    *,
    known_nodes: Iterable[str] | None = None,
    builtins: BuiltinRegistry | None = None,
) -> RuleSet:
    diagnostics = validate_switch_config(config, known_nodes=known_nodes, builtins=builtins)
    _raise_on_errors("Switch node", diagnostics)

    rules = [
        Rule(
            value_template=record.get("value", ""),
            operator=Operator(record.get("operator", Operator.EQUAL.value)),
            value2_template=_text(record, "value2"),
            output_name=record["outputName"],
        )
        for record in config["rules"]
    ]
    return RuleSet(rules, config.get("fallbackOutput", DEFAULT_FALLBACK_OUTPUT))
