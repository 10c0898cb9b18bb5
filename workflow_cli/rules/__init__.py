from workflow_cli.rules.builtins import DEFAULT_BUILTINS, BuiltinRegistry, build_default_registry
from workflow_cli.rules.conditions import (
    OPERATORS_BY_TYPE,
    SWITCH_OPERATORS,
    UNARY_OPERATORS,
    Condition,
    ConditionOutcome,
    DataType,
    EvaluationOptions,
    Operator,
    evaluate_condition,
    evaluate_condition_detailed,
)
from workflow_cli.rules.errors import (
    CoercionError,
    ConfigurationError,
    ConfigValidationError,
    EmptyConditionSetError,
    EmptyRuleSetError,
    InvalidContextError,
    PathSyntaxError,
    RulesError,
)
from workflow_cli.rules.paths import (
    Index,
    Key,
    ResolutionResult,
    VariablePath,
    build_array_path,
    build_variable_path,
    iter_variable_paths,
    parse_path,
    resolve_path,
)
from workflow_cli.rules.routing import (
    CombineOperation,
    ConditionSet,
    ConditionSetResult,
    RouteDecision,
    Rule,
    RuleSet,
    evaluate_condition_set,
    evaluate_condition_set_detailed,
    evaluate_rule_set,
    route_rule_set,
)
from workflow_cli.rules.templates import (
    RenderMode,
    SpanKind,
    TemplateSpan,
    highlight,
    render_template,
    resolve_value,
    substitute,
    substitute_code,
    substitute_json,
)
from workflow_cli.rules.validation import (
    ConfigDiagnostic,
    load_if_config,
    load_switch_config,
    render_diagnostics,
    validate_if_config,
    validate_switch_config,
)
from workflow_cli.rules.values import InputContext, ValueKind, kind_of

__all__ = [
    "DEFAULT_BUILTINS",
    "OPERATORS_BY_TYPE",
    "SWITCH_OPERATORS",
    "UNARY_OPERATORS",
    "BuiltinRegistry",
    "CoercionError",
    "CombineOperation",
    "Condition",
    "ConditionOutcome",
    "ConditionSet",
    "ConditionSetResult",
    "ConfigDiagnostic",
    "ConfigValidationError",
    "ConfigurationError",
    "DataType",
    "EmptyConditionSetError",
    "EmptyRuleSetError",
    "EvaluationOptions",
    "Index",
    "InputContext",
    "InvalidContextError",
    "Key",
    "Operator",
    "PathSyntaxError",
    "RenderMode",
    "ResolutionResult",
    "RouteDecision",
    "Rule",
    "RuleSet",
    "RulesError",
    "SpanKind",
    "TemplateSpan",
    "ValueKind",
    "VariablePath",
    "build_array_path",
    "build_default_registry",
    "build_variable_path",
    "evaluate_condition",
    "evaluate_condition_detailed",
    "evaluate_condition_set",
    "evaluate_condition_set_detailed",
    "evaluate_rule_set",
    "highlight",
    "iter_variable_paths",
    "kind_of",
    "load_if_config",
    "load_switch_config",
    "parse_path",
    "render_diagnostics",
    "render_template",
    "resolve_path",
    "resolve_value",
    "route_rule_set",
    "substitute",
    "substitute_code",
    "substitute_json",
    "validate_if_config",
    "validate_switch_config",
]
