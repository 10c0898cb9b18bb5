from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from workflow_cli.rules.conditions import (
    SWITCH_OPERATORS,
    Condition,
    ConditionOutcome,
    DataType,
    EvaluationOptions,
    Operator,
    evaluate_comparison,
    evaluate_condition_detailed,
)
from workflow_cli.rules.errors import EmptyConditionSetError, EmptyRuleSetError


LOGGER = logging.getLogger(__name__)

DEFAULT_FALLBACK_OUTPUT = "No Match"
FALLBACK_INDEX = -1


class CombineOperation(str, Enum):
    AND = "AND"
    OR = "OR"


def parse_combine(value: CombineOperation | str) -> CombineOperation:
    if isinstance(value, CombineOperation):
        return value
    return CombineOperation(str(value).strip().upper())


@dataclass(frozen=True, slots=True)
class ConditionSet:
    conditions: tuple[Condition, ...]
    combine: CombineOperation = CombineOperation.AND

    def __post_init__(self) -> None:
        if not self.conditions:
            raise EmptyConditionSetError("An If node needs at least one condition.")
        object.__setattr__(self, "conditions", tuple(self.conditions))
        object.__setattr__(self, "combine", parse_combine(self.combine))


@dataclass(frozen=True, slots=True)
class Rule:
    value_template: str
    operator: Operator
    value2_template: str
    output_name: str


@dataclass(frozen=True, slots=True)
class RuleSet:
    rules: tuple[Rule, ...]
    fallback_output_name: str = DEFAULT_FALLBACK_OUTPUT

    def __post_init__(self) -> None:
        if not self.rules:
            raise EmptyRuleSetError("A Switch node needs at least one rule.")
        object.__setattr__(self, "rules", tuple(self.rules))


@dataclass(slots=True)
class ConditionSetResult:
    result: bool
    condition_results: list[bool]
    combine: CombineOperation
    outcomes: list[ConditionOutcome] = field(default_factory=list)


@dataclass(slots=True)
class RouteDecision:
    matched_index: int
    output_name: str

    @property
    def is_fallback(self) -> bool:
        return self.matched_index == FALLBACK_INDEX


def _require_conditions(condition_set: ConditionSet) -> None:
    if not condition_set.conditions:
        raise EmptyConditionSetError("An If node needs at least one condition.")


def evaluate_condition_set_detailed(
    condition_set: ConditionSet,
    ctx: Mapping[str, Any] | None,
    *,
    options: EvaluationOptions | None = None,
) -> ConditionSetResult:
    _require_conditions(condition_set)
    outcomes = [evaluate_condition_detailed(item, ctx, options=options) for item in condition_set.conditions]
    results = [outcome.result for outcome in outcomes]
    if condition_set.combine is CombineOperation.OR:
        final = any(results)
    else:
        final = all(results)

    LOGGER.debug(
        "If node result: final=%s condition_results=%s combine=%s",
        final,
        results,
        condition_set.combine.value,
    )
    return ConditionSetResult(
        result=final,
        condition_results=results,
        combine=condition_set.combine,
        outcomes=outcomes,
    )


def evaluate_condition_set(
    condition_set: ConditionSet,
    ctx: Mapping[str, Any] | None,
    *,
    options: EvaluationOptions | None = None,
) -> bool:
    return evaluate_condition_set_detailed(condition_set, ctx, options=options).result


def evaluate_rule(
    rule: Rule,
    ctx: Mapping[str, Any] | None,
    *,
    options: EvaluationOptions | None = None,
) -> bool:
    outcome = evaluate_comparison(
        rule.value_template,
        rule.operator,
        rule.value2_template,
        DataType.STRING,
        ctx,
        allowed=SWITCH_OPERATORS,
        options=options,
    )
    return outcome.result


def route_rule_set(
    rule_set: RuleSet,
    ctx: Mapping[str, Any] | None,
    *,
    options: EvaluationOptions | None = None,
) -> RouteDecision:
    """First rule that matches wins; stored order is never changed."""
    if not rule_set.rules:
        raise EmptyRuleSetError("A Switch node needs at least one rule.")

    for index, rule in enumerate(rule_set.rules):
        matched = evaluate_rule(rule, ctx, options=options)
        LOGGER.debug(
            "Switch rule evaluated: rule_index=%s operator=%s result=%s",
            index,
            getattr(rule.operator, "value", rule.operator),
            matched,
        )
        if matched:
            return RouteDecision(matched_index=index, output_name=rule.output_name)

    return RouteDecision(matched_index=FALLBACK_INDEX, output_name=rule_set.fallback_output_name)


def evaluate_rule_set(
    rule_set: RuleSet,
    ctx: Mapping[str, Any] | None,
    *,
    options: EvaluationOptions | None = None,
) -> str:
    return route_rule_set(rule_set, ctx, options=options).output_name
