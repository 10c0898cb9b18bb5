from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, tzinfo
from enum import Enum
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import regex

from workflow_cli.rules.builtins import DEFAULT_TIMEZONE, BuiltinRegistry
from workflow_cli.rules.errors import CoercionError, ConfigurationError
from workflow_cli.rules.templates import substitute_with_report
from workflow_cli.rules.values import is_empty, values_equal


LOGGER = logging.getLogger(__name__)

DEFAULT_REGEX_TIMEOUT_SECONDS = 0.25
DAY_FIRST_FORMATS = ("%d/%m/%Y %H:%M:%S", "%d/%m/%Y %H:%M", "%d/%m/%Y")


class DataType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    DATETIME = "dateTime"
    BOOLEAN = "boolean"
    ARRAY = "array"
    OBJECT = "object"


class Operator(str, Enum):
    EXISTS = "exists"
    NOT_EXISTS = "notExists"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"
    EQUAL = "equal"
    NOT_EQUAL = "notEqual"
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    STARTS_WITH = "startsWith"
    NOT_STARTS_WITH = "notStartsWith"
    ENDS_WITH = "endsWith"
    NOT_ENDS_WITH = "notEndsWith"
    REGEX = "regex"
    NOT_REGEX = "notRegex"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    AFTER = "after"
    BEFORE = "before"
    AFTER_OR_EQUAL = "afterOrEqual"
    BEFORE_OR_EQUAL = "beforeOrEqual"
    TRUE = "true"
    FALSE = "false"
    LENGTH_EQUAL = "lengthEqual"
    LENGTH_NOT_EQUAL = "lengthNotEqual"
    LENGTH_GT = "lengthGt"
    LENGTH_LT = "lengthLt"
    LENGTH_GTE = "lengthGte"
    LENGTH_LTE = "lengthLte"


_PRESENCE = (Operator.EXISTS, Operator.NOT_EXISTS, Operator.IS_EMPTY, Operator.IS_NOT_EMPTY)

OPERATORS_BY_TYPE: dict[DataType, tuple[Operator, ...]] = {
    DataType.STRING: _PRESENCE
    + (
        Operator.EQUAL,
        Operator.NOT_EQUAL,
        Operator.CONTAINS,
        Operator.NOT_CONTAINS,
        Operator.STARTS_WITH,
        Operator.NOT_STARTS_WITH,
        Operator.ENDS_WITH,
        Operator.NOT_ENDS_WITH,
        Operator.REGEX,
        Operator.NOT_REGEX,
    ),
    DataType.NUMBER: _PRESENCE
    + (Operator.EQUAL, Operator.NOT_EQUAL, Operator.GT, Operator.LT, Operator.GTE, Operator.LTE),
    DataType.DATETIME: _PRESENCE
    + (
        Operator.EQUAL,
        Operator.NOT_EQUAL,
        Operator.AFTER,
        Operator.BEFORE,
        Operator.AFTER_OR_EQUAL,
        Operator.BEFORE_OR_EQUAL,
    ),
    DataType.BOOLEAN: _PRESENCE + (Operator.TRUE, Operator.FALSE, Operator.EQUAL, Operator.NOT_EQUAL),
    DataType.ARRAY: _PRESENCE
    + (
        Operator.CONTAINS,
        Operator.NOT_CONTAINS,
        Operator.LENGTH_EQUAL,
        Operator.LENGTH_NOT_EQUAL,
        Operator.LENGTH_GT,
        Operator.LENGTH_LT,
        Operator.LENGTH_GTE,
        Operator.LENGTH_LTE,
    ),
    DataType.OBJECT: _PRESENCE,
}

UNARY_OPERATORS = frozenset(_PRESENCE + (Operator.TRUE, Operator.FALSE))

SWITCH_OPERATORS = frozenset(
    {
        Operator.EQUAL,
        Operator.NOT_EQUAL,
        Operator.CONTAINS,
        Operator.NOT_CONTAINS,
        Operator.STARTS_WITH,
        Operator.ENDS_WITH,
        Operator.REGEX,
        Operator.EXISTS,
        Operator.NOT_EXISTS,
        Operator.IS_EMPTY,
        Operator.IS_NOT_EMPTY,
    }
)


@dataclass(frozen=True, slots=True)
class Condition:
    data_type: DataType
    value1: str
    operator: Operator
    value2: str = ""


@dataclass(slots=True)
class EvaluationOptions:
    builtins: BuiltinRegistry | None = None
    timezone: str = DEFAULT_TIMEZONE
    regex_timeout_seconds: float = DEFAULT_REGEX_TIMEOUT_SECONDS

    def __post_init__(self) -> None:
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigurationError(f"Unknown timezone '{self.timezone}'.") from exc

    @property
    def tz(self) -> tzinfo:
        return ZoneInfo(self.timezone)


@dataclass(slots=True)
class ConditionOutcome:
    result: bool
    data_type: str
    operator: str
    raw_value1: str
    raw_value2: str | None = None
    reason: str | None = None
    details: dict[str, Any] = field(default_factory=dict)


def parse_datetime(raw: str, tz: tzinfo) -> datetime:
    text = raw.strip()
    if not text:
        raise CoercionError("Empty value cannot be read as a date/time.")
    if text[-1] in {"Z", "z"}:
        text = text[:-1] + "+00:00"

    parsed: datetime | None = None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        for fmt in DAY_FIRST_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        raise CoercionError(f"'{raw}' is not an ISO-8601 date/time.")
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=tz)
    return parsed


def parse_number(raw: str) -> float:
    if "_" in raw:
        raise CoercionError(f"'{raw}' is not a number.")
    try:
        number = float(raw.strip())
    except ValueError as exc:
        raise CoercionError(f"'{raw}' is not a number.") from exc
    if not math.isfinite(number):
        raise CoercionError(f"'{raw}' is not a finite number.")
    return number


def parse_boolean(raw: str) -> bool:
    return raw.strip().lower() in {"true", "1"}


def parse_json_container(raw: str, data_type: DataType) -> list | dict:
    expected = list if data_type is DataType.ARRAY else dict
    try:
        decoded = json.loads(raw)
    except (json.JSONDecodeError, RecursionError) as exc:
        raise CoercionError(f"'{raw}' is not valid JSON.") from exc
    if not isinstance(decoded, expected):
        raise CoercionError(f"'{raw}' is not a JSON {data_type.value}.")
    return decoded


def coerce(raw: str, data_type: DataType, tz: tzinfo) -> object:
    if data_type is DataType.STRING:
        return raw
    if data_type is DataType.NUMBER:
        return parse_number(raw)
    if data_type is DataType.DATETIME:
        return parse_datetime(raw, tz)
    if data_type is DataType.BOOLEAN:
        return parse_boolean(raw)
    return parse_json_container(raw, data_type)


def _is_blank_or_empty(raw: str, data_type: DataType) -> bool:
    if data_type in {DataType.ARRAY, DataType.OBJECT} and raw.strip():
        return is_empty(parse_json_container(raw, data_type))
    return is_empty(raw)


def _regex_search(pattern: str, subject: str, timeout: float) -> bool:
    compiled = regex.compile(pattern)
    return compiled.search(subject, timeout=timeout) is not None


def _array_contains(items: list, raw_needle: str) -> bool:
    candidates: list[object] = [raw_needle]
    try:
        candidates.append(json.loads(raw_needle))
    except (json.JSONDecodeError, RecursionError):
        pass
    return any(values_equal(item, candidate) for item in items for candidate in candidates)


def _parse_length(raw: str) -> int:
    try:
        return int(raw.strip())
    except ValueError as exc:
        raise CoercionError(f"'{raw}' is not an integer length.") from exc


def _compare_binary(
    operator: Operator,
    data_type: DataType,
    raw1: str,
    raw2: str,
    options: EvaluationOptions,
) -> bool:
    tz = options.tz
    left = coerce(raw1, data_type, tz)

    if operator in {Operator.REGEX, Operator.NOT_REGEX}:
        matched = _regex_search(raw2, str(left), options.regex_timeout_seconds)
        return matched if operator is Operator.REGEX else not matched

    if data_type is DataType.ARRAY:
        assert isinstance(left, list)
        if operator in {Operator.CONTAINS, Operator.NOT_CONTAINS}:
            found = _array_contains(left, raw2)
            return found if operator is Operator.CONTAINS else not found
        length, expected = len(left), _parse_length(raw2)
        if operator is Operator.LENGTH_EQUAL:
            return length == expected
        if operator is Operator.LENGTH_NOT_EQUAL:
            return length != expected
        if operator is Operator.LENGTH_GT:
            return length > expected
        if operator is Operator.LENGTH_LT:
            return length < expected
        if operator is Operator.LENGTH_GTE:
            return length >= expected
        if operator is Operator.LENGTH_LTE:
            return length <= expected

    right = coerce(raw2, data_type, tz)

    if operator is Operator.EQUAL:
        return values_equal(left, right) if data_type is DataType.OBJECT else left == right
    if operator is Operator.NOT_EQUAL:
        return not values_equal(left, right) if data_type is DataType.OBJECT else left != right
    if operator is Operator.CONTAINS:
        return str(right) in str(left)
    if operator is Operator.NOT_CONTAINS:
        return str(right) not in str(left)
    if operator is Operator.STARTS_WITH:
        return str(left).startswith(str(right))
    if operator is Operator.NOT_STARTS_WITH:
        return not str(left).startswith(str(right))
    if operator is Operator.ENDS_WITH:
        return str(left).endswith(str(right))
    if operator is Operator.NOT_ENDS_WITH:
        return not str(left).endswith(str(right))
    if operator in {Operator.GT, Operator.AFTER}:
        return left > right  # type: ignore[operator]
    if operator in {Operator.LT, Operator.BEFORE}:
        return left < right  # type: ignore[operator]
    if operator in {Operator.GTE, Operator.AFTER_OR_EQUAL}:
        return left >= right  # type: ignore[operator]
    if operator in {Operator.LTE, Operator.BEFORE_OR_EQUAL}:
        return left <= right  # type: ignore[operator]
    return False


def _compare_unary(operator: Operator, data_type: DataType, raw1: str, exists: bool) -> bool:
    if operator is Operator.EXISTS:
        return exists
    if operator is Operator.NOT_EXISTS:
        return not exists
    if not exists:
        return operator is Operator.IS_EMPTY
    if operator is Operator.IS_EMPTY:
        return _is_blank_or_empty(raw1, data_type)
    if operator is Operator.IS_NOT_EMPTY:
        return not _is_blank_or_empty(raw1, data_type)
    if operator is Operator.TRUE:
        return parse_boolean(raw1)
    return not parse_boolean(raw1)


def evaluate_comparison(
    value1: str,
    operator: Operator | str,
    value2: str | None,
    data_type: DataType | str,
    ctx: Mapping[str, Any] | None,
    *,
    allowed: frozenset[Operator] | tuple[Operator, ...] | None = None,
    options: EvaluationOptions | None = None,
) -> ConditionOutcome:
    """Resolve both sides of a comparison and evaluate it. Never raises."""
    opts = options or EvaluationOptions()
    outcome = ConditionOutcome(
        result=False,
        data_type=str(getattr(data_type, "value", data_type)),
        operator=str(getattr(operator, "value", operator)),
        raw_value1="",
    )

    try:
        dtype = DataType(data_type)
        op = Operator(operator)
    except ValueError:
        outcome.reason = "unknown data type or operator"
        return outcome

    first = substitute_with_report(value1 or "", ctx, builtins=opts.builtins)
    outcome.raw_value1 = first.text
    exists = first.fully_resolved if first.token_count else first.text.strip() != ""
    outcome.details["exists"] = exists

    permitted = OPERATORS_BY_TYPE[dtype] if allowed is None else allowed
    if op not in permitted:
        outcome.reason = f"operator '{op.value}' is not allowed for {dtype.value}"
        return outcome

    try:
        if op in UNARY_OPERATORS:
            outcome.result = _compare_unary(op, dtype, first.text, exists)
        else:
            second = substitute_with_report(value2 or "", ctx, builtins=opts.builtins)
            outcome.raw_value2 = second.text
            outcome.result = bool(_compare_binary(op, dtype, first.text, second.text, opts))
    except CoercionError as exc:
        outcome.reason = f"coercion failed: {exc}"
    except regex.error as exc:
        outcome.reason = f"invalid regex: {exc}"
    except TimeoutError:
        LOGGER.warning("Regex evaluation timed out after %.3fs.", opts.regex_timeout_seconds)
        outcome.reason = "regex timed out"
    except TypeError as exc:
        # Mixed offset-naive/aware or otherwise unorderable operands.
        outcome.reason = f"values are not comparable: {exc}"

    LOGGER.debug(
        "Condition evaluated: dataType=%s operator=%s value1=%r value2=%r result=%s reason=%s",
        outcome.data_type,
        outcome.operator,
        outcome.raw_value1,
        outcome.raw_value2,
        outcome.result,
        outcome.reason,
    )
    return outcome


def evaluate_condition_detailed(
    condition: Condition,
    ctx: Mapping[str, Any] | None,
    *,
    options: EvaluationOptions | None = None,
) -> ConditionOutcome:
    return evaluate_comparison(
        condition.value1,
        condition.operator,
        condition.value2,
        condition.data_type,
        ctx,
        options=options,
    )


def evaluate_condition(
    condition: Condition,
    ctx: Mapping[str, Any] | None,
    *,
    options: EvaluationOptions | None = None,
) -> bool:
    return evaluate_condition_detailed(condition, ctx, options=options).result
