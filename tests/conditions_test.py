from __future__ import annotations

import unittest
from unittest.mock import patch

from workflow_cli.rules import (
    OPERATORS_BY_TYPE,
    SWITCH_OPERATORS,
    Condition,
    ConfigurationError,
    DataType,
    EvaluationOptions,
    Operator,
    evaluate_condition,
    evaluate_condition_detailed,
)


CTX = {
    "A": {
        "user": {"name": "Tom", "email": "tom@example.com", "bio": ""},
        "age": 42,
        "score": 0,
        "active": True,
        "off": False,
        "tags": ["a", "b", 3],
        "empty_list": [],
        "meta": {"k": 1},
        "empty_obj": {},
        "created": "2024-05-01T10:00:00Z",
        "stamp": "01/05/2024 17:00:00",
    }
}


def check(data_type: DataType, value1: str, operator: Operator, value2: str = "") -> bool:
    return evaluate_condition(Condition(data_type, value1, operator, value2), CTX)


class OperatorTableTests(unittest.TestCase):
    def test_operator_sets_per_data_type(self) -> None:
        expected = {
            DataType.STRING: [
                "exists", "notExists", "isEmpty", "isNotEmpty", "equal", "notEqual", "contains",
                "notContains", "startsWith", "notStartsWith", "endsWith", "notEndsWith", "regex", "notRegex",
            ],
            DataType.NUMBER: [
                "exists", "notExists", "isEmpty", "isNotEmpty", "equal", "notEqual", "gt", "lt", "gte", "lte",
            ],
            DataType.DATETIME: [
                "exists", "notExists", "isEmpty", "isNotEmpty", "equal", "notEqual",
                "after", "before", "afterOrEqual", "beforeOrEqual",
            ],
            DataType.BOOLEAN: [
                "exists", "notExists", "isEmpty", "isNotEmpty", "true", "false", "equal", "notEqual",
            ],
            DataType.ARRAY: [
                "exists", "notExists", "isEmpty", "isNotEmpty", "contains", "notContains", "lengthEqual",
                "lengthNotEqual", "lengthGt", "lengthLt", "lengthGte", "lengthLte",
            ],
            DataType.OBJECT: ["exists", "notExists", "isEmpty", "isNotEmpty"],
        }
        actual = {data_type: [op.value for op in ops] for data_type, ops in OPERATORS_BY_TYPE.items()}
        self.assertEqual(actual, expected)

    def test_switch_operator_subset(self) -> None:
        self.assertEqual(
            {op.value for op in SWITCH_OPERATORS},
            {
                "equal", "notEqual", "contains", "notContains", "startsWith", "endsWith", "regex",
                "exists", "notExists", "isEmpty", "isNotEmpty",
            },
        )

    def test_operator_not_allowed_for_type_is_false(self) -> None:
        outcome = evaluate_condition_detailed(Condition(DataType.NUMBER, "{{A.age}}", Operator.CONTAINS, "4"), CTX)
        self.assertFalse(outcome.result)
        self.assertIn("not allowed", outcome.reason or "")

    def test_unknown_operator_is_false(self) -> None:
        self.assertFalse(evaluate_condition(Condition(DataType.STRING, "x", "bogus", "x"), CTX))  # type: ignore[arg-type]


class UnaryOperatorTests(unittest.TestCase):
    def test_unary_operators_ignore_value2(self) -> None:
        self.assertTrue(check(DataType.STRING, "{{A.user.name}}", Operator.IS_NOT_EMPTY, "anything"))
        self.assertTrue(check(DataType.STRING, "{{A.user.name}}", Operator.EXISTS, "{{A.nope}}"))
        self.assertTrue(check(DataType.BOOLEAN, "{{A.active}}", Operator.TRUE, "false"))

    def test_exists_follows_resolution_not_emptiness(self) -> None:
        self.assertTrue(check(DataType.STRING, "{{A.user.bio}}", Operator.EXISTS))
        self.assertFalse(check(DataType.STRING, "{{A.nope}}", Operator.EXISTS))
        self.assertTrue(check(DataType.STRING, "{{A.nope}}", Operator.NOT_EXISTS))
        self.assertFalse(check(DataType.STRING, "{{A.user.name}}", Operator.NOT_EXISTS))

    def test_exists_on_plain_text(self) -> None:
        self.assertTrue(check(DataType.STRING, "hello", Operator.EXISTS))
        self.assertFalse(check(DataType.STRING, "   ", Operator.EXISTS))

    def test_emptiness(self) -> None:
        self.assertTrue(check(DataType.STRING, "{{A.user.bio}}", Operator.IS_EMPTY))
        self.assertTrue(check(DataType.STRING, "{{A.nope}}", Operator.IS_EMPTY))
        self.assertFalse(check(DataType.STRING, "{{A.nope}}", Operator.IS_NOT_EMPTY))
        self.assertTrue(check(DataType.ARRAY, "{{A.empty_list}}", Operator.IS_EMPTY))
        self.assertFalse(check(DataType.ARRAY, "{{A.tags}}", Operator.IS_EMPTY))
        self.assertTrue(check(DataType.OBJECT, "{{A.empty_obj}}", Operator.IS_EMPTY))
        self.assertTrue(check(DataType.OBJECT, "{{A.meta}}", Operator.IS_NOT_EMPTY))

    def test_zero_and_false_are_not_empty(self) -> None:
        self.assertFalse(check(DataType.NUMBER, "{{A.score}}", Operator.IS_EMPTY))
        self.assertTrue(check(DataType.NUMBER, "{{A.score}}", Operator.IS_NOT_EMPTY))
        self.assertFalse(check(DataType.BOOLEAN, "{{A.off}}", Operator.IS_EMPTY))

    def test_container_emptiness_uses_decoded_value(self) -> None:
        self.assertTrue(check(DataType.ARRAY, "  ", Operator.IS_EMPTY))
        self.assertTrue(check(DataType.ARRAY, " [ ] ", Operator.IS_EMPTY))
        self.assertTrue(check(DataType.OBJECT, "{ }", Operator.IS_EMPTY))
        self.assertTrue(check(DataType.OBJECT, '{"k": null}', Operator.IS_NOT_EMPTY))

    def test_emptiness_of_unparseable_container_is_false_both_ways(self) -> None:
        self.assertFalse(check(DataType.ARRAY, "not json", Operator.IS_EMPTY))
        self.assertFalse(check(DataType.ARRAY, "not json", Operator.IS_NOT_EMPTY))
        self.assertFalse(check(DataType.ARRAY, "{{A.meta}}", Operator.IS_EMPTY))

    def test_boolean_truth(self) -> None:
        self.assertTrue(check(DataType.BOOLEAN, "{{A.active}}", Operator.TRUE))
        self.assertFalse(check(DataType.BOOLEAN, "{{A.active}}", Operator.FALSE))
        self.assertTrue(check(DataType.BOOLEAN, "{{A.off}}", Operator.FALSE))
        self.assertTrue(check(DataType.BOOLEAN, "1", Operator.TRUE))
        self.assertFalse(check(DataType.BOOLEAN, "{{A.nope}}", Operator.TRUE))
        self.assertFalse(check(DataType.BOOLEAN, "{{A.nope}}", Operator.FALSE))


class StringOperatorTests(unittest.TestCase):
    def test_comparisons(self) -> None:
        email = "{{A.user.email}}"
        self.assertTrue(check(DataType.STRING, "{{A.user.name}}", Operator.EQUAL, "Tom"))
        self.assertTrue(check(DataType.STRING, "{{A.user.name}}", Operator.NOT_EQUAL, "Tim"))
        self.assertTrue(check(DataType.STRING, "{{A.user.name}}", Operator.EQUAL, "{{A.user.name}}"))
        self.assertTrue(check(DataType.STRING, email, Operator.CONTAINS, "example"))
        self.assertTrue(check(DataType.STRING, email, Operator.NOT_CONTAINS, "zzz"))
        self.assertTrue(check(DataType.STRING, email, Operator.STARTS_WITH, "tom@"))
        self.assertTrue(check(DataType.STRING, email, Operator.NOT_STARTS_WITH, "bob@"))
        self.assertTrue(check(DataType.STRING, email, Operator.ENDS_WITH, ".com"))
        self.assertTrue(check(DataType.STRING, email, Operator.NOT_ENDS_WITH, ".org"))
        self.assertFalse(check(DataType.STRING, email, Operator.ENDS_WITH, ".org"))

    def test_regex(self) -> None:
        email = "{{A.user.email}}"
        self.assertTrue(check(DataType.STRING, email, Operator.REGEX, r"^[a-z]+@example\.com$"))
        self.assertTrue(check(DataType.STRING, email, Operator.REGEX, "example"))
        self.assertTrue(check(DataType.STRING, email, Operator.NOT_REGEX, "^x"))
        self.assertFalse(check(DataType.STRING, email, Operator.NOT_REGEX, "tom"))

    def test_invalid_regex_is_false(self) -> None:
        self.assertFalse(check(DataType.STRING, "{{A.user.email}}", Operator.REGEX, "(["))
        outcome = evaluate_condition_detailed(
            Condition(DataType.STRING, "{{A.user.email}}", Operator.NOT_REGEX, "(["), CTX
        )
        self.assertFalse(outcome.result)
        self.assertIn("invalid regex", outcome.reason or "")

    def test_regex_timeout_is_false(self) -> None:
        condition = Condition(DataType.STRING, "{{A.user.email}}", Operator.REGEX, "(a+)+$")
        options = EvaluationOptions(regex_timeout_seconds=0.01)
        with patch("workflow_cli.rules.conditions._regex_search", side_effect=TimeoutError("regex timed out")):
            with self.assertLogs("workflow_cli.rules.conditions", level="WARNING"):
                outcome = evaluate_condition_detailed(condition, CTX, options=options)
        self.assertFalse(outcome.result)
        self.assertEqual(outcome.reason, "regex timed out")


class NumberOperatorTests(unittest.TestCase):
    def test_ordering(self) -> None:
        age = "{{A.age}}"
        self.assertTrue(check(DataType.NUMBER, age, Operator.GT, "40"))
        self.assertFalse(check(DataType.NUMBER, age, Operator.LT, "40"))
        self.assertTrue(check(DataType.NUMBER, age, Operator.GTE, "42"))
        self.assertTrue(check(DataType.NUMBER, age, Operator.LTE, "42"))
        self.assertTrue(check(DataType.NUMBER, age, Operator.EQUAL, "42.0"))
        self.assertTrue(check(DataType.NUMBER, age, Operator.NOT_EQUAL, "41"))

    def test_coercion_failure_is_false(self) -> None:
        self.assertFalse(check(DataType.NUMBER, "{{A.user.name}}", Operator.GT, "1"))
        self.assertFalse(check(DataType.NUMBER, "{{A.user.name}}", Operator.NOT_EQUAL, "1"))
        self.assertFalse(check(DataType.NUMBER, "nan", Operator.NOT_EQUAL, "1"))
        outcome = evaluate_condition_detailed(Condition(DataType.NUMBER, "{{A.age}}", Operator.GT, ""), CTX)
        self.assertFalse(outcome.result)
        self.assertIn("coercion failed", outcome.reason or "")

    def test_underscored_digits_are_not_numbers(self) -> None:
        self.assertFalse(check(DataType.NUMBER, "1_000", Operator.EQUAL, "1000"))
        self.assertFalse(check(DataType.NUMBER, "1000", Operator.NOT_EQUAL, "1_000"))
        self.assertTrue(check(DataType.NUMBER, " 1e3 ", Operator.EQUAL, "1000"))


class DateTimeOperatorTests(unittest.TestCase):
    def test_ordering_of_instants(self) -> None:
        created = "{{A.created}}"
        self.assertTrue(check(DataType.DATETIME, created, Operator.AFTER, "2024-05-01T09:00:00Z"))
        self.assertFalse(check(DataType.DATETIME, created, Operator.BEFORE, "2024-05-01T09:00:00Z"))
        self.assertTrue(check(DataType.DATETIME, created, Operator.AFTER_OR_EQUAL, "2024-05-01T10:00:00Z"))
        self.assertTrue(check(DataType.DATETIME, created, Operator.BEFORE_OR_EQUAL, "2024-05-02"))

    def test_equal_compares_instants_across_offsets(self) -> None:
        created = "{{A.created}}"
        self.assertTrue(check(DataType.DATETIME, created, Operator.EQUAL, "2024-05-01T17:00:00+07:00"))
        self.assertTrue(check(DataType.DATETIME, created, Operator.NOT_EQUAL, "2024-05-01T17:00:00Z"))

    def test_naive_and_day_first_values_use_configured_timezone(self) -> None:
        self.assertTrue(check(DataType.DATETIME, "{{A.created}}", Operator.EQUAL, "2024-05-01T17:00:00"))
        self.assertTrue(check(DataType.DATETIME, "{{A.stamp}}", Operator.EQUAL, "{{A.created}}"))
        options = EvaluationOptions(timezone="UTC")
        condition = Condition(DataType.DATETIME, "{{A.created}}", Operator.EQUAL, "2024-05-01T10:00:00")
        self.assertTrue(evaluate_condition(condition, CTX, options=options))

    def test_unparseable_date_is_false(self) -> None:
        self.assertFalse(check(DataType.DATETIME, "{{A.created}}", Operator.AFTER, "yesterday"))
        self.assertFalse(check(DataType.DATETIME, "{{A.created}}", Operator.NOT_EQUAL, "yesterday"))


class BooleanOperatorTests(unittest.TestCase):
    def test_equality_after_coercion(self) -> None:
        self.assertTrue(check(DataType.BOOLEAN, "{{A.active}}", Operator.EQUAL, "1"))
        self.assertTrue(check(DataType.BOOLEAN, "{{A.active}}", Operator.NOT_EQUAL, "false"))
        self.assertTrue(check(DataType.BOOLEAN, "{{A.off}}", Operator.EQUAL, "no"))


class ArrayOperatorTests(unittest.TestCase):
    def test_membership(self) -> None:
        tags = "{{A.tags}}"
        self.assertTrue(check(DataType.ARRAY, tags, Operator.CONTAINS, "a"))
        self.assertTrue(check(DataType.ARRAY, tags, Operator.CONTAINS, "3"))
        self.assertTrue(check(DataType.ARRAY, tags, Operator.NOT_CONTAINS, "z"))
        self.assertFalse(check(DataType.ARRAY, tags, Operator.CONTAINS, "true"))

    def test_length_comparisons(self) -> None:
        tags = "{{A.tags}}"
        self.assertTrue(check(DataType.ARRAY, tags, Operator.LENGTH_EQUAL, "3"))
        self.assertTrue(check(DataType.ARRAY, tags, Operator.LENGTH_NOT_EQUAL, "1"))
        self.assertTrue(check(DataType.ARRAY, tags, Operator.LENGTH_GT, "2"))
        self.assertFalse(check(DataType.ARRAY, tags, Operator.LENGTH_LT, "3"))
        self.assertTrue(check(DataType.ARRAY, tags, Operator.LENGTH_GTE, "3"))
        self.assertFalse(check(DataType.ARRAY, tags, Operator.LENGTH_LTE, "2"))
        self.assertFalse(check(DataType.ARRAY, tags, Operator.LENGTH_EQUAL, "three"))

    def test_non_array_subject_is_false(self) -> None:
        self.assertFalse(check(DataType.ARRAY, "{{A.user.name}}", Operator.CONTAINS, "T"))
        self.assertFalse(check(DataType.ARRAY, "{{A.meta}}", Operator.LENGTH_EQUAL, "1"))


class NeverRaisesTests(unittest.TestCase):
    def test_missing_context_and_odd_inputs(self) -> None:
        self.assertFalse(evaluate_condition(Condition(DataType.NUMBER, "{{A.age}}", Operator.GT, "1"), None))
        self.assertFalse(evaluate_condition(Condition("nope", "x", Operator.EQUAL, "x"), CTX))  # type: ignore[arg-type]
        self.assertTrue(evaluate_condition(Condition("string", "x", "equal", "x"), CTX))  # type: ignore[arg-type]

    def test_deeply_nested_json_is_a_coercion_failure(self) -> None:
        deep = "[" * 5000
        ctx = {"A": {"deep": deep, "tags": ["a"]}}
        for operator, value2 in (
            (Operator.IS_EMPTY, ""),
            (Operator.IS_NOT_EMPTY, ""),
            (Operator.LENGTH_GT, "0"),
            (Operator.CONTAINS, "a"),
        ):
            with self.subTest(operator=operator.value):
                outcome = evaluate_condition_detailed(Condition(DataType.ARRAY, "{{A.deep}}", operator, value2), ctx)
                self.assertFalse(outcome.result)
                self.assertIn("coercion failed", outcome.reason or "")

    def test_deeply_nested_needle_only_matches_as_text(self) -> None:
        ctx = {"A": {"tags": ["a", "b"]}}
        deep = "[" * 5000
        self.assertFalse(evaluate_condition(Condition(DataType.ARRAY, "{{A.tags}}", Operator.CONTAINS, deep), ctx))
        self.assertTrue(evaluate_condition(Condition(DataType.ARRAY, "{{A.tags}}", Operator.NOT_CONTAINS, deep), ctx))


class EvaluationOptionsTests(unittest.TestCase):
    def test_unknown_timezone_is_rejected_up_front(self) -> None:
        with self.assertRaises(ConfigurationError):
            EvaluationOptions(timezone="Nope/Zone")

    def test_known_timezone(self) -> None:
        self.assertEqual(str(EvaluationOptions(timezone="UTC").tz), "UTC")


if __name__ == "__main__":
    unittest.main()
