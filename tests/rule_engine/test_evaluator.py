"""Tests for expression evaluator."""

import pytest
from datetime import datetime, timedelta, timezone

from rulechain.rule_engine.context import EvaluationContext
from rulechain.rule_engine.errors import ConfigurationError
from rulechain.rule_engine.evaluator import ExpressionEvaluator, evaluate
from rulechain.rule_engine.parser import ExpressionParser


NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


def check(record, field, operator, value=None, now=NOW):
    expression = {"field": field, "operator": operator}
    if value is not None:
        expression["value"] = value
    return evaluate(record, expression, now=now)


class TestNumericComparison:
    """Test numeric comparison operators."""

    def test_comparisons(self):
        """Test >, >=, <, <= against a number."""
        record = {"temperature": 35}
        assert check(record, "temperature", ">", 30) is True
        assert check(record, "temperature", ">", 35) is False
        assert check(record, "temperature", ">=", 35) is True
        assert check(record, "temperature", "<", 40) is True
        assert check(record, "temperature", "<=", 34) is False

    def test_numeric_strings_are_coerced(self):
        """Test that numeric strings compare as numbers on both sides."""
        assert check({"temperature": "35"}, "temperature", ">", 30) is True
        assert check({"temperature": 35}, "temperature", ">", "30") is True
        assert check({"temperature": " 35 "}, "temperature", "<", 40) is True

    def test_empty_string_is_zero(self):
        """Test that an empty string coerces to 0."""
        assert check({"level": ""}, "level", "<", 1) is True

    def test_boolean_is_one(self):
        """Test that true coerces to 1."""
        assert check({"flag": True}, "flag", ">", 0) is True
        assert check({"flag": False}, "flag", "<", 1) is True

    def test_non_numeric_is_false(self):
        """Test that non-coercible values never satisfy a comparison."""
        assert check({"temperature": "hot"}, "temperature", ">", 30) is False
        assert check({"temperature": "hot"}, "temperature", "<", 30) is False
        assert check({"temperature": {"c": 35}}, "temperature", ">", 30) is False

    def test_between_is_inclusive(self):
        """Test between with both bounds."""
        assert check({"v": 10}, "v", "between", [10, 20]) is True
        assert check({"v": 20}, "v", "between", [10, 20]) is True
        assert check({"v": 9.99}, "v", "between", [10, 20]) is False
        assert check({"v": 20.01}, "v", "between", [10, 20]) is False
        assert check({"v": "15"}, "v", "between", [10, 20]) is True


class TestEquality:
    """Test == and != loose equality."""

    def test_number_and_string(self):
        """Test that a number equals its string form."""
        assert check({"code": 1}, "code", "==", "1") is True
        assert check({"code": "1.0"}, "code", "==", 1) is True
        assert check({"code": 2}, "code", "!=", "1") is True

    def test_boolean_coerced_to_number(self):
        """Test that booleans compare as 0/1."""
        assert check({"on": True}, "on", "==", 1) is True
        assert check({"on": True}, "on", "==", "1") is True
        assert check({"on": False}, "on", "==", 0) is True
        assert check({"on": True}, "on", "==", True) is True

    def test_strings(self):
        """Test string equality."""
        assert check({"status": "active"}, "status", "==", "active") is True
        assert check({"status": "active"}, "status", "!=", "Active") is True

    def test_array_compares_by_string_form(self):
        """Test that arrays compare equal to their joined string."""
        assert check({"tags": [1, 2]}, "tags", "==", "1,2") is True

    def test_null_field_fails_both(self):
        """Test that an absent field satisfies neither == nor !=."""
        assert check({}, "status", "==", "active") is False
        assert check({}, "status", "!=", "active") is False
        assert check({"status": None}, "status", "!=", "active") is False


class TestPresenceAndTypes:
    """Test presence, emptiness and type-check operators."""

    def test_null_checks(self):
        """Test isNull / isNotNull on absent, null and set fields."""
        assert check({}, "missing", "isNull") is True
        assert check({"v": None}, "v", "isNull") is True
        assert check({"v": 0}, "v", "isNull") is False
        assert check({"v": 0}, "v", "isNotNull") is True
        assert check({}, "missing", "isNotNull") is False

    def test_empty_checks(self):
        """Test isEmpty / isNotEmpty."""
        for empty in ("", [], {}, None):
            assert check({"v": empty}, "v", "isEmpty") is True
        assert check({}, "v", "isEmpty") is True
        assert check({"v": 0}, "v", "isEmpty") is False
        assert check({"v": False}, "v", "isEmpty") is False
        assert check({"v": "x"}, "v", "isNotEmpty") is True
        assert check({"v": [1]}, "v", "isNotEmpty") is True

    def test_type_checks(self):
        """Test run-time type checks."""
        record = {"n": 1.5, "s": "1.5", "b": True, "a": [1]}
        assert check(record, "n", "isNumber") is True
        assert check(record, "s", "isNumber") is False
        assert check(record, "s", "isString") is True
        assert check(record, "b", "isBoolean") is True
        assert check(record, "b", "isNumber") is False
        assert check(record, "a", "isArray") is True
        assert check(record, "missing", "isString") is False


class TestStringOperators:
    """Test string operators."""

    def test_contains(self):
        """Test contains and notContains."""
        record = {"message": "sensor overheat detected"}
        assert check(record, "message", "contains", "overheat") is True
        assert check(record, "message", "notContains", "offline") is True
        assert check(record, "message", "notContains", "sensor") is False

    def test_prefix_and_suffix(self):
        """Test startsWith and endsWith."""
        record = {"deviceName": "pump-07"}
        assert check(record, "deviceName", "startsWith", "pump") is True
        assert check(record, "deviceName", "endsWith", "07") is True
        assert check(record, "deviceName", "endsWith", "08") is False

    def test_numbers_are_stringified(self):
        """Test that numbers are stringified before string matching."""
        assert check({"code": 4041}, "code", "startsWith", "404") is True
        assert check({"reading": 40.0}, "reading", "endsWith", "40") is True
        assert check({"on": True}, "on", "contains", "tru") is True

    def test_matches(self):
        """Test regular expression matching."""
        record = {"serial": "AB-1234"}
        assert check(record, "serial", "matches", r"^[A-Z]{2}-\d{4}$") is True
        assert check(record, "serial", "matches", r"^\d+$") is False

    def test_invalid_pattern(self):
        """Test that an invalid regular expression is a configuration error."""
        with pytest.raises(ConfigurationError) as exc_info:
            check({"serial": "x"}, "serial", "matches", "[unclosed")
        assert exc_info.value.path == "value"


class TestArrayOperators:
    """Test in/notIn and set operators."""

    def test_in_uses_strict_equality(self):
        """Test that in does not coerce types."""
        assert check({"status": "active"}, "status", "in", ["active", "idle"]) is True
        assert check({"code": 1}, "code", "in", [1, 2]) is True
        assert check({"code": "1"}, "code", "in", [1, 2]) is False
        assert check({"flag": True}, "flag", "in", [1]) is False

    def test_not_in(self):
        """Test notIn."""
        assert check({"status": "error"}, "status", "notIn", ["active", "idle"]) is True
        assert check({"status": "idle"}, "status", "notIn", ["active", "idle"]) is False

    def test_set_operators(self):
        """Test hasAll, hasAny and hasNone."""
        record = {"tags": ["indoor", "critical", "floor-2"]}
        assert check(record, "tags", "hasAll", ["indoor", "critical"]) is True
        assert check(record, "tags", "hasAll", ["indoor", "outdoor"]) is False
        assert check(record, "tags", "hasAny", ["outdoor", "critical"]) is True
        assert check(record, "tags", "hasAny", ["outdoor"]) is False
        assert check(record, "tags", "hasNone", ["outdoor", "basement"]) is True
        assert check(record, "tags", "hasNone", ["critical"]) is False

    def test_set_operators_require_array_field(self):
        """Test that set operators are false on non-array fields."""
        assert check({"tags": "indoor"}, "tags", "hasAny", ["indoor"]) is False
        assert check({"tags": "indoor"}, "tags", "hasNone", ["indoor"]) is False


class TestTimeOperators:
    """Test time-relative operators."""

    def test_older_than(self):
        """Test olderThan with an ISO timestamp."""
        record = {"lastSeen": "2024-06-01T11:50:00Z"}
        assert check(record, "lastSeen", "olderThan", 300) is True
        assert check(record, "lastSeen", "olderThan", 600) is False

    def test_newer_than(self):
        """Test newerThan with a datetime."""
        record = {"lastSeen": NOW - timedelta(seconds=30)}
        assert check(record, "lastSeen", "newerThan", 60) is True
        assert check(record, "lastSeen", "newerThan", 10) is False

    def test_in_last(self):
        """Test inLast with epoch milliseconds."""
        millis = int((NOW - timedelta(minutes=5)).timestamp() * 1000)
        assert check({"ts": millis}, "ts", "inLast", 600) is True
        assert check({"ts": millis}, "ts", "inLast", 60) is False

    def test_in_last_rejects_future(self):
        """Test that a future timestamp is not in the last window."""
        record = {"ts": (NOW + timedelta(seconds=5)).isoformat()}
        assert check(record, "ts", "inLast", 600) is False

    def test_naive_datetime_is_utc(self):
        """Test that naive datetimes are read as UTC."""
        record = {"ts": datetime(2024, 6, 1, 11, 59, 0)}
        assert check(record, "ts", "inLast", 120) is True

    def test_unparseable_timestamp(self):
        """Test that an unparseable timestamp is false."""
        assert check({"ts": "yesterday"}, "ts", "olderThan", 1) is False
        assert check({"ts": [1, 2]}, "ts", "newerThan", 1) is False


class TestCompoundExpressions:
    """Test AND/OR composition."""

    def test_and_or(self):
        """Test nested AND and OR."""
        expression = {
            "type": "AND",
            "expressions": [
                {"field": "temperature", "operator": ">", "value": 30},
                {
                    "type": "OR",
                    "expressions": [
                        {"field": "zone", "operator": "==", "value": "A"},
                        {"field": "zone", "operator": "==", "value": "B"},
                    ],
                },
            ],
        }
        assert evaluate({"temperature": 35, "zone": "B"}, expression) is True
        assert evaluate({"temperature": 35, "zone": "C"}, expression) is False
        assert evaluate({"temperature": 25, "zone": "A"}, expression) is False

    def test_lowercase_type(self):
        """Test that the compound type is case-insensitive."""
        expression = {
            "type": "or",
            "expressions": [{"field": "a", "operator": "isNull"}],
        }
        assert evaluate({}, expression) is True

    def test_json_text_expression(self):
        """Test evaluating an expression given as JSON text."""
        assert evaluate({"v": 5}, '{"field": "v", "operator": ">=", "value": 5}') is True


class TestExpressionEvaluator:
    """Test the ExpressionEvaluator class directly."""

    def test_evaluate_parsed_ast(self):
        """Test evaluating a pre-parsed expression with a context."""
        expression = ExpressionParser().parse(
            {"field": "meta.battery", "operator": "<", "value": 20}
        )
        ctx = EvaluationContext(record={"meta": {"battery": 15}}, now=NOW)
        assert ExpressionEvaluator(ctx).evaluate(expression) is True

    def test_exact_key_wins_over_dotted_path(self):
        """Test that a literal dotted key is preferred over nested lookup."""
        ctx = EvaluationContext(record={"meta.battery": 90, "meta": {"battery": 10}})
        assert ctx.lookup("meta.battery").raw == 90

    def test_record_is_not_modified(self):
        """Test that evaluation leaves the record untouched."""
        record = {"tags": ["a"], "v": "1"}
        evaluate(record, {"field": "tags", "operator": "hasAll", "value": ["a"]})
        evaluate(record, {"field": "v", "operator": "==", "value": 1})
        assert record == {"tags": ["a"], "v": "1"}
