"""Expression evaluator for filter conditions."""

import logging
import re
from datetime import datetime
from typing import Any, Mapping

from rulechain.rule_engine.context import EvaluationContext
from rulechain.rule_engine.errors import ConfigurationError
from rulechain.rule_engine.models import (
    CompoundExpression,
    Expression,
    LogicalOperator,
    Operator,
    PRESENCE_OPERATORS,
    SimpleExpression,
)
from rulechain.rule_engine.parser import ExpressionParser
from rulechain.rule_engine.values import (
    FieldValue,
    ValueKind,
    loose_equals,
    strict_equals,
    to_js_string,
    to_number,
    to_timestamp,
)

logger = logging.getLogger(__name__)

_NUMERIC_COMPARISONS = {
    Operator.GT: lambda left, right: left > right,
    Operator.GTE: lambda left, right: left >= right,
    Operator.LT: lambda left, right: left < right,
    Operator.LTE: lambda left, right: left <= right,
}

_TYPE_CHECKS = {
    Operator.IS_NUMBER: ValueKind.NUMBER,
    Operator.IS_STRING: ValueKind.STRING,
    Operator.IS_BOOLEAN: ValueKind.BOOLEAN,
    Operator.IS_ARRAY: ValueKind.ARRAY,
}


class ExpressionEvaluator:
    """Evaluator for filter expression AST nodes.

    Evaluation is total over well-formed expressions: missing fields,
    odd types and unparseable timestamps all evaluate to False rather
    than raising.
    """

    def __init__(self, context: EvaluationContext):
        """Initialize the evaluator.

        Args:
            context: Evaluation context holding the record and the instant
        """
        self.ctx = context

    def evaluate(self, expression: Expression) -> bool:
        """Evaluate an expression against the context record.

        Args:
            expression: Parsed SimpleExpression or CompoundExpression

        Returns:
            Whether the record satisfies the expression

        Raises:
            ConfigurationError: If the AST holds an operand of the wrong shape
        """
        if isinstance(expression, CompoundExpression):
            return self._evaluate_compound(expression)
        if isinstance(expression, SimpleExpression):
            return self._evaluate_simple(expression)
        raise ConfigurationError(
            f"not an expression node: {type(expression).__name__}"
        )

    def _evaluate_compound(self, expression: CompoundExpression) -> bool:
        results = (self.evaluate(child) for child in expression.children)
        if expression.op is LogicalOperator.AND:
            return all(results)
        return any(results)

    def _evaluate_simple(self, expression: SimpleExpression) -> bool:
        value = self.ctx.lookup(expression.field)
        operator = expression.operator

        # Presence operators are about absence, so they run before the null guard
        if operator in PRESENCE_OPERATORS:
            return self._evaluate_presence(operator, value)

        # An unset field never satisfies any other operator
        if value.is_null:
            return False

        if operator in _TYPE_CHECKS:
            return value.kind is _TYPE_CHECKS[operator]

        if operator in _NUMERIC_COMPARISONS:
            left, right = to_number(value.raw), to_number(expression.value)
            if left is None or right is None:
                return False
            return _NUMERIC_COMPARISONS[operator](left, right)

        if operator is Operator.EQ:
            return loose_equals(value.raw, expression.value)
        if operator is Operator.NEQ:
            return not loose_equals(value.raw, expression.value)

        if operator is Operator.BETWEEN:
            return self._evaluate_between(expression, value)

        if operator in (
            Operator.CONTAINS,
            Operator.NOT_CONTAINS,
            Operator.STARTS_WITH,
            Operator.ENDS_WITH,
            Operator.MATCHES,
        ):
            return self._evaluate_string(expression, to_js_string(value.raw))

        if operator in (Operator.IN, Operator.NOT_IN):
            candidates = _require_sequence(expression)
            found = any(strict_equals(value.raw, item) for item in candidates)
            return found if operator is Operator.IN else not found

        if operator in (Operator.HAS_ALL, Operator.HAS_ANY, Operator.HAS_NONE):
            return self._evaluate_set(expression, value)

        if operator in (Operator.OLDER_THAN, Operator.NEWER_THAN, Operator.IN_LAST):
            return self._evaluate_time(expression, value)

        raise ConfigurationError(
            f"unsupported operator {operator!r}", path=_key(expression, "operator")
        )

    def _evaluate_presence(self, operator: Operator, value: FieldValue) -> bool:
        if operator is Operator.IS_NULL:
            return value.is_null
        if operator is Operator.IS_NOT_NULL:
            return not value.is_null
        if operator is Operator.IS_EMPTY:
            return value.is_empty
        return not value.is_empty

    def _evaluate_between(self, expression: SimpleExpression, value: FieldValue) -> bool:
        bounds = expression.value
        if not isinstance(bounds, (list, tuple)) or len(bounds) != 2:
            raise ConfigurationError(
                "'between' requires a [low, high] array", path=_key(expression, "value")
            )
        number = to_number(value.raw)
        low, high = to_number(bounds[0]), to_number(bounds[1])
        if number is None or low is None or high is None:
            return False
        return low <= number <= high

    def _evaluate_string(self, expression: SimpleExpression, text: str) -> bool:
        operator = expression.operator
        if operator is Operator.MATCHES:
            pattern = expression.pattern or _compile(expression)
            return pattern.search(text) is not None

        needle = to_js_string(expression.value)
        if operator is Operator.CONTAINS:
            return needle in text
        if operator is Operator.NOT_CONTAINS:
            return needle not in text
        if operator is Operator.STARTS_WITH:
            return text.startswith(needle)
        return text.endswith(needle)

    def _evaluate_set(self, expression: SimpleExpression, value: FieldValue) -> bool:
        wanted = _require_sequence(expression)
        if value.kind is not ValueKind.ARRAY:
            return False

        def present(item: Any) -> bool:
            return any(strict_equals(member, item) for member in value.raw)

        if expression.operator is Operator.HAS_ALL:
            return all(present(item) for item in wanted)
        if expression.operator is Operator.HAS_ANY:
            return any(present(item) for item in wanted)
        return not any(present(item) for item in wanted)

    def _evaluate_time(self, expression: SimpleExpression, value: FieldValue) -> bool:
        seconds = to_number(expression.value)
        if seconds is None:
            raise ConfigurationError(
                f"{expression.operator.value!r} requires a duration in seconds",
                path=_key(expression, "value"),
            )

        timestamp = to_timestamp(value.raw)
        if timestamp is None:
            logger.debug(
                f"Field '{expression.field}' is not a timestamp: {value.raw!r}"
            )
            return False

        age = (self.ctx.now - timestamp).total_seconds()
        if expression.operator is Operator.OLDER_THAN:
            return age > seconds
        if expression.operator is Operator.NEWER_THAN:
            return age < seconds
        return 0 <= age <= seconds


def evaluate(
    record: Mapping[str, Any],
    expression: Expression | Mapping[str, Any] | str,
    now: datetime | None = None,
) -> bool:
    """Evaluate a filter expression against a record.

    Args:
        record: Event record field map
        expression: Parsed AST, raw expression mapping or JSON text
        now: Evaluation instant (defaults to the current time)

    Returns:
        Whether the record satisfies the expression

    Raises:
        ConfigurationError: If the expression is malformed
    """
    if not isinstance(expression, (SimpleExpression, CompoundExpression)):
        expression = ExpressionParser().parse(expression)
    context = (
        EvaluationContext(record=record)
        if now is None
        else EvaluationContext(record=record, now=now)
    )
    return ExpressionEvaluator(context).evaluate(expression)


def _key(expression: SimpleExpression, name: str) -> str:
    return f"{expression.path}.{name}" if expression.path else name


def _require_sequence(expression: SimpleExpression) -> tuple | list:
    if not isinstance(expression.value, (list, tuple)):
        raise ConfigurationError(
            f"operator {expression.operator.value!r} requires an array value",
            path=_key(expression, "value"),
        )
    return expression.value


def _compile(expression: SimpleExpression) -> re.Pattern:
    try:
        return re.compile(to_js_string(expression.value))
    except re.error as e:
        raise ConfigurationError(
            f"invalid regular expression {expression.value!r}: {e}",
            path=_key(expression, "value"),
        ) from e
