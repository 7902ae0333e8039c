"""Parser for rule chain node configurations.

Node configs arrive as JSON text or already-decoded mappings. The parser
turns filter configs into the Expression AST, validating everything that
can be checked without a record, and builds transform and action specs.
"""

import json
import re
from typing import Any, Mapping

from rulechain.rule_engine.errors import ConfigurationError
from rulechain.rule_engine.models import (
    ARRAY_OPERATORS,
    TIME_OPERATORS,
    UNARY_OPERATORS,
    ActionSpec,
    CompoundExpression,
    Expression,
    LogicalOperator,
    Operator,
    SimpleExpression,
    TransformOperation,
    TransformSpec,
)
from rulechain.rule_engine.values import ValueKind, kind_of, to_number

# Keys the device identifier may be stored under in action configs
DEVICE_ID_KEYS = ("deviceId", "deviceUUID", "UUID", "uuid")


def load_config(raw: Any) -> Any:
    """Decode a node config that may be stored as JSON text.

    Args:
        raw: Mapping, JSON text or None

    Returns:
        Decoded config (None becomes an empty mapping)

    Raises:
        ConfigurationError: If the text is not valid JSON
    """
    if raw is None:
        return {}
    if isinstance(raw, (str, bytes)):
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"config is not valid JSON: {e.msg}") from e
    return raw


class ExpressionParser:
    """Parser for the filter expression language.

    Simple expressions are ``{field, operator, value}``; compound ones are
    ``{type: AND|OR, expressions: [...]}`` nested to any depth. Errors
    carry the dotted path of the offending key.
    """

    def parse(self, raw: Any) -> Expression:
        """Parse a filter config into an Expression AST.

        Args:
            raw: Expression mapping or JSON text

        Returns:
            SimpleExpression or CompoundExpression

        Raises:
            ConfigurationError: If the expression is malformed
        """
        return self._parse(load_config(raw), "")

    def _parse(self, raw: Any, prefix: str) -> Expression:
        if not isinstance(raw, Mapping):
            raise ConfigurationError(
                f"expression must be an object, got {type(raw).__name__}",
                path=prefix.rstrip(".") or None,
            )

        if "type" in raw or "expressions" in raw:
            return self._parse_compound(raw, prefix)
        return self._parse_simple(raw, prefix)

    def _parse_compound(self, raw: Mapping[str, Any], prefix: str) -> CompoundExpression:
        type_name = raw.get("type")
        try:
            op = LogicalOperator(type_name.upper())
        except (AttributeError, ValueError):
            raise ConfigurationError(
                f"compound type must be AND or OR, got {type_name!r}",
                path=f"{prefix}type",
            ) from None

        children = raw.get("expressions")
        if not isinstance(children, (list, tuple)) or not children:
            raise ConfigurationError(
                "compound expression requires a non-empty 'expressions' array",
                path=f"{prefix}expressions",
            )

        parsed = tuple(
            self._parse(child, f"{prefix}expressions[{i}].")
            for i, child in enumerate(children)
        )
        return CompoundExpression(op=op, children=parsed, path=prefix.rstrip("."))

    def _parse_simple(self, raw: Mapping[str, Any], prefix: str) -> SimpleExpression:
        # "key" is the name used by stored sensor filter configs
        field_name = raw["field"] if "field" in raw else raw.get("key")
        if not isinstance(field_name, str) or not field_name:
            raise ConfigurationError(
                "expression requires a non-empty 'field'", path=f"{prefix}field"
            )

        operator_name = raw.get("operator")
        if not isinstance(operator_name, str):
            raise ConfigurationError(
                f"operator must be a string, got {operator_name!r}",
                path=f"{prefix}operator",
            )
        try:
            operator = Operator(operator_name)
        except ValueError:
            raise ConfigurationError(
                f"unknown operator {operator_name!r}", path=f"{prefix}operator"
            ) from None

        path = prefix.rstrip(".")
        if operator in UNARY_OPERATORS:
            return SimpleExpression(field=field_name, operator=operator, path=path)

        value_path = f"{prefix}value"
        if "value" not in raw:
            raise ConfigurationError(
                f"operator {operator.value!r} requires a 'value'", path=value_path
            )
        value = raw["value"]
        pattern = None

        if operator in ARRAY_OPERATORS:
            if not isinstance(value, (list, tuple)):
                raise ConfigurationError(
                    f"operator {operator.value!r} requires an array value",
                    path=value_path,
                )
            value = tuple(value)
        elif operator is Operator.BETWEEN:
            value = self._parse_bounds(value, value_path)
        elif operator in TIME_OPERATORS:
            seconds = _numeric_operand(value)
            if seconds is None or seconds < 0:
                raise ConfigurationError(
                    f"operator {operator.value!r} requires a non-negative "
                    f"duration in seconds, got {value!r}",
                    path=value_path,
                )
            value = seconds
        elif operator is Operator.MATCHES:
            if not isinstance(value, str):
                raise ConfigurationError(
                    f"'matches' requires a string pattern, got {value!r}",
                    path=value_path,
                )
            try:
                pattern = re.compile(value)
            except re.error as e:
                raise ConfigurationError(
                    f"invalid regular expression {value!r}: {e}", path=value_path
                ) from e

        return SimpleExpression(
            field=field_name, operator=operator, value=value, path=path, pattern=pattern
        )

    def _parse_bounds(self, value: Any, path: str) -> tuple[float | int, float | int]:
        if not isinstance(value, (list, tuple)) or len(value) != 2:
            raise ConfigurationError(
                f"'between' requires a [low, high] array, got {value!r}", path=path
            )
        low, high = (_numeric_operand(bound) for bound in value)
        if low is None or high is None:
            raise ConfigurationError(
                f"'between' bounds must be numeric, got {value!r}", path=path
            )
        return low, high


def parse_transform_spec(raw: Any) -> TransformSpec:
    """Build a TransformSpec from a ``{field, operation, operand}`` config.

    Unknown operation names are kept as-is; applying them is a no-op.

    Raises:
        ConfigurationError: If field or operand are missing or invalid
    """
    config = load_config(raw)
    if not isinstance(config, Mapping):
        raise ConfigurationError("transform config must be an object")

    field_name = config.get("field")
    if not isinstance(field_name, str) or not field_name:
        raise ConfigurationError("transform requires a non-empty 'field'", path="field")

    operation = config.get("operation")
    if not isinstance(operation, str):
        raise ConfigurationError(
            f"transform operation must be a string, got {operation!r}", path="operation"
        )

    operand = _numeric_operand(config.get("operand"))
    if operand is None:
        raise ConfigurationError(
            f"transform operand must be numeric, got {config.get('operand')!r}",
            path="operand",
        )
    if operation == TransformOperation.DIVIDE.value and operand == 0:
        raise ConfigurationError("cannot divide by zero", path="operand")

    return TransformSpec(field=field_name, operation=operation, operand=operand)


def parse_action_spec(raw: Any) -> ActionSpec:
    """Build an ActionSpec from an action node config.

    The ``command`` entry is forwarded verbatim; a config without one is
    itself the command payload.
    """
    config = load_config(raw)
    if not isinstance(config, Mapping):
        raise ConfigurationError("action config must be an object")

    command = config["command"] if "command" in config else dict(config)
    device_id = next(
        (str(config[key]) for key in DEVICE_ID_KEYS if config.get(key) is not None),
        None,
    )
    return ActionSpec(command=command, device_id=device_id, raw=dict(config))


def _numeric_operand(value: Any) -> int | float | None:
    """Accept numbers and numeric strings, never booleans or blanks."""
    if kind_of(value) not in (ValueKind.NUMBER, ValueKind.STRING):
        return None
    if isinstance(value, str) and not value.strip():
        return None
    return to_number(value)
