"""Numeric field transforms applied by transform nodes."""

import logging
import operator
from typing import Any, Mapping

from rulechain.rule_engine.errors import ConfigurationError
from rulechain.rule_engine.models import TransformOperation, TransformSpec
from rulechain.rule_engine.values import to_number

logger = logging.getLogger(__name__)

_OPERATIONS = {
    TransformOperation.ADD: operator.add,
    TransformOperation.SUBTRACT: operator.sub,
    TransformOperation.MULTIPLY: operator.mul,
    TransformOperation.DIVIDE: operator.truediv,
}


def apply_transform(
    record: Mapping[str, Any], spec: TransformSpec, strict: bool = False
) -> dict[str, Any]:
    """Apply a numeric operation to one field of a record.

    The input record is never modified. The returned record shares every
    other field with the input by reference.

    Unknown operations, and fields that are absent or non-numeric, leave
    the value unchanged and log a warning. Downstream chains rely on that
    leniency, so it only becomes an error when ``strict`` is set.

    Args:
        record: Current event record
        spec: Field, operation and operand to apply
        strict: Raise instead of passing through unknown operations

    Returns:
        A new record with ``spec.field`` replaced

    Raises:
        ConfigurationError: If ``strict`` is set and the operation is unknown
    """
    new_record = dict(record)

    try:
        operation = TransformOperation(spec.operation)
    except ValueError:
        if strict:
            raise ConfigurationError(
                f"unknown transform operation {spec.operation!r}", path="operation"
            ) from None
        logger.warning(
            f"Unknown transform operation '{spec.operation}' on field "
            f"'{spec.field}', passing record through unchanged"
        )
        return new_record

    current = to_number(record.get(spec.field))
    if current is None:
        logger.warning(
            f"Transform {operation.value} skipped: field '{spec.field}' is not "
            f"numeric ({record.get(spec.field)!r})"
        )
        return new_record

    try:
        result = _OPERATIONS[operation](current, spec.operand)
    except ZeroDivisionError:
        raise ConfigurationError("cannot divide by zero", path="operand") from None

    new_record[spec.field] = _normalize(result)
    return new_record


def _normalize(number: int | float) -> int | float:
    # 35 + 5 should stay 40, not 40.0
    if isinstance(number, float) and number.is_integer():
        return int(number)
    return number
