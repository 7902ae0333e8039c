"""Shared data models for the rule chain engine."""

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Union


class NodeType(Enum):
    FILTER = "filter"
    TRANSFORM = "transform"
    ACTION = "action"


class LogicalOperator(Enum):
    AND = "AND"
    OR = "OR"


class Operator(Enum):
    """Closed set of operators accepted by simple expressions."""

    # Presence / emptiness
    IS_NULL = "isNull"
    IS_NOT_NULL = "isNotNull"
    IS_EMPTY = "isEmpty"
    IS_NOT_EMPTY = "isNotEmpty"
    # Run-time type checks
    IS_NUMBER = "isNumber"
    IS_STRING = "isString"
    IS_BOOLEAN = "isBoolean"
    IS_ARRAY = "isArray"
    # Numeric comparison
    GT = ">"
    GTE = ">="
    LT = "<"
    LTE = "<="
    EQ = "=="
    NEQ = "!="
    BETWEEN = "between"
    # String
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    MATCHES = "matches"
    # Array / set
    IN = "in"
    NOT_IN = "notIn"
    HAS_ALL = "hasAll"
    HAS_ANY = "hasAny"
    HAS_NONE = "hasNone"
    # Time-relative
    OLDER_THAN = "olderThan"
    NEWER_THAN = "newerThan"
    IN_LAST = "inLast"


PRESENCE_OPERATORS = frozenset(
    {Operator.IS_NULL, Operator.IS_NOT_NULL, Operator.IS_EMPTY, Operator.IS_NOT_EMPTY}
)
TYPE_OPERATORS = frozenset(
    {Operator.IS_NUMBER, Operator.IS_STRING, Operator.IS_BOOLEAN, Operator.IS_ARRAY}
)
# Operators that take no operand
UNARY_OPERATORS = PRESENCE_OPERATORS | TYPE_OPERATORS
ARRAY_OPERATORS = frozenset(
    {Operator.IN, Operator.NOT_IN, Operator.HAS_ALL, Operator.HAS_ANY, Operator.HAS_NONE}
)
TIME_OPERATORS = frozenset({Operator.OLDER_THAN, Operator.NEWER_THAN, Operator.IN_LAST})


class TransformOperation(Enum):
    ADD = "add"
    SUBTRACT = "subtract"
    MULTIPLY = "multiply"
    DIVIDE = "divide"


class ExecutionStatus(Enum):
    COMPLETED = "completed"
    HALTED_BY_FILTER = "halted_by_filter"
    EMPTY_CHAIN = "empty_chain"


class ActionStatus(Enum):
    SUCCESS = "success"
    ERROR = "error"
    SKIPPED = "skipped"


# ---------------------------------------------------------------------------
# Chain definitions (read-only snapshots handed to the engine)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings consumed by the orchestrator, never by the engine."""

    max_attempts: int = 1
    delay_seconds: float = 0.0


@dataclass(frozen=True)
class Chain:
    id: Any
    name: str
    tenant_id: Any = None
    enabled: bool = True
    priority: int = 0
    retry_policy: RetryPolicy = field(default_factory=RetryPolicy)
    description: str | None = None


@dataclass(frozen=True)
class Node:
    """One stored step of a chain.

    ``type`` is kept as the raw tag so that node kinds unknown to this
    build survive loading; ``config`` may be a mapping or JSON text.
    """

    id: Any
    chain_id: Any
    type: str
    config: Any = None
    next_node_id: Any = None
    name: str | None = None


# ---------------------------------------------------------------------------
# Expression AST
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SimpleExpression:
    field: str
    operator: Operator
    value: Any = None
    path: str = ""
    pattern: re.Pattern | None = None  # compiled once for ``matches``


@dataclass(frozen=True)
class CompoundExpression:
    op: LogicalOperator
    children: tuple["Expression", ...]
    path: str = ""


Expression = Union[SimpleExpression, CompoundExpression]


@dataclass(frozen=True)
class TransformSpec:
    field: str
    operation: str
    operand: int | float


@dataclass(frozen=True)
class ActionSpec:
    command: Any
    device_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


# ---------------------------------------------------------------------------
# Resolved steps (tagged variant over node types)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FilterStep:
    node_id: Any
    expression: Expression


@dataclass(frozen=True)
class TransformStep:
    node_id: Any
    spec: TransformSpec


@dataclass(frozen=True)
class ActionStep:
    node_id: Any
    spec: ActionSpec


@dataclass(frozen=True)
class UnknownStep:
    node_id: Any
    type_tag: str
    raw_config: Any = None


Step = Union[FilterStep, TransformStep, ActionStep, UnknownStep]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass
class ActionResult:
    """Outcome of dispatching one action node.

    Attributes:
        status: success, error or skipped
        command_echo: The command payload exactly as it was sent
        timestamp: When the dispatch finished
        record_snapshot: Copy of the record the action saw
        device_response: Whatever the device command interface returned
        error: Error message if the dispatch failed
        error_code: Timeout code when the failure was a deadline
    """

    status: ActionStatus
    command_echo: Any
    timestamp: datetime
    record_snapshot: dict[str, Any]
    device_response: Any = None
    error: str | None = None
    error_code: str | None = None

    @property
    def success(self) -> bool:
        return self.status is ActionStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "commandEcho": self.command_echo,
            "timestamp": self.timestamp.isoformat(),
            "recordSnapshot": self.record_snapshot,
            "deviceResponse": self.device_response,
            "error": self.error,
            "errorCode": self.error_code,
        }


@dataclass(frozen=True)
class FilterTrace:
    node_id: Any
    passed: bool
    type: str = NodeType.FILTER.value

    def to_dict(self) -> dict[str, Any]:
        return {"nodeId": self.node_id, "type": self.type, "passed": self.passed}


@dataclass(frozen=True)
class TransformTrace:
    node_id: Any
    previous_record: dict[str, Any]
    new_record: dict[str, Any]
    type: str = NodeType.TRANSFORM.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "type": self.type,
            "previousRecord": self.previous_record,
            "newRecord": self.new_record,
        }


@dataclass(frozen=True)
class ActionTrace:
    node_id: Any
    action_result: ActionResult
    type: str = NodeType.ACTION.value

    def to_dict(self) -> dict[str, Any]:
        return {
            "nodeId": self.node_id,
            "type": self.type,
            "actionResult": self.action_result.to_dict(),
        }


@dataclass(frozen=True)
class UnknownTrace:
    node_id: Any
    type_tag: str
    type: str = "unknown"

    def to_dict(self) -> dict[str, Any]:
        return {"nodeId": self.node_id, "type": self.type, "typeTag": self.type_tag}


TraceEntry = Union[FilterTrace, TransformTrace, ActionTrace, UnknownTrace]


@dataclass
class ExecutionResult:
    """Result of executing one chain against one event record."""

    chain_id: Any
    trace: list[TraceEntry]
    final_record: dict[str, Any]
    status: ExecutionStatus = ExecutionStatus.COMPLETED

    @property
    def halted(self) -> bool:
        return self.status is ExecutionStatus.HALTED_BY_FILTER

    @property
    def failed_actions(self) -> list[ActionTrace]:
        return [
            entry
            for entry in self.trace
            if isinstance(entry, ActionTrace) and not entry.action_result.success
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "status": self.status.value,
            "trace": [entry.to_dict() for entry in self.trace],
            "finalRecord": self.final_record,
        }
