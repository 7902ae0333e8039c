"""Rule chain execution engine.

Evaluates an ordered pipeline of filter, transform and action nodes
against one event record and returns an execution trace together with
the (possibly transformed) record. It provides:

- A boolean expression language over dynamically typed event fields
- Numeric field transforms
- Action dispatch to an external device command interface
- Cycle-safe traversal of singly linked chains
"""

# Data models
from rulechain.rule_engine.models import (
    ActionResult,
    ActionSpec,
    ActionStatus,
    ActionTrace,
    Chain,
    CompoundExpression,
    ExecutionResult,
    ExecutionStatus,
    FilterTrace,
    LogicalOperator,
    Node,
    NodeType,
    Operator,
    RetryPolicy,
    SimpleExpression,
    TransformOperation,
    TransformSpec,
    TransformTrace,
    UnknownTrace,
)

# Errors
from rulechain.rule_engine.errors import (
    ChainNotFoundError,
    ConfigurationError,
    CyclicChainError,
    ErrorCode,
    ExecutionTimeoutError,
    RuleEngineError,
)

# Parsing and evaluation
from rulechain.rule_engine.parser import ExpressionParser
from rulechain.rule_engine.context import EvaluationContext
from rulechain.rule_engine.evaluator import ExpressionEvaluator, evaluate
from rulechain.rule_engine.transform import apply_transform

# Actions
from rulechain.rule_engine.commands import (
    CommandAck,
    DeviceCommandInterface,
    InMemoryDeviceCommander,
)
from rulechain.rule_engine.action_dispatcher import ActionDispatcher

# Chains
from rulechain.rule_engine.chain_graph import ChainGraph
from rulechain.rule_engine.chain_executor import ChainExecutor, RuleEngineConfig
from rulechain.rule_engine.event_emitter import ExecutionEventEmitter

__all__ = [
    # Data models
    "ActionResult",
    "ActionSpec",
    "ActionStatus",
    "ActionTrace",
    "Chain",
    "CompoundExpression",
    "ExecutionResult",
    "ExecutionStatus",
    "FilterTrace",
    "LogicalOperator",
    "Node",
    "NodeType",
    "Operator",
    "RetryPolicy",
    "SimpleExpression",
    "TransformOperation",
    "TransformSpec",
    "TransformTrace",
    "UnknownTrace",
    # Errors
    "ChainNotFoundError",
    "ConfigurationError",
    "CyclicChainError",
    "ErrorCode",
    "ExecutionTimeoutError",
    "RuleEngineError",
    # Parsing and evaluation
    "ExpressionParser",
    "EvaluationContext",
    "ExpressionEvaluator",
    "evaluate",
    "apply_transform",
    # Actions
    "CommandAck",
    "DeviceCommandInterface",
    "InMemoryDeviceCommander",
    "ActionDispatcher",
    # Chains
    "ChainGraph",
    "ChainExecutor",
    "RuleEngineConfig",
    "ExecutionEventEmitter",
]
