"""Exception hierarchy for the rule chain engine."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any


class RuleEngineError(Exception):
    """Base class for errors surfaced by the engine."""


class ConfigurationError(RuleEngineError):
    """Raised when a chain or node configuration is malformed.

    Covers unknown operators, invalid compound types, bad regular
    expressions and operands of the wrong shape. ``path`` locates the
    offending key inside the node's expression, e.g.
    ``expressions[0].expressions[1].field``.
    """

    def __init__(self, message: str, *, node_id: Any = None, path: str | None = None):
        self.message = message
        self.node_id = node_id
        self.path = path
        super().__init__(self._format())

    def _format(self) -> str:
        location = []
        if self.node_id is not None:
            location.append(f"node {self.node_id}")
        if self.path:
            location.append(self.path)
        if location:
            return f"{': '.join(location)}: {self.message}"
        return self.message

    def with_node(self, node_id: Any) -> "ConfigurationError":
        """Return a copy of this error attributed to ``node_id``."""
        return ConfigurationError(self.message, node_id=node_id, path=self.path)


class CyclicChainError(ConfigurationError):
    """Raised when a chain's forward links loop back or exceed the hop cap."""

    def __init__(self, message: str, *, chain_id: Any = None, node_id: Any = None):
        self.chain_id = chain_id
        super().__init__(message, node_id=node_id)


class ErrorCode(str, Enum):
    DATA_COLLECTION_TIMEOUT = "DATA_COLLECTION_TIMEOUT"
    RULE_CHAIN_TIMEOUT = "RULE_CHAIN_TIMEOUT"
    WORKER_TIMEOUT = "WORKER_TIMEOUT"
    EXTERNAL_ACTION_TIMEOUT = "EXTERNAL_ACTION_TIMEOUT"


class ExecutionTimeoutError(RuleEngineError):
    """Raised when a deadline wrapped around an execution expires."""

    def __init__(
        self, message: str, code: ErrorCode, context: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "isTimeout": True,
        }


class ChainNotFoundError(RuleEngineError):
    """Raised when a chain id has no stored definition."""

    def __init__(self, chain_id: Any):
        self.chain_id = chain_id
        super().__init__(f"Rule chain {chain_id} not found")
