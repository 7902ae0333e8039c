"""Event emitter for finished chain executions."""

import logging
from typing import Callable, List

from rulechain.rule_engine.models import ExecutionResult

logger = logging.getLogger(__name__)

Listener = Callable[[ExecutionResult], None]


class ExecutionEventEmitter:
    """Broadcasts execution results to trace consumers.

    Execution-history persistence, notification fan-out and metrics
    subscribe here; the engine itself never stores a result.
    """

    def __init__(self) -> None:
        """Initialize an empty list of listeners."""
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        """Subscribe a listener to execution results.

        Args:
            listener: Callable invoked with every emitted ExecutionResult

        Raises:
            ValueError: If the listener is already subscribed.
        """
        if listener in self._listeners:
            raise ValueError("Listener is already subscribed")
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> None:
        """Unsubscribe a listener.

        Raises:
            ValueError: If the listener is not subscribed.
        """
        try:
            self._listeners.remove(listener)
        except ValueError:
            raise ValueError("Listener is not subscribed") from None

    def emit(self, result: ExecutionResult) -> None:
        """Deliver a result to every listener.

        A listener that raises is logged and the remaining listeners still
        receive the result.
        """
        logger.debug(
            f"Emitting result of chain {result.chain_id} "
            f"({result.status.value}) to {len(self._listeners)} listeners"
        )
        for listener in list(self._listeners):
            try:
                listener(result)
            except Exception:
                logger.exception(
                    f"Listener {listener!r} failed for chain {result.chain_id}"
                )
