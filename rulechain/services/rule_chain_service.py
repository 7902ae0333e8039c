"""Rule chain service.

Loads chain snapshots from the database, runs them under a deadline and
hands the results to trace consumers.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Callable, Mapping, Sequence

from rulechain.repositories.rule_chain_repository import RuleChainRepository
from rulechain.rule_engine.chain_executor import ChainExecutor
from rulechain.rule_engine.errors import (
    ChainNotFoundError,
    ErrorCode,
    ExecutionTimeoutError,
)
from rulechain.rule_engine.event_emitter import ExecutionEventEmitter
from rulechain.rule_engine.models import Chain, ExecutionResult, Node
from rulechain.services.timeout_metrics import TimeoutMetrics, timeout_metrics

logger = logging.getLogger(__name__)


class RuleChainService:
    """Service for executing stored rule chains."""

    def __init__(
        self,
        session_factory: Callable | None = None,
        executor: ChainExecutor | None = None,
        emitter: ExecutionEventEmitter | None = None,
        metrics: TimeoutMetrics | None = None,
        default_timeout: float | None = None,
    ):
        """Initialize the service.

        Args:
            session_factory: Async session factory (defaults to the app's
                ``async_session``)
            executor: Chain executor
            emitter: Receives every finished ExecutionResult
            metrics: Timeout metrics sink
            default_timeout: Seconds allowed per chain when ``execute`` gets
                no timeout (defaults to RULE_ENGINE_CHAIN_TIMEOUT)
        """
        if session_factory is None:
            from rulechain.core.database import async_session

            session_factory = async_session
        if default_timeout is None:
            from rulechain.core.config import settings

            default_timeout = settings.RULE_ENGINE_CHAIN_TIMEOUT

        self.session_factory = session_factory
        self.executor = executor or ChainExecutor()
        self.emitter = emitter or ExecutionEventEmitter()
        self.metrics = metrics or timeout_metrics
        self.default_timeout = default_timeout

    async def load(self, chain_id: Any) -> tuple[Chain, list[Node]]:
        """Load a chain snapshot.

        Raises:
            ChainNotFoundError: If the chain does not exist
        """
        async with self.session_factory() as session:
            snapshot = await RuleChainRepository(session).load_snapshot(chain_id)
        if snapshot is None:
            raise ChainNotFoundError(chain_id)
        return snapshot

    async def execute(
        self,
        chain_id: Any,
        event: Mapping[str, Any],
        timeout: float | None = None,
        now: datetime | None = None,
    ) -> ExecutionResult:
        """Execute a stored chain against an event.

        Args:
            chain_id: ID of the chain to run
            event: Event record
            timeout: Seconds allowed for the execution; 0 or less disables
                the deadline
            now: Evaluation instant for time-relative filters

        Returns:
            ExecutionResult of the run

        Raises:
            ChainNotFoundError: If the chain does not exist
            ConfigurationError: If the chain is malformed
            ExecutionTimeoutError: If the deadline expires
        """
        chain, nodes = await self.load(chain_id)
        return await self.run_snapshot(chain, nodes, event, timeout=timeout, now=now)

    async def run_snapshot(
        self,
        chain: Chain,
        nodes: Sequence[Node],
        event: Mapping[str, Any],
        timeout: float | None = None,
        now: datetime | None = None,
    ) -> ExecutionResult:
        """Execute an already loaded chain under the service's deadline."""
        if timeout is None:
            timeout = self.default_timeout

        started = time.monotonic()
        execution = self.executor.execute(chain, nodes, event, now=now)
        try:
            if timeout is not None and timeout > 0:
                result = await asyncio.wait_for(execution, timeout=timeout)
            else:
                result = await execution
        except asyncio.TimeoutError:
            elapsed_ms = (time.monotonic() - started) * 1000
            self.metrics.record_timeout(ErrorCode.RULE_CHAIN_TIMEOUT, elapsed_ms)
            logger.error(f"Rule chain {chain.id} timed out after {timeout}s")
            raise ExecutionTimeoutError(
                f"Rule chain execution timed out after {timeout}s",
                ErrorCode.RULE_CHAIN_TIMEOUT,
                {"chainId": chain.id, "chainName": chain.name, "timeout": timeout},
            ) from None

        self.emitter.emit(result)
        return result
