"""Chain executor: walks a rule chain against one event record."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from rulechain.rule_engine.action_dispatcher import ActionDispatcher
from rulechain.rule_engine.chain_graph import DEFAULT_MAX_NODES, ChainGraph
from rulechain.rule_engine.context import EvaluationContext
from rulechain.rule_engine.errors import ConfigurationError
from rulechain.rule_engine.evaluator import ExpressionEvaluator
from rulechain.rule_engine.models import (
    ActionStep,
    ActionTrace,
    Chain,
    ExecutionResult,
    ExecutionStatus,
    FilterStep,
    FilterTrace,
    Node,
    Step,
    TraceEntry,
    TransformStep,
    TransformTrace,
    UnknownStep,
    UnknownTrace,
)
from rulechain.rule_engine.parser import ExpressionParser
from rulechain.rule_engine.transform import apply_transform

logger = logging.getLogger(__name__)

DEFAULT_ACTION_TIMEOUT = 10.0


@dataclass
class RuleEngineConfig:
    """Configuration for chain execution.

    Attributes:
        max_chain_nodes: Hard cap on nodes walked per chain
        action_timeout: Seconds to wait for each device command; overrides the
            dispatcher's own default when set
        strict_transforms: Raise on unknown transform operations instead of
            passing the record through
    """

    max_chain_nodes: int = DEFAULT_MAX_NODES
    action_timeout: float | None = None
    strict_transforms: bool = False

    @classmethod
    def from_settings(cls, settings: Any = None) -> "RuleEngineConfig":
        if settings is None:
            from rulechain.core.config import settings
        return cls(
            max_chain_nodes=settings.RULE_ENGINE_MAX_CHAIN_NODES,
            action_timeout=settings.RULE_ENGINE_ACTION_TIMEOUT,
            strict_transforms=settings.RULE_ENGINE_STRICT_TRANSFORMS,
        )


class ChainExecutor:
    """Executes rule chains node by node.

    The executor is stateless: each call owns its record and trace, so
    independent executions can run concurrently on the same instance.
    Nodes within one execution are processed strictly in order.
    """

    def __init__(
        self,
        dispatcher: ActionDispatcher | None = None,
        config: RuleEngineConfig | None = None,
        parser: ExpressionParser | None = None,
    ):
        """Initialize the executor.

        Args:
            dispatcher: Action dispatcher for action nodes
            config: Execution limits and policies
            parser: Expression parser for filter configs
        """
        self.config = config or RuleEngineConfig()
        self.dispatcher = dispatcher or ActionDispatcher(
            default_timeout=(
                self.config.action_timeout
                if self.config.action_timeout is not None
                else DEFAULT_ACTION_TIMEOUT
            )
        )
        self.parser = parser or ExpressionParser()

    async def execute(
        self,
        chain: Chain,
        nodes: Sequence[Node],
        event: Mapping[str, Any],
        now: datetime | None = None,
    ) -> ExecutionResult:
        """Execute a chain against an event record.

        Args:
            chain: Chain snapshot
            nodes: All nodes of the chain
            event: Event record; never modified
            now: Evaluation instant for time-relative filters

        Returns:
            ExecutionResult with the trace and the final record

        Raises:
            ConfigurationError: If a node config is malformed
            CyclicChainError: If the chain's forward links loop
        """
        graph = ChainGraph.build(
            chain, nodes, max_nodes=self.config.max_chain_nodes, parser=self.parser
        )
        return await self.run(graph, event, now=now)

    async def run(
        self,
        graph: ChainGraph,
        event: Mapping[str, Any],
        now: datetime | None = None,
    ) -> ExecutionResult:
        """Execute an already-built chain graph."""
        chain_id = graph.chain.id

        if graph.is_empty:
            logger.info(f"Chain {chain_id} has no nodes, nothing to execute")
            return ExecutionResult(
                chain_id=chain_id,
                trace=[],
                final_record=event,
                status=ExecutionStatus.EMPTY_CHAIN,
            )

        logger.info(f"Executing chain {chain_id} ({len(graph)} nodes)")
        now = now or datetime.now(timezone.utc)
        record = event
        trace: list[TraceEntry] = []

        for node_id in graph.order:
            step = self._resolve(graph, node_id)
            if isinstance(step, FilterStep):
                passed = self._evaluate_filter(step, record, now)
                trace.append(FilterTrace(node_id=step.node_id, passed=passed))
                logger.debug(f"Chain {chain_id} filter {step.node_id}: passed={passed}")
                if not passed:
                    logger.info(f"Chain {chain_id} halted by filter {step.node_id}")
                    return ExecutionResult(
                        chain_id=chain_id,
                        trace=trace,
                        final_record=record,
                        status=ExecutionStatus.HALTED_BY_FILTER,
                    )

            elif isinstance(step, TransformStep):
                previous = record
                record = self._apply_transform(step, record)
                trace.append(
                    TransformTrace(
                        node_id=step.node_id, previous_record=previous, new_record=record
                    )
                )
                logger.debug(
                    f"Chain {chain_id} transform {step.node_id}: "
                    f"{step.spec.field}={record.get(step.spec.field)!r}"
                )

            elif isinstance(step, ActionStep):
                result = await self.dispatcher.perform(
                    step.spec, record, timeout=self.config.action_timeout
                )
                trace.append(ActionTrace(node_id=step.node_id, action_result=result))
                logger.debug(
                    f"Chain {chain_id} action {step.node_id}: {result.status.value}"
                )

            elif isinstance(step, UnknownStep):
                logger.warning(
                    f"Chain {chain_id} node {step.node_id} has unsupported type "
                    f"'{step.type_tag}', skipping"
                )
                trace.append(UnknownTrace(node_id=step.node_id, type_tag=step.type_tag))

        logger.info(f"Chain {chain_id} completed ({len(trace)} nodes executed)")
        return ExecutionResult(
            chain_id=chain_id,
            trace=trace,
            final_record=record,
            status=ExecutionStatus.COMPLETED,
        )

    def _resolve(self, graph: ChainGraph, node_id: Any) -> Step:
        try:
            return graph.step(node_id)
        except ConfigurationError as e:
            logger.error(f"Chain {graph.chain.id} node {node_id} is misconfigured: {e}")
            raise

    def _evaluate_filter(
        self, step: FilterStep, record: Mapping[str, Any], now: datetime
    ) -> bool:
        evaluator = ExpressionEvaluator(EvaluationContext(record=record, now=now))
        try:
            return evaluator.evaluate(step.expression)
        except ConfigurationError as e:
            logger.error(f"Filter {step.node_id} failed to evaluate: {e}")
            if e.node_id is not None:
                raise
            raise e.with_node(step.node_id) from e

    def _apply_transform(
        self, step: TransformStep, record: Mapping[str, Any]
    ) -> dict[str, Any]:
        try:
            return apply_transform(record, step.spec, strict=self.config.strict_transforms)
        except ConfigurationError as e:
            logger.error(f"Transform {step.node_id} failed: {e}")
            if e.node_id is not None:
                raise
            raise e.with_node(step.node_id) from e

