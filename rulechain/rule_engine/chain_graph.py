"""In-memory graph of one rule chain's nodes."""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterator, Sequence

from rulechain.rule_engine.errors import ConfigurationError, CyclicChainError
from rulechain.rule_engine.models import (
    ActionStep,
    Chain,
    FilterStep,
    Node,
    NodeType,
    Step,
    TransformStep,
    UnknownStep,
)
from rulechain.rule_engine.parser import (
    ExpressionParser,
    parse_action_spec,
    parse_transform_spec,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_NODES = 1000


@dataclass(frozen=True)
class ChainGraph:
    """Resolved, immutable view of a chain ready for execution.

    Nodes are loaded once into an arena keyed by id. Forward links are
    resolved by id lookup into that arena, which is also where cycles,
    dangling links and stray heads are caught, before any node runs.

    Node configs are parsed only when a step is first requested, so a
    malformed node fails the execution that reaches it and nothing
    earlier. ``validate()`` parses every node up front.

    Attributes:
        chain: The chain snapshot
        nodes: Arena of nodes keyed by id
        order: Node ids in traversal order, head first
        parser: Expression parser for filter configs
    """

    chain: Chain
    nodes: dict[Any, Node] = field(default_factory=dict)
    order: tuple[Any, ...] = ()
    parser: ExpressionParser = field(
        default_factory=ExpressionParser, repr=False, compare=False
    )
    _steps: dict[Any, Step] = field(
        default_factory=dict, init=False, repr=False, compare=False
    )

    @classmethod
    def build(
        cls,
        chain: Chain,
        nodes: Sequence[Node],
        max_nodes: int = DEFAULT_MAX_NODES,
        parser: ExpressionParser | None = None,
    ) -> "ChainGraph":
        """Build a graph from a chain snapshot and its nodes.

        Args:
            chain: Chain snapshot
            nodes: All nodes of the chain, in storage order
            max_nodes: Hard cap on hops walked from the head
            parser: Expression parser for filter configs

        Returns:
            ChainGraph with node ids in traversal order

        Raises:
            ConfigurationError: On duplicate ids, dangling links, foreign
                nodes or more than one head
            CyclicChainError: If the forward links loop or exceed the cap
        """
        parser = parser or ExpressionParser()
        if not nodes:
            return cls(chain=chain, parser=parser)

        arena: dict[Any, Node] = {}
        for node in nodes:
            if node.id in arena:
                raise ConfigurationError(
                    f"duplicate node id in chain {chain.id}", node_id=node.id
                )
            if (
                node.chain_id is not None
                and chain.id is not None
                and str(node.chain_id) != str(chain.id)
            ):
                raise ConfigurationError(
                    f"node belongs to chain {node.chain_id}, not {chain.id}",
                    node_id=node.id,
                )
            arena[node.id] = node

        for node in nodes:
            if node.next_node_id is not None and node.next_node_id not in arena:
                raise ConfigurationError(
                    f"links to unknown node {node.next_node_id}",
                    node_id=node.id,
                    path="nextNodeId",
                )

        order = cls._walk(chain, nodes, arena, max_nodes)

        # With a single head, a node the walk never reaches sits on a loop
        reached = set(order)
        unreachable = [node.id for node in nodes if node.id not in reached]
        if unreachable:
            raise CyclicChainError(
                f"chain {chain.id} has nodes looping outside the main path: "
                f"{unreachable}",
                chain_id=chain.id,
                node_id=unreachable[0],
            )

        return cls(chain=chain, nodes=arena, order=tuple(order), parser=parser)

    @staticmethod
    def _walk(
        chain: Chain, nodes: Sequence[Node], arena: dict[Any, Node], max_nodes: int
    ) -> list[Any]:
        targets = {node.next_node_id for node in nodes if node.next_node_id is not None}
        heads = [node.id for node in nodes if node.id not in targets]
        if not heads:
            raise CyclicChainError(
                f"chain {chain.id} has no head: every node is a link target",
                chain_id=chain.id,
            )
        if len(heads) > 1:
            raise ConfigurationError(
                f"chain {chain.id} has {len(heads)} nodes without an incoming "
                f"link, expected exactly one head: {heads}",
                node_id=heads[1],
            )

        order: list[Any] = []
        visited: set[Any] = set()
        current = heads[0]
        while current is not None:
            if current in visited:
                raise CyclicChainError(
                    f"chain {chain.id} loops back to node {current}",
                    chain_id=chain.id,
                    node_id=current,
                )
            if len(order) >= max_nodes:
                raise CyclicChainError(
                    f"chain {chain.id} exceeds the limit of {max_nodes} nodes",
                    chain_id=chain.id,
                    node_id=current,
                )
            visited.add(current)
            order.append(current)
            current = arena[current].next_node_id
        return order

    def step(self, node_id: Any) -> Step:
        """Return the parsed step of a node, parsing its config on first use.

        Raises:
            ConfigurationError: If the node's config is malformed, attributed
                to the node
        """
        step = self._steps.get(node_id)
        if step is None:
            step = _resolve_step(self.nodes[node_id], self.parser)
            self._steps[node_id] = step
        return step

    def validate(self) -> None:
        """Parse every node so configuration errors surface without running.

        Raises:
            ConfigurationError: For the first malformed node in traversal order
        """
        for node_id in self.order:
            self.step(node_id)

    @property
    def is_empty(self) -> bool:
        return not self.order

    @property
    def head(self) -> Step | None:
        return self.step(self.order[0]) if self.order else None

    def __len__(self) -> int:
        return len(self.order)

    def __iter__(self) -> Iterator[Step]:
        for node_id in self.order:
            yield self.step(node_id)


def _resolve_step(node: Node, parser: ExpressionParser) -> Step:
    """Parse a node's config into the step variant for its type tag."""
    try:
        node_type = NodeType(node.type)
    except ValueError:
        return UnknownStep(node_id=node.id, type_tag=str(node.type), raw_config=node.config)

    try:
        if node_type is NodeType.FILTER:
            return FilterStep(node_id=node.id, expression=parser.parse(node.config))
        if node_type is NodeType.TRANSFORM:
            return TransformStep(node_id=node.id, spec=parse_transform_spec(node.config))
        return ActionStep(node_id=node.id, spec=parse_action_spec(node.config))
    except ConfigurationError as e:
        raise e.with_node(node.id) from e
