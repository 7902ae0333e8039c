"""Repository for rule chain database operations."""

import json
from typing import Any, List, Optional
from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession
from rulechain.models.rule_chain import RuleChain, RuleChainNode
from rulechain.rule_engine.models import Chain, Node, RetryPolicy


class RuleChainRepository:
    """Repository for RuleChain and RuleChainNode database operations.

    Chain definitions are owned by the configuration service; the engine
    only ever reads them through ``load_snapshot``.
    """

    def __init__(self, session: AsyncSession):
        """Initialize the repository with a database session.

        Args:
            session: SQLAlchemy async session
        """
        self.session = session

    async def create_chain(
        self,
        name: str,
        organization_id: Optional[int] = None,
        description: Optional[str] = None,
        enabled: bool = True,
        priority: int = 0,
        max_retries: int = 1,
        retry_delay: float = 0.0,
    ) -> RuleChain:
        """Create a new rule chain.

        Args:
            name: Human readable chain name
            organization_id: Owning tenant
            description: Optional description
            enabled: Whether the scheduler should run the chain
            priority: Scheduler priority
            max_retries: Orchestrator retry attempts
            retry_delay: Orchestrator retry delay in seconds

        Returns:
            Created RuleChain instance
        """
        chain = RuleChain(
            name=name,
            organization_id=organization_id,
            description=description,
            enabled=enabled,
            priority=priority,
            max_retries=max_retries,
            retry_delay=retry_delay,
        )
        self.session.add(chain)
        await self.session.commit()
        await self.session.refresh(chain)
        return chain

    async def get_chain(self, chain_id: int) -> Optional[RuleChain]:
        """Get a rule chain by ID.

        Args:
            chain_id: Chain ID

        Returns:
            RuleChain instance or None
        """
        result = await self.session.execute(
            select(RuleChain).where(RuleChain.id == chain_id)
        )
        return result.scalar_one_or_none()

    async def list_chains(self, organization_id: Optional[int] = None) -> List[RuleChain]:
        """List rule chains ordered by priority.

        Args:
            organization_id: Only list chains of this tenant (optional)

        Returns:
            List of RuleChain instances
        """
        stmt = select(RuleChain).order_by(RuleChain.priority.desc(), RuleChain.id)
        if organization_id is not None:
            stmt = stmt.where(RuleChain.organization_id == organization_id)
        result = await self.session.execute(stmt)
        return list(result.scalars().all())

    async def delete_chain(self, chain_id: int) -> bool:
        """Delete a rule chain and all of its nodes.

        Args:
            chain_id: Chain ID

        Returns:
            True if deleted, False if not found
        """
        chain = await self.get_chain(chain_id)
        if chain is None:
            return False

        await self.session.execute(
            delete(RuleChainNode).where(RuleChainNode.rule_chain_id == chain_id)
        )
        await self.session.delete(chain)
        await self.session.commit()
        return True

    async def create_node(
        self,
        rule_chain_id: int,
        name: str,
        type: str,
        config: Any = None,
        next_node_id: Optional[int] = None,
    ) -> RuleChainNode:
        """Create a node in a rule chain.

        Args:
            rule_chain_id: Owning chain ID
            name: Node name, unique within the chain
            type: Node type tag (filter/transform/action)
            config: Node config as a mapping or JSON text
            next_node_id: Forward link to the next node (optional)

        Returns:
            Created RuleChainNode instance
        """
        if config is not None and not isinstance(config, str):
            config = json.dumps(config)

        node = RuleChainNode(
            rule_chain_id=rule_chain_id,
            name=name,
            type=type,
            config=config,
            next_node_id=next_node_id,
        )
        self.session.add(node)
        await self.session.commit()
        await self.session.refresh(node)
        return node

    async def list_nodes(self, rule_chain_id: int) -> List[RuleChainNode]:
        """List all nodes of a chain in storage order.

        Args:
            rule_chain_id: Chain ID

        Returns:
            List of RuleChainNode instances
        """
        result = await self.session.execute(
            select(RuleChainNode)
            .where(RuleChainNode.rule_chain_id == rule_chain_id)
            .order_by(RuleChainNode.id)
        )
        return list(result.scalars().all())

    async def link(self, node_id: int, next_node_id: Optional[int]) -> Optional[RuleChainNode]:
        """Set or clear a node's forward link.

        Args:
            node_id: Node to update
            next_node_id: Target node ID, or None to end the chain here

        Returns:
            Updated RuleChainNode or None if not found
        """
        result = await self.session.execute(
            select(RuleChainNode).where(RuleChainNode.id == node_id)
        )
        node = result.scalar_one_or_none()
        if node is None:
            return None

        node.next_node_id = next_node_id
        await self.session.commit()
        await self.session.refresh(node)
        return node

    async def load_snapshot(self, chain_id: int) -> Optional[tuple[Chain, list[Node]]]:
        """Load an immutable engine snapshot of a chain and its nodes.

        Args:
            chain_id: Chain ID

        Returns:
            (Chain, nodes) tuple or None if the chain does not exist
        """
        chain = await self.get_chain(chain_id)
        if chain is None:
            return None

        nodes = await self.list_nodes(chain_id)
        return to_engine_chain(chain), [to_engine_node(node) for node in nodes]


def to_engine_chain(chain: RuleChain) -> Chain:
    """Convert a RuleChain row into the engine's Chain value."""
    return Chain(
        id=chain.id,
        name=chain.name,
        tenant_id=chain.organization_id,
        enabled=chain.enabled,
        priority=chain.priority,
        retry_policy=RetryPolicy(
            max_attempts=chain.max_retries, delay_seconds=chain.retry_delay
        ),
        description=chain.description,
    )


def to_engine_node(node: RuleChainNode) -> Node:
    """Convert a RuleChainNode row into the engine's Node value.

    The config stays JSON text; the chain graph decodes it so that a bad
    payload is reported against the node.
    """
    return Node(
        id=node.id,
        chain_id=node.rule_chain_id,
        type=node.type,
        config=node.config,
        next_node_id=node.next_node_id,
        name=node.name,
    )
