# rulechain/schemas/rule_chain.py
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from rulechain.rule_engine.models import Chain, Node, RetryPolicy


class NodeDocument(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int | str
    type: str
    name: str | None = None
    config: Any = None
    next_node_id: int | str | None = Field(default=None, alias="nextNodeId")

    def to_engine(self, chain_id: Any) -> Node:
        return Node(
            id=self.id,
            chain_id=chain_id,
            type=self.type,
            config=self.config,
            next_node_id=self.next_node_id,
            name=self.name,
        )


class ChainDocument(BaseModel):
    """JSON form of a chain definition with its nodes inlined.

    Accepts both snake_case and the camelCase keys used by exported chain
    files.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int | str
    name: str
    description: str | None = None
    organization_id: int | None = Field(default=None, alias="organizationId")
    enabled: bool = True
    priority: int = 0
    max_retries: int = Field(default=1, ge=1, alias="maxRetries")
    retry_delay: float = Field(default=0.0, ge=0, alias="retryDelay")
    nodes: list[NodeDocument] = Field(default_factory=list)

    def to_engine(self) -> tuple[Chain, list[Node]]:
        """Convert into the engine's (Chain, nodes) snapshot."""
        chain = Chain(
            id=self.id,
            name=self.name,
            tenant_id=self.organization_id,
            enabled=self.enabled,
            priority=self.priority,
            retry_policy=RetryPolicy(
                max_attempts=self.max_retries, delay_seconds=self.retry_delay
            ),
            description=self.description,
        )
        return chain, [node.to_engine(self.id) for node in self.nodes]
