# rulechain/models/rule_chain.py
from datetime import datetime, timezone
from sqlalchemy import Boolean, Float, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from rulechain.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class RuleChain(Base):
    """An automation pipeline owned by a tenant."""
    __tablename__ = "rule_chains"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)  # scheduler only
    max_retries: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    retry_delay: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)  # seconds
    created_at: Mapped[datetime] = mapped_column(default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=_utcnow, onupdate=_utcnow)

    def __init__(self, **kwargs):
        if 'enabled' not in kwargs:
            kwargs['enabled'] = True
        if 'priority' not in kwargs:
            kwargs['priority'] = 0
        super().__init__(**kwargs)


class RuleChainNode(Base):
    """One filter/transform/action step of a rule chain."""
    __tablename__ = "rule_chain_nodes"
    __table_args__ = (
        UniqueConstraint("name", "rule_chain_id", name="unique_name_per_rule_chain"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    rule_chain_id: Mapped[int] = mapped_column(
        ForeignKey("rule_chains.id", ondelete="CASCADE"), nullable=False
    )
    type: Mapped[str] = mapped_column(String(20), nullable=False)  # filter/transform/action
    config: Mapped[str | None] = mapped_column(Text, nullable=True)  # JSON text
    next_node_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
