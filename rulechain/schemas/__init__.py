"""Pydantic schemas for chain definition documents."""

from rulechain.schemas.rule_chain import ChainDocument, NodeDocument

__all__ = [
    "ChainDocument",
    "NodeDocument",
]
