"""Repository layer for database operations.

This module provides repository classes for reading and managing rule
chain definitions stored in the database.
"""

from rulechain.repositories.rule_chain_repository import RuleChainRepository

__all__ = [
    "RuleChainRepository",
]
