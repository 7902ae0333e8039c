# Database models
from rulechain.models.rule_chain import RuleChain, RuleChainNode

__all__ = [
    "RuleChain",
    "RuleChainNode",
]
