"""Services built on top of the rule engine."""
