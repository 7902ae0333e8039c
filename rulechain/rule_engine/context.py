"""Evaluation context for expressions."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from rulechain.rule_engine.values import NULL, FieldValue


@dataclass
class EvaluationContext:
    """Context for evaluating expressions against one event record.

    Attributes:
        record: The event record's field map
        now: Evaluation instant for time-relative operators (defaults to
            the moment the context is created)
    """

    record: Mapping[str, Any]
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if self.now.tzinfo is None:
            self.now = self.now.replace(tzinfo=timezone.utc)

    def lookup(self, name: str) -> FieldValue:
        """Look up a field and wrap it as a ``FieldValue``.

        A key present verbatim always wins. Otherwise dotted names walk
        nested mappings, so ``meta.battery`` reads
        ``record["meta"]["battery"]``.

        Args:
            name: Field name or dotted path

        Returns:
            The wrapped value, or NULL if the field is absent
        """
        if name in self.record:
            return FieldValue.of(self.record[name])

        if "." not in name:
            return NULL

        obj: Any = self.record
        for part in name.split("."):
            if isinstance(obj, Mapping) and part in obj:
                obj = obj[part]
            else:
                return NULL
        return FieldValue.of(obj)
