"""
Fluent construction of rules.

    rule = (RuleBuilder("Urgent invoices", priority=50)
            .when("subject", "contains", "invoice")
            .score("spam_score", "gt", 0.8)
            .add_tag("suspicious")
            .build())
"""

from typing import Any, List

from .models import Action, ActionKind, Condition, ConditionKind, Operator, Rule


class RuleBuilder:
    """Collects conditions and actions, then produces a :class:`Rule`."""

    def __init__(self, name: str, priority: int = 100):
        self._name = name
        self._priority = priority
        self._enabled = True
        self._conditions: List[Condition] = []
        self._actions: List[Action] = []

    def when(self, field: str, operator: Any, value: Any, negate: bool = False) -> "RuleBuilder":
        """Field condition, e.g. ``when("from_address", "ends_with", "@example.com")``."""
        self._conditions.append(Condition(ConditionKind.FIELD, field, operator, value, negate))
        return self

    def matches(self, field: str, pattern: str, negate: bool = False) -> "RuleBuilder":
        """Case-insensitive regex search on a field."""
        self._conditions.append(Condition(ConditionKind.PATTERN, field, Operator.MATCHES, pattern, negate))
        return self

    def score(self, name: str, operator: Any, value: float, negate: bool = False) -> "RuleBuilder":
        """Numeric comparison against one of the context scores."""
        self._conditions.append(Condition(ConditionKind.SCORE, name, operator, value, negate))
        return self

    def custom(self, predicate: str, argument: Any = None, negate: bool = False) -> "RuleBuilder":
        """Registered predicate, called with ``argument``."""
        self._conditions.append(Condition(ConditionKind.CUSTOM, predicate, Operator.CUSTOM, argument, negate))
        return self

    def move_to_folder(self, folder: str) -> "RuleBuilder":
        return self._action(ActionKind.FOLDER, folder)

    def add_tag(self, tag: str) -> "RuleBuilder":
        return self._action(ActionKind.TAG, tag)

    def set_flag(self, flag: str) -> "RuleBuilder":
        return self._action(ActionKind.FLAG, flag)

    def delete(self) -> "RuleBuilder":
        return self._action(ActionKind.DELETE, True)

    def quarantine(self) -> "RuleBuilder":
        return self._action(ActionKind.QUARANTINE, True)

    def notify(self, message: str) -> "RuleBuilder":
        return self._action(ActionKind.NOTIFY, message)

    def adjust_score(self, delta: float) -> "RuleBuilder":
        """Add ``delta`` points to the fused security score when the rule matches."""
        return self._action(ActionKind.SCORE, delta)

    def disabled(self) -> "RuleBuilder":
        self._enabled = False
        return self

    def build(self) -> Rule:
        return Rule(
            name=self._name,
            conditions=list(self._conditions),
            actions=list(self._actions),
            priority=self._priority,
            enabled=self._enabled,
        )

    def _action(self, kind: ActionKind, value: Any) -> "RuleBuilder":
        self._actions.append(Action(kind, value))
        return self
