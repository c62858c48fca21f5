"""
Rule engine: evaluates prioritized rules against a message context.

Configuration mistakes (unknown operators, kinds or predicates, invalid
patterns, predicates that raise) are logged and make the condition false.
``evaluate`` never raises.
"""

import json
import logging
import re
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, List, Optional, Union

import yaml

from ..models import MessageContext
from .builder import RuleBuilder
from .models import (
    NUMERIC_OPERATORS,
    STRING_OPERATORS,
    Condition,
    ConditionKind,
    ConditionValue,
    Operator,
    Rule,
    RuleMatch,
    ValueKind,
)
from .predicates import Predicate, PredicateRegistry

# Top-level names accepted for context attributes
_FIELD_ALIASES = {
    'from': 'from_address',
    'message-id': 'message_id',
}

logger = logging.getLogger(__name__)


class _InvalidCondition(Exception):
    """Condition cannot be evaluated as configured."""


@lru_cache(maxsize=256)
def _compile(pattern: str) -> "re.Pattern":
    return re.compile(pattern, re.IGNORECASE)


def resolve_field(context: MessageContext, path: str) -> Any:
    """
    Look up a dot-separated path on the context.

    ``from`` means ``from_address``. ``headers.<name>`` and unknown top-level
    names resolve to the first value of that header. Returns None when
    nothing is found.
    """
    if not path:
        return None

    parts = path.split('.')
    parts[0] = _FIELD_ALIASES.get(parts[0], parts[0])
    first = parts[0]

    if first == 'headers':
        if len(parts) == 1:
            return context.headers
        return context.header('.'.join(parts[1:]))

    if first.startswith('_') or not hasattr(context, first) or callable(getattr(context, first)):
        return context.header(path)

    value: Any = getattr(context, first)
    for part in parts[1:]:
        if value is None:
            return None
        if isinstance(value, dict):
            value = value.get(part)
        elif isinstance(value, (list, tuple)) and part.isdigit():
            index = int(part)
            value = value[index] if index < len(value) else None
        else:
            value = getattr(value, part, None)
    return value


class RuleEngine:
    """
    Holds rules sorted by descending priority and evaluates them.
    """

    def __init__(self, rules: Optional[Iterable[Rule]] = None, predicates: Optional[PredicateRegistry] = None):
        """
        Args:
            rules: Initial rules
            predicates: Predicate registry (built-ins registered by default)
        """
        self._rules: List[Rule] = []
        self.predicates = predicates or PredicateRegistry()

        for rule in rules or []:
            self.add_rule(rule)

    @staticmethod
    def create_rule(name: str, priority: int = 100) -> RuleBuilder:
        """Start a fluent rule definition."""
        return RuleBuilder(name, priority)

    def add_rule(self, rule: Rule) -> None:
        """Add a rule; equal priorities keep insertion order."""
        self._rules.append(rule)
        self._rules.sort(key=lambda r: -r.priority)
        logger.debug(f"Added rule: {rule.name} (priority {rule.priority})")

    def remove_rule(self, name: str) -> bool:
        """
        Remove the first rule with this name.

        Returns:
            True if a rule was removed
        """
        for index, rule in enumerate(self._rules):
            if rule.name == name:
                del self._rules[index]
                logger.debug(f"Removed rule: {name}")
                return True
        return False

    def get_rules(self) -> List[Rule]:
        """Rules in evaluation order."""
        return list(self._rules)

    def clear(self) -> None:
        self._rules.clear()

    def register_predicate(self, name: str, predicate: Predicate) -> None:
        """Register a custom predicate usable from ``custom`` conditions."""
        self.predicates.register(name, predicate)

    def evaluate(self, context: MessageContext) -> List[RuleMatch]:
        """
        Evaluate every enabled rule.

        Args:
            context: Message to test

        Returns:
            Matches in rule priority order
        """
        matches: List[RuleMatch] = []

        for rule in list(self._rules):
            if not rule.enabled:
                continue
            if self._rule_matches(rule, context):
                logger.debug(f"Rule matched: {rule.name}")
                matches.append(RuleMatch(
                    rule=rule,
                    actions=list(rule.actions),
                    reason=self._reason(rule),
                ))

        logger.debug(f"Rules evaluated: {len(matches)} of {len(self._rules)} matched")
        return matches

    def export_rules(self) -> List[dict]:
        """Rules as plain dictionaries, in evaluation order."""
        return [rule.to_dict() for rule in self._rules]

    def import_rules(self, data: Union[str, List[dict]]) -> int:
        """
        Add rules from ``export_rules`` output or its JSON text.

        Returns:
            Number of rules added

        Raises:
            ValueError: If a record is malformed; no rule is added then
        """
        if isinstance(data, str):
            data = json.loads(data)
        if isinstance(data, dict):
            data = data.get('rules', [])
        if not isinstance(data, list):
            raise ValueError("Rules must be a list of records")

        rules = [Rule.from_dict(record) for record in data]
        for rule in rules:
            self.add_rule(rule)
        logger.info(f"Imported {len(rules)} rules")
        return len(rules)

    def load_yaml(self, path: str) -> int:
        """Add rules from a YAML file (a list, or a mapping with ``rules``)."""
        with open(Path(path), 'r') as f:
            data = yaml.safe_load(f) or []
        return self.import_rules(data)

    def _rule_matches(self, rule: Rule, context: MessageContext) -> bool:
        for condition in rule.conditions:
            try:
                result = self._evaluate_condition(condition, context)
            except _InvalidCondition as e:
                # Not subject to negate: a broken condition never matches
                logger.warning(f"Rule '{rule.name}' skipped: {e}")
                return False
            except Exception as e:
                logger.error(f"Condition evaluation failed in rule '{rule.name}': {e}", exc_info=True)
                return False
            if condition.negate:
                result = not result
            if not result:
                return False
        return True

    def _evaluate_condition(self, condition: Condition, context: MessageContext) -> bool:
        kind = condition.kind

        if kind == ConditionKind.FIELD:
            return self._evaluate_field(condition, context)
        if kind == ConditionKind.PATTERN:
            return self._evaluate_pattern(condition, resolve_field(context, condition.field))
        if kind == ConditionKind.SCORE:
            return self._evaluate_score(condition, context)
        if kind == ConditionKind.CUSTOM:
            return self._evaluate_custom(condition, context)

        raise _InvalidCondition(f"Unknown condition type: {kind}")

    def _evaluate_field(self, condition: Condition, context: MessageContext) -> bool:
        operator = Operator.parse(condition.operator)
        if operator is None or operator == Operator.CUSTOM:
            raise _InvalidCondition(f"Unknown operator on field '{condition.field}': {condition.operator}")
        if condition.value is None:
            raise _InvalidCondition(f"Missing value on field '{condition.field}'")

        value = resolve_field(context, condition.field)
        if value is None:
            return False
        if operator == Operator.MATCHES:
            return self._evaluate_pattern(condition, value)
        return compare(operator, value, condition.value)

    def _evaluate_pattern(self, condition: Condition, value: Any) -> bool:
        if condition.value is None:
            raise _InvalidCondition(f"Missing pattern on field '{condition.field}'")
        try:
            regex = _compile(condition.value.as_text())
        except re.error as e:
            raise _InvalidCondition(f"Invalid pattern {condition.value.as_text()!r}: {e}") from e
        if value is None:
            return False
        if isinstance(value, (list, tuple)):
            return any(regex.search(str(item)) for item in value)
        return regex.search(str(value)) is not None

    def _evaluate_score(self, condition: Condition, context: MessageContext) -> bool:
        operator = Operator.parse(condition.operator)
        if operator not in NUMERIC_OPERATORS and operator != Operator.EQUALS:
            raise _InvalidCondition(f"Unknown score operator: {condition.operator}")
        if condition.value is None or condition.value.as_number() is None:
            raise _InvalidCondition(f"Score condition on '{condition.field}' needs a number")

        score = context.scores.get(condition.field)
        if score is None:
            return False
        return compare(operator, score, condition.value)

    def _evaluate_custom(self, condition: Condition, context: MessageContext) -> bool:
        predicate = self.predicates.get(condition.field)
        if predicate is None:
            raise _InvalidCondition(f"Custom predicate not found: {condition.field}")

        argument = condition.value.to_plain() if condition.value is not None else None
        try:
            return bool(predicate.evaluate(context, argument))
        except Exception as e:
            logger.error(f"Custom predicate '{condition.field}' failed: {e}", exc_info=True)
            raise _InvalidCondition(f"Predicate '{condition.field}' raised") from e

    @staticmethod
    def _reason(rule: Rule) -> str:
        parts = []
        for condition in rule.conditions:
            kind = condition.kind.value if isinstance(condition.kind, ConditionKind) else condition.kind
            operator = condition.operator.value if isinstance(condition.operator, Operator) else condition.operator
            value = condition.value.as_text() if condition.value is not None else ''
            text = f"{kind}:{condition.field} {operator} {value}".strip()
            parts.append(f"not {text}" if condition.negate else text)
        return " and ".join(parts) or "always"


def compare(operator: Operator, left: Any, right: ConditionValue) -> bool:
    """
    Apply an operator to a resolved value and a condition operand.

    String operators are case-insensitive; list values match when any element
    does. Numeric operators need both sides to be numbers.
    """
    if isinstance(left, (list, tuple)):
        return any(compare(operator, item, right) for item in left)

    if operator in NUMERIC_OPERATORS:
        a, b = _number(left), right.as_number()
        if a is None or b is None:
            return False
        if operator == Operator.GT:
            return a > b
        if operator == Operator.LT:
            return a < b
        if operator == Operator.GTE:
            return a >= b
        return a <= b

    if operator not in STRING_OPERATORS:
        logger.warning(f"Unsupported operator: {operator}")
        return False

    if operator == Operator.EQUALS:
        if right.kind == ValueKind.NUMBER:
            number = _number(left)
            return number is not None and number == right.as_number()
        if right.kind == ValueKind.BOOLEAN:
            return _boolean(left) is right.raw

    text = _text(left).lower()
    candidates = [c.lower() for c in right.as_list()]

    if operator == Operator.EQUALS:
        return text in candidates
    if operator == Operator.CONTAINS:
        return any(c in text for c in candidates)
    if operator == Operator.STARTS_WITH:
        return any(text.startswith(c) for c in candidates)
    return any(text.endswith(c) for c in candidates)


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _boolean(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ('true', 'false'):
        return value.strip().lower() == 'true'
    return None


def _text(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
