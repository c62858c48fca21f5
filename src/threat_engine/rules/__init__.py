"""
Rule engine: prioritized condition/action rules over a message context.
"""

from .builder import RuleBuilder
from .engine import RuleEngine, compare, resolve_field
from .models import (
    Action,
    ActionKind,
    Condition,
    ConditionKind,
    ConditionValue,
    Operator,
    Rule,
    RuleMatch,
    ValueKind,
)
from .predicates import FunctionPredicate, Predicate, PredicateRegistry

__all__ = [
    "RuleEngine",
    "RuleBuilder",
    "Rule",
    "RuleMatch",
    "Condition",
    "ConditionKind",
    "ConditionValue",
    "ValueKind",
    "Operator",
    "Action",
    "ActionKind",
    "Predicate",
    "FunctionPredicate",
    "PredicateRegistry",
    "compare",
    "resolve_field",
]
