"""
Rule records: plain, serializable data with no behavior of their own.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class ConditionKind(str, Enum):
    FIELD = "field"
    PATTERN = "pattern"
    SCORE = "score"
    CUSTOM = "custom"


class Operator(str, Enum):
    EQUALS = "equals"
    CONTAINS = "contains"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    MATCHES = "matches"
    CUSTOM = "custom"

    @classmethod
    def parse(cls, name: Any) -> Optional["Operator"]:
        """Operator for a name (camelCase spellings accepted), or None."""
        if isinstance(name, cls):
            return name
        if not isinstance(name, str):
            return None
        key = _OPERATOR_ALIASES.get(name, name.lower())
        try:
            return cls(key)
        except ValueError:
            return None


_OPERATOR_ALIASES = {
    'startsWith': 'starts_with',
    'endsWith': 'ends_with',
    'eq': 'equals',
    '==': 'equals',
    '>': 'gt',
    '<': 'lt',
    '>=': 'gte',
    '<=': 'lte',
}

STRING_OPERATORS = {Operator.EQUALS, Operator.CONTAINS, Operator.STARTS_WITH, Operator.ENDS_WITH}
NUMERIC_OPERATORS = {Operator.GT, Operator.LT, Operator.GTE, Operator.LTE}


class ValueKind(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    STRING_LIST = "string_list"


@dataclass(frozen=True)
class ConditionValue:
    """
    Tagged condition operand: a string, a number, a boolean or a list of
    strings.
    """
    kind: ValueKind
    raw: Union[str, float, bool, tuple]

    @classmethod
    def of(cls, value: Any) -> Optional["ConditionValue"]:
        """
        Wrap a plain value.

        Raises:
            ValueError: For anything outside the four supported shapes
        """
        if value is None:
            return None
        if isinstance(value, ConditionValue):
            return value
        if isinstance(value, bool):
            return cls(ValueKind.BOOLEAN, value)
        if isinstance(value, (int, float)):
            return cls(ValueKind.NUMBER, float(value))
        if isinstance(value, str):
            return cls(ValueKind.STRING, value)
        if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
            return cls(ValueKind.STRING_LIST, tuple(value))
        raise ValueError(f"Unsupported condition value: {value!r}")

    def as_text(self) -> str:
        if self.kind == ValueKind.STRING_LIST:
            return ",".join(self.raw)
        if self.kind == ValueKind.BOOLEAN:
            return "true" if self.raw else "false"
        if self.kind == ValueKind.NUMBER and float(self.raw).is_integer():
            return str(int(self.raw))
        return str(self.raw)

    def as_number(self) -> Optional[float]:
        if self.kind == ValueKind.NUMBER:
            return float(self.raw)
        if self.kind == ValueKind.STRING:
            try:
                return float(self.raw)
            except ValueError:
                return None
        return None

    def as_list(self) -> List[str]:
        if self.kind == ValueKind.STRING_LIST:
            return list(self.raw)
        return [self.as_text()]

    def to_plain(self) -> Any:
        """Back to a JSON-friendly value."""
        if self.kind == ValueKind.STRING_LIST:
            return list(self.raw)
        if self.kind == ValueKind.NUMBER and float(self.raw).is_integer():
            return int(self.raw)
        return self.raw


@dataclass
class Condition:
    """
    One test inside a rule.

    ``kind`` and ``operator`` keep unrecognized spellings as plain strings so
    the engine can log them and fail closed.
    """
    kind: Union[ConditionKind, str]
    field: str
    operator: Union[Operator, str] = Operator.EQUALS
    value: Optional[ConditionValue] = None
    negate: bool = False

    def __post_init__(self):
        if isinstance(self.kind, str) and not isinstance(self.kind, ConditionKind):
            try:
                self.kind = ConditionKind(self.kind)
            except ValueError:
                pass
        parsed = Operator.parse(self.operator)
        if parsed is not None:
            self.operator = parsed
        if not isinstance(self.value, ConditionValue):
            self.value = ConditionValue.of(self.value)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'kind': _plain(self.kind),
            'field': self.field,
            'operator': _plain(self.operator),
            'value': self.value.to_plain() if self.value is not None else None,
            'negate': self.negate,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Condition":
        return cls(
            kind=data.get('kind', data.get('type', '')),
            field=data.get('field', ''),
            operator=data.get('operator', Operator.EQUALS),
            value=data.get('value'),
            negate=bool(data.get('negate', False)),
        )


class ActionKind(str, Enum):
    FOLDER = "folder"
    TAG = "tag"
    FLAG = "flag"
    DELETE = "delete"
    QUARANTINE = "quarantine"
    NOTIFY = "notify"
    SCORE = "score"


@dataclass(frozen=True)
class Action:
    """What to do when a rule matches. ``score`` actions carry a point delta."""
    kind: ActionKind
    value: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {'kind': self.kind.value, 'value': self.value}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Action":
        return cls(kind=ActionKind(data.get('kind', data.get('type'))), value=data.get('value'))


@dataclass
class Rule:
    """A named, prioritized conjunction of conditions with its actions."""
    name: str
    conditions: List[Condition] = field(default_factory=list)
    actions: List[Action] = field(default_factory=list)
    priority: int = 100
    enabled: bool = True

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'name': self.name,
            'conditions': [c.to_dict() for c in self.conditions],
            'actions': [a.to_dict() for a in self.actions],
            'priority': self.priority,
            'enabled': self.enabled,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Rule":
        if not data.get('name'):
            raise ValueError("Rule needs a name")
        return cls(
            name=data['name'],
            conditions=[Condition.from_dict(c) for c in data.get('conditions', [])],
            actions=[Action.from_dict(a) for a in data.get('actions', [])],
            priority=int(data.get('priority', 100)),
            enabled=bool(data.get('enabled', True)),
        )


@dataclass(frozen=True)
class RuleMatch:
    """A rule that matched, with the actions it asks for."""
    rule: Rule
    actions: List[Action]
    reason: str = ""

    @property
    def name(self) -> str:
        return self.rule.name

    def to_dict(self) -> Dict[str, Any]:
        return {
            'rule': self.rule.name,
            'priority': self.rule.priority,
            'actions': [a.to_dict() for a in self.actions],
            'reason': self.reason,
        }


def _plain(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value
