"""
Data models shared by the coordinator, the rule engine and the analyzers.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from datetime import datetime
from enum import Enum
import uuid


class SecurityLevel(str, Enum):
    """Discrete risk levels for a security report."""
    SAFE = "safe"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"
    UNKNOWN = "unknown"


class Severity(str, Enum):
    """Severity of an individual issue or indicator."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ModuleStatus(str, Enum):
    """Outcome of one dispatched analysis."""
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class ModuleName(str, Enum):
    """Keys of ``SecurityReport.module_results``."""
    HEADERS = "headers"
    SPF = "spf"
    PHISHING = "phishing"
    BLACKLIST = "blacklist"
    CLASSIFIER = "classifier"
    REPUTATION = "reputation"


class TimeoutPolicy(str, Enum):
    """What the coordinator does when the concurrent phase misses its deadline."""
    FALLBACK = "fallback"
    PARTIAL = "partial"


@dataclass
class InboundMessage:
    """
    A message as handed to the coordinator.

    Only ``raw_message`` is parsed; the other fields are taken as given
    and win over whatever the raw headers say.
    """
    id: str = ""
    from_address: str = ""
    to: str = ""
    subject: str = ""
    body: str = ""
    raw_message: Any = ""
    client_address: Optional[str] = None
    helo_domain: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InboundMessage":
        """Build from a loosely keyed dictionary (``from`` or ``from_address``)."""
        return cls(
            id=data.get('id') or '',
            from_address=data.get('from_address') or data.get('from') or '',
            to=data.get('to') or '',
            subject=data.get('subject') or '',
            body=data.get('body') or '',
            raw_message=data.get('raw_message', data.get('raw', '')),
            client_address=data.get('client_address', data.get('sender_ip')),
            helo_domain=data.get('helo_domain'),
        )


@dataclass
class MessageContext:
    """
    Flattened view of one message.

    Header names are stored lower-cased; each maps to every value seen, in
    message order.
    """
    message_id: str = ""
    from_address: str = ""
    to: str = ""
    subject: str = ""
    body: str = ""
    headers: Dict[str, List[str]] = field(default_factory=dict)
    links: List[str] = field(default_factory=list)
    client_address: Optional[str] = None
    helo_domain: Optional[str] = None
    scores: Dict[str, float] = field(default_factory=dict)
    tags: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def sender_domain(self) -> str:
        """Domain part of the From address, lower-cased ('' if absent)."""
        return extract_domain(self.from_address) or ""

    def header(self, name: str) -> Optional[str]:
        """First value of a header, or None."""
        values = self.headers.get(name.lower())
        return values[0] if values else None

    def header_values(self, name: str) -> List[str]:
        """All values of a header."""
        return list(self.headers.get(name.lower(), []))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'message_id': self.message_id,
            'from': self.from_address,
            'to': self.to,
            'subject': self.subject,
            'header_count': sum(len(v) for v in self.headers.values()),
            'link_count': len(self.links),
            'client_address': self.client_address,
            'scores': dict(self.scores),
            'tags': list(self.tags),
        }


@dataclass
class ModuleResult:
    """Result of one dispatched analysis, successful or not."""
    name: str
    status: ModuleStatus = ModuleStatus.COMPLETED
    data: Any = None
    error: Optional[str] = None
    duration_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == ModuleStatus.COMPLETED and self.data is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = self.data
        if hasattr(data, 'to_dict'):
            data = data.to_dict()
        elif isinstance(data, dict):
            data = {k: v.to_dict() if hasattr(v, 'to_dict') else v for k, v in data.items()}
        return {
            'name': self.name,
            'status': self.status.value,
            'data': data,
            'error': self.error,
            'duration_ms': round(self.duration_ms, 2),
        }


@dataclass(frozen=True)
class ThreatSummary:
    """Counts of threats by severity plus the most important descriptions."""
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    top_threats: List[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.critical + self.high + self.medium + self.low

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'critical': self.critical,
            'high': self.high,
            'medium': self.medium,
            'low': self.low,
            'top_threats': list(self.top_threats),
        }


@dataclass(frozen=True)
class SecurityReport:
    """
    Complete security report for one message.

    Created once per ``analyze`` call. ``degraded`` marks the fixed fallback
    report; ``partial`` marks a report built from the modules that finished
    before the deadline.
    """
    message_id: str
    score: int
    level: SecurityLevel
    recommendation: str
    module_results: Dict[str, ModuleResult] = field(default_factory=dict)
    threats: ThreatSummary = field(default_factory=ThreatSummary)
    actionable_steps: List[str] = field(default_factory=list)
    authentication_summary: str = ""
    rule_matches: List[Any] = field(default_factory=list)
    partial: bool = False
    degraded: bool = False
    analysis_ms: float = 0.0
    report_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    generated_at: datetime = field(default_factory=datetime.now)

    def module(self, name: str) -> Optional[ModuleResult]:
        """Result for a named module, if it was dispatched."""
        return self.module_results.get(name)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'report_id': self.report_id,
            'message_id': self.message_id,
            'score': self.score,
            'level': self.level.value,
            'recommendation': self.recommendation,
            'module_results': {name: r.to_dict() for name, r in self.module_results.items()},
            'threats': self.threats.to_dict(),
            'actionable_steps': list(self.actionable_steps),
            'authentication_summary': self.authentication_summary,
            'rule_matches': [m.to_dict() if hasattr(m, 'to_dict') else m for m in self.rule_matches],
            'partial': self.partial,
            'degraded': self.degraded,
            'analysis_ms': round(self.analysis_ms, 2),
            'generated_at': self.generated_at.isoformat(),
        }


def extract_domain(address: str) -> Optional[str]:
    """
    Domain part of an address such as ``Name <user@example.com>``.

    Returns None when there is no ``@``.
    """
    if not address or '@' not in address:
        return None
    domain = address.rsplit('@', 1)[1]
    domain = domain.split('>')[0].strip().strip('.').lower()
    return domain or None
