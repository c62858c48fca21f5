"""
Result records returned by the analyzers.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ..models import Severity

SEVERITY_ORDER = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


@dataclass
class SecurityIssue:
    """A problem found in the message headers."""
    severity: Severity
    category: str  # authentication, transport, content, configuration
    description: str
    recommendation: str = ""
    affected_headers: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'severity': self.severity.value,
            'category': self.category,
            'description': self.description,
            'recommendation': self.recommendation,
            'affected_headers': list(self.affected_headers),
        }


@dataclass
class PrivacyIssue:
    """Information the headers leak about the sender."""
    severity: Severity
    type: str
    description: str
    leaked_info: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'severity': self.severity.value,
            'type': self.type,
            'description': self.description,
            'leaked_info': self.leaked_info,
        }


@dataclass
class ReceivedHop:
    """One parsed ``Received`` header, numbered in delivery order."""
    hop: int
    from_host: str
    by_host: str
    protocol: Optional[str] = None
    encrypted: bool = False
    tls_version: Optional[str] = None
    cipher: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'hop': self.hop,
            'from': self.from_host,
            'by': self.by_host,
            'with': self.protocol,
            'encrypted': self.encrypted,
            'tls_version': self.tls_version,
            'cipher': self.cipher,
            'warnings': list(self.warnings),
        }


@dataclass
class TransportSummary:
    all_hops_encrypted: bool = True
    unencrypted_hops: List[str] = field(default_factory=list)
    weakest_tls: Optional[str] = None
    has_downgrade: bool = False
    suspicious_hops: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'all_hops_encrypted': self.all_hops_encrypted,
            'unencrypted_hops': list(self.unencrypted_hops),
            'weakest_tls': self.weakest_tls,
            'has_downgrade': self.has_downgrade,
            'suspicious_hops': list(self.suspicious_hops),
        }


@dataclass
class HeaderSummary:
    total_hops: int = 0
    encrypted_hops: int = 0
    security_score: int = 100
    assessment: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'total_hops': self.total_hops,
            'encrypted_hops': self.encrypted_hops,
            'security_score': self.security_score,
            'assessment': self.assessment,
        }


@dataclass
class HeaderAnalysis:
    """Header and transport analysis of one message."""
    received_path: List[ReceivedHop] = field(default_factory=list)
    security_issues: List[SecurityIssue] = field(default_factory=list)
    privacy_issues: List[PrivacyIssue] = field(default_factory=list)
    transport: TransportSummary = field(default_factory=TransportSummary)
    authentication: Dict[str, Dict[str, Optional[str]]] = field(default_factory=dict)
    summary: HeaderSummary = field(default_factory=HeaderSummary)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'received_path': [h.to_dict() for h in self.received_path],
            'security_issues': [i.to_dict() for i in self.security_issues],
            'privacy_issues': [i.to_dict() for i in self.privacy_issues],
            'transport': self.transport.to_dict(),
            'authentication': {k: dict(v) for k, v in self.authentication.items()},
            'summary': self.summary.to_dict(),
        }


@dataclass
class PhishingSample:
    """What the phishing detector looks at."""
    subject: str = ""
    body: str = ""
    from_address: str = ""
    links: List[str] = field(default_factory=list)
    headers: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class Indicator:
    """One phishing signal."""
    type: str
    severity: Severity
    description: str
    evidence: str = ""
    points: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'type': self.type,
            'severity': self.severity.value,
            'description': self.description,
            'evidence': self.evidence,
            'points': self.points,
        }


@dataclass
class PhishingAnalysis:
    """Phishing risk of one message; ``risk_score`` is 0 (clean) to 100."""
    risk_score: int = 0
    risk_level: str = "safe"
    indicators: List[Indicator] = field(default_factory=list)

    @property
    def is_likely_phishing(self) -> bool:
        return self.risk_score >= 60

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'risk_score': self.risk_score,
            'risk_level': self.risk_level,
            'is_likely_phishing': self.is_likely_phishing,
            'indicators': [i.to_dict() for i in self.indicators],
        }


@dataclass
class BlacklistListing:
    zone: str
    description: str
    severity: Severity
    response: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            'zone': self.zone,
            'description': self.description,
            'severity': self.severity.value,
            'response': self.response,
        }


@dataclass
class BlacklistResult:
    """DNS blacklist status of one address."""
    address: str
    listed: bool = False
    listings: List[BlacklistListing] = field(default_factory=list)
    total_checked: int = 0
    severity: Optional[Severity] = None

    @property
    def total_listed(self) -> int:
        return len(self.listings)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'address': self.address,
            'listed': self.listed,
            'listings': [entry.to_dict() for entry in self.listings],
            'total_checked': self.total_checked,
            'total_listed': self.total_listed,
            'severity': self.severity.value if self.severity else None,
        }


@dataclass
class ReputationVerdict:
    """Reputation lookup result for one URL or domain."""
    resource: str
    malicious: bool = False
    positives: int = 0
    total: int = 0
    permalink: Optional[str] = None
    category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'resource': self.resource,
            'malicious': self.malicious,
            'positives': self.positives,
            'total': self.total,
            'permalink': self.permalink,
            'category': self.category,
        }


@dataclass
class SanitizationResult:
    content: str
    removed: List[str] = field(default_factory=list)

    @property
    def modified(self) -> bool:
        return bool(self.removed)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'content': self.content,
            'removed': list(self.removed),
            'modified': self.modified,
        }
