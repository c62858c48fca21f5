"""
Header analyzer - traces the Received path and checks transport security,
authentication results and header hygiene.
"""

import logging
import re
from typing import Dict, List, Optional, Tuple

from ..models import Severity
from .base import HeaderAnalyzer
from .models import (
    HeaderAnalysis,
    HeaderSummary,
    PrivacyIssue,
    ReceivedHop,
    SecurityIssue,
    TransportSummary,
)

logger = logging.getLogger(__name__)

SEVERITY_PENALTIES = {
    Severity.CRITICAL: 30,
    Severity.HIGH: 15,
    Severity.MEDIUM: 8,
    Severity.LOW: 3,
}
UNENCRYPTED_PENALTY = 20

WEAK_CIPHERS = ('rc4', 'des', 'md5', 'null', 'export', 'anon')
SUSPICIOUS_MAILERS = ('bulk', 'mass', 'spam', 'bot')

_FROM_RE = re.compile(r'\bfrom\s+(\S+)', re.IGNORECASE)
_BY_RE = re.compile(r'\bby\s+(\S+)', re.IGNORECASE)
_WITH_RE = re.compile(r'\bwith\s+(\S+)', re.IGNORECASE)
_TLS_RE = re.compile(r'\b(?:tls\s*v?(1\.[0-3])|(ssl\s*v?3))', re.IGNORECASE)
_CIPHER_RE = re.compile(r'cipher[=:\s]+([^\s,;)]+)', re.IGNORECASE)
_PRIVATE_IP_RE = re.compile(
    r'\b(?:10\.\d{1,3}\.\d{1,3}\.\d{1,3}'
    r'|172\.(?:1[6-9]|2\d|3[01])\.\d{1,3}\.\d{1,3}'
    r'|192\.168\.\d{1,3}\.\d{1,3})\b'
)
_TIMEZONE_RE = re.compile(r'([+-]\d{4})')


class ReceivedHeaderAnalyzer(HeaderAnalyzer):
    """
    Default header analyzer.

    The security score starts at 100 and loses points per issue by severity
    (critical 30, high 15, medium 8, low 3) plus up to 20 points for the
    share of hops without TLS.
    """

    @property
    def name(self) -> str:
        return "headers"

    @property
    def description(self) -> str:
        return "Analyzes Received path, TLS usage and authentication headers"

    def analyze_headers(self, headers: Dict[str, List[str]]) -> HeaderAnalysis:
        logger.debug("Starting comprehensive header analysis")
        headers = {name.lower(): values for name, values in (headers or {}).items()}

        path = self._received_path(headers)
        transport = self._transport(path)
        authentication = self._parse_auth_results(headers)
        security_issues = self._security_issues(headers, transport, authentication)
        privacy_issues = self._privacy_issues(headers)

        return HeaderAnalysis(
            received_path=path,
            security_issues=security_issues,
            privacy_issues=privacy_issues,
            transport=transport,
            authentication=authentication,
            summary=self._summary(path, security_issues),
        )

    def _received_path(self, headers: Dict[str, List[str]]) -> List[ReceivedHop]:
        received = headers.get('received', [])
        # Most recent hop comes first in the message
        path = [self._parse_received(value, len(received) - i) for i, value in enumerate(received)]
        path.reverse()
        return path

    def _parse_received(self, header: str, hop: int) -> ReceivedHop:
        warnings = []
        lowered = header.lower()

        from_match = _FROM_RE.search(header)
        by_match = _BY_RE.search(header)
        with_match = _WITH_RE.search(header)
        from_host = from_match.group(1) if from_match else "unknown"

        encrypted = 'tls' in lowered or 'esmtps' in lowered

        tls_version = None
        tls_match = _TLS_RE.search(header)
        if tls_match:
            tls_version = f"TLS{tls_match.group(1)}" if tls_match.group(1) else "SSL3"
            if _tls_rank(tls_version) < _tls_rank("TLS1.2"):
                warnings.append(f"Outdated TLS version: {tls_version}")

        cipher = None
        cipher_match = _CIPHER_RE.search(header)
        if cipher_match:
            cipher = cipher_match.group(1)
            if any(weak in cipher.lower() for weak in WEAK_CIPHERS):
                warnings.append(f"Weak cipher detected: {cipher}")

        if from_host == "unknown" or from_host.startswith('['):
            warnings.append("Suspicious or missing from field")
        if not encrypted:
            warnings.append("Unencrypted hop")

        return ReceivedHop(
            hop=hop,
            from_host=from_host,
            by_host=by_match.group(1) if by_match else "unknown",
            protocol=with_match.group(1) if with_match else None,
            encrypted=encrypted,
            tls_version=tls_version,
            cipher=cipher,
            warnings=warnings,
        )

    def _transport(self, path: List[ReceivedHop]) -> TransportSummary:
        transport = TransportSummary()
        previous: Optional[str] = None

        for hop in path:
            if not hop.encrypted:
                transport.unencrypted_hops.append(f"Hop {hop.hop}: {hop.from_host} -> {hop.by_host}")
            if any(w.startswith("Suspicious") for w in hop.warnings):
                transport.suspicious_hops.append(f"Hop {hop.hop}: {hop.from_host}")
            if hop.tls_version:
                if transport.weakest_tls is None or _tls_rank(hop.tls_version) < _tls_rank(transport.weakest_tls):
                    transport.weakest_tls = hop.tls_version
                if previous and _tls_rank(hop.tls_version) < _tls_rank(previous):
                    transport.has_downgrade = True
                previous = hop.tls_version

        transport.all_hops_encrypted = not transport.unencrypted_hops
        return transport

    def _parse_auth_results(self, headers: Dict[str, List[str]]) -> Dict[str, Dict[str, Optional[str]]]:
        """
        Parse Authentication-Results headers.

        Returns dict with spf, dkim, dmarc results.
        """
        results: Dict[str, Dict[str, Optional[str]]] = {}
        auth_header = ' '.join(headers.get('authentication-results', []))
        if not auth_header:
            return results

        spf_match = re.search(r'spf=(\w+)(?:\s+.*?domain=([^\s;]+))?', auth_header, re.IGNORECASE)
        if spf_match:
            results['spf'] = {'result': spf_match.group(1).lower(), 'domain': spf_match.group(2)}

        dkim_match = re.search(r'dkim=(\w+)(?:\s+.*?d=([^\s;]+))?', auth_header, re.IGNORECASE)
        if dkim_match:
            results['dkim'] = {'result': dkim_match.group(1).lower(), 'domain': dkim_match.group(2)}

        dmarc_match = re.search(r'dmarc=(\w+)(?:\s+.*?from=([^\s;]+))?', auth_header, re.IGNORECASE)
        if dmarc_match:
            results['dmarc'] = {'result': dmarc_match.group(1).lower(), 'from_domain': dmarc_match.group(2)}

        return results

    def _security_issues(
        self,
        headers: Dict[str, List[str]],
        transport: TransportSummary,
        authentication: Dict[str, Dict[str, Optional[str]]],
    ) -> List[SecurityIssue]:
        issues = []

        if 'authentication-results' not in headers:
            issues.append(SecurityIssue(
                Severity.MEDIUM, "authentication",
                "Missing Authentication-Results header",
                "The receiving server may not have performed SPF/DKIM/DMARC checks.",
            ))

        for method in ('spf', 'dkim', 'dmarc'):
            result = authentication.get(method, {}).get('result')
            if result == 'fail' or (method == 'spf' and result == 'softfail'):
                issues.append(SecurityIssue(
                    Severity.HIGH, "authentication",
                    f"{method.upper()} authentication failed",
                    "Verify the sender is authorized to send from this domain.",
                    ['authentication-results'],
                ))

        if not transport.all_hops_encrypted:
            issues.append(SecurityIssue(
                Severity.HIGH, "transport",
                "Email transmitted over unencrypted connections",
                f"{len(transport.unencrypted_hops)} hop(s) did not use TLS encryption.",
                ['received'],
            ))

        if transport.has_downgrade:
            issues.append(SecurityIssue(
                Severity.CRITICAL, "transport",
                "Possible TLS downgrade attack detected",
                "The TLS version decreased during transit, which may indicate an active attack.",
                ['received'],
            ))

        if transport.weakest_tls and _tls_rank(transport.weakest_tls) < _tls_rank("TLS1.2"):
            issues.append(SecurityIssue(
                Severity.HIGH, "transport",
                f"Weak TLS version used: {transport.weakest_tls}",
                "Mail servers should use TLS 1.2 or higher.",
                ['received'],
            ))

        if not headers.get('return-path'):
            issues.append(SecurityIssue(
                Severity.LOW, "configuration",
                "Missing Return-Path header",
                "Return-Path header helps with bounce handling.",
            ))

        reply_to = headers.get('reply-to')
        sender = headers.get('from')
        if reply_to and sender and _address(reply_to[0]) != _address(sender[0]):
            issues.append(SecurityIssue(
                Severity.MEDIUM, "content",
                "Reply-To address differs from From address",
                "This is common in phishing emails. Verify the reply-to address is legitimate.",
                ['reply-to', 'from'],
            ))

        if transport.suspicious_hops:
            issues.append(SecurityIssue(
                Severity.HIGH, "transport",
                "Suspicious mail hops detected",
                f"{len(transport.suspicious_hops)} suspicious hop(s) found in the email path.",
                ['received'],
            ))

        if 'message-id' not in headers:
            issues.append(SecurityIssue(
                Severity.LOW, "configuration",
                "Missing Message-ID header",
                "Message-ID helps with email threading and deduplication.",
            ))

        mailers = headers.get('user-agent', []) + headers.get('x-mailer', [])
        if any(pattern in mailer.lower() for mailer in mailers for pattern in SUSPICIOUS_MAILERS):
            issues.append(SecurityIssue(
                Severity.MEDIUM, "content",
                "Suspicious mail client detected",
                "The User-Agent or X-Mailer header indicates a bulk or automated sender.",
                ['user-agent', 'x-mailer'],
            ))

        return issues

    def _privacy_issues(self, headers: Dict[str, List[str]]) -> List[PrivacyIssue]:
        issues = []

        originating = headers.get('x-originating-ip')
        if originating:
            issues.append(PrivacyIssue(
                Severity.HIGH, "IP Address Leakage",
                "X-Originating-IP header reveals sender's IP address", originating[0],
            ))

        mailer = headers.get('x-mailer')
        if mailer:
            issues.append(PrivacyIssue(
                Severity.LOW, "Client Information",
                "X-Mailer header reveals email client details", mailer[0],
            ))

        if any(_PRIVATE_IP_RE.search(value) for value in headers.get('received', [])):
            issues.append(PrivacyIssue(
                Severity.MEDIUM, "Internal Network Exposure",
                "Received header contains private IP addresses",
                "Internal network topology information",
            ))

        date = headers.get('date')
        if date:
            match = _TIMEZONE_RE.search(date[0])
            if match:
                issues.append(PrivacyIssue(
                    Severity.LOW, "Timezone Information",
                    "Date header reveals sender's timezone", match.group(1),
                ))

        return issues

    def _summary(self, path: List[ReceivedHop], issues: List[SecurityIssue]) -> HeaderSummary:
        total_hops = len(path)
        encrypted_hops = sum(1 for hop in path if hop.encrypted)

        score = 100.0
        for issue in issues:
            score -= SEVERITY_PENALTIES.get(issue.severity, 0)
        ratio = encrypted_hops / total_hops if total_hops else 1.0
        score -= (1 - ratio) * UNENCRYPTED_PENALTY
        score = max(0.0, min(100.0, score))

        if score >= 90:
            assessment = "Excellent - Strong security posture"
        elif score >= 75:
            assessment = "Good - Minor security concerns"
        elif score >= 50:
            assessment = "Fair - Moderate security issues detected"
        elif score >= 25:
            assessment = "Poor - Significant security problems"
        else:
            assessment = "Critical - Severe security vulnerabilities"

        return HeaderSummary(
            total_hops=total_hops,
            encrypted_hops=encrypted_hops,
            security_score=round(score),
            assessment=assessment,
        )


def _tls_rank(version: str) -> Tuple[int, int]:
    match = re.search(r'(\d+)\.(\d+)', version)
    if not match:
        # SSLv3 ranks below every TLS version
        return (0, 3)
    return (int(match.group(1)), int(match.group(2)))


def _address(value: str) -> str:
    match = re.search(r'<([^>]+)>', value)
    address = match.group(1) if match else value
    return address.strip().lower()


