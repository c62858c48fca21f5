"""
Phishing heuristics - explainable checks on subject, sender, body, links and
headers. Each matched check adds points; the total is capped at 100.
"""

import logging
import re
from typing import Dict, List, Optional
from urllib.parse import urlsplit

from ..models import Severity, extract_domain
from .base import PhishingDetector
from .models import Indicator, PhishingAnalysis, PhishingSample

logger = logging.getLogger(__name__)

PHISHING_KEYWORDS = [
    "verify your account",
    "confirm your identity",
    "suspended account",
    "unusual activity",
    "click here immediately",
    "urgent action required",
    "verify your password",
    "update your information",
    "confirm your details",
    "security alert",
    "account will be closed",
    "limited time offer",
    "claim your prize",
    "you've won",
    "congratulations",
    "act now",
    "reset your password",
    "billing problem",
    "payment failed",
    "refund",
]

SUSPICIOUS_TLDS = [
    ".tk", ".ml", ".ga", ".cf", ".gq", ".xyz", ".top",
    ".work", ".click", ".link", ".download", ".stream",
]

IMPERSONATED_BRANDS = [
    "paypal", "amazon", "microsoft", "apple", "google", "facebook",
    "netflix", "ebay", "bank", "irs", "fedex", "ups", "dhl",
]

LEGITIMATE_BRAND_DOMAINS = {
    'paypal': ["paypal.com"],
    'amazon': ["amazon.com", "amazon.co.uk"],
    'microsoft': ["microsoft.com", "outlook.com", "live.com"],
    'google': ["google.com", "gmail.com"],
}

URL_SHORTENERS = ["bit.ly", "tinyurl.com", "goo.gl", "ow.ly", "t.co"]

SENSITIVE_KEYWORDS = ["password", "ssn", "social security", "credit card", "bank account", "pin"]

# Body checks: regex, severity, points, description
PATTERNS = {
    'grammatical_errors': {
        'regex': r"\b(your|you're)\s+(account|password|information)\s+has?\s+been\s+"
                 r"|\bplease\s+to\s+|\bkindly\s+revert\s+back\b",
        'severity': Severity.LOW,
        'points': 5,
        'description': 'Email contains grammatical errors common in phishing',
    },
    'generic_greeting': {
        'regex': r'^\s*(dear|hello)\s+(customer|user|member|sir|madam)',
        'severity': Severity.LOW,
        'points': 3,
        'description': 'Email uses generic greeting instead of personal name',
    },
}

_IP_LINK_RE = re.compile(r'^https?://\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}', re.IGNORECASE)
_CYRILLIC_RE = re.compile(r'[Ѐ-ӿ]')
_DISPLAY_NAME_RE = re.compile(r'^\s*"?([^"<]+?)"?\s*<')


class HeuristicPhishingDetector(PhishingDetector):
    """
    Default phishing detector.

    Risk levels: >=75 critical, >=60 high, >=40 medium, >=20 low, else safe.
    """

    @property
    def name(self) -> str:
        return "phishing"

    @property
    def description(self) -> str:
        return "Detects phishing patterns in sender, content and links"

    def analyze_email(self, sample: PhishingSample) -> PhishingAnalysis:
        logger.debug("Analyzing email for phishing indicators")

        indicators: List[Indicator] = []
        indicators.extend(self._analyze_subject(sample.subject or ''))
        indicators.extend(self._analyze_sender(sample.from_address or '', sample.headers or {}))
        indicators.extend(self._analyze_content(sample.body or ''))
        indicators.extend(self._analyze_links(sample.links or [], sample.from_address or ''))
        indicators.extend(self._analyze_headers(sample.headers or {}))

        risk_score = min(100, sum(i.points for i in indicators))
        risk_level = self.risk_level(risk_score)

        logger.info(f"Phishing analysis complete: Risk score {risk_score}, Level: {risk_level}")

        return PhishingAnalysis(risk_score=risk_score, risk_level=risk_level, indicators=indicators)

    @staticmethod
    def risk_level(score: int) -> str:
        if score >= 75:
            return "critical"
        if score >= 60:
            return "high"
        if score >= 40:
            return "medium"
        if score >= 20:
            return "low"
        return "safe"

    def _analyze_subject(self, subject: str) -> List[Indicator]:
        indicators = []
        lowered = subject.lower()

        keyword = next((k for k in PHISHING_KEYWORDS if k in lowered), None)
        if keyword:
            indicators.append(Indicator(
                "urgency_keyword", Severity.MEDIUM,
                f'Subject contains urgency keyword: "{keyword}"', subject, 8,
            ))

        if re.search(r'[!?]{3,}', subject):
            indicators.append(Indicator(
                "excessive_punctuation", Severity.LOW,
                "Subject contains excessive punctuation (urgency tactic)", subject, 3,
            ))

        if len(subject) > 10 and subject == subject.upper() and any(c.isalpha() for c in subject):
            indicators.append(Indicator(
                "all_caps", Severity.LOW,
                "Subject is in ALL CAPS (aggressive marketing tactic)", subject, 5,
            ))

        if re.match(r'^(re|fwd?):', lowered) and 'account' in lowered:
            indicators.append(Indicator(
                "fake_reply", Severity.MEDIUM,
                "Subject looks like a reply but may be fake (social engineering)", subject, 7,
            ))

        return indicators

    def _analyze_sender(self, sender: str, headers: Dict[str, List[str]]) -> List[Indicator]:
        indicators = []
        lowered = sender.lower()
        domain = extract_domain(sender)

        if domain:
            for brand in IMPERSONATED_BRANDS:
                if not re.search(rf'\b{brand}\b', lowered):
                    continue
                if brand not in domain:
                    indicators.append(Indicator(
                        "brand_impersonation", Severity.CRITICAL,
                        f"Sender appears to impersonate {brand} but uses different domain: {domain}",
                        sender, 25,
                    ))
                elif brand in LEGITIMATE_BRAND_DOMAINS and not _is_legitimate(brand, domain):
                    indicators.append(Indicator(
                        "suspicious_brand_domain", Severity.HIGH,
                        f"Sender claims to be from {brand} but uses suspicious domain: {domain}",
                        sender, 20,
                    ))

            tld = next((t for t in SUSPICIOUS_TLDS if domain.endswith(t)), None)
            if tld:
                indicators.append(Indicator(
                    "suspicious_tld", Severity.MEDIUM, f"Sender uses suspicious TLD: {tld}", domain, 10,
                ))

            if len(domain.split('.')) > 4:
                indicators.append(Indicator(
                    "excessive_subdomains", Severity.MEDIUM,
                    "Sender domain has excessive subdomains (obfuscation tactic)", domain, 8,
                ))

            if sum(c.isdigit() for c in domain) > 5:
                indicators.append(Indicator(
                    "number_heavy_domain", Severity.LOW,
                    "Sender domain contains many numbers (suspicious pattern)", domain, 5,
                ))

            display_match = _DISPLAY_NAME_RE.match(sender)
            if display_match:
                display_name = display_match.group(1).strip()
                display_lower = display_name.lower()
                brand = next(
                    (b for b in IMPERSONATED_BRANDS if re.search(rf'\b{b}\b', display_lower) and b not in domain),
                    None,
                )
                if brand:
                    indicators.append(Indicator(
                        "display_name_mismatch", Severity.HIGH,
                        f"Display name mentions {brand} but domain doesn't match",
                        f"{display_name} <{domain}>", 18,
                    ))

        reply_to = headers.get('reply-to')
        if reply_to and reply_to[0] and _bare_address(reply_to[0]) != _bare_address(sender):
            indicators.append(Indicator(
                "reply_to_mismatch", Severity.MEDIUM,
                "Reply-To address differs from From address (potential phishing)",
                f"From: {sender}, Reply-To: {reply_to[0]}", 12,
            ))

        return indicators

    def _analyze_content(self, body: str) -> List[Indicator]:
        indicators = []
        lowered = body.lower()

        phrase_count = sum(1 for keyword in PHISHING_KEYWORDS if keyword in lowered)
        if phrase_count >= 3:
            indicators.append(Indicator(
                "multiple_phishing_keywords", Severity.HIGH,
                f"Email contains {phrase_count} common phishing phrases",
                f"{phrase_count} suspicious phrases detected", 15,
            ))
        elif phrase_count >= 1:
            indicators.append(Indicator(
                "phishing_keywords", Severity.MEDIUM,
                "Email contains common phishing phrases",
                f"{phrase_count} suspicious phrase(s) detected", 8,
            ))

        if 'provide' in lowered:
            keyword = next((k for k in SENSITIVE_KEYWORDS if re.search(rf'\b{k}\b', lowered)), None)
            if keyword:
                indicators.append(Indicator(
                    "sensitive_info_request", Severity.CRITICAL,
                    f"Email requests sensitive information: {keyword}", keyword, 30,
                ))

        for pattern_id, pattern in PATTERNS.items():
            match = re.search(pattern['regex'], body, re.IGNORECASE)
            if match:
                logger.debug(f"Pattern '{pattern_id}' matched: {match.group(0)[:100]}")
                indicators.append(Indicator(
                    pattern_id, pattern['severity'], pattern['description'],
                    match.group(0)[:200], pattern['points'],
                ))

        return indicators

    def _analyze_links(self, links: List[str], sender: str) -> List[Indicator]:
        indicators = []
        sender_domain = extract_domain(sender)

        for link in links:
            lowered = link.lower()

            if lowered.startswith('data:'):
                indicators.append(Indicator(
                    "data_uri", Severity.HIGH,
                    "Email contains data URI (can hide malicious content)", link[:50] + "...", 18,
                ))
                continue

            host = _link_host(link)

            if _IP_LINK_RE.match(link):
                indicators.append(Indicator(
                    "ip_address_link", Severity.HIGH, "Email contains link to IP address (suspicious)", link, 15,
                ))

            if host:
                tld = next((t for t in SUSPICIOUS_TLDS if host.endswith(t)), None)
                if tld:
                    indicators.append(Indicator(
                        "suspicious_link_tld", Severity.MEDIUM, f"Link uses suspicious TLD: {tld}", link, 10,
                    ))

                if any(host == s or host.endswith('.' + s) for s in URL_SHORTENERS):
                    indicators.append(Indicator(
                        "url_shortener", Severity.MEDIUM,
                        "Email uses URL shortener (hides true destination)", link, 8,
                    ))

            if _CYRILLIC_RE.search(link) or (host and 'xn--' in host):
                indicators.append(Indicator(
                    "homograph_attack", Severity.CRITICAL,
                    "Link contains lookalike characters (homograph attack)", link, 25,
                ))

            if sender_domain and host and not _domains_match(sender_domain, host):
                indicators.append(Indicator(
                    "domain_mismatch", Severity.MEDIUM,
                    f"Link domain ({host}) differs from sender domain ({sender_domain})", link, 10,
                ))

        return indicators

    def _analyze_headers(self, headers: Dict[str, List[str]]) -> List[Indicator]:
        indicators = []

        if 'authentication-results' not in headers:
            indicators.append(Indicator(
                "no_authentication", Severity.MEDIUM,
                "Email lacks authentication results (SPF/DKIM/DMARC)",
                "Missing Authentication-Results header", 10,
            ))

        mailers = headers.get('x-mailer', [])
        if any('php' in m.lower() for m in mailers):
            indicators.append(Indicator(
                "suspicious_mailer", Severity.LOW,
                "Email sent via PHP script (common in spam/phishing)", ", ".join(mailers), 5,
            ))

        return indicators


def _is_legitimate(brand: str, domain: str) -> bool:
    return any(domain == valid or domain.endswith('.' + valid) for valid in LEGITIMATE_BRAND_DOMAINS.get(brand, []))


def _link_host(link: str) -> Optional[str]:
    try:
        host = urlsplit(link).hostname
    except ValueError:
        return None
    return host.lower() if host else None


def _domains_match(first: str, second: str) -> bool:
    """Registrable parts (last two labels) are equal."""
    return first.split('.')[-2:] == second.split('.')[-2:]


def _bare_address(value: str) -> str:
    match = re.search(r'<([^>]+)>', value)
    return (match.group(1) if match else value).strip().lower()
