"""
Analyzer interfaces consumed by the coordinator.

Every analyzer takes an optional config dictionary and can be switched off
with ``{'enabled': False}``. Implementations may raise; the coordinator turns
exceptions into failed module results.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .models import (
    BlacklistResult,
    HeaderAnalysis,
    PhishingAnalysis,
    PhishingSample,
    ReputationVerdict,
    SanitizationResult,
)


class Analyzer(ABC):
    """
    Base class for analyzers.
    """

    def __init__(self, config: Optional[Dict[str, Any]] = None):
        """
        Initialize the analyzer.

        Args:
            config: Analyzer-specific configuration
        """
        self.config = config or {}
        self.enabled = self.config.get('enabled', True)

    @property
    @abstractmethod
    def name(self) -> str:
        """Analyzer name (must be unique)."""
        pass

    @property
    def description(self) -> str:
        """Analyzer description."""
        return ""


class HeaderAnalyzer(Analyzer):
    """Inspects transport and authentication headers."""

    @abstractmethod
    def analyze_headers(self, headers: Dict[str, List[str]]) -> HeaderAnalysis:
        """
        Analyze a header multimap.

        Args:
            headers: Lower-cased header name to every value, in message order

        Returns:
            HeaderAnalysis whose ``summary.security_score`` is 0-100
        """
        pass


class PhishingDetector(Analyzer):
    """Scores a message for phishing signals."""

    @abstractmethod
    def analyze_email(self, sample: PhishingSample) -> PhishingAnalysis:
        pass


class BlacklistChecker(Analyzer):
    """Checks a client address against blacklists."""

    @abstractmethod
    async def check_ip(self, address: str) -> BlacklistResult:
        pass


class ReputationClient(Analyzer):
    """
    Looks up URL and domain reputation.

    Both methods may raise ``ReputationNotConfigured`` when the service has
    no credentials, and ``ReputationError`` on service failures.
    """

    @abstractmethod
    async def scan_url(self, url: str) -> ReputationVerdict:
        pass

    @abstractmethod
    async def scan_domain(self, domain: str) -> ReputationVerdict:
        pass


class ContentSanitizer(Analyzer):
    """Removes active content from message bodies."""

    @abstractmethod
    def sanitize(self, content: str, **options) -> SanitizationResult:
        pass
