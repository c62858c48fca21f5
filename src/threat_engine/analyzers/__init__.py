"""
Analyzers dispatched by the coordinator.
"""

from .base import (
    Analyzer,
    BlacklistChecker,
    ContentSanitizer,
    HeaderAnalyzer,
    PhishingDetector,
    ReputationClient,
)
from .dnsbl import DNSBLChecker
from .headers import ReceivedHeaderAnalyzer
from .models import (
    BlacklistListing,
    BlacklistResult,
    HeaderAnalysis,
    Indicator,
    PhishingAnalysis,
    PhishingSample,
    ReputationVerdict,
    SanitizationResult,
    SecurityIssue,
)
from .phishing import HeuristicPhishingDetector
from .reputation import VirusTotalClient
from .sanitizer import HTMLSanitizer

__all__ = [
    'Analyzer',
    'HeaderAnalyzer',
    'PhishingDetector',
    'BlacklistChecker',
    'ReputationClient',
    'ContentSanitizer',
    'ReceivedHeaderAnalyzer',
    'HeuristicPhishingDetector',
    'DNSBLChecker',
    'VirusTotalClient',
    'HTMLSanitizer',
    'HeaderAnalysis',
    'SecurityIssue',
    'PhishingSample',
    'PhishingAnalysis',
    'Indicator',
    'BlacklistResult',
    'BlacklistListing',
    'ReputationVerdict',
    'SanitizationResult',
]
