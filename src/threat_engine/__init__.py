"""
Threat Engine for Email Security Analysis
Runs sender authorization, spam classification, phishing heuristics and
user rules concurrently and fuses them into one security report.
"""

from .__version__ import __version__
from .coordinator import SecurityCoordinator
from .exceptions import (
    ThreatEngineError,
    MessageParseError,
    SnapshotError,
    ReputationError,
    ReputationNotConfigured,
)
from .models import (
    InboundMessage,
    MessageContext,
    ModuleName,
    ModuleResult,
    ModuleStatus,
    SecurityLevel,
    SecurityReport,
    Severity,
    ThreatSummary,
    TimeoutPolicy,
)
from .scoring_engine import ScoringEngine
from .settings import Settings

__all__ = [
    '__version__',
    'SecurityCoordinator',
    'ScoringEngine',
    'Settings',
    'InboundMessage',
    'MessageContext',
    'ModuleName',
    'ModuleResult',
    'ModuleStatus',
    'SecurityLevel',
    'SecurityReport',
    'Severity',
    'ThreatSummary',
    'TimeoutPolicy',
    'ThreatEngineError',
    'MessageParseError',
    'SnapshotError',
    'ReputationError',
    'ReputationNotConfigured',
]
