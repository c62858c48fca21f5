"""
Exception hierarchy for the threat engine.

Only a handful of these ever leave the package: the coordinator, the SPF
verifier and the rule engine convert everything else into result values.
"""


class ThreatEngineError(Exception):
    """Base class for all threat engine errors."""


class MessageParseError(ThreatEngineError):
    """Raw message could not be turned into a message context."""


class SnapshotError(ThreatEngineError, ValueError):
    """Classifier snapshot is malformed."""


class TransientLookupError(ThreatEngineError):
    """DNS resolution failed in a way that may succeed on retry."""


class PolicySyntaxError(ThreatEngineError):
    """Sender policy record or one of its terms is malformed."""


class LookupLimitExceeded(ThreatEngineError):
    """Lookup or void-lookup budget of a verification was exhausted."""


class ReputationError(ThreatEngineError):
    """Reputation service returned an error."""


class ReputationNotConfigured(ReputationError):
    """Reputation service has no API key; the feature is disabled."""
