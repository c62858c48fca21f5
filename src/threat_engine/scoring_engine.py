"""
Transparent scoring engine for security reports.
"""

import logging
from typing import Any, Dict, List, Optional

from .analyzers.models import (
    BlacklistResult,
    HeaderAnalysis,
    PhishingAnalysis,
    ReputationVerdict,
)
from .classifier import ClassificationResult
from .models import ModuleName, ModuleResult, SecurityLevel, SecurityReport, Severity, ThreatSummary
from .rules import ActionKind, RuleMatch
from .spf import AuthorizationResult, SPFResult

logger = logging.getLogger(__name__)

SPF_PENALTIES = {
    SPFResult.FAIL: 20,
    SPFResult.SOFTFAIL: 10,
    SPFResult.NEUTRAL: 5,
}
PHISHING_WEIGHT = 0.4
BLACKLIST_PENALTIES = {
    Severity.CRITICAL: 30,
    Severity.HIGH: 20,
    Severity.MEDIUM: 10,
}
BLACKLIST_DEFAULT_PENALTY = 5
CLASSIFIER_WEIGHT = 20
REPUTATION_PENALTY = 25
REPUTATION_CAP = 50
MAX_TOP_THREATS = 5

RECOMMENDATIONS = {
    SecurityLevel.CRITICAL: "CRITICAL: Do not interact with this email. Delete immediately.",
    SecurityLevel.HIGH: "HIGH RISK: This email is likely malicious. Do not click links or provide information.",
    SecurityLevel.MEDIUM: "MODERATE RISK: Exercise extreme caution. Verify the sender independently.",
    SecurityLevel.LOW: "LOW RISK: Minor concerns detected. Proceed with caution.",
    SecurityLevel.SAFE: "SAFE: Email appears legitimate. Standard precautions apply.",
    SecurityLevel.UNKNOWN: "UNKNOWN: Analysis failed - exercise caution and review this email manually.",
}

DEGRADED_SCORE = 50


class ScoringEngine:
    """
    Fuses module results into one 0-100 security score (higher is safer).

    The order is fixed: start at 100, floor to the header security score,
    then subtract SPF, phishing, blacklist, classifier and reputation
    penalties, add rule ``score`` actions, clamp and round.
    """

    def fuse(
        self,
        header: Optional[HeaderAnalysis] = None,
        spf: Optional[AuthorizationResult] = None,
        phishing: Optional[PhishingAnalysis] = None,
        blacklist: Optional[BlacklistResult] = None,
        classification: Optional[ClassificationResult] = None,
        reputation: Optional[Dict[str, ReputationVerdict]] = None,
        rule_matches: Optional[List[RuleMatch]] = None,
    ) -> int:
        """
        Calculate the security score.

        Any input may be None (module disabled, failed or timed out); it
        then contributes nothing.
        """
        score = 100.0

        if header is not None:
            score = min(score, float(header.summary.security_score))
            logger.debug(f"Header floor applied (score now: {score})")

        if spf is not None:
            score -= SPF_PENALTIES.get(spf.result, 0)

        if phishing is not None:
            score -= phishing.risk_score * PHISHING_WEIGHT

        if blacklist is not None and blacklist.listed:
            score -= BLACKLIST_PENALTIES.get(blacklist.severity, BLACKLIST_DEFAULT_PENALTY)

        if classification is not None and classification.is_spam:
            score -= classification.spam_probability * CLASSIFIER_WEIGHT

        if reputation:
            malicious = sum(1 for verdict in reputation.values() if verdict.malicious)
            score -= min(REPUTATION_CAP, malicious * REPUTATION_PENALTY)

        for match in rule_matches or []:
            for action in match.actions:
                if action.kind == ActionKind.SCORE:
                    delta = _number(action.value)
                    score += delta
                    logger.debug(f"Applied rule {match.name}: {delta:+} points (score now: {score})")

        return int(round(max(0.0, min(100.0, score))))

    @staticmethod
    def level_for(score: int) -> SecurityLevel:
        if score >= 80:
            return SecurityLevel.SAFE
        if score >= 60:
            return SecurityLevel.LOW
        if score >= 40:
            return SecurityLevel.MEDIUM
        if score >= 20:
            return SecurityLevel.HIGH
        return SecurityLevel.CRITICAL

    def compile_threats(
        self,
        header: Optional[HeaderAnalysis] = None,
        phishing: Optional[PhishingAnalysis] = None,
        blacklist: Optional[BlacklistResult] = None,
        reputation: Optional[Dict[str, ReputationVerdict]] = None,
    ) -> ThreatSummary:
        """Count threats by severity; critical and high ones are named."""
        counts = {severity: 0 for severity in Severity}
        top_threats: List[str] = []

        def record(severity: Severity, description: str) -> None:
            counts[severity] += 1
            if severity in (Severity.CRITICAL, Severity.HIGH):
                top_threats.append(description)

        if header is not None:
            for issue in header.security_issues:
                record(issue.severity, issue.description)

        if phishing is not None:
            for indicator in phishing.indicators:
                record(indicator.severity, indicator.description)

        if blacklist is not None and blacklist.listed:
            if blacklist.severity == Severity.CRITICAL:
                record(Severity.CRITICAL, "Sender IP on critical blacklist")
            elif blacklist.severity == Severity.HIGH:
                record(Severity.HIGH, "Sender IP on spam blacklist")
            else:
                record(Severity.MEDIUM, "Sender IP on blacklist")

        for resource, verdict in (reputation or {}).items():
            if verdict.malicious:
                record(Severity.CRITICAL, f"Malicious link detected: {resource}")

        return ThreatSummary(
            critical=counts[Severity.CRITICAL],
            high=counts[Severity.HIGH],
            medium=counts[Severity.MEDIUM],
            low=counts[Severity.LOW],
            top_threats=top_threats[:MAX_TOP_THREATS],
        )

    @staticmethod
    def recommendation(level: SecurityLevel) -> str:
        return RECOMMENDATIONS.get(level, RECOMMENDATIONS[SecurityLevel.UNKNOWN])

    @staticmethod
    def actionable_steps(level: SecurityLevel) -> List[str]:
        if level in (SecurityLevel.CRITICAL, SecurityLevel.HIGH):
            return [
                "1. Delete this email immediately",
                "2. Report as phishing to your email provider",
                "3. Do not click any links or open attachments",
                "4. If you already clicked, run an antivirus scan and change passwords",
            ]
        if level == SecurityLevel.MEDIUM:
            return [
                "1. Verify sender authenticity through independent means",
                "2. Do not provide sensitive information",
                "3. Hover over links to check the true destination before clicking",
                "4. Contact the supposed sender using known contact information",
            ]
        return [
            "1. Verify unexpected requests independently",
            "2. Be cautious with attachments and links",
            "3. Report suspicious emails to your IT/security team",
        ]

    @staticmethod
    def authentication_summary(
        spf: Optional[AuthorizationResult] = None,
        header: Optional[HeaderAnalysis] = None,
    ) -> str:
        parts = []
        if spf is not None:
            parts.append(f"SPF: {spf.result.value}")
        if header is not None:
            for method in ('spf', 'dkim', 'dmarc'):
                if method == 'spf' and spf is not None:
                    continue
                result = header.authentication.get(method, {}).get('result')
                if result:
                    parts.append(f"{method.upper()}: {result}")
        return ", ".join(parts) or "No authentication data available"

    def create_report(
        self,
        message_id: str,
        module_results: Dict[str, ModuleResult],
        rule_matches: Optional[List[RuleMatch]] = None,
        partial: bool = False,
        analysis_ms: float = 0.0,
    ) -> SecurityReport:
        """
        Create a complete security report from the collected module results.

        Only completed modules contribute.
        """
        header = _data(module_results, ModuleName.HEADERS)
        spf = _data(module_results, ModuleName.SPF)
        phishing = _data(module_results, ModuleName.PHISHING)
        blacklist = _data(module_results, ModuleName.BLACKLIST)
        classification = _data(module_results, ModuleName.CLASSIFIER)
        reputation = _data(module_results, ModuleName.REPUTATION)

        score = self.fuse(header, spf, phishing, blacklist, classification, reputation, rule_matches)
        level = self.level_for(score)
        threats = self.compile_threats(header, phishing, blacklist, reputation)

        report = SecurityReport(
            message_id=message_id,
            score=score,
            level=level,
            recommendation=self.recommendation(level),
            module_results=dict(module_results),
            threats=threats,
            actionable_steps=self.actionable_steps(level),
            authentication_summary=self.authentication_summary(spf, header),
            rule_matches=list(rule_matches or []),
            partial=partial,
            analysis_ms=analysis_ms,
        )

        logger.info(
            f"Created security report for message {message_id or '<no id>'}: "
            f"score={score}, level={level.value}, threats={threats.total}"
        )
        return report

    def degraded_report(
        self,
        message_id: str,
        reason: str,
        module_results: Optional[Dict[str, ModuleResult]] = None,
        analysis_ms: float = 0.0,
    ) -> SecurityReport:
        """Fixed fallback report for when the analysis as a whole failed."""
        logger.warning(f"Returning degraded report for message {message_id or '<no id>'}: {reason}")
        return SecurityReport(
            message_id=message_id,
            score=DEGRADED_SCORE,
            level=SecurityLevel.UNKNOWN,
            recommendation=self.recommendation(SecurityLevel.UNKNOWN),
            module_results=dict(module_results or {}),
            actionable_steps=["Analysis incomplete - manually review this email"],
            authentication_summary="Unknown",
            degraded=True,
            analysis_ms=analysis_ms,
        )


def _data(module_results: Dict[str, ModuleResult], name: ModuleName) -> Any:
    result = module_results.get(name.value)
    if result is None or not result.ok:
        return None
    return result.data


def _number(value: Any) -> float:
    if isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric score action value: {value!r}")
        return 0.0
