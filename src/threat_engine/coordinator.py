"""
Security coordinator - runs every enabled analysis for a message and fuses
the results into one report.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from .analyzers import (
    BlacklistChecker,
    ContentSanitizer,
    DNSBLChecker,
    HeaderAnalyzer,
    HeuristicPhishingDetector,
    HTMLSanitizer,
    PhishingDetector,
    PhishingSample,
    ReceivedHeaderAnalyzer,
    ReputationClient,
    ReputationVerdict,
    SanitizationResult,
    VirusTotalClient,
)
from .classifier import BayesianClassifier
from .exceptions import MessageParseError, ReputationNotConfigured
from .message_parser import parse_context
from .models import (
    InboundMessage,
    MessageContext,
    ModuleName,
    ModuleResult,
    ModuleStatus,
    SecurityReport,
    TimeoutPolicy,
)
from .rules import RuleEngine, RuleMatch
from .scoring_engine import ScoringEngine
from .settings import Settings
from .spf import DnspythonResolver, SPFVerifier

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[Any]]


class SecurityCoordinator:
    """
    Orchestrates the analysis of one message at a time.

    The classifier and the rule engine belong to the coordinator; every
    other collaborator may be shared. Pass ``None`` for any collaborator to
    get the default implementation built from ``settings``.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        verifier: Optional[SPFVerifier] = None,
        classifier: Optional[BayesianClassifier] = None,
        rule_engine: Optional[RuleEngine] = None,
        header_analyzer: Optional[HeaderAnalyzer] = None,
        phishing_detector: Optional[PhishingDetector] = None,
        blacklist_checker: Optional[BlacklistChecker] = None,
        reputation_client: Optional[ReputationClient] = None,
        sanitizer: Optional[ContentSanitizer] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.settings = settings or Settings()

        self.verifier = verifier or SPFVerifier(
            resolver=DnspythonResolver(timeout=self.settings.spf.dns_timeout_seconds),
            max_lookups=self.settings.spf.max_dns_lookups,
            max_void_lookups=self.settings.spf.max_void_lookups,
        )
        self.classifier = classifier or BayesianClassifier(self.settings.classifier)
        self.rule_engine = rule_engine or RuleEngine()
        self.header_analyzer = header_analyzer or ReceivedHeaderAnalyzer()
        self.phishing_detector = phishing_detector or HeuristicPhishingDetector()
        self.blacklist_checker = blacklist_checker or DNSBLChecker(
            zones=self.settings.blacklist.zones or None,
            timeout=self.settings.blacklist.timeout_seconds,
        )
        self.reputation_client = reputation_client or VirusTotalClient(
            api_key=self.settings.reputation.api_key,
            base_url=self.settings.reputation.base_url,
            timeout=self.settings.reputation.timeout_seconds,
        )
        self.sanitizer = sanitizer or HTMLSanitizer()
        self.scoring = ScoringEngine()
        self._sleep = sleep

    def get_rule_engine(self) -> RuleEngine:
        return self.rule_engine

    def get_classifier(self) -> BayesianClassifier:
        return self.classifier

    def sanitize(self, content: str, **options) -> SanitizationResult:
        """Sanitize HTML content on demand; not part of ``analyze``."""
        return self.sanitizer.sanitize(content, **options)

    async def analyze(self, message: Union[InboundMessage, Dict[str, Any]]) -> SecurityReport:
        """
        Analyze one message.

        Args:
            message: The message, or a dictionary accepted by
                ``InboundMessage.from_dict``

        Returns:
            A SecurityReport. This method does not raise (except on
            cancellation); any pipeline failure yields the degraded report.
        """
        started = time.perf_counter()
        message_id = _message_id(message)

        try:
            context = parse_context(message)
        except MessageParseError as e:
            return self.scoring.degraded_report(message_id, str(e), analysis_ms=_elapsed(started))
        except Exception as e:
            logger.error(f"Failed to build message context: {e}", exc_info=True)
            return self.scoring.degraded_report(message_id, str(e), analysis_ms=_elapsed(started))

        message_id = context.message_id or message_id
        try:
            return await self._run(context, started)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Security analysis failed for message {message_id}: {e}", exc_info=True)
            return self.scoring.degraded_report(message_id, str(e), analysis_ms=_elapsed(started))

    async def _run(self, context: MessageContext, started: float) -> SecurityReport:
        analysis = self.settings.analysis
        tasks = self._dispatch(context)
        results: Dict[str, ModuleResult] = {}
        partial = False

        if tasks:
            done, pending = await asyncio.wait(tasks.values(), timeout=analysis.max_analysis_seconds)
            for name, task in tasks.items():
                if task in done:
                    results[name] = task.result()

            if pending:
                for task in pending:
                    task.cancel()
                timed_out = sorted(name for name, task in tasks.items() if task in pending)
                logger.warning(
                    f"Analysis of message {context.message_id or '<no id>'} exceeded "
                    f"{analysis.max_analysis_seconds}s; pending: {', '.join(timed_out)}"
                )
                if analysis.timeout_policy == TimeoutPolicy.FALLBACK:
                    return self.scoring.degraded_report(
                        context.message_id,
                        f"Timed out waiting for: {', '.join(timed_out)}",
                        analysis_ms=_elapsed(started),
                    )
                for name in timed_out:
                    results[name] = ModuleResult(
                        name=name,
                        status=ModuleStatus.TIMED_OUT,
                        error=f"Exceeded {analysis.max_analysis_seconds}s deadline",
                    )
                partial = True

        if analysis.enable_reputation and self.reputation_client.enabled:
            reputation = await self._check_reputation(context)
            if reputation is not None:
                results[ModuleName.REPUTATION.value] = reputation

        self._record_scores(context, results)

        rule_matches: List[RuleMatch] = []
        if analysis.enable_rules:
            rule_matches = self.rule_engine.evaluate(context)

        return self.scoring.create_report(
            context.message_id,
            results,
            rule_matches=rule_matches,
            partial=partial,
            analysis_ms=_elapsed(started),
        )

    def _dispatch(self, context: MessageContext) -> Dict[str, "asyncio.Task[ModuleResult]"]:
        analysis = self.settings.analysis
        jobs: Dict[str, Awaitable[Any]] = {}

        if analysis.enable_header_analysis and self.header_analyzer.enabled:
            jobs[ModuleName.HEADERS.value] = asyncio.to_thread(
                self.header_analyzer.analyze_headers, context.headers
            )

        if context.client_address:
            if analysis.enable_spf:
                jobs[ModuleName.SPF.value] = self.verifier.verify(
                    context.client_address,
                    context.sender_domain,
                    context.from_address,
                    context.helo_domain,
                )
            if analysis.enable_blacklist and self.blacklist_checker.enabled:
                jobs[ModuleName.BLACKLIST.value] = self.blacklist_checker.check_ip(context.client_address)
        else:
            logger.debug("No client address; skipping SPF and blacklist checks")

        if analysis.enable_phishing_detection and self.phishing_detector.enabled:
            sample = PhishingSample(
                subject=context.subject,
                body=context.body,
                from_address=context.from_address,
                links=list(context.links),
                headers=context.headers,
            )
            jobs[ModuleName.PHISHING.value] = asyncio.to_thread(self.phishing_detector.analyze_email, sample)

        if analysis.enable_classifier:
            jobs[ModuleName.CLASSIFIER.value] = asyncio.to_thread(
                self.classifier.classify, context.subject, context.body, context.from_address
            )

        logger.debug(f"Dispatching modules: {', '.join(jobs) or 'none'}")
        return {name: asyncio.ensure_future(_guarded(name, job)) for name, job in jobs.items()}

    async def _check_reputation(self, context: MessageContext) -> Optional[ModuleResult]:
        """
        Look up links then the sender domain, one request at a time.

        Returns None when the reputation client is not configured.
        """
        settings = self.settings.reputation
        targets = [('url', link) for link in context.links[:settings.max_links]]
        if context.sender_domain:
            targets.append(('domain', context.sender_domain))
        if not targets:
            return None

        started = time.perf_counter()
        verdicts: Dict[str, ReputationVerdict] = {}
        for index, (kind, value) in enumerate(targets):
            if index:
                await self._sleep(settings.request_delay_seconds)
            try:
                if kind == 'url':
                    verdicts[value] = await self.reputation_client.scan_url(value)
                else:
                    verdicts[value] = await self.reputation_client.scan_domain(value)
            except ReputationNotConfigured:
                logger.debug("Reputation client not configured; skipping reputation checks")
                return None
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.warning(f"Reputation check failed for {value}: {e}")

        return ModuleResult(
            name=ModuleName.REPUTATION.value,
            data=verdicts,
            duration_ms=_elapsed(started),
        )

    @staticmethod
    def _record_scores(context: MessageContext, results: Dict[str, ModuleResult]) -> None:
        classifier = results.get(ModuleName.CLASSIFIER.value)
        if classifier is not None and classifier.ok:
            context.scores['spam_score'] = classifier.data.spam_probability

        phishing = results.get(ModuleName.PHISHING.value)
        if phishing is not None and phishing.ok:
            context.scores['phishing_score'] = float(phishing.data.risk_score)

        headers = results.get(ModuleName.HEADERS.value)
        if headers is not None and headers.ok:
            context.scores['header_score'] = float(headers.data.summary.security_score)


async def _guarded(name: str, job: Awaitable[Any]) -> ModuleResult:
    started = time.perf_counter()
    try:
        data = await job
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.error(f"Module {name} failed: {e}", exc_info=True)
        return ModuleResult(name=name, status=ModuleStatus.FAILED, error=str(e), duration_ms=_elapsed(started))
    return ModuleResult(name=name, data=data, duration_ms=_elapsed(started))


def _message_id(message: Any) -> str:
    if isinstance(message, InboundMessage):
        return message.id
    if isinstance(message, dict):
        return str(message.get('id', ''))
    return ''


def _elapsed(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0
