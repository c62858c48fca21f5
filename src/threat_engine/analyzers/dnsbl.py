"""
DNS blacklist checker - queries reversed client addresses against DNSBL zones.
"""

import asyncio
import ipaddress
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..exceptions import ThreatEngineError
from ..models import Severity
from ..spf.resolver import DNSResolver, DnspythonResolver
from .base import BlacklistChecker
from .models import SEVERITY_ORDER, BlacklistListing, BlacklistResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Blacklist:
    name: str
    zone: str
    severity: Severity
    domain_based: bool = False


BLACKLISTS = [
    Blacklist("Spamhaus ZEN", "zen.spamhaus.org", Severity.HIGH),
    Blacklist("Spamhaus SBL", "sbl.spamhaus.org", Severity.HIGH),
    Blacklist("Spamhaus XBL", "xbl.spamhaus.org", Severity.HIGH),
    Blacklist("Spamhaus PBL", "pbl.spamhaus.org", Severity.MEDIUM),
    Blacklist("SpamCop", "bl.spamcop.net", Severity.MEDIUM),
    Blacklist("SORBS SPAM", "spam.dnsbl.sorbs.net", Severity.MEDIUM),
    Blacklist("Barracuda", "b.barracudacentral.org", Severity.MEDIUM),
    Blacklist("PSBL", "psbl.surriel.com", Severity.MEDIUM),
    Blacklist("CBL", "cbl.abuseat.org", Severity.HIGH),
    Blacklist("SURBL", "multi.surbl.org", Severity.HIGH, domain_based=True),
    Blacklist("URIBL", "multi.uribl.com", Severity.HIGH, domain_based=True),
    Blacklist("DBL Spamhaus", "dbl.spamhaus.org", Severity.HIGH, domain_based=True),
]


def reverse_address(address: str) -> Optional[str]:
    """
    DNSBL query label of an IP address.

    ``192.0.2.1`` becomes ``1.2.0.192``; IPv6 addresses are reversed nibble
    by nibble. Returns None for anything that is not an IP address.
    """
    try:
        ip = ipaddress.ip_address(address.strip())
    except (ValueError, AttributeError):
        return None
    pointer = ip.reverse_pointer
    suffix = '.in-addr.arpa' if ip.version == 4 else '.ip6.arpa'
    return pointer[:-len(suffix)]


class DNSBLChecker(BlacklistChecker):
    """
    Checks addresses against every configured zone concurrently.

    A zone lists an address when the query name resolves to any A record.
    Lookup failures count as "not listed".
    """

    def __init__(
        self,
        config: Optional[Dict[str, Any]] = None,
        resolver: Optional[DNSResolver] = None,
        zones: Optional[List[str]] = None,
        timeout: float = 3.0,
    ):
        """
        Args:
            config: Analyzer configuration
            resolver: DNS access (dnspython by default)
            zones: Zone names to query instead of the built-in list
            timeout: Per-query timeout for the default resolver
        """
        super().__init__(config)
        self.resolver = resolver or DnspythonResolver(timeout=timeout)
        self.blacklists = self._select(zones)

    @property
    def name(self) -> str:
        return "blacklist"

    @property
    def description(self) -> str:
        return "Checks the client address against DNS blacklists"

    async def check_ip(self, address: str) -> BlacklistResult:
        logger.debug(f"Checking IP {address} against DNSBLs")

        reversed_ip = reverse_address(address)
        if reversed_ip is None:
            logger.warning(f"Invalid IP address: {address}")
            return BlacklistResult(address=address)

        blacklists = [bl for bl in self.blacklists if not bl.domain_based]
        return await self._check_all(address, reversed_ip, blacklists)

    async def check_domain(self, domain: str) -> BlacklistResult:
        """Check a domain against the domain-based zones."""
        logger.debug(f"Checking domain {domain} against DNSBLs")
        blacklists = [bl for bl in self.blacklists if bl.domain_based]
        return await self._check_all(domain, domain.strip().rstrip('.').lower(), blacklists)

    @staticmethod
    def reputation_summary(result: BlacklistResult) -> str:
        if not result.listed:
            return "Clean - Not listed on any checked blacklists"

        percentage = round(result.total_listed / result.total_checked * 100) if result.total_checked else 0
        counts = f"{result.total_listed}/{result.total_checked} blacklists ({percentage}%)"
        if result.severity == Severity.CRITICAL:
            return f"CRITICAL - Listed on {counts}. Likely malware or phishing source."
        if result.severity == Severity.HIGH:
            return f"HIGH RISK - Listed on {counts}. Known spam source."
        if result.severity == Severity.MEDIUM:
            return f"MEDIUM RISK - Listed on {counts}. Possible spam activity."
        return f"LOW RISK - Listed on {counts}. Minor reputation issues."

    async def _check_all(self, subject: str, query: str, blacklists: List[Blacklist]) -> BlacklistResult:
        responses = await asyncio.gather(*(self._check_one(query, bl) for bl in blacklists))
        listings = [listing for listing in responses if listing is not None]

        severity = None
        if listings:
            severity = max((entry.severity for entry in listings), key=SEVERITY_ORDER.get)

        return BlacklistResult(
            address=subject,
            listed=bool(listings),
            listings=listings,
            total_checked=len(blacklists),
            severity=severity,
        )

    async def _check_one(self, query: str, blacklist: Blacklist) -> Optional[BlacklistListing]:
        lookup = f"{query}.{blacklist.zone}"
        try:
            answers = await self.resolver.addresses(lookup, 4)
        except ThreatEngineError as e:
            # DNS errors typically mean "not listed"
            logger.debug(f"{query} not checked against {blacklist.name}: {e}")
            return None

        if not answers:
            return None

        logger.info(f"{query} is listed in {blacklist.name}: {', '.join(answers)}")
        return BlacklistListing(
            zone=blacklist.zone,
            description=blacklist.name,
            severity=blacklist.severity,
            response=answers[0],
        )

    @staticmethod
    def _select(zones: Optional[List[str]]) -> List[Blacklist]:
        if not zones:
            return list(BLACKLISTS)
        known = {bl.zone: bl for bl in BLACKLISTS}
        return [known.get(zone, Blacklist(zone, zone, Severity.MEDIUM)) for zone in zones]
