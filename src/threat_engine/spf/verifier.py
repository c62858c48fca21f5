"""
Sender Policy Framework verifier (RFC 7208).

One ``verify`` call owns one :class:`VerificationState`. The state is passed
explicitly through every recursive ``include``/``redirect`` so nested policies
spend the same lookup budget as their parent.
"""

import ipaddress
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from ..exceptions import LookupLimitExceeded, PolicySyntaxError, TransientLookupError
from .resolver import DNSResolver, DnspythonResolver
from .terms import (
    IPAddress,
    PolicyTerm,
    Qualifier,
    expand_macros,
    is_policy_record,
    parse_network,
    parse_record,
    split_cidr,
)

logger = logging.getLogger(__name__)

MAX_DNS_LOOKUPS = 10
MAX_VOID_LOOKUPS = 2
# Names resolved per mx/ptr mechanism (RFC 7208 section 4.6.4)
MAX_NAME_LOOKUPS = 10


class SPFResult(str, Enum):
    NONE = "none"
    NEUTRAL = "neutral"
    PASS = "pass"
    FAIL = "fail"
    SOFTFAIL = "softfail"
    TEMPERROR = "temperror"
    PERMERROR = "permerror"


QUALIFIER_RESULTS = {
    Qualifier.PASS: SPFResult.PASS,
    Qualifier.FAIL: SPFResult.FAIL,
    Qualifier.SOFTFAIL: SPFResult.SOFTFAIL,
    Qualifier.NEUTRAL: SPFResult.NEUTRAL,
}


@dataclass(frozen=True)
class AuthorizationContext:
    """Inputs of one verification; never changes during the call."""
    client_address: IPAddress
    domain: str
    sender: str
    helo_domain: Optional[str] = None


@dataclass
class VerificationState:
    """
    Mutable scratch of one verification, shared by all recursive descents.

    ``visited_domains`` holds the include/redirect chain currently being
    evaluated, so only true cycles are rejected.
    """
    max_lookups: int = MAX_DNS_LOOKUPS
    max_void_lookups: int = MAX_VOID_LOOKUPS
    lookup_count: int = 0
    void_lookup_count: int = 0
    warnings: List[str] = field(default_factory=list)
    visited_domains: Set[str] = field(default_factory=set)

    def consume_lookup(self, what: str) -> None:
        """Spend one lookup; raises once the budget is gone."""
        if self.lookup_count >= self.max_lookups:
            raise LookupLimitExceeded(
                f"DNS lookup limit of {self.max_lookups} exceeded at {what}"
            )
        self.lookup_count += 1

    def record_void(self, what: str) -> None:
        """Count a lookup that found nothing."""
        self.void_lookup_count += 1
        if self.void_lookup_count > self.max_void_lookups:
            raise LookupLimitExceeded(
                f"Void lookup limit of {self.max_void_lookups} exceeded at {what}"
            )

    def warn(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)


@dataclass
class AuthorizationResult:
    """Outcome of a verification. Errors are encoded here, never raised."""
    result: SPFResult
    mechanism: Optional[str] = None
    lookups: int = 0
    void_lookups: int = 0
    warnings: List[str] = field(default_factory=list)
    explanation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'result': self.result.value,
            'mechanism': self.mechanism,
            'lookups': self.lookups,
            'void_lookups': self.void_lookups,
            'warnings': list(self.warnings),
            'explanation': self.explanation,
        }


@dataclass
class _Outcome:
    result: SPFResult
    mechanism: Optional[str] = None


class SPFVerifier:
    """
    Evaluates a domain's sender policy against a client address.

    The verifier itself is stateless between calls and safe to share across
    concurrent verifications.
    """

    def __init__(
        self,
        resolver: Optional[DNSResolver] = None,
        max_lookups: int = MAX_DNS_LOOKUPS,
        max_void_lookups: int = MAX_VOID_LOOKUPS,
    ):
        """
        Args:
            resolver: DNS access (dnspython by default)
            max_lookups: Lookup budget per verification
            max_void_lookups: Void lookups tolerated per verification
        """
        self.resolver = resolver or DnspythonResolver()
        self.max_lookups = max_lookups
        self.max_void_lookups = max_void_lookups

    async def verify(
        self,
        client_address: str,
        domain: str,
        sender: str,
        helo_domain: Optional[str] = None,
    ) -> AuthorizationResult:
        """
        Verify that ``client_address`` may send mail for ``domain``.

        Args:
            client_address: IP address of the SMTP client
            domain: Domain from MAIL FROM (or HELO)
            sender: Envelope sender address
            helo_domain: HELO/EHLO name, used by the ``%{h}`` macro

        Returns:
            AuthorizationResult; this method does not raise except on
            cancellation
        """
        state = VerificationState(max_lookups=self.max_lookups, max_void_lookups=self.max_void_lookups)
        logger.debug(f"Verifying SPF for IP: {client_address}, domain: {domain}, sender: {sender}")

        try:
            ip = ipaddress.ip_address(str(client_address).strip())
        except ValueError:
            logger.warning(f"Invalid IP address: {client_address}")
            return AuthorizationResult(SPFResult.PERMERROR, explanation="Invalid IP address")

        domain = (domain or '').strip().rstrip('.').lower()
        if not domain:
            logger.warning("No domain provided for SPF check")
            return AuthorizationResult(SPFResult.NONE, explanation="No domain")

        context = AuthorizationContext(
            client_address=ip,
            domain=domain,
            sender=sender or '',
            helo_domain=helo_domain,
        )

        try:
            outcome = await self._check_host(context, domain, state, nested=False)
            return self._result(state, outcome.result, outcome.mechanism)
        except LookupLimitExceeded as e:
            logger.info(f"SPF permerror for {domain}: {e}")
            return self._result(state, SPFResult.PERMERROR, explanation=str(e))
        except PolicySyntaxError as e:
            logger.info(f"SPF permerror for {domain}: {e}")
            return self._result(state, SPFResult.PERMERROR, explanation=str(e))
        except TransientLookupError as e:
            logger.warning(f"SPF temperror for {domain}: {e}")
            return self._result(state, SPFResult.TEMPERROR, explanation=str(e))
        except Exception as e:
            logger.error(f"SPF verification failed for {domain}: {e}", exc_info=True)
            return self._result(state, SPFResult.PERMERROR, explanation=str(e))

    def _result(
        self,
        state: VerificationState,
        result: SPFResult,
        mechanism: Optional[str] = None,
        explanation: Optional[str] = None,
    ) -> AuthorizationResult:
        return AuthorizationResult(
            result=result,
            mechanism=mechanism,
            lookups=state.lookup_count,
            void_lookups=state.void_lookup_count,
            warnings=list(state.warnings),
            explanation=explanation,
        )

    async def _check_host(
        self,
        context: AuthorizationContext,
        domain: str,
        state: VerificationState,
        nested: bool,
    ) -> _Outcome:
        if domain in state.visited_domains:
            raise PolicySyntaxError(f"Policy loop through {domain}")
        state.visited_domains.add(domain)
        try:
            record = await self._fetch_policy(domain, state, count_void=nested)
            if record is None:
                logger.debug(f"No SPF record found for domain: {domain}")
                return _Outcome(SPFResult.NONE)

            logger.debug(f"Found SPF record for {domain}: {record}")
            terms = parse_record(record)

            # First pass: mechanisms only, in record order
            for term in terms:
                if term.is_modifier:
                    continue
                if await self._matches(term, context, domain, state):
                    result = QUALIFIER_RESULTS[term.qualifier]
                    logger.debug(f"SPF mechanism {term} matched with result: {result.value}")
                    return _Outcome(result, str(term))

            redirect = next((t for t in terms if t.is_modifier and t.name == 'redirect'), None)
            if redirect is not None:
                target = self._target(redirect.argument, context, domain)
                outcome = await self._check_host(context, target, state, nested=True)
                if outcome.result == SPFResult.NONE:
                    raise PolicySyntaxError(f"redirect={target} has no policy record")
                return outcome

            logger.debug("No SPF mechanism matched, returning neutral")
            return _Outcome(SPFResult.NEUTRAL)
        finally:
            state.visited_domains.discard(domain)

    async def _fetch_policy(self, domain: str, state: VerificationState, count_void: bool) -> Optional[str]:
        state.consume_lookup(f"TXT {domain}")
        records = await self.resolver.txt(domain)
        if not records and count_void:
            state.record_void(f"TXT {domain}")

        policies = [r.strip() for r in records if is_policy_record(r)]
        if not policies:
            return None
        if len(policies) > 1:
            # RFC 7208 makes this a permerror; treated as "no policy" here
            state.warn(f"Multiple SPF records found for {domain} - this is invalid per RFC 7208")
            return None
        return policies[0]

    def _target(self, spec: Optional[str], context: AuthorizationContext, domain: str) -> str:
        if not spec:
            return domain
        target = expand_macros(spec, context.client_address, context.sender, domain, context.helo_domain)
        target = target.strip().rstrip('.').lower()
        if not target or '.' not in target:
            raise PolicySyntaxError(f"Invalid domain-spec {spec!r}")
        return target

    async def _matches(
        self,
        term: PolicyTerm,
        context: AuthorizationContext,
        domain: str,
        state: VerificationState,
    ) -> bool:
        ip = context.client_address
        name = term.name

        if name == 'all':
            return True

        if name in ('ip4', 'ip6'):
            version = 4 if name == 'ip4' else 6
            network = parse_network(term.argument, version)
            return ip.version == version and ip in network

        if name == 'include':
            target = self._target(term.argument, context, domain)
            outcome = await self._check_host(context, target, state, nested=True)
            if outcome.result == SPFResult.NONE:
                state.warn(f"include:{target} has no SPF record")
                return False
            return outcome.result == SPFResult.PASS

        spec, v4_prefix, v6_prefix = split_cidr(term.argument)
        target = self._target(spec, context, domain)
        prefix = v4_prefix if ip.version == 4 else v6_prefix

        if name == 'a':
            state.consume_lookup(f"a:{target}")
            addresses = await self.resolver.addresses(target, ip.version)
            if not addresses:
                state.record_void(f"a:{target}")
            return self._in_any(ip, addresses, prefix)

        if name == 'mx':
            state.consume_lookup(f"mx:{target}")
            hosts = await self.resolver.mx(target)
            if not hosts:
                state.record_void(f"mx:{target}")
                return False
            if len(hosts) > MAX_NAME_LOOKUPS:
                raise PolicySyntaxError(f"mx:{target} returned more than {MAX_NAME_LOOKUPS} hosts")
            for host in hosts:
                addresses = await self.resolver.addresses(host, ip.version)
                if self._in_any(ip, addresses, prefix):
                    return True
            return False

        if name == 'ptr':
            state.warn("PTR mechanism is not recommended per RFC 7208")
            state.consume_lookup(f"ptr:{target}")
            names = await self.resolver.ptr(str(ip))
            if not names:
                state.record_void(f"ptr:{ip}")
                return False
            for candidate in names[:MAX_NAME_LOOKUPS]:
                if candidate != target and not candidate.endswith('.' + target):
                    continue
                addresses = await self.resolver.addresses(candidate, ip.version)
                if self._in_any(ip, addresses, None):
                    return True
            return False

        if name == 'exists':
            state.consume_lookup(f"exists:{target}")
            addresses = await self.resolver.addresses(target, 4)
            if not addresses:
                state.record_void(f"exists:{target}")
                return False
            return True

        raise PolicySyntaxError(f"Unknown mechanism {name!r}")

    @staticmethod
    def _in_any(ip: IPAddress, addresses: List[str], prefix: Optional[int]) -> bool:
        for address in addresses:
            try:
                if prefix is None:
                    if ipaddress.ip_address(address) == ip:
                        return True
                    continue
                network = ipaddress.ip_network(f"{address}/{prefix}", strict=False)
            except ValueError:
                logger.debug(f"Ignoring malformed address record {address!r}")
                continue
            if network.version == ip.version and ip in network:
                return True
        return False
