"""
DNS access for sender authorization checks.

The verifier only talks to :class:`DNSResolver`; :class:`DnspythonResolver`
is the production implementation on top of ``dns.asyncresolver``.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

import dns.asyncresolver
import dns.exception
import dns.resolver
import dns.reversename

from ..exceptions import PolicySyntaxError, TransientLookupError

logger = logging.getLogger(__name__)


class DNSResolver(ABC):
    """
    Minimal async resolver interface.

    Every method returns an empty list when the name does not exist or has
    no records of the requested type (a "void" answer), and raises
    :class:`TransientLookupError` for failures that may succeed on retry.
    """

    @abstractmethod
    async def txt(self, name: str) -> List[str]:
        """TXT strings published at ``name`` (multi-string records joined)."""

    @abstractmethod
    async def addresses(self, name: str, version: int = 4) -> List[str]:
        """A (version 4) or AAAA (version 6) addresses of ``name``."""

    @abstractmethod
    async def mx(self, name: str) -> List[str]:
        """Exchange host names of ``name``, lowest preference first."""

    @abstractmethod
    async def ptr(self, address: str) -> List[str]:
        """Reverse names of an IP address."""


class DnspythonResolver(DNSResolver):
    """Resolver backed by dnspython's asyncio resolver."""

    def __init__(self, timeout: float = 5.0, resolver: Optional[dns.asyncresolver.Resolver] = None):
        """
        Args:
            timeout: Lifetime of a single query in seconds
            resolver: Pre-configured dnspython resolver (system config by default)
        """
        self.timeout = timeout
        self._resolver = resolver

    @property
    def resolver(self) -> dns.asyncresolver.Resolver:
        # Reads the system configuration on first use
        if self._resolver is None:
            self._resolver = dns.asyncresolver.Resolver()
        return self._resolver

    async def _query(self, name, rdtype: str):
        try:
            return await self.resolver.resolve(name, rdtype, lifetime=self.timeout)
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer) as e:
            logger.debug(f"No {rdtype} records for {name}: {e}")
            return []
        except dns.exception.SyntaxError as e:
            raise PolicySyntaxError(f"Invalid domain name {name!r}: {e}") from e
        except dns.exception.DNSException as e:
            # Timeout, NoNameservers and missing resolver configuration included
            raise TransientLookupError(f"{rdtype} lookup for {name} failed: {e}") from e

    async def txt(self, name: str) -> List[str]:
        answers = await self._query(name, 'TXT')
        records = []
        for rdata in answers:
            records.append(b"".join(rdata.strings).decode("utf-8", "ignore"))
        return records

    async def addresses(self, name: str, version: int = 4) -> List[str]:
        answers = await self._query(name, 'AAAA' if version == 6 else 'A')
        return [rdata.address for rdata in answers]

    async def mx(self, name: str) -> List[str]:
        answers = await self._query(name, 'MX')
        ordered = sorted(answers, key=lambda rdata: rdata.preference)
        return [str(rdata.exchange).rstrip('.').lower() for rdata in ordered]

    async def ptr(self, address: str) -> List[str]:
        try:
            reverse_name = dns.reversename.from_address(address)
        except (dns.exception.SyntaxError, ValueError) as e:
            raise PolicySyntaxError(f"Invalid address {address!r}: {e}") from e
        answers = await self._query(reverse_name, 'PTR')
        return [str(rdata.target).rstrip('.').lower() for rdata in answers]
